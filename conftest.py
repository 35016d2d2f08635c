"""
Core314 Test Configuration - pytest fixtures and factories

This module provides:
- pytest-django configuration
- factory_boy factories for the console, billing, integration and engine models
- Shared fixtures for organization isolation testing

RUNNING TESTS:
# Run all tests
pytest -v

# Run by app
pytest fusion/tests -v
pytest integrations/tests -v

NOTES:
- API tests log in with client.force_login(); OrganizationMiddleware resolves
  request.organization from the session user, the X-Organization-ID header,
  the user's default organization or the earliest membership.
- Migrations are skipped (--nomigrations); tables come from the models.
"""

import uuid
from datetime import timedelta
from decimal import Decimal

import factory
import pytest
from django.core.cache import cache
from django.utils import timezone
from factory.django import DjangoModelFactory


# ============================================================================
# USER FACTORIES
# ============================================================================

class UserFactory(DjangoModelFactory):
    """Factory for accounts.User."""

    class Meta:
        model = 'accounts.User'
        django_get_or_create = ('email',)

    username = factory.LazyAttribute(lambda o: f"user_{uuid.uuid4().hex[:8]}")
    email = factory.LazyAttribute(lambda o: f"{o.username}@example.com")
    first_name = factory.Faker('first_name')
    last_name = factory.Faker('last_name')
    full_name = factory.LazyAttribute(lambda o: f"{o.first_name} {o.last_name}")
    role = 'user'
    is_active = True
    password = factory.PostGenerationMethodCall('set_password', 'testpass123')


class OperatorFactory(UserFactory):
    """Factory for users allowed to trigger the scoring engines."""

    role = 'operator'


class PlatformAdminFactory(UserFactory):
    """Factory for Core314 platform administrators."""

    role = 'platform_admin'
    is_platform_admin = True
    is_staff = True


# ============================================================================
# BILLING FACTORIES
# ============================================================================

class PlanFactory(DjangoModelFactory):
    """Factory for billing plans."""

    class Meta:
        model = 'billing.Plan'
        django_get_or_create = ('slug',)

    name = factory.Sequence(lambda n: f"Plan {n}")
    slug = factory.Sequence(lambda n: f"plan-{n}")
    tier = 'professional'
    description = factory.Faker('text', max_nb_chars=120)
    price_monthly = Decimal('199.00')
    price_yearly = Decimal('1990.00')
    currency = 'USD'
    max_users = None
    max_integrations = None
    is_active = True
    sort_order = factory.Sequence(lambda n: n)


class StarterPlanFactory(PlanFactory):
    """Factory for the starter tier."""

    name = 'Starter'
    slug = 'starter'
    tier = 'starter'
    price_monthly = Decimal('49.00')
    price_yearly = Decimal('490.00')
    max_users = 5
    max_integrations = 3
    sort_order = 1


class EnterprisePlanFactory(PlanFactory):
    """Factory for the enterprise tier."""

    name = 'Enterprise'
    slug = 'enterprise'
    tier = 'enterprise'
    price_monthly = Decimal('999.00')
    price_yearly = Decimal('9990.00')
    sort_order = 3


# ============================================================================
# ORGANIZATION FACTORIES
# ============================================================================

class OrganizationFactory(DjangoModelFactory):
    """Factory for organizations (without members or subscription)."""

    class Meta:
        model = 'organizations.Organization'
        django_get_or_create = ('slug',)

    name = factory.Sequence(lambda n: f"Company {n}")
    slug = factory.Sequence(lambda n: f"company-{n}")
    status = 'active'
    owner = factory.SubFactory(UserFactory)


class OrganizationMemberFactory(DjangoModelFactory):
    """Factory for organization memberships."""

    class Meta:
        model = 'organizations.OrganizationMember'

    organization = factory.SubFactory(OrganizationFactory)
    user = factory.SubFactory(UserFactory)
    role = 'member'
    is_active = True


class OwnerMemberFactory(OrganizationMemberFactory):
    role = 'owner'


class AdminMemberFactory(OrganizationMemberFactory):
    role = 'admin'


class InvitationFactory(DjangoModelFactory):
    """Factory for pending organization invitations."""

    class Meta:
        model = 'organizations.OrganizationInvitation'

    organization = factory.SubFactory(OrganizationFactory)
    email = factory.Sequence(lambda n: f"invitee{n}@example.com")
    role = 'member'
    status = 'pending'
    invited_by = factory.LazyAttribute(lambda o: o.organization.owner)
    expires_at = factory.LazyFunction(lambda: timezone.now() + timedelta(days=7))


class SubscriptionFactory(DjangoModelFactory):
    """Factory for active monthly subscriptions."""

    class Meta:
        model = 'billing.Subscription'

    organization = factory.SubFactory(OrganizationFactory)
    plan = factory.SubFactory(PlanFactory)
    status = 'active'
    billing_cycle = 'monthly'
    current_period_start = factory.LazyFunction(timezone.now)
    current_period_end = factory.LazyFunction(lambda: timezone.now() + timedelta(days=30))


class TrialSubscriptionFactory(SubscriptionFactory):
    status = 'trialing'
    trial_ends_at = factory.LazyFunction(lambda: timezone.now() + timedelta(days=14))
    current_period_end = factory.LazyFunction(lambda: timezone.now() + timedelta(days=14))


# ============================================================================
# INTEGRATION FACTORIES
# ============================================================================

class IntegrationFactory(DjangoModelFactory):
    """Factory for connected integrations."""

    class Meta:
        model = 'integrations.Integration'

    organization = factory.SubFactory(OrganizationFactory)
    provider = 'slack'
    name = factory.LazyAttribute(lambda o: f"{o.provider.title()} workspace")
    status = 'active'
    config = factory.LazyFunction(dict)
    poll_interval_minutes = 60
    connected_at = factory.LazyFunction(timezone.now)


class IntegrationCredentialFactory(DjangoModelFactory):
    """Factory for encrypted provider credentials."""

    class Meta:
        model = 'integrations.IntegrationCredential'

    integration = factory.SubFactory(IntegrationFactory)
    access_token = factory.LazyFunction(lambda: f"token-{uuid.uuid4().hex}")
    refresh_token = ''
    api_key = ''


class IntegrationMetricFactory(DjangoModelFactory):
    """Factory for raw provider metrics."""

    class Meta:
        model = 'integrations.IntegrationMetric'

    integration = factory.SubFactory(IntegrationFactory)
    metric_name = 'message_count'
    value = 100.0
    calculated_at = factory.LazyFunction(timezone.now)


# ============================================================================
# FUSION FACTORIES
# ============================================================================

class FusionMetricWeightFactory(DjangoModelFactory):
    """Factory for platform-wide metric weights."""

    class Meta:
        model = 'fusion.FusionMetricWeight'
        django_get_or_create = ('provider', 'metric_name')

    provider = 'slack'
    metric_name = 'message_count'
    weight = 0.5
    normalization_max = 1000.0


class FusionScoreFactory(DjangoModelFactory):
    """Factory for integration fusion scores."""

    class Meta:
        model = 'fusion.FusionScore'

    integration = factory.SubFactory(IntegrationFactory)
    organization = factory.LazyAttribute(lambda o: o.integration.organization)
    score = 65.0
    breakdown = factory.LazyFunction(dict)
    trend = 'stable'
    calculated_at = factory.LazyFunction(timezone.now)


class AuditLogEntryFactory(DjangoModelFactory):
    """Factory for audit log rows (engine telemetry)."""

    class Meta:
        model = 'fusion.AuditLogEntry'

    organization = factory.SubFactory(OrganizationFactory)
    user = factory.SubFactory(UserFactory)
    user_role = 'member'
    action_type = 'api_request'
    decision_summary = factory.Faker('sentence')
    triggered_by = 'api'
    confidence_level = 80
    decision_impact = 'NEUTRAL'
    event_payload = factory.LazyFunction(dict)
    stability_score = 0.9
    reinforcement_delta = 0.0
    anomaly_detected = False
    created_at = factory.LazyFunction(timezone.now)


class AnomalousAuditLogEntryFactory(AuditLogEntryFactory):
    anomaly_detected = True
    anomaly_reason = 'High stability variance'
    event_payload = factory.LazyFunction(lambda: {'stability_variance': 0.30})


class TrustGraphNodeFactory(DjangoModelFactory):
    """Factory for trust graph nodes."""

    class Meta:
        model = 'fusion.TrustGraphNode'

    organization = factory.SubFactory(OrganizationFactory)
    user = factory.SubFactory(UserFactory)
    trust_score = 75.0
    risk_level = 'Moderate'
    total_interactions = 10
    behavior_consistency = 100.0
    connections = factory.LazyFunction(list)
    updated_at = factory.LazyFunction(timezone.now)


class AdaptivePolicyFactory(DjangoModelFactory):
    """Factory for engine-created restrict policies."""

    class Meta:
        model = 'fusion.AdaptivePolicy'

    organization = factory.SubFactory(OrganizationFactory)
    name = factory.Sequence(lambda n: f"Policy {n}")
    target_user = factory.SubFactory(UserFactory)
    target_function = '*'
    condition_type = 'behavior_anomaly'
    condition_threshold = 70.0
    action_type = 'restrict'
    status = 'Active'
    expires_at = factory.LazyFunction(lambda: timezone.now() + timedelta(hours=24))


class UserRiskScoreFactory(DjangoModelFactory):
    class Meta:
        model = 'fusion.UserRiskScore'

    organization = factory.SubFactory(OrganizationFactory)
    user = factory.SubFactory(UserFactory)
    risk_score = 20.0


class GovernanceAuditFactory(DjangoModelFactory):
    """Factory for governance audits awaiting review."""

    class Meta:
        model = 'fusion.GovernanceAudit'

    organization = factory.SubFactory(OrganizationFactory)
    source_event_id = factory.Sequence(lambda n: str(n))
    subsystem = 'Trust'
    governance_action = 'trust_score_review'
    justification = factory.Faker('sentence')
    confidence = 0.5
    outcome = 'Escalated'
    severity = 'Critical'
    explanation_context = factory.LazyFunction(dict)
    created_at = factory.LazyFunction(timezone.now)


class WorkflowMetricFactory(DjangoModelFactory):
    class Meta:
        model = 'fusion.WorkflowMetric'

    organization = factory.SubFactory(OrganizationFactory)
    stability_index = 0.9
    variance = 0.05
    created_at = factory.LazyFunction(timezone.now)


class FusionAlertFactory(DjangoModelFactory):
    """Factory for unacknowledged alerts."""

    class Meta:
        model = 'fusion.FusionAlert'

    organization = factory.SubFactory(OrganizationFactory)
    event_type = 'api_request'
    severity = 'high'
    message = factory.Faker('sentence')
    metadata = factory.LazyFunction(dict)
    acknowledged = False
    created_at = factory.LazyFunction(timezone.now)


class OptimizationEventFactory(DjangoModelFactory):
    """Factory for pending optimization recommendations."""

    class Meta:
        model = 'fusion.OptimizationEvent'

    organization = factory.SubFactory(OrganizationFactory)
    source_event_type = 'stability'
    predicted_variance = 0.15
    predicted_stability = 0.80
    optimization_action = 'stabilize'
    parameter_delta = factory.LazyFunction(lambda: {'feedback_weight': -0.10})
    efficiency_index = 0.68
    applied = False
    created_at = factory.LazyFunction(timezone.now)


# ============================================================================
# FACTORY FIXTURES
# ============================================================================

@pytest.fixture
def user_factory(db):
    """Provide UserFactory for tests."""
    return UserFactory


@pytest.fixture
def operator_factory(db):
    """Provide OperatorFactory for tests."""
    return OperatorFactory


@pytest.fixture
def platform_admin_factory(db):
    """Provide PlatformAdminFactory for tests."""
    return PlatformAdminFactory


@pytest.fixture
def plan_factory(db):
    """Provide PlanFactory for tests."""
    return PlanFactory


@pytest.fixture
def organization_factory(db):
    """Provide OrganizationFactory for tests."""
    return OrganizationFactory


@pytest.fixture
def organization_member_factory(db):
    """Provide OrganizationMemberFactory for tests."""
    return OrganizationMemberFactory


@pytest.fixture
def invitation_factory(db):
    """Provide InvitationFactory for tests."""
    return InvitationFactory


@pytest.fixture
def subscription_factory(db):
    """Provide SubscriptionFactory for tests."""
    return SubscriptionFactory


@pytest.fixture
def trial_subscription_factory(db):
    """Provide TrialSubscriptionFactory for tests."""
    return TrialSubscriptionFactory


@pytest.fixture
def integration_factory(db):
    """Provide IntegrationFactory for tests."""
    return IntegrationFactory


@pytest.fixture
def integration_credential_factory(db):
    """Provide IntegrationCredentialFactory for tests."""
    return IntegrationCredentialFactory


@pytest.fixture
def integration_metric_factory(db):
    """Provide IntegrationMetricFactory for tests."""
    return IntegrationMetricFactory


@pytest.fixture
def fusion_metric_weight_factory(db):
    """Provide FusionMetricWeightFactory for tests."""
    return FusionMetricWeightFactory


@pytest.fixture
def fusion_score_factory(db):
    """Provide FusionScoreFactory for tests."""
    return FusionScoreFactory


@pytest.fixture
def audit_log_entry_factory(db):
    """Provide AuditLogEntryFactory for tests."""
    return AuditLogEntryFactory


@pytest.fixture
def anomalous_audit_log_entry_factory(db):
    """Provide AnomalousAuditLogEntryFactory for tests."""
    return AnomalousAuditLogEntryFactory


@pytest.fixture
def trust_graph_node_factory(db):
    """Provide TrustGraphNodeFactory for tests."""
    return TrustGraphNodeFactory


@pytest.fixture
def adaptive_policy_factory(db):
    """Provide AdaptivePolicyFactory for tests."""
    return AdaptivePolicyFactory


@pytest.fixture
def user_risk_score_factory(db):
    """Provide UserRiskScoreFactory for tests."""
    return UserRiskScoreFactory


@pytest.fixture
def governance_audit_factory(db):
    """Provide GovernanceAuditFactory for tests."""
    return GovernanceAuditFactory


@pytest.fixture
def workflow_metric_factory(db):
    """Provide WorkflowMetricFactory for tests."""
    return WorkflowMetricFactory


@pytest.fixture
def fusion_alert_factory(db):
    """Provide FusionAlertFactory for tests."""
    return FusionAlertFactory


@pytest.fixture
def optimization_event_factory(db):
    """Provide OptimizationEventFactory for tests."""
    return OptimizationEventFactory


# ============================================================================
# COMMON FIXTURES
# ============================================================================

@pytest.fixture(autouse=True)
def clear_cache():
    """Keep cached dashboard payloads from leaking between tests."""
    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def user(db):
    """Create a standard user."""
    return UserFactory()


@pytest.fixture
def operator_user(db):
    """Create a user with the operator platform role."""
    return OperatorFactory()


@pytest.fixture
def platform_admin(db):
    """Create a platform administrator."""
    return PlatformAdminFactory()


@pytest.fixture
def plan(db):
    """Professional plan with tier default limits."""
    return PlanFactory(name='Professional', slug='professional', sort_order=2)


@pytest.fixture
def starter_plan(db):
    return StarterPlanFactory()


@pytest.fixture
def enterprise_plan(db):
    return EnterprisePlanFactory()


@pytest.fixture
def organization(db, plan):
    """
    Active organization on the professional plan.
    The owner is an owner member and has it as default organization.
    """
    owner = UserFactory()
    org = OrganizationFactory(owner=owner)
    OwnerMemberFactory(organization=org, user=owner)
    SubscriptionFactory(organization=org, plan=plan)
    owner.default_organization = org
    owner.save(update_fields=['default_organization'])
    return org


@pytest.fixture
def other_organization(db, plan):
    """Second organization for isolation testing."""
    owner = UserFactory()
    org = OrganizationFactory(owner=owner, name='Company Beta', slug='company-beta')
    OwnerMemberFactory(organization=org, user=owner)
    SubscriptionFactory(organization=org, plan=plan)
    owner.default_organization = org
    owner.save(update_fields=['default_organization'])
    return org


@pytest.fixture
def owner(organization):
    return organization.owner


@pytest.fixture
def org_admin(db, organization):
    """Organization admin member."""
    user = UserFactory()
    AdminMemberFactory(organization=organization, user=user)
    return user


@pytest.fixture
def member(db, organization):
    """Plain organization member."""
    user = UserFactory()
    OrganizationMemberFactory(organization=organization, user=user)
    return user


@pytest.fixture
def operator_member(db, organization):
    """Organization member with the operator platform role."""
    user = OperatorFactory()
    OrganizationMemberFactory(organization=organization, user=user)
    return user


@pytest.fixture
def api_client(db):
    """Provide a DRF API test client."""
    from rest_framework.test import APIClient
    return APIClient()


@pytest.fixture
def member_client(api_client, member):
    """API client logged in as a plain member."""
    api_client.force_login(member)
    return api_client


@pytest.fixture
def owner_client(api_client, owner):
    """API client logged in as the organization owner."""
    api_client.force_login(owner)
    return api_client


@pytest.fixture
def operator_client(api_client, operator_member):
    """API client logged in as an operator member."""
    api_client.force_login(operator_member)
    return api_client


@pytest.fixture
def platform_admin_client(api_client, platform_admin):
    """API client logged in as a platform administrator."""
    api_client.force_login(platform_admin)
    return api_client
