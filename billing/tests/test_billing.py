"""
Billing Tests

Tests for plans, subscriptions and entitlements:
- Trial, activation, plan change and cancellation
- Entitlement resolution and limit enforcement
- Daily subscription sweep
- Billing overview figures and endpoints
"""

import pytest
from datetime import timedelta
from decimal import Decimal

from django.core.management import call_command
from django.test import override_settings
from django.utils import timezone
from freezegun import freeze_time
from rest_framework import status

from api.exceptions import InvalidInputError, PlanLimitExceededError, ResourceStateError
from billing.enforcement import (
    current_integration_usage,
    current_member_usage,
    ensure_can_add_integration,
)
from billing.entitlements import (
    get_entitlements,
    intelligence_organizations,
    is_subscription_usable,
)
from billing.models import Plan, Subscription
from billing.services import BillingOverviewService, BillingService
from billing.tasks import process_subscription_transitions

SUBSCRIPTION_URL = '/api/v1/billing/subscription/'


# ============================================================================
# SUBSCRIPTION LIFECYCLE
# ============================================================================

@pytest.mark.django_db
class TestSubscriptionLifecycle:
    """Tests for BillingService state changes."""

    @override_settings(CORE314_TRIAL_DAYS=10)
    def test_start_trial_uses_configured_days(self, organization_factory, starter_plan):
        organization = organization_factory()
        now = timezone.now()

        subscription = BillingService.start_trial(organization, now=now)

        assert subscription.status == Subscription.Status.TRIALING
        assert subscription.plan == starter_plan
        assert subscription.trial_ends_at == now + timedelta(days=10)

    def test_second_trial_rejected(self, organization):
        with pytest.raises(ResourceStateError):
            BillingService.start_trial(organization)

    def test_activate_from_trial(self, trial_subscription_factory):
        subscription = trial_subscription_factory()
        now = timezone.now()

        BillingService.activate(subscription, billing_cycle='yearly', now=now)

        assert subscription.status == Subscription.Status.ACTIVE
        assert subscription.trial_ends_at is None
        assert subscription.current_period_end == now + timedelta(days=365)

    def test_activate_rejects_canceled(self, subscription_factory):
        subscription = subscription_factory(status='canceled')

        with pytest.raises(ResourceStateError):
            BillingService.activate(subscription)

    def test_activate_rejects_unknown_cycle(self, trial_subscription_factory):
        with pytest.raises(InvalidInputError):
            BillingService.activate(trial_subscription_factory(), billing_cycle='weekly')

    def test_upgrade(self, organization, enterprise_plan):
        subscription = BillingService.change_plan(organization.subscription, enterprise_plan)

        assert subscription.plan == enterprise_plan

    def test_downgrade_over_limits_rejected(self, organization, integration_factory, starter_plan):
        """Test downgrading is refused when integrations exceed the target plan."""
        for provider in ('slack', 'trello', 'intercom', 'salesforce'):
            integration_factory(organization=organization, provider=provider)

        with pytest.raises(PlanLimitExceededError):
            BillingService.change_plan(organization.subscription, starter_plan)

    def test_downgrade_ignores_disconnected(self, organization, integration_factory, starter_plan):
        for provider in ('slack', 'trello', 'intercom'):
            integration_factory(organization=organization, provider=provider)
        integration_factory(organization=organization, provider='salesforce', status='disconnected')

        subscription = BillingService.change_plan(organization.subscription, starter_plan)

        assert subscription.plan == starter_plan

    def test_cancel_at_period_end(self, organization):
        subscription = BillingService.cancel(organization.subscription, at_period_end=True)

        assert subscription.cancel_at_period_end is True
        assert subscription.status == Subscription.Status.ACTIVE

    def test_cancel_immediately(self, organization):
        subscription = BillingService.cancel(organization.subscription, at_period_end=False, reason='Too pricey')

        assert subscription.status == Subscription.Status.CANCELED
        assert subscription.canceled_at is not None
        assert subscription.cancellation_reason == 'Too pricey'

    def test_cancel_twice(self, subscription_factory):
        subscription = subscription_factory(status='canceled')

        with pytest.raises(ResourceStateError):
            BillingService.cancel(subscription)

    def test_change_plan_after_cancel(self, subscription_factory, enterprise_plan):
        with pytest.raises(ResourceStateError):
            BillingService.change_plan(subscription_factory(status='canceled'), enterprise_plan)


@pytest.mark.django_db
class TestSubscriptionSweep:
    """Tests for the daily state transition sweep."""

    def test_expired_trial_becomes_past_due(self, trial_subscription_factory):
        subscription = trial_subscription_factory(trial_ends_at=timezone.now() - timedelta(hours=1))

        result = BillingService.process_state_transitions()

        subscription.refresh_from_db()
        assert result['trials_past_due'] == 1
        assert subscription.status == Subscription.Status.PAST_DUE
        assert subscription.past_due_since is not None

    def test_scheduled_cancellation_applies(self, subscription_factory):
        subscription = subscription_factory(
            cancel_at_period_end=True,
            current_period_end=timezone.now() - timedelta(minutes=5),
        )

        result = process_subscription_transitions()

        subscription.refresh_from_db()
        assert result['status'] == 'success'
        assert result['canceled'] == 1
        assert subscription.status == Subscription.Status.CANCELED


# ============================================================================
# ENTITLEMENTS
# ============================================================================

@pytest.mark.django_db
class TestEntitlements:
    """Tests for entitlement resolution and enforcement."""

    def test_tier_defaults(self, organization):
        entitlements = get_entitlements(organization)

        assert entitlements.tier == 'professional'
        assert entitlements.max_integrations == 10
        assert entitlements.max_users == 25
        assert entitlements.intelligence_enabled is True

    def test_plan_limits_override_tier(self, subscription_factory, plan_factory):
        plan = plan_factory(tier='professional', max_integrations=4)
        subscription = subscription_factory(plan=plan)

        assert get_entitlements(subscription.organization).max_integrations == 4

    def test_enterprise_unlimited(self, subscription_factory, enterprise_plan):
        subscription = subscription_factory(plan=enterprise_plan)

        entitlements = get_entitlements(subscription.organization)

        assert entitlements.max_integrations is None
        assert entitlements.admin_visibility_scope == 'full'

    def test_no_subscription_falls_back(self, organization_factory):
        entitlements = get_entitlements(organization_factory())

        assert entitlements.intelligence_enabled is False

    def test_canceled_subscription_falls_back(self, subscription_factory):
        subscription = subscription_factory(status='canceled')

        assert get_entitlements(subscription.organization).intelligence_enabled is False

    @override_settings(CORE314_PAST_DUE_GRACE_DAYS=7)
    def test_past_due_within_grace(self, subscription_factory):
        now = timezone.now()
        subscription = subscription_factory(status='past_due', past_due_since=now - timedelta(days=3))

        assert is_subscription_usable(subscription, now=now) is True
        assert is_subscription_usable(subscription, now=now + timedelta(days=5)) is False

    def test_integration_limit(self, subscription_factory, starter_plan, integration_factory):
        subscription = subscription_factory(plan=starter_plan)
        organization = subscription.organization
        for provider in ('slack', 'trello', 'intercom'):
            integration_factory(organization=organization, provider=provider)

        assert current_integration_usage(organization) == 3
        with pytest.raises(PlanLimitExceededError):
            ensure_can_add_integration(organization)

    def test_member_usage_counts_pending_invitations(self, organization, member, invitation_factory):
        invitation_factory(organization=organization)
        invitation_factory(organization=organization, status='revoked')

        assert current_member_usage(organization) == 3

    def test_intelligence_organizations(self, organization, subscription_factory, organization_factory):
        subscription_factory(status='canceled')
        organization_factory(status='suspended')

        assert list(intelligence_organizations()) == [organization]


# ============================================================================
# OVERVIEW
# ============================================================================

@pytest.mark.django_db
class TestBillingOverview:
    """Tests for the platform billing overview."""

    @freeze_time('2026-03-15 12:00:00')
    def test_overview_figures(self, subscription_factory, plan_factory, trial_subscription_factory):
        monthly = plan_factory(slug='pro', price_monthly=Decimal('100.00'), price_yearly=Decimal('960.00'))
        subscription_factory(plan=monthly)
        subscription_factory(plan=monthly, billing_cycle='yearly')
        trial_subscription_factory(plan=monthly, trial_ends_at=timezone.now() + timedelta(days=3))
        subscription_factory(plan=monthly, status='canceled', canceled_at=timezone.now() - timedelta(days=2))

        overview = BillingOverviewService.get_overview()

        assert overview['mrr'] == Decimal('180.00')
        assert overview['arr'] == Decimal('2160.00')
        assert overview['active'] == 2
        assert overview['trialing'] == 1
        assert overview['trials_ending_soon'] == 1
        assert overview['churned_last_30_days'] == 1
        assert overview['churn_rate'] == pytest.approx(33.33)
        pro = next(row for row in overview['per_plan'] if row['plan'] == 'pro')
        assert pro['subscriptions'] == 4
        assert pro['active'] == 2

    def test_setup_plans_command(self):
        call_command('setup_plans')
        call_command('setup_plans')

        assert set(Plan.objects.values_list('slug', flat=True)) == {'starter', 'professional', 'enterprise'}


@pytest.mark.django_db
class TestBillingAPI:
    """Tests for the billing endpoints."""

    def test_plans_listed(self, member_client, plan):
        response = member_client.get('/api/v1/billing/plans/')

        assert response.status_code == status.HTTP_200_OK
        assert [row['slug'] for row in response.data['data']] == ['professional']

    def test_current_subscription(self, member_client):
        response = member_client.get(SUBSCRIPTION_URL)

        assert response.status_code == status.HTTP_200_OK
        assert response.data['data']['status'] == 'active'
        assert response.data['data']['entitlements']['tier'] == 'professional'

    def test_member_cannot_change_plan(self, member_client, enterprise_plan):
        response = member_client.post(f'{SUBSCRIPTION_URL}change-plan/', {'plan': 'enterprise'}, format='json')

        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_owner_changes_plan(self, owner_client, organization, enterprise_plan):
        response = owner_client.post(f'{SUBSCRIPTION_URL}change-plan/', {'plan': 'enterprise'}, format='json')

        assert response.status_code == status.HTTP_200_OK
        organization.subscription.refresh_from_db()
        assert organization.subscription.plan == enterprise_plan

    def test_owner_cancels(self, owner_client):
        response = owner_client.post(f'{SUBSCRIPTION_URL}cancel/', {'at_period_end': False}, format='json')

        assert response.status_code == status.HTTP_200_OK
        assert response.data['data']['status'] == 'canceled'

    def test_admin_cannot_cancel(self, api_client, org_admin, organization):
        api_client.force_login(org_admin)

        response = api_client.post(f'{SUBSCRIPTION_URL}cancel/', {'at_period_end': False}, format='json')

        assert response.status_code == status.HTTP_403_FORBIDDEN
        organization.subscription.refresh_from_db()
        assert organization.subscription.status == 'active'

    def test_overview_hidden_from_members(self, member_client):
        response = member_client.get('/api/v1/billing/overview/')

        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_overview(self, platform_admin_client, organization):
        response = platform_admin_client.get('/api/v1/billing/overview/')

        assert response.status_code == status.HTTP_200_OK
        assert response.data['data']['active'] == 1
