"""
Fusion API Tests

Tests for the intelligence endpoints:
- Organization scoping of engine output
- Operator, entitlement and policy checks on engine runs
- Manual policies, governance review, optimization apply and alerts
- Platform-wide metric weights
"""

import pytest

from rest_framework import status

from fusion.models import AdaptivePolicy, FusionMetricWeight, GovernanceAudit

BASE_URL = '/api/v1/fusion'


# ============================================================================
# SCORES AND ENGINE RUNS
# ============================================================================

@pytest.mark.django_db
class TestFusionScoreAPI:
    """Tests for Fusion Score endpoints."""

    def test_scores_scoped_to_organization(
        self, member_client, organization, other_organization, integration_factory, fusion_score_factory
    ):
        fusion_score_factory(integration=integration_factory(organization=organization), score=70.0)
        fusion_score_factory(integration=integration_factory(organization=other_organization), score=10.0)

        response = member_client.get(f'{BASE_URL}/scores/')

        assert response.status_code == status.HTTP_200_OK
        assert [row['score'] for row in response.data['data']] == [70.0]

    def test_overview(self, member_client, organization, integration_factory, fusion_score_factory):
        fusion_score_factory(integration=integration_factory(organization=organization), score=70.0)

        response = member_client.get(f'{BASE_URL}/scores/overview/')

        assert response.status_code == status.HTTP_200_OK
        assert response.data['data']['fusion_score'] == 70.0

    def test_member_cannot_recalculate(self, member_client):
        response = member_client.post(f'{BASE_URL}/scores/recalculate/')

        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_operator_recalculates(self, operator_client, organization, integration_factory):
        integration = integration_factory(organization=organization)

        response = operator_client.post(f'{BASE_URL}/scores/recalculate/')

        assert response.status_code == status.HTTP_200_OK
        assert str(integration.uuid) in response.data['data']['integrations']
        assert response.data['data']['overview']['integration_count'] == 1


@pytest.mark.django_db
class TestEngineRunPermissions:
    """Tests for the checks applied before running an engine."""

    def test_operator_runs_trust_engine(self, operator_client, organization, member, audit_log_entry_factory):
        audit_log_entry_factory(organization=organization, user=member)

        response = operator_client.post(f'{BASE_URL}/trust/run/')

        assert response.status_code == status.HTTP_200_OK
        assert response.data['data']['users_updated'] == 1

    def test_plan_without_intelligence(self, operator_client, organization):
        subscription = organization.subscription
        subscription.status = 'canceled'
        subscription.save()

        response = operator_client.post(f'{BASE_URL}/trust/run/')

        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert response.data['error_code'] == 'FEATURE_NOT_AVAILABLE'

    def test_restricted_operator(self, operator_client, organization, operator_member, adaptive_policy_factory):
        adaptive_policy_factory(organization=organization, target_user=operator_member)

        response = operator_client.post(f'{BASE_URL}/policies/run/')

        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert response.data['error_code'] == 'POLICY_RESTRICTED'

    def test_restriction_does_not_block_reads(self, operator_client, organization, operator_member, adaptive_policy_factory):
        adaptive_policy_factory(organization=organization, target_user=operator_member)

        response = operator_client.get(f'{BASE_URL}/policies/')

        assert response.status_code == status.HTTP_200_OK

    def test_governance_run(self, operator_client, organization, member, trust_graph_node_factory):
        trust_graph_node_factory(organization=organization, user=member, trust_score=30.0)

        response = operator_client.post(f'{BASE_URL}/governance/run/')

        assert response.status_code == status.HTTP_200_OK
        assert response.data['data']['anomalies_detected'] == 1


# ============================================================================
# POLICIES AND GOVERNANCE
# ============================================================================

@pytest.mark.django_db
class TestPolicyAPI:
    """Tests for manual policy management."""

    def test_owner_creates_policy(self, owner_client, organization, member):
        response = owner_client.post(f'{BASE_URL}/policies/', {
            'name': 'Contractor lockdown',
            'action_type': 'restrict',
            'target_user_email': member.email,
        }, format='json')

        assert response.status_code == status.HTTP_201_CREATED
        policy = AdaptivePolicy.objects.get(organization=organization)
        assert policy.target_user == member
        assert policy.condition_type == 'manual_override'

    def test_target_required(self, owner_client):
        response = owner_client.post(f'{BASE_URL}/policies/', {
            'name': 'Nobody',
            'action_type': 'notify',
        }, format='json')

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_unknown_target_user(self, owner_client):
        response = owner_client.post(f'{BASE_URL}/policies/', {
            'name': 'Ghost',
            'action_type': 'restrict',
            'target_user_email': 'ghost@example.com',
        }, format='json')

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.data['error_code'] == 'INVALID_INPUT'

    def test_member_cannot_create(self, member_client, member):
        response = member_client.post(f'{BASE_URL}/policies/', {
            'name': 'Self service',
            'action_type': 'elevate',
            'target_user_email': member.email,
        }, format='json')

        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_owner_suspends(self, owner_client, organization, adaptive_policy_factory):
        policy = adaptive_policy_factory(organization=organization)

        response = owner_client.post(f'{BASE_URL}/policies/{policy.uuid}/suspend/')

        assert response.status_code == status.HTTP_200_OK
        assert response.data['data']['status'] == 'Suspended'

    def test_other_organization_policy_not_found(self, owner_client, other_organization, adaptive_policy_factory):
        policy = adaptive_policy_factory(organization=other_organization)

        response = owner_client.post(f'{BASE_URL}/policies/{policy.uuid}/suspend/')

        assert response.status_code == status.HTTP_404_NOT_FOUND


@pytest.mark.django_db
class TestGovernanceAPI:
    """Tests for governance endpoints."""

    def test_owner_reviews(self, owner_client, organization, owner, governance_audit_factory):
        audit = governance_audit_factory(organization=organization)

        response = owner_client.post(
            f'{BASE_URL}/governance/{audit.uuid}/review/',
            {'outcome': 'Denied', 'notes': 'Not expected'},
            format='json',
        )

        assert response.status_code == status.HTTP_200_OK
        audit.refresh_from_db()
        assert audit.outcome == 'Denied'
        assert audit.reviewer == owner

    def test_review_of_approved_audit(self, owner_client, organization, governance_audit_factory):
        audit = governance_audit_factory(organization=organization, outcome='Approved')

        response = owner_client.post(
            f'{BASE_URL}/governance/{audit.uuid}/review/', {'outcome': 'Denied'}, format='json'
        )

        assert response.status_code == status.HTTP_409_CONFLICT
        assert GovernanceAudit.objects.get(pk=audit.pk).outcome == 'Approved'

    def test_member_cannot_review(self, member_client, organization, governance_audit_factory):
        audit = governance_audit_factory(organization=organization)

        response = member_client.post(
            f'{BASE_URL}/governance/{audit.uuid}/review/', {'outcome': 'Approved'}, format='json'
        )

        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_summary(self, member_client, organization, governance_audit_factory):
        governance_audit_factory(organization=organization)

        response = member_client.get(f'{BASE_URL}/governance/summary/?days=3')

        assert response.status_code == status.HTTP_200_OK
        assert response.data['data']['days'] == 3
        assert response.data['data']['pending_escalations'] == 1

    def test_summary_days_validated(self, member_client):
        response = member_client.get(f'{BASE_URL}/governance/summary/?days=week')

        assert response.status_code == status.HTTP_400_BAD_REQUEST


# ============================================================================
# OPTIMIZATION, ALERTS AND AUDIT LOG
# ============================================================================

@pytest.mark.django_db
class TestOptimizationAPI:
    """Tests for optimization endpoints."""

    def test_operator_runs(self, operator_client, organization, workflow_metric_factory):
        workflow_metric_factory(organization=organization, stability_index=0.6)

        response = operator_client.post(f'{BASE_URL}/optimization/run/')

        assert response.status_code == status.HTTP_200_OK
        assert response.data['data']['optimization']['optimization_action'] == 'stabilize'

    def test_operator_applies(self, operator_client, organization, optimization_event_factory):
        event = optimization_event_factory(organization=organization)

        response = operator_client.post(f'{BASE_URL}/optimization/{event.uuid}/apply/')

        assert response.status_code == status.HTTP_200_OK
        assert response.data['data']['optimization']['applied'] is True
        assert response.data['data']['parameters']['feedback_weight'] == pytest.approx(0.4)

    def test_apply_twice_conflicts(self, operator_client, organization, optimization_event_factory):
        event = optimization_event_factory(organization=organization, applied=True)

        response = operator_client.post(f'{BASE_URL}/optimization/{event.uuid}/apply/')

        assert response.status_code == status.HTTP_409_CONFLICT

    def test_parameters(self, member_client):
        response = member_client.get(f'{BASE_URL}/parameters/')

        assert response.status_code == status.HTTP_200_OK
        assert response.data['data']['stability_threshold'] == 0.85


@pytest.mark.django_db
class TestAlertAPI:
    """Tests for alert listing and acknowledgement."""

    def test_filter_unacknowledged(self, member_client, organization, fusion_alert_factory):
        fusion_alert_factory(organization=organization)
        fusion_alert_factory(organization=organization, acknowledged=True)

        response = member_client.get(f'{BASE_URL}/alerts/?acknowledged=false')

        assert response.status_code == status.HTTP_200_OK
        assert len(response.data['data']) == 1

    def test_acknowledge(self, member_client, organization, member, fusion_alert_factory):
        alert = fusion_alert_factory(organization=organization)

        response = member_client.post(f'{BASE_URL}/alerts/{alert.uuid}/acknowledge/')

        assert response.status_code == status.HTTP_200_OK
        alert.refresh_from_db()
        assert alert.acknowledged_by == member

    def test_acknowledge_other_organization(self, member_client, other_organization, fusion_alert_factory):
        alert = fusion_alert_factory(organization=other_organization)

        response = member_client.post(f'{BASE_URL}/alerts/{alert.uuid}/acknowledge/')

        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_audit_log_scoped(self, member_client, organization, other_organization, audit_log_entry_factory):
        audit_log_entry_factory(organization=organization, action_type='login')
        audit_log_entry_factory(organization=other_organization, action_type='export')

        response = member_client.get(f'{BASE_URL}/audit-log/')

        assert response.status_code == status.HTTP_200_OK
        assert [row['action_type'] for row in response.data['data']] == ['login']


@pytest.mark.django_db
class TestMetricWeightAPI:
    """Tests for platform-wide metric weights."""

    def test_member_reads(self, member_client, fusion_metric_weight_factory):
        fusion_metric_weight_factory()

        response = member_client.get(f'{BASE_URL}/weights/?provider=slack')

        assert response.status_code == status.HTTP_200_OK
        assert response.data['data'][0]['metric_name'] == 'message_count'

    def test_member_cannot_edit(self, member_client, fusion_metric_weight_factory):
        weight = fusion_metric_weight_factory()

        response = member_client.patch(f'{BASE_URL}/weights/{weight.pk}/', {'weight': 0.9}, format='json')

        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_platform_admin_edits(self, platform_admin_client, fusion_metric_weight_factory):
        weight = fusion_metric_weight_factory()

        response = platform_admin_client.patch(
            f'{BASE_URL}/weights/{weight.pk}/', {'weight': 0.9, 'provider': 'zoom'}, format='json'
        )

        assert response.status_code == status.HTTP_200_OK
        weight.refresh_from_db()
        assert weight.weight == 0.9
        assert weight.provider == 'slack'

    def test_weight_range_validated(self, platform_admin_client, fusion_metric_weight_factory):
        weight = fusion_metric_weight_factory()

        response = platform_admin_client.patch(f'{BASE_URL}/weights/{weight.pk}/', {'weight': 1.5}, format='json')

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert FusionMetricWeight.objects.get(pk=weight.pk).weight == 0.5
