"""
Fusion Task Tests

Tests for the scheduled engine sweeps and per-integration score refresh.
"""

import pytest

from fusion.models import FusionAlert, FusionScore, TrustGraphNode
from fusion.tasks import (
    recalculate_fusion_scores,
    run_adaptive_policy_engine,
    run_for_organizations,
    run_governance_engine,
    run_optimization_engine,
    run_trust_scoring_engine,
    scan_for_anomalies,
    sync_integration_fusion_score,
)


@pytest.mark.django_db
class TestRunForOrganizations:
    """Tests for the per-organization sweep helper."""

    def test_runs_each_entitled_organization(self, organization, other_organization, subscription_factory):
        subscription_factory(status='canceled')
        seen = []

        result = run_for_organizations('test-engine', lambda org: seen.append(org.slug) or {'ok': True})

        assert result['status'] == 'success'
        assert result['organizations_processed'] == 2
        assert sorted(seen) == sorted([organization.slug, other_organization.slug])

    def test_failure_isolated(self, organization, other_organization):
        def run(org):
            if org == organization:
                raise ValueError('boom')
            return {'ok': True}

        result = run_for_organizations('test-engine', run)

        assert result['status'] == 'partial'
        assert result['failures'] == {organization.slug: 'boom'}
        assert result['results'] == {other_organization.slug: {'ok': True}}


@pytest.mark.django_db
class TestEngineTasks:
    """Tests for the Celery engine tasks."""

    def test_sync_integration_fusion_score(self, organization, integration_factory):
        integration = integration_factory(organization=organization)

        result = sync_integration_fusion_score(integration.pk)

        assert result['status'] == 'success'
        assert FusionScore.objects.filter(integration=integration).exists()

    def test_sync_missing_integration(self):
        assert sync_integration_fusion_score(999999)['status'] == 'not_found'

    def test_recalculate_skips_inactive(self, organization, integration_factory):
        integration_factory(organization=organization, provider='slack')
        integration_factory(organization=organization, provider='trello', status='error')

        result = recalculate_fusion_scores()

        assert result['results'][organization.slug] == {'integrations_scored': 1}
        assert FusionScore.objects.count() == 1

    def test_scan_for_anomalies(self, organization, audit_log_entry_factory):
        audit_log_entry_factory(organization=organization, event_payload={'instability_probability': 0.6})

        result = scan_for_anomalies()

        assert result['results'][organization.slug] == {'anomalies_detected': 1, 'alerts_generated': 1}
        assert FusionAlert.objects.get(organization=organization).severity == 'critical'

    def test_trust_and_policy_engines(self, organization, member, audit_log_entry_factory):
        audit_log_entry_factory(organization=organization, user=member)

        trust = run_trust_scoring_engine()
        policy = run_adaptive_policy_engine()

        assert trust['results'][organization.slug]['users_updated'] == 1
        assert policy['results'][organization.slug]['policies_applied'] == 0
        assert TrustGraphNode.objects.filter(user=member).exists()

    def test_governance_engine(self, organization, member, trust_graph_node_factory):
        trust_graph_node_factory(organization=organization, user=member, trust_score=30.0)

        result = run_governance_engine()

        assert result['results'][organization.slug]['anomalies_detected'] == 1

    def test_optimization_engine(self, organization, workflow_metric_factory):
        workflow_metric_factory(organization=organization, stability_index=0.6)

        result = run_optimization_engine()

        assert result['results'][organization.slug] == {
            'optimization_recommended': True,
            'optimization_action': 'stabilize',
            'efficiency_index': 55.0,
        }
