"""
Dashboard Tests

Tests for the admin console overview and the cached per-organization
dashboard, including invalidation when underlying data changes.
"""

import pytest

from rest_framework import status

from dashboard.services import AdminOverviewService, OrganizationDashboardService
from fusion.models import FusionScore
from integrations.models import Integration

ADMIN_URL = '/api/v1/dashboard/admin/'
ORGANIZATION_URL = '/api/v1/dashboard/organization/'


# ============================================================================
# ADMIN OVERVIEW
# ============================================================================

@pytest.mark.django_db
class TestAdminOverviewService:
    """Tests for the platform-wide overview."""

    def test_organization_counts(self, organization, other_organization, organization_factory):
        organization_factory(status='suspended')

        counts = AdminOverviewService.organization_counts()

        assert counts == {'active': 2, 'inactive': 0, 'suspended': 1, 'total': 3}

    def test_intelligence_summary(
        self, organization, member, trust_graph_node_factory, fusion_score_factory,
        integration_factory, fusion_alert_factory, governance_audit_factory,
    ):
        fusion_score_factory(integration=integration_factory(organization=organization), score=80.0)
        trust_graph_node_factory(organization=organization, user=member, trust_score=40.0, risk_level='High')
        fusion_alert_factory(organization=organization, severity='critical')
        fusion_alert_factory(organization=organization, severity='low')
        governance_audit_factory(organization=organization)

        summary = AdminOverviewService.intelligence_summary()

        assert summary['average_fusion_score'] == 80.0
        assert summary['high_risk_users'] == 1
        assert summary['urgent_alerts'] == 1
        assert summary['pending_escalations'] == 1
        assert summary['pending_optimizations'] == 0

    def test_overview_sections(self, organization):
        overview = AdminOverviewService.get_overview()

        assert set(overview) == {'users', 'organizations', 'billing', 'integrations', 'intelligence', 'generated_at'}
        assert overview['billing']['active'] == 1


# ============================================================================
# ORGANIZATION DASHBOARD
# ============================================================================

@pytest.mark.django_db
class TestOrganizationDashboardService:
    """Tests for the cached organization overview."""

    def test_build(self, organization, integration_factory, fusion_score_factory, fusion_alert_factory):
        slack = integration_factory(organization=organization, provider='slack')
        integration_factory(organization=organization, provider='trello')
        fusion_score_factory(integration=slack, score=66.0)
        fusion_alert_factory(organization=organization, severity='high')

        data = OrganizationDashboardService.build(organization)

        assert data['organization']['slug'] == organization.slug
        assert data['fusion']['fusion_score'] == 66.0
        assert [row['fusion_score'] for row in data['integrations']] == [66.0, None]
        assert data['alerts']['count'] == 1
        assert data['alerts']['by_severity'] == {'high': 1}

    def test_cached_until_data_changes(self, organization, integration_factory, fusion_score_factory):
        integration = integration_factory(organization=organization)
        fusion_score_factory(integration=integration, score=40.0)
        first = OrganizationDashboardService.get_overview(organization)

        FusionScore.objects.filter(integration=integration).update(score=90.0)
        assert OrganizationDashboardService.get_overview(organization) == first

        fusion_score = FusionScore.objects.get(integration=integration)
        fusion_score.save()

        assert OrganizationDashboardService.get_overview(organization)['fusion']['fusion_score'] == 90.0

    def test_bypass_cache(self, organization, integration_factory):
        integration = integration_factory(organization=organization)
        OrganizationDashboardService.get_overview(organization)
        Integration.objects.filter(pk=integration.pk).update(name='Renamed')

        data = OrganizationDashboardService.get_overview(organization, use_cache=False)

        assert data['integrations'][0]['name'] == 'Renamed'

    def test_invalidation_is_per_organization(self, organization, other_organization, integration_factory):
        integration = integration_factory(organization=organization)
        first = OrganizationDashboardService.get_overview(organization)
        Integration.objects.filter(pk=integration.pk).update(name='Renamed')

        integration_factory(organization=other_organization)

        assert OrganizationDashboardService.get_overview(organization) == first
        assert len(OrganizationDashboardService.get_overview(other_organization)['integrations']) == 1


@pytest.mark.django_db
class TestDashboardAPI:
    """Tests for dashboard endpoints."""

    def test_admin_overview_forbidden_for_members(self, member_client):
        response = member_client.get(ADMIN_URL)

        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_admin_overview(self, platform_admin_client, organization):
        response = platform_admin_client.get(ADMIN_URL)

        assert response.status_code == status.HTTP_200_OK
        assert response.data['data']['organizations']['total'] == 1

    def test_organization_overview(self, member_client, organization):
        response = member_client.get(ORGANIZATION_URL)

        assert response.status_code == status.HTTP_200_OK
        assert response.data['data']['organization']['slug'] == organization.slug

    def test_organization_header(self, member_client, other_organization):
        response = member_client.get(ORGANIZATION_URL, HTTP_X_ORGANIZATION_ID=other_organization.slug)

        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_refresh(self, member_client, organization, integration_factory):
        integration = integration_factory(organization=organization)
        member_client.get(ORGANIZATION_URL)
        Integration.objects.filter(pk=integration.pk).update(name='Renamed')

        cached = member_client.get(ORGANIZATION_URL)
        refreshed = member_client.get(f'{ORGANIZATION_URL}?refresh=true')

        assert cached.data['data']['integrations'][0]['name'] != 'Renamed'
        assert refreshed.data['data']['integrations'][0]['name'] == 'Renamed'
