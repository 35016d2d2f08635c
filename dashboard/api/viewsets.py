"""
Dashboard API Views

- AdminOverviewView: admin console overview (platform admins)
- OrganizationDashboardView: current organization overview (members),
  cached per organization for CORE314_DASHBOARD_CACHE_TIMEOUT seconds;
  ?refresh=true bypasses the cache
"""

from rest_framework.permissions import IsAuthenticated
from rest_framework.views import APIView

from api.base import APIResponse, OrganizationContextMixin
from core.permissions import IsOrganizationMember, IsPlatformAdmin

from ..services import AdminOverviewService, OrganizationDashboardService


class AdminOverviewView(APIView):
    permission_classes = [IsAuthenticated, IsPlatformAdmin]

    def get(self, request):
        return APIResponse.success(data=AdminOverviewService.get_overview())


class OrganizationDashboardView(OrganizationContextMixin, APIView):
    permission_classes = [IsAuthenticated, IsOrganizationMember]

    def get(self, request):
        organization = self.get_organization_or_404()
        refresh = request.query_params.get('refresh', '').lower() in ('1', 'true', 'yes')
        data = OrganizationDashboardService.get_overview(organization, use_cache=not refresh)
        return APIResponse.success(data=data)
