"""
Dashboard API URLs.
"""

from django.urls import path

from .viewsets import AdminOverviewView, OrganizationDashboardView

app_name = 'dashboard-api'

urlpatterns = [
    # Admin console overview
    path('admin/', AdminOverviewView.as_view(), name='admin-overview'),

    # Current organization overview
    path('organization/', OrganizationDashboardView.as_view(), name='organization-overview'),
]
