"""
API URL Configuration for Core314

This module consolidates all API endpoints:
- /api/v1/auth/ - JWT authentication
- /api/v1/accounts/ - Current user profile and admin user management
- /api/v1/organizations/ - Organizations, members and invitations
- /api/v1/billing/ - Plans, subscription and admin billing overview
- /api/v1/integrations/ - Connectors, polling and admin integration tracking
- /api/v1/fusion/ - Fusion score, trust graph, policies, governance, optimization
- /api/v1/dashboard/ - Admin console and organization dashboards
- /api/schema/ and /api/docs/ - OpenAPI schema and Swagger UI
"""

from django.urls import path, include
from drf_spectacular.views import SpectacularAPIView, SpectacularSwaggerView
from rest_framework_simplejwt.views import (
    TokenObtainPairView,
    TokenRefreshView,
    TokenVerifyView,
)


v1_patterns = [
    # ==================== Authentication ====================
    path('auth/token/', TokenObtainPairView.as_view(), name='token_obtain_pair'),
    path('auth/token/refresh/', TokenRefreshView.as_view(), name='token_refresh'),
    path('auth/token/verify/', TokenVerifyView.as_view(), name='token_verify'),

    # ==================== Apps ====================
    path('accounts/', include('accounts.api.urls')),
    path('organizations/', include('organizations.api.urls')),
    path('billing/', include('billing.api.urls')),
    path('integrations/', include('integrations.api.urls')),
    path('fusion/', include('fusion.api.urls')),
    path('dashboard/', include('dashboard.api.urls')),
]

urlpatterns = [
    path('v1/', include(v1_patterns)),

    # ==================== Schema & Docs ====================
    path('schema/', SpectacularAPIView.as_view(), name='schema'),
    path('docs/', SpectacularSwaggerView.as_view(url_name='schema'), name='swagger-ui'),
]
