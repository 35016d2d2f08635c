"""
Integrations API URLs
"""

from rest_framework.routers import SimpleRouter

from .viewsets import IntegrationTrackingViewSet, IntegrationViewSet

app_name = 'integrations-api'

router = SimpleRouter()
router.register(r'tracking', IntegrationTrackingViewSet, basename='tracking')
router.register(r'', IntegrationViewSet, basename='integration')

urlpatterns = router.urls
