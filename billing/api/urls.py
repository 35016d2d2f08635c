"""
Billing API URLs
"""

from rest_framework.routers import DefaultRouter

from .viewsets import BillingOverviewViewSet, CurrentSubscriptionViewSet, PlanViewSet

app_name = 'billing-api'

router = DefaultRouter()
router.register(r'plans', PlanViewSet, basename='plan')
router.register(r'subscription', CurrentSubscriptionViewSet, basename='subscription')
router.register(r'overview', BillingOverviewViewSet, basename='overview')

urlpatterns = router.urls
