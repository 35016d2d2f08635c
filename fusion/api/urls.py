"""
Fusion API URLs
"""

from rest_framework.routers import DefaultRouter

from .viewsets import (
    AdaptivePolicyViewSet,
    AuditLogViewSet,
    FusionAlertViewSet,
    FusionMetricWeightViewSet,
    FusionScoreViewSet,
    GovernanceAuditViewSet,
    OptimizationEventViewSet,
    OptimizationParametersViewSet,
    TrustGraphViewSet,
    UserRiskScoreViewSet,
)

app_name = 'fusion-api'

router = DefaultRouter()
router.register(r'scores', FusionScoreViewSet, basename='score')
router.register(r'trust', TrustGraphViewSet, basename='trust')
router.register(r'policies', AdaptivePolicyViewSet, basename='policy')
router.register(r'risk-scores', UserRiskScoreViewSet, basename='risk-score')
router.register(r'governance', GovernanceAuditViewSet, basename='governance')
router.register(r'optimization', OptimizationEventViewSet, basename='optimization')
router.register(r'parameters', OptimizationParametersViewSet, basename='parameters')
router.register(r'alerts', FusionAlertViewSet, basename='alert')
router.register(r'audit-log', AuditLogViewSet, basename='audit-log')
router.register(r'weights', FusionMetricWeightViewSet, basename='weight')

urlpatterns = router.urls
