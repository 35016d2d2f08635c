"""
Fusion intelligence engines.

Each engine works on one organization at a time; Celery tasks in
fusion.tasks fan them out over every organization entitled to intelligence.
"""

from .alerts import AlertEngine
from .anomaly import AnomalyDetector
from .governance import GovernanceEngine
from .optimization import OptimizationEngine
from .policy import AdaptivePolicyEngine, is_user_restricted
from .scoring import organization_fusion_score, sync_and_calculate
from .trust import TrustScoringEngine

__all__ = [
    'AdaptivePolicyEngine',
    'AlertEngine',
    'AnomalyDetector',
    'GovernanceEngine',
    'OptimizationEngine',
    'TrustScoringEngine',
    'is_user_restricted',
    'organization_fusion_score',
    'sync_and_calculate',
]
