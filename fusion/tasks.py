"""
Fusion Celery Tasks

Background tasks for:
- Fusion Score refresh (single integration and hourly sweep)
- Anomaly scan and alert generation
- Adaptive policy, trust scoring, governance and optimization engines

Engine sweeps run once per organization whose plan enables intelligence;
a failure in one organization is logged and reported without stopping
the others.
"""

import logging
from typing import Callable, Dict

from celery import shared_task
from django.utils import timezone

from billing.entitlements import intelligence_organizations
from organizations.context import organization_context

logger = logging.getLogger(__name__)


def run_for_organizations(engine_name: str, run: Callable) -> Dict:
    """Call run(organization) for every entitled organization."""
    results = {}
    failures = {}

    for organization in intelligence_organizations():
        try:
            with organization_context(organization):
                results[organization.slug] = run(organization)
        except Exception as e:
            logger.exception(f"{engine_name} failed for organization {organization.slug}: {e}")
            failures[organization.slug] = str(e)

    logger.info(
        f"{engine_name} finished: {len(results)} organizations processed, {len(failures)} failed"
    )
    return {
        'status': 'success' if not failures else 'partial',
        'engine': engine_name,
        'organizations_processed': len(results),
        'results': results,
        'failures': failures,
        'completed_at': timezone.now().isoformat(),
    }


@shared_task(bind=True, name='fusion.tasks.sync_integration_fusion_score', max_retries=3)
def sync_integration_fusion_score(self, integration_id: int):
    """
    Refresh the Fusion Score of one integration after a successful poll.
    """
    from integrations.models import Integration

    from .engines.scoring import sync_and_calculate

    try:
        integration = Integration.objects.select_related('organization').get(pk=integration_id)
    except Integration.DoesNotExist:
        logger.error(f"Integration not found: {integration_id}")
        return {'status': 'not_found', 'integration_id': integration_id}

    try:
        with organization_context(integration.organization):
            result = sync_and_calculate(integration)
    except Exception as exc:
        logger.error(f"Error refreshing fusion score for integration {integration_id}: {exc}")
        raise self.retry(exc=exc, countdown=60 * (2 ** self.request.retries))

    return {'status': 'success', 'integration_id': integration_id, **result}


@shared_task(name='fusion.tasks.recalculate_fusion_scores')
def recalculate_fusion_scores():
    """
    Hourly refresh of every active integration's Fusion Score.
    """
    from integrations.models import Integration

    from .engines.scoring import sync_and_calculate

    def run(organization):
        integrations = Integration.objects.filter(
            organization=organization,
            status=Integration.Status.ACTIVE,
        )
        scored = [sync_and_calculate(integration) for integration in integrations]
        return {'integrations_scored': len(scored)}

    return run_for_organizations('fusion-score', run)


@shared_task(name='fusion.tasks.scan_for_anomalies')
def scan_for_anomalies():
    """
    Flag anomalous audit entries, then raise alerts for them.
    """
    from .engines.alerts import AlertEngine
    from .engines.anomaly import AnomalyDetector

    def run(organization):
        scan = AnomalyDetector(organization).scan()
        alerts = AlertEngine(organization).generate()
        return {
            'anomalies_detected': scan['anomalies_detected'],
            'alerts_generated': alerts['alerts_generated'],
        }

    return run_for_organizations('anomaly-detector', run)


@shared_task(name='fusion.tasks.run_adaptive_policy_engine')
def run_adaptive_policy_engine():
    from .engines.policy import AdaptivePolicyEngine

    return run_for_organizations(
        'adaptive-policy-engine',
        lambda organization: AdaptivePolicyEngine(organization).run(),
    )


@shared_task(name='fusion.tasks.run_trust_scoring_engine')
def run_trust_scoring_engine():
    from .engines.trust import TrustScoringEngine

    return run_for_organizations(
        'trust-graph-engine',
        lambda organization: TrustScoringEngine(organization).run(),
    )


@shared_task(name='fusion.tasks.run_governance_engine')
def run_governance_engine():
    from .engines.governance import GovernanceEngine

    return run_for_organizations(
        'governance-engine',
        lambda organization: GovernanceEngine(organization).run(),
    )


@shared_task(name='fusion.tasks.run_optimization_engine')
def run_optimization_engine():
    """
    Daily optimization pass; recommendations are stored unapplied.
    """
    from .engines.optimization import OptimizationEngine

    def run(organization):
        result = OptimizationEngine(organization).run()
        event = result['optimization']
        return {
            'optimization_recommended': result['optimization_recommended'],
            'optimization_action': event.optimization_action if event else None,
            'efficiency_index': event.efficiency_index if event else None,
        }

    return run_for_organizations('optimization-engine', run)
