"""
Integrations Celery Tasks

Background tasks for:
- Polling a single integration and refreshing its Fusion Score
- Dispatching every integration that is due for polling
"""

import logging

from celery import shared_task
from django.utils import timezone

logger = logging.getLogger(__name__)


@shared_task(bind=True, name='integrations.tasks.poll_integration', max_retries=3, default_retry_delay=60)
def poll_integration(self, integration_id: int):
    """
    Poll one integration, then recalculate its Fusion Score.

    Args:
        integration_id: primary key of the Integration to poll
    """
    from .models import Integration
    from .providers import RateLimitError
    from .services import IntegrationService

    try:
        integration = Integration.objects.select_related('organization', 'credentials').get(pk=integration_id)
    except Integration.DoesNotExist:
        logger.error(f"Integration not found: {integration_id}")
        return {'status': 'not_found', 'integration_id': integration_id}

    if integration.status != Integration.Status.ACTIVE:
        logger.info(f"Skipping poll of integration {integration_id} with status {integration.status}")
        return {'status': 'skipped', 'integration_id': integration_id}

    try:
        result = IntegrationService.poll(integration)
    except RateLimitError as exc:
        raise self.retry(exc=exc, countdown=exc.retry_after or 60)

    fusion = None
    if result.success:
        from fusion.tasks import sync_integration_fusion_score
        fusion = sync_integration_fusion_score.delay(integration.pk).id

    return {
        'status': 'success' if result.success else 'failed',
        'integration_id': integration_id,
        'integration_status': result.status,
        'metrics_collected': len(result.metrics),
        'error': result.error_message,
        'fusion_task_id': fusion,
        'polled_at': timezone.now().isoformat(),
    }


@shared_task(name='integrations.tasks.poll_due_integrations')
def poll_due_integrations():
    """
    Dispatch a poll for every active integration whose next_poll_at has passed.
    """
    from .services import IntegrationService

    integration_ids = list(IntegrationService.due_for_poll().values_list('pk', flat=True))
    for integration_id in integration_ids:
        poll_integration.delay(integration_id)

    if integration_ids:
        logger.info(f"Dispatched {len(integration_ids)} integration polls")

    return {
        'status': 'success',
        'dispatched': len(integration_ids),
        'dispatched_at': timezone.now().isoformat(),
    }
