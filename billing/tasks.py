"""
Billing Celery Tasks

Scheduled subscription state sweep.
"""

import logging

from celery import shared_task
from django.utils import timezone

from .services import BillingService

logger = logging.getLogger(__name__)


@shared_task(bind=True, name='billing.tasks.process_subscription_transitions', max_retries=3)
def process_subscription_transitions(self):
    """
    Daily sweep moving expired trials to past due and ending subscriptions
    scheduled for cancellation.
    """
    try:
        result = BillingService.process_state_transitions()
        return {
            'status': 'success',
            **result,
            'processed_at': timezone.now().isoformat(),
        }
    except Exception as exc:
        logger.error(f"Error processing subscription transitions: {exc}")
        raise self.retry(exc=exc, countdown=60 * (2 ** self.request.retries))
