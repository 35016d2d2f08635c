"""
Organizations Celery Tasks
"""

import logging

from celery import shared_task
from django.utils import timezone

from .services import OrganizationService

logger = logging.getLogger(__name__)


@shared_task(name='organizations.tasks.expire_invitations')
def expire_invitations():
    """
    Daily task marking pending invitations past their expiry as expired.
    """
    count = OrganizationService.expire_invitations()
    return {
        'status': 'success',
        'expired': count,
        'processed_at': timezone.now().isoformat(),
    }
