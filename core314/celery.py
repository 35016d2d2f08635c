"""
Celery configuration for Core314 project.

This module configures Celery for async task processing with:
- Auto-discovery of tasks from all registered Django apps
- Task routing to the integrations, fusion and billing queues
- Retry policies
- Beat schedule for the scoring engines
"""

import os
from celery import Celery
from kombu import Exchange, Queue

# Set the default Django settings module for the 'celery' program.
os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'core314.settings')

app = Celery('core314')

# - namespace='CELERY' means all celery-related configuration keys
#   should have a `CELERY_` prefix.
app.config_from_object('django.conf:settings', namespace='CELERY')

# Load task modules from all registered Django apps.
app.autodiscover_tasks()


# ==================== QUEUE CONFIGURATION ====================

default_exchange = Exchange('default', type='direct')
integrations_exchange = Exchange('integrations', type='direct')
fusion_exchange = Exchange('fusion', type='direct')
billing_exchange = Exchange('billing', type='direct')

app.conf.task_queues = (
    Queue('default', default_exchange, routing_key='default'),
    Queue('integrations', integrations_exchange, routing_key='integrations'),
    Queue('fusion', fusion_exchange, routing_key='fusion'),
    Queue('billing', billing_exchange, routing_key='billing'),
)

app.conf.task_default_queue = 'default'
app.conf.task_default_exchange = 'default'
app.conf.task_default_routing_key = 'default'


# ==================== TASK ROUTING ====================

app.conf.task_routes = {
    'integrations.tasks.*': {'queue': 'integrations', 'routing_key': 'integrations'},
    'fusion.tasks.*': {'queue': 'fusion', 'routing_key': 'fusion'},
    'billing.tasks.*': {'queue': 'billing', 'routing_key': 'billing'},
    'organizations.tasks.*': {'queue': 'default', 'routing_key': 'default'},
}


# ==================== RATE LIMITING ====================

app.conf.task_annotations = {
    # Provider APIs throttle aggressively
    'integrations.tasks.poll_integration': {'rate_limit': '60/m'},
}


# ==================== RETRY CONFIGURATION ====================

app.conf.task_default_retry_delay = 60  # 1 minute
app.conf.task_max_retries = 3


# ==================== SERIALIZATION ====================

app.conf.task_serializer = 'json'
app.conf.result_serializer = 'json'
app.conf.accept_content = ['json']
app.conf.timezone = 'UTC'
app.conf.enable_utc = True


# ==================== RESULT BACKEND ====================

# Results will be stored for 24 hours
app.conf.result_expires = 86400


# ==================== TASK EXECUTION ====================

app.conf.task_time_limit = 1800  # 30 minutes
app.conf.task_soft_time_limit = 1700
app.conf.task_acks_late = True
app.conf.task_reject_on_worker_lost = True
app.conf.worker_max_tasks_per_child = 1000
app.conf.worker_prefetch_multiplier = 4


# ==================== BEAT SCHEDULE ====================

from core314.celery_beat_schedule import CELERY_BEAT_SCHEDULE  # noqa: E402
app.conf.beat_schedule = CELERY_BEAT_SCHEDULE


@app.task(bind=True)
def health_check(self):
    """Simple health check task to verify Celery is running."""
    from django.utils import timezone

    return {
        'status': 'healthy',
        'timestamp': timezone.now().isoformat(),
        'task_id': self.request.id,
        'worker_hostname': self.request.hostname,
    }
