"""
Celery Beat Schedule Configuration for Core314

Periodic task schedules, grouped by the subsystem that owns them.

Schedule Format:
- crontab(minute, hour, day_of_week, day_of_month, month_of_year)
- timedelta for interval-based schedules
"""

from celery.schedules import crontab
from datetime import timedelta


CELERY_BEAT_SCHEDULE = {
    # ==========================================================================
    # INTEGRATION POLLING
    # ==========================================================================

    'poll-due-integrations': {
        'task': 'integrations.tasks.poll_due_integrations',
        'schedule': timedelta(minutes=15),
        'options': {'queue': 'integrations'},
    },

    # ==========================================================================
    # FUSION ENGINES
    # ==========================================================================

    'scan-for-anomalies': {
        'task': 'fusion.tasks.scan_for_anomalies',
        'schedule': timedelta(minutes=10),
        'options': {'queue': 'fusion'},
    },

    'recalculate-fusion-scores-hourly': {
        'task': 'fusion.tasks.recalculate_fusion_scores',
        'schedule': crontab(minute=5),
        'options': {'queue': 'fusion'},
    },

    'adaptive-policy-engine-hourly': {
        'task': 'fusion.tasks.run_adaptive_policy_engine',
        'schedule': crontab(minute=20),
        'options': {'queue': 'fusion'},
    },

    'trust-scoring-engine': {
        'task': 'fusion.tasks.run_trust_scoring_engine',
        'schedule': crontab(minute=30, hour='*/6'),
        'options': {'queue': 'fusion'},
    },

    'governance-engine-daily': {
        'task': 'fusion.tasks.run_governance_engine',
        'schedule': crontab(hour=2, minute=0),
        'options': {'queue': 'fusion'},
    },

    'optimization-engine-daily': {
        'task': 'fusion.tasks.run_optimization_engine',
        'schedule': crontab(hour=3, minute=0),
        'options': {'queue': 'fusion'},
    },

    # ==========================================================================
    # BILLING & MEMBERSHIP MAINTENANCE
    # ==========================================================================

    'process-subscription-transitions-daily': {
        'task': 'billing.tasks.process_subscription_transitions',
        'schedule': crontab(hour=0, minute=30),
        'options': {'queue': 'billing'},
    },

    'expire-invitations-daily': {
        'task': 'organizations.tasks.expire_invitations',
        'schedule': crontab(hour=1, minute=0),
        'options': {'queue': 'default'},
    },
}
