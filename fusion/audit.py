"""
Fusion Audit - Decision log writer.

Every engine decision and administrative action is recorded through
log_audit_event(). A failed audit write is logged and never breaks the
action that triggered it.
"""

import logging
from typing import Optional

from django.db import DatabaseError, transaction

from .models import AuditLogEntry

logger = logging.getLogger(__name__)

# Action types written by the engines themselves; telemetry readers skip them.
ENGINE_ACTION_TYPES = (
    'trust_update',
    'policy_applied',
    'governance_review',
    'optimization_recommended',
    'optimization_applied',
)


def _user_role(user) -> str:
    if user is None:
        return ''
    return getattr(user, 'role', '') or ''


def log_audit_event(
    action_type: str,
    decision_summary: str,
    organization=None,
    user=None,
    triggered_by: str = '',
    confidence_level: int = 100,
    decision_impact: str = '',
    system_context: Optional[dict] = None,
    event_payload: Optional[dict] = None,
    stability_score: Optional[float] = None,
    reinforcement_delta: float = 0.0,
) -> Optional[AuditLogEntry]:
    """
    Write one audit row.

    Returns the entry, or None when the write failed.
    """
    if user is not None and not getattr(user, 'is_authenticated', False):
        user = None

    try:
        with transaction.atomic():
            return AuditLogEntry.objects.create(
                organization=organization,
                user=user,
                user_role=_user_role(user),
                action_type=action_type,
                decision_summary=decision_summary,
                system_context=system_context or {},
                triggered_by=triggered_by,
                confidence_level=max(0, min(100, int(confidence_level))),
                decision_impact=decision_impact,
                event_payload=event_payload or {},
                stability_score=stability_score,
                reinforcement_delta=reinforcement_delta,
            )
    except DatabaseError as e:
        logger.error(f"Failed to write audit event {action_type}: {e}")
        return None
