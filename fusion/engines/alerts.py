"""
Alert engine.

Turns flagged audit entries into FusionAlert rows. Severity follows the
payload measurements; several distinct anomalous action types within
fifteen minutes escalate every new alert to critical.
"""

import logging
from datetime import timedelta
from typing import Any, Dict

from django.db import transaction
from django.utils import timezone

from api.exceptions import ResourceStateError

from ..models import AuditLogEntry, FusionAlert

logger = logging.getLogger(__name__)

CLUSTER_WINDOW = timedelta(minutes=15)
CLUSTER_MIN_TYPES = 3

Severity = FusionAlert.Severity

# (severity, stability_variance, instability_probability, reinforcement_rate)
SEVERITY_THRESHOLDS = (
    (Severity.CRITICAL, 0.30, 0.50, 150),
    (Severity.HIGH, 0.25, 0.40, 120),
    (Severity.MODERATE, 0.20, 0.30, None),
)


def _exceeds(value, threshold) -> bool:
    if threshold is None or isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return value > threshold


def severity_for(payload: Dict[str, Any]) -> str:
    variance = payload.get('stability_variance')
    probability = payload.get('instability_probability')
    rate = payload.get('reinforcement_rate')
    for severity, max_variance, max_probability, max_rate in SEVERITY_THRESHOLDS:
        if _exceeds(variance, max_variance) or _exceeds(probability, max_probability) or _exceeds(rate, max_rate):
            return severity
    return Severity.LOW


def alert_message(entry: AuditLogEntry, severity: str) -> str:
    payload = entry.event_payload or {}
    reason = entry.anomaly_reason or 'Anomaly'
    parts = [f"{reason} detected in {entry.triggered_by or entry.action_type}."]

    variance = payload.get('stability_variance')
    if isinstance(variance, (int, float)):
        parts.append(f"Stability variance: {variance * 100:.1f}%.")
    probability = payload.get('instability_probability')
    if isinstance(probability, (int, float)):
        parts.append(f"Instability probability: {probability * 100:.1f}%.")
    rate = payload.get('reinforcement_rate')
    if isinstance(rate, (int, float)):
        parts.append(f"Reinforcement rate: {rate}/hour.")

    if severity == Severity.CRITICAL:
        parts.append('IMMEDIATE ATTENTION REQUIRED.')
    elif severity == Severity.HIGH:
        parts.append('Review recommended.')
    return ' '.join(parts)


class AlertEngine:

    def __init__(self, organization):
        self.organization = organization

    def is_clustered(self, now) -> bool:
        action_types = (
            AuditLogEntry.objects
            .filter(
                organization=self.organization,
                anomaly_detected=True,
                created_at__gte=now - CLUSTER_WINDOW,
            )
            .values_list('action_type', flat=True)
            .distinct()
        )
        return len(set(action_types)) >= CLUSTER_MIN_TYPES

    @transaction.atomic
    def generate(self, now=None) -> Dict[str, Any]:
        now = now or timezone.now()
        pending = AuditLogEntry.objects.filter(
            organization=self.organization,
            anomaly_detected=True,
            alert__isnull=True,
        ).order_by('created_at')

        clustered = self.is_clustered(now)
        created = []
        for entry in pending:
            severity = Severity.CRITICAL if clustered else severity_for(entry.event_payload or {})
            created.append(FusionAlert.objects.create(
                organization=self.organization,
                audit_entry=entry,
                event_type=entry.action_type,
                severity=severity,
                message=alert_message(entry, severity),
                metadata={
                    'anomaly_reason': entry.anomaly_reason,
                    'clustered': clustered,
                    'stability_score': entry.stability_score,
                    'reinforcement_delta': entry.reinforcement_delta,
                },
                created_at=now,
            ))

        if created:
            logger.warning(f"Generated {len(created)} alerts for {self.organization.slug}")

        by_severity = {}
        for alert in created:
            by_severity[alert.severity] = by_severity.get(alert.severity, 0) + 1
        return {
            'alerts_generated': len(created),
            'clustered': clustered,
            'by_severity': by_severity,
        }

    @staticmethod
    def acknowledge(alert: FusionAlert, user, now=None) -> FusionAlert:
        if alert.acknowledged:
            raise ResourceStateError(current_state='acknowledged', detail='Alert has already been acknowledged.')
        alert.acknowledged = True
        alert.acknowledged_by = user
        alert.acknowledged_at = now or timezone.now()
        alert.save(update_fields=['acknowledged', 'acknowledged_by', 'acknowledged_at'])
        return alert
