"""
Anomaly detector.

Scans the last CORE314_ANOMALY_WINDOW_MINUTES of unflagged audit entries
of an organization and flags:
- stability outliers (more than 2 sigma from the mean) when the stability
  variance is high
- every reinforcement event when they arrive faster than the hourly limit
- entries whose payload predicts instability or variance above threshold

The measured stability variance and reinforcement rate are copied into the
payload of flagged entries for the alert engine.
"""

import logging
import math
from collections import defaultdict
from datetime import timedelta
from typing import Any, Dict, List

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from ..models import AuditLogEntry

logger = logging.getLogger(__name__)

STABILITY_VARIANCE_THRESHOLD = 0.25
REINFORCEMENT_RATE_PER_HOUR = 120
INSTABILITY_PROBABILITY_THRESHOLD = 0.40

REINFORCEMENT_ACTION_TYPES = ('reinforcement_calibration', 'cffe_sync')


def _number(value):
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


def is_reinforcement_event(entry: AuditLogEntry) -> bool:
    return entry.action_type in REINFORCEMENT_ACTION_TYPES or bool(entry.reinforcement_delta)


class AnomalyDetector:

    def __init__(self, organization):
        self.organization = organization

    @staticmethod
    def window_minutes() -> int:
        return getattr(settings, 'CORE314_ANOMALY_WINDOW_MINUTES', 60)

    def recent_entries(self, now) -> List[AuditLogEntry]:
        return list(
            AuditLogEntry.objects.filter(
                organization=self.organization,
                anomaly_detected=False,
                created_at__gte=now - timedelta(minutes=self.window_minutes()),
            )
        )

    def detect(self, entries: List[AuditLogEntry]) -> Dict[int, Dict[str, Any]]:
        """Map entry pk to the reasons and measurements that flagged it."""
        findings = defaultdict(lambda: {'reasons': [], 'metrics': {}})

        scored = [entry for entry in entries if entry.stability_score is not None]
        if len(scored) > 1:
            scores = [entry.stability_score for entry in scored]
            mean = sum(scores) / len(scores)
            variance = sum((score - mean) ** 2 for score in scores) / len(scores)
            std_dev = math.sqrt(variance)
            if variance > STABILITY_VARIANCE_THRESHOLD:
                for entry in scored:
                    deviation = abs(entry.stability_score - mean)
                    if deviation > 2 * std_dev:
                        finding = findings[entry.pk]
                        finding['reasons'].append(
                            f"High stability variance ({variance:.4f}, deviation: {deviation:.2f})"
                        )
                        finding['metrics']['stability_variance'] = round(variance, 4)

        reinforcement = [entry for entry in entries if is_reinforcement_event(entry)]
        if len(reinforcement) > REINFORCEMENT_RATE_PER_HOUR:
            for entry in reinforcement:
                finding = findings[entry.pk]
                finding['reasons'].append(
                    f"Reinforcement spike ({len(reinforcement)} events/hour, "
                    f"threshold: {REINFORCEMENT_RATE_PER_HOUR})"
                )
                finding['metrics']['reinforcement_rate'] = len(reinforcement)

        for entry in entries:
            payload = entry.event_payload or {}
            probability = _number(payload.get('instability_probability'))
            if probability is not None and probability > INSTABILITY_PROBABILITY_THRESHOLD:
                findings[entry.pk]['reasons'].append(
                    f"Critical instability (probability: {probability:.4f}, "
                    f"threshold: {INSTABILITY_PROBABILITY_THRESHOLD})"
                )
            predicted = _number(payload.get('predicted_variance'))
            if predicted is not None and predicted > STABILITY_VARIANCE_THRESHOLD:
                findings[entry.pk]['reasons'].append(
                    f"High predicted variance ({predicted:.4f}, threshold: {STABILITY_VARIANCE_THRESHOLD})"
                )

        return findings

    @transaction.atomic
    def scan(self, now=None) -> Dict[str, Any]:
        now = now or timezone.now()
        entries = self.recent_entries(now)
        findings = self.detect(entries)

        by_pk = {entry.pk: entry for entry in entries}
        for pk, finding in findings.items():
            entry = by_pk[pk]
            entry.anomaly_detected = True
            entry.anomaly_reason = '; '.join(finding['reasons'])
            if finding['metrics']:
                entry.event_payload = {**(entry.event_payload or {}), **finding['metrics']}
            entry.save(update_fields=['anomaly_detected', 'anomaly_reason', 'event_payload'])

        if findings:
            logger.warning(f"Flagged {len(findings)} anomalous audit entries in {self.organization.slug}")

        return {
            'entries_scanned': len(entries),
            'anomalies_detected': len(findings),
            'scanned_at': now.isoformat(),
        }
