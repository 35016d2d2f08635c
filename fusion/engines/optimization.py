"""
Optimization engine.

Reads a week of workflow stability samples and alerts, recommends a
parameter adjustment when the trends call for one, and applies
recommendations on request.

Efficiency index:
    EI = 100 * stability - 100 * variance - 10 * alert_density   (0-100)
"""

import logging
from datetime import timedelta
from typing import Any, Dict, Optional

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from api.exceptions import ResourceStateError

from ..audit import log_audit_event
from ..models import FusionAlert, OptimizationEvent, OptimizationParameters, WorkflowMetric

logger = logging.getLogger(__name__)

ENGINE_NAME = 'optimization-engine'

MAX_SAMPLES = 1000
HOURS_PER_WEEK = 168

DEFAULT_STABILITY = 0.85
DEFAULT_VARIANCE = 0.05

PRE_TUNE_DELTA = {'confidence_weight': 0.03, 'feedback_weight': -0.03}
STABILIZE_DELTA = {'feedback_weight': 0.02}

Action = OptimizationEvent.Action


def efficiency_index(stability: float, variance: float, alert_density: float) -> float:
    value = stability * 100 - variance * 100 - alert_density * 10
    return max(0.0, min(100.0, value))


def get_parameters(organization) -> OptimizationParameters:
    parameters, _ = OptimizationParameters.objects.get_or_create(
        organization=organization,
        defaults=dict(OptimizationParameters.DEFAULTS),
    )
    return parameters


class OptimizationEngine:

    def __init__(self, organization):
        self.organization = organization

    @staticmethod
    def window_days() -> int:
        return getattr(settings, 'CORE314_OPTIMIZATION_WINDOW_DAYS', 7)

    def compute_trends(self, now=None) -> Dict[str, Any]:
        now = now or timezone.now()
        since = now - timedelta(days=self.window_days())

        samples = list(
            WorkflowMetric.objects
            .filter(organization=self.organization, created_at__gte=since)
            .order_by('-created_at')
            .values_list('stability_index', 'variance')[:MAX_SAMPLES]
        )
        stabilities = [stability for stability, _ in samples]
        variances = [variance for _, variance in samples]

        alerts = FusionAlert.objects.filter(organization=self.organization, created_at__gte=since)
        alert_count = alerts.count()
        high_severity = alerts.filter(
            severity__in=[FusionAlert.Severity.HIGH, FusionAlert.Severity.CRITICAL]
        ).count()

        return {
            'rolling_stability_avg': sum(stabilities) / len(stabilities) if stabilities else DEFAULT_STABILITY,
            'rolling_variance_avg': sum(variances) / len(variances) if variances else DEFAULT_VARIANCE,
            'oscillation': max(stabilities) - min(stabilities) if stabilities else 0.0,
            'alert_count': alert_count,
            'alert_density': alert_count / HOURS_PER_WEEK,
            'high_severity_alerts': high_severity,
            'sample_count': len(samples),
        }

    @staticmethod
    def determine_action(trends: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Pick the first matching adjustment, or None when trends are healthy."""
        variance = trends['rolling_variance_avg']
        stability = trends['rolling_stability_avg']
        density = trends['alert_density']

        if variance > 0.10 and density > 3:
            action, source, delta = Action.PRE_TUNE, 'variance_trend', PRE_TUNE_DELTA
        elif stability < 0.85 and density < 3:
            action, source, delta = Action.STABILIZE, 'stability_decline', STABILIZE_DELTA
        elif trends['oscillation'] > 0.15:
            action, source, delta = Action.RECALIBRATE, 'oscillation_detected', OptimizationParameters.DEFAULTS
        elif trends['high_severity_alerts'] > 5:
            action, source, delta = Action.PRE_TUNE, 'high_severity_alerts', PRE_TUNE_DELTA
        else:
            return None

        return {
            'optimization_action': action,
            'source_event_type': source,
            'parameter_delta': dict(delta),
            'predicted_variance': variance,
            'predicted_stability': stability,
            'efficiency_index': round(efficiency_index(stability, variance, density), 2),
        }

    @transaction.atomic
    def run(self, now=None, triggered_by: str = ENGINE_NAME, user=None) -> Dict[str, Any]:
        now = now or timezone.now()
        trends = self.compute_trends(now)
        recommendation = self.determine_action(trends)

        event = None
        if recommendation is not None:
            event = OptimizationEvent.objects.create(
                organization=self.organization,
                triggered_by=triggered_by,
                created_at=now,
                **recommendation,
            )
            log_audit_event(
                action_type='optimization_recommended',
                decision_summary=(
                    f"Optimization engine recommends {event.optimization_action} "
                    f"({event.source_event_type}), efficiency index {event.efficiency_index:.1f}"
                ),
                organization=self.organization,
                user=user,
                triggered_by=triggered_by,
                system_context={'event': str(event.uuid), 'trends': trends},
                event_payload={
                    'parameter_delta': event.parameter_delta,
                    'predicted_variance': event.predicted_variance,
                    'predicted_stability': event.predicted_stability,
                },
                stability_score=event.predicted_stability,
            )
            logger.info(f"Optimization {event.optimization_action} recommended for {self.organization.slug}")

        return {
            'trends': trends,
            'optimization_recommended': event is not None,
            'optimization': event,
        }

    @staticmethod
    @transaction.atomic
    def apply(event: OptimizationEvent, user=None, now=None) -> OptimizationParameters:
        """
        Apply a recommendation to the organization's parameters.

        Recalibration sets absolute values; other actions add their deltas.
        Results are clamped to [0, 1].
        """
        event = OptimizationEvent.objects.select_for_update().get(pk=event.pk)
        if event.applied:
            raise ResourceStateError(current_state='applied', detail='Optimization has already been applied.')

        parameters = get_parameters(event.organization)
        before = parameters.as_dict()
        for name, value in event.parameter_delta.items():
            if name not in OptimizationParameters.DEFAULTS:
                logger.warning(f"Ignoring unknown optimization parameter {name}")
                continue
            if event.optimization_action == Action.RECALIBRATE:
                new_value = value
            else:
                new_value = getattr(parameters, name) + value
            setattr(parameters, name, round(max(0.0, min(1.0, new_value)), 4))
        parameters.save()

        event.applied = True
        event.applied_at = now or timezone.now()
        event.applied_by = user if user is not None and user.is_authenticated else None
        event.save(update_fields=['applied', 'applied_at', 'applied_by'])

        log_audit_event(
            action_type='optimization_applied',
            decision_summary=f"Optimization {event.optimization_action} applied",
            organization=event.organization,
            user=user,
            triggered_by=ENGINE_NAME,
            system_context={'event': str(event.uuid), 'before': before, 'after': parameters.as_dict()},
        )
        return parameters
