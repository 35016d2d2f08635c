"""
Fusion Score engine.

For each integration:
1. sync_integration_metrics(): normalise the latest collected value of every
   weighted metric of the provider into [0, 1]
2. recalculate_fusion_score(): weighted average of the normalised values,
   scaled to 0-100, with a trend against the previous score

Scores fall back to the baseline (50) when no weighted metric is available.
"""

import logging
from typing import Any, Dict, List, Optional

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from ..models import FusionMetric, FusionMetricWeight, FusionScore

logger = logging.getLogger(__name__)

TREND_THRESHOLD = 5.0
TOP_INFLUENCERS = 5

# (provider, metric, weight, normalization_max)
DEFAULT_WEIGHTS = [
    ('salesforce', 'account_count', 0.15, 1000),
    ('salesforce', 'opportunity_count', 0.20, 500),
    ('salesforce', 'open_opportunities', 0.25, 200),
    ('salesforce', 'opportunity_value', 0.25, 1000000),
    ('salesforce', 'open_cases', 0.15, 100),
    ('slack', 'message_count', 0.30, 10000),
    ('slack', 'active_channels', 0.25, 100),
    ('slack', 'total_members', 0.20, 500),
    ('slack', 'active_members', 0.25, 100),
    ('google_calendar', 'event_count', 0.30, 500),
    ('google_calendar', 'upcoming_events', 0.35, 50),
    ('google_calendar', 'meeting_hours', 0.35, 40),
    ('zoom', 'meeting_count', 0.35, 100),
    ('zoom', 'total_participants', 0.30, 500),
    ('zoom', 'meeting_minutes', 0.35, 2000),
    ('quickbooks', 'total_revenue', 0.30, 1000000),
    ('quickbooks', 'invoice_count', 0.25, 500),
    ('quickbooks', 'unpaid_invoices', 0.25, 50),
    ('quickbooks', 'customer_count', 0.20, 500),
    ('xero', 'total_revenue', 0.30, 1000000),
    ('xero', 'invoice_count', 0.25, 500),
    ('xero', 'overdue_invoices', 0.25, 50),
    ('xero', 'bank_balance', 0.20, 100000),
    ('microsoft_teams', 'message_count', 0.30, 10000),
    ('microsoft_teams', 'channel_count', 0.25, 100),
    ('microsoft_teams', 'team_count', 0.20, 50),
    ('microsoft_teams', 'active_users', 0.25, 100),
    ('trello', 'board_count', 0.20, 50),
    ('trello', 'card_count', 0.30, 1000),
    ('trello', 'open_cards', 0.30, 500),
    ('trello', 'closed_cards', 0.20, 500),
    ('intercom', 'conversation_count', 0.30, 1000),
    ('intercom', 'open_conversations', 0.25, 200),
    ('intercom', 'closed_conversations', 0.30, 1000),
    ('intercom', 'snoozed_conversations', 0.15, 100),
]


def baseline_score() -> float:
    return float(getattr(settings, 'CORE314_FUSION_BASELINE_SCORE', 50.0))


def seed_default_weights(overwrite: bool = False) -> Dict[str, int]:
    """Create missing default weights; with overwrite, reset existing ones."""
    created = updated = 0
    for provider, metric_name, weight, normalization_max in DEFAULT_WEIGHTS:
        values = {
            'weight': weight,
            'normalization_max': normalization_max,
            'description': f"Default weight for {provider} {metric_name.replace('_', ' ')}",
        }
        if overwrite:
            _, was_created = FusionMetricWeight.objects.update_or_create(
                provider=provider, metric_name=metric_name, defaults=values
            )
        else:
            _, was_created = FusionMetricWeight.objects.get_or_create(
                provider=provider, metric_name=metric_name, defaults=values
            )
        if was_created:
            created += 1
        elif overwrite:
            updated += 1
    return {'created': created, 'updated': updated}


def normalize(raw_value: float, normalization_max: float) -> Optional[float]:
    """Scale into [0, 1]; None when the ceiling is not positive."""
    if normalization_max <= 0:
        return None
    return min(max(raw_value, 0.0) / normalization_max, 1.0)


def sync_integration_metrics(integration, now=None) -> int:
    """
    Upsert a FusionMetric for every weighted metric of the integration's
    provider that has a collected value. Returns the number synced.
    """
    now = now or timezone.now()
    synced = 0

    for weight in FusionMetricWeight.objects.filter(provider=integration.provider):
        latest = (
            integration.metrics
            .filter(metric_name=weight.metric_name)
            .order_by('-calculated_at')
            .first()
        )
        if latest is None:
            continue

        normalized = normalize(latest.value, weight.normalization_max)
        if normalized is None:
            logger.warning(
                f"Skipping {weight.provider}.{weight.metric_name}: normalization max is {weight.normalization_max}"
            )
            continue

        FusionMetric.objects.update_or_create(
            integration=integration,
            metric_name=weight.metric_name,
            defaults={
                'raw_value': latest.value,
                'normalized_value': normalized,
                'weight': weight.weight,
                'data_source': {
                    'integration_metric_id': latest.pk,
                    'calculated_at': latest.calculated_at.isoformat(),
                    'normalization_max': weight.normalization_max,
                },
                'synced_at': now,
            },
        )
        synced += 1

    return synced


def calculate_score(metrics) -> Dict[str, Any]:
    """
    Weighted average of normalised values, scaled to 0-100.

    `contribution` is the number of score points a metric accounts for.
    """
    metrics = list(metrics)
    total_weight = sum(metric.weight for metric in metrics)
    if total_weight <= 0:
        return {'score': baseline_score(), 'breakdown': {}}

    weighted = sum(metric.normalized_value * metric.weight for metric in metrics)
    breakdown = {
        metric.metric_name: {
            'normalized': round(metric.normalized_value, 4),
            'weight': metric.weight,
            'contribution': round(metric.normalized_value * metric.weight / total_weight * 100, 4),
        }
        for metric in metrics
    }
    return {'score': weighted / total_weight * 100, 'breakdown': breakdown}


def determine_trend(previous: Optional[float], current: float) -> str:
    if previous is None:
        return FusionScore.Trend.STABLE
    delta = current - previous
    if delta > TREND_THRESHOLD:
        return FusionScore.Trend.UP
    if delta < -TREND_THRESHOLD:
        return FusionScore.Trend.DOWN
    return FusionScore.Trend.STABLE


def recalculate_fusion_score(integration, now=None) -> FusionScore:
    now = now or timezone.now()
    result = calculate_score(integration.fusion_metrics.all())

    previous = FusionScore.objects.filter(integration=integration).values_list('score', flat=True).first()
    trend = determine_trend(previous, result['score'])

    fusion_score, _ = FusionScore.objects.update_or_create(
        integration=integration,
        defaults={
            'organization': integration.organization,
            'score': round(result['score'], 2),
            'breakdown': result['breakdown'],
            'trend': trend,
            'baseline_score': baseline_score(),
            'calculated_at': now,
        },
    )
    logger.info(
        f"Fusion score for integration {integration.pk}: {fusion_score.score:.2f} ({trend})"
    )
    return fusion_score


@transaction.atomic
def sync_and_calculate(integration, now=None) -> Dict[str, Any]:
    now = now or timezone.now()
    synced = sync_integration_metrics(integration, now=now)
    fusion_score = recalculate_fusion_score(integration, now=now)
    return {
        'fusion_score': fusion_score.score,
        'trend': fusion_score.trend,
        'metrics_synced': synced,
        'calculated_at': fusion_score.calculated_at.isoformat(),
    }


def organization_fusion_score(organization) -> Dict[str, Any]:
    """
    Mean Fusion Score across the organization's connected integrations,
    with per-integration scores and the metrics contributing most.
    """
    from integrations.models import Integration

    scores = list(
        FusionScore.objects
        .filter(organization=organization)
        .exclude(integration__status=Integration.Status.DISCONNECTED)
        .select_related('integration')
        .order_by('-score')
    )

    integrations: List[Dict[str, Any]] = []
    influencers: List[Dict[str, Any]] = []
    for fusion_score in scores:
        integration = fusion_score.integration
        integrations.append({
            'integration': str(integration.uuid),
            'provider': integration.provider,
            'name': integration.display_name,
            'score': fusion_score.score,
            'trend': fusion_score.trend,
            'calculated_at': fusion_score.calculated_at,
        })
        for metric_name, detail in (fusion_score.breakdown or {}).items():
            influencers.append({
                'provider': integration.provider,
                'metric': metric_name,
                'contribution': detail.get('contribution', 0.0),
                'normalized': detail.get('normalized'),
                'weight': detail.get('weight'),
            })

    influencers.sort(key=lambda item: item['contribution'], reverse=True)
    average = round(sum(s.score for s in scores) / len(scores), 2) if scores else None

    return {
        'fusion_score': average,
        'integration_count': len(scores),
        'integrations': integrations,
        'top_influencers': influencers[:TOP_INFLUENCERS],
    }
