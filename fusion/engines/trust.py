"""
Trust Graph engine.

Scores every user with recent activity in an organization from four
signals taken over CORE314_TRUST_WINDOW_DAYS of audit telemetry:

    trust = 0.4 * consistency
          + 0.2 * (100 - min(100, 10 * adaptive_flags))
          + 0.2 * access_success_rate
          + 0.2 * organization_reputation
"""

import logging
import statistics
from collections import defaultdict
from datetime import timedelta
from typing import Any, Dict, List, Optional

from django.conf import settings
from django.db.models import Avg
from django.utils import timezone

from ..audit import ENGINE_ACTION_TYPES, log_audit_event
from ..models import AdaptivePolicy, AuditLogEntry, TrustGraphNode

logger = logging.getLogger(__name__)

ENGINE_NAME = 'trust-graph-engine'

DENIED_IMPACTS = ('unauthorized_access_attempt', 'FORBIDDEN')
DEFAULT_REPUTATION = 75.0
MAX_CONNECTIONS = 5
SIMILARITY_RANGE = 20.0


def clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))


def risk_level_for(trust_score: float) -> str:
    if trust_score >= 85:
        return TrustGraphNode.RiskLevel.LOW
    if trust_score >= 60:
        return TrustGraphNode.RiskLevel.MODERATE
    return TrustGraphNode.RiskLevel.HIGH


def decision_impact_for(trust_score: float) -> str:
    if trust_score < 50:
        return 'HIGH'
    if trust_score < 75:
        return 'MODERATE'
    return 'LOW'


def anomaly_recency(last_anomaly, now=None) -> str:
    """Bucket the time since a node's last anomaly for display."""
    if last_anomaly is None:
        return 'None'
    age = (now or timezone.now()) - last_anomaly
    if age <= timedelta(hours=24):
        return 'Recent'
    if age <= timedelta(days=7):
        return 'This Week'
    return 'Older'


def behavior_consistency(timestamps: List) -> float:
    """100 minus the sample standard deviation of activity times in hours."""
    if len(timestamps) < 2:
        return 100.0
    seconds = [ts.timestamp() for ts in timestamps]
    return clamp(100.0 - statistics.stdev(seconds) / 3600.0)


def access_success_rate(entries: List[AuditLogEntry]) -> float:
    if not entries:
        return 100.0
    allowed = sum(1 for entry in entries if entry.decision_impact not in DENIED_IMPACTS)
    return allowed / len(entries) * 100.0


def compute_trust_score(consistency: float, adaptive_flags: int, access: float, reputation: float) -> float:
    flag_component = 100.0 - min(100.0, 10.0 * adaptive_flags)
    return clamp(
        0.4 * consistency
        + 0.2 * flag_component
        + 0.2 * access
        + 0.2 * reputation
    )


class TrustScoringEngine:
    """Recomputes TrustGraphNode rows for one organization."""

    def __init__(self, organization):
        self.organization = organization

    @staticmethod
    def window_days() -> int:
        return getattr(settings, 'CORE314_TRUST_WINDOW_DAYS', 30)

    def telemetry(self, since):
        return (
            AuditLogEntry.objects
            .filter(organization=self.organization, user__isnull=False, created_at__gte=since)
            .exclude(action_type__in=ENGINE_ACTION_TYPES)
            .order_by('created_at')
        )

    def reputation(self, user) -> float:
        average = (
            TrustGraphNode.objects
            .filter(organization=self.organization)
            .exclude(user=user)
            .aggregate(avg=Avg('trust_score'))['avg']
        )
        return DEFAULT_REPUTATION if average is None else float(average)

    def connections(self, user, consistency: float) -> List[Dict[str, Any]]:
        peers = (
            TrustGraphNode.objects
            .filter(organization=self.organization)
            .exclude(user=user)
        )
        edges = [
            {'user_id': node.user_id, 'type': 'organization', 'weight': 0.8}
            for node in peers.order_by('-trust_score')[:MAX_CONNECTIONS]
        ]
        similar = peers.filter(
            behavior_consistency__gt=consistency - SIMILARITY_RANGE,
            behavior_consistency__lt=consistency + SIMILARITY_RANGE,
        ).order_by('-updated_at')[:MAX_CONNECTIONS]
        edges.extend(
            {'user_id': node.user_id, 'type': 'behavior_similarity', 'weight': 0.6}
            for node in similar
        )
        return edges

    def score_user(self, user, entries: List[AuditLogEntry], since, now) -> TrustGraphNode:
        consistency = behavior_consistency([entry.created_at for entry in entries])
        adaptive_flags = AdaptivePolicy.objects.filter(
            organization=self.organization,
            target_user=user,
            created_at__gte=since,
        ).count()
        access = access_success_rate(entries)
        reputation = self.reputation(user)
        trust_score = round(compute_trust_score(consistency, adaptive_flags, access, reputation), 2)

        anomalies = [entry.created_at for entry in entries if entry.anomaly_detected]
        defaults = {
            'trust_score': trust_score,
            'risk_level': risk_level_for(trust_score),
            'total_interactions': len(entries),
            'behavior_consistency': round(consistency, 2),
            'adaptive_flags': adaptive_flags,
            'connections': self.connections(user, consistency),
            'updated_at': now,
        }
        if anomalies:
            defaults['last_anomaly'] = max(anomalies)

        node, _ = TrustGraphNode.objects.update_or_create(
            organization=self.organization,
            user=user,
            defaults=defaults,
        )

        log_audit_event(
            action_type='trust_update',
            decision_summary=f"Trust score for {user.email} set to {trust_score:.2f} ({node.risk_level})",
            organization=self.organization,
            user=user,
            triggered_by=ENGINE_NAME,
            confidence_level=100,
            decision_impact=decision_impact_for(trust_score),
            system_context={
                'behavior_consistency': round(consistency, 2),
                'adaptive_flags': adaptive_flags,
                'access_success_rate': round(access, 2),
                'organization_reputation': round(reputation, 2),
                'window_days': self.window_days(),
            },
        )
        return node

    def run(self, now=None) -> Dict[str, Any]:
        now = now or timezone.now()
        since = now - timedelta(days=self.window_days())

        per_user = defaultdict(list)
        users = {}
        for entry in self.telemetry(since).select_related('user'):
            per_user[entry.user_id].append(entry)
            users[entry.user_id] = entry.user

        nodes = [
            self.score_user(users[user_id], entries, since, now)
            for user_id, entries in per_user.items()
        ]

        scores = [node.trust_score for node in nodes]
        result = {
            'avg_trust_score': round(sum(scores) / len(scores), 2) if scores else 0.0,
            'users_updated': len(nodes),
            'high_risk_users': sum(1 for score in scores if score < 60),
            'low_risk_users': sum(1 for score in scores if score >= 85),
        }
        logger.info(f"Trust scoring for {self.organization.slug}: {result}")
        return result


def trust_distribution(organization, now=None) -> Dict[str, Any]:
    """Risk level counts and the lowest-trust nodes of an organization."""
    now = now or timezone.now()
    nodes = TrustGraphNode.objects.filter(organization=organization).select_related('user')
    counts = {level: 0 for level in TrustGraphNode.RiskLevel.values}
    for level in nodes.values_list('risk_level', flat=True):
        counts[level] = counts.get(level, 0) + 1

    average: Optional[float] = nodes.aggregate(avg=Avg('trust_score'))['avg']
    return {
        'average_trust_score': round(average, 2) if average is not None else None,
        'by_risk_level': counts,
        'lowest': [
            {
                'user': node.user.email,
                'trust_score': node.trust_score,
                'risk_level': node.risk_level,
                'anomaly_recency': anomaly_recency(node.last_anomaly, now),
            }
            for node in nodes.order_by('trust_score')[:MAX_CONNECTIONS]
        ],
    }
