"""
Dashboard Services

- AdminOverviewService: platform-wide console overview for platform admins
- OrganizationDashboardService: per-organization overview for members,
  cached in the Django cache
"""

import logging
from typing import Any, Dict

from django.conf import settings
from django.db.models import Avg, Count
from django.utils import timezone

from accounts.services import UserManagementService
from billing.services import BillingOverviewService
from core.cache import OrganizationCache
from fusion.engines.governance import GovernanceEngine
from fusion.engines.scoring import organization_fusion_score
from fusion.engines.trust import trust_distribution
from fusion.models import (
    FusionAlert,
    FusionScore,
    GovernanceAudit,
    OptimizationEvent,
    TrustGraphNode,
)
from integrations.models import Integration
from integrations.services import IntegrationTrackingService
from organizations.models import Organization

logger = logging.getLogger(__name__)

OVERVIEW_CACHE_KEY = 'dashboard:overview'
OPEN_ALERT_LIMIT = 10
URGENT_SEVERITIES = (FusionAlert.Severity.CRITICAL, FusionAlert.Severity.HIGH)


def cache_timeout() -> int:
    return getattr(settings, 'CORE314_DASHBOARD_CACHE_TIMEOUT', 300)


class AdminOverviewService:
    """Admin console overview across every organization."""

    @staticmethod
    def organization_counts() -> Dict[str, int]:
        counts = {status: 0 for status in Organization.Status.values}
        for row in Organization.objects.values('status').annotate(count=Count('id')).order_by():
            counts[row['status']] = row['count']
        counts['total'] = sum(counts.values())
        return counts

    @staticmethod
    def intelligence_summary() -> Dict[str, Any]:
        fusion_avg = FusionScore.objects.aggregate(avg=Avg('score'))['avg']
        trust_avg = TrustGraphNode.objects.aggregate(avg=Avg('trust_score'))['avg']
        return {
            'average_fusion_score': round(fusion_avg, 2) if fusion_avg is not None else None,
            'scored_integrations': FusionScore.objects.count(),
            'average_trust_score': round(trust_avg, 2) if trust_avg is not None else None,
            'high_risk_users': TrustGraphNode.objects.filter(
                risk_level=TrustGraphNode.RiskLevel.HIGH
            ).count(),
            'pending_escalations': GovernanceAudit.objects.filter(
                outcome=GovernanceAudit.Outcome.ESCALATED
            ).count(),
            'urgent_alerts': FusionAlert.objects.filter(
                acknowledged=False,
                severity__in=URGENT_SEVERITIES,
            ).count(),
            'pending_optimizations': OptimizationEvent.objects.filter(applied=False).count(),
        }

    @classmethod
    def get_overview(cls, now=None) -> Dict[str, Any]:
        now = now or timezone.now()
        return {
            'users': UserManagementService.user_statistics(now=now),
            'organizations': cls.organization_counts(),
            'billing': BillingOverviewService.get_overview(now=now),
            'integrations': IntegrationTrackingService.get_summary(now=now),
            'intelligence': cls.intelligence_summary(),
            'generated_at': now,
        }


class OrganizationDashboardService:
    """Overview of one organization for its members."""

    @staticmethod
    def integrations(organization) -> list:
        rows = (
            Integration.objects
            .filter(organization=organization)
            .select_related('fusion_score')
            .order_by('provider')
        )
        result = []
        for integration in rows:
            score = getattr(integration, 'fusion_score', None)
            result.append({
                'uuid': str(integration.uuid),
                'provider': integration.provider,
                'name': integration.display_name,
                'status': integration.status,
                'last_polled_at': integration.last_polled_at,
                'last_error': integration.last_error,
                'fusion_score': score.score if score else None,
                'trend': score.trend if score else None,
            })
        return result

    @staticmethod
    def open_alerts(organization) -> Dict[str, Any]:
        alerts = FusionAlert.objects.filter(organization=organization, acknowledged=False)
        return {
            'count': alerts.count(),
            'by_severity': {
                row['severity']: row['count']
                for row in alerts.values('severity').annotate(count=Count('id')).order_by()
            },
            'latest': [
                {
                    'uuid': str(alert.uuid),
                    'severity': alert.severity,
                    'event_type': alert.event_type,
                    'message': alert.message,
                    'created_at': alert.created_at,
                }
                for alert in alerts.order_by('-created_at')[:OPEN_ALERT_LIMIT]
            ],
        }

    @classmethod
    def build(cls, organization, now=None) -> Dict[str, Any]:
        now = now or timezone.now()
        return {
            'organization': {
                'uuid': str(organization.uuid),
                'name': organization.name,
                'slug': organization.slug,
            },
            'fusion': organization_fusion_score(organization),
            'integrations': cls.integrations(organization),
            'trust': trust_distribution(organization, now=now),
            'governance': GovernanceEngine.summary(organization, now=now),
            'alerts': cls.open_alerts(organization),
            'generated_at': now,
        }

    @classmethod
    def get_overview(cls, organization, use_cache: bool = True) -> Dict[str, Any]:
        org_cache = OrganizationCache(organization.id)
        if use_cache:
            cached = org_cache.get(OVERVIEW_CACHE_KEY)
            if cached is not None:
                return cached

        data = cls.build(organization)
        org_cache.set(OVERVIEW_CACHE_KEY, data, timeout=cache_timeout())
        return data

    @staticmethod
    def invalidate(organization_id: int) -> None:
        OrganizationCache(organization_id).delete(OVERVIEW_CACHE_KEY)
