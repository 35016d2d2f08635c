"""
Governance engine.

Reviews recent trust updates and policies of an organization, approving
acceptable ones and escalating the rest for a human decision.
"""

import logging
from datetime import timedelta
from typing import Any, Dict

from django.conf import settings
from django.db import transaction
from django.db.models import Avg, Count
from django.utils import timezone

from api.exceptions import InsufficientRoleError, InvalidInputError, ResourceStateError
from core.permissions import ORGANIZATION_ADMIN_ROLES, is_platform_admin

from ..audit import log_audit_event
from ..models import AdaptivePolicy, GovernanceAudit, TrustGraphNode

logger = logging.getLogger(__name__)

ENGINE_NAME = 'governance-engine'

Outcome = GovernanceAudit.Outcome
Severity = GovernanceAudit.Severity

POLICY_METRIC = {
    AdaptivePolicy.ActionType.RESTRICT: 30.0,
    AdaptivePolicy.ActionType.ELEVATE: 90.0,
}
DEFAULT_POLICY_METRIC = 75.0

REVIEW_OUTCOMES = (Outcome.APPROVED, Outcome.DENIED, Outcome.DEFERRED)


def recency_bucket(created_at, now) -> str:
    age = now - created_at
    if age <= timedelta(hours=1):
        return 'Recent'
    if age <= timedelta(hours=24):
        return 'Today'
    if age <= timedelta(days=7):
        return 'This Week'
    return 'Older'


def evaluate_trust(score) -> Dict[str, Any]:
    if score is None or score < GovernanceEngine.threshold():
        return {
            'governance_action': 'Review Triggered',
            'outcome': Outcome.ESCALATED,
            'severity': Severity.WARNING,
            'confidence': 0.75,
            'justification': 'low_trust_score',
        }
    return {
        'governance_action': 'Approved',
        'outcome': Outcome.APPROVED,
        'severity': Severity.INFO,
        'confidence': 0.92,
        'justification': 'acceptable_trust_score',
    }


def evaluate_policy(action_type: str) -> Dict[str, Any]:
    metric = POLICY_METRIC.get(action_type, DEFAULT_POLICY_METRIC)
    if metric < GovernanceEngine.threshold():
        decision = {
            'governance_action': 'Policy Review Required',
            'outcome': Outcome.ESCALATED,
            'severity': Severity.WARNING,
            'confidence': 0.80,
            'justification': 'restrictive_policy',
        }
    else:
        decision = {
            'governance_action': 'Policy Approved',
            'outcome': Outcome.APPROVED,
            'severity': Severity.INFO,
            'confidence': 0.88,
            'justification': 'acceptable_policy',
        }
    decision['metric'] = metric
    return decision


class GovernanceEngine:

    def __init__(self, organization):
        self.organization = organization

    @staticmethod
    def window_days() -> int:
        return getattr(settings, 'CORE314_GOVERNANCE_WINDOW_DAYS', 2)

    @staticmethod
    def threshold() -> float:
        return float(getattr(settings, 'CORE314_GOVERNANCE_THRESHOLD', 50))

    def _already_reviewed(self, subsystem: str, source_event_id: str, since) -> bool:
        return GovernanceAudit.objects.filter(
            organization=self.organization,
            subsystem=subsystem,
            source_event_id=source_event_id,
            created_at__gte=since,
        ).exists()

    def _record(self, subsystem: str, source_event_id: str, decision: Dict[str, Any], context: Dict, now):
        return GovernanceAudit.objects.create(
            organization=self.organization,
            source_event_id=source_event_id,
            subsystem=subsystem,
            governance_action=decision['governance_action'],
            justification=decision['justification'],
            confidence=decision['confidence'],
            outcome=decision['outcome'],
            severity=decision['severity'],
            explanation_context=context,
            created_at=now,
        )

    @transaction.atomic
    def run(self, now=None) -> Dict[str, Any]:
        now = now or timezone.now()
        since = now - timedelta(days=self.window_days())
        created = []

        nodes = TrustGraphNode.objects.filter(organization=self.organization, updated_at__gte=since)
        for node in nodes.select_related('user'):
            source_event_id = str(node.pk)
            # A node is reviewed again only after it has been rescored.
            if self._already_reviewed(GovernanceAudit.Subsystem.TRUST, source_event_id, node.updated_at):
                continue
            decision = evaluate_trust(node.trust_score)
            created.append(self._record(
                GovernanceAudit.Subsystem.TRUST,
                source_event_id,
                decision,
                {
                    'user': node.user.email,
                    'trust_score': node.trust_score,
                    'risk_level': node.risk_level,
                    'threshold': self.threshold(),
                },
                now,
            ))

        policies = AdaptivePolicy.objects.filter(organization=self.organization, created_at__gte=since)
        for policy in policies:
            source_event_id = str(policy.uuid)
            if GovernanceAudit.objects.filter(
                organization=self.organization,
                subsystem=GovernanceAudit.Subsystem.POLICY,
                source_event_id=source_event_id,
            ).exists():
                continue
            decision = evaluate_policy(policy.action_type)
            created.append(self._record(
                GovernanceAudit.Subsystem.POLICY,
                source_event_id,
                decision,
                {
                    'policy': policy.name,
                    'action_type': policy.action_type,
                    'policy_metric': decision['metric'],
                    'threshold': self.threshold(),
                },
                now,
            ))

        average_confidence = (
            GovernanceAudit.objects
            .filter(organization=self.organization, created_at__gte=since)
            .aggregate(avg=Avg('confidence'))['avg']
        )
        policy_violations = AdaptivePolicy.objects.filter(
            organization=self.organization,
            status=AdaptivePolicy.Status.ACTIVE,
            expires_at__lt=now,
        ).count()

        result = {
            'audits_run': len(created),
            'anomalies_detected': sum(1 for audit in created if audit.outcome == Outcome.ESCALATED),
            'average_confidence': round(average_confidence, 4) if average_confidence is not None else 0.0,
            'policy_violations': policy_violations,
        }
        logger.info(f"Governance run for {self.organization.slug}: {result}")
        return result

    @staticmethod
    def can_review(user, organization) -> bool:
        if is_platform_admin(user):
            return True
        from organizations.models import OrganizationMember

        return OrganizationMember.objects.filter(
            organization=organization,
            user=user,
            is_active=True,
            role__in=ORGANIZATION_ADMIN_ROLES,
        ).exists()

    @classmethod
    def review(cls, audit: GovernanceAudit, reviewer, outcome: str, notes: str = '', now=None) -> GovernanceAudit:
        """
        Record a human decision on an escalated audit.

        Raises:
            InsufficientRoleError: reviewer is not an organization admin
            ResourceStateError: audit is not escalated
            InvalidInputError: outcome is not Approved, Denied or Deferred
        """
        if not cls.can_review(reviewer, audit.organization):
            raise InsufficientRoleError(required_role='admin')
        if audit.outcome != Outcome.ESCALATED:
            raise ResourceStateError(
                current_state=audit.outcome,
                allowed_states=[Outcome.ESCALATED],
                detail='Only escalated audits can be reviewed.',
            )
        if outcome not in REVIEW_OUTCOMES:
            raise InvalidInputError(detail=f"Outcome must be one of: {', '.join(REVIEW_OUTCOMES)}.")

        audit.outcome = outcome
        audit.reviewer = reviewer
        audit.reviewed_at = now or timezone.now()
        audit.review_notes = notes
        audit.save(update_fields=['outcome', 'reviewer', 'reviewed_at', 'review_notes'])

        log_audit_event(
            action_type='governance_review',
            decision_summary=f"{audit.subsystem} audit {audit.governance_action} reviewed: {outcome}",
            organization=audit.organization,
            user=reviewer,
            triggered_by='governance-review',
            system_context={'audit': str(audit.uuid), 'notes': notes},
        )
        return audit

    @staticmethod
    def summary(organization, days: int = 7, now=None) -> Dict[str, Any]:
        now = now or timezone.now()
        audits = GovernanceAudit.objects.filter(
            organization=organization,
            created_at__gte=now - timedelta(days=days),
        )

        def counts(field):
            return {
                row[field]: row['count']
                for row in audits.values(field).annotate(count=Count('id')).order_by()
            }

        recency = {'Recent': 0, 'Today': 0, 'This Week': 0, 'Older': 0}
        for created_at in audits.values_list('created_at', flat=True):
            recency[recency_bucket(created_at, now)] += 1

        average = audits.aggregate(avg=Avg('confidence'))['avg']
        return {
            'days': days,
            'total': audits.count(),
            'by_outcome': counts('outcome'),
            'by_severity': counts('severity'),
            'by_subsystem': counts('subsystem'),
            'pending_escalations': GovernanceAudit.objects.filter(
                organization=organization,
                outcome=Outcome.ESCALATED,
            ).count(),
            'average_confidence': round(average, 4) if average is not None else None,
            'recency': recency,
        }
