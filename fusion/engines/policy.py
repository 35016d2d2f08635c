"""
Adaptive Policy engine.

Rates every user active in the last CORE314_POLICY_WINDOW_HOURS and
restricts those whose risk reaches CORE314_POLICY_RISK_THRESHOLD:

    risk = min(100, 10 * auth_failures + 15 * anomalies + recency)

where recency is 20 for a violation in the last hour, 10 in the last six.
"""

import logging
from collections import defaultdict
from datetime import timedelta
from typing import Any, Dict

from django.conf import settings
from django.db import transaction
from django.db.models import Max, Q
from django.utils import timezone

from api.exceptions import InvalidInputError, ResourceStateError

from ..audit import ENGINE_ACTION_TYPES, log_audit_event
from ..models import AdaptivePolicy, AuditLogEntry, UserRiskScore
from .trust import DENIED_IMPACTS

logger = logging.getLogger(__name__)

ENGINE_NAME = 'adaptive-policy-engine'

VIOLATION = Q(anomaly_detected=True) | Q(decision_impact__in=DENIED_IMPACTS)


def recency_points(last_violation, now) -> int:
    if last_violation is None:
        return 0
    if last_violation >= now - timedelta(hours=1):
        return 20
    if last_violation >= now - timedelta(hours=6):
        return 10
    return 0


def compute_risk_score(auth_failures: int, anomalies: int, last_violation, now) -> float:
    return float(min(100, 10 * auth_failures + 15 * anomalies + recency_points(last_violation, now)))


def active_policies(organization, now=None):
    """Active policies of the organization that have not expired."""
    now = now or timezone.now()
    return AdaptivePolicy.objects.filter(
        organization=organization,
        status=AdaptivePolicy.Status.ACTIVE,
    ).filter(Q(expires_at__isnull=True) | Q(expires_at__gt=now))


def is_user_restricted(user, organization, now=None) -> bool:
    """True when an active restrict policy targets the user."""
    if organization is None or user is None or not user.is_authenticated:
        return False
    return active_policies(organization, now).filter(
        target_user=user,
        action_type=AdaptivePolicy.ActionType.RESTRICT,
    ).exists()


class AdaptivePolicyEngine:
    """Risk scoring and automatic restriction for one organization."""

    def __init__(self, organization):
        self.organization = organization

    @staticmethod
    def window_hours() -> int:
        return getattr(settings, 'CORE314_POLICY_WINDOW_HOURS', 24)

    @staticmethod
    def risk_threshold() -> float:
        return float(getattr(settings, 'CORE314_POLICY_RISK_THRESHOLD', 70))

    def expire_policies(self, now) -> int:
        return AdaptivePolicy.objects.filter(
            organization=self.organization,
            status=AdaptivePolicy.Status.ACTIVE,
            expires_at__lte=now,
        ).update(status=AdaptivePolicy.Status.EXPIRED)

    def restrict(self, user, risk: UserRiskScore, now) -> AdaptivePolicy:
        policy = AdaptivePolicy.objects.create(
            organization=self.organization,
            name='Auto-Restrict High Risk User',
            target_role=getattr(user, 'role', '') or '',
            target_user=user,
            target_function='*',
            condition_type=AdaptivePolicy.ConditionType.BEHAVIOR_ANOMALY,
            condition_threshold=self.risk_threshold(),
            action_type=AdaptivePolicy.ActionType.RESTRICT,
            status=AdaptivePolicy.Status.ACTIVE,
            expires_at=now + timedelta(hours=24),
            created_by=ENGINE_NAME,
            notes=(
                f"Auto-generated: risk score {risk.risk_score:.0f}, "
                f"auth failures {risk.auth_failures}, anomalies {risk.anomalies}"
            ),
            created_at=now,
        )
        log_audit_event(
            action_type='policy_applied',
            decision_summary=f"Adaptive policy applied: RESTRICT (risk score: {risk.risk_score:.0f})",
            organization=self.organization,
            user=user,
            triggered_by=ENGINE_NAME,
            confidence_level=100,
            decision_impact='HIGH',
            system_context={
                'policy': str(policy.uuid),
                'risk_score': risk.risk_score,
                'auth_failures': risk.auth_failures,
                'anomaly_count': risk.anomalies,
            },
        )
        logger.warning(f"Restricted user {user.pk} in {self.organization.slug} (risk {risk.risk_score:.0f})")
        return policy

    @transaction.atomic
    def run(self, now=None) -> Dict[str, Any]:
        now = now or timezone.now()
        expired = self.expire_policies(now)
        since = now - timedelta(hours=self.window_hours())

        entries = (
            AuditLogEntry.objects
            .filter(organization=self.organization, user__isnull=False, created_at__gte=since)
            .exclude(action_type__in=ENGINE_ACTION_TYPES)
            .select_related('user')
        )
        stats = defaultdict(lambda: {'auth_failures': 0, 'anomalies': 0})
        users = {}
        for entry in entries:
            users[entry.user_id] = entry.user
            if entry.decision_impact in DENIED_IMPACTS:
                stats[entry.user_id]['auth_failures'] += 1
            if entry.anomaly_detected:
                stats[entry.user_id]['anomalies'] += 1

        last_violations = dict(
            AuditLogEntry.objects
            .filter(VIOLATION, organization=self.organization, user_id__in=list(users))
            .values('user_id')
            .annotate(last=Max('created_at'))
            .values_list('user_id', 'last')
        )

        risk_scores = []
        policies_applied = 0
        for user_id, user in users.items():
            counts = stats[user_id]
            last_violation = last_violations.get(user_id)
            score = compute_risk_score(counts['auth_failures'], counts['anomalies'], last_violation, now)

            risk, _ = UserRiskScore.objects.update_or_create(
                organization=self.organization,
                user=user,
                defaults={
                    'risk_score': score,
                    'auth_failures': counts['auth_failures'],
                    'anomalies': counts['anomalies'],
                    'last_violation': last_violation,
                    'calculated_at': now,
                },
            )
            risk_scores.append(score)

            if score >= self.risk_threshold():
                already_restricted = active_policies(self.organization, now).filter(
                    target_user=user,
                    action_type=AdaptivePolicy.ActionType.RESTRICT,
                    condition_type=AdaptivePolicy.ConditionType.BEHAVIOR_ANOMALY,
                ).exists()
                if not already_restricted:
                    self.restrict(user, risk, now)
                    policies_applied += 1

        result = {
            'analyzed_users': len(users),
            'policies_applied': policies_applied,
            'policies_expired': expired,
            'avg_risk_score': round(sum(risk_scores) / len(risk_scores), 2) if risk_scores else 0.0,
        }
        logger.info(f"Adaptive policy run for {self.organization.slug}: {result}")
        return result

    @staticmethod
    def create_manual(
        organization,
        created_by,
        name: str,
        action_type: str,
        target_user=None,
        target_role: str = '',
        target_function: str = '*',
        expires_at=None,
        notes: str = '',
    ) -> AdaptivePolicy:
        """Create an admin-defined policy; target users must belong to the organization."""
        if target_user is not None and not target_user.organization_memberships.filter(
            organization=organization, is_active=True
        ).exists():
            raise InvalidInputError(detail='Target user is not a member of this organization.')
        if expires_at is not None and expires_at <= timezone.now():
            raise InvalidInputError(detail='expires_at must be in the future.')

        policy = AdaptivePolicy.objects.create(
            organization=organization,
            name=name,
            target_role=target_role,
            target_user=target_user,
            target_function=target_function or '*',
            condition_type=AdaptivePolicy.ConditionType.MANUAL_OVERRIDE,
            action_type=action_type,
            expires_at=expires_at,
            created_by=created_by.email,
            notes=notes,
        )
        log_audit_event(
            action_type='policy_created',
            decision_summary=f"Manual policy '{name}' ({action_type}) created",
            organization=organization,
            user=created_by,
            triggered_by='admin',
            system_context={
                'policy': str(policy.uuid),
                'target_user': getattr(target_user, 'email', None),
                'target_role': target_role,
            },
        )
        return policy

    @staticmethod
    def suspend(policy: AdaptivePolicy, user) -> AdaptivePolicy:
        if policy.status != AdaptivePolicy.Status.ACTIVE:
            raise ResourceStateError(
                current_state=policy.status,
                allowed_states=[AdaptivePolicy.Status.ACTIVE],
                detail='Only active policies can be suspended.',
            )
        policy.status = AdaptivePolicy.Status.SUSPENDED
        policy.save(update_fields=['status'])
        log_audit_event(
            action_type='policy_suspended',
            decision_summary=f"Policy '{policy.name}' suspended",
            organization=policy.organization,
            user=user,
            triggered_by='admin',
            system_context={'policy': str(policy.uuid)},
        )
        return policy
