"""
Billing Entitlements - What an organization's plan allows.

Tier defaults:
    starter       3 integrations,  basic depth, limited admin visibility
    professional  10 integrations, deep depth,  standard admin visibility
    enterprise    unlimited,       full depth,  full admin visibility

Explicit limits on the Plan row override the tier defaults. Organizations
without a usable subscription get starter entitlements with intelligence
(scoring engines) disabled.
"""

import logging
from dataclasses import dataclass, replace
from datetime import timedelta
from typing import Optional

from django.conf import settings
from django.utils import timezone

from .models import Plan, Subscription

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Entitlements:
    tier: str
    max_integrations: Optional[int]
    max_users: Optional[int]
    intelligence_enabled: bool
    cross_integration_depth: str
    admin_visibility_scope: str

    def to_dict(self) -> dict:
        return {
            'tier': self.tier,
            'max_integrations': self.max_integrations,
            'max_users': self.max_users,
            'intelligence_enabled': self.intelligence_enabled,
            'cross_integration_depth': self.cross_integration_depth,
            'admin_visibility_scope': self.admin_visibility_scope,
        }


TIER_ENTITLEMENTS = {
    Plan.Tier.STARTER: Entitlements(
        tier=Plan.Tier.STARTER,
        max_integrations=3,
        max_users=5,
        intelligence_enabled=True,
        cross_integration_depth='basic',
        admin_visibility_scope='limited',
    ),
    Plan.Tier.PROFESSIONAL: Entitlements(
        tier=Plan.Tier.PROFESSIONAL,
        max_integrations=10,
        max_users=25,
        intelligence_enabled=True,
        cross_integration_depth='deep',
        admin_visibility_scope='standard',
    ),
    Plan.Tier.ENTERPRISE: Entitlements(
        tier=Plan.Tier.ENTERPRISE,
        max_integrations=None,
        max_users=None,
        intelligence_enabled=True,
        cross_integration_depth='full',
        admin_visibility_scope='full',
    ),
}

FALLBACK_ENTITLEMENTS = replace(TIER_ENTITLEMENTS[Plan.Tier.STARTER], intelligence_enabled=False)


def is_subscription_usable(subscription: Optional[Subscription], now=None) -> bool:
    """Trialing and active subscriptions are usable; past due only within the grace period."""
    if subscription is None:
        return False
    if subscription.status in (Subscription.Status.TRIALING, Subscription.Status.ACTIVE):
        return True
    if subscription.status == Subscription.Status.PAST_DUE:
        now = now or timezone.now()
        grace = timedelta(days=getattr(settings, 'CORE314_PAST_DUE_GRACE_DAYS', 7))
        since = subscription.past_due_since or now
        return now - since <= grace
    return False


def entitlements_for_plan(plan: Plan) -> Entitlements:
    base = TIER_ENTITLEMENTS.get(plan.tier, TIER_ENTITLEMENTS[Plan.Tier.STARTER])
    overrides = {}
    if plan.max_integrations is not None:
        overrides['max_integrations'] = plan.max_integrations
    if plan.max_users is not None:
        overrides['max_users'] = plan.max_users
    return replace(base, **overrides) if overrides else base


def get_entitlements(organization, now=None) -> Entitlements:
    """Entitlements for `organization` based on its current subscription."""
    subscription = (
        Subscription.objects.select_related('plan')
        .filter(organization=organization)
        .first()
    )
    if not is_subscription_usable(subscription, now=now):
        return FALLBACK_ENTITLEMENTS
    return entitlements_for_plan(subscription.plan)


def intelligence_organizations(now=None):
    """Active organizations whose entitlements enable the scoring engines."""
    from organizations.models import Organization

    organizations = (
        Organization.objects
        .filter(status=Organization.Status.ACTIVE)
        .select_related('subscription__plan')
        .order_by('pk')
    )
    for organization in organizations:
        subscription = getattr(organization, 'subscription', None)
        if is_subscription_usable(subscription, now=now):
            yield organization
        else:
            logger.debug(f"Skipping {organization.slug}: no usable subscription")
