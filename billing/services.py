"""
Billing Services - Subscription lifecycle and billing overview

This module provides:
- BillingService: trials, activation, plan changes, cancellation and the
  daily state sweep
- BillingOverviewService: revenue and subscription figures for the admin
  console

No payment processor is involved; state changes are driven by the API and
the scheduled sweep.
"""

import logging
from collections import Counter
from datetime import timedelta
from decimal import Decimal
from typing import Optional

from django.conf import settings
from django.db import transaction
from django.db.models import Count, Q
from django.utils import timezone

from api.exceptions import (
    InvalidInputError,
    PlanLimitExceededError,
    ResourceStateError,
)
from fusion.audit import log_audit_event

from .entitlements import entitlements_for_plan
from .enforcement import current_integration_usage, current_member_usage
from .models import Plan, Subscription

logger = logging.getLogger(__name__)


DEFAULT_PLANS = [
    {
        "slug": "starter",
        "name": "Starter",
        "tier": Plan.Tier.STARTER,
        "description": "Core dashboards with up to 3 integrations.",
        "price_monthly": Decimal("49.00"),
        "price_yearly": Decimal("490.00"),
        "max_users": 5,
        "max_integrations": 3,
        "sort_order": 1,
    },
    {
        "slug": "professional",
        "name": "Professional",
        "tier": Plan.Tier.PROFESSIONAL,
        "description": "Deep cross-integration intelligence for growing teams.",
        "price_monthly": Decimal("199.00"),
        "price_yearly": Decimal("1990.00"),
        "max_users": 25,
        "max_integrations": 10,
        "sort_order": 2,
    },
    {
        "slug": "enterprise",
        "name": "Enterprise",
        "tier": Plan.Tier.ENTERPRISE,
        "description": "Unlimited integrations and full admin visibility.",
        "price_monthly": Decimal("999.00"),
        "price_yearly": Decimal("9990.00"),
        "max_users": None,
        "max_integrations": None,
        "sort_order": 3,
    },
]

PERIOD_LENGTH = {
    Subscription.BillingCycle.MONTHLY: timedelta(days=30),
    Subscription.BillingCycle.YEARLY: timedelta(days=365),
}


def default_plan() -> Plan:
    """Cheapest active starter plan, created from DEFAULT_PLANS when missing."""
    plan = Plan.objects.filter(tier=Plan.Tier.STARTER, is_active=True).order_by(
        "sort_order", "price_monthly"
    ).first()
    if plan is None:
        data = dict(DEFAULT_PLANS[0])
        plan, _ = Plan.objects.get_or_create(slug=data.pop("slug"), defaults=data)
    return plan


class BillingService:
    """
    Service for subscription state changes.

    Status flow:
        trialing -> active | past_due
        active -> past_due | canceled
        past_due -> active | canceled
    """

    @staticmethod
    @transaction.atomic
    def start_trial(organization, plan: Optional[Plan] = None, days: Optional[int] = None, now=None) -> Subscription:
        now = now or timezone.now()
        plan = plan or default_plan()
        if days is None:
            days = getattr(settings, "CORE314_TRIAL_DAYS", 14)

        if Subscription.objects.filter(organization=organization).exists():
            raise ResourceStateError(detail="Organization already has a subscription.")

        subscription = Subscription.objects.create(
            organization=organization,
            plan=plan,
            status=Subscription.Status.TRIALING,
            trial_ends_at=now + timedelta(days=days),
            current_period_start=now,
            current_period_end=now + timedelta(days=days),
        )
        logger.info(f"Trial started for {organization.slug} on plan {plan.slug} ({days} days)")
        return subscription

    @staticmethod
    @transaction.atomic
    def activate(subscription: Subscription, billing_cycle: Optional[str] = None, now=None, actor=None) -> Subscription:
        """Start a paid period; valid from trialing and past_due."""
        now = now or timezone.now()
        allowed = [Subscription.Status.TRIALING, Subscription.Status.PAST_DUE]
        if subscription.status not in allowed:
            raise ResourceStateError(current_state=subscription.status, allowed_states=allowed)

        if billing_cycle:
            if billing_cycle not in Subscription.BillingCycle.values:
                raise InvalidInputError(detail=f"Unknown billing cycle '{billing_cycle}'.")
            subscription.billing_cycle = billing_cycle

        subscription.status = Subscription.Status.ACTIVE
        subscription.current_period_start = now
        subscription.current_period_end = now + PERIOD_LENGTH[subscription.billing_cycle]
        subscription.trial_ends_at = None
        subscription.past_due_since = None
        subscription.cancel_at_period_end = False
        subscription.save()

        log_audit_event(
            action_type="subscription_activated",
            decision_summary=f"Subscription activated on {subscription.plan.slug}",
            organization=subscription.organization,
            user=actor,
            triggered_by="billing",
        )
        return subscription

    @staticmethod
    @transaction.atomic
    def change_plan(subscription: Subscription, plan: Plan, billing_cycle: Optional[str] = None, actor=None) -> Subscription:
        """
        Move a subscription to another plan.

        Raises:
            ResourceStateError: subscription is canceled or plan inactive
            PlanLimitExceededError: current usage exceeds the new plan's limits
        """
        if subscription.status == Subscription.Status.CANCELED:
            raise ResourceStateError(
                current_state=subscription.status,
                allowed_states=[
                    Subscription.Status.TRIALING,
                    Subscription.Status.ACTIVE,
                    Subscription.Status.PAST_DUE,
                ],
            )
        if not plan.is_active:
            raise ResourceStateError(detail=f"Plan '{plan.slug}' is not available.")

        organization = subscription.organization
        target = entitlements_for_plan(plan)
        integrations = current_integration_usage(organization)
        if target.max_integrations is not None and integrations > target.max_integrations:
            raise PlanLimitExceededError(
                limit_name="integrations",
                current_usage=integrations,
                max_allowed=target.max_integrations,
            )
        members = current_member_usage(organization)
        if target.max_users is not None and members > target.max_users:
            raise PlanLimitExceededError(
                limit_name="users",
                current_usage=members,
                max_allowed=target.max_users,
            )

        if billing_cycle:
            if billing_cycle not in Subscription.BillingCycle.values:
                raise InvalidInputError(detail=f"Unknown billing cycle '{billing_cycle}'.")
            subscription.billing_cycle = billing_cycle

        previous = subscription.plan
        subscription.plan = plan
        subscription.cancel_at_period_end = False
        subscription.save()

        log_audit_event(
            action_type="plan_changed",
            decision_summary=f"Plan changed from {previous.slug} to {plan.slug}",
            organization=organization,
            user=actor,
            triggered_by="billing",
            system_context={"previous_plan": previous.slug, "new_plan": plan.slug},
        )
        logger.info(f"{organization.slug} moved from {previous.slug} to {plan.slug}")
        return subscription

    @staticmethod
    @transaction.atomic
    def cancel(subscription: Subscription, at_period_end: bool = True, reason: str = "", actor=None, now=None) -> Subscription:
        now = now or timezone.now()
        if subscription.status == Subscription.Status.CANCELED:
            raise ResourceStateError(current_state=subscription.status, detail="Subscription is already canceled.")

        subscription.cancellation_reason = reason
        if at_period_end and subscription.current_period_end and subscription.current_period_end > now:
            subscription.cancel_at_period_end = True
        else:
            subscription.status = Subscription.Status.CANCELED
            subscription.canceled_at = now
            subscription.cancel_at_period_end = False
        subscription.save()

        log_audit_event(
            action_type="subscription_canceled",
            decision_summary=(
                "Cancellation scheduled at period end"
                if subscription.cancel_at_period_end
                else "Subscription canceled"
            ),
            organization=subscription.organization,
            user=actor,
            triggered_by="billing",
        )
        return subscription

    @staticmethod
    def mark_past_due(subscription: Subscription, now=None) -> Subscription:
        now = now or timezone.now()
        allowed = [Subscription.Status.TRIALING, Subscription.Status.ACTIVE]
        if subscription.status not in allowed:
            raise ResourceStateError(current_state=subscription.status, allowed_states=allowed)
        subscription.status = Subscription.Status.PAST_DUE
        subscription.past_due_since = now
        subscription.save(update_fields=["status", "past_due_since", "updated_at"])
        logger.warning(f"Subscription for {subscription.organization.slug} is past due")
        return subscription

    @classmethod
    def process_state_transitions(cls, now=None) -> dict:
        """
        Daily sweep:
        - trials past trial_ends_at become past_due
        - subscriptions flagged cancel_at_period_end become canceled once
          the period has ended
        """
        now = now or timezone.now()

        expired_trials = Subscription.objects.filter(
            status=Subscription.Status.TRIALING,
            trial_ends_at__lte=now,
        )
        trials = 0
        for subscription in expired_trials.select_related("organization"):
            cls.mark_past_due(subscription, now=now)
            trials += 1

        canceled = Subscription.objects.filter(
            status__in=[Subscription.Status.ACTIVE, Subscription.Status.TRIALING, Subscription.Status.PAST_DUE],
            cancel_at_period_end=True,
            current_period_end__lte=now,
        ).update(
            status=Subscription.Status.CANCELED,
            canceled_at=now,
            cancel_at_period_end=False,
            updated_at=now,
        )

        if trials or canceled:
            logger.info(f"Billing sweep: {trials} trials past due, {canceled} canceled")
        return {"trials_past_due": trials, "canceled": canceled}


class BillingOverviewService:
    """Platform-wide billing figures for the admin console."""

    @staticmethod
    def get_overview(now=None) -> dict:
        now = now or timezone.now()
        subscriptions = Subscription.objects.select_related("plan")

        status_counts = Counter(subscriptions.values_list("status", flat=True))

        mrr = Decimal("0.00")
        for subscription in subscriptions.filter(status=Subscription.Status.ACTIVE):
            mrr += subscription.monthly_amount

        per_plan = []
        plans = Plan.objects.annotate(
            subscription_count=Count("subscriptions"),
            active_count=Count("subscriptions", filter=Q(subscriptions__status=Subscription.Status.ACTIVE)),
        ).order_by("sort_order", "price_monthly")
        for plan in plans:
            per_plan.append({
                "plan": plan.slug,
                "name": plan.name,
                "tier": plan.tier,
                "subscriptions": plan.subscription_count,
                "active": plan.active_count,
            })

        trials_ending_soon = subscriptions.filter(
            status=Subscription.Status.TRIALING,
            trial_ends_at__gt=now,
            trial_ends_at__lte=now + timedelta(days=7),
        ).count()
        churned = subscriptions.filter(
            status=Subscription.Status.CANCELED,
            canceled_at__gte=now - timedelta(days=30),
        ).count()

        active = status_counts.get(Subscription.Status.ACTIVE, 0)
        churn_base = active + churned
        churn_rate = round(churned / churn_base * 100, 2) if churn_base else 0.0

        return {
            "mrr": mrr,
            "arr": mrr * 12,
            "active": active,
            "trialing": status_counts.get(Subscription.Status.TRIALING, 0),
            "past_due": status_counts.get(Subscription.Status.PAST_DUE, 0),
            "canceled": status_counts.get(Subscription.Status.CANCELED, 0),
            "total": sum(status_counts.values()),
            "per_plan": per_plan,
            "trials_ending_soon": trials_ending_soon,
            "churned_last_30_days": churned,
            "churn_rate": churn_rate,
        }
