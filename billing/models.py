"""
Billing App Models - Platform Subscription Management

Handles Core314's subscription charges to organizations:
- Plan: pricing tiers (Starter, Professional, Enterprise)
- Subscription: an organization's current plan and billing state
"""

from decimal import Decimal

from django.core.validators import MinValueValidator
from django.db import models
from django.utils import timezone


class Plan(models.Model):
    """
    Platform subscription tiers.
    Limits left empty fall back to the tier defaults in billing.entitlements.
    """

    class Tier(models.TextChoices):
        STARTER = "starter", "Starter"
        PROFESSIONAL = "professional", "Professional"
        ENTERPRISE = "enterprise", "Enterprise"

    # Basic Info
    name = models.CharField(max_length=100)
    slug = models.SlugField(unique=True)
    tier = models.CharField(max_length=20, choices=Tier.choices)
    description = models.TextField(blank=True)

    # Pricing
    price_monthly = models.DecimalField(
        max_digits=10, decimal_places=2, validators=[MinValueValidator(Decimal("0.00"))]
    )
    price_yearly = models.DecimalField(
        max_digits=10, decimal_places=2, validators=[MinValueValidator(Decimal("0.00"))]
    )
    currency = models.CharField(max_length=3, default="USD")

    # Limits (null = tier default)
    max_users = models.PositiveIntegerField(null=True, blank=True, help_text="Maximum members allowed")
    max_integrations = models.PositiveIntegerField(
        null=True, blank=True, help_text="Maximum connected integrations"
    )

    # Status
    is_active = models.BooleanField(default=True)
    sort_order = models.PositiveIntegerField(default=0, help_text="Display order on pricing page")

    # Timestamps
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["sort_order", "price_monthly"]
        verbose_name = "Plan"
        verbose_name_plural = "Plans"

    def __str__(self):
        return f"{self.name} - ${self.price_monthly}/month"

    def get_yearly_discount_percentage(self):
        """Calculate discount percentage for yearly vs monthly billing"""
        monthly_equivalent = self.price_monthly * 12
        if monthly_equivalent == 0:
            return 0
        discount = ((monthly_equivalent - self.price_yearly) / monthly_equivalent) * 100
        return round(discount, 1)


class Subscription(models.Model):
    """
    Organization's subscription to Core314.
    Tracks which plan an organization is on and its billing status.
    """

    class Status(models.TextChoices):
        TRIALING = "trialing", "Trial"
        ACTIVE = "active", "Active"
        PAST_DUE = "past_due", "Past Due"
        CANCELED = "canceled", "Canceled"

    class BillingCycle(models.TextChoices):
        MONTHLY = "monthly", "Monthly"
        YEARLY = "yearly", "Yearly"

    organization = models.OneToOneField(
        "organizations.Organization", on_delete=models.CASCADE, related_name="subscription"
    )
    plan = models.ForeignKey(Plan, on_delete=models.PROTECT, related_name="subscriptions")

    status = models.CharField(max_length=20, choices=Status.choices, db_index=True)
    billing_cycle = models.CharField(
        max_length=20, choices=BillingCycle.choices, default=BillingCycle.MONTHLY
    )

    # Billing Periods
    trial_ends_at = models.DateTimeField(null=True, blank=True)
    current_period_start = models.DateTimeField(null=True, blank=True)
    current_period_end = models.DateTimeField(null=True, blank=True)
    past_due_since = models.DateTimeField(null=True, blank=True)
    canceled_at = models.DateTimeField(null=True, blank=True)

    # Cancellation
    cancel_at_period_end = models.BooleanField(default=False)
    cancellation_reason = models.TextField(blank=True)

    # Timestamps
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Subscription"
        verbose_name_plural = "Subscriptions"
        indexes = [
            models.Index(fields=["status", "current_period_end"]),
            models.Index(fields=["status", "trial_ends_at"]),
        ]

    def __str__(self):
        return f"{self.organization.name} - {self.plan.name} ({self.status})"

    @property
    def is_trialing(self):
        return self.status == self.Status.TRIALING

    @property
    def is_active(self):
        """Check if subscription is active (including trial)"""
        return self.status in [self.Status.ACTIVE, self.Status.TRIALING]

    @property
    def monthly_amount(self) -> Decimal:
        """Recurring revenue for one month of this subscription."""
        if self.billing_cycle == self.BillingCycle.YEARLY:
            return (self.plan.price_yearly / Decimal("12")).quantize(Decimal("0.01"))
        return self.plan.price_monthly

    @property
    def days_until_renewal(self):
        """Calculate days until next billing period"""
        end = self.trial_ends_at if self.is_trialing else self.current_period_end
        if not end:
            return None
        delta = end - timezone.now()
        return max(0, delta.days)
