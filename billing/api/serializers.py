"""
Billing API Serializers
"""

from rest_framework import serializers

from ..entitlements import get_entitlements
from ..models import Plan, Subscription


# ============= Plan Serializers =============

class PlanSerializer(serializers.ModelSerializer):
    """Plan catalog entry"""
    tier_display = serializers.CharField(source='get_tier_display', read_only=True)
    yearly_discount = serializers.SerializerMethodField()

    class Meta:
        model = Plan
        fields = [
            'id', 'name', 'slug', 'tier', 'tier_display', 'description',
            'price_monthly', 'price_yearly', 'currency', 'max_users',
            'max_integrations', 'yearly_discount', 'sort_order',
        ]
        read_only_fields = fields

    def get_yearly_discount(self, obj):
        return obj.get_yearly_discount_percentage()


# ============= Subscription Serializers =============

class SubscriptionSerializer(serializers.ModelSerializer):
    """Current organization subscription with its entitlements"""
    plan = PlanSerializer(read_only=True)
    status_display = serializers.CharField(source='get_status_display', read_only=True)
    monthly_amount = serializers.DecimalField(max_digits=10, decimal_places=2, read_only=True)
    days_until_renewal = serializers.IntegerField(read_only=True)
    entitlements = serializers.SerializerMethodField()

    class Meta:
        model = Subscription
        fields = [
            'id', 'plan', 'status', 'status_display', 'billing_cycle',
            'trial_ends_at', 'current_period_start', 'current_period_end',
            'past_due_since', 'canceled_at', 'cancel_at_period_end',
            'monthly_amount', 'days_until_renewal', 'entitlements',
            'created_at', 'updated_at',
        ]
        read_only_fields = fields

    def get_entitlements(self, obj):
        return get_entitlements(obj.organization).to_dict()


class ChangePlanSerializer(serializers.Serializer):
    plan = serializers.SlugRelatedField(slug_field='slug', queryset=Plan.objects.filter(is_active=True))
    billing_cycle = serializers.ChoiceField(choices=Subscription.BillingCycle.choices, required=False)


class CancelSubscriptionSerializer(serializers.Serializer):
    at_period_end = serializers.BooleanField(default=True)
    reason = serializers.CharField(required=False, allow_blank=True, default='')


class BillingOverviewSerializer(serializers.Serializer):
    """Admin console billing figures"""
    mrr = serializers.DecimalField(max_digits=14, decimal_places=2)
    arr = serializers.DecimalField(max_digits=14, decimal_places=2)
    active = serializers.IntegerField()
    trialing = serializers.IntegerField()
    past_due = serializers.IntegerField()
    canceled = serializers.IntegerField()
    total = serializers.IntegerField()
    per_plan = serializers.ListField(child=serializers.DictField())
    trials_ending_soon = serializers.IntegerField()
    churned_last_30_days = serializers.IntegerField()
    churn_rate = serializers.FloatField()
