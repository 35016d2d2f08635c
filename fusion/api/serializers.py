"""
Fusion API Serializers

Engine output is read-only; the only writable payloads are manual
policies, governance reviews and metric weights.
"""

from rest_framework import serializers

from ..engines.governance import REVIEW_OUTCOMES
from ..engines.trust import anomaly_recency
from ..models import (
    AdaptivePolicy,
    AuditLogEntry,
    FusionAlert,
    FusionMetricWeight,
    FusionScore,
    GovernanceAudit,
    OptimizationEvent,
    OptimizationParameters,
    TrustGraphNode,
    UserRiskScore,
)


# =============================================================================
# AUDIT LOG & WEIGHTS
# =============================================================================

class AuditLogEntrySerializer(serializers.ModelSerializer):
    user_email = serializers.EmailField(source='user.email', read_only=True, default=None)

    class Meta:
        model = AuditLogEntry
        fields = [
            'id', 'user_email', 'user_role', 'action_type', 'decision_summary',
            'system_context', 'triggered_by', 'confidence_level', 'decision_impact',
            'event_payload', 'stability_score', 'reinforcement_delta',
            'anomaly_detected', 'anomaly_reason', 'created_at',
        ]
        read_only_fields = fields


class FusionMetricWeightSerializer(serializers.ModelSerializer):
    class Meta:
        model = FusionMetricWeight
        fields = ['id', 'provider', 'metric_name', 'weight', 'normalization_max', 'description', 'updated_at']
        read_only_fields = ['id', 'provider', 'metric_name', 'updated_at']

    def validate_normalization_max(self, value):
        if value <= 0:
            raise serializers.ValidationError('Normalization max must be positive.')
        return value


# =============================================================================
# FUSION SCORE
# =============================================================================

class FusionScoreSerializer(serializers.ModelSerializer):
    integration = serializers.UUIDField(source='integration.uuid', read_only=True)
    provider = serializers.CharField(source='integration.provider', read_only=True)
    integration_name = serializers.CharField(source='integration.display_name', read_only=True)

    class Meta:
        model = FusionScore
        fields = [
            'id', 'integration', 'provider', 'integration_name', 'score',
            'breakdown', 'trend', 'baseline_score', 'calculated_at',
        ]
        read_only_fields = fields


# =============================================================================
# TRUST & POLICY
# =============================================================================

class TrustGraphNodeSerializer(serializers.ModelSerializer):
    user_email = serializers.EmailField(source='user.email', read_only=True)
    anomaly_recency = serializers.SerializerMethodField()

    class Meta:
        model = TrustGraphNode
        fields = [
            'id', 'user', 'user_email', 'trust_score', 'risk_level',
            'total_interactions', 'last_anomaly', 'anomaly_recency',
            'behavior_consistency', 'adaptive_flags', 'connections', 'updated_at',
        ]
        read_only_fields = fields

    def get_anomaly_recency(self, obj):
        return anomaly_recency(obj.last_anomaly)


class AdaptivePolicySerializer(serializers.ModelSerializer):
    target_user_email = serializers.EmailField(source='target_user.email', read_only=True, default=None)
    in_force = serializers.SerializerMethodField()

    class Meta:
        model = AdaptivePolicy
        fields = [
            'id', 'uuid', 'name', 'target_role', 'target_user_email', 'target_function',
            'condition_type', 'condition_threshold', 'action_type', 'status',
            'expires_at', 'in_force', 'created_by', 'notes', 'created_at',
        ]
        read_only_fields = fields

    def get_in_force(self, obj):
        return obj.is_in_force()


class AdaptivePolicyCreateSerializer(serializers.Serializer):
    """Manual policy defined by an organization admin."""
    name = serializers.CharField(max_length=255)
    action_type = serializers.ChoiceField(choices=AdaptivePolicy.ActionType.choices)
    target_user_email = serializers.EmailField(required=False, allow_null=True)
    target_role = serializers.CharField(max_length=50, required=False, allow_blank=True, default='')
    target_function = serializers.CharField(max_length=100, required=False, allow_blank=True, default='*')
    expires_at = serializers.DateTimeField(required=False, allow_null=True)
    notes = serializers.CharField(required=False, allow_blank=True, default='')

    def validate(self, attrs):
        if not attrs.get('target_user_email') and not attrs.get('target_role'):
            raise serializers.ValidationError('A target user or target role is required.')
        return attrs


class UserRiskScoreSerializer(serializers.ModelSerializer):
    user_email = serializers.EmailField(source='user.email', read_only=True)

    class Meta:
        model = UserRiskScore
        fields = [
            'id', 'user', 'user_email', 'risk_score', 'auth_failures',
            'anomalies', 'last_violation', 'calculated_at',
        ]
        read_only_fields = fields


# =============================================================================
# GOVERNANCE
# =============================================================================

class GovernanceAuditSerializer(serializers.ModelSerializer):
    reviewer_email = serializers.EmailField(source='reviewer.email', read_only=True, default=None)

    class Meta:
        model = GovernanceAudit
        fields = [
            'id', 'uuid', 'source_event_id', 'subsystem', 'governance_action',
            'justification', 'confidence', 'outcome', 'severity',
            'reviewer_email', 'reviewed_at', 'review_notes',
            'explanation_context', 'created_at',
        ]
        read_only_fields = fields


class GovernanceReviewSerializer(serializers.Serializer):
    outcome = serializers.ChoiceField(choices=[(outcome, outcome) for outcome in REVIEW_OUTCOMES])
    notes = serializers.CharField(required=False, allow_blank=True, default='')


# =============================================================================
# OPTIMIZATION & ALERTS
# =============================================================================

class OptimizationEventSerializer(serializers.ModelSerializer):
    applied_by_email = serializers.EmailField(source='applied_by.email', read_only=True, default=None)

    class Meta:
        model = OptimizationEvent
        fields = [
            'id', 'uuid', 'source_event_type', 'predicted_variance',
            'predicted_stability', 'optimization_action', 'parameter_delta',
            'efficiency_index', 'applied', 'applied_at', 'applied_by_email',
            'triggered_by', 'created_at',
        ]
        read_only_fields = fields


class OptimizationParametersSerializer(serializers.ModelSerializer):
    class Meta:
        model = OptimizationParameters
        fields = ['confidence_weight', 'feedback_weight', 'stability_threshold', 'updated_at']
        read_only_fields = fields


class FusionAlertSerializer(serializers.ModelSerializer):
    acknowledged_by_email = serializers.EmailField(source='acknowledged_by.email', read_only=True, default=None)

    class Meta:
        model = FusionAlert
        fields = [
            'id', 'uuid', 'event_type', 'severity', 'message', 'metadata',
            'acknowledged', 'acknowledged_by_email', 'acknowledged_at', 'created_at',
        ]
        read_only_fields = fields
