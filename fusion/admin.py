"""
Fusion Admin - Engine inputs, outputs and the audit log
"""

from django.contrib import admin
from django.utils.html import format_html

from .models import (
    AdaptivePolicy,
    AuditLogEntry,
    FusionAlert,
    FusionMetric,
    FusionMetricWeight,
    FusionScore,
    GovernanceAudit,
    OptimizationEvent,
    OptimizationParameters,
    TrustGraphNode,
    UserRiskScore,
    WorkflowMetric,
)

SEVERITY_COLORS = {
    "low": "#6c757d",
    "moderate": "#ffc107",
    "high": "#fd7e14",
    "critical": "#dc3545",
    "Info": "#17a2b8",
    "Warning": "#ffc107",
    "Critical": "#dc3545",
}

RISK_COLORS = {
    "Low": "#28a745",
    "Moderate": "#ffc107",
    "High": "#dc3545",
}


def badge(value, colors):
    return format_html(
        '<span style="background-color: {}; color: white; padding: 3px 10px; border-radius: 3px;">{}</span>',
        colors.get(value, "#6c757d"),
        value,
    )


@admin.register(AuditLogEntry)
class AuditLogEntryAdmin(admin.ModelAdmin):
    list_display = ["action_type", "organization", "user", "triggered_by", "decision_impact", "anomaly_detected", "created_at"]
    list_filter = ["anomaly_detected", "action_type", "triggered_by"]
    search_fields = ["decision_summary", "organization__name", "user__email"]
    raw_id_fields = ["organization", "user"]
    date_hierarchy = "created_at"

    def has_change_permission(self, request, obj=None):
        return False


@admin.register(FusionMetricWeight)
class FusionMetricWeightAdmin(admin.ModelAdmin):
    list_display = ["provider", "metric_name", "weight", "normalization_max", "updated_at"]
    list_filter = ["provider"]
    list_editable = ["weight", "normalization_max"]
    search_fields = ["metric_name"]


@admin.register(FusionMetric)
class FusionMetricAdmin(admin.ModelAdmin):
    list_display = ["integration", "metric_name", "raw_value", "normalized_value", "weight", "synced_at"]
    list_filter = ["integration__provider"]
    raw_id_fields = ["integration"]


@admin.register(FusionScore)
class FusionScoreAdmin(admin.ModelAdmin):
    list_display = ["integration", "organization", "score", "trend", "calculated_at"]
    list_filter = ["trend", "integration__provider"]
    search_fields = ["organization__name"]
    raw_id_fields = ["integration", "organization"]


@admin.register(TrustGraphNode)
class TrustGraphNodeAdmin(admin.ModelAdmin):
    list_display = ["user", "organization", "trust_score", "risk_badge", "total_interactions", "adaptive_flags", "updated_at"]
    list_filter = ["risk_level"]
    search_fields = ["user__email", "organization__name"]
    raw_id_fields = ["user", "organization"]

    def risk_badge(self, obj):
        return badge(obj.risk_level, RISK_COLORS)

    risk_badge.short_description = "Risk"


@admin.register(AdaptivePolicy)
class AdaptivePolicyAdmin(admin.ModelAdmin):
    list_display = ["name", "organization", "target_user", "action_type", "condition_type", "status", "expires_at"]
    list_filter = ["status", "action_type", "condition_type"]
    search_fields = ["name", "organization__name", "target_user__email"]
    raw_id_fields = ["organization", "target_user"]


@admin.register(UserRiskScore)
class UserRiskScoreAdmin(admin.ModelAdmin):
    list_display = ["user", "organization", "risk_score", "auth_failures", "anomalies", "calculated_at"]
    search_fields = ["user__email"]
    raw_id_fields = ["user", "organization"]


@admin.register(GovernanceAudit)
class GovernanceAuditAdmin(admin.ModelAdmin):
    list_display = ["governance_action", "organization", "subsystem", "outcome", "severity_badge", "confidence", "created_at"]
    list_filter = ["subsystem", "outcome", "severity"]
    search_fields = ["governance_action", "justification", "organization__name"]
    raw_id_fields = ["organization", "reviewer"]

    def severity_badge(self, obj):
        return badge(obj.severity, SEVERITY_COLORS)

    severity_badge.short_description = "Severity"


@admin.register(WorkflowMetric)
class WorkflowMetricAdmin(admin.ModelAdmin):
    list_display = ["organization", "stability_index", "variance", "created_at"]
    raw_id_fields = ["organization"]


@admin.register(FusionAlert)
class FusionAlertAdmin(admin.ModelAdmin):
    list_display = ["event_type", "organization", "severity_badge", "acknowledged", "created_at"]
    list_filter = ["severity", "acknowledged"]
    search_fields = ["message", "organization__name"]
    raw_id_fields = ["organization", "audit_entry", "acknowledged_by"]

    def severity_badge(self, obj):
        return badge(obj.severity, SEVERITY_COLORS)

    severity_badge.short_description = "Severity"


@admin.register(OptimizationParameters)
class OptimizationParametersAdmin(admin.ModelAdmin):
    list_display = ["organization", "confidence_weight", "feedback_weight", "stability_threshold", "updated_at"]
    raw_id_fields = ["organization"]


@admin.register(OptimizationEvent)
class OptimizationEventAdmin(admin.ModelAdmin):
    list_display = ["optimization_action", "organization", "source_event_type", "efficiency_index", "applied", "created_at"]
    list_filter = ["optimization_action", "applied"]
    raw_id_fields = ["organization", "applied_by"]
