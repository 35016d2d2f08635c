"""
Fusion Models - Scoring engine inputs and outputs

This module implements:
- AuditLogEntry: decision log written by engines and admin actions
- FusionMetricWeight / FusionMetric / FusionScore: per-integration Fusion Score
- TrustGraphNode: per-user trust score inside an organization
- AdaptivePolicy / UserRiskScore: risk-driven access policies
- GovernanceAudit: review records for trust and policy decisions
- WorkflowMetric / FusionAlert: stability telemetry and alerts
- OptimizationParameters / OptimizationEvent: optimization engine state
"""

import uuid

from django.conf import settings
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models
from django.utils import timezone
from django.utils.translation import gettext_lazy as _

from core.models import OrganizationScopedModel


# =============================================================================
# AUDIT LOG
# =============================================================================

class AuditLogEntry(models.Model):
    """
    One decision or administrative action.

    Engines read this table as telemetry (trust, policy, anomaly) and write
    their own decisions back to it.
    """

    organization = models.ForeignKey(
        'organizations.Organization',
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name='audit_entries'
    )
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='audit_entries'
    )
    user_role = models.CharField(max_length=50, blank=True)
    action_type = models.CharField(max_length=100, db_index=True)
    decision_summary = models.TextField()
    system_context = models.JSONField(default=dict, blank=True)
    triggered_by = models.CharField(max_length=100, blank=True)
    confidence_level = models.PositiveSmallIntegerField(
        default=100,
        validators=[MinValueValidator(0), MaxValueValidator(100)]
    )
    decision_impact = models.CharField(max_length=50, blank=True)
    event_payload = models.JSONField(default=dict, blank=True)
    stability_score = models.FloatField(null=True, blank=True)
    reinforcement_delta = models.FloatField(default=0.0)
    anomaly_detected = models.BooleanField(default=False, db_index=True)
    anomaly_reason = models.TextField(blank=True)
    created_at = models.DateTimeField(default=timezone.now, db_index=True)

    class Meta:
        db_table = 'fusion_audit_log'
        verbose_name = _('Audit Log Entry')
        verbose_name_plural = _('Audit Log Entries')
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['organization', 'created_at']),
            models.Index(fields=['organization', 'user', 'created_at']),
        ]

    def __str__(self):
        return f"{self.action_type} at {self.created_at:%Y-%m-%d %H:%M}"


# =============================================================================
# FUSION SCORE
# =============================================================================

class FusionMetricWeight(models.Model):
    """Weight and normalisation ceiling of one provider metric."""

    provider = models.CharField(max_length=50, db_index=True)
    metric_name = models.CharField(max_length=100)
    weight = models.FloatField(validators=[MinValueValidator(0.0), MaxValueValidator(1.0)])
    normalization_max = models.FloatField(default=100.0)
    description = models.CharField(max_length=255, blank=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = _('Fusion Metric Weight')
        verbose_name_plural = _('Fusion Metric Weights')
        ordering = ['provider', 'metric_name']
        unique_together = ['provider', 'metric_name']

    def __str__(self):
        return f"{self.provider}.{self.metric_name} ({self.weight})"


class FusionMetric(models.Model):
    """Latest normalised value of one metric for one integration."""

    integration = models.ForeignKey(
        'integrations.Integration',
        on_delete=models.CASCADE,
        related_name='fusion_metrics'
    )
    metric_name = models.CharField(max_length=100)
    raw_value = models.FloatField()
    normalized_value = models.FloatField()
    weight = models.FloatField()
    data_source = models.JSONField(default=dict, blank=True)
    synced_at = models.DateTimeField(default=timezone.now)

    class Meta:
        verbose_name = _('Fusion Metric')
        verbose_name_plural = _('Fusion Metrics')
        ordering = ['integration', 'metric_name']
        unique_together = ['integration', 'metric_name']

    def __str__(self):
        return f"{self.integration_id}.{self.metric_name}={self.normalized_value:.3f}"


class FusionScore(OrganizationScopedModel):
    """Weighted health score (0-100) of one integration."""

    class Trend(models.TextChoices):
        UP = 'up', _('Up')
        DOWN = 'down', _('Down')
        STABLE = 'stable', _('Stable')

    integration = models.OneToOneField(
        'integrations.Integration',
        on_delete=models.CASCADE,
        related_name='fusion_score'
    )
    score = models.FloatField()
    breakdown = models.JSONField(default=dict, blank=True)
    trend = models.CharField(max_length=10, choices=Trend.choices, default=Trend.STABLE)
    baseline_score = models.FloatField(default=50.0)
    calculated_at = models.DateTimeField(default=timezone.now)

    class Meta:
        verbose_name = _('Fusion Score')
        verbose_name_plural = _('Fusion Scores')
        ordering = ['-calculated_at']

    def __str__(self):
        return f"{self.integration} score {self.score:.1f} ({self.trend})"


# =============================================================================
# TRUST GRAPH
# =============================================================================

class TrustGraphNode(OrganizationScopedModel):
    """Trust score of a user within an organization."""

    class RiskLevel(models.TextChoices):
        LOW = 'Low', _('Low')
        MODERATE = 'Moderate', _('Moderate')
        HIGH = 'High', _('High')

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='trust_nodes'
    )
    trust_score = models.FloatField(
        default=75.0,
        validators=[MinValueValidator(0.0), MaxValueValidator(100.0)]
    )
    risk_level = models.CharField(max_length=20, choices=RiskLevel.choices, default=RiskLevel.MODERATE)
    total_interactions = models.PositiveIntegerField(default=0)
    last_anomaly = models.DateTimeField(null=True, blank=True)
    behavior_consistency = models.FloatField(default=100.0)
    adaptive_flags = models.PositiveIntegerField(default=0)
    connections = models.JSONField(default=list, blank=True)
    updated_at = models.DateTimeField(default=timezone.now, db_index=True)

    class Meta:
        verbose_name = _('Trust Graph Node')
        verbose_name_plural = _('Trust Graph Nodes')
        ordering = ['trust_score']
        unique_together = ['organization', 'user']

    def __str__(self):
        return f"{self.user} trust {self.trust_score:.1f} ({self.risk_level})"


# =============================================================================
# ADAPTIVE POLICY
# =============================================================================

class AdaptivePolicy(OrganizationScopedModel):
    """Access policy created by the adaptive policy engine or by an admin."""

    class ConditionType(models.TextChoices):
        BEHAVIOR_ANOMALY = 'behavior_anomaly', _('Behavior anomaly')
        LOAD_SPIKE = 'load_spike', _('Load spike')
        AUTH_FAILURE = 'auth_failure', _('Authentication failure')
        MANUAL_OVERRIDE = 'manual_override', _('Manual override')

    class ActionType(models.TextChoices):
        RESTRICT = 'restrict', _('Restrict')
        THROTTLE = 'throttle', _('Throttle')
        ELEVATE = 'elevate', _('Elevate')
        NOTIFY = 'notify', _('Notify')

    class Status(models.TextChoices):
        ACTIVE = 'Active', _('Active')
        SUSPENDED = 'Suspended', _('Suspended')
        EXPIRED = 'Expired', _('Expired')

    uuid = models.UUIDField(default=uuid.uuid4, editable=False, unique=True)
    name = models.CharField(max_length=255)
    target_role = models.CharField(max_length=50, blank=True)
    target_user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name='adaptive_policies'
    )
    target_function = models.CharField(max_length=100, blank=True)
    condition_type = models.CharField(max_length=30, choices=ConditionType.choices)
    condition_threshold = models.FloatField(default=0.0)
    action_type = models.CharField(max_length=20, choices=ActionType.choices)
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.ACTIVE, db_index=True)
    expires_at = models.DateTimeField(null=True, blank=True)
    created_by = models.CharField(max_length=100, default='adaptive-policy-engine')
    notes = models.TextField(blank=True)
    created_at = models.DateTimeField(default=timezone.now, db_index=True)

    class Meta:
        verbose_name = _('Adaptive Policy')
        verbose_name_plural = _('Adaptive Policies')
        ordering = ['-created_at']

    def __str__(self):
        return self.name

    def is_in_force(self, now=None):
        if self.status != self.Status.ACTIVE:
            return False
        return self.expires_at is None or self.expires_at > (now or timezone.now())


class UserRiskScore(OrganizationScopedModel):
    """Latest risk assessment of a user in an organization."""

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='risk_scores'
    )
    risk_score = models.FloatField(default=0.0)
    auth_failures = models.PositiveIntegerField(default=0)
    anomalies = models.PositiveIntegerField(default=0)
    last_violation = models.DateTimeField(null=True, blank=True)
    calculated_at = models.DateTimeField(default=timezone.now)

    class Meta:
        verbose_name = _('User Risk Score')
        verbose_name_plural = _('User Risk Scores')
        ordering = ['-risk_score']
        unique_together = ['organization', 'user']

    def __str__(self):
        return f"{self.user} risk {self.risk_score:.0f}"


# =============================================================================
# GOVERNANCE
# =============================================================================

class GovernanceAudit(OrganizationScopedModel):
    """Governance decision about a trust update or a policy."""

    class Subsystem(models.TextChoices):
        TRUST = 'Trust', _('Trust')
        POLICY = 'Policy', _('Policy')

    class Outcome(models.TextChoices):
        APPROVED = 'Approved', _('Approved')
        DENIED = 'Denied', _('Denied')
        ESCALATED = 'Escalated', _('Escalated')
        DEFERRED = 'Deferred', _('Deferred')

    class Severity(models.TextChoices):
        INFO = 'Info', _('Info')
        WARNING = 'Warning', _('Warning')
        CRITICAL = 'Critical', _('Critical')

    uuid = models.UUIDField(default=uuid.uuid4, editable=False, unique=True)
    source_event_id = models.CharField(max_length=64, blank=True)
    subsystem = models.CharField(max_length=20, choices=Subsystem.choices)
    governance_action = models.CharField(max_length=100)
    justification = models.TextField()
    confidence = models.FloatField(validators=[MinValueValidator(0.0), MaxValueValidator(1.0)])
    outcome = models.CharField(max_length=20, choices=Outcome.choices, db_index=True)
    severity = models.CharField(max_length=20, choices=Severity.choices, default=Severity.INFO)
    reviewer = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='governance_reviews'
    )
    reviewed_at = models.DateTimeField(null=True, blank=True)
    review_notes = models.TextField(blank=True)
    explanation_context = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(default=timezone.now, db_index=True)

    class Meta:
        verbose_name = _('Governance Audit')
        verbose_name_plural = _('Governance Audits')
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.subsystem}: {self.governance_action} ({self.outcome})"


# =============================================================================
# OPTIMIZATION
# =============================================================================

class WorkflowMetric(OrganizationScopedModel):
    """Stability sample of an organization's workflows."""

    stability_index = models.FloatField()
    variance = models.FloatField(default=0.0)
    created_at = models.DateTimeField(default=timezone.now, db_index=True)

    class Meta:
        verbose_name = _('Workflow Metric')
        verbose_name_plural = _('Workflow Metrics')
        ordering = ['-created_at']

    def __str__(self):
        return f"stability {self.stability_index:.2f} / variance {self.variance:.2f}"


class FusionAlert(OrganizationScopedModel):
    """Alert raised for an anomalous audit entry."""

    class Severity(models.TextChoices):
        LOW = 'low', _('Low')
        MODERATE = 'moderate', _('Moderate')
        HIGH = 'high', _('High')
        CRITICAL = 'critical', _('Critical')

    uuid = models.UUIDField(default=uuid.uuid4, editable=False, unique=True)
    audit_entry = models.OneToOneField(
        AuditLogEntry,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='alert'
    )
    event_type = models.CharField(max_length=100)
    severity = models.CharField(max_length=20, choices=Severity.choices, db_index=True)
    message = models.TextField()
    metadata = models.JSONField(default=dict, blank=True)
    acknowledged = models.BooleanField(default=False, db_index=True)
    acknowledged_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+'
    )
    acknowledged_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(default=timezone.now, db_index=True)

    class Meta:
        verbose_name = _('Fusion Alert')
        verbose_name_plural = _('Fusion Alerts')
        ordering = ['-created_at']

    def __str__(self):
        return f"[{self.severity}] {self.event_type}"


class OptimizationParameters(models.Model):
    """Tunable engine parameters of an organization."""

    DEFAULTS = {
        'confidence_weight': 0.50,
        'feedback_weight': 0.50,
        'stability_threshold': 0.85,
    }

    organization = models.OneToOneField(
        'organizations.Organization',
        on_delete=models.CASCADE,
        related_name='optimization_parameters'
    )
    confidence_weight = models.FloatField(default=0.50)
    feedback_weight = models.FloatField(default=0.50)
    stability_threshold = models.FloatField(default=0.85)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = _('Optimization Parameters')
        verbose_name_plural = _('Optimization Parameters')

    def __str__(self):
        return f"Parameters for {self.organization}"

    def as_dict(self):
        return {name: getattr(self, name) for name in self.DEFAULTS}


class OptimizationEvent(OrganizationScopedModel):
    """Recommended parameter change; applied on request."""

    class Action(models.TextChoices):
        PRE_TUNE = 'pre_tune', _('Pre-tune')
        STABILIZE = 'stabilize', _('Stabilize')
        RECALIBRATE = 'recalibrate', _('Recalibrate')

    uuid = models.UUIDField(default=uuid.uuid4, editable=False, unique=True)
    source_event_type = models.CharField(max_length=50)
    predicted_variance = models.FloatField()
    predicted_stability = models.FloatField()
    optimization_action = models.CharField(max_length=20, choices=Action.choices)
    parameter_delta = models.JSONField(default=dict)
    efficiency_index = models.FloatField()
    applied = models.BooleanField(default=False, db_index=True)
    applied_at = models.DateTimeField(null=True, blank=True)
    applied_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+'
    )
    triggered_by = models.CharField(max_length=100, default='optimization-engine')
    created_at = models.DateTimeField(default=timezone.now, db_index=True)

    class Meta:
        verbose_name = _('Optimization Event')
        verbose_name_plural = _('Optimization Events')
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.optimization_action} ({self.source_event_type})"
