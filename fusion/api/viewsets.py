"""
Fusion API ViewSets

Organization-scoped access to engine output. Endpoints that run an engine
require the operator role, an unrestricted user and a plan with
intelligence enabled.
"""

from django.contrib.auth import get_user_model
from rest_framework import mixins, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated

from api.base import APIResponse, OrganizationContextMixin, OrganizationScopedReadOnlyViewSet
from api.exceptions import InvalidInputError
from core.permissions import (
    IsOperator,
    IsOrganizationAdmin,
    IsOrganizationMember,
    IsPlatformAdmin,
)
from integrations.models import Integration

from ..engines.alerts import AlertEngine
from ..engines.governance import GovernanceEngine
from ..engines.optimization import OptimizationEngine, get_parameters
from ..engines.policy import AdaptivePolicyEngine
from ..engines.scoring import organization_fusion_score, sync_and_calculate
from ..engines.trust import TrustScoringEngine, trust_distribution
from ..models import (
    AdaptivePolicy,
    AuditLogEntry,
    FusionAlert,
    FusionMetricWeight,
    FusionScore,
    GovernanceAudit,
    OptimizationEvent,
    TrustGraphNode,
    UserRiskScore,
)
from .permissions import HasIntelligenceEntitlement, NotRestrictedByPolicy
from .serializers import (
    AdaptivePolicyCreateSerializer,
    AdaptivePolicySerializer,
    AuditLogEntrySerializer,
    FusionAlertSerializer,
    FusionMetricWeightSerializer,
    FusionScoreSerializer,
    GovernanceAuditSerializer,
    GovernanceReviewSerializer,
    OptimizationEventSerializer,
    OptimizationParametersSerializer,
    TrustGraphNodeSerializer,
    UserRiskScoreSerializer,
)

User = get_user_model()


class EngineRunMixin:
    """Stricter permissions for actions that run an engine."""

    engine_actions = ('run',)
    admin_actions = ()

    def get_permissions(self):
        if self.action in self.engine_actions:
            return [
                IsAuthenticated(),
                IsOrganizationMember(),
                IsOperator(),
                NotRestrictedByPolicy(),
                HasIntelligenceEntitlement(),
            ]
        if self.action in self.admin_actions:
            return [IsAuthenticated(), IsOrganizationAdmin(), NotRestrictedByPolicy()]
        return super().get_permissions()


# =============================================================================
# FUSION SCORE
# =============================================================================

class FusionScoreViewSet(EngineRunMixin, OrganizationScopedReadOnlyViewSet):
    """
    GET  /scores/              - per-integration scores
    GET  /scores/overview/     - organization score and top influencers
    POST /scores/recalculate/  - resync and rescore active integrations
    """

    queryset = FusionScore.objects.select_related('integration')
    serializer_class = FusionScoreSerializer
    filterset_fields = ['trend', 'integration__provider']
    ordering_fields = ['score', 'calculated_at']
    engine_actions = ('recalculate',)

    @action(detail=False, methods=['get'])
    def overview(self, request):
        return APIResponse.success(data=organization_fusion_score(self.get_organization_or_404()))

    @action(detail=False, methods=['post'])
    def recalculate(self, request):
        organization = self.get_organization_or_404()
        integrations = Integration.objects.filter(organization=organization, status=Integration.Status.ACTIVE)
        results = {str(integration.uuid): sync_and_calculate(integration) for integration in integrations}
        self.log_access('recalculate')
        return APIResponse.success(
            data={'integrations': results, 'overview': organization_fusion_score(organization)},
            message=f"Recalculated {len(results)} fusion scores",
        )


# =============================================================================
# TRUST & POLICY
# =============================================================================

class TrustGraphViewSet(EngineRunMixin, OrganizationScopedReadOnlyViewSet):
    """
    GET  /trust/               - trust nodes, lowest first
    GET  /trust/distribution/  - risk level counts
    POST /trust/run/           - run the trust scoring engine
    """

    queryset = TrustGraphNode.objects.select_related('user')
    serializer_class = TrustGraphNodeSerializer
    filterset_fields = ['risk_level']
    ordering_fields = ['trust_score', 'updated_at']

    @action(detail=False, methods=['get'])
    def distribution(self, request):
        return APIResponse.success(data=trust_distribution(self.get_organization_or_404()))

    @action(detail=False, methods=['post'])
    def run(self, request):
        result = TrustScoringEngine(self.get_organization_or_404()).run()
        self.log_access('run')
        return APIResponse.success(data=result, message='Trust scoring completed')


class AdaptivePolicyViewSet(EngineRunMixin, OrganizationScopedReadOnlyViewSet):
    """
    GET  /policies/               - policies of the organization
    POST /policies/               - create a manual policy (owner/admin)
    POST /policies/{uuid}/suspend/ - suspend an active policy (owner/admin)
    POST /policies/run/           - run the adaptive policy engine
    """

    queryset = AdaptivePolicy.objects.select_related('target_user')
    serializer_class = AdaptivePolicySerializer
    lookup_field = 'uuid'
    filterset_fields = ['status', 'action_type', 'condition_type']
    admin_actions = ('create', 'suspend')

    def create(self, request, *args, **kwargs):
        organization = self.get_organization_or_404()
        serializer = AdaptivePolicyCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        target_user = None
        if data.get('target_user_email'):
            target_user = User.objects.filter(email__iexact=data['target_user_email']).first()
            if target_user is None:
                raise InvalidInputError(detail='Target user not found.')

        policy = AdaptivePolicyEngine.create_manual(
            organization,
            created_by=request.user,
            name=data['name'],
            action_type=data['action_type'],
            target_user=target_user,
            target_role=data.get('target_role', ''),
            target_function=data.get('target_function', '*'),
            expires_at=data.get('expires_at'),
            notes=data.get('notes', ''),
        )
        self.log_access('create', policy)
        return APIResponse.created(data=AdaptivePolicySerializer(policy).data, message='Policy created')

    @action(detail=True, methods=['post'])
    def suspend(self, request, uuid=None):
        policy = AdaptivePolicyEngine.suspend(self.get_object(), request.user)
        self.log_access('suspend', policy)
        return APIResponse.updated(data=AdaptivePolicySerializer(policy).data, message='Policy suspended')

    @action(detail=False, methods=['post'])
    def run(self, request):
        result = AdaptivePolicyEngine(self.get_organization_or_404()).run()
        self.log_access('run')
        return APIResponse.success(data=result, message='Adaptive policy analysis completed')


class UserRiskScoreViewSet(OrganizationScopedReadOnlyViewSet):
    queryset = UserRiskScore.objects.select_related('user')
    serializer_class = UserRiskScoreSerializer
    ordering_fields = ['risk_score', 'calculated_at']


# =============================================================================
# GOVERNANCE
# =============================================================================

class GovernanceAuditViewSet(EngineRunMixin, OrganizationScopedReadOnlyViewSet):
    """
    GET  /governance/                 - governance audits
    GET  /governance/summary/         - counts over ?days= (default 7)
    POST /governance/{uuid}/review/   - decide an escalated audit
    POST /governance/run/             - run the governance engine
    """

    queryset = GovernanceAudit.objects.select_related('reviewer')
    serializer_class = GovernanceAuditSerializer
    lookup_field = 'uuid'
    filterset_fields = ['subsystem', 'outcome', 'severity']
    admin_actions = ('review',)

    @action(detail=False, methods=['get'])
    def summary(self, request):
        try:
            days = int(request.query_params.get('days', 7))
        except ValueError:
            raise InvalidInputError(detail='days must be an integer.')
        if days < 1:
            raise InvalidInputError(detail='days must be positive.')
        return APIResponse.success(data=GovernanceEngine.summary(self.get_organization_or_404(), days=days))

    @action(detail=True, methods=['post'])
    def review(self, request, uuid=None):
        serializer = GovernanceReviewSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        audit = GovernanceEngine.review(
            self.get_object(),
            reviewer=request.user,
            outcome=serializer.validated_data['outcome'],
            notes=serializer.validated_data['notes'],
        )
        self.log_access('review', audit)
        return APIResponse.updated(data=GovernanceAuditSerializer(audit).data, message='Review recorded')

    @action(detail=False, methods=['post'])
    def run(self, request):
        result = GovernanceEngine(self.get_organization_or_404()).run()
        self.log_access('run')
        return APIResponse.success(data=result, message='Governance review completed')


# =============================================================================
# OPTIMIZATION & ALERTS
# =============================================================================

class OptimizationEventViewSet(EngineRunMixin, OrganizationScopedReadOnlyViewSet):
    """
    GET  /optimization/               - recommendations
    POST /optimization/run/           - compute trends and recommend
    POST /optimization/{uuid}/apply/  - apply a recommendation
    """

    queryset = OptimizationEvent.objects.select_related('applied_by')
    serializer_class = OptimizationEventSerializer
    lookup_field = 'uuid'
    filterset_fields = ['optimization_action', 'applied']
    engine_actions = ('run', 'apply')

    @action(detail=False, methods=['post'])
    def run(self, request):
        result = OptimizationEngine(self.get_organization_or_404()).run(
            triggered_by=f"user:{request.user.email}",
            user=request.user,
        )
        event = result['optimization']
        self.log_access('run', event)
        return APIResponse.success(data={
            'trends': result['trends'],
            'optimization_recommended': result['optimization_recommended'],
            'optimization': OptimizationEventSerializer(event).data if event else None,
        })

    @action(detail=True, methods=['post'])
    def apply(self, request, uuid=None):
        event = self.get_object()
        parameters = OptimizationEngine.apply(event, request.user)
        event.refresh_from_db()
        self.log_access('apply', event)
        return APIResponse.updated(
            data={
                'optimization': OptimizationEventSerializer(event).data,
                'parameters': OptimizationParametersSerializer(parameters).data,
            },
            message='Optimization applied',
        )


class OptimizationParametersViewSet(OrganizationContextMixin, viewsets.ViewSet):
    permission_classes = [IsAuthenticated, IsOrganizationMember]

    def list(self, request):
        parameters = get_parameters(self.get_organization_or_404())
        return APIResponse.success(data=OptimizationParametersSerializer(parameters).data)


class FusionAlertViewSet(OrganizationScopedReadOnlyViewSet):
    queryset = FusionAlert.objects.select_related('acknowledged_by')
    serializer_class = FusionAlertSerializer
    lookup_field = 'uuid'
    filterset_fields = ['severity', 'acknowledged', 'event_type']

    @action(detail=True, methods=['post'])
    def acknowledge(self, request, uuid=None):
        alert = AlertEngine.acknowledge(self.get_object(), request.user)
        self.log_access('acknowledge', alert)
        return APIResponse.updated(data=FusionAlertSerializer(alert).data, message='Alert acknowledged')


class AuditLogViewSet(OrganizationScopedReadOnlyViewSet):
    queryset = AuditLogEntry.objects.select_related('user')
    serializer_class = AuditLogEntrySerializer
    filterset_fields = ['action_type', 'anomaly_detected', 'triggered_by']
    search_fields = ['decision_summary', 'action_type']


# =============================================================================
# METRIC WEIGHTS
# =============================================================================

class FusionMetricWeightViewSet(mixins.UpdateModelMixin, viewsets.ReadOnlyModelViewSet):
    """Platform-wide weights; readable by any user, editable by platform admins."""

    queryset = FusionMetricWeight.objects.all()
    serializer_class = FusionMetricWeightSerializer
    permission_classes = [IsAuthenticated]
    filterset_fields = ['provider']
    http_method_names = ['get', 'patch', 'head', 'options']
    pagination_class = None

    def get_permissions(self):
        if self.action in ('update', 'partial_update'):
            return [IsAuthenticated(), IsPlatformAdmin()]
        return super().get_permissions()

    def list(self, request, *args, **kwargs):
        serializer = self.get_serializer(self.filter_queryset(self.get_queryset()), many=True)
        return APIResponse.success(data=serializer.data)

    def retrieve(self, request, *args, **kwargs):
        return APIResponse.success(data=self.get_serializer(self.get_object()).data)

    def update(self, request, *args, **kwargs):
        weight = self.get_object()
        serializer = self.get_serializer(weight, data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        serializer.save()
        return APIResponse.updated(data=serializer.data)
