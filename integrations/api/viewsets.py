"""
Integrations API ViewSets

- IntegrationViewSet: connectors of the current organization
- IntegrationTrackingViewSet: integration health across organizations (admin console)
"""

from datetime import timedelta

from django.utils import timezone
from rest_framework import mixins, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated

from api.base import APIResponse, OrganizationScopedReadOnlyViewSet
from api.exceptions import ExternalServiceError, InvalidInputError
from core.permissions import IsOrganizationAdminOrReadOnly, IsPlatformAdmin
from fusion.engines.scoring import sync_and_calculate

from ..models import Integration
from ..providers import RateLimitError, get_provider
from ..services import IntegrationService, IntegrationTrackingService
from .serializers import (
    IntegrationConnectSerializer,
    IntegrationEventSerializer,
    IntegrationMetricSerializer,
    IntegrationSerializer,
    IntegrationUpdateSerializer,
)


class IntegrationViewSet(mixins.UpdateModelMixin, OrganizationScopedReadOnlyViewSet):
    """
    Integrations of the current organization.

    POST  /integrations/                       - connect a provider (owner/admin)
    PATCH /integrations/{uuid}/                - rename, poll interval, config (owner/admin)
    POST  /integrations/{uuid}/disconnect/     - wipe credentials and stop polling
    POST  /integrations/{uuid}/poll/           - poll now and refresh the Fusion Score
    GET   /integrations/{uuid}/metrics/        - metric history (?metric=&days=)
    GET   /integrations/{uuid}/latest-metrics/ - latest value per metric
    GET   /integrations/{uuid}/events/         - connection and polling history
    """

    queryset = Integration.objects.select_related('connected_by', 'credentials', 'fusion_score')
    serializer_class = IntegrationSerializer
    permission_classes = [IsAuthenticated, IsOrganizationAdminOrReadOnly]
    lookup_field = 'uuid'
    filterset_fields = ['provider', 'status']
    search_fields = ['name', 'provider']
    http_method_names = ['get', 'post', 'patch', 'head', 'options']

    def create(self, request, *args, **kwargs):
        organization = self.get_organization_or_404()
        serializer = IntegrationConnectSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        integration = IntegrationService.connect(
            organization,
            provider=data['provider'],
            user=request.user,
            credentials={
                'access_token': data.get('access_token'),
                'refresh_token': data.get('refresh_token'),
                'api_key': data.get('api_key'),
                'expires_at': data.get('expires_at'),
            },
            config=data.get('config'),
            name=data.get('name', ''),
            poll_interval_minutes=data.get('poll_interval_minutes'),
        )
        self.log_access('connect', integration)
        return APIResponse.created(
            data=IntegrationSerializer(integration).data,
            message=f"{integration.display_name} connected",
        )

    def update(self, request, *args, **kwargs):
        integration = self.get_object()
        serializer = IntegrationUpdateSerializer(integration, data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        serializer.save()
        self.log_access('update', integration)
        return APIResponse.updated(data=IntegrationSerializer(integration).data)

    @action(detail=True, methods=['post'])
    def disconnect(self, request, uuid=None):
        integration = IntegrationService.disconnect(self.get_object(), request.user)
        self.log_access('disconnect', integration)
        return APIResponse.updated(data=IntegrationSerializer(integration).data, message='Integration disconnected')

    @action(detail=True, methods=['post'])
    def poll(self, request, uuid=None):
        integration = self.get_object()
        if integration.status != Integration.Status.ACTIVE:
            raise InvalidInputError(detail=f"Only active integrations can be polled (status: {integration.status}).")

        try:
            result = IntegrationService.poll(integration)
        except RateLimitError as e:
            raise ExternalServiceError(
                service_name=integration.get_provider_display(),
                detail=f"Rate limited by {integration.get_provider_display()}; retry in {e.retry_after}s.",
            )

        fusion = sync_and_calculate(integration) if result.success else None
        self.log_access('poll', integration)
        return APIResponse.success(
            data={
                'success': result.success,
                'status': result.status,
                'metrics': result.metrics,
                'error': result.error_message,
                'fusion': fusion,
            },
            message='Poll completed' if result.success else 'Poll failed',
        )

    @action(detail=True, methods=['post'], url_path='test-connection')
    def test_connection(self, request, uuid=None):
        integration = self.get_object()
        success, message = get_provider(integration).test_connection()
        if not success:
            raise ExternalServiceError(service_name=integration.get_provider_display(), detail=message)
        return APIResponse.success(data={'success': True}, message=message)

    @action(detail=True, methods=['get'])
    def metrics(self, request, uuid=None):
        integration = self.get_object()
        since = None
        days = request.query_params.get('days')
        if days:
            try:
                since = timezone.now() - timedelta(days=int(days))
            except ValueError:
                raise InvalidInputError(detail='days must be an integer.')

        queryset = IntegrationService.metrics_history(
            integration, metric_name=request.query_params.get('metric'), since=since
        )
        page = self.paginate_queryset(queryset)
        if page is not None:
            return self.get_paginated_response(IntegrationMetricSerializer(page, many=True).data)
        return APIResponse.success(data=IntegrationMetricSerializer(queryset, many=True).data)

    @action(detail=True, methods=['get'], url_path='latest-metrics')
    def latest_metrics(self, request, uuid=None):
        return APIResponse.success(data=IntegrationService.latest_metrics(self.get_object()))

    @action(detail=True, methods=['get'])
    def events(self, request, uuid=None):
        queryset = self.get_object().events.all()
        page = self.paginate_queryset(queryset)
        if page is not None:
            return self.get_paginated_response(IntegrationEventSerializer(page, many=True).data)
        return APIResponse.success(data=IntegrationEventSerializer(queryset, many=True).data)


class IntegrationTrackingViewSet(viewsets.ViewSet):
    """Integration tracking for the admin console."""

    permission_classes = [IsAuthenticated, IsPlatformAdmin]

    def list(self, request):
        return APIResponse.success(data=IntegrationTrackingService.get_summary())
