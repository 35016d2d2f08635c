"""
Billing API ViewSets
"""

from rest_framework import viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated

from api.base import APIResponse, OrganizationContextMixin
from api.exceptions import ResourceNotFoundError
from core.permissions import (
    IsOrganizationAdminOrReadOnly,
    IsOrganizationMember,
    IsOrganizationOwner,
    IsPlatformAdmin,
)

from ..models import Plan, Subscription
from ..services import BillingOverviewService, BillingService
from .serializers import (
    BillingOverviewSerializer,
    CancelSubscriptionSerializer,
    ChangePlanSerializer,
    PlanSerializer,
    SubscriptionSerializer,
)


class PlanViewSet(viewsets.ReadOnlyModelViewSet):
    """
    Read-only plan catalog.
    """
    queryset = Plan.objects.filter(is_active=True).order_by('sort_order', 'price_monthly')
    serializer_class = PlanSerializer
    permission_classes = [IsAuthenticated]
    filterset_fields = ['tier']
    lookup_field = 'slug'
    pagination_class = None

    def list(self, request, *args, **kwargs):
        serializer = self.get_serializer(self.filter_queryset(self.get_queryset()), many=True)
        return APIResponse.success(data=serializer.data)

    def retrieve(self, request, *args, **kwargs):
        return APIResponse.success(data=self.get_serializer(self.get_object()).data)


class CurrentSubscriptionViewSet(OrganizationContextMixin, viewsets.ViewSet):
    """
    The current organization's subscription.

    GET    /subscription/              - subscription and entitlements
    POST   /subscription/change-plan/  - move to another plan (owner/admin)
    POST   /subscription/cancel/       - cancel now or at period end (owner)
    """
    permission_classes = [IsAuthenticated, IsOrganizationMember, IsOrganizationAdminOrReadOnly]

    def get_permissions(self):
        if self.action == 'cancel':
            return [IsAuthenticated(), IsOrganizationMember(), IsOrganizationOwner()]
        return super().get_permissions()

    def get_subscription(self) -> Subscription:
        organization = self.get_organization_or_404()
        subscription = (
            Subscription.objects.select_related('plan', 'organization')
            .filter(organization=organization)
            .first()
        )
        if subscription is None:
            raise ResourceNotFoundError(resource_type='subscription')
        return subscription

    def list(self, request):
        return APIResponse.success(data=SubscriptionSerializer(self.get_subscription()).data)

    @action(detail=False, methods=['post'], url_path='change-plan')
    def change_plan(self, request):
        subscription = self.get_subscription()
        serializer = ChangePlanSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        subscription = BillingService.change_plan(
            subscription,
            serializer.validated_data['plan'],
            billing_cycle=serializer.validated_data.get('billing_cycle'),
            actor=request.user,
        )
        self.log_access('change_plan', subscription)
        return APIResponse.updated(data=SubscriptionSerializer(subscription).data, message='Plan changed')

    @action(detail=False, methods=['post'])
    def cancel(self, request):
        subscription = self.get_subscription()
        serializer = CancelSubscriptionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        subscription = BillingService.cancel(
            subscription,
            at_period_end=serializer.validated_data['at_period_end'],
            reason=serializer.validated_data['reason'],
            actor=request.user,
        )
        self.log_access('cancel', subscription)
        return APIResponse.updated(data=SubscriptionSerializer(subscription).data, message='Subscription canceled')


class BillingOverviewViewSet(viewsets.ViewSet):
    """Platform billing overview for the admin console."""
    permission_classes = [IsAuthenticated, IsPlatformAdmin]

    def list(self, request):
        overview = BillingOverviewService.get_overview()
        return APIResponse.success(data=BillingOverviewSerializer(overview).data)
