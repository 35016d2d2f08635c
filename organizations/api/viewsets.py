"""
Organizations API ViewSets

- OrganizationViewSet: organizations the user belongs to
- MemberViewSet: members of the current organization
- InvitationViewSet: invitations of the current organization
- AcceptInvitationView: accept an invitation by token
"""

from rest_framework import mixins, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.views import APIView

from api.base import APIResponse, OrganizationScopedReadOnlyViewSet
from api.pagination import StandardPagination
from api.exceptions import InsufficientRoleError
from core.permissions import IsOrganizationAdmin, IsOrganizationAdminOrReadOnly, is_platform_admin

from ..models import Organization, OrganizationInvitation, OrganizationMember
from ..services import OrganizationService, get_membership
from .serializers import (
    AcceptInvitationSerializer,
    InvitationCreatedSerializer,
    InvitationCreateSerializer,
    InvitationSerializer,
    MemberRoleSerializer,
    MemberSerializer,
    OrganizationCreateSerializer,
    OrganizationSerializer,
    OrganizationUpdateSerializer,
)

UUID_LOOKUP_REGEX = '[0-9a-f-]{36}'


class OrganizationViewSet(
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    viewsets.GenericViewSet,
):
    """
    Organizations visible to the user.

    Members see their own organizations; platform admins see all of them.
    """

    permission_classes = [IsAuthenticated]
    serializer_class = OrganizationSerializer
    pagination_class = StandardPagination
    lookup_field = 'uuid'
    lookup_value_regex = UUID_LOOKUP_REGEX
    filterset_fields = ['status']
    search_fields = ['name', 'slug']

    def get_queryset(self):
        queryset = Organization.objects.select_related('owner', 'subscription__plan')
        if is_platform_admin(self.request.user):
            return queryset
        return queryset.filter(
            members__user=self.request.user,
            members__is_active=True,
        ).distinct()

    def retrieve(self, request, *args, **kwargs):
        return APIResponse.success(data=self.get_serializer(self.get_object()).data)

    def create(self, request, *args, **kwargs):
        serializer = OrganizationCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        organization = OrganizationService.create_organization(
            name=serializer.validated_data['name'],
            owner=request.user,
            plan=serializer.validated_data.get('plan'),
            slug=serializer.validated_data.get('slug'),
        )
        return APIResponse.created(
            data=OrganizationSerializer(organization, context=self.get_serializer_context()).data,
            message='Organization created successfully',
        )

    def partial_update(self, request, *args, **kwargs):
        organization = self.get_object()
        membership = get_membership(organization, request.user)
        if not is_platform_admin(request.user) and (membership is None or not membership.is_admin):
            raise InsufficientRoleError(required_role='admin')

        serializer = OrganizationUpdateSerializer(
            organization, data=request.data, partial=True, context=self.get_serializer_context()
        )
        serializer.is_valid(raise_exception=True)
        serializer.save()
        return APIResponse.updated(
            data=OrganizationSerializer(organization, context=self.get_serializer_context()).data,
            message='Organization updated successfully',
        )


class MemberViewSet(OrganizationScopedReadOnlyViewSet):
    """
    Members of the current organization.

    PATCH  /members/{uuid}/  - change role (owner/admin)
    DELETE /members/{uuid}/  - remove member (owner/admin)
    """

    queryset = OrganizationMember.objects.filter(is_active=True).select_related('user')
    serializer_class = MemberSerializer
    permission_classes = [IsAuthenticated, IsOrganizationAdminOrReadOnly]
    lookup_field = 'uuid'
    filterset_fields = ['role']
    search_fields = ['user__email', 'user__full_name']
    ordering = ['joined_at']

    def partial_update(self, request, *args, **kwargs):
        member = self.get_object()
        serializer = MemberRoleSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        member = OrganizationService.change_role(member, serializer.validated_data['role'], request.user)
        self.log_access('change_role', member)
        return APIResponse.updated(data=MemberSerializer(member).data, message='Member role updated')

    def destroy(self, request, *args, **kwargs):
        member = self.get_object()
        OrganizationService.remove_member(member, request.user)
        self.log_access('remove_member', member)
        return APIResponse.deleted()


class InvitationViewSet(OrganizationScopedReadOnlyViewSet):
    """
    Invitations of the current organization (owner/admin only).

    POST /invitations/               - invite an email address
    POST /invitations/{uuid}/revoke/ - revoke a pending invitation
    """

    queryset = OrganizationInvitation.objects.select_related('invited_by')
    serializer_class = InvitationSerializer
    permission_classes = [IsAuthenticated, IsOrganizationAdmin]
    lookup_field = 'uuid'
    filterset_fields = ['status', 'role']

    def create(self, request, *args, **kwargs):
        organization = self.get_organization_or_404()
        serializer = InvitationCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        invitation = OrganizationService.invite(
            organization,
            email=serializer.validated_data['email'],
            role=serializer.validated_data['role'],
            invited_by=request.user,
        )
        self.log_access('invite', invitation)
        return APIResponse.created(
            data=InvitationCreatedSerializer(invitation).data,
            message='Invitation created successfully',
        )

    @action(detail=True, methods=['post'])
    def revoke(self, request, uuid=None):
        invitation = OrganizationService.revoke_invitation(self.get_object(), request.user)
        return APIResponse.updated(data=InvitationSerializer(invitation).data, message='Invitation revoked')


class AcceptInvitationView(APIView):
    """Accept an invitation addressed to the authenticated user's email."""

    permission_classes = [IsAuthenticated]

    def post(self, request):
        serializer = AcceptInvitationSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        membership = OrganizationService.accept_invitation(serializer.validated_data['token'], request.user)
        return APIResponse.success(
            data={
                'organization': str(membership.organization.uuid),
                'organization_slug': membership.organization.slug,
                'role': membership.role,
            },
            message='Invitation accepted',
        )
