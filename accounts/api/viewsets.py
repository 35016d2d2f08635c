"""
Accounts API ViewSets

- ProfileView: current user profile
- UserAdminViewSet: admin console user management (platform admins only)
"""

from django.contrib.auth import get_user_model
from rest_framework import mixins, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.views import APIView

from api.base import APIResponse
from api.pagination import StandardPagination
from core.permissions import IsPlatformAdmin
from organizations.models import Organization

from ..services import UserManagementService
from .serializers import ProfileSerializer, UserAdminUpdateSerializer, UserListSerializer

User = get_user_model()


class ProfileView(APIView):
    """GET/PATCH the authenticated user's profile."""

    permission_classes = [IsAuthenticated]

    def get(self, request):
        return APIResponse.success(data=ProfileSerializer(request.user).data)

    def patch(self, request):
        serializer = ProfileSerializer(request.user, data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        serializer.save()
        return APIResponse.updated(data=serializer.data, message='Profile updated successfully')


class UserAdminViewSet(
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    viewsets.GenericViewSet,
):
    """
    Platform user management.

    Query params for list:
    - search: email or name fragment
    - role: platform role
    - organization: organization UUID
    - is_active: true/false
    """

    permission_classes = [IsAuthenticated, IsPlatformAdmin]
    serializer_class = UserListSerializer
    pagination_class = StandardPagination
    lookup_field = 'uuid'

    def get_queryset(self):
        params = self.request.query_params
        organization = None
        if params.get('organization'):
            organization = Organization.objects.filter(uuid=params['organization']).first()
            if organization is None:
                return User.objects.none()

        is_active = params.get('is_active')
        if is_active is not None:
            is_active = is_active.lower() in ('true', '1', 'yes')

        return UserManagementService.list_users(
            search=params.get('search'),
            role=params.get('role'),
            organization=organization,
            is_active=is_active,
        )

    def retrieve(self, request, *args, **kwargs):
        return APIResponse.success(data=self.get_serializer(self.get_object()).data)

    def partial_update(self, request, *args, **kwargs):
        user = self.get_object()
        serializer = UserAdminUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        user = UserManagementService.update_user(user, request.user, **serializer.validated_data)
        return APIResponse.updated(data=UserListSerializer(user).data, message='User updated successfully')

    def destroy(self, request, *args, **kwargs):
        UserManagementService.delete_user(self.get_object(), request.user)
        return APIResponse.deleted()

    @action(detail=True, methods=['post'])
    def deactivate(self, request, uuid=None):
        """Deactivate a user without deleting data."""
        user = UserManagementService.deactivate_user(self.get_object(), request.user)
        return APIResponse.updated(data=UserListSerializer(user).data, message='User deactivated')

    @action(detail=False, methods=['get'])
    def stats(self, request):
        """User totals for the admin console."""
        return APIResponse.success(data=UserManagementService.user_statistics())
