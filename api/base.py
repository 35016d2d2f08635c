"""
API Base Classes - Organization-Scoped Foundation for the Core314 API

This module provides the foundational classes for building organization-aware
REST APIs:
- APIResponse: standard response envelope helpers
- StandardPagination (re-exported from api.pagination)
- OrganizationContextMixin: access to request.organization
- OrganizationScopedViewSet / OrganizationScopedReadOnlyViewSet: querysets
  filtered to the current organization

All organization data views inherit from these classes so that:
1. Rows from other organizations are never returned
2. Responses share one format
3. Access is logged for audit
"""

import logging
from typing import Any, Dict, Optional

from django.db.models import QuerySet
from django.utils import timezone

from rest_framework import status
from rest_framework.viewsets import ModelViewSet, ReadOnlyModelViewSet
from rest_framework.response import Response
from rest_framework.request import Request
from rest_framework.permissions import IsAuthenticated
from core.permissions import IsOrganizationMember

from .exceptions import OrganizationNotFoundError
from .pagination import StandardPagination

logger = logging.getLogger(__name__)
security_logger = logging.getLogger('security.viewsets')


# =============================================================================
# STANDARD RESPONSE HELPERS
# =============================================================================

class APIResponse:
    """
    Standardized API response format for consistent client handling.

    All responses follow this structure:
    {
        "success": bool,
        "data": {...} | [...],
        "message": str | null,
        "errors": [...] | null,
        "meta": {
            "timestamp": "ISO8601",
            "pagination": {...} | null
        }
    }
    """

    @staticmethod
    def success(
        data: Any = None,
        message: str = None,
        status_code: int = status.HTTP_200_OK,
        meta: Dict = None,
    ) -> Response:
        """Create a successful response."""
        response_data = {
            "success": True,
            "data": data,
            "message": message,
            "errors": None,
            "meta": {
                "timestamp": timezone.now().isoformat(),
                **(meta or {})
            }
        }
        return Response(response_data, status=status_code)

    @staticmethod
    def created(
        data: Any = None,
        message: str = "Resource created successfully",
        meta: Dict = None
    ) -> Response:
        """Create a 201 Created response."""
        return APIResponse.success(
            data=data,
            message=message,
            status_code=status.HTTP_201_CREATED,
            meta=meta
        )

    @staticmethod
    def updated(
        data: Any = None,
        message: str = "Resource updated successfully",
        meta: Dict = None
    ) -> Response:
        """Create a successful update response."""
        return APIResponse.success(data=data, message=message, meta=meta)

    @staticmethod
    def deleted() -> Response:
        """Create a 204 No Content response for deletions."""
        return Response(status=status.HTTP_204_NO_CONTENT)


# =============================================================================
# ORGANIZATION-SCOPED BASE CLASSES
# =============================================================================

class OrganizationContextMixin:
    """
    Mixin providing organization context utilities for views.
    """

    def get_organization(self) -> Optional[Any]:
        """Get the current organization from request."""
        return getattr(self.request, 'organization', None)

    def get_organization_or_404(self) -> Any:
        """Get the current organization or raise OrganizationNotFoundError."""
        organization = self.get_organization()
        if not organization:
            raise OrganizationNotFoundError()
        return organization

    def add_organization_to_serializer_context(self, context: Dict) -> Dict:
        """Add organization to serializer context."""
        context['organization'] = self.get_organization()
        context['user'] = self.request.user
        return context

    def log_access(self, action: str, instance=None) -> None:
        organization = self.get_organization()
        security_logger.info(
            f"{self.__class__.__name__}.{action} by user={getattr(self.request.user, 'pk', None)} "
            f"org={getattr(organization, 'slug', None)} "
            f"object={getattr(instance, 'pk', None)}"
        )


class _OrganizationScopedMixin(OrganizationContextMixin):
    """Shared queryset scoping and envelope responses."""

    permission_classes = [IsAuthenticated, IsOrganizationMember]
    pagination_class = StandardPagination
    organization_field = 'organization'  # Override in subclass if different

    def get_queryset(self) -> QuerySet:
        """
        Filter queryset to the current organization.
        Without an organization context the queryset is empty.
        """
        queryset = super().get_queryset()
        organization = self.get_organization()

        if not self.organization_field:
            return queryset
        if organization is None:
            return queryset.none()
        return queryset.filter(**{self.organization_field: organization})

    def get_serializer_context(self) -> Dict:
        """Add organization to serializer context."""
        context = super().get_serializer_context()
        return self.add_organization_to_serializer_context(context)

    def list(self, request, *args, **kwargs):
        """Override to return standardized paginated response."""
        queryset = self.filter_queryset(self.get_queryset())

        page = self.paginate_queryset(queryset)
        if page is not None:
            serializer = self.get_serializer(page, many=True)
            return self.get_paginated_response(serializer.data)

        serializer = self.get_serializer(queryset, many=True)
        return APIResponse.success(data=serializer.data)

    def retrieve(self, request, *args, **kwargs):
        """Override to return standardized response."""
        instance = self.get_object()
        self.log_access('retrieve', instance)
        serializer = self.get_serializer(instance)
        return APIResponse.success(data=serializer.data)

    def get_model_name(self) -> str:
        """Get human-readable model name for messages."""
        if getattr(self, 'queryset', None) is not None:
            return str(self.queryset.model._meta.verbose_name).title()
        return "Resource"


class OrganizationScopedViewSet(_OrganizationScopedMixin, ModelViewSet):
    """
    Base ModelViewSet with automatic organization scoping.

    Subclasses should define:
    - organization_field: lookup path to the organization FK
      (default: 'organization')

    Usage:
        class IntegrationViewSet(OrganizationScopedViewSet):
            queryset = Integration.objects.all()
            serializer_class = IntegrationSerializer
    """

    def perform_create(self, serializer):
        """Create with the current organization when the model owns one."""
        organization = self.get_organization_or_404()
        if self.organization_field == 'organization':
            serializer.save(organization=organization)
        else:
            serializer.save()

    def create(self, request, *args, **kwargs):
        """Override to return standardized response."""
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        self.perform_create(serializer)
        self.log_access('create', serializer.instance)
        return APIResponse.created(
            data=serializer.data,
            message=f"{self.get_model_name()} created successfully"
        )

    def update(self, request, *args, **kwargs):
        """Override to return standardized response."""
        partial = kwargs.pop('partial', False)
        instance = self.get_object()
        serializer = self.get_serializer(instance, data=request.data, partial=partial)
        serializer.is_valid(raise_exception=True)
        self.perform_update(serializer)
        self.log_access('update', instance)
        return APIResponse.updated(
            data=serializer.data,
            message=f"{self.get_model_name()} updated successfully"
        )

    def destroy(self, request, *args, **kwargs):
        """Override to return standardized response."""
        instance = self.get_object()
        self.log_access('destroy', instance)
        self.perform_destroy(instance)
        return APIResponse.deleted()


class OrganizationScopedReadOnlyViewSet(_OrganizationScopedMixin, ReadOnlyModelViewSet):
    """
    Read-only ViewSet with organization scoping.
    Use for engine output that is only written by the engines themselves.
    """
