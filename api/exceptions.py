"""
API Exceptions - Custom Exception Classes for the Core314 API

Services raise these exceptions directly; the exception handler renders them
in the standard envelope:
{
    "success": false,
    "message": "Human-readable message",
    "error_code": "MACHINE_READABLE_CODE",
    "errors": [...],
    "meta": {...}
}
"""

import logging
from typing import Any, Dict, List

from django.utils import timezone
from django.utils.translation import gettext_lazy as _

from rest_framework import status
from rest_framework.exceptions import APIException, ValidationError
from rest_framework.views import exception_handler
from rest_framework.response import Response

logger = logging.getLogger(__name__)


# =============================================================================
# BASE EXCEPTIONS
# =============================================================================

class Core314APIException(APIException):
    """
    Base exception for all Core314 API errors.

    Attributes:
        status_code: HTTP status code
        default_detail: Default error message
        default_code: Machine-readable error code
        error_code: Specific error code for this instance
        extra_data: Additional data to include in response meta
    """

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = _("An unexpected error occurred.")
    default_code = "ERROR"

    def __init__(
        self,
        detail: str = None,
        code: str = None,
        extra_data: Dict = None,
        **kwargs
    ):
        self.error_code = code or self.default_code
        self.extra_data = extra_data or {}

        if detail is None:
            detail = str(self.default_detail)

        super().__init__(detail=detail, code=code)


# =============================================================================
# ORGANIZATION EXCEPTIONS
# =============================================================================

class OrganizationNotFoundError(Core314APIException):
    """Raised when no organization context is found."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = _("No organization context found. Send the X-Organization-ID header.")
    default_code = "ORGANIZATION_NOT_FOUND"


# =============================================================================
# FEATURE & PLAN EXCEPTIONS
# =============================================================================

class FeatureNotAvailableError(Core314APIException):
    """Raised when trying to use a feature not included in plan."""

    status_code = status.HTTP_403_FORBIDDEN
    default_detail = _("This feature is not available in your current plan.")
    default_code = "FEATURE_NOT_AVAILABLE"

    def __init__(self, feature_name: str = None, **kwargs):
        detail = str(self.default_detail)
        extra_data = kwargs.pop('extra_data', {})

        if feature_name:
            detail = f"The '{feature_name}' feature is not available in your current plan."
            extra_data['feature'] = feature_name

        super().__init__(detail=detail, extra_data=extra_data, **kwargs)


class PlanLimitExceededError(Core314APIException):
    """Raised when a plan limit is exceeded."""

    status_code = status.HTTP_403_FORBIDDEN
    default_detail = _("You have reached the limit for your current plan.")
    default_code = "PLAN_LIMIT_EXCEEDED"

    def __init__(
        self,
        limit_name: str = None,
        current_usage: int = None,
        max_allowed: int = None,
        **kwargs
    ):
        detail = str(self.default_detail)
        extra_data = kwargs.pop('extra_data', {})

        if limit_name:
            extra_data['limit_name'] = limit_name
            detail = f"You have reached the {limit_name} limit for your current plan."

        if current_usage is not None and max_allowed is not None:
            extra_data['current_usage'] = current_usage
            extra_data['max_allowed'] = max_allowed
            detail = f"{detail} Current: {current_usage}/{max_allowed}."

        super().__init__(detail=detail, extra_data=extra_data, **kwargs)


# =============================================================================
# RESOURCE EXCEPTIONS
# =============================================================================

class ResourceNotFoundError(Core314APIException):
    """Raised when a requested resource is not found."""

    status_code = status.HTTP_404_NOT_FOUND
    default_detail = _("The requested resource was not found.")
    default_code = "NOT_FOUND"

    def __init__(self, resource_type: str = None, resource_id: Any = None, **kwargs):
        detail = str(self.default_detail)
        extra_data = kwargs.pop('extra_data', {})

        if resource_type:
            extra_data['resource_type'] = resource_type
            detail = f"{resource_type} not found."

        if resource_id:
            extra_data['resource_id'] = str(resource_id)
            detail = f"{resource_type or 'Resource'} with ID '{resource_id}' not found."

        super().__init__(detail=detail, extra_data=extra_data, **kwargs)


class ResourceAlreadyExistsError(Core314APIException):
    """Raised when trying to create a duplicate resource."""

    status_code = status.HTTP_409_CONFLICT
    default_detail = _("A resource with these details already exists.")
    default_code = "ALREADY_EXISTS"

    def __init__(self, resource_type: str = None, **kwargs):
        detail = kwargs.pop('detail', None) or str(self.default_detail)
        extra_data = kwargs.pop('extra_data', {})

        if resource_type:
            extra_data['resource_type'] = resource_type
            if detail == str(self.default_detail):
                detail = f"A {resource_type} with these details already exists."

        super().__init__(detail=detail, extra_data=extra_data, **kwargs)


class ResourceStateError(Core314APIException):
    """Raised when a resource is in an invalid state for the operation."""

    status_code = status.HTTP_409_CONFLICT
    default_detail = _("This operation cannot be performed on the resource in its current state.")
    default_code = "INVALID_STATE"

    def __init__(
        self,
        current_state: str = None,
        allowed_states: List[str] = None,
        **kwargs
    ):
        detail = kwargs.pop('detail', None) or str(self.default_detail)
        extra_data = kwargs.pop('extra_data', {})

        if current_state:
            extra_data['current_state'] = current_state
            detail = f"{detail} Current state: '{current_state}'."

        if allowed_states:
            extra_data['allowed_states'] = allowed_states
            detail = f"{detail} Allowed states: {', '.join(allowed_states)}."

        super().__init__(detail=detail, extra_data=extra_data, **kwargs)


# =============================================================================
# PERMISSION EXCEPTIONS
# =============================================================================

class PermissionDeniedError(Core314APIException):
    """Raised when user doesn't have permission for an action."""

    status_code = status.HTTP_403_FORBIDDEN
    default_detail = _("You do not have permission to perform this action.")
    default_code = "PERMISSION_DENIED"


class InsufficientRoleError(PermissionDeniedError):
    """Raised when the user's role is too low for an action."""

    default_detail = _("Your role does not allow this action.")
    default_code = "INSUFFICIENT_ROLE"

    def __init__(self, required_role: str = None, **kwargs):
        extra_data = kwargs.pop('extra_data', {})
        detail = kwargs.pop('detail', None)
        if required_role:
            extra_data['required_role'] = required_role
            detail = detail or f"The '{required_role}' role is required for this action."
        super().__init__(detail=detail, extra_data=extra_data, **kwargs)


class PolicyRestrictionError(PermissionDeniedError):
    """Raised when an active adaptive policy restricts the user."""

    default_detail = _("Your account is temporarily restricted by an adaptive policy.")
    default_code = "POLICY_RESTRICTED"


# =============================================================================
# BUSINESS LOGIC EXCEPTIONS
# =============================================================================

class InvalidInputError(Core314APIException):
    """Raised when input data is invalid."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = _("Invalid input provided.")
    default_code = "INVALID_INPUT"


class BusinessRuleViolationError(Core314APIException):
    """Raised when a business rule is violated."""

    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    default_detail = _("This action violates business rules.")
    default_code = "BUSINESS_RULE_VIOLATION"

    def __init__(self, rule_name: str = None, rule_description: str = None, **kwargs):
        extra_data = kwargs.pop('extra_data', {})

        if rule_name:
            extra_data['rule'] = rule_name

        detail = rule_description if rule_description else str(self.default_detail)

        super().__init__(detail=detail, extra_data=extra_data, **kwargs)


# =============================================================================
# EXTERNAL SERVICE EXCEPTIONS
# =============================================================================

class ExternalServiceError(Core314APIException):
    """Raised when an external service fails."""

    status_code = status.HTTP_502_BAD_GATEWAY
    default_detail = _("An external service is temporarily unavailable.")
    default_code = "EXTERNAL_SERVICE_ERROR"

    def __init__(self, service_name: str = None, **kwargs):
        extra_data = kwargs.pop('extra_data', {})

        if service_name:
            extra_data['service'] = service_name

        super().__init__(extra_data=extra_data, **kwargs)


# =============================================================================
# EXCEPTION HANDLER
# =============================================================================

def core314_exception_handler(exc, context):
    """
    Custom exception handler for standardized error responses.

    All errors are formatted as:
    {
        "success": false,
        "data": null,
        "message": "Error description",
        "error_code": "MACHINE_CODE",
        "errors": [...],
        "meta": {
            "timestamp": "ISO8601",
            "organization": "org-slug"
        }
    }
    """
    response = exception_handler(exc, context)

    if response is None:
        logger.exception(f"Unhandled exception: {exc}")
        return Response(
            {
                "success": False,
                "data": None,
                "message": "An unexpected error occurred.",
                "error_code": "INTERNAL_ERROR",
                "errors": [],
                "meta": {
                    "timestamp": timezone.now().isoformat(),
                }
            },
            status=status.HTTP_500_INTERNAL_SERVER_ERROR
        )

    error_data = {
        "success": False,
        "data": None,
        "message": "",
        "error_code": "ERROR",
        "errors": [],
        "meta": {
            "timestamp": timezone.now().isoformat(),
        }
    }

    if isinstance(exc, Core314APIException):
        error_data["message"] = str(exc.detail)
        error_data["error_code"] = exc.error_code
        if exc.extra_data:
            error_data["meta"].update(exc.extra_data)

    elif isinstance(exc, ValidationError):
        error_data["error_code"] = "VALIDATION_ERROR"
        if isinstance(exc.detail, dict):
            error_data["errors"] = [
                {"field": field, "messages": msgs if isinstance(msgs, list) else [str(msgs)]}
                for field, msgs in exc.detail.items()
            ]
            error_data["message"] = "Validation failed."
        elif isinstance(exc.detail, list):
            error_data["errors"] = [{"field": "non_field_errors", "messages": [str(e) for e in exc.detail]}]
            error_data["message"] = str(exc.detail[0]) if exc.detail else "Validation failed."
        else:
            error_data["message"] = str(exc.detail)

    else:
        error_data["message"] = str(exc.detail) if hasattr(exc, 'detail') else str(exc)
        error_data["error_code"] = getattr(exc, 'default_code', 'ERROR')

    request = context.get('request')
    if request:
        organization = getattr(request, 'organization', None)
        if organization:
            error_data["meta"]["organization"] = organization.slug

    response.data = error_data
    return response


# =============================================================================
# EXCEPTION UTILITIES
# =============================================================================

def raise_for_limit(limit_name: str, current_count: int, max_allowed) -> None:
    """
    Raise PlanLimitExceededError when current_count has reached max_allowed.
    A max_allowed of None means unlimited.

    Usage:
        raise_for_limit('integrations', current, entitlements.max_integrations)
    """
    if max_allowed is None:
        return
    if current_count >= max_allowed:
        raise PlanLimitExceededError(
            limit_name=limit_name,
            current_usage=current_count,
            max_allowed=max_allowed
        )
