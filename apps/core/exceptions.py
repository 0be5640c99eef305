"""
Custom exception handlers for DRF.
"""
import logging

from django.conf import settings
from django.core.exceptions import ObjectDoesNotExist
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler

from apps.rbac.exceptions import (
    AuthorizationDenied,
    InvalidPermissionFormat,
    LastRoleError,
    PermissionInUseError,
    RBACError,
    RoleInUseError,
)

logger = logging.getLogger(__name__)

# HTTP status for each RBAC error family; anything else is a 400
RBAC_ERROR_STATUS = (
    (AuthorizationDenied, status.HTTP_403_FORBIDDEN),
    (LastRoleError, status.HTTP_409_CONFLICT),
    (RoleInUseError, status.HTTP_409_CONFLICT),
    (PermissionInUseError, status.HTTP_409_CONFLICT),
    (InvalidPermissionFormat, status.HTTP_400_BAD_REQUEST),
)


def _error_code(exc):
    name = exc.__class__.__name__
    return ''.join(f'_{c}' if c.isupper() else c for c in name).lstrip('_').upper()


def rbac_error_response(exc, request_id=None):
    """Build the error response for an RBACError."""
    status_code = status.HTTP_400_BAD_REQUEST
    for error_class, code in RBAC_ERROR_STATUS:
        if isinstance(exc, error_class):
            status_code = code
            break

    data = {
        'error': exc.message,
        'code': _error_code(exc),
        'details': exc.details,
    }
    if isinstance(exc, AuthorizationDenied):
        data['reason'] = exc.decision.reason.value
    if request_id:
        data['request_id'] = request_id
    return Response(data, status=status_code)


def custom_exception_handler(exc, context):
    """
    Custom exception handler that logs errors and returns consistent format.
    """
    request = context.get('request')
    request_id = getattr(request, 'request_id', None) if request else None

    if isinstance(exc, RBACError):
        logger.info(
            f"RBAC error: {exc.__class__.__name__}",
            extra={
                'exception': str(exc),
                'request_id': request_id,
                'path': request.path if request else None,
                'method': request.method if request else None,
            }
        )
        return rbac_error_response(exc, request_id)

    if isinstance(exc, ObjectDoesNotExist):
        return Response(
            {'error': str(exc), 'code': 'NOT_FOUND', 'request_id': request_id},
            status=status.HTTP_404_NOT_FOUND,
        )

    # Call DRF's default exception handler first
    response = exception_handler(exc, context)

    logger.error(
        f"API Exception: {exc.__class__.__name__}",
        extra={
            'exception': str(exc),
            'request_id': request_id,
            'path': request.path if request else None,
            'method': request.method if request else None,
        },
        exc_info=True
    )

    # If DRF didn't handle it, return a generic 500 error
    if response is None:
        return Response(
            {
                'error': 'Internal server error',
                'detail': str(exc) if settings.DEBUG else 'An unexpected error occurred',
                'request_id': request_id,
            },
            status=status.HTTP_500_INTERNAL_SERVER_ERROR
        )

    # Add request_id to all error responses
    if request_id and isinstance(response.data, dict):
        response.data['request_id'] = request_id

    return response
