"""
DRF permission classes and decorators for RBAC enforcement.

This module provides:
- HasRBACAccess: DRF permission class that runs the policy engine
- @requires_permissions: Decorator to declare required permissions on views
- @requires_roles: Decorator to declare required roles on views
"""
import logging
from functools import wraps

from django.db import DatabaseError
from rest_framework.permissions import BasePermission

from apps.rbac.policies import RULES_BY_MODEL, Ability, get_policy_engine

logger = logging.getLogger(__name__)

# Object-level ability checked for each HTTP method
METHOD_ABILITIES = {
    'GET': Ability.VIEW,
    'HEAD': Ability.VIEW,
    'OPTIONS': Ability.VIEW,
    'PUT': Ability.UPDATE,
    'PATCH': Ability.UPDATE,
    'DELETE': Ability.DELETE,
}


class HasRBACAccess(BasePermission):
    """
    DRF permission class that enforces RBAC requirements on API endpoints.

    has_permission() checks the view's required_permissions and
    required_roles (any one permission and any one role suffices; when both
    are declared, both must be satisfied). has_object_permission() runs
    the ability rules for Role, User and Company objects and tenant
    isolation for any other object with a company_id.

    A database failure while checking is a deny, never an allow.

    Usage in views:
        class InvoiceView(APIView):
            permission_classes = [HasRBACAccess]
            required_permissions = 'invoices.view|invoices.edit'
            required_roles = ['TenantAdmin', 'Manager']
    """

    message = 'You do not have permission to perform this action.'

    def has_permission(self, request, view):
        required_permissions = getattr(view, 'required_permissions', None) or ()
        required_roles = getattr(view, 'required_roles', None) or ()

        try:
            decision = get_policy_engine().authorize(
                request.user, required_permissions, required_roles
            )
        except DatabaseError as e:
            logger.error(
                f"Authorization check failed, denying: {e}",
                extra={'view': view.__class__.__name__, 'path': request.path},
                exc_info=True,
            )
            return False

        return self._apply(decision, request, view)

    def has_object_permission(self, request, view, obj):
        engine = get_policy_engine()
        ability = getattr(view, 'policy_abilities', {}).get(request.method) or METHOD_ABILITIES.get(request.method)

        try:
            if ability is not None and type(obj) in RULES_BY_MODEL:
                decision = engine.check(request.user, ability, obj)
            else:
                decision = engine.authorize(request.user, resource=obj)
        except DatabaseError as e:
            logger.error(
                f"Object authorization check failed, denying: {e}",
                extra={
                    'view': view.__class__.__name__,
                    'object_type': obj.__class__.__name__,
                    'object_id': getattr(obj, 'pk', None),
                },
                exc_info=True,
            )
            return False

        return self._apply(decision, request, view)

    def _apply(self, decision, request, view):
        request.rbac_decision = decision
        if decision.allow:
            return True

        self.message = {
            'detail': 'You do not have permission to perform this action.',
            'reason': decision.reason.value,
        }
        logger.debug(
            f"Permission denied: {decision.reason.value}",
            extra={
                'view': view.__class__.__name__,
                'method': request.method,
                'path': request.path,
                'request_id': getattr(request, 'request_id', None),
            }
        )
        return False


def _declare(attribute, values):
    def decorator(view_or_method):
        if isinstance(view_or_method, type):
            setattr(view_or_method, attribute, list(values))
            return view_or_method

        @wraps(view_or_method)
        def wrapped(self, request, *args, **kwargs):
            setattr(self, attribute, list(values))
            # Method-level requirements are checked here, after dispatch
            for permission in self.get_permissions():
                if not permission.has_permission(request, self):
                    self.permission_denied(
                        request,
                        message=getattr(permission, 'message', None),
                        code=getattr(permission, 'code', None),
                    )
            return view_or_method(self, request, *args, **kwargs)

        setattr(wrapped, attribute, list(values))
        return wrapped

    return decorator


def requires_permissions(*permissions):
    """
    Declare required permissions on a view class or method.

    Any one of the permissions suffices. Each argument may itself be a
    multi-value string ('invoices.view|invoices.edit').

    Usage:
        @requires_permissions('invoices.view')
        class InvoiceListView(APIView):
            permission_classes = [HasRBACAccess]

    Or on individual methods:
        class InvoiceListView(APIView):
            permission_classes = [HasRBACAccess]

            @requires_permissions('invoices.create')
            def post(self, request):
                pass
    """
    return _declare('required_permissions', permissions)


def requires_roles(*roles):
    """Declare required roles on a view class or method. Any one suffices."""
    return _declare('required_roles', roles)
