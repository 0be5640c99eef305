"""
Authorization decisions and the principals they are made for.
"""
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping, Optional

from django.dispatch import Signal


class DecisionReason(str, Enum):
    """Machine-checkable category attached to every decision."""

    # Allow reasons
    GRANTED = 'granted'
    SELF_ACTION = 'self_action'
    NO_RESTRICTION = 'no_restriction'

    # Deny reasons
    AUTHENTICATION_REQUIRED = 'authentication_required'
    ACCOUNT_INACTIVE = 'account_inactive'
    INVALID_TENANT_ASSOCIATION = 'invalid_tenant_association'
    SELF_ACTION_FORBIDDEN = 'self_action_forbidden'
    CROSS_TENANT_DENIED = 'cross_tenant_denied'
    SYSTEM_ROLE_PROTECTED = 'system_role_protected'
    ROLE_IN_USE = 'role_in_use'
    LAST_ROLE_VIOLATION = 'last_role_violation'
    INSUFFICIENT_PRIVILEGE = 'insufficient_privilege'
    INVALID_PERMISSION_FORMAT = 'invalid_permission_format'


@dataclass(frozen=True)
class Decision:
    """Outcome of an authorization check."""

    allow: bool
    reason: DecisionReason
    details: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, 'details', MappingProxyType(dict(self.details)))

    def __bool__(self):
        return self.allow

    @classmethod
    def allowed(cls, reason=DecisionReason.GRANTED, **details):
        return cls(True, reason, details)

    @classmethod
    def denied(cls, reason, **details):
        return cls(False, reason, details)

    def as_dict(self):
        return {
            'allow': self.allow,
            'reason': self.reason.value,
            'details': dict(self.details),
        }


@dataclass(frozen=True)
class Principal:
    """
    The authenticated actor as seen by the authorization core.

    Only identity, tenant and status are carried; roles and permissions
    are always derived from the assignment graph.
    """

    id: int
    company_id: Optional[int]
    is_active: bool = True

    @classmethod
    def from_user(cls, user):
        """Build a principal from a User (or any object with the same fields)."""
        if user is None or not getattr(user, 'is_authenticated', True):
            return None
        if isinstance(user, cls):
            return user
        return cls(
            id=user.pk if hasattr(user, 'pk') else user.id,
            company_id=user.company_id,
            is_active=bool(user.is_active),
        )


# Sent after every denial; receivers get the principal, the decision and
# a short description of what was attempted.
authorization_denied = Signal()
