"""
Exceptions raised by RBAC mutations.

Authorization checks never raise these; they return a Decision instead.
The assignment-graph service raises them when a mutation would break a
structural invariant.
"""


class RBACError(ValueError):
    """Base class for RBAC mutation errors."""

    def __init__(self, message, details=None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class InvalidPermissionFormat(RBACError):
    """A permission name does not match the module.action format."""

    def __init__(self, value, message=None):
        self.value = value
        super().__init__(
            message or f"Invalid permission name {value!r}: expected 'module.action'",
            details={'value': value},
        )


class TenantMismatchError(RBACError):
    """User, role and assignment do not share one company."""


class LastRoleError(RBACError):
    """The removal would leave an active user without any role."""


class RoleInUseError(RBACError):
    """The role still has user assignments."""


class PermissionInUseError(RBACError):
    """The permission is still referenced by at least one role."""


class SystemRoleError(RBACError):
    """The operation is not allowed on a system role."""


class InactiveRoleError(RBACError):
    """Inactive roles cannot be assigned."""


class AuthorizationDenied(RBACError):
    """Raised by PolicyEngine.enforce() when a policy check denies."""

    def __init__(self, decision):
        self.decision = decision
        super().__init__(
            f"Authorization denied: {decision.reason.value}",
            details=dict(decision.details),
        )
