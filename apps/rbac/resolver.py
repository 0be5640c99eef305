"""
Authorization resolver.

Answers "does this principal hold any of these permissions / roles?" by
walking the assignment graph:

    permissions(principal) = union of permissions(role)
                             for role in active roles of principal in its company

Each check is one batched join query. Outcomes are memoized in the
DecisionCache. The resolver does not look at is_active or company
association of the principal; those rules run earlier in the policy
engine.
"""
import logging
from typing import Iterable, Optional, Set

from apps.rbac.cache import (
    KIND_HELD_ROLE,
    KIND_PERMISSION,
    KIND_ROLE,
    DecisionCache,
)
from apps.rbac.catalog import SUPER_ADMIN
from apps.rbac.models import Permission, UserRole

logger = logging.getLogger(__name__)


class AuthorizationResolver:
    """
    Permission and role resolution over the assignment graph.

    Args:
        config: PolicyConfig with the super admin bypass settings
        cache: DecisionCache, or None to build the default one
        use_cache: Set False for strictly consistent reads
    """

    def __init__(self, config, cache: Optional[DecisionCache] = None, use_cache: bool = True):
        self.config = config
        self.cache = cache if cache is not None else DecisionCache()
        self.use_cache = use_cache

    # Public checks

    def has_any_permission(self, principal, required_permission_names: Iterable[str]) -> bool:
        """
        True iff the principal's effective permissions intersect the names.

        An empty set is not special-cased; it simply matches nothing.
        """
        names = sorted(set(required_permission_names))
        if self.config.super_admin_bypass and self.is_super_admin(principal):
            return True
        return self._cached(principal, KIND_PERMISSION, names, self._walk_permissions)

    def has_any_role(self, principal, required_role_names: Iterable[str]) -> bool:
        """
        True iff the principal holds an active role named in the set.

        The super admin bypass does not apply when any required role is
        restricted for super admins.
        """
        names = sorted(set(required_role_names))
        restricted = self.config.restricted_roles_for_super_admin
        if (
            self.config.super_admin_bypass
            and not restricted.intersection(names)
            and self.is_super_admin(principal)
        ):
            return True
        return self._cached(principal, KIND_ROLE, names, self._walk_roles)

    # Raw membership (no bypass)

    def is_super_admin(self, principal) -> bool:
        return self.holds_any_role(principal, [SUPER_ADMIN])

    def holds_any_role(self, principal, role_names: Iterable[str]) -> bool:
        names = sorted(set(role_names))
        return self._cached(principal, KIND_HELD_ROLE, names, self._walk_roles)

    # Introspection

    def permission_names(self, principal) -> Set[str]:
        """Full effective permission set of the principal."""
        return set(
            self._permission_queryset(principal).values_list('name', flat=True).distinct()
        )

    def role_names(self, principal) -> Set[str]:
        return set(
            self._assignment_queryset(principal).values_list('role__name', flat=True).distinct()
        )

    # Graph walks

    def _cached(self, principal, kind, names, walk):
        if not self.use_cache:
            return walk(principal, names)
        return self.cache.get_or_compute(
            principal, kind, names, lambda: walk(principal, names)
        )

    def _assignment_queryset(self, principal):
        return UserRole.objects.filter(
            user_id=principal.id,
            company_id=principal.company_id,
            role__company_id=principal.company_id,
            role__is_active=True,
            role__deleted_at__isnull=True,
        )

    def _permission_queryset(self, principal):
        # Single filter() call so every condition applies to the same path
        return Permission.objects.filter(
            role_permissions__role__company_id=principal.company_id,
            role_permissions__role__is_active=True,
            role_permissions__role__deleted_at__isnull=True,
            role_permissions__role__user_roles__user_id=principal.id,
            role_permissions__role__user_roles__company_id=principal.company_id,
        )

    def _walk_permissions(self, principal, names) -> bool:
        if not names:
            return False
        return self._permission_queryset(principal).filter(name__in=names).exists()

    def _walk_roles(self, principal, names) -> bool:
        if not names:
            return False
        return self._assignment_queryset(principal).filter(role__name__in=names).exists()
