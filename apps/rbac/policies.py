"""
Policy rules engine.

Sits above the AuthorizationResolver and encodes the rules a plain
role/permission matrix cannot express. Every check runs the same ordered
pipeline and stops at the first rule that decides:

1. no principal                  -> authentication_required
2. inactive principal            -> account_inactive
   (viewing one's own profile may be allowed first, see PolicyConfig)
3. no company                    -> invalid_tenant_association
4. acting on oneself             -> self_action / self_action_forbidden
5. target in another company     -> cross_tenant_denied (SuperAdmin exempt)
6. system role / privileged user -> system_role_protected
7. removing a user's last role   -> last_role_violation
8. resolver check                -> granted / insufficient_privilege
9. deleting a custom role in use -> role_in_use (only for actors allowed so far)

Checks return a Decision; they never raise for an authorization outcome.
Database errors propagate to the caller, which must treat them as a deny.
"""
import logging
from dataclasses import dataclass, field
from enum import Enum
from functools import lru_cache
from typing import FrozenSet, Iterable, Optional, Tuple

from django.conf import settings

from apps.core.security_logger import SecurityLogger
from apps.rbac.cache import DecisionCache
from apps.rbac.catalog import (
    SYSTEM_ROLES,
    TENANT_ADMIN,
    is_high_privilege,
    normalize_permission_names,
    parse_multi_value,
)
from apps.rbac.decisions import (
    Decision,
    DecisionReason,
    Principal,
    authorization_denied,
)
from apps.rbac.exceptions import AuthorizationDenied, InvalidPermissionFormat
from apps.rbac.models import Role, User, UserRole
from apps.rbac.resolver import AuthorizationResolver
from apps.tenants.models import Company

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PolicyConfig:
    """
    Engine configuration, fixed at construction time.

    Attributes:
        super_admin_bypass: SuperAdmin passes every permission/role check
        restricted_roles_for_super_admin: Role names the bypass never covers
        allow_inactive_self_view: Inactive users may still view their own
            profile
    """
    super_admin_bypass: bool = True
    restricted_roles_for_super_admin: FrozenSet[str] = field(default_factory=frozenset)
    allow_inactive_self_view: bool = True

    def __post_init__(self):
        object.__setattr__(
            self,
            'restricted_roles_for_super_admin',
            frozenset(self.restricted_roles_for_super_admin),
        )

    @classmethod
    def from_settings(cls):
        return cls(
            super_admin_bypass=getattr(settings, 'RBAC_SUPER_ADMIN_BYPASS', True),
            restricted_roles_for_super_admin=frozenset(
                getattr(settings, 'RBAC_SUPER_ADMIN_RESTRICTED_ROLES', ())
            ),
            allow_inactive_self_view=getattr(settings, 'RBAC_ALLOW_INACTIVE_SELF_VIEW', True),
        )


class Ability(str, Enum):
    VIEW_ANY = 'view_any'
    VIEW = 'view'
    CREATE = 'create'
    UPDATE = 'update'
    DELETE = 'delete'
    RESTORE = 'restore'
    FORCE_DELETE = 'force_delete'
    EXPORT = 'export'
    ACTIVATE = 'activate'

    # Role abilities
    ASSIGN_PERMISSIONS = 'assign_permissions'
    REMOVE_PERMISSIONS = 'remove_permissions'
    SYNC_PERMISSIONS = 'sync_permissions'
    CLONE = 'clone'
    CREATE_SYSTEM_ROLE = 'create_system_role'

    # User abilities
    ASSIGN_ROLES = 'assign_roles'
    REMOVE_ROLES = 'remove_roles'
    SYNC_ROLES = 'sync_roles'
    BULK_ASSIGN_ROLE = 'bulk_assign_role'
    BULK_REMOVE_ROLE = 'bulk_remove_role'
    IMPERSONATE = 'impersonate'
    MANAGE_PERMISSIONS = 'manage_permissions'


@dataclass(frozen=True)
class AbilityRule:
    """What the raw check requires for one ability on one target type."""
    permissions: Tuple[str, ...] = ()
    super_admin_only: bool = False
    admin_roles: Tuple[str, ...] = (TENANT_ADMIN,)


SUPER_ADMIN_ONLY = AbilityRule(super_admin_only=True, admin_roles=())

_ROLE_MANAGE = ('roles.manage', 'roles.manage_permissions')
_USER_ROLES_MANAGE = ('users.manage', 'users.manage_roles')

ROLE_RULES = {
    Ability.VIEW_ANY: AbilityRule(('roles.view',)),
    Ability.VIEW: AbilityRule(('roles.view',)),
    Ability.CREATE: AbilityRule(('roles.create',)),
    Ability.UPDATE: AbilityRule(('roles.edit',)),
    Ability.DELETE: AbilityRule(('roles.delete',)),
    Ability.RESTORE: AbilityRule(('roles.restore',)),
    Ability.FORCE_DELETE: SUPER_ADMIN_ONLY,
    Ability.EXPORT: AbilityRule(('roles.export',)),
    Ability.ACTIVATE: AbilityRule(('roles.manage',)),
    Ability.ASSIGN_PERMISSIONS: AbilityRule(_ROLE_MANAGE),
    Ability.REMOVE_PERMISSIONS: AbilityRule(_ROLE_MANAGE),
    Ability.SYNC_PERMISSIONS: AbilityRule(_ROLE_MANAGE),
    Ability.CLONE: AbilityRule(('roles.create', 'roles.clone', 'roles.manage')),
    Ability.CREATE_SYSTEM_ROLE: SUPER_ADMIN_ONLY,
}

USER_RULES = {
    Ability.VIEW_ANY: AbilityRule(('users.view',)),
    Ability.VIEW: AbilityRule(('users.view',)),
    Ability.CREATE: AbilityRule(('users.create',)),
    Ability.UPDATE: AbilityRule(('users.edit',)),
    Ability.DELETE: AbilityRule(('users.delete',)),
    Ability.RESTORE: AbilityRule(('users.restore',)),
    Ability.FORCE_DELETE: SUPER_ADMIN_ONLY,
    Ability.EXPORT: AbilityRule(('users.export',)),
    Ability.ACTIVATE: AbilityRule(('users.manage',)),
    Ability.ASSIGN_ROLES: AbilityRule(_USER_ROLES_MANAGE),
    Ability.REMOVE_ROLES: AbilityRule(_USER_ROLES_MANAGE),
    Ability.SYNC_ROLES: AbilityRule(_USER_ROLES_MANAGE),
    Ability.BULK_ASSIGN_ROLE: AbilityRule(_USER_ROLES_MANAGE),
    Ability.BULK_REMOVE_ROLE: AbilityRule(_USER_ROLES_MANAGE),
    Ability.IMPERSONATE: SUPER_ADMIN_ONLY,
    Ability.MANAGE_PERMISSIONS: SUPER_ADMIN_ONLY,
}

COMPANY_RULES = {
    Ability.VIEW: AbilityRule(('company.view',)),
    Ability.UPDATE: AbilityRule(('company.edit',)),
}

RULES_BY_MODEL = {
    Role: ROLE_RULES,
    User: USER_RULES,
    Company: COMPANY_RULES,
}

# Always allowed on oneself
SELF_ALLOWED = {Ability.VIEW, Ability.UPDATE}

# Never allowed on oneself. A single REMOVE_ROLES on oneself falls through
# to the last-role and permission rules.
SELF_FORBIDDEN = {
    Ability.DELETE,
    Ability.FORCE_DELETE,
    Ability.ACTIVATE,
    Ability.IMPERSONATE,
    Ability.ASSIGN_ROLES,
    Ability.SYNC_ROLES,
    Ability.BULK_ASSIGN_ROLE,
    Ability.BULK_REMOVE_ROLE,
}

# Mutations guarded on system roles
ROLE_MUTATIONS = {
    Ability.UPDATE,
    Ability.DELETE,
    Ability.FORCE_DELETE,
    Ability.ACTIVATE,
    Ability.ASSIGN_PERMISSIONS,
    Ability.REMOVE_PERMISSIONS,
    Ability.SYNC_PERMISSIONS,
    Ability.CLONE,
}

# Mutations guarded on users holding a system role
USER_MUTATIONS = {
    Ability.UPDATE,
    Ability.DELETE,
    Ability.FORCE_DELETE,
    Ability.ACTIVATE,
    Ability.ASSIGN_ROLES,
    Ability.REMOVE_ROLES,
    Ability.SYNC_ROLES,
    Ability.BULK_ASSIGN_ROLE,
    Ability.BULK_REMOVE_ROLE,
    Ability.IMPERSONATE,
    Ability.MANAGE_PERMISSIONS,
}

ROLE_GRANT_ABILITIES = {
    Ability.ASSIGN_ROLES,
    Ability.REMOVE_ROLES,
    Ability.SYNC_ROLES,
    Ability.BULK_ASSIGN_ROLE,
    Ability.BULK_REMOVE_ROLE,
}

ROLE_REMOVAL_ABILITIES = {Ability.REMOVE_ROLES, Ability.BULK_REMOVE_ROLE}

_NO_COMPANY = object()


def _company_of(obj):
    """Owning company id of a tenant-scoped object, or _NO_COMPANY."""
    if isinstance(obj, Company):
        return obj.pk
    if hasattr(obj, 'company_id'):
        return obj.company_id
    return _NO_COMPANY


class PolicyEngine:
    """
    Entry point for authorization decisions.

    Usage:
        engine = PolicyEngine(PolicyConfig.from_settings())
        decision = engine.authorize(user, ['services.edit'], [])
        decision = engine.check(actor, Ability.UPDATE, role)
        if not decision.allow:
            ...
    """

    def __init__(self, config: Optional[PolicyConfig] = None, resolver=None,
                 cache: Optional[DecisionCache] = None):
        self.config = config or PolicyConfig.from_settings()
        self.cache = cache if cache is not None else DecisionCache()
        self.resolver = resolver or AuthorizationResolver(self.config, self.cache)

    # Entry points

    def authorize(self, principal, required_permissions=(), required_roles=(),
                  resource=None) -> Decision:
        """
        Combined permission and role check.

        Args:
            principal: User or Principal (None when unauthenticated)
            required_permissions: Names or multi-value string; any one suffices
            required_roles: Names or multi-value string; any one suffices
            resource: Optional tenant-scoped object being accessed

        Returns:
            Decision. When both lists are given, both must be satisfied.
        """
        principal = Principal.from_user(principal)
        decision = self._authorize(principal, required_permissions, required_roles, resource)
        return self._finish(
            principal,
            decision,
            action=f"authorize:{','.join(parse_multi_value(required_permissions)) or '-'}",
            target=resource,
        )

    def check(self, actor, ability, target=None, role=None, permissions=None) -> Decision:
        """
        Ability check against a target.

        Args:
            actor: Acting User or Principal
            ability: Ability (or its value)
            target: Role, User or Company instance, a model class for
                type-level abilities (view_any, create), or any object with
                a company_id when permissions is given
            role: Role or list of roles involved (role assignment abilities)
            permissions: Explicit required permissions, overriding the
                declared rule for the target type

        Returns:
            Decision
        """
        principal = Principal.from_user(actor)
        ability = Ability(ability)
        decision = self._check(principal, ability, target, role, permissions)
        return self._finish(principal, decision, action=ability.value, target=target)

    def check_each(self, actor, ability, targets: Iterable, role=None):
        """Per-target decisions for bulk operations, in input order."""
        return [(target, self.check(actor, ability, target, role=role)) for target in targets]

    def enforce(self, actor, ability, target=None, role=None, permissions=None) -> Decision:
        """Like check(), but raises AuthorizationDenied on a deny."""
        decision = self.check(actor, ability, target, role=role, permissions=permissions)
        if not decision.allow:
            raise AuthorizationDenied(decision)
        return decision

    def invalidate_principal_cache(self, principal_id, company_id) -> bool:
        return self.cache.invalidate_principal(principal_id, company_id)

    def invalidate_all_cache(self) -> bool:
        return self.cache.clear()

    # Pipelines

    def _authorize(self, principal, required_permissions, required_roles, resource):
        if principal is None:
            return Decision.denied(DecisionReason.AUTHENTICATION_REQUIRED)

        try:
            permissions = normalize_permission_names(required_permissions)
        except InvalidPermissionFormat as e:
            return Decision.denied(DecisionReason.INVALID_PERMISSION_FORMAT, value=e.value)
        roles = parse_multi_value(required_roles)

        decision = self._principal_status(principal)
        if decision is not None:
            return decision

        if resource is not None:
            is_super = self.resolver.is_super_admin(principal)
            decision = self._tenant_isolation(principal, is_super, resource, None)
            if decision is not None:
                return decision

        if not permissions and not roles:
            return Decision.allowed(DecisionReason.NO_RESTRICTION)

        if permissions and not self.resolver.has_any_permission(principal, permissions):
            return Decision.denied(
                DecisionReason.INSUFFICIENT_PRIVILEGE, required_permissions=permissions
            )
        if roles and not self.resolver.has_any_role(principal, roles):
            return Decision.denied(DecisionReason.INSUFFICIENT_PRIVILEGE, required_roles=roles)

        high_privilege = [name for name in permissions if is_high_privilege(name)]
        if high_privilege:
            SecurityLogger.log_high_privilege_access(
                principal.id, principal.company_id, high_privilege
            )
        return Decision.allowed(DecisionReason.GRANTED)

    def _check(self, principal, ability, target, role, permissions):
        if principal is None:
            return Decision.denied(DecisionReason.AUTHENTICATION_REQUIRED)

        if isinstance(target, type):
            target_model, instance = target, None
        else:
            target_model = type(target) if target is not None else None
            instance = target
        roles = None if role is None else (list(role) if isinstance(role, (list, tuple, set)) else [role])

        is_self = isinstance(instance, User) and instance.pk == principal.id
        if (
            is_self
            and ability == Ability.VIEW
            and not principal.is_active
            and self.config.allow_inactive_self_view
        ):
            return Decision.allowed(DecisionReason.SELF_ACTION)

        decision = self._principal_status(principal)
        if decision is not None:
            return decision

        if is_self:
            if ability in SELF_ALLOWED:
                return Decision.allowed(DecisionReason.SELF_ACTION)
            if ability in SELF_FORBIDDEN:
                return Decision.denied(DecisionReason.SELF_ACTION_FORBIDDEN)

        is_super = self.resolver.is_super_admin(principal)

        for rule in (
            lambda: self._tenant_isolation(principal, is_super, instance, roles),
            lambda: self._system_role_protection(is_super, ability, instance, roles),
            lambda: self._last_role_protection(ability, instance, roles),
        ):
            decision = rule()
            if decision is not None:
                return decision

        decision = self._raw_check(principal, is_super, ability, target_model, permissions)
        if decision.allow:
            return self._role_in_use(ability, instance) or decision
        return decision

    # Rules

    def _principal_status(self, principal):
        if not principal.is_active:
            return Decision.denied(DecisionReason.ACCOUNT_INACTIVE)
        if principal.company_id is None:
            return Decision.denied(DecisionReason.INVALID_TENANT_ASSOCIATION)
        return None

    def _tenant_isolation(self, principal, is_super, instance, roles):
        if instance is not None:
            company_id = _company_of(instance)
            if company_id is not _NO_COMPANY and company_id != principal.company_id and not is_super:
                return Decision.denied(
                    DecisionReason.CROSS_TENANT_DENIED, target_company_id=company_id
                )
        for role in roles or ():
            if role.company_id != principal.company_id and not is_super:
                return Decision.denied(
                    DecisionReason.CROSS_TENANT_DENIED, target_company_id=role.company_id
                )
            # A role can only ever be bound to users of its own company
            if isinstance(instance, User) and role.company_id != instance.company_id:
                return Decision.denied(
                    DecisionReason.CROSS_TENANT_DENIED,
                    role_company_id=role.company_id,
                    user_company_id=instance.company_id,
                )
        return None

    def _system_role_protection(self, is_super, ability, instance, roles):
        if isinstance(instance, Role):
            if instance.is_system and ability in ROLE_MUTATIONS:
                if not is_super:
                    return Decision.denied(DecisionReason.SYSTEM_ROLE_PROTECTED, role=instance.name)
                if ability == Ability.FORCE_DELETE:
                    return Decision.denied(DecisionReason.SYSTEM_ROLE_PROTECTED, role=instance.name)
                if ability == Ability.DELETE:
                    assigned = instance.assigned_user_count()
                    if assigned:
                        return Decision.denied(
                            DecisionReason.SYSTEM_ROLE_PROTECTED,
                            role=instance.name,
                            assigned_users=assigned,
                        )

        if isinstance(instance, User) and ability in USER_MUTATIONS:
            target = Principal.from_user(instance)
            if self.resolver.holds_any_role(target, SYSTEM_ROLES):
                if not is_super:
                    return Decision.denied(DecisionReason.SYSTEM_ROLE_PROTECTED, target_user=instance.pk)
                if ability in (Ability.DELETE, Ability.FORCE_DELETE):
                    return Decision.denied(DecisionReason.SYSTEM_ROLE_PROTECTED, target_user=instance.pk)
                if ability == Ability.IMPERSONATE and self.resolver.is_super_admin(target):
                    return Decision.denied(DecisionReason.SYSTEM_ROLE_PROTECTED, target_user=instance.pk)

        if ability in ROLE_GRANT_ABILITIES and not is_super:
            for role in roles or ():
                if role.is_system:
                    return Decision.denied(DecisionReason.SYSTEM_ROLE_PROTECTED, role=role.name)
        return None

    def _role_in_use(self, ability, instance):
        """Deny deleting a custom role that users still hold."""
        if (
            isinstance(instance, Role)
            and not instance.is_system
            and ability in (Ability.DELETE, Ability.FORCE_DELETE)
        ):
            assigned = instance.assigned_user_count()
            if assigned:
                return Decision.denied(
                    DecisionReason.ROLE_IN_USE, role=instance.name, assigned_users=assigned
                )
        return None

    def _last_role_protection(self, ability, instance, roles):
        if not isinstance(instance, User):
            return None

        if ability in ROLE_REMOVAL_ABILITIES and roles:
            active_role_ids = set(
                UserRole.objects.for_user(instance).active().values_list('role_id', flat=True)
            )
            removing = active_role_ids.intersection(role.pk for role in roles)
            if removing and not (active_role_ids - removing):
                return Decision.denied(DecisionReason.LAST_ROLE_VIOLATION, target_user=instance.pk)

        if ability == Ability.SYNC_ROLES and roles is not None:
            if not any(role.is_active for role in roles):
                return Decision.denied(DecisionReason.LAST_ROLE_VIOLATION, target_user=instance.pk)
        return None

    def _raw_check(self, principal, is_super, ability, target_model, permissions):
        if permissions is not None:
            try:
                required = tuple(normalize_permission_names(permissions))
            except InvalidPermissionFormat as e:
                return Decision.denied(DecisionReason.INVALID_PERMISSION_FORMAT, value=e.value)
            rule = AbilityRule(required, admin_roles=())
        else:
            rule = RULES_BY_MODEL.get(target_model, {}).get(ability)
            if rule is None:
                return Decision.denied(DecisionReason.INSUFFICIENT_PRIVILEGE, undeclared=True)

        if rule.super_admin_only:
            if is_super:
                return Decision.allowed(DecisionReason.GRANTED)
            return Decision.denied(DecisionReason.INSUFFICIENT_PRIVILEGE, super_admin_only=True)

        if rule.admin_roles and self.resolver.has_any_role(principal, rule.admin_roles):
            return Decision.allowed(DecisionReason.GRANTED)
        if rule.permissions and self.resolver.has_any_permission(principal, rule.permissions):
            return Decision.allowed(DecisionReason.GRANTED)

        return Decision.denied(
            DecisionReason.INSUFFICIENT_PRIVILEGE, required_permissions=list(rule.permissions)
        )

    # Reporting

    def _finish(self, principal, decision, action, target=None):
        if decision.allow:
            return decision

        details = dict(decision.details)
        if principal is not None and principal.company_id is not None:
            details['held_roles'] = sorted(self.resolver.role_names(principal))
        decision = Decision(decision.allow, decision.reason, details)

        target_type = None
        target_id = None
        if target is not None:
            target_type = target.__name__ if isinstance(target, type) else type(target).__name__
            target_id = None if isinstance(target, type) else getattr(target, 'pk', None)

        SecurityLogger.log_authorization_denied(
            principal_id=principal.id if principal else None,
            company_id=principal.company_id if principal else None,
            reason=decision.reason.value,
            action=action,
            target_type=target_type,
            target_id=target_id,
            details=details,
        )
        for receiver, response in authorization_denied.send_robust(
            sender=PolicyEngine,
            principal=principal,
            decision=decision,
            action=action,
            target=target,
        ):
            if isinstance(response, Exception):
                logger.error(
                    f"authorization_denied receiver {receiver!r} failed: {response}",
                    exc_info=(type(response), response, response.__traceback__),
                )
        return decision


@lru_cache(maxsize=1)
def get_policy_engine() -> PolicyEngine:
    """Process-wide engine built from settings."""
    return PolicyEngine(PolicyConfig.from_settings())


def reset_policy_engine():
    """Drop the process-wide engine so the next call rebuilds it from settings."""
    get_policy_engine.cache_clear()
