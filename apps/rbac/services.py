"""
RBAC services.

Implements:
- RBACService: permission catalog, role store and assignment-graph
  mutations (role <-> permission, user <-> role)

Every multi-row mutation runs in one transaction and locks the role or
user being changed, so concurrent writers serialize and readers never see
a partially applied change. Every mutation invalidates the cached
decisions of each affected principal right away and again after commit.
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Set

from django.db import transaction
from django.db.models import Count

from apps.core.security_logger import SecurityLogger
from apps.rbac.cache import DecisionCache
from apps.rbac.catalog import (
    DEFAULT_PERMISSIONS,
    DEFAULT_ROLE_DESCRIPTIONS,
    DEFAULT_ROLE_PERMISSIONS,
    is_system_role_name,
)
from apps.rbac.decisions import Principal
from apps.rbac.exceptions import (
    InactiveRoleError,
    LastRoleError,
    PermissionInUseError,
    RBACError,
    RoleInUseError,
    SystemRoleError,
    TenantMismatchError,
)
from apps.rbac.models import Permission, Role, RolePermission, User, UserRole
from apps.rbac.policies import get_policy_engine

logger = logging.getLogger(__name__)


@dataclass
class BulkRoleResult:
    """Per-user outcome of a bulk role assignment or removal."""
    role_id: int
    assigned: List[int] = field(default_factory=list)
    already_assigned: List[int] = field(default_factory=list)
    removed: List[int] = field(default_factory=list)
    not_assigned: List[int] = field(default_factory=list)
    cannot_remove: Dict[int, str] = field(default_factory=dict)
    rejected: Dict[int, str] = field(default_factory=dict)


class RBACService:
    """
    Service for RBAC mutations: permission catalog, roles, role permissions
    and user role assignments.
    """

    # Cache invalidation

    @classmethod
    def invalidate_principals(cls, pairs: Iterable):
        """
        Drop cached decisions for (user_id, company_id) pairs.

        Runs immediately and once more when the surrounding transaction
        commits, so a decision recomputed from pre-commit state cannot
        outlive the commit.
        """
        pairs = {(user_id, company_id) for user_id, company_id in pairs}
        if not pairs:
            return

        def _invalidate():
            decision_cache = DecisionCache()
            for user_id, company_id in pairs:
                decision_cache.invalidate_principal(user_id, company_id)

        _invalidate()
        transaction.on_commit(_invalidate)

    @classmethod
    def invalidate_role_holders(cls, role: Role):
        """Drop cached decisions of every user holding the role."""
        cls.invalidate_principals(
            UserRole.objects.filter(role=role).values_list('user_id', 'company_id')
        )

    # Permission catalog

    @classmethod
    def create_permission(cls, module: str, action: str, description: str = '') -> Permission:
        """Create a catalog permission named '<module>.<action>'."""
        permission = Permission.objects.create_permission(module, action, description)
        logger.info(f"Created permission {permission.name}")
        return permission

    @classmethod
    def create_crud_permissions(cls, module: str) -> List[Permission]:
        """Create view/create/edit/delete permissions for a module."""
        created = Permission.objects.create_crud_permissions(module)
        logger.info(f"Created {len(created)} CRUD permissions for module {module}")
        return created

    @classmethod
    def delete_permission(cls, permission: Permission):
        """
        Delete a catalog permission.

        Raises:
            PermissionInUseError: If any role still references it
        """
        role_count = RolePermission.objects.for_permission(permission).count()
        if role_count:
            raise PermissionInUseError(
                f"Permission {permission.name} is assigned to {role_count} role(s)",
                details={'permission': permission.name, 'roles': role_count},
            )
        permission.delete()
        logger.info(f"Deleted permission {permission.name}")

    @classmethod
    def resolve_permission_ids(cls, refs) -> List[int]:
        """Resolve permission references to ids (raises Permission.DoesNotExist)."""
        return Permission.objects.resolve_refs(refs)

    # Role store

    @classmethod
    def _ensure_name_available(cls, company, name, exclude_pk=None):
        clash = Role.objects.filter(company=company, name=name)
        if exclude_pk is not None:
            clash = clash.exclude(pk=exclude_pk)
        if clash.exists():
            raise RBACError(
                f"Role {name!r} already exists in this company",
                details={'name': name},
            )

    @classmethod
    @transaction.atomic
    def create_role(cls, company, name: str, description: str = '', permissions=(),
                    created_by: Optional[User] = None) -> Role:
        """
        Create a role in a company, optionally with permissions.

        Raises:
            RBACError: If the name is taken in the company
            Permission.DoesNotExist: If a permission reference is unknown
        """
        name = name.strip()
        cls._ensure_name_available(company, name)
        permission_ids = cls.resolve_permission_ids(permissions)

        role = Role.objects.create(company=company, name=name, description=description)
        RolePermission.objects.bulk_create(
            [RolePermission(role=role, permission_id=pk) for pk in permission_ids]
        )

        SecurityLogger.log_assignment_change(
            'role_created',
            company_id=company.pk,
            actor_id=created_by.pk if created_by else None,
            role_id=role.pk,
            permission_ids=permission_ids,
        )
        return role

    @classmethod
    @transaction.atomic
    def update_role(cls, role: Role, name: Optional[str] = None,
                    description: Optional[str] = None,
                    updated_by: Optional[User] = None) -> Role:
        """
        Update a role's name and/or description.

        Raises:
            SystemRoleError: On renaming a system role, or renaming a role
                to a system role name
            RBACError: If the new name is taken in the company
        """
        role = Role.objects.select_for_update().get(pk=role.pk)
        update_fields = []

        if name is not None and name.strip() != role.name:
            name = name.strip()
            if role.is_system:
                raise SystemRoleError(f"System role {role.name} cannot be renamed")
            if is_system_role_name(name):
                raise SystemRoleError(f"{name} is reserved for system roles")
            cls._ensure_name_available(role.company_id, name, exclude_pk=role.pk)
            role.name = name
            update_fields.append('name')

        if description is not None:
            role.description = description
            update_fields.append('description')

        if update_fields:
            role.save(update_fields=update_fields + ['updated_at'])
            SecurityLogger.log_assignment_change(
                'role_updated',
                company_id=role.company_id,
                actor_id=updated_by.pk if updated_by else None,
                role_id=role.pk,
            )
            # Role checks match on names
            cls.invalidate_role_holders(role)
        return role

    @classmethod
    @transaction.atomic
    def set_role_active(cls, role: Role, is_active: bool,
                        changed_by: Optional[User] = None) -> Role:
        """Activate or deactivate a role. Inactive roles grant nothing."""
        role = Role.objects.select_for_update().get(pk=role.pk)
        if role.is_active != is_active:
            role.is_active = is_active
            role.save(update_fields=['is_active', 'updated_at'])
            SecurityLogger.log_assignment_change(
                'role_activated' if is_active else 'role_deactivated',
                company_id=role.company_id,
                actor_id=changed_by.pk if changed_by else None,
                role_id=role.pk,
            )
            cls.invalidate_role_holders(role)
        return role

    @classmethod
    @transaction.atomic
    def delete_role(cls, role: Role, deleted_by: Optional[User] = None):
        """
        Soft delete a role.

        Raises:
            RoleInUseError: If any user still holds the role
        """
        role = Role.objects.select_for_update().get(pk=role.pk)
        assigned = role.assigned_user_count()
        if assigned:
            raise RoleInUseError(
                f"Role {role.name} is assigned to {assigned} user(s)",
                details={'role': role.name, 'assigned_users': assigned},
            )
        role.delete()
        SecurityLogger.log_assignment_change(
            'role_deleted',
            company_id=role.company_id,
            actor_id=deleted_by.pk if deleted_by else None,
            role_id=role.pk,
        )

    @classmethod
    @transaction.atomic
    def restore_role(cls, role: Role, restored_by: Optional[User] = None) -> Role:
        """
        Restore a soft-deleted role.

        Raises:
            RBACError: If an active role with the same name exists
        """
        role = Role.objects_with_deleted.select_for_update().get(pk=role.pk)
        if role.is_deleted:
            cls._ensure_name_available(role.company_id, role.name, exclude_pk=role.pk)
            role.restore()
            SecurityLogger.log_assignment_change(
                'role_restored',
                company_id=role.company_id,
                actor_id=restored_by.pk if restored_by else None,
                role_id=role.pk,
            )
        return role

    @classmethod
    @transaction.atomic
    def force_delete_role(cls, role: Role, deleted_by: Optional[User] = None):
        """
        Permanently delete a role and its permission assignments.

        Raises:
            SystemRoleError: For system roles
            RoleInUseError: If any user still holds the role
        """
        role = Role.objects_with_deleted.select_for_update().get(pk=role.pk)
        if role.is_system:
            raise SystemRoleError(f"System role {role.name} cannot be permanently deleted")
        assigned = role.assigned_user_count()
        if assigned:
            raise RoleInUseError(
                f"Role {role.name} is assigned to {assigned} user(s)",
                details={'role': role.name, 'assigned_users': assigned},
            )
        role_id, company_id = role.pk, role.company_id
        role.hard_delete()
        SecurityLogger.log_assignment_change(
            'role_force_deleted',
            company_id=company_id,
            actor_id=deleted_by.pk if deleted_by else None,
            role_id=role_id,
        )

    @classmethod
    @transaction.atomic
    def clone_role(cls, role: Role, company=None, name: Optional[str] = None,
                   cloned_by: Optional[User] = None) -> Role:
        """
        Copy a role and its permissions, into the same or another company.

        Raises:
            SystemRoleError: If the clone would take a system role name
            RBACError: If the name is taken in the target company
        """
        company_id = company.pk if company is not None else role.company_id
        name = (name or f"{role.name} (Copy)").strip()
        if is_system_role_name(name):
            raise SystemRoleError(f"{name} is reserved for system roles")
        cls._ensure_name_available(company_id, name)

        clone = Role.objects.create(
            company_id=company_id,
            name=name,
            description=role.description,
            is_active=role.is_active,
        )
        permission_ids = list(
            RolePermission.objects.for_role(role).values_list('permission_id', flat=True)
        )
        RolePermission.objects.bulk_create(
            [RolePermission(role=clone, permission_id=pk) for pk in permission_ids]
        )
        SecurityLogger.log_assignment_change(
            'role_cloned',
            company_id=company_id,
            actor_id=cloned_by.pk if cloned_by else None,
            role_id=clone.pk,
            permission_ids=permission_ids,
        )
        return clone

    @classmethod
    def role_stats(cls, role: Role) -> Dict:
        """Summary counts for a role."""
        by_module = dict(
            Permission.objects.filter(role_permissions__role=role)
            .values_list('module')
            .annotate(total=Count('id'))
            .order_by('module')
        )
        return {
            'role_id': role.pk,
            'name': role.name,
            'is_system': role.is_system,
            'is_active': role.is_active,
            'users': role.assigned_user_count(),
            'permissions': sum(by_module.values()),
            'permissions_by_module': by_module,
            'can_be_deleted': role.can_be_deleted(),
        }

    # Role <-> Permission

    @classmethod
    def get_role_permissions(cls, role: Role) -> Set[str]:
        """Get all permission names for a role."""
        return role.permission_names()

    @classmethod
    def grant_permission(cls, role: Role, permission, granted_by: Optional[User] = None) -> bool:
        """Grant one permission. Returns True if it was newly attached."""
        return bool(cls.grant_permissions(role, [permission], granted_by))

    @classmethod
    @transaction.atomic
    def grant_permissions(cls, role: Role, permissions,
                          granted_by: Optional[User] = None) -> List[int]:
        """
        Attach permissions to a role (idempotent).

        Returns:
            Ids of permissions that were newly attached
        """
        role = Role.objects.select_for_update().get(pk=role.pk)
        permission_ids = cls.resolve_permission_ids(permissions)
        existing = set(
            RolePermission.objects.for_role(role)
            .filter(permission_id__in=permission_ids)
            .values_list('permission_id', flat=True)
        )
        attached = [pk for pk in permission_ids if pk not in existing]
        if attached:
            RolePermission.objects.bulk_create(
                [RolePermission(role=role, permission_id=pk) for pk in attached]
            )
            SecurityLogger.log_assignment_change(
                'permissions_granted',
                company_id=role.company_id,
                actor_id=granted_by.pk if granted_by else None,
                role_id=role.pk,
                permission_ids=attached,
            )
            cls.invalidate_role_holders(role)
        return attached

    @classmethod
    def revoke_permission(cls, role: Role, permission, revoked_by: Optional[User] = None) -> bool:
        """Revoke one permission. Returns True if it was attached."""
        return bool(cls.revoke_permissions(role, [permission], revoked_by))

    @classmethod
    @transaction.atomic
    def revoke_permissions(cls, role: Role, permissions,
                           revoked_by: Optional[User] = None) -> List[int]:
        """
        Detach permissions from a role (idempotent).

        Returns:
            Ids of permissions that were detached
        """
        role = Role.objects.select_for_update().get(pk=role.pk)
        permission_ids = cls.resolve_permission_ids(permissions)
        rows = RolePermission.objects.for_role(role).filter(permission_id__in=permission_ids)
        detached = list(rows.values_list('permission_id', flat=True))
        if detached:
            rows.delete()
            SecurityLogger.log_assignment_change(
                'permissions_revoked',
                company_id=role.company_id,
                actor_id=revoked_by.pk if revoked_by else None,
                role_id=role.pk,
                permission_ids=detached,
            )
            cls.invalidate_role_holders(role)
        return detached

    @classmethod
    @transaction.atomic
    def sync_permissions(cls, role: Role, permissions,
                         synced_by: Optional[User] = None) -> Dict[str, List[int]]:
        """
        Replace a role's permission set.

        All references are resolved before any row changes; an unknown
        reference aborts the whole sync.

        Returns:
            {'attached': [...], 'detached': [...]}
        """
        role = Role.objects.select_for_update().get(pk=role.pk)
        wanted = cls.resolve_permission_ids(permissions)
        current = set(RolePermission.objects.for_role(role).values_list('permission_id', flat=True))

        attached = [pk for pk in wanted if pk not in current]
        detached = sorted(current - set(wanted))

        if detached:
            RolePermission.objects.for_role(role).filter(permission_id__in=detached).delete()
        if attached:
            RolePermission.objects.bulk_create(
                [RolePermission(role=role, permission_id=pk) for pk in attached]
            )

        if attached or detached:
            SecurityLogger.log_assignment_change(
                'permissions_synced',
                company_id=role.company_id,
                actor_id=synced_by.pk if synced_by else None,
                role_id=role.pk,
                permission_ids=wanted,
            )
            cls.invalidate_role_holders(role)
        return {'attached': attached, 'detached': detached}

    # User <-> Role

    @classmethod
    def get_user_roles(cls, user: User):
        """Active roles of a user within their company."""
        return user.active_roles()

    @classmethod
    def get_user_permissions(cls, user: User) -> Set[str]:
        """Effective permission names of a user."""
        return get_policy_engine().resolver.permission_names(Principal.from_user(user))

    @classmethod
    def _check_assignable(cls, user: User, role: Role):
        if user.company_id is None or user.company_id != role.company_id:
            raise TenantMismatchError(
                "Role must belong to the same company as the user",
                details={'user_company_id': user.company_id, 'role_company_id': role.company_id},
            )
        if not role.is_active or role.is_deleted:
            raise InactiveRoleError(f"Role {role.name} is not active")

    @classmethod
    def _lock_user(cls, user: User) -> User:
        return User.objects.select_for_update().get(pk=user.pk)

    @classmethod
    @transaction.atomic
    def assign_role(cls, user: User, role: Role,
                    assigned_by: Optional[User] = None) -> UserRole:
        """
        Assign a role to a user (idempotent).

        Raises:
            TenantMismatchError: If user and role belong to different companies
            InactiveRoleError: If the role is inactive or deleted

        Returns:
            UserRole instance
        """
        cls._check_assignable(user, role)
        cls._lock_user(user)

        user_role, created = UserRole.objects.get_or_create(
            user=user,
            role=role,
            company_id=role.company_id,
            defaults={'assigned_by': assigned_by},
        )

        if created:
            SecurityLogger.log_assignment_change(
                'role_assigned',
                company_id=role.company_id,
                actor_id=assigned_by.pk if assigned_by else None,
                user_id=user.pk,
                role_id=role.pk,
            )
            cls.invalidate_principals([(user.pk, user.company_id)])
        return user_role

    @classmethod
    def _removal_blocker(cls, assignments, role: Role) -> Optional[str]:
        """Reason a role cannot be removed from these assignments, if any."""
        if len(assignments) <= 1:
            return 'Last role cannot be removed'
        removing_active = any(
            a.role_id == role.pk and a.role.is_active and not a.role.is_deleted
            for a in assignments
        )
        remaining_active = [
            a for a in assignments
            if a.role_id != role.pk and a.role.is_active and not a.role.is_deleted
        ]
        if removing_active and not remaining_active:
            return 'Last active role cannot be removed'
        return None

    @classmethod
    @transaction.atomic
    def remove_role(cls, user: User, role: Role,
                    removed_by: Optional[User] = None) -> bool:
        """
        Remove a role from a user.

        Raises:
            LastRoleError: If it would leave the user without an active role

        Returns:
            True if role was removed, False if it wasn't assigned
        """
        cls._lock_user(user)
        assignments = list(UserRole.objects.for_user(user).select_related('role'))
        if not any(a.role_id == role.pk for a in assignments):
            return False

        blocker = cls._removal_blocker(assignments, role)
        if blocker:
            raise LastRoleError(blocker, details={'user_id': user.pk, 'role': role.name})

        UserRole.objects.for_user(user).filter(role=role).delete()
        SecurityLogger.log_assignment_change(
            'role_removed',
            company_id=user.company_id,
            actor_id=removed_by.pk if removed_by else None,
            user_id=user.pk,
            role_id=role.pk,
        )
        cls.invalidate_principals([(user.pk, user.company_id)])
        return True

    @classmethod
    @transaction.atomic
    def sync_roles(cls, user: User, roles: Iterable[Role],
                   assigned_by: Optional[User] = None) -> Dict[str, List[int]]:
        """
        Replace a user's role set.

        Raises:
            LastRoleError: If roles is empty
            TenantMismatchError / InactiveRoleError: If any role is not assignable

        Returns:
            {'attached': [...], 'detached': [...]} as role ids
        """
        roles = list({role.pk: role for role in roles}.values())
        if not roles:
            raise LastRoleError("A user must keep at least one role", details={'user_id': user.pk})
        for role in roles:
            cls._check_assignable(user, role)

        cls._lock_user(user)
        wanted = [role.pk for role in roles]
        current = set(UserRole.objects.for_user(user).values_list('role_id', flat=True))

        attached = [pk for pk in wanted if pk not in current]
        detached = sorted(current - set(wanted))

        if detached:
            UserRole.objects.for_user(user).filter(role_id__in=detached).delete()
        for role in roles:
            if role.pk in attached:
                UserRole.objects.create(
                    user=user, role=role, company_id=role.company_id, assigned_by=assigned_by
                )

        if attached or detached:
            SecurityLogger.log_assignment_change(
                'roles_synced',
                company_id=user.company_id,
                actor_id=assigned_by.pk if assigned_by else None,
                user_id=user.pk,
            )
            cls.invalidate_principals([(user.pk, user.company_id)])
        return {'attached': attached, 'detached': detached}

    @classmethod
    @transaction.atomic
    def bulk_assign_role(cls, users: Iterable[User], role: Role,
                         assigned_by: Optional[User] = None) -> BulkRoleResult:
        """
        Assign one role to many users.

        Users of another company are reported in ``rejected``, never assigned.
        """
        if not role.is_active or role.is_deleted:
            raise InactiveRoleError(f"Role {role.name} is not active")

        result = BulkRoleResult(role_id=role.pk)
        users = sorted({user.pk: user for user in users}.values(), key=lambda u: u.pk)
        holders = set(
            UserRole.objects.filter(role=role, user__in=users).values_list('user_id', flat=True)
        )

        for user in users:
            if user.company_id != role.company_id:
                result.rejected[user.pk] = 'Role belongs to another company'
            elif user.pk in holders:
                result.already_assigned.append(user.pk)
            else:
                UserRole.objects.create(
                    user=user, role=role, company_id=role.company_id, assigned_by=assigned_by
                )
                result.assigned.append(user.pk)

        if result.assigned:
            SecurityLogger.log_assignment_change(
                'role_bulk_assigned',
                company_id=role.company_id,
                actor_id=assigned_by.pk if assigned_by else None,
                role_id=role.pk,
            )
            cls.invalidate_principals((pk, role.company_id) for pk in result.assigned)
        return result

    @classmethod
    @transaction.atomic
    def bulk_remove_role(cls, users: Iterable[User], role: Role,
                         removed_by: Optional[User] = None) -> BulkRoleResult:
        """
        Remove one role from many users.

        Users for whom it is the last role keep it and are reported in
        ``cannot_remove``.
        """
        result = BulkRoleResult(role_id=role.pk)
        users = sorted({user.pk: user for user in users}.values(), key=lambda u: u.pk)
        user_ids = [user.pk for user in users]
        list(User.objects.select_for_update().filter(pk__in=user_ids).order_by('pk'))

        assignments_by_user = {}
        for assignment in UserRole.objects.filter(user_id__in=user_ids).select_related('role'):
            if assignment.company_id == assignment.role.company_id:
                assignments_by_user.setdefault(assignment.user_id, []).append(assignment)

        for user in users:
            assignments = [
                a for a in assignments_by_user.get(user.pk, [])
                if a.company_id == user.company_id
            ]
            if not any(a.role_id == role.pk for a in assignments):
                result.not_assigned.append(user.pk)
                continue
            blocker = cls._removal_blocker(assignments, role)
            if blocker:
                result.cannot_remove[user.pk] = blocker
                continue
            UserRole.objects.filter(user=user, role=role, company_id=user.company_id).delete()
            result.removed.append(user.pk)

        if result.removed:
            SecurityLogger.log_assignment_change(
                'role_bulk_removed',
                company_id=role.company_id,
                actor_id=removed_by.pk if removed_by else None,
                role_id=role.pk,
            )
            cls.invalidate_principals((pk, role.company_id) for pk in result.removed)
        return result

    @classmethod
    @transaction.atomic
    def transfer_role_users(cls, from_role: Role, to_role: Role, keep_existing: bool = False,
                            transferred_by: Optional[User] = None) -> Dict[str, List[int]]:
        """
        Move every holder of one role to another role in the same company.

        With keep_existing the users keep from_role as well.

        Raises:
            TenantMismatchError: If the roles belong to different companies
            InactiveRoleError: If to_role is not active

        Returns:
            {'transferred': [...user ids]}
        """
        if from_role.company_id != to_role.company_id:
            raise TenantMismatchError("Roles must belong to the same company")
        if not to_role.is_active or to_role.is_deleted:
            raise InactiveRoleError(f"Role {to_role.name} is not active")
        if from_role.pk == to_role.pk:
            return {'transferred': []}

        user_ids = sorted(
            UserRole.objects.filter(role=from_role, company_id=from_role.company_id)
            .values_list('user_id', flat=True)
        )
        list(User.objects.select_for_update().filter(pk__in=user_ids).order_by('pk'))
        holders = set(
            UserRole.objects.filter(role=to_role, user_id__in=user_ids).values_list('user_id', flat=True)
        )

        UserRole.objects.bulk_create([
            UserRole(
                user_id=pk,
                role=to_role,
                company_id=to_role.company_id,
                assigned_by=transferred_by,
            )
            for pk in user_ids if pk not in holders
        ])
        if not keep_existing:
            UserRole.objects.filter(role=from_role, user_id__in=user_ids).delete()

        SecurityLogger.log_assignment_change(
            'role_users_transferred',
            company_id=from_role.company_id,
            actor_id=transferred_by.pk if transferred_by else None,
            role_id=to_role.pk,
        )
        cls.invalidate_principals((pk, from_role.company_id) for pk in user_ids)
        return {'transferred': user_ids}

    # Seeding

    @classmethod
    def seed_permissions(cls) -> List[Permission]:
        """
        Create the default permission catalog (idempotent).

        Returns:
            Permissions that were created
        """
        created = []
        for name, description in DEFAULT_PERMISSIONS:
            permission, was_created = Permission.objects.get_or_create_permission(name, description)
            if was_created:
                created.append(permission)
        if created:
            logger.info(f"Seeded {len(created)} permissions")
        return created

    @classmethod
    @transaction.atomic
    def seed_default_roles(cls, company) -> List[str]:
        """
        Seed the default roles for a company (idempotent).

        TenantAdmin receives every catalog permission. Permission names not
        yet in the catalog are skipped.

        Returns:
            Names of roles that were created
        """
        roles_created = []
        for role_name, permission_names in DEFAULT_ROLE_PERMISSIONS.items():
            role, created = Role.objects.get_or_create_role(
                company=company,
                name=role_name,
                description=DEFAULT_ROLE_DESCRIPTIONS.get(role_name, ''),
            )
            if created:
                roles_created.append(role_name)

            permissions = Permission.objects.all()
            if permission_names is not None:
                permissions = permissions.filter(name__in=permission_names)
            cls.sync_permissions(role, list(permissions.values_list('id', flat=True)))

        logger.info(
            f"Seeded default roles for company {company.slug}",
            extra={'company_id': company.pk, 'roles_created': roles_created},
        )
        return roles_created
