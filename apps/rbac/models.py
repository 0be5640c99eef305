"""
RBAC models for multi-tenant access control.

Implements:
- User (principal bound to exactly one company)
- Permission (global catalog, module.action names)
- Role (per-company named permission sets, system roles by name)
- RolePermission (role -> permission assignment)
- UserRole (user -> role assignment within a company, with provenance)
"""
import logging
from collections import OrderedDict

from django.core.exceptions import ValidationError
from django.db import models
from django.db.models import Q
from django.utils import timezone

from apps.core.models import (
    BaseModel,
    BaseModelManager,
    BaseModelQuerySet,
    TimestampedModel,
)
from apps.rbac.catalog import (
    CRUD_ACTIONS,
    SUPER_ADMIN,
    SYSTEM_ROLES,
    PermissionRef,
    is_system_role_name,
    permission_level,
    validate_permission_name,
    validate_vocabulary,
)
from apps.rbac.exceptions import InvalidPermissionFormat

logger = logging.getLogger(__name__)


class UserManager(BaseModelManager.from_queryset(BaseModelQuerySet)):
    """
    Manager for User queries.

    Compatible with Django's authentication system.
    """

    def active(self):
        """Return only active users."""
        return self.filter(is_active=True)

    def for_company(self, company):
        """Get all users belonging to a company."""
        return self.filter(company=company)

    def by_email(self, email):
        """Find user by email."""
        return self.filter(email=self.normalize_email(email)).first()

    def create_user(self, email, company=None, **extra_fields):
        """Create a new user bound to a company."""
        if not email:
            raise ValueError('Email address is required')

        extra_fields.setdefault('is_active', True)
        user = self.model(email=self.normalize_email(email), company=company, **extra_fields)
        user.save(using=self._db)
        return user

    def normalize_email(self, email):
        """
        Normalize the email address by lowercasing the domain part.
        """
        email = email or ''
        try:
            email_name, domain_part = email.strip().rsplit('@', 1)
        except ValueError:
            pass
        else:
            email = email_name + '@' + domain_part.lower()
        return email

    def get_by_natural_key(self, email):
        """
        Get user by natural key (email).

        This method is required for Django's authentication system.
        """
        return self.get(**{self.model.USERNAME_FIELD: email})


class User(BaseModel):
    """
    Principal for authorization decisions.

    Each user belongs to one company. Roles and, transitively, permissions
    are derived from UserRole rows scoped to that company.

    This is the AUTH_USER_MODEL for the project.
    """

    email = models.EmailField(
        unique=True,
        db_index=True,
        help_text="User email address (unique globally)"
    )
    name = models.CharField(
        max_length=255,
        blank=True,
        help_text="Display name"
    )
    company = models.ForeignKey(
        'tenants.Company',
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name='users',
        help_text="Company this user belongs to"
    )
    is_active = models.BooleanField(
        default=True,
        db_index=True,
        help_text="Whether user account is active"
    )
    last_login_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="Last login timestamp"
    )

    USERNAME_FIELD = 'email'
    REQUIRED_FIELDS = []

    objects = UserManager()

    class Meta:
        db_table = 'users'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['company', 'is_active']),
        ]

    def __str__(self):
        return self.email

    @property
    def is_authenticated(self):
        """Always True for stored users (Django auth compatibility)."""
        return True

    @property
    def is_anonymous(self):
        """Always False for stored users (Django auth compatibility)."""
        return False

    def get_username(self):
        return self.email

    def active_roles(self):
        """Active roles assigned to this user within their own company."""
        return Role.objects.filter(
            company_id=self.company_id,
            is_active=True,
            user_roles__user=self,
            user_roles__company_id=self.company_id,
        ).distinct()

    def active_role_count(self):
        return self.active_roles().count()

    def role_names(self):
        return set(self.active_roles().values_list('name', flat=True))

    def has_system_privileges(self):
        """Whether the user holds an active system role in their company."""
        return self.active_roles().filter(name__in=SYSTEM_ROLES).exists()

    def is_super_admin(self):
        return self.active_roles().filter(name=SUPER_ADMIN).exists()


class PermissionQuerySet(models.QuerySet):

    def for_module(self, module):
        """Get all permissions in a module."""
        return self.filter(module=module)

    def by_name(self, name):
        """Find permission by name."""
        return self.filter(name=name).first()


class PermissionManager(models.Manager.from_queryset(PermissionQuerySet)):
    """Manager for the global permission catalog."""

    def create_permission(self, module, action, description=''):
        """
        Create a permission from a module and an action.

        Raises:
            InvalidPermissionFormat: If module or action is outside the
                vocabulary
        """
        name = validate_vocabulary(module, action)
        return self.create(
            name=name,
            module=module,
            action=action,
            description=description or f"{action.replace('_', ' ').capitalize()} {module.replace('_', ' ')}",
        )

    def get_or_create_permission(self, name, description=''):
        """Get or create permission by name (idempotent)."""
        module, action = name.split('.', 1) if '.' in name else (name, '')
        validate_vocabulary(module, action)
        permission, created = self.get_or_create(
            name=name,
            defaults={
                'module': module,
                'action': action,
                'description': description,
            }
        )
        return permission, created

    def create_crud_permissions(self, module, actions=CRUD_ACTIONS):
        """
        Create view/create/edit/delete permissions for a module.

        Existing permissions are left untouched.

        Returns:
            List of permissions that were created
        """
        created = []
        for action in actions:
            permission, was_created = self.get_or_create_permission(f"{module}.{action}")
            if was_created:
                created.append(permission)
        return created

    def grouped_by_module(self):
        """Return an ordered mapping of module -> list of permissions."""
        grouped = OrderedDict()
        for permission in self.order_by('module', 'action'):
            grouped.setdefault(permission.module, []).append(permission)
        return grouped

    def resolve_refs(self, refs):
        """
        Resolve permission references to canonical ids in one query.

        Args:
            refs: Iterable of PermissionRef, names, ids or Permission objects

        Returns:
            List of permission ids in reference order

        Raises:
            Permission.DoesNotExist: If any reference is unknown
        """
        refs = PermissionRef.coerce_many(refs)
        if not refs:
            return []

        names = [ref.name for ref in refs if ref.is_by_name]
        ids = [ref.id for ref in refs if not ref.is_by_name]
        rows = self.filter(Q(name__in=names) | Q(id__in=ids)).values_list('id', 'name')
        by_name = {name: pk for pk, name in rows}
        known_ids = set(by_name.values())

        missing = [
            str(ref) for ref in refs
            if (ref.is_by_name and ref.name not in by_name)
            or (not ref.is_by_name and ref.id not in known_ids)
        ]
        if missing:
            raise self.model.DoesNotExist(
                f"Unknown permission reference(s): {', '.join(missing)}"
            )

        resolved = []
        for ref in refs:
            pk = by_name[ref.name] if ref.is_by_name else ref.id
            if pk not in resolved:
                resolved.append(pk)
        return resolved


class Permission(TimestampedModel):
    """
    Global permission definitions, shared across all companies.

    Names follow the 'module.action' convention and are never tenant
    scoped. A permission referenced by any role cannot be deleted.
    """

    name = models.CharField(
        max_length=100,
        unique=True,
        db_index=True,
        help_text="Unique permission name (e.g., 'users.view')"
    )
    description = models.CharField(
        max_length=255,
        blank=True,
        help_text="What this permission grants"
    )
    module = models.CharField(
        max_length=50,
        db_index=True,
        help_text="Module segment of the name (e.g., 'users')"
    )
    action = models.CharField(
        max_length=50,
        help_text="Action segment of the name (e.g., 'view')"
    )

    objects = PermissionManager()

    class Meta:
        db_table = 'permissions'
        ordering = ['module', 'action']

    def __str__(self):
        return self.name

    def clean(self):
        super().clean()
        try:
            validate_permission_name(self.name)
        except InvalidPermissionFormat as e:
            raise ValidationError({'name': e.message})
        if self.name != f"{self.module}.{self.action}":
            raise ValidationError(
                {'name': "Permission name must equal '<module>.<action>'"}
            )
        try:
            validate_vocabulary(self.module, self.action)
        except InvalidPermissionFormat as e:
            raise ValidationError({'name': e.message})

    def save(self, *args, **kwargs):
        if not self.name and self.module and self.action:
            self.name = f"{self.module}.{self.action}"
        self.full_clean()
        super().save(*args, **kwargs)

    @property
    def level(self):
        """Privilege level derived from the action."""
        return permission_level(self.action)


class RoleQuerySet(BaseModelQuerySet):

    def for_company(self, company):
        """Get all roles for a specific company."""
        return self.filter(company=company)

    def active(self):
        return self.filter(is_active=True)

    def system(self):
        """Roles whose name is a system role name."""
        return self.filter(name__in=SYSTEM_ROLES)

    def custom(self):
        """Roles whose name is not a system role name."""
        return self.exclude(name__in=SYSTEM_ROLES)

    def by_name(self, company, name):
        """Find role by company and name."""
        return self.filter(company=company, name=name).first()


class RoleManager(BaseModelManager.from_queryset(RoleQuerySet)):
    """Manager for Role queries with company scoping."""

    def get_or_create_role(self, company, name, description=''):
        """Get or create role (idempotent)."""
        role, created = self.get_or_create(
            company=company,
            name=name,
            defaults={'description': description}
        )
        return role, created


class Role(BaseModel):
    """
    Per-company role definitions.

    System roles (SuperAdmin, TenantAdmin) are identified by name and
    exist as ordinary rows in each company that uses them.
    """

    company = models.ForeignKey(
        'tenants.Company',
        on_delete=models.CASCADE,
        related_name='roles',
        db_index=True,
        help_text="Company this role belongs to"
    )
    name = models.CharField(
        max_length=100,
        help_text="Role name (e.g., 'TenantAdmin', 'Technician')"
    )
    description = models.CharField(
        max_length=255,
        blank=True,
        help_text="Role description"
    )
    is_active = models.BooleanField(
        default=True,
        db_index=True,
        help_text="Inactive roles grant nothing"
    )

    objects = RoleManager()

    class Meta:
        db_table = 'roles'
        ordering = ['company', 'name']
        constraints = [
            models.UniqueConstraint(
                fields=['company', 'name'],
                condition=Q(deleted_at__isnull=True),
                name='unique_role_name_per_company',
            ),
        ]
        indexes = [
            models.Index(fields=['company', 'is_active']),
        ]

    def __str__(self):
        return f"{self.name} ({self.company_id})"

    @property
    def is_system(self):
        return is_system_role_name(self.name)

    def get_permissions(self):
        """Get all permissions granted by this role."""
        return Permission.objects.filter(role_permissions__role=self).distinct()

    def permission_names(self):
        return set(self.get_permissions().values_list('name', flat=True))

    def has_permission(self, permission_name):
        """Check if role has a specific permission."""
        return self.role_permissions.filter(permission__name=permission_name).exists()

    def assigned_user_count(self):
        """Number of user assignments held by this role."""
        return self.user_roles.filter(company_id=self.company_id).count()

    def assigned_user_ids(self):
        return list(self.user_roles.values_list('user_id', flat=True).distinct())

    def can_be_deleted(self):
        return not self.is_system and self.assigned_user_count() == 0


class RolePermissionManager(models.Manager):
    """Manager for RolePermission queries."""

    def for_role(self, role):
        """Get all permission assignments for a role."""
        return self.filter(role=role)

    def for_permission(self, permission):
        """Get all roles that have a permission."""
        return self.filter(permission=permission)

    def for_company(self, company):
        """Get all role permissions for a specific company."""
        return self.filter(role__company=company)


class RolePermission(TimestampedModel):
    """
    Maps permissions to roles.

    Permissions referenced here cannot be deleted (PROTECT).
    """

    role = models.ForeignKey(
        Role,
        on_delete=models.CASCADE,
        related_name='role_permissions',
        db_index=True,
        help_text="Role that grants this permission"
    )
    permission = models.ForeignKey(
        Permission,
        on_delete=models.PROTECT,
        related_name='role_permissions',
        db_index=True,
        help_text="Permission being granted"
    )

    objects = RolePermissionManager()

    class Meta:
        db_table = 'role_permissions'
        ordering = ['role', 'permission']
        constraints = [
            models.UniqueConstraint(
                fields=['role', 'permission'],
                name='unique_role_permission',
            ),
        ]

    def __str__(self):
        return f"{self.role.name} -> {self.permission.name}"


class UserRoleQuerySet(models.QuerySet):
    """QuerySet for UserRole queries."""

    def for_user(self, user):
        """Assignments for a user within the user's own company."""
        return self.filter(user=user, company_id=user.company_id)

    def for_company(self, company):
        return self.filter(company=company)

    def active(self):
        """Assignments whose role is active and not deleted."""
        return self.filter(role__is_active=True, role__deleted_at__isnull=True)


class UserRoleManager(models.Manager.from_queryset(UserRoleQuerySet)):
    """Manager for UserRole queries."""


class UserRole(TimestampedModel):
    """
    Maps roles to users within a company.

    The company on the assignment must equal both the user's and the
    role's company.
    """

    user = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='user_roles',
        db_index=True,
        help_text="User who has this role"
    )
    role = models.ForeignKey(
        Role,
        on_delete=models.PROTECT,
        related_name='user_roles',
        db_index=True,
        help_text="Role assigned to the user"
    )
    company = models.ForeignKey(
        'tenants.Company',
        on_delete=models.CASCADE,
        related_name='user_roles',
        db_index=True,
        help_text="Company in which the role was granted"
    )

    # Provenance
    assigned_by = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='role_assignments_made',
        help_text="User who assigned this role"
    )
    assigned_at = models.DateTimeField(
        default=timezone.now,
        help_text="When role was assigned"
    )

    objects = UserRoleManager()

    class Meta:
        db_table = 'user_roles'
        ordering = ['user', 'role']
        constraints = [
            models.UniqueConstraint(
                fields=['user', 'role', 'company'],
                name='unique_user_role_per_company',
            ),
        ]
        indexes = [
            models.Index(fields=['user', 'company']),
        ]

    def __str__(self):
        return f"{self.user.email} -> {self.role.name}"

    def clean(self):
        """Validate that user, role and assignment share one company."""
        super().clean()
        if self.user_id and self.role_id:
            if not (self.user.company_id == self.role.company_id == self.company_id):
                raise ValidationError(
                    "User, role and assignment must belong to the same company"
                )

    def save(self, *args, **kwargs):
        """Validate before saving."""
        if self.company_id is None and self.role_id:
            self.company_id = self.role.company_id
        self.full_clean()
        super().save(*args, **kwargs)
