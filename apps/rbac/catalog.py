"""
Permission catalog vocabulary and boundary parsing.

Everything in this module is pure: no ORM access. It defines the closed
module/action vocabulary, the default permission catalog, the role names
with special meaning, and the parsing rules that turn raw boundary input
(request parameters, view attributes) into clean permission and role sets.
"""
import re
from dataclasses import dataclass
from typing import Iterable, List, Optional

from apps.rbac.exceptions import InvalidPermissionFormat


# Role names
SUPER_ADMIN = 'SuperAdmin'
TENANT_ADMIN = 'TenantAdmin'
MANAGER = 'Manager'
TECHNICIAN = 'Technician'
CUSTOMER = 'Customer'

SYSTEM_ROLES = (SUPER_ADMIN, TENANT_ADMIN)

# Permission vocabulary
MODULES = (
    'dashboard',
    'users',
    'roles',
    'permissions',
    'products',
    'product_categories',
    'clients',
    'services',
    'invoices',
    'reports',
    'settings',
    'company',
)

ACTIONS = (
    'view',
    'create',
    'edit',
    'delete',
    'export',
    'manage',
    'read',
    'process',
    'schedule',
    'dashboard',
    'restore',
    'import',
    'assign',
    'print',
    'send',
    'clone',
    'manage_roles',
    'manage_permissions',
    'create_crud',
)

CRUD_ACTIONS = ('view', 'create', 'edit', 'delete')

PERMISSION_NAME_PATTERN = re.compile(r'^[a-z_]+\.[a-z_]+$')

# Substrings that mark a permission as high privilege for audit logging
HIGH_PRIVILEGE_MARKERS = ('delete', 'manage', 'export', 'system', 'admin')

PERMISSION_LEVELS = {
    'view': 'basic',
    'read': 'basic',
    'create': 'intermediate',
    'edit': 'intermediate',
    'delete': 'advanced',
    'manage': 'advanced',
    'export': 'advanced',
}

DEFAULT_PERMISSIONS = [
    ('dashboard.view', 'View the dashboard'),

    ('users.view', 'View users'),
    ('users.create', 'Create users'),
    ('users.edit', 'Edit users'),
    ('users.delete', 'Delete users'),
    ('users.restore', 'Restore deleted users'),
    ('users.export', 'Export users'),
    ('users.manage', 'Manage user accounts and status'),
    ('users.manage_roles', 'Assign and remove user roles'),

    ('roles.view', 'View roles'),
    ('roles.create', 'Create roles'),
    ('roles.edit', 'Edit roles'),
    ('roles.delete', 'Delete roles'),
    ('roles.restore', 'Restore deleted roles'),
    ('roles.export', 'Export roles'),
    ('roles.manage', 'Manage roles'),
    ('roles.manage_permissions', 'Manage role permissions'),
    ('roles.clone', 'Clone roles'),

    ('permissions.view', 'View permissions'),
    ('permissions.create', 'Create permissions'),
    ('permissions.edit', 'Edit permissions'),
    ('permissions.delete', 'Delete permissions'),
    ('permissions.create_crud', 'Create CRUD permission sets'),

    ('products.view', 'View products'),
    ('products.create', 'Create products'),
    ('products.edit', 'Edit products'),
    ('products.delete', 'Delete products'),
    ('products.export', 'Export products'),
    ('products.import', 'Import products'),

    ('product_categories.view', 'View product categories'),
    ('product_categories.create', 'Create product categories'),
    ('product_categories.edit', 'Edit product categories'),
    ('product_categories.delete', 'Delete product categories'),

    ('settings.view', 'View settings'),
    ('settings.edit', 'Edit settings'),

    ('reports.view', 'View reports'),
    ('reports.export', 'Export reports'),

    ('company.view', 'View company information'),
    ('company.edit', 'Edit company information'),

    ('clients.view', 'View clients'),
    ('clients.create', 'Create clients'),
    ('clients.edit', 'Edit clients'),
    ('clients.delete', 'Delete clients'),
    ('clients.export', 'Export clients'),

    ('services.view', 'View services'),
    ('services.create', 'Create services'),
    ('services.edit', 'Edit services'),
    ('services.delete', 'Delete services'),
    ('services.assign', 'Assign services to technicians'),
    ('services.export', 'Export services'),

    ('invoices.view', 'View invoices'),
    ('invoices.create', 'Create invoices'),
    ('invoices.edit', 'Edit invoices'),
    ('invoices.delete', 'Delete invoices'),
    ('invoices.print', 'Print invoices'),
    ('invoices.send', 'Send invoices'),
    ('invoices.export', 'Export invoices'),
]

# Default roles seeded for every company. None means all permissions.
DEFAULT_ROLE_PERMISSIONS = {
    TENANT_ADMIN: None,
    MANAGER: [
        'dashboard.view',
        'users.view',
        'roles.view',
        'products.view', 'products.create', 'products.edit', 'products.export',
        'product_categories.view', 'product_categories.create', 'product_categories.edit',
        'clients.view', 'clients.create', 'clients.edit', 'clients.export',
        'services.view', 'services.create', 'services.edit', 'services.assign',
        'invoices.view', 'invoices.create', 'invoices.edit', 'invoices.print', 'invoices.send',
        'reports.view', 'reports.export',
        'company.view',
    ],
    TECHNICIAN: [
        'dashboard.view',
        'clients.view',
        'products.view',
        'services.view', 'services.edit',
    ],
    CUSTOMER: [
        'dashboard.view',
        'services.view',
        'invoices.view',
    ],
}

DEFAULT_ROLE_DESCRIPTIONS = {
    TENANT_ADMIN: 'Full administrative access within the company',
    MANAGER: 'Manages day-to-day business operations',
    TECHNICIAN: 'Performs and updates assigned services',
    CUSTOMER: 'Views own services and invoices',
}


def is_system_role_name(name: str) -> bool:
    return name in SYSTEM_ROLES


def is_high_privilege(permission_name: str) -> bool:
    """Return True if the permission name denotes a high-privilege operation."""
    return any(marker in permission_name for marker in HIGH_PRIVILEGE_MARKERS)


def permission_level(action: str) -> str:
    return PERMISSION_LEVELS.get(action, 'special')


def validate_permission_name(name) -> str:
    """
    Validate a permission name against the module.action format.

    Args:
        name: Raw permission name

    Returns:
        The name unchanged

    Raises:
        InvalidPermissionFormat: If the name is not a lowercase
            'module.action' string
    """
    if not isinstance(name, str) or not PERMISSION_NAME_PATTERN.match(name):
        raise InvalidPermissionFormat(name)
    return name


def split_permission_name(name: str):
    """Split a validated permission name into (module, action)."""
    module, action = validate_permission_name(name).split('.', 1)
    return module, action


def validate_vocabulary(module: str, action: str) -> str:
    """
    Check module and action against the closed vocabulary.

    Returns the composed permission name.
    """
    if module not in MODULES:
        raise InvalidPermissionFormat(
            f"{module}.{action}", message=f"Unknown permission module {module!r}"
        )
    if action not in ACTIONS:
        raise InvalidPermissionFormat(
            f"{module}.{action}", message=f"Unknown permission action {action!r}"
        )
    return validate_permission_name(f"{module}.{action}")


def parse_multi_value(raw) -> List[str]:
    """
    Normalize a multi-value parameter into a clean list of names.

    Accepts a string using ',' and/or '|' as separators, or an iterable of
    such strings. Items are trimmed, empties dropped and duplicates removed
    keeping first-seen order.

    Example:
        >>> parse_multi_value('users.view, users.edit|users.view')
        ['users.view', 'users.edit']
    """
    if raw is None:
        return []
    if isinstance(raw, str):
        chunks = [raw]
    else:
        chunks = list(raw)

    seen = []
    for chunk in chunks:
        for part in re.split(r'[,|]', str(chunk)):
            part = part.strip()
            if part and part not in seen:
                seen.append(part)
    return seen


def normalize_permission_names(raw) -> List[str]:
    """Parse a multi-value parameter and validate every permission name."""
    names = parse_multi_value(raw)
    for name in names:
        validate_permission_name(name)
    return names


@dataclass(frozen=True)
class PermissionRef:
    """
    Reference to a permission, either by name or by primary key.

    Service methods accept PermissionRef, names, ids or Permission
    instances; all of them are coerced to a PermissionRef and resolved to
    canonical ids in one query before any row is written.
    """
    name: Optional[str] = None
    id: Optional[int] = None

    def __post_init__(self):
        if (self.name is None) == (self.id is None):
            raise ValueError("PermissionRef needs exactly one of name or id")

    @classmethod
    def by_name(cls, name: str) -> 'PermissionRef':
        return cls(name=validate_permission_name(name))

    @classmethod
    def by_id(cls, pk: int) -> 'PermissionRef':
        return cls(id=int(pk))

    @property
    def is_by_name(self) -> bool:
        return self.name is not None

    @classmethod
    def coerce(cls, value) -> 'PermissionRef':
        if isinstance(value, PermissionRef):
            return value
        if isinstance(value, bool):
            raise TypeError(f"Cannot build a permission reference from {value!r}")
        if isinstance(value, str):
            return cls.by_name(value.strip())
        if isinstance(value, int):
            return cls.by_id(value)
        pk = getattr(value, 'pk', None)
        if pk is not None:
            return cls.by_id(pk)
        raise TypeError(f"Cannot build a permission reference from {value!r}")

    @classmethod
    def coerce_many(cls, values: Iterable) -> List['PermissionRef']:
        refs = []
        for value in values:
            ref = cls.coerce(value)
            if ref not in refs:
                refs.append(ref)
        return refs

    def __str__(self):
        return self.name if self.is_by_name else f"#{self.id}"
