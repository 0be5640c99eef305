"""
Pytest configuration and fixtures.
"""
import pytest
from django.conf import settings
import django
from django.core.management import call_command


def pytest_configure(config):
    """Configure Django settings for tests."""
    settings.DATABASES['default'] = {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': ':memory:',
        'ATOMIC_REQUESTS': False,
    }
    settings.CACHES = {
        'default': {
            'BACKEND': 'django.core.cache.backends.locmem.LocMemCache',
            'LOCATION': 'rbac-tests',
        }
    }
    # Tests seed roles explicitly where they need them
    settings.RBAC_SEED_DEFAULT_ROLES = False
    django.setup()


@pytest.fixture(scope='session')
def django_db_setup(django_db_setup, django_db_blocker):
    """Set up test database."""
    with django_db_blocker.unblock():
        call_command('migrate', '--run-syncdb', verbosity=0)


@pytest.fixture(autouse=True)
def clear_rbac_state():
    """Every test starts with an empty decision cache and a fresh engine."""
    from django.core.cache import cache
    from apps.rbac.policies import reset_policy_engine

    cache.clear()
    reset_policy_engine()
    yield
    cache.clear()
    reset_policy_engine()


@pytest.fixture
def api_factory():
    """Return DRF request factory."""
    from rest_framework.test import APIRequestFactory
    return APIRequestFactory()


@pytest.fixture
def company(db):
    """Create a test company."""
    from apps.tenants.models import Company
    return Company.objects.create(name='Acme Repairs', slug='acme')


@pytest.fixture
def other_company(db):
    """Create another company for isolation tests."""
    from apps.tenants.models import Company
    return Company.objects.create(name='Globex Services', slug='globex')


@pytest.fixture
def permissions(db):
    """Seed the default permission catalog."""
    from apps.rbac.services import RBACService
    from apps.rbac.models import Permission

    RBACService.seed_permissions()
    return {p.name: p for p in Permission.objects.all()}


@pytest.fixture
def make_role(db, permissions):
    """Factory creating a role with the given permission names."""
    from apps.rbac.models import Role, RolePermission

    def _make_role(company, name, permission_names=(), is_active=True):
        role = Role.objects.create(company=company, name=name, is_active=is_active)
        for permission_name in permission_names:
            RolePermission.objects.create(role=role, permission=permissions[permission_name])
        return role

    return _make_role


@pytest.fixture
def make_user(db):
    """Factory creating a user holding the given roles."""
    from apps.rbac.models import User, UserRole

    counter = {'n': 0}

    def _make_user(company, roles=(), email=None, is_active=True):
        counter['n'] += 1
        user = User.objects.create_user(
            email=email or f"user{counter['n']}@example.com",
            company=company,
            is_active=is_active,
        )
        for role in roles:
            UserRole.objects.create(user=user, role=role, company=role.company)
        return user

    return _make_user


@pytest.fixture
def tenant_admin_role(company, make_role):
    return make_role(company, 'TenantAdmin')


@pytest.fixture
def super_admin_role(company, make_role):
    return make_role(company, 'SuperAdmin')


@pytest.fixture
def technician_role(company, make_role):
    return make_role(
        company, 'Technician', ['dashboard.view', 'services.view', 'services.edit']
    )


@pytest.fixture
def manager_role(company, make_role):
    return make_role(
        company, 'Manager', ['users.view', 'roles.view', 'services.view', 'invoices.view']
    )


@pytest.fixture
def tenant_admin(company, tenant_admin_role, make_user):
    return make_user(company, [tenant_admin_role], email='admin@acme.test')


@pytest.fixture
def super_admin(company, super_admin_role, make_user):
    return make_user(company, [super_admin_role], email='root@acme.test')


@pytest.fixture
def technician(company, technician_role, make_user):
    return make_user(company, [technician_role], email='tech@acme.test')


@pytest.fixture
def engine(db):
    """Policy engine built from current settings."""
    from apps.rbac.policies import PolicyEngine, PolicyConfig
    return PolicyEngine(PolicyConfig.from_settings())
