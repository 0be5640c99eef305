"""
Tests for RBAC management commands.
"""
from io import StringIO

import pytest
from django.core.management import call_command
from django.core.management.base import CommandError

from apps.rbac.catalog import DEFAULT_PERMISSIONS
from apps.rbac.decisions import Principal
from apps.rbac.models import Permission, Role
from apps.rbac.policies import PolicyConfig
from apps.rbac.resolver import AuthorizationResolver


def run(*args, **options):
    out = StringIO()
    call_command(*args, stdout=out, **options)
    return out.getvalue()


@pytest.mark.django_db
class TestSeedPermissions:

    def test_seeds_catalog(self):
        output = run('seed_permissions')
        assert Permission.objects.count() == len(DEFAULT_PERMISSIONS)
        assert f'{len(DEFAULT_PERMISSIONS)} created' in output

    def test_rerun_is_idempotent(self):
        run('seed_permissions')
        Permission.objects.filter(name='users.view').update(description='stale')
        output = run('seed_permissions')
        assert Permission.objects.count() == len(DEFAULT_PERMISSIONS)
        assert '0 created, 1 updated' in output
        assert Permission.objects.get(name='users.view').description == 'View users'


@pytest.mark.django_db
class TestSeedCompanyRoles:

    def test_requires_target(self):
        with pytest.raises(CommandError):
            run('seed_company_roles')

    def test_rejects_both_targets(self, company):
        with pytest.raises(CommandError):
            run('seed_company_roles', company='acme', all=True)

    def test_unknown_company(self, db):
        with pytest.raises(CommandError):
            run('seed_company_roles', company='nope')

    def test_by_slug(self, company, permissions):
        output = run('seed_company_roles', company='acme')
        assert Role.objects.for_company(company).count() == 4
        assert 'acme' in output

    def test_by_id(self, company, permissions):
        run('seed_company_roles', company=str(company.pk))
        assert Role.objects.for_company(company).count() == 4

    def test_all(self, company, other_company, permissions):
        run('seed_company_roles', all=True)
        output = run('seed_company_roles', all=True)
        assert Role.objects.for_company(company).count() == 4
        assert Role.objects.for_company(other_company).count() == 4
        assert 'roles up to date' in output


@pytest.mark.django_db
class TestClearRBACCache:

    def _prime(self, user):
        check = AuthorizationResolver(PolicyConfig(super_admin_bypass=False))
        principal = Principal.from_user(user)
        check.has_any_permission(principal, ['services.view'])
        return check.cache.get(principal, 'perm', ['services.view'])

    def test_clear_all(self, technician):
        assert self._prime(technician) is True
        output = run('clear_rbac_cache')
        assert 'all users' in output
        check = AuthorizationResolver(PolicyConfig())
        assert check.cache.get(Principal.from_user(technician), 'perm', ['services.view']) is None

    def test_clear_user(self, technician):
        assert self._prime(technician) is True
        run('clear_rbac_cache', user=technician.pk)
        check = AuthorizationResolver(PolicyConfig())
        assert check.cache.get(Principal.from_user(technician), 'perm', ['services.view']) is None

    def test_unknown_user(self, db):
        with pytest.raises(CommandError):
            run('clear_rbac_cache', user=999999)
