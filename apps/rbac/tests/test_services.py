"""
Unit tests for RBAC services.

Tests the permission catalog, the role lifecycle, role permission
management and user role assignment, including cache invalidation.
"""
from unittest.mock import patch

import pytest

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
from apps.rbac.models import Permission, Role, RolePermission, UserRole
from apps.rbac.policies import PolicyConfig
from apps.rbac.resolver import AuthorizationResolver
from apps.rbac.services import RBACService


def cached_resolver():
    return AuthorizationResolver(PolicyConfig(super_admin_bypass=False))


@pytest.mark.django_db
class TestPermissionCatalog:

    def test_create_permission(self):
        permission = RBACService.create_permission('invoices', 'print', 'Print invoices')
        assert permission.name == 'invoices.print'

    def test_create_crud_permissions(self):
        created = RBACService.create_crud_permissions('clients')
        assert {p.name for p in created} == {'clients.view', 'clients.create', 'clients.edit', 'clients.delete'}
        assert RBACService.create_crud_permissions('clients') == []

    def test_delete_unused_permission(self, permissions):
        RBACService.delete_permission(permissions['invoices.print'])
        assert not Permission.objects.filter(name='invoices.print').exists()

    def test_delete_permission_in_use(self, company, make_role, permissions):
        make_role(company, 'Clerk', ['invoices.print'])
        with pytest.raises(PermissionInUseError) as exc_info:
            RBACService.delete_permission(permissions['invoices.print'])
        assert exc_info.value.details['roles'] == 1

    def test_seed_permissions_idempotent(self, db):
        first = RBACService.seed_permissions()
        assert len(first) == Permission.objects.count()
        assert RBACService.seed_permissions() == []


@pytest.mark.django_db
class TestRoleLifecycle:

    def test_create_role_with_permissions(self, company, permissions, tenant_admin):
        role = RBACService.create_role(
            company, ' Clerk ', 'Front desk', ['invoices.view', permissions['invoices.print'].pk],
            created_by=tenant_admin,
        )
        assert role.name == 'Clerk'
        assert role.permission_names() == {'invoices.view', 'invoices.print'}

    def test_create_role_duplicate_name(self, company, permissions):
        RBACService.create_role(company, 'Clerk')
        with pytest.raises(RBACError):
            RBACService.create_role(company, 'Clerk')

    def test_create_role_unknown_permission_writes_nothing(self, company, permissions):
        with pytest.raises(Permission.DoesNotExist):
            RBACService.create_role(company, 'Clerk', permissions=['invoices.view', 'invoices.fly'])
        assert not Role.objects.filter(name='Clerk').exists()

    def test_rename_custom_role(self, company, technician_role):
        role = RBACService.update_role(technician_role, name='Field Technician', description='On site')
        assert role.name == 'Field Technician'
        assert role.description == 'On site'

    def test_system_role_cannot_be_renamed(self, tenant_admin_role):
        with pytest.raises(SystemRoleError):
            RBACService.update_role(tenant_admin_role, name='Boss')
        role = RBACService.update_role(tenant_admin_role, description='Admins')
        assert role.description == 'Admins'

    def test_custom_role_cannot_take_system_name(self, technician_role):
        with pytest.raises(SystemRoleError):
            RBACService.update_role(technician_role, name='SuperAdmin')

    def test_rename_to_taken_name(self, company, technician_role, manager_role):
        with pytest.raises(RBACError):
            RBACService.update_role(technician_role, name='Manager')

    def test_deactivate_role(self, technician, technician_role):
        RBACService.set_role_active(technician_role, False)
        technician_role.refresh_from_db()
        assert not technician_role.is_active
        assert technician.role_names() == set()

    def test_delete_role_in_use(self, technician, technician_role):
        with pytest.raises(RoleInUseError):
            RBACService.delete_role(technician_role)

    def test_delete_and_restore(self, company, make_role):
        role = make_role(company, 'Clerk', ['invoices.view'])
        RBACService.delete_role(role)
        assert not Role.objects.filter(pk=role.pk).exists()

        restored = RBACService.restore_role(role)
        assert not restored.is_deleted
        assert Role.objects.get(pk=role.pk).permission_names() == {'invoices.view'}

    def test_restore_blocked_by_name_clash(self, company, make_role):
        role = make_role(company, 'Clerk')
        RBACService.delete_role(role)
        make_role(company, 'Clerk')
        with pytest.raises(RBACError):
            RBACService.restore_role(role)

    def test_force_delete(self, company, make_role):
        role = make_role(company, 'Clerk', ['invoices.view'])
        RBACService.force_delete_role(role)
        assert not Role.objects_with_deleted.filter(pk=role.pk).exists()
        assert not RolePermission.objects.filter(role_id=role.pk).exists()

    def test_force_delete_system_role(self, tenant_admin_role):
        with pytest.raises(SystemRoleError):
            RBACService.force_delete_role(tenant_admin_role)

    def test_force_delete_in_use(self, technician, technician_role):
        with pytest.raises(RoleInUseError):
            RBACService.force_delete_role(technician_role)

    def test_clone_role(self, company, technician_role):
        clone = RBACService.clone_role(technician_role)
        assert clone.name == 'Technician (Copy)'
        assert clone.company_id == company.pk
        assert clone.permission_names() == technician_role.permission_names()
        assert clone.assigned_user_count() == 0

    def test_clone_into_other_company(self, other_company, technician_role):
        clone = RBACService.clone_role(technician_role, company=other_company, name='Technician')
        assert clone.company_id == other_company.pk
        assert clone.permission_names() == technician_role.permission_names()

    def test_clone_to_system_name(self, technician_role):
        with pytest.raises(SystemRoleError):
            RBACService.clone_role(technician_role, name='TenantAdmin')

    def test_role_stats(self, technician, technician_role):
        stats = RBACService.role_stats(technician_role)
        assert stats['users'] == 1
        assert stats['permissions'] == 3
        assert stats['permissions_by_module'] == {'dashboard': 1, 'services': 2}
        assert stats['is_system'] is False
        assert stats['can_be_deleted'] is False


@pytest.mark.django_db
class TestRolePermissions:

    def test_grant_is_idempotent(self, technician_role):
        assert RBACService.grant_permission(technician_role, 'invoices.view')
        assert not RBACService.grant_permission(technician_role, 'invoices.view')
        assert RolePermission.objects.for_role(technician_role).count() == 4

    def test_grant_unknown_permission(self, technician_role):
        with pytest.raises(Permission.DoesNotExist):
            RBACService.grant_permissions(technician_role, ['invoices.view', 'invoices.fly'])
        assert not technician_role.has_permission('invoices.view')

    def test_revoke(self, technician_role, permissions):
        detached = RBACService.revoke_permissions(technician_role, ['services.edit', 'invoices.view'])
        assert detached == [permissions['services.edit'].pk]
        assert not RBACService.revoke_permission(technician_role, 'services.edit')

    def test_sync(self, technician_role, permissions):
        result = RBACService.sync_permissions(technician_role, ['services.view', 'clients.view'])
        assert result['attached'] == [permissions['clients.view'].pk]
        assert sorted(result['detached']) == sorted(
            [permissions['dashboard.view'].pk, permissions['services.edit'].pk]
        )
        assert technician_role.permission_names() == {'services.view', 'clients.view'}

    def test_sync_twice_is_stable(self, technician_role):
        RBACService.sync_permissions(technician_role, ['services.view', 'clients.view'])
        rows = sorted(RolePermission.objects.for_role(technician_role).values_list('permission_id', flat=True))
        result = RBACService.sync_permissions(technician_role, ['clients.view', 'services.view'])
        assert result == {'attached': [], 'detached': []}
        assert sorted(RolePermission.objects.for_role(technician_role).values_list('permission_id', flat=True)) == rows

    def test_sync_to_empty(self, technician_role):
        RBACService.sync_permissions(technician_role, [])
        assert technician_role.permission_names() == set()

    def test_grant_invalidates_holders(self, technician, technician_role):
        resolver = cached_resolver()
        principal = Principal.from_user(technician)
        assert not resolver.has_any_permission(principal, ['invoices.view'])
        RBACService.grant_permission(technician_role, 'invoices.view')
        assert resolver.has_any_permission(principal, ['invoices.view'])

    def test_revoke_invalidates_holders(self, technician, technician_role):
        resolver = cached_resolver()
        principal = Principal.from_user(technician)
        assert resolver.has_any_permission(principal, ['services.edit'])
        RBACService.revoke_permission(technician_role, 'services.edit')
        assert not resolver.has_any_permission(principal, ['services.edit'])

    def test_changes_are_logged(self, technician_role):
        with patch('apps.rbac.services.SecurityLogger.log_assignment_change') as log_change:
            RBACService.grant_permission(technician_role, 'invoices.view')
            RBACService.grant_permission(technician_role, 'invoices.view')
        log_change.assert_called_once()
        assert log_change.call_args.args[0] == 'permissions_granted'


@pytest.mark.django_db
class TestUserRoles:

    def test_assign_role(self, company, technician, manager_role, tenant_admin):
        user_role = RBACService.assign_role(technician, manager_role, assigned_by=tenant_admin)
        assert user_role.company_id == company.pk
        assert user_role.assigned_by == tenant_admin
        assert technician.role_names() == {'Technician', 'Manager'}

    def test_assign_is_idempotent(self, technician, technician_role):
        first = RBACService.assign_role(technician, technician_role)
        second = RBACService.assign_role(technician, technician_role)
        assert first.pk == second.pk
        assert UserRole.objects.for_user(technician).count() == 1

    def test_assign_role_of_other_company(self, other_company, technician, make_role):
        with pytest.raises(TenantMismatchError):
            RBACService.assign_role(technician, make_role(other_company, 'Clerk'))

    def test_assign_to_user_without_company(self, make_user, technician_role):
        with pytest.raises(TenantMismatchError):
            RBACService.assign_role(make_user(None), technician_role)

    def test_assign_inactive_role(self, company, technician, make_role):
        with pytest.raises(InactiveRoleError):
            RBACService.assign_role(technician, make_role(company, 'Dormant', is_active=False))

    def test_remove_last_role(self, technician, technician_role):
        with pytest.raises(LastRoleError):
            RBACService.remove_role(technician, technician_role)
        assert technician.role_names() == {'Technician'}

    def test_remove_last_active_role(self, company, technician, technician_role, make_role):
        RBACService.assign_role(technician, make_role(company, 'Dormant'))
        RBACService.set_role_active(Role.objects.get(name='Dormant'), False)
        with pytest.raises(LastRoleError):
            RBACService.remove_role(technician, technician_role)

    def test_remove_role(self, technician, technician_role, manager_role):
        RBACService.assign_role(technician, manager_role)
        assert RBACService.remove_role(technician, technician_role)
        assert technician.role_names() == {'Manager'}

    def test_remove_unassigned_role(self, technician, manager_role):
        assert RBACService.remove_role(technician, manager_role) is False

    def test_remove_invalidates_cache(self, technician, technician_role, manager_role):
        RBACService.assign_role(technician, manager_role)
        resolver = cached_resolver()
        principal = Principal.from_user(technician)
        assert resolver.has_any_permission(principal, ['services.edit'])
        RBACService.remove_role(technician, technician_role)
        assert not resolver.has_any_permission(principal, ['services.edit'])

    def test_sync_roles(self, technician, technician_role, manager_role):
        result = RBACService.sync_roles(technician, [manager_role])
        assert result == {'attached': [manager_role.pk], 'detached': [technician_role.pk]}
        assert technician.role_names() == {'Manager'}
        assert RBACService.sync_roles(technician, [manager_role, manager_role]) == {'attached': [], 'detached': []}

    def test_sync_roles_to_empty(self, technician):
        with pytest.raises(LastRoleError):
            RBACService.sync_roles(technician, [])

    def test_sync_roles_rejects_foreign_role(self, other_company, technician, technician_role, make_role):
        with pytest.raises(TenantMismatchError):
            RBACService.sync_roles(technician, [technician_role, make_role(other_company, 'Clerk')])
        assert technician.role_names() == {'Technician'}

    def test_bulk_assign(self, company, other_company, technician, manager_role, make_user):
        fresh = make_user(company)
        foreign = make_user(other_company)
        RBACService.assign_role(technician, manager_role)

        result = RBACService.bulk_assign_role([technician, fresh, foreign, fresh], manager_role)

        assert result.assigned == [fresh.pk]
        assert result.already_assigned == [technician.pk]
        assert list(result.rejected) == [foreign.pk]
        assert fresh.role_names() == {'Manager'}

    def test_bulk_assign_inactive_role(self, company, technician, make_role):
        with pytest.raises(InactiveRoleError):
            RBACService.bulk_assign_role([technician], make_role(company, 'Dormant', is_active=False))

    def test_bulk_remove(self, company, technician_role, manager_role, make_user):
        both = make_user(company, [technician_role, manager_role])
        only = make_user(company, [technician_role])
        neither = make_user(company, [manager_role])

        result = RBACService.bulk_remove_role([both, only, neither], technician_role)

        assert result.removed == [both.pk]
        assert list(result.cannot_remove) == [only.pk]
        assert result.not_assigned == [neither.pk]
        assert both.role_names() == {'Manager'}
        assert only.role_names() == {'Technician'}

    def test_transfer_role_users(self, company, technician_role, manager_role, make_user):
        first = make_user(company, [technician_role])
        second = make_user(company, [technician_role, manager_role])

        result = RBACService.transfer_role_users(technician_role, manager_role)

        assert result == {'transferred': sorted([first.pk, second.pk])}
        assert first.role_names() == {'Manager'}
        assert second.role_names() == {'Manager'}
        assert technician_role.assigned_user_count() == 0

    def test_transfer_keeping_existing(self, technician, technician_role, manager_role):
        RBACService.transfer_role_users(technician_role, manager_role, keep_existing=True)
        assert technician.role_names() == {'Technician', 'Manager'}

    def test_transfer_across_companies(self, other_company, technician_role, make_role):
        with pytest.raises(TenantMismatchError):
            RBACService.transfer_role_users(technician_role, make_role(other_company, 'Technician'))

    def test_user_queries(self, technician, technician_role):
        assert list(RBACService.get_user_roles(technician)) == [technician_role]
        assert RBACService.get_user_permissions(technician) == {
            'dashboard.view', 'services.view', 'services.edit'
        }
        assert RBACService.get_role_permissions(technician_role) == {
            'dashboard.view', 'services.view', 'services.edit'
        }

    def test_user_permissions_skip_inactive_roles(self, company, technician, make_role):
        RBACService.assign_role(technician, make_role(company, 'Billing', ['invoices.view']))
        assert 'invoices.view' in RBACService.get_user_permissions(technician)

        billing = Role.objects.get(company=company, name='Billing')
        RBACService.set_role_active(billing, False)
        assert 'invoices.view' not in RBACService.get_user_permissions(technician)


@pytest.mark.django_db
class TestDefaultRoles:

    def test_seed_default_roles(self, company, permissions):
        created = RBACService.seed_default_roles(company)
        assert set(created) == {'TenantAdmin', 'Manager', 'Technician', 'Customer'}

        admin = Role.objects.get(company=company, name='TenantAdmin')
        assert admin.permission_names() == set(permissions)
        customer = Role.objects.get(company=company, name='Customer')
        assert customer.permission_names() == {'dashboard.view', 'services.view', 'invoices.view'}

    def test_seed_default_roles_idempotent(self, company, permissions):
        RBACService.seed_default_roles(company)
        rows = RolePermission.objects.for_company(company).count()
        assert RBACService.seed_default_roles(company) == []
        assert RolePermission.objects.for_company(company).count() == rows

    def test_seed_without_catalog(self, company):
        RBACService.seed_default_roles(company)
        assert Role.objects.for_company(company).count() == 4
        assert RolePermission.objects.for_company(company).count() == 0
