"""
Management command to seed the default permission catalog.

Creates every global Permission record in DEFAULT_PERMISSIONS. This command
is idempotent and safe to re-run; descriptions of existing permissions are
refreshed.
"""
from django.core.management.base import BaseCommand

from apps.rbac.catalog import DEFAULT_PERMISSIONS
from apps.rbac.models import Permission
from apps.rbac.services import RBACService


class Command(BaseCommand):
    help = 'Seed the default permission catalog (idempotent)'

    def handle(self, *args, **options):
        self.stdout.write('Seeding permissions...\n')

        created = {permission.name for permission in RBACService.seed_permissions()}
        updated_count = 0

        for name, description in DEFAULT_PERMISSIONS:
            if name in created:
                self.stdout.write(self.style.SUCCESS(f'✓ Created: {name}'))
                continue
            updated = Permission.objects.filter(name=name).exclude(
                description=description
            ).update(description=description)
            if updated:
                updated_count += 1
                self.stdout.write(self.style.WARNING(f'↻ Updated: {name}'))

        unchanged = len(DEFAULT_PERMISSIONS) - len(created) - updated_count
        self.stdout.write(
            self.style.SUCCESS(
                f'\n✓ Seeding complete: {len(created)} created, {updated_count} updated, '
                f'{unchanged} unchanged'
            )
        )

        self.stdout.write('\nPermissions by module:')
        for module, permissions in Permission.objects.grouped_by_module().items():
            self.stdout.write(f'  {module}: {", ".join(p.action for p in permissions)}')
        self.stdout.write(f'\nTotal permissions: {Permission.objects.count()}')
