"""
Management command to drop cached authorization decisions.
"""
from django.core.management.base import BaseCommand, CommandError

from apps.core.security_logger import SecurityLogger
from apps.rbac.cache import invalidate_all_cache, invalidate_principal_cache
from apps.rbac.models import User


class Command(BaseCommand):
    help = 'Clear cached authorization decisions for one user or everyone'

    def add_arguments(self, parser):
        parser.add_argument(
            '--user',
            type=int,
            help='Only clear decisions of this user ID',
        )

    def handle(self, *args, **options):
        user_id = options.get('user')

        if user_id is None:
            ok = invalidate_all_cache()
            SecurityLogger.log_cache_cleared('all')
            label = 'all users'
        else:
            user = User.objects.filter(pk=user_id).first()
            if user is None:
                raise CommandError(f'User not found: {user_id}')
            ok = invalidate_principal_cache(user.pk, user.company_id)
            SecurityLogger.log_cache_cleared('principal', user.pk, user.company_id)
            label = f'user {user.pk}'

        if not ok:
            raise CommandError('Cache backend rejected the invalidation')
        self.stdout.write(self.style.SUCCESS(f'✓ Cleared authorization decisions for {label}'))
