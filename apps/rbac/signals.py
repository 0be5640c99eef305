"""
RBAC signals for default role seeding and decision cache invalidation.

Any write to the assignment graph, including writes made directly through
the ORM rather than through RBACService, drops the cached decisions of the
principals it affects.
"""
import logging

from django.conf import settings
from django.core.signals import setting_changed
from django.db.models.signals import post_delete, post_save
from django.dispatch import receiver

from apps.rbac.models import Role, RolePermission, User, UserRole
from apps.rbac.policies import reset_policy_engine
from apps.rbac.services import RBACService

logger = logging.getLogger(__name__)


@receiver(post_save, sender='tenants.Company')
def seed_roles_on_company_creation(sender, instance, created, **kwargs):
    """Seed the default roles when a new company is created."""
    if not created or not getattr(settings, 'RBAC_SEED_DEFAULT_ROLES', True):
        return
    roles_created = RBACService.seed_default_roles(instance)
    logger.info(
        f"Default roles seeded for new company {instance.slug}",
        extra={'company_id': instance.pk, 'roles_created': roles_created},
    )


@receiver(post_save, sender=RolePermission)
@receiver(post_delete, sender=RolePermission)
def invalidate_on_role_permission_change(sender, instance, **kwargs):
    RBACService.invalidate_principals(
        UserRole.objects.filter(role_id=instance.role_id).values_list('user_id', 'company_id')
    )


@receiver(post_save, sender=UserRole)
@receiver(post_delete, sender=UserRole)
def invalidate_on_user_role_change(sender, instance, **kwargs):
    RBACService.invalidate_principals([(instance.user_id, instance.company_id)])


@receiver(post_save, sender=Role)
def invalidate_on_role_change(sender, instance, created, **kwargs):
    # New roles have no holders yet
    if not created:
        RBACService.invalidate_role_holders(instance)


@receiver(post_save, sender=User)
def invalidate_on_user_change(sender, instance, created, **kwargs):
    if not created and instance.company_id is not None:
        RBACService.invalidate_principals([(instance.pk, instance.company_id)])


@receiver(setting_changed)
def reset_engine_on_setting_change(sender, setting, **kwargs):
    if setting.startswith('RBAC_') or setting == 'CACHES':
        reset_policy_engine()
