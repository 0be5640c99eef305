from django.apps import AppConfig
from django.conf import settings
from django.core.exceptions import ImproperlyConfigured
import logging

logger = logging.getLogger(__name__)


class CoreConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'apps.core'
    verbose_name = 'Core'

    def ready(self):
        """
        Perform startup validation checks when Django initializes.
        
        Authorization settings are validated eagerly so a misconfigured
        deployment fails at boot instead of on the first request.
        """
        self._validate_rbac_settings()
        self._validate_cache_backend()

    def _validate_rbac_settings(self):
        """Validate RBAC configuration values."""
        ttl = getattr(settings, 'RBAC_DECISION_CACHE_TTL', 900)
        if not isinstance(ttl, int) or ttl <= 0:
            raise ImproperlyConfigured(
                f"RBAC_DECISION_CACHE_TTL must be a positive integer (seconds). "
                f"Current value: {ttl!r}"
            )
        
        restricted = getattr(settings, 'RBAC_SUPER_ADMIN_RESTRICTED_ROLES', [])
        if isinstance(restricted, str) or not all(isinstance(name, str) for name in restricted):
            raise ImproperlyConfigured(
                "RBAC_SUPER_ADMIN_RESTRICTED_ROLES must be a list of role names."
            )
        
        if not getattr(settings, 'RBAC_SUPER_ADMIN_BYPASS', True):
            logger.info("Super admin bypass is disabled; super admins are checked like any other user")

    def _validate_cache_backend(self):
        """Warn when decisions are cached per process in production."""
        backend = settings.CACHES.get('default', {}).get('BACKEND', '')
        if not getattr(settings, 'DEBUG', False) and 'locmem' in backend:
            logger.warning(
                "Decision cache uses %s; invalidation is local to this process",
                backend,
            )
