"""
Caching utilities for authorization decisions.

Provides centralized cache access with consistent key naming and TTLs.
Every operation logs and absorbs cache backend errors so that an
unavailable cache degrades to recomputation instead of failing requests.
"""
import logging
from typing import Any, Callable, Optional

from django.core.cache import cache

logger = logging.getLogger(__name__)


class CacheKeys:
    """Centralized cache key definitions with consistent naming."""

    # Authorization decisions (TTL: 15 minutes)
    RBAC_DECISION = "rbac:decision:{principal_id}:{company_id}:{kind}:{digest}"
    RBAC_DECISION_PRINCIPAL_PATTERN = "rbac:decision:{principal_id}:{company_id}:*"
    RBAC_DECISION_ALL_PATTERN = "rbac:decision:*"

    # Invalidation generations (no expiry)
    RBAC_GENERATION_GLOBAL = "rbac:generation:global"
    RBAC_GENERATION_PRINCIPAL = "rbac:generation:{principal_id}:{company_id}"

    @classmethod
    def format(cls, key_template: str, **kwargs) -> str:
        """Format a cache key with provided parameters."""
        return key_template.format(**kwargs)


class CacheTTL:
    """Cache TTL (Time To Live) constants in seconds."""

    RBAC_DECISION = 900  # 15 minutes


class CacheService:
    """Service for managing cached data with consistent patterns."""

    @staticmethod
    def supports_pattern_delete() -> bool:
        """Whether the configured backend can delete keys by glob pattern."""
        return hasattr(cache, 'delete_pattern')

    @staticmethod
    def get(key: str, default: Any = None, version: Optional[Any] = None) -> Any:
        """
        Get value from cache.

        Args:
            key: Cache key
            default: Default value if key not found
            version: Optional key version

        Returns:
            Cached value or default
        """
        try:
            value = cache.get(key, default, version=version)
            if value is not default:
                logger.debug(f"Cache HIT: {key}")
            else:
                logger.debug(f"Cache MISS: {key}")
            return value
        except Exception as e:
            logger.error(f"Cache get error for key {key}: {str(e)}")
            return default

    @staticmethod
    def set(key: str, value: Any, ttl: Optional[int] = None, version: Optional[Any] = None) -> bool:
        """
        Set value in cache.

        Args:
            key: Cache key
            value: Value to cache
            ttl: Time to live in seconds (None keeps the key forever)
            version: Optional key version

        Returns:
            True if successful, False otherwise
        """
        try:
            cache.set(key, value, timeout=ttl, version=version)
            logger.debug(f"Cache SET: {key} (TTL: {ttl}s)")
            return True
        except Exception as e:
            logger.error(f"Cache set error for key {key}: {str(e)}")
            return False

    @staticmethod
    def delete(key: str) -> bool:
        """
        Delete value from cache.

        Returns:
            True if successful, False otherwise
        """
        try:
            cache.delete(key)
            logger.debug(f"Cache DELETE: {key}")
            return True
        except Exception as e:
            logger.error(f"Cache delete error for key {key}: {str(e)}")
            return False

    @staticmethod
    def delete_pattern(pattern: str) -> bool:
        """
        Delete all keys matching a pattern.

        Args:
            pattern: Pattern to match (e.g., "rbac:decision:12:7:*")

        Returns:
            True if successful, False otherwise
        """
        try:
            # Use django-redis delete_pattern if available
            if hasattr(cache, 'delete_pattern'):
                cache.delete_pattern(pattern)
                logger.debug(f"Cache DELETE_PATTERN: {pattern}")
                return True
            else:
                logger.warning("delete_pattern not supported by cache backend")
                return False
        except Exception as e:
            logger.error(f"Cache delete_pattern error for pattern {pattern}: {str(e)}")
            return False

    @staticmethod
    def get_counter(key: str) -> Optional[int]:
        """
        Read an integer counter, creating it at 1 if missing.

        Returns:
            Counter value, or None if the cache is unavailable
        """
        try:
            cache.add(key, 1, timeout=None)
            value = cache.get(key)
            return int(value) if value is not None else None
        except Exception as e:
            logger.error(f"Cache counter read error for key {key}: {str(e)}")
            return None

    @staticmethod
    def incr(key: str) -> Optional[int]:
        """
        Atomically increment an integer counter, creating it if missing.

        Returns:
            New counter value, or None if the cache is unavailable
        """
        try:
            cache.add(key, 1, timeout=None)
            value = cache.incr(key)
            logger.debug(f"Cache INCR: {key} -> {value}")
            return value
        except Exception as e:
            logger.error(f"Cache incr error for key {key}: {str(e)}")
            return None

    @staticmethod
    def get_or_set(key: str, default_func: Callable, ttl: Optional[int] = None,
                   version: Optional[Any] = None) -> Any:
        """
        Get value from cache or set it using default_func if not found.

        Falsy results (False, 0) are cached as well; only None means a miss.

        Args:
            key: Cache key
            default_func: Function to call if cache miss
            ttl: Time to live in seconds (optional)
            version: Optional key version

        Returns:
            Cached or computed value
        """
        value = CacheService.get(key, version=version)
        if value is None:
            value = default_func()
            if value is not None:
                CacheService.set(key, value, ttl, version=version)
        return value
