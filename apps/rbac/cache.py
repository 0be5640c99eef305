"""
Decision cache for authorization checks.

Resolver outcomes are memoized per (principal, company, query kind,
required set). The required set is sorted before hashing, so the order in
which names are passed never changes the key.

Invalidation is always principal-wide: one role or permission change can
flip the outcome of any number of distinct queries, so every entry for the
principal is dropped. How that happens depends on the cache backend:

- PatternDeleteBackend deletes ``rbac:decision:<principal>:<company>:*``
  with django-redis ``delete_pattern``.
- GenerationBackend keeps a counter per principal plus a global counter
  and folds them into the key version, so bumping a counter orphans every
  older entry (they expire by TTL).

The cache is best effort. A failed read is a miss and a failed write is
ignored; callers then fall back to walking the assignment graph.
"""
import hashlib
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Iterable, Optional

from django.conf import settings

from apps.core.cache import CacheKeys, CacheService, CacheTTL

logger = logging.getLogger(__name__)

# Query kinds sharing the principal's key space
KIND_PERMISSION = 'perm'
KIND_ROLE = 'role'
KIND_HELD_ROLE = 'held'

_UNAVAILABLE = object()


@dataclass(frozen=True)
class CacheInvalidationScope:
    """Every cached decision for one principal within one company."""

    principal_id: int
    company_id: Optional[int]

    @classmethod
    def for_principal(cls, principal):
        return cls(principal_id=principal.id, company_id=principal.company_id)

    @property
    def pattern(self):
        return CacheKeys.format(
            CacheKeys.RBAC_DECISION_PRINCIPAL_PATTERN,
            principal_id=self.principal_id,
            company_id=self.company_id,
        )


class DecisionCacheBackend(ABC):
    """Strategy for versioning and invalidating decision keys."""

    @abstractmethod
    def key_version(self, scope: CacheInvalidationScope):
        """
        Version to store and read keys of this scope under.

        Returns None for the cache default version, or the module-level
        _UNAVAILABLE marker when the cache cannot be used right now.
        """

    @abstractmethod
    def invalidate(self, scope: CacheInvalidationScope) -> bool:
        """Drop every entry of the scope."""

    @abstractmethod
    def clear(self) -> bool:
        """Drop every decision entry."""


class PatternDeleteBackend(DecisionCacheBackend):
    """Key-prefix convention plus glob deletes (django-redis)."""

    def key_version(self, scope):
        return None

    def invalidate(self, scope):
        return CacheService.delete_pattern(scope.pattern)

    def clear(self):
        return CacheService.delete_pattern(CacheKeys.RBAC_DECISION_ALL_PATTERN)


class GenerationBackend(DecisionCacheBackend):
    """Generation counters for backends without key scans (locmem, memcached)."""

    @staticmethod
    def _principal_key(scope):
        return CacheKeys.format(
            CacheKeys.RBAC_GENERATION_PRINCIPAL,
            principal_id=scope.principal_id,
            company_id=scope.company_id,
        )

    def key_version(self, scope):
        global_generation = CacheService.get_counter(CacheKeys.RBAC_GENERATION_GLOBAL)
        principal_generation = CacheService.get_counter(self._principal_key(scope))
        if global_generation is None or principal_generation is None:
            return _UNAVAILABLE
        return f"{global_generation}.{principal_generation}"

    def invalidate(self, scope):
        return CacheService.incr(self._principal_key(scope)) is not None

    def clear(self):
        return CacheService.incr(CacheKeys.RBAC_GENERATION_GLOBAL) is not None


def default_backend() -> DecisionCacheBackend:
    """Pick the invalidation strategy supported by the configured cache."""
    if CacheService.supports_pattern_delete():
        return PatternDeleteBackend()
    return GenerationBackend()


def required_set_digest(names: Iterable[str]) -> str:
    """Order-independent digest of a set of names."""
    joined = '|'.join(sorted(set(names)))
    return hashlib.sha256(joined.encode('utf-8')).hexdigest()[:32]


class DecisionCache:
    """
    Memoizes boolean resolver outcomes for a bounded TTL.

    Usage:
        cache = DecisionCache()
        allowed = cache.get_or_compute(principal, 'perm', names, walk)
        cache.invalidate(CacheInvalidationScope(principal.id, principal.company_id))
    """

    def __init__(self, ttl: Optional[int] = None, backend: Optional[DecisionCacheBackend] = None):
        if ttl is None:
            ttl = getattr(settings, 'RBAC_DECISION_CACHE_TTL', CacheTTL.RBAC_DECISION)
        self.ttl = ttl
        self.backend = backend or default_backend()

    def build_key(self, principal, kind: str, names: Iterable[str]) -> str:
        return CacheKeys.format(
            CacheKeys.RBAC_DECISION,
            principal_id=principal.id,
            company_id=principal.company_id,
            kind=kind,
            digest=required_set_digest(names),
        )

    def _version(self, principal):
        return self.backend.key_version(CacheInvalidationScope.for_principal(principal))

    def _read(self, principal, kind, names, version) -> Optional[bool]:
        if version is _UNAVAILABLE:
            return None
        return CacheService.get(self.build_key(principal, kind, names), version=version)

    def _write(self, principal, kind, names, value, version) -> bool:
        if version is _UNAVAILABLE:
            return False
        return CacheService.set(
            self.build_key(principal, kind, names), bool(value), self.ttl, version=version
        )

    def get(self, principal, kind, names) -> Optional[bool]:
        """Return the cached decision or None on a miss."""
        return self._read(principal, kind, names, self._version(principal))

    def set(self, principal, kind, names, value: bool) -> bool:
        return self._write(principal, kind, names, value, self._version(principal))

    def get_or_compute(self, principal, kind, names, compute: Callable[[], bool]) -> bool:
        """
        Return the cached decision, computing and storing it on a miss.

        The result is stored under the version read before computing, so an
        invalidation that lands while compute() runs discards it.
        """
        names = list(names)
        version = self._version(principal)
        cached = self._read(principal, kind, names, version)
        if cached is not None:
            return cached
        value = bool(compute())
        self._write(principal, kind, names, value, version)
        return value

    def invalidate(self, scope: CacheInvalidationScope) -> bool:
        ok = self.backend.invalidate(scope)
        logger.debug(
            f"Invalidated decision cache for principal {scope.principal_id} "
            f"in company {scope.company_id}"
        )
        return ok

    def invalidate_principal(self, principal_id, company_id) -> bool:
        return self.invalidate(CacheInvalidationScope(principal_id, company_id))

    def clear(self) -> bool:
        ok = self.backend.clear()
        logger.info("Cleared all cached authorization decisions")
        return ok


def invalidate_principal_cache(principal_id, company_id) -> bool:
    """Drop every cached decision of one principal."""
    return DecisionCache().invalidate_principal(principal_id, company_id)


def invalidate_all_cache() -> bool:
    """Drop every cached decision (administrative maintenance)."""
    return DecisionCache().clear()
