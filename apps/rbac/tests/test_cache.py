"""
Tests for the authorization decision cache.
"""
from unittest.mock import patch

import pytest
from django.core.cache import cache

from apps.rbac.cache import (
    KIND_PERMISSION,
    KIND_ROLE,
    CacheInvalidationScope,
    DecisionCache,
    GenerationBackend,
    PatternDeleteBackend,
    default_backend,
    invalidate_all_cache,
    invalidate_principal_cache,
    required_set_digest,
)
from apps.rbac.decisions import Principal


@pytest.fixture
def principal():
    return Principal(id=11, company_id=7)


@pytest.fixture
def other_principal():
    return Principal(id=12, company_id=7)


class TestKeys:

    def test_digest_is_order_independent(self):
        assert required_set_digest(['a.view', 'b.view']) == required_set_digest(['b.view', 'a.view'])

    def test_digest_ignores_duplicates(self):
        assert required_set_digest(['a.view', 'a.view']) == required_set_digest(['a.view'])

    def test_digest_differs_for_different_sets(self):
        assert required_set_digest(['a.view']) != required_set_digest(['a.edit'])

    def test_key_layout(self, principal):
        key = DecisionCache(ttl=60, backend=GenerationBackend()).build_key(
            principal, KIND_PERMISSION, ['b.view', 'a.view']
        )
        assert key.startswith('rbac:decision:11:7:perm:')

    def test_scope_pattern(self):
        assert CacheInvalidationScope(11, 7).pattern == 'rbac:decision:11:7:*'

    def test_default_ttl_from_settings(self, settings):
        settings.RBAC_DECISION_CACHE_TTL = 120
        assert DecisionCache(backend=GenerationBackend()).ttl == 120

    def test_locmem_uses_generation_backend(self):
        assert isinstance(default_backend(), GenerationBackend)

    def test_redis_uses_pattern_backend(self):
        with patch('apps.rbac.cache.CacheService.supports_pattern_delete', return_value=True):
            assert isinstance(default_backend(), PatternDeleteBackend)


class TestDecisionCache:

    def test_miss_then_hit(self, principal):
        decision_cache = DecisionCache(ttl=60)
        calls = []

        def compute():
            calls.append(1)
            return True

        assert decision_cache.get_or_compute(principal, KIND_PERMISSION, ['a.view'], compute) is True
        assert decision_cache.get_or_compute(principal, KIND_PERMISSION, ['a.view'], compute) is True
        assert len(calls) == 1

    def test_false_is_cached(self, principal):
        decision_cache = DecisionCache(ttl=60)
        calls = []

        def compute():
            calls.append(1)
            return False

        decision_cache.get_or_compute(principal, KIND_PERMISSION, ['a.view'], compute)
        assert decision_cache.get_or_compute(principal, KIND_PERMISSION, ['a.view'], compute) is False
        assert len(calls) == 1

    def test_permutations_share_entry(self, principal):
        decision_cache = DecisionCache(ttl=60)
        decision_cache.set(principal, KIND_PERMISSION, ['a.view', 'b.view'], True)
        assert decision_cache.get(principal, KIND_PERMISSION, ['b.view', 'a.view']) is True

    def test_kinds_do_not_collide(self, principal):
        decision_cache = DecisionCache(ttl=60)
        decision_cache.set(principal, KIND_PERMISSION, ['Manager'], True)
        assert decision_cache.get(principal, KIND_ROLE, ['Manager']) is None

    def test_invalidate_principal_only_drops_that_principal(self, principal, other_principal):
        decision_cache = DecisionCache(ttl=60)
        decision_cache.set(principal, KIND_PERMISSION, ['a.view'], True)
        decision_cache.set(principal, KIND_ROLE, ['Manager'], False)
        decision_cache.set(other_principal, KIND_PERMISSION, ['a.view'], True)

        assert decision_cache.invalidate_principal(principal.id, principal.company_id)

        assert decision_cache.get(principal, KIND_PERMISSION, ['a.view']) is None
        assert decision_cache.get(principal, KIND_ROLE, ['Manager']) is None
        assert decision_cache.get(other_principal, KIND_PERMISSION, ['a.view']) is True

    def test_clear_drops_everything(self, principal, other_principal):
        decision_cache = DecisionCache(ttl=60)
        decision_cache.set(principal, KIND_PERMISSION, ['a.view'], True)
        decision_cache.set(other_principal, KIND_PERMISSION, ['a.view'], True)

        assert invalidate_all_cache()

        assert decision_cache.get(principal, KIND_PERMISSION, ['a.view']) is None
        assert decision_cache.get(other_principal, KIND_PERMISSION, ['a.view']) is None

    def test_module_level_invalidation(self, principal):
        decision_cache = DecisionCache(ttl=60)
        decision_cache.set(principal, KIND_PERMISSION, ['a.view'], True)
        invalidate_principal_cache(principal.id, principal.company_id)
        assert decision_cache.get(principal, KIND_PERMISSION, ['a.view']) is None

    def test_invalidation_during_compute_discards_result(self, principal):
        decision_cache = DecisionCache(ttl=60, backend=GenerationBackend())

        def compute_then_revoke():
            # A revoke commits while the graph walk is still running
            decision_cache.invalidate_principal(principal.id, principal.company_id)
            return True

        assert decision_cache.get_or_compute(
            principal, KIND_PERMISSION, ['services.edit'], compute_then_revoke
        ) is True
        assert decision_cache.get(principal, KIND_PERMISSION, ['services.edit']) is None

    def test_unavailable_cache_recomputes(self, principal):
        decision_cache = DecisionCache(ttl=60)
        with patch.object(cache, 'get', side_effect=ConnectionError('down')):
            assert decision_cache.get_or_compute(
                principal, KIND_PERMISSION, ['a.view'], lambda: True
            ) is True

    def test_failed_write_is_ignored(self, principal):
        decision_cache = DecisionCache(ttl=60, backend=PatternDeleteBackend())
        with patch.object(cache, 'set', side_effect=ConnectionError('down')):
            assert decision_cache.set(principal, KIND_PERMISSION, ['a.view'], True) is False


class TestPatternDeleteBackend:

    def test_invalidate_deletes_principal_pattern(self):
        with patch('apps.rbac.cache.CacheService.delete_pattern', return_value=True) as delete_pattern:
            assert PatternDeleteBackend().invalidate(CacheInvalidationScope(11, 7))
        delete_pattern.assert_called_once_with('rbac:decision:11:7:*')

    def test_clear_deletes_all_decisions(self):
        with patch('apps.rbac.cache.CacheService.delete_pattern', return_value=True) as delete_pattern:
            PatternDeleteBackend().clear()
        delete_pattern.assert_called_once_with('rbac:decision:*')

    def test_unversioned_keys(self):
        assert PatternDeleteBackend().key_version(CacheInvalidationScope(11, 7)) is None


class TestGenerationBackend:

    def test_invalidate_bumps_version(self):
        backend = GenerationBackend()
        scope = CacheInvalidationScope(11, 7)
        before = backend.key_version(scope)
        backend.invalidate(scope)
        assert backend.key_version(scope) != before

    def test_clear_bumps_every_version(self):
        backend = GenerationBackend()
        first, second = CacheInvalidationScope(11, 7), CacheInvalidationScope(12, 7)
        before = (backend.key_version(first), backend.key_version(second))
        backend.clear()
        assert backend.key_version(first) != before[0]
        assert backend.key_version(second) != before[1]
