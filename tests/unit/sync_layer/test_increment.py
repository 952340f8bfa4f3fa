"""
Unit Tests for conditional increments (blocking and non-blocking policies).
"""

import asyncio

import pytest

from aggsync.core.config.constants import DIRTY_FLAG_VALUE, IncrementOutcome, IncrementPolicy
from aggsync.sync.cache_warmer import CacheWarmer
from aggsync.sync.increment import (
    BlockingIncrementCoordinator,
    NonBlockingIncrementCoordinator,
    build_increment_coordinator,
)
from aggsync.sync.invalidator import CacheInvalidator
from aggsync.sync.lock_manager import LockManager
from tests.test_fixtures import StubAggregator

KEY = "counts:agent:policies"
LOCK = "lock:counts:agent:policies"
DIRTY = "dirty:counts:agent:policies"


@pytest.fixture
def blocking(store, warmer, mock_metrics):
    return BlockingIncrementCoordinator(store, warmer, mock_metrics)


@pytest.fixture
def non_blocking(store, mock_metrics):
    return NonBlockingIncrementCoordinator(store, mock_metrics)


@pytest.mark.unit
class TestBlockingPolicy:
    @pytest.mark.asyncio
    async def test_sequential_increments_on_warm_counter(self, blocking, store, count_query):
        store.data[KEY] = {"7": "3"}

        results = [
            await blocking.conditional_increment(KEY, 7, 1, LOCK, count_query) for _ in range(5)
        ]

        assert all(r.outcome is IncrementOutcome.APPLIED for r in results)
        assert [r.value for r in results] == [4, 5, 6, 7, 8]
        assert await store.hgetall(KEY) == {"7": "8"}

    @pytest.mark.asyncio
    async def test_cold_counter_is_populated_not_incremented(
        self, blocking, store, aggregator, count_query
    ):
        result = await blocking.conditional_increment(KEY, 7, 1, LOCK, count_query)

        assert result.outcome is IncrementOutcome.SKIPPED_POPULATED
        assert result.value is None
        assert not result.applied
        assert aggregator.call_count == 1
        assert await store.hgetall(KEY) == {"7": "3", "9": "1"}

    @pytest.mark.asyncio
    async def test_increment_waits_for_inflight_population(
        self, store, sync_settings, mock_metrics, count_query
    ):
        aggregator = StubAggregator([(7, 3)], delay=0.05)
        warmer = CacheWarmer(
            store, LockManager(store, sync_settings, mock_metrics), aggregator, sync_settings, mock_metrics
        )
        coordinator = BlockingIncrementCoordinator(store, warmer, mock_metrics)

        population = asyncio.create_task(warmer.ensure_warm(KEY, LOCK, count_query))
        await asyncio.sleep(0.01)
        result = await coordinator.conditional_increment(KEY, 7, 1, LOCK, count_query)
        await population

        assert result.outcome is IncrementOutcome.APPLIED
        assert aggregator.call_count == 1
        assert await store.hgetall(KEY) == {"7": "4"}

    @pytest.mark.asyncio
    async def test_new_entity_on_warm_counter(self, blocking, store, count_query):
        store.data[KEY] = {"7": "3"}

        result = await blocking.conditional_increment(KEY, "12", 2, LOCK, count_query)

        assert result.value == 2
        assert await store.hgetall(KEY) == {"7": "3", "12": "2"}

    @pytest.mark.asyncio
    async def test_invalidation_after_warm_check_does_not_recreate_hash(
        self, store, lock_manager, aggregator, sync_settings, mock_metrics, count_query
    ):
        class InvalidatedAfterWarm(CacheWarmer):
            async def ensure_warm(self, cache_key, lock_key, query, *, max_wait=None):
                result = await super().ensure_warm(cache_key, lock_key, query, max_wait=max_wait)
                await CacheInvalidator(store, lock_manager, mock_metrics).invalidate_with_lock(
                    cache_key, lock_key
                )
                return result

        store.data[KEY] = {"7": "3", "9": "1"}
        racing = InvalidatedAfterWarm(store, lock_manager, aggregator, sync_settings, mock_metrics)
        coordinator = BlockingIncrementCoordinator(store, racing, mock_metrics)

        result = await coordinator.conditional_increment(KEY, 7, 1, LOCK, count_query)

        assert result.outcome is IncrementOutcome.MISSING
        assert result.value is None
        assert KEY not in store.data

        warmer = CacheWarmer(store, lock_manager, aggregator, sync_settings, mock_metrics)
        assert await warmer.get_counts(KEY, LOCK, count_query) == {"7": 3, "9": 1}
        assert aggregator.call_count == 1

    @pytest.mark.asyncio
    async def test_placeholder_expiring_after_warm_check_is_not_recreated(
        self, clocked_store, clock, sync_settings, mock_metrics, count_query
    ):
        class ExpiresAfterWarm(CacheWarmer):
            async def ensure_warm(self, cache_key, lock_key, query, *, max_wait=None):
                result = await super().ensure_warm(cache_key, lock_key, query, max_wait=max_wait)
                clock.advance(sync_settings.CACHE_PLACEHOLDER_TTL_SECONDS + 1)
                return result

        locks = LockManager(clocked_store, sync_settings, mock_metrics)
        aggregator = StubAggregator([])
        await CacheWarmer(clocked_store, locks, aggregator, sync_settings, mock_metrics).ensure_warm(
            KEY, LOCK, count_query
        )
        coordinator = BlockingIncrementCoordinator(
            clocked_store,
            ExpiresAfterWarm(clocked_store, locks, aggregator, sync_settings, mock_metrics),
            mock_metrics,
        )

        result = await coordinator.conditional_increment(KEY, 7, 1, LOCK, count_query)

        assert result.outcome is IncrementOutcome.MISSING
        assert await clocked_store.exists(KEY) is False
        mock_metrics.record_increment.assert_called_with(KEY, "blocking", "missing")

    @pytest.mark.asyncio
    async def test_requires_query(self, blocking):
        with pytest.raises(ValueError):
            await blocking.conditional_increment(KEY, 7, 1, LOCK, None)

    @pytest.mark.asyncio
    async def test_records_metrics_with_policy(self, blocking, store, count_query, mock_metrics):
        store.data[KEY] = {"7": "3"}

        await blocking.conditional_increment(KEY, 7, 1, LOCK, count_query)

        mock_metrics.record_increment.assert_called_once_with(KEY, "blocking", "applied")


@pytest.mark.unit
class TestNonBlockingPolicy:
    @pytest.mark.asyncio
    async def test_applies_when_field_present_and_unlocked(self, non_blocking, store):
        store.data[KEY] = {"7": "3"}

        result = await non_blocking.conditional_increment(KEY, 7, 5, LOCK)

        assert result.outcome is IncrementOutcome.APPLIED
        assert result.value == 8
        assert DIRTY not in store.data

    @pytest.mark.asyncio
    async def test_lock_held_marks_dirty_without_increment(self, non_blocking, store):
        store.data[KEY] = {"7": "3"}
        await store.acquire_lock(LOCK, "populator", 30)

        result = await non_blocking.conditional_increment(KEY, 7, 1, LOCK)

        assert result.outcome is IncrementOutcome.LOCKED
        assert result.value is None
        assert store.data[KEY] == {"7": "3"}
        assert store.data[DIRTY] == DIRTY_FLAG_VALUE

    @pytest.mark.asyncio
    async def test_missing_field_marks_dirty(self, non_blocking, store):
        store.data[KEY] = {"7": "3"}

        result = await non_blocking.conditional_increment(KEY, 99, 1, LOCK)

        assert result.outcome is IncrementOutcome.MISSING
        assert store.data[KEY] == {"7": "3"}
        assert await non_blocking.is_dirty(KEY) is True

    @pytest.mark.asyncio
    async def test_missing_key_marks_dirty_and_never_creates_hash(self, non_blocking, store):
        result = await non_blocking.conditional_increment(KEY, 7, 1, LOCK)

        assert result.outcome is IncrementOutcome.MISSING
        assert KEY not in store.data
        assert await non_blocking.is_dirty(KEY) is True

    @pytest.mark.asyncio
    async def test_never_calls_aggregator(self, non_blocking, aggregator, count_query):
        await non_blocking.conditional_increment(KEY, 7, 1, LOCK, count_query)

        assert aggregator.call_count == 0

    @pytest.mark.asyncio
    async def test_dirty_flag_helpers(self, non_blocking):
        assert await non_blocking.is_dirty(KEY) is False

        await non_blocking.mark_dirty(KEY)
        assert await non_blocking.is_dirty(KEY) is True

        await non_blocking.clear_dirty(KEY)
        assert await non_blocking.is_dirty(KEY) is False

    @pytest.mark.asyncio
    async def test_records_metrics_with_policy(self, non_blocking, mock_metrics):
        await non_blocking.conditional_increment(KEY, 7, 1, LOCK)

        mock_metrics.record_increment.assert_called_once_with(KEY, "non_blocking", "missing")


@pytest.mark.unit
class TestPolicySelection:
    @pytest.mark.parametrize(
        "policy, expected",
        [
            (IncrementPolicy.BLOCKING, BlockingIncrementCoordinator),
            ("blocking", BlockingIncrementCoordinator),
            (IncrementPolicy.NON_BLOCKING, NonBlockingIncrementCoordinator),
            ("non_blocking", NonBlockingIncrementCoordinator),
        ],
    )
    def test_build_by_policy(self, policy, expected, store, warmer, mock_metrics):
        coordinator = build_increment_coordinator(policy, store=store, warmer=warmer, metrics=mock_metrics)

        assert isinstance(coordinator, expected)
        assert coordinator.policy is IncrementPolicy(policy)

    def test_unknown_policy_rejected(self, store, warmer):
        with pytest.raises(ValueError):
            build_increment_coordinator("eventual", store=store, warmer=warmer)
