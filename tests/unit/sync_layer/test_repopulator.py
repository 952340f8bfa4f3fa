"""
Unit Tests for DirtyRepopulator
"""

import pytest

from aggsync.core.config.constants import IncrementOutcome
from aggsync.core.exceptions import AggregationError, CacheConnectionError
from aggsync.sync.cache_warmer import CacheWarmer
from aggsync.sync.increment import NonBlockingIncrementCoordinator
from aggsync.sync.repopulator import DirtyRepopulator
from tests.test_fixtures import AggregatorTestFactory

KEY = "counts:agent:claims"
LOCK = "lock:counts:agent:claims"
DIRTY = "dirty:counts:agent:claims"


@pytest.fixture
def repopulator(store, lock_manager, warmer, mock_metrics):
    return DirtyRepopulator(store, lock_manager, warmer, mock_metrics)


@pytest.mark.unit
class TestRepopulateIfDirty:
    @pytest.mark.asyncio
    async def test_clean_aggregate_is_left_alone(self, repopulator, store, aggregator, count_query, mock_metrics):
        store.data[KEY] = {"7": "1"}

        assert await repopulator.repopulate_if_dirty(KEY, LOCK, count_query) is False
        assert aggregator.call_count == 0
        assert store.data[KEY] == {"7": "1"}
        mock_metrics.record_repopulation.assert_called_once_with(KEY, "clean")

    @pytest.mark.asyncio
    async def test_dirty_aggregate_rebuilt_and_flag_cleared(self, repopulator, store, aggregator, count_query):
        store.data[KEY] = {"7": "1"}
        store.data[DIRTY] = "1"

        assert await repopulator.repopulate_if_dirty(KEY, LOCK, count_query) is True
        assert store.data[KEY] == {"7": "3", "9": "1"}
        assert DIRTY not in store.data
        assert LOCK not in store.data
        assert aggregator.call_count == 1

    @pytest.mark.asyncio
    async def test_force_rebuilds_clean_aggregate(self, repopulator, store, count_query):
        assert await repopulator.repopulate_if_dirty(KEY, LOCK, count_query, force=True) is True
        assert store.data[KEY] == {"7": "3", "9": "1"}

    @pytest.mark.asyncio
    async def test_failure_keeps_old_hash_and_flag(
        self, store, lock_manager, sync_settings, mock_metrics, count_query
    ):
        warmer = CacheWarmer(
            store, lock_manager, AggregatorTestFactory.failing(), sync_settings, mock_metrics
        )
        repopulator = DirtyRepopulator(store, lock_manager, warmer, mock_metrics)
        store.data[KEY] = {"7": "1"}
        store.data[DIRTY] = "1"

        with pytest.raises(AggregationError):
            await repopulator.repopulate_if_dirty(KEY, LOCK, count_query)

        assert store.data[KEY] == {"7": "1"}
        assert DIRTY in store.data
        assert LOCK not in store.data

    @pytest.mark.asyncio
    async def test_cache_outage_during_rebuild_raises_original_error(
        self, repopulator, store, count_query, mock_metrics, monkeypatch
    ):
        store.data[KEY] = {"7": "1"}
        store.data[DIRTY] = "1"
        outage = CacheConnectionError("Redis went away mid-rebuild")

        async def failing_replace(key, mapping, ttl=None):
            store.fail_with = outage
            raise outage

        monkeypatch.setattr(store, "replace_hash", failing_replace)

        with pytest.raises(CacheConnectionError) as exc_info:
            await repopulator.repopulate_if_dirty(KEY, LOCK, count_query)

        assert exc_info.value is outage
        mock_metrics.record_error.assert_any_call("CacheConnectionError", "REPOPULATE.DIRTY")

    @pytest.mark.asyncio
    async def test_reconciles_increment_skipped_during_population(
        self, repopulator, store, aggregator, count_query, mock_metrics
    ):
        coordinator = NonBlockingIncrementCoordinator(store, mock_metrics)
        store.data[KEY] = {"7": "2"}
        await store.acquire_lock(LOCK, "populator", 30)

        result = await coordinator.conditional_increment(KEY, 7, 1, LOCK)
        assert result.outcome is IncrementOutcome.LOCKED

        await store.release_lock(LOCK, "populator")
        aggregator.rows = [(7, 3)]

        assert await repopulator.repopulate_if_dirty(KEY, LOCK, count_query) is True
        assert store.data[KEY] == {"7": "3"}
        assert await coordinator.is_dirty(KEY) is False
