"""
Unit Tests for AggregateSyncService

Exercises the service through the real component graph, wired by
CacheSyncContainer over the in-memory store.
"""

import dataclasses

import orjson
import pytest

from aggsync.aggregates.definitions import (
    AGENT_CLAIM_COUNTS,
    AGENT_POLICY_COUNTS,
    HASH_AGGREGATES,
    SCALAR_AGGREGATES,
    TOP_CLIENTS_BY_COVERAGE,
)
from aggsync.container import CacheSyncContainer
from aggsync.core.config.constants import IncrementOutcome, IncrementPolicy
from aggsync.core.exceptions import AggregationError, CacheConnectionError
from tests.test_fixtures import AggregatorTestFactory, CacheTestFactory

POLICIES = AGENT_POLICY_COUNTS.cache_key
NON_BLOCKING_COUNTS = dataclasses.replace(AGENT_CLAIM_COUNTS, policy=IncrementPolicy.NON_BLOCKING)


@pytest.fixture
def container(test_settings, store, aggregator, mock_metrics):
    return CacheSyncContainer(test_settings, store, aggregator, mock_metrics)


@pytest.fixture
def service(container):
    return container.service


@pytest.mark.unit
class TestAggregateDefinitions:
    def test_keys_follow_conventions(self):
        assert AGENT_POLICY_COUNTS.lock_key == "lock:counts:agent:policies"
        assert AGENT_POLICY_COUNTS.dirty_key == "dirty:counts:agent:policies"
        assert TOP_CLIENTS_BY_COVERAGE.lock_key == "lock:ranking:top10_clients"

    def test_registries(self):
        assert set(HASH_AGGREGATES) == {"agent_policy_counts", "agent_claim_counts"}
        assert SCALAR_AGGREGATES["top_clients_by_coverage"] is TOP_CLIENTS_BY_COVERAGE


@pytest.mark.unit
class TestReads:
    @pytest.mark.asyncio
    async def test_get_counts_warms_once(self, service, aggregator):
        assert await service.get_counts(AGENT_POLICY_COUNTS) == {"7": 3, "9": 1}
        assert await service.get_counts(AGENT_POLICY_COUNTS) == {"7": 3, "9": 1}
        assert aggregator.call_count == 1

    @pytest.mark.asyncio
    async def test_get_counts_surfaces_cache_errors(self, test_settings, aggregator, mock_metrics):
        container = CacheSyncContainer(
            test_settings, CacheTestFactory.unreachable_store(), aggregator, mock_metrics
        )

        with pytest.raises(CacheConnectionError):
            await container.service.get_counts(AGENT_POLICY_COUNTS)

    @pytest.mark.asyncio
    async def test_get_value_then_invalidate_recomputes(self, service, store):
        calls = []

        def compute():
            calls.append(1)
            return [{"client_name": "Acme", "total_coverage": len(calls)}]

        first = await service.get_value(TOP_CLIENTS_BY_COVERAGE, compute)
        cached = await service.get_value(TOP_CLIENTS_BY_COVERAGE, compute)
        assert first == cached == [{"client_name": "Acme", "total_coverage": 1}]

        assert await service.invalidate(TOP_CLIENTS_BY_COVERAGE) is True
        assert TOP_CLIENTS_BY_COVERAGE.cache_key not in store.data

        refreshed = await service.get_value(TOP_CLIENTS_BY_COVERAGE, compute)
        assert refreshed == [{"client_name": "Acme", "total_coverage": 2}]
        assert orjson.loads(store.data[TOP_CLIENTS_BY_COVERAGE.cache_key]) == refreshed


@pytest.mark.unit
class TestWrites:
    def test_policy_defaults_to_settings(self, service):
        assert service.policy_for(AGENT_POLICY_COUNTS) is IncrementPolicy.BLOCKING
        assert service.policy_for(NON_BLOCKING_COUNTS) is IncrementPolicy.NON_BLOCKING

    @pytest.mark.asyncio
    async def test_record_write_blocking_on_cold_cache_populates(self, service, store):
        result = await service.record_write(AGENT_POLICY_COUNTS, 7)

        assert result.outcome is IncrementOutcome.SKIPPED_POPULATED
        assert store.data[POLICIES] == {"7": "3", "9": "1"}

    @pytest.mark.asyncio
    async def test_record_write_blocking_on_warm_cache_increments(self, service, store):
        store.data[POLICIES] = {"7": "3"}

        result = await service.record_write(AGENT_POLICY_COUNTS, 7, delta=2)

        assert result.outcome is IncrementOutcome.APPLIED
        assert result.value == 5

    @pytest.mark.asyncio
    async def test_record_write_non_blocking_marks_dirty(self, service, store, aggregator):
        result = await service.record_write(NON_BLOCKING_COUNTS, 7)

        assert result.outcome is IncrementOutcome.MISSING
        assert store.data[NON_BLOCKING_COUNTS.dirty_key] == "1"
        assert aggregator.call_count == 0

        assert await service.repopulate_if_dirty(NON_BLOCKING_COUNTS) is True
        assert await service.get_counts(NON_BLOCKING_COUNTS) == {"7": 3, "9": 1}
        assert aggregator.call_count == 1

    @pytest.mark.asyncio
    async def test_record_write_swallows_unreachable_cache(self, test_settings, aggregator, mock_metrics):
        container = CacheSyncContainer(
            test_settings, CacheTestFactory.unreachable_store(), aggregator, mock_metrics
        )

        assert await container.service.record_write(AGENT_POLICY_COUNTS, 7) is None
        mock_metrics.record_error.assert_called_with("CacheConnectionError", "INCR.APPLY")

    @pytest.mark.asyncio
    async def test_record_write_swallows_aggregation_failure(self, test_settings, store, mock_metrics):
        container = CacheSyncContainer(
            test_settings, store, AggregatorTestFactory.failing(), mock_metrics
        )

        assert await container.service.record_write(AGENT_POLICY_COUNTS, 7) is None
        assert POLICIES not in store.data

    @pytest.mark.asyncio
    async def test_get_counts_does_not_swallow_aggregation_failure(self, test_settings, store, mock_metrics):
        container = CacheSyncContainer(
            test_settings, store, AggregatorTestFactory.failing(), mock_metrics
        )

        with pytest.raises(AggregationError):
            await container.service.get_counts(AGENT_POLICY_COUNTS)

    @pytest.mark.asyncio
    async def test_invalidate_absent_and_unreachable(self, service, test_settings, aggregator, mock_metrics):
        assert await service.invalidate(AGENT_POLICY_COUNTS) is False

        container = CacheSyncContainer(
            test_settings, CacheTestFactory.unreachable_store(), aggregator, mock_metrics
        )
        assert await container.service.invalidate(AGENT_POLICY_COUNTS) is None


@pytest.mark.unit
class TestRepopulate:
    @pytest.mark.asyncio
    async def test_clean_aggregate_not_rebuilt(self, service, aggregator):
        assert await service.repopulate_if_dirty(AGENT_CLAIM_COUNTS) is False
        assert aggregator.call_count == 0

    @pytest.mark.asyncio
    async def test_forced_rebuild(self, service, store):
        store.data[AGENT_CLAIM_COUNTS.cache_key] = {"7": "99"}

        assert await service.repopulate_if_dirty(AGENT_CLAIM_COUNTS, force=True) is True
        assert store.data[AGENT_CLAIM_COUNTS.cache_key] == {"7": "3", "9": "1"}
