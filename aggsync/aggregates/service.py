"""
Aggregate Sync Service

The single entry point the record-keeping layer calls:

    reads   -> get_counts / get_value       (warm or compute on miss)
    writes  -> record_write                 (conditional increment)
               invalidate                   (scalar aggregates without an incremental path)
    ops     -> repopulate_if_dirty          (reconcile skipped increments)

Error policy:
    Read paths surface errors; the caller decides whether to fall back to
    the store of record. Write paths run after the domain write has already
    committed, so cache failures there are logged and reported as None and
    never propagate into the domain write.
"""

from collections.abc import Mapping
from typing import Any

from aggsync.aggregates.definitions import HashAggregate, ScalarAggregate
from aggsync.core.config.constants import IncrementPolicy, Stage
from aggsync.core.config.settings import CacheSyncSettings
from aggsync.core.exceptions import AggregationError, CacheError
from aggsync.core.logging.logger import get_logger, log_stage
from aggsync.infrastructure.monitoring.metrics_collector import (
    MetricsCollector,
    get_metrics_collector,
)
from aggsync.sync.cache_warmer import CacheWarmer
from aggsync.sync.compute import ComputeAndCache, ComputeFn
from aggsync.sync.increment import IncrementCoordinator, IncrementResult
from aggsync.sync.invalidator import CacheInvalidator
from aggsync.sync.repopulator import DirtyRepopulator

logger = get_logger(__name__)


class AggregateSyncService:
    def __init__(
        self,
        settings: CacheSyncSettings,
        warmer: CacheWarmer,
        coordinators: Mapping[IncrementPolicy, IncrementCoordinator],
        invalidator: CacheInvalidator,
        compute: ComputeAndCache,
        repopulator: DirtyRepopulator,
        metrics: MetricsCollector | None = None,
    ):
        self._settings = settings
        self._warmer = warmer
        self._coordinators = dict(coordinators)
        self._invalidator = invalidator
        self._compute = compute
        self._repopulator = repopulator
        self._metrics = metrics or get_metrics_collector()

    def policy_for(self, aggregate: HashAggregate) -> IncrementPolicy:
        return aggregate.policy or IncrementPolicy(self._settings.CACHE_INCREMENT_POLICY)

    # =========================================================================
    # Reads
    # =========================================================================

    async def get_counts(
        self, aggregate: HashAggregate, *, max_wait: float | None = None
    ) -> dict[str, int]:
        """Current per-entity counts, warming the hash on a miss."""
        return await self._warmer.get_counts(
            aggregate.cache_key, aggregate.lock_key, aggregate.query, max_wait=max_wait
        )

    async def get_value(
        self,
        aggregate: ScalarAggregate,
        compute_fn: ComputeFn,
        *,
        max_wait: float | None = None,
    ) -> Any:
        """Cached scalar value, computed once on a miss."""
        return await self._compute.compute_and_cache(
            aggregate.cache_key,
            aggregate.lock_key,
            compute_fn,
            ttl=aggregate.ttl,
            max_wait=max_wait,
        )

    # =========================================================================
    # Writes (non-fatal)
    # =========================================================================

    async def record_write(
        self, aggregate: HashAggregate, field_id: Any, delta: int = 1
    ) -> IncrementResult | None:
        """
        Apply a committed write's delta to the cached counter.

        Returns:
            The increment result, or None if the cache could not be updated
        """
        coordinator = self._coordinators[self.policy_for(aggregate)]
        try:
            return await coordinator.conditional_increment(
                aggregate.cache_key, field_id, delta, aggregate.lock_key, aggregate.query
            )
        except (CacheError, AggregationError) as e:
            self._report_degraded(Stage.INCREMENT, aggregate.cache_key, e, field=str(field_id))
            return None

    async def invalidate(self, aggregate: HashAggregate | ScalarAggregate) -> bool | None:
        """
        Drop a cached aggregate under its population lock.

        Returns:
            Whether a value was deleted, or None if the cache could not be reached
        """
        try:
            return await self._invalidator.invalidate_with_lock(
                aggregate.cache_key, aggregate.lock_key
            )
        except CacheError as e:
            self._report_degraded(Stage.INVALIDATE, aggregate.cache_key, e)
            return None

    # =========================================================================
    # Operator path
    # =========================================================================

    async def repopulate_if_dirty(self, aggregate: HashAggregate, force: bool = False) -> bool:
        return await self._repopulator.repopulate_if_dirty(
            aggregate.cache_key, aggregate.lock_key, aggregate.query, force=force
        )

    def _report_degraded(self, stage: Stage, cache_key: str, error: Exception, **context) -> None:
        self._metrics.record_error(type(error).__name__, stage.value)
        log_stage(
            logger,
            stage,
            "Cache update skipped, aggregate may be stale",
            level="warning",
            cache_key=cache_key,
            error=str(error),
            error_type=type(error).__name__,
            **context,
        )
