"""
Conditional Counter Increments

Applies a per-write delta to a cached per-entity counter without double
counting against a population that may be running at the same moment.

Two policies are available; one is chosen per aggregate:

BLOCKING
    ensure_warm first. If this caller just populated (was_warm=False) the
    fresh aggregate already reflects the write, so the increment is skipped.
    Otherwise HINCRBY, applied atomically only while the hash still exists:
    a hash invalidated or expired in between is left absent (MISSING) and
    the next warm re-queries the store of record. The writer may wait
    behind a population.

NON_BLOCKING
    One atomic script: lock held -> set dirty flag, skip; field missing ->
    set dirty flag, skip; else HINCRBY. Never waits. Skipped deltas are
    reconciled later by DirtyRepopulator.

Known gap (both policies): if the aggregator reads the store of record
before the triggering write is visible, the delta is lost until the next
repopulation. Closing it needs commit-ordering guarantees from the caller.
"""

from dataclasses import dataclass
from typing import Any, Protocol

from aggsync.core.config.constants import DIRTY_FLAG_VALUE, IncrementOutcome, IncrementPolicy, Stage
from aggsync.core.interfaces.aggregator import AggregateQuery
from aggsync.core.interfaces.cache import CacheStore
from aggsync.core.logging.logger import get_logger, log_stage
from aggsync.infrastructure.monitoring.metrics_collector import (
    MetricsCollector,
    get_metrics_collector,
)
from aggsync.sync.cache_warmer import CacheWarmer
from aggsync.sync.keys import dirty_key_for

logger = get_logger(__name__)


@dataclass(frozen=True)
class IncrementResult:
    outcome: IncrementOutcome
    value: int | None = None

    @property
    def applied(self) -> bool:
        return self.outcome is IncrementOutcome.APPLIED


class IncrementCoordinator(Protocol):
    policy: IncrementPolicy

    async def conditional_increment(
        self,
        cache_key: str,
        field_id: Any,
        delta: int,
        lock_key: str,
        query: AggregateQuery | None,
    ) -> IncrementResult:
        ...


# ============================================================================
# Dirty flag
# ============================================================================


async def mark_dirty(store: CacheStore, cache_key: str) -> None:
    await store.set(dirty_key_for(cache_key), DIRTY_FLAG_VALUE)


async def clear_dirty(store: CacheStore, cache_key: str) -> None:
    await store.delete(dirty_key_for(cache_key))


async def is_dirty(store: CacheStore, cache_key: str) -> bool:
    return await store.exists(dirty_key_for(cache_key))


# ============================================================================
# Policies
# ============================================================================


class _BaseIncrementCoordinator:
    policy: IncrementPolicy

    def __init__(self, store: CacheStore, metrics: MetricsCollector | None = None):
        self._store = store
        self._metrics = metrics or get_metrics_collector()

    def _record(self, cache_key: str, field_id: Any, delta: int, result: IncrementResult) -> None:
        self._metrics.record_increment(cache_key, self.policy.value, result.outcome.value)
        log_stage(
            logger,
            Stage.INCREMENT,
            "Increment applied" if result.applied else "Increment skipped",
            level="debug",
            cache_key=cache_key,
            field=str(field_id),
            delta=delta,
            policy=self.policy.value,
            outcome=result.outcome.value,
            value=result.value,
        )


class BlockingIncrementCoordinator(_BaseIncrementCoordinator):
    """Increment gated on the was_warm handshake of ensure_warm."""

    policy = IncrementPolicy.BLOCKING

    def __init__(
        self,
        store: CacheStore,
        warmer: CacheWarmer,
        metrics: MetricsCollector | None = None,
    ):
        super().__init__(store, metrics)
        self._warmer = warmer

    async def conditional_increment(
        self,
        cache_key: str,
        field_id: Any,
        delta: int,
        lock_key: str,
        query: AggregateQuery | None,
    ) -> IncrementResult:
        """
        STAGE-INCR.APPLY

        Raises:
            AggregationError: If the gating population failed
            LockWaitTimeoutError: If the gating population could not be awaited
        """
        if query is None:
            raise ValueError("Blocking increments need the aggregate query to warm the cache")

        warm = await self._warmer.ensure_warm(cache_key, lock_key, query)
        if not warm.was_warm:
            result = IncrementResult(IncrementOutcome.SKIPPED_POPULATED)
        else:
            outcome, value = await self._store.increment_if_exists(cache_key, str(field_id), delta)
            result = IncrementResult(outcome, value)

        self._record(cache_key, field_id, delta, result)
        return result


class NonBlockingIncrementCoordinator(_BaseIncrementCoordinator):
    """Increment that never waits; skipped deltas mark the aggregate dirty."""

    policy = IncrementPolicy.NON_BLOCKING

    async def conditional_increment(
        self,
        cache_key: str,
        field_id: Any,
        delta: int,
        lock_key: str,
        query: AggregateQuery | None = None,
    ) -> IncrementResult:
        """STAGE-INCR.APPLY (query is accepted for signature parity and unused)"""
        outcome, value = await self._store.increment_if_ready(
            lock_key, cache_key, dirty_key_for(cache_key), str(field_id), delta
        )
        result = IncrementResult(outcome, value)
        self._record(cache_key, field_id, delta, result)

        if not result.applied:
            log_stage(
                logger,
                Stage.INCREMENT,
                "Aggregate marked dirty",
                cache_key=cache_key,
                reason=outcome.value,
            )
        return result

    async def mark_dirty(self, cache_key: str) -> None:
        await mark_dirty(self._store, cache_key)

    async def clear_dirty(self, cache_key: str) -> None:
        await clear_dirty(self._store, cache_key)

    async def is_dirty(self, cache_key: str) -> bool:
        return await is_dirty(self._store, cache_key)


def build_increment_coordinator(
    policy: IncrementPolicy | str,
    *,
    store: CacheStore,
    warmer: CacheWarmer,
    metrics: MetricsCollector | None = None,
) -> IncrementCoordinator:
    """Pick the coordinator implementing ``policy``."""
    policy = IncrementPolicy(policy)
    if policy is IncrementPolicy.NON_BLOCKING:
        return NonBlockingIncrementCoordinator(store, metrics)
    return BlockingIncrementCoordinator(store, warmer, metrics)
