"""
Hash Cache Warmer

Ensures a hash-valued cache key reflects the authoritative aggregate,
populating it at most once per miss no matter how many callers miss at the
same time.

Flow (per cache key):
    ABSENT ──lock acquired──▶ WARMING ──hash written──▶ WARM
       ▲                         │
       └──── aggregation error ──┘  (lock released, nothing written)

    1. Fast path: key exists -> was_warm=True, no lock taken.
    2. Slow path: wait on the population lock.
       - Lock acquired: re-check, query the aggregator, replace the hash in
         one transaction, release. was_warm=False (this caller populated).
       - Key appeared while waiting: was_warm=True (someone else populated).

Empty results are cached as a single placeholder field with a short expiry,
so "computed and empty" is distinguishable from "never computed" without
caching emptiness forever.
"""

import time
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from aggsync.core.config.constants import PLACEHOLDER_VALUE, Stage
from aggsync.core.config.settings import CacheSyncSettings
from aggsync.core.exceptions import AggregationError, AggSyncError
from aggsync.core.interfaces.aggregator import AggregateQuery, AuthoritativeAggregator
from aggsync.core.interfaces.cache import CacheStore
from aggsync.core.logging.logger import get_logger, log_stage
from aggsync.infrastructure.monitoring.metrics_collector import (
    MetricsCollector,
    get_metrics_collector,
)
from aggsync.sync.lock_manager import LockManager

logger = get_logger(__name__)


@dataclass(frozen=True)
class WarmResult:
    """
    Outcome of ensure_warm.

    was_warm is False only for the caller that performed the population
    itself; increment coordination relies on that distinction.
    """

    was_warm: bool


class CacheWarmer:
    """Single-flight population of per-entity hash aggregates."""

    def __init__(
        self,
        store: CacheStore,
        lock_manager: LockManager,
        aggregator: AuthoritativeAggregator,
        settings: CacheSyncSettings,
        metrics: MetricsCollector | None = None,
    ):
        self._store = store
        self._locks = lock_manager
        self._aggregator = aggregator
        self._settings = settings
        self._metrics = metrics or get_metrics_collector()

    async def ensure_warm(
        self,
        cache_key: str,
        lock_key: str,
        query: AggregateQuery,
        *,
        max_wait: float | None = None,
    ) -> WarmResult:
        """
        Make sure ``cache_key`` holds the aggregate.

        Raises:
            AggregationError: If this caller populated and the aggregator failed
            LockWaitTimeoutError: If the population lock stayed contended too long
        """
        if await self._store.exists(cache_key):
            self._metrics.record_warm(cache_key, "hit")
            log_stage(
                logger, Stage.WARM_FAST_PATH, "Cache already warm", level="debug", cache_key=cache_key
            )
            return WarmResult(was_warm=True)

        async with self._locks.hold(
            lock_key, until=self._present(cache_key), max_wait=max_wait, operation="warm"
        ) as lock:
            if not lock.acquired:
                log_stage(logger, Stage.WARM_WAIT, "Populated by another caller", cache_key=cache_key)
                self._metrics.record_warm(cache_key, "waited")
                return WarmResult(was_warm=True)

            # Populated between the fast-path check and our acquisition
            if await self._store.exists(cache_key):
                self._metrics.record_warm(cache_key, "waited")
                return WarmResult(was_warm=True)

            await self.populate(cache_key, query)
            self._metrics.record_warm(cache_key, "populated")
            return WarmResult(was_warm=False)

    async def populate(self, cache_key: str, query: AggregateQuery) -> int:
        """
        Query the aggregator and atomically overwrite the hash.

        STAGE-WARM.POPULATE

        The caller must hold the population lock for ``cache_key``.

        Returns:
            Number of entities written (0 when the placeholder was written)
        """
        start = time.perf_counter()
        rows = await self._aggregate(cache_key, query)
        mapping = {str(entity_id): int(total) for entity_id, total in self._pairs(rows, query)}

        if mapping:
            await self._store.replace_hash(cache_key, mapping)
        else:
            await self._store.replace_hash(
                cache_key,
                {self._settings.CACHE_PLACEHOLDER_FIELD: PLACEHOLDER_VALUE},
                ttl=self._settings.CACHE_PLACEHOLDER_TTL_SECONDS,
            )

        duration = time.perf_counter() - start
        self._metrics.record_population(cache_key, duration, len(mapping))
        log_stage(
            logger,
            Stage.WARM_POPULATE,
            "Hash populated" if mapping else "Empty aggregate, placeholder written",
            cache_key=cache_key,
            entries=len(mapping),
            duration_ms=round(duration * 1000, 2),
        )
        return len(mapping)

    async def get_counts(
        self,
        cache_key: str,
        lock_key: str,
        query: AggregateQuery,
        *,
        max_wait: float | None = None,
    ) -> dict[str, int]:
        """Warm the hash if needed and return it without the placeholder field."""
        await self.ensure_warm(cache_key, lock_key, query, max_wait=max_wait)
        raw = await self._store.hgetall(cache_key)
        return self.parse_counts(raw)

    def parse_counts(self, raw: Mapping[str, str]) -> dict[str, int]:
        placeholder = self._settings.CACHE_PLACEHOLDER_FIELD
        return {field: int(value) for field, value in raw.items() if field != placeholder}

    def _present(self, cache_key: str):
        async def probe() -> bool | None:
            return True if await self._store.exists(cache_key) else None

        return probe

    async def _aggregate(self, cache_key: str, query: AggregateQuery) -> Sequence[Any]:
        try:
            return await self._aggregator.aggregate(query)
        except AggSyncError:
            self._metrics.record_error("AggregationError", Stage.WARM_POPULATE.value)
            raise
        except Exception as e:
            self._metrics.record_error(type(e).__name__, Stage.WARM_POPULATE.value)
            log_stage(
                logger,
                Stage.WARM_POPULATE,
                "Authoritative aggregation failed, population aborted",
                level="error",
                cache_key=cache_key,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise AggregationError.from_exception(
                e,
                message=f"Aggregation for {cache_key} failed: {e}",
                cache_key=cache_key,
            ) from e

    @staticmethod
    def _pairs(rows: Sequence[Any], query: AggregateQuery):
        # Rows are (id, total) pairs or mappings keyed by the query's field names
        for row in rows:
            if isinstance(row, Mapping):
                yield row[query.id_field], row[query.total_field]
            else:
                entity_id, total = row
                yield entity_id, total
