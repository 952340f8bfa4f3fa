"""
Single-Flight Compute and Cache

Read-through memoization for scalar derived values (ranked lists, totals).
N concurrent misses on the same key collapse into exactly one execution of
the compute function; the others wait on the population lock and read the
stored result.

Values are stored as JSON (orjson). The scalar TTL defaults to
``CACHE_SCALAR_TTL_SECONDS``; unset means the value lives until invalidated.
"""

import inspect
from collections.abc import Awaitable, Callable
from typing import Any

import orjson

from aggsync.core.config.constants import Stage
from aggsync.core.config.settings import CacheSyncSettings
from aggsync.core.exceptions import AggregationError, AggSyncError
from aggsync.core.interfaces.cache import CacheStore
from aggsync.core.logging.logger import get_logger, log_stage
from aggsync.infrastructure.monitoring.metrics_collector import (
    MetricsCollector,
    get_metrics_collector,
)
from aggsync.sync.lock_manager import LockManager

logger = get_logger(__name__)

ComputeFn = Callable[[], Any] | Callable[[], Awaitable[Any]]


class ComputeAndCache:
    def __init__(
        self,
        store: CacheStore,
        lock_manager: LockManager,
        settings: CacheSyncSettings,
        metrics: MetricsCollector | None = None,
    ):
        self._store = store
        self._locks = lock_manager
        self._settings = settings
        self._metrics = metrics or get_metrics_collector()

    async def compute_and_cache(
        self,
        cache_key: str,
        lock_key: str,
        compute_fn: ComputeFn,
        *,
        ttl: float | None = None,
        max_wait: float | None = None,
    ) -> Any:
        """
        Return the cached value, computing and storing it on a miss.

        STAGE-COMPUTE.EXECUTE

        Args:
            compute_fn: Zero-argument callable, sync or async
            ttl: Expiry in seconds for a freshly computed value
            max_wait: Lock wait budget in seconds

        Raises:
            AggregationError: If compute_fn fails (nothing is cached)
            LockWaitTimeoutError: If the lock stayed contended too long
        """
        cached = await self._store.get(cache_key)
        if cached is not None:
            self._metrics.record_compute(cache_key, "hit")
            return orjson.loads(cached)

        async with self._locks.hold(
            lock_key, until=lambda: self._store.get(cache_key), max_wait=max_wait, operation="compute"
        ) as lock:
            if not lock.acquired:
                self._metrics.record_compute(cache_key, "waited")
                return orjson.loads(lock.observed)

            cached = await self._store.get(cache_key)
            if cached is not None:
                self._metrics.record_compute(cache_key, "waited")
                return orjson.loads(cached)

            value = await self._compute(cache_key, compute_fn)
            ttl = ttl if ttl is not None else self._settings.CACHE_SCALAR_TTL_SECONDS
            await self._store.set(cache_key, orjson.dumps(value).decode(), ttl=ttl)

        self._metrics.record_compute(cache_key, "computed")
        log_stage(logger, Stage.COMPUTE, "Value computed and cached", cache_key=cache_key, ttl=ttl)
        return value

    async def _compute(self, cache_key: str, compute_fn: ComputeFn) -> Any:
        try:
            value = compute_fn()
            if inspect.isawaitable(value):
                value = await value
            return value
        except AggSyncError:
            raise
        except Exception as e:
            self._metrics.record_error(type(e).__name__, Stage.COMPUTE.value)
            log_stage(
                logger,
                Stage.COMPUTE,
                "Compute function failed, nothing cached",
                level="error",
                cache_key=cache_key,
                error=str(e),
            )
            raise AggregationError.from_exception(
                e, message=f"Compute for {cache_key} failed: {e}", cache_key=cache_key
            ) from e
