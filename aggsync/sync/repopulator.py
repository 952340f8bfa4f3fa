"""
Dirty Flag Repopulation

Operator path that reconciles aggregates maintained by the non-blocking
increment policy. Any increment skipped because a population was running or
the field was missing leaves ``dirty:<cache_key>`` behind; this rebuilds the
hash from the aggregator and clears the flag.

The flag is cleared before the aggregator is queried. An increment racing
the rebuild sees the lock, re-marks the flag and is picked up by the next run.
"""

from aggsync.core.config.constants import Stage
from aggsync.core.exceptions import AggSyncError, CacheError
from aggsync.core.interfaces.aggregator import AggregateQuery
from aggsync.core.interfaces.cache import CacheStore
from aggsync.core.logging.logger import get_logger, log_stage
from aggsync.infrastructure.monitoring.metrics_collector import (
    MetricsCollector,
    get_metrics_collector,
)
from aggsync.sync.cache_warmer import CacheWarmer
from aggsync.sync.increment import clear_dirty, is_dirty, mark_dirty
from aggsync.sync.lock_manager import LockManager

logger = get_logger(__name__)


class DirtyRepopulator:
    def __init__(
        self,
        store: CacheStore,
        lock_manager: LockManager,
        warmer: CacheWarmer,
        metrics: MetricsCollector | None = None,
    ):
        self._store = store
        self._locks = lock_manager
        self._warmer = warmer
        self._metrics = metrics or get_metrics_collector()

    async def repopulate_if_dirty(
        self,
        cache_key: str,
        lock_key: str,
        query: AggregateQuery,
        *,
        force: bool = False,
        max_wait: float | None = None,
    ) -> bool:
        """
        Rebuild ``cache_key`` if it is marked dirty (or unconditionally with ``force``).

        STAGE-REPOPULATE.DIRTY

        Returns:
            True if the hash was rebuilt
        """
        if not force and not await is_dirty(self._store, cache_key):
            self._metrics.record_repopulation(cache_key, "clean")
            return False

        async with self._locks.hold(lock_key, max_wait=max_wait, operation="repopulate"):
            await clear_dirty(self._store, cache_key)
            try:
                entries = await self._warmer.populate(cache_key, query)
            except AggSyncError:
                # Hash is untouched; keep it flagged for the next run
                await self._remark_dirty(cache_key)
                raise

        self._metrics.record_repopulation(cache_key, "repopulated")
        log_stage(
            logger,
            Stage.REPOPULATE,
            "Dirty aggregate rebuilt",
            cache_key=cache_key,
            entries=entries,
            forced=force,
        )
        return True

    async def _remark_dirty(self, cache_key: str) -> None:
        """Restore the dirty flag; a failure here must not mask the population error."""
        try:
            await mark_dirty(self._store, cache_key)
        except CacheError as e:
            self._metrics.record_error(type(e).__name__, Stage.REPOPULATE.value)
            log_stage(
                logger,
                Stage.REPOPULATE,
                "Dirty flag could not be restored, aggregate may stay stale",
                level="error",
                cache_key=cache_key,
                error=str(e),
            )
