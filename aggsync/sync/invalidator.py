"""
Locked Invalidation

Deleting a derived aggregate without the population lock races a populate
that is already in flight: the delete lands first, then the populator writes
the stale result back. Taking the same lock as population serializes the two.
"""

from aggsync.core.config.constants import Stage
from aggsync.core.interfaces.cache import CacheStore
from aggsync.core.logging.logger import get_logger, log_stage
from aggsync.infrastructure.monitoring.metrics_collector import (
    MetricsCollector,
    get_metrics_collector,
)
from aggsync.sync.lock_manager import LockManager

logger = get_logger(__name__)


class CacheInvalidator:
    def __init__(
        self,
        store: CacheStore,
        lock_manager: LockManager,
        metrics: MetricsCollector | None = None,
    ):
        self._store = store
        self._locks = lock_manager
        self._metrics = metrics or get_metrics_collector()

    async def invalidate_with_lock(
        self, cache_key: str, lock_key: str, *, max_wait: float | None = None
    ) -> bool:
        """
        Delete ``cache_key`` while holding its population lock.

        STAGE-INVALIDATE.DELETE

        Returns:
            True if a cached value was removed

        Raises:
            LockWaitTimeoutError: If the lock could not be taken in time
        """
        async with self._locks.hold(lock_key, max_wait=max_wait, operation="invalidate"):
            deleted = await self._store.delete(cache_key) > 0

        self._metrics.record_invalidation(cache_key, deleted)
        log_stage(logger, Stage.INVALIDATE, "Cache key invalidated", cache_key=cache_key, deleted=deleted)
        return deleted
