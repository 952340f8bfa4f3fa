"""
Composition Root

Builds every synchronization component with explicit collaborators. The
container owns the cache store's lifecycle; nothing else holds a
module-level connection.

Usage:
    async with await CacheSyncContainer.create(aggregator) as sync:
        counts = await sync.service.get_counts(AGENT_POLICY_COUNTS)
        await sync.service.record_write(AGENT_POLICY_COUNTS, agent_id)
"""

from aggsync.aggregates.service import AggregateSyncService
from aggsync.core.config.constants import IncrementPolicy
from aggsync.core.config.settings import Settings, get_settings
from aggsync.core.interfaces.aggregator import AuthoritativeAggregator
from aggsync.core.interfaces.cache import CacheStore
from aggsync.core.logging.logger import get_logger, setup_logging
from aggsync.infrastructure.cache.redis_client import RedisClient
from aggsync.infrastructure.monitoring.metrics_collector import (
    MetricsCollector,
    get_metrics_collector,
)
from aggsync.sync.cache_warmer import CacheWarmer
from aggsync.sync.compute import ComputeAndCache
from aggsync.sync.increment import build_increment_coordinator
from aggsync.sync.invalidator import CacheInvalidator
from aggsync.sync.lock_manager import LockManager
from aggsync.sync.repopulator import DirtyRepopulator

logger = get_logger(__name__)


class CacheSyncContainer:
    def __init__(
        self,
        settings: Settings,
        store: CacheStore,
        aggregator: AuthoritativeAggregator,
        metrics: MetricsCollector | None = None,
    ):
        self.settings = settings
        self.store = store
        self.aggregator = aggregator
        self.metrics = metrics or get_metrics_collector()

        sync_settings = settings.cache_sync

        self.lock_manager = LockManager(store, sync_settings, self.metrics)
        self.warmer = CacheWarmer(store, self.lock_manager, aggregator, sync_settings, self.metrics)
        self.coordinators = {
            policy: build_increment_coordinator(
                policy, store=store, warmer=self.warmer, metrics=self.metrics
            )
            for policy in IncrementPolicy
        }
        self.invalidator = CacheInvalidator(store, self.lock_manager, self.metrics)
        self.compute = ComputeAndCache(store, self.lock_manager, sync_settings, self.metrics)
        self.repopulator = DirtyRepopulator(store, self.lock_manager, self.warmer, self.metrics)
        self.service = AggregateSyncService(
            sync_settings,
            self.warmer,
            self.coordinators,
            self.invalidator,
            self.compute,
            self.repopulator,
            self.metrics,
        )

    @classmethod
    async def create(
        cls, aggregator: AuthoritativeAggregator, settings: Settings | None = None
    ) -> "CacheSyncContainer":
        """
        Configure logging, connect Redis and wire all components.

        Raises:
            CacheConnectionError: If Redis cannot be reached
        """
        settings = settings or get_settings()
        setup_logging(log_level=settings.logging.LOG_LEVEL, log_format=settings.logging.LOG_FORMAT)

        store = RedisClient(settings.redis)
        await store.connect()

        logger.info(
            "Cache sync ready",
            environment=settings.app.ENVIRONMENT,
            version=settings.app.APP_VERSION,
            increment_policy=settings.cache_sync.CACHE_INCREMENT_POLICY,
        )
        return cls(settings, store, aggregator, MetricsCollector(settings))

    async def close(self) -> None:
        await self.store.disconnect()
        logger.info("Cache sync shut down")

    async def __aenter__(self) -> "CacheSyncContainer":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
