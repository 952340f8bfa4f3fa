"""
Distributed Population Locks

Named, TTL-bound mutual exclusion built on the cache store's atomic
primitives. One lock exists per cache key (``lock:<cache_key>``) and is held
by whoever is currently populating, invalidating or recomputing that key.

Mechanism:
    acquire  -> SET lock_key token NX PX ttl   (single atomic command)
    release  -> compare-and-delete script      (no-op unless token matches)

Liveness:
    Explicit release is an optimization. A holder that crashes mid-operation
    is recovered by TTL expiry alone, so the TTL must cover the slowest
    population while still bounding how long a crash blocks everyone else.

Architectural Decision: context-managed holding
    ``hold()`` wraps wait, acquire and release in one ``async with`` block so
    that every exit path (return, exception, task cancellation) releases the
    lock. Callers never pair acquire/release by hand.
"""

import time
import uuid
from collections.abc import Awaitable, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any

from aggsync.core.config.constants import Stage
from aggsync.core.config.settings import CacheSyncSettings
from aggsync.core.exceptions import CacheError, LockWaitTimeoutError
from aggsync.core.interfaces.cache import CacheStore
from aggsync.core.logging.logger import get_logger, log_stage
from aggsync.core.resilience.backoff import poll_until
from aggsync.infrastructure.monitoring.metrics_collector import (
    MetricsCollector,
    get_metrics_collector,
)

logger = get_logger(__name__)


@dataclass(frozen=True)
class LockAcquisition:
    """
    Result of waiting on a lock.

    Exactly one of ``token`` / ``observed`` is set:
    - token: the lock was acquired and is owned by this caller
    - observed: the wait ended early because ``until()`` produced a value
    """

    lock_key: str
    token: str | None = None
    observed: Any = None

    @property
    def acquired(self) -> bool:
        return self.token is not None


class LockManager:
    """
    Acquires and releases population locks.

    Usage:
        locks = LockManager(store, settings.cache_sync)

        async with locks.hold("lock:ranking:top10_clients") as lock:
            ...  # exclusive section

        # Stop waiting as soon as someone else finishes the work
        async with locks.hold(lock_key, until=probe) as lock:
            if not lock.acquired:
                return lock.observed
    """

    def __init__(
        self,
        store: CacheStore,
        settings: CacheSyncSettings,
        metrics: MetricsCollector | None = None,
    ):
        self._store = store
        self._settings = settings
        self._metrics = metrics or get_metrics_collector()

    async def acquire(self, lock_key: str, ttl: float | None = None) -> str | None:
        """
        Try once to take the lock.

        STAGE-LOCK.ACQUIRE

        Returns:
            A fresh owner token, or None if the lock is held elsewhere
        """
        ttl = ttl if ttl is not None else self._settings.CACHE_LOCK_TTL_SECONDS
        token = uuid.uuid4().hex
        acquired = await self._store.acquire_lock(lock_key, token, ttl)
        self._metrics.record_lock_acquisition(lock_key, acquired)

        if not acquired:
            log_stage(logger, Stage.LOCK_ACQUIRE, "Lock contended", level="debug", lock_key=lock_key)
            return None

        log_stage(logger, Stage.LOCK_ACQUIRE, "Lock acquired", level="debug", lock_key=lock_key, ttl=ttl)
        return token

    async def release(self, lock_key: str, token: str) -> bool:
        """
        Release the lock if ``token`` still owns it.

        STAGE-LOCK.RELEASE

        Returns:
            False when the lock expired or now belongs to another holder
        """
        released = await self._store.release_lock(lock_key, token)
        self._metrics.record_lock_release(lock_key, released)

        if released:
            log_stage(logger, Stage.LOCK_RELEASE, "Lock released", level="debug", lock_key=lock_key)
        else:
            log_stage(
                logger,
                Stage.LOCK_RELEASE,
                "Lock no longer owned at release (expired or taken over)",
                level="warning",
                lock_key=lock_key,
            )
        return released

    @asynccontextmanager
    async def hold(
        self,
        lock_key: str,
        *,
        until: Callable[[], Awaitable[Any]] | None = None,
        ttl: float | None = None,
        max_wait: float | None = None,
        operation: str = "hold",
    ):
        """
        Wait for the lock, yield a LockAcquisition, release on exit.

        Each attempt tries to acquire first. When the lock is contended and
        ``until`` is given, it is awaited; a non-None result ends the wait
        without the lock and is exposed as ``LockAcquisition.observed``.

        Raises:
            LockWaitTimeoutError: If neither happens within ``max_wait``
        """
        acquisition = await self._wait(lock_key, until, ttl, max_wait, operation)
        try:
            yield acquisition
        finally:
            if acquisition.acquired:
                await self._release_quietly(lock_key, acquisition.token)

    async def _wait(
        self,
        lock_key: str,
        until: Callable[[], Awaitable[Any]] | None,
        ttl: float | None,
        max_wait: float | None,
        operation: str,
    ) -> LockAcquisition:
        attempts = 0

        async def attempt() -> LockAcquisition | None:
            nonlocal attempts
            attempts += 1
            token = await self.acquire(lock_key, ttl)
            if token is not None:
                return LockAcquisition(lock_key, token=token)
            if until is not None:
                observed = await until()
                if observed is not None:
                    return LockAcquisition(lock_key, observed=observed)
            return None

        start = time.perf_counter()
        try:
            acquisition = await poll_until(
                attempt,
                interval=self._settings.CACHE_LOCK_POLL_INTERVAL_SECONDS,
                max_wait=max_wait if max_wait is not None else self._settings.CACHE_LOCK_MAX_WAIT_SECONDS,
                operation=operation,
                key=lock_key,
            )
        except LockWaitTimeoutError:
            self._metrics.record_lock_wait_timeout(operation)
            self._metrics.record_error("LockWaitTimeoutError", Stage.LOCK_WAIT.value)
            raise

        if attempts > 1 or not acquisition.acquired:
            waited = time.perf_counter() - start
            self._metrics.record_lock_wait(operation, waited)
            log_stage(
                logger,
                Stage.LOCK_WAIT,
                "Lock wait finished",
                level="debug",
                lock_key=lock_key,
                operation=operation,
                acquired=acquisition.acquired,
                attempts=attempts,
                waited_ms=round(waited * 1000, 2),
            )

        return acquisition

    async def _release_quietly(self, lock_key: str, token: str) -> None:
        # TTL expiry still frees the lock if the store is unreachable here
        try:
            await self.release(lock_key, token)
        except CacheError as e:
            self._metrics.record_error(type(e).__name__, Stage.LOCK_RELEASE.value)
            log_stage(
                logger,
                Stage.LOCK_RELEASE,
                "Lock release failed; relying on TTL expiry",
                level="error",
                lock_key=lock_key,
                error=str(e),
            )
