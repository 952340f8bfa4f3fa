"""
Redis Cache Store with Connection Pooling

Architecture:
    RedisClient (Public API, implements CacheStore)
        ├── ConnectionManager (Connection lifecycle)
        ├── OperationExecutor (Command execution with error translation)
        └── HealthMonitor (Health checks and pool metrics)

The client is created and owned by the composition root
(``aggsync.container``) and handed to every component explicitly; there is
no module-level instance.
"""

import time
from contextlib import asynccontextmanager
from typing import Any

import redis.asyncio as redis
from redis.asyncio.connection import ConnectionPool
from redis.exceptions import ConnectionError, RedisError, TimeoutError

from aggsync.core.config.constants import DIRTY_FLAG_VALUE, IncrementOutcome, Stage
from aggsync.core.config.settings import RedisSettings, get_settings
from aggsync.core.exceptions import CacheConnectionError, CacheKeyError
from aggsync.core.logging.logger import get_logger
from aggsync.infrastructure.cache.lua_scripts import (
    INCREMENT_IF_EXISTS_SCRIPT,
    INCREMENT_IF_READY_SCRIPT,
    INCREMENT_STATUS_APPLIED,
    INCREMENT_STATUS_LOCKED,
    INCREMENT_STATUS_MISSING,
    RELEASE_LOCK_SCRIPT,
)

logger = get_logger(__name__)

_INCREMENT_STATUS = {
    INCREMENT_STATUS_APPLIED: IncrementOutcome.APPLIED,
    INCREMENT_STATUS_LOCKED: IncrementOutcome.LOCKED,
    INCREMENT_STATUS_MISSING: IncrementOutcome.MISSING,
}


def to_millis(seconds: float) -> int:
    """Convert a TTL in seconds to whole milliseconds (at least 1)."""
    return max(1, int(round(seconds * 1000)))


# =============================================================================
# LAYER 1: CONNECTION MANAGEMENT
# =============================================================================


class ConnectionManager:
    """
    Manages Redis connection lifecycle and pooling.

    Responsibility: Connection establishment, pooling, and cleanup.
    """

    def __init__(self, settings: RedisSettings):
        self._settings = settings
        self._pool: ConnectionPool | None = None
        self._client: redis.Redis | None = None
        self._is_connected = False

    async def connect(self) -> redis.Redis:
        """
        Establish connection to Redis with connection pooling.

        STAGE-REDIS.2: Connection establishment

        Returns:
            redis.Redis: Connected Redis client

        Raises:
            CacheConnectionError: If connection fails
        """
        if self._is_connected and self._client:
            return self._client

        try:
            self._pool = ConnectionPool(
                host=self._settings.REDIS_HOST,
                port=self._settings.REDIS_PORT,
                db=self._settings.REDIS_DB,
                password=self._settings.REDIS_PASSWORD,
                max_connections=self._settings.REDIS_MAX_CONNECTIONS,
                socket_connect_timeout=self._settings.REDIS_SOCKET_CONNECT_TIMEOUT,
                socket_timeout=self._settings.REDIS_SOCKET_TIMEOUT,
                retry_on_timeout=True,
                health_check_interval=self._settings.REDIS_HEALTH_CHECK_INTERVAL,
                decode_responses=True,
            )
            self._client = redis.Redis(connection_pool=self._pool)

            # Verify the pool actually reaches a server
            await self._client.ping()

            self._is_connected = True

            logger.info(
                "Redis connected successfully",
                stage="REDIS.2",
                host=self._settings.REDIS_HOST,
                port=self._settings.REDIS_PORT,
                max_connections=self._settings.REDIS_MAX_CONNECTIONS,
            )

            return self._client

        except (ConnectionError, TimeoutError) as e:
            logger.error("Failed to connect to Redis", stage="REDIS.2", error=str(e))
            raise CacheConnectionError(
                message=f"Failed to connect to Redis: {e}",
                details={
                    "host": self._settings.REDIS_HOST,
                    "port": self._settings.REDIS_PORT,
                },
            ) from e

    async def disconnect(self) -> None:
        """
        Close Redis connection and pool.

        STAGE-REDIS.3: Connection cleanup
        """
        if self._client:
            await self._client.aclose()

        if self._pool:
            await self._pool.disconnect()

        self._client = None
        self._pool = None
        self._is_connected = False

        logger.info("Redis disconnected", stage="REDIS.3")

    async def ping(self) -> bool:
        """Check Redis connection health."""
        try:
            if self._client and self._is_connected:
                await self._client.ping()
                return True
        except (ConnectionError, TimeoutError):
            pass
        return False

    def get_client(self) -> redis.Redis | None:
        return self._client

    def get_pool(self) -> ConnectionPool | None:
        return self._pool

    def is_connected(self) -> bool:
        return self._is_connected


# =============================================================================
# LAYER 2: OPERATION EXECUTOR
# Executes Redis commands and translates driver errors
# =============================================================================


class OperationExecutor:
    """
    Executes Redis operations with consistent error handling.

    Error Handling Strategy:
    - ConnectionError / TimeoutError -> CacheConnectionError (store unreachable)
    - Any other RedisError -> CacheKeyError (command rejected)
    - Original driver error is chained for debugging
    """

    def __init__(self, redis_client: redis.Redis):
        self._redis = redis_client
        self._release_script = redis_client.register_script(RELEASE_LOCK_SCRIPT)
        self._increment_script = redis_client.register_script(INCREMENT_IF_READY_SCRIPT)
        self._increment_existing_script = redis_client.register_script(INCREMENT_IF_EXISTS_SCRIPT)

    @asynccontextmanager
    async def _translate(self, command: str, **context):
        try:
            yield
        except (ConnectionError, TimeoutError) as e:
            logger.error(
                f"Redis {command} failed: store unreachable",
                stage=f"{Stage.REDIS.value}.{command}",
                error=str(e),
                **context,
            )
            raise CacheConnectionError(
                message=f"Redis {command} failed: {e}", details=context
            ) from e
        except RedisError as e:
            logger.error(
                f"Redis {command} failed",
                stage=f"{Stage.REDIS.value}.{command}",
                error=str(e),
                **context,
            )
            raise CacheKeyError(message=f"Redis {command} failed: {e}", details=context) from e

    # -------------------------------------------------------------------------
    # Scalar Operations
    # -------------------------------------------------------------------------

    async def exists(self, key: str) -> bool:
        async with self._translate("EXISTS", key=key):
            return await self._redis.exists(key) > 0

    async def get(self, key: str) -> str | None:
        async with self._translate("GET", key=key):
            return await self._redis.get(key)

    async def set(
        self, key: str, value: str, ttl: float | None = None, nx: bool = False
    ) -> bool:
        """
        Set value in Redis.

        Returns:
            True if written, False if NX prevented the write
        """
        px = to_millis(ttl) if ttl is not None else None
        async with self._translate("SET", key=key):
            result = await self._redis.set(key, value, px=px, nx=nx)
            return bool(result)

    async def delete(self, *keys: str) -> int:
        async with self._translate("DEL", keys=list(keys)):
            return await self._redis.delete(*keys)

    async def expire(self, key: str, ttl: float) -> bool:
        async with self._translate("PEXPIRE", key=key):
            return bool(await self._redis.pexpire(key, to_millis(ttl)))

    async def pttl(self, key: str) -> int:
        async with self._translate("PTTL", key=key):
            return await self._redis.pttl(key)

    # -------------------------------------------------------------------------
    # Hash Operations (per-entity counters)
    # -------------------------------------------------------------------------

    async def hgetall(self, name: str) -> dict[str, str]:
        async with self._translate("HGETALL", name=name):
            return await self._redis.hgetall(name)

    async def hset(self, name: str, key: str, value: str) -> int:
        async with self._translate("HSET", name=name, field=key):
            return await self._redis.hset(name, key, value)

    async def hset_many(self, name: str, mapping: dict[str, Any]) -> int:
        if not mapping:
            return 0
        async with self._translate("HSET", name=name, fields=len(mapping)):
            return await self._redis.hset(name, mapping=mapping)

    async def hincrby(self, name: str, key: str, amount: int) -> int:
        async with self._translate("HINCRBY", name=name, field=key):
            return await self._redis.hincrby(name, key, amount)

    # -------------------------------------------------------------------------
    # Atomic Composites
    # -------------------------------------------------------------------------

    async def acquire_lock(self, key: str, token: str, ttl: float) -> bool:
        """Single SET NX PX; never an exists-then-set pair."""
        async with self._translate("SET_NX", key=key):
            return bool(await self._redis.set(key, token, nx=True, px=to_millis(ttl)))

    async def release_lock(self, key: str, token: str) -> bool:
        async with self._translate("EVALSHA_RELEASE", key=key):
            return int(await self._release_script(keys=[key], args=[token])) == 1

    async def replace_hash(
        self, key: str, mapping: dict[str, Any], ttl: float | None = None
    ) -> None:
        """
        Overwrite a hash in one MULTI/EXEC transaction.

        Readers observe either the previous hash or the complete new one,
        never a partially written mapping.
        """
        async with self._translate("MULTI_REPLACE_HASH", key=key, fields=len(mapping)):
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.delete(key)
                if mapping:
                    pipe.hset(key, mapping=mapping)
                    if ttl is not None:
                        pipe.pexpire(key, to_millis(ttl))
                await pipe.execute()

    async def increment_if_ready(
        self, lock_key: str, hash_key: str, dirty_key: str, field: str, amount: int
    ) -> tuple[IncrementOutcome, int | None]:
        async with self._translate("EVALSHA_INCREMENT", key=hash_key, field=field):
            status, value = await self._increment_script(
                keys=[lock_key, hash_key, dirty_key],
                args=[field, amount, DIRTY_FLAG_VALUE],
            )
        outcome = _INCREMENT_STATUS[int(status)]
        return outcome, int(value) if outcome is IncrementOutcome.APPLIED else None

    async def increment_if_exists(
        self, hash_key: str, field: str, amount: int
    ) -> tuple[IncrementOutcome, int | None]:
        """HINCRBY only while the hash exists; an absent hash is left absent."""
        async with self._translate("EVALSHA_INCREMENT_EXISTING", key=hash_key, field=field):
            status, value = await self._increment_existing_script(
                keys=[hash_key], args=[field, amount]
            )
        outcome = _INCREMENT_STATUS[int(status)]
        return outcome, int(value) if outcome is IncrementOutcome.APPLIED else None


# =============================================================================
# LAYER 3: HEALTH MONITORING
# =============================================================================


class HealthMonitor:
    """
    Monitors Redis health and connection pool usage.

    Metrics Tracked:
    - Connection status
    - Ping latency
    - Pool size and utilization (warning above 80%)
    """

    def __init__(self, connection_manager: ConnectionManager, settings: RedisSettings):
        self._conn_mgr = connection_manager
        self._settings = settings

    async def health_check(self) -> dict[str, Any]:
        """
        Perform health check on Redis connection.

        STAGE-REDIS.HEALTH: Redis health check
        """
        health: dict[str, Any] = {
            "status": "healthy",
            "connected": self._conn_mgr.is_connected(),
            "host": self._settings.REDIS_HOST,
            "port": self._settings.REDIS_PORT,
            "pool_size": 0,
            "pool_utilization_pct": 0,
            "pool_warning": False,
            "ping_latency_ms": None,
        }

        client = self._conn_mgr.get_client()
        if not client:
            health["status"] = "unhealthy"
            health["error"] = "Client not initialized"
            return health

        try:
            start = time.perf_counter()
            await client.ping()
            health["ping_latency_ms"] = round((time.perf_counter() - start) * 1000, 2)
        except RedisError as e:
            health["status"] = "unhealthy"
            health["error"] = str(e)
            return health

        pool = self._conn_mgr.get_pool()
        if pool:
            health["pool_size"] = pool.max_connections
            in_use = len(getattr(pool, "_in_use_connections", ()))
            utilization = 100.0 * in_use / pool.max_connections
            health["pool_utilization_pct"] = round(utilization, 1)
            if utilization > 80:
                health["pool_warning"] = True
                logger.warning(
                    "Redis pool utilization high",
                    pool_utilization=utilization,
                    max_connections=pool.max_connections,
                )

        return health


# =============================================================================
# LAYER 4: PUBLIC API
# =============================================================================


class RedisClient:
    """
    Async Redis implementation of the CacheStore protocol.

    Usage:
        client = RedisClient(settings.redis)
        await client.connect()

        token = uuid.uuid4().hex
        if await client.acquire_lock("lock:counts:agent:policies", token, ttl=40):
            ...
            await client.release_lock("lock:counts:agent:policies", token)

        await client.disconnect()
    """

    def __init__(self, settings: RedisSettings | None = None):
        """
        Initialize Redis client.

        STAGE-REDIS.1: Client initialization
        """
        self._settings = settings or get_settings().redis
        self._conn_mgr = ConnectionManager(self._settings)
        self._executor: OperationExecutor | None = None
        self._health_monitor = HealthMonitor(self._conn_mgr, self._settings)

        logger.info(
            "Redis client initialized",
            stage="REDIS.1",
            host=self._settings.REDIS_HOST,
            port=self._settings.REDIS_PORT,
        )

    async def connect(self) -> None:
        """
        Establish connection to Redis and register Lua scripts.

        Raises:
            CacheConnectionError: If connection fails
        """
        client = await self._conn_mgr.connect()
        self._bind(client)

    def _bind(self, client: redis.Redis) -> None:
        self._executor = OperationExecutor(client)

    async def disconnect(self) -> None:
        """Close Redis connection and pool."""
        await self._conn_mgr.disconnect()
        self._executor = None

    async def ping(self) -> bool:
        return await self._conn_mgr.ping()

    @property
    def executor(self) -> OperationExecutor:
        if self._executor is None:
            raise CacheConnectionError(
                message="Redis client is not connected",
                details={"host": self._settings.REDIS_HOST, "port": self._settings.REDIS_PORT},
            ).with_suggestion("Await connect() before issuing commands")
        return self._executor

    # -------------------------------------------------------------------------
    # Delegate to OperationExecutor
    # -------------------------------------------------------------------------

    async def exists(self, key: str) -> bool:
        return await self.executor.exists(key)

    async def get(self, key: str) -> str | None:
        return await self.executor.get(key)

    async def set(
        self, key: str, value: str, ttl: float | None = None, nx: bool = False
    ) -> bool:
        return await self.executor.set(key, value, ttl, nx)

    async def delete(self, *keys: str) -> int:
        return await self.executor.delete(*keys)

    async def expire(self, key: str, ttl: float) -> bool:
        return await self.executor.expire(key, ttl)

    async def pttl(self, key: str) -> int:
        return await self.executor.pttl(key)

    async def hgetall(self, name: str) -> dict[str, str]:
        return await self.executor.hgetall(name)

    async def hset(self, name: str, key: str, value: str) -> int:
        return await self.executor.hset(name, key, value)

    async def hset_many(self, name: str, mapping: dict[str, Any]) -> int:
        return await self.executor.hset_many(name, mapping)

    async def hincrby(self, name: str, key: str, amount: int) -> int:
        return await self.executor.hincrby(name, key, amount)

    async def acquire_lock(self, key: str, token: str, ttl: float) -> bool:
        return await self.executor.acquire_lock(key, token, ttl)

    async def release_lock(self, key: str, token: str) -> bool:
        return await self.executor.release_lock(key, token)

    async def replace_hash(
        self, key: str, mapping: dict[str, Any], ttl: float | None = None
    ) -> None:
        await self.executor.replace_hash(key, mapping, ttl)

    async def increment_if_ready(
        self, lock_key: str, hash_key: str, dirty_key: str, field: str, amount: int
    ) -> tuple[IncrementOutcome, int | None]:
        return await self.executor.increment_if_ready(lock_key, hash_key, dirty_key, field, amount)

    async def increment_if_exists(
        self, hash_key: str, field: str, amount: int
    ) -> tuple[IncrementOutcome, int | None]:
        return await self.executor.increment_if_exists(hash_key, field, amount)

    async def health_check(self) -> dict[str, Any]:
        return await self._health_monitor.health_check()
