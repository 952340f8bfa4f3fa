"""
Cache Store Protocol

This module defines the protocol every fast-cache adapter implements.
The coordination primitives (locks, warmer, increments, invalidation,
compute-and-cache) depend only on this protocol, so the production Redis
client and in-memory test doubles are interchangeable.

Architectural Decision: Protocol-based abstraction
- Components receive the store as an explicit collaborator
- Facilitates testing with in-memory implementations
- Atomic composites (lock acquire/release, hash replace, guarded
  increment) are part of the contract, not assembled by callers
"""

from typing import Any, Protocol, runtime_checkable

from aggsync.core.config.constants import IncrementOutcome


@runtime_checkable
class CacheStore(Protocol):
    """
    Protocol defining the fast key-value cache used for derived aggregates.

    Implementations:
    - RedisClient: Production Redis-backed store
    - InMemoryCacheStore (tests): deterministic store with a controllable clock

    TTLs are expressed in seconds and may be fractional.
    """

    async def connect(self) -> None:
        """
        Establish connection to the cache backend.

        Raises:
            CacheConnectionError: If connection fails
        """
        ...

    async def disconnect(self) -> None:
        """Close connection to the cache backend."""
        ...

    async def ping(self) -> bool:
        """Return True if the backend answers."""
        ...

    # Scalar operations
    async def exists(self, key: str) -> bool:
        """Return True if the key exists."""
        ...

    async def get(self, key: str) -> str | None:
        """Get a scalar value, or None if absent."""
        ...

    async def set(
        self, key: str, value: str, ttl: float | None = None, nx: bool = False
    ) -> bool:
        """
        Set a scalar value.

        Args:
            key: Cache key
            value: Value to store
            ttl: Time-to-live in seconds (optional)
            nx: Only set if key doesn't exist

        Returns:
            bool: True if the value was written
        """
        ...

    async def delete(self, *keys: str) -> int:
        """Delete keys, returning the number removed."""
        ...

    async def expire(self, key: str, ttl: float) -> bool:
        """Set TTL on a key. Returns False if the key does not exist."""
        ...

    async def pttl(self, key: str) -> int:
        """Remaining TTL in milliseconds, -1 if no TTL, -2 if the key doesn't exist."""
        ...

    # Hash operations
    async def hgetall(self, name: str) -> dict[str, str]:
        """Get all hash fields (empty dict when absent)."""
        ...

    async def hset(self, name: str, key: str, value: str) -> int:
        """Set one hash field."""
        ...

    async def hset_many(self, name: str, mapping: dict[str, Any]) -> int:
        """Set several hash fields in one command."""
        ...

    async def hincrby(self, name: str, key: str, amount: int) -> int:
        """Increment a hash field, returning the new value."""
        ...

    # Atomic composites
    async def acquire_lock(self, key: str, token: str, ttl: float) -> bool:
        """SET key token NX with expiry. True if the caller now owns the lock."""
        ...

    async def release_lock(self, key: str, token: str) -> bool:
        """Delete key only if it still holds token. True if deleted."""
        ...

    async def replace_hash(
        self, key: str, mapping: dict[str, Any], ttl: float | None = None
    ) -> None:
        """Atomically delete key and write mapping (with optional expiry) as one batch."""
        ...

    async def increment_if_ready(
        self, lock_key: str, hash_key: str, dirty_key: str, field: str, amount: int
    ) -> tuple[IncrementOutcome, int | None]:
        """
        Guarded increment in one atomic step.

        LOCKED if lock_key exists, MISSING if the field is absent (both set
        dirty_key); otherwise APPLIED with the new value.
        """
        ...

    async def increment_if_exists(
        self, hash_key: str, field: str, amount: int
    ) -> tuple[IncrementOutcome, int | None]:
        """
        HINCRBY in one atomic step, only if hash_key exists.

        MISSING (and no write) if the hash is absent; otherwise APPLIED with
        the new value.
        """
        ...

    async def health_check(self) -> dict[str, Any]:
        """Perform health check, returning status and metrics."""
        ...
