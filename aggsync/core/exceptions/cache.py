"""
Cache-Related Exceptions

All exceptions raised by the fast cache adapter and the coordination
primitives built on it.
"""

from aggsync.core.exceptions.base import AggSyncError


class CacheError(AggSyncError):
    """Base exception for cache-related errors."""
    pass


class CacheConnectionError(CacheError):
    """
    Raised when the cache (Redis) cannot be reached.

    Common causes:
    - Redis server is down
    - Network connectivity issues
    - Incorrect host/port configuration
    """
    pass


class CacheKeyError(CacheError):
    """
    Raised when a cache key operation fails.

    Common causes:
    - Wrong type for the key (e.g. HINCRBY on a string)
    - Script error
    - Memory limit exceeded
    """
    pass


class CacheUnavailableError(CacheError):
    """
    Raised when a cache key is temporarily unavailable to the caller.

    The derived aggregate cannot be served right now; callers should
    degrade (fall back to the authoritative store or report staleness)
    rather than retry in a tight loop.
    """
    pass


class LockWaitTimeoutError(CacheUnavailableError):
    """Raised when waiting for a population lock exceeds its wait budget."""
    pass
