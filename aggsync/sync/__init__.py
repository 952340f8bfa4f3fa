"""
Cache Synchronization Primitives

- **lock_manager.py**: TTL-bound population locks
- **cache_warmer.py**: single-flight hash population
- **increment.py**: blocking / non-blocking conditional increments
- **invalidator.py**: invalidation under the population lock
- **compute.py**: single-flight compute-and-cache for scalar values
- **repopulator.py**: dirty-flag reconciliation
"""

from aggsync.sync.cache_warmer import CacheWarmer, WarmResult
from aggsync.sync.compute import ComputeAndCache
from aggsync.sync.increment import (
    BlockingIncrementCoordinator,
    IncrementCoordinator,
    IncrementResult,
    NonBlockingIncrementCoordinator,
    build_increment_coordinator,
    clear_dirty,
    is_dirty,
    mark_dirty,
)
from aggsync.sync.invalidator import CacheInvalidator
from aggsync.sync.keys import dirty_key_for, lock_key_for
from aggsync.sync.lock_manager import LockAcquisition, LockManager
from aggsync.sync.repopulator import DirtyRepopulator

__all__ = [
    "BlockingIncrementCoordinator",
    "CacheInvalidator",
    "CacheWarmer",
    "ComputeAndCache",
    "DirtyRepopulator",
    "IncrementCoordinator",
    "IncrementResult",
    "LockAcquisition",
    "LockManager",
    "NonBlockingIncrementCoordinator",
    "WarmResult",
    "build_increment_coordinator",
    "clear_dirty",
    "dirty_key_for",
    "is_dirty",
    "lock_key_for",
    "mark_dirty",
]
