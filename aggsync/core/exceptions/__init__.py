"""
Exception Module

Structured exception hierarchy for the cache synchronization layer.

Module Structure:
-----------------
- **base.py**: AggSyncError base class + ConfigurationError
- **cache.py**: Cache adapter and lock-wait exceptions
- **aggregation.py**: Authoritative aggregation failures

Usage:
------
```python
from aggsync.core.exceptions import CacheError, LockWaitTimeoutError
```
"""

from aggsync.core.exceptions.aggregation import AggregationError
from aggsync.core.exceptions.base import AggSyncError, ConfigurationError
from aggsync.core.exceptions.cache import (
    CacheConnectionError,
    CacheError,
    CacheKeyError,
    CacheUnavailableError,
    LockWaitTimeoutError,
)

__all__ = [
    # Base
    "AggSyncError",
    "ConfigurationError",
    # Cache
    "CacheError",
    "CacheConnectionError",
    "CacheKeyError",
    "CacheUnavailableError",
    "LockWaitTimeoutError",
    # Aggregation
    "AggregationError",
]
