"""
Configuration Module

- **settings.py**: Pydantic-based configuration with environment variable loading
- **constants.py**: Key prefixes, enums and placeholder values

Usage:
------
```python
from aggsync.core.config import get_settings

settings = get_settings()
lock_ttl = settings.cache_sync.CACHE_LOCK_TTL_SECONDS
```
"""

from aggsync.core.config.constants import (
    DIRTY_FLAG_VALUE,
    PLACEHOLDER_VALUE,
    REDIS_KEY_DIRTY,
    REDIS_KEY_LOCK,
    IncrementOutcome,
    IncrementPolicy,
    Stage,
)
from aggsync.core.config.settings import (
    CacheSyncSettings,
    Settings,
    get_settings,
    reload_settings,
)

__all__ = [
    # Settings
    "Settings",
    "CacheSyncSettings",
    "get_settings",
    "reload_settings",
    # Enums
    "Stage",
    "IncrementPolicy",
    "IncrementOutcome",
    # Keys
    "REDIS_KEY_LOCK",
    "REDIS_KEY_DIRTY",
    "PLACEHOLDER_VALUE",
    "DIRTY_FLAG_VALUE",
]
