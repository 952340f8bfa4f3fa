"""
Cache key naming.

Every derived aggregate owns exactly one population lock and one dirty flag,
both addressed by prefixing the aggregate's cache key.
"""

from aggsync.core.config.constants import REDIS_KEY_DIRTY, REDIS_KEY_LOCK


def lock_key_for(cache_key: str) -> str:
    """``counts:agent:policies`` -> ``lock:counts:agent:policies``"""
    return f"{REDIS_KEY_LOCK}:{cache_key}"


def dirty_key_for(cache_key: str) -> str:
    """``counts:agent:claims`` -> ``dirty:counts:agent:claims``"""
    return f"{REDIS_KEY_DIRTY}:{cache_key}"
