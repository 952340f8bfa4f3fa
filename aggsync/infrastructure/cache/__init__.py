"""
Cache Module

Provides the Redis-backed CacheStore and the Lua scripts it runs.
"""

from .redis_client import RedisClient

__all__ = [
    "RedisClient",
]
