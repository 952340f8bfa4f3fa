from aggsync.core.interfaces.aggregator import (
    AggregateQuery,
    AggregateRow,
    AuthoritativeAggregator,
    CallableAggregator,
)
from aggsync.core.interfaces.cache import CacheStore

__all__ = [
    "AggregateQuery",
    "AggregateRow",
    "AuthoritativeAggregator",
    "CacheStore",
    "CallableAggregator",
]
