"""
Aggregate Cache Sync

Keeps derived aggregates (per-entity counters, ranked lists) in Redis in
step with an authoritative store: single-flight population, conditional
increments, locked invalidation and compute-and-cache.
"""

from aggsync.aggregates import (
    AGENT_CLAIM_COUNTS,
    AGENT_POLICY_COUNTS,
    TOP_CLIENTS_BY_COVERAGE,
    AggregateSyncService,
    HashAggregate,
    ScalarAggregate,
)
from aggsync.container import CacheSyncContainer
from aggsync.core.interfaces import AggregateQuery, CallableAggregator

__version__ = "1.0.0"

__all__ = [
    "AGENT_CLAIM_COUNTS",
    "AGENT_POLICY_COUNTS",
    "TOP_CLIENTS_BY_COVERAGE",
    "AggregateQuery",
    "AggregateSyncService",
    "CacheSyncContainer",
    "CallableAggregator",
    "HashAggregate",
    "ScalarAggregate",
]
