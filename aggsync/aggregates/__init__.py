from aggsync.aggregates.definitions import (
    AGENT_CLAIM_COUNTS,
    AGENT_POLICY_COUNTS,
    HASH_AGGREGATES,
    SCALAR_AGGREGATES,
    TOP_CLIENTS_BY_COVERAGE,
    HashAggregate,
    ScalarAggregate,
)
from aggsync.aggregates.service import AggregateSyncService

__all__ = [
    "AGENT_CLAIM_COUNTS",
    "AGENT_POLICY_COUNTS",
    "HASH_AGGREGATES",
    "SCALAR_AGGREGATES",
    "TOP_CLIENTS_BY_COVERAGE",
    "AggregateSyncService",
    "HashAggregate",
    "ScalarAggregate",
]
