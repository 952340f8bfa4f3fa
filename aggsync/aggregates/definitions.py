"""
Derived Aggregate Registry

Each derived aggregate the record-keeping layer maintains is declared once
here: its cache key, the query that rebuilds it and, for counters, which
increment policy keeps it current between rebuilds.

Built-in aggregates:
    AGENT_POLICY_COUNTS      counts:agent:policies   hash, policies per active agent
    AGENT_CLAIM_COUNTS       counts:agent:claims     hash, claims per agent
    TOP_CLIENTS_BY_COVERAGE  ranking:top10_clients   scalar, top 10 clients by active coverage
"""

from dataclasses import dataclass

from aggsync.core.config.constants import IncrementPolicy
from aggsync.core.interfaces.aggregator import AggregateQuery
from aggsync.sync.keys import dirty_key_for, lock_key_for


@dataclass(frozen=True)
class HashAggregate:
    """
    Per-entity counter materialized as a hash (entity id -> count).

    ``policy`` None means the deployment default (CACHE_INCREMENT_POLICY).
    """

    name: str
    cache_key: str
    query: AggregateQuery
    policy: IncrementPolicy | None = None

    @property
    def lock_key(self) -> str:
        return lock_key_for(self.cache_key)

    @property
    def dirty_key(self) -> str:
        return dirty_key_for(self.cache_key)


@dataclass(frozen=True)
class ScalarAggregate:
    """Single serialized value (e.g. a ranked list) computed on demand."""

    name: str
    cache_key: str
    ttl: float | None = None

    @property
    def lock_key(self) -> str:
        return lock_key_for(self.cache_key)


# ============================================================================
# Built-in aggregates
# ============================================================================

AGENT_POLICY_COUNTS = HashAggregate(
    name="agent_policy_counts",
    cache_key="counts:agent:policies",
    query=AggregateQuery(
        statement=(
            "MATCH (a:Agent {active: true})-[:MANAGES]->(p:Policy) "
            "RETURN a.agent_id AS id, count(p) AS total"
        ),
    ),
)

AGENT_CLAIM_COUNTS = HashAggregate(
    name="agent_claim_counts",
    cache_key="counts:agent:claims",
    query=AggregateQuery(
        statement=(
            "MATCH (a:Agent)-[:MANAGES]->(p:Policy)-[:COVERS_CLAIM]->(c:Claim) "
            "RETURN toString(a.agent_id) AS id, count(c) AS total"
        ),
    ),
)

TOP_CLIENTS_BY_COVERAGE = ScalarAggregate(
    name="top_clients_by_coverage",
    cache_key="ranking:top10_clients",
)

HASH_AGGREGATES: dict[str, HashAggregate] = {
    agg.name: agg for agg in (AGENT_POLICY_COUNTS, AGENT_CLAIM_COUNTS)
}

SCALAR_AGGREGATES: dict[str, ScalarAggregate] = {
    agg.name: agg for agg in (TOP_CLIENTS_BY_COVERAGE,)
}
