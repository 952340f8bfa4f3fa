"""
Authoritative Aggregator Protocol

The durable store of record is an external collaborator. The synchronization
layer only needs one capability from it: given a query description, return
the current (id, total) pairs of a per-entity aggregate.
"""

from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

# (id, total) pair, or a mapping keyed by the query's id_field / total_field
AggregateRow = tuple[Any, int] | Mapping[str, Any]


@dataclass(frozen=True)
class AggregateQuery:
    """
    Description of an aggregation against the store of record.

    Attributes:
        statement: Query text understood by the aggregator (e.g. Cypher, SQL)
        id_field: Name of the column holding the entity id
        total_field: Name of the column holding the numeric total
        parameters: Bound parameters for the statement
    """

    statement: str
    id_field: str = "id"
    total_field: str = "total"
    parameters: Mapping[str, Any] = field(default_factory=dict)


@runtime_checkable
class AuthoritativeAggregator(Protocol):
    """Source of truth for derived aggregates."""

    async def aggregate(self, query: AggregateQuery) -> Sequence[AggregateRow]:
        """
        Run the aggregation and return (id, total) pairs.

        Order is not significant. An empty sequence means "computed and empty".
        """
        ...


class CallableAggregator:
    """
    Adapts a plain coroutine function to the AuthoritativeAggregator protocol.

    The record-keeping layer usually owns its own database session handling;
    this lets it hand that logic to the synchronization layer unchanged.
    """

    def __init__(self, fn: Callable[[AggregateQuery], Awaitable[Sequence[AggregateRow]]]):
        self._fn = fn

    async def aggregate(self, query: AggregateQuery) -> Sequence[AggregateRow]:
        return await self._fn(query)
