"""
Aggregation Exceptions

Errors surfaced when the authoritative aggregation store fails to answer
a population or compute request.
"""

from aggsync.core.exceptions.base import AggSyncError


class AggregationError(AggSyncError):
    """
    Raised when an authoritative aggregation query or compute function fails.

    The population that triggered it is aborted: the lock is released and
    the cache key is left ABSENT, so the next reader retries from scratch.
    """
    pass
