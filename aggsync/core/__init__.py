"""
Core Module

Foundational components: configuration, logging, exceptions, interfaces
and the bounded wait combinator.
"""

from .exceptions import (
    AggregationError,
    AggSyncError,
    CacheConnectionError,
    CacheError,
    CacheKeyError,
    CacheUnavailableError,
    ConfigurationError,
    LockWaitTimeoutError,
)
from .logging import (
    clear_correlation_id,
    get_correlation_id,
    get_logger,
    log_stage,
    set_correlation_id,
    setup_logging,
)

__all__ = [
    # Exceptions
    "AggSyncError",
    "AggregationError",
    "CacheConnectionError",
    "CacheError",
    "CacheKeyError",
    "CacheUnavailableError",
    "ConfigurationError",
    "LockWaitTimeoutError",
    # Logging
    "clear_correlation_id",
    "get_correlation_id",
    "get_logger",
    "log_stage",
    "set_correlation_id",
    "setup_logging",
]
