"""
Base Exception Class

This module contains the base exception class that every cache
synchronization error inherits from. Specialized exceptions live in their
themed modules (cache.py, aggregation.py).
"""

from typing import Any


class AggSyncError(Exception):
    """
    Base exception for all cache synchronization errors.

    Attributes:
        message: Error message
        correlation_id: Correlation ID of the operation (if available)
        details: Additional error details (dict)

    Example:
        raise LockWaitTimeoutError(
            "Timed out waiting for population lock",
            details={"lock_key": "lock:counts:agent:policies", "max_wait": 45.0},
        )
    """

    def __init__(
        self, message: str, correlation_id: str | None = None, details: dict[str, Any] | None = None
    ):
        self.message = message
        self.correlation_id = correlation_id
        self.details = (details or {}).copy()
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """
        Convert exception to dictionary for logging/API responses.

        Returns:
            Dict with error_type, message, correlation_id, and details
        """
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "correlation_id": self.correlation_id,
            "details": self.details,
        }

    def with_suggestion(self, suggestion: str) -> "AggSyncError":
        """Add a suggestion to help operators fix the error. Returns self."""
        self.details["suggestion"] = suggestion
        return self

    def with_context(self, **context) -> "AggSyncError":
        """Add additional context to the error details. Returns self."""
        self.details.update(context)
        return self

    def __repr__(self) -> str:
        details_str = f", details={self.details}" if self.details else ""
        correlation_str = (
            f", correlation_id='{self.correlation_id}'" if self.correlation_id else ""
        )
        return f"{self.__class__.__name__}(message='{self.message}'{correlation_str}{details_str})"

    @classmethod
    def from_exception(
        cls,
        exc: Exception,
        message: str | None = None,
        correlation_id: str | None = None,
        **details
    ) -> "AggSyncError":
        """
        Create an error of this class from another exception.

        Useful for wrapping driver or aggregator exceptions with context.

        Example:
            >>> try:
            ...     rows = await aggregator.aggregate(query)
            ... except Exception as e:
            ...     raise AggregationError.from_exception(e, cache_key=cache_key) from e
        """
        error_message = message or str(exc)
        error_details = {
            "original_error": exc.__class__.__name__,
            "original_message": str(exc),
            **details
        }
        return cls(error_message, correlation_id=correlation_id, details=error_details)


class ConfigurationError(AggSyncError):
    """Raised when configuration is invalid or missing."""
    pass
