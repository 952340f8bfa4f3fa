from aggsync.core.resilience.backoff import poll_until

__all__ = ["poll_until"]
