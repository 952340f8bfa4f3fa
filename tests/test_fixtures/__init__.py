"""
Test Fixtures Package

Shared test utilities and helpers for consistent testing across all modules.
"""

from .aggregator_factory import AggregatorTestFactory, StubAggregator
from .cache_factory import CacheTestFactory, FakeClock, InMemoryCacheStore

__all__ = [
    "AggregatorTestFactory",
    "CacheTestFactory",
    "FakeClock",
    "InMemoryCacheStore",
    "StubAggregator",
]
