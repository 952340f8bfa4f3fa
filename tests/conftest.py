"""
Pytest Configuration and Shared Test Fixtures

This module provides pytest configuration and reusable fixtures for all tests.
All fixtures defined here are automatically available to all test files.
"""

import os
import sys
from unittest.mock import MagicMock

import pytest

# Add project root to sys.path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from aggsync.core.config.settings import CacheSyncSettings, Settings  # noqa: E402
from aggsync.core.interfaces.aggregator import AggregateQuery  # noqa: E402
from aggsync.infrastructure.monitoring.metrics_collector import MetricsCollector  # noqa: E402
from aggsync.sync.cache_warmer import CacheWarmer  # noqa: E402
from aggsync.sync.lock_manager import LockManager  # noqa: E402
from tests.test_fixtures import (  # noqa: E402
    AggregatorTestFactory,
    CacheTestFactory,
    FakeClock,
)

# ============================================================================
# Pytest Configuration
# ============================================================================

# pytest-asyncio runs in auto mode (see pyproject.toml); async fixtures and
# tests need no extra decoration beyond the explicit asyncio markers.

# Short waits keep contention tests fast while preserving every code path
FAST_POLL_INTERVAL = 0.01
FAST_MAX_WAIT = 2.0
FAST_LOCK_TTL = 5.0


# ============================================================================
# Configuration Fixtures
# ============================================================================


@pytest.fixture
def sync_settings():
    """Cache sync tunables with fast polling for tests."""
    return CacheSyncSettings(
        CACHE_LOCK_TTL_SECONDS=FAST_LOCK_TTL,
        CACHE_LOCK_POLL_INTERVAL_SECONDS=FAST_POLL_INTERVAL,
        CACHE_LOCK_MAX_WAIT_SECONDS=FAST_MAX_WAIT,
        CACHE_PLACEHOLDER_FIELD="_placeholder",
        CACHE_PLACEHOLDER_TTL_SECONDS=300.0,
        CACHE_SCALAR_TTL_SECONDS=None,
        CACHE_INCREMENT_POLICY="blocking",
    )


@pytest.fixture
def test_settings():
    """Full application settings for the test environment."""
    return Settings(
        ENVIRONMENT="test",
        APP_NAME="Aggregate Cache Sync Test",
        APP_VERSION="1.0.0-test",
        CACHE_LOCK_TTL_SECONDS=FAST_LOCK_TTL,
        CACHE_LOCK_POLL_INTERVAL_SECONDS=FAST_POLL_INTERVAL,
        CACHE_LOCK_MAX_WAIT_SECONDS=FAST_MAX_WAIT,
        CACHE_INCREMENT_POLICY="blocking",
        LOG_LEVEL="DEBUG",
        LOG_FORMAT="console",
    )


# ============================================================================
# Mock Infrastructure Fixtures
# ============================================================================


@pytest.fixture
def mock_metrics():
    """MetricsCollector mock; record_* calls can be asserted on."""
    return MagicMock(spec=MetricsCollector)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    """In-memory CacheStore running on the real monotonic clock."""
    return CacheTestFactory.in_memory_store()


@pytest.fixture
def clocked_store(clock):
    """In-memory CacheStore whose TTLs follow the FakeClock."""
    return CacheTestFactory.in_memory_store(clock=clock)


@pytest.fixture
def aggregator():
    return AggregatorTestFactory.returning([(7, 3), (9, 1)])


@pytest.fixture
def count_query():
    return AggregateQuery(statement="MATCH (a)-[:MANAGES]->(p) RETURN a.id AS id, count(p) AS total")


@pytest.fixture
def lock_manager(store, sync_settings, mock_metrics):
    return LockManager(store, sync_settings, mock_metrics)


@pytest.fixture
def warmer(store, lock_manager, aggregator, sync_settings, mock_metrics):
    return CacheWarmer(store, lock_manager, aggregator, sync_settings, mock_metrics)
