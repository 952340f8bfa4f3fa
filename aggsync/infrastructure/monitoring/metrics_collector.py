"""
Metrics Collector with Prometheus Integration

This module records how the cache synchronization layer behaves under load:
- Lock acquisitions and contention
- Lock wait durations (how long readers sat behind a populator)
- Warm-path outcomes (fast hit, waited, populated)
- Population latency against the authoritative store
- Increment outcomes per aggregate
- Invalidations and compute-and-cache runs
- Errors by type and stage

Architectural Decision: prometheus-client for industry-standard metrics
- Compatible with Grafana dashboards
- Histogram buckets for wait and population latency percentiles
- Metrics are process-global; the collector is a thin recording facade
"""

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    Counter,
    Histogram,
    Info,
    generate_latest,
)

from aggsync.core.config.settings import Settings, get_settings
from aggsync.core.logging.logger import get_logger

logger = get_logger(__name__)


# ============================================================================
# Metric Definitions
# ============================================================================

# Lock metrics
LOCK_ACQUISITIONS = Counter(
    'aggsync_lock_acquisitions_total',
    'Population lock acquisition attempts',
    ['lock_key', 'outcome']  # acquired, contended
)

LOCK_RELEASES = Counter(
    'aggsync_lock_releases_total',
    'Population lock releases',
    ['lock_key', 'outcome']  # released, not_owner
)

LOCK_WAIT_DURATION = Histogram(
    'aggsync_lock_wait_seconds',
    'Time spent waiting behind another holder of a population lock',
    ['operation'],
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0)
)

LOCK_WAIT_TIMEOUTS = Counter(
    'aggsync_lock_wait_timeouts_total',
    'Lock waits that exhausted their budget',
    ['operation']
)

# Warm-path metrics
WARM_REQUESTS = Counter(
    'aggsync_warm_requests_total',
    'ensure_warm calls by outcome',
    ['cache_key', 'outcome']  # hit, waited, populated
)

POPULATION_DURATION = Histogram(
    'aggsync_population_duration_seconds',
    'Authoritative aggregation + cache write duration',
    ['cache_key'],
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0)
)

POPULATED_ENTRIES = Histogram(
    'aggsync_populated_entries',
    'Entries written per population',
    ['cache_key'],
    buckets=(0, 1, 10, 100, 1000, 10000, 100000)
)

# Write-path metrics
INCREMENTS = Counter(
    'aggsync_increments_total',
    'Increment attempts by policy and outcome',
    ['cache_key', 'policy', 'outcome']  # applied, skipped_populated, locked, missing
)

INVALIDATIONS = Counter(
    'aggsync_invalidations_total',
    'Invalidations by outcome',
    ['cache_key', 'outcome']  # deleted, absent
)

COMPUTES = Counter(
    'aggsync_computes_total',
    'compute_and_cache calls by outcome',
    ['cache_key', 'outcome']  # hit, waited, computed
)

REPOPULATIONS = Counter(
    'aggsync_repopulations_total',
    'Dirty-flag repopulation runs by outcome',
    ['cache_key', 'outcome']  # repopulated, clean
)

# Error metrics
ERRORS = Counter(
    'aggsync_errors_total',
    'Total errors by type',
    ['error_type', 'stage']
)

# App info
APP_INFO = Info(
    'aggsync_app',
    'Application information'
)


class MetricsCollector:
    """
    Centralized metrics collector.

    STAGE-M: Metrics collection

    Recording is a no-op when ``METRICS_ENABLED`` is false so callers never
    need to branch on it.

    Usage:
        metrics = MetricsCollector()

        metrics.record_lock_acquisition("lock:counts:agent:policies", acquired=True)
        metrics.record_increment("counts:agent:policies", "blocking", "applied")

        output = metrics.get_prometheus_metrics()
    """

    def __init__(self, settings: Settings | None = None):
        """Initialize metrics collector."""
        self.settings = settings or get_settings()
        self.enabled = self.settings.app.METRICS_ENABLED

        APP_INFO.info({
            'version': self.settings.app.APP_VERSION,
            'environment': self.settings.app.ENVIRONMENT,
            'app_name': self.settings.app.APP_NAME
        })

        logger.info("Metrics collector initialized", stage="M.0", enabled=self.enabled)

    # =========================================================================
    # Lock Metrics
    # =========================================================================

    def record_lock_acquisition(self, lock_key: str, acquired: bool) -> None:
        """Record a single acquisition attempt."""
        if self.enabled:
            outcome = "acquired" if acquired else "contended"
            LOCK_ACQUISITIONS.labels(lock_key=lock_key, outcome=outcome).inc()

    def record_lock_release(self, lock_key: str, released: bool) -> None:
        if self.enabled:
            outcome = "released" if released else "not_owner"
            LOCK_RELEASES.labels(lock_key=lock_key, outcome=outcome).inc()

    def record_lock_wait(self, operation: str, duration_seconds: float) -> None:
        if self.enabled:
            LOCK_WAIT_DURATION.labels(operation=operation).observe(duration_seconds)

    def record_lock_wait_timeout(self, operation: str) -> None:
        if self.enabled:
            LOCK_WAIT_TIMEOUTS.labels(operation=operation).inc()

    # =========================================================================
    # Warm-path Metrics
    # =========================================================================

    def record_warm(self, cache_key: str, outcome: str) -> None:
        """Record an ensure_warm outcome (hit, waited, populated)."""
        if self.enabled:
            WARM_REQUESTS.labels(cache_key=cache_key, outcome=outcome).inc()

    def record_population(self, cache_key: str, duration_seconds: float, entries: int) -> None:
        """Record a completed population."""
        if self.enabled:
            POPULATION_DURATION.labels(cache_key=cache_key).observe(duration_seconds)
            POPULATED_ENTRIES.labels(cache_key=cache_key).observe(entries)

    # =========================================================================
    # Write-path Metrics
    # =========================================================================

    def record_increment(self, cache_key: str, policy: str, outcome: str) -> None:
        if self.enabled:
            INCREMENTS.labels(cache_key=cache_key, policy=policy, outcome=outcome).inc()

    def record_invalidation(self, cache_key: str, deleted: bool) -> None:
        if self.enabled:
            outcome = "deleted" if deleted else "absent"
            INVALIDATIONS.labels(cache_key=cache_key, outcome=outcome).inc()

    def record_compute(self, cache_key: str, outcome: str) -> None:
        if self.enabled:
            COMPUTES.labels(cache_key=cache_key, outcome=outcome).inc()

    def record_repopulation(self, cache_key: str, outcome: str) -> None:
        if self.enabled:
            REPOPULATIONS.labels(cache_key=cache_key, outcome=outcome).inc()

    # =========================================================================
    # Error Metrics
    # =========================================================================

    def record_error(self, error_type: str, stage: str) -> None:
        """Record error."""
        if self.enabled:
            ERRORS.labels(error_type=error_type, stage=stage).inc()

    # =========================================================================
    # Export
    # =========================================================================

    def get_prometheus_metrics(self) -> bytes:
        """
        Get Prometheus metrics output.

        Returns:
            bytes: Prometheus text format metrics
        """
        return generate_latest(REGISTRY)

    def get_content_type(self) -> str:
        """Get Prometheus content type."""
        return CONTENT_TYPE_LATEST


# Global metrics collector
_metrics: MetricsCollector | None = None


def get_metrics_collector() -> MetricsCollector:
    """Get global metrics collector."""
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    return _metrics
