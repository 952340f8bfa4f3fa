"""
System Constants and Enumerations

This module defines constants and enumerations shared across the cache
synchronization layer: key prefixes, placeholder values, logging stages,
increment policies and outcomes.
"""

from enum import Enum

# ============================================================================
# Stage Identifiers (for structured logging)
# ============================================================================


class Stage(str, Enum):
    """
    Coordination stages used as the ``stage`` field of every log entry.

    Format: {COMPONENT}.{STEP}
    """

    LOCK_ACQUIRE = "LOCK.ACQUIRE"
    LOCK_WAIT = "LOCK.WAIT"
    LOCK_RELEASE = "LOCK.RELEASE"
    WARM_FAST_PATH = "WARM.FAST_PATH"
    WARM_WAIT = "WARM.WAIT"
    WARM_POPULATE = "WARM.POPULATE"
    INCREMENT = "INCR.APPLY"
    INVALIDATE = "INVALIDATE.DELETE"
    COMPUTE = "COMPUTE.EXECUTE"
    REPOPULATE = "REPOPULATE.DIRTY"
    REDIS = "REDIS"


# ============================================================================
# Increment Policies and Outcomes
# ============================================================================


class IncrementPolicy(str, Enum):
    """
    How a write-triggered counter delta is reconciled with a concurrent warm.

    BLOCKING: ensure the hash is warm first; skip the delta if this caller populated it.
    NON_BLOCKING: single atomic script; never waits, marks the aggregate dirty instead.
    """

    BLOCKING = "blocking"
    NON_BLOCKING = "non_blocking"


class IncrementOutcome(str, Enum):
    """Result of a conditional increment."""

    APPLIED = "applied"
    SKIPPED_POPULATED = "skipped_populated"
    LOCKED = "locked"
    MISSING = "missing"


# ============================================================================
# Redis Key Conventions
# ============================================================================

REDIS_KEY_LOCK = "lock"
REDIS_KEY_DIRTY = "dirty"

PLACEHOLDER_VALUE = "true"
DIRTY_FLAG_VALUE = "1"
