# ============================================================================
# BASE CONTRACTS & ENUMS
# ============================================================================
# EPOCH: 1 - WORK DISTRIBUTION
# STATUS: Foundation - Core enums shared by every component
# PURPOSE: Define status enums and backoff strategies for the distributor
# LAST_REVIEWED: 14 OCT 2026
# EXPORTS: FeatureStatus, WorkerState, BackoffStrategy, DistributionPhase
# DEPENDENCIES: enum
# ============================================================================
"""
Base contracts for the work distribution engine.

These enums cross every boundary:
- Python (scheduler, aggregator, worker pool)
- JSON (persisted progress document)
- Notifications (event payloads)

String values are the wire values; never rename them.
"""

from enum import Enum
from typing import Optional


# ============================================================================
# STATUS ENUMS
# ============================================================================

class FeatureStatus(str, Enum):
    """
    Feature lifecycle states within a run.

    State transitions:
        PENDING -> IN_PROGRESS -> COMPLETE
                               -> FAILED -> IN_PROGRESS (retry re-assign)
    """
    PENDING = "pending"              # Seeded, not yet dispatched
    IN_PROGRESS = "in-progress"      # Assigned to a worker
    COMPLETE = "complete"            # Finished successfully
    FAILED = "failed"                # Retries exhausted

    def is_terminal(self) -> bool:
        """Check if this is a terminal state."""
        return self in (FeatureStatus.COMPLETE, FeatureStatus.FAILED)

    def can_transition_to(self, new_status: "FeatureStatus") -> bool:
        """
        Validate a status transition.

        COMPLETE is final; leaving it requires an explicit reset.
        """
        if self == new_status:
            return self != FeatureStatus.COMPLETE
        allowed = {
            FeatureStatus.PENDING: {FeatureStatus.IN_PROGRESS, FeatureStatus.COMPLETE, FeatureStatus.FAILED},
            FeatureStatus.IN_PROGRESS: {FeatureStatus.COMPLETE, FeatureStatus.FAILED},
            FeatureStatus.FAILED: {FeatureStatus.IN_PROGRESS},
            FeatureStatus.COMPLETE: set(),
        }
        return new_status in allowed[self]


class WorkerState(str, Enum):
    """Worker states as seen by the aggregator."""
    IDLE = "idle"
    ACTIVE = "active"


class DistributionPhase(str, Enum):
    """Stages reported through `phase` notifications."""
    ANALYZING_DEPENDENCIES = "analyzing-dependencies"
    GENERATING_BATCHES = "generating-batches"
    PLANNING_EXECUTION = "planning-execution"
    EXECUTING = "executing"


# ============================================================================
# BACKOFF
# ============================================================================

class BackoffStrategy(str, Enum):
    """
    Retry backoff strategies.

    Each maps a retry attempt number (1-based) to a delay multiplier:
        FIXED:       1
        LINEAR:      attempt
        EXPONENTIAL: 2 ** (attempt - 1)
    """
    FIXED = "fixed"
    LINEAR = "linear"
    EXPONENTIAL = "exponential"

    def multiplier(self, attempt: int) -> float:
        """Delay multiplier for a 1-based retry attempt."""
        attempt = max(1, attempt)
        if self == BackoffStrategy.LINEAR:
            return float(attempt)
        if self == BackoffStrategy.EXPONENTIAL:
            return float(2 ** (attempt - 1))
        return 1.0

    def compute_delay(
        self,
        base_delay: float,
        attempt: int,
        max_delay: Optional[float] = None,
    ) -> float:
        """Delay in seconds before retry `attempt`, capped at `max_delay`."""
        delay = max(0.0, base_delay) * self.multiplier(attempt)
        if max_delay is not None:
            delay = min(delay, max_delay)
        return delay


__all__ = [
    "FeatureStatus",
    "WorkerState",
    "DistributionPhase",
    "BackoffStrategy",
]
