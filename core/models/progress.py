# ============================================================================
# PROGRESS MODELS
# ============================================================================
# EPOCH: 1 - WORK DISTRIBUTION
# STATUS: Core model - Runtime state per feature and per worker
# PURPOSE: Mutable state tracked by the ProgressAggregator
# LAST_REVIEWED: 15 OCT 2026
# EXPORTS: FeatureProgress, WorkerStatus, OverallProgress, WorkerSummary,
#          Timeline, ProgressSummary, DistributionProgress, ProgressDocument
# DEPENDENCIES: pydantic
# ============================================================================
"""
Progress Models

FeatureProgress tracks the runtime state of a single feature within a run.

Lifecycle:
    1. Seeded with status=PENDING, progress=0 when the run is initialized
    2. IN_PROGRESS when assigned to a worker (start_time set once)
    3. COMPLETE (progress forced to 100) or FAILED (progress kept)
    4. FAILED may go back to IN_PROGRESS on re-assignment

WorkerStatus invariant: status is ACTIVE iff current_feature is set.

ProgressDocument is the persisted JSON form of the whole aggregator.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, computed_field

from core.contracts import FeatureStatus, WorkerState


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================================
# PER-FEATURE / PER-WORKER STATE
# ============================================================================

class FeatureProgress(BaseModel):
    """Runtime state of one feature."""
    feature_id: str
    capability: Optional[str] = None
    priority: Optional[str] = None
    status: FeatureStatus = Field(default=FeatureStatus.PENDING)
    progress: int = Field(default=0, ge=0, le=100)
    worker_id: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    error: Optional[str] = None
    attempt_count: int = Field(default=0, ge=0)
    output: Any = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    model_config = {"frozen": False}

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal()

    @property
    def duration_seconds(self) -> Optional[float]:
        """Elapsed time if started (up to now while still running)."""
        if not self.start_time:
            return None
        end = self.end_time or utcnow()
        return (end - self.start_time).total_seconds()


class WorkerStatus(BaseModel):
    """Runtime state of one worker."""
    worker_id: str
    status: WorkerState = Field(default=WorkerState.IDLE)
    current_feature: Optional[str] = None
    completed_features: int = Field(default=0, ge=0)
    failed_features: int = Field(default=0, ge=0)
    total_time_seconds: float = Field(default=0.0, ge=0)
    last_seen: datetime = Field(default_factory=utcnow)

    model_config = {"frozen": False}

    @property
    def is_active(self) -> bool:
        return self.current_feature is not None

    def assign(self, feature_id: str) -> None:
        self.status = WorkerState.ACTIVE
        self.current_feature = feature_id
        self.last_seen = utcnow()

    def release(self) -> None:
        self.status = WorkerState.IDLE
        self.current_feature = None
        self.last_seen = utcnow()


# ============================================================================
# AGGREGATES
# ============================================================================

class OverallProgress(BaseModel):
    """Aggregate counters across every feature in the run."""
    total_features: int = 0
    completed_features: int = 0
    in_progress_features: int = 0
    pending_features: int = 0
    failed_features: int = 0
    percent_complete: int = Field(default=0, ge=0, le=100)
    start_time: Optional[datetime] = None
    estimated_end_time: Optional[datetime] = None
    last_updated: Optional[datetime] = None


class WorkerSummary(BaseModel):
    """Compact worker view used in summaries."""
    id: str
    status: WorkerState
    completed: int
    failed: int
    active: bool


class Timeline(BaseModel):
    started: Optional[datetime] = None
    estimated_end: Optional[datetime] = None
    duration_seconds: float = 0.0


class ProgressSummary(BaseModel):
    """Superset read convenient for reporting."""
    progress: OverallProgress
    workers: List[WorkerSummary] = Field(default_factory=list)
    timeline: Timeline = Field(default_factory=Timeline)

    # Filled in by the distributor only
    plan: Optional[Dict[str, Any]] = None


class DistributionProgress(BaseModel):
    """Full progress view exposed by the distributor."""
    overall: OverallProgress = Field(default_factory=OverallProgress)
    workers: List[WorkerStatus] = Field(default_factory=list)
    features: List[FeatureProgress] = Field(default_factory=list)

    # Plan statistics plus current_batch; None before the first run
    plan: Optional[Dict[str, Any]] = None


# ============================================================================
# PERSISTENCE
# ============================================================================

class ProgressDocument(BaseModel):
    """JSON document written by ProgressAggregator.save()."""
    version: str = "1.0"
    timestamp: datetime = Field(default_factory=utcnow)
    progress: OverallProgress
    features: List[FeatureProgress] = Field(default_factory=list)
    workers: List[WorkerStatus] = Field(default_factory=list)

    @computed_field
    @property
    def feature_count(self) -> int:
        return len(self.features)


__all__ = [
    "utcnow",
    "FeatureProgress",
    "WorkerStatus",
    "OverallProgress",
    "WorkerSummary",
    "Timeline",
    "ProgressSummary",
    "DistributionProgress",
    "ProgressDocument",
]
