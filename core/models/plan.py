# ============================================================================
# PLAN MODELS
# ============================================================================
# EPOCH: 1 - WORK DISTRIBUTION
# STATUS: Core model - Batches and worker assignments
# PURPOSE: Output of BatchPlanner and ExecutionPlanner
# LAST_REVIEWED: 15 OCT 2026
# EXPORTS: Batch, BatchPlan, Assignment, PlannedBatch, WorkerUtilization,
#          ExecutionPlan
# DEPENDENCIES: pydantic
# ============================================================================
"""
Plan Models

Two layers:
- BatchPlan: topological layering only (which features may run together)
- ExecutionPlan: a BatchPlan with features assigned to concrete workers,
  resource estimates and per-worker utilization

Both are computed once per run and never mutated afterwards
(ExecutionPlanner.optimize_plan returns a new plan).
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


# ============================================================================
# BATCH PLAN
# ============================================================================

class Batch(BaseModel):
    """Features with no dependency edges between them."""
    batch_number: int = Field(..., ge=1, description="1-based position in the plan")
    feature_ids: List[str] = Field(default_factory=list)

    model_config = {"frozen": True}

    @property
    def size(self) -> int:
        return len(self.feature_ids)


class BatchPlan(BaseModel):
    """Ordered batches; batch N depends only on batches before it."""
    batches: List[Batch] = Field(default_factory=list)

    model_config = {"frozen": True}

    @property
    def total_batches(self) -> int:
        return len(self.batches)

    @property
    def batch_sizes(self) -> List[int]:
        return [batch.size for batch in self.batches]

    @property
    def total_features(self) -> int:
        return sum(self.batch_sizes)

    @property
    def max_parallelism(self) -> int:
        return max(self.batch_sizes, default=0)

    def batch_of(self, feature_id: str) -> Optional[int]:
        """Batch number containing a feature, or None."""
        for batch in self.batches:
            if feature_id in batch.feature_ids:
                return batch.batch_number
        return None

    def statistics(self) -> Dict[str, Any]:
        return {
            "total_batches": self.total_batches,
            "total_features": self.total_features,
            "batch_sizes": self.batch_sizes,
            "max_parallelism": self.max_parallelism,
        }


# ============================================================================
# EXECUTION PLAN
# ============================================================================

class Assignment(BaseModel):
    """One feature planned onto one worker."""
    feature_id: str
    worker_id: Optional[str] = Field(
        default=None,
        description="None when no compatible worker was found at planning time",
    )
    capability: str
    priority: str = "medium"
    estimated_seconds: float = Field(default=0.0, ge=0)
    estimated_memory_mb: int = Field(default=0, ge=0)
    estimated_cpu: float = Field(default=0.0, ge=0)


class PlannedBatch(BaseModel):
    """A batch with its worker assignments and time window."""
    batch_number: int = Field(..., ge=1)
    feature_ids: List[str] = Field(default_factory=list)
    assignments: List[Assignment] = Field(default_factory=list)
    estimated_seconds: float = 0.0
    start_offset_seconds: float = 0.0
    end_offset_seconds: float = 0.0

    def assignment_for(self, feature_id: str) -> Optional[Assignment]:
        for assignment in self.assignments:
            if assignment.feature_id == feature_id:
                return assignment
        return None


class WorkerUtilization(BaseModel):
    """Planned load for one worker across the whole run."""
    worker_id: str
    assigned_features: int = 0
    estimated_seconds: float = 0.0
    current_load: int = 0


class ExecutionPlan(BaseModel):
    """Complete plan consumed by the WorkDistributor."""
    batches: List[PlannedBatch] = Field(default_factory=list)
    worker_utilization: Dict[str, WorkerUtilization] = Field(default_factory=dict)
    total_features: int = 0
    total_estimated_seconds: float = 0.0
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def total_batches(self) -> int:
        return len(self.batches)

    @property
    def worker_ids(self) -> List[str]:
        return list(self.worker_utilization.keys())

    def assignment_for(self, feature_id: str) -> Optional[Assignment]:
        for batch in self.batches:
            assignment = batch.assignment_for(feature_id)
            if assignment is not None:
                return assignment
        return None

    def statistics(self) -> Dict[str, Any]:
        """Plan statistics for reporting."""
        batch_times = [b.estimated_seconds for b in self.batches]
        total = self.total_estimated_seconds
        worker_stats = {}
        for worker_id, util in self.worker_utilization.items():
            worker_stats[worker_id] = {
                "features": util.assigned_features,
                "estimated_seconds": util.estimated_seconds,
                "utilization_percent": (util.estimated_seconds / total * 100) if total else 0.0,
            }
        return {
            "total_batches": self.total_batches,
            "total_features": self.total_features,
            "total_estimated_seconds": total,
            "avg_batch_seconds": (sum(batch_times) / len(batch_times)) if batch_times else 0.0,
            "max_batch_seconds": max(batch_times, default=0.0),
            "worker_stats": worker_stats,
        }


__all__ = [
    "Batch",
    "BatchPlan",
    "Assignment",
    "PlannedBatch",
    "WorkerUtilization",
    "ExecutionPlan",
]
