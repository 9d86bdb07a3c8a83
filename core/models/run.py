# ============================================================================
# RUN SUMMARY MODEL
# ============================================================================
# EPOCH: 1 - WORK DISTRIBUTION
# STATUS: Core model - Result of one distribution run
# PURPOSE: Structured result returned by WorkDistributor.distribute_work
# LAST_REVIEWED: 15 OCT 2026
# EXPORTS: FeatureOutcome, RunSummary
# DEPENDENCIES: pydantic
# ============================================================================
"""
Run Summary

A run that ends with failed features still returns a RunSummary, so callers
can tell "engine malfunctioned" (exception) from "some work failed"
(failed > 0).

Invariant: successful + failed + skipped == total.
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, computed_field


class FeatureOutcome(BaseModel):
    """Terminal result for one feature."""
    feature_id: str
    success: bool
    attempts: int = 0
    worker_id: Optional[str] = None
    output: Any = None
    error: Optional[str] = None
    duration_seconds: Optional[float] = None
    skipped: bool = False
    # Skipped because a dependency failed (always also skipped)
    blocked: bool = False

    @property
    def retried(self) -> bool:
        return self.attempts > 1


class RunSummary(BaseModel):
    """
    Counters and per-feature outcomes for a finished run.

    Dependents of a failed feature count as `skipped` (and `blocked`) here
    because they never ran, while the progress aggregator records them as
    failed. So `progress.failed_features == summary.failed + summary.blocked`.
    """
    run_id: str
    total: int = 0
    successful: int = 0
    failed: int = 0
    skipped: int = 0
    blocked: int = Field(default=0, description="Skipped because a dependency failed")
    retried: int = 0
    total_batches: int = 0
    aborted: bool = Field(default=False, description="Stopped early after an unrecoverable failure")
    stopped: bool = Field(default=False, description="Stopped by an explicit stop() request")
    duration_seconds: float = 0.0
    features: Dict[str, FeatureOutcome] = Field(default_factory=dict)

    @computed_field
    @property
    def success(self) -> bool:
        return self.failed == 0 and self.skipped == 0

    def to_event_data(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "total": self.total,
            "successful": self.successful,
            "failed": self.failed,
            "skipped": self.skipped,
            "blocked": self.blocked,
            "duration_seconds": self.duration_seconds,
        }


__all__ = ["FeatureOutcome", "RunSummary"]
