# ============================================================================
# MODELS MODULE
# ============================================================================
# EPOCH: 1 - WORK DISTRIBUTION
# STATUS: Model exports
# PURPOSE: Central export point for all Pydantic models
# LAST_REVIEWED: 15 OCT 2026
# ============================================================================
"""
Models Module - Central Export Point

All Pydantic models for the work distribution engine.

Template vs instance:
    - FeatureDefinition is submitted once and never mutated
    - FeatureProgress / WorkerStatus are the mutable runtime state
"""

from core.models.feature import FeatureDefinition, FeaturePriority
from core.models.retry import RetryPolicy
from core.models.plan import (
    Batch,
    BatchPlan,
    Assignment,
    PlannedBatch,
    WorkerUtilization,
    ExecutionPlan,
)
from core.models.progress import (
    FeatureProgress,
    WorkerStatus,
    OverallProgress,
    WorkerSummary,
    Timeline,
    ProgressSummary,
    DistributionProgress,
    ProgressDocument,
)
from core.models.events import DistributionEvent, EventType
from core.models.run import FeatureOutcome, RunSummary

__all__ = [
    # Feature
    "FeatureDefinition",
    "FeaturePriority",
    # Retry
    "RetryPolicy",
    # Plan
    "Batch",
    "BatchPlan",
    "Assignment",
    "PlannedBatch",
    "WorkerUtilization",
    "ExecutionPlan",
    # Progress
    "FeatureProgress",
    "WorkerStatus",
    "OverallProgress",
    "WorkerSummary",
    "Timeline",
    "ProgressSummary",
    "DistributionProgress",
    "ProgressDocument",
    # Events
    "DistributionEvent",
    "EventType",
    # Run
    "FeatureOutcome",
    "RunSummary",
]
