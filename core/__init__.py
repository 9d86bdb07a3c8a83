# ============================================================================
# CORE MODULE
# ============================================================================
# EPOCH: 1 - WORK DISTRIBUTION
# STATUS: Core module initialization
# PURPOSE: Export core contracts, models and errors
# LAST_REVIEWED: 15 OCT 2026
# ============================================================================

from core.contracts import (
    FeatureStatus,
    WorkerState,
    BackoffStrategy,
    DistributionPhase,
)
from core.errors import (
    DistributionError,
    DependencyValidationError,
    CyclicDependencyError,
    UnknownDependencyError,
)
from core.models import (
    FeatureDefinition,
    FeaturePriority,
    RetryPolicy,
    BatchPlan,
    ExecutionPlan,
    FeatureProgress,
    WorkerStatus,
    RunSummary,
    DistributionEvent,
    EventType,
)

__all__ = [
    # Enums
    "FeatureStatus",
    "WorkerState",
    "BackoffStrategy",
    "DistributionPhase",
    "EventType",
    # Errors
    "DistributionError",
    "DependencyValidationError",
    "CyclicDependencyError",
    "UnknownDependencyError",
    # Models
    "FeatureDefinition",
    "FeaturePriority",
    "RetryPolicy",
    "BatchPlan",
    "ExecutionPlan",
    "FeatureProgress",
    "WorkerStatus",
    "RunSummary",
    "DistributionEvent",
]
