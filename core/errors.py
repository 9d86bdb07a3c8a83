# ============================================================================
# ERROR TAXONOMY
# ============================================================================
# EPOCH: 1 - WORK DISTRIBUTION
# STATUS: Foundation - Exceptions raised across the engine
# PURPOSE: Construction, submission, persistence and run-level errors
# LAST_REVIEWED: 14 OCT 2026
# EXPORTS: DistributionError and subclasses
# DEPENDENCIES: none
# ============================================================================
"""
Error taxonomy for the work distribution engine.

- Construction errors: MissingWorkerPoolError
- Submission errors: NoFeaturesProvidedError, DistributionInProgressError,
  DependencyValidationError (EmptyInputError, DuplicateFeatureError,
  UnknownDependencyError, CyclicDependencyError)
- Aggregator errors: UnknownFeatureError, InvalidTransitionError,
  NoPersistencePathError, PersistenceError
- Execution errors: WorkerUnavailableError (retryable)
- Run-level: RunFailedError (fail-fast only)
"""

from typing import TYPE_CHECKING, List, Optional

if TYPE_CHECKING:
    from core.models.run import RunSummary


class DistributionError(Exception):
    """Base exception for the work distribution engine."""
    pass


# ============================================================================
# CONSTRUCTION / SUBMISSION
# ============================================================================

class MissingWorkerPoolError(DistributionError):
    """Raised when a distributor is created without a worker pool."""
    def __init__(self):
        super().__init__("Worker pool is required")


class NoFeaturesProvidedError(DistributionError):
    """Raised when distribute_work is called with no features."""
    def __init__(self):
        super().__init__("No features provided")


class DistributionInProgressError(DistributionError):
    """Raised when a second run is started on a busy distributor."""
    def __init__(self, run_id: Optional[str] = None):
        self.run_id = run_id
        suffix = f" (run {run_id})" if run_id else ""
        super().__init__(f"Distribution already in progress{suffix}")


# ============================================================================
# GRAPH VALIDATION
# ============================================================================

class DependencyValidationError(DistributionError):
    """Base class for dependency graph validation failures."""
    def __init__(self, message: str, errors: Optional[List[str]] = None):
        self.errors = errors or [message]
        super().__init__(message)


class EmptyInputError(DependencyValidationError):
    """Raised when the feature set is empty."""
    def __init__(self):
        super().__init__("Dependency validation failed: no features to analyze")


class DuplicateFeatureError(DependencyValidationError):
    """Raised when two features share an id."""
    def __init__(self, feature_id: str):
        self.feature_id = feature_id
        super().__init__(f"Dependency validation failed: feature already exists: {feature_id}")


class UnknownDependencyError(DependencyValidationError):
    """
    Raised when a feature depends on an id outside the feature set.

    `feature_id` / `missing_id` name the first offender; `errors` and
    `missing` list every offender.
    """
    def __init__(self, missing: List[tuple]):
        self.missing = list(missing)
        self.feature_id, self.missing_id = self.missing[0]
        errors = [
            f'Feature "{feature_id}" depends on unknown feature "{dep_id}"'
            for feature_id, dep_id in self.missing
        ]
        super().__init__(
            f"Dependency validation failed: {', '.join(errors)}",
            errors=errors,
        )


class CyclicDependencyError(DependencyValidationError):
    """Raised when the dependency relation contains at least one cycle."""
    def __init__(self, cycles: List[List[str]]):
        self.cycles = [list(cycle) for cycle in cycles]
        rendered = "; ".join(" -> ".join(cycle) for cycle in self.cycles)
        super().__init__(
            f"Circular dependencies detected: {rendered}",
            errors=[" -> ".join(cycle) for cycle in self.cycles],
        )

    @property
    def members(self) -> List[str]:
        """Distinct feature ids taking part in any cycle."""
        seen: List[str] = []
        for cycle in self.cycles:
            for feature_id in cycle:
                if feature_id not in seen:
                    seen.append(feature_id)
        return seen


# ============================================================================
# PROGRESS AGGREGATOR
# ============================================================================

class UnknownFeatureError(DistributionError):
    """Raised when updating a feature that was never seeded."""
    def __init__(self, feature_id: str):
        self.feature_id = feature_id
        super().__init__(f"Unknown feature: {feature_id}")


class InvalidTransitionError(DistributionError):
    """Raised on a status transition the feature state machine forbids."""
    def __init__(self, feature_id: str, current: str, requested: str):
        self.feature_id = feature_id
        self.current = current
        self.requested = requested
        super().__init__(
            f"Feature {feature_id} cannot transition from {current} to {requested}"
        )


class NoPersistencePathError(DistributionError):
    """Raised when save/load is called without a configured path."""
    def __init__(self):
        super().__init__("No persistence path configured")


class PersistenceError(DistributionError):
    """Raised when a progress document cannot be read back."""
    pass


# ============================================================================
# EXECUTION / RUN
# ============================================================================

class WorkerUnavailableError(DistributionError):
    """Raised when no worker can be obtained for a capability in time."""
    def __init__(self, capability: str, waited_seconds: float):
        self.capability = capability
        self.waited_seconds = waited_seconds
        super().__init__(
            f"No worker available for capability '{capability}' "
            f"after {waited_seconds:.1f}s"
        )


class RunFailedError(DistributionError):
    """Raised at the end of a fail-fast run with exhausted failures."""
    def __init__(self, summary: "RunSummary"):
        self.summary = summary
        super().__init__(
            f"Distribution failed: {summary.failed} of {summary.total} features failed"
        )


__all__ = [
    "DistributionError",
    "MissingWorkerPoolError",
    "NoFeaturesProvidedError",
    "DistributionInProgressError",
    "DependencyValidationError",
    "EmptyInputError",
    "DuplicateFeatureError",
    "UnknownDependencyError",
    "CyclicDependencyError",
    "UnknownFeatureError",
    "InvalidTransitionError",
    "NoPersistencePathError",
    "PersistenceError",
    "WorkerUnavailableError",
    "RunFailedError",
]
