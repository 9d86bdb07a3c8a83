# ============================================================================
# FEATURE DEFINITION MODEL
# ============================================================================
# EPOCH: 1 - WORK DISTRIBUTION
# STATUS: Core model - Unit of distributable work
# PURPOSE: Define the immutable work item submitted to the distributor
# LAST_REVIEWED: 14 OCT 2026
# EXPORTS: FeatureDefinition, FeaturePriority
# DEPENDENCIES: pydantic, enum
# ============================================================================
"""
Feature Definition Model

A FeatureDefinition is the TEMPLATE for one unit of work:
- which capability (worker role) can execute it
- which other features must complete first
- the opaque payload handed to the executor

Key concept:
- FeatureDefinition = TEMPLATE (what to do), frozen after submission
- FeatureProgress (in progress.py) = INSTANCE (runtime state for one run)
"""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, Field, field_validator


class FeaturePriority(str, Enum):
    """Scheduling priority used when assigning a batch to workers."""
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class FeatureDefinition(BaseModel):
    """
    A unit of distributable work.

    `capability` also accepts `agent` on input for compatibility with
    feature lists produced by role-based tooling.
    """
    id: str = Field(..., min_length=1, description="Unique key within a run")
    capability: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("capability", "agent"),
        description="Kind of worker that can execute this feature",
    )
    dependencies: List[str] = Field(
        default_factory=list,
        description="Feature ids that must complete before this one starts",
    )
    payload: Any = Field(
        default=None,
        description="Opaque data passed to the executor",
    )
    priority: FeaturePriority = Field(default=FeaturePriority.MEDIUM)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    # Per-feature overrides of distributor policy
    max_retries: Optional[int] = Field(default=None, ge=0)
    continue_on_error: Optional[bool] = None
    timeout_seconds: Optional[float] = Field(default=None, gt=0)

    model_config = {"frozen": True}

    @field_validator("dependencies", mode="before")
    @classmethod
    def normalize_dependencies(cls, v):
        """Accept a single id; drop duplicates while keeping order."""
        if v is None:
            return []
        if isinstance(v, str):
            v = [v]
        ordered: List[str] = []
        for dep in v:
            if dep not in ordered:
                ordered.append(dep)
        return ordered

    @property
    def has_dependencies(self) -> bool:
        return bool(self.dependencies)


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = ["FeatureDefinition", "FeaturePriority"]
