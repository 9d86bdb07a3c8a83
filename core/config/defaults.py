# ============================================================================
# CONFIGURATION DEFAULTS
# ============================================================================
# EPOCH: 1 - WORK DISTRIBUTION
# STATUS: Core - Default configuration values
# PURPOSE: Centralized defaults for retries, distribution, progress, planning
# CREATED: 14 OCT 2026
# ============================================================================
"""
Configuration Defaults

Provides sensible defaults for the distribution engine.
These can be overridden via environment variables or constructor arguments
(constructor arguments always win).

Design:
- Immutable dataclasses for defaults
- Environment variable overrides
- Type-safe access
"""

import os
from dataclasses import dataclass, field
from typing import Dict, Optional


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_optional(name: str) -> Optional[str]:
    value = os.getenv(name, "").strip()
    return value or None


@dataclass(frozen=True)
class RetryDefaults:
    """
    Defaults for retrying failed features.

    A feature runs at most max_retries + 1 times.
    """
    max_retries: int = 3
    retry_delay_seconds: float = 5.0
    backoff: str = "fixed"  # fixed | linear | exponential
    max_delay_seconds: float = 300.0

    @classmethod
    def from_env(cls) -> "RetryDefaults":
        """Create from environment variables."""
        return cls(
            max_retries=int(os.getenv("DISTRIBUTOR_MAX_RETRIES", 3)),
            retry_delay_seconds=float(os.getenv("DISTRIBUTOR_RETRY_DELAY_SEC", 5.0)),
            backoff=os.getenv("DISTRIBUTOR_BACKOFF", "fixed").lower(),
            max_delay_seconds=float(os.getenv("DISTRIBUTOR_MAX_RETRY_DELAY_SEC", 300.0)),
        )


@dataclass(frozen=True)
class DistributorDefaults:
    """
    Defaults for the WorkDistributor run loop.

    Controls failure policy and worker acquisition.
    """
    continue_on_error: bool = True
    fail_fast: bool = False

    # Worker acquisition
    worker_poll_interval_seconds: float = 0.5
    worker_wait_timeout_seconds: float = 300.0

    # Progress file (None disables persistence)
    progress_path: Optional[str] = None

    @classmethod
    def from_env(cls) -> "DistributorDefaults":
        """Create from environment variables."""
        return cls(
            continue_on_error=_env_bool("DISTRIBUTOR_CONTINUE_ON_ERROR", True),
            fail_fast=_env_bool("DISTRIBUTOR_FAIL_FAST", False),
            worker_poll_interval_seconds=float(os.getenv("DISTRIBUTOR_WORKER_POLL_SEC", 0.5)),
            worker_wait_timeout_seconds=float(os.getenv("DISTRIBUTOR_WORKER_WAIT_SEC", 300.0)),
            progress_path=_env_optional("PROGRESS_PATH"),
        )


@dataclass(frozen=True)
class ProgressDefaults:
    """Defaults for the ProgressAggregator."""
    auto_save: bool = True
    save_interval_seconds: float = 1.0
    persistence_version: str = "1.0"

    @classmethod
    def from_env(cls) -> "ProgressDefaults":
        """Create from environment variables."""
        return cls(
            auto_save=_env_bool("PROGRESS_AUTOSAVE", True),
            save_interval_seconds=float(os.getenv("PROGRESS_SAVE_INTERVAL_SEC", 1.0)),
        )


@dataclass(frozen=True)
class ResourceEstimate:
    """Expected cost of one feature for a capability."""
    seconds: float = 300.0
    memory_mb: int = 512
    cpu: float = 1.0


@dataclass(frozen=True)
class PlannerDefaults:
    """
    Defaults for the ExecutionPlanner.

    Per-capability estimates and priority handling.
    """
    resource_estimates: Dict[str, ResourceEstimate] = field(default_factory=lambda: {
        "backend": ResourceEstimate(seconds=300, memory_mb=512),       # 5 min
        "frontend": ResourceEstimate(seconds=240, memory_mb=768),      # 4 min
        "tester": ResourceEstimate(seconds=180, memory_mb=256),        # 3 min
        "reviewer": ResourceEstimate(seconds=120, memory_mb=256),      # 2 min
        "fixer": ResourceEstimate(seconds=180, memory_mb=256),         # 3 min
        "architect": ResourceEstimate(seconds=240, memory_mb=512),     # 4 min
        "orchestrator": ResourceEstimate(seconds=60, memory_mb=128),   # 1 min
    })
    default_estimate: ResourceEstimate = field(default_factory=ResourceEstimate)

    priority_weights: Dict[str, int] = field(default_factory=lambda: {
        "critical": 1000,
        "high": 100,
        "medium": 10,
        "low": 1,
    })
    priority_time_multipliers: Dict[str, float] = field(default_factory=lambda: {
        "critical": 1.5,
        "high": 1.2,
        "medium": 1.0,
        "low": 0.8,
    })

    max_concurrent_per_worker: int = 1

    def estimate_for(self, capability: str) -> ResourceEstimate:
        return self.resource_estimates.get(capability, self.default_estimate)

    @classmethod
    def from_env(cls) -> "PlannerDefaults":
        """Create from environment variables."""
        return cls(
            max_concurrent_per_worker=int(os.getenv("PLANNER_MAX_CONCURRENT_PER_WORKER", 1)),
        )


# ============================================================================
# GLOBAL DEFAULTS INSTANCE
# ============================================================================

@dataclass
class Defaults:
    """Container for all default configurations."""
    retry: RetryDefaults = field(default_factory=RetryDefaults)
    distributor: DistributorDefaults = field(default_factory=DistributorDefaults)
    progress: ProgressDefaults = field(default_factory=ProgressDefaults)
    planner: PlannerDefaults = field(default_factory=PlannerDefaults)

    @classmethod
    def from_env(cls) -> "Defaults":
        """Create all defaults from environment variables."""
        return cls(
            retry=RetryDefaults.from_env(),
            distributor=DistributorDefaults.from_env(),
            progress=ProgressDefaults.from_env(),
            planner=PlannerDefaults.from_env(),
        )


_defaults: Optional[Defaults] = None


def get_defaults() -> Defaults:
    """Get global defaults instance."""
    global _defaults
    if _defaults is None:
        _defaults = Defaults.from_env()
    return _defaults


def reset_defaults() -> None:
    """Reset defaults (for testing)."""
    global _defaults
    _defaults = None


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = [
    "RetryDefaults",
    "DistributorDefaults",
    "ProgressDefaults",
    "ResourceEstimate",
    "PlannerDefaults",
    "Defaults",
    "get_defaults",
    "reset_defaults",
]
