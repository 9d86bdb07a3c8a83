# ============================================================================
# RETRY POLICY MODEL
# ============================================================================
# EPOCH: 1 - WORK DISTRIBUTION
# STATUS: Core model - Retry and backoff configuration
# PURPOSE: Decide whether a failed attempt is retried and how long to wait
# LAST_REVIEWED: 14 OCT 2026
# EXPORTS: RetryPolicy
# DEPENDENCIES: pydantic
# ============================================================================
"""
Retry Policy

A failed attempt is retried while `attempt_count <= max_retries`, so a
feature is executed at most `max_retries + 1` times.

Delay before retry N is `retry_delay_seconds * backoff.multiplier(N)`,
capped at `max_delay_seconds`.
"""

from typing import TYPE_CHECKING, Optional

from pydantic import BaseModel, Field

from core.contracts import BackoffStrategy

if TYPE_CHECKING:
    from core.config.defaults import RetryDefaults


class RetryPolicy(BaseModel):
    """Retry configuration for features in a run."""
    max_retries: int = Field(default=3, ge=0)
    backoff: BackoffStrategy = Field(default=BackoffStrategy.FIXED)
    retry_delay_seconds: float = Field(default=5.0, ge=0)
    max_delay_seconds: Optional[float] = Field(default=300.0, ge=0)

    model_config = {"frozen": True}

    def should_retry(self, attempt_count: int, max_retries: Optional[int] = None) -> bool:
        """
        Check if another attempt is allowed after `attempt_count` attempts.

        Args:
            attempt_count: Attempts made so far (including the failed one)
            max_retries: Per-feature override of the policy limit
        """
        limit = self.max_retries if max_retries is None else max_retries
        return attempt_count <= limit

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait before retry number `attempt` (1-based)."""
        return self.backoff.compute_delay(
            self.retry_delay_seconds,
            attempt,
            self.max_delay_seconds,
        )

    @classmethod
    def from_defaults(cls, defaults: "RetryDefaults") -> "RetryPolicy":
        """Build a policy from environment-backed defaults."""
        return cls(
            max_retries=defaults.max_retries,
            backoff=BackoffStrategy(defaults.backoff),
            retry_delay_seconds=defaults.retry_delay_seconds,
            max_delay_seconds=defaults.max_delay_seconds,
        )


__all__ = ["RetryPolicy"]
