# ============================================================================
# EVENT MODEL
# ============================================================================
# EPOCH: 1 - WORK DISTRIBUTION
# STATUS: Core model - Notification surface
# PURPOSE: Named events emitted by the aggregator and distributor
# LAST_REVIEWED: 15 OCT 2026
# EXPORTS: DistributionEvent, EventType
# DEPENDENCIES: pydantic, enum
# ============================================================================
"""
Event Model

DistributionEvent is one notification: a named event plus a structured
payload. Subscribers (CLI, UI, logging) receive these through the EventBus
and never reach back into the scheduler.

Payload keys per event:
    initialized            features, workers
    feature-updated        feature_id, previous_status, current_status, progress
    saved / loaded         path
    save-error             path, error
    distribution-started   run_id, features
    phase                  phase
    batches-generated      count, features
    plan-ready             plan statistics
    batch-started          batch_number, items
    batch-complete         batch_number, success_count, fail_count
    feature-progress       feature_id, worker_id, progress
    feature-retry          feature_id, attempt, max_retries, delay_seconds, error
    feature-complete       feature_id, worker_id, duration_seconds
    feature-failed         feature_id, worker_id, error, attempts
    distribution-complete  total, successful, failed, skipped, duration_seconds
    distribution-failed    error
    stopping / stopped     run_id
    warning                message, error
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class EventType(str, Enum):
    """Names of every event the engine emits."""

    # Progress aggregator
    INITIALIZED = "initialized"
    FEATURE_UPDATED = "feature-updated"
    SAVED = "saved"
    SAVE_ERROR = "save-error"
    LOADED = "loaded"

    # Distribution lifecycle
    DISTRIBUTION_STARTED = "distribution-started"
    PHASE = "phase"
    BATCHES_GENERATED = "batches-generated"
    PLAN_READY = "plan-ready"
    DISTRIBUTION_COMPLETE = "distribution-complete"
    DISTRIBUTION_FAILED = "distribution-failed"
    STOPPING = "stopping"
    STOPPED = "stopped"

    # Batch lifecycle
    BATCH_STARTED = "batch-started"
    BATCH_COMPLETE = "batch-complete"

    # Feature lifecycle
    FEATURE_PROGRESS = "feature-progress"
    FEATURE_RETRY = "feature-retry"
    FEATURE_COMPLETE = "feature-complete"
    FEATURE_FAILED = "feature-failed"

    # System
    WARNING = "warning"


class DistributionEvent(BaseModel):
    """A single notification."""
    event_type: EventType
    data: Dict[str, Any] = Field(default_factory=dict)
    source: Optional[str] = Field(
        default=None,
        max_length=64,
        description="Component that emitted the event (aggregator, distributor)",
    )
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = {"frozen": True}

    @property
    def name(self) -> str:
        return self.event_type.value


__all__ = ["DistributionEvent", "EventType"]
