# ============================================================================
# WORKER MODULE
# ============================================================================
# EPOCH: 1 - WORK DISTRIBUTION
# STATUS: Core - Worker execution components
# PURPOSE: Worker contracts, in-process pool, progress tracking
# CREATED: 15 OCT 2026
# ============================================================================
"""
Worker Module

Components for feature execution:
- contracts: Worker / WorkerPool protocols and the execution result schema
- pool: In-process LocalWorkerPool backed by the handler registry
- progress: Throttled progress reporting from handlers
"""

from worker.contracts import (
    WorkerCapabilities,
    WorkerInfo,
    ProgressCallback,
    ExecuteOptions,
    ExecutionResult,
    Worker,
    WorkerPool,
)
from worker.progress import (
    ProgressTracker,
    ProgressReport,
)
from worker.pool import (
    LocalWorker,
    LocalWorkerPool,
    WorkerBusyError,
)

__all__ = [
    # Contracts
    "WorkerCapabilities",
    "WorkerInfo",
    "ProgressCallback",
    "ExecuteOptions",
    "ExecutionResult",
    "Worker",
    "WorkerPool",
    # Progress
    "ProgressTracker",
    "ProgressReport",
    # Pool
    "LocalWorker",
    "LocalWorkerPool",
    "WorkerBusyError",
]
