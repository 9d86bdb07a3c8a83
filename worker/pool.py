# ============================================================================
# LOCAL WORKER POOL
# ============================================================================
# EPOCH: 1 - WORK DISTRIBUTION
# STATUS: Core - In-process worker pool
# PURPOSE: Execute features through registered handlers with timeouts
# CREATED: 15 OCT 2026
# ============================================================================
"""
Local Worker Pool

An in-process implementation of the WorkerPool contract.

Each LocalWorker:
- runs at most one feature at a time (busy flag)
- resolves the handler registered for the feature's capability
- enforces a per-attempt timeout with asyncio.wait_for
- throttles handler progress through a ProgressTracker into
  ExecuteOptions.on_progress
- converts handler results, exceptions and timeouts to ExecutionResult

Usage:
    pool = LocalWorkerPool()
    pool.add_worker("worker-1", capabilities=["backend", "tester"])
    distributor = WorkDistributor(pool)
"""

import asyncio
import logging
import time
from typing import Any, Dict, List, Optional, Sequence, Union

from handlers.registry import (
    HandlerContext,
    HandlerNotFoundError,
    HandlerResult,
    execute_handler,
    get_handler_metadata,
)
from worker.contracts import ExecuteOptions, ExecutionResult, WorkerCapabilities
from worker.progress import ProgressReport, ProgressTracker

logger = logging.getLogger(__name__)


class WorkerBusyError(RuntimeError):
    """Raised when a busy LocalWorker is asked to run another feature."""
    def __init__(self, worker_id: str):
        self.worker_id = worker_id
        super().__init__(f"Worker {worker_id} is busy")


# ============================================================================
# WORKER
# ============================================================================

class LocalWorker:
    """Runs features in-process through the handler registry."""

    def __init__(
        self,
        worker_id: str,
        capabilities: Optional[Union[WorkerCapabilities, Sequence[str]]] = None,
        default_timeout_seconds: Optional[float] = None,
        progress_interval_seconds: float = 0.25,
    ):
        """
        Initialize worker.

        Args:
            worker_id: Identifier for this worker
            capabilities: Supported capabilities (empty accepts all)
            default_timeout_seconds: Timeout when neither the feature nor the
                handler sets one
            progress_interval_seconds: Minimum seconds between progress reports
        """
        self.id = worker_id
        if isinstance(capabilities, WorkerCapabilities):
            self.capabilities = capabilities
        else:
            self.capabilities = WorkerCapabilities(capabilities=list(capabilities or []))
        self.default_timeout_seconds = default_timeout_seconds
        self.progress_interval_seconds = progress_interval_seconds

        self.busy = False
        self.current_feature: Optional[str] = None
        self.completed = 0
        self.failed = 0
        self._task: Optional[asyncio.Task] = None
        self._cancel_requested = False

    def supports(self, capability: str) -> bool:
        return self.capabilities.supports(capability)

    async def execute_agent(
        self,
        capability: str,
        payload: Any,
        options: ExecuteOptions,
    ) -> ExecutionResult:
        """
        Execute one attempt of a feature.

        Returns:
            ExecutionResult (never raises for handler failures)

        Raises:
            WorkerBusyError: worker is already running a feature
        """
        if self.busy:
            raise WorkerBusyError(self.id)

        self.busy = True
        self.current_feature = options.feature_id
        self._cancel_requested = False
        start_time = time.monotonic()
        timeout = self._resolve_timeout(capability, options)

        logger.info(
            f"Worker {self.id} executing {options.feature_id}: "
            f"capability={capability}, attempt={options.attempt}"
        )

        try:
            tracker = ProgressTracker(
                feature_id=options.feature_id,
                worker_id=self.id,
                report_callback=self._make_report_callback(options),
                min_report_interval=self.progress_interval_seconds,
            )
            context = HandlerContext(
                feature_id=options.feature_id,
                capability=capability,
                payload=payload,
                attempt=options.attempt,
                timeout_seconds=timeout,
                dependency_outputs=dict(options.dependency_outputs),
                metadata=dict(options.metadata),
                worker_id=self.id,
                progress_callback=lambda current, total, message: tracker.update(
                    current=current, total=total, message=message
                ),
            )

            self._task = asyncio.ensure_future(execute_handler(capability, context))
            try:
                result = await asyncio.wait_for(self._task, timeout=timeout)
            except asyncio.CancelledError:
                if not self._cancel_requested:
                    raise
                result = HandlerResult.failure_result("Execution cancelled")

            return self._convert_result(result, start_time)

        except asyncio.TimeoutError:
            logger.error(f"Feature {options.feature_id} timed out after {timeout}s on {self.id}")
            self.failed += 1
            return ExecutionResult.failure(
                f"Execution timed out after {timeout} seconds",
                duration_seconds=time.monotonic() - start_time,
            )

        except HandlerNotFoundError as e:
            logger.error(f"Handler not found: {e.capability}")
            self.failed += 1
            return ExecutionResult.failure(
                f"Handler not found: {e.capability}",
                duration_seconds=time.monotonic() - start_time,
            )

        finally:
            self._task = None
            self.busy = False
            self.current_feature = None

    async def cancel(self) -> None:
        """Cooperatively cancel the running feature, if any."""
        if self._task is not None and not self._task.done():
            logger.info(f"Cancelling {self.current_feature} on worker {self.id}")
            self._cancel_requested = True
            self._task.cancel()

    def _resolve_timeout(self, capability: str, options: ExecuteOptions) -> Optional[float]:
        if options.timeout_seconds:
            return options.timeout_seconds
        metadata = get_handler_metadata(capability) or {}
        return metadata.get("timeout_seconds") or self.default_timeout_seconds

    def _make_report_callback(self, options: ExecuteOptions):
        async def report(progress: ProgressReport) -> None:
            if options.on_progress is None:
                return
            result = options.on_progress(int(progress.percent + 0.5))
            if asyncio.iscoroutine(result):
                await result

        return report

    def _convert_result(self, result: HandlerResult, start_time: float) -> ExecutionResult:
        duration = time.monotonic() - start_time
        if result.success:
            self.completed += 1
            return ExecutionResult.ok(result.output, duration_seconds=duration)
        self.failed += 1
        return ExecutionResult.failure(
            result.error_message or "Handler returned failure",
            duration_seconds=duration,
        )

    def __repr__(self) -> str:
        return f"LocalWorker(id={self.id!r}, busy={self.busy})"


# ============================================================================
# POOL
# ============================================================================

class LocalWorkerPool:
    """Pool of LocalWorkers. Availability excludes busy workers."""

    def __init__(self, workers: Optional[Sequence[LocalWorker]] = None):
        self._workers: Dict[str, LocalWorker] = {}
        for worker in workers or []:
            self.register(worker)

    def register(self, worker: LocalWorker) -> LocalWorker:
        if worker.id in self._workers:
            raise ValueError(f"Worker already registered: {worker.id}")
        self._workers[worker.id] = worker
        logger.debug(f"Registered worker {worker.id}")
        return worker

    def add_worker(
        self,
        worker_id: str,
        capabilities: Optional[Sequence[str]] = None,
        **kwargs: Any,
    ) -> LocalWorker:
        """Create and register a LocalWorker."""
        return self.register(LocalWorker(worker_id, capabilities=capabilities, **kwargs))

    def remove_worker(self, worker_id: str) -> Optional[LocalWorker]:
        return self._workers.pop(worker_id, None)

    def get_available_workers(self) -> List[LocalWorker]:
        return [w for w in self._workers.values() if not w.busy]

    def get_worker(self, worker_id: str) -> Optional[LocalWorker]:
        return self._workers.get(worker_id)

    @property
    def workers(self) -> List[LocalWorker]:
        return list(self._workers.values())

    @property
    def size(self) -> int:
        return len(self._workers)

    @property
    def active_count(self) -> int:
        """Number of currently executing workers."""
        return sum(1 for w in self._workers.values() if w.busy)


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = [
    "LocalWorker",
    "LocalWorkerPool",
    "WorkerBusyError",
]
