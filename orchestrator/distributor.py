# ============================================================================
# WORK DISTRIBUTOR
# ============================================================================
# EPOCH: 1 - WORK DISTRIBUTION
# STATUS: Core - Batch-by-batch execution of a feature set
# PURPOSE: Validate, plan and dispatch features to a worker pool with retries
# CREATED: 16 OCT 2026
# ============================================================================
"""
Work Distributor

Drives one run from submission to summary:

    1. analyzing-dependencies  DependencyGraphAnalyzer.validate()
    2. generating-batches      BatchPlanner.plan()
    3. planning-execution      ExecutionPlanner.create_plan() (+ optimize)
    4. executing               batches in order, features in a batch
                               concurrently (or one by one if sequential)

Per feature:
    - acquire a worker (planned worker first, then any available one)
    - mark in-progress, call worker.execute_agent()
    - on success mark complete and keep the output for dependents
    - on failure retry while attempt_count <= max_retries, waiting the
      backoff delay between attempts; then mark failed

A batch never starts before every feature of the previous batch is
terminal. Execution errors stay inside the feature; the run returns a
RunSummary unless fail_fast is set.

Only one run may be active per distributor. stop() flags the run, asks
in-flight workers to cancel, saves progress and emits `stopped`.

Usage:
    pool = LocalWorkerPool()
    pool.add_worker("worker-1", capabilities=["backend"])

    async with WorkDistributor(pool, progress_path="progress.json") as distributor:
        distributor.subscribe("feature-complete", print)
        summary = await distributor.distribute_work(features)
"""

import asyncio
import inspect
import time
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set, Union

from __version__ import __version__
from core.config import Defaults, get_defaults
from core.contracts import BackoffStrategy, DistributionPhase, FeatureStatus
from core.errors import (
    DistributionError,
    DistributionInProgressError,
    MissingWorkerPoolError,
    NoFeaturesProvidedError,
    RunFailedError,
    WorkerUnavailableError,
)
from core.logging import ComponentType, get_logger, log_checkpoint, log_context
from core.models import (
    DistributionProgress,
    EventType,
    ExecutionPlan,
    FeatureDefinition,
    FeatureOutcome,
    OverallProgress,
    PlannedBatch,
    ProgressSummary,
    RetryPolicy,
    RunSummary,
)
from orchestrator.engine import BatchPlanner, DependencyGraph, DependencyGraphAnalyzer, ExecutionPlanner
from orchestrator.progress import ProgressAggregator
from services.event_service import SOURCE_DISTRIBUTOR, EventBus, EventCallback, Subscription
from worker.contracts import ExecuteOptions, ExecutionResult, WorkerInfo

logger = get_logger(__name__, ComponentType.DISTRIBUTOR)

BLOCKED_BY_DEPENDENCY = "Blocked by failed dependency"


async def _maybe_await(value: Any) -> Any:
    """Pool methods may be plain or async."""
    if inspect.isawaitable(value):
        return await value
    return value


@dataclass
class _RunState:
    """Mutable state of the active run."""
    run_id: str
    graph: DependencyGraph
    plan: ExecutionPlan
    aggregator: ProgressAggregator
    sequential: bool = False
    started_at: float = field(default_factory=time.monotonic)

    outcomes: Dict[str, FeatureOutcome] = field(default_factory=dict)
    outputs: Dict[str, Any] = field(default_factory=dict)

    # feature id -> worker currently executing it
    in_flight: Dict[str, Any] = field(default_factory=dict)
    # worker ids handed out by this run and not yet returned
    in_use: Set[str] = field(default_factory=set)

    aborted: bool = False
    stop_requested: bool = False
    stop_event: asyncio.Event = field(default_factory=asyncio.Event)

    @property
    def halted(self) -> bool:
        return self.aborted or self.stop_requested


class WorkDistributor:
    """
    Distributes a dependency-ordered feature set over a worker pool.

    The pool must expose get_available_workers() and get_worker(id);
    workers must expose execute_agent(capability, payload, options).
    """

    def __init__(
        self,
        pool: Any,
        *,
        retry_policy: Optional[RetryPolicy] = None,
        max_retries: Optional[int] = None,
        retry_delay_seconds: Optional[float] = None,
        backoff: Optional[Union[BackoffStrategy, str]] = None,
        continue_on_error: Optional[bool] = None,
        fail_fast: Optional[bool] = None,
        auto_optimize: bool = True,
        progress_path: Optional[Union[str, Path]] = None,
        auto_save: Optional[bool] = None,
        save_interval_seconds: Optional[float] = None,
        worker_poll_interval_seconds: Optional[float] = None,
        worker_wait_timeout_seconds: Optional[float] = None,
        max_concurrent_per_worker: Optional[int] = None,
        event_bus: Optional[EventBus] = None,
        defaults: Optional[Defaults] = None,
    ):
        """
        Initialize distributor.

        Args:
            pool: Worker pool (required)
            retry_policy: Full retry policy; individual retry arguments
                override its fields
            max_retries: Retries after the first failed attempt
            retry_delay_seconds: Base delay between attempts
            backoff: fixed, linear or exponential
            continue_on_error: Keep running after a feature exhausts retries
            fail_fast: Abort on the first exhausted feature and raise
                RunFailedError at the end of the run
            auto_optimize: Rebalance the execution plan after creating it
            progress_path: JSON file for progress persistence
            auto_save: Periodic progress saves while running
            save_interval_seconds: Auto-save period
            worker_poll_interval_seconds: Delay between availability polls
            worker_wait_timeout_seconds: Give up acquiring a worker after this
            max_concurrent_per_worker: Planner per-batch limit
            event_bus: Shared bus; a private one is created if omitted
            defaults: Defaults container (environment-backed if omitted)

        Raises:
            MissingWorkerPoolError: pool is None
        """
        if pool is None:
            raise MissingWorkerPoolError()

        self.pool = pool
        self.defaults = defaults or get_defaults()
        dist = self.defaults.distributor

        policy = retry_policy or RetryPolicy.from_defaults(self.defaults.retry)
        overrides: Dict[str, Any] = {}
        if max_retries is not None:
            overrides["max_retries"] = max_retries
        if retry_delay_seconds is not None:
            overrides["retry_delay_seconds"] = retry_delay_seconds
        if backoff is not None:
            overrides["backoff"] = BackoffStrategy(backoff)
        self.retry_policy = policy.model_copy(update=overrides) if overrides else policy

        self.fail_fast = dist.fail_fast if fail_fast is None else fail_fast
        self.continue_on_error = (
            dist.continue_on_error if continue_on_error is None else continue_on_error
        )
        self.auto_optimize = auto_optimize
        self.progress_path = progress_path or dist.progress_path
        self.auto_save = auto_save
        self.save_interval_seconds = save_interval_seconds
        self.worker_poll_interval_seconds = (
            worker_poll_interval_seconds
            if worker_poll_interval_seconds is not None
            else dist.worker_poll_interval_seconds
        )
        self.worker_wait_timeout_seconds = (
            worker_wait_timeout_seconds
            if worker_wait_timeout_seconds is not None
            else dist.worker_wait_timeout_seconds
        )

        self.analyzer = DependencyGraphAnalyzer()
        self.batch_planner = BatchPlanner()
        self.planner = ExecutionPlanner(
            self.defaults.planner,
            max_concurrent_per_worker=max_concurrent_per_worker,
        )

        self._owns_bus = event_bus is None
        self.events = event_bus or EventBus(source=SOURCE_DISTRIBUTOR)

        # Last run's state stays readable after it finishes
        self.aggregator: Optional[ProgressAggregator] = None
        self.current_plan: Optional[ExecutionPlan] = None
        self.current_batch = 0

        self._run: Optional[_RunState] = None
        self._run_id: Optional[str] = None
        self._running = False
        self._stop_requested = False

    def _emit(self, event_type: EventType, data: Optional[Dict[str, Any]] = None) -> None:
        self.events.emit(event_type, data or {}, source=SOURCE_DISTRIBUTOR)

    @property
    def is_running(self) -> bool:
        return self._running and not self._stop_requested

    def subscribe(
        self,
        event_type: Optional[Union[EventType, str]],
        callback: EventCallback,
    ) -> Subscription:
        """Subscribe to distributor and aggregator events (None = all)."""
        return self.events.subscribe(event_type, callback)

    # =========================================================================
    # RUN
    # =========================================================================

    async def distribute_work(
        self,
        features: Iterable[Any],
        sequential: bool = False,
        workers: Optional[Sequence[Any]] = None,
        resume: bool = False,
    ) -> RunSummary:
        """
        Run a feature set to completion.

        Args:
            features: FeatureDefinitions or dicts
            sequential: Run the features of a batch one at a time
            workers: Planning override for pool.get_available_workers()
            resume: Reload persisted progress and skip completed features

        Returns:
            RunSummary (also when some features failed)

        Raises:
            DistributionInProgressError: another run is active
            NoFeaturesProvidedError: empty feature list
            DependencyValidationError: unknown dependency, cycle, duplicate id
            RunFailedError: fail_fast and at least one feature failed
        """
        if self._running:
            raise DistributionInProgressError(self._run_id)
        features = list(features or [])
        if not features:
            raise NoFeaturesProvidedError()

        self._running = True
        self._stop_requested = False
        run_id = f"run-{uuid.uuid4().hex[:12]}"
        self._run_id = run_id

        try:
            with log_context(run_id=run_id, component=ComponentType.DISTRIBUTOR.value):
                return await self._distribute(run_id, features, sequential, workers, resume)
        finally:
            self._running = False
            self._run = None
            self._run_id = None

    async def _distribute(
        self,
        run_id: str,
        features: List[Any],
        sequential: bool,
        workers: Optional[Sequence[Any]],
        resume: bool,
    ) -> RunSummary:
        started_at = time.monotonic()
        logger.info(f"Work distributor v{__version__}: starting {run_id} with {len(features)} features")
        self._emit(EventType.DISTRIBUTION_STARTED, {"run_id": run_id, "features": len(features)})
        log_checkpoint("distribution_started", {"features": len(features)}, logger.logger)

        aggregator: Optional[ProgressAggregator] = None
        try:
            self._phase(DistributionPhase.ANALYZING_DEPENDENCIES)
            graph = self.analyzer.validate(features)

            self._phase(DistributionPhase.GENERATING_BATCHES)
            batch_plan = self.batch_planner.plan(graph)
            self._emit(
                EventType.BATCHES_GENERATED,
                {"count": batch_plan.total_batches, "features": len(graph)},
            )

            self._phase(DistributionPhase.PLANNING_EXECUTION)
            if workers is None:
                workers = await _maybe_await(self.pool.get_available_workers()) or []
            plan = self.planner.create_plan(batch_plan, graph.features, workers)
            if self.auto_optimize:
                plan = self.planner.optimize_plan(plan, workers)
            self.current_plan = plan
            self.current_batch = 0
            self._emit(EventType.PLAN_READY, plan.statistics())

            if self.aggregator is not None:
                self.aggregator.destroy()
            aggregator = ProgressAggregator(
                persistence_path=self.progress_path,
                auto_save=self.auto_save,
                save_interval_seconds=self.save_interval_seconds,
                event_bus=self.events,
                defaults=self.defaults.progress,
            )
            self.aggregator = aggregator
            if resume and aggregator.persistence_path and aggregator.persistence_path.exists():
                await aggregator.load()
            aggregator.initialize(graph.features.values(), plan, resume=resume)

            state = _RunState(
                run_id=run_id,
                graph=graph,
                plan=plan,
                aggregator=aggregator,
                sequential=sequential,
                started_at=started_at,
            )
            self._run = state
            if self._stop_requested:
                # stop() arrived while planning
                state.stop_requested = True
                state.stop_event.set()

            self._phase(DistributionPhase.EXECUTING)
            await self._execute_plan(state)

            summary = self._build_summary(state)
            if self.fail_fast and summary.failed:
                raise RunFailedError(summary)

            self._emit(EventType.DISTRIBUTION_COMPLETE, summary.to_event_data())
            log_checkpoint("distribution_complete", summary.to_event_data(), logger.logger)
            logger.info(
                f"Distribution complete: {summary.successful}/{summary.total} successful, "
                f"{summary.failed} failed, {summary.skipped} skipped "
                f"in {summary.duration_seconds:.1f}s"
            )
            return summary

        except Exception as e:
            logger.error(f"Distribution failed: {e}")
            self._emit(EventType.DISTRIBUTION_FAILED, {"run_id": run_id, "error": str(e)})
            raise

        finally:
            if aggregator is not None:
                await self._final_save(aggregator)
                aggregator.destroy()

    def _phase(self, phase: DistributionPhase) -> None:
        logger.info(f"Phase: {phase.value}")
        self._emit(EventType.PHASE, {"phase": phase.value})

    async def _final_save(self, aggregator: ProgressAggregator) -> None:
        if aggregator.persistence_path is None:
            return
        try:
            await aggregator.save()
        except Exception as e:
            logger.warning(f"Failed to save progress: {e}")
            self._emit(EventType.WARNING, {"message": "Failed to save progress", "error": str(e)})

    # =========================================================================
    # BATCHES
    # =========================================================================

    async def _execute_plan(self, state: _RunState) -> None:
        for batch in state.plan.batches:
            if state.halted:
                reason = "Run stopped" if state.stop_requested else "Run aborted"
                for feature_id in batch.feature_ids:
                    self._mark_not_dispatched(state, feature_id, reason)
                continue
            await self._execute_batch(state, batch)

    async def _execute_batch(self, state: _RunState, batch: PlannedBatch) -> None:
        self.current_batch = batch.batch_number
        with log_context(batch_number=batch.batch_number):
            runnable: List[FeatureDefinition] = []
            for feature_id in batch.feature_ids:
                progress = state.aggregator.get_feature_progress(feature_id)
                if progress is not None and progress.status == FeatureStatus.COMPLETE:
                    # Completed in a previous run
                    state.outputs[feature_id] = progress.output
                    state.outcomes[feature_id] = FeatureOutcome(
                        feature_id=feature_id,
                        success=True,
                        attempts=progress.attempt_count,
                        worker_id=progress.worker_id,
                        output=progress.output,
                    )
                    continue
                runnable.append(state.graph.features[feature_id])

            logger.info(
                f"Batch {batch.batch_number}/{state.plan.total_batches} started: "
                f"{len(runnable)} features"
            )
            self._emit(
                EventType.BATCH_STARTED,
                {"batch_number": batch.batch_number, "items": list(batch.feature_ids)},
            )
            log_checkpoint("batch_started", {"items": list(batch.feature_ids)}, logger.logger)

            if state.sequential:
                for feature in runnable:
                    await self._run_feature(state, feature)
            else:
                results = await asyncio.gather(
                    *(self._run_feature(state, f) for f in runnable),
                    return_exceptions=True,
                )
                for feature, result in zip(runnable, results):
                    if isinstance(result, BaseException):
                        self._record_crash(state, feature, result)

            outcomes = [state.outcomes[fid] for fid in batch.feature_ids if fid in state.outcomes]
            success_count = sum(1 for o in outcomes if o.success)
            skipped_count = sum(1 for o in outcomes if o.skipped)
            fail_count = len(outcomes) - success_count - skipped_count

            logger.info(
                f"Batch {batch.batch_number} complete: {success_count} succeeded, "
                f"{fail_count} failed, {skipped_count} skipped"
            )
            self._emit(
                EventType.BATCH_COMPLETE,
                {
                    "batch_number": batch.batch_number,
                    "success_count": success_count,
                    "fail_count": fail_count,
                    "skipped_count": skipped_count,
                },
            )

    def _mark_not_dispatched(self, state: _RunState, feature_id: str, reason: str) -> None:
        """Record a feature that was never handed to a worker. Progress stays pending."""
        state.outcomes[feature_id] = FeatureOutcome(
            feature_id=feature_id,
            success=False,
            skipped=True,
            error=reason,
        )

    # =========================================================================
    # FEATURES
    # =========================================================================

    def _continue_on_error(self, feature: FeatureDefinition) -> bool:
        if self.fail_fast:
            return False
        if feature.continue_on_error is not None:
            return feature.continue_on_error
        return self.continue_on_error

    async def _run_feature(self, state: _RunState, feature: FeatureDefinition) -> FeatureOutcome:
        """Dispatch one feature with retries. Never raises for execution failures."""
        with log_context(feature_id=feature.id, capability=feature.capability):
            try:
                outcome = await self._dispatch_with_retries(state, feature)
            except Exception as e:
                return self._record_crash(state, feature, e)
            state.outcomes[feature.id] = outcome
            return outcome

    def _record_crash(
        self,
        state: _RunState,
        feature: FeatureDefinition,
        exc: BaseException,
    ) -> FeatureOutcome:
        """An unexpected error while dispatching fails that feature only."""
        error = f"{type(exc).__name__}: {exc}" if str(exc) else type(exc).__name__
        logger.error(f"Dispatch of {feature.id} crashed: {error}", exc_info=exc)

        progress = state.aggregator.get_feature_progress(feature.id)
        attempts = progress.attempt_count if progress else 0
        worker_id = progress.worker_id if progress else None
        try:
            outcome = self._fail_feature(
                state, feature, worker_id, error, attempts, time.monotonic()
            )
        except DistributionError:
            # Already terminal in the aggregator
            outcome = FeatureOutcome(
                feature_id=feature.id,
                success=False,
                attempts=attempts,
                worker_id=worker_id,
                error=error,
            )
        state.outcomes[feature.id] = outcome
        return outcome

    async def _dispatch_with_retries(
        self,
        state: _RunState,
        feature: FeatureDefinition,
    ) -> FeatureOutcome:
        failed_deps = [
            dep for dep in feature.dependencies
            if dep in state.outcomes and not state.outcomes[dep].success
        ]
        if failed_deps:
            return self._block_feature(state, feature, failed_deps)

        max_retries = (
            feature.max_retries if feature.max_retries is not None
            else self.retry_policy.max_retries
        )
        assignment = state.plan.assignment_for(feature.id)
        planned_worker = assignment.worker_id if assignment else None
        started_at = time.monotonic()
        worker_id: Optional[str] = None
        attempt = 0

        while True:
            attempt += 1
            try:
                worker = await self._acquire_worker(
                    state, feature, planned_worker, abandon_on_abort=attempt == 1
                )
            except WorkerUnavailableError as e:
                logger.warning(str(e))
                state.aggregator.update_feature(feature.id, attempt_count=attempt)
                error = str(e)
            except Exception as e:
                error = f"Worker pool error: {str(e) or type(e).__name__}"
                logger.warning(f"{error} (feature {feature.id}, attempt {attempt})")
                state.aggregator.update_feature(feature.id, attempt_count=attempt)
            else:
                if worker is None:
                    if attempt == 1:
                        reason = "Run stopped" if state.stop_requested else "Run aborted"
                        self._mark_not_dispatched(state, feature.id, reason)
                        return state.outcomes[feature.id]
                    return self._fail_feature(
                        state, feature, worker_id, "Run stopped before retry",
                        attempt - 1, started_at,
                    )

                worker_id = worker.id
                result = await self._execute_on(state, feature, worker, attempt)
                if result.success:
                    return self._complete_feature(
                        state, feature, worker_id, result, attempt, started_at
                    )
                error = result.error or "Execution failed"

            if not state.stop_requested and self.retry_policy.should_retry(attempt, max_retries):
                delay = self.retry_policy.delay_for(attempt)
                state.aggregator.update_feature(feature.id, metadata={"last_error": error})
                logger.warning(
                    f"Feature {feature.id} failed (attempt {attempt}/{max_retries + 1}), "
                    f"retrying in {delay:.1f}s: {error}"
                )
                self._emit(
                    EventType.FEATURE_RETRY,
                    {
                        "feature_id": feature.id,
                        "attempt": attempt,
                        "max_retries": max_retries,
                        "delay_seconds": delay,
                        "error": error,
                    },
                )
                await self._wait(state, delay)
                continue

            return self._fail_feature(state, feature, worker_id, error, attempt, started_at)

    async def _execute_on(
        self,
        state: _RunState,
        feature: FeatureDefinition,
        worker: Any,
        attempt: int,
    ) -> ExecutionResult:
        """One attempt on an acquired worker. Exceptions become failures."""
        state.in_use.add(worker.id)
        state.in_flight[feature.id] = worker
        try:
            state.aggregator.update_feature(
                feature.id,
                status=FeatureStatus.IN_PROGRESS,
                worker_id=worker.id,
                attempt_count=attempt,
            )
            options = ExecuteOptions(
                feature_id=feature.id,
                attempt=attempt,
                timeout_seconds=feature.timeout_seconds,
                dependency_outputs={
                    dep: state.outputs.get(dep) for dep in feature.dependencies
                },
                metadata=dict(feature.metadata),
                on_progress=self._progress_forwarder(state, feature.id, worker.id),
            )

            with log_context(worker_id=worker.id):
                logger.info(f"Dispatching {feature.id} to {worker.id} (attempt {attempt})")
                start = time.monotonic()
                try:
                    raw = await worker.execute_agent(feature.capability, feature.payload, options)
                    result = ExecutionResult.coerce(raw)
                except asyncio.CancelledError:
                    raise
                except Exception as e:
                    result = ExecutionResult.failure(str(e) or type(e).__name__)

            if result.duration_seconds is None:
                result = result.model_copy(update={"duration_seconds": time.monotonic() - start})
            return result

        finally:
            state.in_flight.pop(feature.id, None)
            state.in_use.discard(worker.id)

    def _progress_forwarder(self, state: _RunState, feature_id: str, worker_id: str):
        """on_progress callback; ignored once the attempt is no longer in flight."""
        def on_progress(percent: int) -> None:
            current = state.in_flight.get(feature_id)
            if current is None or current.id != worker_id:
                return
            try:
                snapshot = state.aggregator.update_feature(feature_id, progress=percent)
            except DistributionError as e:
                logger.debug(f"Progress for {feature_id} dropped: {e}")
                return
            logger.debug(f"Feature {feature_id} progress: {snapshot.progress}%")
            self._emit(
                EventType.FEATURE_PROGRESS,
                {"feature_id": feature_id, "worker_id": worker_id, "progress": snapshot.progress},
            )

        return on_progress

    def _complete_feature(
        self,
        state: _RunState,
        feature: FeatureDefinition,
        worker_id: str,
        result: ExecutionResult,
        attempts: int,
        started_at: float,
    ) -> FeatureOutcome:
        state.outputs[feature.id] = result.output
        state.aggregator.update_feature(
            feature.id, status=FeatureStatus.COMPLETE, output=result.output
        )
        logger.info(f"Feature {feature.id} complete on {worker_id} ({result.duration_seconds:.2f}s)")
        self._emit(
            EventType.FEATURE_COMPLETE,
            {
                "feature_id": feature.id,
                "worker_id": worker_id,
                "duration_seconds": result.duration_seconds,
            },
        )
        log_checkpoint("feature_completed", {"attempts": attempts}, logger.logger)
        return FeatureOutcome(
            feature_id=feature.id,
            success=True,
            attempts=attempts,
            worker_id=worker_id,
            output=result.output,
            duration_seconds=time.monotonic() - started_at,
        )

    def _fail_feature(
        self,
        state: _RunState,
        feature: FeatureDefinition,
        worker_id: Optional[str],
        error: str,
        attempts: int,
        started_at: float,
    ) -> FeatureOutcome:
        state.aggregator.update_feature(feature.id, status=FeatureStatus.FAILED, error=error)
        logger.error(f"Feature {feature.id} failed after {attempts} attempts: {error}")
        self._emit(
            EventType.FEATURE_FAILED,
            {
                "feature_id": feature.id,
                "worker_id": worker_id,
                "error": error,
                "attempts": attempts,
            },
        )
        log_checkpoint("feature_failed", {"attempts": attempts, "error": error}, logger.logger)

        if not self._continue_on_error(feature) and not state.aborted:
            state.aborted = True
            logger.warning(
                f"Feature {feature.id} does not allow continuing; "
                f"run aborts after batch {self.current_batch}"
            )

        return FeatureOutcome(
            feature_id=feature.id,
            success=False,
            attempts=attempts,
            worker_id=worker_id,
            error=error,
            duration_seconds=time.monotonic() - started_at,
        )

    def _block_feature(
        self,
        state: _RunState,
        feature: FeatureDefinition,
        failed_deps: List[str],
    ) -> FeatureOutcome:
        """Dependents of a failed feature are never dispatched."""
        error = f"{BLOCKED_BY_DEPENDENCY}: {', '.join(failed_deps)}"
        state.aggregator.update_feature(feature.id, status=FeatureStatus.FAILED, error=error)
        logger.warning(f"Feature {feature.id} skipped: {error}")
        self._emit(
            EventType.FEATURE_FAILED,
            {
                "feature_id": feature.id,
                "worker_id": None,
                "error": error,
                "attempts": 0,
                "skipped": True,
            },
        )
        return FeatureOutcome(
            feature_id=feature.id, success=False, skipped=True, blocked=True, error=error
        )

    # =========================================================================
    # WORKERS
    # =========================================================================

    def _is_usable(self, worker: Any, capability: str, state: _RunState) -> bool:
        if worker is None or getattr(worker, "id", None) is None:
            return False
        if worker.id in state.in_use or getattr(worker, "busy", False) is True:
            return False
        return WorkerInfo.coerce(worker).supports(capability)

    async def _acquire_worker(
        self,
        state: _RunState,
        feature: FeatureDefinition,
        planned_worker: Optional[str],
        abandon_on_abort: bool = True,
    ) -> Optional[Any]:
        """
        Get a worker for a feature.

        Returns:
            Worker, or None if the run was halted while waiting

        Raises:
            WorkerUnavailableError: nothing suitable within the wait timeout
        """
        def halted() -> bool:
            return state.stop_requested or (abandon_on_abort and state.aborted)

        if halted():
            return None

        if planned_worker and planned_worker not in state.in_use:
            worker = await _maybe_await(self.pool.get_worker(planned_worker))
            if self._is_usable(worker, feature.capability, state):
                return worker

        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.worker_wait_timeout_seconds
        while True:
            available = await _maybe_await(self.pool.get_available_workers()) or []
            for worker in available:
                if self._is_usable(worker, feature.capability, state):
                    return worker

            remaining = deadline - loop.time()
            if remaining <= 0:
                raise WorkerUnavailableError(feature.capability, self.worker_wait_timeout_seconds)
            await self._wait(state, min(self.worker_poll_interval_seconds, remaining))
            if halted():
                return None

    async def _wait(self, state: _RunState, seconds: float) -> None:
        """Sleep that wakes early when stop() is called."""
        if seconds <= 0:
            await asyncio.sleep(0)
            return
        try:
            await asyncio.wait_for(state.stop_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass

    # =========================================================================
    # SUMMARY
    # =========================================================================

    def _build_summary(self, state: _RunState) -> RunSummary:
        outcomes: Dict[str, FeatureOutcome] = {}
        for feature_id in state.graph.ids:
            outcome = state.outcomes.get(feature_id)
            if outcome is None:
                outcome = FeatureOutcome(feature_id=feature_id, success=False, skipped=True)
            outcomes[feature_id] = outcome

        successful = sum(1 for o in outcomes.values() if o.success)
        skipped = sum(1 for o in outcomes.values() if o.skipped)
        return RunSummary(
            run_id=state.run_id,
            total=len(outcomes),
            successful=successful,
            failed=len(outcomes) - successful - skipped,
            skipped=skipped,
            blocked=sum(1 for o in outcomes.values() if o.blocked),
            retried=sum(1 for o in outcomes.values() if o.retried),
            total_batches=state.plan.total_batches,
            aborted=state.aborted,
            stopped=state.stop_requested,
            duration_seconds=time.monotonic() - state.started_at,
            features=outcomes,
        )

    # =========================================================================
    # CONTROL
    # =========================================================================

    async def stop(self) -> None:
        """
        Request cancellation of the active run.

        Queued features are abandoned; in-flight workers exposing cancel()
        are asked to cancel. Progress is saved if a path is configured.
        """
        # Before planning finishes there is no run state yet; only the flag is set
        state = self._run if self._running else None
        run_id = self._run_id if self._running else None
        self._emit(EventType.STOPPING, {"run_id": run_id})

        if self._running:
            self._stop_requested = True
        if state is not None:
            state.stop_requested = True
            state.stop_event.set()

            for feature_id, worker in list(state.in_flight.items()):
                cancel = getattr(worker, "cancel", None)
                if cancel is None:
                    continue
                try:
                    await _maybe_await(cancel())
                except Exception as e:
                    logger.warning(f"Failed to cancel execution for {feature_id}: {e}")
                    self._emit(
                        EventType.WARNING,
                        {"message": f"Failed to cancel execution for {feature_id}", "error": str(e)},
                    )

            await self._final_save(state.aggregator)

        logger.info("Distribution stopped")
        self._emit(EventType.STOPPED, {"run_id": run_id})

    def close(self) -> None:
        """Release aggregator timers and all subscribers."""
        if self.aggregator is not None:
            self.aggregator.destroy()
        self.events.clear()

    async def __aenter__(self) -> "WorkDistributor":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if self._running:
            await self.stop()
        self.close()

    # =========================================================================
    # READS
    # =========================================================================

    def _plan_statistics(self) -> Optional[Dict[str, Any]]:
        if self.current_plan is None:
            return None
        stats = self.current_plan.statistics()
        stats["current_batch"] = self.current_batch
        return stats

    def get_progress(self) -> DistributionProgress:
        """Aggregator state plus plan statistics and current batch."""
        if self.aggregator is None:
            return DistributionProgress()
        return DistributionProgress(
            overall=self.aggregator.get_progress(),
            workers=self.aggregator.get_all_worker_statuses(),
            features=self.aggregator.get_all_feature_progress(),
            plan=self._plan_statistics(),
        )

    def get_summary(self) -> ProgressSummary:
        if self.aggregator is None:
            return ProgressSummary(progress=OverallProgress(), plan=self._plan_statistics())
        summary = self.aggregator.get_summary()
        return summary.model_copy(update={"plan": self._plan_statistics()})


__all__ = [
    "WorkDistributor",
    "BLOCKED_BY_DEPENDENCY",
]
