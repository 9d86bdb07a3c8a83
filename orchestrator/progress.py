# ============================================================================
# PROGRESS AGGREGATOR
# ============================================================================
# EPOCH: 1 - WORK DISTRIBUTION
# STATUS: Core - Run-wide progress state
# PURPOSE: Track per-feature and per-worker state, persist and restore it
# CREATED: 15 OCT 2026
# ============================================================================
"""
Progress Aggregator

Holds the mutable state of one run:
- FeatureProgress per submitted feature
- WorkerStatus per worker seen in the plan or in updates
- OverallProgress counters derived from both

All state changes go through one mutex, so concurrent dispatches never
interleave updates. Events are emitted after the mutex is released.

Persistence:
    save() writes a ProgressDocument as JSON to a temporary sibling file and
    atomically replaces the target. Saves are serialized. With auto_save on,
    a background task saves every `save_interval_seconds` when state changed.

Usage:
    aggregator = ProgressAggregator(persistence_path="progress.json")
    aggregator.initialize(features, plan)
    aggregator.update_feature("auth", status="in-progress", worker_id="w1")
    aggregator.update_feature("auth", status="complete")
    await aggregator.save()
"""

import asyncio
import logging
import os
import tempfile
import threading
from datetime import timedelta
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from pydantic import ValidationError

from core.config import ProgressDefaults, get_defaults
from core.contracts import FeatureStatus
from core.errors import (
    InvalidTransitionError,
    NoPersistencePathError,
    PersistenceError,
    UnknownFeatureError,
)
from core.models import (
    BatchPlan,
    EventType,
    ExecutionPlan,
    FeatureDefinition,
    FeatureProgress,
    OverallProgress,
    ProgressDocument,
    ProgressSummary,
    Timeline,
    WorkerStatus,
    WorkerSummary,
)
from core.models.progress import utcnow
from services.event_service import SOURCE_AGGREGATOR, EventBus

logger = logging.getLogger(__name__)

PathLike = Union[str, "os.PathLike[str]"]

# Fields accepted by update_feature()
UPDATABLE_FIELDS = frozenset({
    "status",
    "progress",
    "worker_id",
    "error",
    "output",
    "attempt_count",
    "metadata",
})


def percent_of(part: Union[int, float], total: Union[int, float]) -> int:
    """Integer percentage, halves rounded up (5 of 8 -> 63)."""
    if not total:
        return 0
    return clamp_progress(part / total * 100)


def clamp_progress(value: Union[int, float]) -> int:
    """Clamp a percentage into [0, 100], halves rounded up."""
    return int(min(100, max(0, value)) + 0.5)


class ProgressAggregator:
    """
    Aggregates progress for one distribution run.

    Accessors return copies; callers never hold live state.
    """

    def __init__(
        self,
        persistence_path: Optional[PathLike] = None,
        auto_save: Optional[bool] = None,
        save_interval_seconds: Optional[float] = None,
        event_bus: Optional[EventBus] = None,
        defaults: Optional[ProgressDefaults] = None,
    ):
        """
        Initialize aggregator.

        Args:
            persistence_path: JSON file used by save()/load()
            auto_save: Save periodically while state changes
            save_interval_seconds: Auto-save period
            event_bus: Shared bus; a private one is created if omitted
            defaults: Progress defaults (environment-backed if omitted)
        """
        self.defaults = defaults or get_defaults().progress
        self.persistence_path = Path(persistence_path) if persistence_path else None
        self.auto_save = self.defaults.auto_save if auto_save is None else auto_save
        self.save_interval_seconds = (
            save_interval_seconds
            if save_interval_seconds is not None
            else self.defaults.save_interval_seconds
        )

        self._owns_bus = event_bus is None
        self.events = event_bus or EventBus(source=SOURCE_AGGREGATOR)

        self._lock = threading.RLock()
        self._save_lock: Optional[asyncio.Lock] = None
        self._features: Dict[str, FeatureProgress] = {}
        self._workers: Dict[str, WorkerStatus] = {}
        self._overall = OverallProgress()
        self._initialized = False
        self._dirty = False
        self._auto_save_task: Optional[asyncio.Task] = None
        self._destroyed = False

    def _emit(self, event_type: EventType, data: Dict[str, Any]) -> None:
        self.events.emit(event_type, data, source=SOURCE_AGGREGATOR)

    # =========================================================================
    # INITIALIZATION
    # =========================================================================

    def initialize(
        self,
        features: Iterable[FeatureDefinition],
        plan: Optional[Union[ExecutionPlan, BatchPlan]] = None,
        resume: bool = False,
    ) -> None:
        """
        Seed one FeatureProgress per feature and one WorkerStatus per planned worker.

        Args:
            features: Submitted features
            plan: ExecutionPlan (workers come from its utilization map)
            resume: Keep completed entries already present (from load())
        """
        features = list(features)
        with self._lock:
            if self._initialized and not resume:
                logger.warning("Progress aggregator re-initialized without reset")

            previous = self._features if resume else {}
            seeded: Dict[str, FeatureProgress] = {}
            resumed = 0
            for feature in features:
                kept = previous.get(feature.id)
                if kept is not None and kept.status == FeatureStatus.COMPLETE:
                    seeded[feature.id] = kept
                    resumed += 1
                    continue
                seeded[feature.id] = FeatureProgress(
                    feature_id=feature.id,
                    capability=feature.capability,
                    priority=feature.priority.value,
                    metadata=dict(feature.metadata),
                )
            self._features = seeded

            if not resume:
                self._workers = {}
            if isinstance(plan, ExecutionPlan):
                for worker_id in plan.worker_ids:
                    self._workers.setdefault(worker_id, WorkerStatus(worker_id=worker_id))
            for status in self._workers.values():
                if status.current_feature is not None:
                    # Assignments do not survive a restart
                    status.release()

            self._overall = OverallProgress(
                total_features=len(seeded),
                start_time=utcnow(),
            )
            self._recalculate()
            self._initialized = True
            self._dirty = True
            worker_count = len(self._workers)

        if resumed:
            logger.info(f"Resumed {resumed} completed features from saved progress")
        self._emit(
            EventType.INITIALIZED,
            {"features": len(features), "workers": worker_count},
        )
        self._maybe_start_auto_save()

    # =========================================================================
    # UPDATES
    # =========================================================================

    def update_feature(
        self,
        feature_id: str,
        patch: Optional[Mapping[str, Any]] = None,
        **fields: Any,
    ) -> FeatureProgress:
        """
        Merge an update into a feature's progress.

        Args:
            feature_id: Seeded feature id
            patch: Fields to update (status, progress, worker_id, error,
                output, attempt_count, metadata); keyword arguments also work

        Returns:
            Copy of the updated FeatureProgress

        Raises:
            UnknownFeatureError: feature_id was never seeded
            InvalidTransitionError: the state machine forbids the transition
        """
        changes = {**(patch or {}), **fields}
        unknown = set(changes) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Unsupported progress fields: {sorted(unknown)}")

        with self._lock:
            current = self._features.get(feature_id)
            if current is None:
                raise UnknownFeatureError(feature_id)

            previous_status = current.status
            new_status = (
                FeatureStatus(changes["status"])
                if changes.get("status") is not None
                else previous_status
            )
            if new_status != previous_status and not previous_status.can_transition_to(new_status):
                raise InvalidTransitionError(feature_id, previous_status.value, new_status.value)

            previous_worker = current.worker_id
            if changes.get("worker_id"):
                current.worker_id = changes["worker_id"]
            if "progress" in changes and changes["progress"] is not None:
                current.progress = clamp_progress(changes["progress"])
            if "attempt_count" in changes and changes["attempt_count"] is not None:
                current.attempt_count = int(changes["attempt_count"])
            if "output" in changes:
                current.output = changes["output"]
            if changes.get("metadata"):
                current.metadata = {**current.metadata, **changes["metadata"]}

            if new_status == FeatureStatus.IN_PROGRESS:
                self._enter_in_progress(current, previous_status, previous_worker)
            elif new_status != previous_status:
                self._enter_terminal(current, new_status, changes.get("error"))
            elif new_status == FeatureStatus.FAILED and changes.get("error"):
                current.error = changes["error"]
            elif new_status == FeatureStatus.COMPLETE:
                current.progress = 100

            current.status = new_status
            self._recalculate()
            self._dirty = True
            snapshot = current.model_copy(deep=True)

        self._emit(
            EventType.FEATURE_UPDATED,
            {
                "feature_id": feature_id,
                "previous_status": previous_status.value,
                "current_status": snapshot.status.value,
                "progress": snapshot.progress,
            },
        )
        return snapshot

    def _enter_in_progress(
        self,
        current: FeatureProgress,
        previous_status: FeatureStatus,
        previous_worker: Optional[str],
    ) -> None:
        """Caller holds the lock."""
        if current.start_time is None:
            current.start_time = utcnow()
        if previous_status != FeatureStatus.IN_PROGRESS:
            current.end_time = None
            current.error = None

        if previous_worker and previous_worker != current.worker_id:
            old = self._workers.get(previous_worker)
            if old is not None and old.current_feature == current.feature_id:
                old.release()

        if current.worker_id:
            worker = self._worker(current.worker_id)
            worker.assign(current.feature_id)

    def _enter_terminal(
        self,
        current: FeatureProgress,
        new_status: FeatureStatus,
        error: Optional[str],
    ) -> None:
        """Caller holds the lock."""
        current.end_time = utcnow()
        if new_status == FeatureStatus.COMPLETE:
            current.progress = 100
            current.error = None
        else:
            current.error = error or current.error or "Feature failed"

        if not current.worker_id:
            return

        worker = self._worker(current.worker_id)
        if worker.current_feature == current.feature_id:
            worker.release()
        else:
            worker.last_seen = utcnow()

        if new_status == FeatureStatus.COMPLETE:
            worker.completed_features += 1
            if current.start_time is not None:
                worker.total_time_seconds += (current.end_time - current.start_time).total_seconds()
        else:
            worker.failed_features += 1

    def _worker(self, worker_id: str) -> WorkerStatus:
        """Get or create a worker entry. Caller holds the lock."""
        worker = self._workers.get(worker_id)
        if worker is None:
            worker = WorkerStatus(worker_id=worker_id)
            self._workers[worker_id] = worker
        return worker

    def reset_feature(self, feature_id: str) -> FeatureProgress:
        """
        Explicit re-run reset: back to pending with a clean slate.

        This is the only way out of COMPLETE.
        """
        with self._lock:
            current = self._features.get(feature_id)
            if current is None:
                raise UnknownFeatureError(feature_id)

            previous_status = current.status
            if current.worker_id:
                worker = self._workers.get(current.worker_id)
                if worker is not None and worker.current_feature == feature_id:
                    worker.release()

            reset = FeatureProgress(
                feature_id=feature_id,
                capability=current.capability,
                priority=current.priority,
                metadata={k: v for k, v in current.metadata.items() if k != "last_error"},
            )
            self._features[feature_id] = reset
            self._recalculate()
            self._dirty = True
            snapshot = reset.model_copy(deep=True)

        self._emit(
            EventType.FEATURE_UPDATED,
            {
                "feature_id": feature_id,
                "previous_status": previous_status.value,
                "current_status": snapshot.status.value,
                "progress": 0,
            },
        )
        return snapshot

    def _recalculate(self) -> None:
        """Recompute overall counters. Caller holds the lock."""
        counts = {status: 0 for status in FeatureStatus}
        for feature in self._features.values():
            counts[feature.status] += 1

        overall = self._overall
        overall.total_features = len(self._features)
        overall.completed_features = counts[FeatureStatus.COMPLETE]
        overall.in_progress_features = counts[FeatureStatus.IN_PROGRESS]
        overall.pending_features = counts[FeatureStatus.PENDING]
        overall.failed_features = counts[FeatureStatus.FAILED]

        total = overall.total_features
        overall.percent_complete = percent_of(overall.completed_features, total)
        overall.last_updated = utcnow()
        overall.estimated_end_time = self._estimate_end_time()

    def _estimate_end_time(self):
        """
        Average duration of completed features projected over the
        pending and in-progress ones. None until something completes.
        """
        durations = [
            (f.end_time - f.start_time).total_seconds()
            for f in self._features.values()
            if f.status == FeatureStatus.COMPLETE and f.start_time and f.end_time
        ]
        if not durations:
            return None
        remaining = self._overall.pending_features + self._overall.in_progress_features
        average = sum(durations) / len(durations)
        return utcnow() + timedelta(seconds=average * remaining)

    # =========================================================================
    # READS
    # =========================================================================

    def get_progress(self) -> OverallProgress:
        with self._lock:
            return self._overall.model_copy(deep=True)

    def get_feature_progress(self, feature_id: str) -> Optional[FeatureProgress]:
        with self._lock:
            feature = self._features.get(feature_id)
            return feature.model_copy(deep=True) if feature else None

    def get_all_feature_progress(self) -> List[FeatureProgress]:
        with self._lock:
            return [f.model_copy(deep=True) for f in self._features.values()]

    def get_worker_status(self, worker_id: str) -> Optional[WorkerStatus]:
        with self._lock:
            worker = self._workers.get(worker_id)
            return worker.model_copy(deep=True) if worker else None

    def get_all_worker_statuses(self) -> List[WorkerStatus]:
        with self._lock:
            return [w.model_copy(deep=True) for w in self._workers.values()]

    def get_summary(self) -> ProgressSummary:
        """Progress, compact worker list and timeline in one read."""
        with self._lock:
            progress = self._overall.model_copy(deep=True)
            workers = [
                WorkerSummary(
                    id=w.worker_id,
                    status=w.status,
                    completed=w.completed_features,
                    failed=w.failed_features,
                    active=w.is_active,
                )
                for w in self._workers.values()
            ]

        duration = (
            (utcnow() - progress.start_time).total_seconds()
            if progress.start_time else 0.0
        )
        return ProgressSummary(
            progress=progress,
            workers=workers,
            timeline=Timeline(
                started=progress.start_time,
                estimated_end=progress.estimated_end_time,
                duration_seconds=duration,
            ),
        )

    def to_document(self) -> ProgressDocument:
        """Snapshot of the full state in persisted form."""
        with self._lock:
            return ProgressDocument(
                version=self.defaults.persistence_version,
                progress=self._overall.model_copy(deep=True),
                features=[f.model_copy(deep=True) for f in self._features.values()],
                workers=[w.model_copy(deep=True) for w in self._workers.values()],
            )

    # =========================================================================
    # PERSISTENCE
    # =========================================================================

    def _resolve_path(self, path: Optional[PathLike]) -> Path:
        target = Path(path) if path else self.persistence_path
        if target is None:
            raise NoPersistencePathError()
        return target

    async def save(self, path: Optional[PathLike] = None) -> Path:
        """
        Write the full state to disk.

        Args:
            path: Overrides the configured persistence path

        Returns:
            Path written

        Raises:
            NoPersistencePathError: no path given or configured
        """
        target = self._resolve_path(path)
        if self._save_lock is None:
            self._save_lock = asyncio.Lock()

        async with self._save_lock:
            with self._lock:
                document = self.to_document()
                self._dirty = False
            text = document.model_dump_json(indent=2)

            loop = asyncio.get_running_loop()
            try:
                await loop.run_in_executor(None, _write_atomic, target, text)
            except BaseException:
                self._dirty = True
                raise

        logger.debug(f"Progress saved to {target}")
        self._emit(EventType.SAVED, {"path": str(target)})
        return target

    async def load(self, path: Optional[PathLike] = None) -> ProgressDocument:
        """
        Restore state written by save().

        Raises:
            NoPersistencePathError: no path given or configured
            FileNotFoundError: file does not exist
            PersistenceError: file is corrupt or has an unsupported version
        """
        target = self._resolve_path(path)
        loop = asyncio.get_running_loop()
        text = await loop.run_in_executor(None, target.read_text, "utf-8")

        try:
            document = ProgressDocument.model_validate_json(text)
        except ValidationError as e:
            raise PersistenceError(f"Invalid progress file {target}: {e}") from e

        if document.version != self.defaults.persistence_version:
            raise PersistenceError(
                f"Unsupported progress file version {document.version!r} "
                f"(expected {self.defaults.persistence_version!r})"
            )

        with self._lock:
            self._overall = document.progress
            self._features = {f.feature_id: f for f in document.features}
            self._workers = {w.worker_id: w for w in document.workers}
            self._initialized = True
            self._dirty = False

        logger.info(f"Progress loaded from {target}: {len(document.features)} features")
        self._emit(EventType.LOADED, {"path": str(target)})
        return document

    # =========================================================================
    # AUTO-SAVE
    # =========================================================================

    def _maybe_start_auto_save(self) -> None:
        if not self.auto_save or self.persistence_path is None or self._destroyed:
            return
        if self._auto_save_task is not None and not self._auto_save_task.done():
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("Auto-save not started: no running event loop")
            return
        self._auto_save_task = loop.create_task(self._auto_save_loop())

    async def _auto_save_loop(self) -> None:
        """Save on a fixed interval while state changes. Errors never stop the run."""
        while True:
            await asyncio.sleep(self.save_interval_seconds)
            if not self._dirty:
                continue
            try:
                await self.save()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.warning(f"Auto-save to {self.persistence_path} failed: {e}")
                self._emit(
                    EventType.SAVE_ERROR,
                    {"path": str(self.persistence_path), "error": str(e)},
                )

    def destroy(self) -> None:
        """Stop auto-save and drop subscribers. Safe to call repeatedly."""
        if self._auto_save_task is not None:
            self._auto_save_task.cancel()
            self._auto_save_task = None
        if self._owns_bus:
            self.events.clear()
        self._destroyed = True


def _write_atomic(target: Path, text: str) -> None:
    """Write to a temporary sibling and rename over the target."""
    target.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(
        dir=str(target.parent),
        prefix=f".{target.name}.",
        suffix=".tmp",
    )
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(text)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_name, target)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise


__all__ = [
    "ProgressAggregator",
    "UPDATABLE_FIELDS",
    "clamp_progress",
    "percent_of",
]
