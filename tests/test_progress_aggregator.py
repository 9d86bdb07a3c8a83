# ============================================================================
# PROGRESS AGGREGATOR TESTS
# ============================================================================
# EPOCH: 1 - WORK DISTRIBUTION
# STATUS: Tests - Run-wide progress state and persistence
# PURPOSE: Verify ProgressAggregator updates, counters, events, save/load
# CREATED: 16 OCT 2026
# ============================================================================
"""
Progress Aggregator Tests

Covers:
1. Seeding from features and an execution plan
2. update_feature: clamping, transitions, worker bookkeeping
3. Overall counters and percent complete
4. Persistence round trip, versioning and failure modes
5. Auto-save and destroy

Run with:
    pytest tests/test_progress_aggregator.py -v
"""

import asyncio
import json

import pytest

from core.config import PlannerDefaults, ProgressDefaults
from core.contracts import FeatureStatus, WorkerState
from core.errors import (
    InvalidTransitionError,
    NoPersistencePathError,
    PersistenceError,
    UnknownFeatureError,
)
from core.models import EventType, FeatureDefinition
from orchestrator.engine import BatchPlanner, DependencyGraphAnalyzer, ExecutionPlanner
from orchestrator.progress import ProgressAggregator, clamp_progress, percent_of


# ============================================================================
# FIXTURES
# ============================================================================

@pytest.fixture
def features():
    return [
        FeatureDefinition(id="A", capability="backend"),
        FeatureDefinition(id="B", capability="backend", dependencies=["A"]),
        FeatureDefinition(id="C", capability="tester", dependencies=["A"], priority="high"),
    ]


@pytest.fixture
def plan(features):
    graph = DependencyGraphAnalyzer().validate(features)
    return ExecutionPlanner(PlannerDefaults()).create_plan(
        BatchPlanner().plan(graph), graph.features, [{"id": "w1"}, {"id": "w2"}]
    )


@pytest.fixture
def aggregator(features, plan):
    agg = ProgressAggregator(auto_save=False, defaults=ProgressDefaults())
    agg.initialize(features, plan)
    yield agg
    agg.destroy()


def run_feature(agg, feature_id, worker_id="w1", status=FeatureStatus.COMPLETE):
    agg.update_feature(feature_id, status=FeatureStatus.IN_PROGRESS, worker_id=worker_id)
    return agg.update_feature(feature_id, status=status)


# ============================================================================
# INITIALIZATION
# ============================================================================

class TestInitialize:
    """Seeding state."""

    def test_features_seeded_pending(self, aggregator):
        entries = aggregator.get_all_feature_progress()
        assert [e.feature_id for e in entries] == ["A", "B", "C"]
        assert all(e.status == FeatureStatus.PENDING for e in entries)
        assert aggregator.get_feature_progress("C").priority == "high"

    def test_workers_seeded_from_plan(self, aggregator):
        workers = aggregator.get_all_worker_statuses()
        assert [w.worker_id for w in workers] == ["w1", "w2"]
        assert all(w.status == WorkerState.IDLE for w in workers)

    def test_overall_counters(self, aggregator):
        progress = aggregator.get_progress()
        assert progress.total_features == 3
        assert progress.pending_features == 3
        assert progress.percent_complete == 0
        assert progress.start_time is not None

    def test_initialized_event(self, features, plan):
        agg = ProgressAggregator(auto_save=False)
        received = []
        agg.events.subscribe(EventType.INITIALIZED, received.append)
        agg.initialize(features, plan)
        assert received[0].data == {"features": 3, "workers": 2}
        assert received[0].source == "aggregator"


# ============================================================================
# UPDATES
# ============================================================================

class TestUpdateFeature:
    """Test update_feature()."""

    def test_progress_clamped_high(self, aggregator):
        assert aggregator.update_feature("A", progress=150).progress == 100

    def test_progress_clamped_low(self, aggregator):
        assert aggregator.update_feature("A", progress=-10).progress == 0

    def test_clamp_helper(self):
        assert clamp_progress(49.6) == 50
        assert clamp_progress(101) == 100
        assert clamp_progress(62.5) == 63
        assert clamp_progress(12.5) == 13
        assert percent_of(5, 8) == 63
        assert percent_of(0, 0) == 0

    def test_unknown_feature(self, aggregator):
        with pytest.raises(UnknownFeatureError):
            aggregator.update_feature("Z", progress=10)

    def test_unsupported_field(self, aggregator):
        with pytest.raises(ValueError):
            aggregator.update_feature("A", colour="red")

    def test_patch_dict_form(self, aggregator):
        updated = aggregator.update_feature(
            "A", {"status": "in-progress", "worker_id": "w1", "progress": 30}
        )
        assert updated.status == FeatureStatus.IN_PROGRESS
        assert updated.progress == 30
        assert updated.start_time is not None

    def test_complete_forces_full_progress(self, aggregator):
        result = run_feature(aggregator, "A")
        assert result.progress == 100
        assert result.end_time is not None
        assert result.error is None

    def test_failed_keeps_error(self, aggregator):
        aggregator.update_feature("A", status="in-progress", worker_id="w1", progress=40)
        result = aggregator.update_feature("A", status="failed", error="boom")
        assert result.error == "boom"
        assert result.progress == 40

    def test_complete_cannot_be_reopened(self, aggregator):
        run_feature(aggregator, "A")
        with pytest.raises(InvalidTransitionError):
            aggregator.update_feature("A", status="in-progress")

    def test_progress_on_complete_stays_full(self, aggregator):
        run_feature(aggregator, "A")
        assert aggregator.update_feature("A", progress=20).progress == 100

    def test_failed_can_be_reassigned(self, aggregator):
        run_feature(aggregator, "A", status=FeatureStatus.FAILED)
        result = aggregator.update_feature("A", status="in-progress", worker_id="w2")
        assert result.status == FeatureStatus.IN_PROGRESS
        assert result.error is None
        assert result.end_time is None

    def test_metadata_merged(self, aggregator):
        aggregator.update_feature("A", metadata={"a": 1})
        result = aggregator.update_feature("A", metadata={"last_error": "x"})
        assert result.metadata == {"a": 1, "last_error": "x"}

    def test_feature_updated_event(self, aggregator):
        received = []
        aggregator.events.subscribe(EventType.FEATURE_UPDATED, received.append)
        aggregator.update_feature("A", status="in-progress", worker_id="w1")
        assert received[0].data == {
            "feature_id": "A",
            "previous_status": "pending",
            "current_status": "in-progress",
            "progress": 0,
        }

    def test_accessors_return_copies(self, aggregator):
        copy = aggregator.get_feature_progress("A")
        copy.progress = 99
        assert aggregator.get_feature_progress("A").progress == 0

    def test_unknown_ids_read_as_none(self, aggregator):
        assert aggregator.get_feature_progress("Z") is None
        assert aggregator.get_worker_status("nobody") is None

    def test_reset_feature(self, aggregator):
        run_feature(aggregator, "A")
        reset = aggregator.reset_feature("A")
        assert reset.status == FeatureStatus.PENDING
        assert reset.progress == 0
        assert reset.attempt_count == 0
        assert aggregator.get_progress().completed_features == 0


# ============================================================================
# WORKERS AND COUNTERS
# ============================================================================

class TestWorkerBookkeeping:
    """Worker status follows its assigned feature."""

    def test_worker_active_while_running(self, aggregator):
        aggregator.update_feature("A", status="in-progress", worker_id="w1")
        status = aggregator.get_worker_status("w1")
        assert status.status == WorkerState.ACTIVE
        assert status.current_feature == "A"

    def test_worker_idle_after_complete(self, aggregator):
        run_feature(aggregator, "A", "w1")
        status = aggregator.get_worker_status("w1")
        assert status.status == WorkerState.IDLE
        assert status.current_feature is None
        assert status.completed_features == 1
        assert status.failed_features == 0

    def test_worker_idle_after_failure(self, aggregator):
        run_feature(aggregator, "A", "w1", status=FeatureStatus.FAILED)
        status = aggregator.get_worker_status("w1")
        assert status.current_feature is None
        assert status.failed_features == 1
        assert status.completed_features == 0

    def test_reassignment_moves_worker(self, aggregator):
        aggregator.update_feature("A", status="in-progress", worker_id="w1")
        aggregator.update_feature("A", status="in-progress", worker_id="w2")
        assert aggregator.get_worker_status("w1").current_feature is None
        assert aggregator.get_worker_status("w2").current_feature == "A"

    def test_unplanned_worker_tracked(self, aggregator):
        aggregator.update_feature("A", status="in-progress", worker_id="w9")
        assert aggregator.get_worker_status("w9").is_active

    def test_percent_complete_rounded(self):
        defs = [FeatureDefinition(id=f"f{i}", capability="backend") for i in range(7)]
        agg = ProgressAggregator(auto_save=False)
        agg.initialize(defs)
        for i in range(3):
            run_feature(agg, f"f{i}", worker_id=f"w{i}")

        progress = agg.get_progress()
        assert progress.completed_features == 3
        assert progress.pending_features == 4
        assert progress.percent_complete == 43
        assert progress.estimated_end_time is not None

    @pytest.mark.parametrize("completed, expected", [(1, 13), (4, 50), (5, 63), (8, 100)])
    def test_percent_complete_rounds_halves_up(self, completed, expected):
        defs = [FeatureDefinition(id=f"f{i}", capability="backend") for i in range(8)]
        agg = ProgressAggregator(auto_save=False, defaults=ProgressDefaults())
        agg.initialize(defs)
        for i in range(completed):
            run_feature(agg, f"f{i}", worker_id="w1")
        assert agg.get_progress().percent_complete == expected

    def test_summary(self, aggregator):
        run_feature(aggregator, "A", "w1")
        summary = aggregator.get_summary()
        assert summary.progress.completed_features == 1
        assert {w.id for w in summary.workers} == {"w1", "w2"}
        assert summary.timeline.started is not None
        assert summary.plan is None


# ============================================================================
# PERSISTENCE
# ============================================================================

class TestPersistence:
    """save() / load()."""

    def test_round_trip(self, aggregator, features, tmp_path):
        path = tmp_path / "progress.json"
        run_feature(aggregator, "A", "w1")
        aggregator.update_feature("B", status="in-progress", worker_id="w2", progress=55)
        aggregator.update_feature("C", metadata={"note": "x"})

        asyncio.run(aggregator.save(path))

        fresh = ProgressAggregator(persistence_path=path, auto_save=False)
        asyncio.run(fresh.load())

        def dump(agg):
            return (
                [f.model_dump() for f in agg.get_all_feature_progress()],
                [w.model_dump() for w in agg.get_all_worker_statuses()],
            )

        assert dump(fresh) == dump(aggregator)
        assert fresh.get_progress() == aggregator.get_progress()

    def test_saved_document_shape(self, aggregator, tmp_path):
        path = tmp_path / "nested" / "progress.json"
        asyncio.run(aggregator.save(path))
        document = json.loads(path.read_text())
        assert document["version"] == "1.0"
        assert {"timestamp", "progress", "features", "workers"} <= set(document)
        assert len(document["features"]) == 3
        assert list(path.parent.glob("*.tmp")) == []

    def test_save_without_path(self, aggregator):
        with pytest.raises(NoPersistencePathError):
            asyncio.run(aggregator.save())

    def test_load_without_path(self):
        with pytest.raises(NoPersistencePathError):
            asyncio.run(ProgressAggregator(auto_save=False).load())

    def test_load_missing_file(self, tmp_path):
        agg = ProgressAggregator(persistence_path=tmp_path / "none.json", auto_save=False)
        with pytest.raises(FileNotFoundError):
            asyncio.run(agg.load())

    def test_load_corrupt_file(self, tmp_path):
        path = tmp_path / "progress.json"
        path.write_text("{not json")
        with pytest.raises(PersistenceError):
            asyncio.run(ProgressAggregator(persistence_path=path, auto_save=False).load())

    def test_load_unknown_version(self, aggregator, tmp_path):
        path = tmp_path / "progress.json"
        asyncio.run(aggregator.save(path))
        document = json.loads(path.read_text())
        document["version"] = "9.9"
        path.write_text(json.dumps(document))

        with pytest.raises(PersistenceError):
            asyncio.run(ProgressAggregator(persistence_path=path, auto_save=False).load())

    def test_saved_and_loaded_events(self, aggregator, tmp_path):
        path = tmp_path / "progress.json"
        received = []
        aggregator.events.subscribe(None, received.append)

        asyncio.run(aggregator.save(path))
        asyncio.run(aggregator.load(path))

        names = [e.name for e in received]
        assert names == ["saved", "loaded"]
        assert received[0].data == {"path": str(path)}

    def test_resume_keeps_completed(self, aggregator, features, plan, tmp_path):
        path = tmp_path / "progress.json"
        run_feature(aggregator, "A", "w1")
        aggregator.update_feature("B", status="in-progress", worker_id="w2")
        asyncio.run(aggregator.save(path))

        resumed = ProgressAggregator(persistence_path=path, auto_save=False)
        asyncio.run(resumed.load())
        resumed.initialize(features, plan, resume=True)

        assert resumed.get_feature_progress("A").status == FeatureStatus.COMPLETE
        assert resumed.get_feature_progress("B").status == FeatureStatus.PENDING
        assert resumed.get_worker_status("w2").current_feature is None
        assert resumed.get_worker_status("w1").completed_features == 1
        assert resumed.get_progress().completed_features == 1


# ============================================================================
# AUTO-SAVE / DESTROY
# ============================================================================

class TestAutoSave:
    """Background saving."""

    def test_auto_save_writes_file(self, features, tmp_path):
        path = tmp_path / "progress.json"

        async def run_test():
            agg = ProgressAggregator(
                persistence_path=path, auto_save=True, save_interval_seconds=0.01
            )
            agg.initialize(features)
            agg.update_feature("A", progress=10)
            await asyncio.sleep(0.1)
            agg.destroy()

        asyncio.run(run_test())
        assert path.exists()

    def test_auto_save_failure_emits_event(self, features, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("")
        received = []

        async def run_test():
            agg = ProgressAggregator(
                persistence_path=blocker / "progress.json",
                auto_save=True,
                save_interval_seconds=0.01,
            )
            agg.events.subscribe(EventType.SAVE_ERROR, received.append)
            agg.initialize(features)
            await asyncio.sleep(0.1)
            agg.destroy()

        asyncio.run(run_test())
        assert received
        assert received[0].data["path"] == str(blocker / "progress.json")

    def test_auto_save_needs_running_loop(self, features, tmp_path):
        agg = ProgressAggregator(persistence_path=tmp_path / "p.json", auto_save=True)
        agg.initialize(features)
        assert agg._auto_save_task is None

    def test_destroy_is_idempotent(self, aggregator):
        aggregator.events.subscribe(None, lambda e: None)
        aggregator.destroy()
        aggregator.destroy()
        assert aggregator.events.subscriber_count == 0
