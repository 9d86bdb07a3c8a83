# ============================================================================
# EXECUTION PLANNER TESTS
# ============================================================================
# EPOCH: 1 - WORK DISTRIBUTION
# STATUS: Tests - Worker assignment and rebalancing
# PURPOSE: Verify ExecutionPlanner.create_plan and optimize_plan
# CREATED: 16 OCT 2026
# ============================================================================
"""
Execution Planner Tests

Covers:
1. Priority ordering and time estimates
2. Worker selection (capability, capacity, per-batch load)
3. Unassigned features when nothing fits
4. Batch time windows
5. Rebalancing overloaded workers

Run with:
    pytest tests/test_execution_planner.py -v
"""

import pytest

from core.config import PlannerDefaults
from core.models import FeatureDefinition, FeaturePriority
from orchestrator.engine import BatchPlanner, DependencyGraphAnalyzer, ExecutionPlanner
from worker.contracts import WorkerCapabilities, WorkerInfo


def build(features, workers, **planner_kwargs):
    graph = DependencyGraphAnalyzer().validate(features)
    batch_plan = BatchPlanner().plan(graph)
    planner = ExecutionPlanner(PlannerDefaults(), **planner_kwargs)
    return planner, planner.create_plan(batch_plan, graph.features, workers)


def worker(worker_id, capabilities=None, memory_mb=None):
    return WorkerInfo(
        id=worker_id,
        capabilities=WorkerCapabilities(capabilities=capabilities or [], memory_mb=memory_mb),
    )


# ============================================================================
# ESTIMATES
# ============================================================================

class TestEstimates:
    """Resource estimates per capability and priority."""

    def test_capability_estimate(self):
        planner = ExecutionPlanner(PlannerDefaults())
        estimate = planner.estimate(FeatureDefinition(id="a", capability="tester"))
        assert estimate.seconds == 180
        assert estimate.memory_mb == 256

    def test_priority_scales_time(self):
        planner = ExecutionPlanner(PlannerDefaults())
        high = FeatureDefinition(id="a", capability="backend", priority="high")
        low = FeatureDefinition(id="b", capability="backend", priority="low")
        assert planner.estimate(high).seconds == 360
        assert planner.estimate(low).seconds == 240

    def test_unknown_capability_uses_default(self):
        planner = ExecutionPlanner(PlannerDefaults())
        estimate = planner.estimate(FeatureDefinition(id="a", capability="translator"))
        assert estimate.seconds == 300
        assert estimate.memory_mb == 512


# ============================================================================
# ASSIGNMENT
# ============================================================================

class TestCreatePlan:
    """Test ExecutionPlanner.create_plan()."""

    def test_spreads_batch_over_workers(self):
        features = [{"id": f"f{i}", "capability": "backend"} for i in range(3)]
        _, plan = build(features, [worker("w1"), worker("w2")], max_concurrent_per_worker=2)

        by_feature = {a.feature_id: a.worker_id for a in plan.batches[0].assignments}
        assert by_feature == {"f0": "w1", "f1": "w2", "f2": "w1"}
        assert plan.worker_utilization["w1"].assigned_features == 2
        assert plan.worker_utilization["w2"].assigned_features == 1

    def test_priority_order_within_batch(self):
        features = [
            {"id": "low", "capability": "backend", "priority": "low"},
            {"id": "crit", "capability": "backend", "priority": "critical"},
            {"id": "mid", "capability": "backend"},
            {"id": "high", "capability": "backend", "priority": "high"},
        ]
        _, plan = build(features, [worker("w1")], max_concurrent_per_worker=4)
        assert [a.feature_id for a in plan.batches[0].assignments] == ["crit", "high", "mid", "low"]

    def test_equal_priority_keeps_submission_order(self):
        features = [{"id": fid, "capability": "backend"} for fid in ("c", "a", "b")]
        _, plan = build(features, [worker("w1")], max_concurrent_per_worker=3)
        assert [a.feature_id for a in plan.batches[0].assignments] == ["c", "a", "b"]

    def test_capability_match(self):
        features = [
            {"id": "api", "capability": "backend"},
            {"id": "ui", "capability": "frontend"},
        ]
        workers = [worker("fe", ["frontend"]), worker("be", ["backend"])]
        _, plan = build(features, workers)
        assert plan.assignment_for("api").worker_id == "be"
        assert plan.assignment_for("ui").worker_id == "fe"

    def test_no_compatible_worker_left_unassigned(self):
        _, plan = build([{"id": "api", "capability": "backend"}], [worker("fe", ["frontend"])])
        assignment = plan.assignment_for("api")
        assert assignment is not None
        assert assignment.worker_id is None
        assert plan.total_features == 1

    def test_memory_capacity_respected(self):
        _, plan = build(
            [{"id": "api", "capability": "backend"}],
            [worker("small", memory_mb=256), worker("large", memory_mb=2048)],
        )
        assert plan.assignment_for("api").worker_id == "large"

    def test_concurrent_limit_per_batch(self):
        features = [{"id": f"f{i}", "capability": "backend"} for i in range(2)]
        _, plan = build(features, [worker("w1")])
        assigned = [a.worker_id for a in plan.batches[0].assignments]
        assert assigned == ["w1", None]

    def test_load_resets_between_batches(self):
        features = [
            {"id": "a", "capability": "backend"},
            {"id": "b", "capability": "backend", "dependencies": ["a"]},
        ]
        _, plan = build(features, [worker("w1")])
        assert plan.assignment_for("a").worker_id == "w1"
        assert plan.assignment_for("b").worker_id == "w1"

    def test_batch_time_windows(self):
        features = [
            {"id": "a", "capability": "backend"},
            {"id": "b", "capability": "tester"},
            {"id": "c", "capability": "reviewer", "dependencies": ["a", "b"]},
        ]
        _, plan = build(features, [worker("w1"), worker("w2")])

        first, second = plan.batches
        assert first.estimated_seconds == 300
        assert first.start_offset_seconds == 0
        assert second.start_offset_seconds == 300
        assert second.end_offset_seconds == 420
        assert plan.total_estimated_seconds == 420

    def test_accepts_worker_dicts_and_objects(self):
        class FakeWorker:
            id = "obj"
            capabilities = ["backend"]

        features = [{"id": f"f{i}", "capability": "backend"} for i in range(2)]
        _, plan = build(features, [{"id": "dict", "capabilities": {"agents": ["backend"]}}, FakeWorker()])
        assert set(plan.worker_ids) == {"dict", "obj"}

    def test_statistics(self):
        features = [{"id": "a", "capability": "backend"}]
        _, plan = build(features, [worker("w1"), worker("w2")])
        stats = plan.statistics()
        assert stats["total_batches"] == 1
        assert stats["total_features"] == 1
        assert stats["worker_stats"]["w1"]["utilization_percent"] == pytest.approx(100.0)
        assert stats["worker_stats"]["w2"]["features"] == 0


# ============================================================================
# OPTIMIZATION
# ============================================================================

class TestOptimizePlan:
    """Test ExecutionPlanner.optimize_plan()."""

    def test_moves_one_assignment_from_overloaded_worker(self):
        features = [{"id": f"f{i}", "capability": "backend"} for i in range(3)]
        planner, plan = build(features, [worker("w1")], max_concurrent_per_worker=3)

        optimized = planner.optimize_plan(plan, [worker("w1"), worker("w2")])

        moved = [a for a in optimized.batches[0].assignments if a.worker_id == "w2"]
        assert len(moved) == 1
        assert optimized.worker_utilization["w1"].assigned_features == 2
        assert optimized.worker_utilization["w2"].assigned_features == 1
        assert optimized.worker_utilization["w2"].estimated_seconds == 300

    def test_input_plan_untouched(self):
        features = [{"id": f"f{i}", "capability": "backend"} for i in range(3)]
        planner, plan = build(features, [worker("w1")], max_concurrent_per_worker=3)
        planner.optimize_plan(plan, [worker("w1"), worker("w2")])
        assert all(a.worker_id == "w1" for a in plan.batches[0].assignments)

    def test_incompatible_target_not_used(self):
        features = [{"id": f"f{i}", "capability": "backend"} for i in range(3)]
        planner, plan = build(features, [worker("w1")], max_concurrent_per_worker=3)
        optimized = planner.optimize_plan(plan, [worker("w1"), worker("w2", ["frontend"])])
        assert all(a.worker_id == "w1" for a in optimized.batches[0].assignments)

    def test_balanced_plan_unchanged(self):
        features = [{"id": f"f{i}", "capability": "backend"} for i in range(2)]
        workers = [worker("w1"), worker("w2")]
        planner, plan = build(features, workers)
        optimized = planner.optimize_plan(plan, workers)
        assert [a.worker_id for a in optimized.batches[0].assignments] == ["w1", "w2"]
