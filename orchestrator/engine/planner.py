# ============================================================================
# EXECUTION PLANNER
# ============================================================================
# EPOCH: 1 - WORK DISTRIBUTION
# STATUS: Core - Worker assignment and time estimation
# PURPOSE: Turn a BatchPlan into worker assignments with resource estimates
# CREATED: 15 OCT 2026
# ============================================================================
"""
Execution Planner

Assigns the features of each batch to workers.

Per batch:
    1. Sort features by priority weight (critical > high > medium > low)
    2. For each feature pick the compatible worker with the lowest score
       (load in this batch, then accumulated estimated time, then order)
    3. Batch time is its longest assignment

Compatibility means: capability supported, memory/cpu large enough and the
per-batch concurrent limit not reached. A feature that fits no worker is
planned unassigned; the distributor serves it from any available worker
at dispatch time.

The plan is advisory. Dispatch still goes through the pool, which owns
actual worker availability.
"""

import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence

from core.config import PlannerDefaults, ResourceEstimate, get_defaults
from core.models import (
    Assignment,
    BatchPlan,
    ExecutionPlan,
    FeatureDefinition,
    PlannedBatch,
    WorkerUtilization,
)
from worker.contracts import WorkerInfo

logger = logging.getLogger(__name__)

# Rebalancing thresholds relative to mean batch load
OVERLOAD_FACTOR = 1.2
UNDERLOAD_FACTOR = 0.8


class ExecutionPlanner:
    """Creates execution plans from batch plans and worker lists."""

    def __init__(
        self,
        defaults: Optional[PlannerDefaults] = None,
        max_concurrent_per_worker: Optional[int] = None,
    ):
        """
        Initialize planner.

        Args:
            defaults: Resource estimates and priority tables
            max_concurrent_per_worker: Overrides defaults.max_concurrent_per_worker
        """
        self.defaults = defaults or get_defaults().planner
        self.max_concurrent_per_worker = max(
            1,
            max_concurrent_per_worker
            if max_concurrent_per_worker is not None
            else self.defaults.max_concurrent_per_worker,
        )

    # =========================================================================
    # ESTIMATION
    # =========================================================================

    def priority_weight(self, feature: FeatureDefinition) -> int:
        return self.defaults.priority_weights.get(feature.priority.value, 1)

    def estimate(self, feature: FeatureDefinition) -> ResourceEstimate:
        """Resource estimate for a feature, time scaled by priority."""
        base = self.defaults.estimate_for(feature.capability)
        multiplier = self.defaults.priority_time_multipliers.get(feature.priority.value, 1.0)
        return ResourceEstimate(
            seconds=round(base.seconds * multiplier),
            memory_mb=base.memory_mb,
            cpu=base.cpu,
        )

    # =========================================================================
    # PLANNING
    # =========================================================================

    def create_plan(
        self,
        batch_plan: BatchPlan,
        features: Mapping[str, FeatureDefinition],
        workers: Sequence[Any],
    ) -> ExecutionPlan:
        """
        Create an execution plan.

        Args:
            batch_plan: Output of BatchPlanner.plan()
            features: Feature id -> definition (e.g. DependencyGraph.features)
            workers: WorkerInfo, dicts or worker objects with `id`

        Returns:
            ExecutionPlan
        """
        infos = [WorkerInfo.coerce(w) for w in workers]
        utilization = {info.id: WorkerUtilization(worker_id=info.id) for info in infos}

        planned: List[PlannedBatch] = []
        current_offset = 0.0
        total_features = 0

        for batch in batch_plan.batches:
            batch_features = [features[fid] for fid in batch.feature_ids]
            assignments = self._assign_batch(batch_features, infos, utilization)
            batch_seconds = max((a.estimated_seconds for a in assignments), default=0.0)

            planned.append(PlannedBatch(
                batch_number=batch.batch_number,
                feature_ids=list(batch.feature_ids),
                assignments=assignments,
                estimated_seconds=batch_seconds,
                start_offset_seconds=current_offset,
                end_offset_seconds=current_offset + batch_seconds,
            ))
            current_offset += batch_seconds
            total_features += batch.size

        plan = ExecutionPlan(
            batches=planned,
            worker_utilization=utilization,
            total_features=total_features,
            total_estimated_seconds=current_offset,
        )

        logger.info(
            f"Execution plan created: {plan.total_batches} batches, "
            f"{total_features} features, {len(infos)} workers, "
            f"~{current_offset:.0f}s estimated"
        )
        return plan

    def _assign_batch(
        self,
        batch: List[FeatureDefinition],
        workers: List[WorkerInfo],
        utilization: Dict[str, WorkerUtilization],
    ) -> List[Assignment]:
        """Assign one batch; mutates `utilization`."""
        ordered = sorted(batch, key=self.priority_weight, reverse=True)
        batch_load = {w.id: 0 for w in workers}
        assignments: List[Assignment] = []

        for feature in ordered:
            estimate = self.estimate(feature)
            worker = self._select_worker(feature, estimate, workers, utilization, batch_load)

            if worker is None:
                if any(w.supports(feature.capability) for w in workers):
                    logger.debug(
                        f"Feature {feature.id} left unassigned: compatible workers at capacity"
                    )
                else:
                    logger.warning(
                        f"No suitable worker for feature {feature.id} "
                        f"(capability={feature.capability})"
                    )
            else:
                batch_load[worker.id] += 1
                util = utilization[worker.id]
                util.assigned_features += 1
                util.estimated_seconds += estimate.seconds
                util.current_load = max(util.current_load, batch_load[worker.id])

            assignments.append(Assignment(
                feature_id=feature.id,
                worker_id=worker.id if worker else None,
                capability=feature.capability,
                priority=feature.priority.value,
                estimated_seconds=estimate.seconds,
                estimated_memory_mb=estimate.memory_mb,
                estimated_cpu=estimate.cpu,
            ))

        return assignments

    def _select_worker(
        self,
        feature: FeatureDefinition,
        estimate: ResourceEstimate,
        workers: List[WorkerInfo],
        utilization: Dict[str, WorkerUtilization],
        batch_load: Dict[str, int],
    ) -> Optional[WorkerInfo]:
        """Lowest-scoring compatible worker, or None."""
        best = None
        best_score = None

        for index, worker in enumerate(workers):
            if not worker.supports(feature.capability):
                continue
            if not worker.capabilities.has_capacity(estimate.memory_mb, estimate.cpu):
                continue
            if batch_load[worker.id] >= self.max_concurrent_per_worker:
                continue

            score = (batch_load[worker.id], utilization[worker.id].estimated_seconds, index)
            if best_score is None or score < best_score:
                best, best_score = worker, score

        return best

    # =========================================================================
    # OPTIMIZATION
    # =========================================================================

    def optimize_plan(
        self,
        plan: ExecutionPlan,
        workers: Optional[Sequence[Any]] = None,
    ) -> ExecutionPlan:
        """
        Rebalance a plan.

        For each batch, moves one assignment from a worker loaded above
        120% of the mean batch load to a compatible worker below 80%.

        Args:
            plan: Plan to rebalance (not modified)
            workers: Worker list; defaults to the plan's workers

        Returns:
            New ExecutionPlan
        """
        optimized = plan.model_copy(deep=True)
        if workers is not None:
            infos = [WorkerInfo.coerce(w) for w in workers]
        else:
            infos = [WorkerInfo(id=wid) for wid in optimized.worker_ids]
        if not infos:
            return optimized

        by_id = {info.id: info for info in infos}
        for info in infos:
            optimized.worker_utilization.setdefault(
                info.id, WorkerUtilization(worker_id=info.id)
            )

        moves = 0
        for batch in optimized.batches:
            loads = {info.id: 0.0 for info in infos}
            for assignment in batch.assignments:
                if assignment.worker_id in loads:
                    loads[assignment.worker_id] += assignment.estimated_seconds

            avg_load = sum(loads.values()) / len(infos)
            overloaded = [wid for wid, load in loads.items() if load > avg_load * OVERLOAD_FACTOR]
            underloaded = [wid for wid, load in loads.items() if load < avg_load * UNDERLOAD_FACTOR]
            if not overloaded or not underloaded:
                continue

            for assignment in batch.assignments:
                if assignment.worker_id not in overloaded:
                    continue
                target = next(
                    (wid for wid in underloaded if by_id[wid].supports(assignment.capability)),
                    None,
                )
                if target is None:
                    continue

                source = optimized.worker_utilization[assignment.worker_id]
                source.assigned_features -= 1
                source.estimated_seconds -= assignment.estimated_seconds
                dest = optimized.worker_utilization[target]
                dest.assigned_features += 1
                dest.estimated_seconds += assignment.estimated_seconds

                assignment.worker_id = target
                moves += 1
                break

        logger.debug(f"Plan optimized: {moves} assignments moved")
        return optimized


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = [
    "ExecutionPlanner",
    "OVERLOAD_FACTOR",
    "UNDERLOAD_FACTOR",
]
