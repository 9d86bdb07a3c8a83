# ============================================================================
# DEPENDENCY EVALUATOR
# ============================================================================
# EPOCH: 1 - WORK DISTRIBUTION
# STATUS: Core - Dependency validation and topological batching
# PURPOSE: Validate a feature set and split it into concurrency-safe batches
# CREATED: 15 OCT 2026
# ============================================================================
"""
Dependency Evaluator

Core logic for dependency resolution.

Features:
- Dependency graph construction
- Unknown dependency and duplicate id detection
- Cycle detection (every cycle reported as a closed path)
- Topological ordering (Kahn's algorithm, stable input order)
- Topological layering into batches

The analyzer and planner are stateless - they take feature definitions
as input and never mutate them.
"""

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Union

from core.errors import (
    CyclicDependencyError,
    DuplicateFeatureError,
    EmptyInputError,
    UnknownDependencyError,
)
from core.models import Batch, BatchPlan, FeatureDefinition

logger = logging.getLogger(__name__)

FeatureInput = Union[FeatureDefinition, Dict[str, Any]]


# ============================================================================
# DATA STRUCTURES
# ============================================================================

@dataclass
class DependencyGraph:
    """
    Validated dependency graph for a feature set.

    An edge A -> B means "B depends on A" (A must complete before B).
    Dict order is the order features were submitted in.
    """
    # Feature ID -> definition
    features: Dict[str, FeatureDefinition] = field(default_factory=dict)

    # Feature ID -> features it depends on
    dependencies: Dict[str, List[str]] = field(default_factory=dict)

    # Feature ID -> features that depend on it
    dependents: Dict[str, List[str]] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.features)

    def __contains__(self, feature_id: object) -> bool:
        return feature_id in self.features

    @property
    def ids(self) -> List[str]:
        return list(self.features.keys())

    def get_feature(self, feature_id: str) -> Optional[FeatureDefinition]:
        return self.features.get(feature_id)

    def get_dependencies(self, feature_id: str) -> List[str]:
        """Get features that this feature depends on."""
        return list(self.dependencies.get(feature_id, []))

    def get_dependents(self, feature_id: str) -> List[str]:
        """Get features that depend on this feature."""
        return list(self.dependents.get(feature_id, []))

    def root_features(self) -> List[FeatureDefinition]:
        """Features with no dependencies."""
        return [self.features[fid] for fid, deps in self.dependencies.items() if not deps]

    def leaf_features(self) -> List[FeatureDefinition]:
        """Features nothing depends on."""
        return [self.features[fid] for fid, deps in self.dependents.items() if not deps]

    def topological_order(self) -> List[str]:
        """
        Kahn's algorithm.

        Roots come first in submission order; ties are broken by the order
        in which features become ready.
        """
        in_degree = {fid: len(deps) for fid, deps in self.dependencies.items()}
        queue = deque([fid for fid, degree in in_degree.items() if degree == 0])
        ordered: List[str] = []

        while queue:
            current = queue.popleft()
            ordered.append(current)
            for dependent in self.dependents.get(current, []):
                in_degree[dependent] -= 1
                if in_degree[dependent] == 0:
                    queue.append(dependent)

        if len(ordered) != len(self.features):
            # Only reachable if the graph was built without validation
            remaining = [fid for fid in self.features if fid not in ordered]
            raise CyclicDependencyError([remaining])

        return ordered

    def statistics(self) -> Dict[str, Any]:
        """Graph statistics for reporting."""
        plan = BatchPlanner().plan(self)
        total = len(self.features)
        edge_count = sum(len(deps) for deps in self.dependencies.values())
        return {
            "total_features": total,
            "root_features": len(self.root_features()),
            "leaf_features": len(self.leaf_features()),
            "total_batches": plan.total_batches,
            "max_parallelism": plan.max_parallelism,
            "avg_batch_size": (total / plan.total_batches) if plan.total_batches else 0.0,
            "avg_dependencies": (edge_count / total) if total else 0.0,
        }

    def to_dict(self) -> Dict[str, Any]:
        """Export for visualization."""
        return {
            "features": [f.model_dump(mode="json") for f in self.features.values()],
            "dependencies": [
                {"id": fid, "dependencies": list(deps)}
                for fid, deps in self.dependencies.items()
            ],
            "statistics": self.statistics(),
        }


# ============================================================================
# ANALYZER
# ============================================================================

class DependencyGraphAnalyzer:
    """Validates a feature set and builds its dependency graph."""

    def validate(self, features: Iterable[FeatureInput]) -> DependencyGraph:
        """
        Validate features and return the graph.

        Checks, in order:
        - At least one feature
        - Unique ids
        - Every dependency names a submitted feature (all offenders reported)
        - No cycles (every cycle reported)

        Args:
            features: FeatureDefinitions or dicts accepted by FeatureDefinition

        Returns:
            DependencyGraph

        Raises:
            EmptyInputError, DuplicateFeatureError,
            UnknownDependencyError, CyclicDependencyError
        """
        definitions = [self._coerce(f) for f in features]
        if not definitions:
            raise EmptyInputError()

        graph = DependencyGraph()
        for feature in definitions:
            if feature.id in graph.features:
                raise DuplicateFeatureError(feature.id)
            graph.features[feature.id] = feature
            graph.dependencies[feature.id] = list(feature.dependencies)
            graph.dependents[feature.id] = []

        missing = [
            (fid, dep_id)
            for fid, deps in graph.dependencies.items()
            for dep_id in deps
            if dep_id not in graph.features
        ]
        if missing:
            logger.debug(f"Unknown dependencies: {missing}")
            raise UnknownDependencyError(missing)

        cycles = self.detect_cycles(graph.dependencies)
        if cycles:
            logger.debug(f"Cycles detected: {cycles}")
            raise CyclicDependencyError(cycles)

        for fid, deps in graph.dependencies.items():
            for dep_id in deps:
                graph.dependents[dep_id].append(fid)

        logger.debug(f"Validated dependency graph: {len(graph)} features")
        return graph

    def detect_cycles(self, dependencies: Dict[str, List[str]]) -> List[List[str]]:
        """
        Find cycles with an iterative depth-first search.

        Each cycle is a closed path following dependency edges, e.g.
        ["A", "B", "A"] when A depends on B and B depends on A.
        Dependencies on ids missing from the map are ignored.
        """
        visited = set()
        cycles: List[List[str]] = []

        for start in dependencies:
            if start in visited:
                continue

            path: List[str] = [start]
            on_path = {start}
            visited.add(start)
            stack = [iter(dependencies.get(start, []))]

            while stack:
                next_id = next(stack[-1], None)
                if next_id is None:
                    stack.pop()
                    on_path.discard(path.pop())
                    continue
                if next_id not in dependencies:
                    continue
                if next_id in on_path:
                    cycles.append(path[path.index(next_id):] + [next_id])
                    continue
                if next_id in visited:
                    continue
                visited.add(next_id)
                on_path.add(next_id)
                path.append(next_id)
                stack.append(iter(dependencies.get(next_id, [])))

        return cycles

    @staticmethod
    def _coerce(feature: FeatureInput) -> FeatureDefinition:
        if isinstance(feature, FeatureDefinition):
            return feature
        return FeatureDefinition.model_validate(feature)


# ============================================================================
# BATCH PLANNER
# ============================================================================

class BatchPlanner:
    """
    Partitions a validated graph into ordered batches.

    Batch 1 holds every feature without dependencies; batch k holds the
    features whose deepest dependency sits in batch k-1. Within a batch,
    features keep submission order.
    """

    def plan(self, graph: DependencyGraph) -> BatchPlan:
        """
        Layer the graph.

        Args:
            graph: Graph returned by DependencyGraphAnalyzer.validate()

        Returns:
            BatchPlan where every feature's dependencies sit in earlier batches
        """
        level: Dict[str, int] = {}
        for fid in graph.topological_order():
            deps = graph.dependencies.get(fid, [])
            level[fid] = 1 + max((level[d] for d in deps), default=-1)

        layers: Dict[int, List[str]] = {}
        for fid in graph.features:
            layers.setdefault(level[fid], []).append(fid)

        batches = [
            Batch(batch_number=index + 1, feature_ids=layers[index])
            for index in range(len(layers))
        ]
        plan = BatchPlan(batches=batches)

        logger.debug(
            f"Generated {plan.total_batches} batches for {plan.total_features} features: "
            f"sizes={plan.batch_sizes}"
        )
        return plan


# ============================================================================
# CONVENIENCE FUNCTIONS
# ============================================================================

_analyzer: Optional[DependencyGraphAnalyzer] = None


def get_analyzer() -> DependencyGraphAnalyzer:
    """Get shared analyzer instance."""
    global _analyzer
    if _analyzer is None:
        _analyzer = DependencyGraphAnalyzer()
    return _analyzer


def validate_features(features: Iterable[FeatureInput]) -> DependencyGraph:
    """Convenience function to validate a feature set."""
    return get_analyzer().validate(features)


def plan_batches(features: Iterable[FeatureInput]) -> BatchPlan:
    """Convenience function to validate and layer a feature set."""
    return BatchPlanner().plan(validate_features(features))


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = [
    "FeatureInput",
    "DependencyGraph",
    "DependencyGraphAnalyzer",
    "BatchPlanner",
    "get_analyzer",
    "validate_features",
    "plan_batches",
]
