# ============================================================================
# ORCHESTRATOR ENGINE
# ============================================================================
# EPOCH: 1 - WORK DISTRIBUTION
# STATUS: Core - Engine components
# PURPOSE: Dependency analysis, batch planning, worker assignment
# CREATED: 15 OCT 2026
# ============================================================================
"""
Orchestrator Engine Components

- evaluator: dependency graph validation and batch planning
- planner: worker assignment, time estimates, plan rebalancing
"""

from orchestrator.engine.evaluator import (
    DependencyGraph,
    DependencyGraphAnalyzer,
    BatchPlanner,
    FeatureInput,
    get_analyzer,
    validate_features,
    plan_batches,
)
from orchestrator.engine.planner import (
    ExecutionPlanner,
    OVERLOAD_FACTOR,
    UNDERLOAD_FACTOR,
)

__all__ = [
    # Evaluator
    "DependencyGraph",
    "DependencyGraphAnalyzer",
    "BatchPlanner",
    "FeatureInput",
    "get_analyzer",
    "validate_features",
    "plan_batches",
    # Planner
    "ExecutionPlanner",
    "OVERLOAD_FACTOR",
    "UNDERLOAD_FACTOR",
]
