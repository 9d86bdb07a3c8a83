# ============================================================================
# ORCHESTRATOR MODULE
# ============================================================================
# EPOCH: 1 - WORK DISTRIBUTION
# STATUS: Core - Work distribution
# PURPOSE: Run dependency-ordered feature sets over a worker pool
# CREATED: 15 OCT 2026
# ============================================================================
"""
Orchestrator Module

Usage:
    from orchestrator import WorkDistributor

    distributor = WorkDistributor(pool)
    summary = await distributor.distribute_work(features)
"""

from .distributor import WorkDistributor
from .progress import ProgressAggregator

__all__ = ["WorkDistributor", "ProgressAggregator"]
