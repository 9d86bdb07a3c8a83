# ============================================================================
# CONFIGURATION MODULE
# ============================================================================
# EPOCH: 1 - WORK DISTRIBUTION
# STATUS: Core - Configuration and defaults
# PURPOSE: Centralized configuration management
# CREATED: 14 OCT 2026
# ============================================================================
"""
Configuration Module

Provides centralized configuration and defaults for the work distributor.
"""

from core.config.defaults import (
    RetryDefaults,
    DistributorDefaults,
    ProgressDefaults,
    PlannerDefaults,
    ResourceEstimate,
    Defaults,
    get_defaults,
    reset_defaults,
)

__all__ = [
    "RetryDefaults",
    "DistributorDefaults",
    "ProgressDefaults",
    "PlannerDefaults",
    "ResourceEstimate",
    "Defaults",
    "get_defaults",
    "reset_defaults",
]
