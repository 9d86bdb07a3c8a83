# ============================================================================
# SERVICES MODULE
# ============================================================================
# EPOCH: 1 - WORK DISTRIBUTION
# STATUS: Core - Shared services
# PURPOSE: Event publication for the distribution engine
# CREATED: 15 OCT 2026
# ============================================================================
"""
Services Module

Usage:
    from services import EventBus

    bus = EventBus(source="distributor")
    bus.subscribe(None, print)
"""

from .event_service import EventBus, Subscription, EventCallback

__all__ = [
    "EventBus",
    "Subscription",
    "EventCallback",
]
