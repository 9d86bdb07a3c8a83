# ============================================================================
# EVENT SERVICE
# ============================================================================
# EPOCH: 1 - WORK DISTRIBUTION
# STATUS: Core - Event emission and subscription
# PURPOSE: Publish named lifecycle events to decoupled subscribers
# CREATED: 15 OCT 2026
# ============================================================================
"""
Event Service

EventBus is the notification surface of the aggregator and distributor.
Emitting is fire-and-forget: subscriber failures are logged but never
propagate back into the scheduler.

Subscribers may be plain functions or coroutine functions. Coroutine
results are scheduled on the running loop; with no running loop they are
dropped with a warning.

Usage:
    bus = EventBus(source="distributor")
    sub = bus.subscribe(EventType.FEATURE_COMPLETE, lambda e: print(e.data))
    bus.emit(EventType.FEATURE_COMPLETE, {"feature_id": "auth"})
    sub.unsubscribe()
"""

import asyncio
import logging
import threading
from collections import deque
from typing import Any, Awaitable, Callable, Deque, Dict, List, Optional, Set, Union

from core.models.events import DistributionEvent, EventType

logger = logging.getLogger(__name__)

# Source identifiers
SOURCE_AGGREGATOR = "aggregator"
SOURCE_DISTRIBUTOR = "distributor"

EventCallback = Callable[[DistributionEvent], Union[None, Awaitable[None]]]


class Subscription:
    """Handle returned by EventBus.subscribe()."""

    def __init__(
        self,
        bus: "EventBus",
        event_type: Optional[EventType],
        callback: EventCallback,
    ):
        self._bus = bus
        self.event_type = event_type
        self.callback = callback
        self.active = True

    def matches(self, event: DistributionEvent) -> bool:
        return self.event_type is None or self.event_type == event.event_type

    def unsubscribe(self) -> None:
        """Stop receiving events. Safe to call more than once."""
        if self.active:
            self._bus.unsubscribe(self)


class EventBus:
    """
    Observer-style event bus.

    `subscribe(None, cb)` receives every event. The last `history_size`
    events are kept for inspection.
    """

    def __init__(self, source: Optional[str] = None, history_size: int = 200):
        self.source = source
        self._subscriptions: List[Subscription] = []
        self._lock = threading.Lock()
        self._history: Deque[DistributionEvent] = deque(maxlen=history_size)
        self._pending: Set[asyncio.Task] = set()

    # =========================================================================
    # SUBSCRIPTION
    # =========================================================================

    def subscribe(
        self,
        event_type: Optional[Union[EventType, str]],
        callback: EventCallback,
    ) -> Subscription:
        """
        Register a callback.

        Args:
            event_type: Event to listen for, or None for all events
            callback: Called with the DistributionEvent

        Returns:
            Subscription handle
        """
        if event_type is not None:
            event_type = EventType(event_type)
        subscription = Subscription(self, event_type, callback)
        with self._lock:
            self._subscriptions.append(subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            if subscription in self._subscriptions:
                self._subscriptions.remove(subscription)
        subscription.active = False

    def clear(self) -> None:
        """Remove every subscriber."""
        with self._lock:
            subscriptions = self._subscriptions
            self._subscriptions = []
        for subscription in subscriptions:
            subscription.active = False

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    # =========================================================================
    # EMIT
    # =========================================================================

    def emit(
        self,
        event_type: Union[EventType, str],
        data: Optional[Dict[str, Any]] = None,
        source: Optional[str] = None,
    ) -> DistributionEvent:
        """
        Emit an event. Fire-and-forget - logs errors but doesn't raise.

        Args:
            event_type: Type of event
            data: Event payload
            source: Overrides the bus source

        Returns:
            The emitted DistributionEvent
        """
        event = DistributionEvent(
            event_type=EventType(event_type),
            data=data or {},
            source=source or self.source,
        )
        self._history.append(event)

        with self._lock:
            subscriptions = [s for s in self._subscriptions if s.matches(event)]

        for subscription in subscriptions:
            try:
                result = subscription.callback(event)
                if asyncio.iscoroutine(result):
                    self._schedule(event, result)
            except Exception as e:
                logger.warning(f"Subscriber failed for event {event.name}: {e}")

        logger.debug(f"Event emitted: {event.name}")
        return event

    def _schedule(self, event: DistributionEvent, coro: Awaitable[None]) -> None:
        """Run an async subscriber in the background."""
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            coro.close()
            logger.warning(f"No running loop for async subscriber of {event.name}")
            return

        task = loop.create_task(coro)
        self._pending.add(task)

        def _done(t: asyncio.Task) -> None:
            self._pending.discard(t)
            if not t.cancelled() and t.exception() is not None:
                logger.warning(f"Async subscriber failed for event {event.name}: {t.exception()}")

        task.add_done_callback(_done)

    async def drain(self) -> None:
        """Wait for scheduled async subscribers to finish."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    # =========================================================================
    # RETRIEVAL
    # =========================================================================

    def recent(
        self,
        event_type: Optional[Union[EventType, str]] = None,
        limit: Optional[int] = None,
    ) -> List[DistributionEvent]:
        """Recent events, oldest first, optionally filtered by type."""
        events = list(self._history)
        if event_type is not None:
            wanted = EventType(event_type)
            events = [e for e in events if e.event_type == wanted]
        if limit is not None:
            events = events[-limit:]
        return events

    def clear_history(self) -> None:
        self._history.clear()


__all__ = [
    "EventBus",
    "EventCallback",
    "Subscription",
    "SOURCE_AGGREGATOR",
    "SOURCE_DISTRIBUTOR",
]
