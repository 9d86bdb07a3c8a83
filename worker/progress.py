# ============================================================================
# PROGRESS TRACKING
# ============================================================================
# EPOCH: 1 - WORK DISTRIBUTION
# STATUS: Core - Progress tracking for long-running features
# PURPOSE: Throttle executor progress before it reaches the distributor
# CREATED: 15 OCT 2026
# ============================================================================
"""
Progress Tracking

Enables handlers to report progress while a feature executes.
Reports flow to ExecuteOptions.on_progress and from there into the
ProgressAggregator and `feature-progress` events.

Design:
- Throttled: don't flood subscribers with updates
- Callback-based: works with plain or async callbacks

Usage:
    tracker = ProgressTracker(
        feature_id="auth",
        worker_id="worker-1",
        total=len(items),
        report_callback=on_report,
    )

    for i, item in enumerate(items):
        process(item)
        await tracker.update(current=i + 1, message=f"Processing {item}")

    await tracker.complete()
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Optional, Union

logger = logging.getLogger(__name__)


@dataclass
class ProgressReport:
    """A single progress update."""
    feature_id: str
    worker_id: Optional[str]
    current: int
    total: int
    percent: float
    message: str = ""
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    # ETA calculation
    elapsed_seconds: Optional[float] = None
    eta_seconds: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to dict."""
        return {
            "feature_id": self.feature_id,
            "worker_id": self.worker_id,
            "current": self.current,
            "total": self.total,
            "percent": self.percent,
            "message": self.message,
            "timestamp": self.timestamp.isoformat(),
            "elapsed_seconds": self.elapsed_seconds,
            "eta_seconds": self.eta_seconds,
        }


ReportCallback = Callable[[ProgressReport], Union[None, Awaitable[None]]]


class ProgressTracker:
    """
    Tracker for feature progress.

    Handles throttling and reporting.
    """

    def __init__(
        self,
        feature_id: str,
        worker_id: Optional[str] = None,
        total: int = 100,
        report_callback: Optional[ReportCallback] = None,
        min_report_interval: float = 0.25,  # seconds
        min_percent_change: float = 1.0,  # percent
    ):
        """
        Initialize progress tracker.

        Args:
            feature_id: Feature being executed
            worker_id: Worker executing it
            total: Total units of work
            report_callback: Function receiving ProgressReport
            min_report_interval: Minimum seconds between reports
            min_percent_change: Minimum percent change to trigger report
        """
        self.feature_id = feature_id
        self.worker_id = worker_id
        self.total = max(1, total)
        self._callback = report_callback
        self._min_interval = min_report_interval
        self._min_percent_change = min_percent_change

        self._current = 0
        self._last_reported_percent = 0.0
        self._last_report_time = 0.0
        self._start_time = time.monotonic()
        self._message = ""

    @property
    def current(self) -> int:
        return self._current

    @property
    def percent(self) -> float:
        return min(100.0, (self._current / self.total) * 100)

    @property
    def elapsed_seconds(self) -> float:
        return time.monotonic() - self._start_time

    @property
    def eta_seconds(self) -> Optional[float]:
        """Estimated time remaining in seconds."""
        if self._current == 0:
            return None
        elapsed = self.elapsed_seconds
        if elapsed <= 0:
            return None
        rate = self._current / elapsed
        return (self.total - self._current) / rate

    async def update(
        self,
        current: Optional[int] = None,
        increment: int = 0,
        total: Optional[int] = None,
        message: str = "",
        force_report: bool = False,
    ) -> bool:
        """
        Update progress.

        Args:
            current: Set current to this value
            increment: Increment current by this amount
            total: Replace the total
            message: Progress message
            force_report: Report even if throttle not met

        Returns:
            True if progress was reported
        """
        if total is not None:
            self.total = max(1, total)

        if current is not None:
            self._current = max(0, min(current, self.total))
        else:
            self._current = max(0, min(self._current + increment, self.total))

        if message:
            self._message = message

        if not force_report and not self._should_report():
            return False

        await self._report()
        return True

    async def complete(self, message: str = "Completed") -> None:
        """Force a final report at 100%."""
        self._current = self.total
        self._message = message
        await self._report()

    def _should_report(self) -> bool:
        """Check if we should report based on throttling."""
        now = time.monotonic()

        if now - self._last_report_time < self._min_interval:
            return False

        if abs(self.percent - self._last_reported_percent) < self._min_percent_change:
            return False

        return True

    async def _report(self) -> None:
        """Send progress report via callback."""
        self._last_report_time = time.monotonic()
        self._last_reported_percent = self.percent

        report = ProgressReport(
            feature_id=self.feature_id,
            worker_id=self.worker_id,
            current=self._current,
            total=self.total,
            percent=self.percent,
            message=self._message,
            elapsed_seconds=self.elapsed_seconds,
            eta_seconds=self.eta_seconds,
        )

        logger.debug(
            f"Progress: {report.percent:.1f}% ({report.current}/{report.total}) "
            f"- {report.message}"
        )

        if self._callback:
            try:
                result = self._callback(report)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as e:
                logger.warning(f"Failed to report progress: {e}")


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = [
    "ProgressTracker",
    "ProgressReport",
    "ReportCallback",
]
