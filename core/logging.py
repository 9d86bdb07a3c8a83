# ============================================================================
# STRUCTURED LOGGING
# ============================================================================
# EPOCH: 1 - WORK DISTRIBUTION
# STATUS: Core - Structured logging with context
# PURPOSE: Consistent, queryable logging across all components
# CREATED: 14 OCT 2026
# ============================================================================
"""
Structured Logging

Provides JSON or human-readable logging for the work distributor.

Features:
- Component-based loggers
- Contextual fields (run_id, feature_id, worker_id, batch_number)
- JSON output for log aggregation
- Named checkpoints marking run milestones

Context lives in a ContextVar, so each asyncio task dispatching a feature
sees only its own fields.

Usage:
    from core.logging import get_logger, log_context

    logger = get_logger("orchestrator.distributor")

    with log_context(run_id="run-123", feature_id="auth"):
        logger.info("Dispatching feature")
"""

import json
import logging
import os
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field, asdict, replace
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple, Union
from enum import Enum


class ComponentType(str, Enum):
    """Component types for logging categorization."""
    ANALYZER = "analyzer"
    PLANNER = "planner"
    AGGREGATOR = "aggregator"
    DISTRIBUTOR = "distributor"
    WORKER = "worker"
    HANDLER = "handler"
    SERVICE = "service"


@dataclass(frozen=True)
class LogContext:
    """
    Context for structured logging.

    Immutable; nested log_context() blocks derive a new instance.
    """
    run_id: Optional[str] = None
    feature_id: Optional[str] = None
    worker_id: Optional[str] = None
    batch_number: Optional[int] = None
    capability: Optional[str] = None
    component: Optional[str] = None
    operation: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict, excluding None values."""
        result = {}
        for key, value in asdict(self).items():
            if value is not None and key != "extra":
                result[key] = value
        if self.extra:
            result.update(self.extra)
        return result


_CONTEXT_FIELDS = ("run_id", "feature_id", "worker_id", "batch_number",
                   "capability", "component", "operation")

_context_stack: ContextVar[Tuple[LogContext, ...]] = ContextVar(
    "log_context_stack", default=()
)


def get_current_context() -> LogContext:
    """Get current logging context."""
    stack = _context_stack.get()
    if stack:
        return stack[-1]
    return LogContext()


@contextmanager
def log_context(**kwargs):
    """
    Context manager for adding logging context.

    Args:
        **kwargs: Context fields to add (unknown keys go to `extra`)

    Example:
        with log_context(run_id="run-1", batch_number=2):
            logger.info("Starting batch")
    """
    parent = get_current_context()
    known = {k: v for k, v in kwargs.items() if k in _CONTEXT_FIELDS}
    extra = {**parent.extra, **kwargs.get("extra", {})}
    extra.update({
        k: v for k, v in kwargs.items()
        if k not in _CONTEXT_FIELDS and k != "extra"
    })
    new_context = replace(parent, extra=extra, **known)

    token = _context_stack.set(_context_stack.get() + (new_context,))
    try:
        yield new_context
    finally:
        _context_stack.reset(token)


def _utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def _record_context(record: logging.LogRecord) -> Dict[str, Any]:
    """
    Context captured when the record was created.

    ContextLogger stores it on the record; records from plain loggers fall
    back to whatever context is active while formatting.
    """
    context = getattr(record, "context", None)
    if context is None:
        context = get_current_context().to_dict()
    return context


def _record_data(record: logging.LogRecord) -> Dict[str, Any]:
    """Fields passed as extra={"extra": {...}}."""
    data = getattr(record, "extra", None)
    return data if isinstance(data, dict) else {}


# (context key, label) pairs shown inline by HumanFormatter, in order
_HUMAN_FIELDS = (
    ("run_id", "run"),
    ("batch_number", "batch"),
    ("feature_id", "feature"),
    ("worker_id", "worker"),
)


class StructuredFormatter(logging.Formatter):
    """
    JSON formatter, one object per line.

    Keys: timestamp, level, logger, component, message, context, data,
    exception, source.
    """

    def __init__(
        self,
        include_timestamp: bool = True,
        include_level: bool = True,
        include_logger: bool = True,
        include_context: bool = True,
        include_source: bool = True,
    ):
        super().__init__()
        self.include_timestamp = include_timestamp
        self.include_level = include_level
        self.include_logger = include_logger
        self.include_context = include_context
        self.include_source = include_source

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {}

        if self.include_timestamp:
            log_data["timestamp"] = _utc_timestamp()
        if self.include_level:
            log_data["level"] = record.levelname
        if self.include_logger:
            log_data["logger"] = record.name

        component = getattr(record, "component", None)
        if component:
            log_data["component"] = component

        log_data["message"] = record.getMessage()

        if self.include_context:
            context = _record_context(record)
            if context:
                log_data["context"] = context

        data = _record_data(record)
        if data:
            log_data["data"] = data

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if self.include_source:
            log_data["source"] = {
                "file": record.filename,
                "line": record.lineno,
                "function": record.funcName,
            }

        return json.dumps(log_data, default=str)


class HumanFormatter(logging.Formatter):
    """
    Single-line format for terminals:

        2026-10-14 09:30:00 INFO     orchestrator.distributor [run=run-1, batch=2]: message
    """

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created, timezone.utc).strftime("%Y-%m-%d %H:%M:%S")
        level = record.levelname.ljust(8)

        context = _record_context(record)
        parts = [
            f"{label}={context[key]}"
            for key, label in _HUMAN_FIELDS
            if context.get(key) is not None
        ]
        context_str = f" [{', '.join(parts)}]" if parts else ""

        data = _record_data(record)
        data_str = f" {data}" if data else ""

        result = f"{timestamp} {level} {record.name}{context_str}: {record.getMessage()}{data_str}"
        if record.exc_info:
            result += f"\n{self.formatException(record.exc_info)}"
        return result


class ContextLogger(logging.LoggerAdapter):
    """
    Logger adapter that snapshots log_context() onto every record.

    Records carry three attributes for the formatters:
        context    active log_context() fields
        component  the adapter's ComponentType value
        extra      caller-supplied extra={...} data
    """

    def process(self, msg, kwargs):
        component = self.extra.get("component") if self.extra else None
        kwargs["extra"] = {
            "context": get_current_context().to_dict(),
            "component": component,
            "extra": dict(kwargs.get("extra") or {}),
        }
        return msg, kwargs


def get_logger(
    name: str,
    component: Optional[ComponentType] = None,
) -> ContextLogger:
    """
    Get a context-aware logger.

    Args:
        name: Logger name (e.g., "orchestrator.distributor")
        component: Optional component type for categorization

    Returns:
        ContextLogger instance
    """
    base_logger = logging.getLogger(name)
    component_value = component.value if component else None
    return ContextLogger(base_logger, {"component": component_value})


def configure_logging(
    level: Union[str, int] = "INFO",
    json_output: bool = False,
    include_source: bool = True,
) -> None:
    """
    Configure logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        json_output: Use JSON format (LOG_FORMAT=json also enables it)
        include_source: Add file/line/function to JSON records
    """
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)

    if json_output or os.getenv("LOG_FORMAT", "").lower() == "json":
        formatter = StructuredFormatter(include_source=include_source)
    else:
        formatter = HumanFormatter()

    root = logging.getLogger()
    root.setLevel(level)

    for handler in root.handlers[:]:
        root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    root.addHandler(handler)


# ============================================================================
# CHECKPOINT LOGGING
# ============================================================================

def log_checkpoint(
    name: str,
    data: Optional[Dict[str, Any]] = None,
    logger: Optional[logging.Logger] = None,
) -> None:
    """
    Log a named checkpoint.

    Checkpoints are named markers (distribution_started, batch_started,
    feature_completed, feature_failed, distribution_complete) that can be
    queried to reconstruct a run.

    Args:
        name: Checkpoint name
        data: Optional checkpoint data
        logger: Optional specific logger to use
    """
    if logger is None:
        logger = logging.getLogger("checkpoint")

    checkpoint_data: Dict[str, Any] = {
        "checkpoint": name,
        "timestamp": _utc_timestamp(),
    }
    checkpoint_data.update(get_current_context().to_dict())

    if data:
        checkpoint_data["data"] = data

    logger.info(f"CHECKPOINT: {name}", extra={"extra": checkpoint_data})


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = [
    "ComponentType",
    "LogContext",
    "StructuredFormatter",
    "HumanFormatter",
    "ContextLogger",
    "get_logger",
    "configure_logging",
    "log_context",
    "get_current_context",
    "log_checkpoint",
]
