# ============================================================================
# HANDLER REGISTRY
# ============================================================================
# EPOCH: 1 - WORK DISTRIBUTION
# STATUS: Core - Handler registration and lookup
# PURPOSE: Register and discover feature handlers by capability
# CREATED: 15 OCT 2026
# ============================================================================
"""
Handler Registry

Central registry for capability handlers. LocalWorker uses this to look up
the function that executes a feature of a given capability.

Design:
- Handlers are registered at import time via decorator
- Registry is a simple dict (capability -> handler_func)
- Fail-fast on duplicate registration
- Supports both sync and async handlers
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

logger = logging.getLogger(__name__)


# ============================================================================
# HANDLER TYPES
# ============================================================================

@dataclass
class HandlerContext:
    """
    Context passed to handler functions.

    Contains everything needed to execute one attempt of a feature.
    """
    feature_id: str
    capability: str
    payload: Any
    attempt: int = 1
    timeout_seconds: Optional[float] = None

    # Outputs of completed dependencies, keyed by feature id
    dependency_outputs: Dict[str, Any] = field(default_factory=dict)
    metadata: Dict[str, Any] = field(default_factory=dict)

    # Worker info
    worker_id: Optional[str] = None

    # Progress callback (optional)
    progress_callback: Optional[Callable[[int, int, str], Optional[Awaitable[None]]]] = None

    async def report_progress(
        self,
        current: int,
        total: int = 100,
        message: str = "",
    ) -> None:
        """Report progress if callback is available."""
        if self.progress_callback:
            result = self.progress_callback(current, total, message)
            if asyncio.iscoroutine(result):
                await result


@dataclass
class HandlerResult:
    """
    Result returned by handler functions.

    Handlers may also return a bare value, which counts as a successful
    output.
    """
    success: bool = True
    output: Any = None
    error_message: Optional[str] = None

    @classmethod
    def success_result(cls, output: Any = None) -> "HandlerResult":
        """Create a success result."""
        return cls(success=True, output=output)

    @classmethod
    def failure_result(cls, error_message: str, output: Any = None) -> "HandlerResult":
        """Create a failure result."""
        return cls(success=False, error_message=error_message, output=output)


HandlerFunc = Callable[[HandlerContext], Union[Any, Awaitable[Any]]]


# ============================================================================
# EXCEPTIONS
# ============================================================================

class HandlerError(Exception):
    """Base exception for handler errors."""
    pass


class HandlerNotFoundError(HandlerError):
    """Raised when no handler is registered for a capability."""
    def __init__(self, capability: str):
        self.capability = capability
        super().__init__(f"Handler not found: {capability}")


class DuplicateHandlerError(HandlerError):
    """Raised when a capability already has a handler."""
    def __init__(self, capability: str):
        self.capability = capability
        super().__init__(f"Handler already registered: {capability}")


# ============================================================================
# REGISTRY
# ============================================================================

_handlers: Dict[str, HandlerFunc] = {}
_handler_metadata: Dict[str, Dict[str, Any]] = {}


def register_handler(
    capability: str,
    *,
    description: str = "",
    timeout_seconds: Optional[float] = None,
    tags: Optional[List[str]] = None,
) -> Callable[[HandlerFunc], HandlerFunc]:
    """
    Decorator to register a handler for a capability.

    Args:
        capability: Capability name (must be unique)
        description: Human-readable description
        timeout_seconds: Default per-attempt timeout
        tags: Optional tags for categorization

    Example:
        @register_handler("backend", timeout_seconds=600)
        async def build_backend(ctx: HandlerContext) -> HandlerResult:
            await ctx.report_progress(50)
            return HandlerResult.success_result({"files": 3})
    """
    def decorator(func: HandlerFunc) -> HandlerFunc:
        if capability in _handlers:
            raise DuplicateHandlerError(capability)

        _handlers[capability] = func
        _handler_metadata[capability] = {
            "capability": capability,
            "description": description,
            "timeout_seconds": timeout_seconds,
            "tags": tags or [],
            "function": func.__name__,
            "module": func.__module__,
            "is_async": asyncio.iscoroutinefunction(func),
            "registered_at": datetime.now(timezone.utc).isoformat(),
        }

        logger.debug(f"Registered handler: {capability} ({func.__module__}.{func.__name__})")
        return func

    return decorator


def get_handler(capability: str) -> Optional[HandlerFunc]:
    return _handlers.get(capability)


def get_handler_or_raise(capability: str) -> HandlerFunc:
    """
    Get the handler for a capability.

    Raises:
        HandlerNotFoundError if no handler is registered
    """
    handler = _handlers.get(capability)
    if handler is None:
        raise HandlerNotFoundError(capability)
    return handler


def list_handlers() -> List[Dict[str, Any]]:
    """List all registered handlers with metadata."""
    return list(_handler_metadata.values())


def get_handler_metadata(capability: str) -> Optional[Dict[str, Any]]:
    return _handler_metadata.get(capability)


def clear_handlers() -> None:
    """
    Clear all registered handlers.

    Primarily for testing.
    """
    _handlers.clear()
    _handler_metadata.clear()
    logger.debug("Cleared all handlers")


def validate_handlers(capabilities: List[str]) -> List[str]:
    """
    Check that every capability has a handler.

    Returns:
        Capabilities without a handler (empty if all valid)
    """
    missing = []
    for capability in capabilities:
        if capability not in _handlers and capability not in missing:
            missing.append(capability)
    return missing


# ============================================================================
# ASYNC HANDLER EXECUTION
# ============================================================================

async def execute_handler(
    capability: str,
    context: HandlerContext,
) -> HandlerResult:
    """
    Execute the handler for a capability.

    Handles both sync and async handlers. Exceptions raised by the
    handler become failure results.

    Raises:
        HandlerNotFoundError if no handler is registered
    """
    handler = get_handler_or_raise(capability)

    try:
        if asyncio.iscoroutinefunction(handler):
            result = await handler(context)
        else:
            # Run sync handler in thread pool
            loop = asyncio.get_running_loop()
            result = await loop.run_in_executor(None, handler, context)

    except asyncio.CancelledError:
        raise
    except Exception as e:
        logger.exception(f"Handler {capability} failed for feature {context.feature_id}: {e}")
        return HandlerResult.failure_result(f"{type(e).__name__}: {e}")

    if isinstance(result, HandlerResult):
        return result
    return HandlerResult.success_result(result)


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = [
    "register_handler",
    "get_handler",
    "get_handler_or_raise",
    "list_handlers",
    "get_handler_metadata",
    "clear_handlers",
    "validate_handlers",
    "execute_handler",
    "HandlerFunc",
    "HandlerContext",
    "HandlerResult",
    "HandlerError",
    "HandlerNotFoundError",
    "DuplicateHandlerError",
]
