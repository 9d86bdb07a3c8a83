# ============================================================================
# HANDLER REGISTRY
# ============================================================================
# EPOCH: 1 - WORK DISTRIBUTION
# STATUS: Core - Handler registration and lookup
# PURPOSE: Register and discover capability handlers
# CREATED: 15 OCT 2026
# ============================================================================
"""
Handler Registry

Provides a decorator-based registration system for capability handlers.

Usage:
    from handlers import register_handler, HandlerContext, HandlerResult

    @register_handler("backend")
    async def backend(ctx: HandlerContext) -> HandlerResult:
        return HandlerResult.success_result({"feature": ctx.feature_id})
"""

from handlers.registry import (
    register_handler,
    get_handler,
    get_handler_or_raise,
    get_handler_metadata,
    list_handlers,
    clear_handlers,
    validate_handlers,
    execute_handler,
    HandlerFunc,
    HandlerContext,
    HandlerResult,
    HandlerError,
    HandlerNotFoundError,
    DuplicateHandlerError,
)

# Import handler modules to trigger registration
import handlers.examples  # noqa: F401 - import for side effects (echo, sleep, fail, flaky_echo)

__all__ = [
    "register_handler",
    "get_handler",
    "get_handler_or_raise",
    "get_handler_metadata",
    "list_handlers",
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
