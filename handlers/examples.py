# ============================================================================
# EXAMPLE HANDLERS
# ============================================================================
# EPOCH: 1 - WORK DISTRIBUTION
# STATUS: Examples - Sample capability handlers
# PURPOSE: Demonstrate handler registration for LocalWorkerPool
# CREATED: 16 OCT 2026
# ============================================================================
"""
Example Handlers

Sample capability handlers for local runs and tests. Importing this module
registers them; payloads are plain dicts.

    echo        returns the payload and the dependency outputs it received
    sleep       waits payload["seconds"], reporting progress per step
    fail        always fails with payload["message"]
    flaky_echo  echo that fails with probability payload["failure_rate"]
"""

import asyncio
import logging
import random
from typing import Any, Dict

from handlers.registry import (
    register_handler,
    HandlerContext,
    HandlerResult,
)

logger = logging.getLogger(__name__)


def _params(ctx: HandlerContext) -> Dict[str, Any]:
    return ctx.payload if isinstance(ctx.payload, dict) else {}


@register_handler(
    "echo",
    description="Echoes the payload and dependency outputs back as output",
    timeout_seconds=60,
)
async def echo_handler(ctx: HandlerContext) -> HandlerResult:
    """Simple echo handler for testing."""
    logger.info(f"Echo handler called for {ctx.feature_id}")
    return HandlerResult.success_result(
        output={
            "echoed_payload": ctx.payload,
            "feature_id": ctx.feature_id,
            "dependency_outputs": ctx.dependency_outputs,
            "attempt": ctx.attempt,
        }
    )


@register_handler(
    "sleep",
    description="Sleeps for payload['seconds'] in steps, reporting progress",
    timeout_seconds=300,
)
async def sleep_handler(ctx: HandlerContext) -> HandlerResult:
    """
    Sleep handler for testing timeouts and progress.

    Payload:
        seconds: Total sleep time (default 1.0)
        steps: Number of progress reports (default 4)
    """
    params = _params(ctx)
    seconds = float(params.get("seconds", 1.0))
    steps = max(1, int(params.get("steps", 4)))

    for step in range(1, steps + 1):
        await asyncio.sleep(seconds / steps)
        await ctx.report_progress(step, steps, f"Step {step} of {steps}")

    return HandlerResult.success_result(output={"slept_seconds": seconds})


@register_handler(
    "fail",
    description="Always fails (for testing retries)",
    timeout_seconds=30,
)
async def fail_handler(ctx: HandlerContext) -> HandlerResult:
    message = _params(ctx).get("message", "Intentional failure")
    return HandlerResult.failure_result(message)


@register_handler(
    "flaky_echo",
    description="Echo that randomly fails (for testing retries)",
    timeout_seconds=60,
)
async def flaky_echo_handler(ctx: HandlerContext) -> HandlerResult:
    """
    Echo handler with a configurable failure rate.

    Payload:
        failure_rate: Probability of failure, 0.0 to 1.0 (default 0.2)
    """
    failure_rate = float(_params(ctx).get("failure_rate", 0.2))

    if random.random() < failure_rate:
        logger.info(f"flaky_echo failing {ctx.feature_id} (attempt {ctx.attempt})")
        return HandlerResult.failure_result(
            f"Random failure (rate={failure_rate}, attempt={ctx.attempt})"
        )

    return HandlerResult.success_result(
        output={
            "echoed_payload": ctx.payload,
            "feature_id": ctx.feature_id,
            "attempt": ctx.attempt,
        }
    )


__all__ = [
    "echo_handler",
    "sleep_handler",
    "fail_handler",
    "flaky_echo_handler",
]
