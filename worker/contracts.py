# ============================================================================
# WORKER CONTRACTS
# ============================================================================
# EPOCH: 1 - WORK DISTRIBUTION
# STATUS: Core - Worker pool interface and result schema
# PURPOSE: Define what the distributor needs from workers and pools
# CREATED: 15 OCT 2026
# ============================================================================
"""
Worker Contracts

The distributor never runs work itself. It talks to a worker pool:

    pool.get_available_workers() -> List[Worker]
    pool.get_worker(worker_id)   -> Optional[Worker]
    worker.execute_agent(capability, payload, options) -> ExecutionResult

Pool methods may be plain or async; the distributor awaits whatever comes
back. A worker may also expose `cancel()` for cooperative cancellation.

Executor result shape:
{
    "success": true,
    "output": {...},
    "error": null,
    "duration": 12.5
}

A raised exception is treated the same as {"success": false}.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol, Union, runtime_checkable

from pydantic import AliasChoices, BaseModel, Field

logger = logging.getLogger(__name__)


# ============================================================================
# WORKER DESCRIPTION (used for planning)
# ============================================================================

class WorkerCapabilities(BaseModel):
    """
    What a worker can run.

    An empty `capabilities` list means the worker accepts any capability.
    Unset memory/cpu means no resource limit.
    """
    capabilities: List[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("capabilities", "agents"),
    )
    memory_mb: Optional[int] = Field(
        default=None,
        ge=0,
        validation_alias=AliasChoices("memory_mb", "memory"),
    )
    cpu: Optional[float] = Field(default=None, ge=0)

    def supports(self, capability: str) -> bool:
        return not self.capabilities or capability in self.capabilities

    def has_capacity(self, memory_mb: int, cpu: float) -> bool:
        if self.memory_mb and memory_mb > self.memory_mb:
            return False
        if self.cpu and cpu > self.cpu:
            return False
        return True


class WorkerInfo(BaseModel):
    """Planning view of a worker."""
    id: str = Field(..., min_length=1)
    capabilities: WorkerCapabilities = Field(default_factory=WorkerCapabilities)

    def supports(self, capability: str) -> bool:
        return self.capabilities.supports(capability)

    @classmethod
    def coerce(cls, value: Any) -> "WorkerInfo":
        """
        Build from a WorkerInfo, a dict, or any object with `id` and
        optional `capabilities` (WorkerCapabilities, dict, or list of names).
        """
        if isinstance(value, WorkerInfo):
            return value
        if isinstance(value, dict):
            return cls.model_validate(value)

        caps = getattr(value, "capabilities", None)
        if isinstance(caps, WorkerCapabilities):
            capabilities = caps
        elif isinstance(caps, dict):
            capabilities = WorkerCapabilities.model_validate(caps)
        elif caps:
            capabilities = WorkerCapabilities(capabilities=list(caps))
        else:
            capabilities = WorkerCapabilities()
        return cls(id=str(getattr(value, "id")), capabilities=capabilities)


# ============================================================================
# EXECUTION
# ============================================================================

ProgressCallback = Callable[[int], Union[None, Awaitable[None]]]


@dataclass
class ExecuteOptions:
    """Options passed to Worker.execute_agent()."""
    feature_id: str
    attempt: int = 1
    timeout_seconds: Optional[float] = None

    # Outputs of already-complete dependencies, keyed by feature id
    dependency_outputs: Dict[str, Any] = field(default_factory=dict)
    metadata: Dict[str, Any] = field(default_factory=dict)

    # Intermediate progress (0-100)
    on_progress: Optional[ProgressCallback] = None


class ExecutionResult(BaseModel):
    """Result of one executor invocation."""
    success: bool
    output: Any = None
    error: Optional[str] = Field(default=None, max_length=2000)
    duration_seconds: Optional[float] = Field(
        default=None,
        ge=0,
        validation_alias=AliasChoices("duration_seconds", "duration"),
    )

    @classmethod
    def ok(cls, output: Any = None, duration_seconds: Optional[float] = None) -> "ExecutionResult":
        """Create a success result."""
        return cls(success=True, output=output, duration_seconds=duration_seconds)

    @classmethod
    def failure(cls, error: str, duration_seconds: Optional[float] = None) -> "ExecutionResult":
        """Create a failure result."""
        return cls(
            success=False,
            error=error[:2000] if error else "Execution failed",
            duration_seconds=duration_seconds,
        )

    @classmethod
    def coerce(cls, value: Any) -> "ExecutionResult":
        """Normalize whatever an executor returned."""
        if isinstance(value, ExecutionResult):
            return value
        if isinstance(value, dict):
            return cls.model_validate(value)
        if value is None:
            return cls.failure("Executor returned no result")
        return cls.failure(f"Unsupported executor result: {type(value).__name__}")


# ============================================================================
# PROTOCOLS
# ============================================================================

@runtime_checkable
class Worker(Protocol):
    """An executor slot able to run one feature at a time."""
    id: str

    async def execute_agent(
        self,
        capability: str,
        payload: Any,
        options: ExecuteOptions,
    ) -> Union[ExecutionResult, Dict[str, Any]]:
        ...


@runtime_checkable
class WorkerPool(Protocol):
    """Source of workers. Owns mutual exclusion over individual workers."""

    def get_available_workers(self) -> Union[List[Worker], Awaitable[List[Worker]]]:
        ...

    def get_worker(self, worker_id: str) -> Union[Optional[Worker], Awaitable[Optional[Worker]]]:
        ...


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = [
    "WorkerCapabilities",
    "WorkerInfo",
    "ProgressCallback",
    "ExecuteOptions",
    "ExecutionResult",
    "Worker",
    "WorkerPool",
]
