# ============================================================================
# WORKER POOL TESTS
# ============================================================================
# EPOCH: 1 - WORK DISTRIBUTION
# STATUS: Tests - In-process workers, handlers, progress tracking
# PURPOSE: Verify LocalWorker, LocalWorkerPool, handler registry, ProgressTracker
# CREATED: 16 OCT 2026
# ============================================================================
"""
Worker Pool Tests

Covers:
1. Handler registry registration and lookup
2. LocalWorker result conversion (success, failure, exception, timeout)
3. Progress forwarding and throttling
4. Busy flag, cancellation and pool availability

Run with:
    pytest tests/test_worker_pool.py -v
"""

import asyncio
import importlib
import sys
import time

import pytest

from handlers.registry import (
    DuplicateHandlerError,
    HandlerContext,
    HandlerResult,
    clear_handlers,
    get_handler_metadata,
    list_handlers,
    register_handler,
    validate_handlers,
)
from worker.contracts import ExecuteOptions, ExecutionResult, Worker, WorkerPool
from worker.pool import LocalWorker, LocalWorkerPool, WorkerBusyError
from worker.progress import ProgressTracker


# ============================================================================
# FIXTURES
# ============================================================================

@pytest.fixture
def registry():
    """Empty handler registry, cleared again afterwards."""
    clear_handlers()
    yield
    clear_handlers()


@pytest.fixture
def handlers(registry):
    """A small set of capability handlers."""

    @register_handler("build", timeout_seconds=5)
    async def build(ctx: HandlerContext) -> HandlerResult:
        return HandlerResult.success_result({"built": ctx.feature_id, "deps": ctx.dependency_outputs})

    @register_handler("plain")
    async def plain(ctx: HandlerContext):
        return {"value": ctx.payload}

    @register_handler("sync")
    def sync(ctx: HandlerContext) -> HandlerResult:
        return HandlerResult.success_result(ctx.payload * 2)

    @register_handler("broken")
    async def broken(ctx: HandlerContext) -> HandlerResult:
        raise RuntimeError("boom")

    @register_handler("refuse")
    async def refuse(ctx: HandlerContext) -> HandlerResult:
        return HandlerResult.failure_result("not today")

    @register_handler("slow", timeout_seconds=0.05)
    async def slow(ctx: HandlerContext) -> HandlerResult:
        await asyncio.sleep(ctx.payload or 1.0)
        return HandlerResult.success_result()

    @register_handler("steps")
    async def steps(ctx: HandlerContext) -> HandlerResult:
        for step in (1, 2, 4):
            await ctx.report_progress(step, 4, f"step {step}")
        return HandlerResult.success_result()


def execute(worker, capability, payload=None, **options):
    options.setdefault("feature_id", "feature-1")
    return asyncio.run(worker.execute_agent(capability, payload, ExecuteOptions(**options)))


# ============================================================================
# REGISTRY
# ============================================================================

class TestRegistry:
    """Handler registration."""

    def test_duplicate_registration(self, registry):
        @register_handler("once")
        async def first(ctx):
            return None

        with pytest.raises(DuplicateHandlerError):
            @register_handler("once")
            async def second(ctx):
                return None

    def test_metadata(self, handlers):
        metadata = get_handler_metadata("build")
        assert metadata["timeout_seconds"] == 5
        assert metadata["is_async"] is True
        assert get_handler_metadata("sync")["is_async"] is False
        assert len(list_handlers()) == 7

    def test_validate_handlers(self, handlers):
        assert validate_handlers(["build", "deploy", "deploy"]) == ["deploy"]

    def test_package_import_registers_sample_handlers(self, registry):
        import handlers as handler_package

        assert "handlers.examples" in sys.modules
        importlib.reload(sys.modules["handlers.examples"])
        assert {"echo", "sleep", "fail", "flaky_echo"} <= {h["capability"] for h in list_handlers()}
        assert handler_package.get_handler("echo") is not None

        result = execute(LocalWorker("w1"), "echo", payload={"x": 1})
        assert result.success is True
        assert result.output["echoed_payload"] == {"x": 1}


# ============================================================================
# LOCAL WORKER
# ============================================================================

class TestLocalWorker:
    """LocalWorker.execute_agent()."""

    def test_satisfies_protocols(self):
        assert isinstance(LocalWorker("w1"), Worker)
        assert isinstance(LocalWorkerPool(), WorkerPool)

    def test_success(self, handlers):
        worker = LocalWorker("w1")
        result = execute(worker, "build", dependency_outputs={"A": 1})
        assert isinstance(result, ExecutionResult)
        assert result.success is True
        assert result.output == {"built": "feature-1", "deps": {"A": 1}}
        assert result.duration_seconds >= 0
        assert worker.completed == 1
        assert worker.busy is False

    def test_bare_return_value(self, handlers):
        result = execute(LocalWorker("w1"), "plain", payload=7)
        assert result.success is True
        assert result.output == {"value": 7}

    def test_sync_handler(self, handlers):
        assert execute(LocalWorker("w1"), "sync", payload=21).output == 42

    def test_handler_exception_becomes_failure(self, handlers):
        worker = LocalWorker("w1")
        result = execute(worker, "broken")
        assert result.success is False
        assert result.error == "RuntimeError: boom"
        assert worker.failed == 1

    def test_handler_failure(self, handlers):
        result = execute(LocalWorker("w1"), "refuse")
        assert result.success is False
        assert result.error == "not today"

    def test_missing_handler(self, handlers):
        result = execute(LocalWorker("w1"), "deploy")
        assert result.success is False
        assert "Handler not found: deploy" in result.error

    def test_handler_timeout(self, handlers):
        start = time.monotonic()
        result = execute(LocalWorker("w1"), "slow", payload=2.0)
        assert result.success is False
        assert "timed out" in result.error
        assert time.monotonic() - start < 1.0

    def test_option_timeout_overrides_handler(self, handlers):
        result = execute(LocalWorker("w1"), "slow", payload=0.1, timeout_seconds=1.0)
        assert result.success is True

    def test_progress_forwarded(self, handlers):
        reported = []
        worker = LocalWorker("w1", progress_interval_seconds=0)
        result = execute(worker, "steps", on_progress=reported.append)
        assert result.success is True
        assert reported == [25, 50, 100]

    def test_async_progress_callback(self, handlers):
        reported = []

        async def on_progress(percent):
            reported.append(percent)

        execute(LocalWorker("w1", progress_interval_seconds=0), "steps", on_progress=on_progress)
        assert reported == [25, 50, 100]

    def test_busy_worker_rejects_second_feature(self, handlers):
        worker = LocalWorker("w1")

        async def run_test():
            first = asyncio.ensure_future(
                worker.execute_agent("slow", 0.02, ExecuteOptions(feature_id="a", timeout_seconds=1))
            )
            await asyncio.sleep(0)
            assert worker.busy is True
            assert worker.current_feature == "a"
            with pytest.raises(WorkerBusyError):
                await worker.execute_agent("build", None, ExecuteOptions(feature_id="b"))
            return await first

        assert asyncio.run(run_test()).success is True
        assert worker.busy is False

    def test_cancel(self, handlers):
        worker = LocalWorker("w1")

        async def run_test():
            task = asyncio.ensure_future(
                worker.execute_agent("slow", 5.0, ExecuteOptions(feature_id="a", timeout_seconds=10))
            )
            await asyncio.sleep(0.01)
            await worker.cancel()
            return await task

        result = asyncio.run(run_test())
        assert result.success is False
        assert "cancelled" in result.error
        assert worker.busy is False

    def test_capabilities(self):
        worker = LocalWorker("w1", capabilities=["backend"])
        assert worker.supports("backend")
        assert not worker.supports("frontend")
        assert LocalWorker("any").supports("frontend")


# ============================================================================
# POOL
# ============================================================================

class TestLocalWorkerPool:
    """Pool bookkeeping."""

    def test_add_and_get(self):
        pool = LocalWorkerPool()
        pool.add_worker("w1", capabilities=["backend"])
        pool.add_worker("w2")
        assert pool.size == 2
        assert pool.get_worker("w1").supports("backend")
        assert pool.get_worker("nope") is None

    def test_duplicate_worker(self):
        pool = LocalWorkerPool([LocalWorker("w1")])
        with pytest.raises(ValueError):
            pool.add_worker("w1")

    def test_available_excludes_busy(self):
        pool = LocalWorkerPool()
        busy = pool.add_worker("w1")
        pool.add_worker("w2")
        busy.busy = True
        assert [w.id for w in pool.get_available_workers()] == ["w2"]
        assert pool.active_count == 1

    def test_remove_worker(self):
        pool = LocalWorkerPool()
        pool.add_worker("w1")
        assert pool.remove_worker("w1").id == "w1"
        assert pool.remove_worker("w1") is None
        assert pool.workers == []


# ============================================================================
# PROGRESS TRACKER
# ============================================================================

class TestProgressTracker:
    """Throttled progress reports."""

    def test_reports_on_change(self):
        reports = []
        tracker = ProgressTracker("f1", "w1", total=10, report_callback=reports.append,
                                  min_report_interval=0)

        async def run_test():
            assert await tracker.update(current=5) is True
            assert await tracker.update(current=5) is False
            assert await tracker.update(current=5, force_report=True) is True
            await tracker.complete()

        asyncio.run(run_test())
        assert [r.percent for r in reports] == [50.0, 50.0, 100.0]
        assert reports[-1].message == "Completed"

    def test_interval_throttle(self):
        reports = []
        tracker = ProgressTracker("f1", report_callback=reports.append, min_report_interval=60)

        async def run_test():
            await tracker.update(current=10, force_report=True)
            await tracker.update(current=90)

        asyncio.run(run_test())
        assert len(reports) == 1

    def test_current_clamped_to_total(self):
        tracker = ProgressTracker("f1", total=4)
        asyncio.run(tracker.update(current=10))
        assert tracker.current == 4
        assert tracker.percent == 100.0

    def test_callback_errors_swallowed(self):
        def broken(report):
            raise RuntimeError("sink down")

        tracker = ProgressTracker("f1", report_callback=broken, min_report_interval=0)
        assert asyncio.run(tracker.update(current=50)) is True

    def test_report_dict(self):
        reports = []
        tracker = ProgressTracker("f1", "w1", report_callback=reports.append, min_report_interval=0)
        asyncio.run(tracker.update(increment=25, message="quarter"))
        data = reports[0].to_dict()
        assert data["feature_id"] == "f1"
        assert data["percent"] == 25.0
        assert data["message"] == "quarter"
