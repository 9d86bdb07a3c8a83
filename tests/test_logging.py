# ============================================================================
# LOGGING TESTS
# ============================================================================
# EPOCH: 1 - WORK DISTRIBUTION
# STATUS: Tests - Structured logging
# PURPOSE: Verify log_context nesting, formatters and checkpoints
# CREATED: 17 OCT 2026
# ============================================================================
"""
Logging Tests

Run with:
    pytest tests/test_logging.py -v
"""

import asyncio
import json
import logging

from core.logging import (
    ComponentType,
    HumanFormatter,
    StructuredFormatter,
    configure_logging,
    get_current_context,
    get_logger,
    log_checkpoint,
    log_context,
)


def make_record(message="hello", extra=None):
    record = logging.LogRecord("orchestrator.distributor", logging.INFO, __file__, 10, message, None, None)
    if extra is not None:
        record.extra = extra
    return record


class TestLogContext:
    """ContextVar-backed context stack."""

    def test_nested_contexts_inherit(self):
        with log_context(run_id="run-1"):
            with log_context(batch_number=2, feature_id="A") as inner:
                assert inner.run_id == "run-1"
                assert inner.batch_number == 2
            assert get_current_context().feature_id is None
        assert get_current_context().run_id is None

    def test_unknown_keys_go_to_extra(self):
        with log_context(run_id="run-1", tenant="acme") as ctx:
            assert ctx.extra == {"tenant": "acme"}
            assert ctx.to_dict() == {"run_id": "run-1", "tenant": "acme"}

    def test_context_isolated_between_tasks(self):
        seen = {}

        async def feature(fid):
            with log_context(feature_id=fid):
                await asyncio.sleep(0.01)
                seen[fid] = get_current_context().feature_id

        async def run_test():
            with log_context(run_id="run-1"):
                await asyncio.gather(feature("A"), feature("B"))

        asyncio.run(run_test())
        assert seen == {"A": "A", "B": "B"}


class TestFormatters:
    """JSON and human output."""

    def test_structured_output(self):
        formatter = StructuredFormatter()
        with log_context(run_id="run-1", worker_id="w1"):
            line = formatter.format(make_record(extra={"attempt": 2}))

        data = json.loads(line)
        assert data["message"] == "hello"
        assert data["level"] == "INFO"
        assert data["context"] == {"run_id": "run-1", "worker_id": "w1"}
        assert data["data"] == {"attempt": 2}
        assert data["timestamp"].endswith("Z")

    def test_human_output(self):
        with log_context(run_id="run-1", batch_number=3, feature_id="A"):
            line = HumanFormatter().format(make_record())
        assert "[run=run-1, batch=3, feature=A]" in line
        assert line.endswith("hello")

    def test_context_logger_attaches_component(self, caplog):
        logger = get_logger("tests.logging", ComponentType.PLANNER)
        with caplog.at_level(logging.INFO, logger="tests.logging"):
            with log_context(run_id="run-9"):
                logger.info("planned")

        record = caplog.records[-1]
        assert record.component == "planner"
        assert record.context == {"run_id": "run-9"}
        assert record.extra == {}

    def test_context_captured_at_log_time(self, caplog):
        logger = get_logger("tests.logging", ComponentType.DISTRIBUTOR)
        with caplog.at_level(logging.INFO, logger="tests.logging"):
            with log_context(run_id="run-1", feature_id="A"):
                logger.info("dispatching", extra={"attempt": 2})

        # Formatted after the context block has exited
        data = json.loads(StructuredFormatter().format(caplog.records[-1]))
        assert data["component"] == "distributor"
        assert data["context"] == {"run_id": "run-1", "feature_id": "A"}
        assert data["data"] == {"attempt": 2}


class TestCheckpoints:
    """Named checkpoint markers."""

    def test_checkpoint_carries_context(self, caplog):
        with caplog.at_level(logging.INFO, logger="checkpoint"):
            with log_context(run_id="run-1", batch_number=1):
                log_checkpoint("batch_started", {"items": ["A"]})

        record = caplog.records[-1]
        assert record.getMessage() == "CHECKPOINT: batch_started"
        assert record.extra["checkpoint"] == "batch_started"
        assert record.extra["batch_number"] == 1
        assert record.extra["data"] == {"items": ["A"]}


class TestConfigureLogging:
    """Root handler setup."""

    def test_json_via_environment(self, monkeypatch):
        root = logging.getLogger()
        saved_handlers, saved_level = root.handlers[:], root.level
        monkeypatch.setenv("LOG_FORMAT", "json")
        try:
            configure_logging("debug")
            assert root.level == logging.DEBUG
            assert len(root.handlers) == 1
            assert isinstance(root.handlers[0].formatter, StructuredFormatter)
        finally:
            root.handlers[:] = saved_handlers
            root.setLevel(saved_level)
