"""Tests for the logfire bridge used by the engine and the scheduler."""

import logging
from unittest.mock import MagicMock, patch
from uuid import uuid4

import pytest

from folio.lib import observability
from folio.workflow.errors import PersistenceError
from folio.workflow.guards import SCHEDULER_ACTOR

logger = logging.getLogger("folio.tests.observability")


@pytest.fixture
def logfire_on():
    with patch.object(observability, "_logfire", MagicMock()) as mock_lf, \
         patch.object(observability, "_configured", True):
        yield mock_lf


@pytest.fixture
def logfire_off():
    with patch.object(observability, "_logfire", None), \
         patch.object(observability, "_configured", False):
        yield


class TestRecord:
    def test_logs_and_emits_at_matching_level(self, logfire_on, caplog):
        with caplog.at_level(logging.WARNING, logger=logger.name):
            observability.record(logger, logging.WARNING, "Scan slow", "scan took %dms", 950, duration_ms=950)

        assert "scan took 950ms" in caplog.text
        logfire_on.warn.assert_called_once_with("Scan slow", duration_ms=950)
        logfire_on.error.assert_not_called()

    def test_logs_without_logfire(self, logfire_off, caplog):
        with caplog.at_level(logging.INFO, logger=logger.name):
            observability.record(logger, logging.INFO, "Run complete", "run: %d transitioned", 2, errors=0)

        assert "run: 2 transitioned" in caplog.text


class TestWorkflowFailure:
    def test_tags_operation_kind_actor_and_content(self, logfire_on, caplog):
        content_id = uuid4()

        with caplog.at_level(logging.ERROR, logger=logger.name):
            observability.workflow_failure(
                logger,
                "publish",
                PersistenceError("disk full"),
                actor=SCHEDULER_ACTOR,
                content_id=content_id,
                level=logging.ERROR,
            )

        assert f"publish of content {content_id} failed (persistence_error): disk full" in caplog.text
        logfire_on.error.assert_called_once_with(
            "Workflow {operation} failed: {kind}",
            operation="publish",
            kind="persistence_error",
            error="disk full",
            actor="Scheduler",
            content_id=str(content_id),
        )

    def test_plain_exception_uses_class_name(self, logfire_on):
        observability.workflow_failure(logger, "create", TimeoutError("slow"))

        _, attrs = logfire_on.warn.call_args
        assert attrs["kind"] == "TimeoutError"
        assert "actor" not in attrs


class TestRecordException:
    def test_keeps_traceback_on_both_sides(self, logfire_on, caplog):
        with caplog.at_level(logging.ERROR, logger=logger.name):
            try:
                raise RuntimeError("callback broke")
            except RuntimeError:
                observability.record_exception(logger, "Hook {hook} failed", "%s callback failed", "x", hook="x")

        assert "x callback failed" in caplog.text
        assert "RuntimeError: callback broke" in caplog.text
        logfire_on.exception.assert_called_once_with("Hook {hook} failed", hook="x")
