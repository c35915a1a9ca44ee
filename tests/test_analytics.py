"""Tests for run analytics events and sinks."""

import json
import logging
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from stepwright.analytics import (
    JsonlAnalyticsSink,
    LoggingAnalyticsSink,
    NullAnalyticsSink,
    RunEvent,
)
from stepwright.schemas import Run, RunStatus

from conftest import make_job


def _finished_run(status=RunStatus.COMPLETED, error=None):
    run = Run.for_job("01RUN", make_job("ok", subject_id="proj-1", job_type="provisioning"))
    run.status = status
    run.completed_at = datetime(2025, 1, 1, tzinfo=timezone.utc)
    run.error_message = error
    run.ledger.add(tokens=120, cost=Decimal("0.004"))
    return run


class TestRunEvent:
    def test_from_completed_run(self):
        event = RunEvent.from_run(_finished_run())
        assert event.outcome == "success"
        assert event.event_type == "job.completed"
        assert event.job_type == "provisioning"
        assert event.subject_id == "proj-1"
        assert event.total_tokens == 120
        assert event.total_cost == "0.004"
        assert event.step_count == 0

    def test_from_failed_run(self):
        event = RunEvent.from_run(_finished_run(RunStatus.FAILED, "boom"))
        assert event.outcome == "failure"
        assert event.event_type == "job.failed"
        assert event.to_dict()["payload"]["error_message"] == "boom"

    def test_requires_terminal_run(self):
        run = Run.for_job("01RUN", make_job("ok"))
        with pytest.raises(ValueError, match="not finished"):
            RunEvent.from_run(run)

    def test_envelope(self):
        data = RunEvent.from_run(_finished_run()).to_dict()
        assert data["correlation_id"] == "01RUN"
        assert data["payload"]["owner_id"] == "owner-1"
        assert "emitted_at" in data


class TestSinks:
    def test_null_sink(self):
        NullAnalyticsSink().notify(RunEvent.from_run(_finished_run()))

    def test_logging_sink(self, caplog):
        with caplog.at_level(logging.INFO, logger="stepwright.analytics"):
            LoggingAnalyticsSink().notify(RunEvent.from_run(_finished_run()))
        record = caplog.records[-1]
        assert record.event == "job.completed"
        assert record.run_id == "01RUN"
        assert record.metadata["total_tokens"] == 120

    def test_jsonl_sink(self, tmp_path):
        sink = JsonlAnalyticsSink(tmp_path / "nested" / "events.jsonl")
        sink.notify(RunEvent.from_run(_finished_run()))
        sink.notify(RunEvent.from_run(_finished_run(RunStatus.FAILED, "x")))

        lines = sink.path.read_text().splitlines()
        assert len(lines) == 2
        assert json.loads(lines[1])["event_type"] == "job.failed"
        assert [e["payload"]["outcome"] for e in sink.read_events()] == ["success", "failure"]

    def test_jsonl_sink_empty(self, tmp_path):
        assert JsonlAnalyticsSink(tmp_path / "events.jsonl").read_events() == []
