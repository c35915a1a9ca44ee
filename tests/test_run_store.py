"""Tests for RunStore implementations (in-memory and file-based)."""

import json
import logging
from datetime import datetime, timedelta, timezone

import pytest

from stepwright.errors import RunConflictError, RunNotFoundError, StaleRunError, TerminalRunError
from stepwright.run_store import FileRunStore, InMemoryRunStore, generate_ulid
from stepwright.schemas import Run, RunStatus, StepDefinition, StepLogEntry, StepResult

from conftest import make_job

T0 = datetime(2025, 1, 1, tzinfo=timezone.utc)


@pytest.fixture(params=["memory", "file"])
def any_store(request, tmp_path):
    if request.param == "memory":
        return InMemoryRunStore()
    return FileRunStore(tmp_path / "store")


def _run(run_id=None, owner_id="owner-1", n=2, created_at=T0):
    run = Run.for_job(run_id or generate_ulid(), make_job(*["ok"] * n, owner_id=owner_id))
    run.created_at = created_at
    return run


class TestGenerateUlid:
    def test_format(self):
        ulid = generate_ulid()
        assert len(ulid) == 26
        assert set(ulid) <= set("0123456789ABCDEFGHJKMNPQRSTVWXYZ")

    def test_unique(self):
        assert len({generate_ulid() for _ in range(100)}) == 100


class TestRunStore:
    def test_create_and_get(self, any_store):
        run = _run()
        assert any_store.create(run) == run.run_id
        stored = any_store.get(run.run_id)
        assert stored == run
        assert stored is not run

    def test_get_missing(self, any_store):
        with pytest.raises(RunNotFoundError):
            any_store.get("nope")
        assert not any_store.exists("nope")

    def test_duplicate_create(self, any_store):
        run = _run()
        any_store.create(run)
        with pytest.raises(StaleRunError, match="already exists"):
            any_store.create(run)

    def test_update_replaces(self, any_store):
        run = _run()
        any_store.create(run)
        run.status = RunStatus.RUNNING
        run.started_at = T0
        run.append_step(StepLogEntry.start(0, StepDefinition(type="ok"), T0))
        any_store.update(run)

        stored = any_store.get(run.run_id)
        assert stored.status == RunStatus.RUNNING
        assert len(stored.step_log) == 1

    def test_update_missing(self, any_store):
        with pytest.raises(RunNotFoundError):
            any_store.update(_run())

    def test_snapshots_are_isolated(self, any_store):
        run = _run()
        any_store.create(run)
        run.status = RunStatus.RUNNING
        snapshot = any_store.get(run.run_id)
        assert snapshot.status == RunStatus.PENDING

        snapshot.ledger.add(tokens=5)
        assert any_store.get(run.run_id).ledger.tokens == 0

    def test_terminal_is_immutable(self, any_store):
        run = _run()
        any_store.create(run)
        run.status = RunStatus.COMPLETED
        run.completed_at = T0
        any_store.update(run)

        run.error_message = "late write"
        with pytest.raises(TerminalRunError) as exc:
            any_store.update(run)
        assert exc.value.status == "completed"
        assert isinstance(exc.value, RunConflictError)
        assert any_store.get(run.run_id).error_message is None

    def test_backward_transition_rejected(self, any_store):
        run = _run()
        any_store.create(run)
        run.status = RunStatus.RUNNING
        any_store.update(run)
        run.status = RunStatus.PENDING
        with pytest.raises(StaleRunError, match="cannot move"):
            any_store.update(run)

    def test_shrinking_log_rejected(self, any_store):
        run = _run()
        any_store.create(run)
        run.status = RunStatus.RUNNING
        entry = StepLogEntry.start(0, StepDefinition(type="ok"), T0)
        run.append_step(entry)
        any_store.update(run)

        run.step_log = []
        with pytest.raises(StaleRunError, match="shrink"):
            any_store.update(run)

    def test_list_runs_newest_first(self, any_store):
        old = _run(created_at=T0)
        new = _run(created_at=T0 + timedelta(minutes=5))
        other = _run(owner_id="owner-2", created_at=T0 + timedelta(minutes=1))
        for r in (old, new, other):
            any_store.create(r)

        assert [r.run_id for r in any_store.list_runs()] == [new.run_id, other.run_id, old.run_id]
        assert [r.run_id for r in any_store.list_runs(owner_id="owner-1")] == [new.run_id, old.run_id]
        assert [r.run_id for r in any_store.list_runs(limit=1)] == [new.run_id]


class TestInMemoryRunStore:
    def test_clear(self):
        store = InMemoryRunStore()
        run = _run()
        store.create(run)
        store.clear()
        assert not store.exists(run.run_id)


class TestFileRunStore:
    def test_layout(self, tmp_path):
        store = FileRunStore(tmp_path / "store")
        run = _run()
        store.create(run)
        path = tmp_path / "store" / "runs" / f"{run.run_id}.json"
        assert path.exists()
        data = json.loads(path.read_text())
        assert data["status"] == "pending"
        assert data["ledger"] == {"tokens": 0, "cost": "0"}

    def test_persists_across_instances(self, tmp_path):
        run = _run()
        run.status = RunStatus.RUNNING
        run.append_step(
            StepLogEntry.start(0, StepDefinition(type="ok"), T0).finish(
                StepResult(summary="done", tokens=3, cost="0.01"), T0
            )
        )
        run.ledger.add(tokens=3, cost="0.01")
        FileRunStore(tmp_path / "store").create(run)

        reopened = FileRunStore(tmp_path / "store").get(run.run_id)
        assert reopened == run

    def test_no_temp_files_left(self, tmp_path):
        store = FileRunStore(tmp_path / "store")
        run = _run()
        store.create(run)
        run.status = RunStatus.RUNNING
        store.update(run)
        assert [p.name for p in (tmp_path / "store" / "runs").iterdir()] == [f"{run.run_id}.json"]

    @pytest.mark.parametrize("content", ["{not json", "[]", '{"run_id": "x"}'])
    def test_list_runs_skips_unreadable_files(self, tmp_path, caplog, content):
        store = FileRunStore(tmp_path / "store")
        run = _run()
        store.create(run)
        (tmp_path / "store" / "runs" / "01BROKEN.json").write_text(content)

        with caplog.at_level(logging.WARNING, logger="stepwright.run_store"):
            runs = store.list_runs()

        assert [r.run_id for r in runs] == [run.run_id]
        assert "01BROKEN.json" in caplog.text
