import logging
import threading
from datetime import datetime, timedelta, timezone

import pytest

from stepwright.handlers import HandlerRegistry
from stepwright.run_store import InMemoryRunStore
from stepwright.schemas import JobDefinition, StepDefinition, StepResult
from stepwright.step_executor import StepExecutor


@pytest.fixture(autouse=True)
def stepwright_home(monkeypatch, tmp_path):
    """Point STEPWRIGHT_HOME at a temp dir so tests never touch ~/.stepwright."""
    home = tmp_path / "stepwright_home"
    monkeypatch.setenv("STEPWRIGHT_HOME", str(home))
    return home


@pytest.fixture(autouse=True)
def reset_stepwright_logger():
    """Drop handlers installed by setup_logging (the CLI calls it on every invocation)."""
    yield
    logger = logging.getLogger("stepwright")
    for handler in logger.handlers:
        handler.close()
    logger.handlers = []
    logger.setLevel(logging.NOTSET)


class FakeClock:
    """Deterministic clock advancing one second per call."""

    def __init__(self, start=None):
        self.now = start or datetime(2025, 1, 1, tzinfo=timezone.utc)
        self._lock = threading.Lock()

    def __call__(self):
        with self._lock:
            current = self.now
            self.now = self.now + timedelta(seconds=1)
            return current


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return InMemoryRunStore()


@pytest.fixture
def registry():
    """Registry with simple function handlers for test step types."""
    reg = HandlerRegistry()
    reg.register("ok", lambda step, ctx: StepResult(summary=f"did {step.action}"))
    reg.register(
        "ai",
        lambda step, ctx: StepResult(
            summary="ai",
            tokens=step.parameters.get("tokens", 0),
            cost=step.parameters.get("cost", "0"),
        ),
    )

    def boom(step, ctx):
        raise RuntimeError(step.parameters.get("message", "boom"))

    reg.register("boom", boom)
    return reg


@pytest.fixture
def executor(registry):
    return StepExecutor(registry)


def make_job(*step_types, owner_id="owner-1", subject_id=None, dry_run=False, **kwargs):
    """Build a job with one step per type, using the type as the action."""
    steps = tuple(StepDefinition(type=t, action=f"{t}-{i}") for i, t in enumerate(step_types))
    return JobDefinition(
        owner_id=owner_id,
        steps=steps,
        subject_id=subject_id,
        dry_run=dry_run,
        **kwargs,
    )
