"""
Analytics events for finished runs.

After a run reaches a terminal state the orchestrator emits one RunEvent
to the configured AnalyticsSink. Delivery is fire-and-forget: sink errors
are logged by the orchestrator and never change the run's outcome.

Event envelope:
- event_type: "job.completed" or "job.failed"
- correlation_id: the run_id
- payload: job/owner attribution, step count and ledger totals

Sinks:
- NullAnalyticsSink: discards events
- LoggingAnalyticsSink: one structured log line per event
- JsonlAnalyticsSink: appends events to a JSON-lines file
"""

import json
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional, Protocol, TYPE_CHECKING

if TYPE_CHECKING:
    from stepwright.schemas import Run

logger = logging.getLogger(__name__)

SUCCESS = "success"
FAILURE = "failure"


@dataclass(frozen=True)
class RunEvent:
    """Outcome notification for one finished run."""
    run_id: str
    job_id: str
    job_type: str
    owner_id: str
    outcome: str
    step_count: int
    total_tokens: int
    total_cost: str
    dry_run: bool = False
    subject_id: Optional[str] = None
    error_message: Optional[str] = None
    emitted_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def event_type(self) -> str:
        return "job.completed" if self.outcome == SUCCESS else "job.failed"

    @classmethod
    def from_run(cls, run: "Run") -> "RunEvent":
        """Build the event for a terminal run."""
        from stepwright.schemas import RunStatus

        if not run.is_terminal:
            raise ValueError(f"Run {run.run_id} is not finished ({run.status.value})")
        return cls(
            run_id=run.run_id,
            job_id=run.job_id,
            job_type=run.job_type,
            owner_id=run.owner_id,
            subject_id=run.subject_id,
            outcome=SUCCESS if run.status == RunStatus.COMPLETED else FAILURE,
            step_count=len(run.step_log),
            total_tokens=run.ledger.tokens,
            total_cost=str(run.ledger.cost),
            dry_run=run.dry_run,
            error_message=run.error_message,
        )

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "job_id": self.job_id,
            "job_type": self.job_type,
            "owner_id": self.owner_id,
            "outcome": self.outcome,
            "step_count": self.step_count,
            "total_tokens": self.total_tokens,
            "total_cost": self.total_cost,
            "dry_run": self.dry_run,
        }
        if self.subject_id is not None:
            payload["subject_id"] = self.subject_id
        if self.error_message is not None:
            payload["error_message"] = self.error_message
        return {
            "event_type": self.event_type,
            "correlation_id": self.run_id,
            "emitted_at": self.emitted_at.isoformat(),
            "payload": payload,
        }


class AnalyticsSink(Protocol):
    """Receives one RunEvent per finished run."""

    def notify(self, event: RunEvent) -> None: ...


class NullAnalyticsSink:
    """Sink that drops every event."""

    def notify(self, event: RunEvent) -> None:
        pass


class LoggingAnalyticsSink:
    """Sink that writes each event as a structured log record."""

    def __init__(self, log: Optional[logging.Logger] = None):
        self._logger = log or logger

    def notify(self, event: RunEvent) -> None:
        data = event.to_dict()
        self._logger.info(
            f"{event.event_type} run={event.run_id} outcome={event.outcome}",
            extra={
                "run_id": event.run_id,
                "job_id": event.job_id,
                "event": event.event_type,
                "metadata": data["payload"],
            },
        )


class JsonlAnalyticsSink:
    """
    Sink that appends events to a JSON-lines file.

    Each line is one event envelope (see RunEvent.to_dict). Appends are
    serialized so concurrent runs never interleave lines.
    """

    def __init__(self, path: Path | str):
        self._path = Path(path)
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def notify(self, event: RunEvent) -> None:
        line = json.dumps(event.to_dict(), default=str)
        with self._lock:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with open(self._path, "a") as f:
                f.write(line + "\n")

    def read_events(self) -> list[dict[str, Any]]:
        """Read back all recorded events (oldest first)."""
        if not self._path.exists():
            return []
        with open(self._path) as f:
            return [json.loads(line) for line in f if line.strip()]
