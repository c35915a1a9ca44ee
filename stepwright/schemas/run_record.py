"""
Run schema - one execution attempt of a JobDefinition.

A Run is created pending by the Dispatcher, moved to running by the
JobOrchestrator, updated after every step, and moved to a terminal state
(completed or failed) exactly once. The run_id is a ULID providing both
uniqueness and time-ordering.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from stepwright.ledger import CostLedger
from .job_def import JobDefinition
from .step_log import StepLogEntry, StepStatus

# ULID type alias for documentation
ULID = str


def _utcnow() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


class RunStatus(str, Enum):
    """Lifecycle status of a Run."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (RunStatus.COMPLETED, RunStatus.FAILED)

    @property
    def rank(self) -> int:
        """Position in the forward-only lifecycle."""
        if self == RunStatus.PENDING:
            return 0
        if self == RunStatus.RUNNING:
            return 1
        return 2

    def can_transition_to(self, other: "RunStatus") -> bool:
        """
        Check whether a write may move a run from this status to `other`.

        Terminal runs never change. Otherwise status only moves forward
        (repeating the current non-terminal status is allowed, since
        progress writes keep the run running).
        """
        if self.is_terminal:
            return False
        return other.rank >= self.rank


@dataclass
class Run:
    """
    A record of one job execution.

    Attributes:
        run_id: ULID uniquely identifying this run
        job_id: The job being run
        owner_id: Identity the run is billed/attributed to
        subject_id: Entity the job operates on, if any
        job_type: Job family label (macro, provisioning, ...)
        dry_run: Whether steps are simulated
        status: pending, running, completed or failed
        current_step_index: Index of the step being (or last) executed
        total_steps: Number of steps in the job
        step_log: Append-only log, one entry per attempted step
        ledger: Running token/cost totals
        created_at: When the run was submitted
        started_at: When the orchestrator started the run
        completed_at: When the run reached a terminal status
        error_message: Failure reason (failed runs only)
    """
    run_id: ULID
    job_id: str
    owner_id: str
    subject_id: Optional[str] = None
    job_type: str = "macro"
    dry_run: bool = False
    status: RunStatus = RunStatus.PENDING
    current_step_index: int = 0
    total_steps: int = 0
    step_log: list[StepLogEntry] = field(default_factory=list)
    ledger: CostLedger = field(default_factory=CostLedger)
    created_at: datetime = field(default_factory=_utcnow)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    error_message: Optional[str] = None

    @classmethod
    def for_job(cls, run_id: ULID, job: JobDefinition) -> "Run":
        """Create the pending Run for a job."""
        return cls(
            run_id=run_id,
            job_id=job.job_id,
            owner_id=job.owner_id,
            subject_id=job.subject_id,
            job_type=job.job_type,
            dry_run=job.dry_run,
            total_steps=len(job.steps),
        )

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def append_step(self, entry: StepLogEntry) -> None:
        """
        Append the provisional entry for the next step.

        Raises:
            ValueError: If the entry is out of order or another step is running
        """
        if entry.step_index != len(self.step_log):
            raise ValueError(
                f"Step log is append-only: expected index {len(self.step_log)}, "
                f"got {entry.step_index}"
            )
        if self.running_step is not None:
            raise ValueError(f"Step {self.running_step.step_index} is still running")
        if len(self.step_log) >= self.total_steps:
            raise ValueError(f"Run has only {self.total_steps} steps")
        self.step_log.append(entry)

    def replace_step(self, index: int, entry: StepLogEntry) -> None:
        """
        Replace a running entry with its terminal form.

        Raises:
            ValueError: If the index is wrong or the existing entry is terminal
        """
        if entry.step_index != index or not 0 <= index < len(self.step_log):
            raise ValueError(f"No step log entry at index {index}")
        if self.step_log[index].status.is_terminal:
            raise ValueError(f"Step {index} is already {self.step_log[index].status.value}")
        self.step_log[index] = entry

    @property
    def running_step(self) -> Optional[StepLogEntry]:
        for entry in self.step_log:
            if entry.status == StepStatus.RUNNING:
                return entry
        return None

    @property
    def failed_step(self) -> Optional[StepLogEntry]:
        for entry in self.step_log:
            if entry.status == StepStatus.FAILED:
                return entry
        return None

    @property
    def completed_steps(self) -> int:
        return sum(1 for e in self.step_log if e.status == StepStatus.COMPLETED)

    @property
    def progress_percent(self) -> int:
        """Share of steps completed, 0-100."""
        if self.total_steps == 0:
            return 100 if self.status == RunStatus.COMPLETED else 0
        return round(self.completed_steps / self.total_steps * 100)

    def estimated_seconds_remaining(self, avg_step_seconds: float = 30.0) -> float:
        """
        Estimate time left from the average duration of finished steps.

        Falls back to `avg_step_seconds` per step before any step finishes.
        """
        if self.is_terminal:
            return 0.0
        finished = [e.duration_ms for e in self.step_log if e.duration_ms is not None]
        if finished:
            avg_step_seconds = sum(finished) / len(finished) / 1000
        remaining = self.total_steps - self.completed_steps
        return max(0.0, remaining * avg_step_seconds)

    @property
    def duration_ms(self) -> Optional[int]:
        if self.started_at and self.completed_at:
            delta = self.completed_at - self.started_at
            return int(delta.total_seconds() * 1000)
        return None

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary for JSON output."""
        result: dict[str, Any] = {
            "run_id": self.run_id,
            "job_id": self.job_id,
            "owner_id": self.owner_id,
            "job_type": self.job_type,
            "dry_run": self.dry_run,
            "status": self.status.value,
            "current_step_index": self.current_step_index,
            "total_steps": self.total_steps,
            "step_log": [e.to_dict() for e in self.step_log],
            "ledger": self.ledger.to_dict(),
            "created_at": self.created_at.isoformat(),
        }
        if self.subject_id is not None:
            result["subject_id"] = self.subject_id
        if self.started_at:
            result["started_at"] = self.started_at.isoformat()
        if self.completed_at:
            result["completed_at"] = self.completed_at.isoformat()
        if self.error_message is not None:
            result["error_message"] = self.error_message
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Run":
        """Deserialize from dictionary."""
        started_at = None
        if data.get("started_at"):
            started_at = datetime.fromisoformat(data["started_at"])
        completed_at = None
        if data.get("completed_at"):
            completed_at = datetime.fromisoformat(data["completed_at"])
        return cls(
            run_id=data["run_id"],
            job_id=data["job_id"],
            owner_id=data["owner_id"],
            subject_id=data.get("subject_id"),
            job_type=data.get("job_type", "macro"),
            dry_run=data.get("dry_run", False),
            status=RunStatus(data.get("status", "pending")),
            current_step_index=data.get("current_step_index", 0),
            total_steps=data.get("total_steps", 0),
            step_log=[StepLogEntry.from_dict(e) for e in data.get("step_log", [])],
            ledger=CostLedger.from_dict(data.get("ledger")),
            created_at=datetime.fromisoformat(data["created_at"]),
            started_at=started_at,
            completed_at=completed_at,
            error_message=data.get("error_message"),
        )
