"""
StepLogEntry schema - one entry in a Run's append-only step log.

An entry is appended in the running state before its step executes and is
replaced by index with its terminal form (completed or failed) once the
step finishes. Entries are never reordered or deleted.
"""

from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from stepwright.ledger import to_decimal
from .job_def import StepDefinition
from .step_result import StepResult


class StepStatus(str, Enum):
    """Status of a step execution."""
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self != StepStatus.RUNNING


@dataclass(frozen=True)
class StepLogEntry:
    """
    The record of one attempted step.

    Attributes:
        step_index: Position of the step in the job (0-indexed)
        type: Step type
        action: Step action label
        status: running, completed or failed
        started_at: When the step started
        completed_at: When the step reached a terminal status
        summary: Result summary (completed steps)
        output: Result payload (completed steps)
        error: Error message (failed steps)
        tokens: Tokens consumed (AI steps only)
        cost: Monetary cost (AI steps only)
    """
    step_index: int
    type: str
    action: str
    status: StepStatus
    started_at: datetime
    completed_at: Optional[datetime] = None
    summary: Optional[str] = None
    output: Any = None
    error: Optional[str] = None
    tokens: Optional[int] = None
    cost: Optional[Decimal] = None

    def __post_init__(self):
        if self.step_index < 0:
            raise ValueError("step_index must be >= 0")
        if self.status == StepStatus.RUNNING:
            if self.completed_at is not None:
                raise ValueError("Running steps should not have completed_at")
        elif self.completed_at is None:
            raise ValueError(f"{self.status.value} steps must have completed_at")
        if self.status == StepStatus.FAILED and not self.error:
            raise ValueError("Failed steps must have an error")
        if self.status == StepStatus.COMPLETED and self.error is not None:
            raise ValueError("Completed steps must not have an error")

    @classmethod
    def start(cls, step_index: int, step: StepDefinition, started_at: datetime) -> "StepLogEntry":
        """Create the provisional running entry for a step."""
        return cls(
            step_index=step_index,
            type=step.type,
            action=step.action,
            status=StepStatus.RUNNING,
            started_at=started_at,
        )

    def finish(self, result: StepResult, completed_at: datetime) -> "StepLogEntry":
        """
        Return the terminal form of this entry.

        Raises:
            ValueError: If the entry is already terminal
        """
        if self.status.is_terminal:
            raise ValueError(f"Step {self.step_index} is already {self.status.value}")
        # Negative usage is recorded as zero, matching CostLedger.add
        tokens = None if result.tokens is None else max(result.tokens, 0)
        cost = None if result.cost is None else max(result.cost, Decimal("0"))
        if result.ok:
            return replace(
                self,
                status=StepStatus.COMPLETED,
                completed_at=completed_at,
                summary=result.summary,
                output=result.output,
                tokens=tokens,
                cost=cost,
            )
        return replace(
            self,
            status=StepStatus.FAILED,
            completed_at=completed_at,
            error=result.error,
            tokens=tokens,
            cost=cost,
        )

    @property
    def duration_ms(self) -> Optional[int]:
        """Execution duration in milliseconds if the step finished."""
        if self.completed_at:
            delta = self.completed_at - self.started_at
            return int(delta.total_seconds() * 1000)
        return None

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary for JSON output."""
        result: dict[str, Any] = {
            "step_index": self.step_index,
            "type": self.type,
            "action": self.action,
            "status": self.status.value,
            "started_at": self.started_at.isoformat(),
        }
        if self.completed_at is not None:
            result["completed_at"] = self.completed_at.isoformat()
        if self.summary is not None:
            result["summary"] = self.summary
        if self.output is not None:
            result["output"] = self.output
        if self.error is not None:
            result["error"] = self.error
        if self.tokens is not None:
            result["tokens"] = self.tokens
        if self.cost is not None:
            result["cost"] = str(self.cost)
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "StepLogEntry":
        """Deserialize from dictionary."""
        return cls(
            step_index=data["step_index"],
            type=data["type"],
            action=data.get("action", ""),
            status=StepStatus(data["status"]),
            started_at=datetime.fromisoformat(data["started_at"]),
            completed_at=datetime.fromisoformat(data["completed_at"]) if data.get("completed_at") else None,
            summary=data.get("summary"),
            output=data.get("output"),
            error=data.get("error"),
            tokens=data.get("tokens"),
            cost=to_decimal(data["cost"]) if data.get("cost") is not None else None,
        )
