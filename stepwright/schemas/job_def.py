"""
JobDefinition schema - the immutable description of work to do.

A JobDefinition is an ordered, fixed list of steps submitted on behalf of
an owner. Step order is significant; there is no branching or reordering.
Step parameters are opaque here and validated only by the step handler.
"""

import uuid
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Optional

from stepwright.errors import JobValidationError


def generate_job_id() -> str:
    """Generate an opaque job identifier."""
    return uuid.uuid4().hex


@dataclass(frozen=True)
class StepDefinition:
    """
    One unit of work within a job.

    Attributes:
        type: Step type (see StepType for built-in values)
        action: Human-readable verb for logs and UIs
        target: Collaborator that handles the step (see StepTarget)
        parameters: Handler-specific parameters
    """
    type: str
    action: str = ""
    target: str = ""
    parameters: dict[str, Any] = field(default_factory=dict)

    def validate(self, index: int) -> None:
        """
        Check the step's shape. Parameters are not inspected.

        Raises:
            JobValidationError: If the step is malformed
        """
        if not isinstance(self.type, str) or not self.type:
            raise JobValidationError(f"Step {index}: 'type' must be a non-empty string")
        if not isinstance(self.action, str):
            raise JobValidationError(f"Step {index}: 'action' must be a string")
        if not isinstance(self.target, str):
            raise JobValidationError(f"Step {index}: 'target' must be a string")
        if not isinstance(self.parameters, Mapping):
            raise JobValidationError(f"Step {index}: 'parameters' must be a mapping")

    @property
    def label(self) -> str:
        """Action if given, otherwise the step type."""
        return self.action or self.type

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary for JSON/YAML output."""
        return {
            "type": self.type,
            "action": self.action,
            "target": self.target,
            "parameters": dict(self.parameters),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "StepDefinition":
        """Deserialize from dictionary."""
        if "type" not in data:
            raise JobValidationError(f"Step is missing 'type': {data}")
        # Saved macros name the collaborator "tool"
        target = data.get("target", data.get("tool", ""))
        return cls(
            type=data["type"],
            action=data.get("action", ""),
            target=target,
            parameters=data.get("parameters") or {},
        )


@dataclass(frozen=True)
class JobDefinition:
    """
    A job definition - the ordered steps a Run will execute.

    Attributes:
        owner_id: Identity the run is billed/attributed to
        steps: Ordered step definitions (may be empty)
        job_id: Opaque identifier, generated when not supplied
        dry_run: If true, every step is simulated rather than executed
        subject_id: Entity the job operates on (e.g. a project)
        job_type: Job family label reported to analytics
        name: Display name
    """
    owner_id: str
    steps: tuple[StepDefinition, ...] = field(default_factory=tuple)
    job_id: str = field(default_factory=generate_job_id)
    dry_run: bool = False
    subject_id: Optional[str] = None
    job_type: str = "macro"
    name: str = ""

    def validate(self) -> None:
        """
        Validate the job's shape.

        An empty step list is valid and completes immediately.

        Raises:
            JobValidationError: If the job is malformed
        """
        if not isinstance(self.job_id, str) or not self.job_id:
            raise JobValidationError("'job_id' must be a non-empty string")
        if not isinstance(self.owner_id, str) or not self.owner_id:
            raise JobValidationError("'owner_id' must be a non-empty string")
        if not isinstance(self.steps, (tuple, list)):
            raise JobValidationError("'steps' must be a sequence of StepDefinition")
        for i, step in enumerate(self.steps):
            if not isinstance(step, StepDefinition):
                raise JobValidationError(
                    f"Step {i}: expected StepDefinition, got {type(step).__name__}"
                )
            step.validate(i)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary for JSON/YAML output."""
        result = {
            "job_id": self.job_id,
            "owner_id": self.owner_id,
            "job_type": self.job_type,
            "dry_run": self.dry_run,
            "steps": [s.to_dict() for s in self.steps],
        }
        if self.subject_id is not None:
            result["subject_id"] = self.subject_id
        if self.name:
            result["name"] = self.name
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "JobDefinition":
        """
        Deserialize from dictionary.

        Raises:
            JobValidationError: If required fields are missing or malformed
        """
        if "owner_id" not in data:
            raise JobValidationError("Job definition is missing 'owner_id'")
        steps_data = data.get("steps") or []
        if not isinstance(steps_data, list):
            raise JobValidationError("'steps' must be a list")

        job = cls(
            owner_id=data["owner_id"],
            steps=tuple(StepDefinition.from_dict(s) for s in steps_data),
            job_id=data.get("job_id") or generate_job_id(),
            dry_run=bool(data.get("dry_run", False)),
            subject_id=data.get("subject_id"),
            job_type=data.get("job_type", "macro"),
            name=data.get("name", ""),
        )
        job.validate()
        return job
