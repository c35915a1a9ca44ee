"""
Base handler protocol and common implementations.

Handlers perform the actual work for one step type. The StepExecutor looks
the handler up by step type, calls handle() on a worker thread with a
bounded timeout, and converts whatever comes back (result or exception)
into a StepResult.

Handlers validate their own parameters; the orchestrator never does.
"""

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from stepwright.schemas import StepDefinition, StepResult


@dataclass
class RunContext:
    """
    Execution context passed to a handler.

    Attributes:
        run_id: ULID of the run
        job_id: The job being run
        owner_id: Identity the run is attributed to
        subject_id: Entity the job operates on, if any
        step_index: Position of the step in the job
        timeout_seconds: Time budget for the step
        cancel_event: Set when the step timed out or the run was cancelled;
            long-running handlers should check it and stop early
    """
    run_id: str
    job_id: str
    owner_id: str
    subject_id: Optional[str] = None
    step_index: int = 0
    timeout_seconds: Optional[float] = None
    cancel_event: threading.Event = field(default_factory=threading.Event)

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()


class Handler(ABC):
    """
    Abstract base class for step handlers.

    Handlers receive a StepDefinition and a RunContext and return a
    StepResult. Failures are signalled by raising (see stepwright.errors).
    """

    @abstractmethod
    def handle(self, step: StepDefinition, context: RunContext) -> StepResult:
        """
        Execute a step.

        Args:
            step: The step definition, including handler parameters
            context: Run context for the step

        Returns:
            StepResult describing the outcome

        Raises:
            Exception: If the step fails
        """
        pass


class FunctionHandler(Handler):
    """
    Adapts a plain function to the Handler interface.

    The function may return a StepResult, a dict with StepResult keys, or
    any other value (used as the step output).
    """

    def __init__(self, func: Callable[[StepDefinition, RunContext], Any]):
        self._func = func

    def handle(self, step: StepDefinition, context: RunContext) -> StepResult:
        return StepResult.from_value(self._func(step, context))

    def __repr__(self) -> str:
        name = getattr(self._func, "__name__", repr(self._func))
        return f"FunctionHandler({name})"


class NoOpHandler(Handler):
    """
    No-op handler for testing.

    Returns a result without executing anything.
    """

    def handle(self, step: StepDefinition, context: RunContext) -> StepResult:
        """Return a no-op result without executing."""
        return StepResult(
            summary=f"noop: {step.label}",
            output={
                "status": "noop",
                "type": step.type,
                "parameters": dict(step.parameters),
            },
        )
