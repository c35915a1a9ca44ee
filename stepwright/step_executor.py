"""
StepExecutor - execute exactly one step and normalize its outcome.

The StepExecutor implements:
- Dry-run simulation (no handler is looked up or invoked)
- Handler lookup by step type via HandlerRegistry
- A bounded, per-step-type timeout (TimeoutPolicy)
- Conversion of every handler outcome into a StepResult

It never raises: unknown step types, handler exceptions and timeouts all
come back as failed StepResults, so the orchestrator only has to decide
whether to continue.
"""

import concurrent.futures
import json
import logging
import threading
from dataclasses import dataclass, field
from typing import Optional, TYPE_CHECKING

from stepwright.handlers.base import RunContext
from stepwright.schemas import StepDefinition, StepResult, StepType

if TYPE_CHECKING:
    from stepwright.handlers import HandlerRegistry
    from stepwright.schemas import Run

logger = logging.getLogger(__name__)


DEFAULT_STEP_TIMEOUTS: dict[str, float] = {
    StepType.AI_SUGGESTION.value: 60.0,
    StepType.FILE_EDIT.value: 30.0,
    StepType.COMMAND.value: 120.0,
    StepType.TEST.value: 300.0,
    StepType.DEPLOY.value: 600.0,
    StepType.SEED_FILES.value: 60.0,
    StepType.CREATE_GIT_REPO.value: 60.0,
    StepType.PROVISION_SANDBOX.value: 300.0,
    StepType.INDEX_PROJECT.value: 120.0,
    StepType.RUN_INITIAL_BUILD.value: 600.0,
}


@dataclass(frozen=True)
class TimeoutPolicy:
    """
    Per-step-type timeouts in seconds.

    Attributes:
        default: Timeout for step types without an entry
        per_type: Overrides keyed by step type
    """
    default: float = 30.0
    per_type: dict[str, float] = field(default_factory=lambda: dict(DEFAULT_STEP_TIMEOUTS))

    def __post_init__(self):
        if self.default <= 0:
            raise ValueError("default timeout must be positive")
        for step_type, seconds in self.per_type.items():
            if seconds <= 0:
                raise ValueError(f"timeout for {step_type} must be positive")

    def for_type(self, step_type: str) -> float:
        return self.per_type.get(step_type, self.default)


def dry_run_result(step: StepDefinition) -> StepResult:
    """Build the simulated result for a step, deterministically."""
    parameters = json.dumps(step.parameters, sort_keys=True, default=str)
    target = step.target or step.type
    return StepResult(
        summary=f"[DRY RUN] would execute {step.label}",
        output=f"This step would perform: {step.label} on {target} with parameters: {parameters}",
    )


class StepExecutor:
    """
    Executes one step at a time against the registered handlers.

    The executor is stateless per call. Handlers run on a dedicated worker
    thread so a hung handler cannot block the orchestrator past its timeout;
    on timeout the step's cancel event is set and the worker is abandoned.

    Usage:
        executor = StepExecutor(HandlerRegistry.create_default())
        result = executor.run_step(step, run, dry_run=False)
    """

    def __init__(
        self,
        handlers: "HandlerRegistry",
        timeouts: Optional[TimeoutPolicy] = None,
    ):
        """
        Initialize the executor.

        Args:
            handlers: HandlerRegistry for step dispatch
            timeouts: TimeoutPolicy (defaults to DEFAULT_STEP_TIMEOUTS)
        """
        self._handlers = handlers
        self._timeouts = timeouts or TimeoutPolicy()

    @property
    def timeouts(self) -> TimeoutPolicy:
        return self._timeouts

    def run_step(
        self,
        step: StepDefinition,
        run: "Run",
        dry_run: bool = False,
        step_index: Optional[int] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> StepResult:
        """
        Execute a step and return its normalized result.

        Args:
            step: The step to execute
            run: The run the step belongs to
            dry_run: Simulate instead of executing
            step_index: Position of the step (defaults to run.current_step_index)
            cancel_event: Event shared with the handler; set on timeout

        Returns:
            StepResult; failed results carry the error message
        """
        if dry_run:
            return dry_run_result(step)

        if not self._handlers.has(step.type):
            return StepResult.failure(f"unknown step type: {step.type}")
        handler = self._handlers.get(step.type)

        timeout = self._timeouts.for_type(step.type)
        context = RunContext(
            run_id=run.run_id,
            job_id=run.job_id,
            owner_id=run.owner_id,
            subject_id=run.subject_id,
            step_index=run.current_step_index if step_index is None else step_index,
            timeout_seconds=timeout,
            cancel_event=cancel_event or threading.Event(),
        )

        pool = concurrent.futures.ThreadPoolExecutor(
            max_workers=1, thread_name_prefix=f"step-{run.run_id}"
        )
        try:
            future = pool.submit(handler.handle, step, context)
            done, _ = concurrent.futures.wait([future], timeout=timeout)
            if not done:
                context.cancel_event.set()
                future.cancel()
                logger.warning(
                    f"Step {context.step_index} ({step.type}) of run {run.run_id} "
                    f"timed out after {timeout:g}s"
                )
                return StepResult.failure(f"step timed out after {timeout:g}s")
            try:
                outcome = future.result()
            except Exception as e:
                logger.info(
                    f"Step {context.step_index} ({step.type}) of run {run.run_id} failed: {e}"
                )
                return StepResult.failure(str(e) or type(e).__name__)
        finally:
            pool.shutdown(wait=False)

        try:
            return StepResult.from_value(outcome)
        except (TypeError, ValueError) as e:
            return StepResult.failure(f"invalid result from {step.type} handler: {e}")
