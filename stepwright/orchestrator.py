"""
JobOrchestrator - drive one Run through its steps.

Execution flow:
1. Move the pending Run to running (started_at, total_steps) and persist
2. For each step, in order:
   a. Stop with failed/"cancelled" if cancellation was requested
   b. Append a running StepLogEntry and persist
   c. Execute the step via StepExecutor (dry-run aware)
   d. Replace the entry with its terminal form, merge cost, persist
   e. Stop with failed on the first failed step
3. Mark the Run completed, persist, fire the on-success hook

Persistence:
- Progress writes are best-effort: a failure is logged and execution goes on
- The terminal write is retried with exponential backoff; lifecycle
  conflicts are not retried
- The store never sees a terminal Run before the terminal write

Analytics and the on-success hook run after the terminal write; their
failures are logged and never change the Run.
"""

import logging
import threading
from datetime import datetime, timezone
from typing import Callable, Optional, TYPE_CHECKING

from stepwright.analytics import AnalyticsSink, NullAnalyticsSink, RunEvent
from stepwright.errors import CANCELLED, RunConflictError
from stepwright.schemas import JobDefinition, Run, RunStatus, StepLogEntry
from stepwright.utils import retry_with_backoff

if TYPE_CHECKING:
    from stepwright.run_store import RunStore
    from stepwright.step_executor import StepExecutor

logger = logging.getLogger(__name__)

OnSuccessHook = Callable[[str, Optional[str]], None]


def _utcnow() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


def _is_retryable_write_error(error: Exception) -> bool:
    return not isinstance(error, RunConflictError)


class JobOrchestrator:
    """
    Runs the steps of a job strictly in order, fail-fast.

    The orchestrator owns the Run while executing it: it is the only
    writer, so every update carries the complete current Run.

    Usage:
        orchestrator = JobOrchestrator(store, StepExecutor(registry))
        run = orchestrator.execute(Run.for_job(run_id, job), job)
    """

    def __init__(
        self,
        store: "RunStore",
        executor: "StepExecutor",
        analytics: Optional[AnalyticsSink] = None,
        on_success: Optional[OnSuccessHook] = None,
        terminal_write_attempts: int = 5,
        terminal_write_backoff: float = 0.5,
        clock: Callable[[], datetime] = _utcnow,
    ):
        """
        Initialize the orchestrator.

        Args:
            store: RunStore receiving every progress and terminal write
            executor: StepExecutor for individual steps
            analytics: Sink notified once per finished run
            on_success: Hook called with (job_id, subject_id) after a
                successful run that has a subject
            terminal_write_attempts: Attempts for the terminal write
            terminal_write_backoff: Initial backoff between those attempts
            clock: Time source for timestamps
        """
        if terminal_write_attempts < 1:
            raise ValueError("terminal_write_attempts must be >= 1")
        self._store = store
        self._executor = executor
        self._analytics = analytics if analytics is not None else NullAnalyticsSink()
        self._on_success = on_success
        self._terminal_write_attempts = terminal_write_attempts
        self._terminal_write_backoff = terminal_write_backoff
        self._clock = clock

    def execute(
        self,
        run: Run,
        job: JobDefinition,
        cancel_event: Optional[threading.Event] = None,
    ) -> Run:
        """
        Execute all steps of `job` against `run`.

        Args:
            run: The pending Run created for this job
            job: The job whose steps are executed
            cancel_event: Checked before each step; when set the Run fails
                with error_message "cancelled"

        Returns:
            The Run in its final state (completed or failed)

        Raises:
            RunConflictError: If the Run is not pending
        """
        if run.status != RunStatus.PENDING:
            raise RunConflictError(
                f"Run {run.run_id} cannot be executed: status is {run.status.value}"
            )

        run.status = RunStatus.RUNNING
        run.started_at = self._clock()
        run.total_steps = len(job.steps)
        run.current_step_index = 0
        self._persist_progress(run)

        logger.info(
            f"Run {run.run_id} started: job {job.job_id} with {run.total_steps} steps"
            + (" (dry run)" if job.dry_run else ""),
            extra={"run_id": run.run_id, "job_id": job.job_id, "event": "run.started"},
        )

        for index, step in enumerate(job.steps):
            if cancel_event is not None and cancel_event.is_set():
                logger.info(f"Run {run.run_id} cancelled before step {index}")
                return self._finish(run, RunStatus.FAILED, CANCELLED)

            run.current_step_index = index
            run.append_step(StepLogEntry.start(index, step, self._clock()))
            self._persist_progress(run)

            result = self._executor.run_step(step, run, dry_run=job.dry_run, step_index=index)

            entry = run.step_log[index].finish(result, self._clock())
            run.replace_step(index, entry)
            run.ledger.merge(result)
            self._persist_progress(run)

            if not result.ok:
                logger.info(
                    f"Run {run.run_id} step {index} ({step.label}) failed: {result.error}",
                    extra={"run_id": run.run_id, "step_index": index, "event": "step.failed"},
                )
                return self._finish(run, RunStatus.FAILED, result.error)

            logger.debug(
                f"Run {run.run_id} step {index} ({step.label}) completed",
                extra={"run_id": run.run_id, "step_index": index, "event": "step.completed"},
            )

        run = self._finish(run, RunStatus.COMPLETED)
        if run.subject_id is not None:
            self._call_on_success(run)
        return run

    def _finish(self, run: Run, status: RunStatus, error_message: Optional[str] = None) -> Run:
        run.status = status
        run.completed_at = self._clock()
        run.error_message = error_message
        self._persist_terminal(run)

        logger.info(
            f"Run {run.run_id} {status.value}"
            + (f": {error_message}" if error_message else "")
            + f" (tokens={run.ledger.tokens}, cost={run.ledger.cost})",
            extra={"run_id": run.run_id, "job_id": run.job_id, "event": f"run.{status.value}"},
        )

        self._notify_analytics(run)
        return run

    def _persist_progress(self, run: Run) -> None:
        try:
            self._store.update(run)
        except Exception as e:
            logger.warning(
                f"Progress write for run {run.run_id} failed: {e}",
                extra={"run_id": run.run_id, "step_index": run.current_step_index},
            )

    def _persist_terminal(self, run: Run) -> None:
        try:
            retry_with_backoff(
                lambda: self._store.update(run),
                max_attempts=self._terminal_write_attempts,
                backoff_seconds=self._terminal_write_backoff,
                logger=logger,
                retryable=_is_retryable_write_error,
            )
        except Exception as e:
            logger.error(
                f"Terminal write for run {run.run_id} ({run.status.value}) failed: {e}",
                extra={"run_id": run.run_id, "event": "run.persist_failed"},
            )

    def _notify_analytics(self, run: Run) -> None:
        try:
            self._analytics.notify(RunEvent.from_run(run))
        except Exception as e:
            logger.warning(f"Analytics notification for run {run.run_id} failed: {e}")

    def _call_on_success(self, run: Run) -> None:
        if self._on_success is None:
            return
        try:
            self._on_success(run.job_id, run.subject_id)
        except Exception as e:
            logger.warning(f"On-success hook for run {run.run_id} failed: {e}")
