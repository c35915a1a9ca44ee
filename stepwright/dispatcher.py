"""
Dispatcher - accept jobs and run them in the background.

submit() validates a JobDefinition, creates its pending Run, hands the Run
to a JobOrchestrator on a worker pool and returns at once. Clients then
poll get_run() (or wait()) for progress.

Guarantees:
- Validation and owner errors are raised to the submitter; no Run exists
- A Run is executed at most once at a time (DuplicateRunError otherwise)
- Errors inside a background execution are logged, never raised
"""

import concurrent.futures
import logging
import threading
from dataclasses import dataclass
from typing import Optional, Protocol, TYPE_CHECKING

from stepwright.errors import DuplicateRunError, OwnerNotFoundError, RunConflictError
from stepwright.run_store import generate_ulid
from stepwright.schemas import JobDefinition, Run, RunStatus

if TYPE_CHECKING:
    from stepwright.orchestrator import JobOrchestrator
    from stepwright.run_store import RunStore

logger = logging.getLogger(__name__)

QUEUED = "queued"


class OwnerDirectory(Protocol):
    """Lookup of known owners (accounts runs are attributed to)."""

    def exists(self, owner_id: str) -> bool: ...


class StaticOwnerDirectory:
    """OwnerDirectory backed by a fixed set of owner ids."""

    def __init__(self, owner_ids):
        self._owner_ids = frozenset(owner_ids)

    def exists(self, owner_id: str) -> bool:
        return owner_id in self._owner_ids


@dataclass(frozen=True)
class SubmitReceipt:
    """What the submitter gets back: the run id and its launch status."""
    run_id: str
    status: str


@dataclass
class _InFlight:
    job: JobDefinition
    cancel_event: threading.Event
    future: Optional[concurrent.futures.Future] = None


class Dispatcher:
    """
    Submits jobs to a JobOrchestrator running on a thread pool.

    Usage:
        with Dispatcher(store, orchestrator, max_workers=4) as dispatcher:
            receipt = dispatcher.submit(job)
            run = dispatcher.wait(receipt.run_id, timeout=60)
    """

    def __init__(
        self,
        store: "RunStore",
        orchestrator: "JobOrchestrator",
        max_workers: int = 4,
        owners: Optional[OwnerDirectory] = None,
    ):
        if max_workers < 1:
            raise ValueError("max_workers must be >= 1")
        self._store = store
        self._orchestrator = orchestrator
        self._owners = owners
        self._max_workers = max_workers
        self._pool = concurrent.futures.ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="stepwright-run"
        )
        self._lock = threading.Lock()
        self._in_flight: dict[str, _InFlight] = {}
        self._active = 0
        self._closed = False

    def submit(self, job: JobDefinition) -> SubmitReceipt:
        """
        Validate a job, create its Run and start executing it.

        Returns:
            SubmitReceipt with the new run_id; status is "running" when a
            worker was free and "queued" otherwise

        Raises:
            JobValidationError: If the job is malformed
            OwnerNotFoundError: If an owner directory is set and the owner
                is unknown
            RuntimeError: If the dispatcher has been shut down
        """
        job.validate()
        if self._owners is not None and not self._owners.exists(job.owner_id):
            raise OwnerNotFoundError(job.owner_id)

        run = Run.for_job(generate_ulid(), job)
        with self._lock:
            self._check_open()
            self._store.create(run)
            logger.info(
                f"Run {run.run_id} created for job {job.job_id} (owner {job.owner_id})",
                extra={"run_id": run.run_id, "job_id": job.job_id, "event": "run.created"},
            )
            status = self._start(self._store.get(run.run_id), job)
        return SubmitReceipt(run_id=run.run_id, status=status)

    def launch(self, run_id: str, job: JobDefinition) -> str:
        """
        Start executing an existing pending Run.

        Returns:
            "running" or "queued"

        Raises:
            DuplicateRunError: If the Run is already in flight
            RunConflictError: If the Run is not pending
            RunNotFoundError: If the Run does not exist
            RuntimeError: If the dispatcher has been shut down
        """
        with self._lock:
            self._check_open()
            if run_id in self._in_flight:
                raise DuplicateRunError(run_id)
            run = self._store.get(run_id)
            if run.status != RunStatus.PENDING:
                raise RunConflictError(
                    f"Run {run_id} cannot be launched: status is {run.status.value}"
                )
            return self._start(run, job)

    def _start(self, run: Run, job: JobDefinition) -> str:
        # Caller holds self._lock
        entry = _InFlight(job=job, cancel_event=threading.Event())
        self._in_flight[run.run_id] = entry
        status = RunStatus.RUNNING.value if self._active < self._max_workers else QUEUED
        self._active += 1
        try:
            entry.future = self._pool.submit(self._execute, run, entry)
        except RuntimeError:
            self._in_flight.pop(run.run_id, None)
            self._active -= 1
            raise
        return status

    def _execute(self, run: Run, entry: _InFlight) -> Optional[Run]:
        try:
            return self._orchestrator.execute(run, entry.job, cancel_event=entry.cancel_event)
        except Exception:
            logger.exception(
                f"Background execution of run {run.run_id} failed",
                extra={"run_id": run.run_id, "event": "run.crashed"},
            )
            return None
        finally:
            with self._lock:
                self._in_flight.pop(run.run_id, None)
                self._active -= 1

    def get_run(self, run_id: str) -> Run:
        """
        Current snapshot of a Run.

        Raises:
            RunNotFoundError: If the run does not exist
        """
        return self._store.get(run_id)

    def cancel(self, run_id: str) -> bool:
        """
        Request cancellation of an in-flight run.

        The run stops before its next step and ends failed with
        error_message "cancelled". A step already executing is not
        interrupted.

        Returns:
            True if the run was in flight, False otherwise
        """
        with self._lock:
            entry = self._in_flight.get(run_id)
        if entry is None:
            return False
        entry.cancel_event.set()
        logger.info(f"Cancellation requested for run {run_id}", extra={"run_id": run_id})
        return True

    def is_in_flight(self, run_id: str) -> bool:
        with self._lock:
            return run_id in self._in_flight

    def wait(self, run_id: str, timeout: Optional[float] = None) -> Run:
        """
        Block until a run's execution ends (or timeout), then return it.

        Runs that are not in flight are returned as stored.
        """
        with self._lock:
            entry = self._in_flight.get(run_id)
        if entry is not None and entry.future is not None:
            concurrent.futures.wait([entry.future], timeout=timeout)
        return self._store.get(run_id)

    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting work; optionally wait for in-flight runs."""
        with self._lock:
            self._closed = True
        self._pool.shutdown(wait=wait)

    def _check_open(self) -> None:
        if self._closed:
            raise RuntimeError("Dispatcher has been shut down")

    def __enter__(self) -> "Dispatcher":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown(wait=True)
