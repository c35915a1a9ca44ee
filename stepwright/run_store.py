"""
RunStore - durable read/write of Run records.

The RunStore is the single source of truth read by status-polling clients
and the only component that mutates a Run after creation:
- create(run): persist a new pending Run
- get(run_id): snapshot of the current Run
- update(run): full replace with the caller's complete, current Run
- list_runs(): most recent runs first

Stores hold copies: a Run returned by get() can be mutated freely without
affecting stored state, and update() snapshots its argument.

A single Run is only ever advanced by one orchestrator at a time, so no
optimistic locking is needed. update() still rejects writes that break
the Run lifecycle: any write to a terminal run, a backwards status
transition, or a shorter step log.

Storage backends:
- In-memory (for testing and single-process use)
- File-based (one JSON document per run)
"""

import copy
import json
import logging
import os
import random
import tempfile
import threading
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

from stepwright.errors import RunNotFoundError, StaleRunError, TerminalRunError
from stepwright.schemas import Run

logger = logging.getLogger(__name__)


def generate_ulid() -> str:
    """
    Generate a ULID (Universally Unique Lexicographically Sortable Identifier).

    ULIDs are 26 characters, encoding:
    - 48 bits of timestamp (milliseconds since Unix epoch)
    - 80 bits of randomness
    """
    # Crockford's Base32 alphabet (excludes I, L, O, U)
    ALPHABET = "0123456789ABCDEFGHJKMNPQRSTVWXYZ"

    # Timestamp component (48 bits = 10 chars in base32)
    timestamp_ms = int(time.time() * 1000)
    timestamp_chars = []
    for _ in range(10):
        timestamp_chars.append(ALPHABET[timestamp_ms & 0x1F])
        timestamp_ms >>= 5
    timestamp_part = "".join(reversed(timestamp_chars))

    # Random component (80 bits = 16 chars in base32)
    random_part = "".join(random.choice(ALPHABET) for _ in range(16))

    return timestamp_part + random_part


def _copy(run: Run) -> Run:
    return copy.deepcopy(run)


def check_write(previous: Run, new: Run) -> None:
    """
    Validate that `new` may replace `previous`.

    Raises:
        TerminalRunError: If the stored run is already terminal
        StaleRunError: If the status moves backwards or the step log shrinks
    """
    if previous.status.is_terminal:
        raise TerminalRunError(previous.run_id, previous.status.value)
    if not previous.status.can_transition_to(new.status):
        raise StaleRunError(
            f"Run {previous.run_id}: cannot move from {previous.status.value} "
            f"to {new.status.value}"
        )
    if len(new.step_log) < len(previous.step_log):
        raise StaleRunError(
            f"Run {previous.run_id}: step log would shrink from "
            f"{len(previous.step_log)} to {len(new.step_log)} entries"
        )


class RunStore(ABC):
    """
    Abstract base class for Run storage.

    Implementations must provide methods to create, retrieve, replace and
    list Runs, and must call check_write() before replacing a stored Run.
    """

    @abstractmethod
    def create(self, run: Run) -> str:
        """
        Persist a new run.

        Args:
            run: The Run to store (normally pending)

        Returns:
            The run_id

        Raises:
            StaleRunError: If a run with the same id already exists
        """
        pass

    @abstractmethod
    def get(self, run_id: str) -> Run:
        """
        Retrieve a run by ID.

        Raises:
            RunNotFoundError: If the run does not exist
        """
        pass

    @abstractmethod
    def update(self, run: Run) -> None:
        """
        Replace a stored run with the given complete Run.

        Raises:
            RunNotFoundError: If the run does not exist
            TerminalRunError: If the stored run is already terminal
            StaleRunError: If the write would move the run backwards
        """
        pass

    @abstractmethod
    def list_runs(self, owner_id: Optional[str] = None, limit: Optional[int] = None) -> list[Run]:
        """
        List runs, most recent first.

        Args:
            owner_id: Only runs attributed to this owner
            limit: Maximum number of runs to return
        """
        pass

    def exists(self, run_id: str) -> bool:
        try:
            self.get(run_id)
        except RunNotFoundError:
            return False
        return True


class InMemoryRunStore(RunStore):
    """
    In-memory implementation of RunStore.

    Thread-safe; all data is lost when the instance is garbage collected.
    """

    def __init__(self):
        self._runs: dict[str, Run] = {}
        self._lock = threading.Lock()

    def create(self, run: Run) -> str:
        with self._lock:
            if run.run_id in self._runs:
                raise StaleRunError(f"Run {run.run_id} already exists")
            self._runs[run.run_id] = _copy(run)
        return run.run_id

    def get(self, run_id: str) -> Run:
        with self._lock:
            run = self._runs.get(run_id)
            if run is None:
                raise RunNotFoundError(run_id)
            return _copy(run)

    def update(self, run: Run) -> None:
        with self._lock:
            previous = self._runs.get(run.run_id)
            if previous is None:
                raise RunNotFoundError(run.run_id)
            check_write(previous, run)
            self._runs[run.run_id] = _copy(run)

    def list_runs(self, owner_id: Optional[str] = None, limit: Optional[int] = None) -> list[Run]:
        with self._lock:
            runs = [
                _copy(r) for r in self._runs.values()
                if owner_id is None or r.owner_id == owner_id
            ]
        runs.sort(key=lambda r: (r.created_at, r.run_id), reverse=True)
        return runs[:limit] if limit is not None else runs

    def clear(self) -> None:
        """Clear all stored data (for testing)."""
        with self._lock:
            self._runs.clear()


class FileRunStore(RunStore):
    """
    File-based implementation of RunStore.

    Stores each run as a JSON file:
        store_dir/
            runs/
                {run_id}.json

    Writes go to a temporary file that replaces the run file atomically, so
    a reader never sees a partially written run.
    """

    def __init__(self, store_dir: Path | str):
        self._store_dir = Path(store_dir)
        self._runs_dir = self._store_dir / "runs"
        self._lock = threading.Lock()
        self._ensure_dirs()

    def _ensure_dirs(self) -> None:
        """Create the directory structure if needed."""
        self._runs_dir.mkdir(parents=True, exist_ok=True)

    def _path(self, run_id: str) -> Path:
        return self._runs_dir / f"{run_id}.json"

    def _read(self, run_id: str) -> Run:
        path = self._path(run_id)
        if not path.exists():
            raise RunNotFoundError(run_id)
        with open(path) as f:
            data = json.load(f)
        return Run.from_dict(data)

    def _write(self, run: Run) -> None:
        fd, tmp_path = tempfile.mkstemp(dir=self._runs_dir, prefix=f".{run.run_id}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w") as f:
                json.dump(run.to_dict(), f, indent=2, default=str)
            os.replace(tmp_path, self._path(run.run_id))
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

    def create(self, run: Run) -> str:
        with self._lock:
            if self._path(run.run_id).exists():
                raise StaleRunError(f"Run {run.run_id} already exists")
            self._write(run)
        return run.run_id

    def get(self, run_id: str) -> Run:
        with self._lock:
            return self._read(run_id)

    def update(self, run: Run) -> None:
        with self._lock:
            previous = self._read(run.run_id)
            check_write(previous, run)
            self._write(run)

    def list_runs(self, owner_id: Optional[str] = None, limit: Optional[int] = None) -> list[Run]:
        runs = []
        with self._lock:
            for path in self._runs_dir.glob("*.json"):
                try:
                    runs.append(self._read(path.stem))
                except (OSError, ValueError, KeyError, TypeError, AttributeError) as e:
                    logger.warning(f"Skipping unreadable run file {path.name}: {e}")
        if owner_id is not None:
            runs = [r for r in runs if r.owner_id == owner_id]
        runs.sort(key=lambda r: (r.created_at, r.run_id), reverse=True)
        return runs[:limit] if limit is not None else runs
