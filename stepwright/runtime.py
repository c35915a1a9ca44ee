"""
RuntimeProvider - abstract sandbox/runtime capability.

Provisioning jobs need somewhere to run a project. The provider contract
covers the full lifecycle of a runtime instance (create, status, logs,
exec, stop, destroy, list, metrics, health); stepwright itself only uses
create_run and get_status, wrapped by the provision_sandbox handler.

NoOpRuntimeProvider keeps runtime instances in memory and reports them as
running immediately. It is the default for the built-in registry and for
tests.
"""

import threading
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Optional


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class RuntimeOptions:
    """Options for creating a runtime instance."""
    project_id: str
    owner_id: str
    branch: str = "main"
    env: dict[str, str] = field(default_factory=dict)
    public: bool = False
    ttl_minutes: int = 24 * 60
    sandbox_type: str = "sandpack"
    build_command: Optional[str] = None
    start_command: Optional[str] = None
    framework: Optional[str] = None
    resources: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class RuntimeStatus:
    """
    Status of a runtime instance.

    status is one of: starting, building, running, stopped, error, destroyed
    """
    runtime_id: str
    status: str
    url: Optional[str] = None
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    error: Optional[str] = None

    @property
    def is_ready(self) -> bool:
        return self.status == "running"

    @property
    def is_failed(self) -> bool:
        return self.status in ("error", "stopped", "destroyed")

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"runtime_id": self.runtime_id, "status": self.status}
        if self.url:
            result["url"] = self.url
        if self.started_at:
            result["started_at"] = self.started_at.isoformat()
        if self.error:
            result["error"] = self.error
        return result


@dataclass(frozen=True)
class RuntimeLogEntry:
    timestamp: datetime
    level: str
    source: str
    message: str


@dataclass(frozen=True)
class ExecResult:
    exec_id: str
    status: str
    output: Optional[str] = None
    exit_code: Optional[int] = None


class RuntimeProvider(ABC):
    """Abstract runtime provider."""

    name: str = "runtime"

    @abstractmethod
    def create_run(self, options: RuntimeOptions) -> RuntimeStatus:
        """Create a new runtime instance."""
        pass

    @abstractmethod
    def get_status(self, runtime_id: str) -> RuntimeStatus:
        """Get the status of a runtime instance."""
        pass

    @abstractmethod
    def stream_logs(self, runtime_id: str, callback: Callable[[RuntimeLogEntry], None]) -> None:
        """Deliver the instance's log entries to callback."""
        pass

    @abstractmethod
    def exec_command(self, runtime_id: str, command: str) -> ExecResult:
        """Execute a command inside the instance."""
        pass

    @abstractmethod
    def stop_run(self, runtime_id: str) -> bool:
        pass

    @abstractmethod
    def destroy_run(self, runtime_id: str) -> bool:
        """Destroy the instance and release its resources."""
        pass

    @abstractmethod
    def list_runs(self, project_id: str) -> list[RuntimeStatus]:
        pass

    @abstractmethod
    def get_metrics(self, runtime_id: str) -> dict[str, float]:
        """Return cpu, memory, network and uptime figures."""
        pass

    @abstractmethod
    def health_check(self) -> dict[str, Any]:
        """Return {"healthy": bool, "message": str, "capabilities": [...]}."""
        pass


class NoOpRuntimeProvider(RuntimeProvider):
    """
    In-memory runtime provider.

    Instances start in the running state and never consume resources.
    """

    name = "noop"

    def __init__(self, url_template: str = "https://preview-{project_id}.example.invalid"):
        self._url_template = url_template
        self._lock = threading.Lock()
        self._runs: dict[str, RuntimeStatus] = {}
        self._projects: dict[str, str] = {}
        self._logs: dict[str, list[RuntimeLogEntry]] = {}

    def create_run(self, options: RuntimeOptions) -> RuntimeStatus:
        runtime_id = f"sandbox-{options.project_id}-{uuid.uuid4().hex[:8]}"
        status = RuntimeStatus(
            runtime_id=runtime_id,
            status="running",
            url=self._url_template.format(project_id=options.project_id),
            started_at=_utcnow(),
        )
        with self._lock:
            self._runs[runtime_id] = status
            self._projects[runtime_id] = options.project_id
            self._logs[runtime_id] = [
                RuntimeLogEntry(_utcnow(), "info", "system", f"Created {options.sandbox_type} runtime"),
            ]
        return status

    def get_status(self, runtime_id: str) -> RuntimeStatus:
        with self._lock:
            if runtime_id not in self._runs:
                raise KeyError(f"Unknown runtime: {runtime_id}")
            return self._runs[runtime_id]

    def stream_logs(self, runtime_id: str, callback: Callable[[RuntimeLogEntry], None]) -> None:
        with self._lock:
            entries = list(self._logs.get(runtime_id, []))
        for entry in entries:
            callback(entry)

    def exec_command(self, runtime_id: str, command: str) -> ExecResult:
        self.get_status(runtime_id)
        with self._lock:
            self._logs[runtime_id].append(
                RuntimeLogEntry(_utcnow(), "info", "runtime", f"$ {command}")
            )
        return ExecResult(exec_id=uuid.uuid4().hex, status="completed", output="", exit_code=0)

    def stop_run(self, runtime_id: str) -> bool:
        return self._set_status(runtime_id, "stopped")

    def destroy_run(self, runtime_id: str) -> bool:
        return self._set_status(runtime_id, "destroyed")

    def list_runs(self, project_id: str) -> list[RuntimeStatus]:
        with self._lock:
            return [
                status for runtime_id, status in self._runs.items()
                if self._projects.get(runtime_id) == project_id
            ]

    def get_metrics(self, runtime_id: str) -> dict[str, float]:
        status = self.get_status(runtime_id)
        uptime = 0.0
        if status.started_at and status.is_ready:
            uptime = (_utcnow() - status.started_at).total_seconds()
        return {"cpu": 0.0, "memory": 0.0, "network": 0.0, "uptime": uptime}

    def health_check(self) -> dict[str, Any]:
        return {
            "healthy": True,
            "message": "noop runtime provider",
            "capabilities": ["create", "status", "logs", "exec", "stop", "destroy"],
        }

    def _set_status(self, runtime_id: str, new_status: str) -> bool:
        with self._lock:
            current = self._runs.get(runtime_id)
            if current is None:
                return False
            self._runs[runtime_id] = RuntimeStatus(
                runtime_id=runtime_id,
                status=new_status,
                url=current.url,
                started_at=current.started_at,
                ended_at=_utcnow(),
            )
            return True
