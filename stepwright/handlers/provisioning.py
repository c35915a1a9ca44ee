"""
Provisioning handlers.

A new project is provisioned by a fixed five-step job (see
stepwright.jobs.provisioning_job):

1. seed_files: instantiate a template, or write a minimal skeleton
2. create_git_repo: initialize the repository, optionally connected to a provider
3. provision_sandbox: start a runtime instance via the RuntimeProvider
4. index_project: index the project for the AI assistant
5. run_initial_build: install dependencies, build and run tests

Every handler acts on the job's subject_id (the project id). The project
services are reached through the ProjectServices protocol; the sandbox
through RuntimeProvider.
"""

import json
import logging
import re
from typing import Any, Optional, Protocol, runtime_checkable

from stepwright.errors import PermanentError, TransientError
from stepwright.handlers.base import Handler, RunContext
from stepwright.runtime import RuntimeOptions, RuntimeProvider
from stepwright.schemas import StepDefinition, StepResult

logger = logging.getLogger(__name__)


@runtime_checkable
class ProjectServices(Protocol):
    """Project-level services used while provisioning."""

    def instantiate_template(
        self, template_id: str, parameters: dict[str, Any], owner_id: str
    ) -> list[dict[str, Any]]:
        """Render a template into a list of {"path", "content"} files."""
        ...

    def seed_files(
        self, project_id: str, files: list[dict[str, Any]], template_id: str
    ) -> dict[str, Any]:
        ...

    def init_git(
        self,
        project_id: str,
        connect_git: bool,
        provider: str,
        settings: dict[str, Any],
    ) -> dict[str, Any]:
        ...

    def index_project(self, project_id: str) -> dict[str, Any]:
        ...

    def build(
        self,
        project_id: str,
        build_type: str,
        run_tests: bool,
        install_deps: bool,
    ) -> dict[str, Any]:
        ...


class NoOpProjectServices:
    """
    No-op implementation of ProjectServices for testing.

    Records nothing and reports success.
    """

    def instantiate_template(self, template_id, parameters, owner_id):
        return [{"path": "README.md", "content": f"# {template_id}\n"}]

    def seed_files(self, project_id, files, template_id):
        return {"files": len(files), "template_id": template_id}

    def init_git(self, project_id, connect_git, provider, settings):
        return {"initialized": True, "remote": provider if connect_git else None}

    def index_project(self, project_id):
        return {"indexed_files": 0}

    def build(self, project_id, build_type, run_tests, install_deps):
        return {"status": "success", "build_type": build_type}


def _require_project(step: StepDefinition, context: RunContext) -> str:
    if not context.subject_id:
        raise PermanentError(f"{step.type} requires the job to carry a project subject_id")
    return context.subject_id


def _slug(name: str) -> str:
    return re.sub(r"\s+", "-", name.strip().lower()) or "new-project"


def skeleton_files(project_name: str, description: str = "") -> list[dict[str, Any]]:
    """Minimal files for a project created without a template."""
    package = {
        "name": _slug(project_name),
        "version": "1.0.0",
        "description": description,
        "main": "index.js",
        "scripts": {"start": "node index.js", "dev": "node index.js"},
    }
    return [
        {
            "path": "README.md",
            "content": f"# {project_name}\n\n{description or 'A new project'}",
        },
        {
            "path": "package.json",
            "content": json.dumps(package, indent=2),
        },
    ]


class SeedFilesHandler(Handler):
    """
    Handler for seed_files steps.

    Parameters:
        template_id: Template to instantiate (minimal skeleton when absent)
        parameters: Template parameters (projectName, projectDescription, ...)
    """

    def __init__(self, services: ProjectServices):
        self._services = services

    def handle(self, step: StepDefinition, context: RunContext) -> StepResult:
        project_id = _require_project(step, context)
        template_id = step.parameters.get("template_id")
        template_params = step.parameters.get("parameters") or {}

        if template_id:
            logger.info(f"Seeding project {project_id} from template {template_id}")
            files = self._services.instantiate_template(
                template_id, template_params, context.owner_id
            )
        else:
            logger.info(f"Creating minimal skeleton for project {project_id}")
            template_id = "scratch"
            files = skeleton_files(
                template_params.get("projectName", "New Project"),
                template_params.get("projectDescription", ""),
            )

        result = self._services.seed_files(project_id, files, template_id)
        return StepResult(
            summary=f"Seeded {len(files)} files from {template_id}",
            output={**result, "template_id": template_id, "files": [f["path"] for f in files]},
        )


class CreateGitRepoHandler(Handler):
    """
    Handler for create_git_repo steps.

    Parameters:
        connect_git: Connect the repository to a hosted provider
        git_provider: Provider name (default: github)
        git_repo_settings: Provider-specific settings
    """

    def __init__(self, services: ProjectServices):
        self._services = services

    def handle(self, step: StepDefinition, context: RunContext) -> StepResult:
        project_id = _require_project(step, context)
        params = step.parameters
        connect_git = bool(params.get("connect_git", False))
        provider = params.get("git_provider") or "github"

        result = self._services.init_git(
            project_id, connect_git, provider, params.get("git_repo_settings") or {}
        )
        summary = "Git repository created"
        if connect_git:
            summary = f"Git repository created and connected to {provider}"
        return StepResult(summary=summary, output=result)


class ProvisionSandboxHandler(Handler):
    """
    Handler for provision_sandbox steps.

    Creates a runtime instance and waits until it reports running. Polling
    stops early when the step's cancel event is set (timeout or cancel).

    Parameters:
        enable_sandbox: Skip provisioning when false (default: true)
        sandbox_type: Runtime flavour (default: sandpack)
        container_config: Resource overrides (cpu, memory, storage)
        branch: Branch to run (default: main)
        poll_interval: Seconds between status checks (default: 1.0)
    """

    DEFAULT_RESOURCES = {"cpu": "0.5", "memory": "512Mi", "storage": "1Gi"}

    def __init__(self, runtime: RuntimeProvider):
        self._runtime = runtime

    def handle(self, step: StepDefinition, context: RunContext) -> StepResult:
        project_id = _require_project(step, context)
        params = step.parameters

        if not params.get("enable_sandbox", True):
            return StepResult(
                summary="Sandbox provisioning skipped",
                output={"sandbox_enabled": False},
            )

        options = RuntimeOptions(
            project_id=project_id,
            owner_id=context.owner_id,
            branch=params.get("branch") or "main",
            sandbox_type=params.get("sandbox_type") or "sandpack",
            resources={**self.DEFAULT_RESOURCES, **(params.get("container_config") or {})},
        )
        status = self._runtime.create_run(options)
        status = self._wait_until_ready(status.runtime_id, status, context,
                                        float(params.get("poll_interval", 1.0)))

        return StepResult(
            summary=f"Sandbox {status.runtime_id} running",
            output={"sandbox_enabled": True, "preview_url": status.url, **status.to_dict()},
        )

    def _wait_until_ready(self, runtime_id, status, context: RunContext, poll_interval: float):
        while not status.is_ready:
            if status.is_failed:
                raise PermanentError(
                    status.error or f"Sandbox {runtime_id} entered state {status.status}"
                )
            if context.cancel_event.wait(poll_interval):
                raise TransientError(f"Sandbox {runtime_id} provisioning interrupted")
            status = self._runtime.get_status(runtime_id)
        return status


class IndexProjectHandler(Handler):
    """Handler for index_project steps."""

    def __init__(self, services: ProjectServices):
        self._services = services

    def handle(self, step: StepDefinition, context: RunContext) -> StepResult:
        project_id = _require_project(step, context)
        result = self._services.index_project(project_id)
        return StepResult(summary="Project indexed for AI assistant", output=result)


class RunInitialBuildHandler(Handler):
    """
    Handler for run_initial_build steps.

    Parameters:
        build_type: default "initial"
        run_tests: default true
        install_deps: default true
    """

    def __init__(self, services: ProjectServices):
        self._services = services

    def handle(self, step: StepDefinition, context: RunContext) -> StepResult:
        project_id = _require_project(step, context)
        params = step.parameters
        result = self._services.build(
            project_id,
            params.get("build_type", "initial"),
            bool(params.get("run_tests", True)),
            bool(params.get("install_deps", True)),
        )
        status: Optional[str] = result.get("status")
        if status in ("failed", "error"):
            raise PermanentError(result.get("error") or "Initial build failed")
        return StepResult(summary="Initial build completed", output=result)
