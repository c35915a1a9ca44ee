"""
Job builders and job-file loading.

Two job families are built in code:
- provisioning_job(): the fixed five-step pipeline that sets up a new project
- macro_job(): a saved macro (an ordered list of steps) run against a project

Other jobs are read from JSON or YAML files with load_job_file().
"""

import json
from pathlib import Path
from typing import Any, Optional

import yaml

from stepwright.errors import JobValidationError
from stepwright.schemas import JobDefinition, StepDefinition, StepTarget, StepType

PROVISIONING = "provisioning"
MACRO = "macro"

# Option keys accepted by provisioning_job() (camelCase aliases are accepted too)
PROVISIONING_OPTIONS = {
    "templateId": "template_id",
    "templateParameters": "template_parameters",
    "connectGit": "connect_git",
    "gitProvider": "git_provider",
    "gitRepoSettings": "git_repo_settings",
    "enableSandbox": "enable_sandbox",
    "sandboxType": "sandbox_type",
    "containerConfig": "container_config",
}


def _normalize_options(options: Optional[dict[str, Any]]) -> dict[str, Any]:
    normalized = {}
    for key, value in (options or {}).items():
        normalized[PROVISIONING_OPTIONS.get(key, key)] = value
    return normalized


def provisioning_job(
    project_id: str,
    owner_id: str,
    options: Optional[dict[str, Any]] = None,
    dry_run: bool = False,
    job_id: Optional[str] = None,
) -> JobDefinition:
    """
    Build the provisioning job for a new project.

    Steps, in order: seed_files, create_git_repo, provision_sandbox,
    index_project, run_initial_build.

    Args:
        project_id: Project being provisioned (the job's subject)
        owner_id: Owner the run is attributed to
        options: template_id, template_parameters, connect_git, git_provider,
            git_repo_settings, enable_sandbox, sandbox_type, container_config
        dry_run: Simulate every step
        job_id: Explicit job id (generated when omitted)
    """
    opts = _normalize_options(options)

    steps = (
        StepDefinition(
            type=StepType.SEED_FILES.value,
            action="Seed project files",
            target=StepTarget.WORKSPACE.value,
            parameters={
                "template_id": opts.get("template_id"),
                "parameters": opts.get("template_parameters") or {},
            },
        ),
        StepDefinition(
            type=StepType.CREATE_GIT_REPO.value,
            action="Create git repository",
            target=StepTarget.WORKSPACE.value,
            parameters={
                "connect_git": bool(opts.get("connect_git", False)),
                "git_provider": opts.get("git_provider") or "github",
                "git_repo_settings": opts.get("git_repo_settings") or {},
            },
        ),
        StepDefinition(
            type=StepType.PROVISION_SANDBOX.value,
            action="Provision sandbox",
            target=StepTarget.RUNTIME.value,
            parameters={
                "enable_sandbox": bool(opts.get("enable_sandbox", True)),
                "sandbox_type": opts.get("sandbox_type") or "sandpack",
                "container_config": opts.get("container_config") or {},
            },
        ),
        StepDefinition(
            type=StepType.INDEX_PROJECT.value,
            action="Index project for AI assistant",
            target=StepTarget.WORKSPACE.value,
        ),
        StepDefinition(
            type=StepType.RUN_INITIAL_BUILD.value,
            action="Run initial build",
            target=StepTarget.SANDBOX.value,
            parameters={"build_type": "initial", "run_tests": True, "install_deps": True},
        ),
    )

    kwargs = {"job_id": job_id} if job_id else {}
    job = JobDefinition(
        owner_id=owner_id,
        steps=steps,
        dry_run=dry_run,
        subject_id=project_id,
        job_type=PROVISIONING,
        name=f"Provision {project_id}",
        **kwargs,
    )
    job.validate()
    return job


def macro_job(
    macro: dict[str, Any],
    owner_id: str,
    subject_id: Optional[str] = None,
    dry_run: bool = False,
) -> JobDefinition:
    """
    Build a job from a saved macro.

    A macro is a mapping with "steps" (list of step mappings with type,
    action, tool/target and parameters) and optionally "id", "name" and
    "project_id". The macro id becomes the job id, and subject_id falls
    back to the macro's project.

    Raises:
        JobValidationError: If the macro or any of its steps is malformed
    """
    if not isinstance(macro, dict):
        raise JobValidationError("Macro must be a mapping")
    steps_data = macro.get("steps")
    if not isinstance(steps_data, list):
        raise JobValidationError("Macro is missing a 'steps' list")

    kwargs = {"job_id": str(macro["id"])} if macro.get("id") else {}
    job = JobDefinition(
        owner_id=owner_id,
        steps=tuple(StepDefinition.from_dict(s) for s in steps_data),
        dry_run=dry_run,
        subject_id=subject_id or macro.get("project_id") or macro.get("projectId"),
        job_type=MACRO,
        name=macro.get("name", ""),
        **kwargs,
    )
    job.validate()
    return job


def load_job_file(path: Path | str) -> JobDefinition:
    """
    Load a JobDefinition from a .json, .yaml or .yml file.

    Raises:
        FileNotFoundError: If the file does not exist
        JobValidationError: If the file cannot be parsed or is malformed
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Job file not found: {path}")

    with open(path) as f:
        try:
            if path.suffix in (".yaml", ".yml"):
                data = yaml.safe_load(f)
            else:
                data = json.load(f)
        except (json.JSONDecodeError, yaml.YAMLError) as e:
            raise JobValidationError(f"Cannot parse job file {path}: {e}") from e

    if not isinstance(data, dict):
        raise JobValidationError(f"Job file {path} must contain a mapping")
    return JobDefinition.from_dict(data)
