"""
Workspace handlers for macro steps.

Handles file_edit, command, deploy and test steps by delegating to the
editor, sandbox, deployer and test-runner collaborators. Each collaborator
is a Protocol with a NoOp implementation that returns canned results, so
the built-in registry works without any external service configured.
"""

from typing import Any, Optional, Protocol, runtime_checkable

from stepwright.errors import PermanentError
from stepwright.handlers.base import Handler, RunContext
from stepwright.schemas import StepDefinition, StepResult


# =============================================================================
# COLLABORATOR PROTOCOLS
# =============================================================================


@runtime_checkable
class EditorClient(Protocol):
    """Filesystem/editor API."""

    def edit_file(
        self,
        project_id: Optional[str],
        path: str,
        content: Optional[str],
        operation: str,
    ) -> dict[str, Any]:
        ...


@runtime_checkable
class SandboxClient(Protocol):
    """Shell execution inside the project's sandbox."""

    def exec(
        self,
        project_id: Optional[str],
        command: str,
        working_dir: Optional[str] = None,
    ) -> dict[str, Any]:
        """
        Run a command.

        Returns:
            Dict with {"exit_code": int, "stdout": str, "stderr": str}
        """
        ...


@runtime_checkable
class DeployClient(Protocol):
    """Application deployer."""

    def deploy(self, project_id: Optional[str], environment: str, branch: str) -> dict[str, Any]:
        """
        Deploy a branch.

        Returns:
            Dict with {"url": str, "status": str, ...}
        """
        ...


@runtime_checkable
class TestRunnerClient(Protocol):
    """Test-suite runner."""

    def run_tests(
        self,
        project_id: Optional[str],
        command: Optional[str] = None,
        files: Optional[list[str]] = None,
    ) -> dict[str, Any]:
        """
        Run tests.

        Returns:
            Dict with {"passed": int, "failed": int, "skipped": int, "total": int}
        """
        ...


class NoOpEditorClient:
    def edit_file(self, project_id, path, content, operation):
        return {"path": path, "operation": operation, "success": True}


class NoOpSandboxClient:
    def exec(self, project_id, command, working_dir=None):
        return {"exit_code": 0, "stdout": "", "stderr": ""}


class NoOpDeployClient:
    def deploy(self, project_id, environment, branch):
        return {
            "environment": environment,
            "branch": branch,
            "url": f"https://preview-{project_id}.example.invalid",
            "status": "success",
        }


class NoOpTestRunnerClient:
    def run_tests(self, project_id, command=None, files=None):
        return {"passed": 0, "failed": 0, "skipped": 0, "total": 0}


# =============================================================================
# HANDLERS
# =============================================================================


class FileEditHandler(Handler):
    """
    Handler for file_edit steps.

    Parameters:
        filePath / file_path (required): Path of the file to edit
        content: New content
        operation: edit (default), create or delete
    """

    def __init__(self, editor: EditorClient):
        self._editor = editor

    def handle(self, step: StepDefinition, context: RunContext) -> StepResult:
        params = step.parameters
        path = params.get("filePath") or params.get("file_path")
        if not path:
            raise PermanentError("file_edit requires a 'filePath' parameter")
        operation = params.get("operation") or "edit"

        result = self._editor.edit_file(
            context.subject_id, path, params.get("content"), operation
        )
        if result.get("success") is False:
            raise PermanentError(result.get("error") or f"Failed to {operation} {path}")

        return StepResult(summary=f"File {operation}: {path}", output=result)


class CommandHandler(Handler):
    """
    Handler for command steps.

    Parameters:
        command (required): Shell command to run in the sandbox
        workingDir / working_dir: Directory to run in

    A non-zero exit code fails the step.
    """

    def __init__(self, sandbox: SandboxClient):
        self._sandbox = sandbox

    def handle(self, step: StepDefinition, context: RunContext) -> StepResult:
        params = step.parameters
        command = params.get("command")
        if not command:
            raise PermanentError("command requires a 'command' parameter")
        working_dir = params.get("workingDir") or params.get("working_dir")

        result = self._sandbox.exec(context.subject_id, command, working_dir)
        exit_code = int(result.get("exit_code", 0))
        if exit_code != 0:
            stderr = (result.get("stderr") or "").strip()
            message = f"Command exited with status {exit_code}: {command}"
            if stderr:
                message = f"{message}: {stderr}"
            raise PermanentError(message)

        return StepResult(
            summary=f"Command executed: {command}",
            output={"command": command, **result},
        )


class DeployHandler(Handler):
    """
    Handler for deploy steps.

    Parameters:
        environment: Target environment (default: production)
        branch: Branch to deploy (default: main)
    """

    def __init__(self, deployer: DeployClient):
        self._deployer = deployer

    def handle(self, step: StepDefinition, context: RunContext) -> StepResult:
        environment = step.parameters.get("environment") or "production"
        branch = step.parameters.get("branch") or "main"

        result = self._deployer.deploy(context.subject_id, environment, branch)
        if result.get("status") in ("failed", "error"):
            raise PermanentError(result.get("error") or f"Deploy to {environment} failed")

        return StepResult(
            summary=f"Deployed to {environment}",
            output={"environment": environment, "branch": branch, **result},
        )


class TestHandler(Handler):
    """
    Handler for test steps.

    Parameters:
        testCommand / test_command: Command that runs the suite
        testFiles / test_files: Subset of files to run
    """

    # Not a pytest test class
    __test__ = False

    def __init__(self, runner: TestRunnerClient):
        self._runner = runner

    def handle(self, step: StepDefinition, context: RunContext) -> StepResult:
        params = step.parameters
        command = params.get("testCommand") or params.get("test_command")
        files = params.get("testFiles") or params.get("test_files")

        result = self._runner.run_tests(context.subject_id, command, files)
        passed = int(result.get("passed", 0))
        failed = int(result.get("failed", 0))

        return StepResult(
            summary=f"Tests executed: {passed} passed, {failed} failed",
            output=result,
        )
