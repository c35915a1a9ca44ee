"""Tests for the built-in step handlers.

Tests cover:
- AISuggestionHandler token/cost reporting via CompletionClient
- Workspace handlers (file_edit, command, deploy, test)
- Provisioning handlers (seed_files, create_git_repo, provision_sandbox,
  index_project, run_initial_build)
- NoOpRuntimeProvider
"""

import json
import threading
from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from stepwright.errors import PermanentError, TransientError
from stepwright.handlers import (
    AISuggestionHandler,
    CommandHandler,
    CreateGitRepoHandler,
    DeployHandler,
    FileEditHandler,
    IndexProjectHandler,
    NoOpCompletionClient,
    NoOpHandler,
    ProvisionSandboxHandler,
    RunContext,
    RunInitialBuildHandler,
    SeedFilesHandler,
    TestHandler,
)
from stepwright.handlers.provisioning import NoOpProjectServices, skeleton_files
from stepwright.runtime import NoOpRuntimeProvider, RuntimeOptions, RuntimeStatus
from stepwright.schemas import StepDefinition


def _ctx(subject_id="proj-1", **kwargs):
    return RunContext(run_id="01RUN", job_id="job-1", owner_id="owner-1", subject_id=subject_id, **kwargs)


def _step(step_type, **parameters):
    return StepDefinition(type=step_type, parameters=parameters)


# -----------------------------------------------------------------------------
# Base handlers
# -----------------------------------------------------------------------------


class TestNoOpHandler:
    def test_returns_noop_result(self):
        result = NoOpHandler().handle(StepDefinition(type="deploy", action="Ship"), _ctx())
        assert result.summary == "noop: Ship"
        assert result.output["type"] == "deploy"

    def test_context_cancelled(self):
        ctx = _ctx()
        assert not ctx.cancelled
        ctx.cancel_event.set()
        assert ctx.cancelled


# -----------------------------------------------------------------------------
# AI suggestion
# -----------------------------------------------------------------------------


class TestAISuggestionHandler:
    def test_reports_tokens_and_cost(self):
        client = MagicMock()
        client.complete.return_value = {
            "response": "Use a cache",
            "model": "gpt-4",
            "usage": {"prompt_tokens": 100, "completion_tokens": 50, "total_tokens": 150},
        }
        handler = AISuggestionHandler(client)

        result = handler.handle(_step("ai_suggestion", prompt="Speed this up"), _ctx())

        assert result.summary == "AI suggestion generated"
        assert result.output == "Use a cache"
        assert result.tokens == 150
        assert result.cost == Decimal("0.0045")

    def test_completion_options(self):
        client = MagicMock()
        client.complete.return_value = {"response": "ok", "usage": {}}
        AISuggestionHandler(client).handle(
            _step("ai_suggestion", prompt="Hi", context={"file": "a.py"}, model="small", temperature=0),
            _ctx(),
        )
        kwargs = client.complete.call_args.kwargs
        assert kwargs["prompt"] == 'Hi\n\nContext: {"file": "a.py"}'
        assert kwargs["model"] == "small"
        assert kwargs["temperature"] == 0
        assert kwargs["max_tokens"] == 500

    def test_custom_rate(self):
        handler = AISuggestionHandler(NoOpCompletionClient(), cost_per_1k_tokens=0.5)
        assert handler.cost_for(2000) == Decimal("1.0")

    def test_prompt_required(self):
        with pytest.raises(PermanentError, match="prompt"):
            AISuggestionHandler(NoOpCompletionClient()).handle(_step("ai_suggestion"), _ctx())

    def test_noop_client_zero_usage(self):
        result = AISuggestionHandler(NoOpCompletionClient()).handle(
            _step("ai_suggestion", prompt="x"), _ctx()
        )
        assert result.tokens == 0
        assert result.cost == 0


# -----------------------------------------------------------------------------
# Workspace handlers
# -----------------------------------------------------------------------------


class TestFileEditHandler:
    def test_edit(self):
        editor = MagicMock()
        editor.edit_file.return_value = {"success": True}
        result = FileEditHandler(editor).handle(
            _step("file_edit", filePath="src/app.py", content="print(1)"), _ctx()
        )
        assert result.summary == "File edit: src/app.py"
        editor.edit_file.assert_called_once_with("proj-1", "src/app.py", "print(1)", "edit")

    def test_path_required(self):
        with pytest.raises(PermanentError, match="filePath"):
            FileEditHandler(MagicMock()).handle(_step("file_edit"), _ctx())

    def test_editor_failure(self):
        editor = MagicMock()
        editor.edit_file.return_value = {"success": False, "error": "read-only"}
        with pytest.raises(PermanentError, match="read-only"):
            FileEditHandler(editor).handle(_step("file_edit", file_path="a", operation="delete"), _ctx())


class TestCommandHandler:
    def test_success(self):
        sandbox = MagicMock()
        sandbox.exec.return_value = {"exit_code": 0, "stdout": "ok", "stderr": ""}
        result = CommandHandler(sandbox).handle(_step("command", command="npm test"), _ctx())
        assert result.summary == "Command executed: npm test"

    def test_non_zero_exit_fails(self):
        sandbox = MagicMock()
        sandbox.exec.return_value = {"exit_code": 2, "stdout": "", "stderr": "not found"}
        with pytest.raises(PermanentError, match="status 2"):
            CommandHandler(sandbox).handle(_step("command", command="make"), _ctx())

    def test_command_required(self):
        with pytest.raises(PermanentError):
            CommandHandler(MagicMock()).handle(_step("command"), _ctx())


class TestDeployHandler:
    def test_defaults(self):
        deployer = MagicMock()
        deployer.deploy.return_value = {"status": "ready", "url": "https://x"}
        result = DeployHandler(deployer).handle(_step("deploy"), _ctx())
        assert result.summary == "Deployed to production"
        deployer.deploy.assert_called_once_with("proj-1", "production", "main")

    def test_failed_deploy(self):
        deployer = MagicMock()
        deployer.deploy.return_value = {"status": "failed", "error": "build broke"}
        with pytest.raises(PermanentError, match="build broke"):
            DeployHandler(deployer).handle(_step("deploy", environment="staging"), _ctx())


class TestTestHandler:
    def test_reports_counts(self):
        runner = MagicMock()
        runner.run_tests.return_value = {"passed": 8, "failed": 2, "skipped": 1, "total": 11}
        result = TestHandler(runner).handle(_step("test", testCommand="pytest"), _ctx())
        assert result.summary == "Tests executed: 8 passed, 2 failed"
        assert result.ok


# -----------------------------------------------------------------------------
# Provisioning handlers
# -----------------------------------------------------------------------------


class TestSeedFilesHandler:
    def test_skeleton_without_template(self):
        services = MagicMock(wraps=NoOpProjectServices())
        result = SeedFilesHandler(services).handle(
            _step("seed_files", parameters={"projectName": "My App"}), _ctx()
        )
        assert result.output["template_id"] == "scratch"
        assert result.output["files"] == ["README.md", "package.json"]
        services.instantiate_template.assert_not_called()

    def test_template(self):
        services = MagicMock()
        services.instantiate_template.return_value = [{"path": "index.html", "content": ""}]
        services.seed_files.return_value = {}
        result = SeedFilesHandler(services).handle(
            _step("seed_files", template_id="react-starter"), _ctx()
        )
        assert result.summary == "Seeded 1 files from react-starter"
        services.instantiate_template.assert_called_once_with("react-starter", {}, "owner-1")

    def test_requires_project(self):
        with pytest.raises(PermanentError, match="subject_id"):
            SeedFilesHandler(NoOpProjectServices()).handle(_step("seed_files"), _ctx(subject_id=None))

    def test_skeleton_files(self):
        files = skeleton_files("My Cool App", "demo")
        package = json.loads(files[1]["content"])
        assert package["name"] == "my-cool-app"
        assert files[0]["content"].startswith("# My Cool App")


class TestCreateGitRepoHandler:
    def test_connected(self):
        result = CreateGitRepoHandler(NoOpProjectServices()).handle(
            _step("create_git_repo", connect_git=True, git_provider="gitlab"), _ctx()
        )
        assert result.summary == "Git repository created and connected to gitlab"

    def test_local_only(self):
        result = CreateGitRepoHandler(NoOpProjectServices()).handle(_step("create_git_repo"), _ctx())
        assert result.summary == "Git repository created"


class TestProvisionSandboxHandler:
    def test_skipped(self):
        runtime = MagicMock()
        result = ProvisionSandboxHandler(runtime).handle(
            _step("provision_sandbox", enable_sandbox=False), _ctx()
        )
        assert result.summary == "Sandbox provisioning skipped"
        runtime.create_run.assert_not_called()

    def test_provisions_with_noop_runtime(self):
        result = ProvisionSandboxHandler(NoOpRuntimeProvider()).handle(
            _step("provision_sandbox"), _ctx()
        )
        assert result.output["sandbox_enabled"] is True
        assert result.output["preview_url"] == "https://preview-proj-1.example.invalid"

    def test_polls_until_running(self):
        runtime = MagicMock()
        runtime.create_run.return_value = RuntimeStatus(runtime_id="rt-1", status="starting")
        runtime.get_status.side_effect = [
            RuntimeStatus(runtime_id="rt-1", status="starting"),
            RuntimeStatus(runtime_id="rt-1", status="running", url="https://rt-1"),
        ]
        result = ProvisionSandboxHandler(runtime).handle(
            _step("provision_sandbox", poll_interval=0), _ctx()
        )
        assert result.output["preview_url"] == "https://rt-1"
        assert runtime.get_status.call_count == 2
        options = runtime.create_run.call_args.args[0]
        assert isinstance(options, RuntimeOptions)
        assert options.resources["memory"] == "512Mi"

    def test_failed_runtime(self):
        runtime = MagicMock()
        runtime.create_run.return_value = RuntimeStatus(runtime_id="rt-1", status="error", error="no capacity")
        with pytest.raises(PermanentError, match="no capacity"):
            ProvisionSandboxHandler(runtime).handle(_step("provision_sandbox"), _ctx())

    def test_interrupted_by_cancel_event(self):
        runtime = MagicMock()
        runtime.create_run.return_value = RuntimeStatus(runtime_id="rt-1", status="starting")
        cancel = threading.Event()
        cancel.set()
        with pytest.raises(TransientError, match="interrupted"):
            ProvisionSandboxHandler(runtime).handle(
                _step("provision_sandbox"), _ctx(cancel_event=cancel)
            )


class TestIndexAndBuild:
    def test_index(self):
        result = IndexProjectHandler(NoOpProjectServices()).handle(_step("index_project"), _ctx())
        assert result.summary == "Project indexed for AI assistant"

    def test_build_success(self):
        result = RunInitialBuildHandler(NoOpProjectServices()).handle(_step("run_initial_build"), _ctx())
        assert result.summary == "Initial build completed"

    def test_build_failure(self):
        services = MagicMock()
        services.build.return_value = {"status": "failed", "error": "missing dependency"}
        with pytest.raises(PermanentError, match="missing dependency"):
            RunInitialBuildHandler(services).handle(_step("run_initial_build"), _ctx())


# -----------------------------------------------------------------------------
# Runtime provider
# -----------------------------------------------------------------------------


class TestNoOpRuntimeProvider:
    def test_lifecycle(self):
        provider = NoOpRuntimeProvider()
        status = provider.create_run(RuntimeOptions(project_id="p", owner_id="o"))
        assert status.is_ready
        assert provider.get_status(status.runtime_id).status == "running"
        assert [s.runtime_id for s in provider.list_runs("p")] == [status.runtime_id]
        assert provider.exec_command(status.runtime_id, "ls").exit_code == 0
        assert provider.stop_run(status.runtime_id)
        assert provider.get_status(status.runtime_id).status == "stopped"
        assert provider.destroy_run(status.runtime_id)
        assert provider.get_status(status.runtime_id).is_failed
        assert not provider.stop_run("missing")
        with pytest.raises(KeyError):
            provider.get_status("missing")

    def test_health(self):
        assert NoOpRuntimeProvider().health_check()["healthy"] is True
