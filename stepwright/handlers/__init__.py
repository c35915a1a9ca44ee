"""
Handlers module for stepwright step execution.

This module provides the handler abstraction layer that enforces clean boundaries:
- stepwright orchestrates (JobDefinition -> Run -> StepLogEntry)
- handlers do the actual work for one step type each

Built-in handlers:
- ai_suggestion: CompletionClient (generative-AI service)
- file_edit, command, deploy, test: editor, sandbox, deployer, test runner
- seed_files, create_git_repo, index_project, run_initial_build: ProjectServices
- provision_sandbox: RuntimeProvider

Usage:
    from stepwright.handlers import HandlerRegistry, AISuggestionHandler

    # Create registry with configured handlers
    registry = HandlerRegistry()
    registry.register("ai_suggestion", AISuggestionHandler(completion_client))

    # Or use factory with defaults
    registry = HandlerRegistry.create_default()
"""

from stepwright.handlers.base import FunctionHandler, Handler, NoOpHandler, RunContext
from stepwright.handlers.registry import HandlerRegistry
from stepwright.handlers.ai import AISuggestionHandler, CompletionClient, NoOpCompletionClient
from stepwright.handlers.workspace import (
    CommandHandler,
    DeployHandler,
    FileEditHandler,
    TestHandler,
)
from stepwright.handlers.provisioning import (
    CreateGitRepoHandler,
    IndexProjectHandler,
    ProjectServices,
    ProvisionSandboxHandler,
    RunInitialBuildHandler,
    SeedFilesHandler,
)

__all__ = [
    "Handler",
    "FunctionHandler",
    "NoOpHandler",
    "RunContext",
    "HandlerRegistry",
    "AISuggestionHandler",
    "CompletionClient",
    "NoOpCompletionClient",
    "FileEditHandler",
    "CommandHandler",
    "DeployHandler",
    "TestHandler",
    "ProjectServices",
    "SeedFilesHandler",
    "CreateGitRepoHandler",
    "ProvisionSandboxHandler",
    "IndexProjectHandler",
    "RunInitialBuildHandler",
]
