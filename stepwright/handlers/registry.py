"""
Handler Registry for dispatching steps to their handlers.

The registry maps step types to Handler implementations. It is a pure
lookup table: no state beyond the mapping, no execution logic. The
StepExecutor owns timeouts and error normalization.
"""

from typing import Any, Callable, Optional, Union, TYPE_CHECKING

from stepwright.handlers.base import FunctionHandler, Handler, NoOpHandler
from stepwright.schemas import StepType

if TYPE_CHECKING:
    from stepwright.handlers.ai import CompletionClient
    from stepwright.handlers.workspace import (
        DeployClient,
        EditorClient,
        SandboxClient,
        TestRunnerClient,
    )
    from stepwright.handlers.provisioning import ProjectServices
    from stepwright.runtime import RuntimeProvider


HandlerLike = Union[Handler, Callable[..., Any]]


class HandlerRegistry:
    """
    Registry for handler lookup by step type.

    Usage:
        registry = HandlerRegistry()
        registry.register("ai_suggestion", AISuggestionHandler(client))
        registry.register("notify", lambda step, ctx: {"summary": "sent"})

        handler = registry.get("ai_suggestion")

        # Or use factory with defaults
        registry = HandlerRegistry.create_default(completion_client=client)
    """

    def __init__(self) -> None:
        """Initialize an empty handler registry."""
        self._handlers: dict[str, Handler] = {}

    def register(self, step_type: Union[str, StepType], handler: HandlerLike) -> None:
        """
        Register a handler for a step type.

        Args:
            step_type: Step type name
            handler: Handler instance, or a function (step, context) -> result

        Raises:
            TypeError: If handler is neither a Handler nor callable
        """
        if not isinstance(handler, Handler):
            if not callable(handler):
                raise TypeError(f"Handler for {step_type} is not callable: {handler!r}")
            handler = FunctionHandler(handler)
        self._handlers[_type_name(step_type)] = handler

    def get(self, step_type: Union[str, StepType]) -> Handler:
        """
        Get handler for a step type.

        Raises:
            KeyError: If no handler registered for this step type
        """
        name = _type_name(step_type)
        if name not in self._handlers:
            registered = list(self._handlers.keys())
            raise KeyError(
                f"No handler registered for step type: {name}. "
                f"Registered: {registered}"
            )
        return self._handlers[name]

    def has(self, step_type: Union[str, StepType]) -> bool:
        """Check if a handler is registered for a step type."""
        return _type_name(step_type) in self._handlers

    def list_types(self) -> list[str]:
        """List all registered step types."""
        return list(self._handlers.keys())

    @classmethod
    def create_default(
        cls,
        completion_client: Optional["CompletionClient"] = None,
        editor: Optional["EditorClient"] = None,
        sandbox: Optional["SandboxClient"] = None,
        deployer: Optional["DeployClient"] = None,
        test_runner: Optional["TestRunnerClient"] = None,
        project_services: Optional["ProjectServices"] = None,
        runtime: Optional["RuntimeProvider"] = None,
        cost_per_1k_tokens: float = 0.03,
    ) -> "HandlerRegistry":
        """
        Create a registry with handlers for every built-in step type.

        Collaborators that are not provided are replaced by their NoOp
        clients, which return canned results without side effects.

        Returns:
            Configured HandlerRegistry
        """
        from stepwright.handlers.ai import AISuggestionHandler, NoOpCompletionClient
        from stepwright.handlers.workspace import (
            CommandHandler,
            DeployHandler,
            FileEditHandler,
            NoOpDeployClient,
            NoOpEditorClient,
            NoOpSandboxClient,
            NoOpTestRunnerClient,
            TestHandler,
        )
        from stepwright.handlers.provisioning import (
            CreateGitRepoHandler,
            IndexProjectHandler,
            NoOpProjectServices,
            ProvisionSandboxHandler,
            RunInitialBuildHandler,
            SeedFilesHandler,
        )
        from stepwright.runtime import NoOpRuntimeProvider

        if completion_client is None:
            completion_client = NoOpCompletionClient()
        if editor is None:
            editor = NoOpEditorClient()
        if sandbox is None:
            sandbox = NoOpSandboxClient()
        if deployer is None:
            deployer = NoOpDeployClient()
        if test_runner is None:
            test_runner = NoOpTestRunnerClient()
        if project_services is None:
            project_services = NoOpProjectServices()
        if runtime is None:
            runtime = NoOpRuntimeProvider()

        registry = cls()

        # Macro steps
        registry.register(
            StepType.AI_SUGGESTION,
            AISuggestionHandler(completion_client, cost_per_1k_tokens=cost_per_1k_tokens),
        )
        registry.register(StepType.FILE_EDIT, FileEditHandler(editor))
        registry.register(StepType.COMMAND, CommandHandler(sandbox))
        registry.register(StepType.DEPLOY, DeployHandler(deployer))
        registry.register(StepType.TEST, TestHandler(test_runner))

        # Provisioning steps
        registry.register(StepType.SEED_FILES, SeedFilesHandler(project_services))
        registry.register(StepType.CREATE_GIT_REPO, CreateGitRepoHandler(project_services))
        registry.register(StepType.PROVISION_SANDBOX, ProvisionSandboxHandler(runtime))
        registry.register(StepType.INDEX_PROJECT, IndexProjectHandler(project_services))
        registry.register(StepType.RUN_INITIAL_BUILD, RunInitialBuildHandler(project_services))

        return registry

    @classmethod
    def create_noop(cls) -> "HandlerRegistry":
        """
        Create a registry with a NoOpHandler for every built-in step type.

        Useful for testing.
        """
        registry = cls()
        for step_type in StepType:
            registry.register(step_type, NoOpHandler())
        return registry


def _type_name(step_type: Union[str, StepType]) -> str:
    if isinstance(step_type, StepType):
        return step_type.value
    return step_type
