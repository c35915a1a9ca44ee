"""
StepType and StepTarget enums defining the step taxonomy for stepwright.

Step types are grouped by the job family that uses them:
- macro steps: ai_suggestion, file_edit, command, deploy, test
- provisioning steps: seed_files, create_git_repo, provision_sandbox,
  index_project, run_initial_build

StepDefinition.type is a plain string. These enums name the built-in
types; any other string is accepted at submission and fails at execution
with "unknown step type" unless a handler was registered for it.
"""

from enum import Enum


class StepType(str, Enum):
    """Built-in step types."""
    # Macro steps
    AI_SUGGESTION = "ai_suggestion"
    FILE_EDIT = "file_edit"
    COMMAND = "command"
    DEPLOY = "deploy"
    TEST = "test"

    # Provisioning steps
    SEED_FILES = "seed_files"
    CREATE_GIT_REPO = "create_git_repo"
    PROVISION_SANDBOX = "provision_sandbox"
    INDEX_PROJECT = "index_project"
    RUN_INITIAL_BUILD = "run_initial_build"

    @property
    def is_ai(self) -> bool:
        """True for steps that report token usage."""
        return self == StepType.AI_SUGGESTION

    @classmethod
    def macro_types(cls) -> tuple["StepType", ...]:
        return (cls.AI_SUGGESTION, cls.FILE_EDIT, cls.COMMAND, cls.DEPLOY, cls.TEST)

    @classmethod
    def provisioning_types(cls) -> tuple["StepType", ...]:
        """Provisioning steps, in pipeline order."""
        return (
            cls.SEED_FILES,
            cls.CREATE_GIT_REPO,
            cls.PROVISION_SANDBOX,
            cls.INDEX_PROJECT,
            cls.RUN_INITIAL_BUILD,
        )


class StepTarget(str, Enum):
    """Collaborators that handle steps."""
    EDITOR = "editor"
    SANDBOX = "sandbox"
    UI_STUDIO = "ui_studio"
    DEPLOYER = "deployer"
    RUNTIME = "runtime"
    WORKSPACE = "workspace"
