"""
Error classes for stepwright execution.

Handler-raised errors:
- TransientError: Safe to retry (rate limits, network issues, temporary failures)
- PermanentError: Do not retry (invalid input, missing resources, failed commands)

Both are caught at the StepExecutor boundary and recorded on the failing
step; they never propagate past the JobOrchestrator.

Submission-time errors (JobValidationError, OwnerNotFoundError) are raised
synchronously by the Dispatcher, and no Run is created.

Store errors (RunNotFoundError, RunConflictError) are raised by RunStore
implementations.
"""

# Error message recorded on a Run cancelled at a step boundary
CANCELLED = "cancelled"


class StepwrightError(Exception):
    """Base exception for stepwright."""
    pass


class TransientError(StepwrightError):
    """
    Transient error - safe to retry.

    Examples:
    - Rate limit exceeded
    - Network timeout
    - Service temporarily unavailable
    """
    pass


class PermanentError(StepwrightError):
    """
    Permanent error - do not retry.

    Examples:
    - Invalid step parameters
    - Command exited with a non-zero status
    - Sandbox failed to start
    """
    pass


class JobValidationError(StepwrightError):
    """Raised when a JobDefinition has a bad shape."""
    pass


class OwnerNotFoundError(JobValidationError):
    """Raised when a job's owner is unknown."""

    def __init__(self, owner_id: str):
        self.owner_id = owner_id
        super().__init__(f"Owner not found: {owner_id}")


class RunNotFoundError(StepwrightError):
    """Raised when a run id is unknown to the store."""

    def __init__(self, run_id: str):
        self.run_id = run_id
        super().__init__(f"Run not found: {run_id}")


class RunConflictError(StepwrightError):
    """Raised when a write would violate the Run lifecycle."""
    pass


class StaleRunError(RunConflictError):
    """Raised when a write carries a stale status or a shorter step log."""
    pass


class TerminalRunError(RunConflictError):
    """Raised when a write targets a run that already reached a terminal state."""

    def __init__(self, run_id: str, status: str):
        self.run_id = run_id
        self.status = status
        super().__init__(f"Run {run_id} is already {status}")


class DuplicateRunError(StepwrightError):
    """Raised when a run is launched while another execution is in flight."""

    def __init__(self, run_id: str):
        self.run_id = run_id
        super().__init__(f"Run {run_id} is already in flight")
