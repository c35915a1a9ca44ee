"""
stepwright.schemas - Schema definitions for the orchestration layer.

This module defines the core data structures for stepwright:

JobDefinition -> Run -> StepLogEntry (+ StepResult per step)

Lifecycle:
1. JobDefinition: Immutable, ordered list of steps submitted by an owner
2. Run: Mutable aggregate created pending by the Dispatcher
3. StepLogEntry: Appended running before each step, replaced by its
   terminal form after the step finishes
4. StepResult: Normalized outcome returned by the StepExecutor
"""

from .step_types import StepType, StepTarget
from .job_def import (
    JobDefinition,
    StepDefinition,
    generate_job_id,
)
from .step_result import StepResult
from .step_log import (
    StepLogEntry,
    StepStatus,
)
from .run_record import (
    Run,
    RunStatus,
    ULID,
)

__all__ = [
    # Step taxonomy
    "StepType",
    "StepTarget",
    # Job Definition
    "JobDefinition",
    "StepDefinition",
    "generate_job_id",
    # Results
    "StepResult",
    # Step log
    "StepLogEntry",
    "StepStatus",
    # Run
    "Run",
    "RunStatus",
    "ULID",
]
