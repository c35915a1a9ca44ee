"""
stepwright - Step-by-step job runner

Executes jobs (ordered lists of typed steps) as tracked Runs: every step
is logged, costed and persisted so clients can poll progress while the
job runs in the background.
"""

__version__ = "0.1.0"


__all__ = [
    "StepwrightConfig",
    "load_config",
    "get_stepwright_home",
    "Dispatcher",
    "JobOrchestrator",
    "StepExecutor",
    "TimeoutPolicy",
]

from .config import StepwrightConfig, load_config, get_stepwright_home
from .dispatcher import Dispatcher
from .orchestrator import JobOrchestrator
from .step_executor import StepExecutor, TimeoutPolicy
