"""
deployhook.schemas - Data structures for deployment runs.

AppEnvironmentDefinition -> RunRecord -> StepResult -> LogEntry

Lifecycle:
1. AppEnvironmentDefinition: Static per config load, ordered DeploymentSteps
2. RunRecord: Runtime record owned by the run executing it
3. StepResult: Outcome of one step, appended to the RunRecord as it completes
4. LogEntry: A persisted run read back from a log partition
"""

from .deploy_def import (
    AppEnvironmentDefinition,
    DeploymentStep,
)
from .run_record import (
    MAX_OUTPUT_CHARS,
    MAX_STDERR_CHARS,
    LogEntry,
    RunRecord,
    RunStatus,
    StepResult,
    StepStatus,
)

__all__ = [
    # Definitions
    "AppEnvironmentDefinition",
    "DeploymentStep",
    # Run Record
    "RunRecord",
    "RunStatus",
    "StepResult",
    "StepStatus",
    "MAX_OUTPUT_CHARS",
    "MAX_STDERR_CHARS",
    # Log
    "LogEntry",
]
