"""
Error classes for deployhook.

Error handling contract:
- NotFoundError / AlreadyRunningError: raised synchronously to the triggering
  caller, before any run starts. No side effects.
- ExecutionError: a step command failed or timed out. Caught at the run
  boundary and recorded in the RunRecord; never escapes a run.
- PersistenceError: the log store could not write or read a partition.
  Logged by the runner; never changes a run's outcome.
"""

from typing import Optional, Sequence


class DeployhookError(Exception):
    """Base exception for deployhook."""
    pass


class ConfigError(DeployhookError):
    """Configuration validation error."""
    pass


class NotFoundError(DeployhookError):
    """The requested app or environment is not in the registry."""

    def __init__(self, message: str, available: Sequence[str] = ()):
        super().__init__(message)
        self.available = list(available)


class AppNotFoundError(NotFoundError):
    """Unknown app name."""

    def __init__(self, app: str, available: Sequence[str] = ()):
        super().__init__(f"App not found: {app}", available)
        self.app = app


class EnvironmentNotFoundError(NotFoundError):
    """Known app, unknown environment."""

    def __init__(self, app: str, env: str, available: Sequence[str] = ()):
        super().__init__(f"Environment not found: {app}.{env}", available)
        self.app = app
        self.env = env


class AlreadyRunningError(DeployhookError):
    """A deployment for the same app and environment is still in flight."""

    def __init__(self, app: str, env: str):
        super().__init__(f"Deployment already running: {app}.{env}")
        self.app = app
        self.env = env


class ExecutionError(DeployhookError):
    """
    A step command failed.

    Carries whatever the command wrote before failing so the run log
    can show it.

    Attributes:
        message: Human readable failure reason
        stdout: Captured standard output (may be empty)
        stderr: Captured standard error (may be empty)
        returncode: Exit status, None if the process never ran or was killed
        timed_out: True if the command exceeded its timeout
    """

    def __init__(
        self,
        message: str,
        stdout: str = "",
        stderr: str = "",
        returncode: Optional[int] = None,
        timed_out: bool = False,
    ):
        super().__init__(message)
        self.message = message
        self.stdout = stdout
        self.stderr = stderr
        self.returncode = returncode
        self.timed_out = timed_out


class PersistenceError(DeployhookError):
    """Log partition could not be written or read."""
    pass
