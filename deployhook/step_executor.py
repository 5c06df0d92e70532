"""
StepExecutor - run one deployment command as a subprocess.

Commands run through a shell so config authors can use pipes, `&&` and
the like. The shell executable is configurable (e.g. Git Bash on Windows);
without one the platform default shell is used.

Each command gets exactly one attempt. A non-zero exit, a timeout, or a
failure to start the process all raise ExecutionError carrying whatever
output was captured.
"""

import logging
import os
import signal
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from deployhook.errors import ExecutionError

logger = logging.getLogger(__name__)

# 5 minutes per step
DEFAULT_TIMEOUT_SECONDS = 300.0


@dataclass(frozen=True)
class CommandResult:
    """Captured output of a successful command."""
    stdout: str
    stderr: str


def normalize_shell_path(shell_path: Optional[str]) -> Optional[str]:
    """Convert Windows style backslashes to forward slashes."""
    if not shell_path:
        return None
    return shell_path.replace("\\", "/")


def _as_text(data: Union[str, bytes, None]) -> str:
    # TimeoutExpired may hold raw bytes even in text mode
    if data is None:
        return ""
    if isinstance(data, bytes):
        return data.decode("utf-8", errors="replace")
    return data


class StepExecutor:
    """
    Runs shell commands rooted at a working directory.

    Args:
        shell_path: Shell executable to use instead of the platform default
        timeout: Seconds before a command is killed
    """

    def __init__(self, shell_path: Optional[str] = None, timeout: float = DEFAULT_TIMEOUT_SECONDS):
        self.shell_path = normalize_shell_path(shell_path)
        self.timeout = timeout

    def run(
        self,
        command: str,
        working_directory: Union[str, Path],
        timeout: Optional[float] = None,
    ) -> CommandResult:
        """
        Execute a command and wait for it to finish.

        Args:
            command: Shell command line
            working_directory: Directory the command runs in
            timeout: Override of the executor's timeout for this call

        Returns:
            CommandResult with full stdout and stderr

        Raises:
            ExecutionError: On non-zero exit, timeout, or if the process
                could not be started (missing directory or shell)
        """
        timeout = self.timeout if timeout is None else timeout

        try:
            proc = subprocess.Popen(
                command,
                shell=True,
                executable=self.shell_path,
                cwd=str(working_directory),
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                stdin=subprocess.DEVNULL,
                text=True,
                encoding="utf-8",
                errors="replace",
                start_new_session=(os.name == "posix"),
            )
        except OSError as e:
            raise ExecutionError(f"Failed to start command: {e}") from e

        try:
            stdout, stderr = proc.communicate(timeout=timeout)
        except subprocess.TimeoutExpired as e:
            self._kill(proc)
            stdout, stderr = proc.communicate()
            raise ExecutionError(
                f"Command timed out after {timeout:g}s: {command}",
                stdout=_as_text(stdout) or _as_text(e.stdout),
                stderr=_as_text(stderr) or _as_text(e.stderr),
                timed_out=True,
            ) from e

        if proc.returncode != 0:
            raise ExecutionError(
                f"Command failed with exit code {proc.returncode}: {command}",
                stdout=stdout,
                stderr=stderr,
                returncode=proc.returncode,
            )

        return CommandResult(stdout=stdout, stderr=stderr)

    @staticmethod
    def _kill(proc: subprocess.Popen) -> None:
        """Kill the command and anything it spawned."""
        if os.name == "posix":
            try:
                os.killpg(proc.pid, signal.SIGKILL)
            except ProcessLookupError:
                pass
        else:
            proc.kill()
        logger.warning(f"Killed process {proc.pid} after timeout")
