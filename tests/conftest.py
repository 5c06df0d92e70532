import threading
from datetime import date
from pathlib import Path

import pytest

from deployhook.errors import ExecutionError
from deployhook.log_store import LogStore
from deployhook.run_guard import RunGuard
from deployhook.runner import DeploymentRunner
from deployhook.schemas import AppEnvironmentDefinition, DeploymentStep
from deployhook.step_executor import CommandResult

TODAY = date(2024, 1, 10)


@pytest.fixture
def today():
    return TODAY


@pytest.fixture
def log_store(tmp_path):
    return LogStore(tmp_path / "logs", today=lambda: TODAY)


@pytest.fixture
def workdir(tmp_path) -> Path:
    path = tmp_path / "app"
    path.mkdir()
    return path


@pytest.fixture
def make_definition(workdir):
    """Build a definition from commands; step names are Step 1..n."""
    def _make(*commands: str) -> AppEnvironmentDefinition:
        return AppEnvironmentDefinition(
            working_directory=workdir,
            steps=tuple(
                DeploymentStep(name=f"Step {i}", command=cmd)
                for i, cmd in enumerate(commands, start=1)
            ),
        )
    return _make


class FakeExecutor:
    """
    Stand-in for StepExecutor.

    Commands starting with "fail" raise ExecutionError; a command equal to
    "block" waits until release() is called. Every command is recorded.
    """

    def __init__(self):
        self.calls: list[str] = []
        self._gate = threading.Event()

    def release(self):
        self._gate.set()

    def run(self, command, working_directory, timeout=None):
        self.calls.append(command)
        if command == "block":
            self._gate.wait(timeout=10)
        if command.startswith("fail"):
            raise ExecutionError(f"Command failed with exit code 1: {command}", stdout="partial", stderr="boom")
        return CommandResult(stdout=f"ran {command}\n", stderr="")


@pytest.fixture
def fake_executor():
    executor = FakeExecutor()
    yield executor
    executor.release()


@pytest.fixture
def guard():
    return RunGuard()


@pytest.fixture
def fake_runner(fake_executor, guard, log_store):
    return DeploymentRunner(fake_executor, guard, log_store)
