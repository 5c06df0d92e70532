"""
RunRecord schema - tracks one deployment run.

A RunRecord is created in-progress when a run starts and is owned by the
DeploymentRunner executing it. It is finalized exactly once (status,
end_time, duration) and then handed to the LogStore.

StepResult is the per-step outcome. It is also the shape persisted in the
log partitions, so it knows how to serialize and parse itself.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

# Tail limits for captured command output
MAX_OUTPUT_CHARS = 1000
MAX_STDERR_CHARS = 500


def _utcnow() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


def tail(text: Optional[str], limit: int) -> str:
    """Keep the last `limit` characters of text."""
    if not text:
        return ""
    return text[-limit:]


class StepStatus(str, Enum):
    """Status of a step execution."""
    SUCCESS = "success"
    ERROR = "error"


class RunStatus(str, Enum):
    """Status of a deployment run."""
    IN_PROGRESS = "in-progress"
    SUCCESS = "success"
    FAILED = "failed"


@dataclass(frozen=True)
class StepResult:
    """
    The outcome of executing a single deployment step.

    output and stderr are tail-truncated on construction, so a StepResult
    never carries more than MAX_OUTPUT_CHARS / MAX_STDERR_CHARS.

    Attributes:
        order: 1-based position of the step in the definition
        name: Step name
        command: Shell command that was run
        status: success or error
        duration_ms: Wall clock time of this step
        output: Tail of stdout
        stderr: Tail of stderr
        error: Failure reason, only set when status is error
    """
    order: int
    name: str
    command: str
    status: StepStatus
    duration_ms: int
    output: str = ""
    stderr: str = ""
    error: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "output", tail(self.output, MAX_OUTPUT_CHARS))
        object.__setattr__(self, "stderr", tail(self.stderr, MAX_STDERR_CHARS))

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary for JSON output."""
        return {
            "order": self.order,
            "name": self.name,
            "command": self.command,
            "status": self.status.value,
            "duration_ms": self.duration_ms,
            "output": self.output,
            "stderr": self.stderr,
            "error": self.error or "",
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "StepResult":
        """Deserialize from dictionary. An empty error string means no error."""
        return cls(
            order=int(data["order"]),
            name=data.get("name", ""),
            command=data.get("command", ""),
            status=StepStatus(data["status"]),
            duration_ms=int(data.get("duration_ms", 0)),
            output=data.get("output") or "",
            stderr=data.get("stderr") or "",
            error=data.get("error") or None,
        )


@dataclass
class RunRecord:
    """
    A record of one deployment run.

    Attributes:
        deploy_id: Unique run identifier ("<app>-<env>-<millis>")
        app: App name
        env: Environment name
        path: Working directory the steps ran in
        start_time: When the run started
        end_time: When the run finished (None while in progress)
        status: in-progress, success or failed
        duration_ms: Total wall clock time, set when finalized
        steps: Results of the steps that ran, in order
        error: Message of the error that failed the run
    """
    deploy_id: str
    app: str
    env: str
    path: str
    start_time: datetime = field(default_factory=_utcnow)
    end_time: Optional[datetime] = None
    status: RunStatus = RunStatus.IN_PROGRESS
    duration_ms: Optional[int] = None
    steps: list[StepResult] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def finished(self) -> bool:
        return self.status != RunStatus.IN_PROGRESS

    def finalize(self, status: RunStatus, error: Optional[str] = None) -> None:
        """Stamp the terminal status, end time and duration. Only once."""
        if self.finished:
            raise ValueError(f"Run {self.deploy_id} already finalized as {self.status.value}")
        if status == RunStatus.IN_PROGRESS:
            raise ValueError("Cannot finalize a run as in-progress")

        self.end_time = _utcnow()
        self.duration_ms = int((self.end_time - self.start_time).total_seconds() * 1000)
        self.status = status
        self.error = error if status == RunStatus.FAILED else None

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary for JSON output."""
        result: dict[str, Any] = {
            "deploy_id": self.deploy_id,
            "app": self.app,
            "env": self.env,
            "path": self.path,
            "start_time": self.start_time.isoformat(),
            "status": self.status.value,
            "steps": [step.to_dict() for step in self.steps],
        }
        if self.end_time:
            result["end_time"] = self.end_time.isoformat()
        if self.duration_ms is not None:
            result["duration_ms"] = self.duration_ms
        if self.error:
            result["error"] = self.error
        return result


@dataclass(frozen=True)
class LogEntry:
    """One line of a log partition: a deploy id and its step results."""
    deploy_id: str
    steps: tuple[StepResult, ...]

    @property
    def failed(self) -> bool:
        return any(step.status == StepStatus.ERROR for step in self.steps)

    def to_dict(self) -> dict[str, Any]:
        return {
            "deploy_id": self.deploy_id,
            "steps": [step.to_dict() for step in self.steps],
        }
