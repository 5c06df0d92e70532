"""
Deployment definitions - what to run for an app/environment pair.

Definitions are built once per config load and never mutated. A reload
builds a new set of definitions and swaps the registry holding them.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Any


@dataclass(frozen=True)
class DeploymentStep:
    """A single named shell command within a deployment."""
    name: str
    command: str

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "command": self.command}


@dataclass(frozen=True)
class AppEnvironmentDefinition:
    """
    Deployment procedure for one app in one environment.

    Attributes:
        working_directory: Directory every step runs in
        steps: Ordered, non-empty tuple of steps
    """
    working_directory: Path
    steps: tuple[DeploymentStep, ...]

    def __post_init__(self):
        if not self.steps:
            raise ValueError("A deployment definition needs at least one step")

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": str(self.working_directory),
            "steps": [step.to_dict() for step in self.steps],
        }
