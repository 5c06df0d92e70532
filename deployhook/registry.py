"""
AppRegistry - Immutable lookup of deployment definitions.

The registry provides:
- Building definitions from the `apps` section of config.yaml
- Validation of each app/environment entry
- Lookup of a definition by (app, env)

A registry is never mutated after construction. Reloading configuration
builds a new registry and the service swaps it in wholesale.

Example `apps` section:
    apps:
      shop:
        production:
          path: /srv/shop
          steps:
            - name: Pull
              command: git pull
            - command: npm ci
"""

import re
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping, Optional

from deployhook.errors import AppNotFoundError, ConfigError, EnvironmentNotFoundError
from deployhook.schemas import AppEnvironmentDefinition, DeploymentStep

# ':' separates the deploy id from the JSON payload in log partitions
_NAME_PATTERN = re.compile(r"^[^:\s]+$")


def _build_definition(app_name: str, env_name: str, data: Any) -> AppEnvironmentDefinition:
    """Validate one apps.<app>.<env> entry and build its definition."""
    where = f"{app_name}.{env_name}"

    if not _NAME_PATTERN.match(env_name):
        raise ConfigError(f"Invalid environment name '{env_name}' for app '{app_name}'")
    if not isinstance(data, dict):
        raise ConfigError(f"Invalid definition for {where}: expected a mapping")
    if not data.get("path"):
        raise ConfigError(f"Missing 'path' for {where}")

    raw_steps = data.get("steps")
    if not isinstance(raw_steps, list):
        raise ConfigError(f"Missing or invalid 'steps' for {where}")
    if not raw_steps:
        raise ConfigError(f"No steps defined for {where}")

    steps = []
    for i, raw in enumerate(raw_steps):
        if isinstance(raw, str):
            raw = {"command": raw}
        if not isinstance(raw, dict) or not raw.get("command"):
            raise ConfigError(f"Step {i + 1} of {where} has no 'command'")
        steps.append(DeploymentStep(
            name=str(raw.get("name") or f"Step {i + 1}"),
            command=str(raw["command"]),
        ))

    return AppEnvironmentDefinition(
        working_directory=Path(str(data["path"])).expanduser(),
        steps=tuple(steps),
    )


class AppRegistry:
    """
    Registry of deployment definitions keyed by app then environment.

    Read-only: the core only ever calls lookup() and the listing helpers.
    """

    def __init__(self, definitions: Optional[Mapping[str, Mapping[str, AppEnvironmentDefinition]]] = None):
        """
        Initialize the registry.

        Args:
            definitions: app name -> env name -> definition
        """
        self._apps = MappingProxyType({
            app: MappingProxyType(dict(envs))
            for app, envs in (definitions or {}).items()
        })

    @classmethod
    def from_dict(cls, apps: Optional[dict[str, Any]]) -> "AppRegistry":
        """
        Build a registry from the raw `apps` config section.

        Raises:
            ConfigError: If any app or environment entry is invalid
        """
        if apps is None:
            return cls()
        if not isinstance(apps, dict):
            raise ConfigError("'apps' must be a mapping of app name to environments")

        definitions: dict[str, dict[str, AppEnvironmentDefinition]] = {}
        for app_name, envs in apps.items():
            app_name = str(app_name)
            if not _NAME_PATTERN.match(app_name):
                raise ConfigError(f"Invalid app name '{app_name}'")
            if not isinstance(envs, dict) or not envs:
                raise ConfigError(f"App '{app_name}' defines no environments")
            definitions[app_name] = {
                str(env_name): _build_definition(app_name, str(env_name), env_data)
                for env_name, env_data in envs.items()
            }
        return cls(definitions)

    def lookup(self, app: str, env: str) -> Optional[AppEnvironmentDefinition]:
        """Return the definition for (app, env), or None if either is unknown."""
        envs = self._apps.get(app)
        if envs is None:
            return None
        return envs.get(env)

    def resolve(self, app: str, env: str) -> AppEnvironmentDefinition:
        """
        Like lookup(), but raise a NotFoundError naming what is available.

        Raises:
            AppNotFoundError: If the app is unknown
            EnvironmentNotFoundError: If the app exists but the env does not
        """
        envs = self._apps.get(app)
        if envs is None:
            raise AppNotFoundError(app, self.list_apps())
        definition = envs.get(env)
        if definition is None:
            raise EnvironmentNotFoundError(app, env, self.list_envs(app))
        return definition

    def list_apps(self) -> list[str]:
        return sorted(self._apps)

    def list_envs(self, app: str) -> list[str]:
        return sorted(self._apps.get(app, {}))

    def items(self):
        """Iterate (app, env, definition) in sorted order."""
        for app in self.list_apps():
            for env in self.list_envs(app):
                yield app, env, self._apps[app][env]

    def __len__(self) -> int:
        return len(self._apps)

    def __repr__(self) -> str:
        return f"AppRegistry(apps={self.list_apps()})"
