"""
Configuration management for deployhook.

Loads and validates config.yaml from the deployhook home directory
($DEPLOYHOOK_HOME, default ~/.config/deployhook).

Example config.yaml:
    shell_path: /bin/bash
    port: 3001
    env_file: ~/.config/deployhook/.env
    apps:
      shop:
        production:
          path: /srv/shop
          steps:
            - name: Pull
              command: git pull

The auth token may live in the config file (`auth_token`) or in the
environment as DEPLOYHOOK_AUTH_TOKEN, typically via the env_file.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml
from dotenv import load_dotenv

from deployhook.errors import ConfigError
from deployhook.registry import AppRegistry
from deployhook.step_executor import DEFAULT_TIMEOUT_SECONDS, normalize_shell_path

AUTH_TOKEN_ENV = "DEPLOYHOOK_AUTH_TOKEN"

DEFAULT_PORT = 3001
DEFAULT_RATE_LIMIT = "10/15minutes"
DEFAULT_MAX_WORKERS = 4

LOG_FORMATS = ("pretty", "structured")


def get_deployhook_home() -> Path:
    """Return the deployhook home directory."""
    return Path(os.environ.get("DEPLOYHOOK_HOME", "~/.config/deployhook")).expanduser()


@dataclass
class DeployhookConfig:
    """Validated deployhook configuration."""
    logs_dir: Path
    registry: AppRegistry = field(default_factory=AppRegistry)
    shell_path: Optional[str] = None
    auth_token: Optional[str] = None
    host: str = "0.0.0.0"
    port: int = DEFAULT_PORT
    rate_limit: str = DEFAULT_RATE_LIMIT
    max_workers: int = DEFAULT_MAX_WORKERS
    step_timeout: float = DEFAULT_TIMEOUT_SECONDS
    log_level: str = "INFO"
    log_format: str = "pretty"
    config_path: Optional[Path] = None

    @classmethod
    def from_dict(cls, data: dict[str, Any], home: Optional[Path] = None) -> "DeployhookConfig":
        """
        Build a config from parsed YAML.

        Raises:
            ConfigError: If a value is missing or invalid
        """
        home = home or get_deployhook_home()

        env_file = data.get("env_file")
        if env_file:
            load_dotenv(Path(env_file).expanduser(), override=False)

        logs_dir = Path(data.get("logs_dir") or home / "logs").expanduser()

        try:
            port = int(data.get("port", DEFAULT_PORT))
            max_workers = int(data.get("max_workers", DEFAULT_MAX_WORKERS))
            step_timeout = float(data.get("step_timeout", DEFAULT_TIMEOUT_SECONDS))
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid numeric setting: {e}") from e

        if max_workers < 1:
            raise ConfigError(f"max_workers must be at least 1, got {max_workers}")
        if step_timeout <= 0:
            raise ConfigError(f"step_timeout must be positive, got {step_timeout}")

        log_format = data.get("log_format", "pretty")
        if log_format not in LOG_FORMATS:
            raise ConfigError(f"log_format must be one of {LOG_FORMATS}, got '{log_format}'")

        return cls(
            logs_dir=logs_dir,
            registry=AppRegistry.from_dict(data.get("apps")),
            shell_path=normalize_shell_path(data.get("shell_path")),
            auth_token=data.get("auth_token") or os.environ.get(AUTH_TOKEN_ENV),
            host=str(data.get("host", "0.0.0.0")),
            port=port,
            rate_limit=str(data.get("rate_limit", DEFAULT_RATE_LIMIT)),
            max_workers=max_workers,
            step_timeout=step_timeout,
            log_level=str(data.get("log_level", "INFO")).upper(),
            log_format=log_format,
        )


def load_config(config_path: Optional[Path] = None) -> DeployhookConfig:
    """
    Load deployhook configuration from YAML file.

    Args:
        config_path: Path to config file. Defaults to <home>/config.yaml

    Returns:
        DeployhookConfig instance

    Raises:
        FileNotFoundError: If the config file does not exist
        ConfigError: If the config is invalid
    """
    home = get_deployhook_home()
    if config_path is None:
        config_path = home / "config.yaml"
    config_path = Path(config_path).expanduser()

    if not config_path.exists():
        raise FileNotFoundError(
            f"deployhook config.yaml not found at {config_path}. Run 'deployhook init' first."
        )

    try:
        with open(config_path, "r") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML syntax in {config_path}: {e}") from e

    if not data:
        raise ConfigError(f"Configuration file is empty: {config_path}")
    if not isinstance(data, dict):
        raise ConfigError(f"Configuration file must contain a mapping: {config_path}")

    config = DeployhookConfig.from_dict(data, home=home)
    config.config_path = config_path
    return config
