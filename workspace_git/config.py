"""Configuration loader for the workspace git API.

Loads an optional YAML file and applies environment variable overrides.

Lookup order for each setting (highest first):
1. ``WORKSPACE_GIT_*`` environment variable
2. Key in the YAML file named by ``WORKSPACE_GIT_CONFIG`` (or the path
   passed to ``load_config``)
3. Dataclass default
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields
from typing import Any, Optional

import yaml

from workspace_git.errors import ConfigError

CONFIG_PATH_ENV = "WORKSPACE_GIT_CONFIG"

VALID_EXECUTORS = frozenset({"local", "docker"})

# env var -> config field
_ENV_OVERRIDES: dict[str, str] = {
    "WORKSPACE_GIT_BIND": "bind",
    "WORKSPACE_GIT_PORT": "port",
    "WORKSPACE_GIT_DB_PATH": "db_path",
    "WORKSPACE_GIT_WORKSPACES_ROOT": "workspaces_root",
    "WORKSPACE_GIT_EXECUTOR": "executor",
    "WORKSPACE_GIT_SESSION_SECRET": "session_secret",
    "WORKSPACE_GIT_SESSION_MAX_AGE": "session_max_age",
    "WORKSPACE_GIT_ALLOWED_ORIGINS": "allowed_origins",
}


@dataclass
class GitApiConfig:
    """Service configuration."""

    bind: str = "127.0.0.1"
    port: int = 8090
    db_path: str = "/var/lib/workspace-git/workspaces.db"
    workspaces_root: str = "/var/lib/workspace-git/workspaces"
    executor: str = "local"
    session_secret: str = ""
    session_max_age: int = 86400
    allowed_origins: list[str] = field(default_factory=list)
    command_timeout: float = 30.0
    network_timeout: float = 60.0
    clone_timeout: float = 120.0
    rate_burst: int = 30
    rate_per_minute: float = 100.0
    max_request_body: int = 256 * 1024

    def __post_init__(self):
        """Validate configuration."""
        for name in ("port", "session_max_age", "rate_burst", "max_request_body"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise ConfigError(f"{name} must be an integer, got {value!r}")
        for name in ("command_timeout", "network_timeout", "clone_timeout",
                     "rate_per_minute"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ConfigError(f"{name} must be a number, got {value!r}")
        if self.executor not in VALID_EXECUTORS:
            raise ConfigError(
                f"Invalid executor '{self.executor}'. "
                f"Valid executors: {', '.join(sorted(VALID_EXECUTORS))}"
            )
        if not 0 < self.port < 65536:
            raise ConfigError(f"Port must be in 1..65535, got {self.port}")
        for name in ("command_timeout", "network_timeout", "clone_timeout"):
            if getattr(self, name) <= 0:
                raise ConfigError(f"{name} must be positive, got {getattr(self, name)}")
        if self.session_max_age <= 0:
            raise ConfigError(
                f"session_max_age must be positive, got {self.session_max_age}"
            )
        if self.rate_burst <= 0 or self.rate_per_minute <= 0:
            raise ConfigError("Rate limit burst and per-minute rate must be positive")
        if self.max_request_body <= 0:
            raise ConfigError("max_request_body must be positive")
        if not isinstance(self.allowed_origins, list) or not all(
            isinstance(o, str) for o in self.allowed_origins
        ):
            raise ConfigError("allowed_origins must be a list of strings")


def _load_yaml_file(file_path: str) -> dict[str, Any]:
    """Load a YAML mapping from *file_path*.

    Raises:
        ConfigError: If the file is missing, unparsable, or not a mapping.
    """
    if not os.path.exists(file_path):
        raise ConfigError(
            f"Configuration file not found: {file_path}\n"
            f"Hint: set {CONFIG_PATH_ENV} to the config file location"
        )
    try:
        with open(file_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {file_path}: {e}")

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Configuration file must contain a mapping: {file_path}")
    return data


def _coerce(name: str, raw: str) -> Any:
    """Convert an environment string to the type of config field *name*."""
    if name == "allowed_origins":
        return [o.strip() for o in raw.split(",") if o.strip()]
    if name in ("port", "session_max_age"):
        try:
            return int(raw)
        except ValueError:
            raise ConfigError(f"{name} must be an integer, got {raw!r}")
    return raw


def load_config(path: Optional[str] = None) -> GitApiConfig:
    """Load configuration from YAML (optional) plus environment overrides.

    Args:
        path: Optional YAML path. Defaults to ``$WORKSPACE_GIT_CONFIG``;
              when neither is set only env vars and defaults apply.

    Raises:
        ConfigError: On unknown keys, bad values, or a missing secret.
    """
    path = path or os.environ.get(CONFIG_PATH_ENV)
    data: dict[str, Any] = _load_yaml_file(path) if path else {}

    known = {f.name for f in fields(GitApiConfig)}
    unknown = set(data) - known
    if unknown:
        raise ConfigError(f"Unknown configuration keys: {', '.join(sorted(unknown))}")

    for env_var, name in _ENV_OVERRIDES.items():
        raw = os.environ.get(env_var)
        if raw:
            data[name] = _coerce(name, raw)

    try:
        config = GitApiConfig(**data)
    except TypeError as e:
        raise ConfigError(f"Invalid configuration: {e}")

    if not config.session_secret:
        raise ConfigError(
            "session_secret is required (set WORKSPACE_GIT_SESSION_SECRET)"
        )
    return config
