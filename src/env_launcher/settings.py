"""Settings for a wrapped command.

Values come from three places, later ones winning: built-in defaults, an
optional ``launcher.yaml`` in the command's config directory, and
environment variables named after the command (``CLAUDE_ENV_URL``,
``CLAUDE_ENV_UPDATE_TTL`` and ``CLAUDE_DEBUG`` for ``claude``).
"""

from __future__ import annotations

import os
import re
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from .cache import CACHE_FILE_NAME, DEFAULT_TTL_S
from .envfile import DEFAULT_LOADER, Loader
from .errors import ConfigError
from .fetch import DEFAULT_CONNECT_TIMEOUT_S, DEFAULT_MAX_REDIRECTS, DEFAULT_TOTAL_TIMEOUT_S

LOCAL_FILE_NAME = "local.env"
MIDDLEWARE_FILE_NAME = "middleware.sh"
SETTINGS_FILE_NAME = "launcher.yaml"

DEFAULT_LOCAL_KEYS = ["LITELLM_BASE_URL", "OP_ITEM"]

_TRUTHY = ("1", "true", "yes", "on")


class LauncherSettings(BaseModel):
    """Resolved settings for one wrapped command."""

    command_name: str
    remote_url: str
    ttl_s: float = Field(default=DEFAULT_TTL_S, ge=0)
    connect_timeout_s: float = Field(default=DEFAULT_CONNECT_TIMEOUT_S, gt=0)
    total_timeout_s: float = Field(default=DEFAULT_TOTAL_TIMEOUT_S, gt=0)
    max_redirects: int = Field(default=DEFAULT_MAX_REDIRECTS, ge=0)
    loader: Loader = DEFAULT_LOADER
    cache_dir: Path
    config_dir: Path
    debug: bool = False
    local_keys: list[str] = Field(default_factory=lambda: list(DEFAULT_LOCAL_KEYS))

    @field_validator("remote_url")
    @classmethod
    def _check_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"remote_url must be an http(s) URL, got '{v}'")
        return v

    @property
    def cache_file(self) -> Path:
        return self.cache_dir / CACHE_FILE_NAME

    @property
    def local_file(self) -> Path:
        return self.config_dir / LOCAL_FILE_NAME

    @property
    def middleware_file(self) -> Path:
        return self.config_dir / MIDDLEWARE_FILE_NAME

    @property
    def settings_file(self) -> Path:
        return self.config_dir / SETTINGS_FILE_NAME


def env_prefix(command_name: str) -> str:
    """Return the environment variable prefix for ``command_name``."""
    return re.sub(r"[^A-Za-z0-9]", "_", command_name).upper()


def is_truthy(value: str | None) -> bool:
    return value is not None and value.strip().lower() in _TRUTHY


def config_dir_for(command_name: str, env: Mapping[str, str]) -> Path:
    """Return ``${XDG_CONFIG_HOME:-~/.config}/<command>``."""
    base = env.get("XDG_CONFIG_HOME") or str(Path.home() / ".config")
    return Path(base) / command_name


def cache_dir_for(command_name: str, env: Mapping[str, str]) -> Path:
    """Return ``${XDG_CACHE_HOME:-~/.cache}/<command>``."""
    base = env.get("XDG_CACHE_HOME") or str(Path.home() / ".cache")
    return Path(base) / command_name


def _load_settings_file(path: Path) -> dict[str, Any]:
    if not path.is_file():
        return {}
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"{path} must contain a mapping")
    return data


def _format_validation_error(e: ValidationError) -> str:
    first = e.errors()[0]
    field = ".".join(str(p) for p in first["loc"]) or "settings"
    return f"Invalid setting '{field}': {first['msg']}"


def load_settings(
    command_name: str,
    env: Mapping[str, str] | None = None,
    default_url: str | None = None,
) -> LauncherSettings:
    """Build settings for ``command_name``.

    Raises:
        ConfigError: if the settings file or an override is invalid, or no
            remote URL is configured anywhere.
    """
    if env is None:
        env = os.environ

    prefix = env_prefix(command_name)
    config_dir = config_dir_for(command_name, env)

    data: dict[str, Any] = {
        "command_name": command_name,
        "cache_dir": cache_dir_for(command_name, env),
        "config_dir": config_dir,
    }
    if default_url:
        data["remote_url"] = default_url

    data.update(_load_settings_file(config_dir / SETTINGS_FILE_NAME))

    if env.get(f"{prefix}_ENV_URL"):
        data["remote_url"] = env[f"{prefix}_ENV_URL"]
    if env.get(f"{prefix}_ENV_UPDATE_TTL"):
        data["ttl_s"] = env[f"{prefix}_ENV_UPDATE_TTL"]
    if is_truthy(env.get(f"{prefix}_DEBUG")):
        data["debug"] = True

    if not data.get("remote_url"):
        raise ConfigError(
            f"No remote config URL for '{command_name}'; set {prefix}_ENV_URL"
        )

    try:
        return LauncherSettings(**data)
    except ValidationError as e:
        raise ConfigError(_format_validation_error(e)) from e
