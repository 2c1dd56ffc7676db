"""Loading environment scripts and layering them into the child environment."""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
from collections.abc import Mapping
from pathlib import Path
from types import MappingProxyType
from typing import Literal

from dotenv import dotenv_values

from .errors import ConfigError
from .types import EnvMap

logger = logging.getLogger(__name__)

Loader = Literal["dotenv", "shell"]

DEFAULT_LOADER: Loader = "dotenv" if os.name == "nt" else "shell"

# Delimit the environment dumps before and after sourcing; a real
# environment entry never starts with "=".
_MARKER = "=ENV-LAUNCHER-MARK="
_END_MARKER = "=ENV-LAUNCHER-END="

# `command -p` finds env(1) on the default PATH whatever PATH the script sets.
_SOURCE_SCRIPT = (
    'command -p env -0; printf "%s\\0" "' + _MARKER + '"; '
    'set -a; . "$1" >&2; '
    'command -p env -0 && printf "%s\\0" "' + _END_MARKER + '"'
)

# Variables bash maintains itself
_SHELL_NOISE = frozenset({"_", "SHLVL", "PWD", "OLDPWD", "BASH_EXECUTION_STRING"})


def _parse_env_dump(data: bytes) -> EnvMap:
    env: EnvMap = {}
    for entry in data.split(b"\0"):
        if not entry:
            continue
        key, sep, value = entry.decode("utf-8", errors="replace").partition("=")
        if sep:
            env[key] = value
    return env


def read_dotenv(path: Path) -> EnvMap:
    """Parse ``path`` as a dotenv file without interpolation.

    Raises:
        ConfigError: if the file cannot be read or is not valid UTF-8
    """
    try:
        values = dotenv_values(path, interpolate=False)
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e.strerror or e}") from e
    except UnicodeDecodeError as e:
        raise ConfigError(f"Cannot read {path}: not valid UTF-8 ({e.reason} at byte {e.start})") from e
    return {k: str(v) for k, v in values.items() if v is not None}


def _bash() -> str:
    bash = shutil.which("bash") or shutil.which("bash", path=os.defpath)
    if bash is None:
        raise ConfigError("bash is required to source environment scripts")
    return bash


def _load_shell(path: Path, base_env: Mapping[str, str]) -> EnvMap:
    """Source ``path`` in bash and return what it exported or changed."""
    try:
        result = subprocess.run(
            [_bash(), "-c", _SOURCE_SCRIPT, "env-launcher", str(path)],
            env=dict(base_env),
            stdout=subprocess.PIPE,
            check=False,
        )
    except OSError as e:
        raise ConfigError(f"Cannot run bash to source {path}: {e.strerror or e}") from e

    before_raw, sep, rest = result.stdout.partition(_MARKER.encode() + b"\0")
    after_raw, end, _ = rest.partition(_END_MARKER.encode() + b"\0")
    if not (sep and end) or result.returncode != 0:
        raise ConfigError(f"Failed to source {path} (exit code {result.returncode})")

    before = _parse_env_dump(before_raw)
    after = _parse_env_dump(after_raw)
    return {
        key: value
        for key, value in after.items()
        if key not in _SHELL_NOISE and before.get(key) != value
    }


def load_env_script(
    path: str | Path,
    *,
    loader: Loader = DEFAULT_LOADER,
    base_env: Mapping[str, str] | None = None,
) -> EnvMap:
    """Load the variable assignments of an environment script.

    Args:
        path: Script or dotenv file to load; a missing file yields ``{}``
        loader: ``shell`` sources the file in bash, so command
            substitutions and conditionals run; ``dotenv`` only parses
            ``KEY=value`` lines and executes nothing
        base_env: Environment the shell loader sources the file in

    Returns:
        The variables defined by the file

    Raises:
        ConfigError: if the file cannot be read or sourcing it fails
    """
    path = Path(path)
    if not path.is_file():
        return {}
    if not os.access(path, os.R_OK):
        raise ConfigError(f"Cannot read {path}: permission denied")

    if loader == "shell":
        env = _load_shell(path, base_env or {})
    else:
        env = read_dotenv(path)

    logger.debug("Loaded %d variables from %s (%s)", len(env), path, loader)
    return env


def merge_layers(*layers: Mapping[str, str]) -> Mapping[str, str]:
    """Merge mappings in order, later layers winning, into a read-only mapping."""
    merged: EnvMap = {}
    for layer in layers:
        merged.update(layer)
    return MappingProxyType(merged)


def build_child_env(
    remote: Mapping[str, str],
    local: Mapping[str, str],
    inherited: Mapping[str, str],
    middleware: Mapping[str, str] | None = None,
) -> Mapping[str, str]:
    """Build the child environment.

    Precedence, lowest first: remote config, local overrides, middleware,
    then the inherited process environment (explicit user settings win).
    """
    return merge_layers(remote, local, middleware or {}, inherited)
