"""Installation helpers: write the wrapper shim and check PATH."""

from __future__ import annotations

import logging
import os
import shutil
import sys
import time
from collections.abc import Mapping
from pathlib import Path

from .atomic import write_bytes_atomic
from .errors import CacheWriteFailed
from .settings import env_prefix

logger = logging.getLogger(__name__)


def default_bin_dir() -> Path:
    return Path.home() / ".local" / "bin"


def shim_script(command_name: str, default_url: str, python: str | None = None) -> str:
    """Return the source of the wrapper installed as ``command_name``."""
    python = python or sys.executable
    prefix = env_prefix(command_name)
    return "\n".join(
        [
            f"#!{python}",
            f"# {command_name} - launch wrapper installed by env-launcher",
            "# Injects the team environment and runs the real binary.",
            "#",
            f"# Refresh: env-launcher refresh {command_name} --force",
            f"# Debug:   {prefix}_DEBUG=1 {command_name}",
            "import sys",
            "",
            "from env_launcher.launcher import main",
            "",
            f"sys.exit(main({command_name!r}, default_url={default_url!r}))",
            "",
        ]
    )


def install_shim(
    bin_dir: str | Path,
    command_name: str,
    default_url: str,
    *,
    force: bool = False,
    python: str | None = None,
) -> Path:
    """Write the wrapper into ``bin_dir`` and return its path.

    An existing symlink is replaced. An existing regular file is first
    copied to ``<path>.backup.<timestamp>`` unless ``force`` is set.
    """
    bin_dir = Path(bin_dir)
    target = bin_dir / command_name
    try:
        bin_dir.mkdir(mode=0o755, parents=True, exist_ok=True)
        if target.is_symlink():
            logger.info("Replacing symlink %s -> %s", target, os.readlink(target))
            target.unlink()
        elif target.exists() and not force:
            backup = target.with_name(f"{target.name}.backup.{int(time.time() * 1000)}")
            shutil.copy2(target, backup)
            logger.info("Backed up existing %s to %s", target, backup)
    except OSError as e:
        raise CacheWriteFailed(str(target), e.strerror or str(e)) from e

    write_bytes_atomic(
        target,
        shim_script(command_name, default_url, python).encode("utf-8"),
        mode=0o755,
    )
    return target


def path_contains(directory: str | Path, environ: Mapping[str, str] | None = None) -> bool:
    """Return whether ``directory`` is an entry of PATH."""
    if environ is None:
        environ = os.environ
    wanted = os.path.abspath(str(directory))
    entries = environ.get("PATH", "").split(os.pathsep)
    return any(entry and os.path.abspath(entry) == wanted for entry in entries)
