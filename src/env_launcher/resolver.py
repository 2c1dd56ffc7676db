"""Binary resolution: find the real command on PATH, skipping the wrapper."""

from __future__ import annotations

import logging
import os

from .errors import BinaryNotFound

logger = logging.getLogger(__name__)


def _executable_names(command_name: str) -> list[str]:
    """Return the file names a command may have on this platform."""
    if os.name != "nt":
        return [command_name]

    # Windows resolves bare names through PATHEXT
    exts = os.environ.get("PATHEXT", ".COM;.EXE;.BAT;.CMD").split(os.pathsep)
    names = [command_name]
    names.extend(command_name + ext.lower() for ext in exts if ext)
    return names


def which_all(command_name: str, search_path: str | None = None) -> list[str]:
    """Return every executable named ``command_name`` in search-path order.

    Duplicates across directories are kept, like ``which -a``. Empty
    entries in the search path are ignored.
    """
    if search_path is None:
        search_path = os.environ.get("PATH", os.defpath)

    candidates: list[str] = []
    for directory in search_path.split(os.pathsep):
        if not directory:
            continue
        for name in _executable_names(command_name):
            candidate = os.path.join(directory, name)
            if os.path.isfile(candidate) and os.access(candidate, os.X_OK):
                candidates.append(candidate)
    return candidates


def canonical_path(path: str) -> str:
    """Return the symlink-resolved absolute path of ``path``.

    Falls back to the plain absolute path when resolution fails, so a raw
    path that equals the wrapper's own path is still recognised.
    """
    try:
        return os.path.realpath(path, strict=True)
    except (OSError, RuntimeError):
        return os.path.abspath(path)


def resolve(command_name: str, self_path: str, search_path: str | None = None) -> str:
    """Return the first ``command_name`` on the search path that is not the wrapper.

    Raises:
        BinaryNotFound: if every candidate is the wrapper itself.
    """
    own = canonical_path(self_path)
    logger.debug("Resolving %s (wrapper is %s)", command_name, own)

    for candidate in which_all(command_name, search_path):
        if canonical_path(candidate) == own:
            logger.debug("Skipping wrapper candidate %s", candidate)
            continue
        logger.debug("Resolved %s -> %s", command_name, candidate)
        return candidate

    raise BinaryNotFound(command_name)
