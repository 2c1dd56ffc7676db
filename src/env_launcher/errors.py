"""Error taxonomy for the launch wrapper.

Every error renders as a single human-readable line and carries the exit
code the wrapper terminates with when the error is fatal.
"""

from __future__ import annotations

from .types import (
    EXIT_BINARY_NOT_FOUND,
    EXIT_CANNOT_EXECUTE,
    EXIT_CACHE_WRITE_FAILED,
    EXIT_CONFIG_UNAVAILABLE,
    EXIT_USAGE,
)


class LauncherError(Exception):
    """Base class for all wrapper errors."""

    exit_code: int = 1


class ConfigError(LauncherError):
    """Invalid settings file or environment override."""

    exit_code = EXIT_USAGE


class BinaryNotFound(LauncherError):
    """No executable other than the wrapper itself was found on PATH."""

    exit_code = EXIT_BINARY_NOT_FOUND

    def __init__(self, command_name: str):
        self.command_name = command_name
        super().__init__(
            f"Cannot find the real '{command_name}' binary on PATH (this wrapper is skipped)"
        )


class FetchFailed(LauncherError):
    """The remote configuration could not be fetched."""

    exit_code = EXIT_CONFIG_UNAVAILABLE

    def __init__(self, url: str, reason: str):
        self.url = url
        self.reason = reason
        super().__init__(f"Cannot fetch config from {url}: {reason}")


class RedirectLoopExceeded(FetchFailed):
    """The remote URL redirected more often than allowed."""

    def __init__(self, url: str, max_redirects: int):
        self.max_redirects = max_redirects
        super().__init__(url, f"exceeded {max_redirects} redirects")


class CacheWriteFailed(LauncherError):
    """The cache (or another managed file) could not be written."""

    exit_code = EXIT_CACHE_WRITE_FAILED

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Cannot write {path}: {reason}")


class LaunchFailed(LauncherError):
    """The resolved binary could not be executed."""

    exit_code = EXIT_CANNOT_EXECUTE

    def __init__(self, binary: str, reason: str):
        self.binary = binary
        self.reason = reason
        super().__init__(f"Cannot execute {binary}: {reason}")
