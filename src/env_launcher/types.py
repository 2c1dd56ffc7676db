"""Type definitions for the launch wrapper."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .errors import FetchFailed

# Constants
MASKED_VALUE = "<masked>"

# Exit codes used when the wrapper aborts before launching the real binary.
# Loosely follow sysexits(3) so they stay clear of typical tool exit codes.
EXIT_USAGE = 64
EXIT_CACHE_WRITE_FAILED = 73
EXIT_CONFIG_UNAVAILABLE = 78
EXIT_CANNOT_EXECUTE = 126
EXIT_BINARY_NOT_FOUND = 127


# Type aliases
EnvMap = dict[str, str]
Argv = list[str]


class CacheStatus(str, Enum):
    """Outcome of a cache freshness check."""

    OK = "ok"
    STALE_BUT_PRESENT = "stale_but_present"
    FATAL = "fatal"


@dataclass(frozen=True)
class RefreshResult:
    """Result of ``ensure_fresh``."""

    status: CacheStatus
    fetched: bool = False
    error: FetchFailed | None = None
    age_s: float | None = None

    @property
    def usable(self) -> bool:
        """Return whether a cache file can be loaded afterwards."""
        return self.status is not CacheStatus.FATAL


def mask_value(value: str | None) -> str | None:
    """Mask a value for display."""
    if value is None:
        return value
    return MASKED_VALUE
