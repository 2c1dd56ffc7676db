"""Launch wrapper - inject centrally managed environment into an existing command."""

__version__ = "0.1.0"

from .cache import ensure_fresh, is_fresh
from .errors import (
    BinaryNotFound,
    CacheWriteFailed,
    FetchFailed,
    LauncherError,
    RedirectLoopExceeded,
)
from .resolver import resolve, which_all
from .types import CacheStatus, RefreshResult

__all__ = [
    "BinaryNotFound",
    "CacheStatus",
    "CacheWriteFailed",
    "FetchFailed",
    "LauncherError",
    "RedirectLoopExceeded",
    "RefreshResult",
    "ensure_fresh",
    "is_fresh",
    "resolve",
    "which_all",
]
