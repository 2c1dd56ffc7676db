"""Local cache of the remote environment script.

The cache is a single file whose modification time records the last
successful fetch. A stale or missing cache is refreshed from the remote URL;
when that fails an existing cache is used as-is. No lock is taken: two
processes may both refresh, and the last atomic rename wins.
"""

from __future__ import annotations

import logging
import os
import time
from pathlib import Path

import httpx

from .atomic import write_bytes_atomic
from .errors import CacheWriteFailed, FetchFailed
from .fetch import (
    DEFAULT_CONNECT_TIMEOUT_S,
    DEFAULT_MAX_REDIRECTS,
    DEFAULT_TOTAL_TIMEOUT_S,
    fetch_remote,
)
from .types import CacheStatus, RefreshResult

logger = logging.getLogger(__name__)

DEFAULT_TTL_S = 300.0
CACHE_FILE_NAME = "env-remote.sh"


def cache_age(cache_path: str | Path, now: float | None = None) -> float | None:
    """Return seconds since ``cache_path`` was last modified, or None if missing."""
    try:
        mtime = os.stat(cache_path).st_mtime
    except (FileNotFoundError, NotADirectoryError):
        return None
    if now is None:
        now = time.time()
    return now - mtime


def is_fresh(cache_path: str | Path, ttl: float, now: float | None = None) -> bool:
    """Return whether the cache exists and is younger than ``ttl`` seconds."""
    age = cache_age(cache_path, now)
    if age is None:
        return False
    return age < ttl


def _ensure_cache_dir(cache_path: Path) -> None:
    try:
        cache_path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
    except OSError as e:
        raise CacheWriteFailed(str(cache_path.parent), e.strerror or str(e)) from e


def ensure_fresh(
    cache_path: str | Path,
    remote_url: str,
    ttl: float = DEFAULT_TTL_S,
    *,
    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT_S,
    total_timeout: float = DEFAULT_TOTAL_TIMEOUT_S,
    max_redirects: int = DEFAULT_MAX_REDIRECTS,
    transport: httpx.BaseTransport | None = None,
) -> RefreshResult:
    """Make sure a usable cache exists at ``cache_path``.

    A fresh cache returns immediately without touching the network.
    Otherwise the remote URL is fetched once and the body is installed
    atomically with owner-only permissions.

    Returns:
        ``OK`` when the cache is fresh or was refreshed, ``STALE_BUT_PRESENT``
        when the fetch failed but an older cache exists, ``FATAL`` when the
        fetch failed and there is no cache at all.

    Raises:
        CacheWriteFailed: if the fetched content cannot be stored.
    """
    cache_path = Path(cache_path)
    age = cache_age(cache_path)

    if age is not None and age < ttl:
        logger.debug("Cache %s is fresh (age %.0fs < ttl %gs)", cache_path, age, ttl)
        return RefreshResult(CacheStatus.OK, age_s=age)

    if age is None:
        logger.debug("Cache %s is missing, fetching %s", cache_path, remote_url)
    else:
        logger.debug("Cache %s is stale (age %.0fs), fetching %s", cache_path, age, remote_url)

    try:
        body = fetch_remote(
            remote_url,
            connect_timeout=connect_timeout,
            total_timeout=total_timeout,
            max_redirects=max_redirects,
            transport=transport,
        )
    except FetchFailed as e:
        # The cache may have been created by a concurrent invocation meanwhile
        age = cache_age(cache_path)
        if age is None:
            return RefreshResult(CacheStatus.FATAL, error=e)
        logger.warning("%s; using cached config from %.0fs ago", e, age)
        return RefreshResult(CacheStatus.STALE_BUT_PRESENT, error=e, age_s=age)

    _ensure_cache_dir(cache_path)
    write_bytes_atomic(cache_path, body, mode=0o600)
    logger.debug("Cached %d bytes at %s", len(body), cache_path)
    return RefreshResult(CacheStatus.OK, fetched=True, age_s=0.0)
