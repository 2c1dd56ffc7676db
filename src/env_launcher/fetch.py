"""Remote configuration fetch with bounded time and redirect following."""

from __future__ import annotations

import logging
import threading
import time
from typing import Any

import httpx

from . import __version__
from .errors import FetchFailed, RedirectLoopExceeded

logger = logging.getLogger(__name__)

DEFAULT_CONNECT_TIMEOUT_S = 3.0
DEFAULT_TOTAL_TIMEOUT_S = 10.0
DEFAULT_MAX_REDIRECTS = 10

USER_AGENT = f"env-launcher/{__version__}"


def _remaining(deadline: float, url: str, total_timeout: float) -> float:
    remaining = deadline - time.monotonic()
    if remaining <= 0:
        raise FetchFailed(url, f"timed out after {total_timeout:g}s")
    return remaining


def _read_body(response: httpx.Response, deadline: float, url: str, total_timeout: float) -> bytes:
    """Read the streamed body, enforcing the overall deadline between chunks."""
    chunks: list[bytes] = []
    for chunk in response.iter_bytes():
        chunks.append(chunk)
        _remaining(deadline, url, total_timeout)
    return b"".join(chunks)



def _fetch(
    url: str,
    connect_timeout: float,
    total_timeout: float,
    max_redirects: int,
    transport: httpx.BaseTransport | None,
) -> bytes:
    deadline = time.monotonic() + total_timeout
    current = url

    with httpx.Client(
        transport=transport,
        follow_redirects=False,
        headers={"User-Agent": USER_AGENT},
    ) as client:
        for _ in range(max_redirects + 1):
            remaining = _remaining(deadline, url, total_timeout)
            timeout = httpx.Timeout(remaining, connect=min(connect_timeout, remaining))
            try:
                with client.stream("GET", current, timeout=timeout) as response:
                    if response.is_redirect:
                        current = str(response.url.join(response.headers["location"]))
                        logger.debug("Redirected (%s) to %s", response.status_code, current)
                        continue
                    if not response.is_success:
                        raise FetchFailed(url, f"HTTP {response.status_code}")
                    body = _read_body(response, deadline, url, total_timeout)
                    logger.debug("Fetched %d bytes from %s", len(body), current)
                    return body
            except httpx.TimeoutException as e:
                raise FetchFailed(url, f"timed out after {total_timeout:g}s") from e
            except (httpx.HTTPError, httpx.InvalidURL) as e:
                raise FetchFailed(url, f"{type(e).__name__}: {e}") from e

    raise RedirectLoopExceeded(url, max_redirects)


def fetch_remote(
    url: str,
    *,
    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT_S,
    total_timeout: float = DEFAULT_TOTAL_TIMEOUT_S,
    max_redirects: int = DEFAULT_MAX_REDIRECTS,
    transport: httpx.BaseTransport | None = None,
) -> bytes:
    """GET ``url`` and return the response body.

    Redirects are followed by hand so that every hop shares a single overall
    deadline of ``total_timeout`` seconds; ``connect_timeout`` bounds each
    connection attempt. httpx applies its read timeout per socket read, so
    the request runs on a daemon thread that is abandoned once the deadline
    passes; a server trickling bytes cannot hold the caller any longer.

    Args:
        url: Remote configuration URL
        connect_timeout: Seconds allowed for establishing a connection
        total_timeout: Seconds allowed for the whole fetch, redirects included
        max_redirects: Number of redirects followed before giving up
        transport: Optional httpx transport (used by tests)

    Returns:
        The body of the final 2xx response

    Raises:
        RedirectLoopExceeded: if more than ``max_redirects`` redirects occur
        FetchFailed: on connection errors, timeouts or a non-2xx response
    """
    outcome: dict[str, Any] = {}

    def _run() -> None:
        try:
            outcome["body"] = _fetch(url, connect_timeout, total_timeout, max_redirects, transport)
        except Exception as e:
            outcome["error"] = e

    worker = threading.Thread(target=_run, name="env-launcher-fetch", daemon=True)
    worker.start()
    worker.join(total_timeout)
    if worker.is_alive():
        raise FetchFailed(url, f"timed out after {total_timeout:g}s")
    if "error" in outcome:
        raise outcome["error"]
    return outcome["body"]
