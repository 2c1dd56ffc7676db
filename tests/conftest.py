"""Shared fixtures for launcher tests."""

import os
import stat
from pathlib import Path

import httpx
import pytest


def make_executable(path: Path, body: str = "#!/bin/sh\nexit 0\n") -> Path:
    """Create an executable script at ``path``."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(body)
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


def age_file(path: Path, seconds: float) -> None:
    """Set the modification time of ``path`` to ``seconds`` ago."""
    import time

    then = time.time() - seconds
    os.utime(path, (then, then))


class CountingTransport(httpx.MockTransport):
    """Mock transport that records every request it serves."""

    def __init__(self, handler):
        self.requests: list[httpx.Request] = []

        def _record(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            return handler(request)

        super().__init__(_record)

    @property
    def calls(self) -> int:
        return len(self.requests)


@pytest.fixture
def serve():
    """Return a factory for a transport serving ``body`` with ``status``."""

    def _serve(body: bytes = b"export FOO=bar\n", status: int = 200) -> CountingTransport:
        return CountingTransport(lambda request: httpx.Response(status, content=body))

    return _serve


@pytest.fixture
def unreachable():
    """Transport whose every request fails to connect."""

    def _fail(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("Connection refused", request=request)

    return CountingTransport(_fail)


@pytest.fixture
def launcher_env(tmp_path, monkeypatch):
    """Isolate XDG directories and PATH for launcher tests."""
    cache_home = tmp_path / "cache"
    config_home = tmp_path / "config"
    monkeypatch.setenv("XDG_CACHE_HOME", str(cache_home))
    monkeypatch.setenv("XDG_CONFIG_HOME", str(config_home))
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    for name in ("TOOL_ENV_URL", "TOOL_ENV_UPDATE_TTL", "TOOL_DEBUG", "TOOL_FORCE"):
        monkeypatch.delenv(name, raising=False)
    return tmp_path
