"""Wrapper runtime: resolve the real binary, refresh config, exec."""

from __future__ import annotations

import logging
import os
import subprocess
import sys
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

import httpx
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from .cache import ensure_fresh
from .envfile import build_child_env, load_env_script, merge_layers
from .errors import FetchFailed, LaunchFailed, LauncherError
from .local_config import read_local_config
from .resolver import resolve
from .settings import LauncherSettings, env_prefix, is_truthy, load_settings
from .types import Argv, CacheStatus, RefreshResult

logger = logging.getLogger(__name__)

err_console = Console(stderr=True)

ExecFn = Callable[[str, Sequence[str], Mapping[str, str]], Any]


@dataclass(frozen=True)
class LaunchPlan:
    """Everything needed to replace the wrapper with the real binary."""

    binary: str
    argv: Argv
    env: Mapping[str, str]
    refresh: RefreshResult


def configure_logging(debug: bool = False) -> None:
    """Send log records to stderr; WARNING by default, DEBUG when ``debug``."""
    handler = RichHandler(
        console=err_console,
        show_time=False,
        show_path=False,
        markup=False,
    )
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(message)s",
        handlers=[handler],
        force=True,
    )


def prepare(
    settings: LauncherSettings,
    self_path: str,
    args: Sequence[str],
    environ: Mapping[str, str],
    transport: httpx.BaseTransport | None = None,
) -> LaunchPlan:
    """Resolve the binary and build its environment.

    Raises:
        BinaryNotFound: if only the wrapper itself is on PATH
        FetchFailed: if the config cannot be fetched and nothing is cached
        CacheWriteFailed: if fetched config cannot be stored
    """
    binary = resolve(settings.command_name, self_path, environ.get("PATH", os.defpath))

    refresh = ensure_fresh(
        settings.cache_file,
        settings.remote_url,
        settings.ttl_s,
        connect_timeout=settings.connect_timeout_s,
        total_timeout=settings.total_timeout_s,
        max_redirects=settings.max_redirects,
        transport=transport,
    )
    if refresh.status is CacheStatus.FATAL:
        error = refresh.error
        raise FetchFailed(error.url, f"{error.reason} (no cached config)") from error

    inherited = dict(environ)
    local = read_local_config(settings.local_file, settings.local_keys)
    remote = load_env_script(
        settings.cache_file,
        loader=settings.loader,
        base_env=merge_layers(local, inherited),
    )
    middleware = load_env_script(
        settings.middleware_file,
        loader=settings.loader,
        base_env=merge_layers(remote, local, inherited),
    )

    env = build_child_env(remote, local, inherited, middleware)
    logger.debug(
        "Injecting %d remote, %d local and %d middleware variables",
        len(remote),
        len(local),
        len(middleware),
    )
    return LaunchPlan(binary=binary, argv=[binary, *args], env=env, refresh=refresh)


def launch(plan: LaunchPlan, exec_fn: ExecFn | None = None) -> int:
    """Replace the current process with the planned binary.

    On Windows there is no real ``exec``; the binary runs as a child and its
    exit code is returned. With a custom ``exec_fn`` that returns, 0 is
    returned.
    """
    logger.debug("Executing %s", plan.binary)
    try:
        if exec_fn is None and os.name == "nt":
            return subprocess.call(plan.argv, env=dict(plan.env))
        (exec_fn or os.execve)(plan.binary, plan.argv, dict(plan.env))
    except OSError as e:
        raise LaunchFailed(plan.binary, e.strerror or str(e)) from e
    return 0


def report_error(error: LauncherError) -> None:
    """Print a fatal error as a single line on stderr."""
    err_console.print(f"[red]Error:[/red] {escape(str(error))}", soft_wrap=True, highlight=False)


def main(
    command_name: str,
    argv: Sequence[str] | None = None,
    *,
    default_url: str | None = None,
    self_path: str | None = None,
    overrides: Mapping[str, Any] | None = None,
    exec_fn: ExecFn | None = None,
) -> int:
    """Entry point of an installed wrapper.

    Args:
        command_name: Name of the wrapped command
        argv: Arguments forwarded to the real binary (defaults to sys.argv[1:])
        default_url: Remote config URL baked in at install time
        self_path: Path of the wrapper (defaults to sys.argv[0])
        overrides: Settings that take precedence over file and environment
        exec_fn: Replacement for ``os.execve`` (tests)

    Returns:
        Exit code; only returned when the exec did not replace the process
    """
    args = list(sys.argv[1:] if argv is None else argv)
    self_path = self_path or sys.argv[0]

    configure_logging(is_truthy(os.environ.get(f"{env_prefix(command_name)}_DEBUG")))

    try:
        settings = load_settings(command_name, os.environ, default_url)
        if overrides:
            settings = settings.model_copy(update=dict(overrides))
        if settings.debug:
            configure_logging(True)

        plan = prepare(settings, self_path, args, os.environ)
        if plan.refresh.status is CacheStatus.STALE_BUT_PRESENT:
            logger.debug("Continuing with stale config from %s", settings.cache_file)
        return launch(plan, exec_fn)
    except LauncherError as e:
        report_error(e)
        return e.exit_code
