"""Command-line interface for managing launch wrappers."""

from __future__ import annotations

import os
import sys
from pathlib import Path  # noqa: TC003

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .cache import cache_age, ensure_fresh
from .envfile import load_env_script, merge_layers
from .errors import ConfigError, LauncherError
from .installer import default_bin_dir, install_shim, path_contains
from .launcher import configure_logging, main as launch_main
from .local_config import read_local_config, validate_item_reference, write_local_config
from .resolver import canonical_path, resolve, which_all
from .settings import (
    DEFAULT_LOCAL_KEYS,
    LOCAL_FILE_NAME,
    LauncherSettings,
    config_dir_for,
    env_prefix,
    load_settings,
)
from .types import CacheStatus, mask_value

app = typer.Typer(help="Transparent launch wrapper with centrally managed environment")
console = Console()

DEFAULT_BASE_URL = "https://litellm.ai.apro.is"
DEFAULT_ITEM = "op://Employee/ai.apro.is litellm"


def _fail(error: LauncherError) -> None:
    console.print(f"[red]Error: {escape(str(error))}[/red]", soft_wrap=True)
    sys.exit(error.exit_code)


def _settings(command: str, url: str | None = None, verbose: bool = False) -> LauncherSettings:
    configure_logging(verbose)
    settings = load_settings(command, os.environ, url)
    if verbose:
        settings = settings.model_copy(update={"debug": True})
    return settings


@app.command(
    "exec",
    context_settings={"allow_extra_args": True, "ignore_unknown_options": True},
)
def exec_command(
    command: str = typer.Argument(..., help="Name of the wrapped command"),
    args: list[str] | None = typer.Argument(None, help="Arguments forwarded to the command"),
    url: str | None = typer.Option(None, "--url", help="Remote config URL"),
    ttl: float | None = typer.Option(None, "--ttl", min=0, help="Cache TTL in seconds"),
    self_path: str | None = typer.Option(None, "--self-path", help="Path of the wrapper to skip on PATH"),
) -> None:
    """Run COMMAND with the managed environment injected."""
    overrides = {"ttl_s": ttl} if ttl is not None else None
    code = launch_main(
        command,
        args or [],
        default_url=url,
        self_path=self_path or str(default_bin_dir() / command),
        overrides=overrides,
    )
    sys.exit(code)


@app.command("resolve")
def resolve_command(
    command: str = typer.Argument(..., help="Name of the wrapped command"),
    self_path: str | None = typer.Option(None, "--self-path", help="Path of the wrapper to skip on PATH"),
    show_all: bool = typer.Option(False, "--all", "-a", help="List every candidate on PATH"),
) -> None:
    """Print the real binary COMMAND resolves to."""
    try:
        if show_all:
            for candidate in which_all(command):
                console.print(candidate, highlight=False, soft_wrap=True)
            return
        wrapper = self_path or str(default_bin_dir() / command)
        console.print(resolve(command, wrapper), highlight=False, soft_wrap=True)
    except LauncherError as e:
        _fail(e)


@app.command("refresh")
def refresh_command(
    command: str = typer.Argument(..., help="Name of the wrapped command"),
    url: str | None = typer.Option(None, "--url", help="Remote config URL"),
    force: bool = typer.Option(False, "--force", "-f", help="Fetch even if the cache is fresh"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose output"),
) -> None:
    """Refresh the cached remote config for COMMAND."""
    try:
        settings = _settings(command, url, verbose)
        result = ensure_fresh(
            settings.cache_file,
            settings.remote_url,
            0 if force else settings.ttl_s,
            connect_timeout=settings.connect_timeout_s,
            total_timeout=settings.total_timeout_s,
            max_redirects=settings.max_redirects,
        )
        if result.status is CacheStatus.FATAL:
            raise result.error
    except LauncherError as e:
        _fail(e)

    if result.status is CacheStatus.STALE_BUT_PRESENT:
        console.print(
            f"[yellow]Warning: {escape(str(result.error))}; keeping cached config[/yellow]",
            soft_wrap=True,
        )
        sys.exit(1)
    elif result.fetched:
        console.print(f"[green]✓ Fetched {escape(settings.remote_url)}[/green]", soft_wrap=True)
    else:
        console.print(f"[green]✓ Cache is fresh ({result.age_s:.0f}s old)[/green]")


@app.command("status")
def status_command(
    command: str = typer.Argument(..., help="Name of the wrapped command"),
    url: str | None = typer.Option(None, "--url", help="Remote config URL"),
    self_path: str | None = typer.Option(None, "--self-path", help="Path of the wrapper to skip on PATH"),
) -> None:
    """Show resolution, cache and override state for COMMAND."""
    try:
        settings = _settings(command, url)
    except LauncherError as e:
        _fail(e)

    wrapper = self_path or str(default_bin_dir() / command)
    try:
        binary = resolve(command, wrapper)
    except LauncherError as e:
        binary = f"[red]{escape(str(e))}[/red]"

    age = cache_age(settings.cache_file)
    if age is None:
        cache_state = "[red]missing[/red]"
    elif age < settings.ttl_s:
        cache_state = f"[green]fresh[/green] ({age:.0f}s old, ttl {settings.ttl_s:g}s)"
    else:
        cache_state = f"[yellow]stale[/yellow] ({age:.0f}s old, ttl {settings.ttl_s:g}s)"

    overview = Table(title=f"{command} launch wrapper", show_header=False)
    overview.add_column("Setting", style="cyan")
    overview.add_column("Value")
    overview.add_row("Real binary", binary)
    overview.add_row("Remote URL", escape(settings.remote_url))
    overview.add_row("Cache file", escape(str(settings.cache_file)))
    overview.add_row("Cache", cache_state)
    overview.add_row("Local overrides", escape(str(settings.local_file)))
    overview.add_row("Settings file", escape(str(settings.settings_file)))
    overview.add_row("Loader", settings.loader)
    console.print(overview)

    local = read_local_config(settings.local_file, settings.local_keys)
    try:
        remote = load_env_script(
            settings.cache_file,
            loader=settings.loader,
            base_env=merge_layers(local, os.environ),
        )
    except LauncherError as e:
        _fail(e)

    injected = Table(title="Injected variables")
    injected.add_column("Name", style="cyan")
    injected.add_column("Source", style="magenta")
    injected.add_column("Value", style="yellow")
    for key in sorted(set(remote) | set(local)):
        if key in os.environ:
            source, value = "environment", os.environ[key]
        elif key in local:
            source, value = "local", local[key]
        else:
            source, value = "remote", remote[key]
        injected.add_row(key, source, mask_value(value))
    console.print(injected)


@app.command("configure")
def configure_command(
    command: str = typer.Argument(..., help="Name of the wrapped command"),
    base_url: str | None = typer.Option(None, "--base-url", help="LiteLLM base URL"),
    item: str | None = typer.Option(None, "--item", help="1Password item reference (op://...)"),
) -> None:
    """Write the local overrides for COMMAND."""
    path = config_dir_for(command, os.environ) / LOCAL_FILE_NAME
    _write_local(path, base_url, item)


def _write_local(path: Path, base_url: str | None, item: str | None) -> None:
    existing = read_local_config(path, DEFAULT_LOCAL_KEYS)

    while not base_url:
        base_url = typer.prompt(
            "LiteLLM base URL", default=existing.get("LITELLM_BASE_URL", DEFAULT_BASE_URL)
        ).strip()

    checked_item = None
    while checked_item is None:
        if item is None:
            item = typer.prompt(
                "1Password item (op://...)", default=existing.get("OP_ITEM", DEFAULT_ITEM)
            )
        try:
            checked_item = validate_item_reference(item)
        except ValueError as e:
            console.print(f"[yellow]Warning: {e}, try again[/yellow]", soft_wrap=True)
            item = None

    try:
        write_local_config(path, {"LITELLM_BASE_URL": base_url, "OP_ITEM": checked_item})
    except LauncherError as e:
        _fail(e)
    console.print(f"[green]✓ Wrote {escape(str(path))}[/green]", soft_wrap=True)


@app.command("install")
def install_command(
    command: str = typer.Argument(..., help="Name of the wrapped command"),
    url: str | None = typer.Option(None, "--url", help="Remote config URL baked into the wrapper"),
    bin_dir: Path | None = typer.Option(None, "--bin-dir", help="Directory the wrapper is written to"),
    force: bool = typer.Option(False, "--force", help="Overwrite an existing wrapper without a backup"),
    base_url: str | None = typer.Option(None, "--base-url", help="LiteLLM base URL"),
    item: str | None = typer.Option(None, "--item", help="1Password item reference (op://...)"),
) -> None:
    """Install a wrapper for COMMAND and fetch its config."""
    prefix = env_prefix(command)
    force = force or os.environ.get(f"{prefix}_FORCE") == "1"
    bin_dir = bin_dir or default_bin_dir()

    try:
        settings = _settings(command, url)
    except LauncherError as e:
        _fail(e)

    wrapper = canonical_path(str(bin_dir / command))
    if not [c for c in which_all(command) if canonical_path(c) != wrapper]:
        _fail(ConfigError(f"'{command}' must be installed before its wrapper"))

    try:
        path = install_shim(bin_dir, command, settings.remote_url, force=force)
    except LauncherError as e:
        _fail(e)
    console.print(f"[green]✓ Wrote {escape(str(path))}[/green]", soft_wrap=True)

    if path_contains(bin_dir):
        console.print(f"[green]✓ {escape(str(bin_dir))} is already on PATH[/green]", soft_wrap=True)
    else:
        console.print(
            f"[yellow]Warning: {escape(str(bin_dir))} is not on PATH; add this to your shell profile:[/yellow]",
            soft_wrap=True,
        )
        console.print(f'  export PATH="{escape(str(bin_dir))}:$PATH"', highlight=False, soft_wrap=True)

    console.print("[blue]Fetching remote configuration...[/blue]")
    try:
        result = ensure_fresh(
            settings.cache_file,
            settings.remote_url,
            0,
            connect_timeout=settings.connect_timeout_s,
            total_timeout=settings.total_timeout_s,
            max_redirects=settings.max_redirects,
        )
    except LauncherError as e:
        _fail(e)
    if result.fetched:
        console.print("[green]✓ Remote configuration cached[/green]")
    else:
        console.print(
            f"[yellow]Warning: {escape(str(result.error))}; "
            f"the wrapper retries on the next run[/yellow]",
            soft_wrap=True,
        )

    _write_local(settings.local_file, base_url, item)
    console.print("[green]✓ Installation complete[/green]")


if __name__ == "__main__":
    app()
