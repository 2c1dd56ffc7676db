"""Tests for the management CLI."""

import os

import pytest
from typer.testing import CliRunner

from conftest import age_file, make_executable
from env_launcher.cli import app
from env_launcher.errors import FetchFailed
from env_launcher.types import EXIT_BINARY_NOT_FOUND, EXIT_CONFIG_UNAVAILABLE

URL = "https://config.example.com/env.sh"


@pytest.fixture
def runner():
    """Create a CLI runner for testing."""
    return CliRunner()


@pytest.fixture
def tool(launcher_env, monkeypatch):
    """A wrapper and a real ``tool`` on PATH, with the remote URL configured."""
    tmp_path = launcher_env
    wrapper = make_executable(tmp_path / "home" / ".local" / "bin" / "tool")
    real = make_executable(tmp_path / "usr" / "bin" / "tool")
    monkeypatch.setenv("PATH", os.pathsep.join([str(wrapper.parent), str(real.parent)]))
    monkeypatch.setenv("TOOL_ENV_URL", URL)
    return {
        "wrapper": wrapper,
        "real": real,
        "cache_file": tmp_path / "cache" / "tool" / "env-remote.sh",
        "local_file": tmp_path / "config" / "tool" / "local.env",
    }


@pytest.fixture
def fetched(monkeypatch):
    """Replace the network fetch, recording requested URLs."""
    calls = []

    def fake_fetch(url, **kwargs):
        calls.append(url)
        return b"export A_KEY=secret-value\n"

    monkeypatch.setattr("env_launcher.cache.fetch_remote", fake_fetch)
    return calls


@pytest.fixture
def offline(monkeypatch):
    def failing_fetch(url, **kwargs):
        raise FetchFailed(url, "ConnectError: Connection refused")

    monkeypatch.setattr("env_launcher.cache.fetch_remote", failing_fetch)


def test_resolve_skips_wrapper(runner, tool):
    result = runner.invoke(app, ["resolve", "tool", "--self-path", str(tool["wrapper"])])

    assert result.exit_code == 0
    assert str(tool["real"]) in result.output


def test_resolve_default_wrapper_location(runner, tool):
    """Without --self-path the default install location is skipped."""
    result = runner.invoke(app, ["resolve", "tool"])

    assert result.exit_code == 0
    assert str(tool["real"]) in result.output


def test_resolve_all(runner, tool):
    result = runner.invoke(app, ["resolve", "tool", "--all"])

    assert result.exit_code == 0
    assert str(tool["wrapper"]) in result.output
    assert str(tool["real"]) in result.output


def test_resolve_not_found(runner, tool, monkeypatch):
    monkeypatch.setenv("PATH", str(tool["wrapper"].parent))

    result = runner.invoke(app, ["resolve", "tool", "--self-path", str(tool["wrapper"])])

    assert result.exit_code == EXIT_BINARY_NOT_FOUND
    assert "Error:" in result.output


def test_refresh_fetches_missing_cache(runner, tool, fetched):
    result = runner.invoke(app, ["refresh", "tool"])

    assert result.exit_code == 0
    assert fetched == [URL]
    assert tool["cache_file"].read_bytes() == b"export A_KEY=secret-value\n"
    assert "Fetched" in result.output


def test_refresh_fresh_cache_skips_fetch(runner, tool, fetched):
    tool["cache_file"].parent.mkdir(parents=True)
    tool["cache_file"].write_text("export OLD=1\n")

    result = runner.invoke(app, ["refresh", "tool"])

    assert result.exit_code == 0
    assert fetched == []
    assert "fresh" in result.output


def test_refresh_force(runner, tool, fetched):
    tool["cache_file"].parent.mkdir(parents=True)
    tool["cache_file"].write_text("export OLD=1\n")

    result = runner.invoke(app, ["refresh", "tool", "--force"])

    assert result.exit_code == 0
    assert fetched == [URL]


def test_refresh_offline_without_cache(runner, tool, offline):
    result = runner.invoke(app, ["refresh", "tool"])

    assert result.exit_code == EXIT_CONFIG_UNAVAILABLE
    assert URL in result.output


def test_refresh_offline_with_stale_cache(runner, tool, offline):
    tool["cache_file"].parent.mkdir(parents=True)
    tool["cache_file"].write_text("export OLD=1\n")
    age_file(tool["cache_file"], 3600)

    result = runner.invoke(app, ["refresh", "tool"])

    assert result.exit_code == 1
    assert "keeping cached config" in result.output
    assert tool["cache_file"].read_text() == "export OLD=1\n"


def test_status_masks_values(runner, tool):
    tool["cache_file"].parent.mkdir(parents=True)
    tool["cache_file"].write_text("export A_KEY=secret-value\n")

    result = runner.invoke(app, ["status", "tool"])

    assert result.exit_code == 0
    assert "A_KEY" in result.output
    assert "secret-value" not in result.output
    assert "<masked>" in result.output
    assert "fresh" in result.output


def test_status_missing_cache(runner, tool):
    result = runner.invoke(app, ["status", "tool"])

    assert result.exit_code == 0
    assert "missing" in result.output


def test_configure_with_options(runner, tool):
    result = runner.invoke(
        app,
        ["configure", "tool", "--base-url", "https://llm.example.com", "--item", "op://Vault/llm"],
    )

    assert result.exit_code == 0
    content = tool["local_file"].read_text()
    assert 'LITELLM_BASE_URL="https://llm.example.com"' in content
    assert 'OP_ITEM="op://Vault/llm"' in content


def test_configure_reprompts_invalid_item(runner, tool):
    result = runner.invoke(
        app,
        ["configure", "tool", "--base-url", "https://llm.example.com", "--item", "Vault/llm"],
        input="op://Vault/llm\n",
    )

    assert result.exit_code == 0
    assert "Must start with op://" in result.output
    assert 'OP_ITEM="op://Vault/llm"' in tool["local_file"].read_text()


def test_configure_prompts_with_defaults(runner, tool):
    result = runner.invoke(app, ["configure", "tool"], input="\n\n")

    assert result.exit_code == 0
    content = tool["local_file"].read_text()
    assert 'LITELLM_BASE_URL="https://litellm.ai.apro.is"' in content
    assert 'OP_ITEM="op://Employee/ai.apro.is litellm"' in content


def test_install(runner, tool, fetched, tmp_path):
    bin_dir = tmp_path / "bin"

    result = runner.invoke(
        app,
        [
            "install",
            "tool",
            "--bin-dir",
            str(bin_dir),
            "--base-url",
            "https://llm.example.com",
            "--item",
            "op://Vault/llm",
        ],
    )

    assert result.exit_code == 0, result.output
    assert "env_launcher" in (bin_dir / "tool").read_text()
    assert tool["cache_file"].exists()
    assert tool["local_file"].exists()
    assert "not on PATH" in result.output


def test_install_offline_still_succeeds(runner, tool, offline, tmp_path):
    result = runner.invoke(
        app,
        ["install", "tool", "--bin-dir", str(tmp_path / "bin"), "--base-url", "u", "--item", "op://a/b"],
    )

    assert result.exit_code == 0, result.output
    assert "retries on the next run" in result.output
    assert not tool["cache_file"].exists()


def test_install_requires_real_binary(runner, tool, tmp_path, monkeypatch):
    monkeypatch.setenv("PATH", str(tmp_path / "empty"))

    result = runner.invoke(app, ["install", "tool", "--bin-dir", str(tmp_path / "bin")])

    assert result.exit_code != 0
    assert "must be installed" in result.output


def test_exec_runs_real_binary(runner, tool, fetched, monkeypatch):
    calls = []
    monkeypatch.setattr(os, "execve", lambda binary, argv, env: calls.append((binary, argv, env)))

    result = runner.invoke(
        app,
        ["exec", "tool", "--self-path", str(tool["wrapper"]), "--", "--version", "extra"],
    )

    assert result.exit_code == 0, result.output
    binary, argv, env = calls[0]
    assert binary == str(tool["real"])
    assert argv == [str(tool["real"]), "--version", "extra"]
    assert env["A_KEY"] == "secret-value"


def test_exec_skips_installed_wrapper_by_default(runner, tool, fetched, monkeypatch):
    """Without --self-path the wrapper in the default bin dir is skipped."""
    calls = []
    monkeypatch.setattr(os, "execve", lambda binary, argv, env: calls.append((binary, argv, env)))

    result = runner.invoke(app, ["exec", "tool", "--", "--version"])

    assert result.exit_code == 0, result.output
    assert calls[0][0] == str(tool["real"])


def test_status_shows_value_of_winning_layer(runner, tool, monkeypatch):
    tool["cache_file"].parent.mkdir(parents=True)
    tool["cache_file"].write_text('export LITELLM_BASE_URL="https://remote.example.com"\n')
    tool["local_file"].parent.mkdir(parents=True)
    tool["local_file"].write_text('LITELLM_BASE_URL="https://local.example.com"\n')
    monkeypatch.setattr("env_launcher.cli.mask_value", lambda value: value)

    result = runner.invoke(app, ["status", "tool"])

    assert result.exit_code == 0, result.output
    assert "https://local.example.com" in result.output
    assert "https://remote.example.com" not in result.output.split("Injected variables")[1]
