"""Tests for the command-line entry point."""

from __future__ import annotations

import logging
import os
from unittest.mock import patch

import pytest
from click.testing import CliRunner

import mcp_server_gitlab
from mcp_server_gitlab import main
from mcp_server_gitlab.servers.gitlab import mcp


@pytest.fixture
def captured(monkeypatch):
    """Replace the server run with a recorder of its kwargs and the environment it sees."""
    calls: dict = {}

    async def fake_run_async(**kwargs):
        calls["kwargs"] = kwargs
        calls["env"] = {k: v for k, v in os.environ.items() if k.startswith("GITLAB_")}

    monkeypatch.setattr(mcp, "run_async", fake_run_async)
    monkeypatch.setattr(mcp_server_gitlab, "load_dotenv", lambda: None)
    root = logging.getLogger()
    level = root.level
    yield calls
    root.setLevel(level)


def _invoke(args: list[str], env: dict[str, str] | None = None):
    with patch.dict(os.environ, env or {}, clear=True):
        return CliRunner().invoke(main, args, catch_exceptions=False)


def test_cli_exports_gitlab_settings(captured):
    result = _invoke(
        ["--gitlab-url", "https://g.example", "--gitlab-token", "glpat-cli", "--read-only"]
    )
    assert result.exit_code == 0
    assert captured["env"]["GITLAB_URL"] == "https://g.example"
    assert captured["env"]["GITLAB_TOKEN"] == "glpat-cli"
    assert captured["env"]["GITLAB_READ_ONLY"] == "true"


def test_cli_without_read_only_leaves_env_unset(captured):
    result = _invoke([], {"GITLAB_TOKEN": "from-env"})
    assert result.exit_code == 0
    assert captured["env"]["GITLAB_TOKEN"] == "from-env"
    assert "GITLAB_READ_ONLY" not in captured["env"]


def test_stdio_does_not_pass_host_or_port(captured):
    result = _invoke([])
    assert result.exit_code == 0
    assert captured["kwargs"] == {"transport": "stdio", "show_banner": False}


def test_http_transport_passes_host_and_port(captured):
    result = _invoke(["--transport", "streamable-http", "--host", "0.0.0.0", "--port", "9000"])
    assert result.exit_code == 0
    assert captured["kwargs"] == {
        "transport": "streamable-http",
        "host": "0.0.0.0",
        "port": 9000,
        "show_banner": False,
    }


def test_log_level_option(captured):
    result = _invoke(["--log-level", "DEBUG"])
    assert result.exit_code == 0
    assert logging.getLogger().level == logging.DEBUG


def test_log_level_from_env(captured):
    result = _invoke([], {"GITLAB_LOG_LEVEL": "info"})
    assert result.exit_code == 0
    assert logging.getLogger().level == logging.INFO


def test_default_log_level_is_warning(captured):
    result = _invoke([])
    assert result.exit_code == 0
    assert logging.getLogger().level == logging.WARNING
