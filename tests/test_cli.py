"""Tests for the codexlink command line."""
from __future__ import annotations

import json
from unittest.mock import patch

import pytest

from codexlink.engine import cli
from codexlink.engine.models import (
    AuthMethod,
    AuthStatus,
    ErrorMessage,
    FullStatus,
    InstallationInfo,
    InstallationStatus,
    InstallMethod,
    InstallState,
    ResultMessage,
)


@pytest.fixture
def no_settings(tmp_path):
    return ["--settings", str(tmp_path / "missing.yaml")]


def _status() -> FullStatus:
    installation = InstallationStatus(
        installed=True, path="/usr/bin/codex", version="0.5.0", method=InstallMethod.PATH_LOOKUP,
    )
    return FullStatus(
        status=InstallationInfo(
            status=InstallState.INSTALLED,
            method="path-lookup",
            recommendation="ready",
            version="0.5.0",
            path="/usr/bin/codex",
        ),
        auth=AuthStatus(authenticated=True, method=AuthMethod.CLI_VERIFIED, has_auth_file=True),
        installation=installation,
    )


def test_models(no_settings, capsys) -> None:
    assert cli.main(no_settings + ["models"]) == 0
    assert "gpt-5.1-codex-mini" in capsys.readouterr().out


def test_status_json(no_settings, capsys) -> None:
    with patch.object(cli.CodexCliDetector, "get_full_status", return_value=_status()):
        assert cli.main(no_settings + ["status", "--json"]) == 0

    data = json.loads(capsys.readouterr().out)
    assert data["status"] == "installed"
    assert data["auth_method"] == "cli_verified"
    assert data["path"] == "/usr/bin/codex"


def test_query_error_sets_exit_code(no_settings, capsys) -> None:
    async def fake_query(self, request):
        yield ErrorMessage(error="Codex CLI is not authenticated")

    with patch.object(cli.CodexProvider, "execute_query", fake_query):
        assert cli.main(no_settings + ["query", "hello"]) == 1

    assert "not authenticated" in capsys.readouterr().out


def test_query_success(no_settings) -> None:
    async def fake_query(self, request):
        assert request.prompt == "hello"
        assert request.model == "gpt-5.1"
        yield ResultMessage()

    with patch.object(cli.CodexProvider, "execute_query", fake_query):
        assert cli.main(no_settings + ["query", "hello", "--model", "gpt-5.1"]) == 0


def test_mcp_add_and_remove(no_settings, tmp_path, monkeypatch, capsys) -> None:
    monkeypatch.setenv("CODEX_HOME", str(tmp_path / "codex-home"))
    project = tmp_path / "project"
    project.mkdir()

    assert cli.main(no_settings + [
        "mcp", "add", str(tmp_path / "server.js"), "--project", str(project),
    ]) == 0
    config_text = (tmp_path / "codex-home" / "config.toml").read_text()
    assert "[mcp_servers.codexlink-tools]" in config_text

    assert cli.main(no_settings + ["mcp", "remove", "--project", str(project)]) == 0
    assert "codexlink-tools" not in (tmp_path / "codex-home" / "config.toml").read_text()
