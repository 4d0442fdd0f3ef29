"""Unit tests for the click CLI."""

import json
from unittest import mock

import pytest
from click.testing import CliRunner

from workspace_git.auth import SessionAuthenticator
from workspace_git.cli import cli


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("WORKSPACE_GIT_CONFIG", "WORKSPACE_GIT_SESSION_SECRET",
                 "WORKSPACE_GIT_DB_PATH", "WORKSPACE_GIT_PORT"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(
        f"session_secret: cli-secret\n"
        f"db_path: {tmp_path / 'ws.db'}\n"
        f"workspaces_root: {tmp_path / 'workspaces'}\n"
    )
    return str(path)


@pytest.fixture
def runner():
    return CliRunner()


def _invoke(runner, config_file, *args):
    return runner.invoke(cli, ["--config", config_file, *args], obj={})


class TestWorkspaceCommands:
    """workspace create/list/delete."""

    def test_create_and_list(self, runner, config_file):
        result = _invoke(runner, config_file, "workspace", "create", "alice",
                         "--id", "w1", "--name", "Demo")
        assert result.exit_code == 0, result.output
        created = json.loads(result.output)
        assert created["id"] == "w1"
        assert created["location"] == "w1"
        assert created["user_id"] == "alice"

        result = _invoke(runner, config_file, "workspace", "list", "alice")
        assert result.exit_code == 0
        assert [json.loads(line)["id"] for line in result.output.splitlines()] == ["w1"]

    def test_create_duplicate(self, runner, config_file):
        _invoke(runner, config_file, "workspace", "create", "alice", "--id", "w1")
        result = _invoke(runner, config_file, "workspace", "create", "bob", "--id", "w1")
        assert result.exit_code == 1

    def test_delete(self, runner, config_file):
        _invoke(runner, config_file, "workspace", "create", "alice", "--id", "w1")
        assert _invoke(runner, config_file, "workspace", "delete", "bob", "w1").exit_code == 1
        result = _invoke(runner, config_file, "workspace", "delete", "alice", "w1")
        assert result.exit_code == 0
        assert "Deleted w1" in result.output


class TestTokenCommand:
    """token issue."""

    def test_issue(self, runner, config_file):
        result = _invoke(runner, config_file, "token", "issue", "alice")
        assert result.exit_code == 0
        token = result.output.strip()
        assert SessionAuthenticator("cli-secret").verify(token) == "alice"

    def test_issue_bad_user(self, runner, config_file):
        result = _invoke(runner, config_file, "token", "issue", "a.b")
        assert result.exit_code == 1


class TestConfigErrors:
    """Configuration failures exit with status 2."""

    def test_missing_secret(self, runner, tmp_path):
        path = tmp_path / "c.yaml"
        path.write_text(f"db_path: {tmp_path / 'ws.db'}\n")
        result = runner.invoke(cli, ["--config", str(path), "token", "issue", "a"],
                               obj={})
        assert result.exit_code == 2


class TestServe:
    """serve wires config into the server."""

    def test_serve_overrides(self, runner, config_file):
        with mock.patch("workspace_git.api.run_server") as run_server, \
                mock.patch("workspace_git.logging_config.setup_logging"):
            result = _invoke(runner, config_file, "serve", "--port", "9999")
        assert result.exit_code == 0, result.output
        _, host, port = run_server.call_args[0]
        assert (host, port) == ("127.0.0.1", 9999)
