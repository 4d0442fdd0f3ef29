"""Unit tests for configuration loading."""

import pytest

from workspace_git.config import CONFIG_PATH_ENV, GitApiConfig, load_config
from workspace_git.errors import ConfigError

_ENV_VARS = (
    CONFIG_PATH_ENV,
    "WORKSPACE_GIT_BIND",
    "WORKSPACE_GIT_PORT",
    "WORKSPACE_GIT_DB_PATH",
    "WORKSPACE_GIT_WORKSPACES_ROOT",
    "WORKSPACE_GIT_EXECUTOR",
    "WORKSPACE_GIT_SESSION_SECRET",
    "WORKSPACE_GIT_SESSION_MAX_AGE",
    "WORKSPACE_GIT_ALLOWED_ORIGINS",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def _write(tmp_path, text):
    path = tmp_path / "config.yaml"
    path.write_text(text)
    return str(path)


class TestGitApiConfig:
    """Dataclass validation."""

    def test_defaults(self):
        config = GitApiConfig()
        assert config.port == 8090
        assert config.executor == "local"
        assert config.allowed_origins == []

    @pytest.mark.parametrize("kwargs", [
        {"executor": "ssh"},
        {"port": 0},
        {"port": 70000},
        {"port": "8090"},
        {"port": True},
        {"command_timeout": 0},
        {"network_timeout": -1},
        {"session_max_age": 0},
        {"rate_burst": 0},
        {"max_request_body": 0},
        {"allowed_origins": "https://a.example.com"},
    ])
    def test_invalid(self, kwargs):
        with pytest.raises(ConfigError):
            GitApiConfig(**kwargs)


class TestLoadConfig:
    """Tests for load_config."""

    def test_env_only(self, monkeypatch):
        monkeypatch.setenv("WORKSPACE_GIT_SESSION_SECRET", "abc")
        config = load_config()
        assert config.session_secret == "abc"
        assert config.bind == "127.0.0.1"

    def test_missing_secret(self):
        with pytest.raises(ConfigError, match="session_secret"):
            load_config()

    def test_yaml_file(self, tmp_path):
        path = _write(tmp_path, (
            "session_secret: from-file\n"
            "port: 9000\n"
            "executor: docker\n"
            "allowed_origins:\n"
            "  - https://app.example.com\n"
            "network_timeout: 90\n"
        ))
        config = load_config(path)
        assert config.port == 9000
        assert config.executor == "docker"
        assert config.allowed_origins == ["https://app.example.com"]
        assert config.network_timeout == 90

    def test_path_from_env(self, tmp_path, monkeypatch):
        monkeypatch.setenv(CONFIG_PATH_ENV, _write(tmp_path, "session_secret: x\n"))
        assert load_config().session_secret == "x"

    def test_env_overrides_yaml(self, tmp_path, monkeypatch):
        path = _write(tmp_path, "session_secret: file\nport: 9000\n")
        monkeypatch.setenv("WORKSPACE_GIT_PORT", "9100")
        monkeypatch.setenv("WORKSPACE_GIT_SESSION_SECRET", "env")
        monkeypatch.setenv("WORKSPACE_GIT_ALLOWED_ORIGINS",
                           "https://a.example.com, https://b.example.com")
        config = load_config(path)
        assert config.port == 9100
        assert config.session_secret == "env"
        assert config.allowed_origins == ["https://a.example.com",
                                          "https://b.example.com"]

    def test_bad_int_env(self, monkeypatch):
        monkeypatch.setenv("WORKSPACE_GIT_SESSION_SECRET", "x")
        monkeypatch.setenv("WORKSPACE_GIT_PORT", "eighty")
        with pytest.raises(ConfigError, match="port"):
            load_config()

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError, match="not found"):
            load_config(str(tmp_path / "missing.yaml"))

    def test_invalid_yaml(self, tmp_path):
        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_config(_write(tmp_path, "port: [unclosed\n"))

    def test_not_a_mapping(self, tmp_path):
        with pytest.raises(ConfigError, match="mapping"):
            load_config(_write(tmp_path, "- a\n- b\n"))

    def test_empty_file(self, tmp_path, monkeypatch):
        monkeypatch.setenv("WORKSPACE_GIT_SESSION_SECRET", "x")
        assert load_config(_write(tmp_path, "")).port == 8090

    def test_unknown_key(self, tmp_path):
        with pytest.raises(ConfigError, match="Unknown configuration keys: colour"):
            load_config(_write(tmp_path, "session_secret: x\ncolour: blue\n"))

    def test_wrong_type_in_yaml(self, tmp_path):
        with pytest.raises(ConfigError):
            load_config(_write(tmp_path, "session_secret: x\nport: '9000'\n"))
