"""Tests for configuration loading and validation."""

from __future__ import annotations

import os
from pathlib import Path

import pytest
import yaml
from pydantic import ValidationError

from swivel.config.settings import (
    LoggingConfig,
    RelayConfig,
    ServerConfig,
    Settings,
    default_shell,
    load_settings,
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Isolate each test from the caller's environment and .env file."""
    for key in list(os.environ):
        if key.startswith("SWIVEL_"):
            monkeypatch.delenv(key)
    monkeypatch.delenv("PORT", raising=False)
    monkeypatch.chdir(tmp_path)


def _write_yaml(path: Path, data: dict) -> Path:
    path.write_text(yaml.safe_dump(data))
    return path


class TestDefaults:
    def test_default_settings(self) -> None:
        settings = Settings()
        assert settings.server.host == "0.0.0.0"
        assert settings.server.port == 3001
        assert settings.server.ws_path == "/ws/terminal"
        assert settings.relay.term == "xterm-color"
        assert settings.relay.rows == 30
        assert settings.relay.cols == 80
        assert settings.relay.require_identity is False
        assert settings.logging.level == "INFO"

    def test_default_shell_follows_platform(self) -> None:
        expected = "powershell.exe" if os.name == "nt" else "bash"
        assert default_shell() == expected
        assert RelayConfig().resolved_command() == expected

    def test_explicit_shell_wins(self) -> None:
        assert RelayConfig(shell_command="zsh").resolved_command() == "zsh"

    def test_spawn_options_default_to_home(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("HOME", "/home/alice")
        options = RelayConfig().spawn_options()
        assert options.cwd == "/home/alice"
        assert (options.rows, options.cols) == (30, 80)
        assert options.term == "xterm-color"
        assert options.env is None

    def test_spawn_options_use_configured_values(self) -> None:
        config = RelayConfig(cwd="/srv", rows=24, cols=132, term="xterm-256color")
        options = config.spawn_options()
        assert options.cwd == "/srv"
        assert (options.rows, options.cols) == (24, 132)
        assert options.term == "xterm-256color"

    def test_invalid_values_rejected(self) -> None:
        with pytest.raises(ValidationError):
            ServerConfig(port=0)
        with pytest.raises(ValidationError):
            RelayConfig(rows=0)
        with pytest.raises(ValidationError):
            RelayConfig(kill_grace=-1)

    def test_logging_defaults(self) -> None:
        config = LoggingConfig()
        assert config.file is None
        assert "%(name)s" in config.format


class TestLoadSettings:
    def test_missing_file_uses_defaults(self, tmp_path: Path) -> None:
        settings = load_settings(tmp_path / "nonexistent.yaml")
        assert settings.server.port == 3001

    def test_empty_file_uses_defaults(self, tmp_path: Path) -> None:
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_settings(path).relay.rows == 30

    def test_yaml_values_loaded(self, tmp_path: Path) -> None:
        path = _write_yaml(tmp_path / "swivel.yaml", {
            "server": {"port": 8022, "ws_path": "/pty"},
            "relay": {"shell_command": "fish", "shell_args": ["-l"], "rows": 24},
            "logging": {"level": "DEBUG"},
        })
        settings = load_settings(path)
        assert settings.server.port == 8022
        assert settings.server.ws_path == "/pty"
        assert settings.relay.shell_command == "fish"
        assert settings.relay.shell_args == ["-l"]
        assert settings.relay.rows == 24
        assert settings.relay.cols == 80
        assert settings.logging.level == "DEBUG"

    def test_prefixed_env_beats_yaml(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        path = _write_yaml(tmp_path / "swivel.yaml", {"relay": {"rows": 24, "cols": 100}})
        monkeypatch.setenv("SWIVEL_RELAY__ROWS", "40")
        settings = load_settings(path)
        assert settings.relay.rows == 40
        assert settings.relay.cols == 100

    def test_port_env_override(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        path = _write_yaml(tmp_path / "swivel.yaml", {"server": {"port": 8022}})
        monkeypatch.setenv("PORT", "4000")
        assert load_settings(path).server.port == 4000

    def test_port_env_without_file(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("PORT", "4001")
        assert load_settings(tmp_path / "missing.yaml").server.port == 4001

    def test_dotenv_file_read(self, tmp_path: Path) -> None:
        (tmp_path / ".env").write_text("SWIVEL_RELAY__REQUIRE_IDENTITY=true\n")
        assert load_settings(tmp_path / "missing.yaml").relay.require_identity is True

    def test_sample_config_is_valid(self) -> None:
        sample = Path(__file__).resolve().parents[3] / "config" / "swivel.yaml"
        settings = load_settings(sample)
        assert settings.server.port == 3001
        assert settings.relay.compat_launcher == "wsl.exe"
