"""Configuration management for swivel.

Loads settings from a YAML configuration file with environment variable
overrides. Supports .env files.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource

from swivel.domain.models import SpawnOptions

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("config/swivel.yaml")


def default_shell() -> str:
    """Platform default interactive shell."""
    return "powershell.exe" if os.name == "nt" else "bash"


def default_cwd() -> str:
    return os.environ.get("HOME") or os.getcwd()


class ServerConfig(BaseModel):
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=3001, ge=1, le=65535)
    ws_path: str = Field(default="/ws/terminal")
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])


class RelayConfig(BaseModel):
    shell_command: str | None = Field(
        default=None, description="Shell to spawn; None picks the platform default"
    )
    shell_args: list[str] = Field(default_factory=list)
    cwd: str | None = Field(default=None, description="Working directory; None uses $HOME")
    term: str = Field(default="xterm-color")
    rows: int = Field(default=30, gt=0)
    cols: int = Field(default=80, gt=0)
    compat_launcher: str = Field(default="wsl.exe")
    compat_shell: str = Field(default="bash")
    kill_grace: float = Field(default=2.0, gt=0)
    disable_native_pty: bool = Field(default=False)
    require_identity: bool = Field(default=False)

    def resolved_command(self) -> str:
        return self.shell_command or default_shell()

    def spawn_options(self) -> SpawnOptions:
        return SpawnOptions(
            cwd=self.cwd or default_cwd(),
            rows=self.rows,
            cols=self.cols,
            term=self.term,
        )


class LoggingConfig(BaseModel):
    level: str = Field(default="INFO")
    format: str = Field(
        default="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    file: str | None = Field(default=None)


class Settings(BaseSettings):
    """Root configuration for the swivel relay.

    Loads from YAML file and supports environment variable overrides.
    Reads .env files automatically.
    """

    model_config = {
        "env_prefix": "SWIVEL_",
        "env_nested_delimiter": "__",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    server: ServerConfig = Field(default_factory=ServerConfig)
    relay: RelayConfig = Field(default_factory=RelayConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # YAML values arrive as init kwargs; environment must beat them.
        return env_settings, dotenv_settings, init_settings, file_secret_settings


def load_settings(config_path: Path | str | None = None) -> Settings:
    """Load settings from YAML + .env + environment variables.

    Priority: env vars > .env file > YAML file > defaults
    """
    path = Path(config_path) if config_path else DEFAULT_CONFIG_PATH

    yaml_data: dict = {}
    if path.exists():
        with open(path) as f:
            yaml_data = yaml.safe_load(f) or {}
        logger.info("Loaded configuration from %s", path)
    else:
        logger.warning("Config file %s not found, using defaults + env vars", path)

    _apply_env_overrides(yaml_data)

    return Settings(**yaml_data)


def _apply_env_overrides(yaml_data: dict) -> None:
    """Apply overrides from non-prefixed environment variables."""
    port = os.environ.get("PORT", "")
    if port:
        yaml_data.setdefault("server", {})["port"] = int(port)
