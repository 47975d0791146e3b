"""Configuration management for swivel.

Loads and validates YAML-based configuration with Pydantic models.
Supports environment variable overrides (``SWIVEL_`` prefix).
"""

from swivel.config.settings import (
    LoggingConfig,
    RelayConfig,
    ServerConfig,
    Settings,
    load_settings,
)

__all__ = ["LoggingConfig", "RelayConfig", "ServerConfig", "Settings", "load_settings"]
