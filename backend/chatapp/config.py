"""chatapp application configuration.

Loads settings from a single YAML file:
  * chatapp.settings.yaml: server, database, realtime and logging settings

The file location can be overridden with the CHATAPP_SETTINGS environment
variable. A missing file is not an error; every field has a default.
"""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

SETTINGS_FILE = Path("chatapp.settings.yaml")
SETTINGS_ENV_VAR = "CHATAPP_SETTINGS"

IN_MEMORY_DB = ":memory:"


def _load_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        logger.warning("Config file not found: %s", path)
        return {}
    with path.open(encoding="utf-8") as fh:
        return yaml.safe_load(fh) or {}


# ---------------------------------------------------------------------------
# Settings models
# ---------------------------------------------------------------------------


class ServerSettings(BaseModel):
    host: str = "0.0.0.0"
    port: int = 4001


class DatabaseSettings(BaseModel):
    """DuckDB location. ``:memory:`` keeps everything in-process."""
    path: str = "chatapp.duckdb"


class RealtimeSettings(BaseModel):
    """Tuning for the WebSocket layer.

    Attributes:
        typing_ttl_seconds: How long a typing indicator stays up without a
            fresh ``typing`` event before the server clears it.
        send_timeout_seconds: Upper bound for a single push to one connection.
    """
    typing_ttl_seconds:   float = 5.0
    send_timeout_seconds: float = 5.0

    @field_validator("typing_ttl_seconds", "send_timeout_seconds")
    @classmethod
    def _positive(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("must be greater than zero")
        return value


class LoggingSettings(BaseModel):
    level: str = "info"


class AppConfig(BaseModel):
    server:   ServerSettings   = Field(default_factory=ServerSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    realtime: RealtimeSettings = Field(default_factory=RealtimeSettings)
    logging:  LoggingSettings  = Field(default_factory=LoggingSettings)


# ---------------------------------------------------------------------------
# Public loader
# ---------------------------------------------------------------------------


def _resolve_db_path(raw: str, settings_dir: Path) -> str:
    if raw == IN_MEMORY_DB:
        return raw
    path = Path(raw)
    if path.is_absolute():
        return str(path)
    return str(settings_dir / path)


def load_config(settings_path: Optional[Path] = None) -> AppConfig:
    """Load settings from YAML into an *AppConfig*.

    Relative database paths resolve against the directory holding the
    settings file.
    """
    if settings_path is None:
        settings_path = Path(os.environ.get(SETTINGS_ENV_VAR, SETTINGS_FILE))
    settings_path = Path(settings_path)

    data = _load_yaml(settings_path)
    config = AppConfig(**data)
    config.database.path = _resolve_db_path(
        config.database.path, settings_path.resolve().parent
    )

    logger.info(
        "Settings loaded (server=%s:%s, database=%s, typing_ttl=%ss)",
        config.server.host,
        config.server.port,
        config.database.path,
        config.realtime.typing_ttl_seconds,
    )
    return config


_config: Optional[AppConfig] = None


def get_config() -> AppConfig:
    """Get the process-wide config, loading it on first use."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def set_config(config: AppConfig) -> None:
    """Replace the process-wide config."""
    global _config
    _config = config


def reset_config() -> None:
    """Forget the cached config so the next get_config() reloads it."""
    global _config
    _config = None
