"""Service desk application configuration.

Loads settings from two YAML files:
  * servicedesk.settings.yaml: non-secret configuration
  * servicedesk.secrets.yaml: secrets (never committed)

Both files are looked up in the current directory unless
``SERVICEDESK_CONFIG_DIR`` points somewhere else.
"""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

SETTINGS_FILENAME = "servicedesk.settings.yaml"
SECRETS_FILENAME  = "servicedesk.secrets.yaml"
CONFIG_DIR_ENV    = "SERVICEDESK_CONFIG_DIR"


def _config_dir() -> Path:
    return Path(os.environ.get(CONFIG_DIR_ENV, "."))


def _load_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        logger.warning("Config file not found: %s", path)
        return {}
    with path.open(encoding="utf-8") as fh:
        return yaml.safe_load(fh) or {}


# ---------------------------------------------------------------------------
# Secrets models
# ---------------------------------------------------------------------------


class JWTSecrets(BaseModel):
    secret_key:     str = "change-me-in-production"
    algorithm:      str = "HS256"
    expire_minutes: int = 60 * 24


class Secrets(BaseModel):
    jwt: JWTSecrets = Field(default_factory=JWTSecrets)


# ---------------------------------------------------------------------------
# Settings models
# ---------------------------------------------------------------------------


class ServerSettings(BaseModel):
    host:            str       = "0.0.0.0"
    port:            int       = 8000
    allowed_origins: List[str] = Field(default_factory=lambda: ["*"])


class DatabaseSettings(BaseModel):
    path: str = "servicedesk.duckdb"


class SessionSettings(BaseModel):
    """Real-time session limits."""
    handshake_timeout_seconds: float = 10.0
    max_sessions:              int   = 0  # 0 = unlimited

    @field_validator("handshake_timeout_seconds")
    @classmethod
    def _positive_timeout(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("handshake_timeout_seconds must be positive")
        return value


class ChatSettings(BaseModel):
    max_message_length: int = 5000


class LoggingSettings(BaseModel):
    level: str = "info"


class AppSettings(BaseModel):
    server:   ServerSettings   = Field(default_factory=ServerSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    sessions: SessionSettings  = Field(default_factory=SessionSettings)
    chat:     ChatSettings     = Field(default_factory=ChatSettings)
    logging:  LoggingSettings  = Field(default_factory=LoggingSettings)
    secrets:  Secrets          = Field(default_factory=Secrets)


# ---------------------------------------------------------------------------
# Public loader
# ---------------------------------------------------------------------------


def load_config(
    settings_path: Optional[Path] = None,
    secrets_path: Optional[Path] = None,
) -> AppSettings:
    """Load and merge settings + secrets into a single *AppSettings* object."""
    settings_path = Path(settings_path) if settings_path else _config_dir() / SETTINGS_FILENAME
    secrets_path = Path(secrets_path) if secrets_path else settings_path.parent / SECRETS_FILENAME

    settings_data = _load_yaml(settings_path)
    secrets_data  = _load_yaml(secrets_path)

    # Merge: secrets live under the "secrets" key in AppSettings
    settings_data["secrets"] = secrets_data

    app_settings = AppSettings(**settings_data)
    logger.info(
        "Settings loaded (server=%s:%s, database=%s, handshake_timeout=%ss)",
        app_settings.server.host,
        app_settings.server.port,
        app_settings.database.path,
        app_settings.sessions.handshake_timeout_seconds,
    )
    return app_settings


_config: Optional[AppSettings] = None


def get_config() -> AppSettings:
    """Return the process-wide settings, loading them on first use."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reset_config() -> None:
    """Forget cached settings so the next get_config() reloads from disk."""
    global _config
    _config = None
