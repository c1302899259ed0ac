"""Messenger backend configuration.

Loads settings from two YAML files:
  * messenger.settings.yaml  : non-secret configuration
  * messenger.secrets.yaml   : secrets (never committed)

``MESSENGER_SETTINGS`` / ``MESSENGER_SECRETS`` override the file locations.
Relative paths inside the settings file (currently only ``database.path``)
are resolved against the directory that holds the settings file.
"""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional

import yaml
from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

SETTINGS_FILE = Path("messenger.settings.yaml")
SECRETS_FILE  = Path("messenger.secrets.yaml")

IN_MEMORY_DB = ":memory:"


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
    secret_key: str = "change-me-in-production"


class RedisSecrets(BaseModel):
    url: str = "redis://localhost:6379/0"


class Secrets(BaseModel):
    jwt:   JWTSecrets   = Field(default_factory=JWTSecrets)
    redis: RedisSecrets = Field(default_factory=RedisSecrets)


# ---------------------------------------------------------------------------
# Settings models
# ---------------------------------------------------------------------------


class ServerSettings(BaseModel):
    host:             str   = "0.0.0.0"
    port:             int   = 3001
    allowed_origins:  List[str] = Field(default_factory=lambda: ["http://localhost:3000"])
    # Transport-level liveness; uvicorn answers pings and drops silent peers.
    ws_ping_interval: float = 25.0
    ws_ping_timeout:  float = 60.0


class LoggingSettings(BaseModel):
    level: str = "info"


class DatabaseSettings(BaseModel):
    path: str = "messenger.duckdb"


class PresenceSettings(BaseModel):
    """Where per-user connection sets live.

    ``redis`` shares presence between processes; ``memory`` keeps it in the
    current process only (local development and tests).
    """
    backend: Literal["redis", "memory"] = "redis"


class AuthSettings(BaseModel):
    algorithm:            str = "HS256"
    token_expire_minutes: int = 60 * 24 * 7


class MessageSettings(BaseModel):
    max_content_length: int = 4000
    default_page_size:  int = 50
    max_page_size:      int = 100


class ModerationSettings(BaseModel):
    provider:         Literal["stub", "none"] = "stub"
    blocked_patterns: List[str] = Field(default_factory=lambda: [r"\b(spam|scam)\b"])


class TranslationSettings(BaseModel):
    provider:        Literal["none", "stub"] = "none"
    max_concurrency: int = 4

    @field_validator("max_concurrency")
    @classmethod
    def _positive(cls, value: int) -> int:
        if value < 1:
            raise ValueError("max_concurrency must be >= 1")
        return value


class AppConfig(BaseModel):
    server:      ServerSettings      = Field(default_factory=ServerSettings)
    logging:     LoggingSettings     = Field(default_factory=LoggingSettings)
    database:    DatabaseSettings    = Field(default_factory=DatabaseSettings)
    presence:    PresenceSettings    = Field(default_factory=PresenceSettings)
    auth:        AuthSettings        = Field(default_factory=AuthSettings)
    messages:    MessageSettings     = Field(default_factory=MessageSettings)
    moderation:  ModerationSettings  = Field(default_factory=ModerationSettings)
    translation: TranslationSettings = Field(default_factory=TranslationSettings)
    secrets:     Secrets             = Field(default_factory=Secrets)


# ---------------------------------------------------------------------------
# Public loader
# ---------------------------------------------------------------------------


def _resolve_db_path(raw: str, settings_path: Path) -> str:
    if raw == IN_MEMORY_DB:
        return raw
    path = Path(raw)
    if path.is_absolute():
        return str(path)
    return str(settings_path.resolve().parent / path)


def load_config(
    settings_path: Optional[Path] = None,
    secrets_path: Optional[Path] = None,
) -> AppConfig:
    """Load and merge settings + secrets into a single *AppConfig* object."""
    settings_path = Path(settings_path or os.environ.get("MESSENGER_SETTINGS", SETTINGS_FILE))
    secrets_path = Path(secrets_path or os.environ.get("MESSENGER_SECRETS", SECRETS_FILE))

    settings_data = _load_yaml(settings_path)
    secrets_data  = _load_yaml(secrets_path)

    # Merge: secrets live under the "secrets" key in AppConfig
    settings_data["secrets"] = secrets_data

    config = AppConfig(**settings_data)
    config.database.path = _resolve_db_path(config.database.path, settings_path)
    logger.info(
        "Settings loaded (server=%s:%s, presence=%s, database=%s)",
        config.server.host,
        config.server.port,
        config.presence.backend,
        config.database.path,
    )
    return config


_config: Optional[AppConfig] = None


def get_config() -> AppConfig:
    """Return the process-wide configuration, loading it on first use."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def set_config(config: AppConfig) -> None:
    """Install an explicit configuration (tests, embedding)."""
    global _config
    _config = config


def reset_config() -> None:
    global _config
    _config = None
