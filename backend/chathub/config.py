"""Chat hub application configuration.

Loads settings from a YAML file:
  * chathub.settings.yaml: non-secret configuration

The path can be overridden with the CHATHUB_SETTINGS environment variable.
A missing file is not an error: every section has defaults.
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

SETTINGS_FILE = Path("chathub.settings.yaml")
SETTINGS_ENV_VAR = "CHATHUB_SETTINGS"


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
    host:            str       = "0.0.0.0"
    port:            int       = 5000
    allowed_origins: List[str] = Field(default_factory=lambda: [
        "http://localhost:5173",
        "http://localhost:5174",
        "http://localhost:3000",
    ])


class ChatSettings(BaseModel):
    """Limits of the in-memory chat state."""
    default_room:  str = "general"
    history_limit: int = Field(default=500, ge=1)
    join_backlog:  int = Field(default=50, ge=0)
    search_limit:  int = Field(default=20, ge=1)
    page_size:     int = Field(default=20, ge=1)

    @field_validator("default_room")
    @classmethod
    def _non_empty_room(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("default_room must not be empty")
        return value


class UploadSettings(BaseModel):
    """Attachment upload side-channel."""
    upload_dir:          str       = "uploads"
    db_path:             str       = "file_metadata.duckdb"
    max_file_size_bytes: int       = 10 * 1024 * 1024
    allowed_extensions:  List[str] = Field(default_factory=lambda: [
        "jpeg", "jpg", "png", "gif", "pdf", "doc", "docx", "txt",
    ])


class LoggingSettings(BaseModel):
    level: str = "info"


class AppSettings(BaseModel):
    server:  ServerSettings  = Field(default_factory=ServerSettings)
    chat:    ChatSettings    = Field(default_factory=ChatSettings)
    uploads: UploadSettings  = Field(default_factory=UploadSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


# ---------------------------------------------------------------------------
# Public loader
# ---------------------------------------------------------------------------


def load_config(settings_path: Optional[Path] = None) -> AppSettings:
    """Load settings from YAML into an *AppSettings* object.

    Args:
        settings_path: Explicit settings file. Defaults to $CHATHUB_SETTINGS,
            then ./chathub.settings.yaml.
    """
    if settings_path is None:
        settings_path = Path(os.environ.get(SETTINGS_ENV_VAR, SETTINGS_FILE))
    settings_data = _load_yaml(Path(settings_path))

    app_settings = AppSettings(**settings_data)
    logger.info(
        "Settings loaded (server=%s:%s, default_room=%s, history_limit=%d)",
        app_settings.server.host,
        app_settings.server.port,
        app_settings.chat.default_room,
        app_settings.chat.history_limit,
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
    """Forget cached settings (used by tests)."""
    global _config
    _config = None
