"""Filelink application configuration.

Loads settings from ``filelink.settings.yaml`` (non-secret configuration).
Relative filesystem paths in the file resolve against the file's own
directory, so a checkout can be started from anywhere.

Example:
    database:
      path: data/filelink.duckdb
    uploads:
      document_root: /var/www
      staging_dir: staging
      fields:
        - name: users.image_id
          owning_table: users
          action: /var/www/uploads/__ID__.__EXTN__
          table: files
          primary_key: id
          columns:
            file_name: file-name
            file_size: file-size
            system_path: system-path
            web_path: web-path
          allowed_extensions: [png, jpg]
          mode: "0644"
          orphan_policy: remove-files
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional, Union

import yaml
from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

SETTINGS_FILE = Path("filelink.settings.yaml")


def _load_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        logger.warning("Config file not found: %s", path)
        return {}
    with path.open(encoding="utf-8") as fh:
        return yaml.safe_load(fh) or {}


def _resolve(value: str, base_dir: Path) -> str:
    if not value or value == ":memory:":
        return value
    path = Path(value)
    if path.is_absolute():
        return str(path)
    return str(base_dir / path)


# ---------------------------------------------------------------------------
# Settings models
# ---------------------------------------------------------------------------


class ServerSettings(BaseModel):
    host:  str  = "0.0.0.0"
    port:  int  = 8000
    debug: bool = False


class LoggingSettings(BaseModel):
    level: str = "info"


class DatabaseSettings(BaseModel):
    path: str = "filelink.duckdb"


class UploadFieldSettings(BaseModel):
    """One upload field, as declared in YAML."""
    name:               str
    owning_table:       str
    action:             Optional[str]             = None
    table:              Optional[str]             = None
    primary_key:        str                       = "id"
    columns:            Dict[str, Any]            = Field(default_factory=dict)
    allowed_extensions: Optional[List[str]]       = None
    extension_error:    str                       = "This file type cannot be uploaded"
    mode:               Optional[int]             = 0o644
    clean_reference:    Optional[str]             = None
    orphan_policy:      Literal["keep", "remove-files"] = "keep"

    @field_validator("mode", mode="before")
    @classmethod
    def _parse_mode(cls, v: Union[int, str, None]) -> Optional[int]:
        """Accept octal strings ("0644", "0o644") as well as ints."""
        if isinstance(v, str):
            return int(v, 8)
        return v


class UploadSettings(BaseModel):
    document_root:    str                       = ""
    staging_dir:      str                       = "staging"
    max_file_size_mb: int                       = 20
    fields:           List[UploadFieldSettings] = Field(default_factory=list)

    @property
    def max_file_size_bytes(self) -> int:
        return self.max_file_size_mb * 1024 * 1024


class FilelinkConfig(BaseModel):
    server:   ServerSettings   = Field(default_factory=ServerSettings)
    logging:  LoggingSettings  = Field(default_factory=LoggingSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    uploads:  UploadSettings   = Field(default_factory=UploadSettings)


# ---------------------------------------------------------------------------
# Public loader
# ---------------------------------------------------------------------------


def load_config(settings_path: Optional[Path] = None) -> FilelinkConfig:
    """Load ``filelink.settings.yaml`` into a *FilelinkConfig*.

    Args:
        settings_path: Settings file to read (default: ./filelink.settings.yaml).
    """
    path = Path(settings_path) if settings_path else SETTINGS_FILE
    config = FilelinkConfig(**_load_yaml(path))

    base_dir = path.resolve().parent
    config.database.path = _resolve(config.database.path, base_dir)
    config.uploads.staging_dir = _resolve(config.uploads.staging_dir, base_dir)
    config.uploads.document_root = _resolve(config.uploads.document_root, base_dir)

    logger.info(
        "Settings loaded (database=%s, upload fields=%d)",
        config.database.path,
        len(config.uploads.fields),
    )
    return config


_config: Optional[FilelinkConfig] = None


def get_config() -> FilelinkConfig:
    """Process-wide configuration, loaded on first use."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reset_config() -> None:
    """Forget the cached configuration (used by tests)."""
    global _config
    _config = None
