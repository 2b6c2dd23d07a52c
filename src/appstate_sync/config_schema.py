"""Unified configuration schema for appstate_sync.

Defines Pydantic models for the YAML config structure with dedicated
sections for storage, the remote snapshot, sync behaviour and logging.
Includes an adapter that flattens the sections into the fallback dict
consumed by ``config.load_config()``.

Usage:
    from appstate_sync.config_schema import build_config, to_fallbacks

    raw = load_hierarchical_config()
    unified = build_config(raw)
    config = load_config(yaml_fallbacks=to_fallbacks(unified))
"""

from __future__ import annotations

import logging
from typing import Literal

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------


class StorageConfig(BaseModel):
    """Local storage locations.

    All fields are optional: env vars and CLI args can supply them at
    runtime instead.
    """

    cache_path: str | None = Field(
        default=None, description="Path of the local cache document"
    )
    db_filename: str = Field(
        default="db.json",
        min_length=1,
        description="Snapshot file name inside the granted directory",
    )

    model_config = {"frozen": True}


class RemoteConfig(BaseModel):
    """Remote snapshot endpoint."""

    url: str | None = Field(
        default=None, description="Remote snapshot URL (unset disables remote sync)"
    )
    timeout: float = Field(
        default=15.0,
        ge=1,
        le=300,
        description="Remote fetch deadline in seconds (1-300)",
    )

    model_config = {"frozen": True}


class SyncConfig(BaseModel):
    """Sync behaviour."""

    save_debounce: float = Field(
        default=0.5,
        ge=0,
        le=60,
        description="Idle window before a debounced save, in seconds (0-60)",
    )
    include_one_sided: bool = Field(
        default=False,
        description="Also surface one-sided records in decisions",
    )

    model_config = {"frozen": True}


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        file: Optional log file path.
        format: ``text`` or ``json``.
    """

    level: str = Field(default="INFO", description="Log level")
    file: str | None = Field(default=None, description="Log file path")
    format: Literal["text", "json"] = Field(
        default="text", description="Log record format"
    )

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Top-level unified config
# ---------------------------------------------------------------------------


class UnifiedConfig(BaseModel):
    """Top-level unified configuration.

    Every section has sensible defaults, so ``UnifiedConfig()``
    (zero-config) is always valid.
    """

    storage: StorageConfig = Field(default_factory=StorageConfig)
    remote: RemoteConfig = Field(default_factory=RemoteConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    debug: bool = Field(default=False, description="Enable debug mode")

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Factory function
# ---------------------------------------------------------------------------


def build_config(raw_data: dict | None) -> UnifiedConfig:
    """Construct a ``UnifiedConfig`` from the raw dict returned by
    ``load_hierarchical_config()``.

    Missing sections get defaults.

    Raises:
        pydantic.ValidationError: If a value is out of range.
    """
    if not raw_data:
        return UnifiedConfig()

    return UnifiedConfig(**raw_data)


def to_fallbacks(unified: UnifiedConfig) -> dict:
    """Flatten a ``UnifiedConfig`` into ``load_config()`` fallbacks.

    Keys: cache_path, db_filename, remote_url, remote_timeout,
    save_debounce, include_one_sided, debug.  Unset optional values are
    left out so built-in defaults still apply.
    """
    fallbacks: dict = {
        "db_filename": unified.storage.db_filename,
        "remote_timeout": unified.remote.timeout,
        "save_debounce": unified.sync.save_debounce,
        "include_one_sided": unified.sync.include_one_sided,
        "debug": unified.debug,
    }
    if unified.storage.cache_path:
        fallbacks["cache_path"] = unified.storage.cache_path
    if unified.remote.url:
        fallbacks["remote_url"] = unified.remote.url
    return fallbacks
