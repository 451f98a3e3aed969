# src/polistore/config.py
"""
Pydantic models for polistore configuration.

Configuration is loaded and merged in order:
    1. Default values (from the Pydantic models)
    2. TOML config file, ``[polistore]`` section (if provided)
    3. Config dictionary (if provided)
    4. Environment variables (``POLISTORE__<SECTION>__<KEY>``)
    5. Runtime overrides (if provided)

Example TOML::

    [polistore.blob]
    backend = "s3"
    bucket_name = "poliscore-archive"

    [polistore.indexed]
    backend = "dynamodb"
    table_name = "poliscore"

Example environment override::

    POLISTORE__INDEXED__TABLE_NAME=poliscore-staging
"""

from __future__ import annotations

import logging
import os
import tomllib
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, Field, ValidationError, model_validator

from .exceptions import ConfigError

logger = logging.getLogger(__name__)

ENV_PREFIX = "POLISTORE__"

# DynamoDB's per-item ceiling
DEFAULT_ITEM_SIZE_LIMIT_BYTES = 400 * 1024


# =============================================================================
# CONFIGURATION MODELS
# =============================================================================


class MemoryTierConfig(BaseModel):
    """Configuration for the in-process memory tier.

    Attributes:
        enabled: Whether StorageManager puts a memory tier in front of durable tiers.
        enable_stats: Whether to track hit/miss statistics.
    """

    enabled: bool = Field(default=True, description="Enable memory tier")
    enable_stats: bool = Field(default=True, description="Enable statistics tracking")


class BlobTierConfig(BaseModel):
    """Configuration for the durable blob tier.

    Attributes:
        backend: ``"filesystem"`` or ``"s3"``.
        path: Root directory for the filesystem backend.
        bucket_name: S3 bucket holding one ``<id>.json`` object per entity.
        region: AWS region for the S3 client.
        endpoint_url: Custom endpoint (MinIO, LocalStack).
        local_cache_path: Optional directory used as a local file cache
            between the memory tier and a remote blob backend.
        list_page_size: Keys requested per listing round trip.
    """

    backend: Literal["filesystem", "s3"] = Field(default="filesystem")
    path: str = Field(default="~/.local/share/polistore/blobs", description="Filesystem root")
    bucket_name: str = Field(default="poliscore-archive", description="S3 bucket name")
    region: str | None = Field(default=None, description="AWS region")
    endpoint_url: str | None = Field(default=None, description="Custom S3 endpoint")
    local_cache_path: str | None = Field(default=None, description="Local file cache directory")
    list_page_size: int = Field(default=1000, ge=1, le=1000)


class IndexedTierConfig(BaseModel):
    """Configuration for the indexed-query tier.

    Attributes:
        backend: ``"sqlite"`` or ``"dynamodb"``.
        db_path: SQLite database path (``":memory:"`` for an in-process table).
        table_name: Table holding head and auxiliary pages.
        region: AWS region for the DynamoDB client.
        endpoint_url: Custom endpoint (DynamoDB Local).
        item_size_limit_bytes: Hard per-item payload ceiling of the backend.
        page_size_threshold_bytes: Maximum encoded bytes of a large
            collection placed on one auxiliary page.
    """

    backend: Literal["sqlite", "dynamodb"] = Field(default="sqlite")
    db_path: str = Field(default="~/.local/share/polistore/indexed.db")
    table_name: str = Field(default="poliscore")
    region: str | None = Field(default=None)
    endpoint_url: str | None = Field(default=None)
    item_size_limit_bytes: int = Field(default=DEFAULT_ITEM_SIZE_LIMIT_BYTES, ge=1024)
    page_size_threshold_bytes: int = Field(default=350_000, ge=256)

    @model_validator(mode="after")
    def check_threshold_below_limit(self) -> "IndexedTierConfig":
        """An auxiliary page must fit in one backend item."""
        if self.page_size_threshold_bytes >= self.item_size_limit_bytes:
            raise ValueError(
                "page_size_threshold_bytes must be smaller than item_size_limit_bytes "
                f"({self.page_size_threshold_bytes} >= {self.item_size_limit_bytes})"
            )
        return self


class RetryConfig(BaseModel):
    """Retry-with-backoff policy for transient backend errors."""

    max_attempts: int = Field(default=5, ge=1, le=20)
    base_delay_seconds: float = Field(default=0.2, ge=0.0)
    max_delay_seconds: float = Field(default=5.0, ge=0.0)


class StoreConfig(BaseModel):
    """Top level polistore configuration."""

    memory: MemoryTierConfig = Field(default_factory=MemoryTierConfig)
    blob: BlobTierConfig = Field(default_factory=BlobTierConfig)
    indexed: IndexedTierConfig = Field(default_factory=IndexedTierConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)


# =============================================================================
# CONFIG LOADING
# =============================================================================


def load_store_config(
    config_path: Path | str | None = None,
    config_dict: dict[str, Any] | None = None,
    overrides: dict[str, Any] | None = None,
) -> StoreConfig:
    """
    Load store configuration from a TOML file, a dictionary and the environment.

    Args:
        config_path: Optional path to a TOML file with a ``[polistore]`` table.
        config_dict: Optional dictionary holding a ``"polistore"`` section.
        overrides: Optional runtime overrides (section dictionaries).

    Returns:
        A validated StoreConfig instance.

    Raises:
        ConfigError: If the file cannot be parsed or the merged values are invalid.
    """
    merged: dict[str, Any] = {}

    if config_path is not None:
        path = Path(os.path.expanduser(str(config_path)))
        try:
            with open(path, "rb") as f:
                merged = _deep_merge(merged, tomllib.load(f).get("polistore", {}))
            logger.debug(f"Loaded store config from {path}")
        except FileNotFoundError:
            logger.warning(f"Config file not found: {path}")
        except tomllib.TOMLDecodeError as e:
            raise ConfigError(f"Invalid TOML in {path}: {e}") from e

    if config_dict is not None:
        merged = _deep_merge(merged, config_dict.get("polistore", {}))

    merged = _apply_env_overrides(merged)

    if overrides is not None:
        merged = _deep_merge(merged, overrides)

    try:
        return StoreConfig(**merged)
    except ValidationError as e:
        raise ConfigError(f"Invalid polistore configuration: {e}") from e


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Deep merge two dictionaries, with override taking precedence."""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _apply_env_overrides(config: dict[str, Any]) -> dict[str, Any]:
    """
    Apply ``POLISTORE__<SECTION>__<KEY>=value`` environment overrides.

    Examples:
        POLISTORE__BLOB__BACKEND=s3
        POLISTORE__RETRY__MAX_ATTEMPTS=3
    """
    for key, value in os.environ.items():
        if not key.startswith(ENV_PREFIX):
            continue

        path_parts = key[len(ENV_PREFIX) :].lower().split("__")
        if len(path_parts) < 2:
            continue

        current = config
        for part in path_parts[:-1]:
            current = current.setdefault(part, {})
        # Raw strings; pydantic coerces them against the target field.
        current[path_parts[-1]] = value

    return config

