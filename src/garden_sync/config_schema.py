"""Unified configuration schema for garden_sync.

Defines Pydantic models for the unified config structure with dedicated
sections for the local garden, named sync peers, engine settings, and
logging. Includes an adapter to the flat ``Config`` dataclass used by the
server bootstrap path.

Usage:
    from garden_sync.config_schema import (
        UnifiedConfig, build_config, to_legacy_config,
    )

    raw = load_hierarchical_config()
    unified = build_config(raw)
    legacy = to_legacy_config(unified, cli_overrides={"url": "https://..."})
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field, field_validator

if TYPE_CHECKING:
    from .config import Config

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------


class GardenConfig(BaseModel):
    """Local garden connection settings.

    All fields are optional to support zero-config: env vars and CLI args
    can supply them at runtime instead.
    """

    url: str | None = Field(
        default=None, description="Base URL of the local garden"
    )
    token: str | None = Field(
        default=None, description="Bearer token for the sync API"
    )
    insecure: bool = Field(
        default=False,
        description="Disable SSL verification (development only)",
    )
    debug: bool = Field(default=False, description="Enable debug mode")

    model_config = {"frozen": True}


class PeerConfig(BaseModel):
    """A remote garden that the local garden synchronizes with."""

    url: str = Field(description="Base URL of the peer garden")
    token: str | None = Field(
        default=None, description="Bearer token for the peer's sync API"
    )
    insecure: bool = Field(
        default=False,
        description="Disable SSL verification for this peer",
    )

    model_config = {"frozen": True}

    @field_validator("url")
    @classmethod
    def _check_url(cls, value: str) -> str:
        from .config import validate_garden_url

        return validate_garden_url(value)


class SyncSettings(BaseModel):
    """Engine settings shared by every reconciliation pass."""

    state_dir: str = Field(
        default=".garden_sync",
        description="Directory holding mapping and cursor state files",
    )
    page_size: int = Field(
        default=200,
        ge=1,
        le=10000,
        description="Rows fetched per changed-since page (1-10000)",
    )
    timeout: float = Field(
        default=60.0,
        gt=0,
        description="HTTP read timeout in seconds",
    )

    model_config = {"frozen": True}


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        file: Optional log file path.
    """

    level: str = Field(default="INFO", description="Log level")
    file: str | None = Field(default=None, description="Log file path")

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Top-level unified config
# ---------------------------------------------------------------------------


class UnifiedConfig(BaseModel):
    """Top-level unified configuration.

    Every section has defaults, so ``UnifiedConfig()`` (zero-config) is
    always valid.
    """

    garden: GardenConfig = Field(default_factory=GardenConfig)
    peers: dict[str, PeerConfig] = Field(default_factory=dict)
    sync: SyncSettings = Field(default_factory=SyncSettings)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Factory function
# ---------------------------------------------------------------------------


def build_config(raw_data: dict) -> UnifiedConfig:
    """Construct a ``UnifiedConfig`` from the raw dict returned by
    ``load_hierarchical_config()``.

    Missing sections get defaults.

    Args:
        raw_data: Merged configuration dictionary.

    Returns:
        Validated ``UnifiedConfig`` instance.
    """
    if not raw_data:
        return UnifiedConfig()

    return UnifiedConfig(**raw_data)


def yaml_fallbacks(unified: UnifiedConfig) -> dict:
    """Flatten the ``garden`` and ``sync`` sections into the fallback dict
    accepted by ``load_config()``.

    ``None`` values are dropped so they never shadow built-in defaults.
    """
    merged = {**unified.sync.model_dump(), **unified.garden.model_dump()}
    return {k: v for k, v in merged.items() if v is not None}


# ---------------------------------------------------------------------------
# Adapter: UnifiedConfig -> legacy Config dataclass
# ---------------------------------------------------------------------------


def to_legacy_config(
    unified: UnifiedConfig,
    cli_overrides: dict | None = None,
) -> Config:
    """Convert a ``UnifiedConfig`` into the ``Config`` dataclass, applying
    CLI overrides on top.

    The precedence applied here is:
        CLI override > unified config value > default

    CLI overrides dict keys: url, token, insecure, debug.

    Args:
        unified: The unified config produced by ``build_config()``.
        cli_overrides: Optional dict of CLI argument values.

    Returns:
        ``Config`` dataclass instance (NOT validated; caller should run
        ``validate_config()`` separately if needed).
    """
    # Import here to avoid circular imports (config_schema is imported lazily by config users)
    from .config import Config

    overrides = cli_overrides or {}

    return Config(
        garden_url=overrides.get("url") or unified.garden.url or "",
        token=overrides.get("token") or unified.garden.token,
        insecure=overrides.get("insecure", False)
        or unified.garden.insecure,
        debug=overrides.get("debug", False) or unified.garden.debug,
        state_dir=unified.sync.state_dir,
        page_size=unified.sync.page_size,
        timeout=unified.sync.timeout,
    )
