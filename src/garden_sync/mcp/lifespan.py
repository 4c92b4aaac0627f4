"""Lifespan management for MCP server startup and shutdown."""

import logging
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any

from dotenv import load_dotenv

from ..config import Config, load_config
from ..config_loader import (
    discover_config_files,
    load_hierarchical_config,
)
from ..config_schema import PeerConfig, build_config, yaml_fallbacks
from ..core.async_utils import run_sync
from ..core.client import GardenClient
from ..sync.engine import SyncEngine

logger = logging.getLogger(__name__)


@dataclass
class GardenContext:
    """Everything a tool handler needs, built once at startup."""

    config: Config
    client: GardenClient
    engine: SyncEngine
    peers: dict[str, PeerConfig] = field(default_factory=dict)


def _stderr_print(msg: str) -> None:
    """Print message to stderr for user feedback (safe in MCP mode)."""
    print(msg, file=sys.stderr, flush=True)


@asynccontextmanager
async def server_lifespan(
    config_overrides: dict[str, Any] | None = None,
) -> AsyncIterator[GardenContext]:
    """
    Manage server startup and shutdown lifecycle.

    On startup:
    - Load .env file (so values are available for env var lookups and YAML interpolation)
    - Load YAML config file if present (garden/sync fallbacks and peers)
    - Merge all sources via load_config(): CLI > env vars > .env > YAML > defaults
    - Create GardenClient and validate connection to the local garden
    - Build the SyncEngine over the local garden and configured peers

    Args:
        config_overrides: Optional dict with config values from CLI (url, token, insecure, debug)

    Yields:
        GardenContext for the caller to install

    Raises:
        RuntimeError: If configuration is invalid or the garden is unreachable.
    """
    logger.info("MCP server starting...")
    _stderr_print("Garden Sync MCP Server starting...")

    try:
        # .env first so ${VAR} interpolation in YAML can use its values
        load_dotenv()

        fallbacks: dict[str, Any] | None = None
        peers: dict[str, PeerConfig] = {}
        config_files = discover_config_files()
        sources = []

        if config_files:
            unified = build_config(load_hierarchical_config())
            fallbacks = yaml_fallbacks(unified)
            peers = dict(unified.peers)
            sources.append(f"config file: {config_files[0]}")

        overrides = config_overrides or {}
        config = load_config(
            url=overrides.get("url"),
            token=overrides.get("token"),
            insecure=overrides.get("insecure", False),
            debug=overrides.get("debug", False),
            yaml_fallbacks=fallbacks,
        )

        if overrides:
            sources.append("CLI arguments")
        sources.append("environment variables")
        source_desc = ", ".join(sources)
        logger.info("Configuration loaded from: %s", source_desc)
        _stderr_print(f"  Configuration loaded from: {source_desc}")
        logger.info("Garden URL: %s", config.garden_url)
        _stderr_print(f"  Garden URL: {config.garden_url}")
        _stderr_print(f"  Peers: {', '.join(sorted(peers)) or 'none'}")
    except ValueError as e:
        logger.error("Configuration error: %s", e)
        _stderr_print(f"ERROR: Configuration error: {e}")
        _stderr_print("  Ensure GARDEN_URL is set.")
        raise RuntimeError(
            f"Configuration error: {e}. Ensure GARDEN_URL is set."
        ) from e

    logger.info("Validating garden connection...")
    _stderr_print("  Validating garden connection...")
    try:
        client = GardenClient.from_config(config)
        version = await run_sync(client.validate_connection)
        logger.info("Connected to garden sync API version %s", version)
        _stderr_print(f"  Connected to garden sync API version {version}")
    except Exception as e:
        logger.error("Failed to connect to garden: %s", e)
        _stderr_print("ERROR: Garden connection failed.")
        _stderr_print(f"  {e}")
        _stderr_print("  Check GARDEN_URL and GARDEN_TOKEN.")
        raise RuntimeError(
            f"Garden connection failed: {e}. Check GARDEN_URL and GARDEN_TOKEN."
        ) from e

    engine = SyncEngine.from_config(config, peers)
    _stderr_print(f"  Sync state: {config.state_dir}")
    _stderr_print("Server ready. Waiting for MCP client connection...")

    yield GardenContext(
        config=config, client=client, engine=engine, peers=peers
    )

    logger.info("MCP server shutting down")
    _stderr_print("Garden Sync MCP Server shutting down.")
