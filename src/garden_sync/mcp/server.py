"""MCP Server for garden sync using stdio transport.

This module implements the Model Context Protocol server that lets AI
agents run and inspect synchronization between the local garden and its
peers.

Transport: stdio
Protocol: JSON-RPC 2.0 over MCP
"""

import argparse
import asyncio
import logging
import sys

import mcp.server.stdio
import mcp.types as types
from mcp.server import NotificationOptions, Server
from mcp.server.models import InitializationOptions

from .. import __version__
from ..core.async_utils import run_sync
from ..logger import setup_logging
from .lifespan import GardenContext, server_lifespan
from .tools import ALL_SPECS, ToolRegistry, build_error_response
from .tools.registry import ToolSpec

logger = logging.getLogger(__name__)

server = Server("garden-sync")

# Initialized in lifespan
_context: GardenContext | None = None

# Initialized in main
_registry: ToolRegistry | None = None


# ---------------------------------------------------------------------------
# Ping tool (always available)
# ---------------------------------------------------------------------------


async def _handle_ping(
    context: GardenContext, args: dict
) -> types.CallToolResult:
    """Handle ping tool -- test garden connectivity."""
    try:
        version = await run_sync(context.client.validate_connection)
        return types.CallToolResult(
            content=[
                types.TextContent(
                    type="text",
                    text=f"Garden sync server connected successfully. API version: {version}",
                )
            ]
        )
    except Exception as e:
        return types.CallToolResult(
            content=[
                types.TextContent(
                    type="text",
                    text=f"Garden connection failed: {e}. Check GARDEN_URL and GARDEN_TOKEN.",
                )
            ],
            isError=True,
        )


PING_SPEC = ToolSpec(
    tool=types.Tool(
        name="ping",
        description="Test garden sync server connectivity and return API version",
        inputSchema={
            "type": "object",
            "properties": {},
            "required": [],
        },
    ),
    handler=_handle_ping,
)


# ---------------------------------------------------------------------------
# Global accessors
# ---------------------------------------------------------------------------


def get_context() -> GardenContext:
    """Get the global GardenContext.

    Raises:
        RuntimeError: If the server lifespan has not started.
    """
    if _context is None:
        raise RuntimeError(
            "GardenContext not initialized. Server lifespan not started."
        )
    return _context


def set_context(context: GardenContext | None) -> None:
    """Set the global GardenContext, or None to clear it."""
    global _context
    _context = context


def get_registry() -> ToolRegistry:
    """Get the global ToolRegistry instance.

    Raises:
        RuntimeError: If registry is not initialized
    """
    if _registry is None:
        raise RuntimeError("ToolRegistry not initialized.")
    return _registry


def set_registry(registry: ToolRegistry | None) -> None:
    """Set the global ToolRegistry instance, or None to clear it."""
    global _registry
    _registry = registry


# ---------------------------------------------------------------------------
# MCP protocol handlers
# ---------------------------------------------------------------------------


@server.list_tools()
async def handle_list_tools() -> list[types.Tool]:
    """List available garden sync tools."""
    return get_registry().list_tools()


@server.call_tool()
async def handle_call_tool(
    name: str, arguments: dict | None
) -> types.CallToolResult:
    """Handle tool execution via ToolRegistry dispatch.

    Args:
        name: The name of the tool to execute.
        arguments: Tool arguments (optional).

    Returns:
        CallToolResult with tool output content and optional isError flag.
    """
    context = get_context()
    try:
        return await get_registry().call_tool(name, arguments, context)
    except ValueError as e:
        return build_error_response(
            "unknown_tool",
            str(e),
            "Use list_tools to see available tools.",
        )


# ---------------------------------------------------------------------------
# Server lifecycle
# ---------------------------------------------------------------------------


async def main(config_overrides: dict | None = None):
    """Run the MCP server with stdio transport.

    Sets up logging for MCP mode (file only, never stdout), validates the
    garden connection via the lifespan manager, and serves JSON-RPC over
    stdio.

    Args:
        config_overrides: Optional dict with config values to override
            (url, token, insecure, debug, log_file)
    """
    overrides = config_overrides or {}

    # Must run before stdio_server so nothing reaches stdout
    setup_logging(
        mode="mcp",
        debug=overrides.get("debug", False),
        log_file=overrides.get("log_file"),
    )

    all_specs = [PING_SPEC] + ALL_SPECS
    registry = ToolRegistry(all_specs)
    logger.info("Registered %d tools", registry.tool_count())
    set_registry(registry)

    # set_context() is called here rather than in the lifespan so that
    # running this file via `python -m` updates the __main__ module's
    # globals, not a second imported copy.
    async with server_lifespan(config_overrides=config_overrides) as ctx:
        set_context(ctx)
        try:
            async with mcp.server.stdio.stdio_server() as (
                read_stream,
                write_stream,
            ):
                init_options = InitializationOptions(
                    server_name="garden-sync",
                    server_version=__version__,
                    capabilities=server.get_capabilities(
                        notification_options=NotificationOptions(),
                        experimental_capabilities={},
                    ),
                )
                await server.run(read_stream, write_stream, init_options)
        finally:
            set_context(None)
            set_registry(None)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="garden-sync-mcp",
        description="Garden Sync MCP Server - synchronize gardens from MCP clients",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run with default config (from .env or .garden_sync/config.yml)
  garden-sync-mcp

  # Override the local garden URL
  garden-sync-mcp --url https://garden.example.com

  # Use with insecure SSL (development only)
  garden-sync-mcp --url https://localhost:8443 --insecure

  # Custom log file location
  garden-sync-mcp --log-file /var/log/garden-sync.log

Note: This server uses stdio transport for JSON-RPC communication with MCP clients.
All user-facing messages are written to stderr.
        """,
    )

    parser.add_argument(
        "--url",
        help="Override local garden URL (takes precedence over GARDEN_URL env var and config files)",
    )
    parser.add_argument(
        "--token",
        help="Override garden API token (visible in process list -- prefer GARDEN_TOKEN env var)",
    )
    parser.add_argument(
        "--insecure",
        action="store_true",
        help="Skip SSL certificate verification (use only for development)",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )
    parser.add_argument(
        "--log-file",
        default="/tmp/garden-sync.log",
        help="Log file path (default: /tmp/garden-sync.log)",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"garden-sync version {__version__}",
    )
    return parser


def overrides_from_args(args: argparse.Namespace) -> dict:
    """Build the config overrides dict from parsed CLI arguments."""
    config_overrides: dict = {}
    if args.url:
        config_overrides["url"] = args.url
    if args.token:
        config_overrides["token"] = args.token
    if args.insecure:
        config_overrides["insecure"] = True
    if args.debug:
        config_overrides["debug"] = True
    if args.log_file:
        config_overrides["log_file"] = args.log_file
    return config_overrides


def run() -> None:
    """Entry point that handles errors gracefully and parses CLI arguments."""
    args = build_parser().parse_args()
    config_overrides = overrides_from_args(args)

    override_keys = [k for k in config_overrides if k != "token"]
    if override_keys:
        print(
            f"Config overrides from CLI: {', '.join(override_keys)}",
            file=sys.stderr,
        )

    try:
        asyncio.run(main(config_overrides=config_overrides or None))
    except RuntimeError:
        # Already reported on stderr by the lifespan manager
        sys.exit(1)
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        sys.exit(0)


if __name__ == "__main__":
    run()
