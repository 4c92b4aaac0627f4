"""MCP tool handlers for garden sync.

Defines two tools:

- ``garden_sync`` -- run a bidirectional sync with a peer garden.
- ``garden_sync_status`` -- show cursors and mapping counts for a peer.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import mcp.types as types

from ...config import validate_garden_url
from ...core.async_utils import run_sync
from ...sync.reporter import format_outcome, outcome_to_json
from .errors import build_error_response
from .registry import ToolSpec

if TYPE_CHECKING:
    from ..lifespan import GardenContext

logger = logging.getLogger(__name__)

_PEER_PROPERTIES = {
    "peer": {
        "type": "string",
        "description": "Name of a peer from the config 'peers' section",
    },
    "url": {
        "type": "string",
        "description": "Base URL of the peer garden (used when 'peer' is not given)",
    },
}


# ---------------------------------------------------------------------------
# Tool definitions
# ---------------------------------------------------------------------------


SYNC_TOOLS: list[types.Tool] = [
    types.Tool(
        name="garden_sync",
        description=(
            "Synchronize the local garden with a peer garden in both "
            "directions. Identifier collisions are remapped and "
            "conflicting edits resolve by last write wins."
        ),
        annotations=types.ToolAnnotations(
            readOnlyHint=False,
            destructiveHint=False,
            idempotentHint=True,
            openWorldHint=True,
        ),
        inputSchema={
            "type": "object",
            "properties": _PEER_PROPERTIES,
            "required": [],
        },
    ),
    types.Tool(
        name="garden_sync_status",
        description=(
            "Show sync status for a peer garden -- last sync time in each "
            "direction and number of recorded id mappings."
        ),
        annotations=types.ToolAnnotations(
            readOnlyHint=True,
            destructiveHint=False,
            idempotentHint=True,
            openWorldHint=False,
        ),
        inputSchema={
            "type": "object",
            "properties": _PEER_PROPERTIES,
            "required": [],
        },
    ),
]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _resolve_peer_url(
    args: dict[str, Any], context: GardenContext
) -> str | types.CallToolResult:
    """Return the peer URL named by *args*, or an error response."""
    peer_name = args.get("peer")
    if peer_name:
        peer = context.peers.get(peer_name)
        if peer is None:
            return build_error_response(
                "not_found",
                f"Peer '{peer_name}' not found.",
                f"Available peers: {sorted(context.peers)}. "
                "Check the 'peers' section of .garden_sync/config.yml.",
            )
        return peer.url

    url = args.get("url")
    if url:
        return validate_garden_url(url)

    return build_error_response(
        "validation_error",
        "peer or url is required",
        "Provide the 'peer' parameter with a configured peer name, or 'url'.",
    )


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


async def _handle_garden_sync(
    context: GardenContext, args: dict[str, Any]
) -> types.CallToolResult:
    """Handle the ``garden_sync`` tool."""
    peer_url = _resolve_peer_url(args, context)
    if isinstance(peer_url, types.CallToolResult):
        return peer_url

    outcome = await run_sync(
        context.engine.sync_bidirectional,
        context.config.garden_url,
        peer_url,
    )

    return types.CallToolResult(
        content=[types.TextContent(type="text", text=format_outcome(outcome))],
        structuredContent=outcome_to_json(outcome),
        isError=not outcome.success,
    )


async def _handle_garden_sync_status(
    context: GardenContext, args: dict[str, Any]
) -> types.CallToolResult:
    """Handle the ``garden_sync_status`` tool."""
    peer_url = _resolve_peer_url(args, context)
    if isinstance(peer_url, types.CallToolResult):
        return peer_url

    local_url = context.config.garden_url.rstrip("/")
    peer_url = peer_url.rstrip("/")
    engine = context.engine
    push_cursor = await run_sync(engine.cursors.get, peer_url, local_url)
    pull_cursor = await run_sync(engine.cursors.get, local_url, peer_url)
    push_mappings = len(
        await run_sync(engine.mappings.records, peer_url, local_url)
    )
    pull_mappings = len(
        await run_sync(engine.mappings.records, local_url, peer_url)
    )

    def _when(cursor) -> str:
        return cursor.last_sync.isoformat() if cursor else "never"

    lines = [
        f"Sync status {local_url} <-> {peer_url}",
        f"  Last push:      {_when(push_cursor)}",
        f"  Last pull:      {_when(pull_cursor)}",
        f"  Push mappings:  {push_mappings}",
        f"  Pull mappings:  {pull_mappings}",
    ]

    structured = {
        "local": local_url,
        "peer": peer_url,
        "last_push": push_cursor.last_sync.isoformat() if push_cursor else None,
        "last_pull": pull_cursor.last_sync.isoformat() if pull_cursor else None,
        "push_mappings": push_mappings,
        "pull_mappings": pull_mappings,
    }

    return types.CallToolResult(
        content=[types.TextContent(type="text", text="\n".join(lines))],
        structuredContent=structured,
    )


SYNC_SPECS: list[ToolSpec] = [
    ToolSpec(tool=SYNC_TOOLS[0], handler=_handle_garden_sync),
    ToolSpec(tool=SYNC_TOOLS[1], handler=_handle_garden_sync_status),
]
