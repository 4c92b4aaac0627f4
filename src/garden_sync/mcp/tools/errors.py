"""Error response builders for MCP tool handlers.

Structured error responses carry a corrective action so that an agent
can recover without human intervention.
"""

import mcp.types as types
import requests

from ...sync.errors import GardenSyncError, SyncInProgressError


def build_error_response(
    error_type: str, message: str, corrective_action: str
) -> types.CallToolResult:
    """Build a structured error response with corrective action.

    Args:
        error_type: Error category (not_found, validation_error,
            sync_in_progress, sync_error, connection_error, server_error)
        message: Human-readable error description
        corrective_action: Specific action the agent can take to resolve the error

    Returns:
        CallToolResult with isError=True

    Examples:
        >>> build_error_response("not_found", "Peer 'x' not found", "Check the peers section.")
        CallToolResult(content=[TextContent(...)], isError=True)
    """
    error_text = f"Error ({error_type}): {message}\n\nAction: {corrective_action}"

    return types.CallToolResult(
        content=[types.TextContent(type="text", text=error_text)],
        isError=True,
    )


def translate_exception(exc: Exception) -> types.CallToolResult:
    """Map an exception raised by a tool handler to an error response."""
    match exc:
        case SyncInProgressError():
            return build_error_response(
                "sync_in_progress",
                str(exc),
                "Wait for the running sync toward this peer to finish, then retry.",
            )
        case GardenSyncError():
            return build_error_response(
                "sync_error",
                str(exc),
                "Check the sync state directory and retry; re-running a sync is safe.",
            )
        case requests.RequestException():
            return build_error_response(
                "connection_error",
                str(exc),
                "Check the garden URL, token and network connectivity, then retry.",
            )
        case ValueError():
            return build_error_response(
                "validation_error",
                str(exc),
                "Check parameter values and retry.",
            )
        case _:
            return build_error_response(
                "server_error",
                str(exc),
                "Check the server log and retry later.",
            )
