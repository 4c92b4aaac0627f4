"""MCP tool handlers for garden sync operations.

This package contains MCP tool implementations that wrap the SyncEngine
with async handlers and structured error responses.
"""

from .errors import build_error_response, translate_exception
from .registry import ToolRegistry, ToolSpec
from .sync import SYNC_SPECS, SYNC_TOOLS

ALL_SPECS: list[ToolSpec] = SYNC_SPECS

__all__ = [
    "build_error_response",
    "translate_exception",
    # Registry
    "ToolSpec",
    "ToolRegistry",
    # Spec lists
    "ALL_SPECS",
    "SYNC_SPECS",
    "SYNC_TOOLS",
]
