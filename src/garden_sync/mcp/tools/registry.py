"""ToolSpec and ToolRegistry for MCP tool dispatch.

- ToolSpec: Immutable dataclass linking a Tool definition and an async
  handler with signature (context, args) -> CallToolResult.
- ToolRegistry: Lists tools and dispatches calls, translating handler
  exceptions into structured error responses.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING

import mcp.types as types

from .errors import translate_exception

if TYPE_CHECKING:
    from ..lifespan import GardenContext

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ToolSpec:
    """Immutable specification for a single MCP tool.

    Attributes:
        tool: The MCP Tool definition (name, description, inputSchema).
        handler: Async handler with signature (context, args) -> CallToolResult.
    """

    tool: types.Tool
    handler: Callable[[GardenContext, dict], Awaitable[types.CallToolResult]]


class ToolRegistry:
    """Registry of ToolSpecs keyed by tool name."""

    def __init__(self, specs: list[ToolSpec]):
        self._specs: dict[str, ToolSpec] = {
            spec.tool.name: spec for spec in specs
        }

    def list_tools(self) -> list[types.Tool]:
        """Return the Tool definition of every registered spec."""
        return [spec.tool for spec in self._specs.values()]

    def tool_count(self) -> int:
        """Return number of registered tools."""
        return len(self._specs)

    async def call_tool(
        self,
        name: str,
        arguments: dict | None,
        context: GardenContext,
    ) -> types.CallToolResult:
        """Dispatch a tool call to its handler.

        Raises:
            ValueError: If tool name is not registered.
        """
        spec = self._specs.get(name)
        if spec is None:
            raise ValueError(f"Unknown tool: {name}")
        try:
            return await spec.handler(context, arguments or {})
        except Exception as e:
            logger.exception("Error in tool %s", name)
            return translate_exception(e)
