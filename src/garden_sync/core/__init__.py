"""Garden access shared by the engine, CLI and MCP server."""

from .async_utils import run_sync
from .client import GardenClient
from .repository import MemoryRepository, Repository

__all__ = ["GardenClient", "MemoryRepository", "Repository", "run_sync"]
