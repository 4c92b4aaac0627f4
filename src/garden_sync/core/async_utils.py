"""Async helpers for calling the blocking sync engine from MCP handlers."""

import asyncio
import logging
from typing import Any, Callable, TypeVar

T = TypeVar("T")
logger = logging.getLogger(__name__)


async def run_sync(
    func: Callable[..., T], *args: Any, **kwargs: Any
) -> T:
    """Run a synchronous function in a worker thread.

    A full reconciliation pass performs many blocking HTTP calls; running
    it here keeps the event loop responsive.

    Example:
        outcome = await run_sync(engine.sync_bidirectional, local, peer)
    """
    return await asyncio.to_thread(func, *args, **kwargs)
