"""Wait on several awaitables and take whichever finishes first."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable
from typing import Any


async def first_ready(*awaitables: Awaitable[Any]) -> tuple[int, Any]:
    """Return ``(index, result)`` of the first awaitable to complete.

    The others are cancelled and awaited before returning. When more than one
    is already done, the lowest index wins, so put the higher priority source
    (e.g. a stop signal) first. An exception from the winner is re-raised.
    """
    if not awaitables:
        raise ValueError("first_ready() needs at least one awaitable")

    tasks = [asyncio.ensure_future(aw) for aw in awaitables]
    try:
        done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
    finally:
        for task in tasks:
            if not task.done():
                task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    index = next(i for i, task in enumerate(tasks) if task in done)
    return index, tasks[index].result()
