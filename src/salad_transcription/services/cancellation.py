from __future__ import annotations

import asyncio
from collections.abc import Awaitable
from typing import TypeVar

from salad_transcription.errors import OperationCancelledError

T = TypeVar("T")


def raise_if_cancelled(
    cancel_event: asyncio.Event | None,
    identifier: str | None = None,
    message: str = "Operation aborted",
) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise OperationCancelledError(message, identifier=identifier)


async def until_cancelled(
    awaitable: Awaitable[T],
    cancel_event: asyncio.Event | None,
    identifier: str | None = None,
    message: str = "Operation aborted",
) -> T:
    """Await ``awaitable`` unless ``cancel_event`` fires first.

    When the event wins, the pending work is cancelled and awaited before
    ``OperationCancelledError`` is raised.
    """
    if cancel_event is None:
        return await awaitable

    task = asyncio.ensure_future(awaitable)
    if cancel_event.is_set():
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        raise OperationCancelledError(message, identifier=identifier)

    waiter = asyncio.ensure_future(cancel_event.wait())
    try:
        await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        waiter.cancel()
        if not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

    if task.cancelled():
        raise OperationCancelledError(message, identifier=identifier)
    return task.result()
