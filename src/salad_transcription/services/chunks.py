from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import BinaryIO

from salad_transcription.errors import UploadError
from salad_transcription.services.cancellation import raise_if_cancelled, until_cancelled
from salad_transcription.services.limiter import ConcurrencyLimiter
from salad_transcription.types import ChunkPlan, FilePart

logger = logging.getLogger(__name__)

ChunkHandler = Callable[[int, bytes], Awaitable[FilePart]]


def plan_chunks(file_size: int, max_chunk_size: int) -> ChunkPlan:
    """Split ``file_size`` bytes into the fewest chunks of at most ``max_chunk_size``.

    The chunk size is balanced across the parts so the last one is never a
    tiny remainder: 41 bytes with a 20 byte maximum gives chunks of 14, 14
    and 13 bytes rather than 20, 20 and 1.
    """
    if file_size <= 0:
        raise ValueError("file_size must be positive")
    if max_chunk_size <= 0:
        raise ValueError("max_chunk_size must be positive")

    num_chunks = (file_size + max_chunk_size - 1) // max_chunk_size
    chunk_size = (file_size + num_chunks - 1) // num_chunks
    return ChunkPlan(file_size=file_size, num_chunks=num_chunks, chunk_size=chunk_size)


def _read_at(handle: BinaryIO, offset: int, size: int) -> bytes:
    handle.seek(offset)
    return handle.read(size)


def _releasing(limiter: ConcurrencyLimiter) -> Callable[[asyncio.Task[FilePart]], None]:
    def release(_: asyncio.Task[FilePart]) -> None:
        limiter.release()

    return release


def _raise_for_failed(tasks: list[asyncio.Task[FilePart]]) -> None:
    for task in tasks:
        if task.done() and not task.cancelled():
            error = task.exception()
            if error is not None:
                raise error


async def read_file_in_chunks(
    path: Path,
    plan: ChunkPlan,
    each_chunk: ChunkHandler,
    *,
    file_name: str | None = None,
    cancel_event: asyncio.Event | None = None,
    limiter: ConcurrencyLimiter | None = None,
) -> list[FilePart]:
    """Read ``path`` sequentially and hand every chunk to ``each_chunk``.

    Reads happen one after another; each handler runs as its own task, so
    uploads overlap with later reads. Results come back in dispatch order.

    With a ``limiter``, a permit is taken before a chunk is read and given
    back once its handler settles, so at most ``limiter.capacity`` chunks are
    held in memory. A failed handler stops further reads. If a read, a
    handler or the cancel event fails the run, handlers still in flight are
    cancelled before the error propagates.
    """
    name = file_name or path.name
    try:
        handle = path.open("rb")
    except OSError as exc:
        raise UploadError(name, f"Error opening file: {path} ({exc})") from exc

    tasks: list[asyncio.Task[FilePart]] = []
    try:
        with handle:
            for part_number in range(1, plan.num_chunks + 1):
                raise_if_cancelled(cancel_event, name, "Upload cancelled")
                _raise_for_failed(tasks)
                if limiter is not None:
                    await until_cancelled(limiter.acquire(), cancel_event, name, "Upload cancelled")

                try:
                    _raise_for_failed(tasks)
                    start, end = plan.byte_range(part_number)
                    chunk = await asyncio.to_thread(_read_at, handle, start, end - start)
                    if not chunk:
                        raise UploadError(name, f"Unexpected end of file at byte {start}")
                except BaseException:
                    if limiter is not None:
                        limiter.release()
                    raise

                logger.debug("Read part %s of %s (%s bytes)", part_number, name, len(chunk))
                task = asyncio.create_task(each_chunk(part_number, chunk))
                if limiter is not None:
                    # Fires on cancellation too, even before the handler starts.
                    task.add_done_callback(_releasing(limiter))
                tasks.append(task)

        return list(await until_cancelled(asyncio.gather(*tasks), cancel_event, name, "Upload cancelled"))
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise
