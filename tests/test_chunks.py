import asyncio
from pathlib import Path

import pytest

from salad_transcription.errors import ErrorKind, OperationCancelledError, UploadError
from salad_transcription.services import chunks as chunks_module
from salad_transcription.services.chunks import plan_chunks, read_file_in_chunks
from salad_transcription.services.limiter import ConcurrencyLimiter
from salad_transcription.types import FilePart


@pytest.mark.parametrize(
    ("file_size", "max_chunk_size"),
    [(1, 1), (1, 20), (20, 20), (21, 20), (41, 20), (250, 20), (999_983, 4096), (7, 3)],
)
def test_plan_covers_file_exactly(file_size: int, max_chunk_size: int) -> None:
    plan = plan_chunks(file_size, max_chunk_size)

    assert plan.num_chunks == -(-file_size // max_chunk_size)
    assert plan.chunk_size <= max_chunk_size

    ranges = [plan.byte_range(part) for part in range(1, plan.num_chunks + 1)]
    assert ranges[0][0] == 0
    assert ranges[-1][1] == file_size
    for (_, end), (start, _) in zip(ranges, ranges[1:]):
        assert end == start
    lengths = [end - start for start, end in ranges]
    assert sum(lengths) == file_size
    assert all(length == plan.chunk_size for length in lengths[:-1])
    assert 0 < lengths[-1] <= plan.chunk_size


def test_plan_balances_chunks_instead_of_leaving_a_tiny_tail() -> None:
    plan = plan_chunks(41, 20)
    sizes = [end - start for start, end in (plan.byte_range(part) for part in (1, 2, 3))]
    assert sizes == [14, 14, 13]


def test_plan_for_large_upload() -> None:
    mib = 1024 * 1024
    plan = plan_chunks(250 * mib, 20 * mib)
    assert plan.num_chunks == 13


@pytest.mark.parametrize(("file_size", "max_chunk_size"), [(0, 10), (-1, 10), (10, 0)])
def test_plan_rejects_non_positive_sizes(file_size: int, max_chunk_size: int) -> None:
    with pytest.raises(ValueError):
        plan_chunks(file_size, max_chunk_size)


def test_byte_range_rejects_unknown_parts() -> None:
    plan = plan_chunks(10, 5)
    with pytest.raises(ValueError):
        plan.byte_range(0)
    with pytest.raises(ValueError):
        plan.byte_range(3)


async def test_reads_every_chunk_in_order(tmp_path: Path) -> None:
    data = bytes(range(256)) * 4 + b"tail"
    path = tmp_path / "audio.wav"
    path.write_bytes(data)
    plan = plan_chunks(len(data), 100)
    seen: dict[int, bytes] = {}

    async def handler(part_number: int, chunk: bytes) -> FilePart:
        await asyncio.sleep(0.001 * (plan.num_chunks - part_number))
        seen[part_number] = chunk
        return FilePart(part_number=part_number, etag=f"e{part_number}")

    parts = await read_file_in_chunks(path, plan, handler)

    assert [part.part_number for part in parts] == list(range(1, plan.num_chunks + 1))
    assert b"".join(seen[number] for number in sorted(seen)) == data


async def test_open_failure_names_the_path(tmp_path: Path) -> None:
    path = tmp_path / "missing.mp3"

    async def handler(part_number: int, chunk: bytes) -> FilePart:
        raise AssertionError("handler must not run")

    with pytest.raises(UploadError) as excinfo:
        await read_file_in_chunks(path, plan_chunks(10, 5), handler)

    assert excinfo.value.kind is ErrorKind.UPLOAD
    assert excinfo.value.file_name == "missing.mp3"
    assert str(path) in str(excinfo.value)


async def test_cancel_before_first_read(tmp_path: Path) -> None:
    path = tmp_path / "audio.mp3"
    path.write_bytes(b"x" * 50)
    cancel = asyncio.Event()
    cancel.set()
    calls: list[int] = []

    async def handler(part_number: int, chunk: bytes) -> FilePart:
        calls.append(part_number)
        return FilePart(part_number=part_number, etag="e")

    with pytest.raises(OperationCancelledError):
        await read_file_in_chunks(path, plan_chunks(50, 10), handler, cancel_event=cancel)

    assert calls == []


async def test_cancel_stops_further_reads(tmp_path: Path) -> None:
    path = tmp_path / "audio.mp3"
    path.write_bytes(b"x" * 50)
    cancel = asyncio.Event()
    calls: list[int] = []

    async def handler(part_number: int, chunk: bytes) -> FilePart:
        calls.append(part_number)
        cancel.set()
        return FilePart(part_number=part_number, etag="e")

    with pytest.raises(OperationCancelledError):
        await read_file_in_chunks(path, plan_chunks(50, 10), handler, cancel_event=cancel)

    assert 1 <= len(calls) < 5


async def test_handler_failure_cancels_outstanding_parts(tmp_path: Path) -> None:
    path = tmp_path / "audio.mp3"
    path.write_bytes(b"x" * 40)
    cancelled: list[int] = []

    async def handler(part_number: int, chunk: bytes) -> FilePart:
        if part_number == 1:
            await asyncio.sleep(0.05)
            raise UploadError("audio.mp3", "part 1 rejected")
        try:
            await asyncio.sleep(10)
        except asyncio.CancelledError:
            cancelled.append(part_number)
            raise
        return FilePart(part_number=part_number, etag="e")

    with pytest.raises(UploadError, match="part 1 rejected"):
        await asyncio.wait_for(read_file_in_chunks(path, plan_chunks(40, 10), handler), timeout=5)

    assert sorted(cancelled) == [2, 3, 4]


async def test_failed_part_stops_further_reads(tmp_path: Path) -> None:
    path = tmp_path / "audio.mp3"
    path.write_bytes(b"x" * 100)
    dispatched: list[int] = []

    async def handler(part_number: int, chunk: bytes) -> FilePart:
        dispatched.append(part_number)
        if part_number == 1:
            raise UploadError("audio.mp3", "part 1 rejected")
        return FilePart(part_number=part_number, etag="e")

    with pytest.raises(UploadError, match="part 1 rejected"):
        await read_file_in_chunks(path, plan_chunks(100, 1), handler)

    assert dispatched[0] == 1
    assert len(dispatched) <= 2


async def test_failed_part_stops_reads_behind_limiter(tmp_path: Path) -> None:
    path = tmp_path / "audio.mp3"
    path.write_bytes(b"x" * 100)
    limiter = ConcurrencyLimiter(2)
    dispatched: list[int] = []

    async def handler(part_number: int, chunk: bytes) -> FilePart:
        dispatched.append(part_number)
        await asyncio.sleep(0)
        if part_number == 1:
            raise UploadError("audio.mp3", "part 1 rejected")
        await asyncio.sleep(0.01)
        return FilePart(part_number=part_number, etag="e")

    with pytest.raises(UploadError, match="part 1 rejected"):
        await read_file_in_chunks(path, plan_chunks(100, 1), handler, limiter=limiter)

    assert len(dispatched) <= 3
    assert limiter.in_use == 0


async def test_limiter_bounds_chunks_held_in_memory(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    data = bytes(range(100))
    path = tmp_path / "audio.mp3"
    path.write_bytes(data)
    limiter = ConcurrencyLimiter(2)
    held = 0
    peak = 0
    seen: dict[int, bytes] = {}
    original_read = chunks_module._read_at

    def counting_read(handle, offset: int, size: int) -> bytes:
        nonlocal held, peak
        held += 1
        peak = max(peak, held)
        return original_read(handle, offset, size)

    async def handler(part_number: int, chunk: bytes) -> FilePart:
        nonlocal held
        await asyncio.sleep(0.001)
        seen[part_number] = chunk
        held -= 1
        return FilePart(part_number=part_number, etag=f"e{part_number}")

    monkeypatch.setattr(chunks_module, "_read_at", counting_read)
    parts = await read_file_in_chunks(path, plan_chunks(100, 1), handler, limiter=limiter)

    assert len(parts) == 100
    assert peak <= 2
    assert b"".join(seen[number] for number in range(1, 101)) == data
    assert limiter.in_use == 0


async def test_cancel_while_last_parts_upload(tmp_path: Path) -> None:
    path = tmp_path / "audio.mp3"
    path.write_bytes(b"x" * 50)
    cancel = asyncio.Event()
    interrupted: list[int] = []

    async def handler(part_number: int, chunk: bytes) -> FilePart:
        if part_number == 5:
            cancel.set()
        try:
            await asyncio.sleep(10)
        except asyncio.CancelledError:
            interrupted.append(part_number)
            raise
        return FilePart(part_number=part_number, etag="e")

    with pytest.raises(OperationCancelledError):
        await asyncio.wait_for(
            read_file_in_chunks(path, plan_chunks(50, 10), handler, cancel_event=cancel),
            timeout=5,
        )

    assert sorted(interrupted) == [1, 2, 3, 4, 5]
