"""Dual-completion barrier and in-memory capture of ffmpeg stdout."""

from __future__ import annotations

import asyncio

import pytest

from models import EmptyArtifactError, TranscodeError
from services.capture import ClipCaptureBuffer, CompletionBarrier


async def _settle_after(delay: float, order: list[str], name: str) -> None:
    await asyncio.sleep(delay)
    order.append(name)


async def _fail_after(delay: float) -> None:
    await asyncio.sleep(delay)
    raise TranscodeError("ffmpeg exited with code 1")


def _reader_with(chunks: list[bytes], *, eof_after: float) -> asyncio.StreamReader:
    reader = asyncio.StreamReader()
    for chunk in chunks:
        reader.feed_data(chunk)

    async def _eof() -> None:
        await asyncio.sleep(eof_after)
        reader.feed_eof()

    asyncio.get_running_loop().create_task(_eof())
    return reader


@pytest.mark.asyncio
@pytest.mark.parametrize(("exit_delay", "drain_delay"), [(0.0, 0.05), (0.05, 0.0)])
async def test_barrier_waits_for_both_signals_in_either_order(exit_delay: float, drain_delay: float) -> None:
    order: list[str] = []
    barrier = CompletionBarrier(
        _settle_after(exit_delay, order, "exit"),
        _settle_after(drain_delay, order, "drain"),
    )
    await barrier.wait()
    assert sorted(order) == ["drain", "exit"]


@pytest.mark.asyncio
async def test_barrier_fails_fast_and_cancels_the_other_signal() -> None:
    drained = asyncio.Event()

    async def slow_drain() -> None:
        await asyncio.sleep(10)
        drained.set()

    loop = asyncio.get_running_loop()
    started = loop.time()
    with pytest.raises(TranscodeError):
        await CompletionBarrier(_fail_after(0.01), slow_drain()).wait()
    assert loop.time() - started < 1
    assert not drained.is_set()


@pytest.mark.asyncio
async def test_capture_keeps_chunks_that_arrive_after_process_exit() -> None:
    """Process exits first; the pipe still holds data and EOF comes much later."""
    reader = _reader_with([b"abc"], eof_after=0.1)
    buffer = ClipCaptureBuffer("video/mp4")

    async def process_exit() -> None:
        await asyncio.sleep(0)

    async def late_chunk() -> None:
        await asyncio.sleep(0.05)
        reader.feed_data(b"def")

    asyncio.get_running_loop().create_task(late_chunk())
    artifact = await buffer.capture(process_exit(), reader)

    assert artifact.data == b"abcdef"
    assert artifact.size == 6
    assert artifact.content_type == "video/mp4"


@pytest.mark.asyncio
async def test_capture_rejects_zero_bytes_despite_success_signals() -> None:
    reader = _reader_with([], eof_after=0.0)
    buffer = ClipCaptureBuffer("video/mp4")

    async def process_exit() -> None:
        return None

    with pytest.raises(EmptyArtifactError):
        await buffer.capture(process_exit(), reader)


@pytest.mark.asyncio
async def test_capture_propagates_process_failure() -> None:
    reader = _reader_with([b"partial"], eof_after=5.0)
    buffer = ClipCaptureBuffer("video/mp4")

    with pytest.raises(TranscodeError):
        await buffer.capture(_fail_after(0.01), reader)
    assert not buffer.drained


def test_assemble_before_drain_is_refused() -> None:
    buffer = ClipCaptureBuffer("video/mp4")
    buffer.feed(b"data")
    with pytest.raises(RuntimeError):
        buffer.assemble()


def test_discard_drops_partial_output() -> None:
    buffer = ClipCaptureBuffer("video/mp4")
    buffer.feed(b"partial")
    buffer.discard()
    assert buffer.size == 0
