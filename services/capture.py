"""In-memory capture of transcoder output for the streaming sink."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable

from models import Artifact, EmptyArtifactError

logger = logging.getLogger(__name__)

READ_CHUNK_SIZE = 64 * 1024


class CompletionBarrier:
    """
    Join two independently-settling signals: the process exit and the stdout drain.

    ``wait()`` returns only after both have succeeded, whichever finishes first.
    If either raises, the other is cancelled and the error propagates at once.
    """

    def __init__(
        self,
        process_exit: Awaitable[None],
        stream_drained: Awaitable[None],
        *,
        label: str = "",
    ) -> None:
        self._signals = {
            asyncio.ensure_future(process_exit): "process exit",
            asyncio.ensure_future(stream_drained): "stream drained",
        }
        self._label = label

    async def wait(self) -> None:
        pending = set(self._signals)
        try:
            while pending:
                done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_EXCEPTION)
                for task in done:
                    exc = task.exception()
                    if exc is not None:
                        logger.warning("[capture] %s %s failed: %s", self._label, self._signals[task], exc)
                        raise exc
                    logger.debug("[capture] %s %s signalled", self._label, self._signals[task])
        finally:
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)


class ClipCaptureBuffer:
    """Accumulates stdout chunks and turns them into one immutable Artifact."""

    def __init__(self, content_type: str, *, label: str = "", chunk_size: int = READ_CHUNK_SIZE) -> None:
        self._content_type = content_type
        self._label = label
        self._chunk_size = chunk_size
        self._chunks: list[bytes] = []
        self._size = 0
        self._drained = False

    @property
    def size(self) -> int:
        return self._size

    @property
    def drained(self) -> bool:
        return self._drained

    def feed(self, chunk: bytes) -> None:
        if self._drained:
            raise RuntimeError("Cannot feed a drained capture buffer")
        if chunk:
            self._chunks.append(chunk)
            self._size += len(chunk)

    async def drain(self, reader: asyncio.StreamReader) -> None:
        """Read until EOF; only then is the stream considered drained."""
        while True:
            chunk = await reader.read(self._chunk_size)
            if not chunk:
                break
            self.feed(chunk)
        self._drained = True
        logger.debug("[capture] %s stdout drained after %d bytes", self._label, self._size)

    def assemble(self) -> Artifact:
        if not self._drained:
            raise RuntimeError("Capture buffer assembled before the stream was drained")
        if self._size == 0:
            raise EmptyArtifactError("ffmpeg reported success but produced no output")
        data = b"".join(self._chunks)
        self._chunks.clear()
        return Artifact(content_type=self._content_type, data=data)

    def discard(self) -> None:
        self._chunks.clear()
        self._size = 0

    async def capture_complete(self, process_exit: Awaitable[None], reader: asyncio.StreamReader) -> None:
        """Block until the process has exited cleanly and the reader has hit EOF."""
        await CompletionBarrier(process_exit, self.drain(reader), label=self._label).wait()

    async def capture(self, process_exit: Awaitable[None], reader: asyncio.StreamReader) -> Artifact:
        await self.capture_complete(process_exit, reader)
        return self.assemble()
