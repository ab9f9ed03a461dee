"""Test doubles for the transcoder, storage, fetcher and notifier."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any

from models import (
    AcquisitionError,
    Artifact,
    JobStage,
    NotifyError,
    StageTimeoutError,
    TranscodeError,
    UploadError,
    UploadResult,
)
from services.sinks import FileSink, TranscodeSink


class FakeHandle:
    """
    Stands in for TranscodeHandle. Process exit and stdout EOF settle independently:
    ``exit_delay`` controls when wait() returns, ``drain_delay`` when EOF is fed.
    """

    def __init__(
        self,
        *,
        chunks: tuple[bytes, ...] = (b"\x00\x00\x00\x18ftypmp42", b"moof-mdat" * 8),
        exit_code: int = 0,
        exit_delay: float = 0.0,
        drain_delay: float = 0.0,
        with_stdout: bool = True,
    ) -> None:
        self.stdout = asyncio.StreamReader() if with_stdout else None
        self.cancelled = False
        self._chunks = chunks
        self._exit_code = exit_code
        self._exit_delay = exit_delay
        self._drain_delay = drain_delay
        self._feeder = asyncio.create_task(self._feed()) if with_stdout else None

    async def _feed(self) -> None:
        assert self.stdout is not None
        for chunk in self._chunks:
            self.stdout.feed_data(chunk)
            await asyncio.sleep(0)
        await asyncio.sleep(self._drain_delay)
        self.stdout.feed_eof()

    async def wait(self) -> None:
        await asyncio.sleep(self._exit_delay)
        if self._exit_code != 0:
            raise TranscodeError(f"ffmpeg exited with code {self._exit_code}: Invalid data found when processing input")

    async def cancel(self) -> None:
        self.cancelled = True
        if self._feeder is not None:
            self._feeder.cancel()

class FakeTranscoder:
    """Records start() calls; staged sinks get ``file_bytes`` written to their path."""

    executable = "/usr/bin/ffmpeg"

    def __init__(self, *, file_bytes: bytes | None = b"staged-clip-bytes", hang: bool = False, **handle_kwargs: Any) -> None:
        self.calls: list[dict[str, Any]] = []
        self.handles: list[FakeHandle] = []
        self._file_bytes = file_bytes
        self._hang = hang
        self._handle_kwargs = handle_kwargs

    async def start(
        self,
        source: str,
        start_offset: float,
        duration: float,
        dimensions: tuple[int, int],
        sink: TranscodeSink,
        *,
        label: str = "",
        on_progress: Any = None,
    ) -> FakeHandle:
        self.calls.append(
            {
                "source": source,
                "start_offset": start_offset,
                "duration": duration,
                "dimensions": dimensions,
                "output_args": sink.output_args(),
            }
        )
        if on_progress is not None:
            on_progress(50.0)
        kwargs = dict(self._handle_kwargs)
        if self._hang:
            kwargs.setdefault("exit_delay", 3600.0)
            kwargs.setdefault("drain_delay", 3600.0)
        if isinstance(sink, FileSink):
            kwargs["with_stdout"] = False
            if self._file_bytes is not None:
                sink.path.write_bytes(self._file_bytes)
        handle = FakeHandle(**kwargs)
        self.handles.append(handle)
        return handle

class FakeStore:
    """
    In-memory bucket with upsert semantics. ``delay`` is how long a write takes;
    like the storage client, a write slower than ``timeout`` is aborted unwritten.
    """

    def __init__(self, *, fail: bool = False, delay: float = 0.0) -> None:
        self.objects: dict[str, tuple[bytes, str]] = {}
        self.fail = fail
        self.delay = delay
        self.seen_paths: list[Path] = []
        self.timeouts: list[float | None] = []

    async def upload(
        self, key: str, artifact: Artifact, *, label: str = "", timeout: float | None = None
    ) -> UploadResult:
        self.timeouts.append(timeout)
        if timeout is not None and self.delay > timeout:
            await asyncio.sleep(timeout)
            raise StageTimeoutError(JobStage.UPLOADING)
        await asyncio.sleep(self.delay)
        if artifact.path is not None:
            self.seen_paths.append(artifact.path)
        if self.fail:
            raise UploadError(f"Upload to gs://clips/{key} failed: 503 Service Unavailable")
        data = artifact.data if artifact.data is not None else artifact.path.read_bytes()  # type: ignore[union-attr]
        self.objects[key] = (data, artifact.content_type)
        return UploadResult(public_url=self.resolve_url(key), storage_key=key)

    def resolve_url(self, key: str) -> str:
        return f"https://storage.googleapis.com/clips/{key}"

class FakeFetcher:
    def __init__(self, *, data: bytes = b"source-video", fail: bool = False) -> None:
        self.data = data
        self.fail = fail
        self.destinations: list[Path] = []

    async def fetch(self, url: str, destination: Path, *, label: str = "") -> Path:
        self.destinations.append(destination)
        if self.fail:
            raise AcquisitionError(f"Source download failed with HTTP 404: {url}")
        destination.write_bytes(self.data)
        return destination

class FakeNotifier:
    url = "https://hooks.test/clip-ready"

    def __init__(self, *, fail: bool = False, hang: bool = False) -> None:
        self.fail = fail
        self.hang = hang
        self.calls: list[tuple[str, str, str, str]] = []

    async def notify(self, user_id: str, video_id: str, clip_url: str, privacy_status: str, *, label: str = "") -> None:
        self.calls.append((user_id, video_id, clip_url, privacy_status))
        if self.hang:
            await asyncio.sleep(3600)
        if self.fail:
            raise NotifyError("Completion callback returned HTTP 502")
