"""
Where ffmpeg writes its output.

StreamSink pipes the clip through stdout into memory; FileSink lets ffmpeg
write a local file. The coordinator drives both through the same three calls:
``output_args()`` when launching, ``wait_for_output()`` while transcoding and
``artifact()`` once output is complete.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from pathlib import Path

from models import Artifact, ClipRequest, EmptyArtifactError, JobStage, TranscodeError
from services.capture import ClipCaptureBuffer
from services.transcoder import TranscodeHandle

logger = logging.getLogger(__name__)

# Containers that need their index rewritten for streaming or fast start.
_ISO_MUXERS = ("mp4", "mov")
FRAGMENTED_MOVFLAGS = "frag_keyframe+empty_moov+default_base_moof"


class TranscodeSink(ABC):
    captures_stdout = False

    def __init__(self, request: ClipRequest, *, label: str = "") -> None:
        self._muxer = request.muxer
        self._content_type = request.content_type
        self._label = label

    @abstractmethod
    def output_args(self) -> list[str]:
        """ffmpeg arguments naming the container and output target."""

    @abstractmethod
    async def wait_for_output(self, handle: TranscodeHandle) -> None:
        """Return once the output is complete; cancel the process on any failure."""

    @abstractmethod
    def artifact(self) -> Artifact:
        """Turn the completed output into an Artifact."""

    @abstractmethod
    def discard(self) -> None:
        """Drop any partial or finished output."""


class StreamSink(TranscodeSink):
    captures_stdout = True

    def __init__(self, request: ClipRequest, *, label: str = "") -> None:
        super().__init__(request, label=label)
        self._buffer = ClipCaptureBuffer(self._content_type, label=label)

    def output_args(self) -> list[str]:
        args = ["-f", self._muxer]
        if self._muxer in _ISO_MUXERS:
            # no seek-back on a pipe, so the moov atom cannot be written as a trailer
            args = ["-movflags", FRAGMENTED_MOVFLAGS, *args]
        return [*args, "pipe:1"]

    async def wait_for_output(self, handle: TranscodeHandle) -> None:
        if handle.stdout is None:
            await handle.cancel()
            raise TranscodeError("ffmpeg was started without a stdout pipe")
        try:
            await self._buffer.capture_complete(handle.wait(), handle.stdout)
        except BaseException:
            self._buffer.discard()
            await handle.cancel()
            raise

    def artifact(self) -> Artifact:
        artifact = self._buffer.assemble()
        logger.info("[sinks] %s assembled %d bytes in memory", self._label, artifact.size)
        return artifact

    def discard(self) -> None:
        self._buffer.discard()


class FileSink(TranscodeSink):
    def __init__(self, request: ClipRequest, path: Path, *, label: str = "") -> None:
        super().__init__(request, label=label)
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    def output_args(self) -> list[str]:
        args = ["-f", self._muxer]
        if self._muxer in _ISO_MUXERS:
            args = ["-movflags", "+faststart", *args]
        return [*args, str(self._path)]

    async def wait_for_output(self, handle: TranscodeHandle) -> None:
        try:
            await handle.wait()
        except BaseException:
            await handle.cancel()
            self.discard()
            raise

    def artifact(self) -> Artifact:
        if not self._path.is_file() or self._path.stat().st_size == 0:
            raise EmptyArtifactError(
                f"ffmpeg reported success but {self._path.name} is missing or empty",
                stage=JobStage.TRANSCODING,
            )
        artifact = Artifact(content_type=self._content_type, path=self._path)
        logger.info("[sinks] %s clip staged at %s (%d bytes)", self._label, self._path, artifact.size)
        return artifact

    def discard(self) -> None:
        self._path.unlink(missing_ok=True)


def build_sink(mode: str, request: ClipRequest, workdir: Path | None, *, job_id: str, label: str = "") -> TranscodeSink:
    if mode == "stream":
        return StreamSink(request, label=label)
    if mode == "staged":
        if workdir is None:
            raise ValueError("staged sink needs a working directory")
        return FileSink(request, workdir / f"{job_id}.{request.output_format}", label=label)
    raise ValueError(f"Unknown sink mode: {mode!r}")
