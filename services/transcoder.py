"""ffmpeg subprocess adapter: trims and re-encodes a source into a TranscodeSink."""

from __future__ import annotations

import asyncio
import logging
import re
from collections import deque
from typing import TYPE_CHECKING, Callable

from models import TranscodeError

if TYPE_CHECKING:
    from services.sinks import TranscodeSink

logger = logging.getLogger(__name__)

VIDEO_CODEC = "libx264"
AUDIO_CODEC = "aac"
STDERR_TAIL_LINES = 20
CANCEL_GRACE_SECONDS = 5.0

# ffmpeg -progress emits key=value lines; everything else on stderr is a diagnostic.
_PROGRESS_LINE_RE = re.compile(r"^[a-z0-9_]+=\S*$")

ProgressCallback = Callable[[float], None]


def _seconds(value: float) -> str:
    return f"{value:.3f}".rstrip("0").rstrip(".")


class TranscodeHandle:
    """
    A running ffmpeg process.

    ``wait()`` resolves when the process exits successfully and raises
    TranscodeError otherwise. stderr is drained in the background so the
    process never blocks on a full pipe; progress lines are turned into
    advisory percentages, other lines are kept for the failure message.
    """

    def __init__(
        self,
        process: asyncio.subprocess.Process,
        *,
        duration: float,
        label: str = "",
        on_progress: ProgressCallback | None = None,
    ) -> None:
        self._process = process
        self._duration = duration
        self._label = label
        self._on_progress = on_progress
        self._stderr_tail: deque[str] = deque(maxlen=STDERR_TAIL_LINES)
        self._last_percent = -1.0
        self._cancelled = False
        self._stderr_task = asyncio.create_task(self._read_stderr())

    @property
    def stdout(self) -> asyncio.StreamReader | None:
        return self._process.stdout

    @property
    def pid(self) -> int:
        return self._process.pid

    @property
    def returncode(self) -> int | None:
        return self._process.returncode

    @property
    def diagnostics(self) -> str:
        return "\n".join(self._stderr_tail)

    async def _read_stderr(self) -> None:
        stream = self._process.stderr
        if stream is None:
            return
        while True:
            raw = await stream.readline()
            if not raw:
                return
            line = raw.decode("utf-8", errors="replace").strip()
            if not line:
                continue
            if _PROGRESS_LINE_RE.match(line):
                self._handle_progress(line)
            else:
                self._stderr_tail.append(line)

    def _handle_progress(self, line: str) -> None:
        key, _, value = line.partition("=")
        if key != "out_time_us" or not value.isdigit() or self._duration <= 0:
            return
        percent = min(100.0, int(value) / 1_000_000 / self._duration * 100)
        if percent <= self._last_percent:
            return
        self._last_percent = percent
        logger.debug("[transcoder] %s progress %.1f%%", self._label, percent)
        if self._on_progress is not None:
            self._on_progress(percent)

    async def wait(self) -> None:
        returncode = await self._process.wait()
        if not self._stderr_task.cancelled():
            await self._stderr_task
        if self._cancelled:
            raise TranscodeError("ffmpeg was cancelled")
        if returncode != 0:
            detail = self.diagnostics or "no diagnostics on stderr"
            raise TranscodeError(f"ffmpeg exited with code {returncode}: {detail}")
        logger.info("[transcoder] %s ffmpeg pid=%s exited cleanly", self._label, self.pid)

    async def cancel(self) -> None:
        """Terminate the process (kill after a grace period) and release its pipes."""
        self._cancelled = True
        if self._process.returncode is None:
            logger.warning("[transcoder] %s terminating ffmpeg pid=%s", self._label, self.pid)
            try:
                self._process.terminate()
                await asyncio.wait_for(self._process.wait(), timeout=CANCEL_GRACE_SECONDS)
            except ProcessLookupError:
                pass
            except asyncio.TimeoutError:
                logger.warning("[transcoder] %s ffmpeg pid=%s ignored SIGTERM; killing", self._label, self.pid)
                self._process.kill()
                await self._process.wait()
        self._stderr_task.cancel()
        try:
            await self._stderr_task
        except asyncio.CancelledError:
            pass


class FFmpegTranscoder:
    """Builds and launches ffmpeg with the fixed output policy (H.264 + AAC)."""

    def __init__(self, executable: str, *, preset: str = "fast") -> None:
        self._executable = executable
        self._preset = preset

    @property
    def executable(self) -> str:
        return self._executable

    def build_command(
        self,
        source: str,
        start_offset: float,
        duration: float,
        dimensions: tuple[int, int],
        output_args: list[str],
    ) -> list[str]:
        width, height = dimensions
        return [
            self._executable,
            "-hide_banner",
            "-nostdin",
            "-loglevel", "error",
            "-nostats",
            "-progress", "pipe:2",
            "-y",
            "-ss", _seconds(start_offset),
            "-i", source,
            "-t", _seconds(duration),
            "-vf", f"scale={width}:{height}",
            "-c:v", VIDEO_CODEC,
            "-preset", self._preset,
            "-c:a", AUDIO_CODEC,
            *output_args,
        ]

    async def start(
        self,
        source: str,
        start_offset: float,
        duration: float,
        dimensions: tuple[int, int],
        sink: TranscodeSink,
        *,
        label: str = "",
        on_progress: ProgressCallback | None = None,
    ) -> TranscodeHandle:
        cmd = self.build_command(source, start_offset, duration, dimensions, sink.output_args())
        logger.info("[transcoder] %s starting: %s", label, " ".join(cmd))
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE if sink.captures_stdout else asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise TranscodeError(f"Could not launch ffmpeg at {self._executable}: {e}") from e
        logger.info("[transcoder] %s ffmpeg started pid=%s", label, process.pid)
        return TranscodeHandle(process, duration=duration, label=label, on_progress=on_progress)
