"""
Drives one clip request end to end.

validating -> acquiring -> transcoding -> assembling -> uploading -> notifying -> done,
with any stage able to end the job in ``failed``. Acquiring only runs for the
staged sink, assembling only for the streaming sink. Temporary files live in a
per-job directory that is removed on every exit path.
"""

from __future__ import annotations

import asyncio
import logging
import math
import tempfile
from collections.abc import Awaitable, Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import TypeVar
from urllib.parse import urlparse

from models import (
    CONTAINERS,
    Artifact,
    ClipJob,
    ClipPipelineError,
    ClipRequest,
    ClipResult,
    JobStage,
    NotificationStatus,
    StageTimeoutError,
    ValidationError,
)
from models.errors import STAGE_ERRORS
from services.fetcher import SourceFetcher
from services.gcs import ArtifactStoreClient
from services.notifier import CompletionNotifier
from services.sinks import TranscodeSink, build_sink
from services.store import JobRegistry, jobs
from services.transcoder import FFmpegTranscoder

logger = logging.getLogger(__name__)

T = TypeVar("T")

MISSING_FIELDS_MESSAGE = "Missing required fields: videoUrl, startTime, endTime"
SOURCE_SCHEMES = ("http", "https")
# ffmpeg durations are passed with millisecond precision.
MIN_CLIP_SECONDS = 0.001


def validate_request(request: ClipRequest) -> None:
    """Reject a request before any side effect happens."""
    if not request.source_url or request.start_time is None or request.end_time is None:
        raise ValidationError(MISSING_FIELDS_MESSAGE)
    if urlparse(request.source_url).scheme.lower() not in SOURCE_SCHEMES:
        raise ValidationError("videoUrl must be an http(s) URL")
    start, end = request.start_time, request.end_time
    if not (math.isfinite(start) and math.isfinite(end)):
        raise ValidationError("startTime and endTime must be finite numbers")
    if start < 0:
        raise ValidationError(f"Invalid time range: startTime ({start:g}) must not be negative")
    if end <= start:
        raise ValidationError(f"Invalid time range: endTime ({end:g}) must be greater than startTime ({start:g})")
    if round(end - start, 3) < MIN_CLIP_SECONDS:
        raise ValidationError(f"Invalid time range: clip must be at least {MIN_CLIP_SECONDS:g}s long")
    if request.output_format not in CONTAINERS:
        raise ValidationError(
            f"Unsupported format {request.output_format!r}; expected one of {sorted(CONTAINERS)}"
        )
    try:
        width, height = request.dimensions
    except ValueError as e:
        raise ValidationError(f"Invalid resolution {request.resolution!r}; expected WIDTHxHEIGHT") from e
    if width <= 0 or height <= 0 or width % 2 or height % 2:
        raise ValidationError(f"Invalid resolution {request.resolution!r}; dimensions must be positive and even")


class JobCoordinator:
    def __init__(
        self,
        transcoder: FFmpegTranscoder,
        store: ArtifactStoreClient,
        *,
        sink_mode: str = "stream",
        fetcher: SourceFetcher | None = None,
        notifier: CompletionNotifier | None = None,
        privacy_status: str = "public",
        temp_dir: Path | None = None,
        timeouts: dict[JobStage, float | None] | None = None,
        registry: JobRegistry | None = None,
    ) -> None:
        if sink_mode == "staged" and fetcher is None:
            fetcher = SourceFetcher()
        self._transcoder = transcoder
        self._store = store
        self._sink_mode = sink_mode
        self._fetcher = fetcher
        self._notifier = notifier
        self._privacy_status = privacy_status
        self._temp_dir = temp_dir
        self._timeouts = timeouts or {}
        self._registry = jobs if registry is None else registry

    @property
    def sink_mode(self) -> str:
        return self._sink_mode

    async def run(self, request: ClipRequest) -> ClipResult:
        job = ClipJob(request=request)
        label = f"job={job.id}"
        try:
            validate_request(request)
        except ValidationError as exc:
            job.fail(JobStage.VALIDATING, exc.message)
            logger.warning("[coordinator] %s rejected: %s", label, exc.message)
            raise

        self._registry.add(job)
        logger.info(
            "[coordinator] %s accepted source=%s range=%g-%gs format=%s resolution=%s sink=%s",
            label,
            request.source_url,
            request.start_time,
            request.end_time,
            request.output_format,
            request.resolution,
            self._sink_mode,
        )

        try:
            with self._workspace(job) as workdir:
                sink = build_sink(self._sink_mode, request, workdir, job_id=job.id, label=label)
                try:
                    source = await self._acquire(job, workdir)
                    artifact = await self._transcode(job, sink, source)
                    upload = await self._run_stage(
                        job,
                        JobStage.UPLOADING,
                        self._store.upload(
                            job.storage_key,
                            artifact,
                            label=label,
                            timeout=self._timeouts.get(JobStage.UPLOADING),
                        ),
                        deadline=False,
                    )
                finally:
                    sink.discard()
        except ClipPipelineError as exc:
            job.fail(exc.stage, exc.message)
            exc.job_id = job.id
            logger.error(
                "[coordinator] %s failed at %s: %s",
                label,
                exc.stage.value,
                exc.message,
                exc_info=exc.__cause__ is not None,
            )
            raise
        except asyncio.CancelledError:
            job.fail(job.stage, "cancelled")
            logger.warning("[coordinator] %s cancelled during %s", label, job.failed_stage.value)
            raise
        except Exception as exc:  # noqa: BLE001
            stage = job.stage
            job.fail(stage, str(exc))
            logger.exception("[coordinator] %s crashed during %s", label, stage.value)
            error = ClipPipelineError(f"Unexpected failure during {stage.value}: {exc}", stage=stage)
            error.job_id = job.id
            raise error from exc

        job.clip_url = upload.public_url
        try:
            await self._notify(job, label)
        except asyncio.CancelledError:
            job.notification = NotificationStatus.FAILED
            job.notification_error = "cancelled"
            job.advance(JobStage.DONE)
            logger.warning("[coordinator] %s cancelled while notifying; clip stays stored at %s", label, job.clip_url)
            raise
        job.advance(JobStage.DONE)
        processing_time = job.elapsed_seconds()
        logger.info("[coordinator] %s done in %.2fs: %s", label, processing_time, job.clip_url)
        return ClipResult(
            job_id=job.id,
            clip_url=upload.public_url,
            storage_key=upload.storage_key,
            processing_time=processing_time,
            notification=job.notification or NotificationStatus.SKIPPED,
            notification_error=job.notification_error,
        )

    @contextmanager
    def _workspace(self, job: ClipJob) -> Iterator[Path | None]:
        if self._sink_mode != "staged":
            yield None
            return
        if self._temp_dir is not None:
            self._temp_dir.mkdir(parents=True, exist_ok=True)
        with tempfile.TemporaryDirectory(prefix=f"clip-{job.id}-", dir=self._temp_dir) as tmp:
            try:
                yield Path(tmp)
            finally:
                logger.info("[coordinator] job=%s removing temp dir %s", job.id, tmp)

    async def _run_stage(
        self, job: ClipJob, stage: JobStage, awaitable: Awaitable[T], *, deadline: bool = True
    ) -> T:
        # deadline=False: the awaitable enforces the stage timeout itself.
        job.advance(stage)
        logger.info("[coordinator] job=%s -> %s", job.id, stage.value)
        timeout = self._timeouts.get(stage) if deadline else None
        try:
            if timeout:
                return await asyncio.wait_for(awaitable, timeout=timeout)
            return await awaitable
        except asyncio.TimeoutError as e:
            raise StageTimeoutError(stage) from e
        except ClipPipelineError:
            raise
        except Exception as e:  # noqa: BLE001
            raise STAGE_ERRORS[stage](f"{type(e).__name__}: {e}", stage=stage) from e

    async def _acquire(self, job: ClipJob, workdir: Path | None) -> str:
        url = job.request.source_url
        if workdir is None:
            logger.info("[coordinator] job=%s streaming source directly into ffmpeg", job.id)
            return url  # type: ignore[return-value]
        assert self._fetcher is not None
        suffix = Path(urlparse(url).path).suffix or ".mp4"  # type: ignore[arg-type]
        destination = workdir / f"{job.id}.source{suffix}"
        path = await self._run_stage(
            job, JobStage.ACQUIRING, self._fetcher.fetch(url, destination, label=f"job={job.id}")  # type: ignore[arg-type]
        )
        return str(path)

    async def _transcode(self, job: ClipJob, sink: TranscodeSink, source: str) -> Artifact:
        await self._run_stage(job, JobStage.TRANSCODING, self._produce(job, sink, source))
        if sink.captures_stdout:
            return await self._run_stage(job, JobStage.ASSEMBLING, self._assemble(sink))
        return sink.artifact()

    async def _produce(self, job: ClipJob, sink: TranscodeSink, source: str) -> None:
        request = job.request

        def on_progress(percent: float) -> None:
            job.progress = percent

        handle = await self._transcoder.start(
            source,
            float(request.start_time),  # type: ignore[arg-type]
            request.duration,
            request.dimensions,
            sink,
            label=f"job={job.id}",
            on_progress=on_progress,
        )
        await sink.wait_for_output(handle)

    async def _assemble(self, sink: TranscodeSink) -> Artifact:
        return sink.artifact()

    async def _notify(self, job: ClipJob, label: str) -> None:
        request = job.request
        if self._notifier is None or not request.user_id or not request.video_id:
            job.notification = NotificationStatus.SKIPPED
            logger.info("[coordinator] %s completion callback skipped (no callback URL or owner ids)", label)
            return
        try:
            await self._run_stage(
                job,
                JobStage.NOTIFYING,
                self._notifier.notify(
                    request.user_id,
                    request.video_id,
                    job.clip_url,  # type: ignore[arg-type]
                    self._privacy_status,
                    label=label,
                ),
            )
        except ClipPipelineError as exc:
            job.notification = NotificationStatus.FAILED
            job.notification_error = exc.message
            logger.error(
                "[coordinator] %s completion callback failed; clip stays stored at %s: %s",
                label,
                job.clip_url,
                exc.message,
                exc_info=True,
            )
            return
        job.notification = NotificationStatus.SENT

