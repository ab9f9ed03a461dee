"""Process-wide singletons, built once and injected into routes with Depends()."""

import logging
from functools import lru_cache

from app.config import Settings, load_settings, resolve_ffmpeg_path
from models import JobStage
from services.coordinator import JobCoordinator
from services.fetcher import SourceFetcher
from services.gcs import ArtifactStoreClient
from services.notifier import CompletionNotifier
from services.transcoder import FFmpegTranscoder

logger = logging.getLogger(__name__)


@lru_cache
def get_settings() -> Settings:
    return load_settings()


def build_coordinator(settings: Settings) -> JobCoordinator:
    transcoder = FFmpegTranscoder(resolve_ffmpeg_path(settings.ffmpeg_path), preset=settings.preset)
    store = ArtifactStoreClient(
        settings.bucket_name,
        public_base_url=settings.public_base_url,
        signed_url_seconds=settings.signed_url_seconds,
    )
    notifier = None
    if settings.notify_url:
        notifier = CompletionNotifier(settings.notify_url, token=settings.notify_token)
    else:
        logger.warning("[dependencies] NOTIFY_URL not set; completion callbacks are disabled.")
    fetcher = SourceFetcher() if settings.sink_mode == "staged" else None
    logger.info(
        "[dependencies] Coordinator ready: sink=%s bucket=%s ffmpeg=%s",
        settings.sink_mode,
        settings.bucket_name,
        transcoder.executable,
    )
    return JobCoordinator(
        transcoder,
        store,
        sink_mode=settings.sink_mode,
        fetcher=fetcher,
        notifier=notifier,
        privacy_status=settings.notify_privacy_status,
        temp_dir=settings.temp_dir,
        timeouts={
            JobStage.ACQUIRING: settings.fetch_timeout,
            JobStage.TRANSCODING: settings.transcode_timeout,
            JobStage.UPLOADING: settings.upload_timeout,
            JobStage.NOTIFYING: settings.notify_timeout,
        },
    )


@lru_cache
def get_coordinator() -> JobCoordinator:
    return build_coordinator(get_settings())
