"""Runtime settings read from the environment (``.env`` is loaded by server.py)."""

import logging
import os
import shutil
from dataclasses import dataclass
from pathlib import Path

from services.gcs import DEFAULT_BUCKET, PUBLIC_BASE_URL, get_bucket_name

logger = logging.getLogger(__name__)

DEFAULT_PORT = 5000
SINK_MODES = ("stream", "staged")
PRESETS = ("ultrafast", "superfast", "veryfast", "faster", "fast")


@dataclass(frozen=True)
class Settings:
    bucket_name: str = DEFAULT_BUCKET
    public_base_url: str = PUBLIC_BASE_URL
    signed_url_seconds: int | None = None
    port: int = DEFAULT_PORT
    ffmpeg_path: str | None = None        # None -> probe PATH at startup
    sink_mode: str = "stream"
    temp_dir: Path | None = None
    preset: str = "fast"
    notify_url: str | None = None
    notify_token: str | None = None
    notify_privacy_status: str = "public"
    fetch_timeout: float | None = None
    transcode_timeout: float | None = None
    upload_timeout: float | None = None
    notify_timeout: float | None = None


def _env(name: str) -> str | None:
    return os.environ.get(name, "").strip() or None


def _env_number(name: str, cast: type = float):
    raw = _env(name)
    if raw is None:
        return None
    try:
        value = cast(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be a number, got {raw!r}") from e
    if value <= 0:
        raise ValueError(f"{name} must be positive, got {raw!r}")
    return value


def load_settings() -> Settings:
    """Build Settings from environment variables, falling back to defaults."""
    sink_mode = (_env("CLIP_SINK_MODE") or "stream").lower()
    if sink_mode not in SINK_MODES:
        raise ValueError(f"CLIP_SINK_MODE must be one of {list(SINK_MODES)}, got {sink_mode!r}")
    preset = (_env("FFMPEG_PRESET") or "fast").lower()
    if preset not in PRESETS:
        raise ValueError(f"FFMPEG_PRESET must be one of {list(PRESETS)}, got {preset!r}")
    temp_dir = _env("CLIP_TEMP_DIR")
    return Settings(
        bucket_name=get_bucket_name(),
        public_base_url=(_env("GCS_PUBLIC_BASE_URL") or PUBLIC_BASE_URL).rstrip("/"),
        signed_url_seconds=_env_number("GCS_SIGNED_URL_SECONDS", int),
        port=_env_number("PORT", int) or DEFAULT_PORT,
        ffmpeg_path=_env("FFMPEG_PATH"),
        sink_mode=sink_mode,
        temp_dir=Path(temp_dir) if temp_dir else None,
        preset=preset,
        notify_url=_env("NOTIFY_URL"),
        notify_token=_env("NOTIFY_TOKEN"),
        notify_privacy_status=_env("NOTIFY_PRIVACY_STATUS") or "public",
        fetch_timeout=_env_number("FETCH_TIMEOUT_SECONDS"),
        transcode_timeout=_env_number("TRANSCODE_TIMEOUT_SECONDS"),
        upload_timeout=_env_number("UPLOAD_TIMEOUT_SECONDS"),
        notify_timeout=_env_number("NOTIFY_TIMEOUT_SECONDS"),
    )


def resolve_ffmpeg_path(override: str | None = None) -> str:
    """
    Locate the ffmpeg executable once at startup.

    An explicit override must point at an existing file; otherwise PATH is probed.
    """
    if override:
        if not Path(override).is_file():
            raise RuntimeError(f"FFMPEG_PATH does not exist: {override}")
        logger.info("[config] Using ffmpeg override at %s", override)
        return override
    found = shutil.which("ffmpeg")
    if not found:
        raise RuntimeError("ffmpeg not found on PATH; install it or set FFMPEG_PATH")
    logger.info("[config] Found ffmpeg on PATH at %s", found)
    return found
