import re
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path

DEFAULT_FORMAT = "mp4"
DEFAULT_RESOLUTION = "1080x1920"
STORAGE_PREFIX = "final"

# container extension -> (ffmpeg muxer, content type)
CONTAINERS: dict[str, tuple[str, str]] = {
    "mp4": ("mp4", "video/mp4"),
    "mov": ("mov", "video/quicktime"),
    "mkv": ("matroska", "video/x-matroska"),
}

_RESOLUTION_RE = re.compile(r"^(\d{1,5})x(\d{1,5})$")


class JobStage(str, Enum):
    VALIDATING = "validating"
    ACQUIRING = "acquiring"
    TRANSCODING = "transcoding"
    ASSEMBLING = "assembling"
    UPLOADING = "uploading"
    NOTIFYING = "notifying"
    DONE = "done"
    FAILED = "failed"


class NotificationStatus(str, Enum):
    SENT = "sent"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class ClipRequest:
    source_url: str | None
    start_time: float | None              # seconds into the source
    end_time: float | None
    output_format: str = DEFAULT_FORMAT   # container extension
    resolution: str = DEFAULT_RESOLUTION  # WxH
    user_id: str | None = None
    video_id: str | None = None

    @property
    def duration(self) -> float:
        return float(self.end_time) - float(self.start_time)  # type: ignore[arg-type]

    @property
    def dimensions(self) -> tuple[int, int]:
        match = _RESOLUTION_RE.match(self.resolution)
        if not match:
            raise ValueError(f"Invalid resolution: {self.resolution!r}")
        return int(match.group(1)), int(match.group(2))

    @property
    def muxer(self) -> str:
        return CONTAINERS[self.output_format][0]

    @property
    def content_type(self) -> str:
        return CONTAINERS[self.output_format][1]


@dataclass
class ClipJob:
    request: ClipRequest
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    stage: JobStage = JobStage.VALIDATING
    stage_times: dict[JobStage, datetime] = field(default_factory=dict)
    failed_stage: JobStage | None = None
    failure_reason: str | None = None
    clip_url: str | None = None
    progress: float | None = None          # advisory, 0-100
    notification: NotificationStatus | None = None
    notification_error: str | None = None

    def __post_init__(self) -> None:
        self.stage_times.setdefault(self.stage, _now())

    @property
    def storage_key(self) -> str:
        return f"{STORAGE_PREFIX}/{self.id}.{self.request.output_format}"

    @property
    def created_at(self) -> datetime:
        return self.stage_times[JobStage.VALIDATING]

    @property
    def is_terminal(self) -> bool:
        return self.stage in (JobStage.DONE, JobStage.FAILED)

    def advance(self, stage: JobStage) -> None:
        if self.is_terminal:
            raise RuntimeError(f"Job {self.id} already finished ({self.stage.value})")
        self.stage = stage
        self.stage_times[stage] = _now()

    def fail(self, stage: JobStage, reason: str) -> None:
        self.failed_stage = stage
        self.failure_reason = reason
        self.advance(JobStage.FAILED)

    def elapsed_seconds(self) -> float:
        end = self.stage_times.get(JobStage.DONE) or self.stage_times.get(JobStage.FAILED) or _now()
        return (end - self.created_at).total_seconds()


@dataclass(frozen=True)
class Artifact:
    """Finished clip, either held in memory or sitting in a local file."""

    content_type: str
    data: bytes | None = None
    path: Path | None = None

    def __post_init__(self) -> None:
        if (self.data is None) == (self.path is None):
            raise ValueError("Artifact needs exactly one of data or path")

    @property
    def size(self) -> int:
        if self.data is not None:
            return len(self.data)
        return self.path.stat().st_size  # type: ignore[union-attr]


@dataclass(frozen=True)
class UploadResult:
    public_url: str
    storage_key: str


@dataclass(frozen=True)
class ClipResult:
    job_id: str
    clip_url: str
    storage_key: str
    processing_time: float
    notification: NotificationStatus
    notification_error: str | None = None


def _now() -> datetime:
    return datetime.now(timezone.utc)
