from .clip import (
    CONTAINERS,
    DEFAULT_FORMAT,
    DEFAULT_RESOLUTION,
    Artifact,
    ClipJob,
    ClipRequest,
    ClipResult,
    JobStage,
    NotificationStatus,
    UploadResult,
)
from .errors import (
    AcquisitionError,
    ClipPipelineError,
    EmptyArtifactError,
    NotifyError,
    StageTimeoutError,
    TranscodeError,
    UploadError,
    ValidationError,
)

__all__ = [
    "CONTAINERS",
    "DEFAULT_FORMAT",
    "DEFAULT_RESOLUTION",
    "Artifact",
    "ClipJob",
    "ClipRequest",
    "ClipResult",
    "JobStage",
    "NotificationStatus",
    "UploadResult",
    "ClipPipelineError",
    "ValidationError",
    "AcquisitionError",
    "TranscodeError",
    "EmptyArtifactError",
    "UploadError",
    "NotifyError",
    "StageTimeoutError",
]
