from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from models import DEFAULT_FORMAT, DEFAULT_RESOLUTION, ClipJob, ClipRequest, ClipResult, NotificationStatus


class ClipCreateRequest(BaseModel):
    """Body of POST /clip. Every field is optional here; the coordinator validates."""

    model_config = ConfigDict(populate_by_name=True)

    video_url: str | None = Field(default=None, alias="videoUrl")
    start_time: float | None = Field(default=None, alias="startTime")
    end_time: float | None = Field(default=None, alias="endTime")
    format: str | None = None
    resolution: str | None = None
    user_id: int | str | None = None
    video_id: int | str | None = None

    def to_clip_request(self) -> ClipRequest:
        return ClipRequest(
            source_url=(self.video_url or "").strip() or None,
            start_time=self.start_time,
            end_time=self.end_time,
            output_format=(self.format or DEFAULT_FORMAT).strip().lstrip(".").lower(),
            resolution=(self.resolution or DEFAULT_RESOLUTION).strip().lower(),
            user_id=str(self.user_id) if self.user_id is not None else None,
            video_id=str(self.video_id) if self.video_id is not None else None,
        )


class ClipCreateResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    clip_url: str = Field(alias="clipUrl")
    job_id: str = Field(alias="jobId")
    processing_time: float = Field(alias="processingTime")
    notification: NotificationStatus
    notification_error: str | None = Field(default=None, alias="notificationError")

    @classmethod
    def from_result(cls, result: ClipResult) -> "ClipCreateResponse":
        return cls(
            clip_url=result.clip_url,
            job_id=result.job_id,
            processing_time=round(result.processing_time, 3),
            notification=result.notification,
            notification_error=result.notification_error,
        )


class ErrorResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = False
    error: str
    job_id: str | None = Field(default=None, alias="jobId")
    stage: str | None = None


class ClipStatusResponse(BaseModel):
    """Snapshot of a job from the in-memory registry. GET /clip/{job_id}."""

    model_config = ConfigDict(populate_by_name=True)

    job_id: str = Field(alias="jobId")
    stage: str
    storage_key: str = Field(alias="storageKey")
    clip_url: str | None = Field(default=None, alias="clipUrl")
    progress: float | None = None
    failed_stage: str | None = Field(default=None, alias="failedStage")
    failure_reason: str | None = Field(default=None, alias="failureReason")
    notification: NotificationStatus | None = None
    stage_times: dict[str, datetime] = Field(alias="stageTimes")

    @classmethod
    def from_job(cls, job: ClipJob) -> "ClipStatusResponse":
        return cls(
            job_id=job.id,
            stage=job.stage.value,
            storage_key=job.storage_key,
            clip_url=job.clip_url,
            progress=job.progress,
            failed_stage=job.failed_stage.value if job.failed_stage else None,
            failure_reason=job.failure_reason,
            notification=job.notification,
            stage_times={stage.value: ts for stage, ts in job.stage_times.items()},
        )
