"""Failure taxonomy for the clip pipeline. Each error remembers the stage it came from."""

from __future__ import annotations

from .clip import JobStage


class ClipPipelineError(Exception):
    stage: JobStage = JobStage.FAILED
    status_code = 500

    def __init__(self, message: str, *, stage: JobStage | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.job_id: str | None = None
        if stage is not None:
            self.stage = stage


class ValidationError(ClipPipelineError):
    stage = JobStage.VALIDATING
    status_code = 400


class AcquisitionError(ClipPipelineError):
    stage = JobStage.ACQUIRING


class TranscodeError(ClipPipelineError):
    stage = JobStage.TRANSCODING


class EmptyArtifactError(TranscodeError):
    """Transcoder reported success but produced zero bytes."""

    stage = JobStage.ASSEMBLING


class UploadError(ClipPipelineError):
    stage = JobStage.UPLOADING


class NotifyError(ClipPipelineError):
    stage = JobStage.NOTIFYING


class StageTimeoutError(ClipPipelineError):
    def __init__(self, stage: JobStage) -> None:
        super().__init__("timeout", stage=stage)


STAGE_ERRORS: dict[JobStage, type[ClipPipelineError]] = {
    JobStage.VALIDATING: ValidationError,
    JobStage.ACQUIRING: AcquisitionError,
    JobStage.TRANSCODING: TranscodeError,
    JobStage.ASSEMBLING: TranscodeError,
    JobStage.UPLOADING: UploadError,
    JobStage.NOTIFYING: NotifyError,
}
