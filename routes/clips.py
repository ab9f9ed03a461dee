"""Clip REST API. Mounted at / and again under /api."""

import logging

from fastapi import APIRouter, Depends, HTTPException

from app.dependencies import get_coordinator
from app.models import ClipCreateRequest, ClipCreateResponse, ClipStatusResponse, ErrorResponse
from services.coordinator import JobCoordinator
from services.store import jobs

router = APIRouter(tags=["clips"])
logger = logging.getLogger(__name__)


@router.post(
    "/clip",
    response_model=ClipCreateResponse,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def create_clip(
    body: ClipCreateRequest,
    coordinator: JobCoordinator = Depends(get_coordinator),
) -> ClipCreateResponse:
    """Trim, re-encode and upload a clip. Blocks until the job is done or failed."""
    logger.info(
        "[clips] POST /clip videoUrl=%s startTime=%s endTime=%s format=%s resolution=%s",
        body.video_url,
        body.start_time,
        body.end_time,
        body.format,
        body.resolution,
    )
    result = await coordinator.run(body.to_clip_request())
    return ClipCreateResponse.from_result(result)


@router.get("/clip/{job_id}", response_model=ClipStatusResponse)
def get_clip_job(job_id: str) -> ClipStatusResponse:
    """Job status for polling or post-mortem; jobs live in memory only."""
    job = jobs.get(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return ClipStatusResponse.from_job(job)
