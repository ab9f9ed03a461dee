import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.dependencies import get_coordinator
from app.models import ErrorResponse
from models import ClipPipelineError
from routes import clips

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Resolve ffmpeg and storage settings once, before the first request.
    coordinator = get_coordinator()
    logger.info("[main] Clip server started (sink=%s)", coordinator.sink_mode)
    yield


app = FastAPI(title="Clip Server", version="0.1.0", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)
app.include_router(clips.router)
app.include_router(clips.router, prefix="/api")


@app.get("/")
def root() -> dict[str, str]:
    return {"status": "ok", "service": "clip-server"}


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.exception_handler(ClipPipelineError)
async def clip_pipeline_error_handler(request: Request, exc: ClipPipelineError) -> JSONResponse:
    body = ErrorResponse(error=exc.message, job_id=exc.job_id, stage=exc.stage.value)
    return JSONResponse(
        status_code=exc.status_code,
        content=body.model_dump(by_alias=True, exclude_none=True),
    )


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    problems = "; ".join(
        f"{'.'.join(str(part) for part in err['loc'] if part != 'body') or 'body'}: {err['msg']}"
        for err in exc.errors()
    )
    logger.warning("[main] Rejected malformed request to %s: %s", request.url.path, problems)
    body = ErrorResponse(error=f"Invalid request: {problems}", stage="validating")
    return JSONResponse(status_code=400, content=body.model_dump(by_alias=True, exclude_none=True))
