from fastapi import FastAPI, HTTPException, Depends, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, StreamingResponse
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field, ValidationError
from typing import BinaryIO, Callable, Iterator, Optional
from urllib.parse import quote
from functools import partial
import mimetypes
import uuid
import os
import stat
import logging
from contextlib import asynccontextmanager

# Local imports
from config import Settings, settings
from job_store import JobStore
from models import JobStatus
from scheduler import JobScheduler
from security import validate_source_url, sanitize_filename, get_client_ip
from health import health_router, SERVICE_NAME, SERVICE_VERSION
from monitoring import setup_monitoring
from utils.dependencies import DependencyReport, check_dependencies

logger = logging.getLogger(__name__)


def setup_logging(app_settings: Settings) -> None:
    handlers = [logging.StreamHandler()]
    if app_settings.log_file:
        handlers.append(logging.FileHandler(app_settings.log_file))
    logging.basicConfig(
        level=getattr(logging, app_settings.log_level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=handlers
    )


setup_logging(settings)


# Request/Response models
class ConvertRequest(BaseModel):
    url: Optional[str] = None
    rights_confirmed: Optional[bool] = Field(default=None, alias="rightsConfirmed")

    model_config = {
        "populate_by_name": True,
        "json_schema_extra": {
            "example": {
                "url": "https://www.youtube.com/watch?v=dQw4w9WgXcQ",
                "rightsConfirmed": True
            }
        }
    }


class ConvertResponse(BaseModel):
    jobId: str


class StatusResponse(BaseModel):
    id: str
    status: str
    progress: int
    message: str
    downloadUrl: Optional[str] = None
    fileName: Optional[str] = None


def get_store(request: Request) -> JobStore:
    return request.app.state.store


def get_scheduler(request: Request) -> JobScheduler:
    return request.app.state.scheduler


class PayloadTooLarge(Exception):
    pass


async def read_limited_body(request: Request, limit: int) -> bytes:
    """Read the request body, giving up as soon as it passes ``limit`` bytes.

    Chunked uploads carry no Content-Length, so the running total is what
    enforces the limit; the header only allows rejecting early.
    """
    content_length = request.headers.get("content-length")
    if content_length and content_length.isdigit() and int(content_length) > limit:
        raise PayloadTooLarge()

    received = 0
    chunks = []
    async for chunk in request.stream():
        received += len(chunk)
        if received > limit:
            raise PayloadTooLarge()
        chunks.append(chunk)
    return b"".join(chunks)


def open_artifact(path: str) -> Optional[BinaryIO]:
    """Open a finished job's file, or None if it is gone or not a regular file"""
    try:
        handle = open(path, "rb")
    except OSError:
        return None
    if not stat.S_ISREG(os.fstat(handle.fileno()).st_mode):
        handle.close()
        return None
    return handle


def iter_file(handle: BinaryIO, chunk_size: int = 64 * 1024) -> Iterator[bytes]:
    with handle:
        while True:
            chunk = handle.read(chunk_size)
            if not chunk:
                break
            yield chunk


def content_disposition(file_name: str) -> str:
    quoted = quote(file_name)
    if quoted != file_name:
        return f"attachment; filename*=utf-8''{quoted}"
    return f'attachment; filename="{file_name}"'


def create_app(
    app_settings: Optional[Settings] = None,
    dependency_checker: Optional[Callable[[], DependencyReport]] = None,
) -> FastAPI:
    """Build the application; the job store lives and dies with it"""
    app_settings = app_settings or settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager"""
        store = JobStore()
        scheduler = JobScheduler(store, app_settings)
        app.state.store = store
        app.state.scheduler = scheduler

        try:
            await scheduler.start()
            logger.info(f"Application started, downloads in {os.path.abspath(app_settings.downloads_dir)}")
        except Exception as e:
            logger.error(f"Startup error: {e}")
            raise

        yield

        logger.info("Application shutting down")
        await scheduler.stop()

    app = FastAPI(
        title=SERVICE_NAME,
        description="Convert media links to downloadable MP3 files",
        version=SERVICE_VERSION,
        lifespan=lifespan
    )
    app.state.settings = app_settings
    app.state.dependency_checker = dependency_checker or partial(check_dependencies, app_settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    setup_monitoring(app)

    app.include_router(health_router, prefix="/health", tags=["health"])

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        logger.info(f"Rejected request body on {request.url.path}: {exc.errors()}")
        return JSONResponse(status_code=400, content={"detail": "Invalid request body."})

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.error(f"Global exception on {request.url}: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error", "error_id": str(uuid.uuid4())}
        )

    @app.get("/api/diagnostics")
    async def diagnostics(request: Request):
        """Report whether the external tools are installed"""
        report = await run_in_threadpool(request.app.state.dependency_checker)
        return report.to_dict()

    @app.post(
        "/api/convert",
        response_model=ConvertResponse,
        openapi_extra={
            "requestBody": {
                "content": {"application/json": {"schema": ConvertRequest.model_json_schema()}}
            }
        }
    )
    async def convert(request: Request, scheduler: JobScheduler = Depends(get_scheduler)):
        """Submit a conversion job"""
        try:
            body = await read_limited_body(request, app_settings.max_body_size)
        except PayloadTooLarge:
            raise HTTPException(status_code=413, detail="Payload too large.")

        try:
            payload = ConvertRequest.model_validate_json(body) if body.strip() else ConvertRequest()
        except ValidationError as e:
            logger.info(f"Rejected request body on {request.url.path}: {e.errors()}")
            raise HTTPException(status_code=400, detail="Invalid request body.")

        if not payload.rights_confirmed:
            raise HTTPException(
                status_code=400,
                detail="Please confirm you have the rights to download this content."
            )

        if not validate_source_url(payload.url, app_settings.allowed_hosts):
            raise HTTPException(status_code=400, detail="Please provide a valid YouTube link.")

        report = await run_in_threadpool(request.app.state.dependency_checker)
        if not report.ok:
            raise HTTPException(
                status_code=500,
                detail="Server is missing required dependencies. Install yt-dlp and ffmpeg to continue."
            )

        job = scheduler.submit(payload.url)
        logger.info(f"Job {job.id} submitted by {get_client_ip(request)}")
        return ConvertResponse(jobId=job.id)

    @app.get("/api/status/{job_id}", response_model=StatusResponse)
    def get_job_status(job_id: str, store: JobStore = Depends(get_store)):
        """Get job status"""
        job = store.get(job_id)
        if not job:
            raise HTTPException(status_code=404, detail="Job not found.")
        return job.to_status_dict()

    @app.get("/api/download/{job_id}")
    def download_artifact(job_id: str, store: JobStore = Depends(get_store)):
        """Download the converted file"""
        job = store.get(job_id)
        if not job or job.status != JobStatus.FINISHED or not job.file_path:
            raise HTTPException(status_code=404, detail="File not available.")

        # Serve from the open handle so a concurrent sweep cannot pull the file away mid-response
        handle = open_artifact(job.file_path)
        if handle is None:
            logger.info(f"Job {job_id}: artifact {job.file_path} no longer exists")
            raise HTTPException(status_code=404, detail="File not available.")

        safe_name = sanitize_filename(job.file_name, default=f"audio.{app_settings.audio_format}")
        if safe_name.lower().endswith(".mp3"):
            media_type = "audio/mpeg"
        else:
            media_type = mimetypes.guess_type(safe_name)[0] or "application/octet-stream"

        return StreamingResponse(
            iter_file(handle),
            media_type=media_type,
            headers={
                "Content-Length": str(os.fstat(handle.fileno()).st_size),
                "Content-Disposition": content_disposition(safe_name),
            }
        )

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=settings.host, port=settings.port)
