"""
vidshift Service
================

FastAPI entry point for running transformations over HTTP.

Uploads are accepted immediately and transformed in a background task;
clients poll the job or follow its progress over a WebSocket, then
download the artifact.

Finished jobs stay retrievable for server.job_ttl_seconds and the
registry keeps at most server.max_jobs finished entries.

Endpoints:
    GET    /                                  - Service information
    GET    /health                            - Liveness probe
    POST   /transformations                   - Upload and start a job (202)
    GET    /transformations/{job_id}          - Job status, progress, result
    GET    /transformations/{job_id}/artifact - Encoded blob download
    DELETE /transformations/{job_id}          - Cancel a running job
    WS     /ws/transformations/{job_id}       - Real-time progress stream
"""

import asyncio
import logging
import os
import time
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator, Dict, Optional

from fastapi import FastAPI, File, Form, UploadFile, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse, Response
from pydantic import ValidationError

from vidshift.config import settings
from vidshift.errors import ErrorCategory, TransformationError
from vidshift.models.output import TransformationResult
from vidshift.models.transform import TransformConfig
from vidshift.pipeline import ProgressRelay, transform_file
from vidshift.probe import detect_mime_type


logger = logging.getLogger(__name__)


# =============================================================================
# Job Registry
# =============================================================================

@dataclass
class TransformationJob:
    """One submitted transformation and its outcome."""

    job_id: str
    filename: str
    config: Optional[TransformConfig]
    status: str = "queued"
    relay: ProgressRelay = field(default_factory=ProgressRelay)
    cancel_event: asyncio.Event = field(default_factory=asyncio.Event)
    task: Optional[asyncio.Task] = None
    result: Optional[TransformationResult] = None
    error_category: Optional[str] = None
    error_message: Optional[str] = None
    created_at: float = field(default_factory=time.time)
    finished_at: Optional[float] = None

    @property
    def finished(self) -> bool:
        return self.status in ("completed", "failed", "cancelled")

    def to_dict(self) -> dict:
        latest = self.relay.latest
        payload = {
            "job_id": self.job_id,
            "filename": self.filename,
            "status": self.status,
            "progress": latest.model_dump(mode="json") if latest else None,
            "result": self.result.model_dump(mode="json") if self.result else None,
            "error": None,
        }
        if self.error_category:
            payload["error"] = {
                "category": self.error_category,
                "message": self.error_message,
            }
        return payload


_jobs: Dict[str, TransformationJob] = {}
_startup_time: float = 0.0


def _evict_jobs(now: Optional[float] = None) -> None:
    """
    Drop finished jobs past their retention window, then the oldest
    finished jobs while the registry is over its cap. Running jobs stay.
    """
    if now is None:
        now = time.time()

    ttl = settings.server.job_ttl_seconds
    evicted = [
        job_id for job_id, job in _jobs.items()
        if job.finished_at is not None and now - job.finished_at > ttl
    ]

    overflow = len(_jobs) - len(evicted) - settings.server.max_jobs
    if overflow > 0:
        finished = sorted(
            (job for job in _jobs.values() if job.finished_at is not None and job.job_id not in evicted),
            key=lambda job: job.finished_at,
        )
        evicted.extend(job.job_id for job in finished[:overflow])

    for job_id in evicted:
        del _jobs[job_id]
    if evicted:
        logger.info(f"Evicted {len(evicted)} finished jobs, {len(_jobs)} remain")


def get_job(job_id: str) -> Optional[TransformationJob]:
    _evict_jobs()
    return _jobs.get(job_id)


async def _run_job(job: TransformationJob, data: bytes) -> None:
    """Background task executing one transformation."""
    job.status = "running"
    logger.info(f"Job {job.job_id} started ({job.filename}, {len(data)} bytes)")

    try:
        job.result = await transform_file(
            data,
            job.config,
            filename=job.filename,
            settings=settings.model_dump(),
            on_progress=job.relay,
            cancel_event=job.cancel_event,
        )
        job.status = "completed"
        logger.info(f"Job {job.job_id} completed: {job.result.artifact.size_bytes} bytes")

    except TransformationError as e:
        job.status = "cancelled" if e.category == ErrorCategory.CANCELLED else "failed"
        job.error_category = e.category.value
        job.error_message = e.user_message
        logger.warning(f"Job {job.job_id} {job.status}: {e}")

    except Exception as e:
        job.status = "failed"
        job.error_category = "internal"
        job.error_message = "Unexpected error while transforming the video."
        logger.exception(f"Job {job.job_id} crashed: {e}")

    finally:
        job.finished_at = time.time()
        job.relay.finish()


def _error_response(status_code: int, category: str, message: str) -> JSONResponse:
    return JSONResponse(
        {"error": {"category": category, "message": message}},
        status_code=status_code,
    )


# =============================================================================
# Lifespan Management
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan manager with graceful shutdown."""
    global _startup_time

    _startup_time = time.time()
    logger.info(f"Starting {settings.service.name} {settings.service.version}")
    logger.info(
        f"Pipeline mode: {settings.pipeline.mode}, "
        f"codecs: {settings.encoder.codec_preference}, "
        f"realtime pacing: {settings.encoder.realtime_pacing}"
    )

    yield

    logger.info("Shutting down gracefully...")

    running = [job for job in _jobs.values() if job.task and not job.task.done()]
    for job in running:
        job.cancel_event.set()
    for job in running:
        try:
            await asyncio.wait_for(job.task, timeout=5.0)
        except asyncio.TimeoutError:
            job.task.cancel()
            try:
                await job.task
            except asyncio.CancelledError:
                pass

    logger.info("Shutdown complete")


# =============================================================================
# FastAPI Application
# =============================================================================

app = FastAPI(
    title="vidshift",
    description="Technically distinct, perceptually identical video re-encoding",
    version=settings.service.version,
    lifespan=lifespan,
)


# =============================================================================
# HTTP Endpoints
# =============================================================================

@app.get("/")
async def root() -> JSONResponse:
    """Service information endpoint."""
    return JSONResponse({
        "service": "vidshift",
        "version": settings.service.version,
        "name": settings.service.name,
        "status": "running",
        "pipeline_mode": settings.pipeline.mode,
        "codec_preference": settings.encoder.codec_preference,
    })


@app.get("/health")
async def health() -> JSONResponse:
    """
    Liveness probe - is the process alive?

    Always returns 200 if the service is running.
    """
    return JSONResponse({
        "status": "healthy",
        "uptime_seconds": round(time.time() - _startup_time, 1),
        "jobs": len(_jobs),
    })


@app.post("/transformations")
async def create_transformation(
    file: UploadFile = File(...),
    config: Optional[str] = Form(None),
) -> JSONResponse:
    """
    Upload a video and start a transformation.

    The optional `config` form field is a TransformConfig JSON document.
    Without it, the target parameters are derived from the source.
    """
    filename = file.filename or "video"
    mime_type = detect_mime_type(filename)
    if not mime_type or not mime_type.startswith("video/"):
        return _error_response(400, ErrorCategory.BAD_INPUT.value, "Please select a valid video file.")

    transform_config = None
    if config:
        try:
            transform_config = TransformConfig.model_validate_json(config)
        except ValidationError as e:
            logger.info(f"Rejected transformation config: {e.error_count()} errors")
            return JSONResponse(
                {
                    "error": {
                        "category": ErrorCategory.BAD_INPUT.value,
                        "message": "Invalid transformation settings.",
                        "details": e.errors(include_url=False, include_context=False),
                    }
                },
                status_code=422,
            )

    data = await file.read()
    max_bytes = settings.server.max_upload_mb * 1024 * 1024
    if len(data) > max_bytes:
        return _error_response(
            413,
            ErrorCategory.BAD_INPUT.value,
            f"File exceeds the {settings.server.max_upload_mb} MB upload limit.",
        )
    if not data:
        return _error_response(400, ErrorCategory.BAD_INPUT.value, "The uploaded file is empty.")

    _evict_jobs()
    job = TransformationJob(
        job_id=uuid.uuid4().hex,
        filename=filename,
        config=transform_config,
    )
    _jobs[job.job_id] = job
    job.task = asyncio.create_task(_run_job(job, data), name=f"transformation_{job.job_id}")

    return JSONResponse({"job_id": job.job_id, "status": job.status}, status_code=202)


@app.get("/transformations/{job_id}")
async def get_transformation(job_id: str) -> JSONResponse:
    """Job status, latest progress, and result or error."""
    job = get_job(job_id)
    if job is None:
        return _error_response(404, "not_found", "Unknown transformation job.")
    return JSONResponse(job.to_dict())


@app.get("/transformations/{job_id}/artifact")
async def download_artifact(job_id: str) -> Response:
    """Encoded blob, named with the negotiated extension."""
    job = get_job(job_id)
    if job is None:
        return _error_response(404, "not_found", "Unknown transformation job.")
    if job.result is None:
        return _error_response(409, "not_ready", f"Job is {job.status}.")

    artifact = job.result.artifact
    return Response(
        content=artifact.data,
        media_type=artifact.mime_type,
        headers={
            "Content-Disposition": f'attachment; filename="{job.result.suggested_filename()}"',
        },
    )


@app.delete("/transformations/{job_id}")
async def cancel_transformation(job_id: str) -> JSONResponse:
    """Request cooperative cancellation of a running job."""
    job = get_job(job_id)
    if job is None:
        return _error_response(404, "not_found", "Unknown transformation job.")
    if not job.finished:
        job.cancel_event.set()
        logger.info(f"Cancellation requested for job {job_id}")
    return JSONResponse({"job_id": job_id, "status": job.status}, status_code=202)


# =============================================================================
# WebSocket Endpoints
# =============================================================================

@app.websocket("/ws/transformations/{job_id}")
async def transformation_progress(websocket: WebSocket, job_id: str) -> None:
    """WebSocket endpoint streaming progress events until the job ends."""
    await websocket.accept()

    job = get_job(job_id)
    if job is None:
        await websocket.send_json({"error": {"category": "not_found", "message": "Unknown transformation job."}})
        await websocket.close(code=4404)
        return

    logger.info(f"Client connected to progress of job {job_id}")
    queue = job.relay.subscribe()

    try:
        while True:
            event = await queue.get()
            if event is None:
                break
            await websocket.send_json(event.model_dump(mode="json"))

        await websocket.send_json(job.to_dict())
        await websocket.close()

    except WebSocketDisconnect:
        logger.info(f"Client disconnected from job {job_id}")
    finally:
        job.relay.unsubscribe(queue)


# =============================================================================
# Main Entry Point
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    port = int(os.environ.get("PORT", settings.server.port))

    uvicorn.run(
        "vidshift.main:app",
        host=settings.server.host,
        port=port,
        reload=False,
    )
