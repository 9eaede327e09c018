"""
Router for the captioning endpoints.
Handles video processing and the health check.
"""

import os
import uuid
import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, UploadFile
from fastapi.responses import JSONResponse

from config import Settings, get_settings
from dependencies import PipelineProvider, get_job_registry, get_pipeline_provider
from polling import JobRegistry
from schemas import ErrorResponse, HealthResponse, ProcessResponse


# Create the router
router = APIRouter(prefix="/api", tags=["processing"])


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=ErrorResponse(error=message).model_dump())


def _upload_size(video: UploadFile) -> int:
    if video.size is not None:
        return video.size
    video.file.seek(0, os.SEEK_END)
    size = video.file.tell()
    video.file.seek(0)
    return size


@router.post(
    "/process",
    response_model=ProcessResponse,
    responses={400: {"model": ErrorResponse}, 413: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
def process_video(
    video: Optional[UploadFile] = File(None),
    pipelines: PipelineProvider = Depends(get_pipeline_provider),
    jobs: JobRegistry = Depends(get_job_registry),
    settings: Settings = Depends(get_settings),
):
    """
    Transcribes the uploaded video, renders captions onto it and
    returns the URL of the captioned result.
    """
    if video is None or not video.filename:
        return _error(400, "No video uploaded")

    if _upload_size(video) > settings.max_upload_bytes:
        return _error(413, f"Video exceeds the {settings.max_upload_mb} MB upload limit")

    job_id = uuid.uuid4().hex
    token = jobs.register(job_id)
    try:
        # built only once the request is known to carry a video
        pipeline = pipelines.get()
        result = pipeline.run(job_id, video.file, token=token)
    except Exception as e:
        logging.error(f"[{job_id}] ❌ Error: {e}")
        return _error(500, str(e))
    finally:
        jobs.release(job_id)

    response = ProcessResponse(video_url=result.video_url, transcription=result.transcription)
    return JSONResponse(content=response.model_dump(by_alias=True, exclude_none=True))


@router.get("/health", response_model=HealthResponse)
def health():
    return HealthResponse()
