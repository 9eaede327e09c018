# dependencies.py

import threading
from typing import Callable, Optional

import boto3
from fastapi import Request

from config import Settings, get_settings
from errors import ConfigurationError
from pipeline import CaptionPipeline
from polling import JobRegistry
from renderers import CreatomateRenderer, LocalFfmpegRenderer, RemotionLambdaRenderer
from services import AssemblyAITranscriber, LocalStorage, S3Storage


def _require(value, name: str):
    if not value:
        raise ConfigurationError(f"{name} is not configured")
    return value


def aws_client(service: str, settings: Settings):
    """Create an AWS client from the renderer's credentials."""
    return boto3.client(
        service,
        aws_access_key_id=settings.remotion_aws_access_key_id,
        aws_secret_access_key=settings.remotion_aws_secret_access_key,
        region_name=settings.remotion_aws_region,
    )


def build_renderer(settings: Settings):
    backend = settings.render_backend.lower()
    if backend == "lambda":
        return RemotionLambdaRenderer(
            lambda_client=aws_client("lambda", settings),
            s3_client=aws_client("s3", settings),
            function_name=_require(settings.remotion_function_name, "REMOTION_FUNCTION_NAME"),
            serve_url=_require(settings.remotion_serve_url, "REMOTION_SERVE_URL"),
            composition=settings.remotion_composition,
            version=_require(settings.remotion_version, "REMOTION_VERSION"),
            region=settings.remotion_aws_region,
            timeout_ms=settings.remotion_timeout_ms,
        )
    if backend == "creatomate":
        return CreatomateRenderer(
            api_key=_require(settings.creatomate_api_key, "CREATOMATE_API_KEY"),
            base_url=settings.creatomate_base_url,
            request_timeout=settings.request_timeout_seconds,
        )
    if backend == "local":
        return LocalFfmpegRenderer(
            outputs_dir=settings.outputs_dir,
            work_dir=settings.temp_dir,
            public_base_url=settings.public_base_url,
        )
    raise ConfigurationError(f"Unknown render backend: {settings.render_backend}")


def build_storage(settings: Settings, renderer=None):
    backend = settings.storage_backend.lower()
    if backend == "s3":
        return S3Storage(
            aws_client("s3", settings),
            region=settings.remotion_aws_region,
            bucket=settings.s3_bucket,
            bucket_resolver=getattr(renderer, "storage_bucket", None),
        )
    if backend == "local":
        return LocalStorage(settings.uploads_dir, settings.public_base_url)
    raise ConfigurationError(f"Unknown storage backend: {settings.storage_backend}")


def build_transcriber(settings: Settings) -> AssemblyAITranscriber:
    return AssemblyAITranscriber(
        api_key=_require(settings.assemblyai_api_key, "ASSEMBLYAI_API_KEY"),
        base_url=settings.assemblyai_base_url,
        poll_interval=settings.poll_interval_seconds,
        timeout=settings.transcription_timeout_seconds,
        request_timeout=settings.request_timeout_seconds,
    )


def build_pipeline(settings: Settings) -> CaptionPipeline:
    """Construct every service handle the pipeline needs from settings."""
    renderer = build_renderer(settings)
    return CaptionPipeline(
        transcriber=build_transcriber(settings) if renderer.needs_captions else None,
        storage=build_storage(settings, renderer),
        renderer=renderer,
        temp_dir=settings.temp_dir,
        poll_interval=settings.poll_interval_seconds,
        render_timeout=settings.render_timeout_seconds,
        render_max_attempts=settings.render_max_attempts,
    )


class PipelineProvider:
    """Builds the pipeline on first use and hands the same instance to every request."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        factory: Callable[[Settings], CaptionPipeline] = build_pipeline,
        pipeline: Optional[CaptionPipeline] = None,
    ):
        self._settings = settings
        self._factory = factory
        self._pipeline = pipeline
        self._lock = threading.Lock()

    def get(self) -> CaptionPipeline:
        if self._pipeline is None:
            with self._lock:
                if self._pipeline is None:
                    self._pipeline = self._factory(self._settings or get_settings())
        return self._pipeline


# Dependencies for FastAPI routes
def get_pipeline_provider(request: Request) -> PipelineProvider:
    return request.app.state.pipelines


def get_job_registry(request: Request) -> JobRegistry:
    return request.app.state.jobs
