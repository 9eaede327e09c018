"""
Rendering backends that composite captions onto a source video.

Each renderer exposes `submit(request) -> RenderHandle` and
`get_progress(handle) -> RenderProgress`; `wait_for_render` drives the
status loop for any of them.
"""

import os
import hashlib
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

import ffmpeg
import requests
from botocore.exceptions import BotoCoreError, ClientError

from captions import group_into_pages, pages_to_srt
from errors import RenderError, RenderTimeoutError
from polling import CancellationToken, poll_until
from schemas import CaptionWord

REMOTION_BUCKET_PREFIX = "remotionlambda-"
INPUT_PROPS_PREFIX = "input-props"
# Remotion passes larger props by bucket reference instead of inline
MAX_INLINE_PROPS_BYTES = 200_000
CAPTION_STYLE = (
    "FontName=Arial Black,FontSize=18,Bold=1,PrimaryColour=&H00FFFFFF,"
    "OutlineColour=&H00000000,BorderStyle=1,Outline=3,Alignment=2,MarginV=120"
)


@dataclass
class RenderRequest:
    """Everything a renderer needs to produce one captioned video."""
    job_id: str
    video_url: str
    captions: List[CaptionWord] = field(default_factory=list)
    source_path: Optional[str] = None


@dataclass
class RenderHandle:
    render_id: str
    bucket_name: Optional[str] = None


@dataclass
class RenderProgress:
    done: bool = False
    fatal_error: bool = False
    errors: List[str] = field(default_factory=list)
    overall_progress: float = 0.0
    output_url: Optional[str] = None

    @property
    def percent(self) -> int:
        return round((self.overall_progress or 0) * 100)


class RemotionLambdaRenderer:
    """Renders the CaptionedVideo composition on a deployed Remotion Lambda function."""

    needs_captions = True

    def __init__(
        self,
        lambda_client,
        function_name: str,
        serve_url: str,
        composition: str,
        version: str,
        s3_client=None,
        region: str = "us-east-1",
        codec: str = "h264",
        max_retries: int = 1,
        timeout_ms: int = 30000,
    ):
        self.lambda_client = lambda_client
        self.s3 = s3_client
        self.function_name = function_name
        self.serve_url = serve_url
        self.composition = composition
        self.version = version
        self.region = region
        self.codec = codec
        self.max_retries = max_retries
        self.timeout_ms = timeout_ms
        self._bucket = None

    @staticmethod
    def _decode_reply(raw: bytes) -> dict:
        """The function may stream several JSON documents; the last one is the result."""
        text = raw.decode("utf-8").strip()
        decoder = json.JSONDecoder()
        documents, pos = [], 0
        while pos < len(text):
            document, pos = decoder.raw_decode(text, pos)
            documents.append(document)
            while pos < len(text) and text[pos].isspace():
                pos += 1
        return documents[-1] if documents else {}

    def _invoke(self, payload: dict) -> dict:
        try:
            response = self.lambda_client.invoke(
                FunctionName=self.function_name,
                InvocationType="RequestResponse",
                Payload=json.dumps(payload).encode("utf-8"),
            )
        except (BotoCoreError, ClientError) as e:
            raise RenderError(f"Could not invoke render function: {e}") from e

        body = self._decode_reply(response["Payload"].read())
        if response.get("FunctionError") or "errorMessage" in body:
            raise RenderError(body.get("errorMessage") or "Render function failed")
        if body.get("type") == "error":
            raise RenderError(body.get("message") or "Render function failed")
        return body

    def storage_bucket(self) -> Optional[str]:
        """Find the bucket Remotion renders into so the source can live next to it."""
        if self._bucket is not None or self.s3 is None:
            return self._bucket
        try:
            buckets = self.s3.list_buckets().get("Buckets", [])
        except (BotoCoreError, ClientError) as e:
            raise RenderError(f"Could not list render buckets: {e}") from e

        region_tag = self.region.replace("-", "")
        names = [b["Name"] for b in buckets if b["Name"].startswith(REMOTION_BUCKET_PREFIX)]
        self._bucket = next((name for name in names if region_tag in name), names[0] if names else None)
        return self._bucket

    def _serialize_input_props(self, job_id: str, input_props: dict) -> dict:
        """Inline small props; larger ones go to the render bucket and are passed by reference."""
        payload = json.dumps(input_props)
        if len(payload.encode("utf-8")) <= MAX_INLINE_PROPS_BYTES:
            return {"type": "payload", "payload": payload}

        bucket = self.storage_bucket()
        if not bucket:
            raise RenderError("Input props are too large to send inline and no Remotion bucket was found")

        digest = hashlib.sha256(payload.encode("utf-8")).hexdigest()
        logging.info(f"[{job_id}] Uploading {len(payload)} bytes of input props to s3://{bucket}")
        try:
            self.s3.put_object(
                Bucket=bucket,
                Key=f"{INPUT_PROPS_PREFIX}/{digest}.json",
                Body=payload.encode("utf-8"),
                ContentType="application/json",
            )
        except (BotoCoreError, ClientError) as e:
            raise RenderError(f"Could not upload input props: {e}") from e
        return {"type": "bucket-url", "hash": digest, "bucketName": bucket}

    def start_payload(self, request: RenderRequest) -> dict:
        input_props = {
            "videoUrl": request.video_url,
            "captions": [c.to_props() for c in request.captions],
        }
        return {
            "type": "start",
            "version": self.version,
            "serveUrl": self.serve_url,
            "composition": self.composition,
            "inputProps": self._serialize_input_props(request.job_id, input_props),
            "codec": self.codec,
            "audioCodec": None,
            "imageFormat": "jpeg",
            "jpegQuality": 80,
            "crf": None,
            "pixelFormat": None,
            "proResProfile": None,
            "x264Preset": None,
            "envVariables": {},
            "maxRetries": self.max_retries,
            "privacy": "public",
            "logLevel": "info",
            "frameRange": None,
            "framesPerLambda": None,
            "concurrencyPerLambda": 1,
            "outName": None,
            "timeoutInMilliseconds": self.timeout_ms,
            "chromiumOptions": {},
            "scale": 1,
            "everyNthFrame": 1,
            "numberOfGifLoops": 0,
            "downloadBehavior": {"type": "play-in-browser"},
            "muted": False,
            "overwrite": False,
            "audioBitrate": None,
            "videoBitrate": None,
            "encodingMaxRate": None,
            "encodingBufferSize": None,
            "webhook": None,
            "forceHeight": None,
            "forceWidth": None,
            "bucketName": None,
            "rendererFunctionName": None,
            "offthreadVideoCacheSizeInBytes": None,
            "deleteAfter": None,
            "colorSpace": None,
            "preferLossless": False,
            "forcePathStyle": False,
            "metadata": None,
        }

    def status_payload(self, handle: RenderHandle) -> dict:
        return {
            "type": "status",
            "version": self.version,
            "renderId": handle.render_id,
            "bucketName": handle.bucket_name,
            "logLevel": "info",
            "s3OutputProvider": None,
            "forcePathStyle": False,
        }

    def submit(self, request: RenderRequest) -> RenderHandle:
        logging.info(f"[{request.job_id}] 🎬 Starting Lambda render...")
        body = self._invoke(self.start_payload(request))
        if not body.get("renderId"):
            raise RenderError("Render function did not return a render id")

        logging.info(f"[{request.job_id}] Render started: {body['renderId']}")
        return RenderHandle(render_id=body["renderId"], bucket_name=body.get("bucketName"))

    def get_progress(self, handle: RenderHandle) -> RenderProgress:
        body = self._invoke(self.status_payload(handle))
        return RenderProgress(
            done=bool(body.get("done")),
            fatal_error=bool(body.get("fatalErrorEncountered")),
            errors=[e.get("message", "") for e in body.get("errors") or [] if isinstance(e, dict)],
            overall_progress=float(body.get("overallProgress") or 0),
            output_url=body.get("outputFile"),
        )


class CreatomateRenderer:
    """Creatomate render that transcribes and captions the video by itself."""

    needs_captions = False

    def __init__(self, api_key: str, base_url: str, session: Optional[requests.Session] = None, request_timeout: int = 180):
        self.base_url = base_url.rstrip("/")
        self.request_timeout = request_timeout
        self.session = session or requests.Session()
        self.session.headers.update({"Authorization": f"Bearer {api_key}"})

    @staticmethod
    def build_source(video_url: str) -> dict:
        return {
            "output_format": "mp4",
            "width": 1080,
            "height": 1920,
            "elements": [
                {"type": "video", "id": "video-1", "source": video_url},
                {
                    "type": "text",
                    "transcript_source": "video-1",
                    "transcript_effect": "highlight",
                    "transcript_maximum_length": 3,
                    "y": "80%",
                    "width": "90%",
                    "height": "25%",
                    "x_alignment": "50%",
                    "y_alignment": "50%",
                    "fill_color": "#ffffff",
                    "stroke_color": "#000000",
                    "stroke_width": "1.5 vmin",
                    "font_family": "Montserrat",
                    "font_weight": "800",
                    "font_size": "8 vmin",
                },
            ],
        }

    def submit(self, request: RenderRequest) -> RenderHandle:
        logging.info(f"[{request.job_id}] 🎬 Starting Creatomate render...")
        try:
            response = self.session.post(
                f"{self.base_url}/renders",
                json={"source": self.build_source(request.video_url)},
                timeout=self.request_timeout,
            )
            response.raise_for_status()
        except requests.RequestException as e:
            raise RenderError(f"Could not start Creatomate render: {e}") from e

        renders = response.json()
        if not renders:
            raise RenderError("Creatomate returned no renders")
        return RenderHandle(render_id=renders[0]["id"])

    def get_progress(self, handle: RenderHandle) -> RenderProgress:
        try:
            response = self.session.get(f"{self.base_url}/renders/{handle.render_id}", timeout=self.request_timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            raise RenderError(f"Could not check Creatomate render: {e}") from e

        render = response.json()
        status = render.get("status")
        return RenderProgress(
            done=status == "succeeded",
            fatal_error=status == "failed",
            errors=[render["error_message"]] if render.get("error_message") else [],
            overall_progress=1.0 if status == "succeeded" else 0.0,
            output_url=render.get("url"),
        )


class LocalFfmpegRenderer:
    """Burns caption pages into the video with ffmpeg and serves it from /outputs."""

    needs_captions = True

    def __init__(self, outputs_dir: Path, work_dir: Path, public_base_url: str):
        self.outputs_dir = Path(outputs_dir)
        self.work_dir = Path(work_dir)
        self.public_base_url = public_base_url.rstrip("/")

    def _output_path(self, render_id: str) -> Path:
        return self.outputs_dir / f"{render_id}.mp4"

    @staticmethod
    def _escape_filter_path(path: Path) -> str:
        return str(path).replace("\\", "/").replace(":", "\\:").replace("'", "\\'")

    def submit(self, request: RenderRequest) -> RenderHandle:
        self.outputs_dir.mkdir(parents=True, exist_ok=True)
        self.work_dir.mkdir(parents=True, exist_ok=True)

        srt_path = self.work_dir / f"{request.job_id}.srt"
        output_path = self._output_path(request.job_id)
        srt_path.write_text(pages_to_srt(group_into_pages(request.captions)), encoding="utf-8")

        subtitles = f"subtitles='{self._escape_filter_path(srt_path)}':force_style='{CAPTION_STYLE}'"
        logging.info(f"[{request.job_id}] 🎬 Rendering captions locally into {output_path}")
        try:
            (
                ffmpeg
                .input(request.source_path or request.video_url)
                .output(str(output_path), vf=subtitles, vcodec="libx264", acodec="copy")
                .run(overwrite_output=True, capture_stdout=True, capture_stderr=True)
            )
        except ffmpeg.Error as e:
            error_details = e.stderr.decode("utf8").strip() if e.stderr else "Unknown FFmpeg error"
            logging.error(f"FFmpeg caption render failed: {error_details}")
            last_line = error_details.splitlines()[-1] if error_details else "Unknown FFmpeg error"
            raise RenderError(f"Local render failed: {last_line}") from e
        finally:
            if os.path.exists(srt_path):
                os.remove(srt_path)

        return RenderHandle(render_id=request.job_id)

    def get_progress(self, handle: RenderHandle) -> RenderProgress:
        output_path = self._output_path(handle.render_id)
        if not output_path.exists():
            return RenderProgress(fatal_error=True, errors=["Rendered video not found"])
        return RenderProgress(
            done=True,
            overall_progress=1.0,
            output_url=f"{self.public_base_url}/outputs/{output_path.name}",
        )


def wait_for_render(
    renderer,
    handle: RenderHandle,
    job_id: str = "-",
    interval: float = 1.0,
    timeout: Optional[float] = None,
    max_attempts: Optional[int] = None,
    token: Optional[CancellationToken] = None,
) -> str:
    """
    Poll the renderer until the render is done and return its output URL.
    A fatal error raises RenderError with the first message the renderer reported.
    """

    def is_finished(progress: RenderProgress) -> bool:
        if progress.done:
            return True
        if progress.fatal_error:
            message = next((m for m in progress.errors if m), "Render failed")
            raise RenderError(message)
        return False

    def log_progress(progress: RenderProgress) -> None:
        logging.info(f"[{job_id}] Progress: {progress.percent}%")

    progress = poll_until(
        lambda: renderer.get_progress(handle),
        is_finished,
        interval=interval,
        timeout=timeout,
        max_attempts=max_attempts,
        token=token,
        on_pending=log_progress,
        what="Render",
        timeout_error=RenderTimeoutError,
    )
    if not progress.output_url:
        raise RenderError("Render finished without an output file")

    logging.info(f"[{job_id}] ✅ Render complete!")
    return progress.output_url
