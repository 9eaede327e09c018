"""
The captioning job: spool upload -> transcribe -> store source -> render -> poll.
"""

import os
import shutil
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import BinaryIO, List, Optional

from captions import transcript_text
from polling import CancellationToken
from renderers import RenderRequest, wait_for_render
from schemas import CaptionWord


@dataclass
class RenderResult:
    video_url: str
    transcription: Optional[str] = None
    captions: List[CaptionWord] = field(default_factory=list)


class CaptionPipeline:
    """Runs one captioning job end to end with explicitly supplied service handles."""

    def __init__(
        self,
        transcriber,
        storage,
        renderer,
        temp_dir: Path,
        poll_interval: float = 1.0,
        render_timeout: Optional[float] = None,
        render_max_attempts: Optional[int] = None,
    ):
        self.transcriber = transcriber
        self.storage = storage
        self.renderer = renderer
        self.temp_dir = Path(temp_dir)
        self.poll_interval = poll_interval
        self.render_timeout = render_timeout
        self.render_max_attempts = render_max_attempts

    def temp_path(self, job_id: str) -> Path:
        return self.temp_dir / f"{job_id}.mp4"

    def _spool(self, path: Path, upload: BinaryIO) -> None:
        self.temp_dir.mkdir(parents=True, exist_ok=True)
        with open(path, "wb") as buffer:
            shutil.copyfileobj(upload, buffer)

    def _cleanup(self, path: Path) -> None:
        try:
            if os.path.exists(path):
                os.remove(path)
        except OSError as e:
            logging.warning(f"Could not delete temp file {path}: {e}")

    def run(self, job_id: str, upload: BinaryIO, token: Optional[CancellationToken] = None) -> RenderResult:
        token = token or CancellationToken()
        logging.info(f"[{job_id}] Starting...")
        source_path = self.temp_path(job_id)

        try:
            self._spool(source_path, upload)

            captions: List[CaptionWord] = []
            if self.renderer.needs_captions:
                logging.info(f"[{job_id}] 📝 Transcribing...")
                captions = self.transcriber.transcribe(str(source_path), token=token)
                logging.info(f"[{job_id}] Got {len(captions)} words")

            token.raise_if_cancelled("Job")
            video_url = self.storage.upload(str(source_path), f"{job_id}.mp4")

            token.raise_if_cancelled("Job")
            handle = self.renderer.submit(
                RenderRequest(job_id=job_id, video_url=video_url, captions=captions, source_path=str(source_path))
            )
            output_url = wait_for_render(
                self.renderer,
                handle,
                job_id=job_id,
                interval=self.poll_interval,
                timeout=self.render_timeout,
                max_attempts=self.render_max_attempts,
                token=token,
            )
            logging.info(f"[{job_id}] Done!")
        finally:
            self._cleanup(source_path)

        return RenderResult(
            video_url=output_url,
            transcription=transcript_text(captions) if self.renderer.needs_captions else None,
            captions=captions,
        )
