"""
Service classes for the Caption Backend.
Contains the AssemblyAI transcriber and the source video storage backends.
"""

import os
import shutil
import logging
from pathlib import Path
from typing import Callable, List, Optional

import requests
from botocore.exceptions import BotoCoreError, ClientError

from captions import order_words
from errors import StorageError, TranscriptionError
from polling import CancellationToken, poll_until
from schemas import CaptionWord

TERMINAL_TRANSCRIPT_STATUSES = {"completed", "error"}


class AssemblyAITranscriber:
    """Turns a local audio/video file into timed caption words via AssemblyAI."""

    def __init__(
        self,
        api_key: str,
        base_url: str,
        session: Optional[requests.Session] = None,
        poll_interval: float = 1.0,
        timeout: Optional[float] = None,
        request_timeout: int = 180,
    ):
        self.base_url = base_url.rstrip("/")
        self.poll_interval = poll_interval
        self.timeout = timeout
        self.request_timeout = request_timeout
        self.session = session or requests.Session()
        self.session.headers.update({"authorization": api_key})

    def _upload(self, file_path: str) -> str:
        with open(file_path, "rb") as f:
            response = self.session.post(f"{self.base_url}/upload", data=f, timeout=self.request_timeout)
        response.raise_for_status()
        return response.json()["upload_url"]

    def _create_transcript(self, audio_url: str) -> str:
        response = self.session.post(
            f"{self.base_url}/transcript",
            json={"audio_url": audio_url},
            timeout=self.request_timeout,
        )
        response.raise_for_status()
        return response.json()["id"]

    def _get_transcript(self, transcript_id: str) -> dict:
        response = self.session.get(f"{self.base_url}/transcript/{transcript_id}", timeout=self.request_timeout)
        response.raise_for_status()
        return response.json()

    def transcribe(self, file_path: str, token: Optional[CancellationToken] = None) -> List[CaptionWord]:
        """
        Upload the file, request a transcript and wait for it.
        Raises TranscriptionError with the service's message if it reports an error.
        """
        try:
            audio_url = self._upload(file_path)
            transcript_id = self._create_transcript(audio_url)
            transcript = poll_until(
                lambda: self._get_transcript(transcript_id),
                lambda t: t.get("status") in TERMINAL_TRANSCRIPT_STATUSES,
                interval=self.poll_interval,
                timeout=self.timeout,
                token=token,
                what="Transcription",
            )
        except requests.RequestException as e:
            raise TranscriptionError(f"Could not reach the transcription service: {e}") from e

        if transcript.get("status") == "error":
            raise TranscriptionError(transcript.get("error") or "Transcription failed")

        words = [
            CaptionWord(text=w["text"], start_ms=w["start"], end_ms=w["end"])
            for w in transcript.get("words") or []
        ]
        return order_words(words)


class S3Storage:
    """Stores source videos in an S3 bucket and returns their public URL."""

    def __init__(
        self,
        s3_client,
        region: str,
        bucket: Optional[str] = None,
        bucket_resolver: Optional[Callable[[], Optional[str]]] = None,
        prefix: str = "uploads",
    ):
        self.s3 = s3_client
        self.region = region
        self.bucket = bucket
        self.bucket_resolver = bucket_resolver
        self.prefix = prefix

    def object_url(self, bucket: str, key: str) -> str:
        return f"https://{bucket}.s3.{self.region}.amazonaws.com/{key}"

    def upload(self, source_path: str, filename: str, bucket: Optional[str] = None) -> str:
        bucket = bucket or self.bucket
        if not bucket and self.bucket_resolver is not None:
            # the renderer's own bucket, looked up on first use
            bucket = self.bucket = self.bucket_resolver()
        if not bucket:
            raise StorageError("No S3 bucket configured for source uploads")

        key = f"{self.prefix}/{filename}"
        logging.info(f"☁️ Uploading {filename} to s3://{bucket}/{key}")
        try:
            with open(source_path, "rb") as body:
                self.s3.put_object(Bucket=bucket, Key=key, Body=body, ContentType="video/mp4")
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"Failed to upload source video: {e}") from e

        url = self.object_url(bucket, key)
        logging.info(f"Uploaded: {url}")
        return url


class LocalStorage:
    """Copies source videos into a directory served under /uploads."""

    def __init__(self, uploads_dir: Path, public_base_url: str):
        self.uploads_dir = Path(uploads_dir)
        self.public_base_url = public_base_url.rstrip("/")

    def upload(self, source_path: str, filename: str, bucket: Optional[str] = None) -> str:
        self.uploads_dir.mkdir(parents=True, exist_ok=True)
        destination = self.uploads_dir / os.path.basename(filename)
        try:
            with open(source_path, "rb") as src, open(destination, "wb") as dst:
                shutil.copyfileobj(src, dst)
        except OSError as e:
            raise StorageError(f"Failed to store source video: {e}") from e

        logging.info(f"Clip saved to: {destination}")
        return f"{self.public_base_url}/uploads/{destination.name}"
