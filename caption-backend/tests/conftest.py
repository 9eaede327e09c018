# caption-backend/tests/conftest.py

import os
import sys
from typing import List, Optional

import pytest

# Add the parent directory to the Python path so we can import from it
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from pipeline import CaptionPipeline
from renderers import RenderHandle, RenderProgress
from schemas import CaptionWord


class FakeTranscriber:
    def __init__(self, words: Optional[List[CaptionWord]] = None, error: Optional[Exception] = None):
        self.words = words or []
        self.error = error
        self.seen_paths = []

    def transcribe(self, file_path, token=None):
        # the spooled upload must exist while it is being transcribed
        assert os.path.exists(file_path)
        self.seen_paths.append(file_path)
        if self.error:
            raise self.error
        return self.words


class FakeStorage:
    def __init__(self):
        self.uploads = []

    def upload(self, source_path, filename, bucket=None):
        self.uploads.append((source_path, filename))
        return f"https://remotionlambda-test.s3.us-east-1.amazonaws.com/uploads/{filename}"


class FakeRenderer:
    """Replays a scripted list of progress reports, one per status query."""

    needs_captions = True

    def __init__(self, progress: List[RenderProgress], needs_captions: bool = True):
        self.progress = list(progress)
        self.needs_captions = needs_captions
        self.requests = []
        self.status_queries = 0

    def submit(self, request):
        self.requests.append(request)
        return RenderHandle(render_id="render-1", bucket_name="remotionlambda-test")

    def get_progress(self, handle):
        self.status_queries += 1
        return self.progress.pop(0)


@pytest.fixture
def words() -> List[CaptionWord]:
    return [
        CaptionWord(text="Hello", start_ms=0, end_ms=400),
        CaptionWord(text="there,", start_ms=400, end_ms=800),
        CaptionWord(text="how", start_ms=900, end_ms=1100),
        CaptionWord(text="are", start_ms=1100, end_ms=1300),
        CaptionWord(text="you?", start_ms=1300, end_ms=1700),
    ]


@pytest.fixture
def finished_render() -> List[RenderProgress]:
    return [
        RenderProgress(overall_progress=0.25),
        RenderProgress(overall_progress=0.8),
        RenderProgress(done=True, overall_progress=1.0, output_url="https://remotionlambda-test.s3.amazonaws.com/renders/render-1/out.mp4"),
    ]


@pytest.fixture
def make_pipeline(tmp_path):
    def _make(transcriber, renderer, storage=None, **kwargs):
        return CaptionPipeline(
            transcriber=transcriber,
            storage=storage or FakeStorage(),
            renderer=renderer,
            temp_dir=tmp_path / "temp",
            poll_interval=0,
            **kwargs,
        )
    return _make
