"""
Pydantic models for data validation in the Caption Backend.
"""

from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional


class CaptionWord(BaseModel):
    """A single transcribed word with its timing in milliseconds."""
    model_config = ConfigDict(populate_by_name=True)

    text: str
    start_ms: int = Field(alias="startMs", ge=0)
    end_ms: int = Field(alias="endMs", ge=0)

    def to_props(self) -> dict:
        """Shape expected by the caption composition's input props."""
        return {"text": self.text, "startMs": self.start_ms, "endMs": self.end_ms}


class CaptionPage(BaseModel):
    """Consecutive words shown together on screen."""
    words: List[CaptionWord]
    start_ms: int
    end_ms: int

    @property
    def text(self) -> str:
        return " ".join(word.text for word in self.words)


class ProcessResponse(BaseModel):
    """Response for a finished captioning job."""
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    video_url: str = Field(alias="videoUrl")
    transcription: Optional[str] = None


class ErrorResponse(BaseModel):
    """Body returned for any failed request."""
    error: str


class HealthResponse(BaseModel):
    status: str = "ok"
