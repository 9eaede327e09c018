"""
Configuration for the Caption Backend.
Settings are read from the environment (or a .env file) once and cached.
"""

import os
from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings

load_dotenv()

# --- Constants ---
PROJECT_ROOT = os.getcwd()
COMPOSITION_ID = "CaptionedVideo"
CREATOMATE_API_URL = "https://api.creatomate.com/v1"
ASSEMBLYAI_API_URL = "https://api.assemblyai.com/v2"


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    # Transcription
    assemblyai_api_key: Optional[str] = Field(default=None)
    assemblyai_base_url: str = Field(default=ASSEMBLYAI_API_URL)
    transcription_timeout_seconds: float = Field(default=600.0, gt=0)

    # Backends: "s3" | "local" and "lambda" | "creatomate" | "local"
    storage_backend: str = Field(default="s3")
    render_backend: str = Field(default="lambda")

    # Remotion Lambda / S3
    remotion_aws_region: str = Field(default="us-east-1")
    remotion_aws_access_key_id: Optional[str] = Field(default=None)
    remotion_aws_secret_access_key: Optional[str] = Field(default=None)
    remotion_function_name: Optional[str] = Field(default=None)
    remotion_serve_url: Optional[str] = Field(default=None)
    remotion_composition: str = Field(default=COMPOSITION_ID)
    # Must match the version of the deployed function exactly
    remotion_version: Optional[str] = Field(default=None)
    remotion_timeout_ms: int = Field(default=30000, gt=0)
    s3_bucket: Optional[str] = Field(default=None)

    # Creatomate
    creatomate_api_key: Optional[str] = Field(default=None)
    creatomate_base_url: str = Field(default=CREATOMATE_API_URL)

    # Local files and static serving
    public_base_url: str = Field(default="http://localhost:3001")
    temp_dir: Path = Field(default_factory=lambda: Path(PROJECT_ROOT) / "temp")
    uploads_dir: Path = Field(default_factory=lambda: Path(PROJECT_ROOT) / "uploads")
    outputs_dir: Path = Field(default_factory=lambda: Path(PROJECT_ROOT) / "outputs")

    # Request handling
    max_upload_mb: int = Field(default=500, ge=1)
    poll_interval_seconds: float = Field(default=1.0, gt=0)
    render_timeout_seconds: float = Field(default=900.0, gt=0)
    render_max_attempts: Optional[int] = Field(default=None, ge=1)
    request_timeout_seconds: int = Field(default=180)

    # Server
    cors_origins: List[str] = Field(default=["http://localhost:5173", "http://localhost:3000"])
    host: str = Field(default="127.0.0.1")
    port: int = Field(default=3001)

    model_config = {"env_file": ".env", "extra": "ignore"}

    @property
    def max_upload_bytes(self) -> int:
        return self.max_upload_mb * 1024 * 1024

    @property
    def serves_local_files(self) -> bool:
        return self.storage_backend == "local" or self.render_backend == "local"

    def ensure_directories(self) -> None:
        """Create the directories the pipeline writes into."""
        self.temp_dir.mkdir(parents=True, exist_ok=True)
        if self.serves_local_files:
            self.uploads_dir.mkdir(parents=True, exist_ok=True)
            self.outputs_dir.mkdir(parents=True, exist_ok=True)


@lru_cache()
def get_settings() -> Settings:
    """Return the process-wide settings instance."""
    return Settings()
