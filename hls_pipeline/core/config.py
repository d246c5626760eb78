"""Application configuration settings.

All configuration values are loaded from environment variables (.env file).
No credentials should be hardcoded here.
"""

import tempfile
from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    PROJECT_NAME: str = "HLS Transcoding Pipeline"
    VERSION: str = "0.1.0"
    API_V1_PREFIX: str = "/api/v1"
    DEBUG: bool = False

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = True

    # Redis / Celery
    REDIS_URL: str = "redis://localhost:6379/0"
    CELERY_BROKER_URL: str = ""
    CELERY_RESULT_BACKEND: str = ""
    TASK_TIME_LIMIT_SECONDS: int = 900

    # Storage Configuration
    # STORAGE_BACKEND: s3, minio, local
    STORAGE_BACKEND: str = "s3"

    # Local Storage (when STORAGE_BACKEND=local), one directory per bucket
    LOCAL_STORAGE_PATH: str = "./storage"

    # S3/MinIO/Compatible Storage
    AWS_REGION: str = "us-east-1"
    STORAGE_ACCESS_KEY: str = ""
    STORAGE_SECRET_KEY: str = ""
    STORAGE_ENDPOINT_URL: Optional[str] = None  # Required for MinIO
    STORAGE_USE_SSL: bool = True
    STORAGE_MAX_ATTEMPTS: int = 3

    # Public URL prefix for published playlists (CDN or MinIO); when unset the
    # virtual-hosted S3 URL is used
    PUBLIC_BASE_URL: Optional[str] = None

    # FFmpeg
    FFMPEG_PATH: str = "ffmpeg"
    FFMPEG_TIMEOUT_SECONDS: int = 600
    FFMPEG_PRESET: str = "fast"

    # Transcoding
    SCRATCH_DIR: str = tempfile.gettempdir()
    RENDITION_PLAN: str = "standard"
    INPUT_SUFFIX: str = ".mp4"
    BATCH_CONCURRENCY: int = 2

    # Tracing
    OTLP_ENDPOINT: Optional[str] = None
    TRACING_CONSOLE_EXPORT: bool = False

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"

    @property
    def broker_url(self) -> str:
        return self.CELERY_BROKER_URL or self.REDIS_URL

    @property
    def result_backend(self) -> str:
        return self.CELERY_RESULT_BACKEND or self.REDIS_URL


settings = Settings()
