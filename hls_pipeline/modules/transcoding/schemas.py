"""Pydantic schemas for transcode runs."""

from typing import Optional

from pydantic import BaseModel, Field


class SourceReference(BaseModel):
    """One source object to transcode."""
    bucket: str = Field(..., min_length=1, description="Bucket holding the source object")
    key: str = Field(..., min_length=1, description="Decoded object key")
    size: Optional[int] = Field(None, ge=0, description="Object size in bytes, informational")

    class Config:
        frozen = True


class ProcessingResult(BaseModel):
    """Terminal outcome of one transcode run."""
    input_key: str
    success: bool
    output_files: list[str] = Field(default_factory=list, description="Uploaded keys, in upload order")
    master_playlist_url: str = ""
    error: str = ""
    processing_time_ms: int = 0
    video_name: str = ""
    output_directory: str = ""

    class Config:
        frozen = True


class BatchSummary(BaseModel):
    """Aggregate of the results of one trigger invocation."""
    total: int = 0
    successful: int = 0
    failed: int = 0
    skipped: int = 0
    results: list[ProcessingResult] = Field(default_factory=list)

    @classmethod
    def from_results(cls, results: list[ProcessingResult], skipped: int = 0) -> "BatchSummary":
        successful = sum(1 for result in results if result.success)
        return cls(
            total=len(results),
            successful=successful,
            failed=len(results) - successful,
            skipped=skipped,
            results=list(results),
        )
