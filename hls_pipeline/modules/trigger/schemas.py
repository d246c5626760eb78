"""Pydantic schemas for the notification webhook."""

from typing import Any

from pydantic import BaseModel, Field


class S3Notification(BaseModel):
    """S3 / MinIO bucket notification body.

    Only ``Records`` is interpreted; other top-level fields MinIO adds
    (``EventName``, ``Key``) are accepted and ignored.
    """
    Records: list[dict[str, Any]] = Field(default_factory=list)

    class Config:
        extra = "allow"


class EventAccepted(BaseModel):
    """Response for a notification queued for background processing."""
    task_id: str
    status: str = "queued"
