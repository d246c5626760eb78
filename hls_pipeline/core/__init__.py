"""Core module for configuration and utilities."""

from hls_pipeline.core.config import settings

__all__ = ["settings"]
