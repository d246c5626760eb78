"""System monitoring module."""

from hls_pipeline.modules.system_monitoring.router import router as system_monitoring_router

__all__ = ["system_monitoring_router"]
