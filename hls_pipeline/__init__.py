"""HLS transcoding pipeline.

Turns MP4 uploads in S3-compatible object storage into HLS adaptive bitrate
ladders published next to the source.

Modules:
    - core: Configuration, logging, tracing, metrics, Celery, object storage
    - modules.transcoding: Rendition plans, FFmpeg, manifests, orchestration
    - modules.trigger: Notification parsing, Lambda handler, Celery tasks, webhook
    - modules.maintenance: Batch conversion and HLS output cleanup for a prefix
    - modules.system_monitoring: Metrics and readiness endpoints
"""

__version__ = "0.1.0"
