"""Application modules.

- transcoding: MP4 to HLS conversion of a single object
- trigger: Bucket notification entry points
- maintenance: Prefix-wide batch conversion and output cleanup
- system_monitoring: Metrics and readiness
"""
