"""
Probe Module
============

Source asset inspection and ownership of its decoding resources.
"""

from vidshift.probe.metadata import (
    ProbedMedia,
    StreamInfo,
    detect_mime_type,
    probe_media,
)

__all__ = [
    "ProbedMedia",
    "StreamInfo",
    "detect_mime_type",
    "probe_media",
]
