"""
Transform Module
================

Per-pixel frame perturbation.

Components:
    - transform_frame: Color offset plus bounded noise on one frame
    - channel_offsets: Deterministic per-channel offsets
    - max_channel_delta: Bound on the per-channel change
"""

from vidshift.transform.color import (
    channel_offsets,
    max_channel_delta,
    transform_frame,
)

__all__ = [
    "channel_offsets",
    "max_channel_delta",
    "transform_frame",
]
