"""
Frame Buffer
============

Internal frame representation for the extraction and encode pipeline.

Design Rules:
    - This is the ONLY frame format passed between pipeline stages
    - Pixels are RGBA, uint8, shape (height, width, 4)
    - Exactly one stage owns a FrameBuffer at a time:
      Scheduler -> Transform Engine -> Streaming Encoder
"""

from dataclasses import dataclass

import numpy as np


@dataclass(frozen=True, slots=True)
class FrameBuffer:
    """
    One sampled picture at a fixed width x height.

    Attributes:
        index: Position in the output sequence (0-based)
        timestamp: Source timestamp the picture was requested at (seconds)
        pixels: RGBA pixel grid, shape (H, W, 4), dtype uint8
        stale: True when the settle timeout fired before the decoder
            reached the requested position
    """

    index: int
    timestamp: float
    pixels: np.ndarray
    stale: bool = False

    def __post_init__(self) -> None:
        if self.pixels.ndim != 3 or self.pixels.shape[2] != 4:
            raise ValueError(
                f"Frame {self.index} must be RGBA (H, W, 4), got {self.pixels.shape}"
            )
        if self.pixels.dtype != np.uint8:
            raise ValueError(
                f"Frame {self.index} must be uint8, got {self.pixels.dtype}"
            )

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    def __repr__(self) -> str:
        """Compact repr that doesn't dump the pixel grid."""
        return (
            f"FrameBuffer(index={self.index}, "
            f"timestamp={self.timestamp:.3f}, "
            f"size={self.width}x{self.height}, stale={self.stale})"
        )
