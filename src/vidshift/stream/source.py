"""
Frame Sources
=============

Decode resources the Frame Scheduler seeks and samples.

This module provides:
    - FrameSource: Protocol every decode backend implements
    - OpenCVFrameSource: cv2.VideoCapture-backed implementation
    - FrameSourceError: Raised on decode/seek failure

Position Semantics:
    After seek(t), `position` reports where the decoder actually is. When
    the decoded picture is the one displayed at t (its interval covers t)
    the position equals t; otherwise it is the decoded picture's own
    timestamp. The scheduler compares this against t to decide whether the
    decode has settled.
"""

import logging
from pathlib import Path
from typing import Optional, Protocol, Union

import cv2
import numpy as np


logger = logging.getLogger(__name__)


class FrameSourceError(Exception):
    """Raised when the decode resource fails."""
    pass


class FrameSource(Protocol):
    """
    Protocol for seekable decode backends.

    Implementations:
        - OpenCVFrameSource (production)
        - In-memory synthetic sources (tests)
    """

    @property
    def position(self) -> float:
        """Current decode position in seconds."""
        ...

    def seek(self, timestamp: float) -> None:
        """Request decode at the given timestamp (seconds)."""
        ...

    def render(self, width: int, height: int) -> np.ndarray:
        """
        Render the current picture at the given size.

        Returns:
            RGBA image as np.ndarray (height, width, 4), dtype=uint8
        """
        ...

    def release(self) -> None:
        """Release the decode resource."""
        ...


def render_rgba(bgr: np.ndarray, width: int, height: int) -> np.ndarray:
    """
    Scale a BGR picture to the target size and convert it to RGBA.

    Downscaling uses area interpolation; upscaling uses bilinear.
    """
    src_h, src_w = bgr.shape[:2]
    if (src_w, src_h) != (width, height):
        shrinking = width * height < src_w * src_h
        interpolation = cv2.INTER_AREA if shrinking else cv2.INTER_LINEAR
        bgr = cv2.resize(bgr, (width, height), interpolation=interpolation)
    return cv2.cvtColor(bgr, cv2.COLOR_BGR2RGBA)


class OpenCVFrameSource:
    """
    Seekable decoder over cv2.VideoCapture.

    Seeking uses CAP_PROP_POS_MSEC and decodes exactly one picture. A seek
    that lands past the last decodable frame keeps the previous picture
    (the scheduler's settle timeout then marks the sample stale) instead of
    failing the run.

    Attributes:
        path: Video file being decoded
        native_fps: Frame rate used to size a picture's display interval
        duration: Source duration in seconds
    """

    def __init__(
        self,
        path: Union[str, Path],
        native_fps: float = 30.0,
        duration: Optional[float] = None,
    ) -> None:
        """
        Open the decoder.

        Args:
            path: Video file path
            native_fps: Native frame rate of the source
            duration: Source duration (enables past-end tolerance)

        Raises:
            FrameSourceError: If the capture cannot be opened
        """
        if native_fps <= 0:
            raise ValueError("native_fps must be positive")

        self.path = Path(path)
        self.native_fps = native_fps
        self.duration = duration

        self._capture = cv2.VideoCapture(str(self.path))
        if not self._capture.isOpened():
            self._capture.release()
            raise FrameSourceError(f"Failed to open decoder for {self.path.name}")

        self._picture: Optional[np.ndarray] = None
        self._position: float = 0.0
        self._released: bool = False

    @property
    def position(self) -> float:
        return self._position

    def seek(self, timestamp: float) -> None:
        if self._released:
            raise FrameSourceError("Decoder already released")

        self._capture.set(cv2.CAP_PROP_POS_MSEC, timestamp * 1000.0)
        ok, bgr = self._capture.read()

        if not ok or bgr is None:
            if self._picture is not None and self._is_past_end(timestamp):
                logger.debug(
                    f"Seek to {timestamp:.3f}s is past the last frame, keeping previous picture"
                )
                return
            raise FrameSourceError(f"Decode failed at {timestamp:.3f}s")

        self._picture = bgr
        frame_pts = self._capture.get(cv2.CAP_PROP_POS_MSEC) / 1000.0
        frame_interval = 1.0 / self.native_fps
        if frame_pts <= timestamp < frame_pts + frame_interval:
            self._position = timestamp
        else:
            self._position = frame_pts

    def render(self, width: int, height: int) -> np.ndarray:
        if self._picture is None:
            raise FrameSourceError("No decoded picture available")
        return render_rgba(self._picture, width, height)

    def release(self) -> None:
        if not self._released:
            self._capture.release()
            self._released = True
            self._picture = None

    def _is_past_end(self, timestamp: float) -> bool:
        if self.duration is None:
            return False
        return timestamp >= self.duration - (1.0 / self.native_fps)

    def __enter__(self) -> "OpenCVFrameSource":
        return self

    def __exit__(self, *args) -> None:
        self.release()
