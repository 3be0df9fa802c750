"""
Source Media Models
===================

Immutable description of a probed source asset and the resolution and
container vocabulary shared by the configuration and the encoder.

SourceAsset Contract:
    {
        "name": "clip.mp4",
        "duration": 10.4,
        "width": 1920,
        "height": 1080,
        "fps": 30.0,
        "bitrate": 3000,
        "mime_type": "video/mp4",
        "size_bytes": 3900000
    }

Note:
    bitrate is ESTIMATED as size_in_bits / duration, not read from the
    container headers.
"""

from enum import Enum
from typing import Dict, Tuple

from pydantic import BaseModel, Field


class OutputFormat(str, Enum):
    """
    Requested output container label.

    This is a request only: the negotiated output may differ (a request for
    mp4 can still yield a webm artifact).
    """

    MP4 = "mp4"
    WEBM = "webm"
    AVI = "avi"

    @property
    def mime_type(self) -> str:
        """Normalized MIME form used when comparing against a source."""
        return f"video/{self.value}"


class Resolution(BaseModel):
    """Target frame dimensions in pixels."""

    width: int = Field(..., ge=16, le=7680, description="Frame width (px)")
    height: int = Field(..., ge=16, le=4320, description="Frame height (px)")

    class Config:
        frozen = True

    @classmethod
    def parse(cls, label: str) -> "Resolution":
        """Parse a WIDTHxHEIGHT label such as '1280x720'."""
        try:
            width, height = label.lower().split("x", 1)
            return cls(width=int(width), height=int(height))
        except ValueError as e:
            raise ValueError(f"Invalid resolution label: {label!r}") from e

    @property
    def label(self) -> str:
        return f"{self.width}x{self.height}"

    def as_tuple(self) -> Tuple[int, int]:
        return self.width, self.height


RESOLUTION_PRESETS: Dict[str, Resolution] = {
    "1080p": Resolution(width=1920, height=1080),
    "720p": Resolution(width=1280, height=720),
    "480p": Resolution(width=854, height=480),
    "360p": Resolution(width=640, height=360),
}


class SourceAsset(BaseModel):
    """
    Immutable description of the input video.

    Created once when the asset is probed and never mutated. The decoding
    resource backing it is owned by the probe handle, not by this record.

    Attributes:
        name: Original file name
        duration: Playback duration in seconds
        width: Native frame width in pixels
        height: Native frame height in pixels
        fps: Native frame rate (falls back to a default when unreported)
        bitrate: Estimated bitrate in kbps
        mime_type: Container MIME type, e.g. video/mp4
        size_bytes: Asset size in bytes
    """

    name: str = Field(default="video", description="Original file name")

    duration: float = Field(..., gt=0, description="Duration in seconds")

    width: int = Field(..., gt=0, description="Native width (px)")

    height: int = Field(..., gt=0, description="Native height (px)")

    fps: float = Field(default=30.0, gt=0, description="Native frame rate")

    bitrate: int = Field(..., ge=0, description="Estimated bitrate (kbps)")

    mime_type: str = Field(..., description="Container MIME type")

    size_bytes: int = Field(..., ge=0, description="Asset size in bytes")

    class Config:
        frozen = True
        json_schema_extra = {
            "example": {
                "name": "clip.mp4",
                "duration": 10.4,
                "width": 1920,
                "height": 1080,
                "fps": 30.0,
                "bitrate": 3000,
                "mime_type": "video/mp4",
                "size_bytes": 3900000,
            }
        }

    @property
    def resolution(self) -> Resolution:
        return Resolution(width=self.width, height=self.height)


def estimate_bitrate_kbps(size_bytes: int, duration: float) -> int:
    """
    Estimate bitrate from file size and duration.

    Formula:
        bitrate = round(size_bytes * 8 / duration / 1000)
    """
    if duration <= 0:
        raise ValueError("duration must be positive")
    return int(round(size_bytes * 8 / duration / 1000))
