"""
Transform Configuration
=======================

The per-run, user-adjustable parameter set.

TransformConfig is an immutable value passed explicitly into the pipeline
entry point; the pipeline never reads ambient state. Ranges are enforced
here, at the configuration surface, so the core may assume valid input.

Parameter Groups:
    Technical: fps, resolution, bitrate, format
    Visual:    color_shift, noise_level, compression_level, frame_offset
    Audio:     audio_frequency_shift, audio_noise_level, audio_compression_level
    Data:      metadata_scrambling, timestamp_shift, header_modification

Informational fields (compression_level, audio_frequency_shift,
audio_compression_level) are carried for reporting only. audio_noise_level
is not wired into audio synthesis.
"""

from pydantic import BaseModel, Field

from vidshift.models.media import OutputFormat, Resolution, SourceAsset


FPS_RANGE = (12, 60)
BITRATE_RANGE = (500, 5000)


def _clamp(value: float, bounds: tuple) -> float:
    low, high = bounds
    return max(low, min(high, value))


class TransformConfig(BaseModel):
    """
    Immutable transformation parameters.

    Defaults are the service's initial slider settings.
    """

    # Technical parameters
    fps: int = Field(default=24, ge=12, le=60, description="Target frame rate")
    resolution: Resolution = Field(
        default_factory=lambda: Resolution(width=1280, height=720),
        description="Target resolution",
    )
    bitrate: int = Field(default=2000, ge=500, le=5000, description="Target bitrate (kbps)")
    format: OutputFormat = Field(
        default=OutputFormat.MP4,
        description="Requested container label (negotiated output may differ)",
    )

    # Visual transformation
    color_shift: float = Field(default=5, ge=0, le=15, description="Color shift (degrees)")
    noise_level: float = Field(default=2, ge=0, le=10, description="Per-channel noise amplitude")
    compression_level: int = Field(default=15, ge=5, le=30, description="Compression hint")
    frame_offset: float = Field(default=1, ge=0, le=10, description="Frame timing offset (ms)")

    # Audio transformation
    audio_frequency_shift: float = Field(default=0.5, ge=0, le=5, description="Frequency shift hint (Hz)")
    audio_noise_level: float = Field(default=1, ge=0, le=5, description="Audio noise level")
    audio_compression_level: int = Field(default=10, ge=5, le=25, description="Audio compression hint")

    # Data scrambling
    metadata_scrambling: bool = Field(default=True, description="Write synthetic metadata fields")
    timestamp_shift: int = Field(default=33, ge=10, le=100, description="Nonce length (bytes)")
    header_modification: bool = Field(default=True, description="Randomize encoder identity fields")

    class Config:
        frozen = True
        json_schema_extra = {
            "example": {
                "fps": 24,
                "resolution": {"width": 1280, "height": 720},
                "bitrate": 2000,
                "format": "mp4",
                "color_shift": 5,
                "noise_level": 2,
                "compression_level": 15,
                "frame_offset": 1,
                "audio_frequency_shift": 0.5,
                "audio_noise_level": 1,
                "audio_compression_level": 10,
                "metadata_scrambling": True,
                "timestamp_shift": 33,
                "header_modification": True,
            }
        }

    @classmethod
    def from_source(cls, asset: SourceAsset, **overrides) -> "TransformConfig":
        """
        Derive a config that mirrors the source's technical parameters.

        Resolution is copied as-is; fps and bitrate are clamped into their
        configurable ranges. Any keyword override wins.
        """
        values = {
            "resolution": Resolution(width=asset.width, height=asset.height),
            "fps": int(round(_clamp(asset.fps, FPS_RANGE))),
            "bitrate": int(_clamp(asset.bitrate or 2000, BITRATE_RANGE)),
        }
        values.update(overrides)
        return cls(**values)
