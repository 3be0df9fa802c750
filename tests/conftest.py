"""
Test Configuration
==================

Pytest fixtures and test doubles for vidshift.

Test doubles:
    - SyntheticFrameSource: in-memory decoder with controllable settling
      and failure injection
    - FakeEncoderBackend: records frames and emits one chunk per frame
"""

from typing import Dict, List, Optional

import numpy as np
import pytest


class SyntheticFrameSource:
    """
    Deterministic in-memory FrameSource.

    Args:
        fail_at: Seek call index (0-based) that raises
        never_settles: Position never reaches the requested timestamp
        settle_after_polls: Position reaches the target only after this
            many position reads
    """

    def __init__(
        self,
        fail_at: Optional[int] = None,
        never_settles: bool = False,
        settle_after_polls: int = 0,
    ) -> None:
        self.fail_at = fail_at
        self.never_settles = never_settles
        self.settle_after_polls = settle_after_polls
        self.seeks: List[float] = []
        self.released = False
        self._target = 0.0
        self._polls = 0

    @property
    def position(self) -> float:
        self._polls += 1
        if self.never_settles or self._polls <= self.settle_after_polls:
            return self._target + 1.0
        return self._target

    def seek(self, timestamp: float) -> None:
        index = len(self.seeks)
        self.seeks.append(timestamp)
        if self.fail_at is not None and index == self.fail_at:
            raise RuntimeError(f"decoder error at seek {index}")
        self._target = timestamp
        self._polls = 0

    def render(self, width: int, height: int) -> np.ndarray:
        pixels = np.full((height, width, 4), 128, dtype=np.uint8)
        pixels[:, :, 0] = len(self.seeks) % 256
        pixels[:, :, 3] = 255
        return pixels

    def release(self) -> None:
        self.released = True


class FakeSession:
    """Encode session double producing one chunk per frame plus a trailer."""

    def __init__(self, on_chunk, params: Dict, fail_at: Optional[int] = None) -> None:
        self._on_chunk = on_chunk
        self.params = params
        self.fail_at = fail_at
        self.frames: List[int] = []
        self.closed = False
        self.aborted = False

    @property
    def has_audio(self) -> bool:
        return self.params["audio"] is not None

    def encode_video(self, frame) -> None:
        if self.fail_at is not None and len(self.frames) == self.fail_at:
            raise RuntimeError("encoder crashed")
        self.frames.append(frame.index)
        self._on_chunk(f"frame{frame.index};".encode())

    def close(self) -> None:
        self.closed = True
        self._on_chunk(b"trailer")

    def abort(self) -> None:
        self.aborted = True


class FakeEncoderBackend:
    """EncoderBackend double with a configurable supported codec set."""

    def __init__(
        self,
        supported=("vp9", "vp8", "default"),
        fail_at: Optional[int] = None,
        fail_on_open: bool = False,
    ) -> None:
        self.supported = set(supported)
        self.fail_at = fail_at
        self.fail_on_open = fail_on_open
        self.queried: List[str] = []
        self.sessions: List[FakeSession] = []

    def is_supported(self, option) -> bool:
        self.queried.append(option.name)
        return option.name in self.supported

    def open_session(self, option, *, width, height, fps, bitrate_kbps, metadata, audio, on_chunk):
        if self.fail_on_open:
            raise RuntimeError("cannot open session")
        session = FakeSession(
            on_chunk,
            params={
                "option": option.name,
                "width": width,
                "height": height,
                "fps": fps,
                "bitrate_kbps": bitrate_kbps,
                "metadata": dict(metadata),
                "audio": audio,
            },
            fail_at=self.fail_at,
        )
        self.sessions.append(session)
        return session


@pytest.fixture
def source_factory():
    """Provide the SyntheticFrameSource class for building decoders."""
    return SyntheticFrameSource


@pytest.fixture
def backend_factory():
    """Provide the FakeEncoderBackend class for building encoders."""
    return FakeEncoderBackend


@pytest.fixture
def sample_asset():
    """Provide a 2 second 640x360 30 fps source asset."""
    from vidshift.models.media import SourceAsset

    return SourceAsset(
        name="clip.mp4",
        duration=2.0,
        width=640,
        height=360,
        fps=30.0,
        bitrate=2000,
        mime_type="video/mp4",
        size_bytes=500_000,
    )


@pytest.fixture
def sample_config():
    """Provide a 24 fps 640x360 config matching sample_asset's size."""
    from vidshift.models.media import Resolution
    from vidshift.models.transform import TransformConfig

    return TransformConfig(fps=24, resolution=Resolution(width=640, height=360))


@pytest.fixture
def fast_settings():
    """Provide a settings dictionary with realtime pacing disabled."""
    return {
        "pipeline": {"mode": "batch", "queue_size": 4, "progress_steps": 10},
        "scheduler": {"settle_timeout_ms": 5.0, "poll_interval_ms": 1.0},
        "encoder": {"realtime_pacing": False},
        "audio": {"sample_rate": 44100, "channels": 2},
        "reporting": {"similarity_mode": "estimated"},
    }


@pytest.fixture
def make_frame():
    """Provide a builder for uniform RGBA frames."""
    from vidshift.stream.frame import FrameBuffer

    def _make(index=0, width=8, height=6, rgb=(100, 150, 200), alpha=255, timestamp=None):
        pixels = np.empty((height, width, 4), dtype=np.uint8)
        pixels[:, :, 0] = rgb[0]
        pixels[:, :, 1] = rgb[1]
        pixels[:, :, 2] = rgb[2]
        pixels[:, :, 3] = alpha
        return FrameBuffer(
            index=index,
            timestamp=index / 24 if timestamp is None else timestamp,
            pixels=pixels,
        )

    return _make
