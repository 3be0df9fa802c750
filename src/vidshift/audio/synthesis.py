"""
Audio Synthesis
===============

Replacement audio track made of a low-level noise floor.

Every sample is drawn uniformly from [-0.0005, 0.0005), roughly 66 dB below
full scale: inaudible, but it makes the audio stream byte-different from any
source track.

The amplitude is fixed. TransformConfig.audio_noise_level is deliberately
not used here.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np

from vidshift.errors import AudioContextUnavailableError


logger = logging.getLogger(__name__)


NOISE_FLOOR_AMPLITUDE = 0.0005


@dataclass(frozen=True, slots=True)
class AudioSampleBuffer:
    """
    Multi-channel float sample buffer.

    Attributes:
        samples: float32 array, shape (channels, length), planar
        sample_rate: Samples per second per channel
    """

    samples: np.ndarray
    sample_rate: int

    @property
    def channels(self) -> int:
        return int(self.samples.shape[0])

    @property
    def length(self) -> int:
        """Frames per channel."""
        return int(self.samples.shape[1])

    @property
    def sample_count(self) -> int:
        """Total samples across all channels."""
        return self.channels * self.length

    @property
    def duration(self) -> float:
        return self.length / self.sample_rate

    def __repr__(self) -> str:
        return (
            f"AudioSampleBuffer(channels={self.channels}, "
            f"length={self.length}, sample_rate={self.sample_rate})"
        )


def synthesize_audio(
    duration: float,
    sample_rate: int = 44100,
    channels: int = 2,
    rng: Optional[np.random.Generator] = None,
) -> AudioSampleBuffer:
    """
    Generate the replacement noise-floor track.

    Args:
        duration: Track length in seconds (>= 0)
        sample_rate: Samples per second (> 0)
        channels: Channel count (> 0)
        rng: Random generator for the samples

    Returns:
        AudioSampleBuffer of round(duration * sample_rate) frames per channel

    Raises:
        ValueError: On negative duration or non-positive rate/channels
        AudioContextUnavailableError: If the buffer cannot be allocated
    """
    if duration < 0:
        raise ValueError("duration must be non-negative")
    if sample_rate <= 0:
        raise ValueError("sample_rate must be positive")
    if channels <= 0:
        raise ValueError("channels must be positive")

    if rng is None:
        rng = np.random.default_rng()

    length = int(round(duration * sample_rate))

    try:
        samples = rng.uniform(
            -NOISE_FLOOR_AMPLITUDE,
            NOISE_FLOOR_AMPLITUDE,
            size=(channels, length),
        ).astype(np.float32)
    except MemoryError as e:
        logger.error(f"Cannot allocate audio buffer ({channels}x{length})")
        raise AudioContextUnavailableError(
            f"Cannot allocate {channels}x{length} audio buffer"
        ) from e

    logger.debug(f"Synthesized audio: {channels}ch x {length} @ {sample_rate}Hz")

    return AudioSampleBuffer(samples=samples, sample_rate=sample_rate)
