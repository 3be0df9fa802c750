"""
Audio Module
============

Replacement audio track synthesis.
"""

from vidshift.audio.synthesis import (
    NOISE_FLOOR_AMPLITUDE,
    AudioSampleBuffer,
    synthesize_audio,
)

__all__ = [
    "NOISE_FLOOR_AMPLITUDE",
    "AudioSampleBuffer",
    "synthesize_audio",
]
