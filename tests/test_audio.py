"""
Audio Synthesis Tests
=====================

Tests for the replacement noise-floor track.
"""

import numpy as np
import pytest


class TestSynthesizeAudio:
    """Tests for synthesize_audio."""

    def test_five_seconds_stereo(self):
        """5 s at 44.1 kHz stereo holds 441000 samples."""
        from vidshift.audio import synthesize_audio

        audio = synthesize_audio(5.0, rng=np.random.default_rng(0))

        assert audio.channels == 2
        assert audio.length == 220500
        assert audio.sample_count == 441000
        assert audio.sample_rate == 44100
        assert audio.duration == pytest.approx(5.0)

    def test_two_seconds_length(self):
        """Buffer length is frames per channel."""
        from vidshift.audio import synthesize_audio

        assert synthesize_audio(2.0).length == 88200

    def test_samples_bounded(self):
        """Every sample lies within the noise floor amplitude."""
        from vidshift.audio import NOISE_FLOOR_AMPLITUDE, synthesize_audio

        audio = synthesize_audio(1.0, rng=np.random.default_rng(1))

        assert audio.samples.dtype == np.float32
        assert np.all(np.abs(audio.samples) <= NOISE_FLOOR_AMPLITUDE)
        assert audio.samples.std() > 0

    def test_rounding_of_length(self):
        """Length is round(duration * sample_rate)."""
        from vidshift.audio import synthesize_audio

        audio = synthesize_audio(0.123456, sample_rate=8000, channels=1)
        assert audio.length == round(0.123456 * 8000)
        assert audio.channels == 1

    def test_zero_duration(self):
        """Zero duration yields an empty buffer, not an error."""
        from vidshift.audio import synthesize_audio

        audio = synthesize_audio(0.0)
        assert audio.length == 0
        assert audio.sample_count == 0

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"duration": -1.0},
            {"duration": 1.0, "sample_rate": 0},
            {"duration": 1.0, "channels": 0},
        ],
    )
    def test_invalid_arguments(self, kwargs):
        """Programming errors raise ValueError."""
        from vidshift.audio import synthesize_audio

        with pytest.raises(ValueError):
            synthesize_audio(**kwargs)

    def test_allocation_failure(self):
        """Allocation failure surfaces as AudioContextUnavailableError."""
        from vidshift.audio import synthesize_audio
        from vidshift.errors import AudioContextUnavailableError, ErrorCategory

        class ExhaustedRng:
            def uniform(self, *args, **kwargs):
                raise MemoryError()

        with pytest.raises(AudioContextUnavailableError) as exc_info:
            synthesize_audio(1.0, rng=ExhaustedRng())

        assert exc_info.value.category == ErrorCategory.UNSUPPORTED_RUNTIME
