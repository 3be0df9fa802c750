"""
Frame Scheduler Tests
=====================

Tests for the seek/settle/sample loop.
"""

import asyncio

import numpy as np
import pytest


def _scheduler(source, **kwargs):
    from vidshift.stream.scheduler import FrameScheduler

    params = {"settle_timeout": 0.005, "poll_interval": 0.001}
    params.update(kwargs)
    return FrameScheduler(source, **params)


async def _collect(scheduler, duration, config, **kwargs):
    return [frame async for frame in scheduler.frames(duration, config, **kwargs)]


class TestFrameCount:
    """Tests for compute_total_frames and frame_timestamp."""

    def test_floor_of_duration_times_fps(self):
        from vidshift.stream.scheduler import compute_total_frames

        assert compute_total_frames(10.4, 24) == 249
        assert compute_total_frames(2.0, 24) == 48
        assert compute_total_frames(0.01, 24) == 0

    def test_nonpositive_duration(self):
        from vidshift.stream.scheduler import compute_total_frames

        assert compute_total_frames(0, 24) == 0
        assert compute_total_frames(-1, 24) == 0

    def test_invalid_fps(self):
        from vidshift.stream.scheduler import compute_total_frames

        with pytest.raises(ValueError):
            compute_total_frames(1.0, 0)

    def test_timestamp_includes_offset(self):
        """Offset is given in milliseconds."""
        from vidshift.stream.scheduler import frame_timestamp

        assert frame_timestamp(0, 24) == 0.0
        assert frame_timestamp(1, 24, 1) == pytest.approx(1 / 24 + 0.001)
        assert frame_timestamp(48, 24, 10) == pytest.approx(2.01)


class TestFrameScheduler:
    """Tests for FrameScheduler.frames()."""

    async def test_ordered_sequence(self, source_factory, sample_config):
        """Produces floor(duration * fps) frames, strictly by index."""
        from vidshift.stream.scheduler import SchedulerPhase

        source = source_factory()
        scheduler = _scheduler(source)

        frames = await _collect(scheduler, 2.0, sample_config, rng=np.random.default_rng(0))

        assert [f.index for f in frames] == list(range(48))
        assert scheduler.produced == 48
        assert scheduler.total_frames == 48
        assert scheduler.stale_count == 0
        assert scheduler.phase == SchedulerPhase.TERMINAL

    async def test_seeks_at_offset_timestamps(self, source_factory, sample_config):
        """Each seek targets i / fps + frame_offset / 1000."""
        source = source_factory()
        await _collect(_scheduler(source), 0.5, sample_config)

        expected = [i / 24 + 0.001 for i in range(12)]
        assert source.seeks == pytest.approx(expected)

    async def test_frames_at_target_resolution(self, source_factory):
        """Frames are rendered at the configured size, not the source's."""
        from vidshift.models.media import Resolution
        from vidshift.models.transform import TransformConfig

        config = TransformConfig(fps=12, resolution=Resolution(width=64, height=48))
        frames = await _collect(_scheduler(source_factory()), 1.0, config)

        assert len(frames) == 12
        assert all(f.pixels.shape == (48, 64, 4) for f in frames)

    async def test_frames_are_transformed(self, source_factory, sample_config):
        """Emitted pixels differ from the rendered originals."""
        originals = []
        source = source_factory()

        frames = await _collect(
            _scheduler(source),
            0.25,
            sample_config,
            sample_hook=lambda original, transformed: originals.append(original),
        )

        assert len(originals) == len(frames) == 6
        for original, transformed in zip(originals, frames):
            assert original.index == transformed.index
            assert not np.array_equal(original.pixels, transformed.pixels)

    async def test_unsettled_frames_marked_stale(self, source_factory, sample_config):
        """A decoder that never reaches the target yields stale frames, not errors."""
        source = source_factory(never_settles=True)
        scheduler = _scheduler(source, settle_timeout=0.003)

        frames = await _collect(scheduler, 0.25, sample_config)

        assert len(frames) == 6
        assert all(f.stale for f in frames)
        assert scheduler.stale_count == 6

    async def test_lagging_decoder_settles(self, source_factory, sample_config):
        """Position reaching the target after a few polls is not stale."""
        source = source_factory(settle_after_polls=2)
        scheduler = _scheduler(source, settle_timeout=0.5)

        frames = await _collect(scheduler, 0.25, sample_config)

        assert not any(f.stale for f in frames)
        assert scheduler.stale_count == 0

    async def test_failure_aborts_with_index(self, source_factory, sample_config):
        """A decode failure at index 10 raises FrameExtractionError(10)."""
        from vidshift.errors import ErrorCategory, FrameExtractionError

        source = source_factory(fail_at=10)
        received = []

        with pytest.raises(FrameExtractionError) as exc_info:
            async for frame in _scheduler(source).frames(2.0, sample_config):
                received.append(frame.index)

        assert exc_info.value.at_index == 10
        assert exc_info.value.category == ErrorCategory.TRANSIENT_EXTRACTION
        assert received == list(range(10))
        assert len(source.seeks) == 11

    async def test_cancellation_between_frames(self, source_factory, sample_config):
        """Setting the cancel event stops production before the next frame."""
        from vidshift.errors import TransformationCancelledError

        cancel = asyncio.Event()
        received = []

        with pytest.raises(TransformationCancelledError):
            async for frame in _scheduler(source_factory()).frames(
                2.0, sample_config, cancel_event=cancel
            ):
                received.append(frame.index)
                if frame.index == 2:
                    cancel.set()

        assert received == [0, 1, 2]

    async def test_progress_events(self, source_factory, sample_config):
        """Roughly ten extraction events, one every max(1, total // 10) frames."""
        from vidshift.models.output import PipelineStage

        events = []
        await _collect(_scheduler(source_factory()), 2.0, sample_config, on_progress=events.append)

        # 48 frames -> every 4th frame
        assert len(events) == 12
        assert all(e.stage == PipelineStage.EXTRACTING for e in events)
        assert events[0].message == "Processing frame 1 of 48"
        assert events[0].fraction == pytest.approx(1 / 48)
        assert events[-1].message == "Processing frame 45 of 48"

    async def test_zero_length_source(self, source_factory, sample_config):
        """Durations shorter than one frame produce nothing."""
        source = source_factory()
        frames = await _collect(_scheduler(source), 0.01, sample_config)

        assert frames == []
        assert source.seeks == []

    async def test_wrong_render_size_is_extraction_error(self, sample_config):
        """A decoder returning the wrong size fails at that index."""
        from vidshift.errors import FrameExtractionError

        class ShrinkingSource:
            position = 0.0

            def seek(self, timestamp):
                self.position = timestamp

            def render(self, width, height):
                return np.zeros((height // 2, width // 2, 4), dtype=np.uint8)

            def release(self):
                pass

        with pytest.raises(FrameExtractionError) as exc_info:
            await _collect(_scheduler(ShrinkingSource()), 1.0, sample_config)

        assert exc_info.value.at_index == 0

    def test_invalid_parameters(self, source_factory):
        from vidshift.stream.scheduler import FrameScheduler

        with pytest.raises(ValueError):
            FrameScheduler(source_factory(), settle_timeout=0)
        with pytest.raises(ValueError):
            FrameScheduler(source_factory(), progress_steps=0)
