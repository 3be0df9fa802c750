"""
Frame Scheduler
===============

Walks the source timeline at the target frame rate and yields an ordered
sequence of transformed frames.

Per frame index i the scheduler moves through:

    SEEKING   request decode at t = i / fps + frame_offset_ms / 1000
    SETTLED   |position - t| < tolerance, or the bounded settle wait elapsed
              (the sample is then marked stale, which is not an error)
    SAMPLE    render at target resolution, transform, emit
    TERMINAL  after floor(duration * fps) frames

Design Rules:
    - Output is strictly ordered by index
    - Settle waits are cooperative (asyncio.sleep), never a busy loop
    - Any decode failure at index i aborts with FrameExtractionError(i)
    - Cancellation is observed between frames
"""

import asyncio
import logging
import math
from enum import Enum
from typing import AsyncIterator, Callable, Optional

import numpy as np

from vidshift.errors import FrameExtractionError, TransformationCancelledError
from vidshift.models.output import PipelineStage, ProgressEvent
from vidshift.models.transform import TransformConfig
from vidshift.stream.frame import FrameBuffer
from vidshift.stream.source import FrameSource, FrameSourceError
from vidshift.transform.color import transform_frame


logger = logging.getLogger(__name__)


ProgressCallback = Callable[[ProgressEvent], None]
SampleHook = Callable[[FrameBuffer, FrameBuffer], None]


class SchedulerPhase(str, Enum):
    """Scheduler state for the frame currently being processed."""

    SEEKING = "seeking"
    SETTLED = "settled"
    SAMPLE = "sample"
    TERMINAL = "terminal"


def compute_total_frames(duration: float, fps: float) -> int:
    """
    Number of output frames for a source duration.

    Example:
        compute_total_frames(10.4, 24) == 249
    """
    if fps <= 0:
        raise ValueError("fps must be positive")
    if duration <= 0:
        return 0
    return int(math.floor(duration * fps))


def frame_timestamp(index: int, fps: float, frame_offset_ms: float = 0.0) -> float:
    """Source timestamp (seconds) sampled for output frame `index`."""
    return index / fps + frame_offset_ms / 1000.0


class FrameScheduler:
    """
    Seek/settle/sample loop over a FrameSource.

    Blocking decoder calls run in a worker thread so the event loop stays
    responsive; the settle wait itself polls with asyncio.sleep.

    Usage:
        scheduler = FrameScheduler(source)
        async for frame in scheduler.frames(asset.duration, config):
            encoder_input.append(frame)

        print(scheduler.stale_count)
    """

    def __init__(
        self,
        source: FrameSource,
        seek_tolerance: float = 0.01,
        settle_timeout: float = 0.05,
        poll_interval: float = 0.004,
        progress_steps: int = 10,
    ) -> None:
        """
        Initialize scheduler.

        Args:
            source: Seekable decode resource
            seek_tolerance: Max distance (s) between position and target
            settle_timeout: Bounded settle wait per frame (s)
            poll_interval: Delay between position checks (s)
            progress_steps: Progress events emitted per run
        """
        if seek_tolerance <= 0:
            raise ValueError("seek_tolerance must be positive")
        if settle_timeout <= 0:
            raise ValueError("settle_timeout must be positive")
        if poll_interval <= 0:
            raise ValueError("poll_interval must be positive")
        if progress_steps < 1:
            raise ValueError("progress_steps must be >= 1")

        self._source = source
        self.seek_tolerance = seek_tolerance
        self.settle_timeout = settle_timeout
        self.poll_interval = poll_interval
        self.progress_steps = progress_steps

        self._phase = SchedulerPhase.TERMINAL
        self._stale_count = 0
        self._produced = 0
        self._total = 0

    @property
    def phase(self) -> SchedulerPhase:
        return self._phase

    @property
    def stale_count(self) -> int:
        """Frames sampled after the settle wait elapsed."""
        return self._stale_count

    @property
    def produced(self) -> int:
        return self._produced

    @property
    def total_frames(self) -> int:
        return self._total

    async def frames(
        self,
        duration: float,
        config: TransformConfig,
        *,
        rng: Optional[np.random.Generator] = None,
        on_progress: Optional[ProgressCallback] = None,
        cancel_event: Optional[asyncio.Event] = None,
        sample_hook: Optional[SampleHook] = None,
    ) -> AsyncIterator[FrameBuffer]:
        """
        Produce transformed frames in index order.

        Args:
            duration: Source duration in seconds
            config: Run parameters (fps, resolution, offsets, noise)
            rng: Random generator for the transform noise
            on_progress: Receives roughly one event per 1/progress_steps
            cancel_event: Checked before every frame
            sample_hook: Called with (original, transformed) for every frame;
                the hook takes ownership of the original

        Yields:
            Transformed FrameBuffer, index 0..total-1

        Raises:
            FrameExtractionError: Decode/seek failure at a given index
            TransformationCancelledError: cancel_event was set
        """
        if rng is None:
            rng = np.random.default_rng()

        total = compute_total_frames(duration, config.fps)
        width, height = config.resolution.as_tuple()
        every = max(1, total // self.progress_steps)

        self._total = total
        self._stale_count = 0
        self._produced = 0

        logger.info(
            f"Extracting {total} frames at {config.fps} fps, {width}x{height}, "
            f"offset {config.frame_offset}ms"
        )

        for index in range(total):
            if cancel_event is not None and cancel_event.is_set():
                logger.info(f"Extraction cancelled before frame {index}")
                raise TransformationCancelledError(f"Cancelled before frame {index}")

            target = frame_timestamp(index, config.fps, config.frame_offset)

            try:
                original = await self._sample(index, target, width, height)
            except Exception as e:
                logger.error(f"Frame extraction failed at index {index} (t={target:.3f}s): {e}")
                raise FrameExtractionError(index, str(e)) from e

            self._phase = SchedulerPhase.SAMPLE
            if original.stale:
                self._stale_count += 1
                logger.debug(f"Frame {index} sampled stale at t={target:.3f}s")

            transformed = transform_frame(
                original,
                config.color_shift,
                config.noise_level,
                rng,
            )

            if sample_hook is not None:
                sample_hook(original, transformed)

            self._produced += 1

            if index % every == 0:
                message = f"Processing frame {index + 1} of {total}"
                logger.debug(message)
                if on_progress is not None:
                    on_progress(ProgressEvent(
                        stage=PipelineStage.EXTRACTING,
                        fraction=(index + 1) / total,
                        message=message,
                    ))

            yield transformed

        self._phase = SchedulerPhase.TERMINAL

        if self._stale_count:
            logger.warning(
                f"{self._stale_count}/{total} frames sampled before the decoder settled"
            )
        logger.info(f"Extraction complete: {self._produced} frames")

    async def _sample(
        self,
        index: int,
        target: float,
        width: int,
        height: int,
    ) -> FrameBuffer:
        """Seek, settle and render one untransformed frame."""
        self._phase = SchedulerPhase.SEEKING
        await asyncio.to_thread(self._source.seek, target)

        settled = await self._wait_settled(target)
        self._phase = SchedulerPhase.SETTLED

        pixels = await asyncio.to_thread(self._source.render, width, height)
        if pixels.shape[:2] != (height, width):
            raise FrameSourceError(
                f"Rendered {pixels.shape[1]}x{pixels.shape[0]}, expected {width}x{height}"
            )

        return FrameBuffer(
            index=index,
            timestamp=target,
            pixels=pixels,
            stale=not settled,
        )

    async def _wait_settled(self, target: float) -> bool:
        """
        Wait until the decode position reaches target.

        Returns:
            True if settled within tolerance, False if the wait elapsed
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.settle_timeout

        while True:
            if abs(self._source.position - target) < self.seek_tolerance:
                return True
            remaining = deadline - loop.time()
            if remaining <= 0:
                return False
            await asyncio.sleep(min(self.poll_interval, remaining))
