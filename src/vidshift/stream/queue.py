"""
Frame Queue
===========

Bounded async channel between the Frame Scheduler and the Streaming Encoder
in pipelined mode.

Design Rules:
    - Fixed maximum size, producer waits when full (back-pressure)
    - Never drops or reorders frames: indices must strictly increase
    - close() marks end of stream; iteration stops after the last frame
    - Does NOT process or modify frames
"""

import asyncio
import logging
from typing import AsyncIterator, Optional

from vidshift.stream.frame import FrameBuffer


logger = logging.getLogger(__name__)


_END_OF_STREAM = object()


class FrameQueue:
    """
    Bounded, order-preserving frame channel.

    Peak memory is bounded by maxsize frames instead of the full sequence.

    Attributes:
        maxsize: Maximum number of frames held
        total_put: Frames accepted so far
        peak_size: Largest number of frames held at once

    Example:
        queue = FrameQueue(maxsize=32)

        # Producer
        await queue.put(frame)
        await queue.close()

        # Consumer
        async for frame in queue:
            encode(frame)
    """

    def __init__(self, maxsize: int = 32) -> None:
        """
        Initialize frame queue.

        Args:
            maxsize: Maximum frames to hold. Must be >= 1.
        """
        if maxsize < 1:
            raise ValueError("maxsize must be >= 1")

        self._maxsize = maxsize
        # One extra slot so close() never blocks behind a full queue
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize + 1)
        self._slots = asyncio.Semaphore(maxsize)
        self._closed: bool = False
        self._finished: bool = False
        self._last_index: int = -1
        self._total_put: int = 0
        self._peak_size: int = 0

    @property
    def maxsize(self) -> int:
        return self._maxsize

    @property
    def size(self) -> int:
        """Current number of frames held (excluding the end marker)."""
        size = self._queue.qsize()
        if self._closed and not self._finished:
            size -= 1
        return max(0, size)

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def total_put(self) -> int:
        return self._total_put

    @property
    def peak_size(self) -> int:
        return self._peak_size

    async def put(self, frame: FrameBuffer) -> None:
        """
        Add a frame, waiting while the queue is full.

        Raises:
            RuntimeError: If the queue was closed
            ValueError: If frame index does not strictly increase
        """
        if self._closed:
            raise RuntimeError("Cannot put into a closed FrameQueue")
        if frame.index <= self._last_index:
            raise ValueError(
                f"Frame order violated: got index {frame.index} after {self._last_index}"
            )

        await self._slots.acquire()
        self._last_index = frame.index
        self._queue.put_nowait(frame)
        self._total_put += 1
        self._peak_size = max(self._peak_size, self._queue.qsize())

    async def close(self) -> None:
        """Signal end of stream. Idempotent."""
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(_END_OF_STREAM)

    async def get(self, timeout: Optional[float] = None) -> Optional[FrameBuffer]:
        """
        Get the next frame.

        Args:
            timeout: Maximum seconds to wait. None = wait forever.

        Returns:
            Next frame, or None at end of stream or on timeout.
        """
        if self._finished:
            return None
        try:
            if timeout is not None:
                item = await asyncio.wait_for(self._queue.get(), timeout=timeout)
            else:
                item = await self._queue.get()
        except asyncio.TimeoutError:
            return None

        if item is _END_OF_STREAM:
            self._finished = True
            return None

        self._slots.release()
        return item

    async def __aiter__(self) -> AsyncIterator[FrameBuffer]:
        while True:
            frame = await self.get()
            if frame is None:
                return
            yield frame

    def metrics(self) -> dict:
        """
        Get queue metrics for observability.

        Returns:
            Dict with size, maxsize, total_put, peak_size, closed
        """
        return {
            "size": self.size,
            "maxsize": self._maxsize,
            "total_put": self._total_put,
            "peak_size": self._peak_size,
            "closed": self._closed,
        }
