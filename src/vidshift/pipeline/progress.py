"""
Progress Relay
==============

Fan-out of presentation-only progress events.

The pipeline reports through a plain callback. ProgressRelay is one such
callback: it keeps the latest event and history for polling clients and
pushes every event to subscriber queues for streaming clients.

Design Rules:
    - Never blocks the pipeline (subscriber queues are unbounded)
    - Does NOT influence the run; dropping all subscribers is harmless
"""

import asyncio
import logging
from typing import List, Optional

from vidshift.models.output import PipelineStage, ProgressEvent


logger = logging.getLogger(__name__)


class ProgressRelay:
    """
    Progress callback with history and subscriber fan-out.

    Example:
        relay = ProgressRelay()
        await pipeline.run(asset, config, on_progress=relay)

        queue = relay.subscribe()
        event = await queue.get()   # None marks the end of the run
    """

    def __init__(self) -> None:
        self._history: List[ProgressEvent] = []
        self._subscribers: List[asyncio.Queue] = []
        self._finished = False

    def __call__(self, event: ProgressEvent) -> None:
        self._history.append(event)
        if event.stage != PipelineStage.EXTRACTING and event.stage != PipelineStage.ENCODING:
            logger.info(f"Progress: {event.stage.value} {event.fraction:.0%} {event.message}")
        for queue in self._subscribers:
            queue.put_nowait(event)

    @property
    def latest(self) -> Optional[ProgressEvent]:
        return self._history[-1] if self._history else None

    @property
    def history(self) -> List[ProgressEvent]:
        return list(self._history)

    @property
    def finished(self) -> bool:
        return self._finished

    def subscribe(self) -> asyncio.Queue:
        """
        Subscribe to events.

        The queue is pre-filled with the history so late subscribers see
        the whole run. None is delivered once the run has finished.
        """
        queue: asyncio.Queue = asyncio.Queue()
        for event in self._history:
            queue.put_nowait(event)
        if self._finished:
            queue.put_nowait(None)
        else:
            self._subscribers.append(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        if queue in self._subscribers:
            self._subscribers.remove(queue)

    def finish(self) -> None:
        """Mark the run as finished (successfully or not). Idempotent."""
        if self._finished:
            return
        self._finished = True
        for queue in self._subscribers:
            queue.put_nowait(None)
        self._subscribers.clear()
