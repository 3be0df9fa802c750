"""
Streaming Encoder
=================

Drives one encode session: negotiate codec, hand frames over on a fixed
1000/fps millisecond timer, collect chunks, assemble the blob.

Design Rules:
    - Codec negotiation happens before any session is opened
    - Frame hand-off is paced by the event loop clock, independent of how
      fast frames were extracted
    - Any failure discards all chunks and aborts the session
    - The artifact's MIME type and extension reflect the negotiated codec
"""

import asyncio
import logging
from typing import AsyncIterable, AsyncIterator, Callable, Dict, Iterable, List, Optional, Sequence, Union

from vidshift.audio.synthesis import AudioSampleBuffer
from vidshift.encoder.backend import EncodeSession, EncoderBackend
from vidshift.encoder.codecs import DEFAULT_CODEC_PREFERENCE, CodecOption, negotiate_codec
from vidshift.errors import EncodingError, TransformationCancelledError, TransformationError
from vidshift.models.output import EncodedArtifact, PipelineStage, ProgressEvent
from vidshift.stream.frame import FrameBuffer


logger = logging.getLogger(__name__)


FrameInput = Union[Iterable[FrameBuffer], AsyncIterable[FrameBuffer]]


async def _iterate(frames: FrameInput) -> AsyncIterator[FrameBuffer]:
    if hasattr(frames, "__aiter__"):
        async for frame in frames:
            yield frame
    else:
        for frame in frames:
            yield frame


class StreamingEncoder:
    """
    Paced encoder producing an in-memory EncodedArtifact.

    Accepts a finished frame list (batch mode) or an async frame stream
    such as a FrameQueue (pipelined mode).

    Example:
        encoder = StreamingEncoder(PyAVBackend())
        artifact = await encoder.encode(
            frames, width=1280, height=720, fps=24, bitrate_kbps=2000,
            audio=audio, metadata={},
        )
    """

    def __init__(
        self,
        backend: EncoderBackend,
        codec_preference: Sequence[str] = DEFAULT_CODEC_PREFERENCE,
        realtime: bool = True,
        progress_steps: int = 10,
    ) -> None:
        """
        Initialize encoder.

        Args:
            backend: Codec/muxer runtime
            codec_preference: Ordered codec option names
            realtime: Pace frames at 1000/fps ms; False encodes as fast
                as frames arrive
            progress_steps: Progress events emitted per run
        """
        self.backend = backend
        self.codec_preference = tuple(codec_preference)
        self.realtime = realtime
        self.progress_steps = max(1, progress_steps)
        self.frames_encoded = 0

    def negotiate(self) -> CodecOption:
        """Resolve the codec option without opening a session."""
        return negotiate_codec(self.backend, self.codec_preference)

    async def encode(
        self,
        frames: FrameInput,
        *,
        width: int,
        height: int,
        fps: int,
        bitrate_kbps: int,
        audio: Optional[AudioSampleBuffer],
        metadata: Dict[str, str],
        total_frames: Optional[int] = None,
        on_progress: Optional[Callable[[ProgressEvent], None]] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> EncodedArtifact:
        """
        Encode frames into one blob.

        Args:
            frames: Ordered frames (list or async stream)
            width: Output width
            height: Output height
            fps: Output frame rate (also sets the pacing interval)
            bitrate_kbps: Target video bitrate
            audio: Replacement audio track, or None for video-only
            metadata: Container header fields
            total_frames: Expected frame count (enables progress events)
            on_progress: Progress receiver
            cancel_event: Checked between timer ticks

        Returns:
            EncodedArtifact holding the assembled blob

        Raises:
            NoSupportedCodecError: No codec option is supported
            EncodingError: The session failed
            TransformationCancelledError: cancel_event was set
        """
        if fps <= 0:
            raise ValueError("fps must be positive")

        option = self.negotiate()

        chunks: List[bytes] = []
        try:
            session = self.backend.open_session(
                option,
                width=width,
                height=height,
                fps=fps,
                bitrate_kbps=bitrate_kbps,
                metadata=metadata,
                audio=audio,
                on_chunk=chunks.append,
            )
        except Exception as e:
            logger.error(f"Failed to open encode session ({option.name}): {e}")
            raise EncodingError(f"Failed to open {option.name} session: {e}") from e

        self.frames_encoded = 0
        every = max(1, total_frames // self.progress_steps) if total_frames else 0
        interval = 1.0 / fps
        loop = asyncio.get_running_loop()
        next_tick = loop.time()

        try:
            async for frame in _iterate(frames):
                if cancel_event is not None and cancel_event.is_set():
                    raise TransformationCancelledError(
                        f"Cancelled after {self.frames_encoded} encoded frames"
                    )

                if self.realtime:
                    delay = next_tick - loop.time()
                    if delay > 0:
                        await asyncio.sleep(delay)
                    next_tick += interval

                await self._run_session_call(session.encode_video, frame)
                self.frames_encoded += 1

                if every and (self.frames_encoded - 1) % every == 0 and on_progress is not None:
                    on_progress(ProgressEvent(
                        stage=PipelineStage.ENCODING,
                        fraction=min(1.0, self.frames_encoded / total_frames),
                        message=f"Encoding frame {self.frames_encoded} of {total_frames}",
                    ))

            await self._run_session_call(session.close)

        except (TransformationError, asyncio.CancelledError):
            self._abort(session, chunks)
            raise
        except Exception as e:
            self._abort(session, chunks)
            raise EncodingError(str(e)) from e

        data = b"".join(chunks)
        artifact = EncodedArtifact(
            codec=option.name,
            mime_type=option.mime_type,
            extension=option.extension,
            chunk_count=len(chunks),
            size_bytes=len(data),
            data=data,
        )

        logger.info(
            f"Encoded {self.frames_encoded} frames -> {artifact.size_bytes} bytes "
            f"in {artifact.chunk_count} chunks ({artifact.mime_type})"
        )
        return artifact

    async def _run_session_call(self, call, *args) -> None:
        """Run a blocking session call off-loop; wrap backend failures."""
        try:
            await asyncio.to_thread(call, *args)
        except Exception as e:
            logger.error(f"Encoder failure after {self.frames_encoded} frames: {e}")
            raise EncodingError(str(e)) from e

    def _abort(self, session: EncodeSession, chunks: List[bytes]) -> None:
        logger.info(f"Aborting encode session, discarding {len(chunks)} chunks")
        session.abort()
        chunks.clear()
