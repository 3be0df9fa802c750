"""
Encoder Backends
================

Codec/muxer runtimes the Streaming Encoder drives.

This module provides:
    - EncoderBackend / EncodeSession: Protocols any runtime implements
    - PyAVBackend: FFmpeg runtime via PyAV
    - ChunkSink: Write-only file object turning muxer writes into chunks

Session Lifecycle:
    open_session() -> encode_video() * N -> close()    (success)
                                         -> abort()    (failure/cancel)

The muxer writes into a non-seekable ChunkSink, so output is produced as
a stream of chunks, each non-empty write being one chunk.
"""

import logging
from fractions import Fraction
from typing import Callable, Dict, Optional, Protocol, Sequence

import av
import numpy as np

from vidshift.audio.synthesis import AudioSampleBuffer
from vidshift.encoder.codecs import CodecOption
from vidshift.stream.frame import FrameBuffer


logger = logging.getLogger(__name__)


ChunkCallback = Callable[[bytes], None]


class EncodeSession(Protocol):
    """An open encode session for one output blob."""

    @property
    def has_audio(self) -> bool:
        ...

    def encode_video(self, frame: FrameBuffer) -> None:
        """Encode one frame (and any audio up to its end time)."""
        ...

    def close(self) -> None:
        """Flush encoders and finalize the container."""
        ...

    def abort(self) -> None:
        """Tear down without finalizing."""
        ...


class EncoderBackend(Protocol):
    """
    Protocol for encoder runtimes.

    Implementations:
        - PyAVBackend (production)
        - Recording fakes (tests)
    """

    def is_supported(self, option: CodecOption) -> bool:
        ...

    def open_session(
        self,
        option: CodecOption,
        *,
        width: int,
        height: int,
        fps: int,
        bitrate_kbps: int,
        metadata: Dict[str, str],
        audio: Optional[AudioSampleBuffer],
        on_chunk: ChunkCallback,
    ) -> EncodeSession:
        ...


class ChunkSink:
    """
    Write-only file object handed to the muxer.

    Has no seek/tell, so the muxer streams instead of rewriting headers.
    """

    def __init__(self, on_chunk: ChunkCallback) -> None:
        self._on_chunk = on_chunk
        self.bytes_written = 0

    def write(self, data) -> int:
        chunk = bytes(data)
        if chunk:
            self._on_chunk(chunk)
            self.bytes_written += len(chunk)
        return len(chunk)

    def flush(self) -> None:
        pass


# libopus only accepts a fixed set of rates; PyAV resamples on encode
_AUDIO_CODEC_RATES = {"libopus": 48000}

_CHANNEL_LAYOUTS = {1: "mono", 2: "stereo"}


def encoder_available(name: str) -> bool:
    """True if FFmpeg was built with the named encoder."""
    try:
        av.Codec(name, "w")
    except ValueError:
        return False
    return True


class PyAVSession:
    """
    One PyAV output container writing into a ChunkSink.

    Audio is interleaved with video: after each video frame, audio is
    encoded up to that frame's end time. Remaining audio is flushed on
    close().
    """

    def __init__(
        self,
        option: CodecOption,
        *,
        width: int,
        height: int,
        fps: int,
        bitrate_kbps: int,
        metadata: Dict[str, str],
        audio: Optional[AudioSampleBuffer],
        audio_codec: Optional[str],
        on_chunk: ChunkCallback,
    ) -> None:
        self._fps = fps
        self._frame_time_base = Fraction(1, fps)
        self._frames_written = 0
        self._audio_buffer = audio if audio_codec else None
        self._audio_cursor = 0
        self._audio_stream = None

        self._container = av.open(ChunkSink(on_chunk), mode="w", format=option.container)
        try:
            for key, value in metadata.items():
                self._container.metadata[key] = value

            codec_name = option.encoder or self._container.default_video_codec
            self._video_stream = self._container.add_stream(codec_name, rate=fps)
            video_context = self._video_stream.codec_context
            video_context.width = width
            video_context.height = height
            video_context.pix_fmt = "yuv420p"
            video_context.bit_rate = bitrate_kbps * 1000
            if codec_name.startswith("libvpx"):
                video_context.options = {
                    "deadline": "realtime",
                    "cpu-used": "8",
                }

            if self._audio_buffer is not None:
                rate = _AUDIO_CODEC_RATES.get(audio_codec, self._audio_buffer.sample_rate)
                self._audio_stream = self._container.add_stream(audio_codec, rate=rate)
                self._audio_stream.codec_context.layout = _CHANNEL_LAYOUTS[self._audio_buffer.channels]
        except Exception:
            self._container.close()
            raise

        logger.info(
            f"Encode session opened: {codec_name} {width}x{height}@{fps} "
            f"{bitrate_kbps}kbps, audio={audio_codec or 'none'}"
        )

    @property
    def has_audio(self) -> bool:
        return self._audio_stream is not None

    def encode_video(self, frame: FrameBuffer) -> None:
        video_frame = av.VideoFrame.from_ndarray(frame.pixels, format="rgba")
        video_frame.pts = self._frames_written
        video_frame.time_base = self._frame_time_base

        for packet in self._video_stream.encode(video_frame):
            self._container.mux(packet)
        self._frames_written += 1

        self._encode_audio_until(self._frames_written / self._fps)

    def close(self) -> None:
        if self._audio_buffer is not None:
            self._encode_audio_until(self._audio_buffer.duration)

        for packet in self._video_stream.encode(None):
            self._container.mux(packet)
        if self._audio_stream is not None:
            for packet in self._audio_stream.encode(None):
                self._container.mux(packet)

        self._container.close()
        logger.debug(f"Encode session closed after {self._frames_written} frames")

    def abort(self) -> None:
        try:
            self._container.close()
        except av.FFmpegError as e:
            logger.debug(f"Ignoring error while aborting encode session: {e}")

    def _encode_audio_until(self, seconds: float) -> None:
        if self._audio_stream is None:
            return

        buffer = self._audio_buffer
        end = min(buffer.length, int(round(seconds * buffer.sample_rate)))
        if end <= self._audio_cursor:
            return

        samples = np.ascontiguousarray(buffer.samples[:, self._audio_cursor:end])
        audio_frame = av.AudioFrame.from_ndarray(
            samples,
            format="fltp",
            layout=_CHANNEL_LAYOUTS[buffer.channels],
        )
        audio_frame.sample_rate = buffer.sample_rate
        audio_frame.pts = self._audio_cursor
        audio_frame.time_base = Fraction(1, buffer.sample_rate)

        for packet in self._audio_stream.encode(audio_frame):
            self._container.mux(packet)
        self._audio_cursor = end


class PyAVBackend:
    """
    FFmpeg encoder runtime via PyAV.

    Support for a codec option requires both the muxer and the encoder
    to be compiled into the linked FFmpeg.
    """

    def __init__(self, audio_codec_preference: Sequence[str] = ("libopus", "libvorbis")) -> None:
        self.audio_codec_preference = tuple(audio_codec_preference)

    def is_supported(self, option: CodecOption) -> bool:
        if option.container not in av.formats_available:
            return False
        if option.encoder is None:
            return True
        return encoder_available(option.encoder)

    def negotiate_audio_codec(self) -> Optional[str]:
        """First available audio encoder in preference order, or None."""
        for name in self.audio_codec_preference:
            if encoder_available(name):
                return name
        return None

    def open_session(
        self,
        option: CodecOption,
        *,
        width: int,
        height: int,
        fps: int,
        bitrate_kbps: int,
        metadata: Dict[str, str],
        audio: Optional[AudioSampleBuffer],
        on_chunk: ChunkCallback,
    ) -> PyAVSession:
        audio_codec = None
        if audio is not None:
            audio_codec = self.negotiate_audio_codec()
            if audio_codec is None:
                logger.warning(
                    f"No audio encoder among {list(self.audio_codec_preference)}, "
                    f"output will be video-only"
                )

        return PyAVSession(
            option,
            width=width,
            height=height,
            fps=fps,
            bitrate_kbps=bitrate_kbps,
            metadata=metadata,
            audio=audio,
            audio_codec=audio_codec,
            on_chunk=on_chunk,
        )
