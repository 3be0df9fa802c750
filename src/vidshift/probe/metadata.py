"""
Metadata Probe
==============

Inspects a source asset and reports duration, native resolution, native
frame rate, estimated bitrate, MIME type and size.

The probe owns the decoding resources for the asset: the frame sources
it opens and, for in-memory uploads, the temporary file they read. Both
are released together by ProbedMedia.release().

Design Rules:
    - MIME type is derived from the file name; non-video types are rejected
      before anything is decoded
    - The blocking decoder open runs in a worker thread under a bounded wait
    - Bitrate is estimated from size and duration, never read from headers
    - Streamed containers without a frame count fall back to a demuxed
      duration (container header, stream header, then packet timestamps)
    - Any decoder failure removes the spooled upload and surfaces as
      UnreadableMediaError
"""

import asyncio
import logging
import mimetypes
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Union

import av
import cv2
import numpy as np

from vidshift.errors import InvalidInputError, UnreadableMediaError
from vidshift.models.media import SourceAsset, estimate_bitrate_kbps
from vidshift.stream.source import OpenCVFrameSource


logger = logging.getLogger(__name__)


MediaHandle = Union[str, Path, bytes, bytearray]

# Frame rates above this are treated as unreported
_MAX_PLAUSIBLE_FPS = 1000.0


@dataclass(frozen=True)
class StreamInfo:
    """Raw values read from the decoder."""

    width: int
    height: int
    fps: float
    frame_count: int


def _read_stream_info(path: Path) -> StreamInfo:
    capture = cv2.VideoCapture(str(path))
    try:
        if not capture.isOpened():
            raise UnreadableMediaError(f"Decoder could not open {path.name}")
        return StreamInfo(
            width=int(capture.get(cv2.CAP_PROP_FRAME_WIDTH)),
            height=int(capture.get(cv2.CAP_PROP_FRAME_HEIGHT)),
            fps=float(capture.get(cv2.CAP_PROP_FPS) or 0.0),
            frame_count=int(capture.get(cv2.CAP_PROP_FRAME_COUNT) or 0),
        )
    finally:
        capture.release()


def _read_demuxed_duration(path: Path) -> float:
    """
    Duration in seconds read through the demuxer.

    Used when the decoder reports no frame count, as for webm written to a
    non-seekable sink. Prefers the container duration, then the video
    stream duration, then the span of video packet timestamps plus one
    frame interval.
    """
    with av.open(str(path)) as container:
        if container.duration:
            return container.duration / av.time_base

        if not container.streams.video:
            raise UnreadableMediaError(f"{path.name} has no video stream")
        stream = container.streams.video[0]
        if stream.duration and stream.time_base:
            return float(stream.duration * stream.time_base)

        timestamps = sorted({
            packet.pts
            for packet in container.demux(stream)
            if packet.pts is not None and packet.size
        })
        if not timestamps or stream.time_base is None:
            return 0.0
        if len(timestamps) > 1:
            frame_step = float(np.median(np.diff(timestamps)))
        elif stream.average_rate:
            frame_step = float(1 / (stream.average_rate * stream.time_base))
        else:
            frame_step = 0.0

        span = timestamps[-1] - timestamps[0] + frame_step
        return span * float(stream.time_base)


def detect_mime_type(filename: str) -> Optional[str]:
    mime_type, _ = mimetypes.guess_type(filename)
    return mime_type


class ProbedMedia:
    """
    Handle to a probed asset and its decoding resources.

    Usage:
        with await probe_media("clip.mp4") as media:
            source = media.open_frame_source()
            ...
    """

    def __init__(
        self,
        asset: SourceAsset,
        path: Path,
        temp_path: Optional[Path] = None,
    ) -> None:
        self.asset = asset
        self.path = path
        self._temp_path = temp_path
        self._sources: List[OpenCVFrameSource] = []
        self._released = False

    @property
    def released(self) -> bool:
        return self._released

    def open_frame_source(self) -> OpenCVFrameSource:
        """Open a seekable decoder over the asset."""
        if self._released:
            raise RuntimeError("ProbedMedia already released")
        source = OpenCVFrameSource(
            self.path,
            native_fps=self.asset.fps,
            duration=self.asset.duration,
        )
        self._sources.append(source)
        return source

    def release(self) -> None:
        """Release decoders and remove any temporary file. Idempotent."""
        if self._released:
            return
        for source in self._sources:
            source.release()
        self._sources.clear()
        if self._temp_path is not None:
            _remove_quietly(self._temp_path)
        self._released = True
        logger.debug(f"Released probe resources for {self.asset.name}")

    def __enter__(self) -> "ProbedMedia":
        return self

    def __exit__(self, *args) -> None:
        self.release()


def _remove_quietly(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        pass


def _spool_to_temp(data: bytes, suffix: str) -> Path:
    fd, name = tempfile.mkstemp(prefix="vidshift-", suffix=suffix)
    with os.fdopen(fd, "wb") as f:
        f.write(data)
    return Path(name)


async def probe_media(
    handle: MediaHandle,
    *,
    filename: Optional[str] = None,
    timeout: float = 10.0,
    default_fps: float = 30.0,
) -> ProbedMedia:
    """
    Probe a video file or in-memory upload.

    Args:
        handle: Path to a file, or the raw bytes of an upload
        filename: Name used for MIME detection (required for bytes)
        timeout: Bounded wait for the decoder to establish metadata
        default_fps: Native fps assumed when the container reports none

    Returns:
        ProbedMedia holding the SourceAsset and the decoding resources

    Raises:
        InvalidInputError: The name does not map to a video/* MIME type
        UnreadableMediaError: The decoder cannot establish metadata
    """
    is_bytes = isinstance(handle, (bytes, bytearray))

    if is_bytes:
        name = filename or "video"
    else:
        name = filename or Path(handle).name

    mime_type = detect_mime_type(name)
    if not mime_type or not mime_type.startswith("video/"):
        logger.warning(f"Rejected non-video input: {name} ({mime_type})")
        raise InvalidInputError(f"{name} is not a video file (type: {mime_type})")

    temp_path: Optional[Path] = None
    if is_bytes:
        temp_path = _spool_to_temp(bytes(handle), Path(name).suffix)
        path = temp_path
        size_bytes = len(handle)
    else:
        path = Path(handle)
        if not path.is_file():
            raise UnreadableMediaError(f"File not found: {path}")
        size_bytes = path.stat().st_size

    try:
        info = await asyncio.wait_for(
            asyncio.to_thread(_read_stream_info, path),
            timeout=timeout,
        )

        if info.width <= 0 or info.height <= 0:
            raise UnreadableMediaError(f"{name} reports no video dimensions")

        fps = info.fps
        if not (0 < fps <= _MAX_PLAUSIBLE_FPS):
            logger.info(f"{name} reports no usable frame rate, assuming {default_fps} fps")
            fps = default_fps

        if info.frame_count > 0:
            duration = info.frame_count / fps
        else:
            logger.info(f"{name} reports no frame count, reading duration from the demuxer")
            duration = await asyncio.wait_for(
                asyncio.to_thread(_read_demuxed_duration, path),
                timeout=timeout,
            )
        if duration <= 0:
            raise UnreadableMediaError(f"{name} reports no frames")

        asset = SourceAsset(
            name=name,
            duration=duration,
            width=info.width,
            height=info.height,
            fps=fps,
            bitrate=estimate_bitrate_kbps(size_bytes, duration),
            mime_type=mime_type,
            size_bytes=size_bytes,
        )

    except asyncio.TimeoutError as e:
        if temp_path is not None:
            _remove_quietly(temp_path)
        logger.error(f"Probe of {name} timed out after {timeout}s")
        raise UnreadableMediaError(f"Timed out probing {name} after {timeout}s") from e

    except UnreadableMediaError:
        if temp_path is not None:
            _remove_quietly(temp_path)
        logger.error(f"Failed to probe {name}")
        raise

    except Exception as e:
        if temp_path is not None:
            _remove_quietly(temp_path)
        logger.error(f"Decoder failed while probing {name}: {e}")
        raise UnreadableMediaError(f"Failed to probe {name}: {e}") from e

    logger.info(
        f"Probed {asset.name}: {asset.width}x{asset.height} @ {asset.fps:.2f} fps, "
        f"{asset.duration:.2f}s, ~{asset.bitrate} kbps, {asset.mime_type}"
    )

    return ProbedMedia(asset, path, temp_path)
