"""
Stream Module
=============

Frame extraction primitives: decode sources and the bounded frame queue
used in pipelined mode.

This module provides:
    - FrameBuffer: Internal RGBA frame representation
    - FrameSource / OpenCVFrameSource: Seekable decoders
    - FrameQueue: Bounded producer/consumer channel

The seek/settle loop lives in vidshift.stream.scheduler and is imported
from there directly, since it depends on the transform engine.
"""

from vidshift.stream.frame import FrameBuffer
from vidshift.stream.queue import FrameQueue
from vidshift.stream.source import FrameSource, FrameSourceError, OpenCVFrameSource

__all__ = [
    "FrameBuffer",
    "FrameQueue",
    "FrameSource",
    "FrameSourceError",
    "OpenCVFrameSource",
]
