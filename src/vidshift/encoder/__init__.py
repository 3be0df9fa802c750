"""
Encoder Module
==============

Codec negotiation, encode sessions and the paced streaming encoder.

Components:
    - CodecOption / negotiate_codec: First-supported-wins selection
    - EncoderBackend / PyAVBackend: Codec and muxer runtimes
    - StreamingEncoder: Paced session producing an EncodedArtifact
"""

from vidshift.encoder.backend import (
    ChunkSink,
    EncodeSession,
    EncoderBackend,
    PyAVBackend,
)
from vidshift.encoder.codecs import (
    CODEC_OPTIONS,
    DEFAULT_CODEC_PREFERENCE,
    CodecOption,
    negotiate_codec,
)
from vidshift.encoder.streaming import StreamingEncoder

__all__ = [
    "CODEC_OPTIONS",
    "DEFAULT_CODEC_PREFERENCE",
    "ChunkSink",
    "CodecOption",
    "EncodeSession",
    "EncoderBackend",
    "PyAVBackend",
    "StreamingEncoder",
    "negotiate_codec",
]
