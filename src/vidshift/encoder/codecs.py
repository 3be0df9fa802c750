"""
Codec Negotiation
=================

Ordered codec options and first-supported-wins negotiation.

Options (default preference order):
    vp9      video/webm; codecs=vp9   libvpx-vp9
    vp8      video/webm; codecs=vp8   libvpx
    default  video/webm               the webm muxer's default video codec

Every option produces a webm container, so the artifact extension is
always "webm" regardless of the requested OutputFormat.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Optional, Protocol, Sequence

from vidshift.errors import NoSupportedCodecError


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CodecOption:
    """
    One negotiable output format.

    Attributes:
        name: Option name used in configuration
        mime_type: Declared type of the produced blob
        encoder: FFmpeg encoder name (None = container default)
        container: Muxer format name
        extension: Output file extension
    """

    name: str
    mime_type: str
    encoder: Optional[str]
    container: str = "webm"
    extension: str = "webm"


CODEC_OPTIONS: Dict[str, CodecOption] = {
    "vp9": CodecOption(
        name="vp9",
        mime_type="video/webm; codecs=vp9",
        encoder="libvpx-vp9",
    ),
    "vp8": CodecOption(
        name="vp8",
        mime_type="video/webm; codecs=vp8",
        encoder="libvpx",
    ),
    "default": CodecOption(
        name="default",
        mime_type="video/webm",
        encoder=None,
    ),
}

DEFAULT_CODEC_PREFERENCE = ("vp9", "vp8", "default")


class SupportsCodecQuery(Protocol):
    """Anything that can answer whether a codec option is usable."""

    def is_supported(self, option: CodecOption) -> bool:
        ...


def negotiate_codec(
    backend: SupportsCodecQuery,
    preference: Sequence[str] = DEFAULT_CODEC_PREFERENCE,
) -> CodecOption:
    """
    Pick the first option in preference order the backend supports.

    Args:
        backend: Encoder backend to query
        preference: Ordered option names

    Returns:
        The negotiated CodecOption

    Raises:
        NoSupportedCodecError: If no option is supported
    """
    for name in preference:
        option = CODEC_OPTIONS.get(name)
        if option is None:
            logger.warning(f"Unknown codec option '{name}' in preference list, skipping")
            continue
        if backend.is_supported(option):
            logger.info(f"Negotiated codec: {option.name} ({option.mime_type})")
            return option
        logger.debug(f"Codec option not supported: {option.name}")

    logger.error(f"No supported video codec among {list(preference)}")
    raise NoSupportedCodecError(f"No supported video codec among {list(preference)}")
