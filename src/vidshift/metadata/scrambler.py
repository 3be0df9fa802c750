"""
Metadata Scrambler
==================

Synthetic container metadata for the output header.

When scrambling is enabled, exactly SCRAMBLED_FIELDS are written with
freshly generated values; the nonce field carries `timestamp_shift` random
bytes so no two outputs share a header. Encoder identity fields are
randomized only when header modification is also enabled.

The muxer stamps its own "encoder" tag on every output, so the identity
travels in "software" and "encoded_by" where it survives muxing.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional

import numpy as np

from vidshift.models.transform import TransformConfig


logger = logging.getLogger(__name__)


SCRAMBLED_FIELDS = (
    "title",
    "artist",
    "album",
    "album_artist",
    "comment",
    "description",
    "copyright",
    "genre",
    "date",
    "creation_time",
    "software",
    "encoded_by",
    "language",
    "track",
    "nonce",
)

NEUTRAL_ENCODER = "vidshift"

_GENRES = ("Vlog", "Documentary", "Tutorial", "Music", "Travel", "Gaming", "News")
_LANGUAGES = ("und", "eng", "fra", "deu", "spa", "ita", "por")
_ENCODER_FAMILIES = ("Lavf", "libebml", "mkvmerge", "HandBrake")

# Max backdating applied to creation_time
_MAX_TIME_SHIFT = timedelta(days=30)


@dataclass(frozen=True)
class ScrambledMetadata:
    """
    Header fields to write and how many count as altered.

    Attributes:
        fields: Container metadata key/value pairs
        altered_count: Number of fields reported as changed
    """

    fields: Dict[str, str] = field(default_factory=dict)
    altered_count: int = 0


def _token(rng: np.random.Generator, nbytes: int) -> str:
    return rng.bytes(nbytes).hex()


def _encoder_identity(rng: np.random.Generator) -> str:
    family = _ENCODER_FAMILIES[int(rng.integers(len(_ENCODER_FAMILIES)))]
    major = int(rng.integers(1, 62))
    minor = int(rng.integers(0, 100))
    patch = int(rng.integers(0, 200))
    return f"{family}{major}.{minor}.{patch}"


def scramble_metadata(
    config: TransformConfig,
    rng: Optional[np.random.Generator] = None,
    now: Optional[datetime] = None,
) -> ScrambledMetadata:
    """
    Generate synthetic header fields from the data scrambling flags.

    Args:
        config: Run parameters (metadata_scrambling, timestamp_shift,
            header_modification)
        rng: Random generator for field values
        now: Reference time for creation_time (defaults to UTC now)

    Returns:
        ScrambledMetadata; empty with altered_count 0 when scrambling is off
    """
    if not config.metadata_scrambling:
        return ScrambledMetadata()

    if rng is None:
        rng = np.random.default_rng()
    if now is None:
        now = datetime.now(timezone.utc)

    shift_seconds = float(rng.uniform(0, _MAX_TIME_SHIFT.total_seconds()))
    created = now - timedelta(seconds=shift_seconds)

    if config.header_modification:
        software = _encoder_identity(rng)
        encoded_by = _encoder_identity(rng)
    else:
        software = NEUTRAL_ENCODER
        encoded_by = NEUTRAL_ENCODER

    fields = {
        "title": f"clip_{_token(rng, 4)}",
        "artist": f"user_{_token(rng, 3)}",
        "album": f"collection_{_token(rng, 3)}",
        "album_artist": f"user_{_token(rng, 3)}",
        "comment": _token(rng, 8),
        "description": _token(rng, 12),
        "copyright": f"(c) {created.year} {_token(rng, 2)}",
        "genre": _GENRES[int(rng.integers(len(_GENRES)))],
        "date": created.strftime("%Y-%m-%d"),
        "creation_time": created.strftime("%Y-%m-%dT%H:%M:%S.%fZ"),
        "software": software,
        "encoded_by": encoded_by,
        "language": _LANGUAGES[int(rng.integers(len(_LANGUAGES)))],
        "track": str(int(rng.integers(1, 100))),
        "nonce": _token(rng, config.timestamp_shift),
    }

    logger.debug(f"Scrambled {len(fields)} metadata fields (nonce {config.timestamp_shift} bytes)")

    return ScrambledMetadata(fields=fields, altered_count=len(fields))
