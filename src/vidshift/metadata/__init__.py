"""
Metadata Module
===============

Synthetic container header fields.
"""

from vidshift.metadata.scrambler import (
    NEUTRAL_ENCODER,
    SCRAMBLED_FIELDS,
    ScrambledMetadata,
    scramble_metadata,
)

__all__ = [
    "NEUTRAL_ENCODER",
    "SCRAMBLED_FIELDS",
    "ScrambledMetadata",
    "scramble_metadata",
]
