"""
Difference and Similarity Reporting
===================================

Quantifies how much technically changed versus how much visually stayed
the same.

Change counts:
    parameter_changes   differing fields among fps, width, height, bitrate,
                        and container type (source MIME vs video/<format>)
    frame_data_changes  frames produced
    audio_data_changes  replacement audio length (frames per channel)
    metadata_changes    header fields the scrambler wrote (0 when off)

Similarity:
    estimated   bounded placeholder in [95, 99], not a measurement
    measured    100 * (1 - mean absolute RGB difference / 255) over sampled
                original/transformed frame pairs
"""

import logging
from typing import Optional, Sequence, Tuple

import numpy as np

from vidshift.models.media import SourceAsset
from vidshift.models.output import TechnicalDifferenceSummary
from vidshift.models.transform import TransformConfig


logger = logging.getLogger(__name__)


ESTIMATED_SIMILARITY_RANGE = (95, 99)


def count_parameter_changes(asset: SourceAsset, config: TransformConfig) -> int:
    """
    Count technical parameters that differ between source and target.

    The container comparison is against the REQUESTED format label.
    """
    changes = 0
    if asset.fps != config.fps:
        changes += 1
    if asset.width != config.resolution.width:
        changes += 1
    if asset.height != config.resolution.height:
        changes += 1
    if asset.bitrate != config.bitrate:
        changes += 1
    if asset.mime_type != config.format.mime_type:
        changes += 1
    return changes


def summarize_differences(
    asset: SourceAsset,
    config: TransformConfig,
    frames_produced: int,
    audio_length: int,
    metadata_changes: int,
) -> TechnicalDifferenceSummary:
    """
    Build the change-count summary for a finished run.

    metadata_changes is the altered_count of the header actually written.
    """
    return TechnicalDifferenceSummary(
        parameter_changes=count_parameter_changes(asset, config),
        frame_data_changes=frames_produced,
        audio_data_changes=audio_length,
        metadata_changes=metadata_changes,
    )


def estimate_visual_similarity(rng: Optional[np.random.Generator] = None) -> float:
    """
    Placeholder similarity percentage.

    Returns an integer-valued percentage in [95, 99]. It is NOT derived from
    pixel data.
    """
    if rng is None:
        rng = np.random.default_rng()
    low, high = ESTIMATED_SIMILARITY_RANGE
    return float(round(low + rng.random() * (high - low)))


def mean_absolute_difference(original: np.ndarray, transformed: np.ndarray) -> float:
    """Mean absolute difference over the RGB channels of two frames."""
    if original.shape != transformed.shape:
        raise ValueError(
            f"Frame shapes differ: {original.shape} vs {transformed.shape}"
        )
    a = original[..., :3].astype(np.int16)
    b = transformed[..., :3].astype(np.int16)
    return float(np.mean(np.abs(a - b)))


def measure_visual_similarity(pairs: Sequence[Tuple[np.ndarray, np.ndarray]]) -> float:
    """
    Similarity percentage measured from sampled frame pairs.

    Args:
        pairs: (original, transformed) RGBA pixel arrays

    Returns:
        100 * (1 - mean_absolute_difference / 255), rounded to 2 decimals
    """
    if not pairs:
        raise ValueError("At least one frame pair is required")

    mad = float(np.mean([mean_absolute_difference(a, b) for a, b in pairs]))
    similarity = 100.0 * (1.0 - mad / 255.0)

    logger.debug(f"Measured similarity over {len(pairs)} pairs: MAD={mad:.3f}")

    return round(max(0.0, min(100.0, similarity)), 2)
