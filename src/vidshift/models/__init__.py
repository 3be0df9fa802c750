"""
Data Models
===========

Pydantic models for vidshift.

This module re-exports all data models for convenient access.

Models:
    Media:
        - OutputFormat: Requested container label
        - Resolution: Target dimensions and presets
        - SourceAsset: Probed input description

    Transform:
        - TransformConfig: Per-run parameters

    Output:
        - EncodedArtifact: In-memory encoded blob handle
        - TechnicalDifferenceSummary: Change counts
        - TransformationResult: Complete run result
        - ProgressEvent: Presentation-only progress notification
"""

from vidshift.models.media import (
    OutputFormat,
    Resolution,
    RESOLUTION_PRESETS,
    SourceAsset,
    estimate_bitrate_kbps,
)
from vidshift.models.transform import TransformConfig
from vidshift.models.output import (
    EncodedArtifact,
    PipelineStage,
    ProgressEvent,
    SimilarityMethod,
    TechnicalDifferenceSummary,
    TransformationResult,
)

__all__ = [
    # Media
    "OutputFormat",
    "Resolution",
    "RESOLUTION_PRESETS",
    "SourceAsset",
    "estimate_bitrate_kbps",
    # Transform
    "TransformConfig",
    # Output
    "EncodedArtifact",
    "PipelineStage",
    "ProgressEvent",
    "SimilarityMethod",
    "TechnicalDifferenceSummary",
    "TransformationResult",
]
