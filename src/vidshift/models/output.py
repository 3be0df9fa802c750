"""
Output Models
=============

This module defines the output contract of a transformation run.

Output Contract:
    {
        "original": {...SourceAsset...},
        "artifact": {
            "artifact_id": "5f0c...",
            "codec": "vp9",
            "mime_type": "video/webm; codecs=vp9",
            "extension": "webm",
            "chunk_count": 12,
            "size_bytes": 381204
        },
        "technical_differences": {
            "parameter_changes": 4,
            "frame_data_changes": 48,
            "audio_data_changes": 88200,
            "metadata_changes": 15
        },
        "visual_similarity": 97.0,
        "similarity_method": "estimated",
        "processing_time_ms": 2310,
        "stale_frames": 0
    }

Design Rules:
    - A TransformationResult exists only for a fully successful run
    - Results are immutable once constructed
    - The artifact extension reflects the NEGOTIATED format, never the
      requested one
    - Artifact bytes are held in memory and excluded from serialization
"""

import uuid
from enum import Enum
from pathlib import PurePath
from typing import Dict

from pydantic import BaseModel, Field

from vidshift.models.media import SourceAsset


class EncodedArtifact(BaseModel):
    """
    In-memory handle to an encoded output blob.

    Attributes:
        artifact_id: Opaque handle used by download collaborators
        codec: Negotiated codec option name (vp9, vp8, default)
        mime_type: Declared type of the negotiated codec
        extension: File extension of the negotiated container
        chunk_count: Number of non-empty chunks emitted by the muxer
        size_bytes: Total blob size
        data: The assembled container bytes
    """

    artifact_id: str = Field(default_factory=lambda: uuid.uuid4().hex)

    codec: str = Field(..., description="Negotiated codec option")

    mime_type: str = Field(..., description="Negotiated MIME type")

    extension: str = Field(..., description="Negotiated file extension")

    chunk_count: int = Field(default=0, ge=0)

    size_bytes: int = Field(default=0, ge=0)

    data: bytes = Field(default=b"", exclude=True, repr=False)

    class Config:
        frozen = True


class TechnicalDifferenceSummary(BaseModel):
    """
    Counts quantifying how much technically changed.

    Attributes:
        parameter_changes: Differing fields among fps, width, height,
            bitrate and container type
        frame_data_changes: Total frames produced
        audio_data_changes: Audio buffer length (frames per channel)
        metadata_changes: Header fields written by the scrambler
    """

    parameter_changes: int = Field(..., ge=0)

    frame_data_changes: int = Field(..., ge=0)

    audio_data_changes: int = Field(..., ge=0)

    metadata_changes: int = Field(..., ge=0)

    class Config:
        frozen = True


class SimilarityMethod(str, Enum):
    """How visual_similarity was obtained."""

    ESTIMATED = "estimated"
    MEASURED = "measured"


class TransformationResult(BaseModel):
    """
    Immutable record of a successful run.

    Attributes:
        original: The probed source asset
        artifact: Handle to the produced blob
        technical_differences: Change counts
        visual_similarity: Percentage in [0, 100]
        similarity_method: estimated placeholder or measured value
        processing_time_ms: Wall time of the whole run
        stale_frames: Frames sampled after the settle timeout fired
        metadata_fields: Synthetic header fields written to the container
    """

    original: SourceAsset

    artifact: EncodedArtifact

    technical_differences: TechnicalDifferenceSummary

    visual_similarity: float = Field(..., ge=0.0, le=100.0)

    similarity_method: SimilarityMethod = Field(default=SimilarityMethod.ESTIMATED)

    processing_time_ms: int = Field(..., ge=0)

    stale_frames: int = Field(default=0, ge=0)

    metadata_fields: Dict[str, str] = Field(default_factory=dict)

    class Config:
        frozen = True

    def suggested_filename(self) -> str:
        """Download name using the negotiated extension."""
        stem = PurePath(self.original.name).stem or "video"
        return f"transformed_{stem}.{self.artifact.extension}"


class PipelineStage(str, Enum):
    """Stages reported through progress events."""

    EXTRACTING = "extracting"
    SYNTHESIZING_AUDIO = "synthesizing_audio"
    ENCODING = "encoding"
    REPORTING = "reporting"
    COMPLETE = "complete"


class ProgressEvent(BaseModel):
    """
    Presentation-only progress notification.

    Attributes:
        stage: Pipeline stage name
        fraction: Completion of the stage in [0, 1]
        message: Short human-readable description
    """

    stage: PipelineStage

    fraction: float = Field(..., ge=0.0, le=1.0)

    message: str = Field(default="")

    class Config:
        frozen = True
