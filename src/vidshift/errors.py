"""
Error Taxonomy
==============

Typed failures raised by the transformation core.

Every failure aborts the entire run: there is no partial artifact and no
automatic retry. Callers may re-invoke the whole pipeline.

Each error carries an ErrorCategory and a short user-facing message that
never leaks internal state. The detailed message (str(error)) is for logs.
"""

from enum import Enum
from typing import Optional


class ErrorCategory(str, Enum):
    """
    Coarse user-visible failure categories.

    Attributes:
        BAD_INPUT: The supplied file is not a readable video
        UNSUPPORTED_RUNTIME: A required runtime capability is missing
        TRANSIENT_EXTRACTION: Frame decoding failed part way through
        ENCODING_FAILURE: The encoder failed mid-session
        CANCELLED: The run was cancelled by the caller
    """

    BAD_INPUT = "bad_input"
    UNSUPPORTED_RUNTIME = "unsupported_runtime"
    TRANSIENT_EXTRACTION = "transient_extraction"
    ENCODING_FAILURE = "encoding_failure"
    CANCELLED = "cancelled"


class TransformationError(Exception):
    """Base class for all pipeline failures."""

    category: ErrorCategory = ErrorCategory.ENCODING_FAILURE
    user_message: str = "Failed to transform video. Please try again."


class InvalidInputError(TransformationError):
    """Raised when the asset is not a video."""

    category = ErrorCategory.BAD_INPUT
    user_message = "Please select a valid video file."


class UnreadableMediaError(TransformationError):
    """Raised when the decoder cannot establish metadata for the asset."""

    category = ErrorCategory.BAD_INPUT
    user_message = "Failed to load the selected video."


class FrameExtractionError(TransformationError):
    """Raised when decoding or seeking fails at a given frame index."""

    category = ErrorCategory.TRANSIENT_EXTRACTION
    user_message = "Failed to extract frames from the video. Please try again."

    def __init__(self, at_index: int, reason: Optional[str] = None) -> None:
        self.at_index = at_index
        self.reason = reason
        message = f"Frame extraction failed at index {at_index}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class AudioContextUnavailableError(TransformationError):
    """Raised when an audio buffer cannot be allocated."""

    category = ErrorCategory.UNSUPPORTED_RUNTIME
    user_message = "Audio processing is not available in this environment."


class NoSupportedCodecError(TransformationError):
    """Raised when no codec in the preference list is supported."""

    category = ErrorCategory.UNSUPPORTED_RUNTIME
    user_message = "No supported video codec is available for recording."


class EncodingError(TransformationError):
    """Raised on any encoder failure during an open session."""

    category = ErrorCategory.ENCODING_FAILURE
    user_message = "Failed to encode the transformed video. Please try again."


class TransformationCancelledError(TransformationError):
    """Raised when a run observes its cancellation flag."""

    category = ErrorCategory.CANCELLED
    user_message = "The transformation was cancelled."
