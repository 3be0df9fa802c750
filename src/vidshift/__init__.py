"""
vidshift
========

Re-encodes a source video into a technically distinct but perceptually
identical derivative.

The output differs from the source in frame rate, resolution, bitrate,
container/codec, audio samples and header metadata, while every frame stays
within a few intensity units of the original picture.

Components:
    - probe: Source metadata inspection (OpenCV)
    - transform: Per-pixel imperceptible perturbation
    - audio: Replacement noise-floor audio synthesis
    - stream: Frame buffers, decode sources, scheduler and queue
    - encoder: Codec negotiation and real-time paced encoding (PyAV)
    - metadata: Synthetic container header fields
    - reporting: Technical difference and similarity metrics
    - pipeline: LangGraph orchestration of the full run

Example:
    import asyncio
    from vidshift.models import TransformConfig
    from vidshift.pipeline import transform_file

    result = asyncio.run(transform_file("clip.mp4", TransformConfig()))
    print(result.technical_differences)
"""

__version__ = "0.1.0"
__author__ = "vidshift contributors"

__all__ = [
    "__version__",
]
