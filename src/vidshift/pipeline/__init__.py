"""
Pipeline Module
===============

LangGraph orchestration of a transformation run.

This module implements:
    - graph.py: Workflow definition (batch and pipelined routes)
    - progress.py: Progress fan-out for service clients

Key Design Decisions:
    - LangGraph is used for STRUCTURE only
    - Component errors propagate unchanged
    - Cancellation is cooperative
"""

from vidshift.pipeline.graph import (
    PipelineOptions,
    TransformationPipeline,
    create_pipeline,
    transform_file,
)
from vidshift.pipeline.progress import ProgressRelay

__all__ = [
    "PipelineOptions",
    "ProgressRelay",
    "TransformationPipeline",
    "create_pipeline",
    "transform_file",
]
