"""
Reporting Module
================

Technical difference counts and visual similarity scoring.

This module does NOT influence the encode; it only summarizes a run.
"""

from vidshift.reporting.differences import (
    count_parameter_changes,
    estimate_visual_similarity,
    mean_absolute_difference,
    measure_visual_similarity,
    summarize_differences,
)

__all__ = [
    "count_parameter_changes",
    "estimate_visual_similarity",
    "mean_absolute_difference",
    "measure_visual_similarity",
    "summarize_differences",
]
