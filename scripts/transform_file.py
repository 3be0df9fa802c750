#!/usr/bin/env python3
"""
Transform File Script
=====================

Standalone script to run the transformation pipeline on a local video.

This script:
    1. Probes the input file
    2. Derives target parameters from the source (CLI flags override)
    3. Runs the pipeline with the configured service settings
    4. Writes the artifact using the negotiated extension
    5. Reports the technical differences

Usage:
    python scripts/transform_file.py --input clip.mp4 --output-dir out/
    python scripts/transform_file.py --input clip.mp4 --fps 30 --resolution 854x480
    python scripts/transform_file.py --input clip.mp4 --mode pipelined --no-pacing
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

import numpy as np

from vidshift.config import load_config, setup_logging
from vidshift.errors import TransformationError
from vidshift.models import OutputFormat, Resolution, TransformConfig
from vidshift.pipeline import transform_file
from vidshift.probe import probe_media


logger = logging.getLogger(__name__)


def _build_config(args: argparse.Namespace, source) -> TransformConfig:
    overrides = {}
    if args.fps is not None:
        overrides["fps"] = args.fps
    if args.resolution is not None:
        overrides["resolution"] = Resolution.parse(args.resolution)
    if args.bitrate is not None:
        overrides["bitrate"] = args.bitrate
    if args.format is not None:
        overrides["format"] = OutputFormat(args.format)
    if args.color_shift is not None:
        overrides["color_shift"] = args.color_shift
    if args.noise is not None:
        overrides["noise_level"] = args.noise
    if args.frame_offset is not None:
        overrides["frame_offset"] = args.frame_offset
    if args.no_scrambling:
        overrides["metadata_scrambling"] = False
    return TransformConfig.from_source(source, **overrides)


async def run(args: argparse.Namespace) -> int:
    settings = load_config(args.config)
    setup_logging(settings)

    if args.mode:
        settings.pipeline.mode = args.mode
    if args.no_pacing:
        settings.encoder.realtime_pacing = False
    if args.similarity:
        settings.reporting.similarity_mode = args.similarity

    input_path = Path(args.input)
    output_dir = Path(args.output_dir)

    logger.info("=" * 60)
    logger.info("vidshift transformation")
    logger.info("=" * 60)
    logger.info(f"Input: {input_path}")
    logger.info(f"Output dir: {output_dir}")
    logger.info(f"Pipeline mode: {settings.pipeline.mode}")
    logger.info(f"Realtime pacing: {settings.encoder.realtime_pacing}")
    logger.info("=" * 60)

    # Probe once up front so CLI overrides can start from the source values
    with await probe_media(
        input_path,
        timeout=settings.probe.timeout_seconds,
        default_fps=settings.probe.default_fps,
    ) as media:
        config = _build_config(args, media.asset)

    rng = np.random.default_rng(args.seed) if args.seed is not None else None

    try:
        result = await transform_file(
            input_path,
            config,
            settings=settings.model_dump(),
            rng=rng,
        )
    except TransformationError as e:
        logger.error(f"Transformation failed [{e.category.value}]: {e}")
        logger.error(e.user_message)
        return 1

    output_dir.mkdir(parents=True, exist_ok=True)
    output_path = output_dir / result.suggested_filename()
    output_path.write_bytes(result.artifact.data)

    diff = result.technical_differences

    logger.info("=" * 60)
    logger.info("FINAL SUMMARY")
    logger.info("=" * 60)
    logger.info(f"Output: {output_path} ({result.artifact.mime_type})")
    logger.info(f"Size: {result.artifact.size_bytes} bytes in {result.artifact.chunk_count} chunks")
    logger.info(f"Parameter changes: {diff.parameter_changes}")
    logger.info(f"Frame data changes: {diff.frame_data_changes}")
    logger.info(f"Audio data changes: {diff.audio_data_changes}")
    logger.info(f"Metadata changes: {diff.metadata_changes}")
    logger.info(f"Stale frames: {result.stale_frames}")
    logger.info(f"Visual similarity: {result.visual_similarity:g}% ({result.similarity_method.value})")
    logger.info(f"Processing time: {result.processing_time_ms} ms")
    logger.info("=" * 60)

    return 0


def main():
    parser = argparse.ArgumentParser(
        description="Re-encode a video into a technically distinct, visually identical copy"
    )
    parser.add_argument("--input", required=True, help="Source video file")
    parser.add_argument("--output-dir", default=".", help="Directory for the artifact (default: .)")
    parser.add_argument("--config", default=None, help="Path to config.yaml")
    parser.add_argument("--fps", type=int, default=None, help="Target fps (12-60)")
    parser.add_argument("--resolution", default=None, help="Target resolution, e.g. 1280x720")
    parser.add_argument("--bitrate", type=int, default=None, help="Target bitrate in kbps (500-5000)")
    parser.add_argument(
        "--format",
        choices=[f.value for f in OutputFormat],
        default=None,
        help="Requested container label",
    )
    parser.add_argument("--color-shift", type=float, default=None, help="Color shift in degrees (0-15)")
    parser.add_argument("--noise", type=float, default=None, help="Noise amplitude (0-10)")
    parser.add_argument("--frame-offset", type=float, default=None, help="Frame offset in ms (0-10)")
    parser.add_argument("--no-scrambling", action="store_true", help="Disable metadata scrambling")
    parser.add_argument("--mode", choices=["batch", "pipelined"], default=None, help="Pipeline mode")
    parser.add_argument("--no-pacing", action="store_true", help="Encode as fast as possible")
    parser.add_argument(
        "--similarity",
        choices=["estimated", "measured"],
        default=None,
        help="Similarity reporting mode",
    )
    parser.add_argument("--seed", type=int, default=None, help="Random seed for reproducible output")

    args = parser.parse_args()

    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
