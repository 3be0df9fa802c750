"""
Frame Transform Engine
======================

Imperceptible per-pixel perturbation of one RGBA frame.

With shift = color_shift_degrees * pi / 180 and amp = noise_amplitude:

    R' = clamp(R + sin(shift) * 3     + U(-amp/2, amp/2), 0, 255)
    G' = clamp(G + cos(shift) * 3     + U(-amp/2, amp/2), 0, 255)
    B' = clamp(B + sin(2 * shift) * 2 + U(-amp/2, amp/2), 0, 255)
    A' = A

Values are rounded to the nearest integer before clipping, so the
per-channel change is bounded by |offset| + amp/2 + 0.5.

Design Rules:
    - Pure per call (given the random generator state)
    - Output dimensions equal input dimensions
    - Alpha is never modified
"""

import math
from typing import Optional, Tuple

import numpy as np

from vidshift.stream.frame import FrameBuffer


def channel_offsets(color_shift_degrees: float) -> Tuple[float, float, float]:
    """
    Deterministic (R, G, B) offsets for a color shift.

    Args:
        color_shift_degrees: Shift angle in degrees

    Returns:
        Tuple of per-channel additive offsets
    """
    shift = math.radians(color_shift_degrees)
    return (
        math.sin(shift) * 3.0,
        math.cos(shift) * 3.0,
        math.sin(2.0 * shift) * 2.0,
    )


def max_channel_delta(color_shift_degrees: float, noise_amplitude: float) -> float:
    """
    Upper bound on |channel' - channel| for any pixel, before clamping.

    Includes the 0.5 allowed by rounding to nearest.
    """
    largest_offset = max(abs(v) for v in channel_offsets(color_shift_degrees))
    return largest_offset + noise_amplitude / 2.0 + 0.5


def transform_frame(
    frame: FrameBuffer,
    color_shift_degrees: float,
    noise_amplitude: float,
    rng: Optional[np.random.Generator] = None,
) -> FrameBuffer:
    """
    Apply the color offset and bounded noise to every pixel.

    Args:
        frame: Input frame (RGBA uint8)
        color_shift_degrees: Color shift angle in degrees (0-15)
        noise_amplitude: Peak-to-peak noise amplitude (0-10)
        rng: Random generator for the noise term

    Returns:
        New FrameBuffer with the same index, timestamp, stale flag and size
    """
    if noise_amplitude < 0:
        raise ValueError("noise_amplitude must be non-negative")

    if rng is None:
        rng = np.random.default_rng()

    pixels = frame.pixels
    height, width = pixels.shape[:2]

    offsets = np.asarray(channel_offsets(color_shift_degrees), dtype=np.float32)

    rgb = pixels[:, :, :3].astype(np.float32)
    rgb += offsets

    if noise_amplitude > 0:
        half = noise_amplitude / 2.0
        noise = rng.uniform(-half, half, size=(height, width, 3)).astype(np.float32)
        rgb += noise

    out = np.empty_like(pixels)
    out[:, :, :3] = np.clip(np.rint(rgb), 0, 255).astype(np.uint8)
    out[:, :, 3] = pixels[:, :, 3]

    return FrameBuffer(
        index=frame.index,
        timestamp=frame.timestamp,
        pixels=out,
        stale=frame.stale,
    )
