"""
Frame interpolation and smoothing.

Frame vectors are 2-D arrays shaped (groups, width): one row per channel,
one value per row for numeric tracks, [min, max] rows for peak tracks and
a single padded row for periodic tracks.
"""

from typing import Sequence

import numpy as np

from .models import Interpolation

# Fractions below this are treated as an exact frame hit
FRACTION_EPSILON = 1e-6


def catmull_rom(p0: np.ndarray, p1: np.ndarray, p2: np.ndarray, p3: np.ndarray, t: float) -> np.ndarray:
    """Catmull-Rom spline through p1 (t=0) and p2 (t=1)."""
    t2 = t * t
    t3 = t2 * t
    return 0.5 * (
        2.0 * p1
        + (-p0 + p2) * t
        + (2.0 * p0 - 5.0 * p1 + 4.0 * p2 - p3) * t2
        + (-p0 + 3.0 * p1 - 3.0 * p2 + p3) * t3
    )


def interpolate(
    profile: Interpolation,
    prev: np.ndarray,
    base: np.ndarray,
    next_: np.ndarray,
    next_next: np.ndarray,
    fraction: float,
) -> np.ndarray:
    """
    Blend neighbouring frames.

    Args:
        profile: hold (floor frame), linear (base..next) or spline (prev..next_next)
        prev, base, next_, next_next: Frames floor-1 .. floor+2
        fraction: Position between base and next_, in [0, 1)
    """
    if profile == Interpolation.HOLD or fraction <= FRACTION_EPSILON:
        return base.copy()
    if profile == Interpolation.LINEAR:
        return base + (next_ - base) * fraction
    if profile == Interpolation.SPLINE:
        return catmull_rom(prev, base, next_, next_next, fraction)
    return base.copy()


def smooth(frames: Sequence[np.ndarray]) -> np.ndarray:
    """Unweighted mean of equally shaped frames."""
    if not frames:
        return np.zeros((0, 0), dtype=np.float64)
    return np.mean(np.stack(frames), axis=0)
