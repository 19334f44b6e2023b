"""
Pitch primitives for periodic waveform extraction.

- estimate_pitch_yin: YIN fundamental frequency estimate for one frame
- find_nearest_zero_crossing: cycle start near a frame centre
"""

import math
from typing import Optional

import numpy as np
from scipy.signal import correlate


YIN_THRESHOLD = 0.1
MIN_FREQUENCY = 50.0
MAX_FREQUENCY = 2000.0


def yin_difference(frame: np.ndarray, max_tau: int) -> np.ndarray:
    """
    YIN difference function d(tau) = sum_{i < n - tau} (x[i] - x[i + tau])^2.

    Expanded into energy terms and an FFT autocorrelation so one frame costs
    O(n log n) instead of O(n * max_tau).
    """
    x = np.asarray(frame, dtype=np.float64)
    n = len(x)
    energy = np.concatenate(([0.0], np.cumsum(x * x)))
    taus = np.arange(max_tau + 1)
    acf = correlate(x, x, mode="full", method="fft")[n - 1: n + max_tau]
    diff = energy[n - taus] + (energy[n] - energy[taus]) - 2.0 * acf
    diff[0] = 0.0
    # FFT round-off can dip just below zero
    np.maximum(diff, 0.0, out=diff)
    return diff


def yin_cmnd(frame: np.ndarray, max_tau: int) -> np.ndarray:
    """
    Cumulative mean normalized difference for lags 0..max_tau.

    cmnd[0] is 1 by definition; a lag whose running sum is still zero
    also reads as 1.
    """
    diff = yin_difference(frame, max_tau)
    cmnd = np.ones(max_tau + 1, dtype=np.float64)
    running = np.cumsum(diff[1:])
    taus = np.arange(1, max_tau + 1, dtype=np.float64)
    positive = running > 0
    cmnd[1:][positive] = diff[1:][positive] * taus[positive] / running[positive]
    return cmnd


def estimate_pitch_yin(
    frame: np.ndarray,
    sample_rate: float,
    threshold: float = YIN_THRESHOLD,
    min_frequency: float = MIN_FREQUENCY,
    max_frequency: float = MAX_FREQUENCY,
) -> Optional[float]:
    """
    Estimate the fundamental frequency of a frame with YIN.

    Args:
        frame: Mono samples
        sample_rate: Sample rate in Hz
        threshold: Absolute CMND threshold
        min_frequency: Lowest frequency searched (sets the longest lag)
        max_frequency: Highest frequency searched (sets the shortest lag)

    Returns:
        Frequency in Hz, or None when the frame is too short or the lag
        band is empty
    """
    length = len(frame)
    if length < 3 or sample_rate <= 0:
        return None

    max_tau = min(int(math.floor(sample_rate / max(1.0, min_frequency))), length - 1)
    min_tau = max(1, int(math.floor(sample_rate / max(1.0, max_frequency))))
    if max_tau <= min_tau:
        return None

    cmnd = yin_cmnd(frame, max_tau)

    band = cmnd[min_tau: max_tau + 1]
    below = np.flatnonzero(band < threshold)
    if below.size:
        best_tau = min_tau + int(below[0])
        # Walk down to the bottom of this dip
        while best_tau + 1 <= max_tau and cmnd[best_tau + 1] < cmnd[best_tau]:
            best_tau += 1
    else:
        best_tau = min_tau + int(np.argmin(band))

    refined = float(best_tau)
    if 1 < best_tau < max_tau:
        prev, curr, nxt = cmnd[best_tau - 1], cmnd[best_tau], cmnd[best_tau + 1]
        denom = 2.0 * curr - prev - nxt
        if denom != 0:
            refined = best_tau + (nxt - prev) / (2.0 * denom)

    if not math.isfinite(refined) or refined <= 0:
        return None

    frequency = sample_rate / refined
    if not math.isfinite(frequency) or frequency <= 0:
        return None
    return frequency


def find_nearest_zero_crossing(
    samples: np.ndarray,
    center: int,
    window_start: int,
    window_end: int,
    period: int,
) -> Optional[int]:
    """
    Find the cycle start nearest to ``center``.

    Searches within two periods of the centre, bounded by the window.
    A rising crossing (a <= 0 < b) wins over a falling one. The returned
    index is the first sample after the crossing. Without any crossing the
    cycle starts half a period before the centre.

    Returns:
        Sample index, or None for an empty buffer or an empty window
    """
    n = len(samples)
    if n == 0:
        return None

    start = max(0, min(window_start, n - 1))
    end = max(start, min(window_end, n) - 1)
    if end <= start:
        return None

    radius = max(1, min(n, period * 2))
    search_start = max(start, center - radius)
    search_end = min(end, center + radius)

    idx = np.arange(search_start, search_end + 1)
    a = samples[idx]
    # Sample after the last one reads as 0
    b = np.where(idx + 1 < n, samples[np.minimum(idx + 1, n - 1)], 0.0)
    distance = np.abs(idx - center)

    rising = (a <= 0) & (b > 0)
    crossing = rising | ((a >= 0) & (b < 0))

    for mask in (rising, crossing):
        if mask.any():
            candidates = np.flatnonzero(mask)
            best = candidates[np.argmin(distance[candidates])]
            return max(start, min(int(idx[best]) + 1, n))

    fallback = max(start, min(center - period // 2, end + 1))
    return max(start, min(fallback, n))
