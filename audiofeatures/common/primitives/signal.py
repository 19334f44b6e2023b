"""Windowing, mixdown and framing helpers."""

import math
from typing import Sequence

import numpy as np
from scipy.signal import windows


def next_power_of_two(n: int) -> int:
    """Smallest power of two >= n (1 for n <= 1)."""
    if n <= 1:
        return 1
    return 1 << (int(n) - 1).bit_length()


def hann_window(size: int, dtype=np.float32) -> np.ndarray:
    """Symmetric Hann window: 0.5 * (1 - cos(2*pi*i / (N - 1)))."""
    if size <= 0:
        return np.zeros(0, dtype=dtype)
    return windows.hann(size, sym=True).astype(dtype)


def mix_to_mono(channels: Sequence[np.ndarray]) -> np.ndarray:
    """
    Average channels into one float32 signal.

    Args:
        channels: Per-channel sample arrays of equal length

    Returns:
        Mono float32 array (empty if no channels)
    """
    if len(channels) == 0:
        return np.zeros(0, dtype=np.float32)
    if len(channels) == 1:
        return np.asarray(channels[0], dtype=np.float32)
    stacked = np.vstack([np.asarray(c, dtype=np.float32) for c in channels])
    return stacked.mean(axis=0, dtype=np.float64).astype(np.float32)


def compute_frame_count(length: int, window_size: int, hop_size: int) -> int:
    """
    Number of analysis frames for a buffer.

    A buffer no longer than one window yields a single frame.
    """
    if length <= window_size:
        return 1
    return max(1, math.floor((length - window_size) / max(1, hop_size)) + 1)


def infer_channel_aliases(channel_count: int) -> list:
    """Default display aliases for an audio channel layout."""
    if channel_count <= 1:
        return ["Mono"]
    if channel_count == 2:
        return ["Left", "Right"]
    return [f"Ch {i + 1}" for i in range(channel_count)]
