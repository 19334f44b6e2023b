"""
Primitives - pure DSP functions (numpy/scipy only).

- fft.py      - Radix-2 FFT plans
- signal.py   - Hann window, mono mixdown, frame counting
- pitch.py    - YIN pitch estimate and zero-crossing search
"""

from .fft import FFTPlan, get_fft_plan, is_power_of_two
from .signal import (
    next_power_of_two,
    hann_window,
    mix_to_mono,
    compute_frame_count,
    infer_channel_aliases,
)
from .pitch import (
    YIN_THRESHOLD,
    MIN_FREQUENCY,
    MAX_FREQUENCY,
    yin_difference,
    yin_cmnd,
    estimate_pitch_yin,
    find_nearest_zero_crossing,
)

__all__ = [
    'FFTPlan',
    'get_fft_plan',
    'is_power_of_two',
    'next_power_of_two',
    'hann_window',
    'mix_to_mono',
    'compute_frame_count',
    'infer_channel_aliases',
    'YIN_THRESHOLD',
    'MIN_FREQUENCY',
    'MAX_FREQUENCY',
    'yin_difference',
    'yin_cmnd',
    'estimate_pitch_yin',
    'find_nearest_zero_crossing',
]
