"""Magnitude spectrogram calculator (decibels)."""

import numpy as np

from audiofeatures.common.primitives.fft import get_fft_plan
from audiofeatures.common.primitives.signal import hann_window, next_power_of_two
from audiofeatures.core.cache.models import FeatureFormat, FeatureTrack
from .base import CalculatorContext, FeatureCalculator

MIN_DECIBELS = -80.0
MAX_DECIBELS = 0.0
EPSILON = 1e-8
MIN_FFT_SIZE = 32


class SpectrogramCalculator(FeatureCalculator):
    """
    Hann-windowed magnitude spectrum per frame, in dB.

    Frames are zero-padded to the next power of two >= max(32, window_size)
    (or the profile's fft_size when larger). Magnitudes are scaled by
    2 / window_size and clamped to [min_decibels, max_decibels].
    Output: frame_count x (fft_size / 2 + 1) float32 values.
    """

    id = "core.spectrogram"
    version = 3
    feature_key = "spectrogram"
    label = "Spectrogram"

    def calculate(self, context: CalculatorContext) -> FeatureTrack:
        params = context.analysis_params
        mono = np.asarray(context.mono, dtype=np.float64)
        window_size = params.window_size
        hop_size = params.hop_size
        frame_count = context.frame_count

        fft_size = next_power_of_two(max(MIN_FFT_SIZE, window_size, int(params.fft_size or 0)))
        bin_count = fft_size // 2 + 1
        min_db = MIN_DECIBELS if params.min_decibels is None else float(params.min_decibels)
        max_db = MAX_DECIBELS if params.max_decibels is None else float(params.max_decibels)
        scale = 2.0 / max(1, window_size)

        window = hann_window(window_size, dtype=np.float64)
        plan = get_fft_plan(fft_size)
        real = np.zeros(fft_size, dtype=np.float64)
        imag = np.zeros(fft_size, dtype=np.float64)
        magnitude = np.empty(bin_count, dtype=np.float64)
        output = np.empty((frame_count, bin_count), dtype=np.float32)

        for frame in range(frame_count):
            start = min(frame * hop_size, len(mono))
            segment = mono[start:start + window_size]
            n = len(segment)

            real.fill(0.0)
            imag.fill(0.0)
            np.multiply(segment, window[:n], out=real[:n])
            plan.transform(real, imag)

            np.hypot(real[:bin_count], imag[:bin_count], out=magnitude)
            magnitude *= scale
            magnitude += EPSILON
            np.log10(magnitude, out=magnitude)
            magnitude *= 20.0
            np.clip(magnitude, min_db, max_db, out=magnitude)
            output[frame] = magnitude

            context.maybe_yield()
            context.report_progress(frame + 1, frame_count)

        sample_rate = context.sample_rate
        return self.build_track(
            context,
            data=output.reshape(-1),
            format=FeatureFormat.FLOAT32,
            frame_count=frame_count,
            channels=bin_count,
            metadata={
                "fftSize": fft_size,
                "hopSize": hop_size,
                "windowSize": window_size,
                "sampleRate": sample_rate,
                "window": "hann",
                "minDecibels": min_db,
                "maxDecibels": max_db,
            },
            analysis_params={
                "fftSize": fft_size,
                "windowSize": window_size,
                "hopSize": hop_size,
                "minDecibels": min_db,
                "maxDecibels": max_db,
                "window": "hann",
            },
        )
