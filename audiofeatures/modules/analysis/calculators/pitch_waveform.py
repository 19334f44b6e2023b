"""Periodic pitch waveform calculator."""

import math

import numpy as np

from audiofeatures.common.primitives.pitch import (
    MAX_FREQUENCY,
    MIN_FREQUENCY,
    YIN_THRESHOLD,
    estimate_pitch_yin,
    find_nearest_zero_crossing,
)
from audiofeatures.core.cache.models import FeatureFormat, FeatureTrack
from .base import CalculatorContext, FeatureCalculator


class PitchWaveformCalculator(FeatureCalculator):
    """
    One pitch period of the mono mix per frame.

    For each frame, YIN estimates f0; the cycle of round(sr / f0) samples
    starting at the zero crossing nearest the frame centre is appended to a
    flat buffer. Frames without a pitch contribute nothing. Consumers slice
    frames with metadata frameOffsets / frameLengths.
    """

    id = "core.pitchWaveform"
    version = 1
    feature_key = "pitchWaveform"
    label = "Pitch Waveform"

    def calculate(self, context: CalculatorContext) -> FeatureTrack:
        mono = np.asarray(context.mono, dtype=np.float32)
        params = context.analysis_params
        sample_rate = float(context.sample_rate)
        window_size = params.window_size
        hop_size = params.hop_size
        frame_count = context.frame_count
        max_frequency = min(sample_rate / 2.0 - 1.0, MAX_FREQUENCY)
        max_period_samples = int(math.ceil(sample_rate / MIN_FREQUENCY))

        offsets = [0] * frame_count
        lengths = [0] * frame_count
        cycles = []
        total_length = 0
        max_frame_length = 0

        for frame in range(frame_count):
            start = min(frame * hop_size, len(mono))
            window_end = min(start + window_size, len(mono))
            segment_length = max(0, window_end - start)
            offsets[frame] = total_length

            cycle_length = 0
            if segment_length > 3:
                f0 = estimate_pitch_yin(
                    mono[start:window_end],
                    sample_rate,
                    threshold=YIN_THRESHOLD,
                    min_frequency=MIN_FREQUENCY,
                    max_frequency=max_frequency,
                )
                if f0 is not None:
                    period = max(2, int(round(sample_rate / f0)))
                    center = min(len(mono) - 1, start + segment_length // 2)
                    cycle_start = find_nearest_zero_crossing(mono, center, start, window_end, period)
                    if cycle_start is not None:
                        cycle_end = min(len(mono), cycle_start + period)
                        cycle_length = max(0, cycle_end - cycle_start)
                        if cycle_length:
                            cycles.append(mono[cycle_start:cycle_end])

            lengths[frame] = cycle_length
            max_frame_length = max(max_frame_length, cycle_length)
            total_length += cycle_length

            context.maybe_yield()
            context.report_progress(frame + 1, frame_count)

        payload = np.concatenate(cycles) if cycles else np.zeros(0, dtype=np.float32)
        return self.build_track(
            context,
            data=payload,
            format=FeatureFormat.PERIODIC,
            frame_count=frame_count,
            channels=1,
            metadata={
                "windowSize": window_size,
                "hopSize": hop_size,
                "frameOffsets": offsets,
                "frameLengths": lengths,
                "maxFrameLength": max_frame_length,
                "maxPeriodSamples": max_period_samples,
                "yinThreshold": YIN_THRESHOLD,
                "minFrequency": MIN_FREQUENCY,
                "maxFrequency": max_frequency,
                "sampleRate": sample_rate,
            },
            channel_aliases=self.default_aliases(1),
        )
