"""RMS envelope calculator."""

import numpy as np

from audiofeatures.core.cache.models import FeatureFormat, FeatureTrack
from .base import CalculatorContext, FeatureCalculator


class RmsCalculator(FeatureCalculator):
    """
    Root-mean-square level of the mono mix per analysis window.

    Window f covers [f * hop_size, f * hop_size + window_size), truncated at
    the end of the buffer.
    """

    id = "core.rms"
    version = 1
    feature_key = "rms"
    label = "RMS"

    def calculate(self, context: CalculatorContext) -> FeatureTrack:
        mono = np.asarray(context.mono, dtype=np.float64)
        window_size = context.analysis_params.window_size
        hop_size = context.analysis_params.hop_size
        frame_count = context.frame_count
        output = np.zeros(frame_count, dtype=np.float32)

        for frame in range(frame_count):
            start = min(frame * hop_size, len(mono))
            end = min(start + window_size, len(mono))
            segment = mono[start:end]
            count = max(1, end - start)
            output[frame] = np.sqrt(np.dot(segment, segment) / count)

            context.maybe_yield()
            context.report_progress(frame + 1, frame_count)

        return self.build_track(
            context,
            data=output,
            format=FeatureFormat.FLOAT32,
            frame_count=frame_count,
            channels=1,
            metadata={"windowSize": window_size, "hopSize": hop_size},
            channel_aliases=self.default_aliases(1),
        )
