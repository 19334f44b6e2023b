"""Peak (min/max) waveform calculator."""

import math

import numpy as np

from audiofeatures.core.cache.models import FeatureFormat, FeatureTrack, PeakPayload
from audiofeatures.core.timing.hop_quantization import quantize_hop_ticks
from .base import CalculatorContext, FeatureCalculator

OVERSAMPLE_FACTOR = 8


class WaveformCalculator(FeatureCalculator):
    """
    Per-channel min and max of the raw samples, oversampled 8x.

    The sub-hop is max(job hop seconds, hop_size / sr) / 8, at least one
    sample. The last frame runs to the end of the buffer. Values are
    interleaved per frame: index = frame * channels + channel.
    """

    id = "core.waveform"
    version = 1
    feature_key = "waveform"
    label = "Waveform"

    def calculate(self, context: CalculatorContext) -> FeatureTrack:
        source = context.source
        sample_rate = float(context.sample_rate)
        channels = context.channel_count
        total = source.length
        samples = np.vstack([np.asarray(source.channel(c), dtype=np.float32) for c in range(channels)])

        base_hop_seconds = max(context.hop_seconds, context.analysis_params.hop_size / sample_rate)
        hop_seconds = max(base_hop_seconds / OVERSAMPLE_FACTOR, 1.0 / sample_rate)
        hop_samples = max(hop_seconds * sample_rate, 1.0)
        frame_count = max(1, math.ceil(total / hop_samples))

        mins = np.zeros((frame_count, channels), dtype=np.float32)
        maxs = np.zeros((frame_count, channels), dtype=np.float32)

        for frame in range(frame_count):
            if total > 0:
                start = max(0, min(total - 1, math.floor(frame * hop_samples)))
                end = total if frame == frame_count - 1 else math.ceil((frame + 1) * hop_samples)
                end = min(total, end)
                if end <= start:
                    end = min(total, start + 1)
                window = samples[:, start:end]
                mins[frame] = window.min(axis=1)
                maxs[frame] = window.max(axis=1)

            context.maybe_yield()
            context.report_progress(frame + 1, frame_count)

        hop_ticks = quantize_hop_ticks(hop_seconds, context.tempo_mapper)
        return self.build_track(
            context,
            data=PeakPayload(min=mins.reshape(-1), max=maxs.reshape(-1)),
            format=FeatureFormat.PEAK_MINMAX,
            frame_count=frame_count,
            channels=channels,
            hop_seconds=hop_seconds,
            hop_ticks=hop_ticks,
            metadata={"hopSize": hop_samples, "oversampleFactor": OVERSAMPLE_FACTOR},
            channel_aliases=self.default_aliases(channels),
        )
