"""
Base classes for feature calculators.

CalculatorContext holds everything a calculator needs for one run.
FeatureCalculator is the common contract: id, version, feature_key, label
and calculate(context) -> FeatureTrack | List[FeatureTrack].
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

import numpy as np

from audiofeatures.common.primitives.signal import infer_channel_aliases
from audiofeatures.core.adapters.loader import PcmSource
from audiofeatures.core.cache.identity import DEFAULT_ANALYSIS_PROFILE_ID, build_feature_track_key
from audiofeatures.core.cache.models import (
    AnalysisParams,
    ChannelLayout,
    FeatureFormat,
    FeatureTrack,
    TempoProjection,
    TrackPayload,
)
from audiofeatures.core.timing.hop_quantization import quantize_hop_ticks
from audiofeatures.core.timing.tempo_mapper import TempoMapper
from ..cancellation import YieldController


@dataclass
class CalculatorContext:
    """
    Shared context for one calculator run.

    Attributes:
        source: PCM source (per-channel access)
        mono: Mono mixdown of the source, float32
        hop_ticks: Job hop in ticks
        hop_seconds: Job hop in seconds
        frame_count: Job frame count
        analysis_params: Parameters of this run
        tempo_projection: Job tick-grid binding
        tempo_mapper: Mapper for the job's tempo state
        analysis_profile_id: Profile the tracks belong to
        yielder: Cooperative yield and cancellation point
        progress_callback: Optional (processed, total) progress callback
    """
    source: PcmSource
    mono: np.ndarray
    hop_ticks: int
    hop_seconds: float
    frame_count: int
    analysis_params: AnalysisParams
    tempo_projection: TempoProjection
    tempo_mapper: TempoMapper
    analysis_profile_id: str = DEFAULT_ANALYSIS_PROFILE_ID
    yielder: YieldController = field(default_factory=YieldController)
    progress_callback: Optional[Callable[[int, int], None]] = None

    @property
    def sample_rate(self) -> float:
        return self.source.sample_rate or self.analysis_params.sample_rate

    @property
    def channel_count(self) -> int:
        return max(1, self.source.channel_count)

    def report_progress(self, processed: int, total: int):
        """Report progress to callback if set."""
        if self.progress_callback:
            self.progress_callback(processed, total)

    def maybe_yield(self):
        self.yielder.maybe_yield()


class FeatureCalculator(ABC):
    """
    Abstract base class for all feature calculators.

    Subclasses set the class attributes and implement calculate().

    Example:
        class PeakCountCalculator(FeatureCalculator):
            id = "custom.peaks"
            version = 1
            feature_key = "peaks"
            label = "Peaks"

            def calculate(self, context):
                values = ...
                return self.build_track(context, data=values, format="float32",
                                        frame_count=context.frame_count, channels=1)
    """

    id: str = ""
    version: int = 1
    feature_key: str = ""
    label: Optional[str] = None

    @property
    def name(self) -> str:
        """Display name (label, then feature key)."""
        return self.label or self.feature_key or self.__class__.__name__

    @abstractmethod
    def calculate(self, context: CalculatorContext) -> Union[FeatureTrack, List[FeatureTrack]]:
        """
        Compute this calculator's track(s) for the context.

        Must call context.maybe_yield() between frames so the job can be
        cancelled.
        """
        pass

    def build_track(
        self,
        context: CalculatorContext,
        *,
        data: TrackPayload,
        format: Union[str, FeatureFormat],
        frame_count: int,
        channels: int,
        hop_seconds: Optional[float] = None,
        hop_ticks: Optional[int] = None,
        metadata: Optional[Dict[str, Any]] = None,
        analysis_params: Optional[Dict[str, Any]] = None,
        channel_aliases: Optional[Sequence[str]] = None,
    ) -> FeatureTrack:
        """
        Assemble a track with this calculator's identity.

        When hop_seconds differs from the job hop, the track gets its own
        quantized hop_ticks; otherwise it inherits the job's projection.
        """
        if hop_seconds is None:
            hop_seconds = context.hop_seconds
        if hop_ticks is None:
            prior = context.tempo_projection if hop_seconds == context.hop_seconds else None
            hop_ticks = quantize_hop_ticks(hop_seconds, context.tempo_mapper, prior)
        aliases = tuple(channel_aliases) if channel_aliases is not None else None
        return FeatureTrack(
            key=build_feature_track_key(self.feature_key, context.analysis_profile_id),
            calculator_id=self.id,
            version=self.version,
            frame_count=frame_count,
            channels=channels,
            hop_ticks=hop_ticks,
            hop_seconds=hop_seconds,
            start_time_seconds=0.0,
            tempo_projection=context.tempo_projection.with_hop_ticks(hop_ticks),
            format=format,
            data=data,
            metadata=metadata or {},
            analysis_params=analysis_params,
            analysis_profile_id=context.analysis_profile_id,
            channel_aliases=aliases,
            channel_layout=ChannelLayout(aliases=aliases) if aliases else None,
        )

    @staticmethod
    def default_aliases(channel_count: int) -> List[str]:
        return infer_channel_aliases(channel_count)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(id={self.id!r}, version={self.version})"
