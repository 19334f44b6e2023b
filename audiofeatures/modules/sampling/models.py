"""
Request and result types for tempo-aligned sampling.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

import numpy as np

from audiofeatures.core.cache.models import FeatureFormat
from .channels import ChannelSelector


class Interpolation(str, Enum):
    """How a fractional frame position is turned into values."""
    HOLD = "hold"
    LINEAR = "linear"
    SPLINE = "spline"


class FallbackReason(str, Enum):
    TRACK_MISSING = "track-missing"
    CACHE_MISSING = "cache-missing"
    FEATURE_MISSING = "feature-missing"
    INVALID_HOP = "invalid-hop"
    ADAPTER_DISABLED = "adapter-disabled"


DEFAULT_INTERPOLATION = Interpolation.LINEAR


@dataclass
class FrameOptions:
    """
    Per-request sampling options.

    Attributes:
        channel: Channel index or alias (None = all channels)
        smoothing: Radius in frames; > 0 averages 2*radius+1 frames instead of interpolating
        interpolation: hold, linear or spline
        analysis_profile_id: Profile to read tracks from
        profile_overrides: Ad-hoc overrides; reads from the matching adhoc profile
    """
    channel: ChannelSelector = None
    smoothing: int = 0
    interpolation: Interpolation = DEFAULT_INTERPOLATION
    analysis_profile_id: Optional[str] = None
    profile_overrides: Optional[Mapping[str, Any]] = None

    def __post_init__(self):
        self.interpolation = Interpolation(self.interpolation or DEFAULT_INTERPOLATION)
        self.smoothing = max(0, int(self.smoothing or 0))


@dataclass
class RangeOptions(FrameOptions):
    """Frame options plus symmetric padding (in frames) around the range."""
    frame_padding: int = 0

    def __post_init__(self):
        super().__post_init__()
        self.frame_padding = max(0, int(self.frame_padding or 0))


@dataclass
class FrameRequest:
    track_id: str
    feature_key: str
    tick: float
    options: FrameOptions = field(default_factory=FrameOptions)


@dataclass
class RangeRequest:
    track_id: str
    feature_key: str
    start_tick: float
    end_tick: float
    options: RangeOptions = field(default_factory=RangeOptions)


@dataclass
class FrameSample:
    """
    Values at one timeline tick.

    Attributes:
        frame_index: Floor frame, clamped to the track
        fractional_index: Exact frame position (may be outside the track)
        hop_ticks: Track hop in ticks
        values: Flat values (float64)
        channel_values: Values grouped per channel ([min, max] pairs for peaks)
        format: Track payload format
        frame_length: Real cycle length for periodic tracks
    """
    frame_index: int
    fractional_index: float
    hop_ticks: int
    values: np.ndarray
    channel_values: List[List[float]]
    format: FeatureFormat
    frame_length: Optional[int] = None


@dataclass
class RangeSample:
    """
    Contiguous frames covering a tick window.

    ``data`` holds frame_count * channels float32 values; ``channels`` is
    the number of values per frame after channel selection.
    """
    hop_ticks: int
    frame_count: int
    channels: int
    format: FeatureFormat
    data: np.ndarray
    frame_ticks: np.ndarray
    requested_start_tick: float
    requested_end_tick: float
    window_start_tick: float
    window_end_tick: float
    track_start_tick: float
    track_end_tick: float
    source_id: str
    frame_seconds: Optional[np.ndarray] = None


@dataclass
class AdapterDiagnostics:
    track_id: str
    feature_key: str
    cache_hit: bool
    interpolation: Interpolation
    request_start_tick: float
    source_id: Optional[str] = None
    mapper_duration_ns: int = 0
    frame_count: int = 0
    request_end_tick: Optional[float] = None
    fallback_reason: Optional[FallbackReason] = None
    timestamp: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "trackId": self.track_id,
            "sourceId": self.source_id,
            "featureKey": self.feature_key,
            "cacheHit": self.cache_hit,
            "interpolation": self.interpolation.value,
            "mapperDurationNs": self.mapper_duration_ns,
            "frameCount": self.frame_count,
            "requestStartTick": self.request_start_tick,
            "requestEndTick": self.request_end_tick,
            "fallbackReason": self.fallback_reason.value if self.fallback_reason else None,
            "timestamp": self.timestamp,
        }


@dataclass
class FrameResult:
    sample: Optional[FrameSample]
    diagnostics: AdapterDiagnostics


@dataclass
class RangeResult:
    range: Optional[RangeSample]
    diagnostics: AdapterDiagnostics
