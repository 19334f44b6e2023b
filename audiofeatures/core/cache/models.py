"""
Domain Models for the Audio Feature Cache.

These dataclasses are the live (in-memory) form of an analysis result.
The wire form lives in serialization.py; models expose to_dict()/from_dict()
only for their plain-record parts.

Domain entities:
- TempoProjection: binds a track's tick grid to one tempo-map snapshot
- PeakPayload: parallel min/max arrays for peak waveforms
- AnalysisParams: the parameters one analysis run used
- AnalysisProfile: a named parameter set (built-in or ad-hoc)
- FeatureTrack: one analysis output
- AudioFeatureCache: all tracks for one audio source
"""

import dataclasses
import math
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Tuple, Union

import numpy as np

from audiofeatures.core.errors import CacheError
from audiofeatures.core.timing.hop_quantization import normalize_hop_ticks


CACHE_VERSION = 3


class FeatureFormat(str, Enum):
    """Payload layout of a feature track."""
    FLOAT32 = "float32"
    UINT8 = "uint8"
    INT16 = "int16"
    PEAK_MINMAX = "peak-minmax"
    PERIODIC = "periodic"

    @property
    def is_fixed_width(self) -> bool:
        return self in FIXED_WIDTH_DTYPES


FIXED_WIDTH_DTYPES = {
    FeatureFormat.FLOAT32: np.float32,
    FeatureFormat.UINT8: np.uint8,
    FeatureFormat.INT16: np.int16,
}

# Format tags written by older caches
LEGACY_FORMAT_ALIASES = {
    "waveform-minmax": FeatureFormat.PEAK_MINMAX,
    "waveform-periodic": FeatureFormat.PERIODIC,
}


def coerce_format(value: Union[str, FeatureFormat]) -> FeatureFormat:
    """Map a format tag (current or legacy) to FeatureFormat."""
    if isinstance(value, FeatureFormat):
        return value
    if value in LEGACY_FORMAT_ALIASES:
        return LEGACY_FORMAT_ALIASES[value]
    try:
        return FeatureFormat(value)
    except ValueError as e:
        raise CacheError(
            f"Unknown feature format: {value!r}", data={"format": str(value)}, cause=e
        )


def _frozen_array(values: Any, dtype) -> np.ndarray:
    arr = np.asarray(values, dtype=dtype).reshape(-1).view()
    arr.setflags(write=False)
    return arr


@dataclass(frozen=True)
class TempoProjection:
    """Tick placement of a track under one tempo-map snapshot."""
    hop_ticks: int
    start_tick: float = 0.0
    tempo_map_hash: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "hop_ticks", normalize_hop_ticks(self.hop_ticks) or 1)
        start = self.start_tick
        if not isinstance(start, (int, float)) or not math.isfinite(start):
            start = 0.0
        object.__setattr__(self, "start_tick", float(start))

    def with_hop_ticks(self, hop_ticks: int) -> 'TempoProjection':
        return dataclasses.replace(self, hop_ticks=hop_ticks)

    def to_dict(self) -> dict:
        return {
            'hopTicks': self.hop_ticks,
            'startTick': self.start_tick,
            'tempoMapHash': self.tempo_map_hash,
        }

    @classmethod
    def from_dict(cls, d: dict) -> 'TempoProjection':
        # Missing, non-finite or non-positive hops clamp to 1
        return cls(
            hop_ticks=normalize_hop_ticks(d.get('hopTicks')) or 1,
            start_tick=d.get('startTick', 0.0),
            tempo_map_hash=d.get('tempoMapHash'),
        )


@dataclass(frozen=True, eq=False)
class PeakPayload:
    """Per-frame minimum and maximum, interleaved by channel."""
    min: np.ndarray
    max: np.ndarray

    def __post_init__(self):
        object.__setattr__(self, "min", _frozen_array(self.min, np.float32))
        object.__setattr__(self, "max", _frozen_array(self.max, np.float32))


TrackPayload = Union[np.ndarray, PeakPayload]


@dataclass(frozen=True)
class ChannelLayout:
    """Channel naming for a track."""
    aliases: Tuple[str, ...] = ()
    semantics: Optional[str] = None

    def to_dict(self) -> dict:
        d: Dict[str, Any] = {'aliases': list(self.aliases)}
        if self.semantics:
            d['semantics'] = self.semantics
        return d

    @classmethod
    def from_dict(cls, d: Optional[dict]) -> Optional['ChannelLayout']:
        if not isinstance(d, dict):
            return None
        aliases = d.get('aliases') or ()
        return cls(aliases=tuple(str(a) for a in aliases), semantics=d.get('semantics'))


@dataclass(frozen=True)
class AnalysisParams:
    """Parameters of the analysis run that produced a cache."""
    window_size: int
    hop_size: int
    overlap: float
    sample_rate: float
    smoothing: Optional[float] = None
    tempo_map_hash: Optional[str] = None
    calculator_versions: Mapping[str, int] = field(default_factory=dict)
    fft_size: Optional[int] = None
    min_decibels: Optional[float] = None
    max_decibels: Optional[float] = None
    window: Optional[str] = None

    def to_dict(self) -> dict:
        d = {
            'windowSize': self.window_size,
            'hopSize': self.hop_size,
            'overlap': self.overlap,
            'sampleRate': self.sample_rate,
            'calculatorVersions': dict(self.calculator_versions),
        }
        for key, value in (
            ('smoothing', self.smoothing),
            ('tempoMapHash', self.tempo_map_hash),
            ('fftSize', self.fft_size),
            ('minDecibels', self.min_decibels),
            ('maxDecibels', self.max_decibels),
            ('window', self.window),
        ):
            if value is not None:
                d[key] = value
        return d

    @classmethod
    def from_dict(cls, d: dict) -> 'AnalysisParams':
        window_size = int(d.get('windowSize', 2048))
        hop_size = int(d.get('hopSize', 512))
        return cls(
            window_size=window_size,
            hop_size=hop_size,
            overlap=d.get('overlap', window_size / hop_size if hop_size else 1),
            sample_rate=d.get('sampleRate', 0),
            smoothing=d.get('smoothing'),
            tempo_map_hash=d.get('tempoMapHash'),
            calculator_versions=dict(d.get('calculatorVersions') or {}),
            fft_size=d.get('fftSize'),
            min_decibels=d.get('minDecibels'),
            max_decibels=d.get('maxDecibels'),
            window=d.get('window'),
        )


@dataclass(frozen=True)
class AnalysisProfile:
    """A named analysis parameter set."""
    id: str
    window_size: int
    hop_size: int
    overlap: float
    sample_rate: float = 0
    fft_size: Optional[int] = None
    min_decibels: Optional[float] = None
    max_decibels: Optional[float] = None
    window: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'windowSize': self.window_size,
            'hopSize': self.hop_size,
            'overlap': self.overlap,
            'sampleRate': self.sample_rate,
            'fftSize': self.fft_size,
            'minDecibels': self.min_decibels,
            'maxDecibels': self.max_decibels,
            'window': self.window,
        }

    @classmethod
    def from_dict(cls, d: dict) -> 'AnalysisProfile':
        return cls(
            id=str(d['id']),
            window_size=int(d.get('windowSize', 2048)),
            hop_size=int(d.get('hopSize', 512)),
            overlap=d.get('overlap', 4),
            sample_rate=d.get('sampleRate', 0) or 0,
            fft_size=d.get('fftSize'),
            min_decibels=d.get('minDecibels'),
            max_decibels=d.get('maxDecibels'),
            window=d.get('window'),
        )


@dataclass(frozen=True, eq=False)
class FeatureTrack:
    """
    One analysis output.

    hop_ticks is authoritative for placement on the timeline; hop_seconds is
    advisory. Payload arrays are read-only once the track exists.

    Attributes:
        key: Composite key "featureKey:profileId"
        calculator_id: Producing calculator
        version: Calculator version
        frame_count: Number of frames
        channels: Values per frame (bins for spectrograms)
        hop_ticks: Frame stride in ticks (>= 1)
        hop_seconds: Frame stride in seconds
        format: Payload layout
        data: ndarray for fixed-width and periodic formats, PeakPayload for peaks
        tempo_projection: Tick grid binding
        start_time_seconds: Time of frame 0
        metadata: Calculator-specific metadata (camelCase keys, JSON-safe)
        analysis_params: Per-track parameters (JSON-safe)
        analysis_profile_id: Profile the track was computed with
        channel_aliases: Display names per channel
        channel_layout: Aliases plus semantics
    """
    key: str
    calculator_id: str
    version: int
    frame_count: int
    channels: int
    hop_ticks: int
    hop_seconds: float
    format: FeatureFormat
    data: TrackPayload
    tempo_projection: TempoProjection
    start_time_seconds: float = 0.0
    metadata: Mapping[str, Any] = field(default_factory=dict)
    analysis_params: Optional[Mapping[str, Any]] = None
    analysis_profile_id: Optional[str] = None
    channel_aliases: Optional[Tuple[str, ...]] = None
    channel_layout: Optional[ChannelLayout] = None

    def __post_init__(self):
        fmt = coerce_format(self.format)
        object.__setattr__(self, "format", fmt)
        object.__setattr__(self, "hop_ticks", normalize_hop_ticks(self.hop_ticks) or 1)
        object.__setattr__(self, "frame_count", max(0, int(self.frame_count)))
        object.__setattr__(self, "channels", max(1, int(self.channels)))
        object.__setattr__(self, "metadata", MappingProxyType(dict(self.metadata or {})))
        if self.channel_aliases is not None:
            object.__setattr__(self, "channel_aliases", tuple(self.channel_aliases))

        if fmt == FeatureFormat.PEAK_MINMAX:
            data = self.data if isinstance(self.data, PeakPayload) else PeakPayload(*self.data)
            expected = self.frame_count * self.channels
            if len(data.min) != expected or len(data.max) != expected:
                raise CacheError(
                    "Peak payload length does not match frame_count * channels",
                    data={"key": self.key, "expected": expected,
                          "min": len(data.min), "max": len(data.max)},
                )
        elif fmt == FeatureFormat.PERIODIC:
            data = _frozen_array(self.data, np.float32)
        else:
            data = _frozen_array(self.data, FIXED_WIDTH_DTYPES[fmt])
            expected = self.frame_count * self.channels
            if len(data) != expected:
                raise CacheError(
                    "Track payload length does not match frame_count * channels",
                    data={"key": self.key, "expected": expected, "length": len(data)},
                )
        object.__setattr__(self, "data", data)

    @property
    def feature_key(self) -> str:
        from .identity import parse_feature_track_key
        return parse_feature_track_key(self.key)[0]

    def replace(self, **changes) -> 'FeatureTrack':
        """Copy with changed fields (the original is untouched)."""
        return dataclasses.replace(self, **changes)

    def __repr__(self) -> str:
        return (
            f"FeatureTrack(key={self.key!r}, format={self.format.value}, "
            f"frames={self.frame_count}, channels={self.channels}, hop_ticks={self.hop_ticks})"
        )


@dataclass(frozen=True, eq=False)
class AudioFeatureCache:
    """
    All feature tracks for one audio source.

    Built wholesale by one analysis run and swapped by reference on
    re-analysis. Use with_tracks() to derive a snapshot with extra tracks.
    """
    audio_source_id: str
    hop_seconds: float
    hop_ticks: int
    frame_count: int
    analysis_params: AnalysisParams
    tempo_projection: TempoProjection
    feature_tracks: Mapping[str, FeatureTrack] = field(default_factory=dict)
    start_time_seconds: float = 0.0
    version: int = CACHE_VERSION
    analysis_profiles: Mapping[str, AnalysisProfile] = field(default_factory=dict)
    default_analysis_profile_id: str = "default"
    channel_aliases: Optional[Tuple[str, ...]] = None

    def __post_init__(self):
        object.__setattr__(self, "hop_ticks", normalize_hop_ticks(self.hop_ticks) or 1)
        object.__setattr__(self, "feature_tracks", MappingProxyType(dict(self.feature_tracks)))
        object.__setattr__(self, "analysis_profiles", MappingProxyType(dict(self.analysis_profiles)))
        if self.channel_aliases is not None:
            object.__setattr__(self, "channel_aliases", tuple(self.channel_aliases))

    def get_track(self, key: str) -> Optional[FeatureTrack]:
        return self.feature_tracks.get(key)

    def with_tracks(
        self,
        tracks: Mapping[str, FeatureTrack],
        profiles: Optional[Mapping[str, AnalysisProfile]] = None,
    ) -> 'AudioFeatureCache':
        """
        New cache with ``tracks`` merged over the current ones.

        Used to add ad-hoc profile tracks without re-running the whole
        analysis. The receiver is not modified.
        """
        merged_tracks = {**self.feature_tracks, **tracks}
        merged_profiles = {**self.analysis_profiles, **(profiles or {})}
        return dataclasses.replace(
            self, feature_tracks=merged_tracks, analysis_profiles=merged_profiles
        )

    def __repr__(self) -> str:
        return (
            f"AudioFeatureCache(source={self.audio_source_id!r}, v{self.version}, "
            f"tracks={sorted(self.feature_tracks)})"
        )
