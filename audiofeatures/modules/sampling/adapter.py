"""
Tempo-aligned sampling of feature caches.

Maps timeline ticks to analysis frames through the tempo mapper, so
feature values stay locked to the music when the tempo map changes. Reads
are synchronous and never mutate the caches they read from.

Resolution chain: track id -> audio source -> cache -> feature key
(+ profile) -> track. A miss is reported in the diagnostics, not raised.
"""

import math
import time
from dataclasses import dataclass
from typing import Dict, Hashable, List, Optional, Tuple, Union

import numpy as np

from audiofeatures.common.logging import get_logger
from audiofeatures.core.cache.identity import resolve_feature_track
from audiofeatures.core.cache.models import AudioFeatureCache, FeatureFormat, FeatureTrack
from audiofeatures.core.cache.profiles import build_adhoc_profile_id, sanitize_profile_overrides
from audiofeatures.core.config.settings import Settings, get_settings
from audiofeatures.core.timing.context import TimingContext
from audiofeatures.core.timing.tempo_mapper import TempoMapper
from .channels import resolve_channel
from .interpolation import interpolate, smooth
from .models import (
    AdapterDiagnostics,
    FallbackReason,
    FrameOptions,
    FrameRequest,
    FrameResult,
    FrameSample,
    Interpolation,
    RangeOptions,
    RangeRequest,
    RangeResult,
    RangeSample,
)
from .timeline import TimelineState, TimelineTrack

logger = get_logger(__name__)

# Periodic width cap when a track does not record maxPeriodSamples
DEFAULT_PERIODIC_WIDTH_CAP = 4096

Shape = Tuple[int, int]
ShapeKey = Tuple[Hashable, ...]


class FrameShapeCache:
    """
    Observed frame shapes per (source, track key, option shape).

    Entries are owned by the cache object they were observed on. When a
    source's cache is replaced, its entries are dropped on next access.
    """

    def __init__(self):
        self._owners: Dict[str, AudioFeatureCache] = {}
        self._shapes: Dict[str, Dict[Tuple[str, ShapeKey], Shape]] = {}

    def _entries(self, source_id: str, cache: AudioFeatureCache) -> Dict[Tuple[str, ShapeKey], Shape]:
        if self._owners.get(source_id) is not cache:
            self._owners[source_id] = cache
            self._shapes[source_id] = {}
        return self._shapes[source_id]

    def get(self, source_id: str, cache: AudioFeatureCache, track_key: str, shape_key: ShapeKey) -> Optional[Shape]:
        return self._entries(source_id, cache).get((track_key, shape_key))

    def observe(self, source_id: str, cache: AudioFeatureCache, track_key: str, shape_key: ShapeKey, shape: Shape):
        self._entries(source_id, cache).setdefault((track_key, shape_key), shape)

    def evict(self, source_id: str):
        self._owners.pop(source_id, None)
        self._shapes.pop(source_id, None)

    def clear(self):
        self._owners.clear()
        self._shapes.clear()

    def __len__(self) -> int:
        return sum(len(entries) for entries in self._shapes.values())


def periodic_width(track: FeatureTrack) -> int:
    """Canonical padded width of a periodic track: min(maxFrameLength, maxPeriodSamples)."""
    metadata = track.metadata
    max_frame = metadata.get("maxFrameLength")
    if not isinstance(max_frame, (int, float)) or max_frame <= 0:
        max_frame = max((int(n) for n in metadata.get("frameLengths") or ()), default=0)
    return max(0, min(int(max_frame), periodic_width_cap(track)))


def periodic_width_cap(track: FeatureTrack) -> int:
    """Hard cap on periodic frame width: maxPeriodSamples, else DEFAULT_PERIODIC_WIDTH_CAP."""
    cap = track.metadata.get("maxPeriodSamples")
    if not isinstance(cap, (int, float)) or cap <= 0:
        return DEFAULT_PERIODIC_WIDTH_CAP
    return int(cap)


def metadata_shape(track: FeatureTrack, channel_index: Optional[int]) -> Shape:
    """Frame shape derived from track metadata, used until a real frame is observed."""
    groups = 1 if channel_index is not None else track.channels
    if track.format == FeatureFormat.PEAK_MINMAX:
        return groups, 2
    if track.format == FeatureFormat.PERIODIC:
        return 1, periodic_width(track)
    return groups, 1


def silence_value(track: FeatureTrack) -> float:
    """Natural silence: the declared dB floor for dB data, else 0."""
    floor = track.metadata.get("minDecibels")
    if isinstance(floor, (int, float)) and not isinstance(floor, bool) and math.isfinite(floor):
        return float(floor)
    return 0.0


class _TrackReader:
    """Reads frame vectors shaped (groups, width) from one track."""

    def __init__(self, track: FeatureTrack, channel_index: Optional[int], shape: Shape):
        self.track = track
        self.channel_index = channel_index
        self.shape = shape
        self.fill = silence_value(track)

    def silence(self) -> np.ndarray:
        return np.full(self.shape, self.fill, dtype=np.float64)

    def in_range(self, index: int) -> bool:
        return 0 <= index < self.track.frame_count

    def read(self, index: int) -> np.ndarray:
        if not self.in_range(index):
            return self.silence()
        fmt = self.track.format
        if fmt == FeatureFormat.PEAK_MINMAX:
            return self._read_peak(index)
        if fmt == FeatureFormat.PERIODIC:
            return self._read_periodic(index)
        if fmt.is_fixed_width:
            return self._read_numeric(index)
        return self.silence()

    def _span(self, index: int) -> slice:
        base = index * self.track.channels
        if self.channel_index is not None:
            return slice(base + self.channel_index, base + self.channel_index + 1)
        return slice(base, base + self.track.channels)

    def _read_numeric(self, index: int) -> np.ndarray:
        values = self.track.data[self._span(index)].astype(np.float64)
        if self.track.format == FeatureFormat.UINT8:
            values /= 255.0
        elif self.track.format == FeatureFormat.INT16:
            values /= 32768.0
        return values.reshape(-1, 1)

    def _read_peak(self, index: int) -> np.ndarray:
        span = self._span(index)
        payload = self.track.data
        return np.stack([payload.min[span], payload.max[span]], axis=1).astype(np.float64)

    def frame_length(self, index: int) -> int:
        """
        Real (unpadded) cycle length of a periodic frame.

        Taken from frameLengths, else from the gap to the next offset (or the
        payload end), and never longer than the payload holds.
        """
        if not self.in_range(index):
            return 0
        offsets = self.track.metadata.get("frameOffsets") or ()
        if index >= len(offsets):
            return 0
        start = max(0, int(offsets[index]))
        available = max(0, len(self.track.data) - start)
        lengths = self.track.metadata.get("frameLengths") or ()
        if index < len(lengths):
            length = int(lengths[index])
        elif index + 1 < len(offsets):
            length = int(offsets[index + 1]) - start
        else:
            length = available
        return max(0, min(length, available))

    def frame_shape(self, index: int) -> Shape:
        """Shape of frame ``index`` as stored in the payload, before padding."""
        fmt = self.track.format
        if fmt == FeatureFormat.PERIODIC:
            width = max(self.shape[1], self.frame_length(index))
            return 1, min(width, periodic_width_cap(self.track))
        if fmt == FeatureFormat.PEAK_MINMAX:
            return len(self.track.data.min[self._span(index)]), 2
        if fmt.is_fixed_width:
            return len(self.track.data[self._span(index)]), 1
        return self.shape

    def _read_periodic(self, index: int) -> np.ndarray:
        width = self.shape[1]
        row = np.zeros((1, width), dtype=np.float64)
        offsets = self.track.metadata.get("frameOffsets") or ()
        if index >= len(offsets):
            return row
        start = max(0, int(offsets[index]))
        length = min(self.frame_length(index), width)
        segment = self.track.data[start:start + length]
        row[0, :len(segment)] = segment
        return row


@dataclass
class _Resolved:
    source_id: str
    cache: AudioFeatureCache
    key: str
    track: FeatureTrack
    timeline_track: TimelineTrack

    @property
    def hop_seconds(self) -> float:
        for value in (self.track.hop_seconds, self.cache.hop_seconds):
            if isinstance(value, (int, float)) and math.isfinite(value) and value > 0:
                return float(value)
        return 0.0

    @property
    def start_seconds(self) -> float:
        if self.track.start_time_seconds is not None:
            return float(self.track.start_time_seconds)
        return float(self.cache.start_time_seconds or 0.0)

    @property
    def start_tick(self) -> float:
        """Projection start tick, used by the legacy path. Every track carries its own projection."""
        return self.track.tempo_projection.start_tick


def _floor_index(value: float) -> int:
    return math.floor(value) if math.isfinite(value) else 0


class TempoAlignedAdapter:
    """
    Samples feature tracks at timeline ticks.

    Args:
        settings: Settings (default: get_settings()); supplies the adapter
            toggle when the timeline does not set one
        shape_cache: Frame shape cache (default: a new one owned by the adapter)
    """

    def __init__(self, settings: Optional[Settings] = None, shape_cache: Optional[FrameShapeCache] = None):
        self.settings = settings or get_settings()
        self.shape_cache = shape_cache or FrameShapeCache()
        self._mapper: Optional[TempoMapper] = None
        self._mapper_key: Optional[Tuple[float, int, str]] = None

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def tempo_mapper(self, timing: TimingContext) -> TempoMapper:
        """Mapper for ``timing``; rebuilt only when bpm, resolution or tempo map change."""
        key = timing.key
        if self._mapper is None or self._mapper_key != key:
            self._mapper = TempoMapper(timing.ticks_per_quarter, timing.global_bpm, list(timing.tempo_map or ()))
            self._mapper_key = key
        return self._mapper

    def adapter_enabled(self, state: TimelineState) -> bool:
        if state.tempo_adapter_enabled is None:
            return self.settings.tempo_adapter_enabled
        return bool(state.tempo_adapter_enabled)

    @staticmethod
    def _profile_id(options: FrameOptions) -> Optional[str]:
        overrides = sanitize_profile_overrides(options.profile_overrides)
        if overrides:
            return build_adhoc_profile_id(overrides)
        return options.analysis_profile_id

    def _resolve(
        self, state: TimelineState, track_id: str, feature_key: str, options: FrameOptions
    ) -> Tuple[Optional[_Resolved], Optional[str], Optional[FallbackReason]]:
        source_id = state.resolve_source(track_id)
        if source_id is None:
            return None, None, FallbackReason.TRACK_MISSING
        cache = state.audio_feature_caches.get(source_id)
        if cache is None:
            return None, source_id, FallbackReason.CACHE_MISSING
        key, track = resolve_feature_track(
            cache.feature_tracks,
            feature_key,
            analysis_profile_id=self._profile_id(options),
            default_profile_id=cache.default_analysis_profile_id,
        )
        if track is None or track.frame_count <= 0:
            return None, source_id, FallbackReason.FEATURE_MISSING
        return _Resolved(source_id, cache, key, track, state.tracks[track_id]), source_id, None

    def _reader(self, resolved: _Resolved, options: FrameOptions) -> Tuple[_TrackReader, ShapeKey]:
        """
        Reader for the requested channel selection.

        Raises:
            ChannelResolutionError: If the channel does not exist on the track
        """
        channel_index = None
        if options.channel is not None:
            channel_index = resolve_channel(options.channel, resolved.track, resolved.cache.channel_aliases)
        shape_key: ShapeKey = ("all",) if channel_index is None else ("channel", channel_index)
        shape = self.shape_cache.get(resolved.source_id, resolved.cache, resolved.key, shape_key)
        return _TrackReader(resolved.track, channel_index, shape or metadata_shape(resolved.track, channel_index)), shape_key

    def _observe(self, resolved: _Resolved, reader: _TrackReader, shape_key: ShapeKey, index: int):
        """Record the shape of the first real frame read; later reads and padding use it."""
        if not reader.in_range(index):
            return
        shape = self.shape_cache.get(resolved.source_id, resolved.cache, resolved.key, shape_key)
        if shape is None:
            shape = reader.frame_shape(index)
            self.shape_cache.observe(resolved.source_id, resolved.cache, resolved.key, shape_key, shape)
        reader.shape = shape

    @staticmethod
    def _diagnostics(
        request: Union[FrameRequest, RangeRequest],
        options: FrameOptions,
        source_id: Optional[str],
        cache_hit: bool,
        reason: Optional[FallbackReason] = None,
        mapper_duration_ns: int = 0,
        frame_count: int = 0,
        feature_key: Optional[str] = None,
    ) -> AdapterDiagnostics:
        if isinstance(request, FrameRequest):
            start = end = request.tick
        else:
            start = min(request.start_tick, request.end_tick)
            end = max(request.start_tick, request.end_tick)
        if reason is not None and reason != FallbackReason.ADAPTER_DISABLED:
            logger.debug(f"[sampling] Fallback {reason.value} for {request.track_id}", data={
                "track_id": request.track_id,
                "source_id": source_id,
                "feature_key": request.feature_key,
            })
        return AdapterDiagnostics(
            track_id=request.track_id,
            source_id=source_id,
            feature_key=feature_key or request.feature_key,
            cache_hit=cache_hit,
            interpolation=options.interpolation,
            mapper_duration_ns=int(mapper_duration_ns),
            frame_count=frame_count,
            request_start_tick=start,
            request_end_tick=end,
            fallback_reason=reason,
            timestamp=time.time(),
        )

    # ------------------------------------------------------------------
    # Frame sampling
    # ------------------------------------------------------------------

    def _frame_sample(
        self, reader: _TrackReader, vector: np.ndarray, fractional: float, hop_ticks: int, silent: bool
    ) -> FrameSample:
        track = reader.track
        frame_index = max(0, min(track.frame_count - 1, _floor_index(fractional)))
        frame_length = None
        if track.format == FeatureFormat.PERIODIC:
            frame_length = 0 if silent else reader.frame_length(frame_index)
        return FrameSample(
            frame_index=frame_index,
            fractional_index=float(fractional),
            hop_ticks=hop_ticks,
            values=vector.ravel(),
            channel_values=vector.tolist(),
            format=track.format,
            frame_length=frame_length,
        )

    def _silent_sample(self, reader: _TrackReader, fractional: float, hop_ticks: int) -> FrameSample:
        return self._frame_sample(reader, reader.silence(), fractional, hop_ticks, silent=True)

    def _blend(
        self,
        resolved: _Resolved,
        reader: _TrackReader,
        shape_key: ShapeKey,
        frame_float: float,
        interpolation: Interpolation,
    ) -> np.ndarray:
        base_index = math.floor(frame_float)
        self._observe(resolved, reader, shape_key, base_index)
        base = reader.read(base_index)
        fraction = frame_float - base_index
        if interpolation == Interpolation.HOLD:
            return base
        return interpolate(
            interpolation,
            reader.read(base_index - 1),
            base,
            reader.read(base_index + 1),
            reader.read(base_index + 2),
            fraction,
        )

    def _smoothed(
        self, resolved: _Resolved, reader: _TrackReader, shape_key: ShapeKey, frame_float: float, radius: int
    ) -> np.ndarray:
        center = min(math.floor(frame_float + 0.5), reader.track.frame_count - 1)
        self._observe(resolved, reader, shape_key, center)
        return smooth([reader.read(center + offset) for offset in range(-radius, radius + 1)])

    def _sample_legacy_frame(
        self, resolved: _Resolved, reader: _TrackReader, shape_key: ShapeKey, local_tick: float, options: FrameOptions
    ) -> FrameSample:
        """Direct tick division on the projection grid, without the tempo mapper."""
        hop_ticks = resolved.track.hop_ticks
        fractional = (local_tick - resolved.start_tick) / max(1, hop_ticks)
        if not math.isfinite(fractional) or fractional < 0 or fractional >= resolved.track.frame_count:
            return self._silent_sample(reader, fractional, hop_ticks)
        vector = self._blend(resolved, reader, shape_key, fractional, options.interpolation)
        return self._frame_sample(reader, vector, fractional, hop_ticks, silent=False)

    def sample_frame(self, state: TimelineState, request: FrameRequest) -> FrameResult:
        """
        Feature values at one timeline tick.

        Returns:
            FrameResult; sample is None when the track, cache or feature is missing

        Raises:
            ChannelResolutionError: If the requested channel does not exist
        """
        options = request.options or FrameOptions()
        resolved, source_id, reason = self._resolve(state, request.track_id, request.feature_key, options)
        if resolved is None:
            return FrameResult(None, self._diagnostics(request, options, source_id, False, reason))

        track = resolved.track
        reader, shape_key = self._reader(resolved, options)

        hop_seconds = resolved.hop_seconds
        if hop_seconds <= 0:
            sample = self._silent_sample(reader, 0.0, track.hop_ticks)
            return FrameResult(sample, self._diagnostics(
                request, options, source_id, True, FallbackReason.INVALID_HOP,
                frame_count=1, feature_key=resolved.key,
            ))

        placement = resolved.timeline_track
        local_tick = request.tick - placement.offset_ticks + placement.region_start_tick

        if not self.adapter_enabled(state):
            sample = self._sample_legacy_frame(resolved, reader, shape_key, local_tick, options)
            return FrameResult(sample, self._diagnostics(
                request, options, source_id, True, FallbackReason.ADAPTER_DISABLED,
                frame_count=1, feature_key=resolved.key,
            ))

        mapper = self.tempo_mapper(state.timing)
        hop_ticks = track.hop_ticks
        mapper_start = time.perf_counter_ns()
        start_seconds = resolved.start_seconds
        start_tick = mapper.seconds_to_ticks(start_seconds)

        if not math.isfinite(local_tick) or local_tick < start_tick:
            fractional = (local_tick - start_tick) / max(1, hop_ticks)
            sample = self._silent_sample(reader, fractional, hop_ticks)
            return FrameResult(sample, self._diagnostics(
                request, options, source_id, True,
                mapper_duration_ns=time.perf_counter_ns() - mapper_start,
                frame_count=1, feature_key=resolved.key,
            ))

        seconds = mapper.ticks_to_seconds(local_tick)
        frame_float = (seconds - start_seconds) / hop_seconds
        mapper_duration_ns = time.perf_counter_ns() - mapper_start

        if not math.isfinite(frame_float) or frame_float < 0 or frame_float >= track.frame_count:
            sample = self._silent_sample(reader, frame_float, hop_ticks)
        else:
            if options.smoothing > 0:
                vector = self._smoothed(resolved, reader, shape_key, frame_float, options.smoothing)
            else:
                vector = self._blend(resolved, reader, shape_key, frame_float, options.interpolation)
            sample = self._frame_sample(reader, vector, frame_float, hop_ticks, silent=False)

        return FrameResult(sample, self._diagnostics(
            request, options, source_id, True,
            mapper_duration_ns=mapper_duration_ns, frame_count=1, feature_key=resolved.key,
        ))

    # ------------------------------------------------------------------
    # Range sampling
    # ------------------------------------------------------------------

    def _gather(
        self, resolved: _Resolved, reader: _TrackReader, shape_key: ShapeKey, indices: np.ndarray
    ) -> np.ndarray:
        """Frames at ``indices`` as one contiguous float32 buffer."""
        first_real = next((int(i) for i in indices if reader.in_range(int(i))), None)
        if first_real is not None:
            self._observe(resolved, reader, shape_key, first_real)
        rows: List[np.ndarray] = [reader.read(int(i)).ravel() for i in indices]
        if not rows:
            return np.zeros(0, dtype=np.float32)
        return np.concatenate(rows).astype(np.float32)

    def _track_end_tick(self, state: TimelineState, resolved: _Resolved) -> float:
        """Timeline tick where the track stops: region end, else source duration, else analysed length."""
        placement = resolved.timeline_track
        region_end = placement.region_end_tick
        if not isinstance(region_end, (int, float)) or not math.isfinite(region_end):
            region_end = state.audio_durations_ticks.get(resolved.source_id)
        if isinstance(region_end, (int, float)) and math.isfinite(region_end):
            region_length = max(0.0, region_end - placement.region_start_tick)
        else:
            mapper = self.tempo_mapper(state.timing)
            start_seconds = resolved.start_seconds
            total_seconds = start_seconds + resolved.track.frame_count * resolved.hop_seconds
            region_length = max(0, round(mapper.seconds_to_ticks(total_seconds) - mapper.seconds_to_ticks(start_seconds)))
        return placement.offset_ticks + region_length

    def _range_sample(
        self,
        request: RangeRequest,
        resolved: _Resolved,
        reader: _TrackReader,
        hop_ticks: int,
        data: np.ndarray,
        frame_ticks: np.ndarray,
        track_end_tick: float,
        frame_seconds: Optional[np.ndarray] = None,
    ) -> RangeSample:
        return RangeSample(
            hop_ticks=hop_ticks,
            frame_count=len(frame_ticks),
            channels=reader.shape[0] * reader.shape[1],
            format=resolved.track.format,
            data=data,
            frame_ticks=frame_ticks,
            frame_seconds=frame_seconds,
            requested_start_tick=request.start_tick,
            requested_end_tick=request.end_tick,
            window_start_tick=min(request.start_tick, request.end_tick),
            window_end_tick=max(request.start_tick, request.end_tick),
            track_start_tick=resolved.timeline_track.offset_ticks,
            track_end_tick=track_end_tick,
            source_id=resolved.source_id,
        )

    def _sample_legacy_range(
        self,
        request: RangeRequest,
        resolved: _Resolved,
        reader: _TrackReader,
        shape_key: ShapeKey,
        local_start: float,
        local_end: float,
        options: RangeOptions,
        track_end_tick: float,
    ) -> RangeSample:
        """Covering frames by direct tick division, clamped to the track."""
        track = resolved.track
        hop_ticks = track.hop_ticks
        start_tick = resolved.start_tick
        frame_start = math.floor((min(local_start, local_end) - start_tick) / hop_ticks) - options.frame_padding
        frame_end = math.floor((max(local_start, local_end) - start_tick) / hop_ticks) + options.frame_padding
        first = max(0, min(track.frame_count - 1, frame_start))
        last = max(first, min(track.frame_count - 1, frame_end))
        indices = np.arange(first, last + 1)
        data = self._gather(resolved, reader, shape_key, indices)
        placement = resolved.timeline_track
        frame_ticks = (
            placement.offset_ticks - placement.region_start_tick + start_tick + indices * float(hop_ticks)
        ).astype(np.float64)
        return self._range_sample(request, resolved, reader, hop_ticks, data, frame_ticks, track_end_tick)

    def sample_range(self, state: TimelineState, request: RangeRequest) -> RangeResult:
        """
        Contiguous feature frames covering [start_tick, end_tick].

        The tick order does not matter. Frames outside the track are silence.

        Returns:
            RangeResult; range is None when the track, cache or feature is
            missing, the hop is invalid, or the window is not finite

        Raises:
            ChannelResolutionError: If the requested channel does not exist
        """
        options = request.options or RangeOptions()
        if not isinstance(options, RangeOptions):
            options = RangeOptions(**vars(options))
        resolved, source_id, reason = self._resolve(state, request.track_id, request.feature_key, options)
        if resolved is None:
            return RangeResult(None, self._diagnostics(request, options, source_id, False, reason))

        reader, shape_key = self._reader(resolved, options)
        hop_seconds = resolved.hop_seconds
        if hop_seconds <= 0:
            return RangeResult(None, self._diagnostics(
                request, options, source_id, True, FallbackReason.INVALID_HOP, feature_key=resolved.key,
            ))

        placement = resolved.timeline_track
        local_start = request.start_tick - placement.offset_ticks + placement.region_start_tick
        local_end = request.end_tick - placement.offset_ticks + placement.region_start_tick
        if not (math.isfinite(local_start) and math.isfinite(local_end)):
            return RangeResult(None, self._diagnostics(request, options, source_id, True, feature_key=resolved.key))
        track_end_tick = self._track_end_tick(state, resolved)

        if not self.adapter_enabled(state):
            sample = self._sample_legacy_range(
                request, resolved, reader, shape_key, local_start, local_end, options, track_end_tick
            )
            return RangeResult(sample, self._diagnostics(
                request, options, source_id, True, FallbackReason.ADAPTER_DISABLED,
                frame_count=sample.frame_count, feature_key=resolved.key,
            ))

        mapper = self.tempo_mapper(state.timing)
        mapper_start = time.perf_counter_ns()
        start_seconds = resolved.start_seconds
        start_seconds_local = mapper.ticks_to_seconds(min(local_start, local_end))
        end_seconds_local = mapper.ticks_to_seconds(max(local_start, local_end))
        first = math.floor((start_seconds_local - start_seconds) / hop_seconds) - options.frame_padding
        last = math.floor((end_seconds_local - start_seconds) / hop_seconds) + options.frame_padding
        indices = np.arange(first, last + 1)

        data = self._gather(resolved, reader, shape_key, indices)
        frame_seconds = start_seconds + indices * hop_seconds + hop_seconds / 2.0
        base_tick = placement.offset_ticks - placement.region_start_tick
        frame_ticks = base_tick + mapper.seconds_to_ticks_batch(frame_seconds)
        mapper_duration_ns = time.perf_counter_ns() - mapper_start

        sample = self._range_sample(
            request, resolved, reader, resolved.track.hop_ticks, data,
            np.asarray(frame_ticks, dtype=np.float64), track_end_tick,
            frame_seconds=np.asarray(frame_seconds, dtype=np.float64),
        )
        return RangeResult(sample, self._diagnostics(
            request, options, source_id, True,
            mapper_duration_ns=mapper_duration_ns, frame_count=sample.frame_count, feature_key=resolved.key,
        ))


_adapter: Optional[TempoAlignedAdapter] = None


def get_adapter() -> TempoAlignedAdapter:
    """Shared adapter used by the module-level helpers."""
    global _adapter
    if _adapter is None:
        _adapter = TempoAlignedAdapter()
    return _adapter


def reset_adapter():
    """Drop the shared adapter (tests, settings changes)."""
    global _adapter
    _adapter = None


def sample_frame(timeline: TimelineState, request: FrameRequest) -> FrameResult:
    return get_adapter().sample_frame(timeline, request)


def sample_range(timeline: TimelineState, request: RangeRequest) -> RangeResult:
    return get_adapter().sample_range(timeline, request)
