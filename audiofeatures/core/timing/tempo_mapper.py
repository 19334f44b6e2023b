"""
Tempo mapping between seconds and timeline ticks.

A tempo map is a list of entries ``{"time": seconds, "tempo": us_per_quarter}``
(or ``"bpm"`` instead of ``"tempo"``), each optionally carrying
``"curve": "linear"`` to ramp the tick rate towards the next entry. Entries
without a curve hold their tempo until the next change.
"""

import json
import math
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Dict, List, Optional, Sequence

import numpy as np


MICROSECONDS_PER_MINUTE = 60_000_000.0
DEFAULT_BPM = 120.0

TempoMap = Sequence[Dict[str, Any]]


@dataclass(frozen=True)
class TempoSegment:
    """One tempo region, in seconds and ticks."""
    start_time: float
    end_time: float
    start_ticks: float
    end_ticks: float
    ticks_per_second_start: float
    ticks_per_second_end: float
    is_ramp: bool

    @property
    def slope(self) -> float:
        """Tick-rate change per second (ramps only)."""
        return (self.ticks_per_second_end - self.ticks_per_second_start) / max(
            1e-9, self.end_time - self.start_time
        )


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def _resolve_tempo(entry: Optional[Dict[str, Any]], fallback_bpm: float) -> float:
    """Microseconds per quarter note for an entry."""
    if entry:
        tempo = entry.get("tempo")
        if _is_number(tempo) and tempo > 0:
            return float(tempo)
        bpm = entry.get("bpm")
        if _is_number(bpm) and bpm > 0:
            return MICROSECONDS_PER_MINUTE / bpm
    return MICROSECONDS_PER_MINUTE / max(1.0, fallback_bpm)


def normalize_tempo_map(tempo_map: Optional[TempoMap]) -> List[Dict[str, Any]]:
    """Drop entries without a valid non-negative time and sort by time."""
    if not tempo_map:
        return []
    entries = [
        dict(e) for e in tempo_map
        if isinstance(e, dict) and _is_number(e.get("time")) and e["time"] >= 0
    ]
    return sorted(entries, key=lambda e: e["time"])


def _build_segments(
    entries: List[Dict[str, Any]], fallback_bpm: float, ticks_per_quarter: float
) -> List[TempoSegment]:
    if not entries:
        tps = ticks_per_quarter / (MICROSECONDS_PER_MINUTE / max(1.0, fallback_bpm) / 1e6)
        return [TempoSegment(0.0, math.inf, 0.0, math.inf, tps, tps, False)]

    segments = []
    cumulative = 0.0
    for index, entry in enumerate(entries):
        nxt = entries[index + 1] if index + 1 < len(entries) else None
        next_time = float(nxt["time"]) if nxt else math.inf
        linear = entry.get("curve") == "linear"

        spb_start = _resolve_tempo(entry, fallback_bpm) / 1e6
        spb_end = _resolve_tempo(nxt, fallback_bpm) / 1e6 if linear else spb_start
        tps_start = ticks_per_quarter / max(1e-9, spb_start)
        tps_end = ticks_per_quarter / max(1e-9, spb_end)

        duration = max(0.0, next_time - entry["time"])
        is_ramp = linear and duration > 0 and math.isfinite(next_time)
        if not math.isfinite(duration):
            end_ticks = math.inf
        elif is_ramp:
            slope = (tps_end - tps_start) / duration
            end_ticks = cumulative + tps_start * duration + 0.5 * slope * duration * duration
        else:
            end_ticks = cumulative + tps_start * duration

        segments.append(TempoSegment(
            start_time=float(entry["time"]),
            end_time=next_time,
            start_ticks=cumulative,
            end_ticks=end_ticks,
            ticks_per_second_start=tps_start,
            ticks_per_second_end=tps_end,
            is_ramp=is_ramp,
        ))
        cumulative = end_ticks
    return segments


class TempoMapper:
    """
    Converts between seconds and ticks under a piecewise tempo map.

    Usage:
        mapper = TempoMapper(ticks_per_quarter=960, global_bpm=120)
        mapper.seconds_to_ticks(0.5)      # 960.0
        mapper.ticks_to_seconds(960)      # 0.5

    Non-positive or non-finite inputs map to 0 in both directions.
    """

    def __init__(
        self,
        ticks_per_quarter: int = 960,
        global_bpm: float = DEFAULT_BPM,
        tempo_map: Optional[TempoMap] = None,
    ):
        self.ticks_per_quarter = max(1, int(ticks_per_quarter or 1))
        self.global_bpm = max(1.0, float(global_bpm or DEFAULT_BPM))
        self.tempo_map = normalize_tempo_map(tempo_map)
        self.segments = _build_segments(self.tempo_map, self.global_bpm, self.ticks_per_quarter)
        self._start_times = [s.start_time for s in self.segments]
        self._start_ticks = [s.start_ticks for s in self.segments]

    @staticmethod
    def _segment_index(starts: List[float], value: float) -> int:
        if value <= starts[0]:
            return 0
        for i in range(len(starts) - 1, -1, -1):
            if value >= starts[i]:
                return i
        return 0

    def seconds_to_ticks(self, seconds: float) -> float:
        if not _is_number(seconds) or seconds <= 0:
            return 0.0
        seg = self.segments[self._segment_index(self._start_times, seconds)]
        if not seg.is_ramp:
            return seg.start_ticks + seg.ticks_per_second_start * (seconds - seg.start_time)
        elapsed = max(0.0, min(seconds - seg.start_time, seg.end_time - seg.start_time))
        return (
            seg.start_ticks
            + seg.ticks_per_second_start * elapsed
            + 0.5 * seg.slope * elapsed * elapsed
        )

    def ticks_to_seconds(self, ticks: float) -> float:
        if not _is_number(ticks) or ticks <= 0:
            return 0.0
        seg = self.segments[self._segment_index(self._start_ticks, ticks)]
        local = ticks - seg.start_ticks
        if not seg.is_ramp:
            return seg.start_time + local / seg.ticks_per_second_start
        if local <= 0:
            return seg.start_time

        duration = seg.end_time - seg.start_time
        slope = seg.slope
        if abs(slope) < 1e-9:
            return seg.start_time + min(duration, max(0.0, local / seg.ticks_per_second_start))

        # Solve 0.5*slope*t^2 + tps_start*t - local = 0
        a = 0.5 * slope
        b = seg.ticks_per_second_start
        discriminant = b * b + 4.0 * a * local
        if discriminant < 0:
            return seg.start_time
        root = (-b + math.sqrt(discriminant)) / (2.0 * a)
        return seg.start_time + min(duration, max(0.0, root))

    def seconds_to_ticks_batch(self, values: Sequence[float]) -> np.ndarray:
        return np.array([self.seconds_to_ticks(float(v)) for v in values], dtype=np.float64)

    def ticks_to_seconds_batch(self, values: Sequence[float]) -> np.ndarray:
        return np.array([self.ticks_to_seconds(float(v)) for v in values], dtype=np.float64)

    def project_frame_centers_to_ticks(
        self, start_seconds: float, hop_seconds: float, frame_count: int
    ) -> np.ndarray:
        """Tick position of the centre of each analysis frame."""
        centers = start_seconds + np.arange(frame_count) * hop_seconds + hop_seconds / 2.0
        return self.seconds_to_ticks_batch(centers)

    def __repr__(self) -> str:
        return (
            f"TempoMapper(ticks_per_quarter={self.ticks_per_quarter}, "
            f"global_bpm={self.global_bpm}, entries={len(self.tempo_map)})"
        )


def tempo_map_key(tempo_map: Optional[TempoMap]) -> str:
    """Canonical JSON for a tempo map (stable across dict ordering)."""
    return json.dumps(normalize_tempo_map(tempo_map), sort_keys=True, separators=(",", ":"))


@lru_cache(maxsize=64)
def _cached_mapper(ticks_per_quarter: int, global_bpm: float, map_key: str) -> TempoMapper:
    return TempoMapper(ticks_per_quarter, global_bpm, json.loads(map_key))


def get_tempo_mapper(
    ticks_per_quarter: int = 960,
    global_bpm: float = DEFAULT_BPM,
    tempo_map: Optional[TempoMap] = None,
) -> TempoMapper:
    """Shared mapper for a (ticks-per-quarter, bpm, tempo map) combination."""
    return _cached_mapper(int(ticks_per_quarter), float(global_bpm), tempo_map_key(tempo_map))
