"""Timeline state the sampling adapter reads from."""

from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional

from audiofeatures.core.cache.models import AudioFeatureCache
from audiofeatures.core.timing.context import TimingContext


@dataclass
class TimelineTrack:
    """
    A track placed on the timeline.

    Attributes:
        audio_source_id: Source whose cache backs the track (default: the track id)
        offset_ticks: Timeline tick where the region starts playing
        region_start_tick: Source tick where the region starts
        region_end_tick: Source tick where the region ends (None = whole source)
        type: Track type; only 'audio' tracks resolve
    """
    audio_source_id: Optional[str] = None
    offset_ticks: float = 0.0
    region_start_tick: float = 0.0
    region_end_tick: Optional[float] = None
    type: str = "audio"


@dataclass
class TimelineState:
    """
    Snapshot of the timeline for one sampling call.

    tempo_adapter_enabled=None defers to Settings.tempo_adapter_enabled.
    """
    tracks: Mapping[str, TimelineTrack] = field(default_factory=dict)
    audio_feature_caches: Mapping[str, AudioFeatureCache] = field(default_factory=dict)
    timing: TimingContext = field(default_factory=TimingContext)
    tempo_adapter_enabled: Optional[bool] = None
    audio_durations_ticks: Dict[str, float] = field(default_factory=dict)

    def resolve_source(self, track_id: str) -> Optional[str]:
        """Audio source of an audio track, or None."""
        track = self.tracks.get(track_id)
        if track is None or track.type != "audio":
            return None
        return track.audio_source_id or track_id
