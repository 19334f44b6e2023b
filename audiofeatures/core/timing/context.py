"""Timeline timing shared by analysis and sampling."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from .hop_quantization import compute_tempo_map_hash
from .tempo_mapper import DEFAULT_BPM, TempoMapper, get_tempo_mapper, tempo_map_key


@dataclass(frozen=True)
class TimingContext:
    """
    Musical timing of the timeline.

    Attributes:
        global_bpm: Tempo used where the tempo map is silent
        ticks_per_quarter: Timeline resolution
        tempo_map: Tempo change entries (see tempo_mapper)
        beats_per_bar: Meter numerator (informational)
    """
    global_bpm: float = DEFAULT_BPM
    ticks_per_quarter: int = 960
    tempo_map: Optional[Tuple[Dict[str, Any], ...]] = None
    beats_per_bar: int = 4

    def __post_init__(self):
        if self.tempo_map is not None:
            object.__setattr__(self, "tempo_map", tuple(dict(e) for e in self.tempo_map))

    @property
    def key(self) -> Tuple[float, int, str]:
        """(bpm, ticks-per-quarter, tempo-map JSON); equal keys map identically."""
        return (float(self.global_bpm), int(self.ticks_per_quarter), tempo_map_key(self.tempo_map))

    @property
    def tempo_map_hash(self) -> Optional[str]:
        return compute_tempo_map_hash(list(self.tempo_map or ()))

    def mapper(self) -> TempoMapper:
        return get_tempo_mapper(self.ticks_per_quarter, self.global_bpm, list(self.tempo_map or ()))

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> 'TimingContext':
        tempo_map: Optional[List[Dict[str, Any]]] = d.get('tempoMap') or d.get('tempo_map')
        return cls(
            global_bpm=float(d.get('globalBpm', d.get('global_bpm', DEFAULT_BPM))),
            ticks_per_quarter=int(d.get('ticksPerQuarter', d.get('ticks_per_quarter', 960))),
            tempo_map=tuple(tempo_map) if tempo_map else None,
            beats_per_bar=int(d.get('beatsPerBar', d.get('beats_per_bar', 4))),
        )
