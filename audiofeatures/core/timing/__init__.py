"""Timing - seconds/ticks conversion and hop quantization."""

from .tempo_mapper import (
    TempoMapper,
    TempoSegment,
    DEFAULT_BPM,
    normalize_tempo_map,
    tempo_map_key,
    get_tempo_mapper,
)
from .hop_quantization import quantize_hop_ticks, normalize_hop_ticks, compute_tempo_map_hash
from .context import TimingContext

__all__ = [
    'TempoMapper',
    'TempoSegment',
    'DEFAULT_BPM',
    'normalize_tempo_map',
    'tempo_map_key',
    'get_tempo_mapper',
    'quantize_hop_ticks',
    'normalize_hop_ticks',
    'compute_tempo_map_hash',
    'TimingContext',
]
