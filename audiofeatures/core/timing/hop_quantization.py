"""Deterministic hop-to-tick quantization and tempo-map hashing."""

import hashlib
import math
from typing import Any, Optional

from .tempo_mapper import TempoMap, TempoMapper, tempo_map_key


def normalize_hop_ticks(value: Any) -> Optional[int]:
    """Round a hop tick value; None unless it is finite and positive."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if not math.isfinite(value) or value <= 0:
        return None
    return max(1, int(round(value)))


def quantize_hop_ticks(
    hop_seconds: float,
    tempo_mapper: Optional[TempoMapper],
    tempo_projection: Any = None,
) -> int:
    """
    Convert a hop duration to an integer tick count >= 1.

    Resolution order:
        1. a prior projection's hop_ticks, when positive
        2. hop_seconds mapped through the tempo mapper, rounded
        3. 1

    Args:
        hop_seconds: Hop duration in seconds
        tempo_mapper: Mapper for the current tempo state
        tempo_projection: Optional prior projection (anything with hop_ticks)

    Returns:
        Hop length in ticks
    """
    if tempo_projection is not None:
        prior = normalize_hop_ticks(getattr(tempo_projection, "hop_ticks", None))
        if prior is not None:
            return prior

    if tempo_mapper is not None and isinstance(hop_seconds, (int, float)) and math.isfinite(hop_seconds):
        mapped = normalize_hop_ticks(tempo_mapper.seconds_to_ticks(hop_seconds))
        if mapped is not None:
            return mapped

    return 1


def compute_tempo_map_hash(tempo_map: Optional[TempoMap]) -> Optional[str]:
    """Stable digest of a tempo map, or None when there is no map."""
    if not tempo_map:
        return None
    return hashlib.sha1(tempo_map_key(tempo_map).encode("utf-8")).hexdigest()[:16]
