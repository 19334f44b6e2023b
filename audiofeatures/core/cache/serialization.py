"""
Versioned, JSON-safe encoding of AudioFeatureCache.

Wire layout (schema version 3, camelCase keys):

    {
      "version": 3,
      "audioSourceId": "...",
      "hopSeconds": 0.0116, "hopTicks": 22, "startTimeSeconds": 0,
      "frameCount": 431,
      "analysisParams": {...},
      "tempoProjection": {"hopTicks": 22, "startTick": 0, "tempoMapHash": null},
      "featureTracks": {"rms:default": {..., "data": {"elementType": "float32", "values": [...]}}},
      "analysisProfiles": {"default": {...}},
      "defaultAnalysisProfileId": "default",
      "channelAliases": ["Left", "Right"]
    }

Peak payloads encode as {"elementType": "float32", "min": [...], "max": [...]}.
Versions 1 and 2 are migrated on read; anything else is rejected.
"""

import json
import math
from typing import Any, Dict, Mapping, Optional

import numpy as np

from audiofeatures.common.logging import get_logger
from audiofeatures.core.errors import (
    CacheError,
    CacheSerializationError,
    MissingPayloadError,
    UnsupportedCacheVersionError,
)
from .identity import DEFAULT_ANALYSIS_PROFILE_ID, normalize_feature_track_keys, sanitize_analysis_profile_id
from .models import (
    CACHE_VERSION,
    FIXED_WIDTH_DTYPES,
    AnalysisParams,
    AnalysisProfile,
    AudioFeatureCache,
    ChannelLayout,
    FeatureFormat,
    FeatureTrack,
    PeakPayload,
    TempoProjection,
    coerce_format,
)
from .profiles import profile_from_params

logger = get_logger(__name__)

SUPPORTED_VERSIONS = (1, 2, 3)

_ELEMENT_DTYPES = {
    "float32": np.float32,
    "uint8": np.uint8,
    "int16": np.int16,
}


def to_plain(value: Any) -> Any:
    """Deep-copy a metadata value into JSON-safe builtins."""
    if isinstance(value, Mapping):
        return {str(k): to_plain(v) for k, v in value.items()}
    if isinstance(value, np.ndarray):
        return value.tolist()
    if isinstance(value, (list, tuple)):
        return [to_plain(v) for v in value]
    if isinstance(value, np.integer):
        return int(value)
    if isinstance(value, np.floating):
        return float(value)
    if isinstance(value, np.bool_):
        return bool(value)
    return value


def _hop_ticks(value: Any, fallback: Any = 1) -> int:
    for candidate in (value, fallback):
        if isinstance(candidate, (int, float)) and not isinstance(candidate, bool) and math.isfinite(candidate):
            return max(1, int(round(candidate)))
    return 1


# =============================================================================
# Encode
# =============================================================================

def _serialize_payload(track: FeatureTrack) -> Dict[str, Any]:
    fmt = track.format
    if fmt == FeatureFormat.PEAK_MINMAX:
        return {
            "elementType": "float32",
            "min": track.data.min.tolist(),
            "max": track.data.max.tolist(),
        }
    if fmt == FeatureFormat.PERIODIC:
        return {"elementType": "float32", "values": track.data.tolist()}
    if fmt in FIXED_WIDTH_DTYPES:
        return {"elementType": fmt.value, "values": track.data.tolist()}
    raise CacheSerializationError(
        f"Cannot serialize format {fmt!r}", data={"key": track.key}
    )


def serialize_track(track: FeatureTrack) -> Dict[str, Any]:
    """Encode one track."""
    record: Dict[str, Any] = {
        "key": track.key,
        "calculatorId": track.calculator_id,
        "version": track.version,
        "frameCount": track.frame_count,
        "channels": track.channels,
        "hopSeconds": track.hop_seconds,
        "hopTicks": track.hop_ticks,
        "startTimeSeconds": track.start_time_seconds,
        "tempoProjection": track.tempo_projection.to_dict(),
        "format": track.format.value,
        "data": _serialize_payload(track),
        "metadata": to_plain(track.metadata),
    }
    if track.analysis_params is not None:
        record["analysisParams"] = to_plain(track.analysis_params)
    if track.analysis_profile_id:
        record["analysisProfileId"] = track.analysis_profile_id
    if track.channel_aliases is not None:
        record["channelAliases"] = list(track.channel_aliases)
    if track.channel_layout is not None:
        record["channelLayout"] = track.channel_layout.to_dict()
    return record


def serialize_cache(cache: AudioFeatureCache) -> Dict[str, Any]:
    """
    Encode a cache as a JSON-safe dict tagged with the current schema version.

    Args:
        cache: Live cache

    Returns:
        Plain dict (json.dumps-able)
    """
    result = {
        "version": CACHE_VERSION,
        "audioSourceId": cache.audio_source_id,
        "hopSeconds": cache.hop_seconds,
        "hopTicks": cache.hop_ticks,
        "startTimeSeconds": cache.start_time_seconds,
        "frameCount": cache.frame_count,
        "analysisParams": cache.analysis_params.to_dict(),
        "tempoProjection": cache.tempo_projection.to_dict(),
        "featureTracks": {key: serialize_track(track) for key, track in cache.feature_tracks.items()},
        "analysisProfiles": {pid: p.to_dict() for pid, p in cache.analysis_profiles.items()},
        "defaultAnalysisProfileId": cache.default_analysis_profile_id,
    }
    if cache.channel_aliases is not None:
        result["channelAliases"] = list(cache.channel_aliases)
    return result


# =============================================================================
# Decode
# =============================================================================

def _values(record: Mapping[str, Any], name: str, dtype, key: str) -> np.ndarray:
    values = record.get(name)
    if values is None:
        raise MissingPayloadError(
            f"Serialized track {key} is missing payload values", data={"key": key, "field": name}
        )
    try:
        return np.asarray(values, dtype=dtype)
    except (TypeError, ValueError) as e:
        raise CacheSerializationError(
            f"Serialized track {key} has non-numeric payload", data={"key": key}, cause=e
        )


def _deserialize_payload(record: Mapping[str, Any], fmt: FeatureFormat, key: str):
    data = record.get("data")
    if not isinstance(data, Mapping):
        if record.get("dataRef"):
            raise MissingPayloadError(
                f"Serialized track {key} references an external payload",
                data={"key": key, "dataRef": to_plain(record.get("dataRef"))},
            )
        raise MissingPayloadError(f"Serialized track {key} missing data payload", data={"key": key})

    element_type = data.get("elementType") or data.get("type")
    if fmt == FeatureFormat.PEAK_MINMAX:
        return PeakPayload(
            min=_values(data, "min", np.float32, key),
            max=_values(data, "max", np.float32, key),
        )
    if fmt == FeatureFormat.PERIODIC:
        return _values(data, "values", np.float32, key)

    dtype = FIXED_WIDTH_DTYPES[fmt]
    if element_type in _ELEMENT_DTYPES and _ELEMENT_DTYPES[element_type] is not dtype:
        raise CacheSerializationError(
            f"Serialized track {key} element type does not match its format",
            data={"key": key, "elementType": element_type, "format": fmt.value},
        )
    return _values(data, "values", dtype, key)


def deserialize_track(
    record: Mapping[str, Any],
    fallback_hop_ticks: Any = 1,
    fallback_tempo_map_hash: Optional[str] = None,
) -> FeatureTrack:
    """Decode one track record."""
    key = str(record.get("key") or "")
    try:
        fmt = coerce_format(record.get("format", "float32"))
    except CacheError as e:
        raise CacheSerializationError(str(e), data={"key": key}, cause=e)
    payload = _deserialize_payload(record, fmt, key)

    projection_record = record.get("tempoProjection")
    hop_ticks = _hop_ticks(
        record.get("hopTicks"),
        projection_record.get("hopTicks") if isinstance(projection_record, Mapping) else fallback_hop_ticks,
    )
    if isinstance(projection_record, Mapping):
        projection = TempoProjection.from_dict(projection_record)
    else:
        projection = TempoProjection(hop_ticks=hop_ticks, start_tick=0.0, tempo_map_hash=fallback_tempo_map_hash)

    aliases = record.get("channelAliases")
    try:
        return FeatureTrack(
            key=key,
            calculator_id=str(record.get("calculatorId") or ""),
            version=int(record.get("version") or 1),
            frame_count=int(record.get("frameCount") or 0),
            channels=int(record.get("channels") or 1),
            hop_ticks=hop_ticks,
            hop_seconds=float(record.get("hopSeconds") or 0.0),
            start_time_seconds=float(record.get("startTimeSeconds") or 0.0),
            tempo_projection=projection,
            format=fmt,
            data=payload,
            metadata=to_plain(record.get("metadata") or {}),
            analysis_params=to_plain(record["analysisParams"]) if record.get("analysisParams") else None,
            analysis_profile_id=sanitize_analysis_profile_id(record.get("analysisProfileId")),
            channel_aliases=tuple(aliases) if isinstance(aliases, list) else None,
            channel_layout=ChannelLayout.from_dict(record.get("channelLayout")),
        )
    except CacheError as e:
        raise CacheSerializationError(e.message, data={"key": key, **e.data}, cause=e)
    except (TypeError, ValueError) as e:
        raise CacheSerializationError(f"Invalid feature track record: {key}", data={"key": key}, cause=e) from e


def deserialize_cache(value: Any) -> AudioFeatureCache:
    """
    Decode a serialized cache of any supported version.

    Version 3 is read as is. Version 2 (no profiles, plain feature keys) and
    version 1 (top-level hop ticks, no projections) are migrated.

    Raises:
        CacheSerializationError: If the value is not a serialized cache
        UnsupportedCacheVersionError: If the version is not 1, 2 or 3
        MissingPayloadError: If a track has no payload
    """
    if not isinstance(value, Mapping):
        raise CacheSerializationError(
            "Invalid audio feature cache payload", data={"type": type(value).__name__}
        )
    version = value.get("version")
    if isinstance(version, bool) or version not in SUPPORTED_VERSIONS:
        raise UnsupportedCacheVersionError(
            f"Unsupported audio feature cache version: {version!r}",
            data={"version": version, "supported": list(SUPPORTED_VERSIONS)},
        )
    if version != CACHE_VERSION:
        logger.info(f"Migrating audio feature cache v{version} -> v{CACHE_VERSION}", data={
            "audio_source_id": value.get("audioSourceId"),
            "from_version": version,
        })

    try:
        return _decode_cache(value, version)
    except (TypeError, ValueError) as e:
        raise CacheSerializationError(
            "Invalid audio feature cache record",
            data={"audio_source_id": value.get("audioSourceId"), "version": version},
            cause=e,
        ) from e


def _decode_cache(value: Mapping, version: int) -> AudioFeatureCache:
    params_record = value.get("analysisParams") or {}
    params = AnalysisParams.from_dict(params_record)

    projection_record = value.get("tempoProjection")
    if version >= 2 and isinstance(projection_record, Mapping):
        projection = TempoProjection.from_dict(projection_record)
        cache_hop_ticks = _hop_ticks(value.get("hopTicks"), projection.hop_ticks)
    else:
        cache_hop_ticks = _hop_ticks(value.get("hopTicks"))
        projection = TempoProjection(
            hop_ticks=cache_hop_ticks, start_tick=0.0, tempo_map_hash=params.tempo_map_hash
        )

    default_profile_id = (
        sanitize_analysis_profile_id(value.get("defaultAnalysisProfileId")) or DEFAULT_ANALYSIS_PROFILE_ID
    )
    raw_tracks = value.get("featureTracks") or {}
    if not isinstance(raw_tracks, Mapping):
        raise CacheSerializationError("featureTracks must be an object")
    records = normalize_feature_track_keys(raw_tracks, default_profile_id)

    tracks = {}
    for key, record in records.items():
        if version == 1:
            # v1 tracks carry no projection: inherit the cache grid
            record = {k: v for k, v in record.items() if k != "tempoProjection"}
        tracks[key] = deserialize_track(
            record,
            fallback_hop_ticks=cache_hop_ticks,
            fallback_tempo_map_hash=params.tempo_map_hash,
        )

    profiles: Dict[str, AnalysisProfile] = {}
    raw_profiles = value.get("analysisProfiles") if version == CACHE_VERSION else None
    if isinstance(raw_profiles, Mapping):
        for pid, profile in raw_profiles.items():
            if isinstance(profile, Mapping):
                profiles[str(pid)] = AnalysisProfile.from_dict({"id": pid, **profile})
    if not profiles:
        profiles[default_profile_id] = profile_from_params(params, default_profile_id)

    aliases = value.get("channelAliases")
    return AudioFeatureCache(
        version=CACHE_VERSION,
        audio_source_id=str(value.get("audioSourceId") or ""),
        hop_seconds=float(value.get("hopSeconds") or 0.0),
        hop_ticks=cache_hop_ticks,
        start_time_seconds=float(value.get("startTimeSeconds") or 0.0) if version >= 2 else 0.0,
        frame_count=int(value.get("frameCount") or 0),
        analysis_params=params,
        tempo_projection=projection,
        feature_tracks=tracks,
        analysis_profiles=profiles,
        default_analysis_profile_id=default_profile_id,
        channel_aliases=tuple(aliases) if isinstance(aliases, list) else None,
    )


def dumps_cache(cache: AudioFeatureCache, **json_kwargs) -> str:
    """Serialize a cache to JSON text."""
    return json.dumps(serialize_cache(cache), **json_kwargs)


def loads_cache(text: str) -> AudioFeatureCache:
    """Deserialize a cache from JSON text."""
    try:
        value = json.loads(text)
    except json.JSONDecodeError as e:
        raise CacheSerializationError("Cache text is not valid JSON", cause=e)
    return deserialize_cache(value)
