"""
Feature track identity.

Tracks are stored under composite keys ``featureKey:profileId`` so that
several analysis profiles of the same feature can live in one cache.
"""

from typing import Any, Dict, List, Mapping, Optional, Tuple

DEFAULT_ANALYSIS_PROFILE_ID = "default"
FEATURE_TRACK_KEY_SEPARATOR = ":"


def sanitize_analysis_profile_id(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    trimmed = value.strip()
    return trimmed or None


def build_feature_track_key(feature_key: str, analysis_profile_id: Optional[str] = None) -> str:
    """Composite key; blank feature keys become 'unknown'."""
    feature = feature_key.strip() if isinstance(feature_key, str) else ""
    profile = sanitize_analysis_profile_id(analysis_profile_id) or DEFAULT_ANALYSIS_PROFILE_ID
    return f"{feature or 'unknown'}{FEATURE_TRACK_KEY_SEPARATOR}{profile}"


def parse_feature_track_key(key: Optional[str]) -> Tuple[str, str]:
    """
    Split a composite key into (feature_key, profile_id).

    A key without a separator belongs to the default profile.
    """
    if not isinstance(key, str) or not key.strip():
        return "", DEFAULT_ANALYSIS_PROFILE_ID
    trimmed = key.strip()
    index = trimmed.rfind(FEATURE_TRACK_KEY_SEPARATOR)
    if index <= 0:
        return trimmed, DEFAULT_ANALYSIS_PROFILE_ID
    feature = trimmed[:index].strip()
    profile = sanitize_analysis_profile_id(trimmed[index + 1:]) or DEFAULT_ANALYSIS_PROFILE_ID
    return feature or trimmed, profile


def resolve_feature_track(
    feature_tracks: Mapping[str, Any],
    feature_key: Optional[str],
    analysis_profile_id: Optional[str] = None,
    fallback_profile_id: Optional[str] = None,
    default_profile_id: Optional[str] = None,
) -> Tuple[Optional[str], Any]:
    """
    Find a track by feature key, trying profile candidates in order:

        exact key, requested profile, key's own profile, fallback (or the
        cache default) profile, 'default', then the bare feature key.

    Returns:
        (matched key, track); on a miss the first candidate key and None
    """
    if not isinstance(feature_key, str) or not feature_key.strip():
        return None, None
    trimmed = feature_key.strip()

    candidates: List[str] = []

    def push(value: Optional[str]):
        if value and value.strip() and value.strip() not in candidates:
            candidates.append(value.strip())

    push(trimmed)
    base, parsed_profile = parse_feature_track_key(trimmed)
    base = base or trimmed

    requested = sanitize_analysis_profile_id(analysis_profile_id)
    if requested:
        push(build_feature_track_key(base, requested))
    push(build_feature_track_key(base, parsed_profile))

    fallback = sanitize_analysis_profile_id(fallback_profile_id) or sanitize_analysis_profile_id(
        default_profile_id
    )
    if fallback:
        push(build_feature_track_key(base, fallback))
    push(build_feature_track_key(base, DEFAULT_ANALYSIS_PROFILE_ID))
    push(base)

    for candidate in candidates:
        track = feature_tracks.get(candidate)
        if track is not None:
            return candidate, track
    return candidates[0], None


def normalize_feature_track_keys(
    entries: Mapping[str, Dict[str, Any]], fallback_profile_id: Optional[str] = None
) -> Dict[str, Dict[str, Any]]:
    """
    Re-key serialized track records under composite keys.

    Each record's own ``key``/``analysisProfileId`` wins over the map key.
    Records are copied, never modified in place.
    """
    normalized: Dict[str, Dict[str, Any]] = {}
    for entry_key, record in entries.items():
        if not isinstance(record, dict):
            continue
        entry_feature, entry_profile = parse_feature_track_key(entry_key)
        track_feature, track_profile = parse_feature_track_key(record.get("key"))
        base = track_feature or entry_feature or entry_key.strip()

        explicit_track_profile = FEATURE_TRACK_KEY_SEPARATOR in str(record.get("key") or "")
        explicit_entry_profile = FEATURE_TRACK_KEY_SEPARATOR in entry_key
        profile = (
            sanitize_analysis_profile_id(record.get("analysisProfileId"))
            or (track_profile if explicit_track_profile else None)
            or (entry_profile if explicit_entry_profile else None)
            or sanitize_analysis_profile_id(fallback_profile_id)
            or DEFAULT_ANALYSIS_PROFILE_ID
        )
        composite = build_feature_track_key(base, profile)
        normalized[composite] = {**record, "key": composite, "analysisProfileId": profile}
    return normalized
