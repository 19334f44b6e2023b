"""
Analysis profiles.

The built-in 'default' profile backs the shared cache. A UI element that
wants different parameters passes overrides; those resolve to an ad-hoc
profile whose id is derived from the override content, so the shared
cache is never invalidated.
"""

import dataclasses
import hashlib
import json
import math
from typing import Any, Dict, Mapping, Optional

from .identity import DEFAULT_ANALYSIS_PROFILE_ID
from .models import AnalysisParams, AnalysisProfile

ADHOC_PROFILE_PREFIX = "adhoc-"

BUILTIN_PROFILES: Dict[str, AnalysisProfile] = {
    DEFAULT_ANALYSIS_PROFILE_ID: AnalysisProfile(
        id=DEFAULT_ANALYSIS_PROFILE_ID,
        window_size=2048,
        hop_size=512,
        overlap=2048 / 512,
        sample_rate=0,
        fft_size=None,
        min_decibels=-80.0,
        max_decibels=0.0,
        window="hann",
    ),
}

# wire name -> field name
_NUMERIC_KEYS = {
    "windowSize": "window_size",
    "hopSize": "hop_size",
    "overlap": "overlap",
    "sampleRate": "sample_rate",
    "fftSize": "fft_size",
    "minDecibels": "min_decibels",
    "maxDecibels": "max_decibels",
}
_STRING_KEYS = {"window": "window"}
_REQUIRED_FIELDS = {"window_size", "hop_size", "overlap", "sample_rate"}


def get_base_profile(profile_id: Optional[str] = None) -> AnalysisProfile:
    """Built-in profile by id; unknown ids fall back to 'default'."""
    key = profile_id.strip() if isinstance(profile_id, str) and profile_id.strip() else DEFAULT_ANALYSIS_PROFILE_ID
    return BUILTIN_PROFILES.get(key, BUILTIN_PROFILES[DEFAULT_ANALYSIS_PROFILE_ID])


def sanitize_profile_overrides(overrides: Optional[Mapping[str, Any]]) -> Optional[Dict[str, Any]]:
    """
    Keep only recognised override keys with usable values.

    Numeric keys accept finite numbers or None (explicit reset); the window
    accepts a non-blank string or None. Returns None when nothing survives.
    """
    if not isinstance(overrides, Mapping):
        return None
    result: Dict[str, Any] = {}
    for key, value in overrides.items():
        if key in _NUMERIC_KEYS:
            if value is None:
                result[key] = None
            elif isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value):
                result[key] = value
        elif key in _STRING_KEYS:
            if value is None:
                result[key] = None
            elif isinstance(value, str) and value.strip():
                result[key] = value.strip()
    return result or None


def is_adhoc_profile_id(value: Optional[str]) -> bool:
    return isinstance(value, str) and value.startswith(ADHOC_PROFILE_PREFIX)


def build_adhoc_profile_id(overrides: Mapping[str, Any]) -> str:
    """Content-derived id for a set of sanitized overrides."""
    canonical = json.dumps(dict(overrides), sort_keys=True, separators=(",", ":"))
    digest = hashlib.sha1(canonical.encode("utf-8")).hexdigest()[:12]
    return f"{ADHOC_PROFILE_PREFIX}{digest}"


def resolve_profile(
    profile_id: Optional[str] = None,
    overrides: Optional[Mapping[str, Any]] = None,
) -> AnalysisProfile:
    """
    Profile for a request.

    Without usable overrides this is the named built-in profile. With
    overrides the built-in is patched and re-identified as adhoc-<hash>.
    """
    base = get_base_profile(profile_id)
    clean = sanitize_profile_overrides(overrides)
    if not clean:
        return base

    fields: Dict[str, Any] = {}
    for key, value in clean.items():
        name = _NUMERIC_KEYS.get(key) or _STRING_KEYS[key]
        # Required fields cannot be reset to None
        if value is None and name in _REQUIRED_FIELDS:
            continue
        fields[name] = value

    window_size = int(fields.get("window_size", base.window_size))
    hop_size = int(fields.get("hop_size", base.hop_size))
    fields["window_size"] = window_size
    fields["hop_size"] = hop_size
    if "overlap" not in fields and ("windowSize" in clean or "hopSize" in clean):
        fields["overlap"] = window_size / hop_size if hop_size else 1
    return dataclasses.replace(base, id=build_adhoc_profile_id(clean), **fields)


def profile_from_params(params: AnalysisParams, profile_id: str = DEFAULT_ANALYSIS_PROFILE_ID) -> AnalysisProfile:
    """Profile describing the parameters an analysis actually used."""
    return AnalysisProfile(
        id=profile_id,
        window_size=params.window_size,
        hop_size=params.hop_size,
        overlap=params.overlap,
        sample_rate=params.sample_rate,
        fft_size=params.fft_size,
        min_decibels=params.min_decibels,
        max_decibels=params.max_decibels,
        window=params.window,
    )
