"""
Cache - the audio feature cache model and its serialization.

- models.py         - FeatureTrack, AudioFeatureCache and friends
- identity.py       - featureKey:profileId composite keys
- profiles.py       - built-in and ad-hoc analysis profiles
- serialization.py  - schema v3 encode/decode with v1/v2 migration
"""

from .models import (
    CACHE_VERSION,
    FeatureFormat,
    FIXED_WIDTH_DTYPES,
    TempoProjection,
    PeakPayload,
    ChannelLayout,
    AnalysisParams,
    AnalysisProfile,
    FeatureTrack,
    AudioFeatureCache,
)
from .identity import (
    DEFAULT_ANALYSIS_PROFILE_ID,
    build_feature_track_key,
    parse_feature_track_key,
    resolve_feature_track,
)
from .profiles import (
    BUILTIN_PROFILES,
    resolve_profile,
    sanitize_profile_overrides,
    is_adhoc_profile_id,
    build_adhoc_profile_id,
)
from .serialization import (
    serialize_cache,
    deserialize_cache,
    serialize_track,
    deserialize_track,
    dumps_cache,
    loads_cache,
)

__all__ = [
    'CACHE_VERSION',
    'FeatureFormat',
    'FIXED_WIDTH_DTYPES',
    'TempoProjection',
    'PeakPayload',
    'ChannelLayout',
    'AnalysisParams',
    'AnalysisProfile',
    'FeatureTrack',
    'AudioFeatureCache',
    'DEFAULT_ANALYSIS_PROFILE_ID',
    'build_feature_track_key',
    'parse_feature_track_key',
    'resolve_feature_track',
    'BUILTIN_PROFILES',
    'resolve_profile',
    'sanitize_profile_overrides',
    'is_adhoc_profile_id',
    'build_adhoc_profile_id',
    'serialize_cache',
    'deserialize_cache',
    'serialize_track',
    'deserialize_track',
    'dumps_cache',
    'loads_cache',
]
