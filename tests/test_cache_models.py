"""
Unit tests for core/cache models, track identity and analysis profiles.
"""

import numpy as np
import pytest

from conftest import make_cache, make_track


@pytest.mark.unit
class TestFeatureTrackIdentity:
    """Tests for composite featureKey:profileId keys."""

    @pytest.mark.parametrize("feature,profile,expected", [
        ("rms", None, "rms:default"),
        ("rms", "  ", "rms:default"),
        ("spectrogram", "hi-res", "spectrogram:hi-res"),
        ("", "x", "unknown:x"),
    ])
    def test_build_key(self, feature, profile, expected):
        from audiofeatures.core.cache import build_feature_track_key

        assert build_feature_track_key(feature, profile) == expected

    @pytest.mark.parametrize("key,expected", [
        ("rms", ("rms", "default")),
        ("rms:adhoc-1", ("rms", "adhoc-1")),
        ("a:b:c", ("a:b", "c")),
        (":x", (":x", "default")),
        ("rms:", ("rms", "default")),
        (None, ("", "default")),
    ])
    def test_parse_key(self, key, expected):
        from audiofeatures.core.cache import parse_feature_track_key

        assert parse_feature_track_key(key) == expected

    def test_resolve_candidate_order(self):
        """
        ЧТО ПРОВЕРЯЕМ:
            resolve_feature_track() lookup order

        ОЖИДАЕМОЕ ПОВЕДЕНИЕ:
            - requested profile wins over default
            - missing profile falls back to the cache default, then 'default'
            - bare keys resolve last
        """
        from audiofeatures.core.cache import resolve_feature_track

        tracks = {"rms:default": "D", "rms:hi": "H", "legacy": "L"}

        assert resolve_feature_track(tracks, "rms", "hi") == ("rms:hi", "H")
        assert resolve_feature_track(tracks, "rms", "missing") == ("rms:default", "D")
        assert resolve_feature_track({"rms:hi": "H"}, "rms", None, default_profile_id="hi") == ("rms:hi", "H")
        # bare keys belong to the default profile before the cache default
        assert resolve_feature_track(tracks, "rms", None, default_profile_id="hi") == ("rms:default", "D")
        assert resolve_feature_track(tracks, "rms:hi") == ("rms:hi", "H")
        assert resolve_feature_track(tracks, "legacy") == ("legacy", "L")

    def test_resolve_miss(self):
        from audiofeatures.core.cache import resolve_feature_track

        assert resolve_feature_track({}, "rms", "hi") == ("rms", None)
        assert resolve_feature_track({}, "   ") == (None, None)

    def test_normalize_serialized_keys(self):
        from audiofeatures.core.cache.identity import normalize_feature_track_keys

        original = {"key": "rms"}
        normalized = normalize_feature_track_keys({
            "rms": original,
            "spectrogram": {"key": "spectrogram", "analysisProfileId": "hi"},
            "bad": "not-a-record",
        })

        assert set(normalized) == {"rms:default", "spectrogram:hi"}
        assert normalized["rms:default"]["analysisProfileId"] == "default"
        # Records are copied
        assert original == {"key": "rms"}


@pytest.mark.unit
class TestAnalysisProfiles:
    """Tests for built-in and ad-hoc profiles."""

    def test_default_profile(self):
        from audiofeatures.core.cache import resolve_profile

        profile = resolve_profile()

        assert profile.id == "default"
        assert profile.window_size == 2048
        assert profile.hop_size == 512
        assert resolve_profile("unknown-profile").id == "default"

    def test_sanitize_overrides(self):
        from audiofeatures.core.cache import sanitize_profile_overrides

        clean = sanitize_profile_overrides({
            "windowSize": 1024,
            "hopSize": float("nan"),
            "fftSize": None,
            "window": "  hann ",
            "minDecibels": True,
            "colour": "red",
        })

        assert clean == {"windowSize": 1024, "fftSize": None, "window": "hann"}
        assert sanitize_profile_overrides({"colour": "red"}) is None
        assert sanitize_profile_overrides(None) is None

    def test_adhoc_profile(self):
        """Overrides produce a content-addressed adhoc-<hash> profile."""
        from audiofeatures.core.cache import is_adhoc_profile_id, resolve_profile

        profile = resolve_profile("default", {"windowSize": 1024, "hopSize": 256})

        assert is_adhoc_profile_id(profile.id)
        assert profile.window_size == 1024
        assert profile.hop_size == 256
        assert profile.overlap == 4.0
        assert profile.min_decibels == -80.0

        again = resolve_profile("default", {"hopSize": 256, "windowSize": 1024})
        assert again.id == profile.id
        assert resolve_profile("default", {"windowSize": 512}).id != profile.id

    def test_required_fields_cannot_be_reset(self):
        from audiofeatures.core.cache import resolve_profile

        profile = resolve_profile("default", {"windowSize": None, "fftSize": None})

        assert profile.window_size == 2048
        assert profile.fft_size is None
        assert profile.id.startswith("adhoc-")


@pytest.mark.unit
class TestFeatureTrackModel:
    """Tests for FeatureTrack and AudioFeatureCache."""

    def test_payload_is_read_only(self):
        track = make_track(frame_count=3)

        assert track.data.dtype == np.float32
        with pytest.raises(ValueError):
            track.data[0] = 42.0

    def test_length_mismatch_rejected(self):
        from audiofeatures.core.errors import CacheError

        with pytest.raises(CacheError):
            make_track(values=np.zeros(5, dtype=np.float32), frame_count=2, channels=2)

    def test_peak_length_mismatch_rejected(self):
        from audiofeatures.core.errors import CacheError

        with pytest.raises(CacheError):
            make_track(key="waveform:default", format="peak-minmax",
                       values=(np.zeros(4), np.zeros(3)), frame_count=4)

    def test_unknown_format_rejected(self):
        from audiofeatures.core.errors import CacheError

        with pytest.raises(CacheError):
            make_track(format="float64")

    def test_legacy_format_alias(self):
        from audiofeatures.core.cache import FeatureFormat

        track = make_track(key="waveform:default", format="waveform-minmax",
                           values=(np.zeros(4), np.ones(4)), frame_count=4)

        assert track.format is FeatureFormat.PEAK_MINMAX

    def test_hop_ticks_at_least_one(self):
        track = make_track(hop_ticks=0)

        assert track.hop_ticks == 1
        assert track.tempo_projection.hop_ticks == 1

    def test_replace_leaves_original(self):
        track = make_track()
        renamed = track.replace(key="rms:hi", analysis_profile_id="hi")

        assert track.key == "rms:default"
        assert renamed.key == "rms:hi"
        assert renamed.feature_key == "rms"

    def test_with_tracks_does_not_mutate(self):
        """
        ЧТО ПРОВЕРЯЕМ:
            AudioFeatureCache.with_tracks() derives a new snapshot

        ОЖИДАЕМОЕ ПОВЕДЕНИЕ:
            - the original cache keeps its tracks
            - existing tracks are shared by reference
        """
        from audiofeatures.core.cache import resolve_profile

        base_track = make_track()
        cache = make_cache([base_track])
        profile = resolve_profile("default", {"hopSize": 256})
        extra = make_track(key=f"rms:{profile.id}")

        derived = cache.with_tracks({extra.key: extra}, {profile.id: profile})

        assert set(cache.feature_tracks) == {"rms:default"}
        assert set(derived.feature_tracks) == {"rms:default", extra.key}
        assert derived.get_track("rms:default") is base_track
        assert profile.id in derived.analysis_profiles
        assert profile.id not in cache.analysis_profiles

    def test_cache_mappings_are_read_only(self):
        cache = make_cache([make_track()])

        with pytest.raises(TypeError):
            cache.feature_tracks["x"] = None
