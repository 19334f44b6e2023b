"""
Tests for cache serialization (schema v3) and migration of v1/v2 payloads.
"""

import json

import numpy as np
import pytest

from conftest import make_cache, make_track


def _v3_cache():
    frames, channels = 10, 4
    rng = np.random.default_rng(11)
    values = rng.standard_normal(frames * channels).astype(np.float32)
    spectrum = make_track(
        key="spectrogram:default",
        values=values,
        frame_count=frames,
        channels=channels,
        metadata={"bands": 4, "minDecibels": -80.0, "sizes": np.array([1, 2])},
        channel_aliases=("a", "b", "c", "d"),
    )
    peaks = make_track(
        key="waveform:default",
        format="peak-minmax",
        values=(np.full(frames, -0.5), np.full(frames, 0.5)),
        frame_count=frames,
    )
    levels = make_track(
        key="level:default",
        format="uint8",
        values=np.arange(frames, dtype=np.uint8),
        frame_count=frames,
    )
    return make_cache([spectrum, peaks, levels], channel_aliases=("Left", "Right"))


@pytest.mark.unit
class TestSerializeRoundTrip:
    """v3 encode/decode."""

    def test_round_trip_preserves_tracks(self):
        """
        ЧТО ПРОВЕРЯЕМ:
            deserialize_cache(serialize_cache(c)) for a 10-frame, 4-channel track

        ОЖИДАЕМОЕ ПОВЕДЕНИЕ:
            - identical float32 payload
            - metadata, aliases and projection survive
            - version stays 3
        """
        from audiofeatures.core.cache import deserialize_cache, serialize_cache

        cache = _v3_cache()
        restored = deserialize_cache(json.loads(json.dumps(serialize_cache(cache))))

        assert restored.version == 3
        assert restored.audio_source_id == cache.audio_source_id
        assert restored.hop_ticks == cache.hop_ticks
        assert restored.channel_aliases == ("Left", "Right")
        assert set(restored.feature_tracks) == set(cache.feature_tracks)

        original = cache.feature_tracks["spectrogram:default"]
        track = restored.feature_tracks["spectrogram:default"]
        np.testing.assert_array_equal(track.data, original.data)
        assert track.data.dtype == np.float32
        assert track.channels == 4
        assert track.frame_count == 10
        assert track.metadata["bands"] == 4
        assert track.metadata["sizes"] == [1, 2]
        assert track.channel_aliases == ("a", "b", "c", "d")
        assert track.tempo_projection == original.tempo_projection
        assert track.analysis_profile_id == "default"

    def test_peak_and_uint8_payloads(self):
        from audiofeatures.core.cache import deserialize_cache, serialize_cache

        restored = deserialize_cache(serialize_cache(_v3_cache()))

        peaks = restored.feature_tracks["waveform:default"]
        np.testing.assert_allclose(peaks.data.min, -0.5)
        np.testing.assert_allclose(peaks.data.max, 0.5)

        levels = restored.feature_tracks["level:default"]
        assert levels.data.dtype == np.uint8
        assert list(levels.data) == list(range(10))

    def test_wire_layout(self):
        from audiofeatures.core.cache import serialize_cache

        wire = serialize_cache(_v3_cache())

        assert wire["version"] == 3
        assert wire["defaultAnalysisProfileId"] == "default"
        record = wire["featureTracks"]["waveform:default"]
        assert record["format"] == "peak-minmax"
        assert set(record["data"]) == {"elementType", "min", "max"}
        assert wire["featureTracks"]["level:default"]["data"]["elementType"] == "uint8"

    def test_text_round_trip(self):
        from audiofeatures.core.cache import dumps_cache, loads_cache

        text = dumps_cache(_v3_cache(), indent=2)
        restored = loads_cache(text)

        assert "spectrogram:default" in restored.feature_tracks

    def test_adhoc_profile_survives(self):
        from audiofeatures.core.cache import deserialize_cache, resolve_profile, serialize_cache

        cache = _v3_cache()
        profile = resolve_profile("default", {"hopSize": 128})
        extra = make_track(key=f"rms:{profile.id}")
        cache = cache.with_tracks({extra.key: extra}, {profile.id: profile})

        restored = deserialize_cache(serialize_cache(cache))

        assert restored.analysis_profiles[profile.id].hop_size == 128
        assert restored.feature_tracks[extra.key].analysis_profile_id == profile.id


@pytest.mark.unit
class TestMigration:
    """v1/v2 payloads are upgraded on read."""

    def _v2_payload(self):
        return {
            "version": 2,
            "audioSourceId": "clip",
            "hopSeconds": 0.125,
            "hopTicks": 240,
            "frameCount": 2,
            "analysisParams": {"windowSize": 1024, "hopSize": 256, "sampleRate": 2048},
            "tempoProjection": {"hopTicks": 240, "startTick": 0},
            "featureTracks": {
                "rms": {
                    "key": "rms",
                    "calculatorId": "core.rms",
                    "frameCount": 2,
                    "channels": 1,
                    "hopTicks": 240,
                    "format": "float32",
                    "data": {"type": "float32", "values": [0.1, 0.2]},
                },
            },
        }

    def test_v2_keys_become_composite(self):
        from audiofeatures.core.cache import deserialize_cache

        cache = deserialize_cache(self._v2_payload())

        assert cache.version == 3
        assert list(cache.feature_tracks) == ["rms:default"]
        track = cache.feature_tracks["rms:default"]
        assert track.analysis_profile_id == "default"
        assert track.tempo_projection.hop_ticks == 240
        profile = cache.analysis_profiles["default"]
        assert profile.window_size == 1024
        assert profile.hop_size == 256

    def test_v1_tracks_inherit_cache_grid(self):
        """v1 has no projections: hop ticks come from the cache record."""
        from audiofeatures.core.cache import deserialize_cache

        payload = self._v2_payload()
        payload["version"] = 1
        payload.pop("tempoProjection")
        payload["analysisParams"]["tempoMapHash"] = "abc"
        record = payload["featureTracks"]["rms"]
        record.pop("hopTicks")
        record["tempoProjection"] = {"hopTicks": 999}

        cache = deserialize_cache(payload)

        track = cache.feature_tracks["rms:default"]
        assert cache.tempo_projection.hop_ticks == 240
        assert cache.tempo_projection.tempo_map_hash == "abc"
        assert track.hop_ticks == 240
        assert track.tempo_projection.hop_ticks == 240
        assert track.tempo_projection.tempo_map_hash == "abc"

    @pytest.mark.parametrize("hop_ticks", [float("nan"), float("inf"), 0, -240, "240", None])
    def test_unusable_projection_hop_clamps_to_one(self, hop_ticks):
        from audiofeatures.core.cache import deserialize_cache

        payload = self._v2_payload()
        payload["hopTicks"] = hop_ticks
        payload["tempoProjection"]["hopTicks"] = hop_ticks

        cache = deserialize_cache(payload)

        assert cache.tempo_projection.hop_ticks == 1
        assert cache.hop_ticks == 1
        assert cache.feature_tracks["rms:default"].hop_ticks == 240

    def test_nan_hop_in_json_text(self):
        from audiofeatures.core.cache import loads_cache

        payload = self._v2_payload()
        payload["tempoProjection"]["hopTicks"] = float("nan")

        cache = loads_cache(json.dumps(payload))

        assert cache.tempo_projection.hop_ticks == 1
        # Cache-level hopTicks is still usable
        assert cache.hop_ticks == 240

    def test_fractional_hop_rounds(self):
        from audiofeatures.core.cache import deserialize_cache

        payload = self._v2_payload()
        payload["tempoProjection"]["hopTicks"] = 239.6

        assert deserialize_cache(payload).tempo_projection.hop_ticks == 240

    def test_legacy_waveform_format(self):
        from audiofeatures.core.cache import FeatureFormat, deserialize_cache

        payload = self._v2_payload()
        payload["featureTracks"]["waveform"] = {
            "key": "waveform",
            "frameCount": 2,
            "format": "waveform-minmax",
            "data": {"min": [-1, -0.5], "max": [1, 0.5]},
        }

        cache = deserialize_cache(payload)

        assert cache.feature_tracks["waveform:default"].format is FeatureFormat.PEAK_MINMAX


@pytest.mark.unit
class TestDeserializeErrors:
    """Malformed payloads raise typed errors."""

    @pytest.mark.parametrize("version", [0, 4, "3", None, True])
    def test_unsupported_version(self, version):
        from audiofeatures.core.cache import deserialize_cache
        from audiofeatures.core.errors import UnsupportedCacheVersionError

        with pytest.raises(UnsupportedCacheVersionError):
            deserialize_cache({"version": version, "featureTracks": {}})

    def test_not_a_mapping(self):
        from audiofeatures.core.cache import deserialize_cache
        from audiofeatures.core.errors import CacheSerializationError

        with pytest.raises(CacheSerializationError):
            deserialize_cache([1, 2, 3])

    def test_missing_payload(self):
        from audiofeatures.core.cache import deserialize_cache, serialize_cache
        from audiofeatures.core.errors import MissingPayloadError

        wire = serialize_cache(_v3_cache())
        del wire["featureTracks"]["level:default"]["data"]

        with pytest.raises(MissingPayloadError):
            deserialize_cache(wire)

    def test_external_payload_reference(self):
        from audiofeatures.core.cache import deserialize_cache, serialize_cache
        from audiofeatures.core.errors import MissingPayloadError

        wire = serialize_cache(_v3_cache())
        record = wire["featureTracks"]["level:default"]
        del record["data"]
        record["dataRef"] = {"path": "level.bin"}

        with pytest.raises(MissingPayloadError) as exc_info:
            deserialize_cache(wire)
        assert exc_info.value.data["dataRef"] == {"path": "level.bin"}

    def test_element_type_mismatch(self):
        from audiofeatures.core.cache import deserialize_cache, serialize_cache
        from audiofeatures.core.errors import CacheSerializationError

        wire = serialize_cache(_v3_cache())
        wire["featureTracks"]["level:default"]["data"]["elementType"] = "int16"

        with pytest.raises(CacheSerializationError):
            deserialize_cache(wire)

    def test_length_mismatch_is_serialization_error(self):
        from audiofeatures.core.cache import deserialize_cache, serialize_cache
        from audiofeatures.core.errors import CacheSerializationError

        wire = serialize_cache(_v3_cache())
        wire["featureTracks"]["level:default"]["frameCount"] = 11

        with pytest.raises(CacheSerializationError):
            deserialize_cache(wire)

    def test_invalid_json_text(self):
        from audiofeatures.core.cache import loads_cache
        from audiofeatures.core.errors import CacheSerializationError

        with pytest.raises(CacheSerializationError):
            loads_cache("{not json")

    @pytest.mark.parametrize("field", ["frameCount", "hopSeconds"])
    def test_non_numeric_fields(self, field):
        from audiofeatures.core.cache import deserialize_cache, serialize_cache
        from audiofeatures.core.errors import CacheSerializationError

        track_wire = serialize_cache(_v3_cache())
        track_wire["featureTracks"]["level:default"][field] = "many"
        with pytest.raises(CacheSerializationError):
            deserialize_cache(track_wire)

        cache_wire = serialize_cache(_v3_cache())
        cache_wire[field] = "many"
        with pytest.raises(CacheSerializationError):
            deserialize_cache(cache_wire)
