"""
Unit tests for core.config modules.

Tests cover:
1. Settings defaults and environment variables
2. Validation
3. Singleton lifecycle
"""

import pytest

from audiofeatures.core.config.settings import LogLevel, Settings, get_settings, reset_settings


# =============================================================================
# Settings Tests
# =============================================================================

@pytest.mark.unit
class TestSettings:
    """Tests for Settings configuration."""

    def test_settings_singleton(self):
        """Test get_settings returns singleton."""
        settings1 = get_settings()
        settings2 = get_settings()
        assert settings1 is settings2

    def test_reset_rereads_environment(self, monkeypatch):
        first = get_settings()
        monkeypatch.setenv("AUDIO_FEATURES_DEFAULT_BPM", "128")
        reset_settings()

        second = get_settings()
        assert second is not first
        assert second.default_bpm == 128.0

    def test_defaults(self):
        settings = Settings()

        assert settings.window_size == 2048
        assert settings.hop_size == 512
        assert settings.ticks_per_quarter == 960
        assert settings.default_bpm == 120.0
        assert settings.yield_interval_ms == 12.0
        assert settings.tempo_adapter_enabled is True
        # Unset logging fields defer to logging-config.yaml
        assert settings.log_level is None
        assert settings.log_json is None
        assert settings.log_file is None

    def test_environment(self, monkeypatch):
        monkeypatch.setenv("AUDIO_FEATURES_WINDOW_SIZE", "4096")
        monkeypatch.setenv("AUDIO_FEATURES_HOP_SIZE", "1024")
        monkeypatch.setenv("AUDIO_FEATURES_TICKS_PER_QUARTER", "480")
        monkeypatch.setenv("ANALYSIS_YIELD_INTERVAL_MS", "0")
        monkeypatch.setenv("LOG_LEVEL", "debug")
        monkeypatch.setenv("LOG_JSON", "1")
        monkeypatch.setenv("LOG_FILE", "logs/audio.log")

        settings = Settings().validate()

        assert settings.window_size == 4096
        assert settings.hop_size == 1024
        assert settings.ticks_per_quarter == 480
        assert settings.yield_interval_ms == 0.0
        assert settings.log_level is LogLevel.DEBUG
        assert settings.log_json is True
        assert settings.log_file == "logs/audio.log"

    @pytest.mark.parametrize("value,expected", [
        ("true", True), ("1", True), ("ON", True), ("false", False), ("0", False), ("", False),
    ])
    def test_adapter_toggle(self, monkeypatch, value, expected):
        monkeypatch.setenv("TEMPO_ADAPTER_ENABLED", value)

        assert Settings().tempo_adapter_enabled is expected


@pytest.mark.unit
class TestSettingsValidation:
    """Tests for Settings.validate()."""

    @pytest.mark.parametrize("field,value", [
        ("window_size", 0),
        ("hop_size", -512),
        ("ticks_per_quarter", 0),
        ("default_bpm", 0.0),
        ("yield_interval_ms", -1.0),
    ])
    def test_rejects(self, field, value):
        from audiofeatures.core.errors import ConfigurationError

        settings = Settings()
        setattr(settings, field, value)

        with pytest.raises(ConfigurationError):
            settings.validate()

    def test_non_numeric_environment(self, monkeypatch):
        monkeypatch.setenv("AUDIO_FEATURES_WINDOW_SIZE", "large")

        with pytest.raises(ValueError):
            Settings()

    def test_unknown_log_level(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "verbose")

        with pytest.raises(ValueError):
            Settings()
