"""
Pytest configuration for audio-feature-cache tests.

Adds the project root to sys.path so that 'audiofeatures' and 'main'
import without installation. Defines markers and shared fixtures.
"""
import sys
import numpy as np
import pytest
from pathlib import Path
from typing import Dict, Optional

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))


# =============================================================================
# Pytest Markers
# =============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "invariant: Behavioural invariants of the cache and adapter")
    config.addinivalue_line("markers", "slow: Slow tests (long synthetic audio)")


# =============================================================================
# Global state reset
# =============================================================================

@pytest.fixture(autouse=True)
def _reset_singletons(monkeypatch):
    """Every test sees fresh settings, registry and shared adapter."""
    from audiofeatures.core.config import reset_settings
    from audiofeatures.modules.analysis.calculators import reset_calculator_registry
    from audiofeatures.modules.sampling import reset_adapter

    for name in (
        "AUDIO_FEATURES_WINDOW_SIZE",
        "AUDIO_FEATURES_HOP_SIZE",
        "AUDIO_FEATURES_TICKS_PER_QUARTER",
        "AUDIO_FEATURES_DEFAULT_BPM",
        "ANALYSIS_YIELD_INTERVAL_MS",
        "TEMPO_ADAPTER_ENABLED",
        "LOG_LEVEL",
        "LOG_JSON",
        "LOG_FILE",
    ):
        monkeypatch.delenv(name, raising=False)

    reset_settings()
    reset_calculator_registry()
    reset_adapter()
    yield
    reset_settings()
    reset_calculator_registry()
    reset_adapter()


# =============================================================================
# Shared Fixtures
# =============================================================================

@pytest.fixture
def project_root() -> Path:
    """Return project root path."""
    return PROJECT_ROOT


@pytest.fixture
def sine_source():
    """Mono 440 Hz sine, 1 second at 22050 Hz, amplitude 0.5."""
    from audiofeatures.core.adapters.loader import ArrayPcmSource

    sr = 22050
    t = np.arange(sr, dtype=np.float64) / sr
    y = (0.5 * np.sin(2 * np.pi * 440.0 * t)).astype(np.float32)
    return ArrayPcmSource(samples=y, sample_rate=sr)


@pytest.fixture
def stereo_source():
    """Stereo source: left is a 220 Hz sine, right is silence (0.5 seconds)."""
    from audiofeatures.core.adapters.loader import ArrayPcmSource

    sr = 22050
    n = sr // 2
    t = np.arange(n, dtype=np.float64) / sr
    left = (0.8 * np.sin(2 * np.pi * 220.0 * t)).astype(np.float32)
    right = np.zeros(n, dtype=np.float32)
    return ArrayPcmSource(samples=np.vstack([left, right]), sample_rate=sr)


@pytest.fixture
def tempo_mapper():
    """120 BPM, 960 ticks per quarter: 1920 ticks per second."""
    from audiofeatures.core.timing import TempoMapper

    return TempoMapper(ticks_per_quarter=960, global_bpm=120)


# =============================================================================
# Cache / timeline builders
# =============================================================================

def make_track(
    key: str = "rms:default",
    values=None,
    frame_count: int = 4,
    channels: int = 1,
    hop_ticks: int = 240,
    hop_seconds: float = 0.125,
    format: str = "float32",
    metadata: Optional[dict] = None,
    channel_aliases=None,
    start_tick: float = 0.0,
):
    """Build a FeatureTrack with sensible defaults (0.125 s hop = 240 ticks at 120 BPM)."""
    from audiofeatures.core.cache.models import FeatureTrack, PeakPayload, TempoProjection

    if values is None:
        values = np.arange(frame_count * channels, dtype=np.float32)
    if format == "peak-minmax" and not isinstance(values, PeakPayload):
        mins, maxs = values
        values = PeakPayload(min=mins, max=maxs)
    return FeatureTrack(
        key=key,
        calculator_id="test." + key.split(":")[0],
        version=1,
        frame_count=frame_count,
        channels=channels,
        hop_ticks=hop_ticks,
        hop_seconds=hop_seconds,
        format=format,
        data=values,
        tempo_projection=TempoProjection(hop_ticks=hop_ticks, start_tick=start_tick),
        metadata=metadata or {},
        analysis_profile_id=key.split(":")[1] if ":" in key else "default",
        channel_aliases=channel_aliases,
    )


def make_cache(tracks, source_id: str = "source-1", hop_seconds: float = 0.125, hop_ticks: int = 240,
               channel_aliases=None):
    """Wrap tracks (list or dict) in an AudioFeatureCache."""
    from audiofeatures.core.cache.models import (
        AnalysisParams,
        AudioFeatureCache,
        TempoProjection,
    )
    from audiofeatures.core.cache.profiles import BUILTIN_PROFILES

    if not isinstance(tracks, dict):
        tracks = {t.key: t for t in tracks}
    frame_count = max((t.frame_count for t in tracks.values()), default=0)
    return AudioFeatureCache(
        audio_source_id=source_id,
        hop_seconds=hop_seconds,
        hop_ticks=hop_ticks,
        frame_count=frame_count,
        analysis_params=AnalysisParams(window_size=2048, hop_size=512, overlap=4.0, sample_rate=4096),
        tempo_projection=TempoProjection(hop_ticks=hop_ticks),
        feature_tracks=tracks,
        analysis_profiles={"default": BUILTIN_PROFILES["default"]},
        channel_aliases=channel_aliases,
    )


def make_timeline(
    cache=None,
    track_id: str = "track-1",
    offset_ticks: float = 0.0,
    region_start_tick: float = 0.0,
    region_end_tick: Optional[float] = None,
    adapter_enabled: Optional[bool] = True,
    tempo_map=None,
    bpm: float = 120.0,
    durations: Optional[Dict[str, float]] = None,
):
    """TimelineState with one audio track bound to ``cache``."""
    from audiofeatures.core.timing import TimingContext
    from audiofeatures.modules.sampling import TimelineState, TimelineTrack

    caches = {}
    source_id = "source-1"
    if cache is not None:
        source_id = cache.audio_source_id
        caches[source_id] = cache
    return TimelineState(
        tracks={
            track_id: TimelineTrack(
                audio_source_id=source_id,
                offset_ticks=offset_ticks,
                region_start_tick=region_start_tick,
                region_end_tick=region_end_tick,
            )
        },
        audio_feature_caches=caches,
        timing=TimingContext(global_bpm=bpm, ticks_per_quarter=960,
                             tempo_map=tuple(tempo_map) if tempo_map else None),
        tempo_adapter_enabled=adapter_enabled,
        audio_durations_ticks=durations or {},
    )


@pytest.fixture
def track_factory():
    return make_track


@pytest.fixture
def cache_factory():
    return make_cache


@pytest.fixture
def timeline_factory():
    return make_timeline
