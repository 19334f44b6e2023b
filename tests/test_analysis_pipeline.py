"""
Tests for modules/analysis: analyze(), cancellation, progress and the scheduler.
"""

import threading

import numpy as np
import pytest


def _constant_calculator(value=1.0, feature_key="constant"):
    from audiofeatures.modules.analysis import FeatureCalculator

    class ConstantCalculator(FeatureCalculator):
        id = f"test.{feature_key}"
        version = 2
        label = "Constant"

        def calculate(self, context):
            return self.build_track(
                context,
                data=np.full(context.frame_count, value, dtype=np.float32),
                format="float32",
                frame_count=context.frame_count,
                channels=1,
            )

    ConstantCalculator.feature_key = feature_key
    return ConstantCalculator()


def _failing_calculator(exc):
    from audiofeatures.modules.analysis import FeatureCalculator

    class FailingCalculator(FeatureCalculator):
        id = "test.failing"
        feature_key = "failing"

        def calculate(self, context):
            raise exc

    return FailingCalculator()


# =============================================================================
# analyze()
# =============================================================================

@pytest.mark.unit
class TestAnalyze:
    """Tests for analyze()."""

    def test_builds_all_builtin_tracks(self, sine_source):
        """
        ЧТО ПРОВЕРЯЕМ:
            analyze() with default settings on a 1 s mono sine

        ОЖИДАЕМОЕ ПОВЕДЕНИЕ:
            - one track per built-in calculator under the default profile
            - hop ticks quantized from 512 / 22050 s at 120 BPM
            - cache records the parameters and calculator versions
        """
        from audiofeatures.modules.analysis import analyze

        cache = analyze(sine_source, audio_source_id="sine")

        assert set(cache.feature_tracks) == {
            "spectrogram:default",
            "rms:default",
            "waveform:default",
            "pitchWaveform:default",
        }
        assert cache.audio_source_id == "sine"
        assert cache.version == 3
        assert cache.frame_count == 40
        assert cache.hop_ticks == 45
        assert cache.hop_seconds == pytest.approx(512 / 22050)
        assert cache.tempo_projection.hop_ticks == 45
        assert cache.channel_aliases == ("Mono",)
        assert cache.default_analysis_profile_id == "default"
        assert set(cache.analysis_profiles) == {"default"}

        params = cache.analysis_params
        assert params.window_size == 2048
        assert params.hop_size == 512
        assert params.overlap == 4.0
        assert params.sample_rate == 22050
        assert params.calculator_versions["core.spectrogram"] == 3

        for track in cache.feature_tracks.values():
            assert track.hop_ticks >= 1
            assert track.analysis_profile_id == "default"
            assert track.tempo_projection.hop_ticks == track.hop_ticks

    def test_settings_from_environment(self, sine_source, monkeypatch):
        from audiofeatures.core.config import reset_settings
        from audiofeatures.modules.analysis import analyze

        monkeypatch.setenv("AUDIO_FEATURES_WINDOW_SIZE", "1024")
        monkeypatch.setenv("AUDIO_FEATURES_HOP_SIZE", "256")
        reset_settings()

        cache = analyze(sine_source, calculators=["rms"])

        assert cache.analysis_params.window_size == 1024
        assert cache.analysis_params.hop_size == 256
        assert cache.frame_count == (22050 - 1024) // 256 + 1

    def test_source_path_is_default_id(self, sine_source):
        from audiofeatures.core.adapters.loader import ArrayPcmSource
        from audiofeatures.modules.analysis import analyze

        source = ArrayPcmSource(sine_source.samples, 22050, source_path="/music/a.wav")

        assert analyze(source, calculators=["rms"]).audio_source_id == "/music/a.wav"
        assert analyze(sine_source, calculators=["rms"]).audio_source_id == "audio"

    def test_tempo_map_changes_hop_ticks(self, sine_source):
        from audiofeatures.core.timing import TimingContext
        from audiofeatures.modules.analysis import analyze

        timing = TimingContext(global_bpm=120, tempo_map=({"time": 0.0, "bpm": 60},))

        cache = analyze(sine_source, timing, calculators=["rms"])

        # 60 BPM: 960 ticks per second
        assert cache.hop_ticks == round(512 / 22050 * 960)
        assert cache.analysis_params.tempo_map_hash == timing.tempo_map_hash
        assert cache.tempo_projection.tempo_map_hash == timing.tempo_map_hash

    def test_stereo_aliases(self, stereo_source):
        from audiofeatures.modules.analysis import analyze

        cache = analyze(stereo_source, calculators=["rms"])

        assert cache.channel_aliases == ("Left", "Right")

    def test_custom_calculator_instance(self, sine_source):
        from audiofeatures.modules.analysis import analyze

        cache = analyze(sine_source, calculators=[_constant_calculator(0.5)])

        track = cache.feature_tracks["constant:default"]
        assert track.calculator_id == "test.constant"
        np.testing.assert_allclose(track.data, 0.5)
        assert cache.analysis_params.calculator_versions == {"test.constant": 2}

    def test_custom_registry(self, sine_source):
        from audiofeatures.modules.analysis import CalculatorRegistry, analyze

        registry = CalculatorRegistry([_constant_calculator(feature_key="a"), _constant_calculator(feature_key="b")])

        cache = analyze(sine_source, registry=registry)

        assert set(cache.feature_tracks) == {"a:default", "b:default"}

    def test_no_calculators(self, sine_source):
        from audiofeatures.core.errors import ConfigurationError
        from audiofeatures.modules.analysis import CalculatorRegistry, analyze

        with pytest.raises(ConfigurationError):
            analyze(sine_source, registry=CalculatorRegistry())
        with pytest.raises(ConfigurationError):
            analyze(sine_source, calculators=["does-not-exist"])

    def test_invalid_sizes(self, sine_source):
        from audiofeatures.core.errors import ConfigurationError
        from audiofeatures.modules.analysis import analyze

        with pytest.raises(ConfigurationError):
            analyze(sine_source, calculators=["rms"], hop_size=-1)

    def test_unexpected_error_wrapped(self, sine_source):
        """
        ЧТО ПРОВЕРЯЕМ:
            A calculator raising a plain exception

        ОЖИДАЕМОЕ ПОВЕДЕНИЕ:
            - CalculatorError with the calculator id and the original cause
        """
        from audiofeatures.core.errors import CalculatorError
        from audiofeatures.modules.analysis import analyze

        with pytest.raises(CalculatorError) as exc_info:
            analyze(sine_source, calculators=[_failing_calculator(RuntimeError("boom"))])

        assert exc_info.value.data["calculator_id"] == "test.failing"
        assert isinstance(exc_info.value.cause, RuntimeError)

    def test_domain_error_not_wrapped(self, sine_source):
        from audiofeatures.core.errors import CalculatorError, ConfigurationError
        from audiofeatures.modules.analysis import analyze

        error = ConfigurationError("bad calculator setup")
        with pytest.raises(ConfigurationError) as exc_info:
            analyze(sine_source, calculators=[_failing_calculator(error)])

        assert not isinstance(exc_info.value, CalculatorError)


@pytest.mark.unit
class TestProgressAndCancellation:
    """Progress reporting and cooperative cancellation inside analyze()."""

    def test_progress_monotonic(self, sine_source):
        from audiofeatures.modules.analysis import analyze

        events = []
        analyze(sine_source, on_progress=lambda value, label: events.append((value, label)))

        values = [v for v, _ in events]
        assert events[0] == (0.0, "start")
        assert events[-1] == (1.0, "complete")
        assert all(b >= a for a, b in zip(values, values[1:]))
        assert all(0.0 <= v <= 1.0 for v in values)
        assert {"RMS", "Spectrogram", "Waveform", "Pitch Waveform"} <= {label for _, label in events}

    def test_cancelled_before_start(self, sine_source):
        from audiofeatures.core.errors import AnalysisCancelledError
        from audiofeatures.modules.analysis import CancellationToken, analyze

        token = CancellationToken()
        token.cancel("user")
        events = []

        with pytest.raises(AnalysisCancelledError):
            analyze(sine_source, cancel_token=token, on_progress=lambda value, label: events.append(value))

        assert events == []

    def test_cancelled_mid_run(self, sine_source):
        """Cancel from the progress callback: the run stops before completion."""
        from audiofeatures.core.errors import AnalysisCancelledError
        from audiofeatures.modules.analysis import CancellationToken, analyze

        token = CancellationToken()
        events = []

        def on_progress(value, label):
            events.append(value)
            if value > 0:
                token.cancel()

        with pytest.raises(AnalysisCancelledError):
            analyze(sine_source, cancel_token=token, on_progress=on_progress, yield_interval_ms=0)

        assert max(events) < 1.0

    def test_cancellation_is_not_an_application_error(self):
        from audiofeatures.core.errors import AnalysisCancelledError, AudioFeatureError

        assert not issubclass(AnalysisCancelledError, AudioFeatureError)


@pytest.mark.unit
class TestAdhocProfiles:
    """Ad-hoc profile analysis."""

    def test_overrides_create_adhoc_profile(self, sine_source):
        from audiofeatures.core.cache import is_adhoc_profile_id
        from audiofeatures.modules.analysis import analyze

        cache = analyze(sine_source, calculators=["rms"], profile_overrides={"hopSize": 1024})

        (profile_id,) = cache.analysis_profiles
        assert is_adhoc_profile_id(profile_id)
        assert set(cache.feature_tracks) == {f"rms:{profile_id}"}
        assert cache.analysis_params.hop_size == 1024
        assert cache.default_analysis_profile_id == profile_id

    def test_analyze_profile_extends_cache(self, sine_source):
        """
        ЧТО ПРОВЕРЯЕМ:
            analyze_profile() adds adhoc tracks to an existing cache

        ОЖИДАЕМОЕ ПОВЕДЕНИЕ:
            - default tracks shared by reference
            - the original cache is unchanged
        """
        from audiofeatures.modules.analysis import analyze, analyze_profile

        base = analyze(sine_source, calculators=["rms"], audio_source_id="sine")
        extended = analyze_profile(base, sine_source, {"windowSize": 1024, "hopSize": 256}, calculators=["rms"])

        assert set(base.feature_tracks) == {"rms:default"}
        assert len(extended.feature_tracks) == 2
        assert extended.feature_tracks["rms:default"] is base.feature_tracks["rms:default"]
        adhoc_key = next(k for k in extended.feature_tracks if k != "rms:default")
        assert extended.feature_tracks[adhoc_key].frame_count == (22050 - 1024) // 256 + 1
        assert extended.audio_source_id == "sine"
        assert len(extended.analysis_profiles) == 2


# =============================================================================
# Cancellation primitives
# =============================================================================

@pytest.mark.unit
class TestYieldController:

    def test_yields_after_interval(self):
        from audiofeatures.modules.analysis import YieldController

        now = [0.0]
        yields = []
        controller = YieldController(
            interval_ms=10, yield_fn=lambda: yields.append(now[0]), clock=lambda: now[0]
        )

        controller.maybe_yield()
        now[0] = 0.005
        controller.maybe_yield()
        now[0] = 0.011
        controller.maybe_yield()
        now[0] = 0.015
        controller.maybe_yield()

        assert yields == [0.011]
        assert controller.yield_count == 1

    def test_raises_when_cancelled(self):
        from audiofeatures.core.errors import AnalysisCancelledError
        from audiofeatures.modules.analysis import CancellationToken, YieldController

        token = CancellationToken()
        controller = YieldController(token, interval_ms=0, yield_fn=lambda: None)
        controller.maybe_yield()

        token.cancel("stop")
        with pytest.raises(AnalysisCancelledError, match="stop"):
            controller.maybe_yield()

    def test_token_keeps_first_reason(self):
        from audiofeatures.modules.analysis import CancellationToken

        token = CancellationToken()
        token.cancel("first")
        token.cancel("second")

        assert token.cancelled
        assert token.reason == "first"


@pytest.mark.unit
class TestProgressTracker:

    def test_combines_calculators(self):
        from audiofeatures.modules.analysis import ProgressTracker

        values = []
        tracker = ProgressTracker(lambda v, label: values.append(v), total_calculators=2)

        report = tracker.reporter("a")
        report(5, 10)
        report(3, 10)  # regressions are ignored
        tracker.calculator_done()
        tracker.reporter("b")(10, 10)

        assert values == [0.25, 1.0]

    def test_no_callback(self):
        from audiofeatures.modules.analysis import ProgressTracker

        tracker = ProgressTracker(None, 0)
        tracker.reporter("x")(1, 2)

        assert tracker.total == 1


# =============================================================================
# Scheduler
# =============================================================================

@pytest.mark.unit
class TestAnalysisScheduler:

    def test_schedule_analysis(self, sine_source):
        from audiofeatures.modules.analysis import AnalysisScheduler

        with AnalysisScheduler() as scheduler:
            handle = scheduler.schedule_analysis(sine_source, calculators=["rms"], audio_source_id="bg")
            cache = handle.result(timeout=30)

        assert cache.audio_source_id == "bg"
        assert "rms:default" in cache.feature_tracks
        assert handle.done()

    def test_jobs_run_in_order_with_job_context(self):
        from audiofeatures.common.logging.correlation import get_job_id
        from audiofeatures.modules.analysis import AnalysisScheduler

        seen = []
        with AnalysisScheduler() as scheduler:
            handles = [
                scheduler.schedule(lambda token, i=i: seen.append((i, get_job_id())), job_id=f"job-{i}")
                for i in range(3)
            ]
            for handle in handles:
                handle.result(timeout=10)

        assert seen == [(0, "job-0"), (1, "job-1"), (2, "job-2")]

    def test_cancel_queued_job(self):
        """A job cancelled while queued never starts."""
        from audiofeatures.core.errors import AnalysisCancelledError
        from audiofeatures.modules.analysis import AnalysisScheduler

        release = threading.Event()
        ran = []
        with AnalysisScheduler() as scheduler:
            blocker = scheduler.schedule(lambda token: release.wait(10))
            queued = scheduler.schedule(lambda token: ran.append(True))
            assert scheduler.get(queued.id) is queued

            queued.cancel("superseded")
            release.set()

            assert blocker.result(timeout=10) is True
            with pytest.raises(AnalysisCancelledError):
                queued.result(timeout=10)

        assert ran == []
        assert queued.cancelled

    def test_cancel_running_job(self):
        from audiofeatures.core.errors import AnalysisCancelledError
        from audiofeatures.modules.analysis import AnalysisScheduler, YieldController

        started = threading.Event()

        def job(token):
            controller = YieldController(token, interval_ms=0, yield_fn=lambda: None)
            started.set()
            while True:
                controller.maybe_yield()
                threading.Event().wait(0.001)

        with AnalysisScheduler() as scheduler:
            handle = scheduler.schedule(job)
            assert started.wait(10)
            handle.cancel()

            with pytest.raises(AnalysisCancelledError):
                handle.result(timeout=10)

    def test_shutdown_cancels_pending(self):
        from audiofeatures.core.errors import AnalysisCancelledError
        from audiofeatures.modules.analysis import AnalysisScheduler

        release = threading.Event()
        scheduler = AnalysisScheduler()
        scheduler.schedule(lambda token: release.wait(10))
        pending = scheduler.schedule(lambda token: "ran")

        scheduler.cancel_all("closing")
        release.set()
        scheduler.shutdown(wait=True)

        with pytest.raises(AnalysisCancelledError):
            pending.result(timeout=10)
