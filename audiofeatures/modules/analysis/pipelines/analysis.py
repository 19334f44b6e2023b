"""
Audio feature analysis pipeline.

analyze() runs the selected calculators over a complete in-memory PCM
source and returns an immutable AudioFeatureCache. The cache is built only
after every calculator has finished, so a cancelled or failed run never
publishes partial tracks.
"""

import time
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from audiofeatures.common.logging import get_logger
from audiofeatures.common.primitives.signal import compute_frame_count, infer_channel_aliases
from audiofeatures.core.adapters.loader import PcmSource
from audiofeatures.core.cache.identity import (
    DEFAULT_ANALYSIS_PROFILE_ID,
    build_feature_track_key,
    parse_feature_track_key,
    sanitize_analysis_profile_id,
)
from audiofeatures.core.cache.models import (
    AnalysisParams,
    AudioFeatureCache,
    FeatureTrack,
    TempoProjection,
)
from audiofeatures.core.cache.profiles import is_adhoc_profile_id, profile_from_params, resolve_profile
from audiofeatures.core.config.settings import get_settings
from audiofeatures.core.errors import (
    AnalysisCancelledError,
    AudioFeatureError,
    CalculatorError,
    ConfigurationError,
)
from audiofeatures.core.timing.context import TimingContext
from audiofeatures.core.timing.hop_quantization import quantize_hop_ticks
from ..calculators.base import CalculatorContext, FeatureCalculator
from ..calculators.registry import CalculatorRegistry, get_calculator_registry
from ..cancellation import CancellationToken, ProgressCallback, ProgressTracker, YieldController

logger = get_logger(__name__)

CalculatorSelection = Optional[Sequence[Union[str, FeatureCalculator]]]


def _select_calculators(
    selection: CalculatorSelection, registry: CalculatorRegistry
) -> List[FeatureCalculator]:
    if selection and all(isinstance(c, FeatureCalculator) for c in selection):
        return list(selection)
    ids = [c.id if isinstance(c, FeatureCalculator) else c for c in (selection or ())]
    return registry.select(ids)


def _normalize_track(track: FeatureTrack, profile_id: str, hop_ticks: int) -> FeatureTrack:
    """Composite key, profile id and a valid projection on every published track."""
    feature_key, _ = parse_feature_track_key(track.key)
    key = build_feature_track_key(feature_key, profile_id)
    changes: Dict[str, Any] = {}
    if track.key != key:
        changes["key"] = key
    if track.analysis_profile_id != profile_id:
        changes["analysis_profile_id"] = profile_id
    if track.tempo_projection.hop_ticks != track.hop_ticks:
        changes["tempo_projection"] = track.tempo_projection.with_hop_ticks(track.hop_ticks or hop_ticks)
    return track.replace(**changes) if changes else track


def analyze(
    audio_source: PcmSource,
    timing: Optional[TimingContext] = None,
    calculators: CalculatorSelection = None,
    *,
    audio_source_id: Optional[str] = None,
    window_size: Optional[int] = None,
    hop_size: Optional[int] = None,
    analysis_profile_id: str = DEFAULT_ANALYSIS_PROFILE_ID,
    profile_overrides: Optional[Mapping[str, Any]] = None,
    on_progress: Optional[ProgressCallback] = None,
    cancel_token: Optional[CancellationToken] = None,
    registry: Optional[CalculatorRegistry] = None,
    yield_interval_ms: Optional[float] = None,
) -> AudioFeatureCache:
    """
    Analyze a PCM source into an AudioFeatureCache.

    Args:
        audio_source: Complete multi-channel PCM buffer
        timing: Timeline timing (default: 120 bpm, 960 ticks per quarter)
        calculators: Calculator ids/feature keys, or calculator instances (None = all registered)
        audio_source_id: Id stored on the cache (default: the source path, else 'audio')
        window_size: Analysis window in samples (default: profile, then settings)
        hop_size: Analysis hop in samples (default: profile, then settings)
        analysis_profile_id: Profile the tracks belong to
        profile_overrides: Ad-hoc parameter overrides (tracks go to an adhoc-<hash> profile)
        on_progress: Callback (value 0..1, label)
        cancel_token: Token checked between frames
        registry: Calculator registry (default: shared registry with built-ins)
        yield_interval_ms: Cooperative yield interval (default: settings)

    Returns:
        Immutable AudioFeatureCache

    Raises:
        ConfigurationError: If no calculators are selected or sizes are invalid
        AnalysisCancelledError: If the token is cancelled before completion
        CalculatorError: If a calculator fails unexpectedly
    """
    settings = get_settings()
    timing = timing or TimingContext(
        global_bpm=settings.default_bpm, ticks_per_quarter=settings.ticks_per_quarter
    )
    registry = registry or get_calculator_registry()
    selected = _select_calculators(calculators, registry)
    if not selected:
        raise ConfigurationError(
            "No audio feature calculators registered",
            data={"requested": [getattr(c, "id", c) for c in (calculators or ())]},
        )

    requested_profile_id = sanitize_analysis_profile_id(analysis_profile_id) or DEFAULT_ANALYSIS_PROFILE_ID
    profile = resolve_profile(requested_profile_id, profile_overrides)
    has_overrides = is_adhoc_profile_id(profile.id)
    profile_id = profile.id if has_overrides else requested_profile_id
    window_size = int(window_size or (profile.window_size if has_overrides else settings.window_size))
    hop_size = int(hop_size or (profile.hop_size if has_overrides else settings.hop_size))
    if window_size <= 0 or hop_size <= 0:
        raise ConfigurationError(
            "Analysis window and hop must be positive",
            data={"window_size": window_size, "hop_size": hop_size},
        )

    sample_rate = audio_source.sample_rate
    if not sample_rate or sample_rate <= 0:
        raise ConfigurationError("Audio source has no sample rate", data={"sample_rate": sample_rate})

    token = cancel_token or CancellationToken()
    interval = settings.yield_interval_ms if yield_interval_ms is None else yield_interval_ms
    source_id = audio_source_id or getattr(audio_source, "source_path", None) or "audio"

    frame_count = compute_frame_count(audio_source.length, window_size, hop_size)
    hop_seconds = hop_size / sample_rate
    mapper = timing.mapper()
    tempo_map_hash = timing.tempo_map_hash
    hop_ticks = quantize_hop_ticks(hop_seconds, mapper)

    params = AnalysisParams(
        window_size=window_size,
        hop_size=hop_size,
        overlap=window_size / hop_size if window_size > hop_size else 1,
        sample_rate=sample_rate,
        tempo_map_hash=tempo_map_hash,
        calculator_versions={c.id: c.version for c in selected},
        fft_size=profile.fft_size,
        min_decibels=profile.min_decibels,
        max_decibels=profile.max_decibels,
        window=profile.window,
    )
    projection = TempoProjection(hop_ticks=hop_ticks, start_tick=0.0, tempo_map_hash=tempo_map_hash)

    logger.info(f"[analyze] Starting analysis of {source_id}", data={
        "audio_source_id": source_id,
        "calculators": [c.id for c in selected],
        "frame_count": frame_count,
        "window_size": window_size,
        "hop_size": hop_size,
        "hop_ticks": hop_ticks,
        "profile": profile_id,
    })

    progress = ProgressTracker(on_progress, len(selected))
    tracks: Dict[str, FeatureTrack] = {}
    job_start = time.time()
    try:
        token.raise_if_cancelled()
        progress.emit(0.0, "start")
        mono = audio_source.mono()

        for i, calculator in enumerate(selected):
            token.raise_if_cancelled()
            logger.debug(f"[analyze] Calculator {i + 1}/{len(selected)}: {calculator.id}")
            context = CalculatorContext(
                source=audio_source,
                mono=mono,
                hop_ticks=hop_ticks,
                hop_seconds=hop_seconds,
                frame_count=frame_count,
                analysis_params=params,
                tempo_projection=projection,
                tempo_mapper=mapper,
                analysis_profile_id=profile_id,
                yielder=YieldController(token, interval_ms=interval),
                progress_callback=progress.reporter(calculator.name),
            )

            calc_start = time.time()
            try:
                result = calculator.calculate(context)
            except (AnalysisCancelledError, AudioFeatureError):
                raise
            except Exception as e:
                raise CalculatorError(
                    f"Calculator {calculator.id} failed",
                    data={"calculator_id": calculator.id},
                    cause=e,
                ) from e
            elapsed = time.time() - calc_start

            produced = result if isinstance(result, list) else [result]
            for track in produced:
                normalized = _normalize_track(track, profile_id, hop_ticks)
                tracks[normalized.key] = normalized

            progress.calculator_done()
            progress.emit(progress.completed / progress.total, calculator.name)
            logger.info(f"[analyze] {calculator.id} done in {elapsed:.2f}s", data={
                "calculator_id": calculator.id,
                "duration_sec": round(elapsed, 3),
                "tracks": [t.key for t in produced],
            })

        token.raise_if_cancelled()
    except AnalysisCancelledError:
        logger.info(f"[analyze] Analysis of {source_id} cancelled", data={
            "audio_source_id": source_id,
            "completed_calculators": progress.completed,
        })
        raise

    progress.emit(1.0, "complete")
    cache = AudioFeatureCache(
        audio_source_id=source_id,
        hop_seconds=hop_seconds,
        hop_ticks=hop_ticks,
        start_time_seconds=0.0,
        frame_count=frame_count,
        analysis_params=params,
        tempo_projection=projection,
        feature_tracks=tracks,
        analysis_profiles={profile_id: profile_from_params(params, profile_id)},
        default_analysis_profile_id=profile_id,
        channel_aliases=tuple(infer_channel_aliases(audio_source.channel_count)),
    )
    logger.info(f"[analyze] Analysis complete in {time.time() - job_start:.1f}s", data={
        "audio_source_id": source_id,
        "tracks": sorted(tracks),
    })
    return cache


def analyze_profile(
    cache: AudioFeatureCache,
    audio_source: PcmSource,
    profile_overrides: Mapping[str, Any],
    timing: Optional[TimingContext] = None,
    calculators: CalculatorSelection = None,
    **kwargs,
) -> AudioFeatureCache:
    """
    Add ad-hoc profile tracks to an existing cache.

    The returned cache shares every existing track with ``cache`` and adds
    the tracks computed under the override profile. ``cache`` itself is
    unchanged.
    """
    extra = analyze(
        audio_source,
        timing,
        calculators,
        audio_source_id=cache.audio_source_id,
        profile_overrides=profile_overrides,
        **kwargs,
    )
    return cache.with_tracks(extra.feature_tracks, extra.analysis_profiles)
