#!/usr/bin/env python3
"""
Audio Feature Cache - command line entry point.

    audio-features analyze song.wav --bpm 128 --output song.features.json
    audio-features inspect song.features.json
"""

import argparse
import json
import sys
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv
from tqdm import tqdm

from audiofeatures.common.logging import get_logger, setup_logging
from audiofeatures.core.adapters.loader import AudioLoader
from audiofeatures.core.cache.serialization import dumps_cache, loads_cache
from audiofeatures.core.config import get_settings
from audiofeatures.core.errors import AnalysisCancelledError, AudioFeatureError
from audiofeatures.core.timing.context import TimingContext
from audiofeatures.modules.analysis import analyze

logger = get_logger(__name__)


def _load_tempo_map(value: Optional[str]):
    """Tempo map from a JSON string or a path to a JSON file."""
    if not value:
        return None
    path = Path(value)
    text = path.read_text(encoding="utf-8") if path.is_file() else value
    entries = json.loads(text)
    if not isinstance(entries, list):
        raise ValueError("Tempo map must be a JSON list of entries")
    return tuple(entries)


def cmd_analyze(args: argparse.Namespace) -> int:
    settings = get_settings()
    timing = TimingContext(
        global_bpm=args.bpm or settings.default_bpm,
        ticks_per_quarter=args.ticks_per_quarter or settings.ticks_per_quarter,
        tempo_map=_load_tempo_map(args.tempo_map),
    )

    source = AudioLoader(sample_rate=args.sample_rate).load(args.file)
    output = Path(args.output) if args.output else Path(args.file).with_suffix(".features.json")

    pbar = tqdm(total=100, desc=Path(args.file).name, unit="%", disable=args.quiet)

    def on_progress(value: float, label: Optional[str]):
        pbar.n = int(round(value * 100))
        if label:
            pbar.set_postfix_str(label, refresh=False)
        pbar.refresh()

    try:
        cache = analyze(
            source,
            timing,
            args.calculators or None,
            audio_source_id=args.source_id or Path(args.file).stem,
            window_size=args.window_size,
            hop_size=args.hop_size,
            on_progress=on_progress,
        )
    finally:
        pbar.close()

    output.write_text(dumps_cache(cache, indent=args.indent), encoding="utf-8")
    logger.info(f"Cache written to {output}", data={
        "output": str(output),
        "tracks": sorted(cache.feature_tracks),
    })
    print(f"{output}: {len(cache.feature_tracks)} tracks, {cache.frame_count} frames")
    return 0


def cmd_inspect(args: argparse.Namespace) -> int:
    cache = loads_cache(Path(args.cache).read_text(encoding="utf-8"))
    print(f"Source:   {cache.audio_source_id}")
    print(f"Version:  {cache.version}")
    print(f"Frames:   {cache.frame_count}  (hop {cache.hop_seconds * 1000:.2f} ms / {cache.hop_ticks} ticks)")
    print(f"Profiles: {', '.join(sorted(cache.analysis_profiles)) or '-'}")
    print()
    print(f"{'Track':<28} {'Format':<12} {'Frames':>8} {'Ch':>5} {'Hop':>6}")
    print("-" * 63)
    for key in sorted(cache.feature_tracks):
        track = cache.feature_tracks[key]
        print(f"{key:<28} {track.format.value:<12} {track.frame_count:>8} "
              f"{track.channels:>5} {track.hop_ticks:>6}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="audio-features",
        description="Analyze audio into a tempo-aligned feature cache",
    )
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL")
    sub = parser.add_subparsers(dest="command", required=True)

    p_analyze = sub.add_parser("analyze", help="Analyze an audio file")
    p_analyze.add_argument("file", help="Path to audio file")
    p_analyze.add_argument("--bpm", type=float, default=None, help="Global tempo (default: settings)")
    p_analyze.add_argument("--ticks-per-quarter", type=int, default=None,
                           help="Timeline resolution (default: settings)")
    p_analyze.add_argument("--tempo-map", default=None,
                           help="Tempo map as a JSON list, or a path to a JSON file")
    p_analyze.add_argument("--window-size", type=int, default=None, help="Analysis window in samples")
    p_analyze.add_argument("--hop-size", type=int, default=None, help="Analysis hop in samples")
    p_analyze.add_argument("--sample-rate", type=int, default=None,
                           help="Resample to this rate (default: native)")
    p_analyze.add_argument("--calculators", nargs="+", default=None,
                           help="Calculator ids or feature keys (default: all)")
    p_analyze.add_argument("--source-id", default=None, help="Audio source id (default: file stem)")
    p_analyze.add_argument("--output", "-o", default=None, help="Output cache JSON")
    p_analyze.add_argument("--indent", type=int, default=None, help="JSON indent")
    p_analyze.add_argument("--quiet", "-q", action="store_true", help="No progress bar")
    p_analyze.set_defaults(func=cmd_analyze)

    p_inspect = sub.add_parser("inspect", help="Summarize a cache file")
    p_inspect.add_argument("cache", help="Path to cache JSON")
    p_inspect.set_defaults(func=cmd_inspect)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    load_dotenv()
    args = build_parser().parse_args(argv)
    try:
        settings = get_settings()
    except (AudioFeatureError, ValueError) as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return 2

    setup_logging(
        level=args.log_level or (settings.log_level.value if settings.log_level else None),
        json_format=settings.log_json,
        log_file=settings.log_file,
        component="cli",
    )

    try:
        return args.func(args)
    except AnalysisCancelledError:
        print("Analysis cancelled", file=sys.stderr)
        return 130
    except AudioFeatureError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1
    except (OSError, ValueError) as e:
        logger.error(f"{type(e).__name__}: {e}")
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
