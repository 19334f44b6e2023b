"""
Sampling module - tempo-aligned reads from audio feature caches.

Usage:
    from audiofeatures.modules.sampling import FrameRequest, sample_frame

    result = sample_frame(timeline, FrameRequest("track-1", "rms", tick=1920))
    if result.sample is not None:
        level = result.sample.values[0]
"""

from .adapter import (
    DEFAULT_PERIODIC_WIDTH_CAP,
    FrameShapeCache,
    TempoAlignedAdapter,
    get_adapter,
    periodic_width,
    reset_adapter,
    sample_frame,
    sample_range,
)
from .channels import WELL_KNOWN_ALIASES, resolve_channel
from .models import (
    AdapterDiagnostics,
    FallbackReason,
    FrameOptions,
    FrameRequest,
    FrameResult,
    FrameSample,
    Interpolation,
    RangeOptions,
    RangeRequest,
    RangeResult,
    RangeSample,
)
from .timeline import TimelineState, TimelineTrack

__all__ = [
    "DEFAULT_PERIODIC_WIDTH_CAP",
    "FrameShapeCache",
    "TempoAlignedAdapter",
    "get_adapter",
    "periodic_width",
    "reset_adapter",
    "sample_frame",
    "sample_range",
    "WELL_KNOWN_ALIASES",
    "resolve_channel",
    "AdapterDiagnostics",
    "FallbackReason",
    "FrameOptions",
    "FrameRequest",
    "FrameResult",
    "FrameSample",
    "Interpolation",
    "RangeOptions",
    "RangeRequest",
    "RangeResult",
    "RangeSample",
    "TimelineState",
    "TimelineTrack",
]
