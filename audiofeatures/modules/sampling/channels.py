"""Channel selection for feature tracks."""

import math
from numbers import Real
from typing import Optional, Sequence, Union

from audiofeatures.core.cache.models import FeatureTrack
from audiofeatures.core.errors import ChannelResolutionError

ChannelSelector = Union[int, str, None]

WELL_KNOWN_ALIASES = {
    "mono": 0,
    "mid": 0,
    "middle": 0,
    "center": 0,
    "centre": 0,
    "l": 0,
    "left": 0,
    "r": 1,
    "right": 1,
    "side": 1,
    "stereo": 0,
    "bass": 0,
    "low": 0,
    "high": 1,
}


def _plural(count: int) -> str:
    return "" if count == 1 else "s"


def _check_range(index: int, channel_count: Optional[int], requested) -> int:
    if channel_count is None or channel_count <= 0:
        return max(0, index)
    if index < 0 or index >= channel_count:
        raise ChannelResolutionError(
            f"Channel index {index} is out of range for track with "
            f"{channel_count} channel{_plural(channel_count)}",
            data={"channel": requested, "index": index, "channel_count": channel_count},
        )
    return index


def _alias_index(name: str, aliases: Optional[Sequence[Optional[str]]]) -> Optional[int]:
    for index, alias in enumerate(aliases or ()):
        if isinstance(alias, str) and alias.strip().lower() == name:
            return index
    return None


def resolve_channel(
    channel: ChannelSelector,
    track: Optional[FeatureTrack] = None,
    cache_aliases: Optional[Sequence[str]] = None,
) -> int:
    """
    Resolve a channel selector to an index on ``track``.

    Lookup order for strings: numeric string, track aliases, cache aliases,
    then well-known aliases (left/right/mono/...). Matching is
    case-insensitive. None and blank strings select channel 0.

    Args:
        channel: Index, numeric string or alias
        track: Track the index must be valid for
        cache_aliases: Source-level aliases of the owning cache

    Returns:
        Channel index

    Raises:
        ChannelResolutionError: If the alias is unknown or the index is out of range
    """
    channel_count = track.channels if track is not None else None
    track_aliases = track.channel_aliases if track is not None else None

    if channel is None:
        return 0
    if isinstance(channel, Real) and not isinstance(channel, bool):
        if not math.isfinite(channel):
            raise ChannelResolutionError(
                f"Unsupported channel value: {channel}", data={"channel": channel}
            )
        return _check_range(int(channel), channel_count, channel)
    if not isinstance(channel, str):
        raise ChannelResolutionError(
            f"Unsupported channel value: {channel!r}", data={"channel": repr(channel)}
        )

    trimmed = channel.strip()
    if not trimmed:
        return 0
    if trimmed.lstrip("-").isdigit():
        return _check_range(int(trimmed), channel_count, channel)

    name = trimmed.lower()
    for aliases in (track_aliases, cache_aliases):
        index = _alias_index(name, aliases)
        if index is not None:
            return _check_range(index, channel_count, channel)

    if name in WELL_KNOWN_ALIASES:
        index = WELL_KNOWN_ALIASES[name]
        if channel_count is not None and channel_count <= index:
            raise ChannelResolutionError(
                f'Alias "{channel}" resolves to channel {index}, but the track only '
                f"exposes {channel_count} channel{_plural(channel_count)}",
                data={"channel": channel, "index": index, "channel_count": channel_count},
            )
        return index

    available = [a for a in list(track_aliases or ()) + list(cache_aliases or ()) if a]
    raise ChannelResolutionError(
        f'Unknown channel alias "{channel}". Available aliases: {", ".join(available) or "none"}',
        data={"channel": channel, "available": available},
    )
