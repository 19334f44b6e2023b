"""Adapters - PCM sources and audio file loading."""

from .loader import PcmSource, ArrayPcmSource, AudioLoader

__all__ = ['PcmSource', 'ArrayPcmSource', 'AudioLoader']
