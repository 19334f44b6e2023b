"""
Calculators - feature calculators and their registry.

Built-ins (execution order): spectrogram, rms, waveform, pitchWaveform.
"""

from .base import CalculatorContext, FeatureCalculator
from .rms import RmsCalculator
from .spectrogram import SpectrogramCalculator
from .waveform import WaveformCalculator
from .pitch_waveform import PitchWaveformCalculator
from .registry import (
    CalculatorRegistry,
    builtin_calculators,
    get_calculator_registry,
    reset_calculator_registry,
)

__all__ = [
    'CalculatorContext',
    'FeatureCalculator',
    'RmsCalculator',
    'SpectrogramCalculator',
    'WaveformCalculator',
    'PitchWaveformCalculator',
    'CalculatorRegistry',
    'builtin_calculators',
    'get_calculator_registry',
    'reset_calculator_registry',
]
