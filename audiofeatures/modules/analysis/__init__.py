"""
Analysis module - turns PCM audio into an AudioFeatureCache.

Structure:
- calculators/: FeatureCalculator implementations and the registry
- pipelines/: analyze() and the background AnalysisScheduler
- cancellation: CancellationToken, yield control, progress aggregation
"""

from .cancellation import CancellationToken, ProgressTracker, YieldController
from .calculators import (
    CalculatorContext,
    CalculatorRegistry,
    FeatureCalculator,
    get_calculator_registry,
)
from .pipelines import AnalysisHandle, AnalysisScheduler, analyze, analyze_profile

__all__ = [
    "CancellationToken",
    "ProgressTracker",
    "YieldController",
    "CalculatorContext",
    "CalculatorRegistry",
    "FeatureCalculator",
    "get_calculator_registry",
    "AnalysisHandle",
    "AnalysisScheduler",
    "analyze",
    "analyze_profile",
]
