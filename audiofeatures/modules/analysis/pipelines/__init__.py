"""
Analysis pipelines.

analyze() runs calculators over a PCM source synchronously;
AnalysisScheduler runs it on a background worker with cancellation.
"""

from .analysis import analyze, analyze_profile
from .scheduler import AnalysisHandle, AnalysisScheduler

__all__ = [
    "analyze",
    "analyze_profile",
    "AnalysisHandle",
    "AnalysisScheduler",
]
