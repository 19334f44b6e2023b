"""Explicit calculator registry."""

import threading
from typing import Dict, Iterable, List, Optional

from audiofeatures.common.logging import get_logger
from audiofeatures.core.errors import ConfigurationError
from .base import FeatureCalculator

logger = get_logger(__name__)


class CalculatorRegistry:
    """
    Ordered table of feature calculators keyed by id.

    Registration order is execution order.
    """

    def __init__(self, calculators: Optional[Iterable[FeatureCalculator]] = None):
        self._calculators: Dict[str, FeatureCalculator] = {}
        self._lock = threading.Lock()
        for calc in calculators or ():
            self.register(calc)

    def register(self, calculator: FeatureCalculator, replace: bool = False) -> FeatureCalculator:
        """
        Add a calculator.

        Raises:
            ConfigurationError: If the id is blank, or already taken and replace is False
        """
        if not calculator.id or not calculator.feature_key:
            raise ConfigurationError(
                "Calculator needs an id and a feature_key",
                data={"calculator": repr(calculator)},
            )
        with self._lock:
            if calculator.id in self._calculators and not replace:
                raise ConfigurationError(
                    f"Calculator already registered: {calculator.id}",
                    data={"calculator_id": calculator.id},
                )
            self._calculators[calculator.id] = calculator
        return calculator

    def unregister(self, calculator_id: str) -> Optional[FeatureCalculator]:
        with self._lock:
            return self._calculators.pop(calculator_id, None)

    def get(self, calculator_id: str) -> Optional[FeatureCalculator]:
        return self._calculators.get(calculator_id)

    def list(self) -> List[FeatureCalculator]:
        return list(self._calculators.values())

    def reset(self):
        with self._lock:
            self._calculators.clear()

    def select(self, ids: Optional[Iterable[str]] = None) -> List[FeatureCalculator]:
        """
        Calculators to run, in registration order.

        Args:
            ids: Calculator ids or feature keys; None or empty selects all
        """
        calculators = self.list()
        wanted = [i for i in (ids or ()) if i]
        if not wanted:
            return calculators
        selected = [c for c in calculators if c.id in wanted or c.feature_key in wanted]
        known = {c.id for c in calculators} | {c.feature_key for c in calculators}
        unknown = [i for i in wanted if i not in known]
        if unknown:
            logger.warning("Ignoring unknown calculators", data={"unknown": unknown})
        return selected

    def __len__(self) -> int:
        return len(self._calculators)

    def __contains__(self, calculator_id: str) -> bool:
        return calculator_id in self._calculators


def builtin_calculators() -> List[FeatureCalculator]:
    """Fresh instances of the built-in calculators, in execution order."""
    from .spectrogram import SpectrogramCalculator
    from .rms import RmsCalculator
    from .waveform import WaveformCalculator
    from .pitch_waveform import PitchWaveformCalculator

    return [
        SpectrogramCalculator(),
        RmsCalculator(),
        WaveformCalculator(),
        PitchWaveformCalculator(),
    ]


_registry: Optional[CalculatorRegistry] = None


def get_calculator_registry() -> CalculatorRegistry:
    """Shared registry, seeded with the built-in calculators."""
    global _registry
    if _registry is None:
        _registry = CalculatorRegistry(builtin_calculators())
    return _registry


def reset_calculator_registry():
    """Drop the shared registry (next access re-seeds the built-ins)."""
    global _registry
    _registry = None
