"""
Cooperative cancellation, yielding and progress for analysis jobs.

Calculators run on one worker thread. Per-frame loops call
YieldController.maybe_yield(), which polls the cancellation token and, once
the yield interval has elapsed, hands the GIL to other threads. A frame is
always finished before a yield point.
"""

import threading
import time
from typing import Callable, Optional

from audiofeatures.core.errors import AnalysisCancelledError

ProgressCallback = Callable[[float, Optional[str]], None]

DEFAULT_YIELD_INTERVAL_MS = 12.0


class CancellationToken:
    """Cancellation flag shared by reference between a job and its owner."""

    def __init__(self):
        self._event = threading.Event()
        self.reason: Optional[str] = None

    def cancel(self, reason: Optional[str] = None):
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self):
        if self._event.is_set():
            raise AnalysisCancelledError(self.reason or "Analysis cancelled")

    def __repr__(self) -> str:
        return f"CancellationToken(cancelled={self.cancelled})"


class YieldController:
    """
    Wall-clock throttled yield point.

    Args:
        token: Token polled at every call
        interval_ms: Minimum time between actual yields
        yield_fn: Suspension primitive (default: time.sleep(0))
        clock: Monotonic clock in seconds
    """

    def __init__(
        self,
        token: Optional[CancellationToken] = None,
        interval_ms: float = DEFAULT_YIELD_INTERVAL_MS,
        yield_fn: Optional[Callable[[], None]] = None,
        clock: Callable[[], float] = time.perf_counter,
    ):
        self.token = token
        self.interval_s = max(0.0, interval_ms) / 1000.0
        self.yield_fn = yield_fn or (lambda: time.sleep(0))
        self.clock = clock
        self.yield_count = 0
        self._last_yield = clock()

    def check(self):
        """Poll cancellation without yielding."""
        if self.token is not None:
            self.token.raise_if_cancelled()

    def maybe_yield(self):
        """
        Raise if cancelled; yield if the interval has elapsed.

        Raises:
            AnalysisCancelledError: If the token is cancelled
        """
        self.check()
        now = self.clock()
        if now - self._last_yield < self.interval_s:
            return
        self.yield_fn()
        self.yield_count += 1
        self._last_yield = self.clock()
        self.check()


class ProgressTracker:
    """
    Combines per-calculator progress into one monotonic 0..1 value.

    Each calculator reports (processed, total); the job-level value is
    (completed_calculators + ratio) / total_calculators.
    """

    def __init__(self, callback: Optional[ProgressCallback], total_calculators: int):
        self.callback = callback
        self.total = max(1, total_calculators)
        self.completed = 0
        self._last_value = 0.0

    def emit(self, value: float, label: Optional[str] = None):
        if self.callback is None:
            return
        value = max(self._last_value, min(1.0, value))
        self._last_value = value
        self.callback(value, label)

    def reporter(self, label: Optional[str]) -> Callable[[int, int], None]:
        """Progress callback for the calculator about to run."""
        last_ratio = 0.0

        def report(processed: int, total: int):
            nonlocal last_ratio
            if total <= 0:
                return
            ratio = max(0.0, min(1.0, min(processed, total) / total))
            if ratio < last_ratio:
                return
            last_ratio = ratio
            self.emit((self.completed + ratio) / self.total, label)

        return report

    def calculator_done(self):
        self.completed += 1
