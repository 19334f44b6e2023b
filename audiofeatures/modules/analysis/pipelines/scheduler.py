"""
Background scheduling of analysis jobs.

Jobs run one at a time on a single worker thread. Each job gets its own
CancellationToken; cancelling a handle only sets the token, and the job
stops at its next yield point with AnalysisCancelledError.
"""

import uuid
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

from audiofeatures.common.logging import get_logger, job_context
from audiofeatures.core.adapters.loader import PcmSource
from audiofeatures.core.cache.models import AudioFeatureCache
from audiofeatures.core.timing.context import TimingContext
from ..cancellation import CancellationToken
from .analysis import analyze

logger = get_logger(__name__)

JobFunction = Callable[[CancellationToken], Any]


@dataclass
class AnalysisHandle:
    """
    Handle to a scheduled job.

    Attributes:
        id: Job id (also the job_id in log records)
        future: Completes with the job result, or raises its error
        token: Token passed to the job
    """
    id: str
    future: Future
    token: CancellationToken = field(default_factory=CancellationToken)

    def cancel(self, reason: Optional[str] = None):
        """Request cancellation; the job stops at its next yield point."""
        self.token.cancel(reason)

    @property
    def cancelled(self) -> bool:
        return self.token.cancelled

    def done(self) -> bool:
        return self.future.done()

    def result(self, timeout: Optional[float] = None) -> Any:
        """
        Wait for the job.

        Raises:
            AnalysisCancelledError: If the job was cancelled
        """
        return self.future.result(timeout)


class AnalysisScheduler:
    """
    Single-worker job queue.

    Example:
        with AnalysisScheduler() as scheduler:
            handle = scheduler.schedule_analysis(source, timing)
            cache = handle.result()
    """

    def __init__(self, thread_name_prefix: str = "audio-analysis"):
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix=thread_name_prefix)
        self._handles: Dict[str, AnalysisHandle] = {}

    def schedule(self, job: JobFunction, job_id: Optional[str] = None) -> AnalysisHandle:
        """
        Queue job(token) on the worker thread.

        Args:
            job: Callable receiving the job's CancellationToken
            job_id: Optional id (default: random uuid hex)
        """
        job_id = job_id or uuid.uuid4().hex[:12]
        token = CancellationToken()

        def run():
            with job_context(job_id):
                # Cancelled while queued
                token.raise_if_cancelled()
                logger.debug(f"[scheduler] Job {job_id} started")
                return job(token)

        future = self._executor.submit(run)
        handle = AnalysisHandle(id=job_id, future=future, token=token)
        self._handles[job_id] = handle
        future.add_done_callback(lambda _f: self._handles.pop(job_id, None))
        logger.debug(f"[scheduler] Job {job_id} queued", data={"pending": len(self._handles)})
        return handle

    def schedule_analysis(
        self,
        audio_source: PcmSource,
        timing: Optional[TimingContext] = None,
        calculators=None,
        job_id: Optional[str] = None,
        **kwargs,
    ) -> AnalysisHandle:
        """Queue analyze(); the handle's future resolves to an AudioFeatureCache."""

        def job(token: CancellationToken) -> AudioFeatureCache:
            return analyze(audio_source, timing, calculators, cancel_token=token, **kwargs)

        return self.schedule(job, job_id=job_id)

    def get(self, job_id: str) -> Optional[AnalysisHandle]:
        return self._handles.get(job_id)

    def cancel_all(self, reason: Optional[str] = None):
        for handle in list(self._handles.values()):
            handle.cancel(reason)

    def shutdown(self, wait: bool = True, cancel_pending: bool = False):
        if cancel_pending:
            self.cancel_all("scheduler shutdown")
        self._executor.shutdown(wait=wait)

    def __enter__(self) -> 'AnalysisScheduler':
        return self

    def __exit__(self, exc_type, exc, tb):
        self.shutdown(wait=True, cancel_pending=exc_type is not None)
        return False
