"""
Correlation and job ids carried in context variables.

The scheduler binds one job id per analysis run with job_context(); every
record logged inside the run (including error logs raised by
AudioFeatureError) picks both ids up through CorrelationLogFilter.
"""

import contextvars
import logging
import uuid
from contextlib import contextmanager
from typing import Iterator, Optional

correlation_id_var: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "correlation_id", default=None
)
job_id_var: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "job_id", default=None
)


def generate_correlation_id() -> str:
    return uuid.uuid4().hex[:8]


def get_correlation_id() -> Optional[str]:
    return correlation_id_var.get()


def set_correlation_id(cid: Optional[str]):
    correlation_id_var.set(cid)


def get_job_id() -> Optional[str]:
    return job_id_var.get()


def set_job_id(jid: Optional[str]):
    job_id_var.set(jid)


@contextmanager
def job_context(job_id: str, correlation_id: Optional[str] = None) -> Iterator[str]:
    """
    Bind ``job_id`` and a correlation id for the duration of a block.

    The correlation id is, in order: the argument, the caller's current
    one, or a fresh one. Both ids are restored on exit.

    Yields:
        The correlation id in effect inside the block
    """
    cid = correlation_id or get_correlation_id() or generate_correlation_id()
    job_token = job_id_var.set(job_id)
    cid_token = correlation_id_var.set(cid)
    try:
        yield cid
    finally:
        correlation_id_var.reset(cid_token)
        job_id_var.reset(job_token)


class CorrelationLogFilter(logging.Filter):
    """Copies the current correlation and job ids onto every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = get_correlation_id()
        record.job_id = get_job_id()
        return True
