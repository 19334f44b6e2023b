"""Structured JSON logging formatter with correlation ID support."""

import json
import logging
import traceback
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Optional

import numpy as np


# Logger name prefixes that carry no information in the component field
_COMPONENT_PREFIXES = ("audiofeatures", "modules")


def _json_default(value: Any) -> Any:
    """Encode values json.dumps does not know: numpy scalars, arrays, enums, paths."""
    if isinstance(value, np.generic):
        return value.item()
    if isinstance(value, np.ndarray):
        # Payloads can be megabytes; log their shape, not their content
        if value.size <= 16:
            return value.tolist()
        return {"shape": list(value.shape), "dtype": str(value.dtype)}
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Path):
        return str(value)
    return str(value)


class JSONFormatter(logging.Formatter):
    """
    One JSON object per record.

    Fields: timestamp, level, component, logger, message, and when present
    correlation_id, job_id, data (the adapter's ``data=`` kwarg) and
    exception. ``extra_fields`` are merged into every entry.
    """

    def __init__(self, include_path: bool = False, extra_fields: Optional[dict] = None):
        super().__init__()
        self.include_path = include_path
        self.extra_fields = extra_fields or {}

    @staticmethod
    def _extract_component(logger_name: str) -> str:
        """
        Short component name from a logger name.

        Examples:
            audiofeatures.modules.analysis.pipelines.analysis -> analysis.pipelines.analysis
            audiofeatures.core.cache.serialization -> core.cache.serialization
            __main__ -> main
        """
        if logger_name == "__main__":
            return "main"
        parts = logger_name.split(".")
        for prefix in _COMPONENT_PREFIXES:
            if parts and parts[0] == prefix:
                parts = parts[1:]
        return ".".join(parts) if parts else logger_name

    def format(self, record: logging.LogRecord) -> str:
        message = record.getMessage()
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "component": self._extract_component(record.name),
            "logger": record.name,
            "message": message.strip() if message else "",
        }
        if self.include_path:
            entry["path"] = f"{record.pathname}:{record.lineno}"

        for field in ("correlation_id", "job_id"):
            value = getattr(record, field, None)
            if value:
                entry[field] = value

        data = getattr(record, "structured_data", None)
        if data:
            entry["data"] = data

        if record.exc_info:
            exc_type, exc_value, _ = record.exc_info
            entry["exception"] = {
                "type": exc_type.__name__ if exc_type else None,
                "message": str(exc_value) if exc_value else None,
                "traceback": traceback.format_exception(*record.exc_info),
            }

        entry.update(self.extra_fields)
        return json.dumps(entry, ensure_ascii=False, default=_json_default)


class StructuredLogAdapter(logging.LoggerAdapter):
    """
    Logger adapter accepting a ``data`` dict next to the message.

    Usage:
        logger = StructuredLogAdapter(logging.getLogger(__name__))
        logger.info("Calculator finished", data={"calculator_id": "core.rms"})
    """

    def __init__(self, logger: logging.Logger, extra: Optional[dict] = None):
        super().__init__(logger, extra or {})

    def process(self, msg: str, kwargs: dict) -> tuple:
        extra = dict(kwargs.get("extra") or {})
        data = kwargs.pop("data", None)
        if data:
            extra["structured_data"] = data
        kwargs["extra"] = extra
        return msg, kwargs

    def log(self, level: int, msg: str, *args, data: Optional[dict] = None, **kwargs):
        # debug/info/warning/error/exception all route through here
        if data:
            kwargs["data"] = data
        super().log(level, msg, *args, **kwargs)
