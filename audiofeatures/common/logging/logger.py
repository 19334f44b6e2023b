"""Process-wide logging setup."""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from .correlation import CorrelationLogFilter
from .formatters import JSONFormatter, StructuredLogAdapter
from .logging_config import get_logging_config

TEXT_FORMAT = "%(asctime)s [%(correlation_id)s/%(job_id)s] %(name)s - %(levelname)s - %(message)s"
TEXT_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_logging_configured = False


def _handler(handler: logging.Handler, level: int, formatter: logging.Formatter) -> logging.Handler:
    handler.setLevel(level)
    handler.addFilter(CorrelationLogFilter())
    handler.setFormatter(formatter)
    return handler


def setup_logging(
    level: Optional[str] = None,
    log_file: Optional[str] = None,
    json_format: Optional[bool] = None,
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 3,
    component: str = "default",
    force: bool = False,
) -> None:
    """
    Configure the root logger once per process.

    Console output goes to stderr so CLI output on stdout stays clean.
    The optional rotating log file is always JSON.

    Args:
        level: DEBUG, INFO, WARNING or ERROR (default: logging-config.yaml for ``component``)
        log_file: Rotating log file path
        json_format: JSON console output (default: logging-config.yaml for ``component``)
        max_bytes: Size at which the log file rotates
        backup_count: Rotated files kept
        component: Config section to read (cli, analysis, ...)
        force: Reconfigure even if already configured
    """
    global _logging_configured
    if _logging_configured and not force:
        return

    config = get_logging_config()
    level = level or config.get_level(component)
    if json_format is None:
        json_format = config.get_json_format(component)
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        raise ValueError(f"Unknown log level: {level}")

    root = logging.getLogger()
    root.setLevel(numeric_level)
    root.handlers.clear()

    console_formatter = (
        JSONFormatter() if json_format else logging.Formatter(TEXT_FORMAT, datefmt=TEXT_DATE_FORMAT)
    )
    root.addHandler(_handler(logging.StreamHandler(sys.stderr), numeric_level, console_formatter))

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_file, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
        )
        root.addHandler(_handler(file_handler, numeric_level, JSONFormatter(include_path=True)))

    for name, module_level in config.get_module_levels().items():
        logging.getLogger(name).setLevel(module_level)

    _logging_configured = True


def get_logger(name: str) -> StructuredLogAdapter:
    """Structured logger for a module (pass ``__name__``)."""
    return StructuredLogAdapter(logging.getLogger(name))
