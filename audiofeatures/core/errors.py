"""
Custom error classes with structured logging and error propagation.

Every AudioFeatureError logs itself at error level on construction, with
the current correlation and job ids attached. Cancellation sits outside
this hierarchy: a cancelled job ends without an error log.
"""

from typing import Optional, Dict, Any
from audiofeatures.common.logging import get_logger
from audiofeatures.common.logging.correlation import get_correlation_id, get_job_id

logger = get_logger(__name__)


class AudioFeatureError(Exception):
    """
    Base error class for all application errors.

    Automatically logs errors with correlation context when raised.
    """

    def __init__(
        self,
        message: str,
        data: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
    ):
        """
        Initialize error with structured context.

        Args:
            message: Human-readable error message
            data: Structured data for observability
            cause: Original exception that caused this error
        """
        super().__init__(message)
        self.message = message
        self.data = data or {}
        self.cause = cause

        self.correlation_id = get_correlation_id()
        self.job_id = get_job_id()

        self._log_error()

    def _log_error(self):
        """Log error with structured data."""
        log_data = {
            "error_type": self.__class__.__name__,
            "correlation_id": self.correlation_id,
            "job_id": self.job_id,
            **self.data,
        }

        if self.cause:
            log_data["cause"] = str(self.cause)

        logger.error(self.message, data=log_data, exc_info=self.cause is not None)

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for serialization."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "data": self.data,
            "correlation_id": self.correlation_id,
            "job_id": self.job_id,
            "cause": str(self.cause) if self.cause else None,
        }


# Configuration errors (raised at setup, never mid-run)
class ConfigurationError(AudioFeatureError):
    """Error in configuration."""
    pass


class FFTConfigurationError(ConfigurationError):
    """Invalid FFT size or mismatched FFT buffers."""
    pass


# Analysis errors
class AnalysisError(AudioFeatureError):
    """Error during analysis pipeline."""
    pass


class CalculatorError(AnalysisError):
    """Unexpected failure inside a feature calculator."""
    pass


# Cache errors
class CacheError(AudioFeatureError):
    """Error reading or writing a feature cache."""
    pass


class CacheSerializationError(CacheError):
    """Cache value cannot be encoded or decoded."""
    pass


class UnsupportedCacheVersionError(CacheSerializationError):
    """Serialized cache carries a schema version we do not read."""
    pass


class MissingPayloadError(CacheSerializationError):
    """A serialized track references no payload data."""
    pass


# Sampling errors
class ChannelResolutionError(AudioFeatureError):
    """Requested channel alias or index does not exist on the track."""
    pass


# Audio input errors
class AudioLoadError(AudioFeatureError):
    """Error loading audio file."""
    pass


class AnalysisCancelledError(Exception):
    """
    Analysis job was cancelled.

    Not an AudioFeatureError: cancellation is never logged as a failure
    and no partial cache is ever published for a cancelled job.
    """

    def __init__(self, message: str = "Analysis cancelled", job_id: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.job_id = job_id or get_job_id()
