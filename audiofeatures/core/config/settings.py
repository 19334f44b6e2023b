"""
Settings - Application configuration using dataclasses.

Environment variables:
- AUDIO_FEATURES_WINDOW_SIZE: analysis window in samples (2048)
- AUDIO_FEATURES_HOP_SIZE: analysis hop in samples (512)
- AUDIO_FEATURES_TICKS_PER_QUARTER: timeline resolution (960)
- AUDIO_FEATURES_DEFAULT_BPM: tempo used when no tempo map is given (120)
- ANALYSIS_YIELD_INTERVAL_MS: cooperative yield interval (12)
- TEMPO_ADAPTER_ENABLED: tempo-aware sampling rollout toggle (true)
- LOG_LEVEL: DEBUG, INFO, WARNING, ERROR (unset: logging-config.yaml)
- LOG_JSON: emit JSON console logs (unset: logging-config.yaml)
- LOG_FILE: rotating JSON log file (unset: none)
"""

import os
from enum import Enum
from typing import Optional
from dataclasses import dataclass, field

from audiofeatures.core.errors import ConfigurationError


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


def _env_optional_flag(name: str) -> Optional[bool]:
    value = os.getenv(name)
    if value is None or not value.strip():
        return None
    return _env_flag(name, "false")


def _env_log_level() -> Optional["LogLevel"]:
    value = os.getenv("LOG_LEVEL")
    if value is None or not value.strip():
        return None
    return LogLevel(value.strip().upper())


class LogLevel(str, Enum):
    """Log level options."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"


@dataclass
class Settings:
    """Application settings from environment."""

    # Analysis
    window_size: int = field(
        default_factory=lambda: int(os.getenv("AUDIO_FEATURES_WINDOW_SIZE", "2048"))
    )
    hop_size: int = field(
        default_factory=lambda: int(os.getenv("AUDIO_FEATURES_HOP_SIZE", "512"))
    )
    yield_interval_ms: float = field(
        default_factory=lambda: float(os.getenv("ANALYSIS_YIELD_INTERVAL_MS", "12"))
    )

    # Timeline
    ticks_per_quarter: int = field(
        default_factory=lambda: int(os.getenv("AUDIO_FEATURES_TICKS_PER_QUARTER", "960"))
    )
    default_bpm: float = field(
        default_factory=lambda: float(os.getenv("AUDIO_FEATURES_DEFAULT_BPM", "120"))
    )

    # Sampling
    tempo_adapter_enabled: bool = field(
        default_factory=lambda: _env_flag("TEMPO_ADAPTER_ENABLED", "true")
    )

    # Logging (None defers to logging-config.yaml)
    log_level: Optional[LogLevel] = field(default_factory=_env_log_level)
    log_json: Optional[bool] = field(default_factory=lambda: _env_optional_flag("LOG_JSON"))
    log_file: Optional[str] = field(default_factory=lambda: os.getenv("LOG_FILE") or None)

    def validate(self) -> "Settings":
        """Reject values that would break analysis at setup time."""
        for name in ("window_size", "hop_size", "ticks_per_quarter"):
            value = getattr(self, name)
            if value <= 0:
                raise ConfigurationError(
                    f"{name} must be positive", data={name: value}
                )
        if self.default_bpm <= 0:
            raise ConfigurationError(
                "default_bpm must be positive", data={"default_bpm": self.default_bpm}
            )
        if self.yield_interval_ms < 0:
            raise ConfigurationError(
                "yield_interval_ms must not be negative",
                data={"yield_interval_ms": self.yield_interval_ms},
            )
        return self


# Singleton instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get settings singleton."""
    global _settings
    if _settings is None:
        _settings = Settings().validate()
    return _settings


def reset_settings():
    """Forget the cached settings so the environment is read again."""
    global _settings
    _settings = None
