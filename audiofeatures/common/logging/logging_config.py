"""
Per-component logging configuration from logging-config.yaml.

Lookup order for a component's level (JSON flag works the same way with
LOG_JSON_FORMAT_<COMPONENT>):

    LOG_LEVEL_<COMPONENT>  >  components.<name>  >  default_level

The process-wide LOG_LEVEL and LOG_JSON belong to Settings and reach
setup_logging() as explicit arguments.
"""

import os
from pathlib import Path
from typing import Any, Dict, Iterator, Optional

import yaml

CONFIG_FILENAME = "logging-config.yaml"
CONFIG_ENV_VAR = "AUDIO_FEATURES_LOGGING_CONFIG"

_TRUE_VALUES = ("true", "1", "yes", "on")
_DEFAULT_CONFIG: Dict[str, Any] = {"default_level": "INFO", "json_format": False, "components": {}, "modules": {}}


def _candidate_paths() -> Iterator[Path]:
    explicit = os.getenv(CONFIG_ENV_VAR)
    if explicit:
        yield Path(explicit)
    # Package directory up to the project root
    current = Path(__file__).resolve().parent
    for directory in [current, *list(current.parents)[:4]]:
        yield directory / CONFIG_FILENAME


def find_config_file() -> Optional[Path]:
    return next((p for p in _candidate_paths() if p.is_file()), None)


def _env_key(prefix: str, component: str) -> str:
    return f"{prefix}_{component.upper().replace('-', '_').replace('.', '_')}"


class LoggingConfig:
    """Logging levels and formats per component (cli, analysis, sampling, ...)."""

    _instance: Optional["LoggingConfig"] = None

    def __init__(self, config_path: Optional[str] = None):
        path = Path(config_path) if config_path else find_config_file()
        self.path = path if path and path.is_file() else None
        self._config: Dict[str, Any] = dict(_DEFAULT_CONFIG)
        if self.path:
            with open(self.path, encoding="utf-8") as f:
                self._config.update(yaml.safe_load(f) or {})

    @classmethod
    def get_instance(cls) -> "LoggingConfig":
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def reset_instance(cls):
        cls._instance = None

    def _component(self, component: str) -> Dict[str, Any]:
        """Component entry as a dict; a bare string is shorthand for its level."""
        entry = (self._config.get("components") or {}).get(component)
        if isinstance(entry, str):
            return {"level": entry}
        return entry if isinstance(entry, dict) else {}

    def get_level(self, component: str = "default") -> str:
        """Level name (DEBUG, INFO, WARNING, ERROR) for a component."""
        level = (
            os.getenv(_env_key("LOG_LEVEL", component))
            or self._component(component).get("level")
            or self._config.get("default_level")
            or "INFO"
        )
        return str(level).upper()

    def get_json_format(self, component: str = "default") -> bool:
        value = os.getenv(_env_key("LOG_JSON_FORMAT", component))
        if value:
            return value.strip().lower() in _TRUE_VALUES
        entry = self._component(component)
        if "json_format" in entry:
            return bool(entry["json_format"])
        return bool(self._config.get("json_format", False))

    def get_module_levels(self) -> Dict[str, str]:
        """Per-logger level overrides, e.g. to quiet numba or matplotlib under librosa."""
        modules = self._config.get("modules") or {}
        return {name: str(level).upper() for name, level in modules.items()}


def get_logging_config() -> LoggingConfig:
    return LoggingConfig.get_instance()
