"""Configuration - settings loaded from the environment."""

from .settings import Settings, LogLevel, get_settings, reset_settings

__all__ = ['Settings', 'LogLevel', 'get_settings', 'reset_settings']
