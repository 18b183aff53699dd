"""Configuration module for loading and managing application settings"""
from typing import Dict, Any, Optional
from .lib.load_settings_conf import load_settings_conf, validate_settings, SettingsError, DEFAULTS
import os

__all__ = ['get_settings', 'reload_settings', 'settings_dir', 'SettingsError', 'DEFAULTS', 'validate_settings']

_settings: Optional[Dict[str, Any]] = None


def settings_dir() -> str:
    """Directory searched for settings.conf (MARKET_SETTINGS_DIR, default cwd)."""
    return os.environ.get('MARKET_SETTINGS_DIR', '.')


def get_settings() -> Dict[str, Any]:
    """Return the loaded settings, reading settings.conf on first use.

    Raises:
        SettingsError: If settings.conf is invalid
    """
    global _settings
    if _settings is None:
        try:
            _settings = load_settings_conf(settings_dir())
        except SettingsError as e:
            # Re-raise the error but provide more context
            raise SettingsError(
                f"Configuration Error\n"
                "=================\n\n"
                f"{str(e)}\n\n"
                "Please ensure settings.conf is properly configured.\n"
                "Run `python -m config` to write an example file."
            ) from e
    return _settings


def reload_settings() -> Dict[str, Any]:
    """Drop cached settings and read them again."""
    global _settings
    _settings = None
    return get_settings()
