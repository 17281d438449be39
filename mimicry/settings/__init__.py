"""Persistent emitter defaults."""

from .settings_manager import DEFAULTS, SettingsManager

__all__ = ['DEFAULTS', 'SettingsManager']
