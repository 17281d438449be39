"""Logging helpers for mimicry."""

from .logger import get_logger, is_verbose_logging, set_verbose_logging, setup_logging

__all__ = ['get_logger', 'is_verbose_logging', 'set_verbose_logging', 'setup_logging']
