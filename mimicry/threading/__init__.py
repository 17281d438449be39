"""Deferred dispatch for asynchronous listeners."""

from .scheduler import (
    DeferredQueue,
    QtTimerScheduler,
    Scheduler,
    SchedulerUnavailable,
    get_default_scheduler,
    normalize_delay,
)

__all__ = [
    'DeferredQueue',
    'QtTimerScheduler',
    'Scheduler',
    'SchedulerUnavailable',
    'get_default_scheduler',
    'normalize_delay',
]
