"""
Deferred-call schedulers for asynchronous listeners.

Two implementations share the same ``call_later(delay_ms, func, *args)``
contract:

- QtTimerScheduler: one ``QTimer.singleShot`` per call on the Qt application
  thread. Calls made from other threads are marshalled through a queued
  signal first.
- DeferredQueue: a single ordered queue drained explicitly by the host. Useful
  where no Qt event loop runs and in tests that need deterministic timing.

Neither offers cancellation of an already scheduled call.
"""
import heapq
import itertools
import time
from typing import Any, Callable, List, Optional, Protocol, Tuple
from PySide6.QtCore import QTimer, QObject, QThread, QCoreApplication, Signal
from mimicry.logging.logger import get_logger, is_verbose_logging

logger = get_logger(__name__)

MIN_DELAY_MS = 1


class SchedulerUnavailable(RuntimeError):
    """Raised when a scheduler cannot accept deferred work."""


class Scheduler(Protocol):
    """Anything able to run a callable on a later turn."""

    def call_later(self, delay_ms: int, func: Callable[..., Any], *args: Any) -> None:  # pragma: no cover - Protocol
        ...


def normalize_delay(delay: Any) -> int:
    """Coerce a delay to whole milliseconds with a floor of MIN_DELAY_MS.

    Values that cannot be read as a finite number fall back to the floor.
    """
    try:
        value = int(float(delay))
    except (TypeError, ValueError, OverflowError):
        return MIN_DELAY_MS
    return max(MIN_DELAY_MS, value)


# UI-thread invoker for reliable main thread dispatch
class _UiInvoker(QObject):
    invoke = Signal(object, object)

    def __init__(self):
        super().__init__()
        self.invoke.connect(self._on_invoke)

    def _on_invoke(self, func, args):
        func(*args)


_ui_invoker: Optional[_UiInvoker] = None


def _ensure_ui_invoker(app: QCoreApplication) -> _UiInvoker:
    global _ui_invoker
    if _ui_invoker is None:
        inv = _UiInvoker()
        inv.moveToThread(app.thread())
        _ui_invoker = inv
    return _ui_invoker


class QtTimerScheduler:
    """
    Schedule deferred calls with Qt single-shot timers.

    Every call gets its own timer, so relative order between calls with
    different delays follows the Qt event loop rather than submission order.
    """

    def call_later(self, delay_ms: int, func: Callable[..., Any], *args: Any) -> None:
        """
        Run ``func(*args)`` on the Qt application thread after ``delay_ms``.

        Raises:
            SchedulerUnavailable: If no QCoreApplication exists.
        """
        app = QCoreApplication.instance()
        if app is None:
            raise SchedulerUnavailable("call_later requires a QCoreApplication instance")

        delay = normalize_delay(delay_ms)

        def _invoke():
            func(*args)

        if QThread.currentThread() is app.thread():
            QTimer.singleShot(delay, _invoke)
        else:
            def _schedule_on_ui():
                QTimer.singleShot(delay, _invoke)
            _ensure_ui_invoker(app).invoke.emit(_schedule_on_ui, ())

        if is_verbose_logging():
            logger.debug("Scheduled %s in %dms", getattr(func, "__qualname__", func), delay)


class DeferredQueue:
    """
    Ordered queue of deferred calls.

    Entries are kept sorted by (due time, submission sequence). Nothing runs
    until the owner calls run_pending() or drain(), which keeps dispatch on the
    owner's thread and turn.
    """

    def __init__(self, clock: Optional[Callable[[], float]] = None):
        """
        Args:
            clock: Monotonic time source in seconds, defaults to time.monotonic
        """
        self._clock = clock or time.monotonic
        self._heap: List[Tuple[float, int, Callable[..., Any], Tuple[Any, ...]]] = []
        self._sequence = itertools.count()

    def call_later(self, delay_ms: int, func: Callable[..., Any], *args: Any) -> None:
        due = self._clock() + normalize_delay(delay_ms) / 1000.0
        heapq.heappush(self._heap, (due, next(self._sequence), func, args))

    def __len__(self) -> int:
        return len(self._heap)

    def pending(self) -> int:
        """Number of calls waiting to run."""
        return len(self._heap)

    def run_pending(self, now: Optional[float] = None) -> int:
        """
        Run every call whose due time has passed.

        Calls scheduled while running are only picked up if they are already
        due. Exceptions propagate to the caller; the failing entry is consumed.

        Returns:
            int: Number of calls executed
        """
        current = self._clock() if now is None else now
        ran = 0
        while self._heap and self._heap[0][0] <= current:
            _, _, func, args = heapq.heappop(self._heap)
            func(*args)
            ran += 1
        return ran

    def drain(self, max_calls: int = 10000) -> int:
        """
        Run everything in due order regardless of the clock.

        Args:
            max_calls: Guard against listeners that keep rescheduling themselves

        Returns:
            int: Number of calls executed
        """
        ran = 0
        while self._heap and ran < max_calls:
            _, _, func, args = heapq.heappop(self._heap)
            func(*args)
            ran += 1
        if self._heap:
            logger.warning("DeferredQueue.drain stopped after %d calls, %d still pending",
                           ran, len(self._heap))
        return ran

    def clear(self) -> None:
        """Drop every pending call."""
        self._heap.clear()


_default_scheduler: Optional[QtTimerScheduler] = None


def get_default_scheduler() -> QtTimerScheduler:
    """Return the shared QtTimerScheduler used when an emitter gets none."""
    global _default_scheduler
    if _default_scheduler is None:
        _default_scheduler = QtTimerScheduler()
    return _default_scheduler
