"""
Unique string identifiers per namespace prefix.
"""
import threading
from typing import Dict, Optional
from mimicry.logging.logger import get_logger

logger = get_logger(__name__)


class IdentifierService:
    """
    Hand out ``prefix + n`` strings with an independent counter per prefix.

    Counters start at 1 and only move backwards through reset(), which exists
    for test harnesses. Emitters sharing one service never collide on ids.
    """

    def __init__(self):
        self._counters: Dict[str, int] = {}
        self._lock = threading.RLock()

    def generate(self, prefix: str) -> str:
        """
        Return the next id for ``prefix``.

        Args:
            prefix: Namespace, e.g. 'event_emitter_'

        Returns:
            str: prefix followed by the counter value
        """
        with self._lock:
            value = self._counters.get(prefix, 0) + 1
            self._counters[prefix] = value
        return f"{prefix}{value}"

    def peek(self, prefix: str) -> int:
        """Return the last number issued for ``prefix`` (0 if none)."""
        with self._lock:
            return self._counters.get(prefix, 0)

    def reset(self, prefix: Optional[str] = None) -> None:
        """
        Reset one prefix counter, or all of them.

        Args:
            prefix: Counter to reset; None resets everything
        """
        with self._lock:
            if prefix is None:
                self._counters.clear()
            else:
                self._counters.pop(prefix, None)
        logger.debug("Identifier counters reset (prefix=%r)", prefix)


# Composition-root default shared by emitters that are not given a service.
default_identifiers = IdentifierService()
