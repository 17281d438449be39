"""
Settings manager implementation for mimicry.

Uses QSettings for persistent storage of emitter defaults (listener priority,
deferred delay, listen channel and mode, id prefix).
"""
from typing import Any, Callable, Dict, List
import threading
from PySide6.QtCore import QSettings, QObject, Signal
from mimicry.logging.logger import get_logger
from mimicry.utils.decorators import suppress_exceptions

logger = get_logger(__name__)


DEFAULTS: Dict[str, Any] = {
    'listener.priority': 500,
    'listener.delay_ms': 1,
    'listen.async': True,
    'listen.event': 'notify',
    'ids.emitter_prefix': 'event_emitter',
}


class SettingsManager(QObject):
    """
    Centralized settings for emitters.

    Uses QSettings for persistent storage with organization/application name.
    Thread-safe with change notifications.
    """

    # Signal emitted when settings change
    settings_changed = Signal(str, object)  # key, new_value

    def __init__(self, organization: str = "mimicry",
                 application: str = "EventEmitter"):
        """
        Initialize the settings manager.

        Args:
            organization: Organization name for QSettings
            application: Application name for QSettings
        """
        super().__init__()

        self._settings = QSettings(organization, application)
        self._organization = organization
        self._application = application
        self._lock = threading.RLock()
        self._change_handlers: Dict[str, List[Callable[[Any, Any], None]]] = {}

        self._set_defaults()

        logger.info("SettingsManager initialized (%s/%s)", organization, application)

    def _set_defaults(self) -> None:
        """Set default values if not already present."""
        with self._lock:
            for key, value in DEFAULTS.items():
                if not self._settings.contains(key):
                    self._settings.setValue(key, value)
            self._settings.sync()

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get a setting value.

        Args:
            key: Setting key (e.g. 'listener.priority')
            default: Returned when the key is missing

        Returns:
            Stored value, or the default
        """
        with self._lock:
            if default is None:
                default = DEFAULTS.get(key)
            return self._settings.value(key, default)

    @staticmethod
    def to_bool(value: Any, default: bool = False) -> bool:
        """Coerce QSettings values ('true', '0', 1, ...) into a bool."""
        if isinstance(value, bool):
            return value
        if value is None:
            return default
        if isinstance(value, (int, float)):
            return value != 0
        if isinstance(value, str):
            lowered = value.strip().lower()
            if lowered in ('1', 'true', 'yes', 'on'):
                return True
            if lowered in ('0', 'false', 'no', 'off', ''):
                return False
        return default

    def get_bool(self, key: str, default: bool = False) -> bool:
        """Get a setting value coerced to bool."""
        return self.to_bool(self.get(key, default), default)

    def get_int(self, key: str, default: int = 0) -> int:
        """Get a setting value coerced to int, falling back on bad data."""
        raw = self.get(key, default)
        coerced = self._coerce_int(raw)
        return default if coerced is None else coerced

    @staticmethod
    @suppress_exceptions(logger, "Ignoring non-integer setting value", log_level="warning")
    def _coerce_int(value: Any) -> int:
        return int(value)

    def set(self, key: str, value: Any) -> None:
        """
        Set a setting value and notify listeners when it changed.

        Args:
            key: Setting key
            value: New value
        """
        with self._lock:
            old_value = self._settings.value(key)
            self._settings.setValue(key, value)
            handlers = list(self._change_handlers.get(key, []))

        if old_value == value:
            return

        logger.debug("Setting changed: %s: %r -> %r", key, old_value, value)
        self.settings_changed.emit(key, value)
        for handler in handlers:
            handler(value, old_value)

    def save(self) -> None:
        """Flush pending writes to storage."""
        with self._lock:
            self._settings.sync()

    def on_changed(self, key: str, handler: Callable[[Any, Any], None]) -> None:
        """
        Register a handler called with (new_value, old_value) on change.

        Args:
            key: Setting key to watch
            handler: Callback
        """
        with self._lock:
            self._change_handlers.setdefault(key, []).append(handler)

    def reset_to_defaults(self) -> None:
        """Drop every stored value and restore DEFAULTS."""
        with self._lock:
            self._settings.clear()
        self._set_defaults()
        logger.info("Settings reset to defaults")

    def get_all_keys(self) -> List[str]:
        with self._lock:
            return list(self._settings.allKeys())

    def contains(self, key: str) -> bool:
        with self._lock:
            return self._settings.contains(key)

    def remove(self, key: str) -> None:
        with self._lock:
            self._settings.remove(key)

    def clear(self) -> None:
        """Remove all stored settings, defaults included."""
        with self._lock:
            self._settings.clear()
            self._settings.sync()

    def get_organization_name(self) -> str:
        return self._organization

    def get_application_name(self) -> str:
        return self._application

    def listener_defaults(self) -> Dict[str, Any]:
        """Default binding options for newly added listeners."""
        return {
            'priority': self.get_int('listener.priority', DEFAULTS['listener.priority']),
            'delay': self.get_int('listener.delay_ms', DEFAULTS['listener.delay_ms']),
        }

    def listen_defaults(self) -> Dict[str, Any]:
        """Default options for EventEmitter.listen()."""
        return {
            'async': self.get_bool('listen.async', DEFAULTS['listen.async']),
            'event': str(self.get('listen.event', DEFAULTS['listen.event'])),
        }

    def emitter_prefix(self) -> str:
        """Prefix used when generating emitter ids."""
        return str(self.get('ids.emitter_prefix', DEFAULTS['ids.emitter_prefix']))
