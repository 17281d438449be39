"""
Centralized logging configuration for mimicry.

Uses rotating file handler with logs stored in logs/ directory.
Includes colored console output for debug mode.
"""
import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import List, Optional


_VERBOSE: bool = False
# Base directory for logs. setup_logging() replaces it when the caller passes
# an explicit log_dir so get_log_dir() always points at the active location.
_BASE_DIR: Path = Path.cwd()
_LOG_DIR: Optional[Path] = None

# Handlers installed by setup_logging(), tracked so teardown only removes ours.
_INSTALLED_HANDLERS: List[logging.Handler] = []

_env_verbose = os.getenv("MIMICRY_VERBOSE")
if _env_verbose is not None:
    if str(_env_verbose).strip().lower() in ("1", "true", "on", "yes"):
        _VERBOSE = True


class ColoredFormatter(logging.Formatter):
    """Formatter that adds colors to console output."""

    # ANSI color codes
    COLORS = {
        'DEBUG': '\033[36m',       # Cyan
        'INFO': '\033[32m',        # Green
        'WARNING': '\033[33m',     # Yellow
        'ERROR': '\033[31m',       # Red
        'CRITICAL': '\033[35m',    # Magenta
    }
    RELAY_COLOR = '\033[38;5;135m'   # Purple for cross-emitter relay lines
    RESET = '\033[0m'
    BOLD = '\033[1m'

    def format(self, record):
        original_levelname = record.levelname

        color = None
        if '[RELAY]' in str(record.msg):
            color = self.RELAY_COLOR
        elif record.levelname in self.COLORS:
            color = self.COLORS[record.levelname]

        if color is None:
            return super().format(record)

        record.levelname = f"{self.BOLD}{color}{record.levelname}{self.RESET}"
        try:
            message = super().format(record)
        finally:
            record.levelname = original_levelname
        return f"{color}{message}{self.RESET}"


class SuppressingStreamHandler(logging.StreamHandler):
    """Stream handler that suppresses consecutive duplicate sources.

    Repeated DEBUG/INFO lines from the same logger/level are collapsed into a
    single summary line like "[N Suppressed: CHECK LOG]" while file logs
    remain unaffected. Dispatch tracing is chatty, so this keeps the console
    readable when a hot event fires in a loop.
    """

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._last_name: str | None = None
        self._last_level: int | None = None
        self._suppress_count: int = 0
        self._last_record: logging.LogRecord | None = None

    def emit(self, record: logging.LogRecord) -> None:
        try:
            self._emit_with_suppression(record)
        except Exception:
            self.handleError(record)

    def _emit_with_suppression(self, record: logging.LogRecord) -> None:
        if record.levelno >= logging.WARNING:
            self._flush_summary()
            self._emit_record(record)
            self._reset_tracking(None, None, None)
            return

        name = record.name
        level = record.levelno

        if self._last_name is not None and name == self._last_name and level == self._last_level:
            self._suppress_count += 1
            return

        self._flush_summary()
        self._emit_record(record)
        self._reset_tracking(name, level, record)

    def _reset_tracking(self, name, level, record) -> None:
        self._last_name = name
        self._last_level = level
        self._suppress_count = 0
        self._last_record = record

    def _emit_record(self, record: logging.LogRecord) -> None:
        """Emit a single record with a Unicode-safe fallback.

        When the console encoding cannot represent some characters the line is
        degraded with replacement characters instead of raising.
        """
        try:
            msg = self.format(record)
            stream = self.stream
            if stream is None:
                return
            text = msg + self.terminator
            try:
                stream.write(text)
            except UnicodeEncodeError:
                encoding = getattr(stream, "encoding", None) or "ascii"
                stream.write(
                    text.encode(encoding, errors="replace").decode(encoding, errors="replace")
                )
            self.flush()
        except Exception:
            self.handleError(record)

    def _flush_summary(self) -> None:
        if self._suppress_count <= 0 or self._last_record is None:
            self._suppress_count = 0
            return

        last = self._last_record
        summary = logging.LogRecord(
            last.name,
            last.levelno,
            last.pathname,
            last.lineno,
            f"[{self._suppress_count} Suppressed: CHECK LOG]",
            args=None,
            exc_info=None,
        )
        summary.created = last.created
        summary.msecs = last.msecs
        summary.relativeCreated = last.relativeCreated
        summary.thread = last.thread
        summary.threadName = last.threadName
        self._emit_record(summary)

        self._suppress_count = 0

    def close(self) -> None:
        try:
            self._flush_summary()
        finally:
            super().close()


def get_log_dir() -> Path:
    """Return the directory used for log files.

    Matches the location of the active RotatingFileHandler once
    setup_logging() has run.
    """
    if _LOG_DIR is not None:
        return _LOG_DIR
    return _BASE_DIR / "logs"


def _teardown_handlers() -> None:
    """Detach and close every handler installed by setup_logging().

    Safe to call repeatedly; handlers added by other code are left alone.
    """
    root_logger = logging.getLogger()
    while _INSTALLED_HANDLERS:
        handler = _INSTALLED_HANDLERS.pop()
        root_logger.removeHandler(handler)
        try:
            handler.close()
        except Exception:
            # A handler whose stream is already gone has nothing left to close.
            pass


def setup_logging(debug: bool = False, verbose: bool = False,
                  log_dir: Optional[Path] = None) -> None:
    """
    Configure application logging with file rotation.

    Args:
        debug: If True, set log level to DEBUG and enable console output.
        verbose: When True, enables per-dispatch tracing in the emitter.
            Verbose mode also implies debug-level logging.
        log_dir: Directory for mimicry.log, defaults to ./logs
    """
    global _VERBOSE, _LOG_DIR

    debug_enabled = debug or verbose

    # Repeated setup must not stack handlers.
    _teardown_handlers()

    _LOG_DIR = Path(log_dir) if log_dir is not None else None
    target_dir = get_log_dir()
    target_dir.mkdir(parents=True, exist_ok=True)

    log_file = target_dir / "mimicry.log"

    level = logging.DEBUG if debug_enabled else logging.INFO

    # Aligned columns for logger name and level
    formatter = logging.Formatter(
        '%(asctime)s - %(name)-30s - %(levelname)-8s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    # File handler with rotation (1MB max, keep 5 backups)
    file_handler = RotatingFileHandler(
        log_file,
        maxBytes=1 * 1024 * 1024,
        backupCount=5,
        encoding='utf-8'
    )
    file_handler.setFormatter(formatter)
    file_handler.setLevel(level)

    console_handler = SuppressingStreamHandler(sys.stdout)
    console_format = '%(asctime)s - %(name)-30s - %(levelname)-8s - %(message)s'
    if debug_enabled and sys.stdout.isatty():
        console_handler.setFormatter(ColoredFormatter(console_format, datefmt='%H:%M:%S'))
    else:
        console_handler.setFormatter(logging.Formatter(console_format, datefmt='%H:%M:%S'))
    console_handler.setLevel(level)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.addHandler(file_handler)
    _INSTALLED_HANDLERS.append(file_handler)

    if debug_enabled:
        root_logger.addHandler(console_handler)
        _INSTALLED_HANDLERS.append(console_handler)

    _VERBOSE = bool(verbose)

    root_logger.info("=" * 60)
    root_logger.info(
        "mimicry logging initialized (debug=%s, verbose=%s)",
        debug_enabled,
        _VERBOSE,
    )
    root_logger.info("=" * 60)


_SHORT_NAME_OVERRIDES = {
    "mimicry.events.emitter": "events.emitter",
    "mimicry.events.identifiers": "events.ids",
    "mimicry.threading.scheduler": "threading.scheduler",
    "mimicry.settings.settings_manager": "settings",
}


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance with optional short-name overrides for noisy modules."""
    actual = _SHORT_NAME_OVERRIDES.get(name, name)
    return logging.getLogger(actual)


def set_verbose_logging(enabled: bool) -> None:
    """Toggle per-dispatch tracing without reconfiguring handlers."""
    global _VERBOSE
    _VERBOSE = bool(enabled)


def is_verbose_logging() -> bool:
    """Return True when verbose debug logging is enabled globally."""

    return _VERBOSE
