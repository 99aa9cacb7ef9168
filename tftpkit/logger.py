"""Thread-safe levelled logger writing to a stream or to syslog."""

from __future__ import annotations

import dataclasses
import os
import sys
import threading
import time
from dataclasses import dataclass
from enum import IntEnum
from typing import Optional, TextIO

try:
    import syslog as _syslog
except ImportError:  # pragma: no cover - platforms without syslog
    _syslog = None

RESET_STYLE = "\x1b[0m"


class LogLevel(IntEnum):
    """Severity of a log event; higher values are more verbose."""

    OFF = 0
    FATAL = 1
    ERROR = 2
    WARN = 3
    INFO = 4
    DEBUG = 5
    TRACE = 6
    ALL = 255


_LEVEL_NAMES = {
    LogLevel.FATAL: "FATAL",
    LogLevel.ERROR: "ERROR",
    LogLevel.WARN: "WARN",
    LogLevel.INFO: "INFO",
    LogLevel.DEBUG: "DEBUG",
    LogLevel.TRACE: "TRACE",
}

_LEVEL_COLORS = {
    LogLevel.FATAL: "\x1b[35m",
    LogLevel.ERROR: "\x1b[31m",
    LogLevel.WARN: "\x1b[33m",
    LogLevel.INFO: "\x1b[32m",
    LogLevel.DEBUG: "\x1b[36m",
    LogLevel.TRACE: "\x1b[94m",
}

if _syslog is not None:
    _SYSLOG_PRIORITIES = {
        LogLevel.FATAL: _syslog.LOG_CRIT,
        LogLevel.ERROR: _syslog.LOG_ERR,
        LogLevel.WARN: _syslog.LOG_WARNING,
        LogLevel.INFO: _syslog.LOG_INFO,
        LogLevel.DEBUG: _syslog.LOG_DEBUG,
        LogLevel.TRACE: _syslog.LOG_DEBUG,
    }
else:  # pragma: no cover
    _SYSLOG_PRIORITIES = {}

# syslog keeps one process-wide identity; loggers with different idents share it.
_syslog_lock = threading.Lock()
_syslog_current_ident: Optional[str] = None


@dataclass
class LoggerConfig:
    """How and where a Logger writes its events."""

    default_level: LogLevel = LogLevel.INFO
    use_syslog: bool = False
    file: Optional[TextIO] = None
    syslog_ident: Optional[str] = None
    show_date_time: bool = True
    show_source_file: bool = False
    show_process_id: bool = False
    show_thread_id: bool = False
    show_level_name: bool = True


class Logger:
    """Writes formatted events at or below the configured level."""

    def __init__(self, config: Optional[LoggerConfig] = None):
        self.config = dataclasses.replace(config) if config is not None else LoggerConfig()
        if self.config.use_syslog:
            if _syslog is None:
                raise ValueError("syslog is not available on this platform")
        elif self.config.file is None:
            self.config.file = sys.stderr
        self._lock = threading.Lock()

    def log(self, level: LogLevel, fmt: str, *args) -> None:
        """Log a printf-style message at the given level."""
        self._emit(level, fmt, args, 2)

    def fatal(self, fmt: str, *args) -> None:
        self._emit(LogLevel.FATAL, fmt, args, 2)

    def error(self, fmt: str, *args) -> None:
        self._emit(LogLevel.ERROR, fmt, args, 2)

    def warn(self, fmt: str, *args) -> None:
        self._emit(LogLevel.WARN, fmt, args, 2)

    def info(self, fmt: str, *args) -> None:
        self._emit(LogLevel.INFO, fmt, args, 2)

    def debug(self, fmt: str, *args) -> None:
        self._emit(LogLevel.DEBUG, fmt, args, 2)

    def trace(self, fmt: str, *args) -> None:
        self._emit(LogLevel.TRACE, fmt, args, 2)

    def close(self) -> None:
        """Flush any pending output."""
        with self._lock:
            if not self.config.use_syslog and self.config.file is not None:
                self.config.file.flush()

    def _emit(self, level, fmt: str, args: tuple, depth: int) -> None:
        level = LogLevel(level)
        if level not in _LEVEL_NAMES:
            raise ValueError(f"cannot log an event at level {level.name}")
        if level > self.config.default_level:
            return
        message = fmt % args if args else fmt
        with self._lock:
            if self.config.use_syslog:
                self._emit_syslog(level, message)
            else:
                self._emit_stream(level, message, sys._getframe(depth))

    def _emit_syslog(self, level: LogLevel, message: str) -> None:
        global _syslog_current_ident
        with _syslog_lock:
            if _syslog_current_ident != self.config.syslog_ident:
                _syslog.closelog()
                if self.config.syslog_ident is None:
                    _syslog.openlog(logoption=_syslog.LOG_PID, facility=_syslog.LOG_DAEMON)
                else:
                    _syslog.openlog(self.config.syslog_ident, _syslog.LOG_PID, _syslog.LOG_DAEMON)
                _syslog_current_ident = self.config.syslog_ident
            _syslog.syslog(_syslog.LOG_DAEMON | _SYSLOG_PRIORITIES[level], message)

    def _emit_stream(self, level: LogLevel, message: str, frame) -> None:
        config = self.config
        parts = []
        if config.show_date_time:
            parts.append(time.strftime("%Y-%m-%d %H:%M:%S") + " ")
        if config.show_level_name:
            parts.append(f"{_LEVEL_COLORS[level]}{_LEVEL_NAMES[level]:<5}{RESET_STYLE} ")
        if config.show_process_id:
            parts.append(f"{os.getpid()} ")
        if config.show_thread_id:
            parts.append(f"{threading.get_ident()} ")
        if config.show_source_file:
            parts.append(f"{frame.f_code.co_filename}: {frame.f_lineno} ")
        parts.append("- ")
        parts.append(message)
        parts.append("\n")
        config.file.write("".join(parts))
        config.file.flush()