"""
Shellcore Logger Module

Structured logging for the shell core:
- Subsystem-specific loggers (vfs, executor, users, ...)
- Contextual key/value data on every record
- Optional console and file output
- In-memory audit buffer for later inspection

Version: 1.0.0
"""

import logging
import sys
import threading
from datetime import datetime
from enum import IntEnum
from pathlib import Path
from typing import Optional, Any, List


class LogLevel(IntEnum):
    """Log level enumeration with numeric values for comparison."""
    DEBUG = 10
    INFO = 20
    NOTICE = 25
    WARNING = 30
    ERROR = 40
    CRITICAL = 50


logging.addLevelName(LogLevel.NOTICE, 'NOTICE')


class LogFormatter(logging.Formatter):
    """
    Log formatter for shellcore records.

    Renders ``[time] LEVEL [subsystem] (job=N) message {k=v}``, colouring
    the level when writing to a terminal.
    """

    COLORS = {
        'DEBUG': '\033[36m',
        'INFO': '\033[32m',
        'NOTICE': '\033[34m',
        'WARNING': '\033[33m',
        'ERROR': '\033[31m',
        'CRITICAL': '\033[35m',
    }
    RESET = '\033[0m'

    def __init__(self, use_colors: bool = True):
        super().__init__()
        self.use_colors = use_colors and self._supports_color()

    @staticmethod
    def _supports_color() -> bool:
        """Check if stderr is a TTY."""
        return hasattr(sys.stderr, 'isatty') and sys.stderr.isatty()

    def format(self, record: logging.LogRecord) -> str:
        """Format a log record."""
        timestamp = datetime.fromtimestamp(record.created).strftime(
            '%Y-%m-%d %H:%M:%S.%f'
        )[:-3]

        level = record.levelname
        if self.use_colors and level in self.COLORS:
            level_display = f"{self.COLORS[level]}{level:8s}{self.RESET}"
        else:
            level_display = f"{level:8s}"

        components = [f"[{timestamp}]", level_display]

        if hasattr(record, 'subsystem'):
            components.append(f"[{record.subsystem}]")

        if getattr(record, 'job', None) is not None:
            components.append(f"(job={record.job})")

        components.append(str(record.getMessage()))

        if getattr(record, 'context', None):
            context_str = " ".join(f"{k}={v}" for k, v in record.context.items())
            components.append(f"{{{context_str}}}")

        message = " ".join(components)

        if record.exc_info:
            message += "\n" + self.formatException(record.exc_info)

        return message


class AuditLogHandler(logging.Handler):
    """
    Keeps recent log records in memory.

    The buffer backs the audit trail: tests and diagnostic commands
    can read back what the core did without touching stdout.
    """

    def __init__(self, max_entries: int = 5000):
        super().__init__()
        self.max_entries = max_entries
        self._log_buffer: List[dict[str, Any]] = []
        self._lock = threading.Lock()

    def emit(self, record: logging.LogRecord) -> None:
        """Store log record in buffer."""
        entry = {
            'timestamp': record.created,
            'level': record.levelname,
            'message': record.getMessage(),
            'subsystem': getattr(record, 'subsystem', None),
            'job': getattr(record, 'job', None),
            'context': getattr(record, 'context', {}),
        }

        with self._lock:
            self._log_buffer.append(entry)
            if len(self._log_buffer) > self.max_entries:
                del self._log_buffer[:-self.max_entries]

    def get_logs(
        self,
        level: Optional[str] = None,
        subsystem: Optional[str] = None,
        limit: int = 100
    ) -> List[dict[str, Any]]:
        """Retrieve buffered records, optionally filtered."""
        with self._lock:
            logs = list(self._log_buffer)

        if level:
            logs = [entry for entry in logs if entry['level'] == level]
        if subsystem:
            logs = [entry for entry in logs if entry['subsystem'] == subsystem]

        return logs[-limit:]

    def clear(self) -> None:
        """Clear the buffer."""
        with self._lock:
            self._log_buffer.clear()


class Logger:
    """
    Subsystem logger.

    One instance exists per subsystem name; all of them hang off the
    ``shellcore`` logger so a single ``initialize`` call configures
    every subsystem at once.

    Example:
        >>> log = Logger('vfs')
        >>> log.debug("Created file", context={'path': '/tmp/a'})
        >>> log.info("Job finished", job=3)
    """

    _instances: dict[str, 'Logger'] = {}
    _lock = threading.Lock()
    _initialized = False
    _audit_handler: Optional[AuditLogHandler] = None

    def __new__(cls, subsystem: str = 'core') -> 'Logger':
        """Get or create the logger for a subsystem."""
        with cls._lock:
            if subsystem not in cls._instances:
                instance = super().__new__(cls)
                instance._subsystem = subsystem
                instance._logger = logging.getLogger(f'shellcore.{subsystem}')
                cls._instances[subsystem] = instance
            return cls._instances[subsystem]

    @property
    def subsystem(self) -> str:
        return self._subsystem

    @classmethod
    def initialize(
        cls,
        level: int = LogLevel.WARNING,
        log_file: Optional[str] = None,
        use_colors: bool = True,
        console_output: bool = False
    ) -> None:
        """
        Configure handlers for the whole ``shellcore`` logger tree.

        Calling it again is a no-op, so every kernel in a process
        shares the first configuration.

        Args:
            level: Minimum log level to capture
            log_file: Optional file path for log output
            use_colors: Whether to colour console output
            console_output: Whether to write records to stderr
        """
        with cls._lock:
            if cls._initialized:
                return

            root_logger = logging.getLogger('shellcore')
            root_logger.setLevel(level)

            cls._audit_handler = AuditLogHandler()
            cls._audit_handler.setLevel(level)
            root_logger.addHandler(cls._audit_handler)

            if console_output:
                console_handler = logging.StreamHandler(sys.stderr)
                console_handler.setLevel(level)
                console_handler.setFormatter(LogFormatter(use_colors=use_colors))
                root_logger.addHandler(console_handler)

            if log_file:
                file_path = Path(log_file).expanduser()
                file_path.parent.mkdir(parents=True, exist_ok=True)
                file_handler = logging.FileHandler(file_path, encoding='utf-8')
                file_handler.setLevel(level)
                file_handler.setFormatter(LogFormatter(use_colors=False))
                root_logger.addHandler(file_handler)

            if not console_output:
                root_logger.propagate = False

            cls._initialized = True

    @classmethod
    def get_audit_logs(
        cls,
        level: Optional[str] = None,
        subsystem: Optional[str] = None,
        limit: int = 100
    ) -> List[dict[str, Any]]:
        """Get records from the in-memory audit buffer."""
        if cls._audit_handler is None:
            return []
        return cls._audit_handler.get_logs(level=level, subsystem=subsystem, limit=limit)

    def _log(
        self,
        level: int,
        message: str,
        job: Optional[int] = None,
        context: Optional[dict[str, Any]] = None
    ) -> None:
        extra = {
            'subsystem': self._subsystem,
            'job': job,
            'context': context or {},
        }
        self._logger.log(level, message, extra=extra)

    def debug(
        self,
        message: str,
        job: Optional[int] = None,
        context: Optional[dict[str, Any]] = None
    ) -> None:
        """Log a debug message."""
        self._log(LogLevel.DEBUG, message, job, context)

    def info(
        self,
        message: str,
        job: Optional[int] = None,
        context: Optional[dict[str, Any]] = None
    ) -> None:
        """Log an info message."""
        self._log(LogLevel.INFO, message, job, context)

    def notice(
        self,
        message: str,
        job: Optional[int] = None,
        context: Optional[dict[str, Any]] = None
    ) -> None:
        """Log a notice message."""
        self._log(LogLevel.NOTICE, message, job, context)

    def warning(
        self,
        message: str,
        job: Optional[int] = None,
        context: Optional[dict[str, Any]] = None
    ) -> None:
        """Log a warning message."""
        self._log(LogLevel.WARNING, message, job, context)

    def error(
        self,
        message: str,
        job: Optional[int] = None,
        context: Optional[dict[str, Any]] = None
    ) -> None:
        """Log an error message."""
        self._log(LogLevel.ERROR, message, job, context)

    def exception(
        self,
        message: str,
        exc: Optional[BaseException] = None,
        job: Optional[int] = None,
        context: Optional[dict[str, Any]] = None
    ) -> None:
        """Log an exception with its stack trace."""
        self._logger.error(
            message,
            exc_info=exc if exc is not None else True,
            extra={
                'subsystem': self._subsystem,
                'job': job,
                'context': context or {},
            }
        )


def get_logger(subsystem: str) -> Logger:
    """
    Get a logger for the specified subsystem.

    Args:
        subsystem: Name of the subsystem (e.g., 'vfs', 'executor', 'users')

    Returns:
        Logger instance for the subsystem
    """
    return Logger(subsystem)
