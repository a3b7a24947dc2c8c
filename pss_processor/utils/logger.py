"""
Centralized logging infrastructure for the screening bundle processor.

Two uses share one class:

- Module loggers (get_logger) forward to the standard
  logging package, with optional console and rotating-file handlers.
- Per-call loggers additionally keep a log trail ("[INFO] message" lines)
  that is returned to the caller alongside validation and extraction
  results. The trail is filtered by the call's LogLevel.
"""

import json
import logging
import logging.handlers
import os
import re
from datetime import datetime
from pathlib import Path
from typing import Optional, Dict, Any, List, Union

from ..config.constants import LogLevel


VERBOSE = 5
logging.addLevelName(VERBOSE, "VERBOSE")

_STDLIB_LEVELS = {
    LogLevel.ERROR: logging.ERROR,
    LogLevel.WARN: logging.WARNING,
    LogLevel.INFO: logging.INFO,
    LogLevel.DEBUG: logging.DEBUG,
    LogLevel.VERBOSE: VERBOSE,
}

_NRIC_PATTERN = re.compile(r'\b[STFGM]\d{7}[A-Z]\b')


def _coerce_level(level: Union[str, LogLevel, None]) -> LogLevel:
    if isinstance(level, LogLevel):
        return level
    if not level:
        return LogLevel.INFO
    text = str(level).strip().lower()
    if text == "warning":
        text = "warn"
    return LogLevel(text)


class ProcessingLogger:
    """
    Logger with consistent formatting, masking and an optional trail.

    Features:
    - Structured logging ("message | {json}")
    - Five levels: error, warn, info, debug, verbose
    - File rotation when a log directory is configured
    - Masking of participant identifiers and birth dates
    - In-memory trail for returning to the caller
    """

    # Sensitive field patterns to mask
    SENSITIVE_FIELDS = {
        'nric', 'birthdate', 'birth_date', 'mobile', 'phone'
    }

    def __init__(
        self,
        name: str,
        log_level: Union[str, LogLevel] = LogLevel.INFO,
        collect_trail: bool = False,
        log_dir: Optional[str] = None,
        max_bytes: int = 10 * 1024 * 1024,  # 10MB
        backup_count: int = 5,
        enable_console: bool = False
    ):
        """
        Initialize the logger.

        Args:
            name: Logger name (usually module name)
            log_level: Threshold for both the trail and the stdlib logger
            collect_trail: Whether to keep "[LEVEL] message" lines in memory
            log_dir: Directory for rotating log files (no file logging if None)
            max_bytes: Max size of log file before rotation
            backup_count: Number of backup files to keep
            enable_console: Whether to log to console
        """
        self.name = name
        self.level = _coerce_level(log_level)
        self.collect_trail = collect_trail
        self._trail: List[str] = []

        self.logger = logging.getLogger(name)
        if enable_console or log_dir:
            self.logger.setLevel(_STDLIB_LEVELS[self.level])
            self.logger.handlers = []
            self._add_handlers(log_dir, max_bytes, backup_count, enable_console)

    def _add_handlers(
        self,
        log_dir: Optional[str],
        max_bytes: int,
        backup_count: int,
        enable_console: bool
    ):
        detailed_formatter = logging.Formatter(
            '%(asctime)s | %(name)s | %(levelname)s | %(funcName)s:%(lineno)d | %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )
        simple_formatter = logging.Formatter('%(levelname)s | %(message)s')

        if enable_console:
            console_handler = logging.StreamHandler()
            console_handler.setLevel(logging.INFO)
            console_handler.setFormatter(simple_formatter)
            self.logger.addHandler(console_handler)

        if log_dir:
            Path(log_dir).mkdir(parents=True, exist_ok=True)
            short_name = self.name.split('.')[-1]
            log_file = os.path.join(log_dir, f"{short_name}_{datetime.now():%Y%m%d}.log")
            file_handler = logging.handlers.RotatingFileHandler(
                filename=log_file,
                maxBytes=max_bytes,
                backupCount=backup_count,
                encoding='utf-8'
            )
            file_handler.setLevel(VERBOSE)
            file_handler.setFormatter(detailed_formatter)
            self.logger.addHandler(file_handler)

    def _mask_sensitive_data(self, data: Any) -> Any:
        """
        Mask sensitive data in log messages.

        Args:
            data: Data to mask (dict, list, or string)

        Returns:
            Data with sensitive fields masked
        """
        if isinstance(data, dict):
            masked = {}
            for key, value in data.items():
                if any(sensitive in str(key).lower() for sensitive in self.SENSITIVE_FIELDS):
                    if isinstance(value, str) and len(value) > 4:
                        # Keep first and last 2 chars for reference
                        masked[key] = f"{value[:2]}***{value[-2:]}"
                    else:
                        masked[key] = "***MASKED***"
                else:
                    masked[key] = self._mask_sensitive_data(value)
            return masked
        elif isinstance(data, list):
            return [self._mask_sensitive_data(item) for item in data]
        elif isinstance(data, str):
            return _NRIC_PATTERN.sub('*********', data)
        return data

    def _format(self, message: str, kwargs: Dict[str, Any]) -> str:
        message = self._mask_sensitive_data(message)
        if kwargs:
            masked_kwargs = self._mask_sensitive_data(kwargs)
            message = f"{message} | {json.dumps(masked_kwargs, default=str, ensure_ascii=False)}"
        return message

    def _log(self, level: LogLevel, message: str, exception: Optional[Exception] = None, **kwargs):
        text = self._format(message, kwargs)
        if exception:
            text = f"{text} | Exception: {str(exception)}"

        if self.collect_trail and level.rank <= self.level.rank:
            self._trail.append(f"[{level.name}] {text}")

        self.logger.log(_STDLIB_LEVELS[level], text, exc_info=exception is not None)

    # Logging methods with automatic sensitive data masking

    def error(self, message: str, exception: Optional[Exception] = None, **kwargs):
        """Log error message with optional exception."""
        self._log(LogLevel.ERROR, message, exception, **kwargs)

    def critical(self, message: str, exception: Optional[Exception] = None, **kwargs):
        """Critical messages share the error level in the trail."""
        self._log(LogLevel.ERROR, message, exception, **kwargs)

    def warn(self, message: str, **kwargs):
        """Log warning message."""
        self._log(LogLevel.WARN, message, **kwargs)

    warning = warn

    def info(self, message: str, **kwargs):
        """Log info message."""
        self._log(LogLevel.INFO, message, **kwargs)

    def debug(self, message: str, **kwargs):
        """Log debug message."""
        self._log(LogLevel.DEBUG, message, **kwargs)

    def verbose(self, message: str, **kwargs):
        """Log verbose message."""
        self._log(LogLevel.VERBOSE, message, **kwargs)

    # Specialized logging methods

    def log_rule(self, scope: str, rule_type: str, path: str, error_count: int):
        """Log the outcome of one rule evaluation."""
        if error_count:
            self.debug(
                "Rule failed",
                scope=scope,
                rule_type=rule_type,
                path=path,
                errors=error_count
            )
        else:
            self.verbose("Rule passed", scope=scope, rule_type=rule_type, path=path)

    def log_performance(
        self,
        operation: str,
        duration_seconds: float,
        details: Optional[Dict[str, Any]] = None
    ):
        """Log performance metrics."""
        self.debug(
            "Performance metric",
            operation=operation,
            duration_seconds=round(duration_seconds, 3),
            details=details if details else {}
        )

    def get_logs(self) -> List[str]:
        """Return a copy of the collected trail."""
        return list(self._trail)

    def clear(self):
        self._trail = []


def create_call_logger(
    log_level: Union[str, LogLevel] = LogLevel.INFO,
    name: str = "pss_processor.call"
) -> ProcessingLogger:
    """
    Create a fresh trail-collecting logger for a single validate/extract call.

    Args:
        log_level: Trail threshold for this call
        name: Underlying stdlib logger name

    Returns:
        ProcessingLogger with collect_trail enabled
    """
    return ProcessingLogger(name, log_level=log_level, collect_trail=True)


# Global logger instances for different modules
_loggers: Dict[str, ProcessingLogger] = {}


def get_logger(
    name: str,
    log_level: Optional[str] = None,
    **kwargs
) -> ProcessingLogger:
    """
    Get or create a module logger instance.

    Args:
        name: Logger name (usually module name)
        log_level: Override default log level
        **kwargs: Additional arguments for ProcessingLogger

    Returns:
        ProcessingLogger instance
    """
    if name not in _loggers:
        if log_level is None:
            log_level = os.environ.get('PSS_LOG_LEVEL', 'info')
        kwargs.setdefault('log_dir', os.environ.get('PSS_LOG_DIR') or None)

        _loggers[name] = ProcessingLogger(name, log_level=log_level, **kwargs)

    return _loggers[name]
