"""
Structured logging configuration with context tracking.
"""

import logging
import os
import threading
from contextlib import contextmanager
from datetime import datetime
from typing import Dict, Any, Optional

# Third-party loggers that are noisy at INFO during a pipeline run
NOISY_LOGGERS = ("urllib3", "sentence_transformers", "httpx", "anthropic", "filelock")


class StructuredLogger:
    """
    Logger that appends key/value context to each log entry.

    Context is held per thread, so workers in a pool can tag their own
    messages (source id, article id) without overwriting each other.
    """

    def __init__(self, name: str, **base_context):
        """
        Initialize structured logger.

        Args:
            name: Logger name
            **base_context: Context shared by every thread, e.g. stage name
        """
        self.logger = logging.getLogger(name)
        self.base_context = dict(base_context)
        self._local = threading.local()

    @property
    def context(self) -> Dict[str, Any]:
        if not hasattr(self._local, "context"):
            self._local.context = {}
        return self._local.context

    def add_context(self, **kwargs) -> None:
        """
        Add context to be included in this thread's log messages.

        Args:
            **kwargs: Context key-value pairs
        """
        self.context.update(kwargs)

    def clear_context(self) -> None:
        """Clear this thread's context data."""
        self._local.context = {}

    @contextmanager
    def bound(self, **kwargs):
        """Attach context for the duration of a with-block."""
        previous = dict(self.context)
        self.add_context(**kwargs)
        try:
            yield self
        finally:
            self._local.context = previous

    def _format_context(self, extra_context=None) -> str:
        context = dict(self.base_context)
        context.update(self.context)
        if extra_context:
            context.update(extra_context)

        timestamp = datetime.now().isoformat()
        context_str = ' '.join(f"{k}={v}" for k, v in context.items())
        return f"[{timestamp}] {context_str}".rstrip()

    def debug(self, msg: str, **kwargs) -> None:
        if self.logger.isEnabledFor(logging.DEBUG):
            self.logger.debug(f"{msg} {self._format_context(kwargs)}")

    def info(self, msg: str, **kwargs) -> None:
        self.logger.info(f"{msg} {self._format_context(kwargs)}")

    def warning(self, msg: str, **kwargs) -> None:
        self.logger.warning(f"{msg} {self._format_context(kwargs)}")

    def error(self, msg: str, **kwargs) -> None:
        self.logger.error(f"{msg} {self._format_context(kwargs)}")

    def exception(self, msg: str, exc_info=True, **kwargs) -> None:
        self.logger.exception(f"{msg} {self._format_context(kwargs)}", exc_info=exc_info)


def configure_logging(
    level=logging.INFO,
    log_file: Optional[str] = None,
    console=True,
    log_format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    quiet_libraries=True,
):
    """
    Configure application-wide logging.

    Args:
        level: Logging level
        log_file: Optional file path for logging
        console: Whether to log to console
        log_format: Log format string
        quiet_libraries: Raise noisy third-party loggers to WARNING
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    formatter = logging.Formatter(log_format)

    if console:
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(formatter)
        root_logger.addHandler(console_handler)

    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)

        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    if quiet_libraries:
        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    return root_logger
