"""Performance tracking utilities for pipeline stages."""

import time
import logging
import functools
from typing import Callable, Optional

import psutil

logger = logging.getLogger(__name__)


def _rss_mb() -> float:
    return psutil.Process().memory_info().rss / 1024 / 1024


def track_performance(func=None, *, name: Optional[str] = None, recorder: Optional[Callable[[str, float, float], None]] = None):
    """
    Decorator to track function performance.

    Logs execution time and resident memory delta for the decorated function.
    Usable bare (``@track_performance``) or with arguments
    (``@track_performance(name="cluster")``).

    Args:
        func: The function to be decorated
        name: Label used in the log line, defaults to the function name
        recorder: Optional callable receiving (name, seconds, memory_mb)

    Returns:
        Wrapped function
    """
    def decorator(fn):
        label = name or fn.__name__

        @functools.wraps(fn)
        def wrapper(*args, **kwargs):
            start_time = time.time()
            start_memory = _rss_mb()

            try:
                return fn(*args, **kwargs)
            finally:
                execution_time = time.time() - start_time
                memory_used = _rss_mb() - start_memory

                logger.info(
                    f"Performance: {label} - "
                    f"Time: {execution_time:.2f}s, "
                    f"Memory: {memory_used:.2f}MB"
                )
                if recorder is not None:
                    recorder(label, execution_time, memory_used)

        return wrapper

    if func is not None:
        return decorator(func)
    return decorator


class StageTimer:
    """
    Context manager that times a named stage and stores the result.

    Used by the pipeline where a decorator is awkward because the stage is a
    block inside a larger method.
    """

    def __init__(self, timings: dict, stage: str):
        self.timings = timings
        self.stage = stage
        self.start_time = 0.0
        self.start_memory = 0.0

    def __enter__(self):
        self.start_time = time.time()
        self.start_memory = _rss_mb()
        return self

    def __exit__(self, exc_type, exc, tb):
        elapsed = time.time() - self.start_time
        memory_used = _rss_mb() - self.start_memory
        self.timings[self.stage] = round(elapsed, 3)
        logger.info(f"Performance: {self.stage} - Time: {elapsed:.2f}s, Memory: {memory_used:.2f}MB")
        return False
