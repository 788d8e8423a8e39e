"""
Timing wrappers for logging how long work takes.

Usage:
    from retryguard.timing import timed, Stopwatch

    @timed("refresh")
    async def refresh():
        ...

    with Stopwatch() as sw:
        rebuild_index()
    logger.info(f"rebuilt in {sw.elapsed_ms:.1f}ms")
"""

import functools
import inspect
import logging
import time
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


class Stopwatch:
    """Monotonic stopwatch usable as a sync or async context manager."""

    def __init__(self):
        self._start: Optional[float] = None
        self._end: Optional[float] = None

    def start(self) -> "Stopwatch":
        self._start = time.perf_counter()
        self._end = None
        return self

    def stop(self) -> float:
        if self._start is None:
            raise RuntimeError("Stopwatch was never started")
        self._end = time.perf_counter()
        return self.elapsed

    @property
    def elapsed(self) -> float:
        """Seconds since start (or between start and stop)."""
        if self._start is None:
            return 0.0
        end = self._end if self._end is not None else time.perf_counter()
        return end - self._start

    @property
    def elapsed_ms(self) -> float:
        return self.elapsed * 1000

    def __enter__(self):
        return self.start()

    def __exit__(self, *args):
        self.stop()

    async def __aenter__(self):
        return self.start()

    async def __aexit__(self, *args):
        self.stop()


def time_call(func: Callable[[], Any]) -> float:
    """Run func and return the elapsed seconds."""
    with Stopwatch() as sw:
        func()
    return sw.elapsed


def log_time(func: Callable[[], Any], log: Optional[Callable[[str], None]] = None) -> Any:
    """Run func, log `Elapsed: Nms`, and return its result."""
    log = log or logger.info
    with Stopwatch() as sw:
        result = func()
    log(f"Elapsed: {sw.elapsed_ms:.0f}ms")
    return result


def log_around(label: str, log: Callable[[str], None], func: Callable[[], Any]) -> Any:
    """Log [START]/[END] markers around func."""
    log(f"[START] {label}")
    try:
        return func()
    finally:
        log(f"[END] {label}")


def labelled_logger(label: str, log: Optional[Callable[[str], None]] = None) -> Callable[[Any], None]:
    """Return a one-argument logger that prefixes each value with `label: `."""
    log = log or logger.info

    def _log(value: Any) -> None:
        log(f"{label}: {value}")

    return _log


def timed(label: Optional[str] = None, level: int = logging.DEBUG):
    """Decorator logging the duration of a sync or async function."""
    def decorator(func):
        name = label or func.__qualname__

        @functools.wraps(func)
        async def async_wrapper(*args, **kwargs):
            async with Stopwatch() as sw:
                result = await func(*args, **kwargs)
            logger.log(level, f"{name} took {sw.elapsed_ms:.1f}ms")
            return result

        @functools.wraps(func)
        def sync_wrapper(*args, **kwargs):
            with Stopwatch() as sw:
                result = func(*args, **kwargs)
            logger.log(level, f"{name} took {sw.elapsed_ms:.1f}ms")
            return result

        if inspect.iscoroutinefunction(func):
            return async_wrapper
        return sync_wrapper

    return decorator
