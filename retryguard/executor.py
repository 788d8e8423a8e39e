"""
Executor - the scheduling capability the supervisor runs on.

The supervisor only needs two things from its host: start a piece of async
work and get a handle back, and sleep in a way an external cancellation
request can interrupt. `AsyncioExecutor` provides both on top of an asyncio
event loop; tests swap in a fake that records sleeps.
"""

import asyncio
import logging
import threading
from typing import Any, Awaitable, Callable, Coroutine, List, Optional, Protocol

from retryguard.errors.types import Cancelled, SupervisorError
from retryguard.task_tracker import Handle, TaskTracker

logger = logging.getLogger(__name__)


class CancellationToken:
    """
    Cooperative cancellation signal shared between a caller and the work it started.

    May be cancelled from any thread. Waiters must share one event loop.

    Usage:
        token = CancellationToken()
        task = asyncio.create_task(supervisor.retry(fetch, cancel_token=token))
        ...
        token.cancel()
    """

    def __init__(self):
        self._cancelled = False
        self._event: Optional[asyncio.Event] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._callbacks: List[Callable[[], None]] = []
        self._lock = threading.Lock()

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        """Request cancellation. Idempotent."""
        with self._lock:
            if self._cancelled:
                return
            self._cancelled = True
            callbacks, self._callbacks = self._callbacks, []
            event, loop = self._event, self._loop

        if event is not None:
            self._wake(event, loop)
        for callback in callbacks:
            try:
                callback()
            except Exception as e:
                logger.error(f"Cancellation callback failed: {e}")

    def add_callback(self, callback: Callable[[], None]) -> None:
        """Run callback on cancel (immediately if already cancelled)."""
        with self._lock:
            if not self._cancelled:
                self._callbacks.append(callback)
                return
        callback()

    def remove_callback(self, callback: Callable[[], None]) -> None:
        with self._lock:
            try:
                self._callbacks.remove(callback)
            except ValueError:
                pass

    async def wait(self) -> None:
        """Block until cancel() is called."""
        with self._lock:
            if self._cancelled:
                return
            if self._event is None:
                self._event = asyncio.Event()
                self._loop = asyncio.get_running_loop()
            event = self._event
        await event.wait()

    @staticmethod
    def _wake(event: asyncio.Event, loop: asyncio.AbstractEventLoop) -> None:
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is loop:
            event.set()
            return
        try:
            loop.call_soon_threadsafe(event.set)
        except RuntimeError:
            logger.debug("Cancellation waiter loop already closed")


class Executor(Protocol):
    """Host scheduling capability consumed by RetrySupervisor."""

    def run(
        self,
        operation: Awaitable[Any],
        name: Optional[str] = None,
        on_error: Optional[Callable[[BaseException], None]] = None,
        on_complete: Optional[Callable[[Any], None]] = None,
        on_cancel: Optional[Callable[[], None]] = None,
    ) -> Handle:
        ...

    async def sleep(self, seconds: float, cancel_token: Optional[CancellationToken] = None) -> None:
        ...


class AsyncioExecutor:
    """
    Executor backed by an asyncio event loop.

    Without a bound loop, work goes to the loop running in the calling
    thread. With a bound loop owned by another thread, work is submitted
    thread-safely and run() returns a concurrent.futures.Future.
    """

    def __init__(
        self,
        loop: Optional[asyncio.AbstractEventLoop] = None,
        tracker: Optional[TaskTracker] = None,
    ):
        self._loop = loop
        self.tracker = tracker or TaskTracker("executor")

    def run(
        self,
        operation: Awaitable[Any],
        name: Optional[str] = None,
        on_error: Optional[Callable[[BaseException], None]] = None,
        on_complete: Optional[Callable[[Any], None]] = None,
        on_cancel: Optional[Callable[[], None]] = None,
    ) -> Handle:
        """Schedule an awaitable and return its handle without waiting."""
        coro = _ensure_coroutine(operation)
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        if self._loop is None or self._loop is running:
            if running is None:
                coro.close()
                raise SupervisorError(
                    "No running event loop; bind AsyncioExecutor to a loop to schedule from this thread"
                )
            return self.tracker.create_task(
                coro, name=name, on_error=on_error, on_complete=on_complete, on_cancel=on_cancel
            )

        return self.tracker.submit_threadsafe(
            coro, self._loop, name=name, on_error=on_error, on_complete=on_complete, on_cancel=on_cancel
        )

    async def sleep(self, seconds: float, cancel_token: Optional[CancellationToken] = None) -> None:
        """
        Sleep for `seconds`, aborting as soon as the token is cancelled.

        Raises:
            Cancelled: if the token was or becomes cancelled before the delay elapses
        """
        if cancel_token is None:
            await asyncio.sleep(seconds)
            return

        if cancel_token.cancelled:
            raise Cancelled("Cancelled before delay started")

        try:
            await asyncio.wait_for(cancel_token.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return
        raise Cancelled(f"Cancelled during {seconds:.3f}s delay")


async def _await(awaitable: Awaitable[Any]) -> Any:
    return await awaitable


def _ensure_coroutine(operation: Awaitable[Any]) -> Coroutine:
    if asyncio.iscoroutine(operation):
        return operation
    if hasattr(operation, "__await__"):
        return _await(operation)
    raise TypeError(f"Expected an awaitable, got {type(operation).__name__}")


_default_executor: Optional[AsyncioExecutor] = None


def get_default_executor() -> AsyncioExecutor:
    """Get or create the shared executor used by module-level helpers."""
    global _default_executor
    if _default_executor is None:
        _default_executor = AsyncioExecutor(tracker=TaskTracker("global"))
    return _default_executor
