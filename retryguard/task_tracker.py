"""
Task Tracker - keeps background work referenced, observed and counted.

asyncio only holds weak references to tasks, so a task created and then
dropped by its caller can be garbage collected mid-flight. The tracker keeps
a strong reference until the task finishes, logs failures with their
traceback, and routes the outcome to optional callbacks.

Usage:
    from retryguard.task_tracker import TaskTracker

    tracker = TaskTracker("notifier")
    task = tracker.create_task(send_digest(), name="digest")
    ...
    await tracker.cancel_all()
"""

import asyncio
import concurrent.futures
import functools
import logging
import threading
import traceback
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Coroutine, Dict, List, Optional, Union

logger = logging.getLogger(__name__)

Handle = Union[asyncio.Future, concurrent.futures.Future]


@dataclass
class TaskInfo:
    """Information about a tracked task."""
    name: str
    created_at: datetime
    handle: Handle
    completed_at: Optional[datetime] = None
    error: Optional[str] = None
    cancelled: bool = False


class TaskTracker:
    """
    Tracks background tasks to prevent silent failures and lost references.

    Features:
    - Strong references until completion
    - Automatic error logging when tasks fail
    - Success, failure and cancellation callbacks
    - Statistics on task execution
    """

    def __init__(self, component_name: str = "default"):
        """
        Initialize task tracker.

        Args:
            component_name: Name of the component for logging
        """
        self.component_name = component_name
        self._tasks: Dict[str, TaskInfo] = {}
        self._task_counter = 0
        self._total_created = 0
        self._total_succeeded = 0
        self._total_failed = 0
        self._total_cancelled = 0
        self._lock = threading.Lock()

    def _register(self, name: Optional[str]) -> str:
        with self._lock:
            self._task_counter += 1
            self._total_created += 1
            task_name = name or f"task_{self._task_counter}"
            full_name = f"{self.component_name}.{task_name}"
            if full_name in self._tasks:
                full_name = f"{full_name}#{self._task_counter}"
            return full_name

    def create_task(
        self,
        coro: Coroutine,
        name: Optional[str] = None,
        on_error: Optional[Callable[[BaseException], None]] = None,
        on_complete: Optional[Callable[[Any], None]] = None,
        on_cancel: Optional[Callable[[], None]] = None,
    ) -> asyncio.Task:
        """
        Create a tracked task on the running event loop.

        Args:
            coro: Coroutine to run
            name: Optional name for the task
            on_error: Called with the exception when the task fails
            on_complete: Called with the result when the task succeeds
            on_cancel: Called when the task is cancelled

        Returns:
            The created asyncio.Task
        """
        full_name = self._register(name)
        task = asyncio.create_task(coro, name=full_name)
        self._track(full_name, task, on_error, on_complete, on_cancel)
        return task

    def submit_threadsafe(
        self,
        coro: Coroutine,
        loop: asyncio.AbstractEventLoop,
        name: Optional[str] = None,
        on_error: Optional[Callable[[BaseException], None]] = None,
        on_complete: Optional[Callable[[Any], None]] = None,
        on_cancel: Optional[Callable[[], None]] = None,
    ) -> concurrent.futures.Future:
        """Schedule a coroutine on a loop owned by another thread."""
        full_name = self._register(name)
        future = asyncio.run_coroutine_threadsafe(coro, loop)
        self._track(full_name, future, on_error, on_complete, on_cancel)
        return future

    def _track(self, full_name, handle, on_error, on_complete, on_cancel) -> None:
        with self._lock:
            self._tasks[full_name] = TaskInfo(
                name=full_name,
                created_at=datetime.now(),
                handle=handle,
            )
        handle.add_done_callback(
            functools.partial(
                self._on_task_done,
                task_name=full_name,
                on_error=on_error,
                on_complete=on_complete,
                on_cancel=on_cancel,
            )
        )

    def _on_task_done(
        self,
        handle: Handle,
        task_name: str,
        on_error: Optional[Callable[[BaseException], None]] = None,
        on_complete: Optional[Callable[[Any], None]] = None,
        on_cancel: Optional[Callable[[], None]] = None,
    ) -> None:
        """Handle task completion."""
        with self._lock:
            info = self._tasks.pop(task_name, None)
        if info:
            info.completed_at = datetime.now()

        if handle.cancelled():
            with self._lock:
                self._total_cancelled += 1
            if info:
                info.cancelled = True
            logger.debug(f"[{task_name}] Task was cancelled")
            self._invoke_callback(task_name, "on_cancel", on_cancel)
            return

        exc = handle.exception()
        if exc is not None:
            with self._lock:
                self._total_failed += 1
            error_msg = f"{type(exc).__name__}: {exc}"
            if info:
                info.error = error_msg

            logger.error(
                f"[{task_name}] Task failed: {error_msg}\n"
                f"{''.join(traceback.format_exception(type(exc), exc, exc.__traceback__))}"
            )
            self._invoke_callback(task_name, "on_error", on_error, exc)
        else:
            with self._lock:
                self._total_succeeded += 1
            self._invoke_callback(task_name, "on_complete", on_complete, handle.result())

    @staticmethod
    def _invoke_callback(task_name: str, label: str, callback, *args) -> None:
        if callback is None:
            return
        try:
            callback(*args)
        except Exception as callback_err:
            logger.error(f"[{task_name}] {label} callback failed: {callback_err}")

    def get_running_tasks(self) -> List[TaskInfo]:
        """Get all tasks that have not finished yet."""
        with self._lock:
            return [info for info in self._tasks.values() if not info.handle.done()]

    def __len__(self) -> int:
        with self._lock:
            return len(self._tasks)

    async def cancel_all(self, timeout: float = 5.0) -> int:
        """
        Cancel all running tasks created on the current loop.

        Args:
            timeout: Seconds to wait for tasks to complete

        Returns:
            Number of tasks cancelled
        """
        running = self.get_running_tasks()
        if not running:
            return 0

        for info in running:
            info.handle.cancel()

        tasks = [info.handle for info in running if isinstance(info.handle, asyncio.Future)]
        if tasks:
            try:
                await asyncio.wait_for(
                    asyncio.gather(*tasks, return_exceptions=True),
                    timeout=timeout
                )
            except asyncio.TimeoutError:
                logger.warning(f"[{self.component_name}] Some tasks did not cancel within {timeout}s")

        return len(running)

    async def drain(self, timeout: Optional[float] = None) -> None:
        """Wait for every tracked task on the current loop to finish."""
        tasks = [
            info.handle for info in self.get_running_tasks()
            if isinstance(info.handle, asyncio.Future)
        ]
        if tasks:
            await asyncio.wait(tasks, timeout=timeout)

    def get_stats(self) -> Dict[str, Any]:
        """Get task tracker statistics."""
        with self._lock:
            return {
                "component": self.component_name,
                "total_created": self._total_created,
                "total_succeeded": self._total_succeeded,
                "total_failed": self._total_failed,
                "total_cancelled": self._total_cancelled,
                "currently_running": len(self._tasks),
                "success_rate": (
                    self._total_succeeded / self._total_created * 100
                    if self._total_created > 0 else 0
                ),
            }
