"""
Retry Supervisor - bounded retries and supervised background work.

This module provides:
- retry(): run an async operation, retrying failures with a fixed,
  cancellation-aware delay between attempts
- supervise_detached(): fire-and-forget execution whose failure is
  reported once to an observer instead of the caller
- Module-level retry_async() / fire_and_forget() helpers

Usage:
    from retryguard.supervisor import RetrySupervisor

    supervisor = RetrySupervisor()
    quote = await supervisor.retry(fetch_quote, max_attempts=3, delay=0.2)

    supervisor.supervise_detached(refresh_cache, on_error=alerts.push)
"""

import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, List, Optional, TypeVar, Union

from retryguard.errors.types import (
    AttemptFailed,
    Cancelled,
    DetachedFailure,
    RetryExhausted,
    SupervisorError,
)
from retryguard.executor import CancellationToken, Executor, get_default_executor
from retryguard.policy import RetryPolicy
from retryguard.result import Result
from retryguard.task_tracker import Handle

logger = logging.getLogger(__name__)

T = TypeVar('T')

Operation = Callable[[], Awaitable[T]]


class RetryState(Enum):
    """Lifecycle of a single retry() call."""
    PENDING = "pending"
    ATTEMPTING = "attempting"
    ATTEMPT_FAILED = "attempt_failed"
    SUCCEEDED = "succeeded"
    EXHAUSTED = "exhausted"
    FAILED = "failed"            # non-retryable error
    CANCELLED = "cancelled"


_TRANSITIONS = {
    RetryState.PENDING: {RetryState.ATTEMPTING, RetryState.CANCELLED},
    RetryState.ATTEMPTING: {
        RetryState.SUCCEEDED, RetryState.ATTEMPT_FAILED, RetryState.CANCELLED,
    },
    RetryState.ATTEMPT_FAILED: {
        RetryState.ATTEMPTING, RetryState.EXHAUSTED, RetryState.FAILED, RetryState.CANCELLED,
    },
    RetryState.SUCCEEDED: set(),
    RetryState.EXHAUSTED: set(),
    RetryState.FAILED: set(),
    RetryState.CANCELLED: set(),
}


@dataclass
class AttemptRecord:
    """A single attempt."""
    attempt_number: int
    started_at: datetime
    delay_before: float
    ended_at: Optional[datetime] = None
    succeeded: bool = False
    error: Optional[str] = None


@dataclass
class RetryRun:
    """Per-call record of a retry sequence."""
    operation_name: str
    policy: RetryPolicy
    state: RetryState = RetryState.PENDING
    attempts: List[AttemptRecord] = field(default_factory=list)
    started_at: datetime = field(default_factory=datetime.now)
    completed_at: Optional[datetime] = None
    total_delay: float = 0.0

    @property
    def is_terminal(self) -> bool:
        return not _TRANSITIONS[self.state]

    def transition(self, new_state: RetryState) -> None:
        if new_state not in _TRANSITIONS[self.state]:
            raise SupervisorError(
                f"Illegal retry transition {self.state.value} -> {new_state.value}",
                operation=self.operation_name,
            )
        self.state = new_state
        if self.is_terminal:
            self.completed_at = datetime.now()

    def begin_attempt(self, number: int, delay_before: float) -> AttemptRecord:
        self.transition(RetryState.ATTEMPTING)
        record = AttemptRecord(attempt_number=number, started_at=datetime.now(), delay_before=delay_before)
        self.attempts.append(record)
        return record

    def end_attempt(self, record: AttemptRecord, error: Optional[BaseException] = None) -> None:
        record.ended_at = datetime.now()
        if error is None:
            record.succeeded = True
            self.transition(RetryState.SUCCEEDED)
        else:
            record.error = f"{type(error).__name__}: {error}"
            self.transition(RetryState.ATTEMPT_FAILED)

    def to_dict(self) -> dict:
        return {
            "operation": self.operation_name,
            "state": self.state.value,
            "policy": self.policy.to_dict(),
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "total_delay": self.total_delay,
            "attempts": [{
                "attempt_number": a.attempt_number,
                "started_at": a.started_at.isoformat(),
                "ended_at": a.ended_at.isoformat() if a.ended_at else None,
                "succeeded": a.succeeded,
                "error": a.error,
                "delay_before": a.delay_before,
            } for a in self.attempts],
        }


class SupervisedTask:
    """
    Handle for work started by supervise_detached().

    The observer is called at most once, only when the work fails.
    """

    def __init__(self, name: str, on_error: Optional[Callable[[BaseException], None]] = None):
        self.name = name
        self.failure: Optional[DetachedFailure] = None
        self.handle: Optional[Handle] = None
        self._on_error = on_error
        self._reported = False

    def done(self) -> bool:
        return self.handle is not None and self.handle.done()

    def cancelled(self) -> bool:
        return self.handle is not None and self.handle.cancelled()

    def cancel(self) -> bool:
        if self.handle is None:
            return False
        return self.handle.cancel()

    def _report_failure(self, error: BaseException) -> None:
        if self._reported:
            return
        self._reported = True
        self.failure = DetachedFailure(self.name, error)
        if self._on_error is None:
            return
        try:
            self._on_error(error)
        except Exception as observer_err:
            logger.error(f"[{self.name}] on_error observer failed: {observer_err}")

    def __repr__(self) -> str:
        if not self.done():
            status = "running"
        elif self.cancelled():
            status = "cancelled"
        elif self.failure is not None:
            status = "failed"
        else:
            status = "succeeded"
        return f"<SupervisedTask {self.name} {status}>"


async def _invoke(operation: Callable[[], Any]) -> Any:
    result = operation()
    if inspect.isawaitable(result):
        result = await result
    return result


async def _detached_body(operation: Union[Callable[[], Any], Awaitable[Any]]) -> Any:
    if inspect.isawaitable(operation):
        outcome = await operation
    else:
        outcome = await _invoke(operation)
    if isinstance(outcome, Result):
        return outcome.unwrap()
    return outcome


def _consume_outcome(task: asyncio.Future) -> None:
    # Abandoned attempts may still finish with an error; mark it retrieved.
    if not task.cancelled():
        task.exception()


def _operation_name(operation: Any, name: Optional[str]) -> str:
    if name:
        return name
    return getattr(operation, "__qualname__", None) or getattr(operation, "__name__", None) or "operation"


class RetrySupervisor:
    """
    Executes async operations with bounded retries, or detached in the background.

    The supervisor itself holds no per-call state, so one instance can serve
    any number of concurrent retry() and supervise_detached() calls.
    """

    def __init__(
        self,
        policy: Optional[RetryPolicy] = None,
        executor: Optional[Executor] = None,
        on_retry: Optional[Callable[[int, int, BaseException], None]] = None,
    ):
        """
        Args:
            policy: Default retry policy (3 attempts, 0.2s apart)
            executor: Scheduling capability; defaults to the shared asyncio executor
            on_retry: Called with (attempt, max_attempts, error) before each delay
        """
        self.policy = policy or RetryPolicy()
        self.executor = executor or get_default_executor()
        self.on_retry = on_retry

    async def retry(
        self,
        operation: Operation,
        max_attempts: Optional[int] = None,
        delay: Optional[float] = None,
        *,
        cancel_token: Optional[CancellationToken] = None,
        name: Optional[str] = None,
        policy: Optional[RetryPolicy] = None,
    ) -> T:
        """
        Run `operation` until it succeeds or the attempt budget is spent.

        Args:
            operation: Zero-argument callable returning an awaitable (or a Result)
            max_attempts: Overrides the policy's attempt count for this call
            delay: Overrides the policy's delay (seconds) for this call
            cancel_token: Aborts the current attempt or delay when cancelled
            name: Name used in logs; defaults to the callable's name
            policy: Policy for this call instead of the supervisor default

        Returns:
            The operation's result

        Raises:
            RetryExhausted: every attempt failed with a retryable error
            Cancelled: cancel_token fired before completion
            Exception: the operation's own error when it is not retryable
        """
        policy = (policy or self.policy).with_overrides(max_attempts=max_attempts, delay=delay)
        op_name = _operation_name(operation, name)
        run = RetryRun(operation_name=op_name, policy=policy)
        last_failure: Optional[AttemptFailed] = None

        for attempt in range(1, policy.max_attempts + 1):
            delay_before = 0.0
            if attempt > 1:
                delay_before = policy.delay
                try:
                    await self.executor.sleep(policy.delay, cancel_token)
                except Cancelled:
                    run.transition(RetryState.CANCELLED)
                    logger.info(f"[{op_name}] Cancelled while waiting to retry (after attempt {attempt - 1})")
                    raise Cancelled(
                        f"{op_name} cancelled while waiting to retry", attempt=attempt - 1
                    ) from last_failure
                run.total_delay += policy.delay
            elif cancel_token is not None and cancel_token.cancelled:
                run.transition(RetryState.CANCELLED)
                raise Cancelled(f"{op_name} cancelled before first attempt", attempt=0)

            record = run.begin_attempt(attempt, delay_before)
            try:
                outcome = await self._attempt(operation, cancel_token, op_name, attempt)
            except Cancelled:
                record.ended_at = datetime.now()
                run.transition(RetryState.CANCELLED)
                logger.info(f"[{op_name}] Cancelled during attempt {attempt}")
                raise
            except asyncio.CancelledError:
                record.ended_at = datetime.now()
                run.transition(RetryState.CANCELLED)
                raise
            except Exception as e:
                error = e
                retryable = policy.should_retry(e)
            else:
                if not isinstance(outcome, Result):
                    run.end_attempt(record)
                    self._log_success(op_name, attempt)
                    return outcome
                if outcome.is_ok:
                    run.end_attempt(record)
                    self._log_success(op_name, attempt)
                    return outcome.value
                error = outcome.error
                retryable = outcome.retryable and policy.should_retry(error)

            run.end_attempt(record, error)
            last_failure = AttemptFailed(attempt, error, op_name)
            last_failure.__cause__ = error

            if not retryable:
                run.transition(RetryState.FAILED)
                logger.error(f"[{op_name}] Attempt {attempt} failed with non-retryable error: {error}")
                raise error

            if attempt < policy.max_attempts:
                logger.warning(
                    f"[{op_name}] Attempt {attempt}/{policy.max_attempts} failed: {error}. "
                    f"Retrying in {policy.delay:.2f}s..."
                )
                self._notify_retry(op_name, attempt, policy.max_attempts, error)

        run.transition(RetryState.EXHAUSTED)
        logger.error(f"[{op_name}] All {policy.max_attempts} attempts failed; last error: {last_failure.error}")
        raise RetryExhausted(policy.max_attempts, last_failure, run=run) from last_failure

    async def _attempt(
        self,
        operation: Operation,
        cancel_token: Optional[CancellationToken],
        op_name: str,
        attempt: int,
    ) -> Any:
        """Run one attempt, racing it against the cancellation token if there is one."""
        if cancel_token is None:
            return await _invoke(operation)

        attempt_task = asyncio.ensure_future(_invoke(operation))
        cancel_waiter = asyncio.ensure_future(cancel_token.wait())
        try:
            done, _ = await asyncio.wait(
                {attempt_task, cancel_waiter}, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            cancel_waiter.cancel()
            if not attempt_task.done():
                attempt_task.cancel()
                attempt_task.add_done_callback(_consume_outcome)

        if attempt_task in done:
            return attempt_task.result()
        raise Cancelled(f"{op_name} cancelled during attempt {attempt}", attempt=attempt)

    def _log_success(self, op_name: str, attempt: int) -> None:
        if attempt > 1:
            logger.info(f"[{op_name}] Succeeded on attempt {attempt}")

    def _notify_retry(self, op_name: str, attempt: int, max_attempts: int, error: BaseException) -> None:
        if self.on_retry is None:
            return
        try:
            self.on_retry(attempt, max_attempts, error)
        except Exception as hook_err:
            logger.error(f"[{op_name}] on_retry hook failed: {hook_err}")

    def supervise_detached(
        self,
        operation: Union[Operation, Awaitable[Any]],
        on_error: Optional[Callable[[BaseException], None]] = None,
        *,
        name: Optional[str] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> SupervisedTask:
        """
        Start `operation` in the background and return immediately.

        A failure is logged and handed once to `on_error`; it never reaches
        the caller. Success and cancellation are not reported.

        Args:
            operation: Zero-argument async callable, or an awaitable
            on_error: Observer called with the underlying exception
            name: Task name used in logs
            cancel_token: Cancels the background work when triggered

        Returns:
            SupervisedTask handle
        """
        task_name = _operation_name(operation, name)
        supervised = SupervisedTask(task_name, on_error)

        def _on_cancel() -> None:
            logger.debug(f"[{task_name}] Detached task cancelled")

        try:
            supervised.handle = self.executor.run(
                _detached_body(operation),
                name=task_name,
                on_error=supervised._report_failure,
                on_cancel=_on_cancel,
            )
        except Exception:
            # The wrapper was never started, so the caller's coroutine never will be.
            if asyncio.iscoroutine(operation):
                operation.close()
            raise

        if cancel_token is not None:
            cancel_token.add_callback(supervised.cancel)
            supervised.handle.add_done_callback(
                lambda _handle: cancel_token.remove_callback(supervised.cancel)
            )

        return supervised


_default_supervisor: Optional[RetrySupervisor] = None


def get_supervisor() -> RetrySupervisor:
    """Get or create the shared supervisor."""
    global _default_supervisor
    if _default_supervisor is None:
        _default_supervisor = RetrySupervisor()
    return _default_supervisor


async def retry_async(
    operation: Operation,
    max_attempts: int = 3,
    delay: float = 0.2,
    **kwargs,
) -> T:
    """Retry an async operation using the shared supervisor."""
    return await get_supervisor().retry(operation, max_attempts, delay, **kwargs)


def fire_and_forget(
    operation: Union[Operation, Awaitable[Any]],
    on_error: Optional[Callable[[BaseException], None]] = None,
    **kwargs,
) -> SupervisedTask:
    """
    Run work in the background, logging errors and reporting them to on_error.

    Use this for tasks where you don't need the result but want
    errors to be observed rather than silently swallowed.
    """
    return get_supervisor().supervise_detached(operation, on_error, **kwargs)
