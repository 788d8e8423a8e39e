"""
retryguard - bounded async retries and supervised fire-and-forget tasks.

Usage:
    from retryguard import RetrySupervisor, CancellationToken

    supervisor = RetrySupervisor()
    value = await supervisor.retry(fetch, max_attempts=3, delay=0.2)
    supervisor.supervise_detached(sync_ledger, on_error=report)
"""

from retryguard.errors import (
    AttemptFailed,
    Cancelled,
    DetachedFailure,
    InvalidPolicyError,
    PermanentError,
    RetryExhausted,
    SupervisorError,
    TransientError,
)
from retryguard.executor import AsyncioExecutor, CancellationToken, Executor
from retryguard.policy import RetryPolicy
from retryguard.result import Result
from retryguard.supervisor import (
    RetryRun,
    RetryState,
    RetrySupervisor,
    SupervisedTask,
    fire_and_forget,
    retry_async,
)

__version__ = "0.1.0"

__all__ = [
    "AsyncioExecutor",
    "AttemptFailed",
    "CancellationToken",
    "Cancelled",
    "DetachedFailure",
    "Executor",
    "InvalidPolicyError",
    "PermanentError",
    "Result",
    "RetryExhausted",
    "RetryPolicy",
    "RetryRun",
    "RetryState",
    "RetrySupervisor",
    "SupervisedTask",
    "SupervisorError",
    "TransientError",
    "fire_and_forget",
    "retry_async",
]
