"""Error type hierarchy for retryguard.

Separates the terminal outcomes of a supervised call (gave up, abandoned by
the caller) from the errors raised by the operations being supervised.
"""

from typing import Any, Optional


class SupervisorError(Exception):
    """Base exception for all retryguard errors."""

    def __init__(self, message: str, **context):
        super().__init__(message)
        self.message = message
        self.context = context


class InvalidPolicyError(SupervisorError, ValueError):
    """Retry policy values are out of range."""
    pass


class ConfigurationError(SupervisorError):
    """Settings could not be loaded or validated."""
    pass


class AttemptFailed(SupervisorError):
    """A single invocation of an operation failed."""

    def __init__(self, attempt: int, error: BaseException, operation: str = "operation"):
        super().__init__(
            f"{operation} attempt {attempt} failed: {type(error).__name__}: {error}",
            attempt=attempt,
        )
        self.attempt = attempt
        self.error = error
        self.operation = operation


class RetryExhausted(SupervisorError):
    """Every permitted attempt failed."""

    def __init__(self, attempts: int, last_failure: AttemptFailed, run: Any = None):
        super().__init__(
            f"All {attempts} attempts failed; last error: {last_failure.error}",
            attempts=attempts,
        )
        self.attempts = attempts
        self.last_failure = last_failure
        self.run = run

    @property
    def last_error(self) -> BaseException:
        """The underlying error raised by the final attempt."""
        return self.last_failure.error


class Cancelled(SupervisorError):
    """An external cancellation request interrupted an attempt or delay."""

    def __init__(self, message: str = "Operation cancelled", attempt: Optional[int] = None):
        super().__init__(message, attempt=attempt)
        self.attempt = attempt


class DetachedFailure(SupervisorError):
    """Failure of a background operation, reported only to its observer."""

    def __init__(self, task_name: str, error: BaseException):
        super().__init__(
            f"[{task_name}] {type(error).__name__}: {error}",
            task_name=task_name,
        )
        self.task_name = task_name
        self.error = error


class TransientError(SupervisorError):
    """Errors that may resolve on retry (network blips, busy resources)."""

    def __init__(self, message: str, retry_after: Optional[float] = None, **context):
        super().__init__(message, **context)
        self.retry_after = retry_after


class PermanentError(SupervisorError):
    """Errors that won't resolve on retry (bad input, missing resource)."""
    pass


class CommandFailedError(TransientError):
    """A supervised shell command exited with a non-zero status."""

    def __init__(self, command: str, returncode: int, stderr: str = ""):
        super().__init__(
            f"Command {command!r} exited with status {returncode}",
            returncode=returncode,
        )
        self.command = command
        self.returncode = returncode
        self.stderr = stderr
