"""
Error handling and exception classes.

Two groups live here:
1. Terminal outcomes of supervised calls (RetryExhausted, Cancelled,
   DetachedFailure) and the per-attempt AttemptFailed record.
2. Errors an operation may raise to steer retrying (TransientError,
   PermanentError and subclasses).

Example usage:
    from retryguard.errors import RetryExhausted, Cancelled

    try:
        await supervisor.retry(fetch)
    except RetryExhausted as exc:
        logger.error(f"gave up: {exc.last_error}")
    except Cancelled:
        logger.info("abandoned by caller")
"""

from retryguard.errors.types import (
    SupervisorError, InvalidPolicyError, ConfigurationError,
    AttemptFailed, RetryExhausted, Cancelled, DetachedFailure,
    TransientError, PermanentError, CommandFailedError,
)
from retryguard.errors.classification import (
    classify_error, is_transient, ErrorCategory, ClassifiedError,
)

__all__ = [
    "SupervisorError", "InvalidPolicyError", "ConfigurationError",
    "AttemptFailed", "RetryExhausted", "Cancelled", "DetachedFailure",
    "TransientError", "PermanentError", "CommandFailedError",
    "classify_error", "is_transient", "ErrorCategory", "ClassifiedError",
]
