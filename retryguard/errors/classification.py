"""Error classification system."""
import asyncio
from dataclasses import dataclass
from enum import Enum


class ErrorCategory(str, Enum):
    TRANSIENT = "transient"
    PERMANENT = "permanent"
    CANCELLED = "cancelled"
    TIMEOUT = "timeout"
    NETWORK = "network"
    DEFECT = "defect"
    UNKNOWN = "unknown"


@dataclass
class ClassifiedError:
    category: ErrorCategory
    retryable: bool
    message: str
    log_level: str = "error"


# Programming mistakes: retrying these only repeats the bug.
DEFECT_TYPES = (
    TypeError,
    AttributeError,
    NameError,
    NotImplementedError,
    AssertionError,
)


def classify_error(exception: BaseException) -> ClassifiedError:
    """Classify an exception into a category with a retryability hint."""
    from retryguard.errors.types import Cancelled, PermanentError, TransientError

    message = f"{type(exception).__name__}: {exception}"

    if isinstance(exception, (Cancelled, asyncio.CancelledError)):
        return ClassifiedError(ErrorCategory.CANCELLED, False, message, log_level="info")
    if isinstance(exception, PermanentError):
        return ClassifiedError(ErrorCategory.PERMANENT, False, message)
    if isinstance(exception, TransientError):
        return ClassifiedError(ErrorCategory.TRANSIENT, True, message, log_level="warning")
    if isinstance(exception, (asyncio.TimeoutError, TimeoutError)):
        return ClassifiedError(ErrorCategory.TIMEOUT, True, message, log_level="warning")
    if isinstance(exception, ConnectionError):
        return ClassifiedError(ErrorCategory.NETWORK, True, message, log_level="warning")
    if isinstance(exception, DEFECT_TYPES):
        return ClassifiedError(ErrorCategory.DEFECT, False, message, log_level="critical")

    return ClassifiedError(ErrorCategory.UNKNOWN, True, message)


def is_transient(exception: BaseException) -> bool:
    """Retry predicate that refuses cancellations, permanent errors and defects."""
    return classify_error(exception).retryable
