"""Exception helpers: fall back, wrap, describe."""
import logging
import traceback
from typing import Callable, Optional, Tuple, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar('T')


def try_or(func: Callable[[], T], fallback: T) -> T:
    """Return func() or `fallback` if it raises."""
    try:
        return func()
    except Exception as e:
        logger.debug(f"try_or falling back after {type(e).__name__}: {e}")
        return fallback


def try_wrap(func: Callable[[], T]) -> Tuple[bool, Optional[T]]:
    """Return (True, result) on success, (False, None) on error."""
    try:
        return True, func()
    except Exception as e:
        logger.debug(f"try_wrap caught {type(e).__name__}: {e}")
        return False, None


def exception_details(exc: BaseException) -> str:
    """Type, message and traceback of an exception as one string."""
    tb = "".join(traceback.format_tb(exc.__traceback__)) if exc.__traceback__ else ""
    return f"{type(exc).__name__}: {exc}\n{tb}".rstrip("\n")


def throw_if_none(value: Optional[T], message: str) -> T:
    if value is None:
        raise ValueError(message)
    return value


def log_and_raise(exc: BaseException, log: Optional[Callable[[str], None]] = None):
    """Log the exception message, then raise it."""
    (log or logger.error)(str(exc))
    raise exc
