"""
Retry Policy - immutable configuration for a retry sequence.

Also decides, per failure, whether another attempt is allowed.
"""
import asyncio
from dataclasses import dataclass, replace
from datetime import timedelta
from typing import Any, Callable, Optional, Tuple, Type, Union

from retryguard.errors.types import InvalidPolicyError, PermanentError

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_DELAY = 0.2  # seconds


@dataclass(frozen=True)
class RetryPolicy:
    """Configuration for retry behavior."""
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    delay: Union[float, timedelta] = DEFAULT_DELAY
    retry_on: Tuple[Type[BaseException], ...] = (Exception,)
    fatal: Tuple[Type[BaseException], ...] = (PermanentError,)
    is_retryable: Optional[Callable[[BaseException], bool]] = None

    def __post_init__(self):
        if isinstance(self.delay, timedelta):
            object.__setattr__(self, "delay", self.delay.total_seconds())

        if isinstance(self.max_attempts, bool) or not isinstance(self.max_attempts, int):
            raise InvalidPolicyError(f"max_attempts must be an integer, got {self.max_attempts!r}")
        if self.max_attempts < 1:
            raise InvalidPolicyError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.delay < 0:
            raise InvalidPolicyError(f"delay must be >= 0, got {self.delay}")

    def with_overrides(
        self,
        max_attempts: Optional[int] = None,
        delay: Optional[Union[float, timedelta]] = None,
    ) -> "RetryPolicy":
        """Return a copy with the given fields replaced (None keeps the current value)."""
        changes = {}
        if max_attempts is not None:
            changes["max_attempts"] = max_attempts
        if delay is not None:
            changes["delay"] = delay
        return replace(self, **changes) if changes else self

    def should_retry(self, error: BaseException) -> bool:
        """Whether a failed attempt with this error may be followed by another."""
        if isinstance(error, asyncio.CancelledError):
            return False
        if self.fatal and isinstance(error, self.fatal):
            return False
        if not isinstance(error, self.retry_on):
            return False
        if self.is_retryable is not None:
            return bool(self.is_retryable(error))
        return True

    @classmethod
    def from_settings(cls, settings: Any, **kwargs) -> "RetryPolicy":
        """Build a policy from a SupervisorSettings instance."""
        return cls(
            max_attempts=settings.max_attempts,
            delay=settings.delay_seconds,
            **kwargs,
        )

    def to_dict(self) -> dict:
        return {
            "max_attempts": self.max_attempts,
            "delay": self.delay,
            "retry_on": [exc.__name__ for exc in self.retry_on],
            "fatal": [exc.__name__ for exc in self.fatal],
        }
