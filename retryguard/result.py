"""Explicit success/failure value an operation can return instead of raising."""
from dataclasses import dataclass
from typing import Any, Generic, Optional, TypeVar

T = TypeVar('T')


@dataclass(frozen=True)
class Result(Generic[T]):
    """
    Outcome of one operation invocation.

    Usage:
        async def fetch():
            resp = await client.get(url)
            if resp.status == 503:
                return Result.fail(RuntimeError("busy"))
            if resp.status == 404:
                return Result.fail(LookupError(url), retryable=False)
            return Result.ok(resp.body)
    """
    value: Optional[T] = None
    error: Optional[BaseException] = None
    retryable: bool = True

    @classmethod
    def ok(cls, value: Any = None) -> "Result":
        return cls(value=value)

    @classmethod
    def fail(cls, error: BaseException, retryable: bool = True) -> "Result":
        if error is None:
            raise ValueError("Result.fail requires an error")
        return cls(error=error, retryable=retryable)

    @property
    def is_ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> T:
        """Return the value or raise the stored error."""
        if self.error is not None:
            raise self.error
        return self.value
