"""
Async Utilities - small asyncio patterns used alongside the supervisor.

Usage:
    from retryguard.async_utils import when_all, delay, gather_with_concurrency

    prices, volumes = await when_all(fetch_prices(), fetch_volumes())
    await delay(0.5, cancel_token=token)
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Any, Awaitable, Coroutine, List, Optional

from retryguard.executor import CancellationToken, get_default_executor


async def when_all(*aws: Awaitable[Any], return_exceptions: bool = False) -> List[Any]:
    """Run awaitables concurrently and return their results in argument order."""
    if not aws:
        return []
    return list(await asyncio.gather(*aws, return_exceptions=return_exceptions))


async def delay(seconds: float, cancel_token: Optional[CancellationToken] = None) -> None:
    """
    Sleep that a cancellation token can cut short.

    Raises:
        Cancelled: if the token fires before the delay elapses
    """
    if seconds < 0:
        raise ValueError(f"delay must be >= 0, got {seconds}")
    await get_default_executor().sleep(seconds, cancel_token)


@asynccontextmanager
async def timeout_context(seconds: float, message: str = "Operation timed out"):
    """
    Async context manager with timeout.

    Usage:
        async with timeout_context(5.0, "API call"):
            await long_operation()
    """
    try:
        async with asyncio.timeout(seconds):
            yield
    except asyncio.TimeoutError:
        raise asyncio.TimeoutError(f"{message} after {seconds}s")


async def gather_with_concurrency(
    n: int,
    *coros: Coroutine,
    return_exceptions: bool = False,
) -> List[Any]:
    """
    Run coroutines with limited concurrency.

    Args:
        n: Maximum concurrent coroutines
        coros: Coroutines to run
        return_exceptions: If True, return exceptions instead of raising

    Returns:
        List of results in order
    """
    if n < 1:
        raise ValueError(f"concurrency limit must be >= 1, got {n}")
    semaphore = asyncio.Semaphore(n)

    async def limited_coro(coro: Coroutine) -> Any:
        async with semaphore:
            return await coro

    return await asyncio.gather(
        *[limited_coro(c) for c in coros],
        return_exceptions=return_exceptions,
    )
