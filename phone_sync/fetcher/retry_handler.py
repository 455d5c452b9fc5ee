"""Retry handler with linear backoff and a hard attempt ceiling."""

import asyncio
import inspect
from typing import Any, Awaitable, Callable, Optional

from phone_sync.errors import SourceAPIError


def calculate_backoff_delay(
    attempt: int,
    base_delay: float = 1.0,
    max_delay: Optional[float] = None
) -> float:
    """
    Calculate linear backoff delay.

    Formula: attempt * base_delay, optionally capped at max_delay

    Args:
        attempt: Number of the attempt that just failed (1-indexed)
        base_delay: Base delay in seconds
        max_delay: Optional delay cap in seconds

    Returns:
        Delay in seconds
    """
    delay = base_delay * attempt
    if max_delay is not None:
        delay = min(max_delay, delay)
    return delay


def default_is_retryable(error: Exception) -> bool:
    """SourceAPIErrors say for themselves; anything else is retried."""
    if isinstance(error, SourceAPIError):
        return error.retryable
    return True


class RetryHandler:
    """
    Runs an async (or sync) callable up to ``max_attempts`` times.

    Sleeps ``attempt * base_delay`` between attempts. Non-retryable errors
    and the error from the final attempt propagate unchanged.
    """

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        max_delay: Optional[float] = None,
        is_retryable: Callable[[Exception], bool] = default_is_retryable,
        sleeper: Callable[[float], Awaitable[None]] = asyncio.sleep,
        on_retry: Optional[Callable[[int, Exception, float], None]] = None,
    ):
        """
        Initialize retry handler.

        Args:
            max_attempts: Total attempts, including the first one
            base_delay: Base delay for linear backoff in seconds
            max_delay: Optional cap on a single delay
            is_retryable: Predicate deciding whether an error is worth retrying
            sleeper: Async sleep function (default: asyncio.sleep)
            on_retry: Callback(attempt, error, delay) invoked before each backoff
        """
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got: {max_attempts}")
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.is_retryable = is_retryable
        self._sleep = sleeper
        self.on_retry = on_retry

    async def execute(
        self,
        func: Callable[..., Any],
        *args,
        **kwargs
    ) -> Any:
        """
        Execute function with retry logic.

        Args:
            func: Function to execute
            *args: Positional arguments for func
            **kwargs: Keyword arguments for func

        Returns:
            Result from successful function execution

        Raises:
            Exception: The last error once attempts are exhausted, or the
                first non-retryable error
        """
        for attempt in range(1, self.max_attempts + 1):
            try:
                result = func(*args, **kwargs)
                if inspect.isawaitable(result):
                    result = await result
                return result
            except Exception as e:
                if attempt >= self.max_attempts or not self.is_retryable(e):
                    raise

                delay = calculate_backoff_delay(attempt, self.base_delay, self.max_delay)
                if self.on_retry:
                    self.on_retry(attempt, e, delay)
                await self._sleep(delay)

        # Unreachable: the loop either returns or raises
        raise RuntimeError("retry loop exited without result")
