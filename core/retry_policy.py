"""
Retry Policy
============

Generic async retry with exponential backoff, parameterized by a
retryable-error predicate. Used at the model client boundary.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


def exponential_backoff(base_delay: float = 2.0, factor: float = 2.0, max_delay: float = 30.0):
    """
    Build a backoff function: attempt (1-based) -> delay in seconds.

    Example:
        >>> backoff = exponential_backoff(base_delay=1.0)
        >>> [backoff(n) for n in (1, 2, 3)]
        [1.0, 2.0, 4.0]
    """
    def backoff(attempt: int) -> float:
        return min(max_delay, base_delay * (factor ** (attempt - 1)))
    return backoff


def default_retryable(error: BaseException) -> bool:
    """Retry rate-limited and transient network failures only."""
    # Local import keeps core free of a hard dependency on providers
    from providers.provider import RequestError
    return isinstance(error, RequestError) and error.retryable


class RetryPolicy:
    """
    Retry policy for async calls.

    Retries while the predicate accepts the raised error and attempts
    remain; otherwise the error propagates unchanged.

    Example:
        >>> policy = RetryPolicy(max_attempts=3, base_delay=0.5)
        >>> response = await policy.call(provider.complete, messages, config)
    """

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 2.0,
        backoff_factor: float = 2.0,
        max_delay: float = 30.0,
        retryable: Optional[Callable[[BaseException], bool]] = None,
        backoff: Optional[Callable[[int], float]] = None,
        name: str = "default",
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """
        Initialize retry policy.

        Args:
            max_attempts: Total attempts including the first call
            base_delay: Delay before the first retry (seconds)
            backoff_factor: Multiplier applied per retry
            max_delay: Upper bound for a single delay
            retryable: Predicate deciding whether an error is retried
            backoff: Custom backoff function (overrides the delay parameters)
            name: Identifier for logging
            sleep: Awaitable sleep function (injectable for tests)
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self.max_attempts = max_attempts
        self.retryable = retryable or default_retryable
        self.backoff = backoff or exponential_backoff(base_delay, backoff_factor, max_delay)
        self.name = name
        self._sleep = sleep

    async def call(self, func: Callable[..., Awaitable[Any]], *args, **kwargs) -> Any:
        """
        Execute an async function under the policy.

        Args:
            func: Coroutine function to call
            *args: Positional arguments
            **kwargs: Keyword arguments

        Returns:
            Function result

        Raises:
            Exception: The last error, or the first non-retryable one
        """
        attempt = 1
        while True:
            try:
                return await func(*args, **kwargs)
            except Exception as e:
                if attempt >= self.max_attempts or not self.retryable(e):
                    if attempt > 1:
                        logger.warning(
                            f"[RetryPolicy:{self.name}] Giving up after {attempt} attempt(s): {e}"
                        )
                    raise
                delay = self.backoff(attempt)
                logger.warning(
                    f"🔁 [RetryPolicy:{self.name}] Attempt {attempt}/{self.max_attempts} failed "
                    f"({e}); retrying in {delay:.1f}s"
                )
                await self._sleep(delay)
                attempt += 1
