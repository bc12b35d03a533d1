"""
Timeout Decorator
=================

Adds wall-clock timeouts to coroutine functions using asyncio.wait_for.
"""

import asyncio
import functools
from typing import Callable, Any
import logging

logger = logging.getLogger(__name__)


class ConvergenceTimeoutError(Exception):
    """Raised when a coroutine exceeds its wall-clock budget."""

    def __init__(self, message: str, timeout_seconds: float):
        super().__init__(message)
        self.timeout_seconds = timeout_seconds


def with_timeout(timeout_seconds: float):
    """
    Decorator to add a timeout to a coroutine function.

    The wrapped coroutine is cancelled when it exceeds timeout_seconds
    and ConvergenceTimeoutError is raised instead.

    Example:
        >>> @with_timeout(5.0)
        ... async def slow_function():
        ...     await asyncio.sleep(10)
        >>>
        >>> await slow_function()  # Raises ConvergenceTimeoutError after 5s

    Args:
        timeout_seconds: Maximum execution time in seconds

    Returns:
        Decorated coroutine function
    """
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs) -> Any:
            try:
                return await asyncio.wait_for(func(*args, **kwargs), timeout=timeout_seconds)
            except asyncio.TimeoutError:
                logger.error(
                    f"⏱️ Function '{func.__name__}' exceeded timeout of {timeout_seconds}s"
                )
                raise ConvergenceTimeoutError(
                    f"'{func.__name__}' execution exceeded {timeout_seconds}s timeout",
                    timeout_seconds,
                ) from None

        return wrapper
    return decorator


def with_configurable_timeout(get_timeout: Callable[[Any], float]):
    """
    Decorator with a timeout resolved at call time.

    The callable receives the bound instance, so methods can read the
    timeout from their own configuration.

    Example:
        >>> class Assistant:
        ...     @with_configurable_timeout(lambda self: self.config.run_timeout)
        ...     async def run(self, text):
        ...         ...

    Args:
        get_timeout: Callable taking the instance and returning seconds

    Returns:
        Decorated coroutine function
    """
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        async def wrapper(self, *args, **kwargs) -> Any:
            timeout = get_timeout(self)
            return await with_timeout(timeout)(func)(self, *args, **kwargs)
        return wrapper
    return decorator
