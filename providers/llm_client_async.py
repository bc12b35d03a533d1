"""
Async LLM Client
================

Adapter that standardizes the model interface used by agents:
one provider, one retry policy, running usage totals.

Usage is counted twice: on the client (lifetime totals) and on the
counter opened by track_usage() in the current context, so concurrent
runs sharing one client each see only their own calls.
"""

import logging
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Dict, Iterator, List, Optional

from core.retry_policy import RetryPolicy
from providers.provider import USAGE_KEYS, LLMConfig, LLMResponse, ModelClient, token_count

logger = logging.getLogger(__name__)

_run_usage: ContextVar[Optional[Dict[str, int]]] = ContextVar("run_usage", default=None)


def _empty_usage() -> Dict[str, int]:
    return {key: 0 for key in USAGE_KEYS}


@contextmanager
def track_usage() -> Iterator[Dict[str, int]]:
    """
    Count usage of every AsyncLLMClient call made inside the block,
    including calls from tasks spawned within it.

    Example:
        >>> with track_usage() as usage:
        ...     await assistant_run()
        >>> usage["total_tokens"]
    """
    usage = _empty_usage()
    token = _run_usage.set(usage)
    try:
        yield usage
    finally:
        _run_usage.reset(token)


class AsyncLLMClient(ModelClient):
    """
    Model client with retry on rate-limited and transient-network errors.

    Timeouts and fatal errors propagate on the first occurrence.

    Example:
        >>> client = AsyncLLMClient(AsyncOpenRouterProvider(), RetryPolicy(max_attempts=3))
        >>> response = await client.complete(messages, LLMConfig(model="x-ai/grok-4.1-fast"))
        >>> client.total_usage["total_tokens"]
    """

    def __init__(self, provider: ModelClient, retry_policy: Optional[RetryPolicy] = None):
        self.provider = provider
        self.retry_policy = retry_policy or RetryPolicy(name="llm")
        self.total_usage: Dict[str, int] = _empty_usage()

    async def complete(self, messages: List[Dict[str, str]], config: LLMConfig) -> LLMResponse:
        """Complete with retry and record token usage."""
        response = await self.retry_policy.call(self.provider.complete, messages, config)
        usage = response.usage or {"total_tokens": response.tokens_used}
        counters = [self.total_usage]
        run_usage = _run_usage.get()
        if run_usage is not None:
            counters.append(run_usage)
        for key in self.total_usage:
            amount = token_count(usage.get(key))
            for counter in counters:
                counter[key] += amount
        return response
