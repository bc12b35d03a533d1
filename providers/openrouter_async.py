"""
OpenRouter Provider - Async Version
====================================

Async implementation using httpx. Maps HTTP failures onto the
RequestError taxonomy so the retry policy can act on them.
"""

import os
import logging
import httpx
from typing import List, Dict, Optional

from core.agent_config import ConfigurationError
from providers.provider import (
    USAGE_KEYS,
    LLMConfig,
    LLMResponse,
    ModelClient,
    RequestError,
    RequestErrorKind,
    token_count,
)

logger = logging.getLogger(__name__)

_TRANSIENT_STATUS = {500, 502, 503, 504}
_AUTH_STATUS = {401, 403}


class AsyncOpenRouterProvider(ModelClient):
    """
    Async LLM provider using OpenRouter API with httpx.

    Example:
        >>> provider = AsyncOpenRouterProvider()
        >>> response = await provider.complete(
        ...     [{"role": "user", "content": "Hi"}],
        ...     LLMConfig(model="x-ai/grok-4.1-fast", temperature=0.2),
        ... )
        >>> response.content
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: str = "https://openrouter.ai/api/v1",
        timeout: float = 300.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize async OpenRouter provider.

        Args:
            api_key: OpenRouter API key
            base_url: API base URL
            timeout: Request timeout in seconds
            transport: Optional httpx transport (tests use httpx.MockTransport)

        Raises:
            ConfigurationError: If no API key is available
        """
        self.api_key = api_key or os.getenv("OPENROUTER_API_KEY")
        if not self.api_key:
            raise ConfigurationError(
                "OpenRouter API key required. "
                "Set OPENROUTER_API_KEY env var or pass api_key parameter."
            )

        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
            "HTTP-Referer": "https://github.com/codemind/codemind-agent",
            "X-Title": "CodeMind Agent",
        }

    async def complete(self, messages: List[Dict[str, str]], config: LLMConfig) -> LLMResponse:
        """
        Async chat completion.

        Args:
            messages: List of message dicts
            config: Model, temperature, max tokens

        Returns:
            LLMResponse with content, token count and finish reason

        Raises:
            RequestError: Classified backend failure
            ConfigurationError: Credentials rejected (401/403)
        """
        payload = {
            "model": config.model,
            "messages": messages,
            "temperature": config.temperature,
            "max_tokens": config.max_tokens,
            "stream": False,
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(
                    f"{self.base_url}/chat/completions",
                    json=payload,
                    headers=self._headers(),
                )
        except httpx.TimeoutException as e:
            raise RequestError(RequestErrorKind.TIMEOUT, f"Request timed out: {e}") from e
        except (httpx.NetworkError, httpx.RemoteProtocolError) as e:
            raise RequestError(RequestErrorKind.TRANSIENT_NETWORK, f"Network error: {e}") from e
        except httpx.HTTPError as e:
            raise RequestError(RequestErrorKind.FATAL, f"HTTP error: {e}") from e

        if not response.is_success:
            self._raise_for_status(response)

        try:
            data = response.json()
            choice = data["choices"][0]
            content = choice["message"].get("content") or ""
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise RequestError(
                RequestErrorKind.FATAL,
                f"Malformed completion body: {response.text[:200]}",
                status_code=response.status_code,
            ) from e

        raw_usage = data.get("usage")
        if not isinstance(raw_usage, dict):
            raw_usage = {}
        usage = {key: token_count(raw_usage.get(key)) for key in USAGE_KEYS}
        logger.debug(f"[OpenRouter] {config.model}: {usage['total_tokens']} tokens")
        return LLMResponse(
            content=content,
            tokens_used=usage["total_tokens"],
            finish_reason=choice.get("finish_reason"),
            usage=usage,
        )

    def _raise_for_status(self, response: httpx.Response):
        status = response.status_code
        detail = response.text[:300]
        logger.error(f"❌ [OpenRouter] HTTP {status}: {detail}")

        if status in _AUTH_STATUS:
            raise ConfigurationError(f"OpenRouter rejected credentials (HTTP {status}): {detail}")
        if status == 429:
            raise RequestError(RequestErrorKind.RATE_LIMITED, f"Rate limited: {detail}", status)
        if status == 408:
            raise RequestError(RequestErrorKind.TIMEOUT, f"Upstream timeout: {detail}", status)
        if status in _TRANSIENT_STATUS:
            raise RequestError(RequestErrorKind.TRANSIENT_NETWORK, f"HTTP {status}: {detail}", status)
        raise RequestError(RequestErrorKind.FATAL, f"HTTP {status}: {detail}", status)
