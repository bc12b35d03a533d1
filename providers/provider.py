"""
Model Client Contracts
======================

Message, request-config and response types shared by every model
client, plus the RequestError taxonomy the retry policy keys on.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class RequestErrorKind(str, Enum):
    """Failure classes of a model request."""
    RATE_LIMITED = "rate-limited"
    TIMEOUT = "timeout"
    TRANSIENT_NETWORK = "transient-network"
    FATAL = "fatal"


RETRYABLE_KINDS = frozenset({RequestErrorKind.RATE_LIMITED, RequestErrorKind.TRANSIENT_NETWORK})
USAGE_KEYS = ("prompt_tokens", "completion_tokens", "total_tokens")


def token_count(value: Any) -> int:
    """Token count from a usage field; anything non-numeric counts as 0."""
    if isinstance(value, bool):
        return 0
    try:
        return max(int(value or 0), 0)
    except (TypeError, ValueError):
        return 0


class RequestError(Exception):
    """
    Failed model request.

    Example:
        >>> raise RequestError(RequestErrorKind.RATE_LIMITED, "429 Too Many Requests", status_code=429)
    """

    def __init__(self, kind: RequestErrorKind, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.kind = kind
        self.status_code = status_code

    @property
    def retryable(self) -> bool:
        return self.kind in RETRYABLE_KINDS

    def __str__(self) -> str:
        return f"[{self.kind.value}] {super().__str__()}"


@dataclass
class LLMConfig:
    """Per-call model settings."""
    model: str
    temperature: float = 0.7
    max_tokens: int = 4096


@dataclass
class LLMResponse:
    """Normalized completion result."""
    content: str
    tokens_used: int = 0
    finish_reason: Optional[str] = None
    usage: Dict[str, int] = field(default_factory=dict)


class ModelClient(ABC):
    """
    Anything that can complete a chat conversation.

    Specialists and the synthesizer depend on this interface only.
    """

    @abstractmethod
    async def complete(self, messages: List[Dict[str, str]], config: LLMConfig) -> LLMResponse:
        """
        Complete a conversation.

        Args:
            messages: Chat messages ({"role", "content"})
            config: Model, temperature and max tokens

        Returns:
            LLMResponse

        Raises:
            RequestError: On any backend failure
            ConfigurationError: On missing or rejected credentials
        """
        pass
