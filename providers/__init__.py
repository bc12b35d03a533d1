"""
LLM Providers
"""
from .provider import LLMConfig, LLMResponse, ModelClient, RequestError, RequestErrorKind
from .openrouter_async import AsyncOpenRouterProvider
from .llm_client_async import AsyncLLMClient, track_usage

__all__ = [
    'LLMConfig', 'LLMResponse', 'ModelClient', 'RequestError', 'RequestErrorKind',
    'AsyncOpenRouterProvider', 'AsyncLLMClient', 'track_usage',
]
