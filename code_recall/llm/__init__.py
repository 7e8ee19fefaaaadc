"""
LLM Integration Module - Completion providers for memory extraction.

The extraction pipeline only needs ``complete(system, user) -> text``;
this package supplies that capability on top of OpenAI and Anthropic.
"""

from .base import (
    LLMProvider,
    LLMConfig,
    LLMResponse,
    LLMMessage,
    LLMUsage,
    MessageRole,
    LLMError,
    LLMRateLimitError,
    LLMAuthenticationError,
    LLMContextLengthError,
)
from .openai_provider import OpenAIProvider
from .anthropic_provider import AnthropicProvider
from .factory import LLMFactory
from .completion import provider_completion

__all__ = [
    # Core classes
    "LLMProvider",
    "LLMConfig",
    "LLMResponse",
    "LLMMessage",
    "LLMUsage",
    "MessageRole",
    # Errors
    "LLMError",
    "LLMRateLimitError",
    "LLMAuthenticationError",
    "LLMContextLengthError",
    # Providers
    "OpenAIProvider",
    "AnthropicProvider",
    "LLMFactory",
    # Extraction adapter
    "provider_completion",
]
