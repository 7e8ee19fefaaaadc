"""
Base LLM Provider - Abstract base class and data structures for the
completion providers used by memory extraction.
"""

import json
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Optional


logger = logging.getLogger(__name__)


class MessageRole(str, Enum):
    """Role of the message sender."""
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


@dataclass
class LLMMessage:
    """Represents a message in an LLM conversation."""
    role: MessageRole
    content: str

    def to_dict(self) -> dict:
        """Convert to dictionary format."""
        return {
            "role": self.role.value,
            "content": self.content,
        }


@dataclass
class LLMUsage:
    """Token usage information for an LLM request."""
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    def __add__(self, other: "LLMUsage") -> "LLMUsage":
        """Add usage from multiple requests."""
        return LLMUsage(
            prompt_tokens=self.prompt_tokens + other.prompt_tokens,
            completion_tokens=self.completion_tokens + other.completion_tokens,
            total_tokens=self.total_tokens + other.total_tokens,
        )


@dataclass
class LLMResponse:
    """Response from an LLM provider."""
    content: str
    model: str
    usage: LLMUsage = field(default_factory=LLMUsage)
    finish_reason: Optional[str] = None


@dataclass
class LLMConfig:
    """Configuration for an LLM provider."""
    provider: str  # "openai", "anthropic"
    model: str = ""
    api_key: Optional[str] = None
    api_base: Optional[str] = None
    temperature: float = 0.0
    max_tokens: int = 4096
    timeout: float = 60.0

    # Retry configuration
    max_retries: int = 3
    retry_delay: float = 1.0

    # Additional provider-specific options
    extra_options: dict = field(default_factory=dict)

    def __post_init__(self):
        """Set default models based on provider if not specified."""
        if not self.model:
            default_models = {
                "openai": "gpt-4o-mini",
                "anthropic": "claude-3-5-haiku-latest",
            }
            self.model = default_models.get(self.provider, "gpt-4o-mini")


class LLMError(Exception):
    """Base exception for LLM-related errors."""
    pass


class LLMRateLimitError(LLMError):
    """Raised when rate limit is exceeded."""
    def __init__(self, message: str, retry_after: Optional[float] = None):
        super().__init__(message)
        self.retry_after = retry_after


class LLMAuthenticationError(LLMError):
    """Raised when authentication fails."""
    pass


class LLMContextLengthError(LLMError):
    """Raised when context length is exceeded."""
    pass


class LLMProvider(ABC):
    """Abstract base class for LLM providers."""

    def __init__(self, config: LLMConfig):
        """
        Initialize the LLM provider.

        Args:
            config: Configuration for the provider.
        """
        self.config = config
        self._total_usage = LLMUsage()

    @property
    def total_usage(self) -> LLMUsage:
        """Get total usage across all requests."""
        return self._total_usage

    @abstractmethod
    def complete(
        self,
        messages: list[LLMMessage],
        **kwargs,
    ) -> LLMResponse:
        """
        Generate a completion for the given messages.

        Args:
            messages: List of messages in the conversation.
            **kwargs: Additional provider-specific options.

        Returns:
            LLMResponse with the generated content.
        """
        pass

    def complete_text(self, system_prompt: str, user_message: str, **kwargs) -> str:
        """Complete a single system + user exchange and return the text."""
        messages = [
            LLMMessage(role=MessageRole.SYSTEM, content=system_prompt),
            LLMMessage(role=MessageRole.USER, content=user_message),
        ]
        return self.complete(messages, **kwargs).content

    def _with_retries(self, request: Callable[[], LLMResponse]) -> LLMResponse:
        """Run a request, retrying with exponential backoff."""
        last_error: Optional[LLMError] = None
        for attempt in range(self.config.max_retries):
            try:
                response = request()
            except LLMError:
                raise
            except Exception as e:
                last_error = self._handle_error(e)
                if isinstance(last_error, LLMAuthenticationError):
                    raise last_error from e
                if isinstance(last_error, LLMRateLimitError):
                    wait_time = last_error.retry_after or (self.config.retry_delay * (2 ** attempt))
                    logger.warning(f"Rate limited. Waiting {wait_time}s before retry...")
                    time.sleep(wait_time)
                elif attempt < self.config.max_retries - 1:
                    time.sleep(self.config.retry_delay * (2 ** attempt))
                else:
                    raise last_error from e
                continue

            self._total_usage = self._total_usage + response.usage
            return response

        raise last_error or LLMError("Max retries exceeded")

    def _handle_error(self, error: Exception) -> LLMError:
        """Convert SDK errors to LLM errors."""
        error_message = str(error)

        response = getattr(error, "response", None)
        if response is not None:
            try:
                error_message = response.json().get("error", {}).get("message", error_message)
            except (json.JSONDecodeError, AttributeError, ValueError):
                pass

        lowered = error_message.lower()
        if "rate_limit" in lowered or "rate limit" in lowered:
            retry_after = None
            headers = getattr(response, "headers", None)
            if headers:
                retry_after_str = headers.get("Retry-After")
                if retry_after_str:
                    try:
                        retry_after = float(retry_after_str)
                    except ValueError:
                        pass
            return LLMRateLimitError(error_message, retry_after)

        if "authentication" in lowered or "api_key" in lowered or "api key" in lowered:
            return LLMAuthenticationError(error_message)

        if "context_length" in lowered or "maximum context" in lowered:
            return LLMContextLengthError(error_message)

        return LLMError(error_message)

    def _request_options(self, **kwargs: Any) -> dict:
        """Provider-agnostic request options with config defaults."""
        options = {
            "model": kwargs.get("model", self.config.model),
            "max_tokens": kwargs.get("max_tokens", self.config.max_tokens),
            "temperature": kwargs.get("temperature", self.config.temperature),
        }
        for key, value in self.config.extra_options.items():
            options.setdefault(key, value)
        return options
