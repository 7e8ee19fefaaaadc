"""
OpenAI Provider - Implementation for the OpenAI chat completions API.
"""

import logging
import os

from .base import (
    LLMProvider,
    LLMConfig,
    LLMResponse,
    LLMMessage,
    LLMUsage,
    LLMError,
)


logger = logging.getLogger(__name__)


class OpenAIProvider(LLMProvider):
    """OpenAI API provider implementation."""

    def __init__(self, config: LLMConfig):
        """
        Initialize the OpenAI provider.

        Args:
            config: Configuration for the provider.
        """
        super().__init__(config)

        # Get API key from config or environment
        self.api_key = config.api_key or os.environ.get("OPENAI_API_KEY")
        if not self.api_key:
            logger.warning("No OpenAI API key provided. Set OPENAI_API_KEY environment variable.")

        self.api_base = config.api_base or "https://api.openai.com/v1"
        self._client = None

    def _get_client(self):
        """Get or create the OpenAI client."""
        if self._client is None:
            try:
                import openai
            except ImportError:
                raise LLMError(
                    "OpenAI package not installed. Install with: pip install openai"
                )
            self._client = openai.OpenAI(
                api_key=self.api_key,
                base_url=self.api_base,
                timeout=self.config.timeout,
                max_retries=0,
            )
        return self._client

    def complete(
        self,
        messages: list[LLMMessage],
        **kwargs,
    ) -> LLMResponse:
        """
        Generate a completion using OpenAI.

        Args:
            messages: List of messages in the conversation.
            **kwargs: Overrides for model, temperature and max_tokens.

        Returns:
            LLMResponse with the generated content.
        """
        client = self._get_client()
        request_params = self._request_options(**kwargs)
        request_params["messages"] = [msg.to_dict() for msg in messages]

        def request() -> LLMResponse:
            response = client.chat.completions.create(**request_params)

            usage_data = response.usage
            usage = LLMUsage(
                prompt_tokens=usage_data.prompt_tokens if usage_data else 0,
                completion_tokens=usage_data.completion_tokens if usage_data else 0,
                total_tokens=usage_data.total_tokens if usage_data else 0,
            )

            choice = response.choices[0] if response.choices else None
            content = choice.message.content if choice and choice.message else ""
            return LLMResponse(
                content=content or "",
                model=response.model,
                usage=usage,
                finish_reason=choice.finish_reason if choice else None,
            )

        return self._with_retries(request)
