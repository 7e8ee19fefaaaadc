"""
Anthropic Provider - Implementation for the Anthropic Messages API.
"""

import logging
import os

from .base import (
    LLMProvider,
    LLMConfig,
    LLMResponse,
    LLMMessage,
    LLMUsage,
    MessageRole,
    LLMError,
)


logger = logging.getLogger(__name__)


class AnthropicProvider(LLMProvider):
    """Anthropic Claude API provider implementation."""

    def __init__(self, config: LLMConfig):
        """
        Initialize the Anthropic provider.

        Args:
            config: Configuration for the provider.
        """
        super().__init__(config)

        # Get API key from config or environment
        self.api_key = config.api_key or os.environ.get("ANTHROPIC_API_KEY")
        if not self.api_key:
            logger.warning("No Anthropic API key provided. Set ANTHROPIC_API_KEY environment variable.")

        self.api_base = config.api_base or "https://api.anthropic.com"
        self._client = None

    def _get_client(self):
        """Get or create the Anthropic client."""
        if self._client is None:
            try:
                import anthropic
            except ImportError:
                raise LLMError(
                    "Anthropic package not installed. Install with: pip install anthropic"
                )
            self._client = anthropic.Anthropic(
                api_key=self.api_key,
                base_url=self.api_base,
                timeout=self.config.timeout,
                max_retries=0,
            )
        return self._client

    def _prepare_messages(
        self,
        messages: list[LLMMessage],
    ) -> tuple[str, list[dict]]:
        """
        Split messages into Anthropic's system parameter and conversation.

        Returns:
            Tuple of (system_message, conversation_messages).
        """
        system_parts = []
        conversation = []

        for msg in messages:
            if msg.role == MessageRole.SYSTEM:
                system_parts.append(msg.content)
            else:
                role = "user" if msg.role == MessageRole.USER else "assistant"
                conversation.append({"role": role, "content": msg.content})

        return "\n".join(system_parts).strip(), conversation

    def complete(
        self,
        messages: list[LLMMessage],
        **kwargs,
    ) -> LLMResponse:
        """
        Generate a completion using Anthropic Claude.

        Args:
            messages: List of messages in the conversation.
            **kwargs: Overrides for model, temperature and max_tokens.

        Returns:
            LLMResponse with the generated content.
        """
        client = self._get_client()

        system_message, conversation = self._prepare_messages(messages)
        request_params = self._request_options(**kwargs)
        request_params["messages"] = conversation
        if system_message:
            request_params["system"] = system_message

        def request() -> LLMResponse:
            response = client.messages.create(**request_params)

            usage_data = response.usage
            prompt_tokens = usage_data.input_tokens if usage_data else 0
            completion_tokens = usage_data.output_tokens if usage_data else 0

            content = "".join(
                block.text for block in (response.content or [])
                if getattr(block, "type", None) == "text"
            )
            return LLMResponse(
                content=content,
                model=response.model,
                usage=LLMUsage(
                    prompt_tokens=prompt_tokens,
                    completion_tokens=completion_tokens,
                    total_tokens=prompt_tokens + completion_tokens,
                ),
                finish_reason=response.stop_reason,
            )

        return self._with_retries(request)
