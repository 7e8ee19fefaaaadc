"""
LLM Factory - Factory for creating completion providers.
"""

from typing import Optional

from .base import LLMProvider, LLMConfig, LLMError
from .openai_provider import OpenAIProvider
from .anthropic_provider import AnthropicProvider


class LLMFactory:
    """Factory for creating LLM providers."""

    # Mapping of provider names to classes
    _providers = {
        "openai": OpenAIProvider,
        "anthropic": AnthropicProvider,
    }

    @classmethod
    def register_provider(cls, name: str, provider_class: type):
        """
        Register a custom LLM provider.

        Args:
            name: Provider name.
            provider_class: Provider class that inherits from LLMProvider.
        """
        if not issubclass(provider_class, LLMProvider):
            raise ValueError("Provider class must inherit from LLMProvider")
        cls._providers[name.lower()] = provider_class

    @classmethod
    def create_from_config(cls, config: LLMConfig) -> LLMProvider:
        """
        Create an LLM provider from a configuration object.

        Raises:
            LLMError: If provider is not supported.
        """
        provider_name = config.provider.lower()

        if provider_name not in cls._providers:
            available = ", ".join(cls._providers.keys())
            raise LLMError(
                f"Unknown LLM provider: {config.provider}. "
                f"Available providers: {available}"
            )

        return cls._providers[provider_name](config)

    @classmethod
    def create(
        cls,
        provider: str = "openai",
        model: Optional[str] = None,
        api_key: Optional[str] = None,
        **kwargs,
    ) -> LLMProvider:
        """Create an LLM provider instance by name."""
        config = LLMConfig(
            provider=provider.lower(),
            model=model or "",
            api_key=api_key,
            **kwargs,
        )
        return cls.create_from_config(config)

    @classmethod
    def list_providers(cls) -> list[str]:
        """List available LLM provider names."""
        return list(cls._providers.keys())
