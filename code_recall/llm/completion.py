"""
Adapters from LLM providers to the extraction completion function.
"""

import asyncio
import functools
from typing import Awaitable, Callable

from .base import LLMProvider


def provider_completion(provider: LLMProvider, **kwargs) -> Callable[[str, str], Awaitable[str]]:
    """
    Wrap a provider as ``complete(system_prompt, user_message) -> text``.

    The blocking SDK call runs in the default executor so the event loop
    keeps serving other work while the request is in flight.
    """
    async def complete(system_prompt: str, user_message: str) -> str:
        loop = asyncio.get_running_loop()
        call = functools.partial(provider.complete_text, system_prompt, user_message, **kwargs)
        return await loop.run_in_executor(None, call)

    return complete
