"""Convenience functions for LLM completions."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .protocols import Generation, LLMProvider, Message, MessageRole, TokenUsage

if TYPE_CHECKING:
    from ..cancellation import CancellationToken

logger = logging.getLogger(__name__)


async def generate_text(
    provider: LLMProvider,
    prompt: str,
    system_prompt: str | None = None,
    temperature: float = 0.7,
    max_tokens: int | None = None,
    cancellation: CancellationToken | None = None,
) -> Generation:
    """
    Generate a completion for a single user prompt.

    Args:
        provider: LLM provider to call
        prompt: The user prompt
        system_prompt: Optional system prompt
        temperature: Sampling temperature (0-2)
        max_tokens: Maximum tokens to generate
        cancellation: Optional token; the call is abandoned once it fires

    Returns:
        The generation, with estimated usage when the provider reports none

    Example:
        generation = await generate_text(provider, "Critique this solution: ...")
    """
    messages: list[Message] = []
    if system_prompt:
        messages.append(Message(role=MessageRole.SYSTEM, content=system_prompt))
    messages.append(Message(role=MessageRole.USER, content=prompt))

    call = provider.generate(messages, temperature=temperature, max_tokens=max_tokens)
    if cancellation is not None:
        generation = await cancellation.run(call)
    else:
        generation = await call

    if generation.usage is None:
        usage = TokenUsage.estimate((system_prompt or "") + prompt, generation.text)
        logger.debug(f"Provider reported no usage, estimated {usage.total_tokens} tokens")
        generation = Generation(text=generation.text, usage=usage)

    return generation
