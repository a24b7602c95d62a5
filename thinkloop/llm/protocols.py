"""Protocol definitions for LLM providers."""

from __future__ import annotations

from enum import Enum
from typing import Protocol, runtime_checkable

from pydantic import BaseModel


class MessageRole(str, Enum):
    """Role of a message in a conversation."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class Message(BaseModel):
    """A message in a conversation."""

    role: MessageRole
    content: str


class TokenUsage(BaseModel):
    """Token counters reported for a single generation."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    estimated: bool = False

    @classmethod
    def estimate(cls, prompt: str, completion: str) -> TokenUsage:
        """Rough usage estimate (~4 characters per token) for providers that report none."""
        prompt_tokens = len(prompt) // 4
        completion_tokens = len(completion) // 4
        return cls(
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            total_tokens=prompt_tokens + completion_tokens,
            estimated=True,
        )


class Generation(BaseModel):
    """Generated text plus optional usage counters."""

    text: str
    usage: TokenUsage | None = None

    @property
    def total_tokens(self) -> int:
        return self.usage.total_tokens if self.usage else 0


@runtime_checkable
class LLMProvider(Protocol):
    """Protocol for LLM providers.

    Implement this protocol to add support for new LLM APIs. Providers must be
    callable repeatedly and independently; no session state is assumed.
    """

    async def generate(
        self,
        messages: list[Message],
        temperature: float = 0.7,
        max_tokens: int | None = None,
    ) -> Generation:
        """
        Generate a completion for a conversation.

        Args:
            messages: List of messages in the conversation
            temperature: Sampling temperature (0-2)
            max_tokens: Maximum tokens to generate

        Returns:
            The generated text with usage counters when the API reports them
        """
        ...
