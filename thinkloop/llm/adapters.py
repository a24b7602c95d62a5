"""Adapter implementations for LLM providers."""

import logging

from openai import AsyncOpenAI

from ..settings import (
    ANTHROPIC_API_KEY,
    ANTHROPIC_DEFAULT_MODEL,
    OPENROUTER_API_KEY,
    OPENROUTER_BASE_URL,
    OPENROUTER_DEFAULT_MODEL,
)
from .protocols import Generation, LLMProvider, Message, MessageRole, TokenUsage

logger = logging.getLogger(__name__)


class OpenRouterAdapter(LLMProvider):
    """
    Adapter for OpenRouter API.

    OpenRouter provides access to many LLMs through an OpenAI-compatible API.

    Usage:
        async with OpenRouterAdapter() as llm:
            generation = await llm.generate([Message(role=MessageRole.USER, content="Hi")])
    """

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        base_url: str | None = None,
    ):
        """
        Initialize the OpenRouter adapter.

        Args:
            api_key: Optional API key. If not provided, uses OPENROUTER_API_KEY env var.
            model: Model to use. Defaults to OPENROUTER_DEFAULT_MODEL.
            base_url: Optional API base URL. Defaults to OPENROUTER_BASE_URL.
        """
        self.api_key = api_key or OPENROUTER_API_KEY
        self.model = model or OPENROUTER_DEFAULT_MODEL
        self.base_url = base_url or OPENROUTER_BASE_URL
        self._client: AsyncOpenAI | None = None

        if not self.api_key:
            raise ValueError(
                "OpenRouter API key required. Set OPENROUTER_API_KEY in .env"
            )

        logger.info(f"OpenRouter adapter initialized with model: {self.model}")

    async def __aenter__(self) -> "OpenRouterAdapter":
        self._client = AsyncOpenAI(
            api_key=self.api_key,
            base_url=self.base_url,
            max_retries=10,  # More retries for free tier rate limits
            timeout=120.0,
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._client:
            await self._client.close()
            self._client = None

    @property
    def client(self) -> AsyncOpenAI:
        if self._client is None:
            raise RuntimeError(
                "Client not initialized. Use 'async with' context manager."
            )
        return self._client

    async def generate(
        self,
        messages: list[Message],
        temperature: float = 0.7,
        max_tokens: int | None = None,
    ) -> Generation:
        """Generate a completion for a conversation."""
        formatted_messages = [
            {"role": msg.role.value, "content": msg.content} for msg in messages
        ]

        logger.debug(
            f"Generating with {self.model}: {len(messages)} messages, "
            f"temperature={temperature}, max_tokens={max_tokens}"
        )

        response = await self.client.chat.completions.create(
            model=self.model,
            messages=formatted_messages,
            temperature=temperature,
            max_tokens=max_tokens,
        )

        text = response.choices[0].message.content or ""
        usage = None
        if response.usage:
            usage = TokenUsage(
                prompt_tokens=response.usage.prompt_tokens,
                completion_tokens=response.usage.completion_tokens,
                total_tokens=response.usage.total_tokens,
            )

        logger.info(f"Completion received ({len(text)} chars)")
        logger.debug(f"Usage: {response.usage}")

        return Generation(text=text, usage=usage)


class AnthropicAdapter(LLMProvider):
    """
    Adapter for Anthropic API (direct).

    Uses the Anthropic Python SDK directly for Claude models.

    Usage:
        async with AnthropicAdapter() as llm:
            generation = await llm.generate([Message(role=MessageRole.USER, content="Hi")])
    """

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
    ):
        """
        Initialize the Anthropic adapter.

        Args:
            api_key: Optional API key. If not provided, uses ANTHROPIC_API_KEY env var.
            model: Model to use. Defaults to ANTHROPIC_DEFAULT_MODEL.
        """
        self.api_key = api_key or ANTHROPIC_API_KEY
        self.model = model or ANTHROPIC_DEFAULT_MODEL
        self._client = None

        if not self.api_key:
            raise ValueError(
                "Anthropic API key required. Set ANTHROPIC_API_KEY in .env"
            )

        logger.info(f"Anthropic adapter initialized with model: {self.model}")

    async def __aenter__(self) -> "AnthropicAdapter":
        import anthropic

        self._client = anthropic.AsyncAnthropic(
            api_key=self.api_key,
            max_retries=10,
            timeout=120.0,
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._client:
            await self._client.close()
            self._client = None

    @property
    def client(self):
        if self._client is None:
            raise RuntimeError(
                "Client not initialized. Use 'async with' context manager."
            )
        return self._client

    async def generate(
        self,
        messages: list[Message],
        temperature: float = 0.7,
        max_tokens: int | None = None,
    ) -> Generation:
        """Generate a completion for a conversation."""
        # Extract system message if present
        system_prompt = ""
        formatted_messages = []

        for msg in messages:
            if msg.role == MessageRole.SYSTEM:
                system_prompt = msg.content
            else:
                formatted_messages.append({"role": msg.role.value, "content": msg.content})

        message = await self.client.messages.create(
            model=self.model,
            max_tokens=max_tokens or 4096,
            system=system_prompt,
            messages=formatted_messages,
            temperature=temperature,
        )

        text = message.content[0].text if message.content else ""
        usage = TokenUsage(
            prompt_tokens=message.usage.input_tokens,
            completion_tokens=message.usage.output_tokens,
            total_tokens=message.usage.input_tokens + message.usage.output_tokens,
        )

        logger.info(f"Completion received ({len(text)} chars)")
        logger.debug(f"Usage: input={usage.prompt_tokens}, output={usage.completion_tokens}")

        return Generation(text=text, usage=usage)
