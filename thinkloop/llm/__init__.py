"""LLM provider integrations with protocol-based adapter pattern."""

from .protocols import Generation, LLMProvider, Message, MessageRole, TokenUsage
from .adapters import AnthropicAdapter, OpenRouterAdapter
from .completion import generate_text

__all__ = [
    # Protocols
    "Generation",
    "LLMProvider",
    "Message",
    "MessageRole",
    "TokenUsage",
    # Adapters
    "AnthropicAdapter",
    "OpenRouterAdapter",
    # Convenience functions
    "generate_text",
]
