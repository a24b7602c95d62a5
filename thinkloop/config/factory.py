"""Factory functions to create backends and thinking components from configuration."""

from __future__ import annotations

from typing import TYPE_CHECKING

from ..llm.protocols import Generation, Message, TokenUsage
from ..search.models import SearchDepth, SearchResult

if TYPE_CHECKING:
    from ..llm.protocols import LLMProvider
    from ..search.protocols import SearchProvider
    from ..thinking import (
        BranchExplorer,
        ContextCallback,
        QualityCritic,
        ResearchAugmenter,
        ResearchCallback,
        StoppingPolicy,
        ThinkingObserver,
        ThinkingOrchestrator,
    )
    from .loader import (
        BranchExplorerConfig,
        CriticConfig,
        ProfileConfig,
        ProviderConfig,
        ResearchConfig,
        SearchConfig,
        ThinkingConfig,
    )


class MockLLMProvider:
    """Mock LLM provider for testing.

    Echoes the start of the prompt. The output contains no JSON, so critiques
    take the fallback path and a run ends as stalled.
    """

    def __init__(self, tokens_per_call: int = 10):
        self.tokens_per_call = tokens_per_call
        self.calls: list[list[Message]] = []

    async def generate(
        self,
        messages: list[Message],
        temperature: float = 0.7,
        max_tokens: int | None = None,
    ) -> Generation:
        """Return a mock generation."""
        self.calls.append(messages)
        prompt = messages[-1].content
        return Generation(
            text=f"[Mock response to: {prompt[:50]}...]",
            usage=TokenUsage(
                prompt_tokens=self.tokens_per_call // 2,
                completion_tokens=self.tokens_per_call - self.tokens_per_call // 2,
                total_tokens=self.tokens_per_call,
            ),
        )

    async def __aenter__(self):
        return self

    async def __aexit__(self, *args):
        pass


class MockSearchProvider:
    """Mock search provider for testing - returns one canned result per query."""

    def __init__(self):
        self.queries: list[str] = []

    async def search(
        self,
        query: str,
        max_results: int = 5,
        search_depth: SearchDepth = "basic",
    ) -> list[SearchResult]:
        """Return a mock search result echoing the query."""
        self.queries.append(query)
        return [
            SearchResult(
                title=f"Mock result for {query}",
                url="https://example.com/mock",
                snippet=f"Mock snippet about {query}",
                score=1.0,
            )
        ][:max_results]

    async def __aenter__(self):
        return self

    async def __aexit__(self, *args):
        pass


def create_llm_provider(config: ProviderConfig) -> LLMProvider:
    """Create an LLM backend from configuration.

    Args:
        config: Provider configuration

    Returns:
        LLMProvider instance (OpenRouterAdapter, AnthropicAdapter, or Mock)

    Raises:
        ValueError: If backend type is not supported or the API key is missing
    """
    if config.backend == "openrouter":
        from ..llm import OpenRouterAdapter

        if not config.api_key:
            raise ValueError("OpenRouter backend requires api_key")

        return OpenRouterAdapter(
            api_key=config.api_key,
            model=config.model,
            base_url=config.base_url,
        )

    elif config.backend == "anthropic":
        from ..llm import AnthropicAdapter

        if not config.api_key:
            raise ValueError("Anthropic backend requires api_key")

        return AnthropicAdapter(
            api_key=config.api_key,
            model=config.model,
        )

    elif config.backend == "mock":
        return MockLLMProvider()

    else:
        raise ValueError(f"Unsupported LLM backend: {config.backend}")


def create_search_provider(config: SearchConfig) -> SearchProvider | None:
    """Create a web search backend from configuration.

    Returns:
        SearchProvider instance, or None when search is disabled

    Raises:
        ValueError: If backend type is not supported or the API key is missing
    """
    if config.backend == "tavily":
        from ..search import TavilySearchClient

        if not config.api_key:
            raise ValueError("Tavily backend requires api_key")

        return TavilySearchClient(
            api_key=config.api_key,
            base_url=config.base_url,
            requests_per_second=config.requests_per_second,
        )

    elif config.backend == "mock":
        return MockSearchProvider()

    elif config.backend == "none":
        return None

    else:
        raise ValueError(f"Unsupported search backend: {config.backend}")


def create_critic(llm: LLMProvider, config: CriticConfig | None = None) -> QualityCritic:
    from ..thinking import QualityCritic

    return QualityCritic(llm, config=config)


def create_stopping_policy(config: ThinkingConfig | None = None) -> StoppingPolicy:
    from ..thinking import StoppingPolicy

    return StoppingPolicy(config)


def create_research_augmenter(
    llm: LLMProvider,
    search_provider: SearchProvider | None,
    config: ResearchConfig | None = None,
) -> ResearchAugmenter | None:
    """Create a research augmenter, or None without a search backend."""
    if search_provider is None:
        return None

    from ..thinking import ResearchAugmenter

    return ResearchAugmenter(llm, search_provider, config=config)


def create_branch_explorer(llm: LLMProvider, config: BranchExplorerConfig | None = None) -> BranchExplorer:
    from ..thinking import BranchExplorer

    return BranchExplorer(llm, config=config)


def create_orchestrator(
    llm: LLMProvider,
    profile: ProfileConfig,
    search_provider: SearchProvider | None = None,
    research_callback: ResearchCallback | None = None,
    context_callback: ContextCallback | None = None,
    observers: list[ThinkingObserver] | None = None,
) -> ThinkingOrchestrator:
    """Wire critic, augmenter and explorer into an orchestrator.

    Args:
        llm: LLM provider shared by every component
        profile: Profile configuration
        search_provider: Optional search backend for research augmentation
        research_callback: Used for research when no search backend is given
        context_callback: Codebase context retrieval callback
        observers: Event observers

    Returns:
        Configured ThinkingOrchestrator
    """
    from ..thinking import ThinkingOrchestrator

    return ThinkingOrchestrator(
        llm,
        config=profile.thinking,
        critic=create_critic(llm, profile.critic),
        augmenter=create_research_augmenter(llm, search_provider, profile.research),
        explorer=create_branch_explorer(llm, profile.explorer) if profile.thinking.enable_parallel_thinking else None,
        research_callback=research_callback,
        context_callback=context_callback,
        observers=observers,
    )


def create_from_profile(
    profile: ProfileConfig,
) -> tuple:
    """Create all backends from a profile configuration.

    The returned backends are async context managers; enter them before use.

    Args:
        profile: Profile configuration containing all backend configs

    Returns:
        Tuple of (llm, search_provider, orchestrator); search_provider is None
        when search is disabled

    Raises:
        ValueError: If any backend configuration is invalid
    """
    llm = create_llm_provider(profile.provider)
    search_provider = create_search_provider(profile.search)
    orchestrator = create_orchestrator(llm, profile, search_provider=search_provider)

    return llm, search_provider, orchestrator
