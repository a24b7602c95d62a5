"""Configuration system for model backends and the thinking loop."""

from .loader import (
    load_config,
    load_config_from_env,
    load_config_from_yaml,
    list_profiles,
    ProviderConfig,
    SearchConfig,
    ThinkingConfig,
    CriticConfig,
    BranchExplorerConfig,
    ResearchConfig,
    ProfileConfig,
    ConfigFile,
)
from .factory import (
    MockLLMProvider,
    MockSearchProvider,
    create_llm_provider,
    create_search_provider,
    create_critic,
    create_stopping_policy,
    create_research_augmenter,
    create_branch_explorer,
    create_orchestrator,
    create_from_profile,
)

__all__ = [
    # Loader
    "load_config",
    "load_config_from_env",
    "load_config_from_yaml",
    "list_profiles",
    "ProviderConfig",
    "SearchConfig",
    "ThinkingConfig",
    "CriticConfig",
    "BranchExplorerConfig",
    "ResearchConfig",
    "ProfileConfig",
    "ConfigFile",
    # Factory - Backends
    "MockLLMProvider",
    "MockSearchProvider",
    "create_llm_provider",
    "create_search_provider",
    # Factory - Thinking components
    "create_critic",
    "create_stopping_policy",
    "create_research_augmenter",
    "create_branch_explorer",
    "create_orchestrator",
    "create_from_profile",
]
