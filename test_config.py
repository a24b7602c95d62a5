"""
Configuration System Tests

Tests for the YAML configuration loader and factory functions.
"""

import asyncio
import os
from pathlib import Path

import pytest
from dotenv import load_dotenv

load_dotenv()

CONFIG_PATH = Path(__file__).parent / "thinkloop" / "config" / "models.yaml"


def test_load_config_from_yaml():
    """Test loading configuration from YAML file."""
    print("=" * 60)
    print("TEST 1: Load configuration from YAML")
    print("=" * 60)

    from thinkloop.config.loader import load_config_from_yaml

    # Test profile: mock backend, no search
    profile = load_config_from_yaml(CONFIG_PATH, "test")
    print(f"\nLoaded profile: test")
    print(f"  Provider backend: {profile.provider.backend}")
    print(f"  Search backend: {profile.search.backend}")
    print(f"  Max cycles: {profile.thinking.max_cycles}")

    assert profile.provider.backend == "mock"
    assert profile.search.backend == "none"
    assert profile.thinking.max_cycles == 5
    assert profile.thinking.thinking_visibility == "full"
    # Unset sections keep their defaults
    assert profile.thinking.min_quality == 0.90
    assert profile.critic.temperature == 0.3
    print("\n[PASS] test profile loaded correctly")

    # Thorough profile overrides several sections
    profile = load_config_from_yaml(CONFIG_PATH, "thorough")
    print(f"\nLoaded profile: thorough")
    print(f"  Provider backend: {profile.provider.backend}")
    print(f"  Max tokens: {profile.thinking.max_thinking_tokens}")
    print(f"  Max branches: {profile.explorer.max_branches}")

    assert profile.provider.backend == "anthropic"
    assert profile.thinking.max_thinking_tokens == 40000
    assert profile.thinking.stalled_cycles == 4
    assert profile.explorer.max_branches == 4
    assert profile.critic.max_tokens == 3000
    print("\n[PASS] thorough profile loaded correctly")


def test_unresolved_env_vars_become_none(monkeypatch):
    from thinkloop.config.loader import load_config_from_yaml

    monkeypatch.delenv("OPENROUTER_API_KEY", raising=False)
    monkeypatch.setenv("TAVILY_API_KEY", "tvly-test")

    profile = load_config_from_yaml(CONFIG_PATH, "dev")

    assert profile.provider.backend == "openrouter"
    assert profile.provider.api_key is None
    assert profile.search.api_key == "tvly-test"


def test_unknown_profile_raises():
    from thinkloop.config import load_config

    with pytest.raises(KeyError):
        load_config(profile="does-not-exist", config_path=CONFIG_PATH)


def test_list_profiles():
    from thinkloop.config import list_profiles

    assert list_profiles(CONFIG_PATH) == ["test", "dev", "anthropic", "thorough"]


def test_load_config_env_fallback(monkeypatch):
    """Test loading configuration from environment variables."""
    print("\n" + "=" * 60)
    print("TEST 2: Load configuration from environment (fallback)")
    print("=" * 60)

    from thinkloop.config.loader import load_config_from_env

    monkeypatch.setenv("OPENROUTER_API_KEY", "or-key")
    monkeypatch.delenv("TAVILY_API_KEY", raising=False)

    profile = load_config_from_env()
    print(f"\nLoaded from environment:")
    print(f"  Provider backend: {profile.provider.backend}")
    print(f"  Search backend: {profile.search.backend}")

    assert profile.provider.backend == "openrouter"
    assert profile.provider.api_key == "or-key"
    assert profile.search.backend == "none"
    print("\n[PASS] Environment fallback works correctly")

    # Anthropic is picked when it is the only key
    monkeypatch.delenv("OPENROUTER_API_KEY")
    monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-ant-test")
    monkeypatch.setenv("TAVILY_API_KEY", "tvly-test")

    profile = load_config_from_env()
    assert profile.provider.backend == "anthropic"
    assert profile.search.backend == "tavily"


def test_missing_file_falls_back_to_env(tmp_path, monkeypatch):
    from thinkloop.config import load_config

    monkeypatch.setenv("OPENROUTER_API_KEY", "or-key")

    profile = load_config(profile="test", config_path=tmp_path / "missing.yaml")

    assert profile.provider.backend == "openrouter"


def test_load_config_main(monkeypatch):
    """Test the main load_config function."""
    print("\n" + "=" * 60)
    print("TEST 3: Main load_config function")
    print("=" * 60)

    from thinkloop.config import load_config

    # Test with explicit profile
    profile = load_config(profile="test")
    print(f"\nLoaded profile: test")
    print(f"  Provider: {profile.provider.backend}")

    assert profile.provider.backend == "mock"
    print("\n[PASS] load_config with explicit profile works")

    # Test with THINKLOOP_PROFILE env var
    monkeypatch.setenv("THINKLOOP_PROFILE", "thorough")
    profile = load_config()
    print(f"\nLoaded from THINKLOOP_PROFILE=thorough")
    print(f"  Provider: {profile.provider.backend}")
    assert profile.provider.backend == "anthropic"
    print("\n[PASS] load_config with THINKLOOP_PROFILE works")


def test_factory_create_llm_provider():
    """Test creating LLM providers from config."""
    print("\n" + "=" * 60)
    print("TEST 4: Factory - create_llm_provider")
    print("=" * 60)

    from thinkloop.config import MockLLMProvider, ProviderConfig, create_llm_provider

    provider = create_llm_provider(ProviderConfig(backend="mock"))
    print(f"\nCreated mock provider: {type(provider).__name__}")
    assert isinstance(provider, MockLLMProvider)
    print("[PASS] Mock provider created")

    with pytest.raises(ValueError):
        create_llm_provider(ProviderConfig(backend="openrouter", api_key=None))
    with pytest.raises(ValueError):
        create_llm_provider(ProviderConfig(backend="anthropic", api_key=None))

    # Test OpenRouter provider (if API key available)
    if os.getenv("OPENROUTER_API_KEY"):
        provider = create_llm_provider(ProviderConfig(backend="openrouter", api_key=os.getenv("OPENROUTER_API_KEY")))
        print(f"Created OpenRouter provider: {type(provider).__name__}")
        print("[PASS] OpenRouter provider created")
    else:
        print("[SKIP] OpenRouter provider (no API key)")


def test_factory_create_search_provider():
    """Test creating search providers from config."""
    print("\n" + "=" * 60)
    print("TEST 5: Factory - create_search_provider")
    print("=" * 60)

    from thinkloop.config import MockSearchProvider, SearchConfig, create_search_provider
    from thinkloop.search import TavilySearchClient

    assert create_search_provider(SearchConfig(backend="none")) is None
    assert isinstance(create_search_provider(SearchConfig(backend="mock")), MockSearchProvider)
    assert isinstance(
        create_search_provider(SearchConfig(backend="tavily", api_key="tvly-test")),
        TavilySearchClient,
    )
    print("\n[PASS] Search providers created")


def test_factory_create_from_profile():
    """Test creating all backends from profile."""
    print("\n" + "=" * 60)
    print("TEST 6: Factory - create_from_profile")
    print("=" * 60)

    from thinkloop.config import load_config, create_from_profile
    from thinkloop.thinking import StoppingReason, ThinkingOrchestrator

    profile = load_config(profile="test")
    llm, search_provider, orchestrator = create_from_profile(profile)

    print(f"\nCreated from 'test' profile:")
    print(f"  LLM: {type(llm).__name__}")
    print(f"  Search: {type(search_provider).__name__}")
    print(f"  Orchestrator: {type(orchestrator).__name__}")

    assert search_provider is None
    assert isinstance(orchestrator, ThinkingOrchestrator)
    assert orchestrator.augmenter is None
    assert orchestrator.explorer is not None
    assert orchestrator.config.max_cycles == 5

    async def run():
        async with llm:
            return await orchestrator.think("Reverse a linked list")

    result = asyncio.run(run())
    print(f"\nMock run: {result.stopping_reason.value} after {result.iterations} cycles")

    # Mock output never parses as a critique, so quality never moves
    assert result.final_critique.is_fallback
    assert result.stopping_reason == StoppingReason.STALLED
    assert result.iterations == 3
    assert result.thinking_chain["total_tokens"] == result.tokens_used
    print("\n[PASS] create_from_profile works correctly")


def main():
    """Run all tests."""
    print("\n" + "=" * 60)
    print("CONFIGURATION SYSTEM TESTS")
    print("=" * 60)

    test_load_config_from_yaml()
    test_load_config_main(pytest.MonkeyPatch())
    test_factory_create_llm_provider()
    test_factory_create_search_provider()
    test_factory_create_from_profile()

    print("\n" + "=" * 60)
    print("ALL TESTS PASSED!")
    print("=" * 60)


if __name__ == "__main__":
    main()
