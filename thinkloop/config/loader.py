"""Configuration loader with Pydantic validation and env var expansion."""

import logging
import os
import re
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path(__file__).parent / "models.yaml"


class ProviderConfig(BaseModel):
    """Configuration for the LLM backend."""

    backend: Literal["openrouter", "anthropic", "mock"] = "openrouter"
    model: str | None = None
    api_key: str | None = None
    base_url: str | None = None


class SearchConfig(BaseModel):
    """Configuration for the web search backend."""

    backend: Literal["tavily", "mock", "none"] = "none"
    api_key: str | None = None
    base_url: str | None = None
    requests_per_second: float = Field(2.0, gt=0)


class ThinkingConfig(BaseModel):
    """Thresholds and budgets for the thinking loop.

    Every field can be overridden per ``think`` call.
    """

    model_config = ConfigDict(extra="forbid")

    # Budgets
    max_thinking_tokens: int = Field(10000, gt=0)
    max_cycles: int = Field(20, ge=1)
    max_duration_ms: int = Field(300000, gt=0)  # 5 minutes

    # Stopping thresholds
    min_confidence: float = Field(0.85, ge=0, le=1)
    min_quality: float = Field(0.90, ge=0, le=1)
    min_improvement: float = Field(0.05, ge=0, le=1)
    stalled_cycles: int = Field(3, ge=1)
    early_stop_confidence: float = Field(0.95, ge=0, le=1)
    diminishing_window: int = Field(5, ge=2)  # Quality samples used for diminishing returns

    # Augmentation
    enable_web_search: bool = True
    enable_codebase_context: bool = True
    enable_parallel_thinking: bool = True
    max_research_operations: int = Field(3, ge=0)
    max_context_retrievals: int = Field(2, ge=0)
    research_queries_per_cycle: int = Field(2, ge=0)

    # Generation
    generation_temperature: float = Field(0.7, ge=0, le=2)
    generation_max_tokens: int = Field(2000, gt=0)
    refinement_temperature: float = Field(0.6, ge=0, le=2)
    refinement_max_tokens: int = Field(2500, gt=0)

    thinking_visibility: Literal["none", "summary", "full"] = "summary"


class CriticConfig(BaseModel):
    """Configuration for the quality critic."""

    temperature: float = Field(0.3, ge=0, le=2)  # Low temperature for consistent evaluation
    max_tokens: int = Field(2000, gt=0)


class BranchExplorerConfig(BaseModel):
    """Configuration for parallel branch exploration."""

    max_branches: int = Field(3, ge=1)
    max_concurrency: int = Field(3, ge=1)  # Branches generated at the same time
    generation_temperature: float = Field(0.7, ge=0, le=2)  # Higher temperature for diverse branches
    generation_max_tokens: int = Field(2000, gt=0)
    tradeoff_temperature: float = Field(0.2, ge=0, le=2)
    tradeoff_max_tokens: int = Field(500, gt=0)
    ranking_temperature: float = Field(0.3, ge=0, le=2)
    ranking_max_tokens: int = Field(500, gt=0)
    synthesis_temperature: float = Field(0.6, ge=0, le=2)
    synthesis_max_tokens: int = Field(2500, gt=0)


class ResearchConfig(BaseModel):
    """Configuration for research augmentation."""

    recent_steps_window: int = Field(5, ge=1)
    uncertainty_confidence: float = Field(0.6, ge=0, le=1)  # Steps below this are scanned for questions
    blocking_confidence: float = Field(0.4, ge=0, le=1)  # Steps below this produce blocking needs
    max_results: int = Field(5, ge=1)
    max_synthesis_results: int = Field(5, ge=1)
    synthesis_temperature: float = Field(0.3, ge=0, le=2)
    synthesis_max_tokens: int = Field(800, gt=0)


class ProfileConfig(BaseModel):
    """Configuration profile containing all backend and loop configs."""

    provider: ProviderConfig
    search: SearchConfig = SearchConfig()
    thinking: ThinkingConfig = ThinkingConfig()
    critic: CriticConfig = CriticConfig()
    explorer: BranchExplorerConfig = BranchExplorerConfig()
    research: ResearchConfig = ResearchConfig()


class ConfigFile(BaseModel):
    """Root configuration file structure."""

    profiles: dict[str, ProfileConfig]


def expand_env_vars(value: str) -> str:
    """Expand ${VAR} references in string with environment variables.

    Unset variables are left as-is.

    Args:
        value: String potentially containing env var references

    Returns:
        String with env vars expanded
    """
    if not isinstance(value, str):
        return value

    pattern = r"\$\{([^}]+)\}"

    def replacer(match):
        var_name = match.group(1)
        return os.environ.get(var_name, match.group(0))

    return re.sub(pattern, replacer, value)


def expand_env_vars_recursive(data):
    """Recursively expand env vars in nested dict/list structures."""
    if isinstance(data, dict):
        return {k: expand_env_vars_recursive(v) for k, v in data.items()}
    elif isinstance(data, list):
        return [expand_env_vars_recursive(item) for item in data]
    elif isinstance(data, str):
        return expand_env_vars(data)
    else:
        return data


def _drop_unresolved(data):
    """Treat values still holding an unresolved ${VAR} reference as unset."""
    if isinstance(data, dict):
        return {k: _drop_unresolved(v) for k, v in data.items()}
    if isinstance(data, str) and re.fullmatch(r"\$\{[^}]+\}", data):
        return None
    return data


def list_profiles(config_path: Path = DEFAULT_CONFIG_PATH) -> list[str]:
    """Names of the profiles defined in a config file."""
    with open(config_path) as f:
        raw_data = yaml.safe_load(f) or {}
    return list((raw_data.get("profiles") or {}).keys())


def load_config_from_yaml(config_path: Path, profile_name: str) -> ProfileConfig:
    """Load configuration from YAML file.

    Args:
        config_path: Path to config YAML file
        profile_name: Name of profile to load

    Returns:
        ProfileConfig for the requested profile

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValidationError: If config is invalid
        KeyError: If profile doesn't exist
    """
    with open(config_path) as f:
        raw_data = yaml.safe_load(f)

    expanded_data = _drop_unresolved(expand_env_vars_recursive(raw_data))
    config_file = ConfigFile(**expanded_data)

    if profile_name not in config_file.profiles:
        available = ", ".join(config_file.profiles.keys())
        raise KeyError(
            f"Profile '{profile_name}' not found. " f"Available profiles: {available}"
        )

    return config_file.profiles[profile_name]


def load_config_from_env() -> ProfileConfig:
    """Load configuration from environment variables (fallback mode).

    Returns:
        ProfileConfig constructed from environment variables
    """
    if os.environ.get("ANTHROPIC_API_KEY") and not os.environ.get("OPENROUTER_API_KEY"):
        provider = ProviderConfig(
            backend="anthropic",
            model=os.environ.get("ANTHROPIC_DEFAULT_MODEL"),
            api_key=os.environ.get("ANTHROPIC_API_KEY"),
        )
    else:
        provider = ProviderConfig(
            backend="openrouter",
            model=os.environ.get("OPENROUTER_DEFAULT_MODEL"),
            api_key=os.environ.get("OPENROUTER_API_KEY"),
            base_url=os.environ.get("OPENROUTER_BASE_URL", "https://openrouter.ai/api/v1"),
        )

    if os.environ.get("TAVILY_API_KEY"):
        search = SearchConfig(backend="tavily", api_key=os.environ["TAVILY_API_KEY"])
    else:
        search = SearchConfig(backend="none")

    return ProfileConfig(provider=provider, search=search)


def load_config(
    profile: str | None = None,
    config_path: Path | None = None,
) -> ProfileConfig:
    """Load configuration from YAML file or environment variables.

    Tries the YAML config file first and falls back to environment variables
    if the file doesn't exist or can't be read.

    Args:
        profile: Profile name to load. If None, uses THINKLOOP_PROFILE env var
                or "dev" as default.
        config_path: Path to config file. If None, uses the models.yaml
                    shipped next to this module.

    Returns:
        ProfileConfig with all backend configurations

    Raises:
        KeyError: If requested profile doesn't exist
    """
    if profile is None:
        profile = os.environ.get("THINKLOOP_PROFILE", "dev")

    if config_path is None:
        config_path = DEFAULT_CONFIG_PATH

    if not config_path.exists():
        logger.warning(f"Config file {config_path} not found, using environment variables")
        return load_config_from_env()

    try:
        return load_config_from_yaml(config_path, profile)
    except KeyError:
        raise
    except Exception as e:
        logger.warning(f"Failed to load config from {config_path}: {e}")
        logger.warning("Falling back to environment variables...")
        return load_config_from_env()
