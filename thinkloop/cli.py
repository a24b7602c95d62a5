"""Command-line interface for the thinking loop."""

import asyncio
import json
from contextlib import AsyncExitStack
from pathlib import Path
from typing import Annotated

import typer

from .config.factory import create_branch_explorer, create_from_profile, create_llm_provider
from .config.loader import DEFAULT_CONFIG_PATH, list_profiles, load_config, load_config_from_yaml

app = typer.Typer(
    name="thinkloop",
    help="Iterative self-critique reasoning over an LLM.",
    add_completion=False,
)


def parse_strategies(values: list[str] | None) -> list:
    """Validate --strategy values into BranchStrategy members."""
    from .thinking import BranchStrategy

    strategies = []
    for value in values or []:
        try:
            strategies.append(BranchStrategy(value))
        except ValueError:
            valid = ", ".join(s.value for s in BranchStrategy)
            typer.echo(f"Error: Invalid strategy '{value}'. Must be one of: {valid}", err=True)
            raise typer.Exit(1)
    return strategies


@app.command()
def think(
    task: Annotated[str, typer.Argument(help="Task to reason about")],
    profile: Annotated[
        str,
        typer.Option("--profile", "-p", help="Configuration profile (see 'thinkloop profiles')"),
    ] = None,
    language: Annotated[
        str,
        typer.Option("--language", "-l", help="Target programming language"),
    ] = None,
    context_file: Annotated[
        Path,
        typer.Option("--context-file", help="File with codebase context to include"),
    ] = None,
    constraints: Annotated[
        list[str],
        typer.Option("--constraint", "-c", help="Constraint the solution must respect (repeatable)"),
    ] = None,
    strategies: Annotated[
        list[str],
        typer.Option("--strategy", "-s", help="Explore these strategies before iterating (repeatable)"),
    ] = None,
    max_cycles: Annotated[
        int,
        typer.Option("--max-cycles", help="Override the maximum number of cycles"),
    ] = None,
    max_tokens: Annotated[
        int,
        typer.Option("--max-tokens", help="Override the thinking token budget"),
    ] = None,
    visibility: Annotated[
        str,
        typer.Option("--visibility", help="Thinking chain in the output: none, summary or full"),
    ] = None,
    show_steps: Annotated[
        bool,
        typer.Option("--show-steps", help="Print each thinking step as it is recorded"),
    ] = False,
    output_format: Annotated[
        str,
        typer.Option("--format", "-f", help="Output format: text or json"),
    ] = "text",
):
    """
    Iteratively generate, critique and refine a solution.

    Examples:

        # Default profile
        thinkloop think "Implement an LRU cache with TTL support" -l python

        # Explore alternatives first
        thinkloop think "Design a rate limiter" -s different_algorithms -s simple_vs_complex

        # Offline run with the mock backend
        thinkloop think "Sort a list" --profile test --format json
    """
    if visibility is not None and visibility not in ("none", "summary", "full"):
        typer.echo("Error: Visibility must be one of: none, summary, full", err=True)
        raise typer.Exit(1)

    overrides = {}
    if max_cycles is not None:
        overrides["max_cycles"] = max_cycles
    if max_tokens is not None:
        overrides["max_thinking_tokens"] = max_tokens
    if visibility is not None:
        overrides["thinking_visibility"] = visibility

    codebase_context = context_file.read_text() if context_file else None

    asyncio.run(_think_async(
        task=task,
        profile_name=profile,
        language=language,
        codebase_context=codebase_context,
        constraints=constraints or [],
        strategies=parse_strategies(strategies),
        overrides=overrides,
        show_steps=show_steps,
        output_format=output_format,
    ))


async def _think_async(
    task: str,
    profile_name: str | None,
    language: str | None,
    codebase_context: str | None,
    constraints: list[str],
    strategies: list,
    overrides: dict,
    show_steps: bool,
    output_format: str,
):
    """Async implementation of think."""
    from .thinking import CallbackObserver, ThinkingContext

    profile = load_config(profile_name)
    llm, search_provider, orchestrator = create_from_profile(profile)

    if show_steps:
        orchestrator.events.subscribe(CallbackObserver(
            step=lambda s: typer.echo(f"[cycle {s.cycle}] {s.step_type.value}: {s.content[:120]}", err=True),
        ))

    context = ThinkingContext(
        language=language,
        codebase_context=codebase_context,
        constraints=constraints,
    )

    async with AsyncExitStack() as stack:
        await stack.enter_async_context(llm)
        if search_provider is not None:
            await stack.enter_async_context(search_provider)
        result = await orchestrator.think(task, context, strategies=strategies, overrides=overrides)

    if output_format == "json":
        typer.echo(json.dumps(result.to_dict(), indent=2, default=str))
        return

    typer.echo(f"Stopped: {result.stopping_reason.value} ({result.explanation})")
    typer.echo(
        f"Iterations: {result.iterations} | Quality: {result.quality:.2f} | "
        f"Confidence: {result.confidence:.2f} | Tokens: {result.tokens_used}"
    )
    typer.echo(f"Research: {result.research_performed} | Context retrievals: {result.context_retrievals}")
    if result.final_critique and result.final_critique.critical_issues:
        typer.echo("\nRemaining issues:")
        for issue in result.final_critique.critical_issues:
            typer.echo(f"  - {issue}")
    typer.echo("\n" + result.solution)


@app.command()
def explore(
    task: Annotated[str, typer.Argument(help="Task to explore alternative approaches for")],
    strategies: Annotated[
        list[str],
        typer.Option("--strategy", "-s", help="Strategy to explore (repeatable); suggested from the task if omitted"),
    ] = None,
    profile: Annotated[
        str,
        typer.Option("--profile", "-p", help="Configuration profile"),
    ] = None,
    max_branches: Annotated[
        int,
        typer.Option("--max-branches", "-n", help="Maximum number of branches"),
    ] = None,
    language: Annotated[
        str,
        typer.Option("--language", "-l", help="Target programming language"),
    ] = None,
    output_format: Annotated[
        str,
        typer.Option("--format", "-f", help="Output format: text or json"),
    ] = "text",
):
    """
    Explore alternative approaches in parallel and synthesize them.

    Examples:

        thinkloop explore "Design a job queue" -s different_architectures -s different_libraries
    """
    asyncio.run(_explore_async(
        task=task,
        strategies=parse_strategies(strategies),
        profile_name=profile,
        max_branches=max_branches,
        language=language,
        output_format=output_format,
    ))


async def _explore_async(
    task: str,
    strategies: list,
    profile_name: str | None,
    max_branches: int | None,
    language: str | None,
    output_format: str,
):
    """Async implementation of explore."""
    from .thinking import ExplorationOptions

    profile = load_config(profile_name)
    llm = create_llm_provider(profile.provider)
    explorer = create_branch_explorer(llm, profile.explorer)

    async with llm:
        result = await explorer.explore(
            task,
            strategies,
            ExplorationOptions(language=language, max_branches=max_branches),
        )

    if output_format == "json":
        typer.echo(json.dumps(result.to_dict(), indent=2, default=str))
        return

    typer.echo(f"Explored {len(result.branches)} branches:\n")
    for i, branch in enumerate(result.branches, 1):
        marker = " (recommended)" if branch.id == result.recommended_branch else ""
        typer.echo(f"{i}. {branch.strategy.value}{marker}: score {branch.recommendation_score:.2f}")
        typer.echo(
            f"   Complexity: {branch.tradeoffs.complexity} | Performance: {branch.tradeoffs.performance} | "
            f"Maintainability: {branch.tradeoffs.maintainability}"
        )
    typer.echo(f"\nComparison:\n{result.comparison_analysis}")
    typer.echo(f"\nSynthesized solution:\n{result.synthesized_solution}")


@app.command()
def profiles():
    """List available configuration profiles."""
    typer.echo("Available profiles:\n")
    for name in list_profiles():
        profile = load_config_from_yaml(DEFAULT_CONFIG_PATH, name)
        thinking = profile.thinking

        typer.echo(f"  {name}")
        typer.echo(f"    LLM: {profile.provider.backend} {profile.provider.model or ''}".rstrip())
        typer.echo(f"    Search: {profile.search.backend}")
        typer.echo(
            f"    Thinking: max_cycles={thinking.max_cycles}, min_quality={thinking.min_quality}, "
            f"max_thinking_tokens={thinking.max_thinking_tokens}"
        )
        typer.echo()


def main():
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
