"""
Branch explorer: solves a task along several strategies concurrently, ranks
the resulting branches and synthesizes a combined solution.
"""

from __future__ import annotations

import asyncio
import logging
import re
import uuid
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Sequence

from pydantic import BaseModel, Field, field_validator

from ..llm.completion import generate_text
from .critic import coerce_score, coerce_str_list
from .models import (
    BranchStrategy,
    ExplorationResult,
    StepType,
    ThinkingBranch,
    Tradeoffs,
)
from .parsing import ParseFailure, coerce_index, extract_json_array, extract_json_object
from .step_recorder import StepRecorder

if TYPE_CHECKING:
    from ..cancellation import CancellationToken
    from ..config.loader import BranchExplorerConfig
    from ..llm.protocols import LLMProvider

logger = logging.getLogger(__name__)

LEVELS = ("low", "medium", "high")
COMPARISON_HEADING = re.compile(r"^#{1,3}\s*Comparison\b.*$", re.IGNORECASE | re.MULTILINE)


def coerce_level(value: Any) -> str:
    if isinstance(value, str) and value.strip().lower() in LEVELS:
        return value.strip().lower()
    return "medium"


class TradeoffsPayload(BaseModel):
    """Validated shape of the tradeoff JSON returned by the model."""

    pros: list[str] = Field(default_factory=list)
    cons: list[str] = Field(default_factory=list)
    complexity: str = "medium"
    performance: str = "medium"
    maintainability: str = "medium"
    estimated_effort: str = Field("medium", alias="estimatedEffort")

    model_config = {"populate_by_name": True, "extra": "ignore"}

    @field_validator("pros", "cons", mode="before")
    @classmethod
    def _to_str_list(cls, value: Any) -> list[str]:
        return coerce_str_list(value)

    @field_validator("complexity", "performance", "maintainability", "estimated_effort", mode="before")
    @classmethod
    def _to_level(cls, value: Any) -> str:
        return coerce_level(value)


@dataclass
class ExplorationOptions:
    """Per-call knobs for an exploration."""

    language: str | None = None
    constraints: list[str] = field(default_factory=list)
    max_branches: int | None = None
    seed_solution: str | None = None


class BranchExplorer:
    """
    Explores alternative approaches in parallel.

    Each branch owns its own StepRecorder and solution text; branches never
    see each other while they run. Provider errors propagate; malformed
    tradeoff or ranking output falls back to neutral values.

    Usage:
        explorer = BranchExplorer(llm)
        result = await explorer.explore(task, explorer.suggest_strategies(task))
        print(result.synthesized_solution)
    """

    def __init__(
        self,
        llm_provider: LLMProvider,
        config: BranchExplorerConfig | None = None,
    ):
        self.llm = llm_provider

        if config is None:
            from ..config.loader import BranchExplorerConfig
            config = BranchExplorerConfig()

        self.config = config

    async def explore(
        self,
        task: str,
        strategies: Sequence[BranchStrategy] | None = None,
        options: ExplorationOptions | None = None,
        cancellation: CancellationToken | None = None,
    ) -> ExplorationResult:
        """
        Explore, rank and synthesize.

        Args:
            task: The task to solve
            strategies: Strategies to explore; suggested from the task when empty
            options: Language, constraints and branch limit
            cancellation: Optional cancellation token

        Returns:
            ExplorationResult with branches sorted by recommendation score
        """
        options = options or ExplorationOptions()
        strategies = list(dict.fromkeys(strategies or self.suggest_strategies(task)))
        max_branches = options.max_branches or self.config.max_branches
        selected = strategies[:max_branches]

        logger.info(f"Exploring {len(selected)} branches: {[s.value for s in selected]}")

        semaphore = asyncio.Semaphore(self.config.max_concurrency)
        tasks = [
            asyncio.create_task(self._explore_branch(task, strategy, options, semaphore, cancellation))
            for strategy in selected
        ]
        try:
            branches = await asyncio.gather(*tasks)
        finally:
            # Siblings of a failed branch are cancelled before the error propagates
            pending = [t for t in tasks if not t.done()]
            for t in pending:
                t.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)
                logger.warning(f"Cancelled {len(pending)} unfinished branches")

        ranked, ranking_tokens = await self._rank_branches(task, list(branches), cancellation)
        synthesized, comparison, synthesis_tokens = await self._synthesize(task, ranked, cancellation)

        total_tokens = sum(b.tokens_used for b in ranked) + ranking_tokens + synthesis_tokens
        logger.info(
            f"Exploration complete: best={ranked[0].strategy.value if ranked else None}, "
            f"tokens={total_tokens}"
        )

        return ExplorationResult(
            branches=ranked,
            synthesized_solution=synthesized,
            recommended_branch=ranked[0].id if ranked else "",
            comparison_analysis=comparison,
            tokens_used=total_tokens,
        )

    # =========================================================================
    # Branches
    # =========================================================================

    def _build_branch_prompt(self, task: str, strategy: BranchStrategy, options: ExplorationOptions) -> str:
        lines = [f"Solve this task using the following approach: {strategy.guidance}", "", f"**Task:** {task}", ""]
        if options.language:
            lines += [f"**Language:** {options.language}", ""]
        if options.constraints:
            lines += ["**Constraints:**", *[f"- {c}" for c in options.constraints], ""]
        if options.seed_solution:
            lines += ["**Current draft (for reference, you may depart from it):**", options.seed_solution, ""]
        lines += [
            f"**Approach:** {strategy.description}",
            "",
            "Provide:",
            "1. Complete solution following this approach",
            "2. Pros of this approach",
            "3. Cons/limitations of this approach",
            "4. Complexity, performance and maintainability (low/medium/high)",
            "5. Estimated implementation effort",
            "",
            "Format your response clearly with these sections.",
        ]
        return "\n".join(lines)

    async def _explore_branch(
        self,
        task: str,
        strategy: BranchStrategy,
        options: ExplorationOptions,
        semaphore: asyncio.Semaphore,
        cancellation: CancellationToken | None,
    ) -> ThinkingBranch:
        async with semaphore:
            branch = ThinkingBranch(
                id=str(uuid.uuid4())[:8],
                strategy=strategy,
                description=strategy.description,
            )
            recorder = StepRecorder(chain_id=branch.id)
            recorder.next_cycle()

            generation = await generate_text(
                self.llm,
                self._build_branch_prompt(task, strategy, options),
                temperature=self.config.generation_temperature,
                max_tokens=self.config.generation_max_tokens,
                cancellation=cancellation,
            )
            branch.solution = generation.text
            solution_step = recorder.add_step(
                StepType.EXPLORATION,
                generation.text,
                tokens_used=generation.total_tokens,
                branch_id=branch.id,
                metadata={"strategy": strategy.value},
            )

            tradeoffs, effort, tradeoff_tokens = await self._extract_tradeoffs(generation.text, cancellation)
            branch.tradeoffs = tradeoffs
            branch.estimated_effort = effort
            recorder.add_step(
                StepType.OBSERVATION,
                f"Tradeoffs: complexity={tradeoffs.complexity}, performance={tradeoffs.performance}, "
                f"maintainability={tradeoffs.maintainability}",
                tokens_used=tradeoff_tokens,
                dependencies=[solution_step.id],
                branch_id=branch.id,
            )

            recorder.complete()
            branch.steps = recorder.steps
            branch.tokens_used = recorder.total_tokens
            logger.debug(f"Branch {branch.id} ({strategy.value}) used {branch.tokens_used} tokens")
            return branch

    async def _extract_tradeoffs(
        self,
        solution: str,
        cancellation: CancellationToken | None,
    ) -> tuple[Tradeoffs, str, int]:
        prompt = f"""Extract the tradeoffs from this solution description:

{solution}

Provide a JSON object with:
{{
  "pros": [list of advantages],
  "cons": [list of disadvantages],
  "complexity": "low" | "medium" | "high",
  "performance": "low" | "medium" | "high",
  "maintainability": "low" | "medium" | "high",
  "estimatedEffort": "low" | "medium" | "high"
}}"""

        generation = await generate_text(
            self.llm,
            prompt,
            temperature=self.config.tradeoff_temperature,
            max_tokens=self.config.tradeoff_max_tokens,
            cancellation=cancellation,
        )

        extracted = extract_json_object(generation.text)
        if isinstance(extracted, ParseFailure):
            logger.warning(f"Tradeoffs could not be parsed ({extracted.reason}); using neutral defaults")
            return Tradeoffs.neutral(), "medium", generation.total_tokens

        payload = TradeoffsPayload.model_validate(extracted.value)
        tradeoffs = Tradeoffs(
            pros=payload.pros,
            cons=payload.cons,
            complexity=payload.complexity,
            performance=payload.performance,
            maintainability=payload.maintainability,
        )
        return tradeoffs, payload.estimated_effort, generation.total_tokens

    # =========================================================================
    # Ranking and synthesis
    # =========================================================================

    async def _rank_branches(
        self,
        task: str,
        branches: list[ThinkingBranch],
        cancellation: CancellationToken | None,
    ) -> tuple[list[ThinkingBranch], int]:
        """Score every branch with one prompt; sort descending, ties keep declaration order."""
        if not branches:
            return [], 0

        described = "\n---\n".join(
            f"""
**Approach {i}: {b.description}**
Pros: {', '.join(b.tradeoffs.pros)}
Cons: {', '.join(b.tradeoffs.cons)}
Complexity: {b.tradeoffs.complexity}
Performance: {b.tradeoffs.performance}
Maintainability: {b.tradeoffs.maintainability}

Solution:
{b.solution}
"""
            for i, b in enumerate(branches)
        )
        prompt = f"""Rank these solution approaches for the task: "{task}"
{described}
Rate each approach from 0-1 considering:
- Correctness and completeness
- Alignment with best practices
- Performance characteristics
- Maintainability and clarity
- Production-readiness

Format as JSON array: [{{"approachIndex": 0, "score": 0.85}}, ...]"""

        generation = await generate_text(
            self.llm,
            prompt,
            temperature=self.config.ranking_temperature,
            max_tokens=self.config.ranking_max_tokens,
            cancellation=cancellation,
        )

        for branch in branches:
            branch.recommendation_score = 0.5

        extracted = extract_json_array(generation.text)
        if isinstance(extracted, ParseFailure):
            logger.warning(f"Branch ranking could not be parsed ({extracted.reason}); scores left at 0.5")
        else:
            for position, item in enumerate(extracted.value):
                if not isinstance(item, dict):
                    continue
                index = coerce_index(item.get("approachIndex", position), len(branches))
                if index is not None:
                    branches[index].recommendation_score = coerce_score(item.get("score"))

        ranked = sorted(branches, key=lambda b: b.recommendation_score, reverse=True)
        return ranked, generation.total_tokens

    async def _synthesize(
        self,
        task: str,
        ranked: list[ThinkingBranch],
        cancellation: CancellationToken | None,
    ) -> tuple[str, str, int]:
        """Combine the branches into one solution plus a comparison narrative."""
        if not ranked:
            return "", "", 0

        described = "\n---\n".join(
            f"""
**Approach {i} (Score: {b.recommendation_score:.2f}): {b.description}**
{b.solution}

Strengths: {', '.join(b.tradeoffs.pros)}
Weaknesses: {', '.join(b.tradeoffs.cons)}
Complexity: {b.tradeoffs.complexity}, Performance: {b.tradeoffs.performance}, Maintainability: {b.tradeoffs.maintainability}
"""
            for i, b in enumerate(ranked, 1)
        )
        prompt = f"""Synthesize the best solution by combining strengths from these approaches:

**Task:** {task}
{described}
Create a synthesized solution that:
1. Takes the best ideas from each approach
2. Minimizes the weaknesses
3. Balances complexity with functionality
4. Provides a production-ready implementation

Write the synthesized solution first. Then add a section headed "## Comparison"
(2-3 paragraphs) summarizing the key differences, when to choose each
approach, and your recommendation."""

        generation = await generate_text(
            self.llm,
            prompt,
            temperature=self.config.synthesis_temperature,
            max_tokens=self.config.synthesis_max_tokens,
            cancellation=cancellation,
        )

        solution, comparison = self.split_comparison(generation.text)
        if not comparison:
            comparison = self.summarize_ranking(ranked)
        return solution, comparison, generation.total_tokens

    @staticmethod
    def split_comparison(text: str) -> tuple[str, str]:
        """Split synthesis output at its "## Comparison" heading."""
        match = COMPARISON_HEADING.search(text)
        if not match:
            return text.strip(), ""
        return text[: match.start()].strip(), text[match.end():].strip()

    @staticmethod
    def summarize_ranking(ranked: Sequence[ThinkingBranch]) -> str:
        lines = [
            f"{i}. {b.description} (score {b.recommendation_score:.2f}): complexity "
            f"{b.tradeoffs.complexity}, performance {b.tradeoffs.performance}, "
            f"maintainability {b.tradeoffs.maintainability}"
            for i, b in enumerate(ranked, 1)
        ]
        return "\n".join(lines)

    @staticmethod
    def suggest_strategies(task: str) -> list[BranchStrategy]:
        """Pick default strategies from keywords in the task."""
        text = task.lower()
        strategies = []

        if any(k in text for k in ("algorithm", "optimize", "sort", "search")):
            strategies.append(BranchStrategy.DIFFERENT_ALGORITHMS)
        if any(k in text for k in ("design", "architecture", "system", "structure")):
            strategies.append(BranchStrategy.DIFFERENT_ARCHITECTURES)
        if any(k in text for k in ("library", "framework", "tool")):
            strategies.append(BranchStrategy.DIFFERENT_LIBRARIES)

        if not strategies:
            strategies = [BranchStrategy.SIMPLE_VS_COMPLEX, BranchStrategy.OPTIMISTIC_VS_CAUTIOUS]
        return strategies
