"""
Quality critic: multi-dimensional self-critique of candidate solutions.

Prompts the LLM for a fixed-shape JSON assessment and turns it into a
CritiqueResult. Malformed output never fails the loop; it yields an explicit
fallback critique instead.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Sequence

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..llm.completion import generate_text
from .models import (
    AlternativeAssessment,
    CritiqueResult,
    StepType,
    ThinkingStep,
    Trend,
    clamp_unit,
    classify_trend,
)
from .parsing import ParseFailure, coerce_index, extract_json_array, extract_json_object, extract_list_items

if TYPE_CHECKING:
    from ..cancellation import CancellationToken
    from ..config.loader import CriticConfig
    from ..llm.protocols import LLMProvider

logger = logging.getLogger(__name__)

NEUTRAL_SCORE = 0.5


def coerce_score(value: Any) -> float:
    """Clamp a model-supplied score into [0, 1]; non-numeric values become 0.5."""
    if isinstance(value, bool) or value is None:
        return NEUTRAL_SCORE
    if isinstance(value, str):
        try:
            value = float(value.strip())
        except ValueError:
            return NEUTRAL_SCORE
    if not isinstance(value, (int, float)) or math.isnan(value):
        return NEUTRAL_SCORE
    return clamp_unit(float(value))


def coerce_str_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value] if value.strip() else []
    if isinstance(value, (list, tuple)):
        return [str(item) for item in value if item is not None and str(item).strip()]
    return []


def coerce_flag(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("yes", "true", "y", "1")
    return bool(value)


class CritiquePayload(BaseModel):
    """Validated shape of the critique JSON returned by the model."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    logical_coherence: float = Field(NEUTRAL_SCORE, alias="logicalCoherence")
    assumptions_valid: float = Field(NEUTRAL_SCORE, alias="assumptionsValid")
    coverage_score: float = Field(NEUTRAL_SCORE, alias="coverageScore")
    edge_cases_considered: float = Field(NEUTRAL_SCORE, alias="edgeCasesConsidered")
    solution_quality: float = Field(NEUTRAL_SCORE, alias="solutionQuality")
    best_practices: float = Field(NEUTRAL_SCORE, alias="bestPractices")
    clarity: float = NEUTRAL_SCORE
    specificity: float = NEUTRAL_SCORE
    uncertainty_awareness: float = Field(NEUTRAL_SCORE, alias="uncertaintyAwareness")
    reasoning_depth: float = Field(NEUTRAL_SCORE, alias="reasoningDepth")
    overall_confidence: float = Field(NEUTRAL_SCORE, alias="overallConfidence")

    uncertainty_areas: list[str] = Field(default_factory=list, alias="uncertaintyAreas")
    missing_information: list[str] = Field(default_factory=list, alias="missingInformation")
    alternative_approaches: list[str] = Field(default_factory=list, alias="alternativeApproaches")
    critical_issues: list[str] = Field(default_factory=list, alias="criticalIssues")
    suggestions: list[str] = Field(default_factory=list)
    research_queries: list[str] = Field(default_factory=list, alias="researchQueries")

    needs_more_research: bool = Field(False, alias="needsMoreResearch")
    needs_codebase_context: bool = Field(False, alias="needsCodebaseContext")
    needs_external_validation: bool = Field(False, alias="needsExternalValidation")

    @field_validator(
        "logical_coherence",
        "assumptions_valid",
        "coverage_score",
        "edge_cases_considered",
        "solution_quality",
        "best_practices",
        "clarity",
        "specificity",
        "uncertainty_awareness",
        "reasoning_depth",
        "overall_confidence",
        mode="before",
    )
    @classmethod
    def _clamp_score(cls, value: Any) -> float:
        return coerce_score(value)

    @field_validator(
        "uncertainty_areas",
        "missing_information",
        "alternative_approaches",
        "critical_issues",
        "suggestions",
        "research_queries",
        mode="before",
    )
    @classmethod
    def _to_str_list(cls, value: Any) -> list[str]:
        return coerce_str_list(value)

    @field_validator(
        "needs_more_research",
        "needs_codebase_context",
        "needs_external_validation",
        mode="before",
    )
    @classmethod
    def _to_flag(cls, value: Any) -> bool:
        return coerce_flag(value)


@dataclass
class CritiqueContext:
    """Optional information that sharpens a critique."""

    language: str | None = None
    codebase_context: str | None = None
    previous_critique: CritiqueResult | None = None


CRITIQUE_PROMPT = """You are an expert code reviewer and critical thinker. Your task is to thoroughly evaluate the following solution.

**Task:**
{task}

**Solution:**
{solution}
{extra}
Evaluate the solution along these dimensions, each scored from 0 to 1:

## Logical Soundness
- logicalCoherence: Are there contradictions or logical errors?
- assumptionsValid: Are the assumptions well-justified?

## Completeness
- coverageScore: Are all aspects of the task addressed?
- edgeCasesConsidered: Are edge cases considered and handled?

## Quality
- solutionQuality: Overall quality of the solution
- bestPractices: Adherence to industry standards and best practices

## Meta-Cognition
- clarity: How clearly is the solution expressed?
- specificity: How concrete and specific is it?
- uncertaintyAwareness: Does it acknowledge what it is unsure about?
- reasoningDepth: How deep is the underlying reasoning?

Also list uncertainty areas, missing information and alternative approaches;
say whether more research, codebase context or external validation is needed
(and what to search for); and give your overall confidence, critical issues
and specific suggestions.

Respond with JSON using exactly these keys:
{{
  "logicalCoherence": <number>,
  "assumptionsValid": <number>,
  "coverageScore": <number>,
  "edgeCasesConsidered": <number>,
  "solutionQuality": <number>,
  "bestPractices": <number>,
  "clarity": <number>,
  "specificity": <number>,
  "uncertaintyAwareness": <number>,
  "reasoningDepth": <number>,
  "uncertaintyAreas": [<strings>],
  "missingInformation": [<strings>],
  "alternativeApproaches": [<strings>],
  "needsMoreResearch": <boolean>,
  "needsCodebaseContext": <boolean>,
  "needsExternalValidation": <boolean>,
  "researchQueries": [<strings>],
  "overallConfidence": <number>,
  "criticalIssues": [<strings>],
  "suggestions": [<strings>]
}}"""


class QualityCritic:
    """
    Evaluates candidate solutions with structured LLM critiques.

    Provider errors propagate to the caller; only malformed output is
    absorbed (into a fallback critique or neutral defaults).
    """

    def __init__(
        self,
        llm_provider: LLMProvider,
        config: CriticConfig | None = None,
    ):
        """
        Initialize the critic.

        Args:
            llm_provider: LLM provider used for every critique call
            config: Critic configuration (temperatures and token limits)
        """
        self.llm = llm_provider

        if config is None:
            from ..config.loader import CriticConfig
            config = CriticConfig()

        self.config = config

    async def critique(
        self,
        task: str,
        solution: str,
        context: CritiqueContext | None = None,
        cancellation: CancellationToken | None = None,
    ) -> CritiqueResult:
        """
        Critique a solution against its task.

        Args:
            task: The task the solution addresses
            solution: Candidate solution text
            context: Optional language, codebase context and previous critique
            cancellation: Optional cancellation token

        Returns:
            CritiqueResult with every score clamped into [0, 1]
        """
        context = context or CritiqueContext()
        prompt = self._build_critique_prompt(task, solution, context)

        generation = await generate_text(
            self.llm,
            prompt,
            temperature=self.config.temperature,
            max_tokens=self.config.max_tokens,
            cancellation=cancellation,
        )

        result = self.parse_critique(generation.text, context.previous_critique)
        result.tokens_used = generation.total_tokens

        logger.info(
            f"Critique: quality={result.solution_quality:.2f}, "
            f"confidence={result.overall_confidence:.2f}, "
            f"issues={len(result.critical_issues)}"
            + (" (fallback)" if result.is_fallback else "")
        )
        return result

    def _build_critique_prompt(self, task: str, solution: str, context: CritiqueContext) -> str:
        extra_parts = []
        if context.language:
            extra_parts.append(f"**Language:** {context.language}")
        if context.codebase_context:
            extra_parts.append(f"**Codebase Context:**\n{context.codebase_context}")
        if context.previous_critique:
            previous = context.previous_critique
            issues = ", ".join(previous.critical_issues) or "none"
            extra_parts.append(
                f"**Previous Critique:**\n"
                f"Last quality score: {previous.solution_quality:.2f}\n"
                f"Previous issues: {issues}"
            )

        extra = "\n" + "\n\n".join(extra_parts) + "\n" if extra_parts else ""
        return CRITIQUE_PROMPT.format(task=task, solution=solution, extra=extra)

    def parse_critique(
        self,
        text: str,
        previous: CritiqueResult | None = None,
    ) -> CritiqueResult:
        """Turn raw model output into a CritiqueResult, falling back on parse failure."""
        extracted = extract_json_object(text)
        if isinstance(extracted, ParseFailure):
            logger.warning(f"Critique response could not be parsed ({extracted.reason}); using fallback")
            result = CritiqueResult.fallback(extracted.reason)
        else:
            payload = CritiquePayload.model_validate(extracted.value)
            result = CritiqueResult(**payload.model_dump())

        if previous is not None:
            result.previous_score = previous.solution_quality
            result.improvement = result.solution_quality - previous.solution_quality

        return result

    async def identify_flaws(
        self,
        solution: str,
        *,
        language: str | None = None,
        task: str | None = None,
        cancellation: CancellationToken | None = None,
    ) -> list[str]:
        """Quick pass listing only critical flaws (security, correctness, performance)."""
        task_line = f"Task: {task}\n\n" if task else ""
        prompt = (
            f"Identify critical flaws in this {language or 'code'} solution:\n\n"
            f"{task_line}"
            f"Solution:\n{solution}\n\n"
            "List only critical issues (security, correctness, performance). Be concise."
        )

        generation = await generate_text(
            self.llm,
            prompt,
            temperature=0.2,
            max_tokens=500,
            cancellation=cancellation,
        )
        return extract_list_items(generation.text)

    async def suggest_improvements(
        self,
        critique: CritiqueResult,
        solution: str,
        cancellation: CancellationToken | None = None,
    ) -> list[str]:
        """Concrete, actionable improvements for the issues a critique raised."""
        if not critique.critical_issues and critique.solution_quality > 0.9:
            return ["Solution is high quality. Minor refinements possible."]

        issues = "\n".join(critique.critical_issues) or "None identified"
        suggestions = "\n".join(critique.suggestions) or "None"
        prompt = f"""Given this solution and identified issues, suggest specific, actionable improvements:

**Critical Issues:**
{issues}

**General Suggestions:**
{suggestions}

**Solution:**
{solution}

Provide 3-5 specific, actionable improvements. Be concrete and technical."""

        generation = await generate_text(
            self.llm,
            prompt,
            temperature=0.4,
            max_tokens=800,
            cancellation=cancellation,
        )
        return extract_list_items(generation.text)

    async def compare_alternatives(
        self,
        task: str,
        alternatives: Sequence[tuple[str, str]],
        cancellation: CancellationToken | None = None,
    ) -> list[AlternativeAssessment]:
        """
        Score several alternative solutions for the same task.

        Args:
            task: The shared task
            alternatives: (description, solution) pairs
            cancellation: Optional cancellation token

        Returns:
            One assessment per alternative, in input order. Alternatives the
            model didn't score keep the neutral 0.5.
        """
        if not alternatives:
            return []

        blocks = "\n".join(
            f"\n**Alternative {i}: {description}**\n{solution}\n"
            for i, (description, solution) in enumerate(alternatives)
        )
        prompt = f"""Compare these alternative solutions for the task: "{task}"
{blocks}
For each alternative, provide:
1. Quality score (0-1)
2. Pros (3-5 points)
3. Cons (3-5 points)

Format as JSON array:
[
  {{
    "alternativeIndex": <number>,
    "score": <number>,
    "pros": [<strings>],
    "cons": [<strings>]
  }}
]"""

        generation = await generate_text(
            self.llm,
            prompt,
            temperature=0.3,
            max_tokens=1500,
            cancellation=cancellation,
        )

        assessments = [AlternativeAssessment(index=i) for i in range(len(alternatives))]
        extracted = extract_json_array(generation.text)
        if isinstance(extracted, ParseFailure):
            logger.warning(f"Alternatives comparison could not be parsed ({extracted.reason})")
            return assessments

        for position, item in enumerate(extracted.value):
            if not isinstance(item, dict):
                continue
            index = coerce_index(item.get("alternativeIndex", position), len(assessments))
            if index is None:
                continue
            assessments[index] = AlternativeAssessment(
                index=index,
                score=coerce_score(item.get("score")),
                pros=coerce_str_list(item.get("pros")),
                cons=coerce_str_list(item.get("cons")),
            )
        return assessments

    @staticmethod
    def detect_circular_reasoning(steps: Sequence[ThinkingStep]) -> bool:
        """True when one of the last 5 reasoning steps repeats another verbatim.

        Comparison ignores case and whitespace. Needs at least 3 reasoning steps.
        """
        reasoning = [s for s in steps if s.step_type == StepType.REASONING]
        if len(reasoning) < 3:
            return False

        seen: set[str] = set()
        for step in reasoning[-5:]:
            normalized = " ".join(step.content.lower().split())
            if normalized in seen:
                return True
            seen.add(normalized)
        return False

    @staticmethod
    def calculate_quality_trend(critiques: Sequence[CritiqueResult]) -> Trend:
        """Mean quality of the last 3 critiques against all earlier ones."""
        scores = [c.solution_quality for c in critiques]
        return classify_trend(scores[-3:], scores[:-3])
