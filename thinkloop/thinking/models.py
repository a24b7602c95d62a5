"""Data models for the iterative thinking system."""

from __future__ import annotations

import time
from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Literal


class StepType(str, Enum):
    """Kind of a recorded thinking step."""

    REASONING = "reasoning"
    CRITIQUE = "critique"
    OBSERVATION = "observation"
    SYNTHESIS = "synthesis"
    HYPOTHESIS = "hypothesis"
    VALIDATION = "validation"
    EXPLORATION = "exploration"


class ThinkingPhase(str, Enum):
    """Phase of the orchestrator within a cycle."""

    GENERATING = "generating"
    CRITIQUING = "critiquing"
    AUGMENTING = "augmenting"
    DECIDING = "deciding"
    STOPPED = "stopped"


class StoppingReason(str, Enum):
    """Why a thinking run terminated."""

    QUALITY_MET = "quality_met"
    CONFIDENCE_MET = "confidence_met"
    STALLED = "stalled"
    MAX_ITERATIONS = "max_iterations"
    MAX_TOKENS = "max_tokens"
    TIMEOUT = "timeout"
    DIMINISHING_RETURNS = "diminishing_returns"
    USER_CANCELLED = "user_cancelled"


class Trend(str, Enum):
    """Direction of a score series."""

    IMPROVING = "improving"
    DECLINING = "declining"
    STABLE = "stable"


TREND_THRESHOLD = 0.05


def mean(values: list[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def classify_trend(
    recent: list[float],
    earlier: list[float],
    threshold: float = TREND_THRESHOLD,
) -> Trend:
    """Compare the mean of ``recent`` against the mean of ``earlier``.

    Returns STABLE when either side is empty or the difference is within
    ``threshold``.
    """
    if not recent or not earlier:
        return Trend.STABLE
    diff = mean(recent) - mean(earlier)
    if diff > threshold:
        return Trend.IMPROVING
    if diff < -threshold:
        return Trend.DECLINING
    return Trend.STABLE


def clamp_unit(value: float) -> float:
    """Clamp a score into [0, 1]."""
    return max(0.0, min(1.0, value))


# =============================================================================
# Steps and chains
# =============================================================================


@dataclass
class ThinkingStep:
    """A single recorded unit of reasoning.

    Dependencies are stored as step ids, never as live references.
    """

    id: str
    cycle: int
    step_type: StepType
    content: str
    confidence: float = 0.5
    tokens_used: int = 0
    dependencies: list[str] = field(default_factory=list)
    timestamp: datetime = field(default_factory=datetime.now)
    branch_id: str | None = None
    depth: int = 0
    metadata: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if not 0 <= self.confidence <= 1:
            raise ValueError("Confidence must be between 0 and 1")

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "cycle": self.cycle,
            "step_type": self.step_type.value,
            "content": self.content,
            "confidence": self.confidence,
            "tokens_used": self.tokens_used,
            "dependencies": list(self.dependencies),
            "timestamp": self.timestamp.isoformat(),
            "branch_id": self.branch_id,
            "depth": self.depth,
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ThinkingStep:
        return cls(
            id=data["id"],
            cycle=data.get("cycle", 0),
            step_type=StepType(data["step_type"]),
            content=data.get("content", ""),
            confidence=data.get("confidence", 0.5),
            tokens_used=data.get("tokens_used", 0),
            dependencies=list(data.get("dependencies", [])),
            timestamp=datetime.fromisoformat(data["timestamp"]) if data.get("timestamp") else datetime.now(),
            branch_id=data.get("branch_id"),
            depth=data.get("depth", 0),
            metadata=dict(data.get("metadata", {})),
        )


@dataclass
class ThinkingChain:
    """Ordered record of every step taken during one ``think`` call."""

    id: str
    steps: list[ThinkingStep] = field(default_factory=list)
    total_tokens: int = 0
    max_depth: int = 0
    current_cycle: int = 0
    branches: list[str] = field(default_factory=list)
    started_at: datetime = field(default_factory=datetime.now)
    ended_at: datetime | None = None

    @property
    def is_complete(self) -> bool:
        return self.ended_at is not None

    @property
    def duration_ms(self) -> int:
        end = self.ended_at or datetime.now()
        return int((end - self.started_at).total_seconds() * 1000)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "steps": [step.to_dict() for step in self.steps],
            "total_tokens": self.total_tokens,
            "max_depth": self.max_depth,
            "current_cycle": self.current_cycle,
            "branches": list(self.branches),
            "started_at": self.started_at.isoformat(),
            "ended_at": self.ended_at.isoformat() if self.ended_at else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ThinkingChain:
        return cls(
            id=data["id"],
            steps=[ThinkingStep.from_dict(s) for s in data.get("steps", [])],
            total_tokens=data.get("total_tokens", 0),
            max_depth=data.get("max_depth", 0),
            current_cycle=data.get("current_cycle", 0),
            branches=list(data.get("branches", [])),
            started_at=datetime.fromisoformat(data["started_at"]) if data.get("started_at") else datetime.now(),
            ended_at=datetime.fromisoformat(data["ended_at"]) if data.get("ended_at") else None,
        )


# =============================================================================
# Critique
# =============================================================================


@dataclass
class CritiqueResult:
    """Multi-dimensional quality assessment of a candidate solution.

    All scores are in [0, 1]. ``previous_score`` and ``improvement`` are only
    populated when a prior critique was supplied.
    """

    # Quality dimensions
    logical_coherence: float = 0.5
    assumptions_valid: float = 0.5
    coverage_score: float = 0.5
    edge_cases_considered: float = 0.5
    solution_quality: float = 0.5
    best_practices: float = 0.5

    # Meta-cognition
    clarity: float = 0.5
    specificity: float = 0.5
    uncertainty_awareness: float = 0.5
    reasoning_depth: float = 0.5

    uncertainty_areas: list[str] = field(default_factory=list)
    missing_information: list[str] = field(default_factory=list)
    alternative_approaches: list[str] = field(default_factory=list)
    critical_issues: list[str] = field(default_factory=list)
    suggestions: list[str] = field(default_factory=list)
    research_queries: list[str] = field(default_factory=list)

    needs_more_research: bool = False
    needs_codebase_context: bool = False
    needs_external_validation: bool = False

    overall_confidence: float = 0.5
    previous_score: float | None = None
    improvement: float | None = None
    tokens_used: int = 0
    is_fallback: bool = False
    parse_error: str | None = None

    SCORE_FIELDS = (
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
    )

    @property
    def quality(self) -> float:
        """The score the iteration loop optimises."""
        return self.solution_quality

    def scores(self) -> dict[str, float]:
        return {name: getattr(self, name) for name in self.SCORE_FIELDS}

    @classmethod
    def fallback(cls, parse_error: str, tokens_used: int = 0) -> CritiqueResult:
        """Neutral critique used when the model response can't be parsed."""
        return cls(
            overall_confidence=0.3,
            uncertainty_areas=["Unable to perform detailed analysis"],
            suggestions=["Retry critique with more context"],
            tokens_used=tokens_used,
            is_fallback=True,
            parse_error=parse_error,
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class AlternativeAssessment:
    """Score and pros/cons for one of several candidate solutions."""

    index: int
    score: float = 0.5
    pros: list[str] = field(default_factory=list)
    cons: list[str] = field(default_factory=list)


# =============================================================================
# Iteration state and stopping
# =============================================================================


@dataclass
class IterationState:
    """Live control-loop state, mutated once per cycle after each critique."""

    chain: ThinkingChain
    cycle: int = 0
    phase: ThinkingPhase = ThinkingPhase.GENERATING
    current_solution: str = ""
    current_quality: float = 0.0
    current_confidence: float = 0.0
    last_improvement: float = 0.0
    cycles_since_improvement: int = 0
    tokens_used: int = 0
    start_time: float = field(default_factory=time.monotonic)
    quality_history: list[float] = field(default_factory=list)
    confidence_history: list[float] = field(default_factory=list)
    research_performed: int = 0
    context_retrievals: int = 0
    branches_explored: int = 0


@dataclass
class StoppingMetrics:
    """Snapshot of the loop metrics at decision time."""

    quality: float
    confidence: float
    improvement: float
    cycles_stalled: int
    tokens_used: int
    duration_ms: int
    cycle: int


@dataclass
class StoppingDecision:
    """Outcome of a stopping-policy evaluation. ``reason`` is None while continuing."""

    should_stop: bool
    metrics: StoppingMetrics
    reason: StoppingReason | None = None
    explanation: str = ""


@dataclass
class TrendReport:
    quality_trend: Trend
    confidence_trend: Trend
    average_improvement: float


# =============================================================================
# Branch exploration
# =============================================================================


class BranchStrategy(str, Enum):
    """Axis along which alternative approaches differ."""

    DIFFERENT_ALGORITHMS = "different_algorithms"
    DIFFERENT_LIBRARIES = "different_libraries"
    DIFFERENT_ARCHITECTURES = "different_architectures"
    OPTIMISTIC_VS_CAUTIOUS = "optimistic_vs_cautious"
    SIMPLE_VS_COMPLEX = "simple_vs_complex"

    @property
    def description(self) -> str:
        return STRATEGY_DESCRIPTIONS[self]

    @property
    def guidance(self) -> str:
        return STRATEGY_GUIDANCE[self]


STRATEGY_DESCRIPTIONS: dict[BranchStrategy, str] = {
    BranchStrategy.DIFFERENT_ALGORITHMS: "Explore different algorithmic approaches",
    BranchStrategy.DIFFERENT_LIBRARIES: "Use different libraries or frameworks",
    BranchStrategy.DIFFERENT_ARCHITECTURES: "Try different architectural patterns",
    BranchStrategy.OPTIMISTIC_VS_CAUTIOUS: "Trade aggressive optimization against a safe, conservative approach",
    BranchStrategy.SIMPLE_VS_COMPLEX: "Compare a minimal solution with a feature-rich implementation",
}

STRATEGY_GUIDANCE: dict[BranchStrategy, str] = {
    BranchStrategy.DIFFERENT_ALGORITHMS: (
        "Consider distinct algorithmic approaches (iterative vs recursive, greedy vs "
        "dynamic programming) and justify the time and space complexity of your choice."
    ),
    BranchStrategy.DIFFERENT_LIBRARIES: (
        "Evaluate libraries or frameworks other than the obvious choice; compare "
        "their APIs, performance and ecosystem maturity."
    ),
    BranchStrategy.DIFFERENT_ARCHITECTURES: (
        "Apply a different design pattern (layered vs event-driven, OOP vs functional, "
        "monolith vs services) and focus on separation of concerns."
    ),
    BranchStrategy.OPTIMISTIC_VS_CAUTIOUS: (
        "Take a clear stance on risk: performance-first code that assumes ideal "
        "conditions, or defensive code with thorough validation and error handling."
    ),
    BranchStrategy.SIMPLE_VS_COMPLEX: (
        "Take a clear stance on scope: the minimal viable solution covering core "
        "functionality, or a comprehensive implementation built for extensibility."
    ),
}

Level = Literal["low", "medium", "high"]


@dataclass
class Tradeoffs:
    """Pros, cons and coarse cost ratings of a branch's approach."""

    pros: list[str] = field(default_factory=list)
    cons: list[str] = field(default_factory=list)
    complexity: Level = "medium"
    performance: Level = "medium"
    maintainability: Level = "medium"

    @classmethod
    def neutral(cls) -> Tradeoffs:
        return cls()


@dataclass
class ThinkingBranch:
    """One alternative approach explored in parallel."""

    id: str
    strategy: BranchStrategy
    description: str
    steps: list[ThinkingStep] = field(default_factory=list)
    solution: str = ""
    tradeoffs: Tradeoffs = field(default_factory=Tradeoffs.neutral)
    estimated_effort: Level = "medium"
    recommendation_score: float = 0.5
    tokens_used: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "strategy": self.strategy.value,
            "description": self.description,
            "steps": [step.to_dict() for step in self.steps],
            "solution": self.solution,
            "tradeoffs": asdict(self.tradeoffs),
            "estimated_effort": self.estimated_effort,
            "recommendation_score": self.recommendation_score,
            "tokens_used": self.tokens_used,
        }


@dataclass
class ExplorationResult:
    """Ranked branches plus the synthesized combined solution."""

    branches: list[ThinkingBranch]
    synthesized_solution: str
    recommended_branch: str
    comparison_analysis: str
    tokens_used: int = 0

    @property
    def best_branch(self) -> ThinkingBranch | None:
        return self.branches[0] if self.branches else None

    def to_dict(self) -> dict[str, Any]:
        return {
            "branches": [b.to_dict() for b in self.branches],
            "synthesized_solution": self.synthesized_solution,
            "recommended_branch": self.recommended_branch,
            "comparison_analysis": self.comparison_analysis,
            "tokens_used": self.tokens_used,
        }


# =============================================================================
# Augmentation needs
# =============================================================================


Urgency = Literal["blocking", "helpful", "optional"]
SearchType = Literal["general", "code", "docs", "academic"]


@dataclass
class ResearchNeed:
    """An open question the reasoning can't settle without external information."""

    question: str
    urgency: Urgency = "helpful"
    search_type: SearchType = "general"
    max_results: int = 5
    context: str = ""


@dataclass
class ContextNeed:
    """A request for information from the caller's codebase."""

    type: Literal["similar_code", "dependencies", "usage_examples", "tests", "documentation"]
    query: str
    scope: Literal["current_file", "current_module", "entire_project"] = "entire_project"
    priority: Literal["high", "medium", "low"] = "medium"


@dataclass
class ScoredSearchResult:
    """A search hit with its relevance to the research query."""

    title: str
    url: str
    snippet: str
    relevance: float = 0.0


@dataclass
class ResearchResult:
    """Outcome of researching a single question."""

    query: str
    results: list[ScoredSearchResult] = field(default_factory=list)
    synthesized: str = ""
    confidence: float = 0.0
    tokens_used: int = 0
    sources: list[str] = field(default_factory=list)


# =============================================================================
# Run inputs and outputs
# =============================================================================


Visibility = Literal["none", "summary", "full"]


@dataclass
class ThinkingContext:
    """Optional hints passed to a ``think`` call."""

    language: str | None = None
    codebase_context: str | None = None
    constraints: list[str] = field(default_factory=list)
    initial_solution: str | None = None


@dataclass
class ThinkingResult:
    """Result bundle returned by the orchestrator."""

    solution: str
    quality: float
    confidence: float
    iterations: int
    tokens_used: int
    stopping_reason: StoppingReason
    thinking_chain: dict[str, Any] | None = None
    research_performed: int = 0
    context_retrievals: int = 0
    final_critique: CritiqueResult | None = None
    exploration: ExplorationResult | None = None
    explanation: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "solution": self.solution,
            "quality": self.quality,
            "confidence": self.confidence,
            "iterations": self.iterations,
            "tokens_used": self.tokens_used,
            "stopping_reason": self.stopping_reason.value,
            "explanation": self.explanation,
            "thinking_chain": self.thinking_chain,
            "research_performed": self.research_performed,
            "context_retrievals": self.context_retrievals,
            "final_critique": self.final_critique.to_dict() if self.final_critique else None,
            "exploration": self.exploration.to_dict() if self.exploration else None,
        }
