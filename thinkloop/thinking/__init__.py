"""Iterative self-critique reasoning: recording, critique, stopping, augmentation, exploration."""

from .models import (
    AlternativeAssessment,
    BranchStrategy,
    ContextNeed,
    CritiqueResult,
    ExplorationResult,
    IterationState,
    ResearchNeed,
    ResearchResult,
    ScoredSearchResult,
    StepType,
    StoppingDecision,
    StoppingMetrics,
    StoppingReason,
    ThinkingBranch,
    ThinkingChain,
    ThinkingContext,
    ThinkingPhase,
    ThinkingResult,
    ThinkingStep,
    Tradeoffs,
    Trend,
    TrendReport,
    classify_trend,
)
from .parsing import ParseFailure, Parsed, extract_json_array, extract_json_object
from .events import CallbackObserver, EventChannel, ThinkingObserver
from .step_recorder import StepRecorder, UnknownDependencyError
from .critic import CritiqueContext, QualityCritic
from .stopping import StoppingPolicy
from .research import ResearchAugmenter
from .branch_explorer import BranchExplorer, ExplorationOptions
from .orchestrator import ContextCallback, ResearchCallback, ThinkingOrchestrator

__all__ = [
    # Models
    "AlternativeAssessment",
    "BranchStrategy",
    "ContextNeed",
    "CritiqueResult",
    "ExplorationResult",
    "IterationState",
    "ResearchNeed",
    "ResearchResult",
    "ScoredSearchResult",
    "StepType",
    "StoppingDecision",
    "StoppingMetrics",
    "StoppingReason",
    "ThinkingBranch",
    "ThinkingChain",
    "ThinkingContext",
    "ThinkingPhase",
    "ThinkingResult",
    "ThinkingStep",
    "Tradeoffs",
    "Trend",
    "TrendReport",
    "classify_trend",
    # Parsing
    "ParseFailure",
    "Parsed",
    "extract_json_array",
    "extract_json_object",
    # Events
    "CallbackObserver",
    "EventChannel",
    "ThinkingObserver",
    # Components
    "StepRecorder",
    "UnknownDependencyError",
    "CritiqueContext",
    "QualityCritic",
    "StoppingPolicy",
    "ResearchAugmenter",
    "BranchExplorer",
    "ExplorationOptions",
    "ThinkingOrchestrator",
    "ResearchCallback",
    "ContextCallback",
]
