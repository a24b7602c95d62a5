"""thinkloop: iterative self-critique reasoning controller."""

from .cancellation import CancellationToken, ThinkingCancelled
from .thinking import (
    BranchExplorer,
    BranchStrategy,
    CallbackObserver,
    QualityCritic,
    ResearchAugmenter,
    StepRecorder,
    StoppingPolicy,
    StoppingReason,
    ThinkingContext,
    ThinkingOrchestrator,
    ThinkingResult,
)

__all__ = [
    "CancellationToken",
    "ThinkingCancelled",
    "BranchExplorer",
    "BranchStrategy",
    "CallbackObserver",
    "QualityCritic",
    "ResearchAugmenter",
    "StepRecorder",
    "StoppingPolicy",
    "StoppingReason",
    "ThinkingContext",
    "ThinkingOrchestrator",
    "ThinkingResult",
]
