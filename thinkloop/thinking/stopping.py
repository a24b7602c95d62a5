"""
Stopping policy: decides after each cycle whether the loop continues.

The decision is a pure function of the IterationState, the configuration and
a clock. All histories live on the state, so the same state always yields the
same decision.
"""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING, Callable

from .models import (
    CritiqueResult,
    IterationState,
    StoppingDecision,
    StoppingMetrics,
    StoppingReason,
    TrendReport,
    classify_trend,
    mean,
)

if TYPE_CHECKING:
    from ..config.loader import ThinkingConfig

logger = logging.getLogger(__name__)


class StoppingPolicy:
    """
    Evaluates stopping conditions in fixed priority order.

    Priority (first match wins):
        1. max_tokens           tokens used >= max_thinking_tokens
        2. max_iterations       cycle >= max_cycles
        3. timeout              elapsed >= max_duration_ms
        4. confidence_met       confidence >= early_stop_confidence
        5. quality_met          quality >= min_quality and confidence >= min_confidence
        6. stalled              cycles_since_improvement >= stalled_cycles
        7. diminishing_returns  mean delta over the last quality samples < min_improvement / 2
    """

    def __init__(
        self,
        config: ThinkingConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the policy.

        Args:
            config: Thresholds and budgets
            clock: Monotonic clock in seconds, comparable with state.start_time
        """
        if config is None:
            from ..config.loader import ThinkingConfig
            config = ThinkingConfig()

        self.config = config
        self.clock = clock

    def elapsed_ms(self, state: IterationState) -> int:
        return int((self.clock() - state.start_time) * 1000)

    def metrics(self, state: IterationState) -> StoppingMetrics:
        return StoppingMetrics(
            quality=state.current_quality,
            confidence=state.current_confidence,
            improvement=state.last_improvement,
            cycles_stalled=state.cycles_since_improvement,
            tokens_used=state.tokens_used,
            duration_ms=self.elapsed_ms(state),
            cycle=state.cycle,
        )

    def _stop(self, state: IterationState, reason: StoppingReason, explanation: str) -> StoppingDecision:
        logger.info(f"Stopping at cycle {state.cycle}: {reason.value} ({explanation})")
        return StoppingDecision(
            should_stop=True,
            reason=reason,
            metrics=self.metrics(state),
            explanation=explanation,
        )

    def should_continue(self, state: IterationState) -> StoppingDecision:
        """
        Decide whether another cycle should run.

        Args:
            state: Current iteration state

        Returns:
            StoppingDecision; ``reason`` is None when the loop continues
        """
        cfg = self.config

        if state.tokens_used >= cfg.max_thinking_tokens:
            return self._stop(
                state,
                StoppingReason.MAX_TOKENS,
                f"Token budget exhausted ({state.tokens_used}/{cfg.max_thinking_tokens})",
            )

        if state.cycle >= cfg.max_cycles:
            return self._stop(
                state,
                StoppingReason.MAX_ITERATIONS,
                f"Maximum cycles reached ({state.cycle}/{cfg.max_cycles})",
            )

        elapsed = self.elapsed_ms(state)
        if elapsed >= cfg.max_duration_ms:
            return self._stop(
                state,
                StoppingReason.TIMEOUT,
                f"Time limit exceeded ({elapsed / 1000:.0f}s)",
            )

        if state.current_confidence >= cfg.early_stop_confidence:
            return self._stop(
                state,
                StoppingReason.CONFIDENCE_MET,
                f"High confidence achieved ({state.current_confidence:.2f})",
            )

        if state.current_quality >= cfg.min_quality and state.current_confidence >= cfg.min_confidence:
            return self._stop(
                state,
                StoppingReason.QUALITY_MET,
                f"Quality and confidence thresholds met "
                f"(Q: {state.current_quality:.2f}, C: {state.current_confidence:.2f})",
            )

        if state.cycles_since_improvement >= cfg.stalled_cycles:
            return self._stop(
                state,
                StoppingReason.STALLED,
                f"No significant improvement for {state.cycles_since_improvement} cycles",
            )

        if self.is_diminishing_returns(state):
            return self._stop(
                state,
                StoppingReason.DIMINISHING_RETURNS,
                "Improvements are becoming negligible",
            )

        return StoppingDecision(should_stop=False, metrics=self.metrics(state))

    def is_diminishing_returns(self, state: IterationState) -> bool:
        window = self.config.diminishing_window
        history = state.quality_history
        if len(history) < window:
            return False

        recent = history[-window:]
        deltas = [b - a for a, b in zip(recent, recent[1:])]
        return mean(deltas) < self.config.min_improvement / 2

    def cancelled(self, state: IterationState, reason: str = "Cancelled by caller") -> StoppingDecision:
        """Decision recorded when the run is cancelled from outside."""
        return self._stop(state, StoppingReason.USER_CANCELLED, reason)

    def update_state_from_critique(self, state: IterationState, critique: CritiqueResult) -> IterationState:
        """
        Fold a critique into the iteration state.

        The stall counter resets when the improvement reaches min_improvement
        and increments otherwise. A critique without a baseline (the first one)
        counts as zero improvement.

        Returns:
            The same state object, updated in place
        """
        state.current_quality = critique.solution_quality
        state.current_confidence = critique.overall_confidence
        state.quality_history.append(critique.solution_quality)
        state.confidence_history.append(critique.overall_confidence)

        improvement = critique.improvement if critique.improvement is not None else 0.0
        state.last_improvement = improvement
        if improvement >= self.config.min_improvement:
            state.cycles_since_improvement = 0
        else:
            state.cycles_since_improvement += 1

        logger.debug(
            f"State after cycle {state.cycle}: quality={state.current_quality:.2f}, "
            f"confidence={state.current_confidence:.2f}, stalled={state.cycles_since_improvement}"
        )
        return state

    # =========================================================================
    # Advisories
    # =========================================================================

    def should_enable_parallel_thinking(self, state: IterationState) -> bool:
        return (
            self.config.enable_parallel_thinking
            and state.cycles_since_improvement >= 2
            and state.current_quality < 0.85
            and state.tokens_used < self.config.max_thinking_tokens * 0.6
        )

    def should_trigger_research(self, critique: CritiqueResult, state: IterationState) -> bool:
        return (
            self.config.enable_web_search
            and critique.needs_more_research
            and state.research_performed < self.config.max_research_operations
            and state.tokens_used < self.config.max_thinking_tokens * 0.8
        )

    def should_retrieve_context(self, critique: CritiqueResult, state: IterationState) -> bool:
        return (
            self.config.enable_codebase_context
            and critique.needs_codebase_context
            and state.context_retrievals < self.config.max_context_retrievals
            and state.tokens_used < self.config.max_thinking_tokens * 0.8
        )

    def trends(self, state: IterationState) -> TrendReport:
        """Quality and confidence trends (last 3 samples vs earlier) plus mean per-cycle gain."""
        quality = state.quality_history
        confidence = state.confidence_history
        deltas = [b - a for a, b in zip(quality, quality[1:])]
        return TrendReport(
            quality_trend=classify_trend(quality[-3:], quality[:-3]),
            confidence_trend=classify_trend(confidence[-3:], confidence[:-3]),
            average_improvement=mean(deltas),
        )
