"""
Thinking orchestrator: the generate -> critique -> augment -> decide loop.

Each ``think`` call runs a bounded refinement loop:
1. Generate a solution (or refine the current one against the last critique)
2. Critique it along every quality dimension
3. Fold the critique into the iteration state
4. Augment: research, codebase context, parallel exploration when advised
5. Ask the stopping policy whether to run another cycle
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Sequence

from ..cancellation import CancellationToken, ThinkingCancelled
from ..llm.completion import generate_text
from .branch_explorer import ExplorationOptions
from .critic import CritiqueContext, QualityCritic
from .events import EventChannel
from .models import (
    BranchStrategy,
    ContextNeed,
    CritiqueResult,
    ExplorationResult,
    IterationState,
    ResearchNeed,
    StepType,
    StoppingDecision,
    ThinkingContext,
    ThinkingPhase,
    ThinkingResult,
    ThinkingStep,
)
from .research import classify_search_type
from .step_recorder import StepRecorder
from .stopping import StoppingPolicy

if TYPE_CHECKING:
    from ..config.loader import ThinkingConfig
    from ..llm.protocols import LLMProvider
    from .branch_explorer import BranchExplorer
    from .events import ThinkingObserver
    from .research import ResearchAugmenter

logger = logging.getLogger(__name__)

ResearchCallback = Callable[[ResearchNeed], Awaitable[str]]
ContextCallback = Callable[[ContextNeed], Awaitable[str]]


@dataclass
class _ThinkingRun:
    """Private state of one ``think`` call."""

    task: str
    context: ThinkingContext
    config: ThinkingConfig
    recorder: StepRecorder
    state: IterationState
    policy: StoppingPolicy
    cancellation: CancellationToken
    critique: CritiqueResult | None = None
    critique_step: ThinkingStep | None = None
    augmentations: list[str] = field(default_factory=list)
    augmentation_steps: list[str] = field(default_factory=list)
    retrieved_context: list[str] = field(default_factory=list)
    exploration: ExplorationResult | None = None
    seed_solution: str | None = None


class ThinkingOrchestrator:
    """
    Drives iterative self-critique for a task.

    Every ``think`` call owns a fresh StepRecorder and IterationState, so one
    orchestrator can serve concurrent calls.

    Usage:
        orchestrator = ThinkingOrchestrator(llm, critic=QualityCritic(llm))
        result = await orchestrator.think("Implement an LRU cache")
        print(result.solution, result.stopping_reason)
    """

    def __init__(
        self,
        llm_provider: LLMProvider,
        config: ThinkingConfig | None = None,
        critic: QualityCritic | None = None,
        augmenter: ResearchAugmenter | None = None,
        explorer: BranchExplorer | None = None,
        research_callback: ResearchCallback | None = None,
        context_callback: ContextCallback | None = None,
        observers: Sequence[ThinkingObserver] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the orchestrator.

        Args:
            llm_provider: Provider used for generation and refinement
            config: Loop thresholds and budgets (overridable per call)
            critic: Quality critic; built on llm_provider when omitted
            augmenter: Research augmenter; takes precedence over research_callback
            explorer: Branch explorer for initial and mid-loop exploration
            research_callback: Async callback answering a ResearchNeed with text
            context_callback: Async callback answering a ContextNeed with text
            observers: Event observers
            clock: Monotonic clock in seconds, shared with the stopping policy
        """
        self.llm = llm_provider

        if config is None:
            from ..config.loader import ThinkingConfig
            config = ThinkingConfig()

        self.config = config
        self.critic = critic or QualityCritic(llm_provider)
        self.augmenter = augmenter
        self.explorer = explorer
        self.research_callback = research_callback
        self.context_callback = context_callback
        self.events = EventChannel(list(observers or []))
        self.clock = clock

    def resolve_config(self, overrides: dict[str, Any] | None = None) -> ThinkingConfig:
        """Apply per-call overrides, validating the merged configuration."""
        if not overrides:
            return self.config
        return type(self.config).model_validate({**self.config.model_dump(), **overrides})

    async def think(
        self,
        task: str,
        context: ThinkingContext | None = None,
        *,
        strategies: Sequence[BranchStrategy] | None = None,
        overrides: dict[str, Any] | None = None,
        cancellation: CancellationToken | None = None,
    ) -> ThinkingResult:
        """
        Run the refinement loop until the stopping policy ends it.

        Args:
            task: Task description
            context: Language, codebase context, constraints, initial solution
            strategies: When given (and an explorer is configured), explore
                these strategies first and seed generation with the synthesis
            overrides: Per-call ThinkingConfig field overrides
            cancellation: Token that ends the run with user_cancelled

        Returns:
            ThinkingResult bundle

        Raises:
            pydantic.ValidationError: If overrides are invalid
            Exception: Provider failures propagate unchanged
        """
        config = self.resolve_config(overrides)
        recorder = StepRecorder()
        run = _ThinkingRun(
            task=task,
            context=context or ThinkingContext(),
            config=config,
            recorder=recorder,
            state=IterationState(chain=recorder.chain, start_time=self.clock()),
            policy=StoppingPolicy(config, clock=self.clock),
            cancellation=cancellation or CancellationToken(),
        )
        if run.context.initial_solution:
            run.state.current_solution = run.context.initial_solution

        logger.info(f"Thinking started (chain {recorder.chain.id}): {task[:80]}")

        try:
            if strategies and self.explorer is not None:
                await self._explore(run, list(strategies))

            while True:
                decision = await self._run_cycle(run)
                if decision.should_stop:
                    return self._finish(run, decision)
        except ThinkingCancelled as e:
            logger.info(f"Thinking cancelled at cycle {run.state.cycle}: {e.reason}")
            return self._finish(run, run.policy.cancelled(run.state, e.reason))

    # =========================================================================
    # Cycle
    # =========================================================================

    async def _run_cycle(self, run: _ThinkingRun) -> StoppingDecision:
        state = run.state
        run.cancellation.raise_if_cancelled()
        state.cycle = run.recorder.next_cycle()
        logger.info(f"Cycle {state.cycle} started")

        self._set_phase(run, ThinkingPhase.GENERATING)
        if not state.current_solution:
            await self._generate(run)
        elif run.critique is not None:
            await self._refine(run)
        else:
            self._record(
                run,
                StepType.REASONING,
                state.current_solution,
                metadata={"action": "provided"},
            )

        self._set_phase(run, ThinkingPhase.CRITIQUING)
        await self._critique(run)

        self._set_phase(run, ThinkingPhase.AUGMENTING)
        await self._augment(run)

        self.events.cycle_complete(state)

        self._set_phase(run, ThinkingPhase.DECIDING)
        return run.policy.should_continue(state)

    async def _generate(self, run: _ThinkingRun) -> None:
        ctx = run.context
        parts = [run.task, ""]
        if ctx.language:
            parts.append(f"Language: {ctx.language}")
        if ctx.codebase_context:
            parts.append(f"Codebase Context:\n{ctx.codebase_context}")
        if ctx.constraints:
            parts.append("Constraints:\n" + "\n".join(f"- {c}" for c in ctx.constraints))
        if run.seed_solution:
            parts.append(f"Starting point (synthesized from parallel exploration):\n{run.seed_solution}")
        parts.append(
            "\nProvide a high-quality solution that:\n"
            "1. Solves the task completely\n"
            "2. Follows best practices\n"
            "3. Handles edge cases\n"
            "4. Is well-documented\n"
            "5. Is production-ready"
        )

        generation = await generate_text(
            self.llm,
            "\n".join(parts),
            temperature=run.config.generation_temperature,
            max_tokens=run.config.generation_max_tokens,
            cancellation=run.cancellation,
        )
        run.state.current_solution = generation.text
        run.state.tokens_used += generation.total_tokens
        self._record(
            run,
            StepType.REASONING,
            generation.text,
            tokens_used=generation.total_tokens,
            dependencies=run.augmentation_steps,
            metadata={"action": "generate", "seeded": run.seed_solution is not None},
        )
        run.augmentation_steps = []
        run.seed_solution = None

    async def _refine(self, run: _ThinkingRun) -> None:
        critique = run.critique
        issues = "\n".join(f"{i}. {issue}" for i, issue in enumerate(critique.critical_issues, 1)) or "None"
        suggestions = "\n".join(f"{i}. {s}" for i, s in enumerate(critique.suggestions, 1)) or "None"
        notes = ""
        if run.augmentations:
            notes = "\n**Additional Information:**\n" + "\n\n".join(run.augmentations) + "\n"
        language = f"\nLanguage: {run.context.language}" if run.context.language else ""

        prompt = f"""Improve this solution based on the critique:

**Task:** {run.task}

**Current Solution:**
{run.state.current_solution}

**Critical Issues:**
{issues}

**Suggestions:**
{suggestions}

**Quality Scores:**
- Overall: {critique.solution_quality:.2f}
- Logical Coherence: {critique.logical_coherence:.2f}
- Best Practices: {critique.best_practices:.2f}
- Edge Cases: {critique.edge_cases_considered:.2f}
{notes}
Provide an improved version that addresses ALL issues and suggestions. Focus on:
1. Fixing critical issues
2. Handling edge cases
3. Following best practices
4. Improving clarity and maintainability
{language}"""

        generation = await generate_text(
            self.llm,
            prompt,
            temperature=run.config.refinement_temperature,
            max_tokens=run.config.refinement_max_tokens,
            cancellation=run.cancellation,
        )
        run.state.current_solution = generation.text
        run.state.tokens_used += generation.total_tokens

        dependencies = [run.critique_step.id] if run.critique_step else []
        self._record(
            run,
            StepType.REASONING,
            generation.text,
            confidence=critique.overall_confidence,
            tokens_used=generation.total_tokens,
            dependencies=dependencies + run.augmentation_steps,
            metadata={"action": "refine", "issues_addressed": len(critique.critical_issues)},
        )
        run.augmentations = []
        run.augmentation_steps = []

    async def _critique(self, run: _ThinkingRun) -> None:
        state = run.state
        solution_step = run.recorder.get_recent_steps(1)[0]
        codebase_context = "\n\n".join(
            c for c in [run.context.codebase_context, *run.retrieved_context] if c
        ) or None

        critique = await self.critic.critique(
            run.task,
            state.current_solution,
            CritiqueContext(
                language=run.context.language,
                codebase_context=codebase_context,
                previous_critique=run.critique,
            ),
            cancellation=run.cancellation,
        )
        state.tokens_used += critique.tokens_used
        run.critique = critique
        run.critique_step = self._record(
            run,
            StepType.CRITIQUE,
            self._describe_critique(critique),
            confidence=critique.overall_confidence,
            tokens_used=critique.tokens_used,
            dependencies=[solution_step.id],
            metadata={"scores": critique.scores(), "fallback": critique.is_fallback},
        )
        run.policy.update_state_from_critique(state, critique)

        if self.critic.detect_circular_reasoning(run.recorder.steps):
            logger.warning(f"Circular reasoning detected at cycle {state.cycle}")
            self._record(
                run,
                StepType.VALIDATION,
                "Circular reasoning detected: recent solutions repeat earlier ones",
                confidence=0.2,
                dependencies=[run.critique_step.id],
            )

    @staticmethod
    def _describe_critique(critique: CritiqueResult) -> str:
        lines = [
            f"Quality: {critique.solution_quality:.2f}, Confidence: {critique.overall_confidence:.2f}"
        ]
        if critique.improvement is not None:
            lines.append(f"Improvement: {critique.improvement:+.2f}")
        lines += [f"Issue: {issue}" for issue in critique.critical_issues]
        lines += [f"Uncertain about {area.rstrip('.')}." for area in critique.uncertainty_areas]
        return "\n".join(lines)

    # =========================================================================
    # Augmentation
    # =========================================================================

    async def _augment(self, run: _ThinkingRun) -> None:
        critique = run.critique
        state = run.state

        if run.policy.should_trigger_research(critique, state):
            await self._research(run)

        if run.policy.should_retrieve_context(critique, state):
            await self._retrieve_context(run)

        if (
            self.explorer is not None
            and run.exploration is None
            and run.policy.should_enable_parallel_thinking(state)
        ):
            try:
                await self._explore(run, self.explorer.suggest_strategies(run.task))
            except ThinkingCancelled:
                raise
            except Exception as e:
                logger.warning(f"Parallel exploration failed: {e}")
                self._record_augmentation(run, f"Parallel exploration failed: {e}", confidence=0.2)

    def _research_needs(self, run: _ThinkingRun) -> list[ResearchNeed]:
        needs = [
            ResearchNeed(
                question=query,
                search_type=classify_search_type(query),
                context=run.task,
            )
            for query in run.critique.research_queries
        ]
        if not needs and self.augmenter is not None:
            needs = self.augmenter.detect_uncertainty(run.recorder.get_recent_steps(5))
        return needs

    async def _research(self, run: _ThinkingRun) -> None:
        if self.augmenter is None and self.research_callback is None:
            return

        state = run.state
        remaining = run.config.max_research_operations - state.research_performed
        needs = self._research_needs(run)[: min(run.config.research_queries_per_cycle, remaining)]
        if not needs:
            return

        logger.info(f"Research needed: {len(needs)} queries")
        for need in needs:
            state.research_performed += 1
            try:
                if self.augmenter is not None:
                    result = await self.augmenter.research(need, run.cancellation)
                    state.tokens_used += result.tokens_used
                    answer, confidence, tokens = result.synthesized, result.confidence, result.tokens_used
                    metadata = {"search_query": need.question, "tool": "web_search", "sources": result.sources}
                else:
                    answer = await run.cancellation.run(self.research_callback(need))
                    confidence, tokens = 0.6, 0
                    metadata = {"search_query": need.question, "tool": "research_callback"}
            except ThinkingCancelled:
                raise
            except Exception as e:
                logger.warning(f"Research failed for '{need.question}': {e}")
                self._record_augmentation(
                    run,
                    f"Research failed: {need.question} ({e})",
                    confidence=0.2,
                    metadata={"search_query": need.question, "error": str(e)},
                )
                continue

            self._record_augmentation(
                run,
                f"Research: {need.question}\n\n{answer}",
                confidence=confidence,
                tokens_used=tokens,
                metadata=metadata,
            )
            run.augmentations.append(f"Research on '{need.question}':\n{answer}")

    async def _retrieve_context(self, run: _ThinkingRun) -> None:
        if self.context_callback is None:
            return

        critique = run.critique
        need = ContextNeed(
            type="similar_code",
            query=critique.missing_information[0] if critique.missing_information else "similar implementations",
            scope="entire_project",
            priority="high" if critique.critical_issues else "medium",
        )
        run.state.context_retrievals += 1
        logger.info(f"Retrieving codebase context: {need.query}")

        try:
            retrieved = await run.cancellation.run(self.context_callback(need))
        except ThinkingCancelled:
            raise
        except Exception as e:
            logger.warning(f"Context retrieval failed: {e}")
            self._record_augmentation(
                run,
                f"Context retrieval failed: {e}",
                confidence=0.2,
                metadata={"context_query": need.query, "error": str(e)},
            )
            return

        self._record_augmentation(
            run,
            f"Codebase context ({need.query}):\n{retrieved}",
            confidence=0.6,
            metadata={"context_query": need.query, "tool": "codebase_context"},
        )
        run.retrieved_context.append(retrieved)
        run.augmentations.append(f"Codebase context:\n{retrieved}")

    async def _explore(self, run: _ThinkingRun, strategies: list[BranchStrategy]) -> None:
        state = run.state
        logger.info(f"Parallel exploration at cycle {state.cycle}: {[s.value for s in strategies]}")

        result = await self.explorer.explore(
            run.task,
            strategies,
            ExplorationOptions(
                language=run.context.language,
                constraints=list(run.context.constraints),
                seed_solution=state.current_solution or None,
            ),
            cancellation=run.cancellation,
        )
        run.exploration = result
        state.tokens_used += result.tokens_used
        state.branches_explored += len(result.branches)

        branch_steps = [
            self._record(
                run,
                StepType.EXPLORATION,
                f"{branch.description} (score {branch.recommendation_score:.2f})",
                confidence=branch.recommendation_score,
                tokens_used=branch.tokens_used,
                branch_id=branch.id,
                metadata={"strategy": branch.strategy.value},
            ).id
            for branch in result.branches
        ]
        synthesis = self._record(
            run,
            StepType.SYNTHESIS,
            result.synthesized_solution,
            tokens_used=result.tokens_used - sum(b.tokens_used for b in result.branches),
            dependencies=branch_steps,
            metadata={"recommended_branch": result.recommended_branch},
        )

        # Before the first generation the synthesis seeds it; afterwards it feeds the next refinement
        run.augmentation_steps.append(synthesis.id)
        if state.current_solution:
            run.augmentations.append(
                "Synthesized alternative from parallel exploration:\n" + result.synthesized_solution
            )
        else:
            run.seed_solution = result.synthesized_solution

    # =========================================================================
    # Helpers
    # =========================================================================

    def _record(
        self,
        run: _ThinkingRun,
        step_type: StepType,
        content: str,
        *,
        confidence: float = 0.5,
        tokens_used: int = 0,
        dependencies: Sequence[str] = (),
        branch_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> ThinkingStep:
        step = run.recorder.add_step(
            step_type,
            content,
            confidence=confidence,
            tokens_used=tokens_used,
            dependencies=dependencies,
            branch_id=branch_id,
            metadata=metadata,
        )
        self.events.step(step)
        return step

    def _record_augmentation(
        self,
        run: _ThinkingRun,
        content: str,
        *,
        confidence: float,
        tokens_used: int = 0,
        metadata: dict[str, Any] | None = None,
    ) -> ThinkingStep:
        dependencies = [run.critique_step.id] if run.critique_step else []
        step = self._record(
            run,
            StepType.OBSERVATION,
            content,
            confidence=confidence,
            tokens_used=tokens_used,
            dependencies=dependencies,
            metadata=metadata,
        )
        run.augmentation_steps.append(step.id)
        return step

    def _set_phase(self, run: _ThinkingRun, phase: ThinkingPhase) -> None:
        run.state.phase = phase
        logger.debug(f"Cycle {run.state.cycle}: phase {phase.value}")
        self.events.phase_change(phase, run.state)

    def _finish(self, run: _ThinkingRun, decision: StoppingDecision) -> ThinkingResult:
        state = run.state
        self._set_phase(run, ThinkingPhase.STOPPED)

        dependencies = [run.critique_step.id] if run.critique_step else []
        self._record(
            run,
            StepType.SYNTHESIS,
            f"Stopping: {decision.reason.value} - {decision.explanation}",
            confidence=state.current_confidence,
            dependencies=dependencies,
        )
        run.recorder.complete()
        self.events.stopping_decision(decision)

        visibility = run.config.thinking_visibility
        if visibility == "full":
            chain = run.recorder.export()
        elif visibility == "summary":
            chain = run.recorder.get_summary()
        else:
            chain = None

        logger.info(
            f"Thinking finished after {state.cycle} cycles: {decision.reason.value} "
            f"(quality={state.current_quality:.2f}, confidence={state.current_confidence:.2f}, "
            f"tokens={state.tokens_used})"
        )

        return ThinkingResult(
            solution=state.current_solution,
            quality=state.current_quality,
            confidence=state.current_confidence,
            iterations=state.cycle,
            tokens_used=state.tokens_used,
            stopping_reason=decision.reason,
            thinking_chain=chain,
            research_performed=state.research_performed,
            context_retrievals=state.context_retrievals,
            final_critique=run.critique,
            exploration=run.exploration,
            explanation=decision.explanation,
        )
