"""Step recorder: append-only log of thinking steps for a single run."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Any, Iterable

from .models import (
    StepType,
    ThinkingChain,
    ThinkingStep,
    Trend,
    clamp_unit,
    classify_trend,
    mean,
)

logger = logging.getLogger(__name__)


class UnknownDependencyError(ValueError):
    """A step declared a dependency on a step id that isn't in the chain."""

    def __init__(self, step_id: str):
        super().__init__(f"Unknown dependency: step '{step_id}' is not in the chain")
        self.step_id = step_id


class StepRecorder:
    """
    Records thinking steps into a ThinkingChain.

    Dependencies must refer to steps already in the chain, so a chain built
    through ``add_step`` is acyclic. Chains imported with ``from_chain`` are
    taken as-is; use ``has_circular_dependency`` to inspect them.

    Usage:
        recorder = StepRecorder()
        recorder.next_cycle()
        draft = recorder.add_step(StepType.REASONING, "First attempt...", confidence=0.6)
        recorder.add_step(StepType.CRITIQUE, "Misses edge cases", dependencies=[draft.id])
    """

    def __init__(self, chain_id: str | None = None):
        self.chain = ThinkingChain(id=chain_id or str(uuid.uuid4())[:8])
        self._index: dict[str, ThinkingStep] = {}

    @classmethod
    def from_chain(cls, chain: ThinkingChain) -> StepRecorder:
        """Wrap an existing chain without validating it."""
        recorder = cls.__new__(cls)
        recorder.chain = chain
        recorder._index = {step.id: step for step in chain.steps}
        return recorder

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> StepRecorder:
        return cls.from_chain(ThinkingChain.from_dict(data))

    # =========================================================================
    # Mutation
    # =========================================================================

    def add_step(
        self,
        step_type: StepType,
        content: str,
        *,
        confidence: float = 0.5,
        tokens_used: int = 0,
        dependencies: Iterable[str] = (),
        branch_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> ThinkingStep:
        """
        Append a step to the chain.

        Args:
            step_type: Kind of step
            content: Step text
            confidence: Self-assessed confidence, clamped into [0, 1]
            tokens_used: Tokens spent producing this step
            dependencies: Ids of earlier steps this one builds on
            branch_id: Branch the step belongs to, if any
            metadata: Free-form annotations (search query, tool used, ...)

        Returns:
            The recorded step

        Raises:
            UnknownDependencyError: If a dependency id is not in the chain
            RuntimeError: If the chain has already been completed
        """
        if self.chain.is_complete:
            raise RuntimeError(f"Chain {self.chain.id} is complete; no further steps accepted")

        deps = list(dependencies)
        for dep_id in deps:
            if dep_id not in self._index:
                raise UnknownDependencyError(dep_id)

        step = ThinkingStep(
            id=str(uuid.uuid4()),
            cycle=self.chain.current_cycle,
            step_type=step_type,
            content=content,
            confidence=clamp_unit(confidence),
            tokens_used=max(0, tokens_used),
            dependencies=deps,
            branch_id=branch_id,
            metadata=dict(metadata or {}),
        )
        # Dependencies are already recorded, so their depths are final
        step.depth = 1 + max(self._index[d].depth for d in deps) if deps else 0

        self.chain.steps.append(step)
        self._index[step.id] = step
        self.chain.total_tokens += step.tokens_used
        self.chain.max_depth = max(self.chain.max_depth, step.depth)
        if branch_id and branch_id not in self.chain.branches:
            self.chain.branches.append(branch_id)

        logger.debug(
            f"Recorded {step_type.value} step (cycle {step.cycle}, depth {step.depth}, "
            f"{step.tokens_used} tokens)"
        )
        return step

    def next_cycle(self) -> int:
        """Advance the cycle counter and return the new cycle number."""
        self.chain.current_cycle += 1
        return self.chain.current_cycle

    @property
    def current_cycle(self) -> int:
        return self.chain.current_cycle

    def complete(self) -> ThinkingChain:
        """Mark the chain complete. Further ``add_step`` calls raise."""
        if self.chain.ended_at is None:
            self.chain.ended_at = datetime.now()
            logger.debug(f"Chain {self.chain.id} completed with {len(self.chain.steps)} steps")
        return self.chain

    # =========================================================================
    # Dependency graph
    # =========================================================================

    def _dependencies_of(self, step_id: str) -> list[str]:
        current = self._index.get(step_id)
        return current.dependencies if current is not None else []

    def calculate_depth(self, step: ThinkingStep) -> int:
        """1 + max depth of dependencies, 0 without dependencies.

        Walks the graph instead of trusting stored depths, for chains imported
        with ``from_chain``. Missing dependencies count as depth 0 and a
        back-edge stops the walk.
        """
        memo: dict[str, int] = {}
        on_path = {step.id}
        # [step id, pending dependencies, deepest dependency so far (-1: none)]
        frames: list[list[Any]] = [[step.id, iter(step.dependencies), -1]]

        while frames:
            frame = frames[-1]
            for dep_id in frame[1]:
                if dep_id in memo:
                    frame[2] = max(frame[2], memo[dep_id])
                elif dep_id in on_path or dep_id not in self._index:
                    frame[2] = max(frame[2], 0)
                else:
                    on_path.add(dep_id)
                    frames.append([dep_id, iter(self._dependencies_of(dep_id)), -1])
                    break
            else:
                frames.pop()
                on_path.discard(frame[0])
                memo[frame[0]] = frame[2] + 1 if frame[2] >= 0 else 0
                if frames:
                    frames[-1][2] = max(frames[-1][2], memo[frame[0]])

        return memo[step.id]

    def has_circular_dependency(self, step: ThinkingStep | str) -> bool:
        """Depth-first search for a back-edge reachable from ``step``."""
        start = step if isinstance(step, str) else step.id
        visited = {start}
        on_stack = {start}
        frames = [(start, iter(self._dependencies_of(start)))]

        while frames:
            step_id, pending = frames[-1]
            for dep_id in pending:
                if dep_id in on_stack:
                    return True
                if dep_id not in visited:
                    visited.add(dep_id)
                    on_stack.add(dep_id)
                    frames.append((dep_id, iter(self._dependencies_of(dep_id))))
                    break
            else:
                frames.pop()
                on_stack.discard(step_id)

        return False

    # =========================================================================
    # Read projections
    # =========================================================================

    @property
    def steps(self) -> list[ThinkingStep]:
        return list(self.chain.steps)

    @property
    def total_tokens(self) -> int:
        return self.chain.total_tokens

    def get_step(self, step_id: str) -> ThinkingStep | None:
        return self._index.get(step_id)

    def get_steps_by_type(self, step_type: StepType) -> list[ThinkingStep]:
        return [s for s in self.chain.steps if s.step_type == step_type]

    def get_steps_for_cycle(self, cycle: int) -> list[ThinkingStep]:
        return [s for s in self.chain.steps if s.cycle == cycle]

    def get_steps_for_branch(self, branch_id: str) -> list[ThinkingStep]:
        return [s for s in self.chain.steps if s.branch_id == branch_id]

    def get_recent_steps(self, count: int) -> list[ThinkingStep]:
        if count <= 0:
            return []
        return self.chain.steps[-count:]

    def average_confidence(self) -> float:
        return mean([s.confidence for s in self.chain.steps])

    def current_cycle_confidence(self) -> float:
        return mean([s.confidence for s in self.get_steps_for_cycle(self.chain.current_cycle)])

    def _cycle_confidences(self) -> list[float]:
        by_cycle: dict[int, list[float]] = {}
        for step in self.chain.steps:
            by_cycle.setdefault(step.cycle, []).append(step.confidence)
        return [mean(by_cycle[c]) for c in sorted(by_cycle)]

    def confidence_trend(self) -> Trend:
        """Trend of per-cycle mean confidence.

        Compares the last three cycles against everything before them; with
        three cycles or fewer, compares the last against the previous one.
        """
        per_cycle = self._cycle_confidences()
        if len(per_cycle) < 2:
            return Trend.STABLE
        if len(per_cycle) <= 3:
            return classify_trend(per_cycle[-1:], per_cycle[-2:-1])
        return classify_trend(per_cycle[-3:], per_cycle[:-3])

    def get_summary(self) -> dict[str, Any]:
        steps_by_type: dict[str, int] = {}
        for step in self.chain.steps:
            steps_by_type[step.step_type.value] = steps_by_type.get(step.step_type.value, 0) + 1

        return {
            "chain_id": self.chain.id,
            "total_steps": len(self.chain.steps),
            "total_cycles": self.chain.current_cycle,
            "total_tokens": self.chain.total_tokens,
            "average_confidence": round(self.average_confidence(), 3),
            "max_depth": self.chain.max_depth,
            "duration_ms": self.chain.duration_ms,
            "steps_by_type": steps_by_type,
            "branches": list(self.chain.branches),
        }

    def export(self) -> dict[str, Any]:
        """Deep snapshot of the chain as plain data."""
        return self.chain.to_dict()
