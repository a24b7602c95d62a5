"""Observer channel for real-time visibility into a thinking run."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Protocol, runtime_checkable

if TYPE_CHECKING:
    from .models import IterationState, StoppingDecision, ThinkingPhase, ThinkingStep

logger = logging.getLogger(__name__)


@runtime_checkable
class ThinkingObserver(Protocol):
    """Receives events from the orchestrator. All hooks are synchronous."""

    def on_step(self, step: ThinkingStep) -> None:
        ...

    def on_phase_change(self, phase: ThinkingPhase, state: IterationState) -> None:
        ...

    def on_cycle_complete(self, state: IterationState) -> None:
        ...

    def on_stopping_decision(self, decision: StoppingDecision) -> None:
        ...


@dataclass
class CallbackObserver:
    """Adapts plain callables to the ThinkingObserver protocol.

    Usage:
        observer = CallbackObserver(on_step=lambda s: print(s.content[:80]))
    """

    step: Callable[[ThinkingStep], None] | None = None
    phase_change: Callable[[ThinkingPhase, IterationState], None] | None = None
    cycle_complete: Callable[[IterationState], None] | None = None
    stopping_decision: Callable[[StoppingDecision], None] | None = None

    def on_step(self, step: ThinkingStep) -> None:
        if self.step:
            self.step(step)

    def on_phase_change(self, phase: ThinkingPhase, state: IterationState) -> None:
        if self.phase_change:
            self.phase_change(phase, state)

    def on_cycle_complete(self, state: IterationState) -> None:
        if self.cycle_complete:
            self.cycle_complete(state)

    def on_stopping_decision(self, decision: StoppingDecision) -> None:
        if self.stopping_decision:
            self.stopping_decision(decision)


class EventChannel:
    """Fans events out to every subscribed observer.

    A failing observer is logged and skipped; it never interrupts the run.
    """

    def __init__(self, observers: list[ThinkingObserver] | None = None):
        self._observers: list[ThinkingObserver] = list(observers or [])

    def subscribe(self, observer: ThinkingObserver) -> None:
        self._observers.append(observer)

    def unsubscribe(self, observer: ThinkingObserver) -> None:
        if observer in self._observers:
            self._observers.remove(observer)

    @property
    def observers(self) -> list[ThinkingObserver]:
        return list(self._observers)

    def _dispatch(self, hook: str, *args) -> None:
        for observer in self._observers:
            try:
                getattr(observer, hook)(*args)
            except Exception as e:
                logger.warning(f"Observer {type(observer).__name__}.{hook} failed: {e}")

    def step(self, step: ThinkingStep) -> None:
        self._dispatch("on_step", step)

    def phase_change(self, phase: ThinkingPhase, state: IterationState) -> None:
        self._dispatch("on_phase_change", phase, state)

    def cycle_complete(self, state: IterationState) -> None:
        self._dispatch("on_cycle_complete", state)

    def stopping_decision(self, decision: StoppingDecision) -> None:
        self._dispatch("on_stopping_decision", decision)
