"""Shared fakes for the thinkloop test suite."""

import json
from dataclasses import dataclass

import pytest

from thinkloop.llm.protocols import Generation, Message, TokenUsage

# Substrings that identify each prompt the package sends
CRITIQUE = "You are an expert code reviewer"
GENERATE = "Provide a high-quality solution"
REFINE = "Improve this solution based on the critique"
BRANCH = "Solve this task using the following approach"
TRADEOFFS = "Extract the tradeoffs"
RANK = "Rank these solution approaches"
BRANCH_SYNTHESIS = "Synthesize the best solution"
RESEARCH_SYNTHESIS = "Synthesize these search results"
COMPARE = "Compare these alternative solutions"
FLAWS = "Identify critical flaws"
IMPROVEMENTS = "suggest specific, actionable improvements"
FOLLOW_UP = "follow-up research questions"


def critique_json(quality: float, confidence: float, **fields) -> str:
    """Critique response in the camelCase shape the critic asks for."""
    payload = {
        "logicalCoherence": 0.8,
        "assumptionsValid": 0.8,
        "coverageScore": 0.8,
        "edgeCasesConsidered": 0.7,
        "solutionQuality": quality,
        "bestPractices": 0.8,
        "clarity": 0.8,
        "specificity": 0.7,
        "uncertaintyAwareness": 0.6,
        "reasoningDepth": 0.7,
        "uncertaintyAreas": [],
        "missingInformation": [],
        "alternativeApproaches": [],
        "needsMoreResearch": False,
        "needsCodebaseContext": False,
        "needsExternalValidation": False,
        "researchQueries": [],
        "overallConfidence": confidence,
        "criticalIssues": [],
        "suggestions": [],
    }
    payload.update(fields)
    return "Here is my assessment:\n```json\n" + json.dumps(payload) + "\n```"


DEFAULT_TRADEOFFS = json.dumps({
    "pros": ["Clear"],
    "cons": ["Slower"],
    "complexity": "low",
    "performance": "medium",
    "maintainability": "high",
    "estimatedEffort": "low",
})


def branch_routes(rank_response, synthesis="Combined solution\n\n## Comparison\nLibraries win.", tradeoffs=None):
    """Routes giving each branch strategy a distinct solution.

    Ranking and synthesis prompts mention every branch description, so they
    are matched first.
    """
    from thinkloop.thinking import BranchStrategy

    routes = {
        RANK: rank_response,
        BRANCH_SYNTHESIS: synthesis,
        TRADEOFFS: tradeoffs or DEFAULT_TRADEOFFS,
    }
    for strategy in BranchStrategy:
        routes[strategy.description] = f"solution for {strategy.value}"
    return routes


@dataclass
class RecordedCall:
    prompt: str
    temperature: float
    max_tokens: int | None


class ScriptedLLM:
    """LLM provider that answers by prompt keyword.

    Each route maps a prompt substring to a response or a list of responses;
    lists are consumed in order and the last entry repeats. Routes are checked
    in insertion order.
    """

    def __init__(self, routes: dict | None = None, default: str = "", tokens_per_call: int | None = None):
        self.routes = {key: list(value) if isinstance(value, list) else [value] for key, value in (routes or {}).items()}
        self.default = default
        self.tokens_per_call = tokens_per_call
        self.calls: list[RecordedCall] = []

    def calls_for(self, key: str) -> list[RecordedCall]:
        return [call for call in self.calls if key in call.prompt]

    async def generate(
        self,
        messages: list[Message],
        temperature: float = 0.7,
        max_tokens: int | None = None,
    ) -> Generation:
        prompt = messages[-1].content
        self.calls.append(RecordedCall(prompt, temperature, max_tokens))

        text = self.default
        for key, responses in self.routes.items():
            if key in prompt:
                response = responses.pop(0) if len(responses) > 1 else responses[0]
                if isinstance(response, Exception):
                    raise response
                text = response
                break

        usage = None
        if self.tokens_per_call is not None:
            usage = TokenUsage(
                prompt_tokens=self.tokens_per_call // 2,
                completion_tokens=self.tokens_per_call - self.tokens_per_call // 2,
                total_tokens=self.tokens_per_call,
            )
        return Generation(text=text, usage=usage)


class FakeClock:
    """Manually advanced monotonic clock (seconds)."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def scripted_llm():
    """Factory for ScriptedLLM instances."""
    return ScriptedLLM


@pytest.fixture
def fake_clock():
    return FakeClock()
