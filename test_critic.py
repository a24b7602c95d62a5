"""
Quality Critic Tests

Tests for critique parsing, score clamping, the fallback critique,
alternative comparison and the static reasoning checks.
"""

import asyncio
import json

import pytest

from conftest import COMPARE, CRITIQUE, FLAWS, IMPROVEMENTS, ScriptedLLM, critique_json


def test_critique_parses_fenced_json():
    print("=" * 60)
    print("TEST: critique parses fenced JSON")
    print("=" * 60)

    from thinkloop.thinking import QualityCritic

    llm = ScriptedLLM({CRITIQUE: critique_json(
        0.72, 0.66,
        criticalIssues=["No input validation"],
        suggestions=["Validate inputs"],
        researchQueries=["python input validation"],
        needsMoreResearch=True,
    )}, tokens_per_call=40)
    critic = QualityCritic(llm)

    result = asyncio.run(critic.critique("Parse a config file", "def parse(p): ..."))

    print(f"\nQuality: {result.solution_quality}, confidence: {result.overall_confidence}")
    assert not result.is_fallback
    assert result.solution_quality == pytest.approx(0.72)
    assert result.quality == result.solution_quality
    assert result.overall_confidence == pytest.approx(0.66)
    assert result.critical_issues == ["No input validation"]
    assert result.research_queries == ["python input validation"]
    assert result.needs_more_research is True
    assert result.previous_score is None
    assert result.improvement is None
    assert result.tokens_used == 40

    call = llm.calls[0]
    assert call.temperature == pytest.approx(0.3)
    assert call.max_tokens == 2000
    print("\n[PASS] Critique parsed")


def test_scores_are_clamped_and_coerced():
    """Out-of-range scores clamp; non-numeric scores become neutral."""
    print("\n" + "=" * 60)
    print("TEST: score clamping")
    print("=" * 60)

    from thinkloop.thinking import QualityCritic

    critic = QualityCritic(ScriptedLLM())
    text = json.dumps({
        "solutionQuality": 1.4,
        "logicalCoherence": -0.2,
        "clarity": "0.9",
        "specificity": "very specific",
        "bestPractices": None,
        "reasoningDepth": True,
        "overallConfidence": 2,
        "criticalIssues": "Single issue as a string",
        "needsCodebaseContext": "yes",
    })

    result = critic.parse_critique(text)

    assert result.solution_quality == 1.0
    assert result.logical_coherence == 0.0
    assert result.clarity == pytest.approx(0.9)
    assert result.specificity == 0.5
    assert result.best_practices == 0.5
    assert result.reasoning_depth == 0.5
    assert result.overall_confidence == 1.0
    assert result.critical_issues == ["Single issue as a string"]
    assert result.needs_codebase_context is True
    # Missing dimensions default to neutral
    assert result.coverage_score == 0.5
    assert all(0.0 <= score <= 1.0 for score in result.scores().values())
    print("\n[PASS] All scores within [0, 1]")


def test_unparseable_response_yields_fallback():
    print("\n" + "=" * 60)
    print("TEST: fallback critique")
    print("=" * 60)

    from thinkloop.thinking import QualityCritic

    llm = ScriptedLLM({CRITIQUE: "I think it's pretty good overall, nice work."})
    critic = QualityCritic(llm)

    result = asyncio.run(critic.critique("task", "solution"))

    print(f"\nParse error: {result.parse_error}")
    assert result.is_fallback
    assert result.parse_error
    assert result.overall_confidence == pytest.approx(0.3)
    assert result.uncertainty_areas == ["Unable to perform detailed analysis"]
    assert result.suggestions == ["Retry critique with more context"]
    assert all(score == 0.5 for score in result.scores().values())
    print("\n[PASS] Fallback critique returned")


def test_improvement_against_previous_critique():
    from thinkloop.thinking import CritiqueContext, CritiqueResult, QualityCritic

    llm = ScriptedLLM({CRITIQUE: critique_json(0.75, 0.7)})
    critic = QualityCritic(llm)
    previous = CritiqueResult(solution_quality=0.6, critical_issues=["Race condition"])

    result = asyncio.run(critic.critique(
        "task",
        "solution",
        CritiqueContext(language="python", codebase_context="uses asyncio", previous_critique=previous),
    ))

    assert result.previous_score == pytest.approx(0.6)
    assert result.improvement == pytest.approx(0.15)

    prompt = llm.calls[0].prompt
    assert "**Language:** python" in prompt
    assert "uses asyncio" in prompt
    assert "Race condition" in prompt


def test_fallback_still_reports_improvement():
    from thinkloop.thinking import CritiqueResult, QualityCritic

    critic = QualityCritic(ScriptedLLM())
    result = critic.parse_critique("no json here", CritiqueResult(solution_quality=0.8))

    assert result.is_fallback
    assert result.improvement == pytest.approx(-0.3)


def test_provider_errors_propagate():
    from thinkloop.thinking import QualityCritic

    critic = QualityCritic(ScriptedLLM({CRITIQUE: RuntimeError("provider down")}))

    with pytest.raises(RuntimeError, match="provider down"):
        asyncio.run(critic.critique("task", "solution"))


def test_identify_flaws():
    from thinkloop.thinking import QualityCritic

    llm = ScriptedLLM({FLAWS: "1. SQL injection in query builder\n2. Unbounded retry loop\n"})
    critic = QualityCritic(llm)

    flaws = asyncio.run(critic.identify_flaws("code", language="python"))

    assert flaws == ["SQL injection in query builder", "Unbounded retry loop"]
    assert llm.calls[0].temperature == pytest.approx(0.2)
    assert llm.calls[0].max_tokens == 500


def test_suggest_improvements():
    from thinkloop.thinking import CritiqueResult, QualityCritic

    llm = ScriptedLLM({IMPROVEMENTS: "- Add a lock around the cache\n- Bound the queue size"})
    critic = QualityCritic(llm)

    weak = CritiqueResult(solution_quality=0.6, critical_issues=["Not thread safe"])
    assert asyncio.run(critic.suggest_improvements(weak, "code")) == [
        "Add a lock around the cache",
        "Bound the queue size",
    ]

    strong = CritiqueResult(solution_quality=0.95)
    assert asyncio.run(critic.suggest_improvements(strong, "code")) == [
        "Solution is high quality. Minor refinements possible."
    ]
    # The short-circuit makes no model call
    assert len(llm.calls) == 1


def test_compare_alternatives():
    print("\n" + "=" * 60)
    print("TEST: compare alternatives")
    print("=" * 60)

    from thinkloop.thinking import QualityCritic

    response = json.dumps([
        {"alternativeIndex": 1, "score": 0.9, "pros": ["Fast"], "cons": ["Complex"]},
        {"alternativeIndex": 0, "score": 1.3, "pros": ["Simple"], "cons": []},
        {"alternativeIndex": 7, "score": 0.1},
    ])
    llm = ScriptedLLM({COMPARE: response})
    critic = QualityCritic(llm)

    assessments = asyncio.run(critic.compare_alternatives(
        "Sort records",
        [("Quicksort", "..."), ("Timsort", "..."), ("Bubble sort", "...")],
    ))

    assert [a.index for a in assessments] == [0, 1, 2]
    assert assessments[0].score == 1.0
    assert assessments[1].score == pytest.approx(0.9)
    assert assessments[1].pros == ["Fast"]
    # Unscored alternative stays neutral
    assert assessments[2].score == 0.5
    assert llm.calls[0].temperature == pytest.approx(0.3)
    assert llm.calls[0].max_tokens == 1500
    print("\n[PASS] Assessments aligned to input order")


def test_compare_alternatives_unparseable():
    from thinkloop.thinking import QualityCritic

    critic = QualityCritic(ScriptedLLM({COMPARE: "They are all fine."}))

    assessments = asyncio.run(critic.compare_alternatives("task", [("a", "x"), ("b", "y")]))

    assert [a.score for a in assessments] == [0.5, 0.5]
    assert asyncio.run(critic.compare_alternatives("task", [])) == []


def test_compare_alternatives_index_types():
    from thinkloop.thinking import QualityCritic

    response = json.dumps([
        {"alternativeIndex": False, "score": 0.1},
        {"alternativeIndex": 1.0, "score": 0.9},
        {"alternativeIndex": "0", "score": 0.2},
    ])
    critic = QualityCritic(ScriptedLLM({COMPARE: response}))

    assessments = asyncio.run(critic.compare_alternatives("task", [("a", "x"), ("b", "y")]))

    # false is not index 0; 1.0 addresses the second alternative
    assert assessments[0].score == 0.5
    assert assessments[1].score == pytest.approx(0.9)


def test_detect_circular_reasoning():
    from thinkloop.thinking import QualityCritic, StepRecorder, StepType

    recorder = StepRecorder()
    recorder.add_step(StepType.REASONING, "Use a dict for the cache")
    recorder.add_step(StepType.CRITIQUE, "Use a dict for the cache")
    recorder.add_step(StepType.REASONING, "Add TTL per entry")
    assert not QualityCritic.detect_circular_reasoning(recorder.steps)

    recorder.add_step(StepType.REASONING, "  use a DICT for   the cache ")
    assert QualityCritic.detect_circular_reasoning(recorder.steps)

    short = StepRecorder()
    short.add_step(StepType.REASONING, "same")
    short.add_step(StepType.REASONING, "same")
    assert not QualityCritic.detect_circular_reasoning(short.steps)


def test_calculate_quality_trend():
    from thinkloop.thinking import CritiqueResult, QualityCritic, Trend

    def series(*qualities):
        return [CritiqueResult(solution_quality=q) for q in qualities]

    assert QualityCritic.calculate_quality_trend(series(0.5, 0.6)) == Trend.STABLE
    assert QualityCritic.calculate_quality_trend(series(0.4, 0.5, 0.7, 0.8, 0.8)) == Trend.IMPROVING
    assert QualityCritic.calculate_quality_trend(series(0.9, 0.9, 0.6, 0.6, 0.6)) == Trend.DECLINING
    assert QualityCritic.calculate_quality_trend(series(0.7, 0.72, 0.7, 0.71)) == Trend.STABLE


def main():
    """Run all tests."""
    test_critique_parses_fenced_json()
    test_scores_are_clamped_and_coerced()
    test_unparseable_response_yields_fallback()
    test_compare_alternatives()
    print("\n" + "=" * 60)
    print("ALL TESTS PASSED")
    print("=" * 60)


if __name__ == "__main__":
    main()
