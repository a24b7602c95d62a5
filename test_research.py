"""
Research Augmenter Tests

Tests for uncertainty detection, query enhancement, relevance scoring and
research with search/synthesis failures.
"""

import asyncio

import pytest

from conftest import FOLLOW_UP, RESEARCH_SYNTHESIS, ScriptedLLM


class FakeSearch:
    """Search provider returning canned hits and recording each call."""

    def __init__(self, hits=None, error=None):
        self.hits = hits or []
        self.error = error
        self.calls = []

    async def search(self, query, max_results=5, search_depth="basic"):
        from thinkloop.search import SearchResult

        self.calls.append((query, max_results, search_depth))
        if self.error:
            raise self.error
        return [SearchResult(title=t, url=u, snippet=s) for t, u, s in self.hits][:max_results]


HITS = [
    ("Python asyncio locks", "https://docs.python.org/asyncio-sync", "Use asyncio.Lock to guard shared state"),
    ("Threading in Python", "https://example.com/threads", "Threads and the GIL"),
]


def test_detect_uncertainty():
    print("=" * 60)
    print("TEST: detect uncertainty")
    print("=" * 60)

    from thinkloop.thinking import ResearchAugmenter, StepRecorder, StepType

    recorder = StepRecorder()
    recorder.add_step(StepType.REASONING, "Which queue library is fastest?", confidence=0.1)
    recorder.add_step(StepType.REASONING, "Not sure about the retry policy.", confidence=0.2)
    recorder.add_step(StepType.REASONING, "I'm not sure about the thread safety of dict.", confidence=0.7)
    recorder.add_step(StepType.REASONING, "How do I implement rate limiting in code?", confidence=0.3)
    recorder.add_step(StepType.REASONING, "The design is solid.", confidence=0.9)
    recorder.add_step(StepType.CRITIQUE, "Looks fine.", confidence=0.2)
    recorder.add_step(StepType.REASONING, "We need to verify the API rate limits.", confidence=0.8)

    augmenter = ResearchAugmenter(ScriptedLLM(), FakeSearch())
    needs = augmenter.detect_uncertainty(recorder.steps)

    for need in needs:
        print(f"  - {need.question} ({need.urgency}, {need.search_type})")

    # Only the last five steps are scanned
    assert [n.question for n in needs] == [
        "what is the thread safety of dict",
        "How do I implement rate limiting in code",
        "the API rate limits",
    ]
    assert [n.urgency for n in needs] == ["helpful", "blocking", "helpful"]
    assert [n.search_type for n in needs] == ["general", "code", "docs"]
    assert needs[1].context == "How do I implement rate limiting in code?"
    assert all(n.max_results == 5 for n in needs)
    print("\n[PASS] Needs extracted from the recent window")


def test_enhance_query():
    from thinkloop.thinking.research import enhance_query

    assert enhance_query("lru cache", "code") == "lru cache code example github"
    assert enhance_query("httpx timeouts", "docs", year=2024) == "httpx timeouts official documentation 2024"
    assert enhance_query("self-critique", "academic") == "self-critique research paper"
    assert enhance_query("queue design", "general", year=2025) == "queue design best practices 2025"


def test_classify_search_type():
    from thinkloop.thinking.research import classify_search_type

    assert classify_search_type("how to implement a trie") == "code"
    assert classify_search_type("stripe api pagination") == "docs"
    assert classify_search_type("research on beam search") == "academic"
    assert classify_search_type("best queue") == "general"


def test_relevance_and_confidence():
    from thinkloop.thinking import ScoredSearchResult
    from thinkloop.thinking.research import assess_confidence, calculate_relevance

    relevance = calculate_relevance("Python asyncio locks", "Use asyncio.Lock to guard", "asyncio lock usage")
    assert relevance == pytest.approx(2 / 3)
    assert calculate_relevance("title", "snippet", "   ") == 0.0

    assert assess_confidence([]) == 0.0
    full = [ScoredSearchResult(title="t", url="u", snippet="s", relevance=1.0) for _ in range(6)]
    assert assess_confidence(full) == pytest.approx(1.0)
    single = [ScoredSearchResult(title="t", url="u", snippet="s", relevance=0.5)]
    assert assess_confidence(single) == pytest.approx(0.06 + 0.35)


def test_research_searches_and_synthesizes():
    print("\n" + "=" * 60)
    print("TEST: research")
    print("=" * 60)

    from thinkloop.thinking import ResearchAugmenter, ResearchNeed

    llm = ScriptedLLM({RESEARCH_SYNTHESIS: "Guard the cache with asyncio.Lock."}, tokens_per_call=60)
    search = FakeSearch(HITS)
    augmenter = ResearchAugmenter(llm, search)

    need = ResearchNeed(question="asyncio lock usage", urgency="blocking", search_type="docs", max_results=3)
    result = asyncio.run(augmenter.research(need))

    print(f"\nSynthesized: {result.synthesized}")
    print(f"Confidence: {result.confidence:.2f}")
    query, max_results, depth = search.calls[0]
    assert query.startswith("asyncio lock usage official documentation")
    assert max_results == 3
    assert depth == "advanced"

    assert result.query == "asyncio lock usage"
    assert result.synthesized == "Guard the cache with asyncio.Lock."
    assert result.tokens_used == 60
    assert result.sources == ["https://docs.python.org/asyncio-sync", "https://example.com/threads"]
    assert result.results[0].relevance > result.results[1].relevance
    assert 0.0 < result.confidence <= 1.0

    call = llm.calls_for(RESEARCH_SYNTHESIS)[0]
    assert call.temperature == pytest.approx(0.3)
    assert call.max_tokens == 800
    assert "Python asyncio locks" in call.prompt
    print("\n[PASS] Search and synthesis combined")


def test_helpful_need_uses_basic_depth():
    from thinkloop.thinking import ResearchAugmenter, ResearchNeed

    search = FakeSearch(HITS)
    augmenter = ResearchAugmenter(ScriptedLLM(default="summary"), search)

    asyncio.run(augmenter.research(ResearchNeed(question="queue design")))

    assert search.calls[0][2] == "basic"


def test_search_failure_yields_empty_result():
    from thinkloop.thinking import ResearchAugmenter, ResearchNeed
    from thinkloop.thinking.research import NO_RESULTS_TEXT

    llm = ScriptedLLM(default="should not be called")
    augmenter = ResearchAugmenter(llm, FakeSearch(error=ConnectionError("network unreachable")))

    result = asyncio.run(augmenter.research(ResearchNeed(question="anything")))

    assert result.results == []
    assert result.synthesized == NO_RESULTS_TEXT
    assert result.confidence == 0.0
    assert result.tokens_used == 0
    assert llm.calls == []


def test_synthesis_failure_falls_back_to_result_list():
    from thinkloop.thinking import ResearchAugmenter, ResearchNeed

    llm = ScriptedLLM({RESEARCH_SYNTHESIS: RuntimeError("rate limited")})
    augmenter = ResearchAugmenter(llm, FakeSearch(HITS))

    result = asyncio.run(augmenter.research(ResearchNeed(question="asyncio lock usage")))

    assert "- Python asyncio locks: Use asyncio.Lock to guard shared state" in result.synthesized
    assert "- Threading in Python: Threads and the GIL" in result.synthesized
    assert result.tokens_used == 0
    assert len(result.results) == 2


def test_cancellation_propagates():
    from thinkloop import CancellationToken, ThinkingCancelled
    from thinkloop.thinking import ResearchAugmenter, ResearchNeed

    search = FakeSearch(HITS)
    augmenter = ResearchAugmenter(ScriptedLLM(), search)

    async def run():
        token = CancellationToken()
        token.cancel("stop")
        await augmenter.research(ResearchNeed(question="anything"), cancellation=token)

    with pytest.raises(ThinkingCancelled):
        asyncio.run(run())


def test_follow_up_questions():
    from thinkloop.thinking import ResearchAugmenter

    llm = ScriptedLLM({FOLLOW_UP: "1. How does the GIL interact?\n2. Which lock is cheaper?\n3. Is RLock needed?\n4. Extra"})
    augmenter = ResearchAugmenter(llm, FakeSearch())

    questions = asyncio.run(augmenter.generate_follow_up_questions("q", "a"))
    assert questions == ["How does the GIL interact?", "Which lock is cheaper?", "Is RLock needed?"]

    failing = ResearchAugmenter(ScriptedLLM({FOLLOW_UP: RuntimeError("boom")}), FakeSearch())
    assert asyncio.run(failing.generate_follow_up_questions("q", "a")) == []


def main():
    """Run all tests."""
    test_detect_uncertainty()
    test_research_searches_and_synthesizes()
    print("\n" + "=" * 60)
    print("ALL TESTS PASSED")
    print("=" * 60)


if __name__ == "__main__":
    main()
