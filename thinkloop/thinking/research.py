"""
Research augmenter: detects open questions in recent reasoning and answers
them with web search plus LLM synthesis.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime
from typing import TYPE_CHECKING, Sequence

from ..cancellation import ThinkingCancelled
from ..llm.completion import generate_text
from .models import ResearchNeed, ResearchResult, ScoredSearchResult, SearchType, ThinkingStep, mean
from .parsing import extract_list_items

if TYPE_CHECKING:
    from ..cancellation import CancellationToken
    from ..config.loader import ResearchConfig
    from ..llm.protocols import LLMProvider
    from ..search.protocols import SearchProvider

logger = logging.getLogger(__name__)

UNCERTAINTY_MARKERS = (
    "not sure",
    "uncertain",
    "unclear",
    "don't know",
    "might need",
    "should research",
    "need to verify",
    "need more information",
    "latest",
    "current best practice",
    "what is the",
)

QUESTION_PATTERN = re.compile(r"(?:what|how|when|where|why|which)[^.?]+\?", re.IGNORECASE)
NEED_PATTERN = re.compile(r"need to (?:know|understand|find|research|verify) ([^.]+)", re.IGNORECASE)
UNCERTAIN_ABOUT_PATTERN = re.compile(r"(?:not sure|uncertain) about ([^.]+)", re.IGNORECASE)

NO_RESULTS_TEXT = "No relevant information found."

SYNTHESIS_PROMPT = """Synthesize these search results to answer the question.

**Question:** {question}
{context}
**Search Results:**
{results}

Provide a concise, actionable summary (2-3 paragraphs) that:
1. Directly answers the question
2. Highlights key insights from the results
3. Mentions any conflicting information
4. Provides specific recommendations or best practices

Focus on accuracy and cite sources when making claims."""


def extract_research_question(content: str) -> str | None:
    """Pull an answerable question out of free-form reasoning text."""
    match = QUESTION_PATTERN.search(content)
    if match:
        return match.group(0).rstrip("?").strip()

    match = NEED_PATTERN.search(content)
    if match:
        return match.group(1).strip()

    match = UNCERTAIN_ABOUT_PATTERN.search(content)
    if match:
        return f"what is {match.group(1).strip()}"

    return None


def classify_search_type(query: str) -> SearchType:
    q = query.lower()
    if "code" in q or "implement" in q:
        return "code"
    if "documentation" in q or "api" in q:
        return "docs"
    if "research" in q or "paper" in q:
        return "academic"
    return "general"


def enhance_query(query: str, search_type: SearchType, year: int | None = None) -> str:
    """Append search-type specific terms to steer the engine."""
    year = year or datetime.now().year
    if search_type == "code":
        return f"{query} code example github"
    if search_type == "docs":
        return f"{query} official documentation {year}"
    if search_type == "academic":
        return f"{query} research paper"
    return f"{query} best practices {year}"


def calculate_relevance(title: str, snippet: str, query: str) -> float:
    """Fraction of query terms found in the result's title and snippet."""
    terms = query.lower().split()
    if not terms:
        return 0.0
    text = f"{title} {snippet}".lower()
    return sum(1 for term in terms if term in text) / len(terms)


def assess_confidence(results: Sequence[ScoredSearchResult]) -> float:
    """0.3 for result volume (saturating at 5) plus 0.7 for mean relevance."""
    if not results:
        return 0.0
    volume = min(len(results) / 5, 1.0)
    return volume * 0.3 + mean([r.relevance for r in results]) * 0.7


class ResearchAugmenter:
    """
    Answers research needs with web search plus synthesis.

    Usage:
        augmenter = ResearchAugmenter(llm, search_provider)
        needs = augmenter.detect_uncertainty(recorder.get_recent_steps(5))
        result = await augmenter.research(needs[0])
    """

    def __init__(
        self,
        llm_provider: LLMProvider,
        search_provider: SearchProvider,
        config: ResearchConfig | None = None,
    ):
        self.llm = llm_provider
        self.search_provider = search_provider

        if config is None:
            from ..config.loader import ResearchConfig
            config = ResearchConfig()

        self.config = config

    def detect_uncertainty(self, steps: Sequence[ThinkingStep]) -> list[ResearchNeed]:
        """
        Find research needs in the most recent steps.

        A step qualifies when it contains an uncertainty marker or has low
        confidence; it yields a need only if a question can be extracted.
        """
        needs = []
        for step in list(steps)[-self.config.recent_steps_window:]:
            content = step.content.lower()
            uncertain = any(marker in content for marker in UNCERTAINTY_MARKERS)
            if not uncertain and step.confidence >= self.config.uncertainty_confidence:
                continue

            question = extract_research_question(step.content)
            if not question:
                continue

            needs.append(
                ResearchNeed(
                    question=question,
                    urgency="blocking" if step.confidence < self.config.blocking_confidence else "helpful",
                    search_type=classify_search_type(question),
                    max_results=self.config.max_results,
                    context=step.content,
                )
            )

        logger.debug(f"Detected {len(needs)} research needs in {len(steps)} steps")
        return needs

    async def research(
        self,
        need: ResearchNeed,
        cancellation: CancellationToken | None = None,
    ) -> ResearchResult:
        """
        Search for and synthesize an answer to a research need.

        Search failures yield an empty result set; synthesis failures fall
        back to a bullet list of the results. Cancellation propagates.
        """
        logger.info(f"Researching: '{need.question}' ({need.search_type}, {need.urgency})")

        results = await self._search(need, cancellation)
        synthesized, tokens = await self._synthesize(need, results, cancellation)

        return ResearchResult(
            query=need.question,
            results=results,
            synthesized=synthesized,
            confidence=assess_confidence(results),
            tokens_used=tokens,
            sources=[r.url for r in results if r.url],
        )

    async def _search(
        self,
        need: ResearchNeed,
        cancellation: CancellationToken | None,
    ) -> list[ScoredSearchResult]:
        query = enhance_query(need.question, need.search_type)
        depth = "advanced" if need.urgency == "blocking" else "basic"

        call = self.search_provider.search(query, max_results=need.max_results, search_depth=depth)
        try:
            hits = await cancellation.run(call) if cancellation else await call
        except ThinkingCancelled:
            raise
        except Exception as e:
            logger.warning(f"Web search failed for '{query}': {e}")
            return []

        return [
            ScoredSearchResult(
                title=hit.title,
                url=hit.url,
                snippet=hit.snippet,
                relevance=calculate_relevance(hit.title, hit.snippet, need.question),
            )
            for hit in hits
        ]

    async def _synthesize(
        self,
        need: ResearchNeed,
        results: list[ScoredSearchResult],
        cancellation: CancellationToken | None,
    ) -> tuple[str, int]:
        if not results:
            return NO_RESULTS_TEXT, 0

        top = sorted(results, key=lambda r: r.relevance, reverse=True)[: self.config.max_synthesis_results]
        formatted = "\n".join(
            f"{i}. **{r.title}**\n   {r.snippet}\n   Source: {r.url}\n" for i, r in enumerate(top, 1)
        )
        context = f"\n**Context:** {need.context}\n" if need.context else ""
        prompt = SYNTHESIS_PROMPT.format(question=need.question, context=context, results=formatted)

        try:
            generation = await generate_text(
                self.llm,
                prompt,
                temperature=self.config.synthesis_temperature,
                max_tokens=self.config.synthesis_max_tokens,
                cancellation=cancellation,
            )
        except ThinkingCancelled:
            raise
        except Exception as e:
            logger.warning(f"Research synthesis failed, concatenating results: {e}")
            return "\n".join(f"- {r.title}: {r.snippet}" for r in top), 0

        return generation.text, generation.total_tokens

    async def generate_follow_up_questions(
        self,
        question: str,
        answer: str,
        cancellation: CancellationToken | None = None,
    ) -> list[str]:
        """Suggest up to three follow-up questions. Returns [] if generation fails."""
        prompt = f"""Given this question and answer, suggest 2-3 follow-up research questions to deepen understanding.

**Original Question:** {question}

**Answer:** {answer}

Suggest specific, actionable follow-up questions. Format as a simple list."""

        try:
            generation = await generate_text(
                self.llm,
                prompt,
                temperature=0.5,
                max_tokens=300,
                cancellation=cancellation,
            )
        except ThinkingCancelled:
            raise
        except Exception as e:
            logger.warning(f"Follow-up question generation failed: {e}")
            return []

        return extract_list_items(generation.text, limit=3)
