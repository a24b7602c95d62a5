"""Protocol definitions for web search APIs."""

from typing import Protocol, runtime_checkable

from .models import SearchDepth, SearchResult


@runtime_checkable
class SearchProvider(Protocol):
    """Protocol for web search providers.

    Implement this protocol to add support for new search APIs.
    """

    async def search(
        self,
        query: str,
        max_results: int = 5,
        search_depth: SearchDepth = "basic",
    ) -> list[SearchResult]:
        """
        Search the web for a query.

        Args:
            query: Search query string
            max_results: Maximum number of results to return
            search_depth: "basic" for fast lookups, "advanced" for deeper crawling

        Returns:
            List of SearchResult objects
        """
        ...
