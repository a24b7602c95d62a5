"""Web search integration used for research augmentation."""

from .models import SearchDepth, SearchRequest, SearchResponse, SearchResult
from .protocols import SearchProvider
from .client import RateLimiter, TavilySearchClient

__all__ = [
    # Models
    "SearchDepth",
    "SearchRequest",
    "SearchResponse",
    "SearchResult",
    # Protocols
    "SearchProvider",
    # Client
    "RateLimiter",
    "TavilySearchClient",
]
