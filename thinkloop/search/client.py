"""Async HTTP client for the Tavily search API with rate limiting."""

import asyncio
import logging
import time
from typing import Any

import httpx

from ..settings import (
    MAX_RETRIES,
    RETRY_BACKOFF_FACTOR,
    SEARCH_REQUESTS_PER_SECOND,
    TAVILY_API_KEY,
    TAVILY_BASE_URL,
)
from .models import SearchDepth, SearchRequest, SearchResponse, SearchResult

logger = logging.getLogger(__name__)


class RateLimiter:
    """Token bucket rate limiter."""

    def __init__(self, requests_per_second: float):
        self.requests_per_second = requests_per_second
        self.min_interval = 1.0 / requests_per_second
        self.last_request_time = 0.0
        self._lock = asyncio.Lock()

    async def acquire(self) -> None:
        """Wait until we can make another request."""
        async with self._lock:
            now = time.monotonic()
            time_since_last = now - self.last_request_time
            if time_since_last < self.min_interval:
                await asyncio.sleep(self.min_interval - time_since_last)
            self.last_request_time = time.monotonic()


class TavilySearchClient:
    """
    Async client for the Tavily search API.

    Implements the SearchProvider protocol.

    Usage:
        async with TavilySearchClient() as search:
            results = await search.search("asyncio cancellation semantics")
    """

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        max_retries: int = MAX_RETRIES,
        requests_per_second: float = SEARCH_REQUESTS_PER_SECOND,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_key = api_key or TAVILY_API_KEY
        self.base_url = base_url or TAVILY_BASE_URL
        self.max_retries = max_retries
        self.rate_limiter = RateLimiter(requests_per_second)
        self._transport = transport

        if not self.api_key:
            raise ValueError("Tavily API key required. Set TAVILY_API_KEY in .env")

        self._client: httpx.AsyncClient | None = None
        logger.info("Tavily search client initialized")

    async def __aenter__(self) -> "TavilySearchClient":
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={"Content-Type": "application/json"},
            timeout=30.0,
            transport=self._transport,
        )
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise RuntimeError(
                "Client not initialized. Use 'async with' context manager."
            )
        return self._client

    async def _request_with_retry(
        self,
        method: str,
        url: str,
        **kwargs: Any,
    ) -> httpx.Response:
        """Make a request with rate limiting and exponential backoff retry."""
        last_exception: Exception | None = None
        last_response: httpx.Response | None = None

        for attempt in range(self.max_retries):
            await self.rate_limiter.acquire()
            logger.debug(f"Request attempt {attempt + 1}/{self.max_retries}: {method} {url}")

            try:
                response = await self.client.request(method, url, **kwargs)
                last_response = response
                logger.debug(f"Response status: {response.status_code}")

                # Handle rate limiting (429) with exponential backoff
                if response.status_code == 429:
                    retry_after = int(response.headers.get("Retry-After", 0))
                    backoff = max(retry_after, RETRY_BACKOFF_FACTOR ** attempt)
                    logger.warning(f"Rate limited (429), waiting {backoff}s (attempt {attempt + 1})")
                    await asyncio.sleep(backoff)
                    continue

                # Handle server errors with retry
                if response.status_code in (500, 502, 503, 504):
                    backoff = RETRY_BACKOFF_FACTOR ** attempt
                    logger.warning(f"Server error ({response.status_code}), backoff {backoff}s")
                    await asyncio.sleep(backoff)
                    continue

                response.raise_for_status()
                return response

            except (httpx.ConnectError, httpx.ReadTimeout) as e:
                last_exception = e
                backoff = RETRY_BACKOFF_FACTOR ** attempt
                logger.warning(f"Connection error: {e}, backoff {backoff}s")
                await asyncio.sleep(backoff)
                continue

        logger.error(f"Request failed after {self.max_retries} retries")
        if last_exception:
            raise last_exception
        if last_response is not None:
            raise httpx.HTTPStatusError(
                f"Request failed with status {last_response.status_code}: {last_response.text}",
                request=last_response.request,
                response=last_response,
            )
        raise RuntimeError("Request failed after all retries")

    async def search(
        self,
        query: str,
        max_results: int = 5,
        search_depth: SearchDepth = "basic",
    ) -> list[SearchResult]:
        """Search the web using the /search endpoint."""
        request = SearchRequest(
            query=query,
            max_results=max_results,
            search_depth=search_depth,
        )

        logger.info(f"Searching web: query='{query}', max_results={max_results}, depth={search_depth}")

        response = await self._request_with_retry(
            "POST",
            "/search",
            json={"api_key": self.api_key, **request.model_dump()},
        )
        data = SearchResponse.model_validate(response.json())

        logger.info(f"Search returned {len(data.results)} results")
        return data.results[:max_results]
