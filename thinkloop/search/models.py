"""Pydantic models for web search requests and responses."""

from typing import Literal

from pydantic import BaseModel, Field

SearchDepth = Literal["basic", "advanced"]


class SearchResult(BaseModel):
    """A single web search hit."""

    title: str = ""
    url: str = ""
    snippet: str = Field("", alias="content")
    score: float | None = None

    model_config = {"populate_by_name": True}


class SearchRequest(BaseModel):
    """Parameters of a web search."""

    query: str
    max_results: int = 5
    search_depth: SearchDepth = "basic"


class SearchResponse(BaseModel):
    """Response from the Tavily search endpoint."""

    query: str = ""
    answer: str | None = None
    results: list[SearchResult] = Field(default_factory=list)
    response_time: float | None = None
