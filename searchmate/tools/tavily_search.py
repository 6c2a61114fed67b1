from __future__ import annotations

from typing import Any

from tavily import AsyncTavilyClient

from searchmate.config import settings
from searchmate.models.structured import SearchResultItem, SearchResults

# Tavily rejects queries shorter than this
MIN_QUERY_LENGTH = 5
MIN_MAX_RESULTS = 5


def _image_url(image: Any) -> str:
    if isinstance(image, dict):
        return str(image.get("url", ""))
    return str(image)


async def search(
    query: str,
    *,
    search_depth: str = "basic",
    max_results: int = 10,
    include_domains: list[str] | None = None,
    exclude_domains: list[str] | None = None,
) -> SearchResults:
    """Execute a Tavily web search and return normalized results."""
    client = AsyncTavilyClient(api_key=settings.tavily_api_key)

    kwargs: dict[str, Any] = {
        "query": query.ljust(MIN_QUERY_LENGTH),
        "search_depth": search_depth,
        "max_results": max(max_results, MIN_MAX_RESULTS),
        "include_images": True,
        "include_answer": True,
    }
    if include_domains:
        kwargs["include_domains"] = include_domains
    if exclude_domains:
        kwargs["exclude_domains"] = exclude_domains

    response = await client.search(**kwargs)

    return SearchResults(
        query=query,
        images=[_image_url(i) for i in response.get("images", []) if i],
        results=[
            SearchResultItem(
                title=r.get("title", ""),
                url=r.get("url", ""),
                content=r.get("content", ""),
            )
            for r in response.get("results", [])
        ],
    )
