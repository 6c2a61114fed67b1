from __future__ import annotations

from typing import Any

import httpx

from searchmate.config import settings
from searchmate.models.structured import SearchResultItem, SearchResults


def _content(item: dict[str, Any]) -> str:
    highlights = item.get("highlights") or []
    if highlights:
        return " ".join(str(h) for h in highlights)
    return str(item.get("text") or "")


async def search(
    query: str,
    *,
    max_results: int = 10,
    include_domains: list[str] | None = None,
    exclude_domains: list[str] | None = None,
) -> SearchResults:
    """Semantic search via Exa.

    API: POST {EXA_BASE_URL}/search
    Headers:
        - x-api-key: <api_key>
    Highlights are preferred over full text for the result content.
    """
    api_key = settings.exa_api_key
    if not api_key:
        raise ValueError("EXA_API_KEY not configured")

    payload: dict[str, Any] = {
        "query": query,
        "numResults": max_results,
        "contents": {"highlights": True, "text": {"maxCharacters": 2000}},
    }
    if include_domains:
        payload["includeDomains"] = include_domains
    if exclude_domains:
        payload["excludeDomains"] = exclude_domains

    async with httpx.AsyncClient() as client:
        response = await client.post(
            f"{settings.exa_base_url.rstrip('/')}/search",
            headers={"x-api-key": api_key, "Content-Type": "application/json"},
            json=payload,
            timeout=settings.http_timeout,
        )
        response.raise_for_status()
        data = response.json()

    results = [
        SearchResultItem(
            title=item.get("title") or "",
            url=item.get("url") or "",
            content=_content(item),
        )
        for item in data.get("results", [])
    ]
    images = [item["image"] for item in data.get("results", []) if item.get("image")]
    return SearchResults(query=query, images=images, results=results)
