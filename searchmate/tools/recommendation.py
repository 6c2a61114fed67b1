from __future__ import annotations

from urllib.parse import quote

import httpx
from loguru import logger

from searchmate.config import settings
from searchmate.models.structured import SearchResults


def _url(template: str, query: str) -> str:
    return template.replace("{query}", quote(query, safe=""))


async def search(query: str) -> SearchResults:
    """Internal recommendation API; an empty result stands in for any failure."""
    url = _url(settings.recommendation_api_url, query)
    try:
        async with httpx.AsyncClient() as client:
            response = await client.get(url, timeout=settings.http_timeout)
            response.raise_for_status()
            data = response.json()
        return SearchResults(
            query=query,
            images=data.get("images") or [],
            results=data.get("results") or [],
        )
    except (httpx.HTTPError, ValueError) as e:
        logger.error(f"Failed to fetch recommendations for {query!r}: {e}")
        return SearchResults(query=query)
