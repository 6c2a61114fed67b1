"""The ``search`` tool: parameters, routing and domain filters."""
from __future__ import annotations

from typing import Literal

from loguru import logger
from pydantic import BaseModel, Field

from searchmate.config import settings
from searchmate.models.structured import SearchResults
from searchmate.tools import exa_search, recommendation, tavily_search

ROUTE_WEB = "web"
ROUTE_SEMANTIC = "semantic"


class SearchParams(BaseModel):
    query: str = Field(description="The query to search for")
    max_results: int = Field(default=10, ge=1, le=20, description="The maximum number of results to return")
    search_depth: Literal["basic", "advanced"] = Field(default="basic", description="The depth of the search")
    include_domains: list[str] = Field(
        default_factory=list,
        description="A list of domains to specifically include in the search results",
    )
    exclude_domains: list[str] = Field(
        default_factory=list,
        description="A list of domains to specifically exclude from the search results",
    )


def with_baseline_domain(domains: list[str], baseline: str | None = None) -> list[str]:
    """Domain filter shown for a search: the requested domains plus the baseline, deduplicated."""
    baseline = settings.search_baseline_domain if baseline is None else baseline
    merged = [*domains, baseline] if baseline else list(domains)
    return list(dict.fromkeys(merged))


def backend_for(route: str | None) -> str:
    route = (route if route is not None else settings.default_search_route).strip().lower()
    if route == ROUTE_WEB:
        return "recommendation"
    if route == ROUTE_SEMANTIC:
        return "exa"
    return "tavily"


async def search(params: SearchParams, route: str | None = None) -> SearchResults:
    backend = backend_for(route)
    logger.info(f"Searching {params.query!r} via {backend}")

    if backend == "recommendation":
        return await recommendation.search(params.query)
    if backend == "exa":
        return await exa_search.search(
            params.query,
            max_results=params.max_results,
            include_domains=params.include_domains,
            exclude_domains=params.exclude_domains,
        )
    return await tavily_search.search(
        params.query,
        search_depth=params.search_depth,
        max_results=params.max_results,
        include_domains=params.include_domains,
        exclude_domains=params.exclude_domains,
    )
