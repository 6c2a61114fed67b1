from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Callable
from urllib.parse import quote

import httpx
from loguru import logger

from searchmate.config import settings


@dataclass
class _CacheEntry:
    value: list[dict[str, Any]]
    stored_at: float


class VideoService:
    """Video search backed by an HTTP API with a short in-process cache.

    Entries are keyed by the exact query text and dropped when read after
    ``ttl`` seconds. Failed fetches return ``[]`` and are never cached.
    """

    def __init__(
        self,
        url_template: str,
        *,
        ttl: float = 10.0,
        timeout: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.url_template = url_template
        self.ttl = ttl
        self.timeout = timeout
        self._clock = clock
        self._cache: dict[str, _CacheEntry] = {}

    def _cached(self, query: str) -> list[dict[str, Any]] | None:
        entry = self._cache.get(query)
        if entry is None:
            return None
        if self._clock() - entry.stored_at >= self.ttl:
            del self._cache[query]
            return None
        return entry.value

    async def get_video_results(self, query: str) -> list[dict[str, Any]]:
        cached = self._cached(query)
        if cached is not None:
            return cached

        url = self.url_template.replace("{query}", quote(query, safe=""))
        try:
            async with httpx.AsyncClient() as client:
                response = await client.get(url, timeout=self.timeout)
                response.raise_for_status()
                data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Failed to fetch videos for {query!r}: {e}")
            return []

        videos = data.get("videos", []) if isinstance(data, dict) else data
        if not isinstance(videos, list):
            videos = []
        self._cache[query] = _CacheEntry(value=videos, stored_at=self._clock())
        return videos

    def clear(self) -> None:
        self._cache.clear()


_service: VideoService | None = None


def get_video_service() -> VideoService:
    global _service
    if _service is None:
        _service = VideoService(
            settings.video_search_api_url,
            ttl=settings.video_cache_ttl,
            timeout=settings.http_timeout,
        )
    return _service


async def get_video_results(query: str) -> list[dict[str, Any]]:
    return await get_video_service().get_video_results(query)
