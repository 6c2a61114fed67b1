"""Sensitive-term sources: where the term -> replacement map comes from."""
from __future__ import annotations

import json
from pathlib import Path
from typing import Protocol

import httpx
from loguru import logger

from searchmate.config import settings


class TermSource(Protocol):
    async def load(self) -> dict[str, str]: ...


class StaticTermSource:
    def __init__(self, terms: dict[str, str] | None = None):
        self.terms = dict(terms or {})

    async def load(self) -> dict[str, str]:
        return dict(self.terms)


class FileTermSource:
    """JSON object on disk, re-read on every load."""

    def __init__(self, path: str | Path):
        self.path = Path(path)

    async def load(self) -> dict[str, str]:
        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Error loading sensitive terms from {self.path}: {e}")
            return {}
        if not isinstance(payload, dict):
            logger.error(f"Sensitive terms file {self.path} must hold a JSON object")
            return {}
        return {str(k): str(v) for k, v in payload.items()}


class KeyValueTermSource:
    """Redis hash read through the Upstash REST API (``HGETALL <key>``)."""

    def __init__(
        self,
        url: str,
        token: str,
        key: str = "sensitive_terms",
        *,
        timeout: float = 10.0,
    ):
        self.url = url.rstrip("/")
        self.token = token
        self.key = key
        self.timeout = timeout

    async def load(self) -> dict[str, str]:
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            resp = await client.get(
                f"{self.url}/hgetall/{self.key}",
                headers={"Authorization": f"Bearer {self.token}"},
            )
            resp.raise_for_status()
            payload = resp.json()
        if not isinstance(payload, dict):
            raise ValueError(f"Unexpected HGETALL response for {self.key}")
        flat = payload.get("result") or []
        # HGETALL comes back as [field, value, field, value, ...]
        return {str(flat[i]): str(flat[i + 1]) for i in range(0, len(flat) - 1, 2)}


class SensitiveTerms:
    """Holds the current map; each refresh replaces it wholesale."""

    def __init__(self, source: TermSource):
        self.source = source
        self._terms: dict[str, str] = {}

    async def refresh(self) -> dict[str, str]:
        try:
            self._terms = await self.source.load()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Error loading sensitive terms: {e}")
            self._terms = {}
        return self._terms

    @property
    def terms(self) -> dict[str, str]:
        return dict(self._terms)


def build_term_source() -> TermSource:
    kind = settings.term_source.strip().lower()
    if kind == "file":
        return FileTermSource(settings.sensitive_terms_path)
    if kind == "kv":
        return KeyValueTermSource(
            settings.upstash_redis_rest_url,
            settings.upstash_redis_rest_token,
            settings.sensitive_terms_key,
            timeout=settings.http_timeout,
        )
    return StaticTermSource()


_holder: SensitiveTerms | None = None


def get_terms_holder() -> SensitiveTerms:
    global _holder
    if _holder is None:
        _holder = SensitiveTerms(build_term_source())
    return _holder


async def get_sensitive_terms() -> dict[str, str]:
    """Re-fetch and return the current term -> replacement map."""
    return await get_terms_holder().refresh()
