from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


# --- Requests ---


class SearchRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    chat_id: str | None = None
    input: str | None = None
    related_query: str | None = None
    inquiry: dict[str, Any] = Field(default_factory=dict)
    skip: bool = False
    route: str | None = Field(default=None, alias="from")


# --- Responses ---


class HealthResponse(BaseModel):
    status: str
    service: str
    model_configured: bool
