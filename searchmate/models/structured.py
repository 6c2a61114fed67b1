from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field, field_validator


# --- Model-produced objects ---


class NextAction(BaseModel):
    next: Literal["proceed", "inquire"]


class InquiryOption(BaseModel):
    value: str
    label: str


class Inquiry(BaseModel):
    question: str
    options: list[InquiryOption] = Field(default_factory=list)
    allowsInput: bool = False
    inputLabel: str | None = None
    inputPlaceholder: str | None = None


class RelatedQuery(BaseModel):
    query: str


class RelatedQueries(BaseModel):
    items: list[RelatedQuery] = Field(default_factory=list)

    @field_validator("items", mode="before")
    @classmethod
    def _at_most_three(cls, value):
        if isinstance(value, list):
            return value[:3]
        return value

    @property
    def queries(self) -> list[str]:
        return [item.query for item in self.items]


# --- Tool payloads ---


class SearchResultItem(BaseModel):
    title: str = ""
    url: str = ""
    content: str = ""


class SearchResults(BaseModel):
    query: str
    images: list[str] = Field(default_factory=list)
    results: list[SearchResultItem] = Field(default_factory=list)


class VideoSearchResultItem(BaseModel):
    assetId: str = ""
    videoId: str = ""
    baseUrl: str = ""
    s3Key: str = ""
    playlistUrl: str = ""
    type: str = ""
    title: str = ""
    snippet: str = ""
    imageUrl: str = ""
    duration: str = ""
    source: str = ""
    channel: str = ""
    date: str = ""
    position: int = 0
