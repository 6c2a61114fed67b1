from __future__ import annotations

from typing import Any

from searchmate.models.events import EventType, SSEEvent


def turn_started(chat_id: str, **kwargs: Any) -> SSEEvent:
    return SSEEvent(event=EventType.TURN_STARTED, data={"chat_id": chat_id, **kwargs})


def inquiry_partial(partial: dict[str, Any]) -> SSEEvent:
    return SSEEvent(event=EventType.INQUIRY_PARTIAL, data={"inquiry": partial})


def inquiry(value: dict[str, Any]) -> SSEEvent:
    return SSEEvent(event=EventType.INQUIRY, data={"inquiry": value})


def tool_result(tool_name: str, result: Any, *, is_error: bool = False, **kwargs: Any) -> SSEEvent:
    data: dict[str, Any] = {"tool": tool_name, "result": result, "is_error": is_error}
    data.update(kwargs)
    return SSEEvent(event=EventType.TOOL_RESULT, data=data)


def answer_delta(text: str, *, detail: bool = False) -> SSEEvent:
    """Answer text so far; detail deltas render in the collapsed section."""
    event = EventType.ANSWER_DETAIL_DELTA if detail else EventType.ANSWER_DELTA
    return SSEEvent(event=event, data={"text": text})


def answer_complete(text: str) -> SSEEvent:
    return SSEEvent(event=EventType.ANSWER_COMPLETE, data={"text": text})


def videos(query: str, results: list[dict[str, Any]]) -> SSEEvent:
    return SSEEvent(event=EventType.VIDEOS, data={"query": query, "videos": results})


def related_partial(partial: dict[str, Any]) -> SSEEvent:
    return SSEEvent(event=EventType.RELATED_PARTIAL, data={"related": partial})


def related(queries: list[str]) -> SSEEvent:
    return SSEEvent(event=EventType.RELATED, data={"items": [{"query": q} for q in queries]})


def followup(route: str | None = None) -> SSEEvent:
    return SSEEvent(event=EventType.FOLLOWUP, data={"from": route})


def turn_complete(chat_id: str, *, outcome: str, persisted: bool = False) -> SSEEvent:
    return SSEEvent(
        event=EventType.TURN_COMPLETE,
        data={"chat_id": chat_id, "outcome": outcome, "persisted": persisted},
    )


def error(message: str, agent: str | None = None) -> SSEEvent:
    data: dict[str, Any] = {"message": message}
    if agent:
        data["agent"] = agent
    return SSEEvent(event=EventType.ERROR, data=data)
