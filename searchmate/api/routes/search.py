from __future__ import annotations

import json as _json

from fastapi import APIRouter, HTTPException
from sse_starlette.sse import EventSourceResponse

from searchmate.agents.orchestrator import TurnInput
from searchmate.api.deps import get_orchestrator
from searchmate.models.schemas import SearchRequest
from searchmate.services import logger as log_service
from searchmate.services import streaming
from searchmate.services.chat_store import get_chat_store

router = APIRouter(prefix="/api", tags=["search"])


@router.post("/search")
async def search(request: SearchRequest):
    """Run one conversation turn, streaming its events as SSE."""
    turn_input = TurnInput(
        input=request.input,
        related_query=request.related_query,
        inquiry=request.inquiry,
        skip=request.skip,
        route=request.route,
    )
    if turn_input.content is None:
        raise HTTPException(status_code=400, detail="One of input, related_query, inquiry or skip is required")

    orchestrator = await get_orchestrator(request.chat_id)

    async def event_generator():
        log_service.log_event(
            event_type="turn_requested",
            message="Search turn started",
            chat_id=orchestrator.chat_id,
            route=request.route,
        )
        try:
            async for event in orchestrator.submit(turn_input):
                yield {
                    "event": event.event.value,
                    "data": _json.dumps(event.data, default=str),
                }
        except Exception as e:
            log_service.log_event(
                event_type="stream_error",
                message="Unhandled error in search stream",
                error=str(e),
                chat_id=orchestrator.chat_id,
            )
            error_event = streaming.error("Search stream failed unexpectedly.")
            yield {
                "event": error_event.event.value,
                "data": _json.dumps(error_event.data),
            }

    return EventSourceResponse(event_generator())


@router.get("/chats/{chat_id}")
async def get_chat(chat_id: str):
    chat = await get_chat_store().get_chat(chat_id)
    if chat is None:
        raise HTTPException(status_code=404, detail="Chat not found")
    return chat.to_json()
