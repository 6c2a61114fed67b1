from __future__ import annotations

import asyncio
from typing import AsyncGenerator

from searchmate.adapters.base import LanguageModel
from searchmate.agents.structured import stream_object
from searchmate.llm_client import get_model
from searchmate.models.events import SSEEvent
from searchmate.models.messages import Message
from searchmate.models.structured import Inquiry
from searchmate.services import streaming
from searchmate.services.prompt_store import render_prompt


class Inquirer:
    """Builds a clarifying question, streaming the partial form as it arrives."""

    name = "inquire"

    def __init__(self, model: LanguageModel | None = None, cancel: asyncio.Event | None = None):
        self.model = model
        self.cancel = cancel
        self.inquiry: Inquiry | None = None

    async def run(self, messages: list[Message]) -> AsyncGenerator[SSEEvent, None]:
        objects = stream_object(
            self.model or get_model(),
            messages,
            Inquiry,
            system=render_prompt("inquire.system_prompt"),
            cancel=self.cancel,
        )
        async for partial in objects:
            yield streaming.inquiry_partial(partial)

        self.inquiry = objects.object
        yield streaming.inquiry(self.inquiry.model_dump(mode="json"))
