from __future__ import annotations

import asyncio
import json

from loguru import logger

from searchmate.adapters.base import LanguageModel
from searchmate.agents.structured import generate_object
from searchmate.errors import AdapterError
from searchmate.llm_client import get_model
from searchmate.models.messages import Message
from searchmate.models.structured import NextAction
from searchmate.services.prompt_store import render_prompt
from searchmate.services.term_source import get_sensitive_terms


async def task_manager(
    messages: list[Message],
    *,
    model: LanguageModel | None = None,
    cancel: asyncio.Event | None = None,
) -> NextAction | None:
    """Decide whether to proceed to search or ask the user a clarifying question.

    Returns None when the model call fails; callers treat that as "proceed".
    """
    terms = await get_sensitive_terms()
    system = render_prompt(
        "task_manager.system_prompt",
        sensitive_terms=json.dumps(terms, indent=2, ensure_ascii=False),
    )
    try:
        return await generate_object(model or get_model(), messages, NextAction, system=system, cancel=cancel)
    except AdapterError as e:
        logger.warning(f"Task manager failed, no decision: {e}")
        return None
