from __future__ import annotations

from collections import OrderedDict

from loguru import logger

from searchmate.agents.orchestrator import ConversationOrchestrator
from searchmate.config import settings
from searchmate.models.conversation import Conversation, conversation_from_record
from searchmate.services.chat_store import get_chat_store

# chat_id -> orchestrator, least recently used first
_conversations: OrderedDict[str, ConversationOrchestrator] = OrderedDict()


async def get_orchestrator(chat_id: str | None = None) -> ConversationOrchestrator:
    """Return the live orchestrator for ``chat_id``.

    An unknown id is reopened from the chat store when a saved record
    exists, so an evicted or restarted conversation keeps its history.
    """
    if chat_id and chat_id in _conversations:
        _conversations.move_to_end(chat_id)
        return _conversations[chat_id]

    conversation = None
    if chat_id:
        record = await get_chat_store().get_chat(chat_id)
        if record is not None:
            conversation = conversation_from_record(record)
            logger.debug(f"Reopened saved chat {chat_id} with {len(conversation.turns)} turns")
        else:
            conversation = Conversation(chat_id=chat_id)

    orchestrator = ConversationOrchestrator(conversation)
    _conversations[orchestrator.chat_id] = orchestrator
    while len(_conversations) > max(settings.max_live_conversations, 1):
        evicted, _ = _conversations.popitem(last=False)
        logger.debug(f"Evicted live conversation {evicted}")
    return orchestrator


def live_conversations() -> list[str]:
    return list(_conversations)


def clear_conversations() -> None:
    _conversations.clear()
