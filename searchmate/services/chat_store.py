from __future__ import annotations

import asyncio
from typing import Any, Protocol

from loguru import logger

from searchmate.config import settings
from searchmate.models.conversation import ChatRecord


class ChatStore(Protocol):
    async def save_chat(self, chat: ChatRecord) -> None: ...
    async def get_chat(self, chat_id: str) -> ChatRecord | None: ...


class MemoryChatStore:
    """Process-local store; records are replaced on every save."""

    def __init__(self) -> None:
        self._chats: dict[str, ChatRecord] = {}

    async def save_chat(self, chat: ChatRecord) -> None:
        self._chats[chat.id] = chat

    async def get_chat(self, chat_id: str) -> ChatRecord | None:
        return self._chats.get(chat_id)


class SupabaseChatStore:
    """Chats upserted into a Supabase table, one row per chat id."""

    def __init__(self, client: Any = None, table: str = "chats"):
        self._client = client
        self.table = table

    def client(self) -> Any:
        if self._client is None:
            from supabase import create_client

            self._client = create_client(settings.supabase_url, settings.supabase_anon_key)
        return self._client

    async def _execute(self, query: Any) -> Any:
        """Run blocking Supabase query execution in a worker thread."""
        return await asyncio.to_thread(query.execute)

    async def save_chat(self, chat: ChatRecord) -> None:
        payload = chat.to_json()
        await self._execute(self.client().table(self.table).upsert({"id": chat.id, "payload": payload}))
        logger.debug(f"Saved chat {chat.id} ({len(chat.messages)} messages)")

    async def get_chat(self, chat_id: str) -> ChatRecord | None:
        result = await self._execute(self.client().table(self.table).select("*").eq("id", chat_id))
        if not result.data:
            return None
        return ChatRecord.model_validate(result.data[0]["payload"])


_store: ChatStore | None = None


def get_chat_store() -> ChatStore:
    global _store
    if _store is None:
        backend = settings.chat_store.lower().strip()
        if backend == "memory":
            _store = MemoryChatStore()
        elif backend == "supabase":
            _store = SupabaseChatStore()
        else:
            raise ValueError(f"Unsupported CHAT_STORE: {settings.chat_store}")
    return _store
