"""Conversation log: an append-only sequence of turns."""
from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Literal
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from searchmate.errors import ConversationClosedError
from searchmate.models.messages import (
    AssistantMessage,
    Message,
    ToolResultPart,
    UserMessage,
)

TurnRole = Literal["user", "assistant", "tool"]
TurnType = Literal[
    "input",
    "input_related",
    "inquiry",
    "skip",
    "answer",
    "tool",
    "related",
    "followup",
    "end",
]

# Turn types left out of the model message window for later rounds.
WINDOW_EXCLUDED_TYPES = {"tool", "related", "followup", "end"}


def generate_id() -> str:
    return uuid4().hex[:16]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Turn(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=generate_id)
    role: TurnRole
    content: str
    type: TurnType | None = None
    name: str | None = None
    group_id: str | None = None
    is_error: bool = False
    created_at: datetime = Field(default_factory=_utc_now)


class Conversation(BaseModel):
    chat_id: str = Field(default_factory=generate_id)
    turns: list[Turn] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_utc_now)

    @property
    def closed(self) -> bool:
        return bool(self.turns) and self.turns[-1].type == "end"

    def append(self, turn: Turn) -> Turn:
        if self.closed:
            raise ConversationClosedError(f"Conversation {self.chat_id} has ended")
        self.turns.append(turn)
        return turn

    def has_answer(self) -> bool:
        return any(t.type == "answer" for t in self.turns)

    def window(self, max_messages: int) -> list[Message]:
        """Recent turns as model messages, trimmed to the last ``max_messages``."""
        messages: list[Message] = []
        for turn in self.turns:
            if turn.role == "tool" or turn.type in WINDOW_EXCLUDED_TYPES:
                continue
            if turn.role == "user":
                messages.append(UserMessage(content=turn.content, id=turn.id))
            else:
                messages.append(AssistantMessage(content=turn.content, id=turn.id))
        if max_messages <= 0:
            return []
        return messages[-max_messages:]


def tool_turn(result: ToolResultPart, group_id: str | None = None) -> Turn:
    return Turn(
        role="tool",
        content=json.dumps(result.result, ensure_ascii=False, default=str),
        type="tool",
        name=result.tool_name,
        group_id=group_id,
        is_error=result.is_error,
    )


def user_query(turns: list[Turn]) -> str:
    """Concatenate the text a user typed across input turns."""
    parts: list[str] = []
    for turn in turns:
        if turn.role != "user":
            continue
        try:
            payload = json.loads(turn.content)
        except json.JSONDecodeError:
            parts.append(turn.content)
            continue
        if isinstance(payload, dict):
            value = payload.get("input") or payload.get("related_query") or ""
            if value:
                parts.append(str(value))
    return " ".join(parts)


class ChatRecord(BaseModel):
    """A finalized conversation as handed to the chat store."""

    id: str
    createdAt: datetime
    userId: str
    path: str
    title: str
    messages: list[Turn]

    def to_json(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


def build_chat_record(conversation: Conversation, user_id: str = "anonymous") -> ChatRecord:
    """Snapshot a conversation for persistence, terminated by an ``end`` turn."""
    title = "Untitled"
    if conversation.turns:
        try:
            first = json.loads(conversation.turns[0].content)
        except json.JSONDecodeError:
            first = None
        if isinstance(first, dict) and first.get("input"):
            title = str(first["input"])[:100]
    messages = [*conversation.turns]
    if not conversation.closed:
        messages.append(Turn(role="assistant", content="end", type="end"))
    return ChatRecord(
        id=conversation.chat_id,
        createdAt=conversation.created_at,
        userId=user_id,
        path=f"/search/{conversation.chat_id}",
        title=title,
        messages=messages,
    )


def conversation_from_record(record: ChatRecord) -> Conversation:
    """Reopen a saved chat; the trailing ``end`` turn is dropped so it can grow again."""
    return Conversation(
        chat_id=record.id,
        turns=[t for t in record.messages if t.type != "end"],
        created_at=record.createdAt,
    )
