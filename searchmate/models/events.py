from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class EventType(str, Enum):
    TURN_STARTED = "turn_started"
    INQUIRY_PARTIAL = "inquiry_partial"
    INQUIRY = "inquiry"
    TOOL_RESULT = "tool_result"
    ANSWER_DELTA = "answer_delta"
    ANSWER_DETAIL_DELTA = "answer_detail_delta"
    ANSWER_COMPLETE = "answer_complete"
    VIDEOS = "videos"
    RELATED_PARTIAL = "related_partial"
    RELATED = "related"
    FOLLOWUP = "followup"
    ERROR = "error"
    TURN_COMPLETE = "turn_complete"


@dataclass
class SSEEvent:
    event: EventType
    data: dict[str, Any] = field(default_factory=dict)

    def format(self) -> str:
        return f"event: {self.event.value}\ndata: {json.dumps(self.data, default=str)}\n\n"
