from __future__ import annotations

import logging

from loguru import logger

from searchmate.config import settings
from searchmate.services import logger as log_service


def _capture():
    records: list = []
    sink_id = logger.add(lambda message: records.append(message.record), level="DEBUG")
    return records, sink_id


def test_failed_tool_calls_log_at_warning():
    records, sink_id = _capture()
    try:
        log_service.log_tool_call("search", "error", duration_ms=5, error="tavily down")
        log_service.log_tool_call("search", "success", duration_ms=5)
    finally:
        logger.remove(sink_id)

    assert [r["level"].name for r in records] == ["WARNING", "INFO"]
    assert records[0]["message"].startswith("TOOL_CALL_FAILED:")
    assert "'tool': 'search'" in records[1]["message"]


def test_turn_steps_carry_the_chat_id():
    records, sink_id = _capture()
    try:
        log_service.log_turn_step("chat1", "persist", "completed", {"steps": 2})
    finally:
        logger.remove(sink_id)

    assert "'chat_id': 'chat1'" in records[0]["message"]
    assert "'data': {'steps': 2}" in records[0]["message"]


def test_noisy_library_loggers_are_quieted():
    level = logging.getLevelName(settings.noisy_log_level.upper())
    for name in log_service.NOISY_LOGGERS:
        assert logging.getLogger(name).level == level
