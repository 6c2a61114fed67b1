"""Loguru sinks plus the structured log lines emitted around turns, model calls and tools."""

import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from loguru import logger

from searchmate.config import settings

LOG_DIR = Path(settings.log_dir)
LOG_DIR.mkdir(parents=True, exist_ok=True)

# Stdlib loggers of the server and the HTTP clients behind models, search and storage
NOISY_LOGGERS = (
    "uvicorn.error",
    "uvicorn.access",
    "httpx",
    "httpcore",
    "openai._base_client",
    "postgrest",
)

logger.remove()

logger.add(
    sys.stderr,
    format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>",
    level=settings.app_log_level.upper(),
    colorize=True,
)

logger.add(
    LOG_DIR / "searchmate_{time:YYYY-MM-DD}.log",
    format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}",
    level="DEBUG",
    rotation="00:00",
    retention="7 days",
    compression="zip",
)

for _name in NOISY_LOGGERS:
    logging.getLogger(_name).setLevel(settings.noisy_log_level.upper())


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def log_llm_call(
    model: str,
    caller: str,
    input_tokens: Optional[int] = 0,
    output_tokens: Optional[int] = 0,
    duration_ms: int = 0,
    status: str = "success",
    error: Optional[str] = None,
) -> None:
    """Log one adapter call. The assistant backend reports no token counts (None)."""
    call_data = {
        "timestamp": _now(),
        "model": model,
        "caller": caller,
        "input_tokens": input_tokens,
        "output_tokens": output_tokens,
        "duration_ms": duration_ms,
        "status": status,
        "error": error,
    }
    if error:
        logger.error(f"LLM_CALL_FAILED: {call_data}")
    else:
        logger.info(f"LLM_CALL: {call_data}")


def log_turn_step(
    chat_id: str,
    step: str,
    status: str,
    data: Optional[dict[str, Any]] = None,
) -> None:
    """Log the outcome of one agent step (task manager, researcher, persist...) in a turn."""
    step_data = {
        "timestamp": _now(),
        "chat_id": chat_id,
        "step": step,
        "status": status,
        "data": data,
    }
    logger.info(f"TURN_STEP: {step_data}")


def log_tool_call(
    tool: str,
    status: str,
    duration_ms: int = 0,
    error: Optional[str] = None,
) -> None:
    tool_data = {
        "timestamp": _now(),
        "tool": tool,
        "status": status,
        "duration_ms": duration_ms,
        "error": error,
    }
    if error:
        logger.warning(f"TOOL_CALL_FAILED: {tool_data}")
    else:
        logger.info(f"TOOL_CALL: {tool_data}")


def log_event(
    event_type: str,
    message: str,
    **kwargs,
) -> None:
    event_data = {
        "timestamp": _now(),
        "event_type": event_type,
        "message": message,
        **kwargs,
    }
    logger.info(f"EVENT: {event_data}")
