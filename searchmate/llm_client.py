"""Model selector: picks the language-model backend from configuration."""
from __future__ import annotations

import os
from pathlib import Path

from loguru import logger

from searchmate.adapters.assistant import AssistantLanguageModel
from searchmate.adapters.base import LanguageModel
from searchmate.adapters.chat import ChatLanguageModel
from searchmate.config import Settings, settings
from searchmate.errors import ModelConfigurationError


def _drop_unusable_keylogfile() -> None:
    """Unset SSLKEYLOGFILE when its directory is missing or the file is not writable.

    httpx fails while building its SSL context otherwise.
    """
    keylog_path = os.getenv("SSLKEYLOGFILE", "").strip()
    if not keylog_path:
        return
    path = Path(keylog_path)
    if not path.parent.exists() or (path.exists() and not os.access(path, os.W_OK)):
        os.environ.pop("SSLKEYLOGFILE", None)


def _openai_client(api_key: str, base_url: str | None = None):
    from openai import AsyncOpenAI

    _drop_unusable_keylogfile()
    return AsyncOpenAI(api_key=api_key, base_url=base_url or None)


def _ollama_base_url() -> str:
    base = settings.ollama_base_url.rstrip("/")
    return base if base.endswith("/v1") else f"{base}/v1"


def _build_model(use_sub_model: bool) -> LanguageModel:
    if settings.ollama_configured:
        model_id = settings.ollama_model
        if use_sub_model and settings.ollama_sub_model:
            model_id = settings.ollama_sub_model
        # Ollama ignores the key but the SDK requires one
        client = _openai_client("ollama", _ollama_base_url())
        return ChatLanguageModel(client, model_id, provider="ollama")

    if settings.google_generative_ai_api_key:
        client = _openai_client(settings.google_generative_ai_api_key, settings.google_api_base)
        return ChatLanguageModel(client, settings.google_model, provider="google")

    if settings.anthropic_api_key:
        client = _openai_client(settings.anthropic_api_key, settings.anthropic_api_base)
        return ChatLanguageModel(client, settings.anthropic_model, provider="anthropic")

    if settings.openrouter_api_key and settings.openrouter_model:
        client = _openai_client(settings.openrouter_api_key, settings.openrouter_base_url)
        return ChatLanguageModel(client, settings.openrouter_model, provider="openrouter")

    if settings.openai_api_key and settings.openai_assistant_id:
        client = _openai_client(settings.openai_api_key, settings.openai_api_base)
        return AssistantLanguageModel(
            client,
            settings.openai_assistant_id,
            instructions=settings.assistant_instructions,
            poll_interval=settings.assistant_poll_interval,
            run_timeout=settings.assistant_run_timeout,
            thread_scope=settings.assistant_thread_scope,
            chunk_delay=settings.stream_chunk_delay,
            max_threads=settings.assistant_max_threads,
        )

    if settings.openai_api_key:
        client = _openai_client(settings.openai_api_key, settings.openai_api_base)
        return ChatLanguageModel(client, settings.openai_api_model, provider="openai")

    raise ModelConfigurationError(
        "No language model configured: set OLLAMA_BASE_URL/OLLAMA_MODEL or a provider API key"
    )


# Singletons, keyed by sub-model flag
_models: dict[bool, LanguageModel] = {}
_writer: LanguageModel | None = None


def get_model(use_sub_model: bool = False) -> LanguageModel:
    """Get or create the active language model."""
    key = bool(use_sub_model and settings.ollama_configured and settings.ollama_sub_model)
    if key not in _models:
        _models[key] = _build_model(key)
        logger.info(f"Selected language model: {_models[key]!r}")
    return _models[key]


def get_writer_model() -> LanguageModel:
    """Model that writes the final answer in tool-forced mode."""
    global _writer
    if not settings.use_specific_api_for_writer:
        return get_model()
    if _writer is None:
        if not settings.specific_api_model:
            raise ModelConfigurationError("SPECIFIC_API_MODEL is required when USE_SPECIFIC_API_FOR_WRITER is on")
        client = _openai_client(settings.specific_api_key or "none", settings.specific_api_base)
        _writer = ChatLanguageModel(client, settings.specific_api_model, provider="writer")
    return _writer


def is_ollama_backend(config: Settings | None = None) -> bool:
    return (config or settings).ollama_configured


def is_assistant_backend(config: Settings | None = None) -> bool:
    config = config or settings
    if config.ollama_configured:
        return False
    if config.google_generative_ai_api_key or config.anthropic_api_key:
        return False
    if config.openrouter_api_key and config.openrouter_model:
        return False
    return bool(config.openai_api_key and config.openai_assistant_id)


def reset_models() -> None:
    """Drop cached adapters so the next call re-reads settings."""
    global _writer
    _models.clear()
    _writer = None
