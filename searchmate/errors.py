from __future__ import annotations


class SearchMateError(Exception):
    """Base class for errors raised by this package."""


class AdapterError(SearchMateError):
    """A model backend call failed (network, protocol or remote run failure)."""

    def __init__(self, message: str, *, provider: str = "unknown"):
        super().__init__(message)
        self.provider = provider


class RunFailedError(AdapterError):
    def __init__(self, message: str, *, provider: str = "unknown", last_error: str | None = None):
        super().__init__(message, provider=provider)
        self.last_error = last_error


class RunTimeoutError(AdapterError):
    pass


class AdapterCancelledError(AdapterError):
    pass


class ModelConfigurationError(SearchMateError):
    pass


class ConversationClosedError(SearchMateError):
    pass


class ToolNotFoundError(SearchMateError):
    pass


class StructuredOutputError(AdapterError):
    """The model did not produce an object matching the requested schema."""
