"""Tool registry: declared tools and their guarded executors."""
from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from loguru import logger
from pydantic import BaseModel, Field, ValidationError

from searchmate.config import Settings, settings as default_settings
from searchmate.errors import ToolNotFoundError
from searchmate.models.messages import ToolCall, ToolResultPart, ToolSpec
from searchmate.models.structured import SearchResults
from searchmate.services import logger as log_service
from searchmate.services.video_service import get_video_results
from searchmate.tools import search as search_tool


class VideoSearchParams(BaseModel):
    query: str = Field(description="The query to search videos for")


@dataclass
class ToolDefinition:
    name: str
    description: str
    params_model: type[BaseModel]
    # (validated params, route) -> result
    run: Callable[[Any, str | None], Awaitable[Any]]
    # Result reported in place of a failed execution
    degraded: Callable[[dict[str, Any], str], Any] | None = None
    # Extra data for the tool_result UI event, from the call arguments
    display: Callable[[dict[str, Any]], dict[str, Any]] | None = None

    def spec(self) -> ToolSpec:
        return ToolSpec(
            name=self.name,
            description=self.description,
            parameters=self.params_model.model_json_schema(),
        )


def _dump(result: Any) -> Any:
    if isinstance(result, BaseModel):
        return result.model_dump(mode="json")
    return result


async def _run_search(params: search_tool.SearchParams, route: str | None) -> SearchResults:
    return await search_tool.search(params, route)


def _degraded_search(args: dict[str, Any], message: str) -> dict[str, Any]:
    empty = SearchResults(query=str(args.get("query", ""))).model_dump(mode="json")
    return {**empty, "error": message}


def _search_display(args: dict[str, Any]) -> dict[str, Any]:
    return {"include_domains": search_tool.with_baseline_domain(list(args.get("include_domains") or []))}


async def _run_video_search(params: VideoSearchParams, route: str | None) -> dict[str, Any]:
    return {"query": params.query, "videos": await get_video_results(params.query)}


SEARCH_TOOL = ToolDefinition(
    name="search",
    description="Search the web for information",
    params_model=search_tool.SearchParams,
    run=_run_search,
    degraded=_degraded_search,
    display=_search_display,
)

VIDEO_SEARCH_TOOL = ToolDefinition(
    name="videoSearch",
    description="Search for videos related to the query",
    params_model=VideoSearchParams,
    run=_run_video_search,
)


class ToolRegistry:
    """Named tools with schemas; execution never raises past this boundary."""

    def __init__(self, tools: list[ToolDefinition] | None = None):
        self._tools: dict[str, ToolDefinition] = {}
        for tool in tools or []:
            self.register(tool)

    def register(self, tool: ToolDefinition) -> None:
        self._tools[tool.name] = tool

    def get(self, name: str) -> ToolDefinition:
        try:
            return self._tools[name]
        except KeyError:
            raise ToolNotFoundError(f"Unknown tool: {name}") from None

    @property
    def names(self) -> list[str]:
        return list(self._tools)

    def specs(self) -> list[ToolSpec]:
        return [tool.spec() for tool in self._tools.values()]

    def display_data(self, result: ToolResultPart) -> dict[str, Any]:
        tool = self._tools.get(result.tool_name)
        if tool is None or tool.display is None:
            return {}
        return tool.display(result.args)

    def _error(self, call: ToolCall, message: str, tool: ToolDefinition | None = None) -> ToolResultPart:
        result = tool.degraded(call.args, message) if tool and tool.degraded else {"error": message}
        return ToolResultPart(
            tool_call_id=call.id,
            tool_name=call.name,
            args=call.args,
            result=result,
            is_error=True,
        )

    async def execute(self, call: ToolCall, route: str | None = None) -> ToolResultPart:
        t0 = time.monotonic()
        tool: ToolDefinition | None = None
        try:
            tool = self.get(call.name)
            params = tool.params_model.model_validate(call.args)
            result = _dump(await tool.run(params, route))
        except ToolNotFoundError as e:
            log_service.log_tool_call(call.name, "error", error=str(e))
            return self._error(call, str(e))
        except ValidationError as e:
            log_service.log_tool_call(call.name, "invalid_args", error=str(e))
            return self._error(call, f"Invalid arguments for {call.name}: {e}", tool)
        except Exception as e:
            logger.exception(f"Tool {call.name} failed")
            log_service.log_tool_call(
                call.name, "error", duration_ms=int((time.monotonic() - t0) * 1000), error=str(e)
            )
            return self._error(call, f"An error occurred while running {call.name}: {e}", tool)

        duration_ms = int((time.monotonic() - t0) * 1000)
        if not result:
            log_service.log_tool_call(call.name, "empty", duration_ms=duration_ms, error="empty result")
            return self._error(call, f"{call.name} returned no result", tool)

        log_service.log_tool_call(call.name, "success", duration_ms=duration_ms)
        return ToolResultPart(
            tool_call_id=call.id,
            tool_name=call.name,
            args=call.args,
            result=result,
        )


def get_tool_registry(config: Settings | None = None) -> ToolRegistry:
    config = config or default_settings
    tools = [SEARCH_TOOL]
    if config.enable_custom_video_search:
        tools.append(VIDEO_SEARCH_TOOL)
    return ToolRegistry(tools)
