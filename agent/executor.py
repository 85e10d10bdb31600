"""Concurrent tool execution with per-call failure isolation."""

from __future__ import annotations

import asyncio
import html
import json
import time
from typing import Any

from jsonschema import Draft7Validator
from jsonschema.exceptions import SchemaError

from agent.config import ToolExecutionConfig
from agent.log_utils import build_file_logger
from agent.messages import ToolCallRequest, ToolResult
from agent.notifier import ClientNotifier
from agent.telemetry import Telemetry
from tools.tool_registry import ToolRegistry

MAX_TOOL_RESULT_LENGTH = 20000
EMPTY_RESULT_SENTINEL = "The function completed successfully."
TOOL_FAILED_TEMPLATE = (
    "The tool call failed with error message '{error}'. "
    "Don't retry, just inform the user."
)
TOOL_UNAVAILABLE_TEMPLATE = "Tool '{name}' is not available."


class ToolCallFailure(Exception):
    """A per-call problem that becomes an error result instead of propagating."""
    pass


class ToolExecutor:
    """
    Runs every tool call of a turn concurrently and returns exactly one
    ToolResult per request. Unknown tools, bad arguments, timeouts and tool
    exceptions all turn into result content for the model; nothing raises.
    """

    def __init__(
        self,
        registry: ToolRegistry,
        config: ToolExecutionConfig | None = None,
        log_dir: str = "data/logs",
        telemetry: Telemetry | None = None,
    ):
        self.registry = registry
        self.config = config or ToolExecutionConfig()
        self.telemetry = telemetry
        self._logger = build_file_logger("tool_executor", log_dir)

    @property
    def max_result_length(self) -> int:
        return self.config.max_result_length or MAX_TOOL_RESULT_LENGTH

    async def execute(
        self,
        requests: list[ToolCallRequest],
        notifier: ClientNotifier | None = None,
        registry: ToolRegistry | None = None,
    ) -> list[ToolResult]:
        """Fan out all requests, then wait for every one of them to settle."""
        notifier = notifier or ClientNotifier()
        registry = registry if registry is not None else self.registry
        tasks = [
            asyncio.ensure_future(self._execute_one(request, notifier, registry))
            for request in requests
        ]
        self._logger.info("Started %d tool call(s), waiting for the results", len(tasks))
        return list(await asyncio.gather(*tasks))

    async def _execute_one(
        self,
        request: ToolCallRequest,
        notifier: ClientNotifier,
        registry: ToolRegistry,
    ) -> ToolResult:
        start = time.monotonic()
        args: dict[str, Any] = {}
        truncated = False
        error: str | None = None

        tool = registry.lookup(request.name)
        if tool is None:
            self._logger.warning("Model requested unknown tool '%s'", request.name)
            content = TOOL_UNAVAILABLE_TEMPLATE.format(name=request.name)
            error = "unavailable"
        else:
            try:
                args = self._parse_arguments(request)
                self._validate_arguments(tool.parameters, args)
                result = await asyncio.wait_for(
                    tool.execute(args, notifier),
                    timeout=self._timeout_for(request.name),
                )
                content, truncated = self._normalize_result(request.name, result)
            except asyncio.TimeoutError:
                error = f"timed out after {self._timeout_for(request.name):g}s"
                content = self._failure(request, args, error)
            except Exception as e:
                error = str(e) or type(e).__name__
                content = self._failure(request, args, error)

        duration_ms = (time.monotonic() - start) * 1000
        if self.telemetry:
            self.telemetry.record_tool_call(
                tool_name=request.name,
                args=args,
                duration_ms=duration_ms,
                result_summary=content[:200],
                truncated=truncated,
                error=error,
            )
        return ToolResult(tool_call_id=request.id, content=content)

    def _parse_arguments(self, request: ToolCallRequest) -> dict[str, Any]:
        """Decode HTML entities, then parse the argument text as a JSON object."""
        text = html.unescape(request.arguments_text or "").strip()
        if not text:
            return {}
        try:
            args = json.loads(text)
        except json.JSONDecodeError as e:
            raise ToolCallFailure(f"Invalid JSON arguments for '{request.name}': {e}")
        if not isinstance(args, dict):
            raise ToolCallFailure(f"Arguments for '{request.name}' must be a JSON object")
        return args

    def _validate_arguments(self, schema: dict[str, Any], args: dict[str, Any]) -> None:
        if not schema:
            return
        try:
            validator = Draft7Validator(schema)
            errors = list(validator.iter_errors(args))
        except SchemaError as e:
            raise ToolCallFailure(f"Invalid argument schema: {e.message}")
        if errors:
            messages = []
            for err in errors[:5]:
                path = ".".join(str(p) for p in err.absolute_path) if err.absolute_path else "root"
                messages.append(f"{path}: {err.message}")
            raise ToolCallFailure(f"Argument validation failed: {'; '.join(messages)}")

    def _normalize_result(self, tool_name: str, result: Any) -> tuple[str, bool]:
        if result is None or result == "" or (isinstance(result, (list, dict)) and not result):
            return EMPTY_RESULT_SENTINEL, False
        if isinstance(result, str):
            text = result
        else:
            text = json.dumps(result, default=str)

        limit = self.max_result_length
        if len(text) > limit:
            self._logger.warning(
                "Truncating response from %s as it exceeds the max length of %d (was %d)",
                tool_name,
                limit,
                len(text),
            )
            return text[:limit], True
        return text, False

    def _timeout_for(self, tool_name: str) -> float:
        return self.config.timeouts.get(tool_name, self.config.default_timeout)

    def _failure(self, request: ToolCallRequest, args: dict[str, Any], error: str) -> str:
        self._logger.error(
            "Error calling tool %s with arguments %s: %s",
            request.name,
            json.dumps(args, default=str) if args else request.arguments_text,
            error,
        )
        return TOOL_FAILED_TEMPLATE.format(error=error)
