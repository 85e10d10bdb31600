"""ChatCompletionsClient - streaming HTTP client for OpenAI-compatible endpoints."""

import asyncio
import json
from typing import AsyncIterator, Awaitable, Callable, Iterable, TypeVar

import aiohttp
from agent.exceptions import EndpointConnectionError, EndpointResponseError
from agent.log_utils import build_file_logger
from agent.messages import Message, StreamFrame
from tools.base_tool import ToolDefinition


T = TypeVar("T")

SSE_DATA_PREFIX = "data:"
SSE_DONE = "[DONE]"


class ChatCompletionsClient:
    """Direct async HTTP client for a /chat/completions API."""

    def __init__(
        self,
        base_url: str = "https://api.openai.com/v1",
        api_key: str = "",
        connect_timeout: float = 5.0,
        read_timeout: float = 120.0,
        max_retries: int = 3,
        log_dir: str | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.connect_timeout = connect_timeout
        self.read_timeout = read_timeout
        self.max_retries = max_retries
        self._logger = build_file_logger("chat_client", log_dir) if log_dir else None

    async def health_check(self) -> bool:
        """Check if the endpoint answers. GET /models"""
        try:
            async def _request() -> bool:
                async with aiohttp.ClientSession(timeout=self._timeout()) as session:
                    async with session.get(
                        f"{self.base_url}/models",
                        headers=self._headers(),
                    ) as resp:
                        return resp.status == 200

            return await self._with_retry("health check", _request)
        except EndpointConnectionError:
            return False

    async def list_models(self) -> list[dict]:
        """List available models. GET /models"""
        async def _request() -> list[dict]:
            async with aiohttp.ClientSession(timeout=self._timeout()) as session:
                async with session.get(
                    f"{self.base_url}/models",
                    headers=self._headers(),
                ) as resp:
                    if resp.status != 200:
                        body = await resp.text()
                        raise EndpointResponseError(
                            f"Failed to list models (HTTP {resp.status}): {body}",
                            status=resp.status,
                            body=body,
                        )
                    data = await resp.json()
                    return data.get("data", [])

        return await self._with_retry("list models", _request)

    async def get_missing_models(self, required_models: Iterable[str]) -> list[str]:
        """Return a list of required model ids that the endpoint does not serve."""
        models = await self.list_models()
        ids = [m.get("id", "") for m in models]
        return self.filter_missing_models(required_models, ids)

    @staticmethod
    def filter_missing_models(
        required_models: Iterable[str],
        available_models: Iterable[str],
    ) -> list[str]:
        """Filter required models against a list of available model ids."""
        available = {m for m in available_models if m}
        return [m for m in required_models if m and m not in available]

    def build_payload(
        self,
        model: str,
        messages: list[Message],
        tools: list[ToolDefinition] | None = None,
        temperature: float = 0.7,
        options: dict | None = None,
        json_mode: bool = False,
    ) -> dict:
        """Request body for a streamed chat completion."""
        payload = {
            "model": model,
            "messages": [m.to_dict() for m in messages],
            "stream": True,
            "temperature": temperature,
            **(options or {}),
        }
        if tools:
            payload["tools"] = [t.to_openai_format() for t in tools]
            payload["tool_choice"] = "auto"
        if json_mode:
            payload["response_format"] = {"type": "json_object"}
        return payload

    async def chat_stream(
        self,
        model: str,
        messages: list[Message],
        tools: list[ToolDefinition] | None = None,
        temperature: float = 0.7,
        options: dict | None = None,
        json_mode: bool = False,
    ) -> AsyncIterator[StreamFrame]:
        """
        Send a streamed chat completion request. POST /chat/completions
        Yields one StreamFrame per server-sent chunk, in arrival order.
        """
        payload = self.build_payload(model, messages, tools, temperature, options, json_mode)

        attempt = 0
        delay = 1.0
        while True:
            received_any = False
            try:
                async with aiohttp.ClientSession(timeout=self._timeout()) as session:
                    async with session.post(
                        f"{self.base_url}/chat/completions",
                        json=payload,
                        headers=self._headers(),
                    ) as resp:
                        if resp.status != 200:
                            body = await resp.text()
                            self._log("error", "Chat completion returned HTTP %d: %s", resp.status, body[:500])
                            raise EndpointResponseError(
                                f"Chat completion failed (HTTP {resp.status}): {body}",
                                status=resp.status,
                                body=body,
                            )

                        async for raw_line in resp.content:
                            frame, done = self.parse_sse_line(raw_line)
                            if done:
                                return
                            if frame is None:
                                continue
                            received_any = True
                            yield frame
                        return
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                attempt += 1
                if received_any or attempt >= self.max_retries:
                    self._log("error", "Chat stream failed after %d attempt(s): %s", attempt, e)
                    raise EndpointConnectionError(
                        self._connection_error_message("chat", e)
                    ) from e
                self._log("warning", "Chat request failed (%s), retrying in %.1fs", e, delay)
                await asyncio.sleep(delay)
                delay *= 2

    @staticmethod
    def parse_sse_line(raw_line: bytes | str) -> tuple[StreamFrame | None, bool]:
        """
        Parse one server-sent event line.
        Returns (frame, done); frame is None for lines that carry nothing.
        """
        line = raw_line.decode("utf-8", errors="replace") if isinstance(raw_line, bytes) else raw_line
        line = line.strip()
        if not line.startswith(SSE_DATA_PREFIX):
            return None, False

        data = line[len(SSE_DATA_PREFIX):].strip()
        if data == SSE_DONE:
            return None, True
        try:
            chunk = json.loads(data)
        except json.JSONDecodeError:
            return None, False
        if not isinstance(chunk, dict):
            return None, False
        return StreamFrame.from_chunk(chunk), False

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "text/event-stream"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def _timeout(self) -> aiohttp.ClientTimeout:
        """Build a client timeout configuration from settings."""
        return aiohttp.ClientTimeout(
            total=None,
            connect=self.connect_timeout,
            sock_connect=self.connect_timeout,
            sock_read=self.read_timeout,
        )

    async def _with_retry(self, operation: str, func: Callable[[], Awaitable[T]]) -> T:
        """Run an async operation with exponential backoff retries."""
        delay = 1.0
        last_error: Exception | None = None
        for attempt in range(1, self.max_retries + 1):
            try:
                return await func()
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                last_error = e
                if attempt >= self.max_retries:
                    break
                await asyncio.sleep(delay)
                delay *= 2

        raise EndpointConnectionError(self._connection_error_message(operation, last_error))

    def _log(self, level: str, msg: str, *args) -> None:
        if self._logger:
            getattr(self._logger, level)(msg, *args)

    def _connection_error_message(self, operation: str, error: Exception | None) -> str:
        """Create a user-friendly connection error message."""
        details = f"{error}" if error else "unknown error"
        return (
            f"Cannot connect to {self.base_url} during {operation} "
            f"(after {self.max_retries} attempt(s)): {details}"
        )
