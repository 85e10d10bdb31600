"""Conversation messages, stream frames and tool call records."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

ROLE_SYSTEM = "system"
ROLE_USER = "user"
ROLE_ASSISTANT = "assistant"
ROLE_TOOL = "tool"

ROLES = (ROLE_SYSTEM, ROLE_USER, ROLE_ASSISTANT, ROLE_TOOL)


@dataclass
class ToolCallRequest:
    """A complete tool invocation requested by the model."""
    id: str
    name: str
    arguments_text: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": "function",
            "function": {"name": self.name, "arguments": self.arguments_text},
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ToolCallRequest":
        func = data.get("function") or {}
        return cls(
            id=data.get("id") or "",
            name=func.get("name") or "",
            arguments_text=func.get("arguments") or "",
        )


@dataclass
class ToolResult:
    """Outcome of one tool call, paired with its request by call id."""
    tool_call_id: str
    content: str


@dataclass
class Message:
    """One entry of the conversation transcript."""
    role: str
    content: str | None = None
    tool_calls: list[ToolCallRequest] | None = None
    tool_call_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the chat completions wire format."""
        data: dict[str, Any] = {"role": self.role, "content": self.content}
        if self.tool_calls:
            data["tool_calls"] = [tc.to_dict() for tc in self.tool_calls]
        if self.tool_call_id:
            data["tool_call_id"] = self.tool_call_id
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Message":
        tool_calls = data.get("tool_calls")
        return cls(
            role=data.get("role", ROLE_USER),
            content=data.get("content"),
            tool_calls=[ToolCallRequest.from_dict(tc) for tc in tool_calls] if tool_calls else None,
            tool_call_id=data.get("tool_call_id"),
        )

    @classmethod
    def system(cls, content: str) -> "Message":
        return cls(role=ROLE_SYSTEM, content=content)

    @classmethod
    def user(cls, content: str) -> "Message":
        return cls(role=ROLE_USER, content=content)

    @classmethod
    def assistant(cls, content: str | None, tool_calls: list[ToolCallRequest] | None = None) -> "Message":
        return cls(role=ROLE_ASSISTANT, content=content, tool_calls=tool_calls)

    @classmethod
    def tool(cls, result: ToolResult) -> "Message":
        return cls(role=ROLE_TOOL, content=result.content, tool_call_id=result.tool_call_id)


@dataclass
class ToolCallDelta:
    """One fragment of a streamed tool call. Missing fields are None."""
    index: int
    call_id: str | None = None
    function_name: str | None = None
    arguments_text: str | None = None

    def is_empty(self) -> bool:
        return not (self.call_id or self.function_name or self.arguments_text)


@dataclass
class StreamFrame:
    """One incremental unit of a streamed model turn."""
    content: str | None = None
    finish_reason: str | None = None
    tool_call_deltas: list[ToolCallDelta] = field(default_factory=list)

    @classmethod
    def from_chunk(cls, chunk: dict[str, Any]) -> "StreamFrame | None":
        """
        Build a frame from a parsed chat completions chunk.
        Returns None for chunks without choices (e.g. usage-only chunks).
        """
        choices = chunk.get("choices") or []
        if not isinstance(choices, list) or not choices:
            return None
        choice = choices[0] if isinstance(choices[0], dict) else {}
        delta = choice.get("delta")
        if not isinstance(delta, dict):
            delta = {}

        deltas: list[ToolCallDelta] = []
        raw_calls = delta.get("tool_calls")
        if not isinstance(raw_calls, list):
            raw_calls = []
        for position, raw in enumerate(raw_calls):
            if not isinstance(raw, dict):
                continue
            func = raw.get("function")
            if not isinstance(func, dict):
                func = {}
            index = raw.get("index")
            deltas.append(ToolCallDelta(
                index=index if isinstance(index, int) else position,
                call_id=_str_or_none(raw.get("id")),
                function_name=_str_or_none(func.get("name")),
                arguments_text=_str_or_none(func.get("arguments")),
            ))

        return cls(
            content=_str_or_none(delta.get("content")),
            finish_reason=_str_or_none(choice.get("finish_reason")),
            tool_call_deltas=deltas,
        )


def _str_or_none(value: Any) -> str | None:
    return value if isinstance(value, str) else None
