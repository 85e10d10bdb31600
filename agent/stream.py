"""Stream frame classification and tool call fragment aggregation."""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from enum import Enum

from agent.messages import StreamFrame, ToolCallDelta, ToolCallRequest


class FrameKind(str, Enum):
    CONTENT = "content"
    TOOL_CALL = "tool_call"


def classify_frame(frame: StreamFrame) -> FrameKind:
    """
    A frame is a tool-call frame iff it carries at least one non-empty
    tool call delta. Everything else is content, including frames that
    only carry a finish reason.
    """
    if any(not delta.is_empty() for delta in frame.tool_call_deltas):
        return FrameKind.TOOL_CALL
    return FrameKind.CONTENT


@dataclass
class ToolCallAggregate:
    """In-progress accumulation of one tool call, keyed by stream index."""
    index: int
    call_id: str = ""
    function_name: str = ""
    arguments_text: str = ""

    def merge(self, delta: ToolCallDelta) -> None:
        # call id is set once, name is last non-empty wins, arguments append
        if delta.call_id and not self.call_id:
            self.call_id = delta.call_id
        if delta.function_name:
            self.function_name = delta.function_name
        if delta.arguments_text:
            self.arguments_text += delta.arguments_text

    def finalize(self) -> ToolCallRequest:
        return ToolCallRequest(
            id=self.call_id or f"call_{uuid.uuid4().hex[:24]}",
            name=self.function_name,
            arguments_text=self.arguments_text,
        )


def merge_frame(
    aggregates: dict[int, ToolCallAggregate],
    frame: StreamFrame,
) -> dict[int, ToolCallAggregate]:
    """Fold the tool call deltas of one frame into the aggregate map."""
    for delta in frame.tool_call_deltas:
        if delta.is_empty():
            continue
        aggregate = aggregates.get(delta.index)
        if aggregate is None:
            aggregate = ToolCallAggregate(index=delta.index)
            aggregates[delta.index] = aggregate
        aggregate.merge(delta)
    return aggregates


class ToolCallAggregator:
    """Aggregate state for a single streamed turn."""

    def __init__(self):
        self._aggregates: dict[int, ToolCallAggregate] = {}

    def merge(self, frame: StreamFrame) -> "ToolCallAggregator":
        merge_frame(self._aggregates, frame)
        return self

    @property
    def has_calls(self) -> bool:
        return bool(self._aggregates)

    def aggregates(self) -> list[ToolCallAggregate]:
        return [self._aggregates[idx] for idx in sorted(self._aggregates)]

    def finalize(self) -> list[ToolCallRequest]:
        """Return complete tool call requests ordered by stream index."""
        return [aggregate.finalize() for aggregate in self.aggregates()]
