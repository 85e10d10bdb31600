"""Scripted stand-ins for the model endpoint and notifier."""

from agent.messages import Message, StreamFrame, ToolCallDelta
from agent.notifier import ClientNotifier


def content_frame(text: str | None, finish_reason: str | None = None) -> StreamFrame:
    return StreamFrame(content=text, finish_reason=finish_reason)


def tool_frame(
    index: int,
    call_id: str | None = None,
    name: str | None = None,
    arguments: str | None = None,
) -> StreamFrame:
    return StreamFrame(tool_call_deltas=[
        ToolCallDelta(index=index, call_id=call_id, function_name=name, arguments_text=arguments)
    ])


def tool_turn(call_id: str, name: str, arguments: str) -> list[StreamFrame]:
    """A complete tool-call turn, arguments split in two fragments."""
    middle = len(arguments) // 2
    return [
        tool_frame(0, call_id=call_id, name=name, arguments=arguments[:middle]),
        tool_frame(0, arguments=arguments[middle:]),
        content_frame(None, "tool_calls"),
    ]


def text_turn(*chunks: str) -> list[StreamFrame]:
    return [content_frame(chunk) for chunk in chunks] + [content_frame(None, "stop")]


class ScriptedClient:
    """
    Replays one scripted turn per chat_stream() call. A turn is a list of
    frames; an exception instance in the list is raised at that point.
    """

    def __init__(self, turns):
        self.turns = list(turns)
        self.requests: list[dict] = []
        self.base_url = "http://fake"

    async def chat_stream(
        self,
        model: str,
        messages: list[Message],
        tools=None,
        temperature: float = 0.7,
        options: dict | None = None,
        json_mode: bool = False,
    ):
        self.requests.append({
            "model": model,
            "messages": [m.to_dict() for m in messages],
            "tools": [t.name for t in tools] if tools else [],
        })
        if not self.turns:
            raise AssertionError("model called more often than scripted")
        for item in self.turns.pop(0):
            if isinstance(item, Exception):
                raise item
            yield item

    async def health_check(self) -> bool:
        return True

    async def get_missing_models(self, required_models) -> list[str]:
        return []


class RecordingNotifier(ClientNotifier):
    def __init__(self):
        self.statuses: list[str] = []
        self.chunks: list[tuple[str, str | None]] = []
        self.tool_messages: list[Message] = []

    def on_status(self, text: str) -> None:
        self.statuses.append(text)

    def on_content_chunk(self, text: str, finish_reason: str | None) -> None:
        self.chunks.append((text, finish_reason))

    def on_tool_call_message(self, message: Message) -> None:
        self.tool_messages.append(message)
