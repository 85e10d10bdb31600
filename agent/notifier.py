"""Client notification sinks for progress, content and tool messages."""

import queue

from agent.messages import Message


class ClientNotifier:
    """
    Output sink for a conversation run. All methods are fire-and-forget;
    the loop never reads anything back. Override the ones you need.
    """

    def on_status(self, text: str) -> None:
        pass

    def on_content_chunk(self, text: str, finish_reason: str | None) -> None:
        pass

    def on_tool_call_message(self, message: Message) -> None:
        pass


class QueueNotifier(ClientNotifier):
    """Pushes every notification as a dict event onto a queue."""

    def __init__(self, event_queue: queue.Queue | None = None):
        self.queue: queue.Queue = event_queue if event_queue is not None else queue.Queue()

    def on_status(self, text: str) -> None:
        self.queue.put({"type": "status", "content": text})

    def on_content_chunk(self, text: str, finish_reason: str | None) -> None:
        self.queue.put({
            "type": "chunk",
            "content": text,
            "finish_reason": finish_reason,
        })

    def on_tool_call_message(self, message: Message) -> None:
        self.queue.put({"type": "tool_message", "message": message.to_dict()})

    def drain(self) -> list[dict]:
        """Return and remove all queued events."""
        events = []
        while True:
            try:
                events.append(self.queue.get_nowait())
            except queue.Empty:
                return events
