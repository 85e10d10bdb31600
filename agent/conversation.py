"""ConversationLoop - drives streamed model turns and tool round trips."""

from __future__ import annotations

import time
from enum import Enum

from agent.exceptions import ToolLoopExceededError
from agent.executor import ToolExecutor
from agent.log_utils import build_file_logger
from agent.messages import Message, ToolCallRequest
from agent.models import ChatCompletionsClient
from agent.notifier import ClientNotifier
from agent.stream import FrameKind, ToolCallAggregator, classify_frame
from agent.telemetry import Telemetry
from tools.tool_registry import ToolRegistry

TOOL_CALL_PLACEHOLDER = "Tool call request from the assistant"
STATUS_THINKING = "Thinking..."
STATUS_ANSWERING = "Putting together an answer..."


class LoopState(str, Enum):
    STREAMING = "streaming"
    TOOLS_PENDING = "tools_pending"
    EXECUTING_TOOLS = "executing_tools"
    DONE = "done"


class ConversationLoop:
    """
    Sends the growing history to the model, collects streamed content and
    tool call fragments, runs the requested tools and repeats until a turn
    comes back without tool calls.

    One instance serves one run at a time; build a new loop per run.
    """

    def __init__(
        self,
        client: ChatCompletionsClient,
        tool_registry: ToolRegistry,
        executor: ToolExecutor,
        model_name: str,
        temperature: float = 0.7,
        max_tool_rounds: int = 10,
        telemetry: Telemetry | None = None,
        log_dir: str = "data/logs",
        json_mode: bool = False,
        options: dict | None = None,
    ):
        self.client = client
        self.tool_registry = tool_registry
        self.executor = executor
        self.model_name = model_name
        self.temperature = temperature
        self.max_tool_rounds = max_tool_rounds
        self.telemetry = telemetry
        self.json_mode = json_mode
        self.options = options or {}
        self.state = LoopState.STREAMING
        self.history: list[Message] = []
        self.rounds = 0
        self._logger = build_file_logger("conversation", log_dir)

    async def run(
        self,
        messages: list[Message],
        notifier: ClientNotifier | None = None,
        tools: ToolRegistry | None = None,
    ) -> str:
        """
        Run the loop to completion and return the text of the final turn.
        The caller's list is left untouched; see `history` for the transcript.
        """
        notifier = notifier or ClientNotifier()
        registry = tools if tools is not None else self.tool_registry
        definitions = registry.list_definitions()

        self.history = list(messages)
        self.rounds = 0
        self.state = LoopState.STREAMING
        notifier.on_status(STATUS_THINKING)

        pending: list[ToolCallRequest] = []
        answer = ""

        while self.state != LoopState.DONE:
            if self.state == LoopState.STREAMING:
                round_start = time.monotonic()
                content, pending = await self._stream_turn(definitions, notifier)
                decision = "tool_calls" if pending else "final"
                self._record_round(decision, len(pending), round_start)
                if pending:
                    self.state = LoopState.TOOLS_PENDING
                else:
                    answer = content
                    self.state = LoopState.DONE

            elif self.state == LoopState.TOOLS_PENDING:
                if self.rounds >= self.max_tool_rounds:
                    self._logger.error(
                        "Aborting: model requested tools again after %d round trip(s)",
                        self.rounds,
                    )
                    self._finalize("aborted")
                    raise ToolLoopExceededError(self.max_tool_rounds)
                self.rounds += 1

                request_message = Message.assistant(TOOL_CALL_PLACEHOLDER, tool_calls=pending)
                self.history.append(request_message)
                notifier.on_tool_call_message(request_message)
                notifier.on_status(STATUS_ANSWERING)
                self.state = LoopState.EXECUTING_TOOLS

            elif self.state == LoopState.EXECUTING_TOOLS:
                self._logger.info(
                    "Round %d: running %s",
                    self.rounds,
                    ", ".join(request.name for request in pending),
                )
                results = await self.executor.execute(pending, notifier, registry)
                for result in results:
                    tool_message = Message.tool(result)
                    self.history.append(tool_message)
                    notifier.on_tool_call_message(tool_message)
                pending = []
                self.state = LoopState.STREAMING

        self.history.append(Message.assistant(answer))
        self._finalize(LoopState.DONE.value)
        return answer

    async def _stream_turn(
        self,
        definitions: list,
        notifier: ClientNotifier,
    ) -> tuple[str, list[ToolCallRequest]]:
        """Consume one streamed turn; return its text and finalized tool calls."""
        aggregator = ToolCallAggregator()
        buffer: list[str] = []
        frame_count = 0
        start = time.monotonic()

        try:
            async for frame in self.client.chat_stream(
                model=self.model_name,
                messages=self.history,
                tools=definitions or None,
                temperature=self.temperature,
                options=self.options,
                json_mode=self.json_mode,
            ):
                frame_count += 1
                if classify_frame(frame) == FrameKind.TOOL_CALL:
                    aggregator.merge(frame)
                    continue
                text = frame.content or ""
                buffer.append(text)
                notifier.on_content_chunk(text, frame.finish_reason)
        except Exception as e:
            self._logger.error("Model stream failed after %d frame(s): %s", frame_count, e)
            self._record_llm_call(frame_count, start, error=str(e))
            self._finalize("failed")
            raise

        self._record_llm_call(frame_count, start)
        return "".join(buffer), aggregator.finalize()

    def _record_llm_call(self, frame_count: int, start: float, error: str | None = None) -> None:
        if self.telemetry:
            self.telemetry.record_llm_call(
                model=self.model_name,
                frame_count=frame_count,
                latency_ms=(time.monotonic() - start) * 1000,
                error=error,
            )

    def _record_round(self, decision: str, tool_call_count: int, start: float) -> None:
        if self.telemetry:
            self.telemetry.record_round(
                round_number=self.rounds + 1,
                decision=decision,
                tool_call_count=tool_call_count,
                duration_ms=(time.monotonic() - start) * 1000,
            )

    def _finalize(self, final_state: str) -> None:
        if self.telemetry:
            self.telemetry.finalize(final_state)
