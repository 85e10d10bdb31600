import json
import logging
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from agent.config import TelemetryConfig, ToolExecutionConfig
from agent.conversation import TOOL_CALL_PLACEHOLDER, ConversationLoop, LoopState
from agent.exceptions import EndpointConnectionError, ToolLoopExceededError
from agent.executor import ToolExecutor
from agent.messages import Message, StreamFrame
from agent.telemetry import Telemetry
from tools.base_tool import Tool
from tools.tool_registry import ToolRegistry

from fakes import RecordingNotifier, ScriptedClient, content_frame, text_turn, tool_frame, tool_turn


class FakeWeatherTool(Tool):
    name = "get_weather"
    description = "Get the current weather & forecast for a location"
    parameters = {
        "type": "object",
        "properties": {"location": {"type": "string"}},
        "required": ["location"],
    }

    async def execute(self, args, notifier):
        notifier.on_status("Fetching weather data...")
        return {"location": args["location"], "temp_c": 12}


class TimeTool(Tool):
    name = "get_time"
    description = "Current time."

    async def execute(self, args, notifier):
        return "12:00"


class TestConversationLoop(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        tmpdir = tempfile.TemporaryDirectory()
        self.addCleanup(tmpdir.cleanup)
        self.log_dir = str(Path(tmpdir.name) / "logs")
        self.registry = ToolRegistry([FakeWeatherTool(), TimeTool()])
        self.messages = [
            Message.system("You are X"),
            Message.user("What's 2+2 and the weather in Oslo?"),
        ]

    def _make_loop(self, client, max_tool_rounds=10, executor=None, telemetry=None) -> ConversationLoop:
        executor = executor or ToolExecutor(
            self.registry,
            config=ToolExecutionConfig(default_timeout=1.0),
            log_dir=self.log_dir,
        )
        return ConversationLoop(
            client=client,
            tool_registry=self.registry,
            executor=executor,
            model_name="test-model",
            temperature=0.0,
            max_tool_rounds=max_tool_rounds,
            telemetry=telemetry,
            log_dir=self.log_dir,
        )

    async def test_weather_round_trip(self):
        client = ScriptedClient([
            tool_turn("call_1", "get_weather", '{"location": "Oslo"}'),
            text_turn("It's 4, ", "and Oslo is 12°C."),
        ])
        loop = self._make_loop(client)

        answer = await loop.run(self.messages)

        self.assertEqual(answer, "It's 4, and Oslo is 12°C.")
        self.assertEqual(loop.state, LoopState.DONE)
        history = loop.history
        self.assertEqual(
            [m.role for m in history],
            ["system", "user", "assistant", "tool", "assistant"],
        )
        self.assertEqual(history[2].content, TOOL_CALL_PLACEHOLDER)
        self.assertEqual(len(history[2].tool_calls), 1)
        self.assertEqual(history[2].tool_calls[0].id, "call_1")
        self.assertEqual(history[2].tool_calls[0].name, "get_weather")
        self.assertEqual(history[2].tool_calls[0].arguments_text, '{"location": "Oslo"}')
        self.assertEqual(history[3].tool_call_id, "call_1")
        self.assertEqual(json.loads(history[3].content), {"location": "Oslo", "temp_c": 12})
        self.assertEqual(history[4].content, "It's 4, and Oslo is 12°C.")
        self.assertIsNone(history[4].tool_calls)

        # caller's list untouched
        self.assertEqual(len(self.messages), 2)

        self.assertEqual(len(client.requests), 2)
        self.assertEqual(client.requests[0]["tools"], ["get_weather", "get_time"])
        second = client.requests[1]["messages"]
        self.assertEqual([m["role"] for m in second], ["system", "user", "assistant", "tool"])
        self.assertEqual(second[2]["tool_calls"][0]["function"]["name"], "get_weather")

    async def test_unknown_tool_still_reinvokes_model(self):
        client = ScriptedClient([
            tool_turn("call_9", "launch_rockets", "{}"),
            text_turn("I can't do that."),
        ])
        loop = self._make_loop(client)

        answer = await loop.run(self.messages)

        self.assertEqual(answer, "I can't do that.")
        self.assertEqual(loop.history[3].content, "Tool 'launch_rockets' is not available.")
        self.assertEqual(len(client.requests), 2)

    async def test_content_only_turn_skips_executor(self):
        executor = mock.Mock(spec=ToolExecutor)
        executor.execute = mock.AsyncMock()
        client = ScriptedClient([text_turn("Hel", "lo", " there")])
        loop = self._make_loop(client, executor=executor)

        answer = await loop.run(self.messages)

        self.assertEqual(answer, "Hello there")
        executor.execute.assert_not_called()
        self.assertEqual([m.role for m in loop.history], ["system", "user", "assistant"])

    async def test_parallel_tool_calls_in_one_turn(self):
        client = ScriptedClient([
            [
                tool_frame(0, call_id="call_a", name="get_weather", arguments='{"loc'),
                tool_frame(1, call_id="call_b", name="get_time", arguments="{}"),
                tool_frame(0, arguments='ation": "Oslo"}'),
                content_frame(None, "tool_calls"),
            ],
            text_turn("Done."),
        ])
        loop = self._make_loop(client)

        await loop.run(self.messages)

        request_message = loop.history[2]
        self.assertEqual([tc.id for tc in request_message.tool_calls], ["call_a", "call_b"])
        self.assertEqual(request_message.tool_calls[0].arguments_text, '{"location": "Oslo"}')
        tool_messages = [m for m in loop.history if m.role == "tool"]
        self.assertEqual({m.tool_call_id for m in tool_messages}, {"call_a", "call_b"})

    async def test_loop_exceeded_is_fatal(self):
        client = ScriptedClient([
            tool_turn("call_1", "get_time", "{}"),
            tool_turn("call_2", "get_time", "{}"),
            tool_turn("call_3", "get_time", "{}"),
        ])
        loop = self._make_loop(client, max_tool_rounds=2)

        with self.assertRaises(ToolLoopExceededError) as ctx:
            await loop.run(self.messages)

        self.assertEqual(ctx.exception.max_rounds, 2)
        self.assertEqual(len(client.requests), 3)

    async def test_zero_rounds_aborts_on_first_tool_turn(self):
        client = ScriptedClient([tool_turn("call_1", "get_time", "{}")])
        loop = self._make_loop(client, max_tool_rounds=0)

        with self.assertRaises(ToolLoopExceededError):
            await loop.run(self.messages)

    async def test_transport_failure_propagates(self):
        client = ScriptedClient([
            [content_frame("partial"), EndpointConnectionError("connection reset")],
        ])
        loop = self._make_loop(client)

        with self.assertRaises(EndpointConnectionError):
            await loop.run(self.messages)

    async def test_notifier_events(self):
        client = ScriptedClient([
            tool_turn("call_1", "get_weather", '{"location": "Oslo"}'),
            text_turn("It's 12°C."),
        ])
        notifier = RecordingNotifier()

        await self._make_loop(client).run(self.messages, notifier=notifier)

        self.assertEqual(
            notifier.statuses,
            ["Thinking...", "Putting together an answer...", "Fetching weather data..."],
        )
        self.assertEqual(
            notifier.chunks,
            [("", "tool_calls"), ("It's 12°C.", None), ("", "stop")],
        )
        self.assertEqual([m.role for m in notifier.tool_messages], ["assistant", "tool"])

    async def test_tools_override_restricts_definitions(self):
        client = ScriptedClient([text_turn("ok")])
        loop = self._make_loop(client)

        await loop.run(self.messages, tools=self.registry.subset(["get_time"]))

        self.assertEqual(client.requests[0]["tools"], ["get_time"])

    async def test_telemetry_rounds(self):
        telemetry = Telemetry(
            TelemetryConfig(enabled=True, log_dir=str(Path(self.log_dir) / "metrics")),
            session_id="loop",
        )
        client = ScriptedClient([
            tool_turn("call_1", "get_time", "{}"),
            text_turn("noon"),
        ])

        await self._make_loop(client, telemetry=telemetry).run(self.messages)

        summary = telemetry.summary()
        self.assertEqual(summary.total_rounds, 2)
        self.assertEqual(len(summary.llm_calls), 2)
        self.assertEqual(summary.final_state, "done")

    async def test_loops_share_one_log_handler(self):
        def handler_count():
            return sum(
                len(logger.handlers)
                for logger in logging.Logger.manager.loggerDict.values()
                if isinstance(logger, logging.Logger)
            )

        await self._make_loop(ScriptedClient([text_turn("warm up")])).run(self.messages)
        before = handler_count()

        for i in range(50):
            loop = self._make_loop(ScriptedClient([text_turn(f"reply {i}")]))
            await loop.run(self.messages)

        self.assertEqual(handler_count(), before)

    async def test_content_parts_chunk_does_not_break_the_turn(self):
        parts_chunk = {"choices": [{"delta": {"content": [{"type": "text", "text": "hi"}]}}]}
        client = ScriptedClient([[
            StreamFrame.from_chunk(parts_chunk),
            content_frame("Hello."),
            content_frame(None, "stop"),
        ]])

        answer = await self._make_loop(client).run(self.messages)

        self.assertEqual(answer, "Hello.")
