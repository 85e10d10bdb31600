from agent.messages import StreamFrame, ToolCallDelta
from agent.stream import FrameKind, ToolCallAggregator, classify_frame, merge_frame

from fakes import content_frame, tool_frame


ARGS = '{"location": "Oslo", "units": "metric"}'


def _merge(frames):
    aggregator = ToolCallAggregator()
    for frame in frames:
        aggregator.merge(frame)
    return aggregator


def test_classify_content_and_finish_only_frames():
    assert classify_frame(content_frame("Hello")) == FrameKind.CONTENT
    assert classify_frame(content_frame(None, "stop")) == FrameKind.CONTENT
    assert classify_frame(content_frame("")) == FrameKind.CONTENT


def test_classify_tool_call_frame():
    assert classify_frame(tool_frame(0, arguments="{")) == FrameKind.TOOL_CALL
    assert classify_frame(tool_frame(0, call_id="call_1")) == FrameKind.TOOL_CALL


def test_classify_empty_tool_delta_is_content():
    frame = StreamFrame(content="hi", tool_call_deltas=[ToolCallDelta(index=0)])
    assert classify_frame(frame) == FrameKind.CONTENT


def test_split_fragments_equal_unsplit_frame():
    whole = _merge([tool_frame(0, call_id="call_1", name="get_weather", arguments=ARGS)]).finalize()

    for cut in range(len(ARGS) + 1):
        frames = [
            tool_frame(0, call_id="call_1", name="get_weather", arguments=ARGS[:cut]),
            tool_frame(0, arguments=ARGS[cut:]),
        ]
        assert _merge(frames).finalize() == whole

    one_char_frames = [tool_frame(0, call_id="call_1", name="get_weather")]
    one_char_frames += [tool_frame(0, arguments=ch) for ch in ARGS]
    assert _merge(one_char_frames).finalize() == whole


def test_arguments_follow_arrival_order_not_index_order():
    frames = [
        tool_frame(1, call_id="call_b", name="second", arguments='{"b":'),
        tool_frame(0, call_id="call_a", name="first", arguments='{"a":'),
        tool_frame(1, arguments=" 2}"),
        tool_frame(0, arguments=" 1}"),
    ]
    requests = _merge(frames).finalize()

    assert [r.id for r in requests] == ["call_a", "call_b"]
    assert requests[0].arguments_text == '{"a": 1}'
    assert requests[1].arguments_text == '{"b": 2}'


def test_call_id_first_seen_wins():
    frames = [
        tool_frame(0, call_id="call_first", name="f"),
        tool_frame(0, call_id="call_second", arguments="{}"),
    ]
    assert _merge(frames).finalize()[0].id == "call_first"


def test_function_name_last_non_empty_wins():
    frames = [
        tool_frame(0, call_id="c", name="get"),
        tool_frame(0, name="get_weather"),
        tool_frame(0, name="", arguments="{}"),
    ]
    assert _merge(frames).finalize()[0].name == "get_weather"


def test_missing_call_id_gets_generated():
    request = _merge([tool_frame(0, name="f", arguments="{}")]).finalize()[0]
    assert request.id.startswith("call_")
    assert len(request.id) > len("call_")


def test_merge_frame_ignores_empty_deltas():
    aggregates = merge_frame({}, StreamFrame(tool_call_deltas=[ToolCallDelta(index=3)]))
    assert aggregates == {}


def test_content_frames_leave_aggregator_empty():
    aggregator = _merge([content_frame("Hello"), content_frame(None, "stop")])
    assert not aggregator.has_calls
    assert aggregator.finalize() == []


def test_from_chunk_reads_delta_fields():
    chunk = {
        "choices": [{
            "delta": {
                "content": None,
                "tool_calls": [
                    {"index": 2, "id": "call_x", "function": {"name": "f", "arguments": "{\"a\""}},
                    {"function": {"arguments": ": 1}"}},
                ],
            },
            "finish_reason": None,
        }]
    }
    frame = StreamFrame.from_chunk(chunk)

    assert frame.content is None
    assert [d.index for d in frame.tool_call_deltas] == [2, 1]
    assert frame.tool_call_deltas[0].call_id == "call_x"
    assert frame.tool_call_deltas[0].function_name == "f"
    assert frame.tool_call_deltas[1].arguments_text == ": 1}"


def test_from_chunk_without_choices_is_skipped():
    assert StreamFrame.from_chunk({"choices": [], "usage": {"total_tokens": 3}}) is None


def test_from_chunk_drops_non_string_fields():
    chunk = {
        "choices": [{
            "delta": {
                "content": [{"type": "text", "text": "hi"}],
                "tool_calls": [
                    {"index": 0, "id": 42, "function": {"name": ["f"], "arguments": {"a": 1}}},
                    {"index": 1, "function": "get_time"},
                ],
            },
            "finish_reason": 7,
        }]
    }
    frame = StreamFrame.from_chunk(chunk)

    assert frame.content is None
    assert frame.finish_reason is None
    assert [(d.index, d.call_id, d.function_name, d.arguments_text) for d in frame.tool_call_deltas] == [
        (0, None, None, None),
        (1, None, None, None),
    ]
    assert classify_frame(frame) == FrameKind.CONTENT


def test_from_chunk_with_malformed_choice_is_empty_content():
    frame = StreamFrame.from_chunk({"choices": ["oops"]})
    assert frame == StreamFrame()
    assert StreamFrame.from_chunk({"choices": [{"delta": "text"}]}) == StreamFrame()
