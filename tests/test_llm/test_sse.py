import asyncio

import httpx
import pytest

from maid.exceptions import ParseError, StreamAbortedError
from maid.llm.sse import decode_json_object, iter_sse, parse_tool_arguments
from maid.llm.types import Message, StreamRequest


def streamed(body: bytes) -> httpx.Response:
    return httpx.Response(200, headers={"content-type": "text/event-stream"}, content=body)


@pytest.mark.asyncio
async def test_iter_sse_tracks_event_names_and_skips_comments():
    response = streamed(b": ping\n\nevent: message_start\ndata: {\"a\": 1}\n\ndata: {\"b\": 2}\ndata: {\"c\": 3}\n\n")

    messages = [message async for message in iter_sse(response)]

    assert [(m.event, m.data) for m in messages] == [
        ("message_start", '{"a": 1}'),
        ("", '{"b": 2}'),
        ("", '{"c": 3}'),
    ]


@pytest.mark.asyncio
async def test_iter_sse_stops_when_request_is_aborted():
    abort_event = asyncio.Event()
    abort_event.set()
    stream_request = StreamRequest(model="m", messages=[Message(role="user", content="x")], abort_event=abort_event)

    with pytest.raises(StreamAbortedError):
        async for _ in iter_sse(streamed(b"data: {}\n\n"), stream_request):
            pass


def test_decode_json_object_rejects_non_objects():
    assert decode_json_object('{"ok": true}') == {"ok": True}
    with pytest.raises(ParseError):
        decode_json_object("[1, 2]")
    with pytest.raises(ParseError):
        decode_json_object("{oops")


def test_parse_tool_arguments_never_raises():
    assert parse_tool_arguments('{"query": "x"}') == {"query": "x"}
    assert parse_tool_arguments({"query": "y"}) == {"query": "y"}
    assert parse_tool_arguments("{truncated") == {}
    assert parse_tool_arguments(None) == {}
    assert parse_tool_arguments('"just a string"') == {}
