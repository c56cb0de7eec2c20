import json

import httpx
import pytest

from maid.config import Config
from maid.exceptions import ConfigurationError, TransportError
from maid.llm.providers import AnthropicAdapter, GoogleAdapter, OpenAIAdapter, OpenRouterAdapter
from maid.llm.types import (
    AnnotationsEvent,
    AnswerDelta,
    Message,
    ReasoningDelta,
    ReasoningEffort,
    StreamDone,
    StreamRequest,
    UsageEvent,
)


def sse_body(*events, named: bool = False, done: bool = False) -> bytes:
    lines = []
    for event in events:
        if named:
            lines.append(f"event: {event['type']}")
        lines.append(f"data: {json.dumps(event)}")
        lines.append("")
    if done:
        lines.extend(["data: [DONE]", ""])
    return "\n".join(lines).encode()


class Recorder:
    """MockTransport handler that records requests and replays one response."""

    def __init__(self, body: bytes, status_code: int = 200, content_type: str = "text/event-stream"):
        self.body = body
        self.status_code = status_code
        self.content_type = content_type
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status_code, headers={"content-type": self.content_type}, content=self.body)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self))


def request(model: str = "m", effort: ReasoningEffort = ReasoningEffort.MEDIUM) -> StreamRequest:
    return StreamRequest(model=model, messages=[Message(role="user", content="hi")], effort=effort)


async def collect(adapter, stream_request):
    return [event async for event in adapter.reasoning_stream(stream_request)]


def texts(events, kind):
    return [event.text for event in events if isinstance(event, kind)]


@pytest.mark.asyncio
async def test_openrouter_stream_dedups_reasoning_details_and_ignores_legacy_when_present():
    chunks = [
        {
            "choices": [
                {
                    "delta": {
                        "reasoning": "legacy ignored",
                        "reasoning_details": [{"type": "reasoning.text", "text": "Think A", "id": "r1"}],
                    }
                }
            ]
        },
        {"choices": [{"delta": {"reasoning_details": [{"type": "reasoning.text", "text": "Think A", "id": "r1"}]}}]},
        {"choices": [{"delta": {"reasoning_details": [{"type": "reasoning.summary", "summary": " B"}]}}]},
        {"choices": [{"delta": {"reasoning_details": [], "reasoning": " legacy C"}}]},
        {"choices": [{"delta": {"content": "Hello"}}]},
        {"choices": [{"delta": {"content": " world", "annotations": [{"type": "url_citation", "url": "u1"}]}}]},
        {"choices": [{"delta": {}, "finish_reason": "stop"}], "usage": {"prompt_tokens": 7, "completion_tokens": 3}},
    ]
    recorder = Recorder(sse_body(*chunks, done=True))
    adapter = OpenRouterAdapter(api_key="k", config=Config(), client=recorder.client())
    adapter.models_cache.store([])

    events = await collect(adapter, request())

    assert texts(events, ReasoningDelta) == ["Think A", " B", " legacy C"]
    assert texts(events, AnswerDelta) == ["Hello", " world"]
    assert [e.annotations for e in events if isinstance(e, AnnotationsEvent)] == [[{"type": "url_citation", "url": "u1"}]]
    usage = [e.usage for e in events if isinstance(e, UsageEvent)][0]
    assert (usage.input_tokens, usage.output_tokens) == (7, 3)
    assert isinstance(events[-1], StreamDone)
    assert events[-1].raw["choices"][0]["finish_reason"] == "stop"
    sent = recorder.requests[0]
    assert sent.url.path == "/api/v1/chat/completions"
    assert sent.headers["Authorization"] == "Bearer k"


@pytest.mark.asyncio
async def test_reasoning_id_set_does_not_leak_between_calls():
    chunk = {"choices": [{"delta": {"reasoning_details": [{"type": "reasoning.text", "text": "same", "id": "r1"}]}}]}
    recorder = Recorder(sse_body(chunk, done=True))
    adapter = OpenRouterAdapter(api_key="k", config=Config(), client=recorder.client())
    adapter.models_cache.store([])

    first = await collect(adapter, request())
    second = await collect(adapter, request())

    assert texts(first, ReasoningDelta) == ["same"]
    assert texts(second, ReasoningDelta) == ["same"]


@pytest.mark.asyncio
async def test_malformed_chunks_are_skipped():
    body = b'data: {"choices": [{"delta": {"content": "a"}}]}\n\ndata: {broken\n\n: keep-alive\n\ndata: {"choices": [{"delta": {"content": "b"}}]}\n\ndata: [DONE]\n\n'
    recorder = Recorder(body)
    adapter = OpenRouterAdapter(api_key="k", config=Config(), client=recorder.client())
    adapter.models_cache.store([])

    events = await collect(adapter, request())

    assert texts(events, AnswerDelta) == ["a", "b"]


@pytest.mark.asyncio
async def test_non_2xx_raises_transport_error_with_provider_message():
    recorder = Recorder(json.dumps({"error": {"message": "model not found"}}).encode(), status_code=404, content_type="application/json")
    adapter = OpenRouterAdapter(api_key="k", config=Config(), client=recorder.client())
    adapter.models_cache.store([])

    with pytest.raises(TransportError, match="model not found") as excinfo:
        await collect(adapter, request())

    assert excinfo.value.status_code == 404


@pytest.mark.asyncio
async def test_missing_credential_fails_before_any_request(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    recorder = Recorder(b"")
    adapter = OpenAIAdapter(config=Config(), client=recorder.client())

    with pytest.raises(ConfigurationError, match="Missing OPENAI_API_KEY"):
        await collect(adapter, request())

    assert recorder.requests == []


@pytest.mark.asyncio
async def test_openai_responses_stream_maps_summary_text_and_usage():
    events_in = [
        {"type": "response.created", "response": {"id": "resp_1"}},
        {"type": "response.reasoning_summary_text.delta", "delta": "Considering"},
        {"type": "response.output_text.delta", "delta": "42"},
        {
            "type": "response.completed",
            "response": {
                "id": "resp_1",
                "usage": {
                    "input_tokens": 12,
                    "output_tokens": 30,
                    "total_tokens": 42,
                    "output_tokens_details": {"reasoning_tokens": 20},
                },
            },
        },
    ]
    recorder = Recorder(sse_body(*events_in, named=True))
    adapter = OpenAIAdapter(api_key="k", config=Config(), client=recorder.client())

    events = await collect(adapter, request(effort=ReasoningEffort.HIGH))

    assert texts(events, ReasoningDelta) == ["Considering"]
    assert texts(events, AnswerDelta) == ["42"]
    usage = [e.usage for e in events if isinstance(e, UsageEvent)][0]
    assert usage.as_dict() == {"input_tokens": 12, "output_tokens": 30, "reasoning_tokens": 20, "total_tokens": 42}
    assert events[-1].raw["id"] == "resp_1"
    assert recorder.requests[0].url.path == "/v1/responses"


@pytest.mark.asyncio
async def test_openai_failed_response_raises_transport_error():
    failed = {"type": "response.failed", "response": {"error": {"message": "quota exceeded"}}}
    recorder = Recorder(sse_body(failed, named=True))
    adapter = OpenAIAdapter(api_key="k", config=Config(), client=recorder.client())

    with pytest.raises(TransportError, match="quota exceeded"):
        await collect(adapter, request())


@pytest.mark.asyncio
async def test_anthropic_stream_maps_thinking_text_and_usage():
    events_in = [
        {"type": "message_start", "message": {"usage": {"input_tokens": 25, "output_tokens": 1}}},
        {"type": "content_block_start", "index": 0, "content_block": {"type": "thinking", "thinking": ""}},
        {"type": "content_block_delta", "index": 0, "delta": {"type": "thinking_delta", "thinking": "Hmm."}},
        {"type": "content_block_delta", "index": 0, "delta": {"type": "signature_delta", "signature": "sig"}},
        {"type": "content_block_delta", "index": 1, "delta": {"type": "text_delta", "text": "Answer"}},
        {"type": "message_delta", "delta": {"stop_reason": "end_turn"}, "usage": {"output_tokens": 15}},
        {"type": "message_stop"},
    ]
    recorder = Recorder(sse_body(*events_in, named=True))
    adapter = AnthropicAdapter(api_key="ak", config=Config(), client=recorder.client())

    events = await collect(adapter, request(effort=ReasoningEffort.LOW))

    assert texts(events, ReasoningDelta) == ["Hmm."]
    assert texts(events, AnswerDelta) == ["Answer"]
    usages = [e.usage for e in events if isinstance(e, UsageEvent)]
    assert usages[0].input_tokens == 25 and usages[0].output_tokens is None
    assert usages[1].output_tokens == 15
    sent = recorder.requests[0]
    assert sent.headers["x-api-key"] == "ak"
    assert sent.headers["anthropic-version"] == "2023-06-01"
    assert json.loads(sent.content)["thinking"]["budget_tokens"] == 5000


@pytest.mark.asyncio
async def test_anthropic_error_event_raises():
    recorder = Recorder(sse_body({"type": "error", "error": {"type": "overloaded_error", "message": "Overloaded"}}, named=True))
    adapter = AnthropicAdapter(api_key="ak", config=Config(), client=recorder.client())

    with pytest.raises(TransportError, match="Overloaded"):
        await collect(adapter, request())


@pytest.mark.asyncio
async def test_google_stream_splits_thought_parts_and_reads_usage_metadata():
    chunks = [
        {"candidates": [{"content": {"parts": [{"text": "pondering", "thought": True}]}}]},
        {"candidates": [{"content": {"parts": [{"text": "Paris"}, {"functionCall": {}}]}}]},
        {"text": "!"},
        {
            "candidates": [{"content": {"parts": []}, "finishReason": "STOP"}],
            "usageMetadata": {"promptTokenCount": 4, "candidatesTokenCount": 2, "thoughtsTokenCount": 9, "totalTokenCount": 15},
        },
    ]
    recorder = Recorder(sse_body(*chunks))
    adapter = GoogleAdapter(api_key="gk", config=Config(), client=recorder.client())

    events = await collect(adapter, request(model="models/gemini-2.5-flash"))

    assert texts(events, ReasoningDelta) == ["pondering"]
    assert texts(events, AnswerDelta) == ["Paris", "!"]
    usage = [e.usage for e in events if isinstance(e, UsageEvent)][0]
    assert usage.as_dict() == {"input_tokens": 4, "output_tokens": 2, "reasoning_tokens": 9, "total_tokens": 15}
    sent = recorder.requests[0]
    assert sent.url.path == "/v1beta/models/gemini-2.5-flash:streamGenerateContent"
    assert sent.url.params["alt"] == "sse"
    assert sent.headers["x-goog-api-key"] == "gk"
