"""OpenAI Responses API adapter."""

from contextlib import aclosing
from typing import Any, AsyncIterator

from maid.exceptions import ParseError, TransportError
from maid.llm.providers.chat_completions import ChatCompletionsAdapter
from maid.llm.sse import DONE_SENTINEL, decode_json_object
from maid.llm.types import (
    AnswerDelta,
    CanonicalEvent,
    ReasoningDelta,
    ReasoningEffort,
    StreamDone,
    StreamRequest,
    Usage,
    UsageEvent,
)
from maid.logging import get_logger

log = get_logger(__name__)


def _responses_usage(response: Any) -> Usage:
    usage = response.get("usage") if isinstance(response, dict) else None
    return Usage.from_mapping(
        usage,
        input_key="input_tokens",
        output_key="output_tokens",
        reasoning_key="reasoning_tokens",
        total_key="total_tokens",
    )


def _failure_message(event: dict[str, Any]) -> str:
    response = event.get("response") if isinstance(event.get("response"), dict) else {}
    for source in (response.get("error"), event.get("error"), event):
        if isinstance(source, dict) and isinstance(source.get("message"), str) and source["message"]:
            return source["message"]
    return "response failed"


class OpenAIAdapter(ChatCompletionsAdapter):
    """Streams ``/responses`` events; model listing uses the shared ``/models`` path."""

    key = "openai"
    display_name = "OpenAI"
    api_key_env = "OPENAI_API_KEY"
    base_url_env = "OPENAI_BASE_URL"
    default_base_url = "https://api.openai.com/v1"

    def build_input(self, request: StreamRequest) -> list[dict[str, str]]:
        return [
            {"role": message.role, "content": message.content or ""}
            for message in request.messages
            if message.role in ("system", "user", "assistant")
        ]

    def apply_effort(self, body: dict[str, Any], request: StreamRequest) -> None:
        if request.effort is ReasoningEffort.OFF:
            return
        body["reasoning"] = {"effort": request.effort.value, "summary": "detailed"}

    async def build_body(self, request: StreamRequest) -> dict[str, Any]:
        body: dict[str, Any] = {
            "model": request.model,
            "input": self.build_input(request),
            "stream": True,
        }
        self.apply_effort(body, request)
        if request.web_search:
            body["tools"] = [{"type": "web_search"}]
        return body

    def decode_event(self, event: dict[str, Any]) -> list[CanonicalEvent]:
        """Map one Responses stream event onto canonical events."""
        event_type = event.get("type")
        if event_type == "response.reasoning_summary_text.delta":
            delta = event.get("delta") or ""
            return [ReasoningDelta(delta)] if delta else []
        if event_type == "response.output_text.delta":
            delta = event.get("delta") or ""
            return [AnswerDelta(delta)] if delta else []
        if event_type in ("response.completed", "response.incomplete"):
            usage = _responses_usage(event.get("response"))
            events: list[CanonicalEvent] = []
            if not usage.is_empty():
                events.append(UsageEvent(usage))
            return events
        if event_type in ("response.failed", "error"):
            raise TransportError(f"{self.name} API error: {_failure_message(event)}")
        return []

    async def reasoning_stream(self, request: StreamRequest) -> AsyncIterator[CanonicalEvent]:
        self.require_api_key()
        body = await self.build_body(request)
        final: Any = None

        messages = self.stream_sse(f"{self.base_url}/responses", body, self.auth_headers(), request)
        async with aclosing(messages):
            async for message in messages:
                if message.data == DONE_SENTINEL:
                    break
                try:
                    event = decode_json_object(message.data)
                except ParseError as e:
                    log.debug("Skipping malformed stream event", provider=self.key, error=str(e))
                    continue
                event.setdefault("type", message.event)
                self.log_event(event)
                for canonical in self.decode_event(event):
                    yield canonical
                if event.get("type") in ("response.completed", "response.incomplete"):
                    final = event.get("response") or final

        yield StreamDone(raw=final)
