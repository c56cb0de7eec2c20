"""OpenAI-compatible chat-completions streaming (shared by several backends)."""

from contextlib import aclosing
from typing import Any, AsyncIterator

from maid.exceptions import ParseError
from maid.llm.base import ProviderAdapter
from maid.llm.sse import DONE_SENTINEL, decode_json_object
from maid.llm.types import (
    AnnotationsEvent,
    AnswerDelta,
    CanonicalEvent,
    ReasoningDelta,
    StandardizedModel,
    StreamDone,
    StreamRequest,
    Usage,
    UsageEvent,
)
from maid.logging import get_logger

log = get_logger(__name__)

LEGACY_REASONING_FIELDS = ("reasoning", "reasoning_content")


def decode_chat_chunk(chunk: dict[str, Any], seen_reasoning_ids: set[str]) -> list[CanonicalEvent]:
    """Reduce one chat-completions chunk to canonical events.

    ``seen_reasoning_ids`` belongs to exactly one streaming call; reasoning
    details carrying an id already in the set are dropped.
    """
    events: list[CanonicalEvent] = []
    choices = chunk.get("choices")
    choice = choices[0] if isinstance(choices, list) and choices and isinstance(choices[0], dict) else {}
    delta = choice.get("delta") if isinstance(choice.get("delta"), dict) else None

    if delta is not None:
        details = delta.get("reasoning_details")
        if isinstance(details, list) and details:
            for detail in details:
                if not isinstance(detail, dict):
                    continue
                detail_id = detail.get("id")
                if detail_id and detail_id in seen_reasoning_ids:
                    continue
                detail_type = detail.get("type")
                text = ""
                if detail_type == "reasoning.text" and isinstance(detail.get("text"), str):
                    text = detail["text"]
                elif detail_type == "reasoning.summary" and isinstance(detail.get("summary"), str):
                    text = detail["summary"]
                if not text:
                    continue
                events.append(ReasoningDelta(text))
                if detail_id:
                    seen_reasoning_ids.add(detail_id)
        else:
            # Legacy plain string only when no reasoning_details in this chunk
            for field_name in LEGACY_REASONING_FIELDS:
                legacy = delta.get(field_name)
                if isinstance(legacy, str) and legacy:
                    events.append(ReasoningDelta(legacy))
                    break

        content = delta.get("content")
        if isinstance(content, str) and content:
            events.append(AnswerDelta(content))

        annotations = delta.get("annotations")
        if isinstance(annotations, list) and annotations:
            events.append(AnnotationsEvent(list(annotations)))

    message = choice.get("message")
    if isinstance(message, dict) and isinstance(message.get("annotations"), list):
        events.append(AnnotationsEvent(list(message["annotations"]), replace=True))

    if isinstance(chunk.get("usage"), dict):
        usage = Usage.from_mapping(chunk["usage"])
        if not usage.is_empty():
            events.append(UsageEvent(usage))

    return events


class ChatCompletionsAdapter(ProviderAdapter):
    """Base for backends speaking ``POST /chat/completions`` with SSE."""

    include_tool_messages: bool = False

    def build_messages(self, request: StreamRequest) -> list[dict[str, Any]]:
        return [
            message.to_chat_dict(include_tools=self.include_tool_messages)
            for message in request.messages
            if self.include_tool_messages or message.role != "tool"
        ]

    def apply_effort(self, body: dict[str, Any], request: StreamRequest) -> None:
        """Attach the backend's native reasoning parameters (default: none)."""
        return None

    def request_headers(self) -> dict[str, str]:
        return self.auth_headers()

    async def build_body(self, request: StreamRequest) -> dict[str, Any]:
        body: dict[str, Any] = {
            "model": request.model,
            "messages": self.build_messages(request),
            "stream": True,
        }
        self.apply_effort(body, request)
        return body

    async def reasoning_stream(self, request: StreamRequest) -> AsyncIterator[CanonicalEvent]:
        self.require_api_key()
        body = await self.build_body(request)
        seen_reasoning_ids: set[str] = set()
        final_chunk: dict[str, Any] | None = None

        messages = self.stream_sse(f"{self.base_url}/chat/completions", body, self.request_headers(), request)
        async with aclosing(messages):
            async for message in messages:
                if message.data == DONE_SENTINEL:
                    break
                try:
                    chunk = decode_json_object(message.data)
                except ParseError as e:
                    log.debug("Skipping malformed stream chunk", provider=self.key, error=str(e))
                    continue
                self.log_event(chunk)
                for event in decode_chat_chunk(chunk, seen_reasoning_ids):
                    yield event
                choices = chunk.get("choices")
                if isinstance(choices, list) and choices and isinstance(choices[0], dict):
                    if choices[0].get("finish_reason"):
                        final_chunk = chunk

        yield StreamDone(raw=final_chunk)

    def model_from_payload(self, item: dict[str, Any]) -> StandardizedModel:
        return StandardizedModel(
            id=str(item.get("id")),
            provider=self.key,
            created=item.get("created"),
            owned_by=item.get("owned_by"),
        )

    async def fetch_models(self) -> list[StandardizedModel]:
        self.require_api_key()
        payload = await self.get_json(f"{self.base_url}/models", headers=self.auth_headers())
        items = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(items, list):
            return []
        return [
            self.model_from_payload(item)
            for item in items
            if isinstance(item, dict) and item.get("id")
        ]
