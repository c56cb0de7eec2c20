"""Anthropic Messages API adapter (explicit thinking budget)."""

from contextlib import aclosing
from datetime import datetime
from typing import Any, AsyncIterator

from maid.exceptions import ParseError, TransportError
from maid.llm.base import ProviderAdapter
from maid.llm.sse import decode_json_object
from maid.llm.types import (
    AnswerDelta,
    CanonicalEvent,
    ReasoningDelta,
    ReasoningEffort,
    StandardizedModel,
    StreamDone,
    StreamRequest,
    Usage,
    UsageEvent,
)
from maid.logging import get_logger

log = get_logger(__name__)

ANTHROPIC_VERSION = "2023-06-01"

THINKING_BUDGETS = {
    ReasoningEffort.OFF: 0,
    ReasoningEffort.LOW: 5000,
    ReasoningEffort.MEDIUM: 10000,
    ReasoningEffort.HIGH: 20000,
}
MIN_MAX_TOKENS = 16000
# Headroom above the thinking budget reserved for the visible answer
ANSWER_TOKEN_HEADROOM = 6000


def thinking_budget(effort: ReasoningEffort) -> int:
    return THINKING_BUDGETS.get(effort, THINKING_BUDGETS[ReasoningEffort.MEDIUM])


def _epoch_seconds(value: Any) -> int | None:
    if not isinstance(value, str) or not value:
        return None
    try:
        return int(datetime.fromisoformat(value.replace("Z", "+00:00")).timestamp())
    except ValueError:
        return None


class AnthropicAdapter(ProviderAdapter):
    """Streams ``/v1/messages`` SSE events."""

    key = "anthropic"
    display_name = "Anthropic"
    api_key_env = "ANTHROPIC_API_KEY"
    default_base_url = "https://api.anthropic.com/v1"

    def auth_headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "x-api-key": self.api_key,
            "anthropic-version": ANTHROPIC_VERSION,
        }

    def build_body(self, request: StreamRequest) -> dict[str, Any]:
        system_parts = [
            message.content.strip()
            for message in request.messages
            if message.role == "system" and message.content.strip()
        ]
        messages = [
            {"role": message.role, "content": message.content}
            for message in request.messages
            if message.role in ("user", "assistant") and (message.content or "").strip()
        ]
        budget = thinking_budget(request.effort)
        body: dict[str, Any] = {
            "model": request.model,
            "max_tokens": max(MIN_MAX_TOKENS, budget + ANSWER_TOKEN_HEADROOM),
            "messages": messages,
            "stream": True,
        }
        if system_parts:
            body["system"] = "\n\n".join(system_parts)
        if budget > 0:
            body["thinking"] = {"type": "enabled", "budget_tokens": budget}
        return body

    def decode_event(self, event: dict[str, Any]) -> list[CanonicalEvent]:
        event_type = event.get("type")
        if event_type == "message_start":
            message = event.get("message") if isinstance(event.get("message"), dict) else {}
            usage = Usage.from_mapping(message.get("usage"), input_key="input_tokens", output_key="output_tokens")
            # output_tokens on message_start is a placeholder, message_delta carries the real count
            usage.output_tokens = None
            return [] if usage.is_empty() else [UsageEvent(usage)]
        if event_type == "content_block_delta":
            delta = event.get("delta") if isinstance(event.get("delta"), dict) else {}
            if delta.get("type") == "text_delta" and delta.get("text"):
                return [AnswerDelta(delta["text"])]
            if delta.get("type") == "thinking_delta" and delta.get("thinking"):
                return [ReasoningDelta(delta["thinking"])]
            return []
        if event_type == "message_delta":
            usage = Usage.from_mapping(event.get("usage"), input_key="input_tokens", output_key="output_tokens")
            return [] if usage.is_empty() else [UsageEvent(usage)]
        if event_type == "error":
            error = event.get("error") if isinstance(event.get("error"), dict) else {}
            raise TransportError(f"{self.name} API error: {error.get('message') or 'stream error'}")
        return []

    async def reasoning_stream(self, request: StreamRequest) -> AsyncIterator[CanonicalEvent]:
        self.require_api_key()
        body = self.build_body(request)
        final: dict[str, Any] | None = None

        messages = self.stream_sse(f"{self.base_url}/messages", body, self.auth_headers(), request)
        async with aclosing(messages):
            async for message in messages:
                try:
                    event = decode_json_object(message.data)
                except ParseError as e:
                    log.debug("Skipping malformed stream event", provider=self.key, error=str(e))
                    continue
                event.setdefault("type", message.event)
                self.log_event(event)
                for canonical in self.decode_event(event):
                    yield canonical
                if event.get("type") == "message_delta":
                    final = event
                if event.get("type") == "message_stop":
                    break

        yield StreamDone(raw=final)

    async def fetch_models(self) -> list[StandardizedModel]:
        self.require_api_key()
        payload = await self.get_json(f"{self.base_url}/models", headers=self.auth_headers())
        items = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(items, list):
            return []
        return [
            StandardizedModel(
                id=str(item["id"]),
                provider=self.key,
                name=str(item.get("display_name") or item["id"]),
                created=_epoch_seconds(item.get("created_at")),
            )
            for item in items
            if isinstance(item, dict) and item.get("id")
        ]
