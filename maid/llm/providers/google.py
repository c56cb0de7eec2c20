"""Google Gemini adapter (streamGenerateContent over SSE)."""

from contextlib import aclosing
from typing import Any, AsyncIterator

from maid.exceptions import ParseError
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

MODEL_NAME_PREFIX = "models/"


def strip_model_prefix(name: str) -> str:
    return name[len(MODEL_NAME_PREFIX):] if name.startswith(MODEL_NAME_PREFIX) else name


def decode_gemini_chunk(chunk: dict[str, Any]) -> list[CanonicalEvent]:
    """Parts flagged ``thought`` are reasoning; other text parts are answer.

    Chunks without candidate parts fall back to a top-level ``text`` field.
    """
    events: list[CanonicalEvent] = []
    candidates = chunk.get("candidates")
    candidate = candidates[0] if isinstance(candidates, list) and candidates else {}
    content = candidate.get("content") if isinstance(candidate, dict) else None
    parts = content.get("parts") if isinstance(content, dict) else None

    if isinstance(parts, list):
        for part in parts:
            if not isinstance(part, dict):
                continue
            text = part.get("text")
            if not isinstance(text, str) or not text:
                continue
            events.append(ReasoningDelta(text) if part.get("thought") else AnswerDelta(text))
    elif isinstance(chunk.get("text"), str) and chunk["text"]:
        events.append(AnswerDelta(chunk["text"]))

    usage = Usage.from_mapping(
        chunk.get("usageMetadata"),
        input_key="promptTokenCount",
        output_key="candidatesTokenCount",
        reasoning_key="thoughtsTokenCount",
        total_key="totalTokenCount",
    )
    if not usage.is_empty():
        events.append(UsageEvent(usage))
    return events


class GoogleAdapter(ProviderAdapter):
    key = "google"
    display_name = "Google"
    api_key_env = "GOOGLE_API_KEY"
    default_base_url = "https://generativelanguage.googleapis.com/v1beta"

    def auth_headers(self) -> dict[str, str]:
        return {"Content-Type": "application/json", "x-goog-api-key": self.api_key}

    def build_body(self, request: StreamRequest) -> dict[str, Any]:
        system_parts = [
            {"text": message.content}
            for message in request.messages
            if message.role == "system" and (message.content or "").strip()
        ]
        contents = [
            {
                "role": "model" if message.role == "assistant" else "user",
                "parts": [{"text": message.content}],
            }
            for message in request.messages
            if message.role in ("user", "assistant") and (message.content or "").strip()
        ]
        body: dict[str, Any] = {"contents": contents}
        if system_parts:
            body["systemInstruction"] = {"parts": system_parts}
        if request.effort is not ReasoningEffort.OFF:
            body["generationConfig"] = {"thinkingConfig": {"includeThoughts": True}}
        return body

    async def reasoning_stream(self, request: StreamRequest) -> AsyncIterator[CanonicalEvent]:
        self.require_api_key()
        url = f"{self.base_url}/models/{strip_model_prefix(request.model)}:streamGenerateContent?alt=sse"
        last_chunk: dict[str, Any] | None = None

        messages = self.stream_sse(url, self.build_body(request), self.auth_headers(), request)
        async with aclosing(messages):
            async for message in messages:
                try:
                    chunk = decode_json_object(message.data)
                except ParseError as e:
                    log.debug("Skipping malformed stream chunk", provider=self.key, error=str(e))
                    continue
                self.log_event(chunk)
                for event in decode_gemini_chunk(chunk):
                    yield event
                last_chunk = chunk

        yield StreamDone(raw=last_chunk)

    async def fetch_models(self) -> list[StandardizedModel]:
        self.require_api_key()
        models: list[StandardizedModel] = []
        page_token = ""
        while True:
            params = {"pageToken": page_token} if page_token else None
            payload = await self.get_json(f"{self.base_url}/models", headers=self.auth_headers(), params=params)
            if not isinstance(payload, dict):
                break
            for item in payload.get("models") or []:
                if not isinstance(item, dict) or not (item.get("name") or item.get("id")):
                    continue
                model_id = strip_model_prefix(str(item.get("name") or item.get("id")))
                models.append(
                    StandardizedModel(
                        id=model_id,
                        provider=self.key,
                        name=str(item.get("displayName") or model_id),
                        context_length=item.get("inputTokenLimit"),
                        max_completion_tokens=item.get("outputTokenLimit"),
                    )
                )
            page_token = str(payload.get("nextPageToken") or "")
            if not page_token:
                break
        return models
