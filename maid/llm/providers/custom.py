"""Custom OpenAI-compatible endpoint (LM Studio, llama.cpp, ollama, ...)."""

import json
from contextlib import aclosing
from datetime import date
from typing import Any, AsyncIterator
from urllib.parse import urlsplit, urlunsplit

import httpx

from maid.config import DEFAULT_CUSTOM_ENDPOINT, Config, get_config
from maid.exceptions import ParseError, TransportError
from maid.llm.providers.chat_completions import ChatCompletionsAdapter, decode_chat_chunk
from maid.llm.sse import DONE_SENTINEL, decode_json_object, iter_sse
from maid.llm.types import (
    AnswerDelta,
    CanonicalEvent,
    Message,
    StandardizedModel,
    StreamDone,
    StreamRequest,
    UsageEvent,
)
from maid.logging import get_logger
from maid.prompt import default_system_prompt
from maid.tools.registry import ToolRegistry
from maid.tools.tool_loop import ToolCallingLoop, final_text
from maid.tools.web_search import DuckDuckGoSearch, WebSearchTool

log = get_logger(__name__)


def normalize_custom_endpoint(endpoint: str | None) -> str:
    """Normalize a user-supplied endpoint to ``scheme://host[:port]/.../v1``."""
    raw = (endpoint or "").strip() or DEFAULT_CUSTOM_ENDPOINT
    if "://" not in raw:
        raw = f"http://{raw}"
    parts = urlsplit(raw)
    path = parts.path.rstrip("/")
    if not path.endswith("/v1"):
        path = f"{path}/v1"
    return urlunsplit((parts.scheme, parts.netloc, path, "", ""))


def web_search_guidance(today: date | None = None) -> str:
    day = (today or date.today()).isoformat()
    return (
        f"Web-search guidance: today is {day}. For time-sensitive queries, prefer terms like "
        "latest/current/breaking and avoid forcing an exact date unless the user explicitly asks for one."
    )


def parse_custom_models(payload: Any) -> list[str]:
    """Model ids from ``{models}``, ``{data}`` or ``{data: {models}}``; deduplicated."""
    items: Any = []
    if isinstance(payload, dict):
        data = payload.get("data")
        if isinstance(payload.get("models"), list):
            items = payload["models"]
        elif isinstance(data, list):
            items = data
        elif isinstance(data, dict) and isinstance(data.get("models"), list):
            items = data["models"]

    ids: list[str] = []
    for item in items:
        if isinstance(item, str):
            model_id = item.strip()
        elif isinstance(item, dict):
            model_id = str(item.get("id") or item.get("name") or "").strip()
        else:
            model_id = ""
        if model_id and model_id not in ids:
            ids.append(model_id)
    return ids


class CustomAdapter(ChatCompletionsAdapter):
    """Chat completions against a local server; web search runs through the tool loop."""

    key = "custom"
    display_name = "Custom endpoint"
    requires_api_key = False
    include_tool_messages = True

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        client: httpx.AsyncClient | None = None,
        config: Config | None = None,
        tools: ToolRegistry | None = None,
    ):
        cfg = config or get_config()
        super().__init__(
            api_key=api_key or cfg.custom.api_key or None,
            base_url=normalize_custom_endpoint(base_url or cfg.custom.endpoint),
            client=client,
            config=cfg,
        )
        self.tools = tools
        self._owns_tools = tools is None

    def get_tools(self) -> ToolRegistry:
        if self.tools is None:
            self.tools = ToolRegistry([WebSearchTool(DuckDuckGoSearch(config=self.config.web_search))])
        return self.tools

    async def close(self) -> None:
        """Close the search tools this adapter built, then the HTTP client."""
        if self._owns_tools and self.tools is not None:
            await self.tools.close()
        await super().close()

    def request_headers(self) -> dict[str, str]:
        headers = self.auth_headers()
        headers["Accept"] = "application/json"
        return headers

    def system_prefix(self, request: StreamRequest) -> list[Message]:
        if any(message.role == "system" for message in request.messages):
            return []
        return [Message(role="system", content=default_system_prompt(self.config.chat.system_prompt))]

    @staticmethod
    def first_system_prompt(messages: list[Message]) -> str:
        return next((message.content for message in messages if message.role == "system"), "")

    async def complete(self, body: dict[str, Any]) -> Any:
        """Non-streaming chat completion."""
        return await self.post_json(f"{self.base_url}/chat/completions", body, headers=self.request_headers())

    async def reasoning_stream(self, request: StreamRequest) -> AsyncIterator[CanonicalEvent]:
        prefix = self.system_prefix(request)
        system_prompt = self.first_system_prompt(prefix + request.messages)

        if request.web_search:
            loop = ToolCallingLoop(self.complete, self.get_tools(), config=self.config.web_search)
            events = loop.run(
                request.model,
                request.messages,
                prefix=prefix,
                guidance=[Message(role="system", content=web_search_guidance())],
                system_prompt=system_prompt,
                abort_event=request.abort_event,
            )
            async with aclosing(events):
                async for event in events:
                    yield event
            return

        body: dict[str, Any] = {
            "model": request.model,
            "messages": [message.to_chat_dict() for message in prefix + request.messages],
            "stream": True,
        }
        if system_prompt:
            body["system_prompt"] = system_prompt
        events = self._stream_or_json(body, request)
        async with aclosing(events):
            async for event in events:
                yield event

    async def _stream_or_json(self, body: dict[str, Any], request: StreamRequest) -> AsyncIterator[CanonicalEvent]:
        """SSE when the server honors ``stream``; otherwise a single JSON body."""
        url = f"{self.base_url}/chat/completions"
        log.debug("Calling provider", provider=self.key, model=request.model, url=url)
        seen_reasoning_ids: set[str] = set()
        try:
            async with self.client.stream("POST", url, json=body, headers=self.request_headers()) as response:
                await self.raise_for_status(response)
                if "text/event-stream" not in response.headers.get("content-type", ""):
                    await response.aread()
                    try:
                        payload = response.json()
                    except json.JSONDecodeError as e:
                        raise TransportError(f"{self.name} response decode error: {e}") from e
                    answer = self._json_answer(payload)
                    if answer:
                        yield AnswerDelta(answer)
                    yield StreamDone(raw=payload)
                    return

                async for message in iter_sse(response, request):
                    if message.data == DONE_SENTINEL:
                        break
                    try:
                        chunk = decode_json_object(message.data)
                    except ParseError:
                        continue
                    self.log_event(chunk)
                    for event in decode_chat_chunk(chunk, seen_reasoning_ids):
                        # Only answer text and usage from local servers
                        if isinstance(event, (AnswerDelta, UsageEvent)):
                            yield event
        except httpx.HTTPError as e:
            raise TransportError(f"{self.name} streaming error: {e}") from e
        yield StreamDone()

    @staticmethod
    def _json_answer(payload: Any) -> str:
        content = final_text(payload)
        if not content.strip() and isinstance(payload, dict):
            output_text = payload.get("output_text")
            if isinstance(output_text, str) and output_text.strip():
                return output_text
            return json.dumps(payload)
        return content

    async def fetch_models(self) -> list[StandardizedModel]:
        payload = await self.get_json(f"{self.base_url}/models", headers=self.request_headers())
        return [StandardizedModel(id=model_id, provider=self.key) for model_id in parse_custom_models(payload)]
