"""Bounded web-search tool-calling loop for OpenAI-compatible endpoints."""

import asyncio
import json
import math
import time
from typing import Any, AsyncIterator, Awaitable, Callable

from maid.config import WebSearchConfig, get_config
from maid.exceptions import StreamAbortedError, ToolError, TransportError
from maid.llm.sse import parse_tool_arguments
from maid.llm.types import (
    AnswerDelta,
    CanonicalEvent,
    Message,
    StreamDone,
    ToolCallEvent,
    Usage,
    UsageEvent,
)
from maid.logging import get_logger
from maid.tools.registry import ToolRegistry

log = get_logger(__name__)

WEB_SEARCH_TOOL = "web_search"
WEB_SEARCH_ERROR_EVENT = "web_search_error"
MAX_SNIPPET_RESULTS = 5
MAX_CONTEXT_SNIPPETS = 6

FORCE_ANSWER_INSTRUCTION = "You must answer now using the provided web search snippets. Do not call tools."
NO_SNIPPETS_CONTEXT = "No usable search snippets were returned."
SNIPPET_FALLBACK_PREFIX = "I couldn't get the model to stop tool-calling, but here are the latest web results I found:"
SEARCH_FAILED_NOTICE = (
    "I couldn't complete web search: the model kept requesting tools and no usable results were returned."
)

CompletionFn = Callable[[dict[str, Any]], Awaitable[Any]]


def compact_snippet(payload: Any) -> str | None:
    """Condense a search payload to numbered ``title — snippet (url)`` lines."""
    if not isinstance(payload, dict):
        return None
    query = payload.get("query").strip() if isinstance(payload.get("query"), str) else ""
    results = payload.get("results") if isinstance(payload.get("results"), list) else []
    lines = []
    for index, item in enumerate(results[:MAX_SNIPPET_RESULTS], start=1):
        if not isinstance(item, dict):
            continue
        title = item.get("title").strip() if isinstance(item.get("title"), str) else ""
        snippet = item.get("snippet").strip() if isinstance(item.get("snippet"), str) else ""
        url = item.get("url").strip() if isinstance(item.get("url"), str) else ""
        core = " — ".join(part for part in (title, snippet) if part)
        if core:
            lines.append(f"{index}. {core}" + (f" ({url})" if url else ""))
    if not lines:
        return None
    return (f"Query: {query}\n" if query else "") + "\n".join(lines)


def coerce_top_k(value: Any, default: int) -> int | float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if not math.isfinite(number):
        return default
    return int(number) if number.is_integer() else number


def final_text(payload: Any) -> str:
    """Answer text of a non-tool completion, falling back to the JSON dump."""
    message = _first_message(payload)
    if isinstance(message.get("content"), str):
        return message["content"]
    if isinstance(payload, dict) and isinstance(payload.get("output_text"), str):
        return payload["output_text"]
    return json.dumps(payload)


def _first_message(payload: Any) -> dict[str, Any]:
    choices = payload.get("choices") if isinstance(payload, dict) else None
    if isinstance(choices, list) and choices and isinstance(choices[0], dict):
        message = choices[0].get("message")
        if isinstance(message, dict):
            return message
    return {}


class ToolCallingLoop:
    """Drive up to ``max_rounds`` tool rounds, then force a plain answer.

    Tool-call and tool messages are appended to the caller's ``messages``
    list. Each request is assembled as ``prefix + history + guidance + tool
    exchange``, so the guidance stays after the prior conversation.
    """

    def __init__(
        self,
        complete: CompletionFn,
        registry: ToolRegistry,
        max_rounds: int | None = None,
        default_top_k: int | None = None,
        config: WebSearchConfig | None = None,
    ):
        cfg = config or get_config().web_search
        self.complete = complete
        self.registry = registry
        self.max_rounds = max(1, int(max_rounds or cfg.max_rounds))
        self.default_top_k = int(default_top_k or cfg.default_top_k)

    async def run(
        self,
        model: str,
        messages: list[Message],
        prefix: list[Message] | None = None,
        guidance: list[Message] | None = None,
        system_prompt: str = "",
        abort_event: asyncio.Event | None = None,
    ) -> AsyncIterator[CanonicalEvent]:
        prefix = list(prefix or [])
        guidance = list(guidance or [])
        turn_start = len(messages)
        cache: dict[str, str] = {}
        snippets: list[str] = []
        usage = Usage()

        def request_messages() -> list[Message]:
            return prefix + messages[:turn_start] + guidance + messages[turn_start:]

        for round_index in range(self.max_rounds):
            self._check_abort(abort_event)
            body: dict[str, Any] = {
                "model": model,
                "messages": [message.to_chat_dict() for message in request_messages()],
                "tools": self.registry.get_definitions(),
                "tool_choice": "auto",
                "stream": False,
            }
            if system_prompt:
                body["system_prompt"] = system_prompt
            log.debug("Tool loop round", round=round_index + 1, model=model)
            payload = await self.complete(body)
            usage_event = self._accumulate_usage(usage, payload)
            if usage_event is not None:
                yield usage_event

            message = _first_message(payload)
            tool_calls = message.get("tool_calls") if isinstance(message.get("tool_calls"), list) else []
            if not tool_calls:
                answer = final_text(payload)
                if answer:
                    yield AnswerDelta(answer)
                yield StreamDone(raw=payload)
                return

            messages.append(
                Message(
                    role="assistant",
                    content=message["content"] if isinstance(message.get("content"), str) else "",
                    tool_calls=tool_calls,
                )
            )
            for call in tool_calls:
                async for event in self._handle_call(call, messages, cache, snippets, abort_event):
                    yield event

        self._check_abort(abort_event)
        log.info("Tool loop exhausted, forcing final answer", rounds=self.max_rounds, snippets=len(snippets))
        answer, payload = await self._forced_answer(model, request_messages(), snippets, usage)
        if not usage.is_empty():
            yield UsageEvent(Usage(**usage.as_dict()))
        yield AnswerDelta(answer)
        yield StreamDone(raw=payload)

    async def _handle_call(
        self,
        call: Any,
        messages: list[Message],
        cache: dict[str, str],
        snippets: list[str],
        abort_event: asyncio.Event | None,
    ) -> AsyncIterator[CanonicalEvent]:
        call = call if isinstance(call, dict) else {}
        function = call.get("function") if isinstance(call.get("function"), dict) else {}
        name = str(function.get("name") or "")
        call_id = str(call.get("id") or f"tool_{int(time.time() * 1000)}")
        arguments = parse_tool_arguments(function.get("arguments"))

        if name != WEB_SEARCH_TOOL or not self.registry.has_tool(name):
            log.warning("Model requested unknown tool", tool=name)
            result = json.dumps({"error": f"unknown_tool:{name}"})
        else:
            query = arguments.get("query").strip() if isinstance(arguments.get("query"), str) else ""
            top_k = coerce_top_k(arguments.get("top_k"), self.default_top_k)
            yield ToolCallEvent(WEB_SEARCH_TOOL, {"query": query, "top_k": top_k}, call_id)
            if not query:
                result = json.dumps({"error": "missing_query"})
            elif query in cache:
                result = cache[query]
            else:
                result = await self._execute_search(query, top_k, abort_event)
                cache[query] = result

            try:
                parsed = json.loads(result)
            except json.JSONDecodeError:
                parsed = None
            snippet = compact_snippet(parsed)
            if snippet:
                snippets.append(snippet)
            error = parsed.get("error") if isinstance(parsed, dict) else None
            if isinstance(error, str) and error:
                yield ToolCallEvent(WEB_SEARCH_ERROR_EVENT, {"query": query, "error": error}, call_id)

        messages.append(Message(role="tool", content=result, tool_call_id=call_id, name=name or WEB_SEARCH_TOOL))

    async def _execute_search(self, query: str, top_k: int | float, abort_event: asyncio.Event | None) -> str:
        try:
            result = await self.registry.execute(
                WEB_SEARCH_TOOL,
                {"query": query, "top_k": top_k},
                abort_event=abort_event,
            )
        except ToolError as e:
            self._check_abort(abort_event)
            return json.dumps({"query": query, "error": f"search_error:{e}"})
        if not result.success:
            return json.dumps({"query": query, "error": f"search_error:{result.error}"})
        return result.content

    async def _forced_answer(
        self,
        model: str,
        history: list[Message],
        snippets: list[str],
        usage: Usage,
    ) -> tuple[str, Any]:
        context = "\n\n".join(snippets[:MAX_CONTEXT_SNIPPETS]) if snippets else NO_SNIPPETS_CONTEXT
        body = {
            "model": model,
            "messages": [
                {"role": message.role, "content": message.content or ""}
                for message in history
                if message.role != "tool"
            ]
            + [
                {"role": "system", "content": FORCE_ANSWER_INSTRUCTION},
                {
                    "role": "user",
                    "content": f"Web search snippets:\n{context}\n\nReturn a concise final answer now.",
                },
            ],
            "stream": False,
        }
        payload: Any = None
        try:
            payload = await self.complete(body)
        except TransportError as e:
            log.warning("Forced final answer request failed", error=str(e))
        else:
            self._accumulate_usage(usage, payload)
            content = _first_message(payload).get("content")
            if isinstance(content, str) and content.strip():
                return content, payload

        if snippets:
            return f"{SNIPPET_FALLBACK_PREFIX}\n\n" + "\n\n".join(snippets[:MAX_CONTEXT_SNIPPETS]), payload
        return SEARCH_FAILED_NOTICE, payload

    @staticmethod
    def _accumulate_usage(total: Usage, payload: Any) -> UsageEvent | None:
        """Add one response's usage to the running total; return a snapshot event."""
        usage = Usage.from_mapping(payload.get("usage") if isinstance(payload, dict) else None)
        if usage.is_empty():
            return None
        total.add(usage)
        return UsageEvent(Usage(**total.as_dict()))

    @staticmethod
    def _check_abort(abort_event: asyncio.Event | None) -> None:
        if abort_event is not None and abort_event.is_set():
            raise StreamAbortedError("Tool loop aborted by caller")
