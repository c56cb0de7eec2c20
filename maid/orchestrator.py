"""Stream orchestrator: drives one adapter stream into callbacks and a result."""

import asyncio
import time
from contextlib import aclosing
from dataclasses import dataclass, field
from typing import Any, Callable

from maid.config import Config, get_config
from maid.exceptions import StreamAbortedError
from maid.llm.base import ProviderAdapter
from maid.llm.registry import AdapterRegistry, default_registry
from maid.llm.types import (
    AnnotationsEvent,
    AnswerDelta,
    Message,
    ReasoningDelta,
    ReasoningEffort,
    StreamDone,
    StreamRequest,
    StreamResult,
    ToolCallEvent,
    UsageEvent,
)
from maid.logging import get_logger

log = get_logger(__name__)

DeltaCallback = Callable[[str], None]
ToolCallCallback = Callable[[str, dict[str, Any]], None]
AnnotationsCallback = Callable[[list[Any]], None]


@dataclass
class StreamOptions:
    """One streaming call. Unset provider/model/effort come from config."""

    messages: list[Message]
    provider: str | None = None
    model: str | None = None
    effort: ReasoningEffort | str | None = None
    web_search: bool | None = None
    api_key: str | None = None
    base_url: str | None = None
    abort_event: asyncio.Event | None = None
    on_reasoning_delta: DeltaCallback | None = None
    on_answer_delta: DeltaCallback | None = None
    on_tool_call: ToolCallCallback | None = None
    on_annotations: AnnotationsCallback | None = None
    adapter: ProviderAdapter | None = field(default=None, repr=False)


class StreamOrchestrator:
    """Select an adapter, consume its canonical events, build the StreamResult.

    Abort (the event firing or ``StreamAbortedError``) is not an error: the
    result comes back with ``stopped=True`` and exactly the text already
    delivered to callbacks.
    """

    def __init__(self, registry: AdapterRegistry | None = None, config: Config | None = None):
        self.registry = registry or default_registry()
        self.config = config

    def build_request(self, options: StreamOptions, cfg: Config) -> StreamRequest:
        return StreamRequest(
            model=options.model or cfg.model.model,
            messages=options.messages,
            effort=ReasoningEffort.coerce(options.effort if options.effort is not None else cfg.model.effort),
            web_search=cfg.model.web_search if options.web_search is None else bool(options.web_search),
            abort_event=options.abort_event,
        )

    async def run(self, options: StreamOptions) -> StreamResult:
        cfg = self.config or get_config()
        owns_adapter = options.adapter is None
        adapter = options.adapter or self.registry.create(
            options.provider or cfg.model.provider,
            api_key=options.api_key or cfg.model.api_key or None,
            base_url=options.base_url or cfg.model.base_url or None,
            config=cfg,
        )
        request = self.build_request(options, cfg)
        result = StreamResult(model=request.model)
        started = time.monotonic()
        log.info("Starting stream", provider=adapter.key, model=request.model, effort=request.effort.value)

        consume_task = asyncio.create_task(self._consume(adapter, request, options, result))
        abort_wait_task = asyncio.create_task(options.abort_event.wait()) if options.abort_event else None
        try:
            if abort_wait_task is None:
                await consume_task
            else:
                done, _ = await asyncio.wait(
                    {consume_task, abort_wait_task},
                    return_when=asyncio.FIRST_COMPLETED,
                )
                if consume_task in done:
                    consume_task.result()
                else:
                    await self._cancel_task(consume_task)
                    result.stopped = True
        except StreamAbortedError:
            result.stopped = True
        except asyncio.CancelledError:
            await self._cancel_task(consume_task)
            raise
        finally:
            await self._cancel_task(abort_wait_task)
            if owns_adapter:
                await adapter.close()

        result.usage.finalize()
        result.elapsed_ms = int((time.monotonic() - started) * 1000)
        log.info(
            "Stream finished",
            provider=adapter.key,
            model=request.model,
            stopped=result.stopped,
            elapsed_ms=result.elapsed_ms,
            usage=result.usage.as_dict(),
        )
        return result

    async def _consume(
        self,
        adapter: ProviderAdapter,
        request: StreamRequest,
        options: StreamOptions,
        result: StreamResult,
    ) -> None:
        events = adapter.reasoning_stream(request)
        async with aclosing(events):
            async for event in events:
                if request.aborted():
                    raise StreamAbortedError("Stream aborted by caller")
                self._dispatch(event, options, result)

    def _dispatch(self, event: Any, options: StreamOptions, result: StreamResult) -> None:
        if isinstance(event, ReasoningDelta):
            result.thinking += event.text
            if options.on_reasoning_delta:
                options.on_reasoning_delta(event.text)
        elif isinstance(event, AnswerDelta):
            result.final_answer += event.text
            if options.on_answer_delta:
                options.on_answer_delta(event.text)
        elif isinstance(event, ToolCallEvent):
            if options.on_tool_call:
                options.on_tool_call(event.name, event.arguments)
        elif isinstance(event, UsageEvent):
            result.usage.merge(event.usage)
        elif isinstance(event, AnnotationsEvent):
            if event.replace:
                result.annotations = list(event.annotations)
            else:
                result.annotations.extend(event.annotations)
            if options.on_annotations:
                try:
                    options.on_annotations(list(result.annotations))
                except Exception as e:
                    log.warning("Annotations callback failed", error=str(e))
        elif isinstance(event, StreamDone):
            result.raw = event.raw

    @staticmethod
    async def _cancel_task(task: asyncio.Task[Any] | None) -> None:
        """Cancel task and await it to avoid pending task warnings."""
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except (asyncio.CancelledError, StreamAbortedError):
            pass


_orchestrator: StreamOrchestrator | None = None


async def reasoning_stream(options: StreamOptions | None = None, **kwargs: Any) -> StreamResult:
    """Run one call on a shared default orchestrator.

    Accepts either a ready ``StreamOptions`` or its fields as keywords.
    """
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = StreamOrchestrator()
    return await _orchestrator.run(options or StreamOptions(**kwargs))
