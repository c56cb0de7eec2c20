"""One chat turn: stream an answer, strip the command tag, update history."""

import asyncio
from dataclasses import dataclass, field
from typing import Any

from maid.command_tags import CommandTagExtractor, looks_executable_shell_command
from maid.llm.types import Message, ReasoningEffort, StreamResult
from maid.logging import get_logger
from maid.orchestrator import (
    DeltaCallback,
    StreamOptions,
    StreamOrchestrator,
    ToolCallCallback,
)

log = get_logger(__name__)


@dataclass
class TurnResult:
    answer: str = ""
    command: str | None = None
    commands: list[str] = field(default_factory=list)
    stopped: bool = False
    stream: StreamResult | None = None


class ChatTurn:
    """Runs turns against a shared, caller-owned message history."""

    def __init__(
        self,
        messages: list[Message] | None = None,
        orchestrator: StreamOrchestrator | None = None,
        provider: str | None = None,
        model: str | None = None,
        effort: ReasoningEffort | str | None = None,
        web_search: bool | None = None,
    ):
        self.messages = messages if messages is not None else []
        self.orchestrator = orchestrator or StreamOrchestrator()
        self.provider = provider
        self.model = model
        self.effort = effort
        self.web_search = web_search

    async def run(
        self,
        user_text: str,
        on_visible_delta: DeltaCallback | None = None,
        on_reasoning_delta: DeltaCallback | None = None,
        on_tool_call: ToolCallCallback | None = None,
        abort_event: asyncio.Event | None = None,
        **options: Any,
    ) -> TurnResult:
        """Stream one answer to ``user_text``.

        Only text outside ``<command>`` tags reaches ``on_visible_delta``.
        The visible answer is appended to history even when stopped.
        """
        if user_text.strip():
            self.messages.append(Message(role="user", content=user_text))

        extractor = CommandTagExtractor()
        visible_parts: list[str] = []
        commands: list[str] = []

        def emit(text: str) -> None:
            if not text:
                return
            visible_parts.append(text)
            if on_visible_delta:
                on_visible_delta(text)

        def on_answer_delta(delta: str) -> None:
            fed = extractor.feed(delta)
            commands.extend(fed.commands)
            emit(fed.visible)

        stream = await self.orchestrator.run(
            StreamOptions(
                messages=self.messages,
                provider=self.provider,
                model=self.model,
                effort=self.effort,
                web_search=self.web_search,
                abort_event=abort_event,
                on_reasoning_delta=on_reasoning_delta,
                on_answer_delta=on_answer_delta,
                on_tool_call=on_tool_call,
                **options,
            )
        )

        result = TurnResult(commands=commands, stopped=stream.stopped, stream=stream)
        # A half-streamed command is never shown after a stop
        emit(extractor.flush(keep_unterminated=not stream.stopped).visible)
        if not stream.stopped:
            if commands and looks_executable_shell_command(commands[-1]):
                result.command = commands[-1]
            elif commands:
                log.debug("Ignoring tagged text that does not look executable", command=commands[-1])

        result.answer = "".join(visible_parts)
        if result.answer:
            self.messages.append(Message(role="assistant", content=result.answer))
        return result


async def run_chat_turn(messages: list[Message], user_text: str, **kwargs: Any) -> TurnResult:
    """Convenience wrapper around a one-off ChatTurn."""
    turn_keys = ("orchestrator", "provider", "model", "effort", "web_search")
    turn = ChatTurn(messages, **{key: kwargs.pop(key) for key in turn_keys if key in kwargs})
    return await turn.run(user_text, **kwargs)
