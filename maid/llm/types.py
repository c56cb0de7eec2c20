"""Provider-agnostic data types shared by adapters and the orchestrator."""

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union


class ReasoningEffort(str, Enum):
    """Abstract reasoning-intensity knob; each adapter maps it natively."""

    OFF = "off"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @classmethod
    def coerce(cls, value: "ReasoningEffort | str | None") -> "ReasoningEffort":
        """Parse a user/config value, defaulting to medium."""
        if isinstance(value, cls):
            return value
        normalized = str(value or "").strip().lower()
        for member in cls:
            if member.value == normalized:
                return member
        return cls.MEDIUM


@dataclass
class Message:
    """A message in the conversation."""

    role: str  # "system", "user", "assistant", "tool"
    content: str
    tool_call_id: str | None = None
    name: str | None = None
    tool_calls: list[dict[str, Any]] | None = None

    def to_chat_dict(self, include_tools: bool = True) -> dict[str, Any]:
        """Render as an OpenAI chat-completions message."""
        entry: dict[str, Any] = {"role": self.role, "content": self.content or ""}
        if include_tools:
            if self.tool_calls:
                entry["tool_calls"] = self.tool_calls
            if self.tool_call_id:
                entry["tool_call_id"] = self.tool_call_id
            if self.name and self.role == "tool":
                entry["name"] = self.name
        return entry


@dataclass
class Usage:
    """Token usage; any field may be unknown."""

    input_tokens: int | None = None
    output_tokens: int | None = None
    reasoning_tokens: int | None = None
    total_tokens: int | None = None

    def merge(self, other: "Usage") -> None:
        """Overwrite fields with the later snapshot's non-empty values."""
        for name in ("input_tokens", "output_tokens", "reasoning_tokens", "total_tokens"):
            value = getattr(other, name)
            if value is not None:
                setattr(self, name, value)

    def add(self, other: "Usage") -> None:
        """Sum another request's usage into this one."""
        for name in ("input_tokens", "output_tokens", "reasoning_tokens", "total_tokens"):
            value = getattr(other, name)
            if value is None:
                continue
            current = getattr(self, name)
            setattr(self, name, value if current is None else current + value)

    def finalize(self) -> None:
        if self.total_tokens is None and self.input_tokens is not None and self.output_tokens is not None:
            self.total_tokens = self.input_tokens + self.output_tokens

    def is_empty(self) -> bool:
        return all(
            getattr(self, name) is None
            for name in ("input_tokens", "output_tokens", "reasoning_tokens", "total_tokens")
        )

    def as_dict(self) -> dict[str, int]:
        return {
            name: value
            for name in ("input_tokens", "output_tokens", "reasoning_tokens", "total_tokens")
            if (value := getattr(self, name)) is not None
        }

    @classmethod
    def from_mapping(
        cls,
        data: Any,
        input_key: str = "prompt_tokens",
        output_key: str = "completion_tokens",
        reasoning_key: str = "reasoning_tokens",
        total_key: str = "total_tokens",
    ) -> "Usage":
        """Build from a provider usage dict, ignoring non-integer values."""
        if not isinstance(data, dict):
            return cls()

        def _int(key: str) -> int | None:
            value = data.get(key)
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                return None
            return int(value)

        reasoning = _int(reasoning_key)
        if reasoning is None:
            details = data.get("completion_tokens_details") or data.get("output_tokens_details")
            if isinstance(details, dict) and isinstance(details.get("reasoning_tokens"), int):
                reasoning = details["reasoning_tokens"]
        return cls(
            input_tokens=_int(input_key),
            output_tokens=_int(output_key),
            reasoning_tokens=reasoning,
            total_tokens=_int(total_key),
        )


# Canonical events


@dataclass
class ReasoningDelta:
    text: str


@dataclass
class AnswerDelta:
    text: str


@dataclass
class ToolCallEvent:
    name: str
    arguments: dict[str, Any]
    call_id: str = ""


@dataclass
class UsageEvent:
    usage: Usage


@dataclass
class AnnotationsEvent:
    """URL citations; ``replace`` swaps the accumulated list instead of extending it."""

    annotations: list[Any]
    replace: bool = False


@dataclass
class StreamDone:
    raw: Any = None


CanonicalEvent = Union[ReasoningDelta, AnswerDelta, ToolCallEvent, UsageEvent, AnnotationsEvent, StreamDone]


@dataclass
class StreamRequest:
    """Everything an adapter needs for one streaming call."""

    model: str
    messages: list[Message]
    effort: ReasoningEffort = ReasoningEffort.MEDIUM
    web_search: bool = False
    abort_event: asyncio.Event | None = None

    def aborted(self) -> bool:
        return self.abort_event is not None and self.abort_event.is_set()


@dataclass
class StreamResult:
    """Terminal value of one orchestrated call."""

    final_answer: str = ""
    thinking: str = ""
    usage: Usage = field(default_factory=Usage)
    raw: Any = None
    annotations: list[Any] = field(default_factory=list)
    model: str = ""
    elapsed_ms: int = 0
    stopped: bool = False


@dataclass
class StandardizedModel:
    """Model metadata normalized across providers."""

    id: str
    provider: str
    name: str = ""
    created: int | None = None
    owned_by: str | None = None
    context_length: int | None = None
    context_window: int | None = None
    max_completion_tokens: int | None = None
    active: bool | None = None
    pricing: dict[str, float] | None = None
    supported_parameters: list[str] | None = None

    def __post_init__(self) -> None:
        if not self.name:
            self.name = self.id
