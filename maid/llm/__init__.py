"""LLM provider layer: canonical types, adapters and their registry."""

from maid.llm.types import (
    AnnotationsEvent,
    AnswerDelta,
    CanonicalEvent,
    Message,
    ReasoningDelta,
    ReasoningEffort,
    StandardizedModel,
    StreamDone,
    StreamRequest,
    StreamResult,
    ToolCallEvent,
    Usage,
    UsageEvent,
)

__all__ = [
    "AnnotationsEvent",
    "AnswerDelta",
    "CanonicalEvent",
    "Message",
    "ReasoningDelta",
    "ReasoningEffort",
    "StandardizedModel",
    "StreamDone",
    "StreamRequest",
    "StreamResult",
    "ToolCallEvent",
    "Usage",
    "UsageEvent",
]
