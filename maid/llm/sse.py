"""Server-sent event decoding for provider streams."""

import json
from dataclasses import dataclass
from typing import Any, AsyncIterator

import httpx

from maid.exceptions import ParseError, StreamAbortedError
from maid.llm.types import StreamRequest

DONE_SENTINEL = "[DONE]"


@dataclass
class SSEMessage:
    """One decoded ``data:`` payload and the ``event:`` name preceding it."""

    event: str
    data: str


async def iter_sse(response: httpx.Response, request: StreamRequest | None = None) -> AsyncIterator[SSEMessage]:
    """Yield SSE messages line by line.

    Each ``data:`` line is treated as one complete message since every
    provider here sends single-line JSON payloads, and some local
    OpenAI-compatible servers omit the blank separator line.
    """
    event_name = ""
    async for raw_line in response.aiter_lines():
        if request is not None and request.aborted():
            raise StreamAbortedError("Stream aborted by caller")
        line = raw_line.strip()
        if not line or line.startswith(":"):
            continue
        if line.startswith("event:"):
            event_name = line[6:].strip()
            continue
        if not line.startswith("data:"):
            continue
        data = line[5:].strip()
        if not data:
            continue
        yield SSEMessage(event=event_name, data=data)
        event_name = ""


def decode_json_object(raw: str) -> dict[str, Any]:
    """Decode a JSON object payload.

    Raises:
        ParseError if the payload is not valid JSON or not an object
    """
    try:
        value = json.loads(raw)
    except (json.JSONDecodeError, TypeError) as e:
        raise ParseError(f"Malformed JSON payload: {e}") from e
    if not isinstance(value, dict):
        raise ParseError("JSON payload is not an object")
    return value


def parse_tool_arguments(raw: Any) -> dict[str, Any]:
    """Parse tool-call arguments defensively; malformed input yields ``{}``."""
    if isinstance(raw, dict):
        return raw
    if not isinstance(raw, str):
        return {}
    try:
        return decode_json_object(raw)
    except ParseError:
        return {}
