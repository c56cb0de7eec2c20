"""Custom exceptions for maid."""


class MaidError(Exception):
    """Base exception for maid."""

    pass


class ConfigurationError(MaidError):
    """Configuration-related errors (missing credentials, unknown provider)."""

    pass


class LLMError(MaidError):
    """LLM-related errors."""

    pass


class TransportError(LLMError):
    """Provider returned a non-2xx status or an unusable response."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class StreamAbortedError(LLMError):
    """Streaming call was stopped by the caller's abort event."""

    pass


class ToolError(MaidError):
    """Tool execution errors."""

    pass


class ToolExecutionError(ToolError):
    """Tool execution failed."""

    def __init__(self, tool_name: str, message: str):
        super().__init__(f"Tool '{tool_name}' failed: {message}")
        self.tool_name = tool_name


class ToolNotFoundError(ToolError):
    """Tool not found in registry."""

    def __init__(self, tool_name: str):
        super().__init__(f"Tool not found: {tool_name}")
        self.tool_name = tool_name


class ParseError(MaidError):
    """Malformed JSON in a streamed fragment or tool-call arguments."""

    pass
