"""Tool registry and base tool class."""

import asyncio
from abc import ABC, abstractmethod
from typing import Any

from pydantic import BaseModel, Field, model_validator

from maid.exceptions import ToolExecutionError, ToolNotFoundError
from maid.logging import get_logger

log = get_logger(__name__)


class ToolResult(BaseModel):
    """Result from tool execution.

    ``content`` is what goes back to the model verbatim; ``data`` keeps the
    structured payload for callers that inspect it.
    """

    success: bool = True
    content: str = ""
    error: str | None = None
    data: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _normalize_failure_error(self) -> "ToolResult":
        """Ensure failed results always provide an error message."""
        if not self.success and not (self.error or "").strip():
            fallback = (self.content or "").strip()
            self.error = fallback or "Tool execution failed"
        return self


class Tool(ABC):
    """Base class for all tools."""

    name: str = ""
    description: str = ""
    parameters: dict[str, Any] = {}
    timeout_seconds: float = 30.0

    @abstractmethod
    async def execute(self, **kwargs: Any) -> ToolResult:
        """Execute the tool.

        Args:
            **kwargs: Tool-specific arguments plus ``_abort_event``

        Returns:
            ToolResult with success status and content
        """
        pass

    def get_definition(self) -> dict[str, Any]:
        """OpenAI chat-completions function tool definition."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }

    async def close(self) -> None:
        return None


class ToolRegistry:
    """Registry for managing available tools."""

    def __init__(self, tools: list[Tool] | None = None):
        self._tools: dict[str, Tool] = {}
        for tool in tools or []:
            self.register(tool)

    def register(self, tool: Tool) -> None:
        if not tool.name:
            raise ValueError("Tool must have a name")
        log.debug("Registering tool", tool=tool.name)
        self._tools[tool.name] = tool

    def has_tool(self, name: str) -> bool:
        return name in self._tools

    def get(self, name: str) -> Tool:
        """Get a tool by name.

        Raises:
            ToolNotFoundError if not found
        """
        if name not in self._tools:
            raise ToolNotFoundError(name)
        return self._tools[name]

    def get_definitions(self) -> list[dict[str, Any]]:
        return [tool.get_definition() for tool in self._tools.values()]

    async def close(self) -> None:
        for tool in self._tools.values():
            await tool.close()

    @staticmethod
    async def _cancel_task(task: asyncio.Task[Any] | None) -> None:
        """Cancel task and await it to avoid pending task warnings."""
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    @staticmethod
    async def _bridge_abort_event(source: asyncio.Event, target: asyncio.Event) -> None:
        """Mirror external abort event to local tool abort event."""
        await source.wait()
        target.set()

    async def execute(
        self,
        name: str,
        arguments: dict[str, Any],
        abort_event: asyncio.Event | None = None,
    ) -> ToolResult:
        """Execute a tool by name with its timeout and the caller's abort event.

        Raises:
            ToolNotFoundError if tool not found
            ToolExecutionError if execution fails, times out or is aborted
        """
        tool = self.get(name)

        execute_task: asyncio.Task[ToolResult] | None = None
        abort_wait_task: asyncio.Task[bool] | None = None
        bridge_task: asyncio.Task[None] | None = None
        tool_abort_event = asyncio.Event()
        try:
            log.info("Executing tool", tool=name, args=arguments)
            timeout_seconds = max(1.0, float(tool.timeout_seconds or 30.0))

            if abort_event is not None:
                bridge_task = asyncio.create_task(self._bridge_abort_event(abort_event, tool_abort_event))

            execute_task = asyncio.create_task(tool.execute(**arguments, _abort_event=tool_abort_event))
            abort_wait_task = asyncio.create_task(tool_abort_event.wait())
            done, _ = await asyncio.wait(
                {execute_task, abort_wait_task},
                timeout=timeout_seconds,
                return_when=asyncio.FIRST_COMPLETED,
            )

            if execute_task in done:
                result = await execute_task
                if not isinstance(result, ToolResult):
                    raise ToolExecutionError(name, "Tool returned invalid result payload")
                log.info("Tool executed", tool=name, success=result.success)
                return result

            if abort_wait_task in done:
                await self._cancel_task(execute_task)
                raise ToolExecutionError(name, "Execution aborted")

            tool_abort_event.set()
            await self._cancel_task(execute_task)
            timeout_label = int(timeout_seconds) if timeout_seconds.is_integer() else timeout_seconds
            raise ToolExecutionError(name, f"Execution timed out after {timeout_label}s")
        except asyncio.CancelledError:
            tool_abort_event.set()
            await self._cancel_task(execute_task)
            raise
        except ToolExecutionError:
            raise
        except Exception as e:
            log.error("Tool execution failed", tool=name, error=str(e))
            raise ToolExecutionError(name, str(e)) from e
        finally:
            await self._cancel_task(abort_wait_task)
            await self._cancel_task(bridge_task)
