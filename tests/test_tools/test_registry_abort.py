import asyncio

import pytest

from maid.exceptions import ToolExecutionError, ToolNotFoundError
from maid.tools.registry import Tool, ToolRegistry, ToolResult


class EchoTool(Tool):
    name = "echo"
    description = "Echo"
    parameters = {
        "type": "object",
        "properties": {"text": {"type": "string"}},
        "required": ["text"],
    }

    def __init__(self):
        self.abort_events: list[asyncio.Event] = []

    async def execute(self, text: str = "", **kwargs):
        self.abort_events.append(kwargs["_abort_event"])
        return ToolResult(success=True, content=text)


class SlowTool(Tool):
    name = "slow"
    description = "Slow"
    parameters = {"type": "object", "properties": {}, "required": []}
    timeout_seconds = 1.0

    async def execute(self, **kwargs):
        await asyncio.sleep(2.0)
        return ToolResult(success=True, content="done")


class CancellableTool(Tool):
    name = "cancellable"
    description = "Cancellable"
    parameters = {"type": "object", "properties": {}, "required": []}
    timeout_seconds = 20.0

    def __init__(self):
        self.cancelled = False

    async def execute(self, **kwargs):
        try:
            await asyncio.sleep(10.0)
            return ToolResult(success=True, content="done")
        except asyncio.CancelledError:
            self.cancelled = True
            raise


class BrokenTool(Tool):
    name = "broken"
    description = "Raises"
    parameters = {"type": "object", "properties": {}, "required": []}

    async def execute(self, **kwargs):
        raise RuntimeError("boom")


@pytest.mark.asyncio
async def test_registry_executes_tool_and_passes_abort_event():
    tool = EchoTool()
    registry = ToolRegistry([tool])

    result = await registry.execute("echo", {"text": "hi"})

    assert result.content == "hi"
    assert isinstance(tool.abort_events[0], asyncio.Event)


@pytest.mark.asyncio
async def test_registry_raises_for_unknown_tool():
    registry = ToolRegistry()

    with pytest.raises(ToolNotFoundError, match="missing"):
        await registry.execute("missing", {})


@pytest.mark.asyncio
async def test_registry_uses_tool_level_timeout_seconds():
    registry = ToolRegistry([SlowTool()])

    with pytest.raises(ToolExecutionError, match="timed out"):
        await registry.execute("slow", {})


@pytest.mark.asyncio
async def test_registry_abort_event_cancels_running_tool_execution():
    tool = CancellableTool()
    registry = ToolRegistry([tool])

    abort_event = asyncio.Event()
    execution = asyncio.create_task(registry.execute("cancellable", {}, abort_event=abort_event))
    await asyncio.sleep(0.05)
    abort_event.set()

    with pytest.raises(ToolExecutionError, match="aborted"):
        await execution
    assert tool.cancelled is True


@pytest.mark.asyncio
async def test_registry_wraps_unexpected_tool_errors():
    registry = ToolRegistry([BrokenTool()])

    with pytest.raises(ToolExecutionError, match="boom"):
        await registry.execute("broken", {})


def test_definitions_use_function_tool_shape():
    registry = ToolRegistry([EchoTool()])

    (definition,) = registry.get_definitions()

    assert definition["type"] == "function"
    assert definition["function"]["name"] == "echo"
    assert definition["function"]["parameters"]["required"] == ["text"]
