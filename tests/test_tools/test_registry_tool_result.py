from maid.tools.registry import ToolResult


def test_tool_result_populates_error_from_content_on_failure() -> None:
    result = ToolResult(success=False, content="search backend unreachable")

    assert result.error == "search backend unreachable"


def test_tool_result_uses_generic_error_when_failure_is_empty() -> None:
    result = ToolResult(success=False)

    assert result.error == "Tool execution failed"


def test_tool_result_keeps_structured_payload() -> None:
    result = ToolResult(content='{"query": "x"}', data={"query": "x"})

    assert result.success is True
    assert result.error is None
    assert result.data == {"query": "x"}
