"""Tools the model can call."""

from maid.tools.registry import Tool, ToolRegistry, ToolResult
from maid.tools.web_search import DuckDuckGoSearch, WebSearchTool

__all__ = ["DuckDuckGoSearch", "Tool", "ToolRegistry", "ToolResult", "WebSearchTool"]
