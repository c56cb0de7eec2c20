"""maid - streamed answers from many LLM backends with safe command extraction."""

__version__ = "0.1.0"

from maid.config import Config
from maid.orchestrator import StreamOptions, StreamOrchestrator, reasoning_stream
from maid.turn import ChatTurn, TurnResult

__all__ = [
    "ChatTurn",
    "Config",
    "StreamOptions",
    "StreamOrchestrator",
    "TurnResult",
    "__version__",
    "reasoning_stream",
]
