"""Provider adapters."""

from maid.llm.providers.anthropic import AnthropicAdapter
from maid.llm.providers.chat_completions import ChatCompletionsAdapter
from maid.llm.providers.compat import CerebrasAdapter, GroqAdapter, XAIAdapter
from maid.llm.providers.custom import CustomAdapter
from maid.llm.providers.google import GoogleAdapter
from maid.llm.providers.openai import OpenAIAdapter
from maid.llm.providers.openrouter import OpenRouterAdapter

__all__ = [
    "AnthropicAdapter",
    "CerebrasAdapter",
    "ChatCompletionsAdapter",
    "CustomAdapter",
    "GoogleAdapter",
    "GroqAdapter",
    "OpenAIAdapter",
    "OpenRouterAdapter",
    "XAIAdapter",
]
