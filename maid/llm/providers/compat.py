"""Hosted OpenAI-compatible backends: Groq, xAI, Cerebras."""

from typing import Any

from maid.llm.providers.chat_completions import ChatCompletionsAdapter
from maid.llm.types import ReasoningEffort, StandardizedModel, StreamRequest

# Groq only exposes reasoning controls on these model families
GROQ_REASONING_MODEL_MARKERS = ("deepseek-r1", "gpt-oss")


def is_groq_reasoning_model(model: str | None) -> bool:
    name = (model or "").lower()
    return any(marker in name for marker in GROQ_REASONING_MODEL_MARKERS)


class GroqAdapter(ChatCompletionsAdapter):
    """Groq; reasoning params only for known reasoning model families."""

    key = "groq"
    display_name = "Groq"
    api_key_env = "GROQ_API_KEY"
    default_base_url = "https://api.groq.com/openai/v1"

    def apply_effort(self, body: dict[str, Any], request: StreamRequest) -> None:
        if request.effort is ReasoningEffort.OFF or not is_groq_reasoning_model(request.model):
            return
        body["reasoning_effort"] = request.effort.value
        # parsed format puts reasoning in delta.reasoning instead of <think> tags
        body["reasoning_format"] = "parsed"

    def model_from_payload(self, item: dict[str, Any]) -> StandardizedModel:
        return StandardizedModel(
            id=str(item.get("id")),
            provider=self.key,
            created=item.get("created"),
            owned_by=item.get("owned_by"),
            active=item.get("active"),
            context_window=item.get("context_window"),
            max_completion_tokens=item.get("max_completion_tokens"),
        )


class XAIAdapter(ChatCompletionsAdapter):
    """xAI Grok; string ``reasoning_effort``."""

    key = "xai"
    display_name = "xAI"
    api_key_env = "XAI_API_KEY"
    default_base_url = "https://api.x.ai/v1"

    def apply_effort(self, body: dict[str, Any], request: StreamRequest) -> None:
        if request.effort is not ReasoningEffort.OFF:
            body["reasoning_effort"] = request.effort.value
        body["stream_options"] = {"include_usage": True}


class CerebrasAdapter(ChatCompletionsAdapter):
    """Cerebras; no reasoning controls, effort is ignored."""

    key = "cerebras"
    display_name = "Cerebras"
    api_key_env = "CEREBRAS_API_KEY"
    default_base_url = "https://api.cerebras.ai/v1"
