"""OpenRouter adapter (chat completions with reasoning_details)."""

import os
from typing import Any

from maid.exceptions import TransportError
from maid.llm.providers.chat_completions import ChatCompletionsAdapter
from maid.llm.types import ReasoningEffort, StandardizedModel, StreamRequest
from maid.logging import get_logger
from maid.prompt import OPENROUTER_SYSTEM_PROMPT

log = get_logger(__name__)

REASONING_PARAMETERS = ("reasoning", "include_reasoning")
PRICING_FIELDS = ("prompt", "completion", "request", "image", "web_search", "internal_reasoning")


def _first_env(*names: str) -> str:
    for name in names:
        value = os.environ.get(name, "").strip()
        if value:
            return value
    return ""


def _positive_float(value: Any) -> float | None:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number or None


class OpenRouterAdapter(ChatCompletionsAdapter):
    """OpenRouter chat completions with effort/exclude reasoning config."""

    key = "openrouter"
    display_name = "OpenRouter"
    api_key_env = "OPENROUTER_API_KEY"
    base_url_env = "OPENROUTER_BASE_URL"
    default_base_url = "https://openrouter.ai/api/v1"

    def request_headers(self) -> dict[str, str]:
        headers = self.auth_headers()
        referer = _first_env("OPENROUTER_REFERRER", "OPENROUTER_SITE_URL", "SITE_URL")
        title = _first_env("OPENROUTER_TITLE", "OPENROUTER_APP_TITLE", "APP_TITLE")
        if referer:
            headers["HTTP-Referer"] = referer
        if title:
            headers["X-Title"] = title
        return headers

    def build_messages(self, request: StreamRequest) -> list[dict[str, Any]]:
        messages = super().build_messages(request)
        if not any(message.get("role") == "system" for message in messages):
            system_prompt = self.config.chat.system_prompt.strip() or OPENROUTER_SYSTEM_PROMPT
            messages.insert(0, {"role": "system", "content": system_prompt})
        return messages

    async def model_supports_reasoning(self, model: str) -> bool:
        """Check the model's supported_parameters.

        A failed lookup keeps reasoning on (OpenRouter usually tolerates it);
        a model that is listed without the parameter, or not listed at all,
        gets no reasoning config.
        """
        try:
            models = await self.list_models()
        except TransportError as e:
            log.debug("Model list lookup failed, sending reasoning config", model=model, error=str(e))
            return True
        match = next((item for item in models if item.id == model), None)
        supported = (match.supported_parameters if match else None) or []
        return any(param in supported for param in REASONING_PARAMETERS)

    @staticmethod
    def reasoning_config(effort: ReasoningEffort) -> dict[str, Any]:
        if effort is ReasoningEffort.OFF:
            return {"exclude": True}
        return {"effort": effort.value}

    async def build_body(self, request: StreamRequest) -> dict[str, Any]:
        body: dict[str, Any] = {
            "model": request.model,
            "plugins": [{"id": "web"}] if request.web_search else [],
            "messages": self.build_messages(request),
            "stream": True,
        }
        if await self.model_supports_reasoning(request.model):
            body["reasoning"] = self.reasoning_config(request.effort)
        log.debug(
            "OpenRouter request prepared",
            model=request.model,
            effort=request.effort.value,
            reasoning=body.get("reasoning"),
        )
        return body

    def model_from_payload(self, item: dict[str, Any]) -> StandardizedModel:
        top_provider = item.get("top_provider") if isinstance(item.get("top_provider"), dict) else {}
        raw_pricing = item.get("pricing") if isinstance(item.get("pricing"), dict) else None
        pricing = None
        if raw_pricing is not None:
            pricing = {
                name: value
                for name in PRICING_FIELDS
                if (value := _positive_float(raw_pricing.get(name))) is not None
            }
        supported = item.get("supported_parameters")
        return StandardizedModel(
            id=str(item.get("id")),
            provider=self.key,
            name=str(item.get("name") or item.get("id")),
            created=item.get("created"),
            owned_by=item.get("owned_by"),
            context_length=top_provider.get("context_length") or item.get("context_length"),
            pricing=pricing,
            supported_parameters=list(supported) if isinstance(supported, list) else None,
        )
