"""Provider adapter contract and shared HTTP helpers."""

import json
import os
from abc import ABC, abstractmethod
from typing import Any, AsyncIterator

import httpx

from maid.config import Config, get_config
from maid.exceptions import ConfigurationError, TransportError
from maid.llm.cache import ModelListCache
from maid.llm.sse import SSEMessage, iter_sse
from maid.llm.types import CanonicalEvent, StandardizedModel, StreamRequest
from maid.logging import get_logger

log = get_logger(__name__)


def extract_error_message(body: str) -> str:
    """Pull the human-readable message out of a provider error body.

    Providers disagree on the field: OpenAI/OpenRouter/Anthropic/Gemini use
    ``error.message``, some local servers send ``error`` as a string or a
    top-level ``message``. Falls back to the raw body.
    """
    text = (body or "").strip()
    if not text:
        return ""
    try:
        payload = json.loads(text)
    except json.JSONDecodeError:
        return text[:500]
    if isinstance(payload, list) and payload:
        payload = payload[0]
    if not isinstance(payload, dict):
        return text[:500]
    error = payload.get("error")
    if isinstance(error, dict):
        message = error.get("message")
        if isinstance(message, str) and message.strip():
            return message.strip()
    if isinstance(error, str) and error.strip():
        return error.strip()
    message = payload.get("message")
    if isinstance(message, str) and message.strip():
        return message.strip()
    return text[:500]


class ProviderAdapter(ABC):
    """Translate one backend's protocol into canonical events."""

    key: str = ""
    display_name: str = ""
    api_key_env: str = ""
    base_url_env: str = ""
    default_base_url: str = ""
    requires_api_key: bool = True

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        client: httpx.AsyncClient | None = None,
        config: Config | None = None,
    ):
        """Initialize adapter.

        Args:
            api_key: Explicit credential; falls back to config then environment
            base_url: Explicit API base; falls back to config, env, then default
            client: Optional pre-built httpx client (tests inject MockTransport)
            config: Optional config, defaults to the global one
        """
        cfg = config or get_config()
        self.config = cfg
        creds = cfg.providers.for_provider(self.key)
        self.api_key = (
            (api_key or "").strip()
            or creds.api_key.strip()
            or (os.environ.get(self.api_key_env, "").strip() if self.api_key_env else "")
        )
        resolved_base = (
            (base_url or "").strip()
            or creds.base_url.strip()
            or (os.environ.get(self.base_url_env, "").strip() if self.base_url_env else "")
            or self.default_base_url
        )
        self.base_url = resolved_base.rstrip("/")
        self.debug_events = bool(cfg.logging.debug_events)
        self.models_cache: ModelListCache[list[StandardizedModel]] = ModelListCache(
            cfg.models_cache_ttl_seconds
        )
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(cfg.request_timeout, connect=15.0),
            follow_redirects=True,
        )

    @property
    def name(self) -> str:
        return self.display_name or self.key

    def require_api_key(self) -> str:
        """Return the credential or fail before any network call."""
        if not self.api_key and self.requires_api_key:
            raise ConfigurationError(f"Missing {self.api_key_env or 'API key'}")
        return self.api_key

    def auth_headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    @abstractmethod
    async def fetch_models(self) -> list[StandardizedModel]:
        pass

    @abstractmethod
    def reasoning_stream(self, request: StreamRequest) -> AsyncIterator[CanonicalEvent]:
        """Stream canonical events for one request (async generator)."""
        pass

    async def list_models(self) -> list[StandardizedModel]:
        """Model list through this adapter's TTL cache."""
        return await self.models_cache.get_or_fetch(self.fetch_models)

    async def close(self) -> None:
        """Close the HTTP client if this adapter created it."""
        if self._owns_client:
            await self.client.aclose()

    def log_event(self, payload: Any) -> None:
        if self.debug_events:
            log.debug("Raw stream event", provider=self.key, event=payload)

    async def raise_for_status(self, response: httpx.Response) -> None:
        """Raise TransportError with the backend-reported status and message."""
        if response.is_success:
            return
        await response.aread()
        message = extract_error_message(response.text) or response.reason_phrase or "request failed"
        raise TransportError(
            f"{self.name} API error {response.status_code}: {message}",
            status_code=response.status_code,
        )

    async def get_json(
        self,
        url: str,
        headers: dict[str, str] | None = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        try:
            response = await self.client.get(url, headers=headers, params=params)
            await self.raise_for_status(response)
            return response.json()
        except httpx.HTTPError as e:
            raise TransportError(f"{self.name} HTTP error: {e}") from e
        except json.JSONDecodeError as e:
            raise TransportError(f"{self.name} response decode error: {e}") from e

    async def post_json(self, url: str, body: dict[str, Any], headers: dict[str, str] | None = None) -> Any:
        try:
            response = await self.client.post(url, json=body, headers=headers)
            await self.raise_for_status(response)
            return response.json()
        except httpx.HTTPError as e:
            raise TransportError(f"{self.name} HTTP error: {e}") from e
        except json.JSONDecodeError as e:
            raise TransportError(f"{self.name} response decode error: {e}") from e

    async def stream_sse(
        self,
        url: str,
        body: dict[str, Any],
        headers: dict[str, str],
        request: StreamRequest,
    ) -> AsyncIterator[SSEMessage]:
        """POST ``body`` and yield decoded SSE messages until the stream ends."""
        log.debug("Calling provider", provider=self.key, model=request.model, url=url)
        try:
            async with self.client.stream("POST", url, json=body, headers=headers) as response:
                await self.raise_for_status(response)
                async for message in iter_sse(response, request):
                    yield message
        except httpx.HTTPError as e:
            raise TransportError(f"{self.name} streaming error: {e}") from e
