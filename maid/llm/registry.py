"""Adapter registry keyed by provider name."""

from typing import Any

from maid.exceptions import ConfigurationError
from maid.llm.base import ProviderAdapter
from maid.llm.providers import (
    AnthropicAdapter,
    CerebrasAdapter,
    CustomAdapter,
    GoogleAdapter,
    GroqAdapter,
    OpenAIAdapter,
    OpenRouterAdapter,
    XAIAdapter,
)


class AdapterRegistry:
    """Maps provider keys to adapter classes."""

    def __init__(self, adapters: list[type[ProviderAdapter]] | None = None):
        self._adapters: dict[str, type[ProviderAdapter]] = {}
        for adapter_cls in adapters or []:
            self.register(adapter_cls)

    def register(self, adapter_cls: type[ProviderAdapter]) -> None:
        if not adapter_cls.key:
            raise ValueError("Adapter must declare a provider key")
        self._adapters[adapter_cls.key] = adapter_cls

    def keys(self) -> list[str]:
        return list(self._adapters)

    def get(self, provider: str) -> type[ProviderAdapter]:
        key = (provider or "").strip().lower()
        if key not in self._adapters:
            raise ConfigurationError(f"Unknown provider: {provider}")
        return self._adapters[key]

    def create(self, provider: str, **kwargs: Any) -> ProviderAdapter:
        """Instantiate the adapter for ``provider``."""
        return self.get(provider)(**kwargs)


def default_registry() -> AdapterRegistry:
    return AdapterRegistry(
        [
            OpenAIAdapter,
            OpenRouterAdapter,
            AnthropicAdapter,
            GoogleAdapter,
            GroqAdapter,
            XAIAdapter,
            CerebrasAdapter,
            CustomAdapter,
        ]
    )
