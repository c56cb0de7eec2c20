"""Configuration management for maid."""

from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# Paths
DEFAULT_CONFIG_PATH = Path("~/.maid/config.yaml").expanduser()
LOCAL_CONFIG_FILENAME = "maid.yaml"

DEFAULT_CUSTOM_ENDPOINT = "http://127.0.0.1:1234"


class ModelConfig(BaseModel):
    """Active model selection."""

    provider: str = "openrouter"
    model: str = "openai/gpt-4o-mini"
    effort: Literal["off", "low", "medium", "high"] = "medium"
    web_search: bool = False
    api_key: str = ""
    base_url: str = ""


class ProviderCredentials(BaseModel):
    """Per-provider credential and base URL override."""

    api_key: str = ""
    base_url: str = ""


class ProvidersConfig(BaseModel):
    """Credentials for each registered backend."""

    openai: ProviderCredentials = Field(default_factory=ProviderCredentials)
    openrouter: ProviderCredentials = Field(default_factory=ProviderCredentials)
    anthropic: ProviderCredentials = Field(default_factory=ProviderCredentials)
    google: ProviderCredentials = Field(default_factory=ProviderCredentials)
    groq: ProviderCredentials = Field(default_factory=ProviderCredentials)
    xai: ProviderCredentials = Field(default_factory=ProviderCredentials)
    cerebras: ProviderCredentials = Field(default_factory=ProviderCredentials)

    def for_provider(self, key: str) -> ProviderCredentials:
        """Return credentials for provider key (empty entry when unknown)."""
        value = getattr(self, (key or "").strip().lower(), None)
        if isinstance(value, ProviderCredentials):
            return value
        return ProviderCredentials()


class CustomEndpointConfig(BaseModel):
    """Local OpenAI-compatible endpoint (LM Studio, llama.cpp, ollama)."""

    endpoint: str = DEFAULT_CUSTOM_ENDPOINT
    api_key: str = ""


class WebSearchConfig(BaseModel):
    """Web search tool-loop configuration."""

    max_rounds: int = 3
    max_results: int = 8
    default_top_k: int = 5
    timeout: int = 20
    instant_answer_url: str = "https://api.duckduckgo.com/"
    html_url: str = "https://html.duckduckgo.com/html/"
    user_agent: str = "maid/0.1.0 (Web Search Tool)"


class ChatConfig(BaseModel):
    """Chat prompt configuration."""

    system_prompt: str = ""


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "WARNING"
    format: str = "console"
    debug_events: bool = False


class Config(BaseSettings):
    """Main configuration for maid."""

    model: ModelConfig = Field(default_factory=ModelConfig)
    providers: ProvidersConfig = Field(default_factory=ProvidersConfig)
    custom: CustomEndpointConfig = Field(default_factory=CustomEndpointConfig)
    web_search: WebSearchConfig = Field(default_factory=WebSearchConfig)
    chat: ChatConfig = Field(default_factory=ChatConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    models_cache_ttl_seconds: float = 300.0
    request_timeout: float = 120.0

    model_config = SettingsConfigDict(
        env_prefix="MAID_",
        env_file=".env",
        env_nested_delimiter="__",
        extra="ignore",
    )

    @classmethod
    def resolve_default_config_path(cls) -> Path:
        """Resolve default config path with local-first precedence."""
        local_path = Path.cwd() / LOCAL_CONFIG_FILENAME
        if local_path.exists():
            return local_path
        return DEFAULT_CONFIG_PATH

    @classmethod
    def from_yaml(cls, path: Path | str | None = None) -> "Config":
        """Load configuration from YAML file."""
        config_path = Path(path).expanduser() if path else cls.resolve_default_config_path()

        if not config_path.exists():
            return cls()

        with open(config_path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        return cls(**data)

    @classmethod
    def load(cls) -> "Config":
        """Load configuration, preferring env vars over YAML."""
        # pydantic-settings gives init kwargs priority, so env overrides are
        # applied on top of the YAML values explicitly.
        yaml_config = cls.from_yaml()
        env_config = cls()
        data = yaml_config.model_dump()
        _deep_update(data, env_config.model_dump(exclude_defaults=True))
        return cls.model_validate(data)


def _deep_update(target: dict, updates: dict) -> None:
    for key, value in updates.items():
        if isinstance(value, dict) and isinstance(target.get(key), dict):
            _deep_update(target[key], value)
        else:
            target[key] = value


# Global config instance
_config: Config | None = None


def get_config() -> Config:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = Config.load()
    return _config


def set_config(config: Config) -> None:
    """Set the global configuration instance."""
    global _config
    _config = config
