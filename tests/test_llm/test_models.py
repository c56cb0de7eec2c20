import httpx
import pytest

from maid.config import Config
from maid.llm.cache import ModelListCache
from maid.llm.providers import AnthropicAdapter, GoogleAdapter, GroqAdapter, OpenRouterAdapter


def json_client(routes: dict, calls: list | None = None) -> httpx.AsyncClient:
    def handler(request: httpx.Request) -> httpx.Response:
        if calls is not None:
            calls.append(request)
        key = request.url.path
        token = request.url.params.get("pageToken")
        if token:
            key = f"{key}?pageToken={token}"
        return httpx.Response(200, json=routes[key])

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_openrouter_models_include_pricing_context_and_parameters():
    client = json_client(
        {
            "/api/v1/models": {
                "data": [
                    {
                        "id": "anthropic/claude-sonnet-4.5",
                        "name": "Claude Sonnet 4.5",
                        "created": 1727000000,
                        "context_length": 200000,
                        "top_provider": {"context_length": 1000000},
                        "pricing": {"prompt": "0.000003", "completion": "0.000015", "request": "0", "image": "bad"},
                        "supported_parameters": ["reasoning", "tools"],
                    },
                    {"name": "no id"},
                ]
            }
        }
    )
    adapter = OpenRouterAdapter(api_key="k", config=Config(), client=client)

    models = await adapter.fetch_models()

    assert len(models) == 1
    model = models[0]
    assert model.name == "Claude Sonnet 4.5"
    assert model.context_length == 1000000
    assert model.pricing == {"prompt": 0.000003, "completion": 0.000015}
    assert model.supported_parameters == ["reasoning", "tools"]


@pytest.mark.asyncio
async def test_groq_models_carry_window_and_activity():
    client = json_client(
        {
            "/openai/v1/models": {
                "data": [
                    {
                        "id": "openai/gpt-oss-20b",
                        "owned_by": "OpenAI",
                        "active": True,
                        "context_window": 131072,
                        "max_completion_tokens": 65536,
                    }
                ]
            }
        }
    )
    adapter = GroqAdapter(api_key="k", config=Config(), client=client)

    (model,) = await adapter.fetch_models()

    assert model.name == "openai/gpt-oss-20b"
    assert model.active is True
    assert model.context_window == 131072
    assert model.max_completion_tokens == 65536


@pytest.mark.asyncio
async def test_anthropic_models_use_display_name_and_created_at():
    client = json_client(
        {
            "/v1/models": {
                "data": [
                    {
                        "id": "claude-opus-4-1",
                        "display_name": "Claude Opus 4.1",
                        "created_at": "2025-08-05T00:00:00Z",
                        "type": "model",
                    }
                ]
            }
        }
    )
    adapter = AnthropicAdapter(api_key="k", config=Config(), client=client)

    (model,) = await adapter.fetch_models()

    assert model.id == "claude-opus-4-1"
    assert model.name == "Claude Opus 4.1"
    assert model.created == 1754352000


@pytest.mark.asyncio
async def test_google_models_strip_prefix_and_follow_pages():
    calls: list[httpx.Request] = []
    client = json_client(
        {
            "/v1beta/models": {
                "models": [{"name": "models/gemini-2.5-pro", "displayName": "Gemini 2.5 Pro", "inputTokenLimit": 1048576}],
                "nextPageToken": "p2",
            },
            "/v1beta/models?pageToken=p2": {"models": [{"name": "models/gemini-2.5-flash"}]},
        },
        calls,
    )
    adapter = GoogleAdapter(api_key="k", config=Config(), client=client)

    models = await adapter.fetch_models()

    assert [m.id for m in models] == ["gemini-2.5-pro", "gemini-2.5-flash"]
    assert models[0].name == "Gemini 2.5 Pro"
    assert models[0].context_length == 1048576
    assert models[1].name == "gemini-2.5-flash"
    assert len(calls) == 2


@pytest.mark.asyncio
async def test_list_models_is_cached_until_ttl_expires():
    calls: list[httpx.Request] = []
    client = json_client({"/api/v1/models": {"data": [{"id": "a"}]}}, calls)
    adapter = OpenRouterAdapter(api_key="k", config=Config(), client=client)
    now = [1000.0]
    adapter.models_cache = ModelListCache(60, clock=lambda: now[0])

    await adapter.list_models()
    await adapter.list_models()
    assert len(calls) == 1

    now[0] += 61
    await adapter.list_models()
    assert len(calls) == 2


@pytest.mark.asyncio
async def test_cache_does_not_store_failed_fetch():
    cache: ModelListCache[list[str]] = ModelListCache(300)

    async def failing():
        raise RuntimeError("offline")

    with pytest.raises(RuntimeError):
        await cache.get_or_fetch(failing)

    assert cache.value is None
    assert cache.is_fresh() is False
