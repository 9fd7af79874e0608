from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
import openai
import pytest

from conftest import FakeBackend
from copyscan.config import ProviderConfig
from copyscan.core.errors import (
    ConfigurationError,
    ProviderResponseError,
    ProviderTimeout,
    ProviderUnreachable,
)
from copyscan.models.similarity import ClassificationKind, EmbeddingProviderTag
from copyscan.providers import BackendFactory, GeminiBackend, OpenAIBackend, UnavailableBackend
from copyscan.providers.base import build_classification_prompt, parse_score

GEMINI_BASE = "https://gemini.example/v1beta"


@pytest.mark.parametrize("reply,expected", [
    ("0.75", 0.75),
    ("Score: 0.8.", 0.8),
    ("1", 1.0),
    ("1.5", 1.0),
    ("-0.2", 0.0),
])
def test_parse_score(reply, expected):
    assert parse_score(reply) == expected


@pytest.mark.parametrize("reply", ["no idea", "", None])
def test_parse_score_rejects_missing_number(reply):
    with pytest.raises(ProviderResponseError):
        parse_score(reply, provider="openai")


def test_classification_prompt_includes_texts():
    prompt = build_classification_prompt(ClassificationKind.REMIX, "dance video", "dance remix")
    assert '"dance video"' in prompt
    assert '"dance remix"' in prompt
    assert "remix" in prompt.lower()


def _openai_client():
    client = MagicMock()
    client.embeddings.create = AsyncMock(
        return_value=SimpleNamespace(data=[SimpleNamespace(embedding=[0.1, 0.2, 0.3])])
    )
    client.chat.completions.create = AsyncMock(
        return_value=SimpleNamespace(
            choices=[SimpleNamespace(message=SimpleNamespace(content="0.9"))]
        )
    )
    client.close = AsyncMock()
    return client


@pytest.mark.asyncio
async def test_openai_embed_and_classify():
    client = _openai_client()
    backend = OpenAIBackend(ProviderConfig(name="openai"), client=client)

    assert await backend.embed("hello") == [0.1, 0.2, 0.3]
    assert await backend.classify("a", "b", ClassificationKind.COMMENTARY) == 0.9

    client.embeddings.create.assert_awaited_once_with(model="text-embedding-3-small", input="hello")
    kwargs = client.chat.completions.create.call_args.kwargs
    assert kwargs["model"] == "gpt-4o-mini"
    assert kwargs["messages"][0]["role"] == "user"


@pytest.mark.asyncio
async def test_openai_malformed_response():
    client = _openai_client()
    client.embeddings.create = AsyncMock(return_value=SimpleNamespace(data=[]))
    backend = OpenAIBackend(ProviderConfig(name="openai"), client=client)

    with pytest.raises(ProviderResponseError):
        await backend.embed("hello")


@pytest.mark.asyncio
async def test_openai_timeout_is_converted():
    client = _openai_client()
    request = httpx.Request("POST", "https://api.openai.com/v1/embeddings")
    client.embeddings.create = AsyncMock(side_effect=openai.APITimeoutError(request=request))
    backend = OpenAIBackend(ProviderConfig(name="openai"), client=client)

    with pytest.raises(ProviderTimeout):
        await backend.embed("hello")


@pytest.mark.asyncio
async def test_openai_connection_error_is_converted():
    client = _openai_client()
    request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
    client.chat.completions.create = AsyncMock(side_effect=openai.APIConnectionError(request=request))
    backend = OpenAIBackend(ProviderConfig(name="openai"), client=client)

    with pytest.raises(ProviderUnreachable):
        await backend.classify("a", "b", ClassificationKind.REMIX)


def test_openai_requires_key_without_client():
    with pytest.raises(ConfigurationError):
        OpenAIBackend(ProviderConfig(name="openai"))


def _gemini(handler):
    client = httpx.AsyncClient(base_url=GEMINI_BASE, transport=httpx.MockTransport(handler))
    return GeminiBackend(ProviderConfig(name="gemini", api_key="test-key"), client=client)


@pytest.mark.asyncio
async def test_gemini_embed():
    seen = {}

    def handler(request):
        seen["path"] = request.url.path
        seen["key"] = request.url.params.get("key")
        return httpx.Response(200, json={"embedding": {"values": [0.5, 0.25]}})

    backend = _gemini(handler)
    assert await backend.embed("hello") == [0.5, 0.25]
    assert seen["path"] == "/v1beta/models/embedding-001:embedContent"
    assert seen["key"] == "test-key"
    await backend.close()


@pytest.mark.asyncio
async def test_gemini_classify():
    def handler(request):
        assert request.url.path.endswith("/models/gemini-pro:generateContent")
        return httpx.Response(200, json={
            "candidates": [{"content": {"parts": [{"text": "0.35"}]}}]
        })

    backend = _gemini(handler)
    assert await backend.classify("a", "b", ClassificationKind.COMMENTARY) == 0.35
    await backend.close()


@pytest.mark.asyncio
async def test_gemini_http_error():
    backend = _gemini(lambda request: httpx.Response(503, json={"error": "unavailable"}))
    with pytest.raises(ProviderUnreachable):
        await backend.embed("hello")
    await backend.close()


@pytest.mark.asyncio
async def test_gemini_timeout():
    def handler(request):
        raise httpx.ReadTimeout("slow", request=request)

    backend = _gemini(handler)
    with pytest.raises(ProviderTimeout):
        await backend.embed("hello")
    await backend.close()


@pytest.mark.asyncio
async def test_gemini_malformed_response():
    backend = _gemini(lambda request: httpx.Response(200, json={"candidates": []}))
    with pytest.raises(ProviderResponseError):
        await backend.classify("a", "b", ClassificationKind.REMIX)
    await backend.close()


def test_gemini_requires_key():
    with pytest.raises(ConfigurationError):
        GeminiBackend(ProviderConfig(name="gemini"))


def test_factory_creates_openai_backend():
    backend = BackendFactory.create(ProviderConfig(name="OpenAI", api_key="sk-test"))
    assert isinstance(backend, OpenAIBackend)
    assert backend.tag == EmbeddingProviderTag.OPENAI


def test_factory_without_key_returns_unavailable_backend():
    backend = BackendFactory.create(ProviderConfig(name="gemini"))
    assert isinstance(backend, UnavailableBackend)
    assert backend.tag == EmbeddingProviderTag.GEMINI


def test_factory_unknown_backend():
    with pytest.raises(ConfigurationError):
        BackendFactory.create(ProviderConfig(name="nonexistent", api_key="x"))


def test_factory_register(monkeypatch):
    monkeypatch.setattr(BackendFactory, "_backends", dict(BackendFactory._backends))

    class LocalBackend(FakeBackend):
        tag = EmbeddingProviderTag.CUSTOM

        def __init__(self, provider_config):
            super().__init__()

    BackendFactory.register("local", LocalBackend)
    assert "local" in BackendFactory.available()
    assert isinstance(BackendFactory.create(ProviderConfig(name="local", api_key="x")), LocalBackend)


@pytest.mark.asyncio
async def test_unavailable_backend_raises():
    backend = UnavailableBackend(EmbeddingProviderTag.OPENAI, "no key")
    with pytest.raises(ProviderUnreachable):
        await backend.embed("hello")
    with pytest.raises(ProviderUnreachable):
        await backend.classify("a", "b", ClassificationKind.REMIX)
