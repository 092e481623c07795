"""Tests for the provider registry and generators."""

import asyncio
import json
import time

import httpx
import pytest

from switchboard.config.settings import Settings
from switchboard.inference.errors import ConfigurationError, ConnectivityError
from switchboard.inference.generators import GeminiGenerator, OpenAICompatibleGenerator
from switchboard.inference.registry import (
    ProviderRegistry,
    SessionContext,
    create_generator_config,
)
from switchboard.models.types import Content, GeneratorConfig, ProviderKind, SamplingParams


class Recorder:
    """MockTransport handler that records requests and replays a response."""

    def __init__(self, response=None, error=None):
        self.requests: list[httpx.Request] = []
        self.response = response
        self.error = error

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error(request)
        if callable(self.response):
            return self.response(request)
        return self.response or httpx.Response(200, json={})


def registry_with(recorder: Recorder) -> ProviderRegistry:
    return ProviderRegistry(transport=httpx.MockTransport(recorder))


def local_config(provider: ProviderKind, base_url: str | None) -> GeneratorConfig:
    return GeneratorConfig(
        model="llama3.2",
        provider_kind=provider,
        api_key="not-required",
        base_url=base_url,
    )


@pytest.mark.asyncio
async def test_ollama_probe_success():
    recorder = Recorder(httpx.Response(200, json={"models": [{"name": "llama3.2"}]}))
    registry = registry_with(recorder)

    generator = await registry.create(local_config(ProviderKind.OLLAMA, "http://localhost:11434"))

    assert isinstance(generator, OpenAICompatibleGenerator)
    assert generator.base_url == "http://localhost:11434/v1"
    assert generator.local_server.name == "Ollama"
    assert str(recorder.requests[0].url) == "http://localhost:11434/api/tags"
    assert await generator.list_models() == ["llama3.2"]
    await generator.aclose()


@pytest.mark.asyncio
async def test_ollama_probe_failure_raises_connectivity_error():
    registry = registry_with(
        Recorder(error=lambda request: httpx.ConnectError("refused", request=request))
    )

    with pytest.raises(ConnectivityError) as exc_info:
        await registry.create(local_config(ProviderKind.OLLAMA, "http://localhost:11434"))

    message = str(exc_info.value)
    assert "http://localhost:11434" in message
    assert "ollama serve" in message
    assert exc_info.value.base_url == "http://localhost:11434"


@pytest.mark.asyncio
async def test_lm_studio_probe_uses_models_listing():
    recorder = Recorder(httpx.Response(503))
    registry = registry_with(recorder)

    with pytest.raises(ConnectivityError, match="LM Studio server is running"):
        await registry.create(local_config(ProviderKind.LM_STUDIO, "http://localhost:1234"))

    assert str(recorder.requests[0].url) == "http://localhost:1234/v1/models"


@pytest.mark.asyncio
async def test_liveness_probe_is_bounded_by_timeout():
    async def hang(request: httpx.Request) -> httpx.Response:
        await asyncio.sleep(30)
        return httpx.Response(200, json={"models": []})

    registry = ProviderRegistry(liveness_timeout=0.2, transport=httpx.MockTransport(hang))
    config = local_config(ProviderKind.OLLAMA, "http://localhost:11434").model_copy(
        update={"max_retries": 2}
    )

    started = time.monotonic()
    with pytest.raises(ConnectivityError, match="ollama serve"):
        await registry.create(config)

    assert time.monotonic() - started < 1.5


@pytest.mark.asyncio
async def test_lm_studio_lists_model_ids():
    recorder = Recorder(httpx.Response(200, json={"data": [{"id": "phi-3-mini"}, {"id": "mixtral-8x7b"}]}))
    registry = registry_with(recorder)

    generator = await registry.create(local_config(ProviderKind.LM_STUDIO, "http://localhost:1234"))

    assert await generator.list_models() == ["phi-3-mini", "mixtral-8x7b"]
    await generator.aclose()


@pytest.mark.parametrize("provider", [ProviderKind.OLLAMA, ProviderKind.LM_STUDIO])
@pytest.mark.asyncio
async def test_local_provider_requires_base_url(provider):
    recorder = Recorder()

    with pytest.raises(ConfigurationError, match="base URL is required"):
        await registry_with(recorder).create(local_config(provider, None))

    assert recorder.requests == []


@pytest.mark.asyncio
async def test_openai_requires_api_key(openai_config):
    with pytest.raises(ConfigurationError, match="OPENAI_API_KEY"):
        await registry_with(Recorder()).create(openai_config)


@pytest.mark.asyncio
async def test_hosted_providers_are_not_probed(openai_config):
    recorder = Recorder()
    registry = registry_with(recorder)

    openai = await registry.create(openai_config.model_copy(update={"api_key": "sk-test"}))
    gemini = await registry.create(
        GeneratorConfig(model="gemini-2.5-pro", provider_kind=ProviderKind.GEMINI_API_KEY, api_key="g-key")
    )

    assert isinstance(openai, OpenAICompatibleGenerator)
    assert isinstance(gemini, GeminiGenerator)
    assert recorder.requests == []
    await openai.aclose()
    await gemini.aclose()


@pytest.mark.parametrize(
    "config, setting",
    [
        (GeneratorConfig(model="m", provider_kind=ProviderKind.GEMINI_API_KEY), "GEMINI_API_KEY"),
        (GeneratorConfig(model="m", provider_kind=ProviderKind.OAUTH_PERSONAL), "GOOGLE_OAUTH_ACCESS_TOKEN"),
        (GeneratorConfig(model="m", provider_kind=ProviderKind.CLOUD_SHELL), "GOOGLE_OAUTH_ACCESS_TOKEN"),
        (GeneratorConfig(model="m", provider_kind=ProviderKind.VERTEX_AI, project="p"), "GOOGLE_API_KEY"),
    ],
)
@pytest.mark.asyncio
async def test_missing_credentials_name_the_setting(config, setting):
    with pytest.raises(ConfigurationError, match=setting):
        await registry_with(Recorder()).create(config)


@pytest.mark.asyncio
async def test_unsupported_provider():
    with pytest.raises(ConfigurationError, match="unsupported provider"):
        await registry_with(Recorder()).create(GeneratorConfig(model="m"))


@pytest.mark.asyncio
async def test_registered_builder_replaces_default():
    registry = registry_with(Recorder())
    sentinel = object()

    async def build(config, context):
        return sentinel

    registry.register(ProviderKind.OAUTH_PERSONAL, build)

    assert await registry.create(GeneratorConfig(model="m", provider_kind=ProviderKind.OAUTH_PERSONAL)) is sentinel


@pytest.mark.asyncio
async def test_openai_generate_content():
    recorder = Recorder(
        httpx.Response(
            200,
            json={
                "model": "gpt-4",
                "choices": [{"message": {"content": "Hello!"}, "finish_reason": "stop"}],
                "usage": {"prompt_tokens": 12, "completion_tokens": 3},
            },
        )
    )
    registry = registry_with(recorder)
    config = GeneratorConfig(
        model="gpt-4",
        provider_kind=ProviderKind.OPENAI,
        api_key="sk-test",
        sampling=SamplingParams(top_p=0.9, temperature=0.7),
    )
    context = SessionContext(session_id="abc123")

    generator = await registry.create(config, context)
    response = await generator.generate_content(
        [Content.from_text("user", "Hi"), Content.from_text("model", "Hey"), Content.from_text("user", "Again")],
        system="Be brief",
        temperature=0.1,
    )

    assert response.text == "Hello!"
    assert response.total_tokens == 15
    assert response.finish_reason == "stop"

    request = recorder.requests[0]
    assert str(request.url) == "https://api.openai.com/v1/chat/completions"
    assert request.headers["Authorization"] == "Bearer sk-test"
    assert "abc123" in request.headers["User-Agent"]
    body = json.loads(request.content)
    assert body["model"] == "gpt-4"
    assert body["temperature"] == 0.1
    assert body["top_p"] == 0.9
    assert [m["role"] for m in body["messages"]] == ["system", "user", "assistant", "user"]
    await generator.aclose()


@pytest.mark.asyncio
async def test_openai_stream_content():
    sse = (
        'data: {"choices": [{"delta": {"content": "Hel"}}]}\n\n'
        "data: not-json\n\n"
        'data: {"choices": [{"delta": {"content": "lo"}, "finish_reason": "stop"}]}\n\n'
        "data: [DONE]\n\n"
    )
    recorder = Recorder(httpx.Response(200, text=sse, headers={"content-type": "text/event-stream"}))
    generator = OpenAICompatibleGenerator(
        "https://api.openai.com/v1", "sk", "gpt-4", transport=httpx.MockTransport(recorder)
    )

    chunks = [chunk.text async for chunk in generator.generate_content_stream([Content.from_text("user", "hi")])]

    assert chunks == ["Hel", "lo"]
    assert json.loads(recorder.requests[0].content)["stream"] is True
    await generator.aclose()


@pytest.mark.asyncio
async def test_gemini_generate_content_with_api_key():
    recorder = Recorder(
        httpx.Response(
            200,
            json={
                "candidates": [{"content": {"parts": [{"text": "Hi"}, {"text": " there"}]}, "finishReason": "STOP"}],
                "usageMetadata": {"promptTokenCount": 4, "candidatesTokenCount": 2},
            },
        )
    )
    generator = GeminiGenerator(
        "gemini-2.5-pro", api_key="g-key", transport=httpx.MockTransport(recorder)
    )

    response = await generator.generate_content([Content.from_text("user", "Hello")], max_tokens=64)

    assert response.text == "Hi there"
    assert response.total_tokens == 6
    request = recorder.requests[0]
    assert request.url.path.endswith("/models/gemini-2.5-pro:generateContent")
    assert request.headers["x-goog-api-key"] == "g-key"
    body = json.loads(request.content)
    assert body["contents"] == [{"role": "user", "parts": [{"text": "Hello"}]}]
    assert body["generationConfig"] == {"maxOutputTokens": 64}
    await generator.aclose()


@pytest.mark.asyncio
async def test_gemini_bearer_token_for_oauth():
    recorder = Recorder(httpx.Response(200, json={"totalTokens": 42}))
    registry = registry_with(recorder)

    generator = await registry.create(
        GeneratorConfig(model="gemini-2.5-pro", provider_kind=ProviderKind.OAUTH_PERSONAL, access_token="tok")
    )
    tokens = await generator.count_tokens([Content.from_text("user", "Hello")])

    assert tokens == 42
    assert recorder.requests[0].headers["Authorization"] == "Bearer tok"
    await generator.aclose()


def test_create_generator_config_for_local_servers():
    settings = Settings(_env_file=None, ollama_base_url="http://gpu-box:11434")

    ollama = create_generator_config(None, ProviderKind.OLLAMA, settings)
    lm_studio = create_generator_config("qwen2.5-coder", ProviderKind.LM_STUDIO, settings)

    assert ollama.model == settings.ollama_model
    assert ollama.base_url == "http://gpu-box:11434"
    assert ollama.api_key == "not-required"
    assert ollama.provider_kind == ProviderKind.OLLAMA
    assert lm_studio.model == "qwen2.5-coder"
    assert lm_studio.base_url == settings.lm_studio_base_url


def test_create_generator_config_for_openai():
    settings = Settings(
        _env_file=None,
        openai_api_key="sk-test",
        openai_base_url="https://openrouter.ai/api/v1",
        openai_model="qwen/qwen3-coder",
    )

    config = create_generator_config(None, ProviderKind.OPENAI, settings)

    assert config.api_key == "sk-test"
    assert config.base_url == "https://openrouter.ai/api/v1"
    assert config.model == "qwen/qwen3-coder"
    assert config.timeout == settings.request_timeout
