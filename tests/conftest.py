"""Shared fixtures for switchboard tests."""

from unittest.mock import AsyncMock

import pytest

from switchboard.config.settings import Settings
from switchboard.inference.classifier import ModelTaskClassifier
from switchboard.inference.coordinator import ModelSwitchingCoordinator
from switchboard.inference.generators import ContentGenerator
from switchboard.inference.registry import ProviderRegistry
from switchboard.models.types import GeneratorConfig, ModelConfig, ProviderKind

from tests.fakes import FakeGenerator


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None)


@pytest.fixture
def model_configs() -> dict[ProviderKind, ModelConfig]:
    return {
        ProviderKind.OLLAMA: ModelConfig(weak="llama3.2", strong="llama3.1:70b"),
        ProviderKind.OPENAI: ModelConfig(
            weak="mistralai/Mistral-7B-Instruct-v0.2",
            strong="anthropic/claude-3.5-sonnet",
        ),
    }


@pytest.fixture
def replies() -> dict[str, str]:
    """Reply text per model id for generators built by the fake registry."""
    return {}


@pytest.fixture
def built() -> list[FakeGenerator]:
    """Every generator the fake registry has built, in order."""
    return []


@pytest.fixture
def registry(replies, built) -> ProviderRegistry:
    """
    Registry whose Ollama and LM Studio builders return fake generators.

    Other providers keep their real builders, which fail without credentials
    before touching the network.
    """
    registry = ProviderRegistry()

    async def build(config: GeneratorConfig, context) -> ContentGenerator:
        generator = FakeGenerator(config.model, reply=replies.get(config.model, "ok"))
        built.append(generator)
        return generator

    registry.register(ProviderKind.OLLAMA, build)
    registry.register(ProviderKind.LM_STUDIO, build)
    return registry


@pytest.fixture
def ollama_config() -> GeneratorConfig:
    return GeneratorConfig(
        model="llama3",
        provider_kind=ProviderKind.OLLAMA,
        api_key="not-required",
        base_url="http://localhost:11434",
    )


@pytest.fixture
def openai_config() -> GeneratorConfig:
    return GeneratorConfig(
        model="gpt-4",
        provider_kind=ProviderKind.OPENAI,
        base_url="https://api.openai.com/v1",
    )


@pytest.fixture
def resolved() -> list[tuple]:
    """Every (provider, model, base_url) the fake context resolver was asked about."""
    return []


@pytest.fixture
def context_resolver(resolved):
    async def resolve(provider, model, base_url):
        resolved.append((provider, model, base_url))
        return 8192

    return resolve


@pytest.fixture
def compressor() -> AsyncMock:
    return AsyncMock(side_effect=lambda snapshot, context_limit: snapshot)


@pytest.fixture
def coordinator(settings, model_configs, registry, context_resolver, compressor):
    return ModelSwitchingCoordinator(
        ModelTaskClassifier(),
        settings=settings,
        model_configs=model_configs,
        registry=registry,
        context_resolver=context_resolver,
        compressor=compressor,
    )
