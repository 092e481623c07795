"""Tests for the /model and /auto-switch commands."""

import asyncio

import pytest

from switchboard.commands.model_commands import MODEL_USAGE, MessageType, ModelCommands
from switchboard.models.types import GeneratorConfig, ModelStrength, ProviderKind


@pytest.fixture
def commands(coordinator, ollama_config) -> ModelCommands:
    return ModelCommands(coordinator, ollama_config)


@pytest.mark.parametrize("args", ["", "   "])
@pytest.mark.asyncio
async def test_model_without_args_shows_usage(commands, built, args):
    result = await commands.model(args)

    assert result.message_type == MessageType.INFO
    assert result.content == MODEL_USAGE
    assert built == []


@pytest.mark.asyncio
async def test_model_without_config(coordinator):
    result = await ModelCommands(coordinator).model("strong")

    assert result.message_type == MessageType.ERROR
    assert result.content == "Unable to determine current provider configuration"


@pytest.mark.parametrize("args", ["strong", " STRONG ", "Strong"])
@pytest.mark.asyncio
async def test_model_strong(commands, coordinator, args):
    result = await commands.model(args)

    assert result.ok
    assert result.content == "✓ Switched to strong model (llama3.1:70b, context 8192 tokens)"
    assert coordinator.get_current_strength() == ModelStrength.STRONG
    assert commands.config.model == "llama3.1:70b"


@pytest.mark.asyncio
async def test_model_weak(commands, coordinator):
    await commands.model("strong")

    result = await commands.model("weak")

    assert result.content == "✓ Switched to weak model (llama3.2, context 8192 tokens)"
    assert coordinator.get_current_strength() == ModelStrength.WEAK


@pytest.mark.asyncio
async def test_model_literal_id(commands, coordinator):
    await commands.model("strong")

    result = await commands.model("mistral")

    assert result.content == "✓ Switched to mistral (mistral, context 8192 tokens)"
    assert coordinator.get_current_config().model == "mistral"
    assert coordinator.get_current_strength() == ModelStrength.STRONG


@pytest.mark.asyncio
async def test_model_switch_failure(coordinator, openai_config):
    commands = ModelCommands(coordinator, openai_config)

    result = await commands.model("strong")

    assert result.message_type == MessageType.ERROR
    assert result.content == "Failed to switch model: OPENAI_API_KEY is required for provider openai"
    assert commands.config is openai_config


@pytest.mark.asyncio
async def test_model_for_provider_without_pair(coordinator):
    config = GeneratorConfig(
        model="local-model",
        provider_kind=ProviderKind.LM_STUDIO,
        base_url="http://localhost:1234",
    )

    result = await ModelCommands(coordinator, config).model("weak")

    assert result.message_type == MessageType.ERROR
    assert "No model config for provider lm-studio" in result.content


@pytest.mark.asyncio
async def test_concurrent_switches_are_serialized(commands, coordinator, built):
    results = await asyncio.gather(commands.model("strong"), commands.model("weak"))

    assert all(result.ok for result in results)
    assert coordinator.get_stats()["switches"] == 2
    assert built[0].closed
    assert coordinator.get_current_generator() is built[1]


def test_auto_switch_toggle(commands):
    assert commands.auto_switch("off").content == "✓ Auto-switching disabled"
    assert not commands.is_auto_switch_enabled()

    assert commands.auto_switch(" ON ").content == "✓ Auto-switching enabled"
    assert commands.is_auto_switch_enabled()


@pytest.mark.parametrize(
    "enabled, state",
    [(True, "enabled"), (False, "disabled")],
)
def test_auto_switch_status(coordinator, ollama_config, enabled, state):
    commands = ModelCommands(coordinator, ollama_config, auto_switch_enabled=enabled)

    for args in ("", "maybe"):
        result = commands.auto_switch(args)
        assert result.ok
        assert result.content == (
            f"Auto-switching is currently {state}. Use /auto-switch on|off to change."
        )
    assert commands.is_auto_switch_enabled() is enabled


def test_completions(commands):
    assert commands.complete_model("s") == ["strong"]
    assert commands.complete_model("llama") == ["llama3.2", "llama3.1:70b"]
    assert commands.complete_auto_switch("o") == ["on", "off"]
    assert commands.complete_auto_switch("of") == ["off"]


@pytest.mark.asyncio
async def test_before_turn_switches(commands, coordinator, replies):
    replies["llama3.2"] = "REVIEW"
    await commands.model("weak")

    switched = await commands.before_turn("Review my changes", [])

    assert switched is True
    assert commands.config.model == "llama3.1:70b"
    assert coordinator.get_current_strength() == ModelStrength.STRONG


@pytest.mark.asyncio
async def test_before_turn_disabled(commands, replies):
    replies["llama3.2"] = "REVIEW"
    await commands.model("weak")
    commands.auto_switch("off")

    assert await commands.before_turn("Review my changes", []) is False
    assert commands.coordinator.get_current_generator().requests == []


@pytest.mark.asyncio
async def test_before_turn_without_pair_is_skipped(coordinator):
    config = GeneratorConfig(model="local-model", provider_kind=ProviderKind.LM_STUDIO)

    assert await ModelCommands(coordinator, config).before_turn("Plan it", []) is False
