"""
Model commands.

User-facing operations on top of the coordinator:

    /model <model-name>      switch to a literal model id
    /model weak|strong       switch to the provider's weak/strong model
    /auto-switch on|off      toggle per-turn automatic switching

All switch operations go through one lock, so at most one switch is in
flight at a time.
"""

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence

import structlog

from switchboard.inference.coordinator import ModelSwitchingCoordinator, SwitchResult
from switchboard.inference.errors import GeneratorError
from switchboard.models.types import Content, GeneratorConfig, ModelStrength, ProviderKind

logger = structlog.get_logger(__name__)

MODEL_USAGE = "Usage: /model <model-name> or /model weak|strong"

MODEL_SUGGESTIONS: dict[ProviderKind, tuple[str, ...]] = {
    ProviderKind.OLLAMA: ("llama3.2", "llama3.1:70b", "mistral", "phi"),
    ProviderKind.LM_STUDIO: ("phi-3-mini", "mixtral-8x7b"),
    ProviderKind.OPENAI: ("gpt-4", "gpt-3.5-turbo"),
}


class MessageType(str, Enum):
    """Kind of message shown to the user."""

    INFO = "info"
    ERROR = "error"


@dataclass
class CommandResult:
    """Single-line message returned by a command."""

    message_type: MessageType
    content: str

    @property
    def ok(self) -> bool:
        return self.message_type == MessageType.INFO


class ModelCommands:
    """Command surface for model switching."""

    def __init__(
        self,
        coordinator: ModelSwitchingCoordinator,
        config: Optional[GeneratorConfig] = None,
        auto_switch_enabled: bool = True,
    ):
        self.coordinator = coordinator
        self.config = config
        self.auto_switch_enabled = auto_switch_enabled
        self._switch_lock = asyncio.Lock()

    @property
    def provider(self) -> Optional[ProviderKind]:
        return self.config.provider_kind if self.config else None

    def _after_switch(self) -> None:
        current = self.coordinator.get_current_config()
        if current is not None:
            self.config = current

    @staticmethod
    def _describe(label: str, result: SwitchResult) -> str:
        return f"✓ Switched to {label} ({result.model}, context {result.context_length} tokens)"

    async def model(self, args: str) -> CommandResult:
        """Handle ``/model``."""
        if not args or not args.strip():
            return CommandResult(MessageType.INFO, MODEL_USAGE)

        if self.config is None or self.config.provider_kind is None:
            return CommandResult(
                MessageType.ERROR,
                "Unable to determine current provider configuration",
            )

        model_arg = args.strip()
        provider = self.config.provider_kind

        try:
            async with self._switch_lock:
                if model_arg.lower() in (ModelStrength.WEAK.value, ModelStrength.STRONG.value):
                    strength = ModelStrength(model_arg.lower())
                    result = await self.coordinator.switch_to_strength(
                        strength, provider, self.config
                    )
                    label = f"{strength.value} model"
                else:
                    result = await self.coordinator.switch_model(model_arg, provider, self.config)
                    label = model_arg
                self._after_switch()
        except GeneratorError as e:
            return CommandResult(MessageType.ERROR, f"Failed to switch model: {e}")

        return CommandResult(MessageType.INFO, self._describe(label, result))

    def auto_switch(self, args: str) -> CommandResult:
        """Handle ``/auto-switch``."""
        arg = (args or "").strip().lower()

        if arg == "on":
            self.auto_switch_enabled = True
            return CommandResult(MessageType.INFO, "✓ Auto-switching enabled")
        if arg == "off":
            self.auto_switch_enabled = False
            return CommandResult(MessageType.INFO, "✓ Auto-switching disabled")

        state = "enabled" if self.auto_switch_enabled else "disabled"
        return CommandResult(
            MessageType.INFO,
            f"Auto-switching is currently {state}. Use /auto-switch on|off to change.",
        )

    def is_auto_switch_enabled(self) -> bool:
        return self.auto_switch_enabled

    def complete_model(self, partial: str) -> list[str]:
        suggestions = [ModelStrength.WEAK.value, ModelStrength.STRONG.value]
        if self.provider is not None:
            suggestions.extend(MODEL_SUGGESTIONS.get(self.provider, ()))
        return [s for s in suggestions if s.startswith(partial.lower())]

    def complete_auto_switch(self, partial: str) -> list[str]:
        return [s for s in ("on", "off") if s.startswith(partial.lower())]

    async def before_turn(self, prompt: str, history: Sequence[Content]) -> bool:
        """
        Run automatic switching for a new user turn.

        Returns:
            True if the model was switched
        """
        if not self.auto_switch_enabled or self.provider is None:
            return False

        try:
            async with self._switch_lock:
                switched = await self.coordinator.auto_switch_based_on_task(
                    prompt,
                    history,
                    self.provider,
                    self.config,
                    self.coordinator.get_current_generator(),
                )
                if switched:
                    self._after_switch()
        except GeneratorError as e:
            logger.warning("auto_switch_skipped", error=str(e))
            return False

        return switched
