"""
Model-Switching Coordinator.

Owns the live generator, chat session and current model strength, and
moves a conversation from one model/provider to another.

Switch flow:
1. Snapshot the current session (if any)
2. Resolve the new model's context length
3. Compress the snapshot to that length
4. Build the new generator (the only fallible step)
5. Rehydrate a chat session on the new generator
6. Swap generator and chat in one step

Switch calls are not serialized here; callers must not overlap them.
"""

from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Awaitable, Callable, Optional, Sequence

import structlog

from switchboard.config.settings import Settings, get_settings
from switchboard.logging.logger import bind_active_model
from switchboard.models.types import (
    Content,
    GeneratorConfig,
    ModelConfig,
    ModelStrength,
    ProviderKind,
    SessionSnapshot,
    TaskType,
)
from switchboard.session.chat import ChatSession
from switchboard.session.compression import Compressor, passthrough_compressor

from .classifier import BaseTaskClassifier, KeywordTaskClassifier, create_classifier
from .context_discovery import resolve_context_length
from .errors import ConfigurationError, GeneratorError
from .generators import ContentGenerator
from .registry import ProviderRegistry, SessionContext, get_registry

logger = structlog.get_logger(__name__)

ContextResolver = Callable[[ProviderKind, str, Optional[str]], Awaitable[int]]
ChatFactory = Callable[..., ChatSession]

STRENGTH_BY_TASK: dict[TaskType, ModelStrength] = {
    TaskType.EXPLORATION: ModelStrength.STRONG,
    TaskType.PLANNING: ModelStrength.STRONG,
    TaskType.TROUBLESHOOTING: ModelStrength.STRONG,
    TaskType.REVIEW: ModelStrength.STRONG,
    TaskType.DOCUMENTATION: ModelStrength.WEAK,
    TaskType.IMPLEMENTATION: ModelStrength.WEAK,
}


def strength_for_task(task_type: Any) -> ModelStrength:
    """Map a task type to the strength it needs; unknown values need WEAK."""
    return STRENGTH_BY_TASK.get(task_type, ModelStrength.WEAK)


@dataclass
class SwitchResult:
    """Outcome of a successful switch."""

    model: str
    provider: ProviderKind
    context_length: int
    strength: ModelStrength
    rehydrated_turns: int = 0


class ModelSwitchingCoordinator:
    """
    Switches the live session between models and providers.

    Example:
        coordinator = ModelSwitchingCoordinator()
        config = create_generator_config(None, ProviderKind.OLLAMA)
        await coordinator.switch_to_strength(ModelStrength.WEAK, ProviderKind.OLLAMA, config)

        switched = await coordinator.auto_switch_based_on_task(
            "Debug why the login is failing",
            history,
            ProviderKind.OLLAMA,
            config,
            coordinator.get_current_generator(),
        )
    """

    def __init__(
        self,
        classifier: Optional[BaseTaskClassifier] = None,
        *,
        settings: Optional[Settings] = None,
        model_configs: Optional[dict[ProviderKind, ModelConfig]] = None,
        registry: Optional[ProviderRegistry] = None,
        context_resolver: Optional[ContextResolver] = None,
        compressor: Compressor = passthrough_compressor,
        session_context: Optional[SessionContext] = None,
        chat_factory: ChatFactory = ChatSession,
    ):
        """
        Initialize the coordinator.

        Args:
            classifier: Task classifier (created from settings if not provided)
            settings: Application settings (global settings if not provided)
            model_configs: Weak/strong pairs per provider (from settings if not provided)
            registry: Provider registry used to build generators
            context_resolver: Context-length lookup
            compressor: Conversation compression collaborator
            session_context: Session identity passed to generator builders
            chat_factory: Builds chat sessions from a generator and history
        """
        settings = settings or get_settings()

        self.classifier = classifier or create_classifier(settings.classifier_strategy)
        self.registry = registry or get_registry()
        self.compressor = compressor
        self.session_context = session_context or SessionContext()
        self.chat_factory = chat_factory
        self._model_configs = dict(
            model_configs if model_configs is not None else settings.model_configs()
        )
        self._discovery_timeout = settings.discovery_timeout
        self._context_resolver = context_resolver or self._resolve_context_length
        self._keyword_classifier = KeywordTaskClassifier()

        # Live session state
        self._current_strength = ModelStrength.WEAK
        self._current_generator: Optional[ContentGenerator] = None
        self._current_chat: Optional[ChatSession] = None
        self._current_config: Optional[GeneratorConfig] = None
        self._context_limit: Optional[int] = None

        self.stats = {
            "switches": 0,
            "failed_switches": 0,
            "auto_switches": 0,
            "classifications": {task_type.value: 0 for task_type in TaskType},
        }

        logger.info(
            "model_switching_coordinator_initialized",
            providers=[provider.value for provider in self._model_configs],
            classifier=self.classifier.strategy,
            session_id=self.session_context.session_id,
        )

    async def _resolve_context_length(
        self, provider: ProviderKind, model: str, base_url: Optional[str]
    ) -> int:
        return await resolve_context_length(
            provider, model, base_url, timeout=self._discovery_timeout
        )

    # State accessors

    def get_current_strength(self) -> ModelStrength:
        return self._current_strength

    def get_current_generator(self) -> Optional[ContentGenerator]:
        return self._current_generator

    def get_current_chat(self) -> Optional[ChatSession]:
        return self._current_chat

    def get_current_config(self) -> Optional[GeneratorConfig]:
        return self._current_config

    def get_context_limit(self) -> Optional[int]:
        return self._context_limit

    @property
    def is_active(self) -> bool:
        return self._current_generator is not None and self._current_chat is not None

    def get_model_config(self, provider: ProviderKind) -> Optional[ModelConfig]:
        return self._model_configs.get(provider)

    def _require_model_config(self, provider: ProviderKind) -> ModelConfig:
        model_config = self._model_configs.get(provider)
        if model_config is None:
            value = provider.value if isinstance(provider, ProviderKind) else provider
            raise ConfigurationError(f"No model config for provider {value}")
        return model_config

    def get_model_for_task(self, task_type: TaskType, provider: ProviderKind) -> str:
        """Return the model id a task type should run on."""
        return self._require_model_config(provider).model_for(strength_for_task(task_type))

    async def evaluate_task_type(self, prompt: str) -> TaskType:
        """Classify a prompt with keywords only (no model call)."""
        return self._keyword_classifier.classify_text(prompt)

    # Switching

    def _snapshot(self) -> Optional[SessionSnapshot]:
        if not self.is_active:
            return None

        config = self._current_config
        return SessionSnapshot(
            history=self._current_chat.get_history(),
            config=config,
            current_model=config.model if config else self._current_generator.model,
            current_provider=config.provider_kind if config else None,
        )

    async def switch_model(
        self,
        model: str,
        provider: ProviderKind,
        base_config: GeneratorConfig,
    ) -> SwitchResult:
        """
        Switch the live session to an explicit model.

        Strength tracking is not touched.

        Raises:
            ConfigurationError: Missing credential/base URL or unsupported provider
            ConnectivityError: Local server not reachable
        """
        logger.info(
            "model_switch_started",
            model=model,
            provider=provider.value,
            from_model=self._current_config.model if self._current_config else None,
        )

        snapshot = self._snapshot()

        context_length = await self._context_resolver(provider, model, base_config.base_url)

        compressed = None
        if snapshot is not None:
            compressed = await self.compressor(snapshot, context_length)

        new_config = base_config.derive(model, provider)
        try:
            generator = await self.registry.create(new_config, self.session_context)
        except GeneratorError as e:
            self.stats["failed_switches"] += 1
            logger.warning(
                "model_switch_failed",
                model=model,
                provider=provider.value,
                error=str(e),
            )
            raise

        if compressed is not None:
            chat = self.chat_factory(generator, compressed.history)
        else:
            chat = self.chat_factory(generator)

        previous_generator = self._current_generator
        self._current_generator = generator
        self._current_chat = chat
        self._current_config = new_config
        self._context_limit = context_length
        self.stats["switches"] += 1
        bind_active_model(model, provider.value)

        if previous_generator is not None and previous_generator is not generator:
            await previous_generator.aclose()

        rehydrated = len(compressed.history) if compressed is not None else 0
        logger.info(
            "model_switch_completed",
            model=model,
            provider=provider.value,
            context_length=context_length,
            rehydrated_turns=rehydrated,
        )

        return SwitchResult(
            model=model,
            provider=provider,
            context_length=context_length,
            strength=self._current_strength,
            rehydrated_turns=rehydrated,
        )

    async def switch_to_strength(
        self,
        strength: ModelStrength,
        provider: ProviderKind,
        base_config: GeneratorConfig,
    ) -> SwitchResult:
        """
        Switch to the provider's weak or strong model.

        The strength is recorded only once the switch succeeded.

        Raises:
            ConfigurationError: No model pair for the provider, or switch failure
            ConnectivityError: Local server not reachable
        """
        model_config = self._require_model_config(provider)
        result = await self.switch_model(model_config.model_for(strength), provider, base_config)

        self._current_strength = strength
        result.strength = strength
        return result

    @asynccontextmanager
    async def _classification_generator(
        self,
        model_config: ModelConfig,
        provider: ProviderKind,
        base_config: GeneratorConfig,
        current_generator: Optional[ContentGenerator],
    ) -> AsyncIterator[Optional[ContentGenerator]]:
        """Yield a weak-model generator for classification, closing it afterwards."""
        if self._current_strength != ModelStrength.STRONG or not self.classifier.uses_generator:
            yield current_generator
            return

        weak_config = base_config.derive(model_config.weak, provider)
        try:
            generator = await self.registry.create(weak_config, self.session_context)
        except GeneratorError as e:
            logger.warning(
                "classification_generator_unavailable",
                model=model_config.weak,
                error=str(e),
            )
            generator = None

        if generator is None:
            yield current_generator
            return

        try:
            yield generator
        finally:
            await generator.aclose()

    async def auto_switch_based_on_task(
        self,
        prompt: str,
        history: Sequence[Content],
        provider: ProviderKind,
        base_config: GeneratorConfig,
        current_generator: Optional[ContentGenerator] = None,
    ) -> bool:
        """
        Classify the request and switch strength if it needs a different one.

        Returns:
            True if a switch was performed

        Raises:
            ConfigurationError: The provider has no weak/strong model pair
        """
        model_config = self._require_model_config(provider)

        async with self._classification_generator(
            model_config, provider, base_config, current_generator
        ) as evaluator:
            task_type = await self.classifier.classify(prompt, history, evaluator)

        self.stats["classifications"][task_type.value] += 1
        required = strength_for_task(task_type)

        if required == self._current_strength:
            logger.debug(
                "auto_switch_not_needed",
                task_type=task_type.value,
                strength=required.value,
            )
            return False

        logger.info(
            "auto_switch_triggered",
            task_type=task_type.value,
            from_strength=self._current_strength.value,
            to_strength=required.value,
        )

        try:
            await self.switch_to_strength(required, provider, base_config)
        except GeneratorError as e:
            logger.warning("auto_switch_failed", strength=required.value, error=str(e))
            return False

        self.stats["auto_switches"] += 1
        return True

    def get_stats(self) -> dict[str, Any]:
        """Get switching statistics."""
        return {
            **self.stats,
            "current_strength": self._current_strength.value,
            "current_model": self._current_config.model if self._current_config else None,
            "context_limit": self._context_limit,
        }

    async def aclose(self) -> None:
        """Release the live generator."""
        if self._current_generator is not None:
            await self._current_generator.aclose()
        self._current_generator = None
        self._current_chat = None
        logger.info("model_switching_coordinator_closed")
