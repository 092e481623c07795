"""
Provider Registry.

Turns a resolved ``GeneratorConfig`` into a live ``ContentGenerator``.
Local servers are probed before the generator is handed out; hosted
providers are never probed.
"""

import sys
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional
from uuid import uuid4

import httpx
import structlog

from switchboard.config.settings import Settings, get_settings
from switchboard.models.types import GeneratorConfig, ProviderKind

from .errors import ConfigurationError, ConnectivityError
from .generators import (
    DEFAULT_REQUEST_TIMEOUT,
    GEMINI_BASE_URL,
    LIVENESS_TIMEOUT,
    ContentGenerator,
    GeminiGenerator,
    LocalServerCapabilities,
    OpenAICompatibleGenerator,
    lm_studio_capabilities,
    ollama_capabilities,
)

logger = structlog.get_logger(__name__)

APP_VERSION = "0.1.0"
LOCAL_API_KEY = "not-required"
OPENAI_BASE_URL = "https://api.openai.com/v1"
VERTEX_EXPRESS_BASE_URL = "https://aiplatform.googleapis.com/v1/publishers/google"


@dataclass
class SessionContext:
    """Identity of the interactive session generators are built for."""

    session_id: str = field(default_factory=lambda: uuid4().hex)
    app_version: str = APP_VERSION

    @property
    def user_agent(self) -> str:
        return f"switchboard/{self.app_version} ({sys.platform}; session {self.session_id})"


GeneratorBuilder = Callable[[GeneratorConfig, SessionContext], Awaitable[ContentGenerator]]


class ProviderRegistry:
    """
    Builds content generators per provider kind.

    Each provider kind maps to a builder coroutine. Host applications can
    replace a builder with ``register`` (e.g. to plug in their own OAuth flow).
    """

    def __init__(
        self,
        liveness_timeout: float = LIVENESS_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.liveness_timeout = liveness_timeout
        self._transport = transport
        self._builders: dict[ProviderKind, GeneratorBuilder] = {
            ProviderKind.OAUTH_PERSONAL: self._build_google_oauth,
            ProviderKind.CLOUD_SHELL: self._build_google_oauth,
            ProviderKind.GEMINI_API_KEY: self._build_gemini,
            ProviderKind.VERTEX_AI: self._build_vertex,
            ProviderKind.OPENAI: self._build_openai,
            ProviderKind.OLLAMA: self._build_ollama,
            ProviderKind.LM_STUDIO: self._build_lm_studio,
        }

    def register(self, provider_kind: ProviderKind, builder: GeneratorBuilder) -> None:
        """Register (or replace) the builder for a provider kind."""
        self._builders[provider_kind] = builder
        logger.debug("generator_builder_registered", provider=provider_kind.value)

    def supports(self, provider_kind: Optional[ProviderKind]) -> bool:
        return provider_kind in self._builders

    async def create(
        self,
        config: GeneratorConfig,
        context: Optional[SessionContext] = None,
    ) -> ContentGenerator:
        """
        Build a generator for a config.

        Raises:
            ConfigurationError: Unsupported provider or missing credential/base URL
            ConnectivityError: Local server failed its liveness probe
        """
        builder = self._builders.get(config.provider_kind) if config.provider_kind else None
        if builder is None:
            raise ConfigurationError(
                f"Error creating content generator: unsupported provider: {config.provider_kind}"
            )

        generator = await builder(config, context or SessionContext())

        logger.info(
            "generator_created",
            provider=config.provider_kind.value,
            model=config.model,
        )
        return generator

    def _common_options(self, config: GeneratorConfig, context: SessionContext) -> dict:
        return {
            "sampling": config.sampling,
            "timeout": config.timeout or DEFAULT_REQUEST_TIMEOUT,
            "max_retries": config.max_retries or 0,
            "user_agent": context.user_agent,
            "transport": self._transport,
        }

    async def _build_google_oauth(
        self, config: GeneratorConfig, context: SessionContext
    ) -> ContentGenerator:
        if not config.access_token:
            raise ConfigurationError(
                f"GOOGLE_OAUTH_ACCESS_TOKEN is required for provider {config.provider_kind.value}"
            )
        return GeminiGenerator(
            config.model,
            access_token=config.access_token,
            base_url=config.base_url or GEMINI_BASE_URL,
            **self._common_options(config, context),
        )

    async def _build_gemini(
        self, config: GeneratorConfig, context: SessionContext
    ) -> ContentGenerator:
        if not config.api_key:
            raise ConfigurationError("GEMINI_API_KEY is required for provider gemini-api-key")
        return GeminiGenerator(
            config.model,
            api_key=config.api_key,
            base_url=config.base_url or GEMINI_BASE_URL,
            **self._common_options(config, context),
        )

    async def _build_vertex(
        self, config: GeneratorConfig, context: SessionContext
    ) -> ContentGenerator:
        if config.api_key:
            base_url = config.base_url or VERTEX_EXPRESS_BASE_URL
        elif config.project and config.location and config.access_token:
            base_url = config.base_url or (
                f"https://{config.location}-aiplatform.googleapis.com/v1/"
                f"projects/{config.project}/locations/{config.location}/publishers/google"
            )
        else:
            raise ConfigurationError(
                "GOOGLE_API_KEY, or GOOGLE_CLOUD_PROJECT and GOOGLE_CLOUD_LOCATION with "
                "GOOGLE_OAUTH_ACCESS_TOKEN, is required for provider vertex-ai"
            )
        return GeminiGenerator(
            config.model,
            api_key=config.api_key,
            access_token=config.access_token,
            base_url=base_url,
            **self._common_options(config, context),
        )

    async def _build_openai(
        self, config: GeneratorConfig, context: SessionContext
    ) -> ContentGenerator:
        if not config.api_key:
            raise ConfigurationError("OPENAI_API_KEY is required for provider openai")
        return OpenAICompatibleGenerator(
            config.base_url or OPENAI_BASE_URL,
            config.api_key,
            config.model,
            **self._common_options(config, context),
        )

    async def _build_ollama(
        self, config: GeneratorConfig, context: SessionContext
    ) -> ContentGenerator:
        if not config.base_url:
            raise ConfigurationError("Ollama base URL is required (set OLLAMA_BASE_URL)")
        return await self._build_local(config, context, ollama_capabilities(config.base_url))

    async def _build_lm_studio(
        self, config: GeneratorConfig, context: SessionContext
    ) -> ContentGenerator:
        if not config.base_url:
            raise ConfigurationError("LM Studio base URL is required (set LM_STUDIO_BASE_URL)")
        return await self._build_local(config, context, lm_studio_capabilities(config.base_url))

    async def _build_local(
        self,
        config: GeneratorConfig,
        context: SessionContext,
        capabilities: LocalServerCapabilities,
    ) -> ContentGenerator:
        generator = OpenAICompatibleGenerator(
            f"{capabilities.root_url.rstrip('/')}/v1",
            config.api_key or LOCAL_API_KEY,
            config.model,
            local_server=capabilities,
            liveness_timeout=self.liveness_timeout,
            **self._common_options(config, context),
        )

        if not await generator.is_available():
            await generator.aclose()
            logger.warning(
                "local_server_unreachable",
                server=capabilities.name,
                base_url=capabilities.root_url,
            )
            raise ConnectivityError(
                f"Cannot connect to {capabilities.name} server at {capabilities.root_url}. "
                f"{capabilities.start_hint}",
                base_url=capabilities.root_url,
            )

        return generator


def create_generator_config(
    model: Optional[str],
    provider_kind: ProviderKind,
    settings: Optional[Settings] = None,
) -> GeneratorConfig:
    """
    Resolve a generator config from settings.

    Missing credentials are not reported here; they surface when the
    generator is built.
    """
    settings = settings or get_settings()
    common = {
        "provider_kind": provider_kind,
        "timeout": settings.request_timeout,
        "max_retries": settings.max_retries,
    }

    if provider_kind in (ProviderKind.OAUTH_PERSONAL, ProviderKind.CLOUD_SHELL):
        return GeneratorConfig(
            model=model or settings.gemini_model,
            access_token=settings.google_oauth_access_token,
            **common,
        )

    if provider_kind == ProviderKind.GEMINI_API_KEY:
        return GeneratorConfig(
            model=model or settings.gemini_model,
            api_key=settings.gemini_api_key,
            **common,
        )

    if provider_kind == ProviderKind.VERTEX_AI:
        return GeneratorConfig(
            model=model or settings.gemini_model,
            api_key=settings.google_api_key,
            access_token=settings.google_oauth_access_token,
            vertexai=True,
            project=settings.google_cloud_project,
            location=settings.google_cloud_location,
            **common,
        )

    if provider_kind == ProviderKind.OPENAI:
        return GeneratorConfig(
            model=model or settings.openai_model or "",
            api_key=settings.openai_api_key,
            base_url=settings.openai_base_url,
            **common,
        )

    if provider_kind == ProviderKind.OLLAMA:
        return GeneratorConfig(
            model=model or settings.ollama_model,
            api_key=LOCAL_API_KEY,
            base_url=settings.ollama_base_url,
            **common,
        )

    if provider_kind == ProviderKind.LM_STUDIO:
        return GeneratorConfig(
            model=model or settings.lm_studio_model,
            api_key=LOCAL_API_KEY,
            base_url=settings.lm_studio_base_url,
            **common,
        )

    raise ConfigurationError(f"Unsupported provider: {provider_kind}")


# Global registry instance
_registry: ProviderRegistry | None = None


def get_registry() -> ProviderRegistry:
    """Get or create the global provider registry."""
    global _registry
    if _registry is None:
        _registry = ProviderRegistry(liveness_timeout=get_settings().liveness_timeout)
    return _registry


async def create_generator(
    config: GeneratorConfig,
    context: Optional[SessionContext] = None,
) -> ContentGenerator:
    """Build a generator with the global registry."""
    return await get_registry().create(config, context)
