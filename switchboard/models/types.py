"""Data models shared by the generator registry, classifier and coordinator."""

from datetime import datetime, timezone
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class ProviderKind(str, Enum):
    """Authentication/transport scheme used to reach a model."""

    OAUTH_PERSONAL = "oauth-personal"
    GEMINI_API_KEY = "gemini-api-key"
    VERTEX_AI = "vertex-ai"
    CLOUD_SHELL = "cloud-shell"
    OPENAI = "openai"
    OLLAMA = "ollama"
    LM_STUDIO = "lm-studio"

    @property
    def is_local(self) -> bool:
        """Whether the provider is a local OpenAI-compatible server."""
        return self in (ProviderKind.OLLAMA, ProviderKind.LM_STUDIO)


class ModelStrength(str, Enum):
    """Coarse quality/cost tier."""

    WEAK = "weak"
    STRONG = "strong"


class TaskType(str, Enum):
    """Categories a user request can be classified into."""

    EXPLORATION = "exploration"
    PLANNING = "planning"
    TROUBLESHOOTING = "troubleshooting"
    REVIEW = "review"
    DOCUMENTATION = "documentation"
    IMPLEMENTATION = "implementation"


class ModelConfig(BaseModel):
    """Weak and strong model ids configured for one provider."""

    model_config = ConfigDict(frozen=True)

    weak: str = Field(min_length=1)
    strong: str = Field(min_length=1)

    def model_for(self, strength: ModelStrength) -> str:
        """Return the model id for a strength."""
        return self.weak if strength == ModelStrength.WEAK else self.strong


class SamplingParams(BaseModel):
    """Optional sampling overrides forwarded to the provider."""

    model_config = ConfigDict(frozen=True)

    temperature: float | None = None
    top_p: float | None = None
    top_k: int | None = None
    repetition_penalty: float | None = None
    presence_penalty: float | None = None
    frequency_penalty: float | None = None
    max_tokens: int | None = None


class GeneratorConfig(BaseModel):
    """
    Resolved configuration for building a content generator.

    Instances are immutable; a switch derives a new config with ``derive``.
    """

    model_config = ConfigDict(frozen=True)

    model: str
    provider_kind: ProviderKind | None = None
    api_key: str | None = None
    access_token: str | None = None
    base_url: str | None = None
    vertexai: bool = False
    project: str | None = None
    location: str | None = None
    timeout: float | None = None
    max_retries: int | None = None
    sampling: SamplingParams | None = None

    def derive(self, model: str, provider_kind: ProviderKind) -> "GeneratorConfig":
        """Copy this config with the model and provider overridden."""
        return self.model_copy(update={"model": model, "provider_kind": provider_kind})


class Part(BaseModel):
    """A single piece of turn content."""

    text: str


class Content(BaseModel):
    """One conversation turn."""

    role: Literal["user", "model"]
    parts: list[Part] = Field(default_factory=list)

    @classmethod
    def from_text(cls, role: Literal["user", "model"], text: str) -> "Content":
        return cls(role=role, parts=[Part(text=text)])

    @property
    def text(self) -> str:
        return "".join(part.text for part in self.parts)


class SessionSnapshot(BaseModel):
    """Conversation state captured right before a model switch."""

    history: list[Content] = Field(default_factory=list)
    config: GeneratorConfig | None = None
    current_model: str = ""
    current_provider: ProviderKind | None = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
