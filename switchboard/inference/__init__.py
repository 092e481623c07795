"""
Model switching and task routing.

Lets an interactive session move between models and providers without
losing its conversation, and picks a weak or strong model per request.

Components:
- ProviderRegistry: Builds content generators per provider kind
- resolve_context_length: Discovers a model's context window
- TaskClassifier: Classifies requests into task types (keywords or model)
- ModelSwitchingCoordinator: Snapshot, compress, rebuild, rehydrate
"""

from .classifier import (
    BaseTaskClassifier,
    KeywordTaskClassifier,
    ModelTaskClassifier,
    create_classifier,
    parse_task_type,
)
from .context_discovery import DEFAULT_CONTEXT_LENGTH, resolve_context_length
from .coordinator import ModelSwitchingCoordinator, SwitchResult, strength_for_task
from .errors import ConfigurationError, ConnectivityError, GeneratorError
from .generators import (
    ContentGenerator,
    GeminiGenerator,
    GenerateResponse,
    LocalServerCapabilities,
    OpenAICompatibleGenerator,
)
from .registry import (
    ProviderRegistry,
    SessionContext,
    create_generator,
    create_generator_config,
    get_registry,
)

__all__ = [
    # Classifier
    "BaseTaskClassifier",
    "KeywordTaskClassifier",
    "ModelTaskClassifier",
    "create_classifier",
    "parse_task_type",
    # Context discovery
    "DEFAULT_CONTEXT_LENGTH",
    "resolve_context_length",
    # Coordinator
    "ModelSwitchingCoordinator",
    "SwitchResult",
    "strength_for_task",
    # Errors
    "ConfigurationError",
    "ConnectivityError",
    "GeneratorError",
    # Generators
    "ContentGenerator",
    "GeminiGenerator",
    "GenerateResponse",
    "LocalServerCapabilities",
    "OpenAICompatibleGenerator",
    # Registry
    "ProviderRegistry",
    "SessionContext",
    "create_generator",
    "create_generator_config",
    "get_registry",
]
