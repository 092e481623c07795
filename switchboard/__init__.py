"""Model switching and task routing for interactive coding sessions."""

# Configuration
from switchboard.config.settings import Settings, get_settings, reload_settings

# Logging
from switchboard.logging.logger import configure_logging, get_logger

# Models
from switchboard.models.types import (
    Content,
    GeneratorConfig,
    ModelConfig,
    ModelStrength,
    Part,
    ProviderKind,
    SamplingParams,
    SessionSnapshot,
    TaskType,
)

# Inference
from switchboard.inference import (
    ConfigurationError,
    ConnectivityError,
    ContentGenerator,
    GeneratorError,
    ModelSwitchingCoordinator,
    ProviderRegistry,
    create_generator_config,
    resolve_context_length,
)

# Session
from switchboard.session.chat import ChatSession
from switchboard.session.compression import Compressor, passthrough_compressor

# Commands
from switchboard.commands.model_commands import CommandResult, MessageType, ModelCommands

__version__ = "0.1.0"

__all__ = [
    # Configuration
    "Settings",
    "get_settings",
    "reload_settings",
    # Logging
    "configure_logging",
    "get_logger",
    # Models
    "Content",
    "GeneratorConfig",
    "ModelConfig",
    "ModelStrength",
    "Part",
    "ProviderKind",
    "SamplingParams",
    "SessionSnapshot",
    "TaskType",
    # Inference
    "ConfigurationError",
    "ConnectivityError",
    "ContentGenerator",
    "GeneratorError",
    "ModelSwitchingCoordinator",
    "ProviderRegistry",
    "create_generator_config",
    "resolve_context_length",
    # Session
    "ChatSession",
    "Compressor",
    "passthrough_compressor",
    # Commands
    "CommandResult",
    "MessageType",
    "ModelCommands",
]
