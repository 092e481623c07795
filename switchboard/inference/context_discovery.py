"""
Context window discovery.

Looks up the maximum context length of a model, asking the local server or
model aggregator where one exists and falling back to a static table.
Discovery never raises: any failure yields ``DEFAULT_CONTEXT_LENGTH``.
"""

from typing import Any, Optional

import httpx
import structlog

from switchboard.models.types import ProviderKind

logger = structlog.get_logger(__name__)

DEFAULT_CONTEXT_LENGTH = 32_768
DISCOVERY_TIMEOUT = 5.0
DEFAULT_OLLAMA_URL = "http://localhost:11434"
DEFAULT_LM_STUDIO_URL = "http://localhost:1234"
AGGREGATOR_MARKERS = ("openrouter",)

# Substring -> context length. First match wins, so specific ids go first.
KNOWN_CONTEXT_LENGTHS: tuple[tuple[str, int], ...] = (
    ("gpt-4-turbo-preview", 128_000),
    ("gpt-4-1106-preview", 128_000),
    ("gpt-4-turbo", 128_000),
    ("gpt-4o-mini", 128_000),
    ("gpt-4o", 128_000),
    ("gpt-4-32k", 32_768),
    ("gpt-4", 8_192),
    ("gpt-3.5-turbo-16k", 16_385),
    ("gpt-3.5-turbo", 16_385),
    ("gemini-1.5-pro", 2_097_152),
    ("gemini-1.5-flash", 1_048_576),
    ("gemini-2.0-flash", 1_048_576),
    ("gemini-2.5", 1_048_576),
)


def lookup_known_context_length(model: str) -> int:
    """Return the context length of a well-known model id, or the default."""
    for key, length in KNOWN_CONTEXT_LENGTHS:
        if key in model:
            return length
    return DEFAULT_CONTEXT_LENGTH


def _positive_int(value: Any) -> Optional[int]:
    if isinstance(value, int) and not isinstance(value, bool) and value > 0:
        return value
    return None


def _first_positive(*values: Any) -> int:
    for value in values:
        length = _positive_int(value)
        if length is not None:
            return length
    return DEFAULT_CONTEXT_LENGTH


def _match_listing(payload: Any, model: str) -> Optional[dict[str, Any]]:
    if not isinstance(payload, dict) or not isinstance(payload.get("data"), list):
        return None
    for entry in payload["data"]:
        if isinstance(entry, dict) and entry.get("id") == model:
            return entry
    return None


async def _ollama_context_length(client: httpx.AsyncClient, model: str, base_url: str) -> int:
    response = await client.post(f"{base_url}/api/show", json={"name": model})
    data = response.json()
    if not isinstance(data, dict):
        return DEFAULT_CONTEXT_LENGTH

    model_info = data.get("model_info")
    if not isinstance(model_info, dict):
        model_info = {}

    # Architectures report "<arch>.context_length" alongside the general key
    architecture_lengths = [
        value for key, value in model_info.items() if key.endswith(".context_length")
    ]
    return _first_positive(
        model_info.get("general.context_length"),
        *architecture_lengths,
        data.get("context_length"),
    )


async def _listing_context_length(client: httpx.AsyncClient, url: str, model: str) -> int:
    response = await client.get(url)
    entry = _match_listing(response.json(), model)
    if entry is None:
        return DEFAULT_CONTEXT_LENGTH
    return _first_positive(entry.get("context_length"), entry.get("max_tokens"))


async def _discover(
    client: httpx.AsyncClient,
    provider: ProviderKind,
    model: str,
    base_url: Optional[str],
) -> int:
    if provider == ProviderKind.OLLAMA:
        root = (base_url or DEFAULT_OLLAMA_URL).rstrip("/")
        return await _ollama_context_length(client, model, root)

    if provider == ProviderKind.LM_STUDIO:
        root = (base_url or DEFAULT_LM_STUDIO_URL).rstrip("/")
        return await _listing_context_length(client, f"{root}/v1/models", model)

    if provider == ProviderKind.OPENAI and base_url and any(
        marker in base_url for marker in AGGREGATOR_MARKERS
    ):
        return await _listing_context_length(client, f"{base_url.rstrip('/')}/models", model)

    return lookup_known_context_length(model)


async def resolve_context_length(
    provider: ProviderKind,
    model: str,
    base_url: Optional[str] = None,
    *,
    timeout: float = DISCOVERY_TIMEOUT,
    client: Optional[httpx.AsyncClient] = None,
) -> int:
    """
    Determine the context window of a model.

    Args:
        provider: Provider the model is served by
        model: Model id
        base_url: Provider endpoint (server root for local servers)
        timeout: Bound for each discovery request in seconds
        client: Optional HTTP client to reuse

    Returns:
        Context length in tokens, always positive
    """
    owns_client = client is None
    if client is None:
        client = httpx.AsyncClient(timeout=timeout)

    try:
        length = await _discover(client, provider, model, base_url)
    except Exception as e:
        logger.warning(
            "context_discovery_failed",
            provider=provider.value if isinstance(provider, ProviderKind) else provider,
            model=model,
            error=str(e),
        )
        length = DEFAULT_CONTEXT_LENGTH
    finally:
        if owns_client:
            await client.aclose()

    logger.debug("context_length_resolved", model=model, context_length=length)
    return length
