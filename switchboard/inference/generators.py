"""
Content generators.

A content generator is the uniform capability the rest of the system talks to:
generate text, stream text, count tokens and embed text.

Backends:
- OpenAI-compatible HTTP APIs (hosted, Ollama, LM Studio)
- Gemini REST API (API key, Vertex AI, OAuth bearer token)
"""

import asyncio
import json
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, AsyncIterator, Optional

import httpx
import structlog

from switchboard.models.types import Content, SamplingParams

logger = structlog.get_logger(__name__)

LIVENESS_TIMEOUT = 5.0
DEFAULT_REQUEST_TIMEOUT = 120.0
GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
CHARS_PER_TOKEN = 4


def estimate_tokens(contents: list[Content]) -> int:
    """Rough token estimate for providers without a counting endpoint."""
    characters = sum(len(content.text) for content in contents)
    return (characters + CHARS_PER_TOKEN - 1) // CHARS_PER_TOKEN


@dataclass
class GenerateResponse:
    """Response from a content generator."""

    text: str
    model: str
    prompt_tokens: int = 0
    completion_tokens: int = 0
    finish_reason: str | None = None
    latency_ms: float = 0.0
    metadata: dict[str, Any] | None = None

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens


@dataclass(frozen=True)
class LocalServerCapabilities:
    """
    Extra capabilities of a local OpenAI-compatible server.

    Describes where the server lists its models (also used as the liveness
    probe) and what to tell the user when it is not running.
    """

    name: str
    root_url: str
    list_models_path: str
    listing_key: str
    id_field: str
    start_hint: str

    @property
    def list_models_url(self) -> str:
        return f"{self.root_url.rstrip('/')}{self.list_models_path}"

    def model_ids(self, payload: Any) -> list[str]:
        """Extract model ids from a listing payload."""
        if not isinstance(payload, dict):
            return []
        entries = payload.get(self.listing_key) or []
        return [
            entry[self.id_field]
            for entry in entries
            if isinstance(entry, dict) and isinstance(entry.get(self.id_field), str)
        ]


def ollama_capabilities(root_url: str) -> LocalServerCapabilities:
    return LocalServerCapabilities(
        name="Ollama",
        root_url=root_url,
        list_models_path="/api/tags",
        listing_key="models",
        id_field="name",
        start_hint='Please ensure Ollama is running with "ollama serve"',
    )


def lm_studio_capabilities(root_url: str) -> LocalServerCapabilities:
    return LocalServerCapabilities(
        name="LM Studio",
        root_url=root_url,
        list_models_path="/v1/models",
        listing_key="data",
        id_field="id",
        start_hint="Please ensure LM Studio server is running",
    )


class ContentGenerator(ABC):
    """Base class for all content generators."""

    def __init__(self, model: str):
        self.model = model
        self.total_calls = 0
        self.total_tokens = 0
        self.total_latency_ms = 0.0

    @abstractmethod
    async def generate_content(
        self,
        contents: list[Content],
        *,
        system: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> GenerateResponse:
        """Generate a reply for the conversation."""
        pass

    @abstractmethod
    def generate_content_stream(
        self,
        contents: list[Content],
        *,
        system: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> AsyncIterator[GenerateResponse]:
        """Stream a reply as partial responses."""
        pass

    @abstractmethod
    async def count_tokens(self, contents: list[Content]) -> int:
        """Count the prompt tokens of a conversation."""
        pass

    @abstractmethod
    async def embed_content(self, texts: list[str]) -> list[list[float]]:
        """Embed each text."""
        pass

    async def list_models(self) -> list[str] | None:
        """List the models served by the backend, if it can."""
        return None

    async def is_available(self) -> bool:
        """Check if the backend is reachable."""
        return True

    async def aclose(self) -> None:
        """Release network resources."""
        pass

    def _record(self, response: GenerateResponse) -> None:
        self.total_calls += 1
        self.total_tokens += response.total_tokens
        self.total_latency_ms += response.latency_ms

    def get_stats(self) -> dict[str, Any]:
        """Get generator statistics."""
        avg_latency = self.total_latency_ms / self.total_calls if self.total_calls > 0 else 0

        return {
            "model": self.model,
            "total_calls": self.total_calls,
            "total_tokens": self.total_tokens,
            "total_latency_ms": self.total_latency_ms,
            "avg_latency_ms": avg_latency,
        }

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()


def _http_client(
    base_url: str,
    headers: dict[str, str],
    timeout: float,
    max_retries: int,
    transport: Optional[httpx.AsyncBaseTransport],
) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        base_url=base_url,
        timeout=timeout,
        headers=headers,
        transport=transport or httpx.AsyncHTTPTransport(retries=max_retries),
    )


class OpenAICompatibleGenerator(ContentGenerator):
    """
    Generator for any OpenAI-compatible chat completions API.

    Local servers (Ollama, LM Studio) use this same generator with a
    ``LocalServerCapabilities`` record that adds model listing and the
    liveness probe.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        model: str,
        *,
        sampling: Optional[SamplingParams] = None,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
        max_retries: int = 0,
        user_agent: Optional[str] = None,
        local_server: Optional[LocalServerCapabilities] = None,
        liveness_timeout: float = LIVENESS_TIMEOUT,
        embedding_model: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(model)
        self.base_url = base_url.rstrip("/")
        self.sampling = sampling or SamplingParams()
        self.local_server = local_server
        self.liveness_timeout = liveness_timeout
        self.embedding_model = embedding_model or model

        headers = {"Authorization": f"Bearer {api_key}"}
        if user_agent:
            headers["User-Agent"] = user_agent
        self.client = _http_client(self.base_url, headers, timeout, max_retries, transport)

        logger.debug(
            "openai_compatible_generator_initialized",
            model=model,
            base_url=self.base_url,
            local_server=local_server.name if local_server else None,
        )

    def _payload(
        self,
        contents: list[Content],
        system: Optional[str],
        temperature: Optional[float],
        max_tokens: Optional[int],
    ) -> dict[str, Any]:
        messages = []
        if system:
            messages.append({"role": "system", "content": system})
        for content in contents:
            role = "assistant" if content.role == "model" else "user"
            messages.append({"role": role, "content": content.text})

        payload: dict[str, Any] = {"model": self.model, "messages": messages}
        sampling = self.sampling.model_dump(exclude_none=True)
        payload.update(sampling)
        if temperature is not None:
            payload["temperature"] = temperature
        if max_tokens is not None:
            payload["max_tokens"] = max_tokens
        return payload

    async def generate_content(
        self,
        contents: list[Content],
        *,
        system: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> GenerateResponse:
        """Generate a reply via /chat/completions."""
        start_time = time.time()
        payload = self._payload(contents, system, temperature, max_tokens)

        try:
            response = await self.client.post("/chat/completions", json=payload)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPError as e:
            logger.error(
                "generation_failed",
                model=self.model,
                base_url=self.base_url,
                error=str(e),
            )
            raise

        choice = (data.get("choices") or [{}])[0]
        usage = data.get("usage") or {}
        result = GenerateResponse(
            text=(choice.get("message") or {}).get("content") or "",
            model=data.get("model", self.model),
            prompt_tokens=usage.get("prompt_tokens", 0),
            completion_tokens=usage.get("completion_tokens", 0),
            finish_reason=choice.get("finish_reason"),
            latency_ms=(time.time() - start_time) * 1000,
            metadata={"usage": usage},
        )
        self._record(result)

        logger.debug(
            "generation_completed",
            model=self.model,
            tokens=result.total_tokens,
            latency_ms=result.latency_ms,
        )
        return result

    async def generate_content_stream(
        self,
        contents: list[Content],
        *,
        system: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> AsyncIterator[GenerateResponse]:
        """Stream a reply via server-sent events."""
        payload = self._payload(contents, system, temperature, max_tokens)
        payload["stream"] = True

        async with self.client.stream("POST", "/chat/completions", json=payload) as response:
            response.raise_for_status()

            async for line in response.aiter_lines():
                if not line.startswith("data: "):
                    continue
                data = line[6:]
                if data == "[DONE]":
                    break

                try:
                    chunk = json.loads(data)
                    choice = chunk["choices"][0]
                except (json.JSONDecodeError, KeyError, IndexError) as e:
                    logger.warning("stream_parse_error", error=str(e))
                    continue

                text = (choice.get("delta") or {}).get("content") or ""
                if text:
                    yield GenerateResponse(
                        text=text,
                        model=self.model,
                        finish_reason=choice.get("finish_reason"),
                    )

    async def count_tokens(self, contents: list[Content]) -> int:
        # OpenAI-compatible APIs have no counting endpoint
        return estimate_tokens(contents)

    async def embed_content(self, texts: list[str]) -> list[list[float]]:
        response = await self.client.post(
            "/embeddings",
            json={"model": self.embedding_model, "input": texts},
        )
        response.raise_for_status()
        data = response.json()
        return [item["embedding"] for item in data.get("data", [])]

    async def list_models(self) -> list[str] | None:
        """List models served by a local server."""
        if self.local_server is None:
            return None

        try:
            response = await self.client.get(self.local_server.list_models_url)
            response.raise_for_status()
            return self.local_server.model_ids(response.json())
        except (httpx.HTTPError, ValueError) as e:
            logger.error(
                "list_models_failed",
                server=self.local_server.name,
                error=str(e),
            )
            return []

    async def is_available(self) -> bool:
        """
        Probe a local server's model listing.

        The whole probe, transport retries included, is bounded by
        ``liveness_timeout``.
        """
        if self.local_server is None:
            return True

        try:
            response = await asyncio.wait_for(
                self.client.get(
                    self.local_server.list_models_url,
                    timeout=self.liveness_timeout,
                ),
                self.liveness_timeout,
            )
            return response.is_success
        except (httpx.HTTPError, asyncio.TimeoutError):
            return False

    async def aclose(self) -> None:
        await self.client.aclose()


class GeminiGenerator(ContentGenerator):
    """
    Generator for the Gemini REST API.

    Authenticates with an API key header or an OAuth bearer token.
    """

    def __init__(
        self,
        model: str,
        *,
        api_key: Optional[str] = None,
        access_token: Optional[str] = None,
        base_url: str = GEMINI_BASE_URL,
        sampling: Optional[SamplingParams] = None,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
        max_retries: int = 0,
        user_agent: Optional[str] = None,
        embedding_model: str = "text-embedding-004",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(model)
        self.base_url = base_url.rstrip("/")
        self.sampling = sampling or SamplingParams()
        self.embedding_model = embedding_model

        headers: dict[str, str] = {}
        if api_key:
            headers["x-goog-api-key"] = api_key
        elif access_token:
            headers["Authorization"] = f"Bearer {access_token}"
        if user_agent:
            headers["User-Agent"] = user_agent
        self.client = _http_client(self.base_url, headers, timeout, max_retries, transport)

        logger.debug("gemini_generator_initialized", model=model, base_url=self.base_url)

    def _body(
        self,
        contents: list[Content],
        system: Optional[str],
        temperature: Optional[float],
        max_tokens: Optional[int],
    ) -> dict[str, Any]:
        generation_config = {
            "temperature": self.sampling.temperature,
            "topP": self.sampling.top_p,
            "topK": self.sampling.top_k,
            "presencePenalty": self.sampling.presence_penalty,
            "frequencyPenalty": self.sampling.frequency_penalty,
            "maxOutputTokens": self.sampling.max_tokens,
        }
        if temperature is not None:
            generation_config["temperature"] = temperature
        if max_tokens is not None:
            generation_config["maxOutputTokens"] = max_tokens

        body: dict[str, Any] = {
            "contents": [content.model_dump() for content in contents],
            "generationConfig": {k: v for k, v in generation_config.items() if v is not None},
        }
        if system:
            body["systemInstruction"] = {"parts": [{"text": system}]}
        return body

    @staticmethod
    def _candidate_text(data: dict[str, Any]) -> tuple[str, Optional[str]]:
        candidates = data.get("candidates") or [{}]
        candidate = candidates[0]
        parts = (candidate.get("content") or {}).get("parts") or []
        text = "".join(part.get("text", "") for part in parts)
        return text, candidate.get("finishReason")

    async def generate_content(
        self,
        contents: list[Content],
        *,
        system: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> GenerateResponse:
        start_time = time.time()
        body = self._body(contents, system, temperature, max_tokens)

        try:
            response = await self.client.post(f"/models/{self.model}:generateContent", json=body)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPError as e:
            logger.error("generation_failed", model=self.model, error=str(e))
            raise

        text, finish_reason = self._candidate_text(data)
        usage = data.get("usageMetadata") or {}
        result = GenerateResponse(
            text=text,
            model=self.model,
            prompt_tokens=usage.get("promptTokenCount", 0),
            completion_tokens=usage.get("candidatesTokenCount", 0),
            finish_reason=finish_reason,
            latency_ms=(time.time() - start_time) * 1000,
            metadata={"usage": usage},
        )
        self._record(result)
        return result

    async def generate_content_stream(
        self,
        contents: list[Content],
        *,
        system: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> AsyncIterator[GenerateResponse]:
        body = self._body(contents, system, temperature, max_tokens)

        async with self.client.stream(
            "POST",
            f"/models/{self.model}:streamGenerateContent",
            params={"alt": "sse"},
            json=body,
        ) as response:
            response.raise_for_status()

            async for line in response.aiter_lines():
                if not line.startswith("data: "):
                    continue
                try:
                    chunk = json.loads(line[6:])
                except json.JSONDecodeError as e:
                    logger.warning("stream_parse_error", error=str(e))
                    continue

                text, finish_reason = self._candidate_text(chunk)
                if text:
                    yield GenerateResponse(text=text, model=self.model, finish_reason=finish_reason)

    async def count_tokens(self, contents: list[Content]) -> int:
        response = await self.client.post(
            f"/models/{self.model}:countTokens",
            json={"contents": [content.model_dump() for content in contents]},
        )
        response.raise_for_status()
        return int(response.json().get("totalTokens", 0))

    async def embed_content(self, texts: list[str]) -> list[list[float]]:
        model_name = f"models/{self.embedding_model}"
        response = await self.client.post(
            f"/{model_name}:batchEmbedContents",
            json={
                "requests": [
                    {"model": model_name, "content": {"parts": [{"text": text}]}}
                    for text in texts
                ]
            },
        )
        response.raise_for_status()
        return [item.get("values", []) for item in response.json().get("embeddings", [])]

    async def aclose(self) -> None:
        await self.client.aclose()
