"""
Lucid — Explainability Provider Abstraction

The analysis engine talks to the remote explainability service through
this interface. A request is (model identifier, prompt text, response
schema); a response is the raw text the model produced.

Supports Google Gemini (default), OpenAI, and local models via Ollama.

Includes retry with exponential backoff for transient errors (429, 503, 529).
Exhausted retries and transport failures are raised as RemoteError kinds so
the engine can fall back without caring which provider failed.
"""

from __future__ import annotations

import asyncio
import contextlib
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

import httpx
import structlog

from lucid.prompts.audit import to_json_schema
from lucid.systems.audit.errors import (
    RemoteError,
    RemoteQuotaError,
    RemoteTransportError,
)

if TYPE_CHECKING:
    from lucid.config import LLMConfig

logger = structlog.get_logger()

_BASE_DELAY_S = 0.5
_RETRYABLE_STATUS_CODES = {429, 503, 529}
_QUOTA_STATUS_CODES = {429}


class LLMResponse:
    """Response from a structured generation call."""

    def __init__(
        self,
        text: str,
        model: str = "",
        input_tokens: int = 0,
        output_tokens: int = 0,
        finish_reason: str = "stop",
    ) -> None:
        self.text = text
        self.model = model
        self.input_tokens = input_tokens
        self.output_tokens = output_tokens
        self.finish_reason = finish_reason

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


class ExplainabilityProvider(ABC):
    """Abstract interface for schema-constrained LLM calls."""

    model: str = ""

    @abstractmethod
    async def generate_structured(
        self,
        prompt: str,
        response_schema: dict[str, Any],
    ) -> LLMResponse:
        """Generate a JSON document conforming to response_schema."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Clean up resources."""
        ...


class _HTTPProvider(ExplainabilityProvider):
    """Shared httpx plumbing: retry, backoff, error translation."""

    def __init__(
        self,
        model: str,
        client: httpx.AsyncClient,
        max_retries: int = 2,
        temperature: float = 0.2,
    ) -> None:
        self.model = model
        self._client = client
        self._max_retries = max_retries
        self._temperature = temperature

    async def _post_with_retry(
        self, path: str, payload: dict[str, Any],
    ) -> dict[str, Any]:
        """POST with exponential backoff on retryable status codes."""
        for attempt in range(self._max_retries + 1):
            try:
                response = await self._client.post(path, json=payload)
            except httpx.TimeoutException as exc:
                if attempt < self._max_retries:
                    delay = _BASE_DELAY_S * (2 ** attempt)
                    logger.warning(
                        "llm_timeout_retrying",
                        attempt=attempt + 1,
                        delay_s=round(delay, 1),
                    )
                    await asyncio.sleep(delay)
                    continue
                raise RemoteTransportError(f"timeout: {exc}") from exc
            except httpx.HTTPError as exc:
                raise RemoteTransportError(str(exc) or type(exc).__name__) from exc

            if response.status_code in _RETRYABLE_STATUS_CODES and attempt < self._max_retries:
                delay = _BASE_DELAY_S * (2 ** attempt)
                # Respect Retry-After header if present
                retry_after = response.headers.get("retry-after")
                if retry_after:
                    with contextlib.suppress(ValueError):
                        delay = max(delay, float(retry_after))
                logger.warning(
                    "llm_retrying",
                    status=response.status_code,
                    attempt=attempt + 1,
                    delay_s=round(delay, 1),
                )
                await asyncio.sleep(delay)
                continue

            if response.is_error:
                body = ""
                with contextlib.suppress(Exception):
                    body = response.text[:500]
                message = f"{response.status_code}: {body}"
                if response.status_code in _QUOTA_STATUS_CODES:
                    raise RemoteQuotaError(message)
                raise RemoteTransportError(message)

            try:
                return response.json()  # type: ignore[no-any-return]
            except ValueError as exc:
                raise RemoteTransportError(f"non-JSON response envelope: {exc}") from exc

        raise RemoteError("LLM request failed after retries")

    async def close(self) -> None:
        await self._client.aclose()


class GeminiProvider(_HTTPProvider):
    """Google Generative Language API with native response schemas."""

    def __init__(
        self,
        api_key: str,
        model: str = "gemini-1.5-flash",
        base_url: str = "https://generativelanguage.googleapis.com/v1beta",
        timeout_s: float = 10.0,
        max_retries: int = 2,
        temperature: float = 0.2,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        client = httpx.AsyncClient(
            base_url=base_url,
            headers={
                "x-goog-api-key": api_key.strip(),
                "content-type": "application/json",
            },
            timeout=timeout_s,
            transport=transport,
        )
        super().__init__(model, client, max_retries=max_retries, temperature=temperature)

    async def generate_structured(
        self,
        prompt: str,
        response_schema: dict[str, Any],
    ) -> LLMResponse:
        payload: dict[str, Any] = {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": {
                "temperature": self._temperature,
                "responseMimeType": "application/json",
                "responseSchema": response_schema,
            },
        }

        data = await self._post_with_retry(f"/models/{self.model}:generateContent", payload)

        text = ""
        finish_reason = "stop"
        candidates = data.get("candidates") or []
        if candidates:
            first = candidates[0]
            finish_reason = str(first.get("finishReason", "STOP")).lower()
            for part in first.get("content", {}).get("parts", []):
                text += part.get("text", "")

        usage = data.get("usageMetadata", {})
        return LLMResponse(
            text=text,
            model=data.get("modelVersion", self.model),
            input_tokens=usage.get("promptTokenCount", 0),
            output_tokens=usage.get("candidatesTokenCount", 0),
            finish_reason=finish_reason,
        )


class OpenAIProvider(_HTTPProvider):
    """OpenAI chat completions with strict json_schema response format."""

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o-mini",
        base_url: str = "https://api.openai.com/v1",
        timeout_s: float = 10.0,
        max_retries: int = 2,
        temperature: float = 0.2,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        client = httpx.AsyncClient(
            base_url=base_url,
            headers={
                "Authorization": f"Bearer {api_key.strip()}",
                "Content-Type": "application/json",
            },
            timeout=timeout_s,
            transport=transport,
        )
        super().__init__(model, client, max_retries=max_retries, temperature=temperature)

    async def generate_structured(
        self,
        prompt: str,
        response_schema: dict[str, Any],
    ) -> LLMResponse:
        payload: dict[str, Any] = {
            "model": self.model,
            "temperature": self._temperature,
            "messages": [{"role": "user", "content": prompt}],
            "response_format": {
                "type": "json_schema",
                "json_schema": {
                    "name": "audit_result",
                    "strict": True,
                    "schema": to_json_schema(response_schema),
                },
            },
        }

        data = await self._post_with_retry("/chat/completions", payload)

        choices = data.get("choices", [])
        text = choices[0]["message"].get("content") if choices else ""
        usage = data.get("usage", {})

        return LLMResponse(
            text=text or "",
            model=data.get("model", self.model),
            input_tokens=usage.get("prompt_tokens", 0),
            output_tokens=usage.get("completion_tokens", 0),
            finish_reason=choices[0].get("finish_reason", "stop") if choices else "stop",
        )


class OllamaProvider(_HTTPProvider):
    """Local models via Ollama structured outputs."""

    def __init__(
        self,
        model: str = "llama3.1",
        base_url: str = "http://localhost:11434",
        timeout_s: float = 60.0,
        max_retries: int = 0,
        temperature: float = 0.2,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        client = httpx.AsyncClient(base_url=base_url, timeout=timeout_s, transport=transport)
        super().__init__(model, client, max_retries=max_retries, temperature=temperature)

    async def generate_structured(
        self,
        prompt: str,
        response_schema: dict[str, Any],
    ) -> LLMResponse:
        payload: dict[str, Any] = {
            "model": self.model,
            "messages": [{"role": "user", "content": prompt}],
            "format": to_json_schema(response_schema),
            "stream": False,
            "options": {"temperature": self._temperature},
        }

        data = await self._post_with_retry("/api/chat", payload)

        return LLMResponse(
            text=data.get("message", {}).get("content", ""),
            model=data.get("model", self.model),
            input_tokens=data.get("prompt_eval_count", 0),
            output_tokens=data.get("eval_count", 0),
            finish_reason=data.get("done_reason", "stop"),
        )


def _build_provider(
    provider: str,
    config: LLMConfig,
    transport: httpx.AsyncBaseTransport | None = None,
) -> ExplainabilityProvider:
    common: dict[str, Any] = {
        "timeout_s": config.timeout_s,
        "temperature": config.temperature,
        "transport": transport,
    }
    if config.base_url:
        common["base_url"] = config.base_url

    if provider == "gemini":
        if not config.api_key:
            raise ValueError("Gemini provider requires llm.api_key")
        return GeminiProvider(
            api_key=config.api_key,
            model=config.model,
            max_retries=config.max_retries,
            **common,
        )
    elif provider == "openai":
        if not config.api_key:
            raise ValueError("OpenAI provider requires llm.api_key")
        return OpenAIProvider(
            api_key=config.api_key,
            model=config.model,
            max_retries=config.max_retries,
            **common,
        )
    elif provider == "ollama":
        return OllamaProvider(model=config.model, **common)
    raise ValueError(f"Unknown LLM provider: {provider}")


def create_provider(
    config: LLMConfig,
    transport: httpx.AsyncBaseTransport | None = None,
) -> ExplainabilityProvider:
    """Factory to create the configured explainability provider."""
    try:
        return _build_provider(config.provider, config, transport)
    except Exception as e:
        # Try fallback provider if configured
        if config.fallback_provider:
            logger.warning(
                "llm_provider_init_failed",
                provider=config.provider,
                error=str(e),
                fallback=config.fallback_provider,
            )
            try:
                return _build_provider(config.fallback_provider, config, transport)
            except Exception as fallback_error:
                logger.error("llm_fallback_also_failed", error=str(fallback_error))
                raise ValueError(
                    f"Both primary and fallback LLM providers failed. "
                    f"Primary: {e}, Fallback: {fallback_error}"
                ) from e
        raise
