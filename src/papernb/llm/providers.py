"""HTTP adapters for the supported LLM providers.

Each adapter turns a ``(system_prompt, user_prompt)`` pair into the request
envelope its provider expects and pulls the generated text back out of the
provider-specific response. Failures are mapped onto the shared error taxonomy
in :mod:`papernb.llm.errors` so retry logic never needs to know which provider
it is talking to. Adapters do not retry and do not parse the generated text.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, ClassVar, Literal, Mapping

import httpx

from .errors import (
    AuthError,
    ConnectivityError,
    EmptyResponseError,
    RateLimitError,
    RequestRejectedError,
    ServerError,
)

__all__ = [
    "ProviderName",
    "PROVIDERS",
    "LOCAL_PROVIDERS",
    "DEFAULT_MODELS",
    "DEFAULT_OLLAMA_ENDPOINT",
    "ProviderConfig",
    "ProviderGateway",
    "OpenAIGateway",
    "GroqGateway",
    "AnthropicGateway",
    "GeminiGateway",
    "OllamaGateway",
    "HuggingFaceGateway",
    "build_gateway",
    "call_provider",
]

logger = logging.getLogger(__name__)

ProviderName = Literal["gemini", "openai", "anthropic", "groq", "ollama", "huggingface"]

PROVIDERS: tuple[str, ...] = ("gemini", "openai", "anthropic", "groq", "ollama", "huggingface")
LOCAL_PROVIDERS = frozenset({"ollama"})

DEFAULT_MODELS: dict[str, str] = {
    "gemini": "gemini-2.0-flash",
    "openai": "gpt-4o-mini",
    "anthropic": "claude-3-5-sonnet-20241022",
    "groq": "llama-3.1-70b-versatile",
    "ollama": "mistral",
    "huggingface": "meta-llama/Meta-Llama-3.1-8B-Instruct",
}

DEFAULT_OLLAMA_ENDPOINT = "http://localhost:11434"
DEFAULT_MAX_TOKENS = 8192
DEFAULT_TEMPERATURE = 0.3
DEFAULT_REQUEST_TIMEOUT = 180.0

_DISPLAY_NAMES = {
    "gemini": "Gemini",
    "openai": "OpenAI",
    "anthropic": "Anthropic",
    "groq": "Groq",
    "ollama": "Ollama",
    "huggingface": "Hugging Face",
}


@dataclass(frozen=True, slots=True)
class ProviderConfig:
    """Immutable per-generation provider selection and sampling settings."""

    provider: str
    model: str
    api_key: str = ""
    endpoint: str | None = None
    max_tokens: int = DEFAULT_MAX_TOKENS
    temperature: float = DEFAULT_TEMPERATURE
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT

    def __post_init__(self) -> None:
        if self.provider not in PROVIDERS:
            raise ValueError(
                f"Unsupported provider '{self.provider}'. Choose one of: {', '.join(PROVIDERS)}."
            )
        if not self.model:
            raise ValueError("A model identifier is required.")
        if not self.api_key and self.provider not in LOCAL_PROVIDERS:
            raise ValueError(f"Please enter your {self.provider} API key first.")
        if self.max_tokens <= 0:
            raise ValueError("max_tokens must be positive")
        if self.request_timeout <= 0:
            raise ValueError("request_timeout must be positive")

    @property
    def display_name(self) -> str:
        return _DISPLAY_NAMES.get(self.provider, self.provider)


class ProviderGateway(ABC):
    """Base adapter: request building, transport and error normalisation."""

    provider: ClassVar[str]

    def __init__(self, config: ProviderConfig, *, client: httpx.AsyncClient | None = None) -> None:
        if config.provider != self.provider:
            raise ValueError(
                f"{self.__class__.__name__} cannot serve provider '{config.provider}'"
            )
        self.config = config
        self._client = client

    @property
    def model(self) -> str:
        return self.config.model

    @abstractmethod
    def endpoint(self) -> str:
        """URL the generation request is posted to."""

    @abstractmethod
    def headers(self) -> dict[str, str]:
        """Provider-specific headers including the auth scheme."""

    @abstractmethod
    def build_payload(self, system_prompt: str, user_prompt: str) -> dict[str, Any]:
        """Translate the prompt pair into the provider request body."""

    @abstractmethod
    def extract_text(self, data: Any) -> str | None:
        """Pull the generated text out of the decoded response envelope."""

    async def call(self, system_prompt: str, user_prompt: str) -> str:
        payload = self.build_payload(system_prompt, user_prompt)
        url = self.endpoint()
        logger.debug(
            "POST %s (provider=%s, model=%s, prompt_chars=%s)",
            url,
            self.provider,
            self.model,
            len(system_prompt) + len(user_prompt),
        )
        response = await self._post(url, payload)
        self._raise_for_status(response)
        data = self._decode(response)
        text = self.extract_text(data)
        if not isinstance(text, str) or not text.strip():
            raise EmptyResponseError(
                f"{self.config.display_name} returned an empty response. Try again or pick another model.",
                provider=self.provider,
                status_code=response.status_code,
                details=_truncate(response.text),
            )
        logger.debug("Received %s characters from %s", len(text), self.provider)
        return text

    async def _post(self, url: str, payload: Mapping[str, Any]) -> httpx.Response:
        try:
            if self._client is not None:
                return await self._client.post(
                    url, json=payload, headers=self.headers(), timeout=self.config.request_timeout
                )
            async with httpx.AsyncClient(timeout=self.config.request_timeout) as client:
                return await client.post(url, json=payload, headers=self.headers())
        except httpx.TimeoutException as exc:
            raise ConnectivityError(
                f"Request to {self.config.display_name} timed out after {self.config.request_timeout:.0f}s.",
                provider=self.provider,
                details=str(exc) or exc.__class__.__name__,
            ) from exc
        except httpx.TransportError as exc:
            raise ConnectivityError(
                f"Network error while contacting {self.config.display_name}: could not reach {url}.",
                provider=self.provider,
                details=str(exc) or exc.__class__.__name__,
            ) from exc

    def _raise_for_status(self, response: httpx.Response) -> None:
        status = response.status_code
        if status < 400:
            return
        detail = self._error_detail(response)
        name = self.config.display_name
        kwargs = {"provider": self.provider, "status_code": status, "details": detail}
        if status in (401, 403):
            raise AuthError(f"Invalid {name} credential: the API key was rejected ({status}).", **kwargs)
        if status == 429:
            raise RateLimitError(f"{name} rate limit exceeded. Wait a moment and try again.", **kwargs)
        if status >= 500:
            raise ServerError(f"{name} service unavailable ({status}). Try again shortly.", **kwargs)
        raise RequestRejectedError(f"{name} rejected the request ({status}): {detail}", **kwargs)

    @staticmethod
    def _error_detail(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return _truncate(response.text) or response.reason_phrase
        if isinstance(body, dict):
            error = body.get("error")
            if isinstance(error, dict) and error.get("message"):
                return str(error["message"])
            if isinstance(error, str) and error:
                return error
            if body.get("message"):
                return str(body["message"])
        return _truncate(json.dumps(body, ensure_ascii=False))

    def _decode(self, response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as exc:
            raise EmptyResponseError(
                f"{self.config.display_name} returned a response that is not valid JSON.",
                provider=self.provider,
                status_code=response.status_code,
                details=_truncate(response.text),
            ) from exc

    def _chat_messages(self, system_prompt: str, user_prompt: str) -> list[dict[str, str]]:
        return [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ]


class OpenAIGateway(ProviderGateway):
    """OpenAI chat completions: bearer token, ``choices[0].message.content``."""

    provider = "openai"
    base_url = "https://api.openai.com/v1"

    def endpoint(self) -> str:
        return f"{self.base_url}/chat/completions"

    def headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.config.api_key}",
        }

    def build_payload(self, system_prompt: str, user_prompt: str) -> dict[str, Any]:
        return {
            "model": self.config.model,
            "messages": self._chat_messages(system_prompt, user_prompt),
            "temperature": self.config.temperature,
            "max_tokens": self.config.max_tokens,
        }

    def extract_text(self, data: Any) -> str | None:
        if not isinstance(data, dict):
            return None
        choices = data.get("choices") or []
        if not choices or not isinstance(choices[0], dict):
            return None
        message = choices[0].get("message") or {}
        return message.get("content") if isinstance(message, dict) else None


class GroqGateway(OpenAIGateway):
    """Groq exposes an OpenAI-compatible surface under its own host."""

    provider = "groq"
    base_url = "https://api.groq.com/openai/v1"


class AnthropicGateway(ProviderGateway):
    """Anthropic messages API: ``x-api-key`` header, top-level system prompt."""

    provider = "anthropic"
    api_version = "2023-06-01"

    def endpoint(self) -> str:
        return "https://api.anthropic.com/v1/messages"

    def headers(self) -> dict[str, str]:
        return {
            "content-type": "application/json",
            "x-api-key": self.config.api_key,
            "anthropic-version": self.api_version,
        }

    def build_payload(self, system_prompt: str, user_prompt: str) -> dict[str, Any]:
        return {
            "model": self.config.model,
            "max_tokens": self.config.max_tokens,
            "temperature": self.config.temperature,
            "system": system_prompt,
            "messages": [{"role": "user", "content": user_prompt}],
        }

    def extract_text(self, data: Any) -> str | None:
        if not isinstance(data, dict):
            return None
        blocks = data.get("content") or []
        texts = [
            str(block.get("text", ""))
            for block in blocks
            if isinstance(block, dict) and block.get("type", "text") == "text"
        ]
        return "".join(texts) if texts else None


class GeminiGateway(ProviderGateway):
    """Google Generative Language REST API with the key in ``x-goog-api-key``."""

    provider = "gemini"
    base_url = "https://generativelanguage.googleapis.com/v1beta"

    def endpoint(self) -> str:
        return f"{self.base_url}/models/{self.config.model}:generateContent"

    def headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "x-goog-api-key": self.config.api_key,
        }

    def build_payload(self, system_prompt: str, user_prompt: str) -> dict[str, Any]:
        return {
            "systemInstruction": {"parts": [{"text": system_prompt}]},
            "contents": [{"role": "user", "parts": [{"text": user_prompt}]}],
            "generationConfig": {
                "temperature": self.config.temperature,
                "maxOutputTokens": self.config.max_tokens,
                "responseMimeType": "text/plain",
            },
        }

    def extract_text(self, data: Any) -> str | None:
        if not isinstance(data, dict):
            return None
        candidates = data.get("candidates") or []
        if not candidates or not isinstance(candidates[0], dict):
            return None
        parts = (candidates[0].get("content") or {}).get("parts") or []
        texts = [str(part["text"]) for part in parts if isinstance(part, dict) and "text" in part]
        return "".join(texts) if texts else None


class OllamaGateway(ProviderGateway):
    """Locally hosted Ollama chat endpoint; no authentication."""

    provider = "ollama"

    def endpoint(self) -> str:
        base = (self.config.endpoint or DEFAULT_OLLAMA_ENDPOINT).rstrip("/")
        return f"{base}/api/chat"

    def headers(self) -> dict[str, str]:
        return {"Content-Type": "application/json"}

    def build_payload(self, system_prompt: str, user_prompt: str) -> dict[str, Any]:
        return {
            "model": self.config.model,
            "messages": self._chat_messages(system_prompt, user_prompt),
            "stream": False,
            "options": {
                "temperature": self.config.temperature,
                "num_predict": self.config.max_tokens,
            },
        }

    def extract_text(self, data: Any) -> str | None:
        if not isinstance(data, dict):
            return None
        message = data.get("message") or {}
        if isinstance(message, dict) and message.get("content"):
            return message["content"]
        # /api/generate style envelope
        return data.get("response")

    def _raise_for_status(self, response: httpx.Response) -> None:
        # Ollama answers 404 for models that were never pulled.
        if response.status_code == 404:
            raise RequestRejectedError(
                f"Ollama model '{self.config.model}' was not found. Run `ollama pull {self.config.model}` first.",
                provider=self.provider,
                status_code=404,
                details=self._error_detail(response),
            )
        super()._raise_for_status(response)


class HuggingFaceGateway(ProviderGateway):
    """Hugging Face Inference API: one flattened prompt, list of generations back."""

    provider = "huggingface"
    base_url = "https://api-inference.huggingface.co/models"

    def endpoint(self) -> str:
        return f"{self.base_url}/{self.config.model}"

    def headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.config.api_key}",
        }

    def build_payload(self, system_prompt: str, user_prompt: str) -> dict[str, Any]:
        return {
            "inputs": f"{system_prompt}\n\nUser: {user_prompt}\n\nAssistant:",
            "parameters": {
                "max_new_tokens": self.config.max_tokens,
                "temperature": self.config.temperature,
                "return_full_text": False,
            },
        }

    def extract_text(self, data: Any) -> str | None:
        if isinstance(data, list):
            if not data or not isinstance(data[0], dict):
                return None
            return data[0].get("generated_text") or data[0].get("text")
        if isinstance(data, dict):
            return data.get("generated_text")
        return None


_GATEWAYS: dict[str, type[ProviderGateway]] = {
    gateway.provider: gateway
    for gateway in (
        GeminiGateway,
        OpenAIGateway,
        AnthropicGateway,
        GroqGateway,
        OllamaGateway,
        HuggingFaceGateway,
    )
}


def build_gateway(config: ProviderConfig, *, client: httpx.AsyncClient | None = None) -> ProviderGateway:
    """Select the adapter for ``config.provider`` once."""

    try:
        gateway_cls = _GATEWAYS[config.provider]
    except KeyError as exc:  # pragma: no cover - ProviderConfig already validates
        raise ValueError(f"Unsupported provider: {config.provider}") from exc
    return gateway_cls(config, client=client)


async def call_provider(
    system_prompt: str,
    user_prompt: str,
    config: ProviderConfig,
    *,
    client: httpx.AsyncClient | None = None,
) -> str:
    """One-shot provider call without retries."""

    return await build_gateway(config, client=client).call(system_prompt, user_prompt)


def _truncate(text: str | None, limit: int = 500) -> str:
    if not text:
        return ""
    return text if len(text) <= limit else text[:limit] + "…"

