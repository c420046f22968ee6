"""Dataclass-driven configuration for the papernb pipeline.

Values resolve as explicit argument > environment variable > default. Call
:func:`dotenv.load_dotenv` before constructing settings to pick up a ``.env``
file (the CLI does this on start-up).
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Iterable, Mapping

from .llm.providers import (
    DEFAULT_MAX_TOKENS,
    DEFAULT_MODELS,
    DEFAULT_OLLAMA_ENDPOINT,
    DEFAULT_REQUEST_TIMEOUT,
    DEFAULT_TEMPERATURE,
    LOCAL_PROVIDERS,
    PROVIDERS,
    ProviderConfig,
)
from .llm.retry import RetryObserver, RetryOptions
from .notebook.state import DEFAULT_STAGE_TIMEOUT, DEFAULT_TRUNCATION, TruncationTable

__all__ = [
    "STANDARD_API_KEY_ENVS",
    "DEFAULT_STAGE_TIMEOUT",
    "LLMSettings",
    "RetrySettings",
    "PipelineSettings",
    "AppConfig",
]

STANDARD_API_KEY_ENVS: Mapping[str, tuple[str, ...]] = {
    "openai": ("OPENAI_API_KEY",),
    "anthropic": ("ANTHROPIC_API_KEY",),
    "gemini": ("GEMINI_API_KEY", "GOOGLE_API_KEY"),
    "groq": ("GROQ_API_KEY",),
    "huggingface": ("HF_TOKEN", "HUGGINGFACE_API_KEY"),
    "ollama": (),
}


def _env_float(name: str, default: float | None = None) -> float | None:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_int(name: str, default: int | None = None) -> int | None:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


@dataclass(slots=True)
class LLMSettings:
    """Provider selection and sampling settings."""

    provider: str = field(default_factory=lambda: os.getenv("PAPERNB_PROVIDER", "gemini").lower())
    model: str | None = field(default_factory=lambda: os.getenv("PAPERNB_MODEL") or None)
    ollama_endpoint: str = field(
        default_factory=lambda: os.getenv("PAPERNB_OLLAMA_ENDPOINT", DEFAULT_OLLAMA_ENDPOINT)
    )
    temperature: float = field(
        default_factory=lambda: _env_float("PAPERNB_TEMPERATURE", DEFAULT_TEMPERATURE) or 0.0
    )
    max_tokens: int = field(
        default_factory=lambda: _env_int("PAPERNB_MAX_TOKENS", DEFAULT_MAX_TOKENS) or DEFAULT_MAX_TOKENS
    )
    request_timeout: float = field(
        default_factory=lambda: _env_float("PAPERNB_REQUEST_TIMEOUT", DEFAULT_REQUEST_TIMEOUT)
        or DEFAULT_REQUEST_TIMEOUT
    )
    api_key_env: str = "PAPERNB_API_KEY"

    def resolved_model(self) -> str:
        return self.model or DEFAULT_MODELS.get(self.provider, "")

    def resolve_api_key(self, override: str | None = None) -> str | None:
        if override:
            return override
        env_candidates: Iterable[str | None] = (
            self.api_key_env,
            *STANDARD_API_KEY_ENVS.get(self.provider, ()),
        )
        for name in env_candidates:
            if not name:
                continue
            value = os.getenv(name)
            if value:
                return value
        return None

    def provider_config(
        self,
        *,
        provider: str | None = None,
        model: str | None = None,
        api_key: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> ProviderConfig:
        """Build an immutable :class:`ProviderConfig`; raises ``ValueError`` when invalid."""

        settings = self if provider is None else replace(self, provider=provider.lower())
        if settings.provider not in PROVIDERS:
            raise ValueError(
                f"Unsupported provider '{settings.provider}'. Choose one of: {', '.join(PROVIDERS)}."
            )
        local = settings.provider in LOCAL_PROVIDERS
        return ProviderConfig(
            provider=settings.provider,
            model=model or settings.resolved_model(),
            api_key=settings.resolve_api_key(api_key) or "",
            endpoint=settings.ollama_endpoint if local else None,
            max_tokens=settings.max_tokens if max_tokens is None else max_tokens,
            temperature=settings.temperature if temperature is None else temperature,
            request_timeout=settings.request_timeout,
        )


@dataclass(slots=True)
class RetrySettings:
    max_attempts: int = field(default_factory=lambda: _env_int("PAPERNB_MAX_ATTEMPTS", 3) or 3)
    initial_delay_ms: int = 1000
    max_delay_ms: int = 10000
    backoff_multiplier: float = 2.0

    def options(self, on_retry: RetryObserver | None = None) -> RetryOptions:
        return RetryOptions(
            max_attempts=self.max_attempts,
            initial_delay_ms=self.initial_delay_ms,
            max_delay_ms=self.max_delay_ms,
            backoff_multiplier=self.backoff_multiplier,
            on_retry=on_retry,
        )


@dataclass(slots=True)
class PipelineSettings:
    stage_timeout: float = field(
        default_factory=lambda: _env_float("PAPERNB_STAGE_TIMEOUT", DEFAULT_STAGE_TIMEOUT)
        or DEFAULT_STAGE_TIMEOUT
    )
    truncation: TruncationTable = DEFAULT_TRUNCATION


@dataclass(slots=True)
class AppConfig:
    """Primary configuration entry point for the generation pipeline."""

    llm: LLMSettings = field(default_factory=LLMSettings)
    retry: RetrySettings = field(default_factory=RetrySettings)
    pipeline: PipelineSettings = field(default_factory=PipelineSettings)
    output_dir: Path = field(default_factory=lambda: Path(os.getenv("PAPERNB_OUTPUT_DIR", "output")))

    def with_output(self, output_dir: Path | str | None) -> "AppConfig":
        if output_dir is None:
            return self
        return replace(self, output_dir=Path(output_dir).expanduser())

    def ensure_output_dir(self) -> Path:
        self.output_dir.mkdir(parents=True, exist_ok=True)
        return self.output_dir
