from __future__ import annotations

from pathlib import Path

import pytest

from papernb.config import AppConfig, LLMSettings, PipelineSettings, RetrySettings
from papernb.llm.providers import DEFAULT_OLLAMA_ENDPOINT
from papernb.notebook.orchestrator import NotebookPipeline
from papernb.notebook.state import DEFAULT_STAGE_TIMEOUT


def test_llm_settings_resolve_api_key_precedence(monkeypatch: pytest.MonkeyPatch) -> None:
    settings = LLMSettings(provider="openai", api_key_env="CUSTOM_KEY")

    assert settings.resolve_api_key(override="inline") == "inline"

    monkeypatch.setenv("CUSTOM_KEY", "primary")
    monkeypatch.setenv("OPENAI_API_KEY", "standard")
    assert settings.resolve_api_key() == "primary"

    monkeypatch.delenv("CUSTOM_KEY")
    assert settings.resolve_api_key() == "standard"

    monkeypatch.delenv("OPENAI_API_KEY")
    assert settings.resolve_api_key() is None


def test_llm_settings_read_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PAPERNB_PROVIDER", "Anthropic")
    monkeypatch.setenv("PAPERNB_MODEL", "claude-test")
    monkeypatch.setenv("PAPERNB_TEMPERATURE", "0.7")
    monkeypatch.setenv("PAPERNB_MAX_TOKENS", "not-a-number")

    settings = LLMSettings()

    assert settings.provider == "anthropic"
    assert settings.resolved_model() == "claude-test"
    assert settings.temperature == pytest.approx(0.7)
    assert settings.max_tokens == 8192


def test_provider_config_uses_default_model_and_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("GROQ_API_KEY", "gsk-test")
    settings = LLMSettings(provider="gemini", temperature=0.3, max_tokens=2048)

    config = settings.provider_config(provider="groq", temperature=0.9)

    assert config.provider == "groq"
    assert config.model == "llama-3.1-70b-versatile"
    assert config.api_key == "gsk-test"
    assert config.temperature == pytest.approx(0.9)
    assert config.max_tokens == 2048
    assert config.endpoint is None


def test_provider_config_for_ollama_needs_no_key() -> None:
    config = LLMSettings(provider="ollama").provider_config()

    assert config.api_key == ""
    assert config.endpoint == DEFAULT_OLLAMA_ENDPOINT
    assert config.model == "mistral"


def test_provider_config_rejects_unknown_provider_and_missing_key() -> None:
    with pytest.raises(ValueError, match="Unsupported provider"):
        LLMSettings(provider="cohere").provider_config()
    with pytest.raises(ValueError, match="API key"):
        LLMSettings(provider="openai").provider_config()


def test_retry_settings_build_options(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PAPERNB_MAX_ATTEMPTS", "5")
    observed = []

    options = RetrySettings().options(on_retry=lambda *args: observed.append(args))

    assert options.max_attempts == 5
    assert options.initial_delay_ms == 1000
    assert options.max_delay_ms == 10000
    options.on_retry(1, RuntimeError("x"), 10)
    assert len(observed) == 1


def test_pipeline_settings_stage_timeout_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    assert PipelineSettings().stage_timeout == DEFAULT_STAGE_TIMEOUT

    monkeypatch.setenv("PAPERNB_STAGE_TIMEOUT", "60")
    assert PipelineSettings().stage_timeout == 60.0


def test_app_config_output_resolution(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("PAPERNB_OUTPUT_DIR", str(tmp_path / "from-env"))
    config = AppConfig()
    assert config.output_dir == tmp_path / "from-env"
    assert config.with_output(None) is config

    target = tmp_path / "explicit" / "nested"
    updated = config.with_output(target)
    assert updated.output_dir == target
    assert target.exists() is False

    assert updated.ensure_output_dir() == target
    assert target.is_dir()


def test_pipeline_from_app_config_applies_settings(scripted_gateway) -> None:
    config = AppConfig(
        llm=LLMSettings(provider="ollama"),
        retry=RetrySettings(max_attempts=2),
        pipeline=PipelineSettings(stage_timeout=12.0),
    )

    pipeline = NotebookPipeline.from_app_config(
        config, config.llm.provider_config(), gateway=scripted_gateway()
    )

    assert pipeline.config.provider == "ollama"
    assert pipeline._retry_options.max_attempts == 2
    assert pipeline._stage_timeout == 12.0
