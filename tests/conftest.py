"""Shared fixtures for the test suite."""
from __future__ import annotations

import pytest

ENV_VARS = {
    "PAPERNB_PROVIDER",
    "PAPERNB_MODEL",
    "PAPERNB_API_KEY",
    "PAPERNB_OLLAMA_ENDPOINT",
    "PAPERNB_TEMPERATURE",
    "PAPERNB_MAX_TOKENS",
    "PAPERNB_REQUEST_TIMEOUT",
    "PAPERNB_MAX_ATTEMPTS",
    "PAPERNB_STAGE_TIMEOUT",
    "PAPERNB_OUTPUT_DIR",
    "OPENAI_API_KEY",
    "ANTHROPIC_API_KEY",
    "GEMINI_API_KEY",
    "GOOGLE_API_KEY",
    "GROQ_API_KEY",
    "HF_TOKEN",
    "HUGGINGFACE_API_KEY",
}


@pytest.fixture(autouse=True)
def _clear_llm_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Ensure provider-related environment variables do not leak between tests."""

    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


class ScriptedGateway:
    """Gateway double returning queued replies (or raising queued errors) in order."""

    provider = "openai"

    def __init__(self, *replies: object) -> None:
        self._replies = list(replies)
        self.calls: list[tuple[str, str]] = []

    async def call(self, system_prompt: str, user_prompt: str) -> str:
        self.calls.append((system_prompt, user_prompt))
        if not self._replies:
            raise AssertionError("ScriptedGateway ran out of replies")
        reply = self._replies.pop(0)
        if isinstance(reply, BaseException):
            raise reply
        return str(reply)


@pytest.fixture
def scripted_gateway():
    return ScriptedGateway
