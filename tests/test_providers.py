from __future__ import annotations

import json

import httpx
import pytest

from papernb.llm.errors import (
    AuthError,
    ConnectivityError,
    EmptyResponseError,
    RateLimitError,
    RequestRejectedError,
    ServerError,
)
from papernb.llm.providers import (
    DEFAULT_MODELS,
    AnthropicGateway,
    GeminiGateway,
    GroqGateway,
    HuggingFaceGateway,
    OllamaGateway,
    OpenAIGateway,
    ProviderConfig,
    build_gateway,
    call_provider,
)

pytestmark = [pytest.mark.anyio]


class RecordingTransport:
    """httpx transport handler that records requests and replays a fixed response."""

    def __init__(self, status_code: int = 200, payload: object | None = None, *, text: str | None = None) -> None:
        self.status_code = status_code
        self.payload = payload
        self.text = text
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.text is not None:
            return httpx.Response(self.status_code, text=self.text)
        return httpx.Response(self.status_code, json=self.payload)

    @property
    def last_body(self) -> dict:
        return json.loads(self.requests[-1].content)


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def _config(provider: str, **overrides) -> ProviderConfig:
    values = {"provider": provider, "model": DEFAULT_MODELS[provider], "api_key": "sk-test"}
    values.update(overrides)
    return ProviderConfig(**values)


def test_config_requires_credential_for_hosted_providers():
    with pytest.raises(ValueError, match="API key"):
        ProviderConfig(provider="openai", model="gpt-4o-mini")


def test_config_allows_empty_credential_for_ollama():
    config = ProviderConfig(provider="ollama", model="mistral")
    assert config.api_key == ""


def test_config_rejects_unknown_provider():
    with pytest.raises(ValueError, match="Unsupported provider"):
        ProviderConfig(provider="cohere", model="command", api_key="x")


def test_build_gateway_selects_adapter_per_provider():
    expected = {
        "openai": OpenAIGateway,
        "groq": GroqGateway,
        "anthropic": AnthropicGateway,
        "gemini": GeminiGateway,
        "ollama": OllamaGateway,
        "huggingface": HuggingFaceGateway,
    }
    for provider, gateway_cls in expected.items():
        assert type(build_gateway(_config(provider))) is gateway_cls


async def test_openai_request_and_response_envelope():
    transport = RecordingTransport(payload={"choices": [{"message": {"content": "INTENT: x"}}]})
    async with _client(transport) as client:
        text = await call_provider("system", "user", _config("openai"), client=client)

    assert text == "INTENT: x"
    request = transport.requests[-1]
    assert str(request.url) == "https://api.openai.com/v1/chat/completions"
    assert request.headers["Authorization"] == "Bearer sk-test"
    body = transport.last_body
    assert body["messages"] == [
        {"role": "system", "content": "system"},
        {"role": "user", "content": "user"},
    ]
    assert body["model"] == "gpt-4o-mini"
    assert "max_tokens" in body and "temperature" in body


async def test_groq_uses_openai_compatible_host():
    transport = RecordingTransport(payload={"choices": [{"message": {"content": "ok"}}]})
    async with _client(transport) as client:
        await call_provider("s", "u", _config("groq"), client=client)

    assert str(transport.requests[-1].url) == "https://api.groq.com/openai/v1/chat/completions"


async def test_anthropic_sends_system_prompt_top_level():
    transport = RecordingTransport(
        payload={"content": [{"type": "text", "text": "Hello"}, {"type": "text", "text": " world"}]}
    )
    async with _client(transport) as client:
        text = await call_provider("be brief", "hi", _config("anthropic"), client=client)

    assert text == "Hello world"
    request = transport.requests[-1]
    assert request.headers["x-api-key"] == "sk-test"
    assert request.headers["anthropic-version"] == "2023-06-01"
    body = transport.last_body
    assert body["system"] == "be brief"
    assert body["messages"] == [{"role": "user", "content": "hi"}]


async def test_gemini_joins_candidate_parts():
    transport = RecordingTransport(
        payload={"candidates": [{"content": {"parts": [{"text": "part one "}, {"text": "part two"}]}}]}
    )
    async with _client(transport) as client:
        text = await call_provider("sys", "user", _config("gemini"), client=client)

    assert text == "part one part two"
    request = transport.requests[-1]
    assert request.url.path == "/v1beta/models/gemini-2.0-flash:generateContent"
    assert request.headers["x-goog-api-key"] == "sk-test"
    body = transport.last_body
    assert body["systemInstruction"] == {"parts": [{"text": "sys"}]}
    assert body["generationConfig"]["responseMimeType"] == "text/plain"


async def test_ollama_posts_to_local_endpoint_without_auth():
    transport = RecordingTransport(payload={"message": {"role": "assistant", "content": "local answer"}})
    config = ProviderConfig(provider="ollama", model="mistral", endpoint="http://gpu-box:11434/")
    async with _client(transport) as client:
        text = await call_provider("s", "u", config, client=client)

    assert text == "local answer"
    request = transport.requests[-1]
    assert str(request.url) == "http://gpu-box:11434/api/chat"
    assert "Authorization" not in request.headers
    assert transport.last_body["stream"] is False


async def test_ollama_missing_model_is_reported_as_rejected_request():
    transport = RecordingTransport(404, {"error": "model 'llama9' not found"})
    config = ProviderConfig(provider="ollama", model="llama9")
    async with _client(transport) as client:
        with pytest.raises(RequestRejectedError, match="ollama pull llama9"):
            await call_provider("s", "u", config, client=client)


async def test_huggingface_flattens_prompt_and_reads_generated_text():
    transport = RecordingTransport(payload=[{"generated_text": "generated"}])
    async with _client(transport) as client:
        text = await call_provider("sys", "question", _config("huggingface"), client=client)

    assert text == "generated"
    body = transport.last_body
    assert body["inputs"].startswith("sys")
    assert "User: question" in body["inputs"]
    assert body["parameters"]["return_full_text"] is False


@pytest.mark.parametrize(
    ("status", "error_cls"),
    [
        (401, AuthError),
        (403, AuthError),
        (429, RateLimitError),
        (500, ServerError),
        (503, ServerError),
        (400, RequestRejectedError),
        (413, RequestRejectedError),
    ],
)
async def test_http_status_codes_map_to_error_taxonomy(status, error_cls):
    transport = RecordingTransport(status, {"error": {"message": "upstream said no"}})
    async with _client(transport) as client:
        with pytest.raises(error_cls) as excinfo:
            await call_provider("s", "u", _config("openai"), client=client)

    assert excinfo.value.status_code == status
    assert excinfo.value.provider == "openai"
    assert excinfo.value.details == "upstream said no"


async def test_auth_error_message_names_the_provider():
    transport = RecordingTransport(401, {"error": {"message": "bad key"}})
    async with _client(transport) as client:
        with pytest.raises(AuthError, match="Invalid Anthropic credential"):
            await call_provider("s", "u", _config("anthropic"), client=client)


async def test_empty_text_raises_empty_response_error():
    transport = RecordingTransport(payload={"choices": [{"message": {"content": "   "}}]})
    async with _client(transport) as client:
        with pytest.raises(EmptyResponseError):
            await call_provider("s", "u", _config("openai"), client=client)


async def test_non_json_body_raises_empty_response_error():
    transport = RecordingTransport(text="<html>gateway</html>")
    async with _client(transport) as client:
        with pytest.raises(EmptyResponseError, match="not valid JSON"):
            await call_provider("s", "u", _config("groq"), client=client)


async def test_transport_failure_becomes_connectivity_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    async with _client(handler) as client:
        with pytest.raises(ConnectivityError) as excinfo:
            await call_provider("s", "u", _config("gemini"), client=client)

    assert isinstance(excinfo.value.__cause__, httpx.ConnectError)


async def test_timeout_becomes_connectivity_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("read timed out", request=request)

    async with _client(handler) as client:
        with pytest.raises(ConnectivityError, match="timed out"):
            await call_provider("s", "u", _config("openai", request_timeout=5), client=client)
