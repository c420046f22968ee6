"""Error taxonomy shared by the provider gateway, parsers and pipeline."""

from __future__ import annotations

__all__ = [
    "PaperNotebookError",
    "ProviderError",
    "AuthError",
    "RateLimitError",
    "ServerError",
    "ConnectivityError",
    "EmptyResponseError",
    "RequestRejectedError",
    "ParseError",
    "InsufficientContentError",
    "PipelineCancelledError",
    "StageTimeoutError",
]


class PaperNotebookError(RuntimeError):
    """Base error for everything raised by the generation engine.

    ``details`` holds an optional technical string (response body, raw model
    output excerpt) that callers may show next to the human-readable message.
    """

    def __init__(self, message: str, *, details: str | None = None) -> None:
        super().__init__(message)
        self.details = details


class ProviderError(PaperNotebookError):
    """Base error raised when talking to an LLM provider."""

    def __init__(
        self,
        message: str,
        *,
        provider: str | None = None,
        status_code: int | None = None,
        details: str | None = None,
    ) -> None:
        super().__init__(message, details=details)
        self.provider = provider
        self.status_code = status_code


class AuthError(ProviderError):
    """The provider rejected the credential (401/403)."""


class RateLimitError(ProviderError):
    """The provider is throttling requests (429)."""


class ServerError(ProviderError):
    """The provider failed on its side (5xx)."""


class ConnectivityError(ProviderError):
    """The request never produced an HTTP response (DNS, refused, timeout)."""


class EmptyResponseError(ProviderError):
    """The provider answered 2xx but without any usable text."""


class RequestRejectedError(ProviderError):
    """Any other 4xx answer: malformed request, unknown model, oversized prompt."""


class ParseError(PaperNotebookError):
    """Model output could not be coerced into the target structure."""


class InsufficientContentError(ParseError):
    """Fewer than two notebook cells could be recovered from the model output."""


class PipelineCancelledError(PaperNotebookError):
    """The caller cancelled the pipeline between stages or during a backoff wait."""


class StageTimeoutError(PaperNotebookError):
    """A pipeline stage exceeded its time budget, retries included."""
