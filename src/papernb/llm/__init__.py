"""Provider gateway, retry policy and error taxonomy."""

from .errors import (
    AuthError,
    ConnectivityError,
    EmptyResponseError,
    InsufficientContentError,
    PaperNotebookError,
    ParseError,
    PipelineCancelledError,
    ProviderError,
    RateLimitError,
    RequestRejectedError,
    ServerError,
    StageTimeoutError,
)
from .providers import (
    DEFAULT_MODELS,
    PROVIDERS,
    ProviderConfig,
    ProviderGateway,
    build_gateway,
    call_provider,
)
from .retry import RetryOptions, RetryPolicy, is_retryable_error, with_retry

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
    "DEFAULT_MODELS",
    "PROVIDERS",
    "ProviderConfig",
    "ProviderGateway",
    "build_gateway",
    "call_provider",
    "RetryOptions",
    "RetryPolicy",
    "is_retryable_error",
    "with_retry",
]
