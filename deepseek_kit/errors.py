"""Exception taxonomy for deepseek-kit.

API errors mirror the failure modes of the hosted chat-completion service
(authentication, rate limits, balance, transport). Stream errors cover the
interruptible stream consumer. Tool and extraction errors are raised by the
registry and the best-effort text extractors.
"""

from __future__ import annotations


class DeepSeekError(Exception):
    """Base class for every error raised by deepseek-kit."""


# ── API errors ────────────────────────────────────────────────


class InvalidAPIKeyError(DeepSeekError):
    """The API key is missing or was rejected by the server."""

    def __init__(self, message: str = "Invalid API key provided") -> None:
        super().__init__(message)


class NetworkError(DeepSeekError):
    """Low-level transport failure (DNS, refused connection, reset)."""


class APIError(DeepSeekError):
    """The server returned a structured error body."""

    def __init__(
        self,
        message: str,
        *,
        type: str | None = None,
        code: str | None = None,
        param: str | None = None,
    ) -> None:
        super().__init__(f"API error: {message}")
        self.message = message
        self.type = type
        self.code = code
        self.param = param


class DecodingError(DeepSeekError):
    """A response body could not be decoded into the expected schema."""


class InvalidRequestError(DeepSeekError):
    """The request was rejected before or by the server as malformed."""


class RateLimitError(DeepSeekError):
    """Too many requests in the current window."""

    def __init__(self, message: str = "Rate limit exceeded") -> None:
        super().__init__(message)


class InsufficientBalanceError(DeepSeekError):
    """The account balance cannot cover the request."""

    def __init__(self, message: str = "Insufficient account balance") -> None:
        super().__init__(message)


class ServiceUnavailableError(DeepSeekError):
    """The service is temporarily unavailable."""

    def __init__(self, message: str = "Service temporarily unavailable") -> None:
        super().__init__(message)


class RequestTimeoutError(DeepSeekError, TimeoutError):
    """The request exceeded its timeout."""


class StreamingError(DeepSeekError):
    """A server-sent event stream could not be opened or read."""


class HTTPStatusError(DeepSeekError):
    """Non-2xx response without a recognizable error body."""

    def __init__(self, status_code: int) -> None:
        super().__init__(f"HTTP error: {status_code}")
        self.status_code = status_code


# ── Stream consumer errors ────────────────────────────────────


class SourceError(DeepSeekError):
    """The upstream fragment source failed or was closed unexpectedly.

    The original exception is available as ``__cause__`` and ``cause``.
    """

    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.cause = cause


class InvalidBoundaryState(DeepSeekError):
    """A boundary decision was requested with no text to decide on."""


class SessionFinalizedError(DeepSeekError):
    """A finalized stream session was mutated."""


# ── Tool errors ───────────────────────────────────────────────


class ToolError(DeepSeekError):
    """Base class for tool registry failures."""


class UnknownToolError(ToolError):
    """The model called a tool that is not registered."""


class ToolArgumentError(ToolError):
    """Tool call arguments are not valid JSON or violate the schema."""


# ── Extraction errors ─────────────────────────────────────────


class ExtractionError(DeepSeekError):
    """A field could not be extracted from free-form model text."""


# ── Resilience errors ─────────────────────────────────────────


class CircuitOpenError(DeepSeekError):
    """A request was rejected because the circuit breaker is open."""

    def __init__(self, message: str, retry_after: float = 0.0) -> None:
        super().__init__(message)
        self.retry_after = retry_after
