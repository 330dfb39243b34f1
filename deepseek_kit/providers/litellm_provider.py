"""DeepSeek chat provider powered by LiteLLM.

Routes chat, streaming and FIM requests through LiteLLM's unified API and
converts its responses into deepseek-kit schemas. Handles sampling
parameter stripping for the reasoner model, timeouts, and retry with
exponential backoff. LiteLLM exceptions are mapped onto the
``deepseek_kit.errors`` taxonomy.
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import AsyncIterator
from typing import Any

import litellm

# Suppress LiteLLM's "Give Feedback / Get Help" and "Provider List" banners
litellm.suppress_debug_info = True

from deepseek_kit.errors import (
    APIError,
    DeepSeekError,
    InsufficientBalanceError,
    InvalidAPIKeyError,
    InvalidRequestError,
    NetworkError,
    RateLimitError,
    RequestTimeoutError,
    ServiceUnavailableError,
    StreamingError,
)
from deepseek_kit.providers.base import ChatProvider
from deepseek_kit.schemas.chat import (
    ChatCompletionRequest,
    ChatCompletionResponse,
    ChatMessage,
    Choice,
    FunctionCall,
    MessageRole,
    ToolCall,
    Usage,
)
from deepseek_kit.schemas.completion import (
    CompletionChoice,
    CompletionRequest,
    CompletionResponse,
)
from deepseek_kit.schemas.config import ClientConfig, ModelConfig
from deepseek_kit.schemas.streaming import (
    ChatCompletionChunk,
    ChunkChoice,
    FunctionCallDelta,
    MessageDelta,
    ToolCallDelta,
)

logger = logging.getLogger(__name__)

_BASE_BACKOFF = 1.0  # seconds

# Parameters the reasoner model silently ignores
_SAMPLING_PARAMS = ("temperature", "top_p", "frequency_penalty", "presence_penalty")


def _short_error_reason(error: Exception) -> str:
    """Extract a short, user-friendly reason from a LiteLLM error."""
    error_str = str(error).lower()
    if "rate" in error_str or "429" in error_str:
        return "rate limit"
    if "timeout" in error_str or isinstance(error, TimeoutError):
        return "timeout"
    if "503" in error_str or "unavailable" in error_str:
        return "service unavailable"
    if "500" in error_str or "internal" in error_str:
        return "server error"
    if "connection" in error_str:
        return "connection error"
    # Fallback: first 80 chars of the error
    return str(error)[:80]


def _map_exhausted(error: Exception | None, model: str, attempts: int) -> DeepSeekError:
    """Map the last transient error to the deepseek-kit taxonomy."""
    if isinstance(error, litellm.RateLimitError):
        return RateLimitError(f"Rate limit exceeded for {model} after {attempts} attempts")
    if isinstance(error, litellm.ServiceUnavailableError):
        return ServiceUnavailableError(
            f"{model} unavailable after {attempts} attempts"
        )
    if isinstance(error, litellm.APIConnectionError):
        return NetworkError(f"Connection to {model} failed after {attempts} attempts: {error}")
    return APIError(
        f"Call to {model} failed after {attempts} attempts: {error}",
        type="server_error",
    )


def _map_status_error(error: Exception, model: str) -> DeepSeekError:
    """Map a non-retryable LiteLLM status error by its HTTP status code."""
    status = getattr(error, "status_code", None)
    if status in (401, 403):
        return InvalidAPIKeyError(f"Request to {model} was refused ({status}): {error}")
    if status == 402:
        return InsufficientBalanceError()
    if status in (404, 422):
        return InvalidRequestError(f"Request to {model} rejected ({status}): {error}")
    if status is None:
        return APIError(str(error), type="api_error")
    kind = "server_error" if status >= 500 else "api_error"
    return APIError(str(error), type=kind, code=str(status))


def _usage_from(usage: Any) -> Usage | None:
    if usage is None:
        return None
    details = getattr(usage, "completion_tokens_details", None)
    return Usage(
        prompt_tokens=getattr(usage, "prompt_tokens", 0) or 0,
        completion_tokens=getattr(usage, "completion_tokens", 0) or 0,
        total_tokens=getattr(usage, "total_tokens", 0) or 0,
        prompt_cache_hit_tokens=getattr(usage, "prompt_cache_hit_tokens", None),
        prompt_cache_miss_tokens=getattr(usage, "prompt_cache_miss_tokens", None),
        reasoning_tokens=getattr(details, "reasoning_tokens", None) if details else None,
    )


def _message_from(message: Any) -> ChatMessage:
    raw_calls = getattr(message, "tool_calls", None) or []
    tool_calls = [
        ToolCall(
            id=call.id,
            function=FunctionCall(
                name=call.function.name,
                arguments=call.function.arguments or "{}",
            ),
        )
        for call in raw_calls
    ]
    return ChatMessage(
        role=getattr(message, "role", None) or MessageRole.ASSISTANT,
        content=getattr(message, "content", None) or "",
        tool_calls=tool_calls or None,
        reasoning_content=getattr(message, "reasoning_content", None),
    )


def _delta_from(delta: Any) -> MessageDelta:
    if delta is None:
        return MessageDelta()
    raw_calls = getattr(delta, "tool_calls", None) or []
    tool_calls = []
    for call in raw_calls:
        function = getattr(call, "function", None)
        tool_calls.append(
            ToolCallDelta(
                index=getattr(call, "index", 0) or 0,
                id=getattr(call, "id", None),
                type=getattr(call, "type", None),
                function=FunctionCallDelta(
                    name=getattr(function, "name", None),
                    arguments=getattr(function, "arguments", None),
                ) if function is not None else None,
            )
        )
    return MessageDelta(
        role=getattr(delta, "role", None),
        content=getattr(delta, "content", None),
        reasoning_content=getattr(delta, "reasoning_content", None),
        tool_calls=tool_calls or None,
    )


def chunk_from_litellm(chunk: Any) -> ChatCompletionChunk:
    """Convert a LiteLLM streaming chunk into a ChatCompletionChunk."""
    choices = [
        ChunkChoice(
            index=getattr(choice, "index", 0) or 0,
            delta=_delta_from(getattr(choice, "delta", None)),
            finish_reason=getattr(choice, "finish_reason", None),
        )
        for choice in (getattr(chunk, "choices", None) or [])
    ]
    return ChatCompletionChunk(
        id=getattr(chunk, "id", "") or "",
        created=getattr(chunk, "created", 0) or 0,
        model=getattr(chunk, "model", "") or "",
        system_fingerprint=getattr(chunk, "system_fingerprint", None),
        choices=choices,
        usage=_usage_from(getattr(chunk, "usage", None)),
    )


class DeepSeekProvider(ChatProvider):
    """DeepSeek chat adapter powered by LiteLLM.

    One provider instance serves one model from the registry. All network
    calls to the chat and completions endpoints go through
    ``litellm.acompletion`` and ``litellm.atext_completion``.
    """

    def __init__(
        self,
        config: ModelConfig,
        *,
        client_config: ClientConfig | None = None,
        api_key: str | None = None,
    ) -> None:
        super().__init__(config)
        self._client_config = client_config or ClientConfig()
        # Resolve API key from environment when not given explicitly
        self._api_key = api_key or os.environ.get(config.api_key_env, "")

    @property
    def has_api_key(self) -> bool:
        return bool(self._api_key)

    # ── Chat ──────────────────────────────────────────────────

    async def complete(self, request: ChatCompletionRequest) -> ChatCompletionResponse:
        """Send a chat completion request via LiteLLM.

        Raises:
            InvalidAPIKeyError: If no key is configured or the key is rejected.
            InvalidRequestError: If the server rejects the request as malformed.
            RateLimitError, ServiceUnavailableError, NetworkError,
            RequestTimeoutError, APIError: After all retries are exhausted.
        """
        kwargs = self._build_chat_kwargs(request)
        response = await self._call_with_retry(litellm.acompletion, kwargs)
        return self._to_response(response)

    async def stream(self, request: ChatCompletionRequest) -> AsyncIterator[ChatCompletionChunk]:
        """Stream a chat completion, yielding converted chunks in order.

        Opening the stream is retried like ``complete``. Failures while
        reading an open stream raise ``StreamingError`` and are not retried.
        """
        kwargs = self._build_chat_kwargs(request)
        kwargs["stream"] = True
        response = await self._call_with_retry(litellm.acompletion, kwargs)

        try:
            async for chunk in response:
                yield chunk_from_litellm(chunk)
        except (litellm.APIConnectionError, litellm.APIError) as e:
            raise StreamingError(f"Stream from {self.model} broke: {e}") from e

    # ── FIM ───────────────────────────────────────────────────

    async def complete_fim(self, request: CompletionRequest) -> CompletionResponse:
        """Send a FIM completion to the beta completions endpoint."""
        if not self.supports_fim:
            raise InvalidRequestError(f"{self.model} does not support FIM completion")

        kwargs: dict[str, Any] = {
            "model": self._config.litellm_model,
            "prompt": request.prompt,
            "timeout": float(self._client_config.timeout),
            "api_base": self._client_config.beta_url,
        }
        for key in ("suffix", "max_tokens", "temperature"):
            value = getattr(request, key)
            if value is not None:
                kwargs[key] = value
        self._apply_key(kwargs)

        response = await self._call_with_retry(litellm.atext_completion, kwargs)
        choices = [
            CompletionChoice(
                text=getattr(choice, "text", "") or "",
                index=getattr(choice, "index", 0) or 0,
                finish_reason=getattr(choice, "finish_reason", None),
            )
            for choice in (getattr(response, "choices", None) or [])
        ]
        return CompletionResponse(
            id=getattr(response, "id", "") or "",
            created=getattr(response, "created", 0) or 0,
            model=getattr(response, "model", "") or "",
            choices=choices,
            usage=_usage_from(getattr(response, "usage", None)),
        )

    # ── Internals ─────────────────────────────────────────────

    def _apply_key(self, kwargs: dict[str, Any]) -> None:
        if not self._api_key:
            raise InvalidAPIKeyError(
                f"No API key configured. Set {self._config.api_key_env} "
                "or run 'deepseek --api-key ...'."
            )
        kwargs["api_key"] = self._api_key

    def _build_chat_kwargs(self, request: ChatCompletionRequest) -> dict[str, Any]:
        """Build the kwargs dict for litellm.acompletion."""
        body = request.model_dump(mode="json", exclude_none=True)
        body.pop("model", None)
        body.pop("stream", None)

        if not self._config.supports_sampling:
            stripped = [key for key in _SAMPLING_PARAMS if key in body]
            for key in stripped:
                body.pop(key)
            if stripped:
                logger.debug(
                    "Dropped unsupported parameters for %s: %s",
                    self._config.model, ", ".join(stripped),
                )

        limit = self._config.max_output_tokens
        if body.get("max_tokens", 0) > limit:
            logger.debug(
                "Capped max_tokens for %s: %d -> %d",
                self._config.model, body["max_tokens"], limit,
            )
            body["max_tokens"] = limit

        kwargs: dict[str, Any] = {
            "model": self._config.litellm_model,
            "timeout": float(self._client_config.timeout),
            "api_base": self._client_config.base_url,
            **body,
        }
        self._apply_key(kwargs)
        return kwargs

    async def _call_with_retry(self, call, kwargs: dict[str, Any]):
        """Invoke a LiteLLM coroutine with exponential backoff retry.

        Retries on transient errors (rate limits, server errors, connection
        errors, timeouts). Authentication and bad-request errors are raised
        immediately.
        """
        last_error: Exception | None = None
        max_retries = self._client_config.max_retries

        for attempt in range(max_retries):
            try:
                return await call(**kwargs)
            except (TimeoutError, litellm.Timeout):
                last_error = RequestTimeoutError(
                    f"Call to {self._config.model} timed out after {kwargs.get('timeout')}s "
                    f"(attempt {attempt + 1}/{max_retries})"
                )
            except litellm.AuthenticationError:
                raise InvalidAPIKeyError(
                    f"Authentication failed for {self._config.model}. "
                    f"Check that {self._config.api_key_env} is set correctly."
                ) from None
            except litellm.BadRequestError as e:
                raise InvalidRequestError(
                    f"Bad request to {self._config.model}: {e}"
                ) from e
            except (
                litellm.RateLimitError,
                litellm.ServiceUnavailableError,
                litellm.InternalServerError,
                litellm.APIConnectionError,
            ) as e:
                last_error = e
            except (
                litellm.NotFoundError,
                litellm.PermissionDeniedError,
                litellm.UnprocessableEntityError,
                litellm.APIError,
            ) as e:
                raise _map_status_error(e, self._config.model) from e

            if attempt < max_retries - 1:
                backoff = _BASE_BACKOFF * (2**attempt)
                logger.warning(
                    "Retry %d/%d for %s (%s, backoff: %.1fs)",
                    attempt + 1,
                    max_retries,
                    self._config.display_name,
                    _short_error_reason(last_error),
                    backoff,
                )
                await asyncio.sleep(backoff)

        # All retries exhausted
        if isinstance(last_error, RequestTimeoutError):
            raise last_error
        raise _map_exhausted(last_error, self._config.model, max_retries) from last_error

    def _to_response(self, response: Any) -> ChatCompletionResponse:
        choices = [
            Choice(
                index=getattr(choice, "index", 0) or 0,
                message=_message_from(choice.message),
                finish_reason=getattr(choice, "finish_reason", None),
            )
            for choice in (getattr(response, "choices", None) or [])
        ]
        return ChatCompletionResponse(
            id=getattr(response, "id", "") or "",
            created=getattr(response, "created", 0) or 0,
            model=getattr(response, "model", "") or self._config.model,
            system_fingerprint=getattr(response, "system_fingerprint", None),
            choices=choices,
            usage=_usage_from(getattr(response, "usage", None)),
        )
