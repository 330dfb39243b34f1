"""Tests for deepseek_kit.providers.litellm_provider — LiteLLM adapter."""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import litellm as litellm_mod
import pytest

from deepseek_kit.errors import (
    APIError,
    InsufficientBalanceError,
    InvalidAPIKeyError,
    InvalidRequestError,
    NetworkError,
    RateLimitError,
    RequestTimeoutError,
    ServiceUnavailableError,
    StreamingError,
)
from deepseek_kit.providers.litellm_provider import DeepSeekProvider, chunk_from_litellm
from deepseek_kit.schemas.chat import ChatCompletionRequest, ChatMessage, DeepSeekModel
from deepseek_kit.schemas.completion import CompletionRequest
from deepseek_kit.schemas.config import ClientConfig, ModelConfig

# Shorthand for the mock targets
_ACOMP = "deepseek_kit.providers.litellm_provider.litellm.acompletion"
_ATEXT = "deepseek_kit.providers.litellm_provider.litellm.atext_completion"
_SLEEP = "deepseek_kit.providers.litellm_provider.asyncio.sleep"


# ── Helpers ───────────────────────────────────────────────────


def _make_config(**overrides) -> ModelConfig:
    """Create a ModelConfig with chat-model defaults."""
    defaults = {
        "model": "deepseek-chat",
        "litellm_model": "deepseek/deepseek-chat",
        "display_name": "DeepSeek Chat",
        "context_window": 65536,
        "supports_tools": True,
        "supports_json": True,
        "supports_fim": True,
        "cost_input": 0.27,
        "cost_output": 1.10,
    }
    defaults.update(overrides)
    return ModelConfig(**defaults)


def _reasoner_config() -> ModelConfig:
    return _make_config(
        model="deepseek-reasoner",
        litellm_model="deepseek/deepseek-reasoner",
        display_name="DeepSeek Reasoner",
        supports_fim=False,
        supports_reasoning=True,
        supports_sampling=False,
    )


def _provider(config: ModelConfig | None = None, **client) -> DeepSeekProvider:
    return DeepSeekProvider(
        config or _make_config(),
        client_config=ClientConfig(**client),
        api_key="sk-test-key",
    )


def _request(**overrides) -> ChatCompletionRequest:
    fields = {"messages": [ChatMessage.user("Hello")]}
    fields.update(overrides)
    return ChatCompletionRequest(**fields)


def _make_response(
    content: str = "Hello",
    reasoning: str | None = None,
    prompt_tokens: int = 100,
    completion_tokens: int = 50,
    tool_calls=None,
) -> SimpleNamespace:
    """Build a mock LiteLLM ModelResponse-like object."""
    message = SimpleNamespace(
        role="assistant",
        content=content,
        tool_calls=tool_calls,
        reasoning_content=reasoning,
    )
    choice = SimpleNamespace(message=message, finish_reason="stop", index=0)
    usage = SimpleNamespace(
        prompt_tokens=prompt_tokens,
        completion_tokens=completion_tokens,
        total_tokens=prompt_tokens + completion_tokens,
    )
    return SimpleNamespace(
        id="chatcmpl-1",
        created=1700000000,
        choices=[choice],
        usage=usage,
        model="deepseek-chat",
    )


def _make_chunk(content=None, reasoning=None, finish_reason=None) -> SimpleNamespace:
    delta = SimpleNamespace(
        role=None, content=content, reasoning_content=reasoning, tool_calls=None,
    )
    return SimpleNamespace(
        id="chunk",
        created=0,
        model="deepseek-chat",
        choices=[SimpleNamespace(index=0, delta=delta, finish_reason=finish_reason)],
        usage=None,
    )


def _rate_limit() -> Exception:
    return litellm_mod.RateLimitError(
        message="rate limited", model="test", llm_provider="test",
    )


# ── Completion ────────────────────────────────────────────────


class TestComplete:
    @pytest.mark.asyncio
    async def test_basic_completion(self):
        provider = _provider()
        with patch(_ACOMP, new_callable=AsyncMock, return_value=_make_response("Hi there")):
            result = await provider.complete(_request())

        assert result.content == "Hi there"
        assert result.choices[0].finish_reason == "stop"
        assert result.usage.prompt_tokens == 100
        assert result.usage.completion_tokens == 50

    @pytest.mark.asyncio
    async def test_kwargs_routed_to_litellm(self):
        provider = _provider()
        mock = AsyncMock(return_value=_make_response())
        with patch(_ACOMP, mock):
            await provider.complete(_request(temperature=0.3, max_tokens=64))

        kwargs = mock.call_args.kwargs
        assert kwargs["model"] == "deepseek/deepseek-chat"
        assert kwargs["api_key"] == "sk-test-key"
        assert kwargs["api_base"] == "https://api.deepseek.com/v1"
        assert kwargs["timeout"] == 120.0
        assert kwargs["temperature"] == 0.3
        assert kwargs["max_tokens"] == 64
        assert kwargs["messages"] == [{"role": "user", "content": "Hello"}]
        assert "stream" not in kwargs

    @pytest.mark.asyncio
    async def test_reasoner_strips_sampling_params(self):
        provider = _provider(_reasoner_config())
        mock = AsyncMock(return_value=_make_response(reasoning="Let me think"))
        request = _request(
            model=DeepSeekModel.REASONER,
            temperature=0.7,
            top_p=0.9,
            presence_penalty=0.5,
            max_tokens=100,
        )
        with patch(_ACOMP, mock):
            result = await provider.complete(request)

        kwargs = mock.call_args.kwargs
        assert kwargs["model"] == "deepseek/deepseek-reasoner"
        for key in ("temperature", "top_p", "presence_penalty"):
            assert key not in kwargs
        assert kwargs["max_tokens"] == 100
        assert result.reasoning_content == "Let me think"

    @pytest.mark.asyncio
    async def test_max_tokens_capped_at_model_limit(self):
        provider = _provider(_make_config(max_output_tokens=8192))
        mock = AsyncMock(return_value=_make_response())
        with patch(_ACOMP, mock):
            await provider.complete(_request(max_tokens=50000))
        assert mock.call_args.kwargs["max_tokens"] == 8192

    @pytest.mark.asyncio
    async def test_tool_calls_converted(self):
        call = SimpleNamespace(
            id="call_1",
            function=SimpleNamespace(name="get_weather", arguments='{"location": "Paris"}'),
        )
        provider = _provider()
        with patch(_ACOMP, new_callable=AsyncMock,
                   return_value=_make_response(content="", tool_calls=[call])):
            result = await provider.complete(_request())

        tool_calls = result.choices[0].message.tool_calls
        assert len(tool_calls) == 1
        assert tool_calls[0].id == "call_1"
        assert tool_calls[0].function.name == "get_weather"
        assert tool_calls[0].function.arguments == '{"location": "Paris"}'

    @pytest.mark.asyncio
    async def test_missing_key_raises(self):
        with patch.dict("os.environ", {}, clear=True):
            provider = DeepSeekProvider(_make_config())
            mock = AsyncMock()
            with patch(_ACOMP, mock), pytest.raises(InvalidAPIKeyError):
                await provider.complete(_request())
        mock.assert_not_called()

    @pytest.mark.asyncio
    async def test_key_read_from_env(self):
        with patch.dict("os.environ", {"DEEPSEEK_API_KEY": "sk-from-env"}):
            provider = DeepSeekProvider(_make_config())
        assert provider.has_api_key


# ── Retry and error mapping ───────────────────────────────────


class TestRetry:
    @pytest.mark.asyncio
    async def test_rate_limit_then_success(self):
        provider = _provider()
        mock = AsyncMock(side_effect=[_rate_limit(), _make_response("ok")])
        with patch(_ACOMP, mock), patch(_SLEEP, new_callable=AsyncMock) as sleep:
            result = await provider.complete(_request())

        assert result.content == "ok"
        assert mock.call_count == 2
        sleep.assert_awaited_once_with(1.0)

    @pytest.mark.asyncio
    async def test_exponential_backoff(self):
        provider = _provider()
        mock = AsyncMock(side_effect=[_rate_limit(), _rate_limit(), _make_response()])
        with patch(_ACOMP, mock), patch(_SLEEP, new_callable=AsyncMock) as sleep:
            await provider.complete(_request())

        assert [c.args[0] for c in sleep.await_args_list] == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_rate_limit_exhausted(self):
        provider = _provider()
        mock = AsyncMock(side_effect=[_rate_limit() for _ in range(3)])
        with patch(_ACOMP, mock), patch(_SLEEP, new_callable=AsyncMock):
            with pytest.raises(RateLimitError, match="after 3 attempts"):
                await provider.complete(_request())
        assert mock.call_count == 3

    @pytest.mark.asyncio
    async def test_max_retries_from_config(self):
        provider = _provider(max_retries=2)
        mock = AsyncMock(side_effect=[_rate_limit() for _ in range(2)])
        with patch(_ACOMP, mock), patch(_SLEEP, new_callable=AsyncMock):
            with pytest.raises(RateLimitError):
                await provider.complete(_request())
        assert mock.call_count == 2

    @pytest.mark.asyncio
    async def test_service_unavailable_exhausted(self):
        error = litellm_mod.ServiceUnavailableError(
            message="down", model="test", llm_provider="test",
        )
        provider = _provider()
        with patch(_ACOMP, AsyncMock(side_effect=[error] * 3)), \
                patch(_SLEEP, new_callable=AsyncMock):
            with pytest.raises(ServiceUnavailableError):
                await provider.complete(_request())

    @pytest.mark.asyncio
    async def test_internal_server_error_exhausted(self):
        error = litellm_mod.InternalServerError(
            message="boom", model="test", llm_provider="test",
        )
        provider = _provider()
        with patch(_ACOMP, AsyncMock(side_effect=[error] * 3)), \
                patch(_SLEEP, new_callable=AsyncMock):
            with pytest.raises(APIError) as exc_info:
                await provider.complete(_request())
        assert exc_info.value.type == "server_error"

    @pytest.mark.asyncio
    async def test_connection_error_exhausted(self):
        error = litellm_mod.APIConnectionError(
            message="refused", model="test", llm_provider="test",
        )
        provider = _provider()
        with patch(_ACOMP, AsyncMock(side_effect=[error] * 3)), \
                patch(_SLEEP, new_callable=AsyncMock):
            with pytest.raises(NetworkError):
                await provider.complete(_request())

    @pytest.mark.asyncio
    async def test_timeout_exhausted(self):
        provider = _provider()
        with patch(_ACOMP, AsyncMock(side_effect=[TimeoutError()] * 3)), \
                patch(_SLEEP, new_callable=AsyncMock):
            with pytest.raises(RequestTimeoutError, match="timed out"):
                await provider.complete(_request())

    @pytest.mark.asyncio
    async def test_auth_error_not_retried(self):
        error = litellm_mod.AuthenticationError(
            message="bad key", model="test", llm_provider="test",
        )
        provider = _provider()
        mock = AsyncMock(side_effect=error)
        with patch(_ACOMP, mock), patch(_SLEEP, new_callable=AsyncMock) as sleep:
            with pytest.raises(InvalidAPIKeyError, match="Authentication failed"):
                await provider.complete(_request())
        assert mock.call_count == 1
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_bad_request_not_retried(self):
        error = litellm_mod.BadRequestError(
            message="bad", model="test", llm_provider="test",
        )
        provider = _provider()
        mock = AsyncMock(side_effect=error)
        with patch(_ACOMP, mock), patch(_SLEEP, new_callable=AsyncMock):
            with pytest.raises(InvalidRequestError):
                await provider.complete(_request())
        assert mock.call_count == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "make_error, expected",
        [
            (
                lambda: litellm_mod.NotFoundError(
                    message="no such model", model="test", llm_provider="test",
                ),
                InvalidRequestError,
            ),
            (
                lambda: litellm_mod.PermissionDeniedError(
                    message="forbidden", model="test", llm_provider="test",
                    response=MagicMock(status_code=403),
                ),
                InvalidAPIKeyError,
            ),
            (
                lambda: litellm_mod.UnprocessableEntityError(
                    message="bad body", model="test", llm_provider="test",
                    response=MagicMock(status_code=422),
                ),
                InvalidRequestError,
            ),
            (
                lambda: litellm_mod.APIError(
                    status_code=402, message="pay up", model="test", llm_provider="test",
                ),
                InsufficientBalanceError,
            ),
            (
                lambda: litellm_mod.APIError(
                    status_code=418, message="teapot", model="test", llm_provider="test",
                ),
                APIError,
            ),
        ],
    )
    async def test_status_errors_mapped_without_retry(self, make_error, expected):
        provider = _provider()
        mock = AsyncMock(side_effect=make_error())
        with patch(_ACOMP, mock), patch(_SLEEP, new_callable=AsyncMock) as sleep:
            with pytest.raises(expected):
                await provider.complete(_request())
        assert mock.call_count == 1
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status, kind", [(418, "api_error"), (520, "server_error")])
    async def test_generic_api_error_carries_status(self, status, kind):
        provider = _provider()
        error = litellm_mod.APIError(
            status_code=status, message="odd", model="test", llm_provider="test",
        )
        with patch(_ACOMP, AsyncMock(side_effect=error)), patch(_SLEEP, new_callable=AsyncMock):
            with pytest.raises(APIError) as exc_info:
                await provider.complete(_request())
        assert exc_info.value.code == str(status)
        assert exc_info.value.type == kind


# ── Streaming ─────────────────────────────────────────────────


class TestStream:
    @pytest.mark.asyncio
    async def test_stream_yields_converted_chunks(self):
        async def fake_stream():
            yield _make_chunk(reasoning="think")
            yield _make_chunk(content="Hel")
            yield _make_chunk(content="lo", finish_reason="stop")

        provider = _provider()
        mock = AsyncMock(return_value=fake_stream())
        with patch(_ACOMP, mock):
            chunks = [c async for c in provider.stream(_request())]

        assert mock.call_args.kwargs["stream"] is True
        assert [c.choices[0].delta.content for c in chunks] == [None, "Hel", "lo"]
        assert chunks[0].choices[0].delta.reasoning_content == "think"
        assert chunks[2].choices[0].finish_reason == "stop"

    @pytest.mark.asyncio
    async def test_stream_fragments_skip_empty_choices(self):
        async def fake_stream():
            yield _make_chunk(content="Hi", finish_reason="stop")
            yield SimpleNamespace(id="u", created=0, model="", choices=[], usage=None)

        provider = _provider()
        with patch(_ACOMP, AsyncMock(return_value=fake_stream())):
            fragments = [f async for f in provider.stream_fragments(_request())]

        assert len(fragments) == 1
        assert fragments[0].content == "Hi"
        assert fragments[0].finish_reason == "stop"

    @pytest.mark.asyncio
    async def test_mid_stream_failure_raises_streaming_error(self):
        async def broken_stream():
            yield _make_chunk(content="Hel")
            raise litellm_mod.APIConnectionError(
                message="reset", model="test", llm_provider="test",
            )

        provider = _provider()
        received = []
        with patch(_ACOMP, AsyncMock(return_value=broken_stream())):
            with pytest.raises(StreamingError):
                async for chunk in provider.stream(_request()):
                    received.append(chunk)
        assert len(received) == 1

    def test_chunk_from_litellm_usage(self):
        chunk = _make_chunk(content="x")
        chunk.usage = SimpleNamespace(
            prompt_tokens=10,
            completion_tokens=5,
            total_tokens=15,
            completion_tokens_details=SimpleNamespace(reasoning_tokens=3),
        )
        converted = chunk_from_litellm(chunk)
        assert converted.usage.total_tokens == 15
        assert converted.usage.reasoning_tokens == 3


# ── FIM ───────────────────────────────────────────────────────


class TestCompleteFim:
    @pytest.mark.asyncio
    async def test_fim_uses_beta_endpoint(self):
        response = SimpleNamespace(
            id="cmpl-1",
            created=0,
            model="deepseek-chat",
            choices=[SimpleNamespace(text="    return a + b\n", index=0, finish_reason="stop")],
            usage=None,
        )
        provider = _provider()
        mock = AsyncMock(return_value=response)
        with patch(_ATEXT, mock):
            result = await provider.complete_fim(
                CompletionRequest(prompt="def add(a, b):\n", suffix="\n", max_tokens=32)
            )

        assert result.text == "    return a + b\n"
        kwargs = mock.call_args.kwargs
        assert kwargs["api_base"] == "https://api.deepseek.com/beta"
        assert kwargs["suffix"] == "\n"
        assert kwargs["max_tokens"] == 32
        assert "temperature" not in kwargs

    @pytest.mark.asyncio
    async def test_fim_rejected_for_reasoner(self):
        provider = _provider(_reasoner_config())
        mock = AsyncMock()
        with patch(_ATEXT, mock), pytest.raises(InvalidRequestError):
            await provider.complete_fim(CompletionRequest(prompt="x"))
        mock.assert_not_called()


# ── Cost ──────────────────────────────────────────────────────


class TestCost:
    def test_calculate_cost(self):
        provider = _provider()
        cost = provider.calculate_cost(1_000_000, 1_000_000)
        assert cost == pytest.approx(1.37)

    def test_identity_properties(self):
        provider = _provider(_reasoner_config())
        assert provider.model == "deepseek-reasoner"
        assert provider.model_id == "deepseek/deepseek-reasoner"
        assert provider.supports_reasoning
        assert not provider.supports_fim
