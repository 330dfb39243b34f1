"""High-level DeepSeek client.

``DeepSeekClient`` is the entry point most callers need: it resolves the
API key and configuration, picks a provider per model, and exposes chat,
streaming, interruptible sessions, FIM completion, tool-calling rounds and
the account endpoints.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator

from deepseek_kit.cache import TTLCache
from deepseek_kit.errors import CircuitOpenError, InvalidAPIKeyError, ToolError
from deepseek_kit.keys import get_api_key
from deepseek_kit.providers.account import AccountAPI
from deepseek_kit.providers.base import ChatProvider
from deepseek_kit.providers.litellm_provider import DeepSeekProvider
from deepseek_kit.providers.registry import load_client_config
from deepseek_kit.resilience import CircuitBreaker, is_recoverable, retry_delay
from deepseek_kit.schemas.account import BalanceResponse, Model
from deepseek_kit.schemas.chat import (
    ChatCompletionRequest,
    ChatCompletionResponse,
    ChatMessage,
    DeepSeekModel,
    ToolCall,
)
from deepseek_kit.schemas.completion import CompletionRequest, CompletionResponse
from deepseek_kit.schemas.config import ClientConfig
from deepseek_kit.schemas.session import SessionSnapshot, StreamState
from deepseek_kit.schemas.streaming import ChatCompletionChunk
from deepseek_kit.streaming.consumer import StreamConsumer
from deepseek_kit.streaming.events import StreamEventEmitter
from deepseek_kit.tools.registry import (
    CachedToolExecutor,
    ToolRegistry,
    tool_error_message,
)

logger = logging.getLogger(__name__)

_MAX_TOOL_ROUNDS = 5
_MAX_STREAM_ATTEMPTS = 3


class DeepSeekClient:
    """Facade over the chat provider and the account endpoints.

    Args:
        api_key: Explicit key. Falls back to DEEPSEEK_API_KEY and keys files.
        config: Client configuration. Loaded from defaults.toml if omitted.
        provider: Provider to use for every model instead of DeepSeekProvider.
        account: Account API client, created on first use if omitted.
        breaker: Circuit breaker guarding chat and FIM calls. None disables it.
    """

    def __init__(
        self,
        api_key: str | None = None,
        *,
        config: ClientConfig | None = None,
        provider: ChatProvider | None = None,
        account: AccountAPI | None = None,
        breaker: CircuitBreaker | None = None,
    ) -> None:
        self._api_key = get_api_key(api_key)
        self._config = config or load_client_config()
        self._provider = provider
        self._providers: dict[str, ChatProvider] = {}
        self._account = account
        self._breaker = breaker

    @property
    def config(self) -> ClientConfig:
        return self._config

    @property
    def has_api_key(self) -> bool:
        return bool(self._api_key)

    @property
    def breaker(self) -> CircuitBreaker | None:
        return self._breaker

    def provider_for(self, model: str) -> ChatProvider:
        """Return the provider serving ``model``, creating it on first use."""
        if self._provider is not None:
            return self._provider
        model = str(model)
        if model not in self._providers:
            self._require_key()
            self._providers[model] = DeepSeekProvider(
                self._config.model_config_for(model),
                client_config=self._config,
                api_key=self._api_key,
            )
        return self._providers[model]

    def _require_key(self) -> None:
        if not self._api_key:
            raise InvalidAPIKeyError(
                "No API key configured. Pass api_key or set DEEPSEEK_API_KEY."
            )

    # ── Chat ──────────────────────────────────────────────────

    async def complete(self, request: ChatCompletionRequest) -> ChatCompletionResponse:
        provider = self.provider_for(request.model)
        return await self._guarded(lambda: provider.complete(request))

    async def send(
        self,
        prompt: str,
        system: str | None = None,
        model: DeepSeekModel | str = DeepSeekModel.CHAT,
        **params,
    ) -> str:
        """Send a single prompt and return the reply text."""
        messages = []
        if system:
            messages.append(ChatMessage.system(system))
        messages.append(ChatMessage.user(prompt))
        request = ChatCompletionRequest(model=model, messages=messages, **params)
        response = await self.complete(request)
        return response.content

    def stream(self, request: ChatCompletionRequest) -> AsyncIterator[ChatCompletionChunk]:
        """Stream raw chunks for a chat completion."""
        return self.provider_for(request.model).stream(request)

    def start_session(
        self,
        request: ChatCompletionRequest,
        emitter: StreamEventEmitter | None = None,
    ) -> StreamConsumer:
        """Create an interruptible stream session for ``request``.

        The request is not sent until the returned consumer's ``run()`` is
        awaited.
        """
        provider = self.provider_for(request.model)
        return StreamConsumer(
            provider.stream_fragments(request),
            emitter=emitter,
            poll_interval=self._config.stream.pause_poll_interval,
        )

    async def stream_with_retry(
        self,
        request: ChatCompletionRequest,
        *,
        max_attempts: int = _MAX_STREAM_ATTEMPTS,
        emitter: StreamEventEmitter | None = None,
    ) -> SessionSnapshot:
        """Run an interruptible session, starting a fresh one after a recoverable failure.

        Each attempt is a new session with the same request; a failed
        session is never resumed. Non-recoverable failures (rejected key,
        malformed request) and cancellations end the loop at once.

        Returns:
            The snapshot of the last session run.

        Raises:
            CircuitOpenError: If a circuit breaker is configured and open.
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

        for attempt in range(1, max_attempts + 1):
            if self._breaker is not None and not self._breaker.allow_request():
                raise CircuitOpenError(
                    "Circuit open after repeated failures",
                    retry_after=self._breaker.retry_after,
                )

            consumer = self.start_session(request, emitter=emitter)
            snapshot = await consumer.run()
            if snapshot.state != StreamState.FAILED:
                if self._breaker is not None:
                    self._breaker.record_success()
                return snapshot

            error = consumer.session.error
            if not is_recoverable(error):
                return snapshot
            if self._breaker is not None:
                self._breaker.record_failure()
            if attempt == max_attempts:
                break

            delay = retry_delay(attempt)
            logger.warning(
                "Stream attempt %d/%d failed after %d chunks (%s), retrying in %.1fs",
                attempt, max_attempts, snapshot.chunk_count, snapshot.error, delay,
            )
            await asyncio.sleep(delay)

        return snapshot

    def tool_executor(
        self, registry: ToolRegistry, ttls: dict[str, float] | None = None
    ) -> CachedToolExecutor:
        """Return a caching executor whose entries live ``cache_ttl`` seconds."""
        return CachedToolExecutor(registry, TTLCache(self._config.cache_ttl), ttls=ttls)

    async def complete_with_tools(
        self,
        request: ChatCompletionRequest,
        registry: ToolRegistry,
        *,
        executor: CachedToolExecutor | None = None,
        max_rounds: int = _MAX_TOOL_ROUNDS,
    ) -> tuple[ChatCompletionResponse, list[ChatMessage]]:
        """Run a chat completion, executing tool calls until the model answers.

        Returns the final response and the full message history, including
        the assistant tool-call messages and the tool results.

        Raises:
            RuntimeError: If the model still requests tools after ``max_rounds``.
        """
        messages = list(request.messages)
        if request.tools is None:
            request = request.model_copy(update={"tools": registry.tools()})

        for round_number in range(max_rounds):
            current = request.model_copy(update={"messages": list(messages)})
            response = await self.complete(current)
            if not response.choices:
                return response, messages

            # reasoning_content must not be sent back as input
            message = response.choices[0].message.model_copy(
                update={"reasoning_content": None}
            )
            messages.append(message)
            if not message.tool_calls:
                return response, messages

            logger.debug(
                "Tool round %d: %d call(s)", round_number + 1, len(message.tool_calls)
            )
            for tool_call in message.tool_calls:
                messages.append(await self._run_tool_call(tool_call, registry, executor))

        raise RuntimeError(f"Model still requested tools after {max_rounds} rounds")

    @staticmethod
    async def _run_tool_call(
        tool_call: ToolCall,
        registry: ToolRegistry,
        executor: CachedToolExecutor | None,
    ) -> ChatMessage:
        """Execute one call. Failures are reported to the model as the result."""
        try:
            if executor is not None:
                return await executor.execute(tool_call)
            return await registry.execute(tool_call)
        except ToolError as e:
            logger.warning("Tool call %s failed: %s", tool_call.function.name, e)
            return tool_error_message(tool_call, e)
        except Exception as e:
            logger.exception("Tool handler %s raised", tool_call.function.name)
            return tool_error_message(tool_call, e)

    # ── FIM ───────────────────────────────────────────────────

    async def complete_fim(self, request: CompletionRequest) -> CompletionResponse:
        provider = self.provider_for(request.model)
        return await self._guarded(lambda: provider.complete_fim(request))

    async def _guarded(self, call):
        if self._breaker is None:
            return await call()
        return await self._breaker.call(call)

    # ── Account ───────────────────────────────────────────────

    @property
    def account(self) -> AccountAPI:
        if self._account is None:
            self._require_key()
            self._account = AccountAPI(self._api_key, config=self._config)
        return self._account

    async def list_models(self) -> list[Model]:
        return await self.account.list_models()

    async def get_balance(self) -> BalanceResponse:
        return await self.account.get_balance()
