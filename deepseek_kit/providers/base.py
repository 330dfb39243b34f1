"""Abstract base class for chat providers.

Defines the ChatProvider interface the client facade talks to. The client
never calls LiteLLM directly; every model call goes through a provider.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator

from deepseek_kit.schemas.chat import ChatCompletionRequest, ChatCompletionResponse
from deepseek_kit.schemas.completion import CompletionRequest, CompletionResponse
from deepseek_kit.schemas.config import ModelConfig
from deepseek_kit.schemas.streaming import ChatCompletionChunk, StreamFragment


class ChatProvider(ABC):
    """Abstract interface for a chat-completion backend.

    Initialized from a ModelConfig loaded from the TOML registry. Exposes
    identity, capabilities and cost info, plus async ``complete`` and
    ``stream`` methods every provider must implement.
    """

    def __init__(self, config: ModelConfig) -> None:
        self._config = config

    # ── Identity ──────────────────────────────────────────────

    @property
    def model(self) -> str:
        """API model name (e.g. 'deepseek-chat')."""
        return self._config.model

    @property
    def model_id(self) -> str:
        """LiteLLM model identifier used for routing."""
        return self._config.litellm_model

    @property
    def display_name(self) -> str:
        """Human-friendly model name for CLI output."""
        return self._config.display_name

    # ── Capabilities ──────────────────────────────────────────

    @property
    def context_window(self) -> int:
        """Maximum context window size in tokens."""
        return self._config.context_window

    @property
    def supports_tools(self) -> bool:
        return self._config.supports_tools

    @property
    def supports_json(self) -> bool:
        return self._config.supports_json

    @property
    def supports_fim(self) -> bool:
        return self._config.supports_fim

    @property
    def supports_reasoning(self) -> bool:
        """Whether the model returns a separate reasoning trace."""
        return self._config.supports_reasoning

    # ── Cost ──────────────────────────────────────────────────

    @property
    def cost_per_1m_input(self) -> float:
        """Cost per 1M input tokens in USD."""
        return self._config.cost_input

    @property
    def cost_per_1m_output(self) -> float:
        """Cost per 1M output tokens in USD."""
        return self._config.cost_output

    @property
    def config(self) -> ModelConfig:
        """The full ModelConfig backing this provider."""
        return self._config

    # ── Core interface ────────────────────────────────────────

    @abstractmethod
    async def complete(self, request: ChatCompletionRequest) -> ChatCompletionResponse:
        """Send a non-streaming chat completion request.

        Raises:
            DeepSeekError: A subclass describing the failure.
        """

    @abstractmethod
    def stream(self, request: ChatCompletionRequest) -> AsyncIterator[ChatCompletionChunk]:
        """Open a streaming chat completion and yield its chunks in order.

        Errors opening the stream are raised from the first iteration.
        """

    async def complete_fim(self, request: CompletionRequest) -> CompletionResponse:
        """Send a fill-in-the-middle completion request.

        Default implementation rejects the call. Providers that support the
        beta completions endpoint override this method.
        """
        raise NotImplementedError(f"{self.display_name} does not support FIM completion")

    async def stream_fragments(
        self, request: ChatCompletionRequest
    ) -> AsyncIterator[StreamFragment]:
        """Yield the stream reduced to ``StreamFragment`` values.

        Chunks without choices (such as a trailing usage-only chunk) are
        skipped.
        """
        async for chunk in self.stream(request):
            if not chunk.choices:
                continue
            yield StreamFragment.from_chunk(chunk)

    def calculate_cost(self, prompt_tokens: int, completion_tokens: int) -> float:
        """Calculate the USD cost for a given token count.

        Args:
            prompt_tokens: Number of input tokens.
            completion_tokens: Number of output tokens.

        Returns:
            Estimated cost in USD.
        """
        input_cost = (prompt_tokens / 1_000_000) * self.cost_per_1m_input
        output_cost = (completion_tokens / 1_000_000) * self.cost_per_1m_output
        return input_cost + output_cost
