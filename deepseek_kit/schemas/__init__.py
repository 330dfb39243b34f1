"""deepseek-kit schema definitions.

All Pydantic v2 models used by the provider, the stream consumer and the
persistence helpers.
"""

from deepseek_kit.schemas.account import (
    APIErrorBody,
    Balance,
    BalanceResponse,
    ErrorResponse,
    Model,
    ModelsResponse,
)
from deepseek_kit.schemas.chat import (
    ChatCompletionRequest,
    ChatCompletionResponse,
    ChatMessage,
    Choice,
    DeepSeekModel,
    FinishReason,
    FunctionCall,
    MessageRole,
    ResponseFormat,
    ResponseFormatType,
    ToolCall,
    Usage,
)
from deepseek_kit.schemas.completion import (
    CompletionChoice,
    CompletionRequest,
    CompletionResponse,
)
from deepseek_kit.schemas.config import ClientConfig, ModelConfig, StreamSettings
from deepseek_kit.schemas.conversation import Conversation, StoredMessage
from deepseek_kit.schemas.session import (
    CancelBoundary,
    CancellationRequest,
    SessionSnapshot,
    StreamState,
)
from deepseek_kit.schemas.streaming import (
    ChatCompletionChunk,
    ChunkChoice,
    FunctionCallDelta,
    MessageDelta,
    StreamFragment,
    ToolCallDelta,
)
from deepseek_kit.schemas.tools import (
    FunctionDefinition,
    NamedFunction,
    NamedToolChoice,
    Tool,
)

__all__ = [
    "APIErrorBody",
    "Balance",
    "BalanceResponse",
    "CancelBoundary",
    "CancellationRequest",
    "ChatCompletionChunk",
    "ChatCompletionRequest",
    "ChatCompletionResponse",
    "ChatMessage",
    "Choice",
    "ChunkChoice",
    "ClientConfig",
    "CompletionChoice",
    "CompletionRequest",
    "CompletionResponse",
    "Conversation",
    "DeepSeekModel",
    "ErrorResponse",
    "FinishReason",
    "FunctionCall",
    "FunctionCallDelta",
    "FunctionDefinition",
    "MessageDelta",
    "MessageRole",
    "Model",
    "ModelConfig",
    "ModelsResponse",
    "NamedFunction",
    "NamedToolChoice",
    "ResponseFormat",
    "ResponseFormatType",
    "SessionSnapshot",
    "StoredMessage",
    "StreamFragment",
    "StreamSettings",
    "StreamState",
    "Tool",
    "ToolCall",
    "ToolCallDelta",
    "Usage",
]
