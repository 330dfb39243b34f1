"""deepseek-kit: DeepSeek chat SDK with interruptible streaming."""

__version__ = "0.1.0"

from .client import DeepSeekClient
from .history import ConversationManager
from .errors import DeepSeekError
from .resilience import CircuitBreaker
from .schemas.chat import ChatCompletionRequest, ChatMessage, DeepSeekModel
from .schemas.session import CancelBoundary, SessionSnapshot, StreamState
from .streaming import StreamConsumer, StreamEventEmitter

__all__ = [
    "CancelBoundary",
    "ChatCompletionRequest",
    "ChatMessage",
    "CircuitBreaker",
    "ConversationManager",
    "DeepSeekClient",
    "DeepSeekError",
    "DeepSeekModel",
    "SessionSnapshot",
    "StreamConsumer",
    "StreamEventEmitter",
    "StreamState",
]
