"""Stream session schemas.

Defines the consumer states, the cancellation boundaries a caller can pick,
and the immutable snapshot observers receive on every state change.
"""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field


class StreamState(StrEnum):
    """Lifecycle states of a stream session."""

    STREAMING = "streaming"
    PAUSED = "paused"
    CANCELLED = "cancelled"
    COMPLETE = "complete"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_STATES


_TERMINAL_STATES = frozenset(
    {StreamState.CANCELLED, StreamState.COMPLETE, StreamState.FAILED}
)


class CancelBoundary(StrEnum):
    """Where a pending cancellation is allowed to take effect."""

    IMMEDIATE = "immediate"
    AFTER_WORD = "after_word"
    AFTER_SENTENCE = "after_sentence"
    AFTER_PARAGRAPH = "after_paragraph"
    GRACEFUL = "graceful"


class CancellationRequest(BaseModel):
    """A one-shot cancellation request, consumed by the stream consumer."""

    boundary: CancelBoundary = Field(default=CancelBoundary.IMMEDIATE)
    reason: str = Field(default="", description="Caller-supplied reason, if any")
    requested_at: datetime = Field(default_factory=datetime.now)


class SessionSnapshot(BaseModel):
    """Read-only view of a stream session at one point in time."""

    model_config = ConfigDict(frozen=True)

    session_id: str
    state: StreamState
    buffer: str = Field(default="")
    reasoning: str = Field(default="", description="Accumulated reasoning trace")
    chunk_count: int = Field(default=0, ge=0)
    cancel_reason: str | None = None
    error: str | None = Field(default=None, description="Error message when failed")
    finish_reason: str | None = None
    started_at: datetime
    finished_at: datetime | None = None

    @property
    def buffer_size(self) -> int:
        return len(self.buffer)

    @property
    def is_terminal(self) -> bool:
        return self.state.is_terminal
