"""Stream session event emitter.

Publishes a ``StreamEvent`` carrying an immutable ``SessionSnapshot`` on
every state transition and every append, so a UI or CLI can render the
session without touching the mutable record owned by the consumer.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field

from deepseek_kit.schemas.session import SessionSnapshot

logger = logging.getLogger(__name__)


class StreamEventType(StrEnum):
    """Types of events emitted during a stream session."""

    SESSION_STARTED = "session_started"
    CHUNK_APPENDED = "chunk_appended"
    REASONING_APPENDED = "reasoning_appended"
    PAUSED = "paused"
    RESUMED = "resumed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"
    FAILED = "failed"


class StreamEvent(BaseModel):
    """A single stream session event."""

    type: StreamEventType = Field(description="Event type")
    timestamp: float = Field(
        default_factory=time.time,
        description="Unix timestamp when the event occurred",
    )
    snapshot: SessionSnapshot = Field(description="Session state after the event")
    data: dict[str, Any] = Field(
        default_factory=dict,
        description="Event payload, varies by event type",
    )


# Type alias for event listener callbacks
EventListener = Callable[[StreamEvent], Any]


class StreamEventEmitter:
    """Broadcasts stream events to registered listeners.

    Listeners can be sync or async callables. Async listeners are awaited
    before the consumer reads the next fragment. Listener exceptions are
    logged and never reach the consumer.
    """

    def __init__(self, *, keep_history: bool = True) -> None:
        self._listeners: list[EventListener] = []
        self._history: list[StreamEvent] = []
        self._keep_history = keep_history

    @property
    def history(self) -> list[StreamEvent]:
        """All events emitted so far."""
        return list(self._history)

    def add_listener(self, listener: EventListener) -> None:
        """Register a listener to receive stream events."""
        self._listeners.append(listener)

    def remove_listener(self, listener: EventListener) -> None:
        """Remove a previously registered listener."""
        self._listeners = [ln for ln in self._listeners if ln is not listener]

    async def emit(
        self, event_type: StreamEventType, snapshot: SessionSnapshot, **data: Any
    ) -> StreamEvent:
        """Emit a stream event to all registered listeners."""
        event = StreamEvent(type=event_type, snapshot=snapshot, data=data)
        if self._keep_history:
            self._history.append(event)

        for listener in list(self._listeners):
            try:
                result = listener(event)
                if asyncio.iscoroutine(result):
                    await result
            except Exception:
                logger.exception("Stream listener error for %s", event_type)

        return event
