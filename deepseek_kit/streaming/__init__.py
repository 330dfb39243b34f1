"""Interruptible stream consumption.

The consumer reads fragments from the API stream and can be paused,
resumed or cancelled at a textual boundary.
"""

from deepseek_kit.streaming.boundaries import allowed_portion, evaluate_boundary
from deepseek_kit.streaming.consumer import StreamConsumer, StreamSession
from deepseek_kit.streaming.events import (
    StreamEvent,
    StreamEventEmitter,
    StreamEventType,
)

__all__ = [
    "StreamConsumer",
    "StreamEvent",
    "StreamEventEmitter",
    "StreamEventType",
    "StreamSession",
    "allowed_portion",
    "evaluate_boundary",
]
