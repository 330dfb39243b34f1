"""Streaming schemas for real-time token delivery.

``ChatCompletionChunk`` mirrors one server-sent event of a streaming chat
completion. ``StreamFragment`` is the reduced view the stream consumer
works with: the text delta plus an optional finish marker.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

from deepseek_kit.schemas.chat import MessageRole, Usage


class FunctionCallDelta(BaseModel):
    """Incremental function call data (name only in the first delta)."""

    name: str | None = None
    arguments: str | None = None


class ToolCallDelta(BaseModel):
    """Incremental tool call data."""

    index: int = Field(default=0, ge=0)
    id: str | None = None
    type: str | None = None
    function: FunctionCallDelta | None = None


class MessageDelta(BaseModel):
    """Delta content in a streaming message."""

    role: MessageRole | None = None
    content: str | None = None
    reasoning_content: str | None = None
    tool_calls: list[ToolCallDelta] | None = None


class ChunkChoice(BaseModel):
    """A choice delta in a streaming response."""

    index: int = Field(default=0, ge=0)
    delta: MessageDelta = Field(default_factory=MessageDelta)
    finish_reason: str | None = None


class ChatCompletionChunk(BaseModel):
    """A chunk in a streaming chat completion response."""

    id: str = Field(default="")
    object: str = Field(default="chat.completion.chunk")
    created: int = Field(default=0)
    model: str = Field(default="")
    system_fingerprint: str | None = None
    choices: list[ChunkChoice] = Field(default_factory=list)
    usage: Usage | None = Field(default=None, description="Only present in the final chunk")


class StreamFragment(BaseModel):
    """One unit of streamed text handed to the stream consumer."""

    content: str | None = Field(default=None, description="Text delta, if any")
    reasoning_content: str | None = Field(
        default=None, description="Reasoning delta from the reasoner model"
    )
    finish_reason: str | None = Field(
        default=None, description="Set on the terminal fragment"
    )

    @classmethod
    def from_chunk(cls, chunk: ChatCompletionChunk) -> StreamFragment:
        """Reduce a chunk to its first choice."""
        if not chunk.choices:
            return cls()
        choice = chunk.choices[0]
        return cls(
            content=choice.delta.content,
            reasoning_content=choice.delta.reasoning_content,
            finish_reason=choice.finish_reason,
        )
