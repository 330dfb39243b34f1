"""Chat completion schemas.

Defines the conversation message envelope, the chat completion request
with its sampling parameters, and the non-streaming response. Field names
match the wire format (snake_case) so ``model_dump(exclude_none=True)``
produces a request body the API accepts.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Literal

from pydantic import BaseModel, Field

from deepseek_kit.schemas.tools import NamedToolChoice, Tool


class MessageRole(StrEnum):
    """The role of a message author."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class DeepSeekModel(StrEnum):
    """Model identifiers served by the API.

    ``deepseek-chat`` is the general-purpose model. ``deepseek-reasoner``
    returns a separate reasoning trace and ignores sampling parameters.
    """

    CHAT = "deepseek-chat"
    REASONER = "deepseek-reasoner"


class ResponseFormatType(StrEnum):
    """Output format the model is asked to produce."""

    TEXT = "text"
    JSON_OBJECT = "json_object"


class FinishReason(StrEnum):
    """Why the model stopped generating."""

    STOP = "stop"
    LENGTH = "length"
    CONTENT_FILTER = "content_filter"
    TOOL_CALLS = "tool_calls"
    INSUFFICIENT_SYSTEM_RESOURCE = "insufficient_system_resource"


class FunctionCall(BaseModel):
    """A function invocation requested by the model."""

    name: str = Field(description="Name of the function to call")
    arguments: str = Field(default="{}", description="JSON-encoded arguments")


class ToolCall(BaseModel):
    """A tool call made by the assistant."""

    id: str = Field(description="Tool call identifier, echoed back in the tool message")
    type: Literal["function"] = Field(default="function", description="Tool type")
    function: FunctionCall = Field(description="The function call details")


class ChatMessage(BaseModel):
    """A single message in a chat conversation."""

    role: MessageRole = Field(description="Author role")
    content: str = Field(default="", description="Message text")
    name: str | None = Field(default=None, description="Author name (tool messages)")
    tool_call_id: str | None = Field(
        default=None, description="ID of the tool call this message answers"
    )
    tool_calls: list[ToolCall] | None = Field(
        default=None, description="Tool calls made by the assistant"
    )
    prefix: bool | None = Field(
        default=None, description="Chat prefix completion marker (beta)"
    )
    reasoning_content: str | None = Field(
        default=None, description="Reasoning trace returned by the reasoner model"
    )

    @classmethod
    def system(cls, content: str) -> ChatMessage:
        return cls(role=MessageRole.SYSTEM, content=content)

    @classmethod
    def user(cls, content: str) -> ChatMessage:
        return cls(role=MessageRole.USER, content=content)

    @classmethod
    def assistant(
        cls, content: str, tool_calls: list[ToolCall] | None = None
    ) -> ChatMessage:
        return cls(role=MessageRole.ASSISTANT, content=content, tool_calls=tool_calls)

    @classmethod
    def tool(
        cls, content: str, tool_call_id: str, name: str | None = None
    ) -> ChatMessage:
        return cls(
            role=MessageRole.TOOL, content=content, tool_call_id=tool_call_id, name=name
        )


class ResponseFormat(BaseModel):
    """Response format configuration."""

    type: ResponseFormatType = Field(default=ResponseFormatType.TEXT)

    @classmethod
    def json_object(cls) -> ResponseFormat:
        return cls(type=ResponseFormatType.JSON_OBJECT)


class ChatCompletionRequest(BaseModel):
    """Parameters for a chat completion.

    The reasoner model does not support ``temperature``, ``top_p``,
    ``frequency_penalty`` or ``presence_penalty``; the provider strips them
    before sending.
    """

    model: DeepSeekModel = Field(default=DeepSeekModel.CHAT, description="Model to use")
    messages: list[ChatMessage] = Field(
        min_length=1, description="Conversation history in chronological order"
    )
    temperature: float | None = Field(default=None, ge=0.0, le=2.0)
    top_p: float | None = Field(default=None, ge=0.0, le=1.0)
    max_tokens: int | None = Field(default=None, gt=0)
    stream: bool | None = Field(default=None)
    stop: str | list[str] | None = Field(default=None, description="Stop sequence(s)")
    frequency_penalty: float | None = Field(default=None, ge=-2.0, le=2.0)
    presence_penalty: float | None = Field(default=None, ge=-2.0, le=2.0)
    response_format: ResponseFormat | None = Field(default=None)
    tools: list[Tool] | None = Field(default=None)
    tool_choice: Literal["none", "auto", "required"] | NamedToolChoice | None = Field(
        default=None
    )
    logprobs: bool | None = Field(default=None)
    top_logprobs: int | None = Field(default=None, ge=0, le=20)


class Usage(BaseModel):
    """Token usage statistics for one call."""

    prompt_tokens: int = Field(default=0, ge=0)
    completion_tokens: int = Field(default=0, ge=0)
    total_tokens: int = Field(default=0, ge=0)
    prompt_cache_hit_tokens: int | None = Field(default=None, ge=0)
    prompt_cache_miss_tokens: int | None = Field(default=None, ge=0)
    reasoning_tokens: int | None = Field(default=None, ge=0)


class Choice(BaseModel):
    """One completion choice."""

    index: int = Field(default=0, ge=0)
    message: ChatMessage
    finish_reason: str | None = Field(default=None)


class ChatCompletionResponse(BaseModel):
    """A non-streaming chat completion."""

    id: str = Field(default="")
    object: str = Field(default="chat.completion")
    created: int = Field(default=0)
    model: str = Field(default="")
    system_fingerprint: str | None = Field(default=None)
    choices: list[Choice] = Field(default_factory=list)
    usage: Usage | None = Field(default=None)

    @property
    def content(self) -> str:
        """Text of the first choice, or an empty string."""
        if not self.choices:
            return ""
        return self.choices[0].message.content or ""

    @property
    def reasoning_content(self) -> str:
        """Reasoning trace of the first choice, or an empty string."""
        if not self.choices:
            return ""
        return self.choices[0].message.reasoning_content or ""
