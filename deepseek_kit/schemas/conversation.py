"""Conversation history schemas used by export and search."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime

from pydantic import BaseModel, Field, field_validator

from deepseek_kit.schemas.chat import ChatMessage, MessageRole


def _as_utc(value: datetime) -> datetime:
    # Saved files may carry timestamps without an offset
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


class StoredMessage(BaseModel):
    """A message as kept in conversation history."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    role: MessageRole
    content: str = Field(default="")
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @field_validator("timestamp")
    @classmethod
    def _timestamp_utc(cls, value: datetime) -> datetime:
        return _as_utc(value)

    def to_chat_message(self) -> ChatMessage:
        return ChatMessage(role=self.role, content=self.content)


class Conversation(BaseModel):
    """A titled conversation with its messages."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    title: str = Field(default="Untitled conversation")
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    tags: list[str] = Field(default_factory=list)
    messages: list[StoredMessage] = Field(default_factory=list)

    @field_validator("created_at")
    @classmethod
    def _created_at_utc(cls, value: datetime) -> datetime:
        return _as_utc(value)

    def add(self, role: MessageRole | str, content: str) -> StoredMessage:
        message = StoredMessage(role=MessageRole(role), content=content)
        self.messages.append(message)
        return message

    def to_chat_messages(self) -> list[ChatMessage]:
        return [m.to_chat_message() for m in self.messages]
