"""FIM (fill-in-the-middle) completion schemas.

The completions endpoint is a beta feature served from the beta base URL
and supported by ``deepseek-chat`` only.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

from deepseek_kit.schemas.chat import Usage


class CompletionRequest(BaseModel):
    """Request for a FIM completion."""

    model: Literal["deepseek-chat"] = Field(default="deepseek-chat")
    prompt: str = Field(description="Text before the completion")
    suffix: str | None = Field(default=None, description="Text after the completion")
    max_tokens: int | None = Field(default=None, gt=0)
    temperature: float | None = Field(default=None, ge=0.0, le=2.0)
    stream: bool | None = Field(default=None)


class CompletionChoice(BaseModel):
    text: str = Field(default="")
    index: int = Field(default=0, ge=0)
    finish_reason: str | None = None


class CompletionResponse(BaseModel):
    """Response from a FIM completion."""

    id: str = Field(default="")
    object: str = Field(default="text_completion")
    created: int = Field(default=0)
    model: str = Field(default="")
    choices: list[CompletionChoice] = Field(default_factory=list)
    usage: Usage | None = None

    @property
    def text(self) -> str:
        return self.choices[0].text if self.choices else ""
