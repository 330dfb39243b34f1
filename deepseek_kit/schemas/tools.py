"""Tool and function definition schemas for function calling."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field


class FunctionDefinition(BaseModel):
    """A function the model may call, described by a JSON Schema."""

    name: str = Field(min_length=1, description="Function name")
    description: str = Field(default="", description="What the function does")
    parameters: dict[str, Any] = Field(
        default_factory=lambda: {"type": "object", "properties": {}, "required": []},
        description="JSON Schema of the accepted arguments",
    )


class Tool(BaseModel):
    """A tool offered to the model. Only ``function`` tools exist today."""

    type: Literal["function"] = Field(default="function")
    function: FunctionDefinition


class NamedFunction(BaseModel):
    name: str


class NamedToolChoice(BaseModel):
    """Forces the model to call one specific function."""

    type: Literal["function"] = Field(default="function")
    function: NamedFunction

    @classmethod
    def for_function(cls, name: str) -> NamedToolChoice:
        return cls(function=NamedFunction(name=name))
