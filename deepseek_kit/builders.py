"""Fluent builder for function (tool) definitions."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any

from deepseek_kit.schemas.tools import FunctionDefinition, Tool

_ITEM_TYPES = frozenset({"string", "number", "integer", "boolean", "object"})


@dataclass(frozen=True)
class FunctionBuilder:
    """Builds a ``FunctionDefinition`` one parameter at a time.

    Every ``add_*`` call returns a new builder, so partially built
    definitions can be shared and extended safely::

        weather = (
            FunctionBuilder("get_weather", "Current weather for a city")
            .add_string_parameter("city", "City name", required=True)
            .add_string_parameter("unit", "Unit", enum=["celsius", "fahrenheit"])
            .build_tool()
        )
    """

    name: str
    description: str = ""
    properties: tuple[tuple[str, dict[str, Any]], ...] = field(default=())
    required: tuple[str, ...] = field(default=())

    def _add(self, name: str, schema: dict[str, Any], required: bool) -> FunctionBuilder:
        if any(existing == name for existing, _ in self.properties):
            raise ValueError(f"Parameter {name!r} is already defined on {self.name}")
        return replace(
            self,
            properties=(*self.properties, (name, schema)),
            required=(*self.required, name) if required else self.required,
        )

    def add_string_parameter(
        self,
        name: str,
        description: str,
        required: bool = False,
        enum: list[str] | None = None,
    ) -> FunctionBuilder:
        schema: dict[str, Any] = {"type": "string", "description": description}
        if enum:
            schema["enum"] = list(enum)
        return self._add(name, schema, required)

    def add_number_parameter(
        self, name: str, description: str, required: bool = False
    ) -> FunctionBuilder:
        return self._add(name, {"type": "number", "description": description}, required)

    def add_integer_parameter(
        self, name: str, description: str, required: bool = False
    ) -> FunctionBuilder:
        return self._add(name, {"type": "integer", "description": description}, required)

    def add_boolean_parameter(
        self, name: str, description: str, required: bool = False
    ) -> FunctionBuilder:
        return self._add(name, {"type": "boolean", "description": description}, required)

    def add_array_parameter(
        self,
        name: str,
        description: str,
        item_type: str = "string",
        required: bool = False,
    ) -> FunctionBuilder:
        if item_type not in _ITEM_TYPES:
            raise ValueError(f"Unsupported array item type: {item_type!r}")
        schema = {
            "type": "array",
            "description": description,
            "items": {"type": item_type},
        }
        return self._add(name, schema, required)

    def parameters(self) -> dict[str, Any]:
        """Return the JSON schema object for the parameters."""
        return {
            "type": "object",
            "properties": {name: dict(schema) for name, schema in self.properties},
            "required": list(self.required),
        }

    def build(self) -> FunctionDefinition:
        return FunctionDefinition(
            name=self.name,
            description=self.description,
            parameters=self.parameters(),
        )

    def build_tool(self) -> Tool:
        return Tool(function=self.build())
