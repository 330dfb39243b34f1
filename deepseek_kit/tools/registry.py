"""Tool registry: maps function definitions to local Python handlers.

When the model answers with tool calls, ``ToolRegistry.execute`` decodes
and validates the arguments against the registered JSON schema, runs the
handler (sync or async) and wraps the JSON-encoded result in a ``tool``
message ready to be appended to the conversation.
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
from collections.abc import Callable
from typing import Any

from deepseek_kit.cache import TTLCache
from deepseek_kit.errors import ToolArgumentError, UnknownToolError
from deepseek_kit.schemas.chat import ChatMessage, ToolCall
from deepseek_kit.schemas.tools import FunctionDefinition, Tool

logger = logging.getLogger(__name__)

ToolHandler = Callable[..., Any]

_JSON_TYPES: dict[str, tuple[type, ...]] = {
    "string": (str,),
    "number": (int, float),
    "integer": (int,),
    "boolean": (bool,),
    "array": (list,),
    "object": (dict,),
}


def _matches_type(value: Any, json_type: str) -> bool:
    expected = _JSON_TYPES.get(json_type)
    if expected is None:
        return True
    # bool is a subclass of int, but not a JSON number
    if json_type in ("number", "integer") and isinstance(value, bool):
        return False
    return isinstance(value, expected)


def validate_arguments(definition: FunctionDefinition, arguments: dict[str, Any]) -> None:
    """Check arguments against the definition's JSON schema.

    Covers required keys, primitive JSON types, array item types and enums.

    Raises:
        ToolArgumentError: On the first violation found.
    """
    schema = definition.parameters
    properties: dict[str, Any] = schema.get("properties", {})

    missing = [name for name in schema.get("required", []) if name not in arguments]
    if missing:
        raise ToolArgumentError(
            f"{definition.name}: missing required argument(s): {', '.join(missing)}"
        )

    for name, value in arguments.items():
        prop = properties.get(name)
        if prop is None:
            continue
        json_type = prop.get("type")
        if json_type and not _matches_type(value, json_type):
            raise ToolArgumentError(
                f"{definition.name}: argument {name!r} must be of type {json_type}"
            )
        if "enum" in prop and value not in prop["enum"]:
            raise ToolArgumentError(
                f"{definition.name}: argument {name!r} must be one of {prop['enum']}"
            )
        item_type = prop.get("items", {}).get("type") if json_type == "array" else None
        if item_type and not all(_matches_type(item, item_type) for item in value):
            raise ToolArgumentError(
                f"{definition.name}: items of {name!r} must be of type {item_type}"
            )


def decode_arguments(tool_call: ToolCall) -> dict[str, Any]:
    raw = tool_call.function.arguments or "{}"
    try:
        arguments = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ToolArgumentError(
            f"{tool_call.function.name}: arguments are not valid JSON: {e}"
        ) from e
    if not isinstance(arguments, dict):
        raise ToolArgumentError(
            f"{tool_call.function.name}: arguments must be a JSON object"
        )
    return arguments


def tool_error_message(tool_call: ToolCall, error: Exception) -> ChatMessage:
    """Build the ``tool`` message reporting a failed call back to the model."""
    content = json.dumps({"error": True, "message": str(error) or type(error).__name__})
    return ChatMessage.tool(
        content, tool_call_id=tool_call.id, name=tool_call.function.name
    )


class ToolRegistry:
    """Registered tools and their handlers."""

    def __init__(self) -> None:
        self._definitions: dict[str, FunctionDefinition] = {}
        self._handlers: dict[str, ToolHandler] = {}

    def register(self, definition: FunctionDefinition | Tool, handler: ToolHandler) -> None:
        """Register a handler for a function definition.

        Raises:
            ValueError: If a tool with the same name is already registered.
        """
        if isinstance(definition, Tool):
            definition = definition.function
        if definition.name in self._definitions:
            raise ValueError(f"Tool {definition.name!r} is already registered")
        self._definitions[definition.name] = definition
        self._handlers[definition.name] = handler

    def __contains__(self, name: str) -> bool:
        return name in self._definitions

    def __len__(self) -> int:
        return len(self._definitions)

    def definition(self, name: str) -> FunctionDefinition:
        try:
            return self._definitions[name]
        except KeyError:
            raise UnknownToolError(f"No tool registered as {name!r}") from None

    def tools(self) -> list[Tool]:
        """Return every registered function as a ``Tool`` for a request."""
        return [Tool(function=d) for d in self._definitions.values()]

    async def call(self, name: str, arguments: dict[str, Any]) -> Any:
        """Validate ``arguments`` and run the handler for ``name``."""
        definition = self.definition(name)
        validate_arguments(definition, arguments)
        result = self._handlers[name](**arguments)
        if asyncio.iscoroutine(result):
            result = await result
        return result

    async def execute(self, tool_call: ToolCall) -> ChatMessage:
        """Run a tool call and return the ``tool`` message answering it.

        Raises:
            UnknownToolError: If the function is not registered.
            ToolArgumentError: If the arguments are invalid.
        """
        arguments = decode_arguments(tool_call)
        result = await self.call(tool_call.function.name, arguments)
        return ChatMessage.tool(
            json.dumps(result, default=str),
            tool_call_id=tool_call.id,
            name=tool_call.function.name,
        )


def cache_key(name: str, arguments: dict[str, Any]) -> str:
    """SHA-256 of ``name|key:value,...`` with arguments sorted by key."""
    parts = ",".join(f"{key}:{arguments[key]}" for key in sorted(arguments))
    return hashlib.sha256(f"{name}|{parts}".encode()).hexdigest()


class CachedToolExecutor:
    """Executes tool calls through a registry, caching results by arguments.

    Args:
        registry: Registry holding the handlers.
        cache: Result cache. A cache with the default TTL is created if omitted.
        ttls: Per-tool TTL overrides in seconds.
    """

    def __init__(
        self,
        registry: ToolRegistry,
        cache: TTLCache | None = None,
        ttls: dict[str, float] | None = None,
    ) -> None:
        self._registry = registry
        self._cache = cache if cache is not None else TTLCache()
        self._ttls = dict(ttls or {})
        self.hits = 0
        self.misses = 0

    @property
    def cache(self) -> TTLCache:
        return self._cache

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total else 0.0

    async def execute(self, tool_call: ToolCall, ttl: float | None = None) -> ChatMessage:
        """Like ``ToolRegistry.execute`` but served from cache when fresh."""
        name = tool_call.function.name
        arguments = decode_arguments(tool_call)
        key = cache_key(name, arguments)

        cached = self._cache.get(key)
        if cached is not None:
            self.hits += 1
            logger.debug("Tool cache hit for %s", name)
            return ChatMessage.tool(cached, tool_call_id=tool_call.id, name=name)

        self.misses += 1
        result = await self._registry.call(name, arguments)
        content = json.dumps(result, default=str)
        self._cache.put(key, content, ttl=ttl or self._ttls.get(name))
        return ChatMessage.tool(content, tool_call_id=tool_call.id, name=name)

    def clear(self) -> None:
        self._cache.clear()
        self.hits = 0
        self.misses = 0
