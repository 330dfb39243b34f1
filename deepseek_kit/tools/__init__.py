"""Function calling support: tool registry and cached execution."""

from deepseek_kit.tools.registry import (
    CachedToolExecutor,
    ToolRegistry,
    cache_key,
    validate_arguments,
)

__all__ = [
    "CachedToolExecutor",
    "ToolRegistry",
    "cache_key",
    "validate_arguments",
]
