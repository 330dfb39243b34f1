"""Conversation persistence: export formats and message search."""

from deepseek_kit.persistence.export import (
    ExportFormat,
    export_conversation,
    load_conversation,
    write_export,
)
from deepseek_kit.persistence.search import (
    SearchQuery,
    SearchResult,
    parse_query,
    search_messages,
)

__all__ = [
    "ExportFormat",
    "SearchQuery",
    "SearchResult",
    "export_conversation",
    "load_conversation",
    "parse_query",
    "search_messages",
    "write_export",
]
