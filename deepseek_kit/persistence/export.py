"""Conversation export formatters.

Provides JSON, Markdown, plain-text and CSV renderings of a conversation,
plus helpers to save and reload conversations as JSON files.
"""

from __future__ import annotations

import csv
import io
from enum import StrEnum
from pathlib import Path

from deepseek_kit.schemas.conversation import Conversation


class ExportFormat(StrEnum):
    JSON = "json"
    MARKDOWN = "markdown"
    TEXT = "text"
    CSV = "csv"

    @property
    def extension(self) -> str:
        return _EXTENSIONS[self]

    @classmethod
    def from_path(cls, path: Path) -> ExportFormat:
        """Infer the format from a file extension."""
        suffix = path.suffix.lstrip(".").lower()
        for fmt, ext in _EXTENSIONS.items():
            if suffix == ext:
                return fmt
        raise ValueError(f"Cannot infer export format from {path.name!r}")


_EXTENSIONS = {
    ExportFormat.JSON: "json",
    ExportFormat.MARKDOWN: "md",
    ExportFormat.TEXT: "txt",
    ExportFormat.CSV: "csv",
}


def _format_date(value) -> str:
    return value.strftime("%b %d, %Y at %H:%M")


def export_json(conversation: Conversation) -> str:
    """Export a conversation as a formatted JSON string."""
    return conversation.model_dump_json(indent=2)


def export_markdown(conversation: Conversation) -> str:
    """Export a conversation as a Markdown document.

    One ``###`` heading per message with the role and time, separated by
    horizontal rules.
    """
    lines: list[str] = []

    lines.append(f"# {conversation.title}")
    lines.append("")
    lines.append(f"*Created: {_format_date(conversation.created_at)}*")
    lines.append("")

    if conversation.tags:
        lines.append(f"**Tags:** {', '.join(conversation.tags)}")
        lines.append("")

    lines.append("## Conversation")
    lines.append("")

    for message in conversation.messages:
        lines.append(f"### {message.role.value.capitalize()} - {_format_date(message.timestamp)}")
        lines.append("")
        lines.append(message.content)
        lines.append("")
        lines.append("---")
        lines.append("")

    return "\n".join(lines)


def export_text(conversation: Conversation) -> str:
    lines: list[str] = [conversation.title, "=" * len(conversation.title), ""]
    lines.append(f"Created: {_format_date(conversation.created_at)}")
    lines.append("")

    for message in conversation.messages:
        lines.append(f"[{message.role.value.upper()}]: {message.content}")
        lines.append("")

    return "\n".join(lines)


def export_csv(conversation: Conversation) -> str:
    """Export as CSV with a ``Timestamp,Role,Content`` header.

    Every field is quoted and newlines inside content become spaces.
    """
    out = io.StringIO()
    out.write("Timestamp,Role,Content\n")
    writer = csv.writer(out, quoting=csv.QUOTE_ALL, lineterminator="\n")
    for message in conversation.messages:
        writer.writerow([
            message.timestamp.isoformat(),
            message.role.value,
            message.content.replace("\r\n", " ").replace("\n", " "),
        ])
    return out.getvalue()


_EXPORTERS = {
    ExportFormat.JSON: export_json,
    ExportFormat.MARKDOWN: export_markdown,
    ExportFormat.TEXT: export_text,
    ExportFormat.CSV: export_csv,
}


def export_conversation(conversation: Conversation, fmt: ExportFormat | str) -> str:
    """Render a conversation in the requested format."""
    return _EXPORTERS[ExportFormat(fmt)](conversation)


def write_export(
    conversation: Conversation, path: Path, fmt: ExportFormat | str | None = None
) -> Path:
    """Write a conversation to ``path``; the format defaults to the file extension."""
    fmt = ExportFormat(fmt) if fmt else ExportFormat.from_path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(export_conversation(conversation, fmt), encoding="utf-8")
    return path


def load_conversation(path: Path) -> Conversation:
    """Load a conversation previously saved as JSON."""
    return Conversation.model_validate_json(path.read_text(encoding="utf-8"))
