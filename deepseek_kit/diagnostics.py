"""In-memory error log with statistics and export.

``ErrorLog`` keeps the most recent entries (newest first), forwards each
one to the standard ``logging`` hierarchy, and classifies deepseek-kit
exceptions into categories so a CLI or dashboard can summarise failures.
"""

from __future__ import annotations

import csv
import io
import json
import logging
from collections import Counter
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field

from deepseek_kit.errors import (
    APIError,
    DeepSeekError,
    HTTPStatusError,
    InsufficientBalanceError,
    InvalidAPIKeyError,
    NetworkError,
    RateLimitError,
    RequestTimeoutError,
    ServiceUnavailableError,
    SourceError,
    StreamingError,
)

logger = logging.getLogger("deepseek_kit")

DEFAULT_CAPACITY = 500
_RECENT_WINDOW = 100


class LogLevel(StrEnum):
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"

    @property
    def logging_level(self) -> int:
        return getattr(logging, self.name)


class LogCategory(StrEnum):
    NETWORK = "network"
    API = "api"
    AUTHENTICATION = "authentication"
    CACHE = "cache"
    STREAM = "stream"
    GENERAL = "general"


class LogEntry(BaseModel):
    level: LogLevel
    category: LogCategory
    message: str
    details: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))


class LogStatistics(BaseModel):
    total: int = 0
    error_count: int = Field(default=0, description="Entries at error or critical level")
    error_rate: float = Field(default=0.0, description="Error share of the last 100 entries")
    by_level: dict[LogLevel, int] = Field(default_factory=dict)
    by_category: dict[LogCategory, int] = Field(default_factory=dict)


class LogExportFormat(StrEnum):
    JSON = "json"
    CSV = "csv"
    TEXT = "text"


_ERROR_LEVELS = (LogLevel.ERROR, LogLevel.CRITICAL)


def classify_error(error: BaseException) -> tuple[LogLevel, LogCategory, str]:
    """Map an exception to the level, category and message it is logged with."""
    if isinstance(error, InvalidAPIKeyError):
        return LogLevel.ERROR, LogCategory.AUTHENTICATION, "Authentication failed"
    if isinstance(error, RateLimitError):
        return LogLevel.WARNING, LogCategory.API, "Rate limit exceeded"
    if isinstance(error, InsufficientBalanceError):
        return LogLevel.ERROR, LogCategory.API, "Insufficient balance"
    if isinstance(error, ServiceUnavailableError):
        return LogLevel.CRITICAL, LogCategory.API, "Service unavailable"
    if isinstance(error, HTTPStatusError):
        level = LogLevel.CRITICAL if error.status_code >= 500 else LogLevel.ERROR
        return level, LogCategory.API, f"HTTP error {error.status_code}"
    if isinstance(error, APIError):
        return LogLevel.ERROR, LogCategory.API, f"API error: {error.message}"
    if isinstance(error, (NetworkError, RequestTimeoutError)):
        return LogLevel.ERROR, LogCategory.NETWORK, f"Network error: {error}"
    if isinstance(error, (SourceError, StreamingError)):
        return LogLevel.ERROR, LogCategory.STREAM, f"Stream error: {error}"
    if isinstance(error, DeepSeekError):
        return LogLevel.ERROR, LogCategory.GENERAL, str(error)
    return LogLevel.ERROR, LogCategory.GENERAL, f"Unknown error: {error}"


class ErrorLog:
    """Bounded, newest-first log of diagnostic entries."""

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self._capacity = capacity
        self._entries: list[LogEntry] = []

    @property
    def entries(self) -> list[LogEntry]:
        return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def log(
        self,
        message: str,
        level: LogLevel | str = LogLevel.INFO,
        category: LogCategory | str = LogCategory.GENERAL,
        **details: Any,
    ) -> LogEntry:
        entry = LogEntry(
            level=LogLevel(level),
            category=LogCategory(category),
            message=message,
            details=details,
        )
        self._entries.insert(0, entry)
        del self._entries[self._capacity:]

        logger.log(
            entry.level.logging_level, "[%s] %s", entry.category, entry.message
        )
        return entry

    def log_api_error(self, error: BaseException, request: str | None = None) -> LogEntry:
        """Record an exception under the category matching its type."""
        level, category, message = classify_error(error)
        return self.log(
            message,
            level,
            category,
            error_type=type(error).__name__,
            request=request or "N/A",
        )

    def clear(self) -> None:
        self._entries.clear()

    def statistics(self) -> LogStatistics:
        recent = self._entries[:_RECENT_WINDOW]
        recent_errors = sum(1 for e in recent if e.level in _ERROR_LEVELS)
        return LogStatistics(
            total=len(self._entries),
            error_count=sum(1 for e in self._entries if e.level in _ERROR_LEVELS),
            error_rate=recent_errors / max(len(recent), 1),
            by_level=dict(Counter(e.level for e in self._entries)),
            by_category=dict(Counter(e.category for e in self._entries)),
        )

    def export(self, fmt: LogExportFormat | str = LogExportFormat.JSON) -> str:
        fmt = LogExportFormat(fmt)
        if fmt == LogExportFormat.JSON:
            return json.dumps(
                [
                    {
                        "timestamp": e.timestamp.isoformat(),
                        "level": e.level.value,
                        "category": e.category.value,
                        "message": e.message,
                    }
                    for e in self._entries
                ],
                indent=2,
            )
        if fmt == LogExportFormat.CSV:
            out = io.StringIO()
            writer = csv.writer(out, lineterminator="\n")
            writer.writerow(["Timestamp", "Level", "Category", "Message"])
            for e in self._entries:
                writer.writerow(
                    [e.timestamp.isoformat(), e.level.value, e.category.value, e.message]
                )
            return out.getvalue()
        return "\n".join(
            f"{e.timestamp:%Y-%m-%d %H:%M:%S} [{e.level.value.upper()}] "
            f"[{e.category.value}] {e.message}"
            for e in self._entries
        )
