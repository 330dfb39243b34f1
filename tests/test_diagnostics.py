"""Tests for deepseek_kit.diagnostics — error log, classification and export."""

from __future__ import annotations

import json
import logging

import pytest

from deepseek_kit.diagnostics import (
    ErrorLog,
    LogCategory,
    LogLevel,
    classify_error,
)
from deepseek_kit.errors import (
    APIError,
    HTTPStatusError,
    InsufficientBalanceError,
    InvalidAPIKeyError,
    NetworkError,
    RateLimitError,
    RequestTimeoutError,
    ServiceUnavailableError,
    SourceError,
    ToolError,
)


class TestClassifyError:
    @pytest.mark.parametrize(
        "error, level, category",
        [
            (InvalidAPIKeyError(), LogLevel.ERROR, LogCategory.AUTHENTICATION),
            (RateLimitError(), LogLevel.WARNING, LogCategory.API),
            (InsufficientBalanceError(), LogLevel.ERROR, LogCategory.API),
            (ServiceUnavailableError(), LogLevel.CRITICAL, LogCategory.API),
            (HTTPStatusError(502), LogLevel.CRITICAL, LogCategory.API),
            (HTTPStatusError(404), LogLevel.ERROR, LogCategory.API),
            (APIError("bad model"), LogLevel.ERROR, LogCategory.API),
            (NetworkError("refused"), LogLevel.ERROR, LogCategory.NETWORK),
            (RequestTimeoutError("slow"), LogLevel.ERROR, LogCategory.NETWORK),
            (SourceError("broken"), LogLevel.ERROR, LogCategory.STREAM),
            (ToolError("oops"), LogLevel.ERROR, LogCategory.GENERAL),
        ],
    )
    def test_levels_and_categories(self, error, level, category):
        assert classify_error(error)[:2] == (level, category)

    def test_messages(self):
        assert classify_error(InvalidAPIKeyError())[2] == "Authentication failed"
        assert classify_error(APIError("bad model"))[2] == "API error: bad model"
        assert classify_error(KeyError("x"))[2].startswith("Unknown error")


class TestErrorLog:
    def test_newest_first(self):
        log = ErrorLog()
        log.log("first")
        log.log("second")
        assert [e.message for e in log.entries] == ["second", "first"]

    def test_capacity_drops_oldest(self):
        log = ErrorLog(capacity=3)
        for i in range(5):
            log.log(f"m{i}")
        assert [e.message for e in log.entries] == ["m4", "m3", "m2"]

    def test_invalid_capacity(self):
        with pytest.raises(ValueError):
            ErrorLog(capacity=0)

    def test_forwards_to_logging(self, caplog):
        log = ErrorLog()
        with caplog.at_level(logging.WARNING, logger="deepseek_kit"):
            log.log("disk full", LogLevel.WARNING, LogCategory.CACHE)
        assert "[cache] disk full" in caplog.text

    def test_log_api_error_details(self):
        log = ErrorLog()
        entry = log.log_api_error(RateLimitError(), request="POST /chat/completions")
        assert entry.level == LogLevel.WARNING
        assert entry.details == {
            "error_type": "RateLimitError",
            "request": "POST /chat/completions",
        }

    def test_log_api_error_default_request(self):
        entry = ErrorLog().log_api_error(NetworkError("x"))
        assert entry.details["request"] == "N/A"

    def test_statistics(self):
        log = ErrorLog()
        log.log("ok", LogLevel.INFO)
        log.log("bad", LogLevel.ERROR, LogCategory.API)
        log.log("worse", LogLevel.CRITICAL, LogCategory.NETWORK)
        log.log("meh", LogLevel.WARNING, LogCategory.API)

        stats = log.statistics()
        assert stats.total == 4
        assert stats.error_count == 2
        assert stats.error_rate == 0.5
        assert stats.by_category[LogCategory.API] == 2
        assert stats.by_level[LogLevel.INFO] == 1

    def test_statistics_empty(self):
        stats = ErrorLog().statistics()
        assert stats.total == 0
        assert stats.error_rate == 0.0

    def test_clear(self):
        log = ErrorLog()
        log.log("x")
        log.clear()
        assert len(log) == 0


class TestExport:
    @pytest.fixture
    def log(self):
        log = ErrorLog()
        log.log("first", LogLevel.INFO, LogCategory.CACHE)
        log.log('say "hi", then leave', LogLevel.ERROR, LogCategory.API)
        return log

    def test_json(self, log):
        data = json.loads(log.export("json"))
        assert data[0]["level"] == "error"
        assert data[1]["category"] == "cache"

    def test_csv(self, log):
        lines = log.export("csv").splitlines()
        assert lines[0] == "Timestamp,Level,Category,Message"
        assert lines[1].endswith(',error,api,"say ""hi"", then leave"')

    def test_text(self, log):
        lines = log.export("text").splitlines()
        assert lines[0].endswith('[ERROR] [api] say "hi", then leave')
        assert lines[1].endswith("[INFO] [cache] first")
