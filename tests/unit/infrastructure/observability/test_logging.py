"""Tests for structured logging."""

import json
import logging
from collections.abc import Generator

import pytest

from songvault.infrastructure.observability.logging import (
    CompactExceptionFormatter,
    CorrelationIdFilter,
    CustomJsonFormatter,
    configure_logging,
    get_correlation_id,
    set_correlation_id,
)


@pytest.fixture(autouse=True)
def restore_root_logger() -> Generator[None, None, None]:
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


def make_record(message: str = "hello", exc_info: object = None) -> logging.LogRecord:
    return logging.LogRecord(
        name="songvault.test",
        level=logging.WARNING,
        pathname=__file__,
        lineno=42,
        msg=message,
        args=(),
        exc_info=exc_info,  # type: ignore[arg-type]
    )


class TestCorrelationId:
    """Test correlation ID functionality."""

    def test_set_and_get_correlation_id(self) -> None:
        """Test setting and getting correlation ID."""
        result = set_correlation_id("test-123-abc")
        assert result == "test-123-abc"
        assert get_correlation_id() == "test-123-abc"

    def test_generated_id_with_prefix(self) -> None:
        """Test that a generated ID carries the prefix."""
        result = set_correlation_id(prefix="scan")
        assert result.startswith("scan-")
        assert len(result) == len("scan-") + 12
        assert get_correlation_id() == result

    def test_filter_adds_correlation_id(self) -> None:
        set_correlation_id("pass-1")
        record = make_record()
        assert CorrelationIdFilter().filter(record) is True
        assert record.correlation_id == "pass-1"  # type: ignore[attr-defined]


class TestFormatters:
    """Test the JSON and compact formatters."""

    def test_json_formatter_fields(self) -> None:
        set_correlation_id("pass-2")
        record = make_record("scan done")
        CorrelationIdFilter().filter(record)

        payload = json.loads(CustomJsonFormatter("%(message)s").format(record))

        assert payload["message"] == "scan done"
        assert payload["level"] == "WARNING"
        assert payload["logger"] == "songvault.test"
        assert payload["line"] == 42
        assert payload["correlation_id"] == "pass-2"

    def test_compact_formatter_shows_chain_root_first(self) -> None:
        try:
            try:
                raise OSError("disk gone")
            except OSError as e:
                raise RuntimeError("scan failed") from e
        except RuntimeError as e:
            record = make_record(exc_info=(type(e), e, e.__traceback__))

        text = CompactExceptionFormatter("%(message)s").format(record)

        lines = [line for line in text.splitlines() if line.startswith("╰─►")]
        assert lines == ["╰─► OSError: disk gone", "╰─► RuntimeError: scan failed"]


class TestLoggingConfiguration:
    """Test logging configuration."""

    def test_configure_logging_debug_level(self) -> None:
        configure_logging(log_level="DEBUG", json_format=False, app_name="test-app")
        assert logging.getLogger("test").getEffectiveLevel() <= logging.DEBUG

    def test_configure_logging_replaces_handlers(self) -> None:
        configure_logging(log_level="INFO", json_format=True)
        configure_logging(log_level="INFO", json_format=True)

        root_logger = logging.getLogger()
        assert len(root_logger.handlers) == 1
        assert isinstance(root_logger.handlers[0].formatter, CustomJsonFormatter)

    def test_noisy_loggers_are_quieted(self) -> None:
        configure_logging(log_level="DEBUG")
        assert logging.getLogger("aiosqlite").level == logging.WARNING
        assert logging.getLogger("httpx").level == logging.WARNING

    def test_unknown_level_falls_back_to_info(self) -> None:
        configure_logging(log_level="chatty")
        assert logging.getLogger().level == logging.INFO
