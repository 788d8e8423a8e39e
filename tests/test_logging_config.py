"""Tests for structured logging setup."""
import json
import logging
import sys

import pytest

from retryguard.logging_config import (
    CorrelationContext,
    JSONFormatter,
    StructuredFormatter,
    get_correlation_id,
    set_correlation_id,
    setup_logging,
)


def make_record(msg="hello", level=logging.INFO, exc_info=None):
    return logging.LogRecord("retryguard.test", level, __file__, 10, msg, None, exc_info)


@pytest.fixture
def restore_root():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)


class TestFormatters:

    def test_json_fields(self):
        data = json.loads(JSONFormatter().format(make_record()))
        assert data["message"] == "hello"
        assert data["level"] == "INFO"
        assert data["logger"] == "retryguard.test"
        assert "operation" not in data
        assert data["timestamp"].endswith("Z")

    def test_json_includes_context(self):
        with CorrelationContext(correlation_id="abc123", operation="fetch"):
            data = json.loads(JSONFormatter().format(make_record()))
        assert data["correlation_id"] == "abc123"
        assert data["operation"] == "fetch"

    def test_json_exception(self):
        try:
            raise ValueError("bad")
        except ValueError:
            record = make_record(level=logging.ERROR, exc_info=sys.exc_info())

        data = json.loads(JSONFormatter().format(record))
        assert data["exception"]["type"] == "ValueError"
        assert data["exception"]["message"] == "bad"

    def test_structured_plain(self):
        with CorrelationContext(correlation_id="0123456789", operation="sync"):
            line = StructuredFormatter(use_color=False).format(make_record())
        assert "[INFO]" in line
        assert "[retryguard.test] hello" in line
        assert "correlation_id=01234567" in line
        assert "operation=sync" in line


class TestContext:

    def test_context_resets(self):
        outer = get_correlation_id()
        with CorrelationContext() as ctx:
            assert get_correlation_id() == ctx.correlation_id
        assert get_correlation_id() == outer

    def test_set_correlation_id(self):
        with CorrelationContext():
            assert set_correlation_id("fixed") == "fixed"
            assert get_correlation_id() == "fixed"


class TestSetupLogging:

    def test_console_only(self, restore_root):
        root = setup_logging(level="debug")
        assert root.level == logging.DEBUG
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, StructuredFormatter)

    def test_json_console(self, restore_root):
        root = setup_logging(json_format=True)
        assert isinstance(root.handlers[0].formatter, JSONFormatter)

    def test_file_handler(self, restore_root, tmp_path):
        root = setup_logging(log_dir=tmp_path, console_output=False)
        logging.getLogger("retryguard.test").info("to file")
        for handler in root.handlers:
            handler.flush()

        lines = (tmp_path / "retryguard.log").read_text().splitlines()
        assert json.loads(lines[-1])["message"] == "to file"

    def test_repeated_setup_does_not_duplicate(self, restore_root):
        setup_logging()
        root = setup_logging()
        assert len(root.handlers) == 1
