"""Tests for JSON and console log formatters."""

import json
import logging
import sys

import pytest

from core.logging.context import clear_log_context, set_log_context
from core.logging.formatters import ConsoleFormatter, JSONFormatter


def _make_record(
    msg="test message",
    level=logging.INFO,
    name="test.logger",
    exc_info=None,
    **extras,
):
    record = logging.LogRecord(
        name=name,
        level=level,
        pathname="test.py",
        lineno=42,
        msg=msg,
        args=(),
        exc_info=exc_info,
    )
    for key, value in extras.items():
        setattr(record, key, value)
    return record


@pytest.fixture(autouse=True)
def clear_context():
    clear_log_context()
    yield
    clear_log_context()


class TestJSONFormatter:

    def test_formats_basic_json_with_required_fields(self):
        output = json.loads(JSONFormatter().format(_make_record()))

        assert output["level"] == "INFO"
        assert output["logger"] == "test.logger"
        assert output["message"] == "test message"
        assert output["ts"].endswith("Z")
        assert "file" not in output

    def test_injects_context(self):
        set_log_context(cycle_id="c-20260101-000000-abcd", stage="download", worker_id="w", item_id="105")

        output = json.loads(JSONFormatter().format(_make_record()))

        assert output["cycle_id"] == "c-20260101-000000-abcd"
        assert output["stage"] == "download"
        assert output["worker_id"] == "w"
        assert output["item_id"] == "105"

    def test_empty_context_fields_omitted(self):
        output = json.loads(JSONFormatter().format(_make_record()))

        assert "cycle_id" not in output
        assert "item_id" not in output

    def test_extra_fields_included(self):
        record = _make_record(items_total=10, items_failed=2, state="partial_failure")

        output = json.loads(JSONFormatter().format(record))

        assert output["items_total"] == 10
        assert output["items_failed"] == 2
        assert output["state"] == "partial_failure"

    def test_process_and_item_extras_included(self):
        record = _make_record(signal="SIGTERM", preferred_port="8000", item_id=105)

        output = json.loads(JSONFormatter().format(record))

        assert output["signal"] == "SIGTERM"
        assert output["preferred_port"] == 8000
        assert output["item_id"] == 105

    def test_unknown_extras_ignored(self):
        output = json.loads(JSONFormatter().format(_make_record(not_a_field="x")))

        assert "not_a_field" not in output

    def test_numeric_fields_coerced(self):
        record = _make_record(watermark="105", delay_seconds="1.5", pass_number="bad")

        output = json.loads(JSONFormatter().format(record))

        assert output["watermark"] == 105
        assert output["delay_seconds"] == 1.5
        assert output["pass_number"] is None

    def test_url_tokens_redacted(self):
        record = _make_record(url="https://api.example.com/feed?page=2&access_token=secret123")

        output = json.loads(JSONFormatter().format(record))

        assert "secret123" not in output["url"]
        assert "access_token=[REDACTED]" in output["url"]
        assert "page=2" in output["url"]

    def test_error_records_include_source_location(self):
        output = json.loads(JSONFormatter().format(_make_record(level=logging.ERROR)))

        assert output["file"] == "test.py:42"

    def test_exception_serialized(self):
        try:
            raise ValueError("broken")
        except ValueError:
            exc_info = sys.exc_info()

        output = json.loads(JSONFormatter().format(_make_record(level=logging.ERROR, exc_info=exc_info)))

        assert output["exception"]["type"] == "ValueError"
        assert output["exception"]["message"] == "broken"
        assert "Traceback" in output["exception"]["stacktrace"]

    def test_non_ascii_preserved(self):
        output = JSONFormatter().format(_make_record(msg="夕焼け"))

        assert "夕焼け" in output


class TestConsoleFormatter:

    @pytest.fixture
    def formatter(self):
        formatter = ConsoleFormatter()
        formatter._use_colors = False
        return formatter

    def test_basic_format(self, formatter):
        output = formatter.format(_make_record())

        assert " - INFO - test message" in output

    def test_stage_prefix(self, formatter):
        set_log_context(stage="retry")

        output = formatter.format(_make_record())

        assert "[retry]" in output

    def test_cycle_and_item_tags(self, formatter):
        set_log_context(cycle_id="c-1", item_id="105")

        output = formatter.format(_make_record())

        assert output.endswith("[c-1] [item:105] test message")

    def test_colors_when_enabled(self):
        formatter = ConsoleFormatter()
        formatter._use_colors = True

        output = formatter.format(_make_record(level=logging.WARNING))

        assert "\033[33mWARNING\033[0m" in output

    def test_exception_appended(self, formatter):
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            exc_info = sys.exc_info()

        output = formatter.format(_make_record(level=logging.ERROR, exc_info=exc_info))

        assert "RuntimeError: boom" in output
