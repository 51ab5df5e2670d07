"""Tests for JSON and console log formatters."""

import json
import logging
import sys

import pytest

from graphauth.logging.context import log_context, set_log_context
from graphauth.logging.formatters import REDACTED, ConsoleFormatter, JSONFormatter, redact


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


class TestRedact:
    def test_query_parameters(self):
        url = "urn:ietf:wg:oauth:2.0:oob?code=M.R3_BAY.abc&state=x"
        assert redact(url) == f"urn:ietf:wg:oauth:2.0:oob?code={REDACTED}&state=x"

    def test_form_body(self):
        body = "client_id=abc&refresh_token=0.AAAA-secret&grant_type=refresh_token"
        assert redact(body) == f"client_id=abc&refresh_token={REDACTED}&grant_type=refresh_token"

    def test_client_secret_at_start(self):
        assert redact("client_secret=hunter2") == f"client_secret={REDACTED}"

    def test_bearer_header(self):
        assert redact("Authorization: Bearer eyJ0eXAi.abc.def") == (
            f"Authorization: Bearer {REDACTED}"
        )

    def test_plain_text_untouched(self):
        text = "Access token valid until 2026-01-01"
        assert redact(text) == text


class TestJSONFormatter:
    def test_formats_basic_json_with_required_fields(self):
        output = json.loads(JSONFormatter().format(_make_record()))

        assert output["level"] == "INFO"
        assert output["logger"] == "test.logger"
        assert output["message"] == "test message"
        assert output["ts"].endswith("Z")

    def test_includes_context(self):
        set_log_context(client_id="app-1", flow="delegated", operation="authenticate")
        output = json.loads(JSONFormatter().format(_make_record()))

        assert output["client_id"] == "app-1"
        assert output["flow"] == "delegated"
        assert output["operation"] == "authenticate"

    def test_empty_context_omitted(self):
        output = json.loads(JSONFormatter().format(_make_record()))
        assert "client_id" not in output
        assert "operation" not in output

    def test_extra_overrides_context(self):
        with log_context(client_id="from-context"):
            record = _make_record(client_id="from-extra")
            output = json.loads(JSONFormatter().format(record))
        assert output["client_id"] == "from-extra"

    def test_extra_fields(self):
        record = _make_record(has_refresh_token=True, store_scope="user")
        output = json.loads(JSONFormatter().format(record))

        assert output["has_refresh_token"] is True
        assert output["store_scope"] == "user"

    def test_http_status_coerced_to_int(self):
        output = json.loads(JSONFormatter().format(_make_record(http_status="400")))
        assert output["http_status"] == 400

    def test_invalid_http_status_becomes_null(self):
        output = json.loads(JSONFormatter().format(_make_record(http_status="bad")))
        assert output["http_status"] is None

    def test_secret_extras_redacted(self):
        record = _make_record(refresh_token="rt-secret", client_secret="s3cr3t")
        output = json.loads(JSONFormatter().format(record))

        assert output["refresh_token"] == REDACTED
        assert output["client_secret"] == REDACTED

    def test_url_fields_sanitized(self):
        record = _make_record(http_url="https://login.example/token?code=abc&x=1")
        output = json.loads(JSONFormatter().format(record))
        assert output["http_url"] == f"https://login.example/token?code={REDACTED}&x=1"

    def test_message_redacted(self):
        record = _make_record(msg="Redirect urn:ietf:wg:oauth:2.0:oob?code=abc")
        output = json.loads(JSONFormatter().format(record))
        assert "abc" not in output["message"]

    def test_source_location_for_debug_and_error(self):
        debug = json.loads(JSONFormatter().format(_make_record(level=logging.DEBUG)))
        info = json.loads(JSONFormatter().format(_make_record()))

        assert debug["file"] == "test.py:42"
        assert "file" not in info

    def test_exception_info(self):
        try:
            raise ValueError("bad refresh_token=rt-secret")
        except ValueError:
            record = _make_record(level=logging.ERROR, exc_info=sys.exc_info())

        output = json.loads(JSONFormatter().format(record))

        assert output["exception"]["type"] == "ValueError"
        assert "rt-secret" not in output["exception"]["message"]
        assert "rt-secret" not in output["exception"]["stacktrace"]


class TestConsoleFormatter:
    @pytest.fixture
    def formatter(self, monkeypatch):
        monkeypatch.setattr(sys.stdout, "isatty", lambda: False, raising=False)
        return ConsoleFormatter()

    def test_basic_format(self, formatter):
        output = formatter.format(_make_record())
        assert " - INFO - test message" in output

    def test_context_prefix(self, formatter):
        set_log_context(flow="service", operation="authenticate")
        output = formatter.format(_make_record())
        assert "INFO - [service] - [authenticate] - test message" in output

    def test_client_tag_truncated(self, formatter):
        output = formatter.format(_make_record(client_id="11111111-2222-3333"))
        assert "[client:11111111] test message" in output

    def test_http_tag(self, formatter):
        output = formatter.format(_make_record(http_status=400))
        assert "[http:400]" in output

    def test_redacts_message(self, formatter):
        output = formatter.format(_make_record(msg="sent Bearer abc.def.ghi"))
        assert "abc.def.ghi" not in output
        assert REDACTED in output

    def test_colors_when_tty(self, monkeypatch):
        monkeypatch.setattr(sys.stdout, "isatty", lambda: True, raising=False)
        output = ConsoleFormatter().format(_make_record(level=logging.WARNING))
        assert "\033[33mWARNING\033[0m" in output
