"""Tests for structured logging helpers."""

import io
import json
import logging

import pytest

from core.logging_utils import (
    _PrettyJsonFormatter,
    configure_json_logging,
    format_invocation_log,
    format_response_log,
    sanitize_headers,
    sanitize_query_params,
    sanitize_uri,
)


class MockLambdaContext:
    function_name = "bridge-function"
    memory_limit_in_mb = 256

    def get_remaining_time_in_millis(self):
        return 1500


class TestSanitization:
    """Test redaction of sensitive values."""

    def test_sensitive_headers_are_redacted(self):
        headers = {
            "Authorization": "Bearer abc",
            "X-Api-Key": "k",
            "Cookie": "session=1",
            "Content-Type": "text/plain",
        }

        sanitized = sanitize_headers(headers)

        assert sanitized["Authorization"] == "[REDACTED]"
        assert sanitized["X-Api-Key"] == "[REDACTED]"
        assert sanitized["Cookie"] == "[REDACTED]"
        assert sanitized["Content-Type"] == "text/plain"

    def test_bytes_header_values_become_text(self):
        assert sanitize_headers({"x-raw": b"caf\xe9"}) == {"x-raw": "café"}

    def test_repeated_header_values_are_kept(self):
        sanitized = sanitize_headers({"set-cookie": ["a=1", "b=2"], "vary": ["accept", b"origin"]})

        assert sanitized == {"set-cookie": "[REDACTED]", "vary": ["accept", "origin"]}

    def test_sensitive_query_params_are_redacted(self):
        params = [("q", "a b"), ("access_token", "xyz"), ("q", "c"), ("X-Amz-Signature", "s")]

        assert sanitize_query_params(params) == [
            ("q", "a b"),
            ("access_token", "[REDACTED]"),
            ("q", "c"),
            ("X-Amz-Signature", "[REDACTED]"),
        ]

    def test_sanitize_uri_keeps_encoding(self):
        uri = "https://h/items?q=a%20b&api%5Fkey=k%26&token=t&flag"

        assert sanitize_uri(uri) == "https://h/items?q=a%20b&api%5Fkey=[REDACTED]&token=[REDACTED]&flag"

    def test_sanitize_uri_without_query(self):
        assert sanitize_uri("https://h/token") == "https://h/token"


class TestLogFormatting:
    """Test invocation and response log entries."""

    def test_invocation_log_with_context(self):
        log = format_invocation_log(
            "req-1", "GET", "https://h/x", {"authorization": "secret"}, 0, MockLambdaContext()
        )

        assert log["request_id"] == "req-1"
        assert log["request_uri"] == "https://h/x"
        assert log["request_headers"] == {"authorization": "[REDACTED]"}
        assert log["lambda_function_name"] == "bridge-function"
        assert log["lambda_remaining_time_ms"] == 1500

    def test_invocation_log_without_context(self):
        log = format_invocation_log("req-1", "POST", "https://h/", {}, 12)

        assert log["request_body_size"] == 12
        assert "lambda_function_name" not in log

    def test_invocation_log_redacts_query_secrets(self):
        log = format_invocation_log("req-1", "GET", "https://h/x?q=1&token=abc", {}, 0)

        assert log["request_uri"] == "https://h/x?q=1&token=[REDACTED]"

    @pytest.mark.parametrize(
        "body, encoding, size",
        [("héllo", "text", 5), (b"\x00\x01", "binary", 2)],
    )
    def test_response_log(self, body, encoding, size):
        log = format_response_log("req-1", 200, {}, body, 12.3456, success=False)

        assert log["body_encoding"] == encoding
        assert log["response_body_size"] == size
        assert log["duration_ms"] == 12.35
        assert log["success"] is False


class TestConfigureJsonLogging:
    """Test root logger configuration."""

    @pytest.fixture(autouse=True)
    def restore_root_logger(self):
        root = logging.getLogger()
        handlers, level = root.handlers[:], root.level
        yield
        root.handlers[:] = handlers
        root.setLevel(level)

    def test_installs_single_handler(self):
        configure_json_logging(level="debug")
        configure_json_logging(level="WARNING")

        root = logging.getLogger()
        assert len(root.handlers) == 1
        assert root.level == logging.WARNING

    def test_pretty_formatter(self):
        configure_json_logging(pretty=True)

        assert isinstance(logging.getLogger().handlers[0].formatter, _PrettyJsonFormatter)

    def test_pretty_formatter_output(self):
        record = logging.LogRecord("bridge", logging.INFO, __file__, 1, "hello", None, None)
        record.request_id = "req-1"
        record.payload = "x" * 20

        output = json.loads(_PrettyJsonFormatter(max_string_length=5).format(record))

        assert output["message"] == "hello"
        assert output["level"] == "INFO"
        assert output["request_id"] == "req-1"
        assert output["payload"].startswith("xxxxx... (truncated")

    def test_pretty_formatter_renders_pairs_and_bytes(self):
        record = logging.LogRecord("bridge", logging.DEBUG, __file__, 1, "uri", None, None)
        record.query_params = [("q", "a b")]
        record.raw = b"\x00\x01\x02"

        output = json.loads(_PrettyJsonFormatter().format(record))

        assert output["query_params"] == [["q", "a b"]]
        assert output["raw"] == "<3 bytes>"

    def test_compact_output_to_stream(self):
        stream = io.StringIO()
        configure_json_logging(level="INFO", stream=stream)

        logging.getLogger("server.lambda_server").info(
            "Incoming invocation", extra={"request_id": "req-1", "raw": b"abcd"}
        )

        line = json.loads(stream.getvalue().splitlines()[-1])
        assert line["message"] == "Incoming invocation"
        assert line["name"] == "server.lambda_server"
        assert line["request_id"] == "req-1"
        assert line["raw"] == "<4 bytes>"
