"""Logging utilities for lambda-http-bridge.

Provides centralized JSON logging configuration and sensitive data sanitization
for the headers and query strings recorded with every invocation.
"""

import json
import logging
from typing import IO, Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union
from urllib.parse import unquote_plus

from pythonjsonlogger import json as jsonlogger

from core.interfaces import HeaderValue

# Sensitive keys to filter (case-insensitive)
SENSITIVE_KEYS = [
    "api_key",
    "apikey",
    "api-key",
    "authorization",
    "authorizer",
    "token",
    "bearer",
    "password",
    "passwd",
    "secret",
    "credential",
    "credentials",
    "access_token",
    "refresh_token",
    "session_id",
    "cookie",
    "signature",
]

# Sensitive header prefixes (case-insensitive)
SENSITIVE_HEADER_PREFIXES = [
    "x-api-key",
    "x-auth",
    "x-token",
    "x-secret",
    "x-amz-security-token",
    "authorization",
    "proxy-authorization",
    "cookie",
    "set-cookie",
]

REDACTED = "[REDACTED]"


# LogRecord attributes that are not user-supplied ``extra`` fields
_RESERVED_RECORD_ATTRS = (
    "name", "msg", "args", "created", "filename", "funcName",
    "levelname", "levelno", "lineno", "module", "msecs",
    "message", "pathname", "process", "processName",
    "relativeCreated", "thread", "threadName", "exc_info",
    "exc_text", "stack_info", "asctime", "datefmt", "taskName",
)


def _json_default(value: Any) -> Any:
    """Render values the json module cannot serialize.

    Raw bodies are logged by size only, never by content.
    """
    if isinstance(value, (bytes, bytearray, memoryview)):
        return f"<{len(value)} bytes>"
    return repr(value)


def configure_json_logging(
    level: str = "INFO",
    pretty: bool = False,
    stream: Optional[IO[str]] = None,
) -> None:
    """Configure ALL loggers to use JSON format.

    This function sets up the root logger with JSON formatting, ensuring
    all child loggers (bridge, encoder, fallback, the wrapped service)
    inherit JSON format. Call it once, before the first invocation is
    handled; calling it again replaces the previous handler.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        pretty: If True, use pretty-printed JSON (for the local server).
                If False, use compact JSON (for CloudWatch).
        stream: Stream to write to (defaults to stderr)
    """
    # Get root logger
    root_logger = logging.getLogger()

    # Remove any existing handlers
    root_logger.handlers.clear()

    log_level = getattr(logging, level.upper(), logging.INFO)
    root_logger.setLevel(log_level)

    handler = logging.StreamHandler(stream)
    handler.setLevel(log_level)

    if pretty:
        formatter = _PrettyJsonFormatter()
    else:
        # One JSON object per line; CloudWatch indexes the fields
        formatter = jsonlogger.JsonFormatter(
            "%(asctime)s %(name)s %(levelname)s %(message)s",
            timestamp=True,
            json_default=_json_default,
        )

    handler.setFormatter(formatter)
    root_logger.addHandler(handler)


class _PrettyJsonFormatter(logging.Formatter):
    """Pretty JSON formatter for the local development server.

    Formats logs as indented JSON for better readability in terminals.
    Also truncates very large values, such as long request URIs or deep
    request contexts, to keep logs readable.
    """

    def __init__(self, max_string_length: int = 500, max_list_items: int = 10):
        """Initialize pretty formatter.

        Args:
            max_string_length: Maximum length for string values before truncation
            max_list_items: Maximum items in lists before truncation
        """
        super().__init__()
        self.max_string_length = max_string_length
        self.max_list_items = max_list_items

    def _truncate_value(self, value: Any, depth: int = 0) -> Any:
        """Recursively truncate large values for readability.

        Query parameter pairs (tuples) are rendered as lists and raw bytes
        by their size.

        Args:
            value: Value to truncate
            depth: Current nesting depth

        Returns:
            Truncated value
        """
        if depth > 3:
            return "..."

        if isinstance(value, str):
            if len(value) > self.max_string_length:
                return value[:self.max_string_length] + f"... (truncated, {len(value)} chars)"
            return value
        elif isinstance(value, (bytes, bytearray)):
            return _json_default(value)
        elif isinstance(value, dict):
            truncated = {}
            for k, v in list(value.items())[:20]:
                truncated[k] = self._truncate_value(v, depth + 1)
            if len(value) > 20:
                truncated["..."] = f"(truncated, {len(value)} keys)"
            return truncated
        elif isinstance(value, (list, tuple)):
            truncated = [self._truncate_value(item, depth + 1) for item in value[:self.max_list_items]]
            if len(value) > self.max_list_items:
                truncated.append(f"... (truncated, {len(value)} items)")
            return truncated
        else:
            return value

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as pretty JSON.

        Every ``extra`` field passed to the logger is included next to the
        standard timestamp, level, logger and message fields.
        """
        log_data = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for key, value in record.__dict__.items():
            if key not in _RESERVED_RECORD_ATTRS:
                log_data[key] = self._truncate_value(value)

        if record.exc_info:
            log_data["exc_info"] = self.formatException(record.exc_info)

        try:
            return json.dumps(log_data, indent=2, ensure_ascii=False, default=_json_default)
        except (TypeError, ValueError):
            return json.dumps({"message": str(record.getMessage())}, indent=2)


def _is_sensitive_key(key: str) -> bool:
    """Check if a key is sensitive (case-insensitive)."""
    key_lower = key.lower()
    return any(sensitive_key in key_lower for sensitive_key in SENSITIVE_KEYS)


def _header_text(value: Union[str, bytes]) -> str:
    if isinstance(value, bytes):
        return value.decode("latin-1")
    return value


def sanitize_headers(headers: Mapping[str, HeaderValue]) -> Dict[str, Union[str, List[str]]]:
    """Sanitize HTTP headers by filtering sensitive headers.

    Args:
        headers: HTTP headers mapping (values may be lists for repeated headers)

    Returns:
        Sanitized headers dictionary (values rendered as text)
    """
    sanitized: Dict[str, Union[str, List[str]]] = {}
    for key, value in headers.items():
        key_lower = key.lower()
        if any(
            key_lower.startswith(prefix) for prefix in SENSITIVE_HEADER_PREFIXES
        ) or _is_sensitive_key(key):
            sanitized[key] = REDACTED
        elif isinstance(value, list):
            sanitized[key] = [_header_text(item) for item in value]
        else:
            sanitized[key] = _header_text(value)
    return sanitized


def sanitize_query_params(
    query_params: Iterable[Tuple[str, str]],
) -> List[Tuple[str, str]]:
    """Redact the values of sensitive query parameters (``?token=...``).

    Order and repeated keys are preserved.
    """
    return [
        (key, REDACTED if _is_sensitive_key(key) else value)
        for key, value in query_params
    ]


def sanitize_uri(uri: str) -> str:
    """Redact the values of sensitive query parameters in an encoded URI.

    The encoding of everything that is kept is left untouched.

    Args:
        uri: Absolute or relative request URI

    Returns:
        The URI with sensitive query values replaced by [REDACTED]
    """
    base, sep, query = uri.partition("?")
    if not sep:
        return uri

    pairs = []
    for pair in query.split("&"):
        key, eq, _ = pair.partition("=")
        if eq and _is_sensitive_key(unquote_plus(key)):
            pair = f"{key}={REDACTED}"
        pairs.append(pair)
    return f"{base}?{'&'.join(pairs)}"


def format_invocation_log(
    request_id: str,
    http_method: str,
    request_uri: str,
    headers: Mapping[str, str],
    body_size: int,
    lambda_context: Optional[Any] = None,
) -> Dict[str, Any]:
    """Format structured log entry for an incoming invocation.

    Args:
        request_id: Request ID (from Lambda context)
        http_method: HTTP method (GET, POST, etc.)
        request_uri: Reconstructed request URI (sensitive query values are redacted)
        headers: HTTP headers
        body_size: Request body size in bytes
        lambda_context: Optional Lambda context for metadata

    Returns:
        Dictionary with structured log data
    """
    log_data = {
        "request_id": request_id,
        "http_method": http_method,
        "request_uri": sanitize_uri(request_uri),
        "request_headers": sanitize_headers(headers),
        "request_body_size": body_size,
    }

    if lambda_context:
        log_data["lambda_function_name"] = getattr(
            lambda_context, "function_name", None
        )
        log_data["lambda_memory_limit"] = getattr(
            lambda_context, "memory_limit_in_mb", None
        )
        log_data["lambda_remaining_time_ms"] = getattr(
            lambda_context, "get_remaining_time_in_millis", lambda: None
        )()

    return log_data


def format_response_log(
    request_id: str,
    status_code: int,
    headers: Mapping[str, HeaderValue],
    body: Union[str, bytes],
    duration_ms: float,
    success: bool = True,
) -> Dict[str, Any]:
    """Format structured log entry for an invocation response.

    Args:
        request_id: Request ID
        status_code: HTTP status code
        headers: Response headers
        body: Encoded response body
        duration_ms: Processing duration in milliseconds
        success: False when the response came from the error fallback

    Returns:
        Dictionary with structured log data
    """
    return {
        "request_id": request_id,
        "response_status": status_code,
        "response_headers": sanitize_headers(headers),
        "body_encoding": "binary" if isinstance(body, bytes) else "text",
        "response_body_size": len(body),
        "duration_ms": round(duration_ms, 2),
        "success": success,
    }
