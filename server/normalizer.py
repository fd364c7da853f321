"""Invocation event to service request normalization.

The query string is rebuilt from the decoded query parameters rather than
forwarded verbatim. Every key and value is percent-encoded with a strict set
that also escapes ``%`` and the query delimiters, so the result is fully
escaped whatever encoding style the caller originally used.
"""

import logging
import string
from typing import Iterable, Tuple
from urllib.parse import quote

from core.body import Payload
from core.errors import MalformedOriginError
from core.interfaces import InvocationEvent, ServiceRequest
from core.logging_utils import sanitize_query_params, sanitize_uri

logger = logging.getLogger(__name__)

# Printable ASCII left unescaped. Everything the WHATWG query set escapes
# (controls, space, '"', '#', '<', '>', DEL, non-ASCII) is escaped, plus '%'
# and the delimiters '&', '=', '+' and ';'.
_ESCAPED_PUNCTUATION = set('"#<>%&=+;')
URL_ENCODE_SAFE = "".join(
    ch for ch in string.punctuation if ch not in _ESCAPED_PUNCTUATION
)

_PATH_DELIMITERS = str.maketrans({"?": "%3F", "#": "%23"})


def percent_encode(value: str) -> str:
    """Percent-encode ``value`` (as UTF-8) with the strict query set."""
    return quote(value, safe=URL_ENCODE_SAFE, encoding="utf-8", errors="strict")


def encode_query(query_params: Iterable[Tuple[str, str]]) -> str:
    """Rebuild an encoded query string, including the leading ``?``.

    Returns an empty string when there are no parameters.
    """
    parts = []
    for i, (key, value) in enumerate(query_params):
        parts.append(
            f"{'?' if i == 0 else '&'}{percent_encode(key)}={percent_encode(value)}"
        )
    return "".join(parts)


def build_uri(event: InvocationEvent) -> str:
    """Reconstruct the absolute request URI of ``event``.

    Raises:
        MalformedOriginError: If the event has no scheme or no authority
    """
    if not event.scheme or not event.authority:
        raise MalformedOriginError(event.scheme, event.authority)

    path = event.path or "/"
    if not path.startswith("/"):
        path = "/" + path
    # Paths arrive decoded; a literal '?' or '#' must not start the query or fragment.
    path = path.translate(_PATH_DELIMITERS)

    return f"{event.scheme}://{event.authority}{path}{encode_query(event.query_params)}"


def _take_payload(event: InvocationEvent) -> Payload:
    body = event.body
    event.body = None

    if body is None:
        return Payload.empty()
    if isinstance(body, str):
        return Payload.from_bytes(body.encode("utf-8"))
    return Payload.from_bytes(body)


def normalize_event(event: InvocationEvent) -> ServiceRequest:
    """Convert an invocation event into the request handed to the service.

    The event's body and headers are moved into the request: afterwards the
    event body is None and its header mapping is empty.

    Args:
        event: Incoming invocation event

    Returns:
        Normalized service request

    Raises:
        MalformedOriginError: If the event has no scheme or no authority
    """
    uri = build_uri(event)

    logger.debug(
        "Reconstructed request URI",
        extra={
            "original_path": event.path,
            "query_params": sanitize_query_params(event.query_params),
            "request_uri": sanitize_uri(uri),
        },
    )

    if event.extensions:
        # Path parameters, stage variables and request context stay behind.
        logger.debug(
            "Extension data is not forwarded to the service",
            extra={"extension_keys": sorted(event.extensions)},
        )

    request = ServiceRequest(uri=uri, payload=_take_payload(event))
    request.method = event.method
    request.version = event.version
    request.headers, event.headers = event.headers, {}

    return request
