"""Binary-vs-text encoding of materialized response bodies."""

import logging
from typing import Callable, Iterable, Mapping, Union

from core.errors import ResponseEncodingError
from core.interfaces import HeaderValue

logger = logging.getLogger(__name__)

BinaryMediaTypeFn = Callable[[str], bool]


def never_binary(content_type: str) -> bool:
    """Default classification: every response is transmitted as text."""
    return False


def binary_media_types_predicate(media_types: Iterable[str]) -> BinaryMediaTypeFn:
    """Build a predicate matching the exact content types in ``media_types``."""
    types = list(media_types)

    def is_binary(content_type: str) -> bool:
        return any(content_type == media_type for media_type in types)

    return is_binary


def _is_visible_ascii(value: str) -> bool:
    return all(ch == "\t" or 32 <= ord(ch) < 127 for ch in value)


def get_content_type(headers: Mapping[str, HeaderValue]) -> str:
    """Return the content-type header value, or "" if missing or not text.

    The lookup is case-insensitive. Values that are not visible ASCII
    (including undecodable bytes) count as invalid.
    """
    value = None
    for name, candidate in headers.items():
        if name.lower() == "content-type":
            value = candidate
            break

    if value is None:
        return ""
    if isinstance(value, bytes):
        try:
            value = value.decode("ascii")
        except UnicodeDecodeError:
            return ""
    if not isinstance(value, str) or not _is_visible_ascii(value):
        return ""
    return value


def encode_body(
    body: bytes,
    headers: Mapping[str, HeaderValue],
    binary_media_type_fn: BinaryMediaTypeFn,
) -> Union[str, bytes]:
    """Encode a materialized body for the invocation response.

    Args:
        body: Materialized response body
        headers: Response headers
        binary_media_type_fn: Classification predicate, called exactly once

    Returns:
        ``bytes`` unchanged when classified as binary, otherwise the body
        decoded as UTF-8 text

    Raises:
        ResponseEncodingError: If a text-classified body is not valid UTF-8
    """
    content_type = get_content_type(headers)
    is_binary = bool(binary_media_type_fn(content_type))

    logger.debug(
        f"Encoding the response body as {'binary' if is_binary else 'text'}",
        extra={"content_type": content_type, "body_size": len(body)},
    )

    if is_binary:
        return bytes(body)

    try:
        return body.decode("utf-8")
    except UnicodeDecodeError as e:
        raise ResponseEncodingError(content_type, e) from e
