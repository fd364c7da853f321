"""Error taxonomy for lambda-http-bridge.

Errors fall into three groups:

- Startup errors abort adapter construction entirely.
- Handler errors fail a single invocation and are raised to the Lambda
  runtime, which marks that invocation as failed.
- Service errors are raised by the wrapped service. They never reach the
  runtime; the adapter renders them into a fallback response.
"""

from typing import Any, Dict, Optional

from core.interfaces import ServiceResponse


class BridgeError(Exception):
    """Base class for all lambda-http-bridge errors."""

    pass


class AdapterStartupError(BridgeError):
    """Raised when the event loop or the wrapped service cannot be created."""

    pass


class HandlerError(BridgeError):
    """Raised when a single invocation cannot produce a response."""

    pass


class EventParseError(HandlerError):
    """Raised when a raw Lambda event cannot be turned into an InvocationEvent."""

    pass


class MalformedOriginError(HandlerError):
    """Raised when an invocation event has no scheme or no authority."""

    def __init__(self, scheme: Optional[str], authority: Optional[str]) -> None:
        missing = [
            name
            for name, value in (("scheme", scheme), ("authority", authority))
            if not value
        ]
        super().__init__(
            f"Invocation event has no valid origin (missing {' and '.join(missing)})"
        )
        self.scheme = scheme
        self.authority = authority


class BodyMaterializationError(HandlerError):
    """Raised when a successful response body cannot be drained."""

    pass


class ResponseEncodingError(HandlerError):
    """Raised when a body classified as text is not valid UTF-8."""

    def __init__(self, content_type: str, reason: UnicodeDecodeError) -> None:
        super().__init__(
            f"Response body for content type {content_type!r} is not valid UTF-8: {reason}"
        )
        self.content_type = content_type
        self.reason = reason


class ServiceError(BridgeError):
    """Failure reported by the wrapped service.

    A service error knows how to render itself into a response. Subclasses
    override ``status_code``, ``render_headers`` or ``render_body`` to shape
    the error page.
    """

    status_code: int = 500

    def __init__(
        self,
        message: str = "",
        status_code: Optional[int] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.headers = headers

    def render_headers(self) -> Dict[str, str]:
        if self.headers is not None:
            return dict(self.headers)
        return {"content-type": "text/plain; charset=utf-8"}

    def render_body(self) -> Any:
        """Return the error body (bytes, str, None or a body producer)."""
        return self.message

    def render_response(self) -> ServiceResponse:
        """Render this error into a response."""
        return ServiceResponse(
            status=self.status_code,
            headers=self.render_headers(),
            body=self.render_body(),
        )


class InternalServiceError(ServiceError):
    """Wraps an arbitrary exception raised by the wrapped service."""

    status_code = 500

    def __init__(self, cause: BaseException) -> None:
        super().__init__(str(cause) or type(cause).__name__)
        self.cause = cause


def as_service_error(exc: BaseException) -> ServiceError:
    """Convert any service failure into a renderable ServiceError."""
    if isinstance(exc, ServiceError):
        return exc
    return InternalServiceError(exc)
