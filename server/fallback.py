"""Best-effort responses for failed service calls."""

import logging

from core.body import BytesBody
from core.errors import InternalServiceError, as_service_error
from core.interfaces import ServiceResponse
from server.bridge import BlockingBridge
from server.materializer import materialize

logger = logging.getLogger(__name__)


def synthesize_error_response(bridge: BlockingBridge, error: BaseException) -> ServiceResponse:
    """Render a service failure into a response with a materialized body.

    If the error cannot be rendered, a generic 500 response is used instead.
    If the rendered body cannot be drained, the secondary failure is logged
    and the body is replaced with an empty one; status and headers of the
    rendered error response are kept.

    Args:
        bridge: Adapter bridge used to drain the error body
        error: Exception raised by the service call

    Returns:
        Error response whose body is a BytesBody
    """
    try:
        response = as_service_error(error).render_response()
    except Exception as e:
        logger.warning(
            f"Failed to render the error response, using a generic one: {e}",
            extra={"error_type": type(e).__name__},
            exc_info=True,
        )
        response = InternalServiceError(error).render_response()

    logger.debug(
        f"Rendered error response for {type(error).__name__}",
        extra={"status_code": response.status},
    )

    try:
        body = materialize(bridge, response.body)
    except Exception as e:
        logger.warning(
            f"Failed to extract the body of the error response, ignoring: {e}",
            extra={"status_code": response.status, "error_type": type(e).__name__},
            exc_info=True,
        )
        body = b""

    return ServiceResponse(
        status=response.status,
        headers=response.headers,
        body=BytesBody(body),
    )
