"""Lambda HTTP server: drives an asynchronous service from Lambda invocations.

``LambdaHttpServer`` is the configuration surface. ``start()`` creates the
adapter's event loop and the wrapped service once and returns a
``LambdaHandler`` that serves invocations one at a time:

    Received -> Normalizing -> Calling
        -> Succeeded -> Materializing -> Encoding -> Replying
        -> Failed -> Rendering -> Materializing (best effort) -> Encoding -> Replying

Each invocation is attempted exactly once and always ends in either one
response or one raised HandlerError.
"""

import logging
import time
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple, Union

from core.errors import AdapterStartupError, BodyMaterializationError
from core.interfaces import (
    HeaderValue,
    InvocationEvent,
    InvocationResponse,
    Service,
    ServiceConfig,
    ServiceFactory,
    ServiceRequest,
    ServiceResponse,
)
from core.logging_utils import format_invocation_log, format_response_log
from server.bridge import BlockingBridge
from server.encoder import BinaryMediaTypeFn, binary_media_types_predicate, encode_body, never_binary
from server.fallback import synthesize_error_response
from server.materializer import materialize
from server.normalizer import normalize_event

logger = logging.getLogger(__name__)

AppFactory = Callable[[], Union[ServiceFactory, Service]]


def _header_text(value: HeaderValue) -> Union[str, List[str]]:
    if isinstance(value, list):
        return [_header_text(item) for item in value]
    if isinstance(value, bytes):
        return value.decode("latin-1")
    return value


class LambdaHandler:
    """Handles invocations with an initialized service, strictly in sequence."""

    def __init__(
        self,
        bridge: BlockingBridge,
        service: Service,
        binary_media_type_fn: BinaryMediaTypeFn,
    ) -> None:
        self.bridge = bridge
        self.service = service
        self.binary_media_type_fn = binary_media_type_fn

    def _call_service(self, request: ServiceRequest) -> Tuple[ServiceResponse, bool]:
        try:
            response = self.bridge.run(self.service.call(request))
        except Exception as e:
            logger.debug(
                f"Got a handler error ({type(e).__name__}: {e}), generating an error response"
            )
            return synthesize_error_response(self.bridge, e), False

        return response, True

    def handle(
        self,
        event: InvocationEvent,
        request_id: str = "unknown",
        lambda_context: Optional[Any] = None,
    ) -> InvocationResponse:
        """Serve one invocation.

        Args:
            event: Invocation event (its headers and body are consumed)
            request_id: Request ID for logging
            lambda_context: Optional Lambda context for logging

        Returns:
            The invocation response, from the service or the error fallback

        Raises:
            MalformedOriginError: If the event has no scheme or authority
            BodyMaterializationError: If a successful response body fails
            ResponseEncodingError: If a text-classified body is not UTF-8
        """
        start_time = time.perf_counter()

        request = normalize_event(event)

        logger.info(
            "Incoming invocation",
            extra=format_invocation_log(
                request_id=request_id,
                http_method=request.method,
                request_uri=request.uri,
                headers=request.headers,
                body_size=len(request.payload),
                lambda_context=lambda_context,
            ),
        )

        response, success = self._call_service(request)

        try:
            body = materialize(self.bridge, response.body)
        except Exception as e:
            logger.debug("Extracting the response body failed, treating it as a handler error")
            raise BodyMaterializationError(f"Failed to read the response body: {e}") from e

        encoded_body = encode_body(body, response.headers, self.binary_media_type_fn)
        headers: Dict[str, Union[str, List[str]]] = {
            name: _header_text(value) for name, value in response.headers.items()
        }

        invocation_response = InvocationResponse(
            status_code=response.status,
            headers=headers,
            body=encoded_body,
        )

        duration_ms = (time.perf_counter() - start_time) * 1000
        logger.info(
            "Invocation completed" if success else "Invocation completed with error response",
            extra=format_response_log(
                request_id=request_id,
                status_code=invocation_response.status_code,
                headers=headers,
                body=encoded_body,
                duration_ms=duration_ms,
                success=success,
            ),
        )

        return invocation_response

    def close(self) -> None:
        """Close the service and the adapter event loop."""
        if self.bridge.closed:
            return
        try:
            self.bridge.run(self.service.close())
        finally:
            self.bridge.close()

    def __enter__(self) -> "LambdaHandler":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()


class LambdaHttpServer:
    """Connects an asynchronous HTTP service to AWS Lambda invocations.

    Example:
        handler = (
            LambdaHttpServer(lambda: CallableServiceFactory(app))
            .binary_media_types(["image/png", "application/octet-stream"])
            .start()
        )
    """

    def __init__(self, app_factory: AppFactory) -> None:
        """Construct a server.

        Args:
            app_factory: Zero-argument callable returning the ServiceFactory
                (or an already created Service) to wrap. Called once, by
                ``start()``.
        """
        self.factory = app_factory
        self._binary_media_type_fn: BinaryMediaTypeFn = never_binary

    def binary_media_type_fn(self, value: BinaryMediaTypeFn) -> "LambdaHttpServer":
        """Set the predicate deciding which responses are sent as binary.

        The predicate receives the response content type (or an empty string
        when ``content-type`` is missing or invalid) and returns True when the
        body must be base64-encoded. When it returns False and the body is
        not valid UTF-8, the invocation fails with ResponseEncodingError.

        The default always returns False.
        """
        self._binary_media_type_fn = value
        return self

    def binary_media_types(self, value: Iterable[str]) -> "LambdaHttpServer":
        """Set the content types transmitted as binary payloads.

        Shorthand for ``binary_media_type_fn`` with an exact-match predicate.
        """
        return self.binary_media_type_fn(binary_media_types_predicate(value))

    def _create_service(self, bridge: BlockingBridge, config: ServiceConfig) -> Service:
        target = self.factory()
        if isinstance(target, Service):
            return target
        if isinstance(target, ServiceFactory):
            return bridge.run(target.new_service(config))
        raise TypeError(
            f"app_factory must return a ServiceFactory or a Service, got {type(target).__name__}"
        )

    def start(self, config: Optional[ServiceConfig] = None) -> LambdaHandler:
        """Create the event loop and the service, and return the handler.

        Args:
            config: Configuration value the service is bound to

        Returns:
            LambdaHandler ready to serve invocations

        Raises:
            AdapterStartupError: If the loop or the service cannot be created
        """
        config = config or ServiceConfig()
        bridge = BlockingBridge()

        try:
            service = self._create_service(bridge, config)
        except Exception as e:
            bridge.close()
            logger.error(f"Failed to initialize service: {e}", exc_info=True)
            raise AdapterStartupError(f"Failed to initialize service: {e}") from e

        logger.info(
            "Lambda HTTP server started",
            extra={"service": type(service).__name__, "local_addr": config.local_addr},
        )
        return LambdaHandler(bridge, service, self._binary_media_type_fn)
