"""AWS Lambda adapter for lambda-http-bridge.

This adapter transforms AWS Lambda events (API Gateway REST and HTTP APIs,
Lambda Function URLs and Application Load Balancer targets) into
InvocationEvents, runs them through a LambdaHandler, and transforms the
InvocationResponse back into the Lambda response format.
"""

import base64
import binascii
import json
import logging
from enum import Enum
from http import HTTPStatus
from typing import Any, Dict, List, Mapping, Optional, Protocol, Tuple, Union
from urllib.parse import parse_qsl, unquote_plus

from core.errors import EventParseError
from core.interfaces import InvocationEvent, InvocationResponse
from core.logging_utils import configure_json_logging
from core.validators import ConfigurationError, load_app_factory, load_config
from server.lambda_server import LambdaHandler, LambdaHttpServer


class LambdaContext(Protocol):
    """Protocol for AWS Lambda context object.

    This defines the expected interface for Lambda context objects,
    which provide runtime information about the Lambda execution environment.
    """

    aws_request_id: str
    function_name: Optional[str]
    memory_limit_in_mb: Optional[int]


logger = logging.getLogger(__name__)


class EventFormat(str, Enum):
    """Lambda HTTP event payload formats."""

    API_GATEWAY_V1 = "api_gateway_v1"
    API_GATEWAY_V2 = "api_gateway_v2"
    ALB = "alb"


def detect_event_format(event: Mapping[str, Any]) -> EventFormat:
    """Identify the payload format of a Lambda HTTP event."""
    request_context = event.get("requestContext") or {}
    if event.get("version") == "2.0" or "http" in request_context:
        return EventFormat.API_GATEWAY_V2
    if "elb" in request_context:
        return EventFormat.ALB
    return EventFormat.API_GATEWAY_V1


def _extract_headers(event: Mapping[str, Any]) -> Dict[str, str]:
    # Header names are case-insensitive; every event source is normalized to
    # lowercase so services see the same keys regardless of the trigger.
    multi_value = event.get("multiValueHeaders")
    if isinstance(multi_value, dict) and multi_value:
        return {
            name.lower(): ", ".join(str(v) for v in (values or []))
            for name, values in multi_value.items()
        }

    headers = event.get("headers")
    if not isinstance(headers, dict):
        return {}
    return {name.lower(): str(value) for name, value in headers.items() if value is not None}


def _extract_query_params(
    event: Mapping[str, Any], event_format: EventFormat
) -> List[Tuple[str, str]]:
    if event_format == EventFormat.API_GATEWAY_V2:
        raw_query = event.get("rawQueryString")
        if raw_query:
            return parse_qsl(raw_query, keep_blank_values=True)
        return [
            (key, str(value))
            for key, value in (event.get("queryStringParameters") or {}).items()
        ]

    # ALB forwards query parameters form-encoded and without decoding them.
    decode = unquote_plus if event_format == EventFormat.ALB else (lambda s: s)

    multi_value = event.get("multiValueQueryStringParameters")
    if isinstance(multi_value, dict) and multi_value:
        return [
            (decode(key), decode(str(value)))
            for key, values in multi_value.items()
            for value in (values or [])
        ]
    return [
        (decode(key), decode(str(value)))
        for key, value in (event.get("queryStringParameters") or {}).items()
        if value is not None
    ]


def _extract_body(event: Mapping[str, Any]) -> Optional[Any]:
    body = event.get("body")
    if body is None or body == "":
        return None

    if isinstance(body, dict):
        return json.dumps(body)

    if event.get("isBase64Encoded", False):
        try:
            return base64.b64decode(body, validate=True)
        except (binascii.Error, ValueError, TypeError) as e:
            raise EventParseError(f"Invalid base64-encoded body: {e}") from e

    if not isinstance(body, str):
        raise EventParseError(f"Unsupported body type: {type(body).__name__}")
    return body


def parse_event(event: Mapping[str, Any]) -> InvocationEvent:
    """Transform a Lambda HTTP event into an InvocationEvent.

    Args:
        event: Raw Lambda event

    Returns:
        InvocationEvent (scheme or authority may be None when the event
        carries no Host header and no domain name)

    Raises:
        EventParseError: If the event is not a dictionary or its body cannot
            be decoded
    """
    if not isinstance(event, Mapping):
        raise EventParseError(f"Lambda event must be a JSON object, got {type(event).__name__}")

    event_format = detect_event_format(event)
    request_context = event.get("requestContext") or {}
    headers = _extract_headers(event)

    if event_format == EventFormat.API_GATEWAY_V2:
        http_context = request_context.get("http") or {}
        method = http_context.get("method") or "GET"
        path = event.get("rawPath") or http_context.get("path") or "/"
        version = http_context.get("protocol") or "HTTP/1.1"
        cookies = event.get("cookies")
        if cookies:
            headers["cookie"] = "; ".join(cookies)
    else:
        method = event.get("httpMethod") or "GET"
        path = event.get("path") or "/"
        version = request_context.get("protocol") or "HTTP/1.1"

    extensions = {
        key: event[key]
        for key in ("pathParameters", "stageVariables", "requestContext")
        if event.get(key)
    }

    return InvocationEvent(
        method=method.upper(),
        version=version,
        scheme=headers.get("x-forwarded-proto", "https").split(",")[0].strip(),
        authority=headers.get("host") or request_context.get("domainName"),
        path=path,
        query_params=_extract_query_params(event, event_format),
        headers=headers,
        body=_extract_body(event),
        extensions=extensions,
    )


def _render_headers(
    headers: Mapping[str, Union[str, List[str]]],
    event_format: EventFormat,
    multi_value_headers: bool,
) -> Dict[str, Any]:
    if multi_value_headers and event_format != EventFormat.API_GATEWAY_V2:
        return {
            "multiValueHeaders": {
                name: list(value) if isinstance(value, list) else [value]
                for name, value in headers.items()
            }
        }

    single: Dict[str, str] = {}
    repeated: Dict[str, List[str]] = {}
    for name, value in headers.items():
        if isinstance(value, list):
            repeated[name] = list(value)
        else:
            single[name] = value

    rendered: Dict[str, Any] = {"headers": single}
    if event_format == EventFormat.API_GATEWAY_V2:
        cookies = []
        for name, values in repeated.items():
            if name.lower() == "set-cookie":
                cookies.extend(values)
            else:
                single[name] = ", ".join(values)
        if cookies:
            rendered["cookies"] = cookies
    elif event_format == EventFormat.API_GATEWAY_V1:
        # REST APIs merge headers and multiValueHeaders
        if repeated:
            rendered["multiValueHeaders"] = repeated
    else:
        # An ALB target group without multi-value headers takes one value per name
        for name, values in repeated.items():
            single[name] = ", ".join(values)
    return rendered


def render_response(
    response: InvocationResponse,
    event_format: EventFormat = EventFormat.API_GATEWAY_V1,
    multi_value_headers: bool = False,
) -> Dict[str, Any]:
    """Transform an InvocationResponse into the Lambda response format.

    Binary bodies are base64-encoded and flagged with ``isBase64Encoded``.
    Repeated headers go to ``multiValueHeaders`` (REST APIs) or ``cookies``
    (HTTP APIs, for Set-Cookie); otherwise their values are comma-joined.

    Args:
        response: Invocation response
        event_format: Format of the event being answered
        multi_value_headers: Answer with ``multiValueHeaders`` (ALB and REST
            API events that used multi-value headers)

    Returns:
        Lambda response dictionary
    """
    if response.is_binary:
        body = base64.b64encode(response.body).decode("ascii")
    else:
        body = response.body

    lambda_response: Dict[str, Any] = {
        "statusCode": response.status_code,
        "body": body,
        "isBase64Encoded": response.is_binary,
    }

    lambda_response.update(
        _render_headers(response.headers, event_format, multi_value_headers)
    )

    if event_format == EventFormat.ALB:
        try:
            phrase = HTTPStatus(response.status_code).phrase
        except ValueError:
            phrase = ""
        lambda_response["statusDescription"] = f"{response.status_code} {phrase}".strip()

    return lambda_response


class AwsLambdaAdapter:
    """Callable Lambda entry point around a LambdaHandler."""

    def __init__(self, handler: LambdaHandler) -> None:
        self.handler = handler

    def __call__(self, event: Dict[str, Any], context: Optional[LambdaContext]) -> Dict[str, Any]:
        """Handle one Lambda invocation.

        Args:
            event: Lambda event (HTTP request from API Gateway, Function URL or ALB)
            context: Lambda context object

        Returns:
            HTTP response dictionary with statusCode, headers, and body

        Raises:
            HandlerError: If the invocation cannot produce a response; the
                Lambda runtime reports the invocation as failed
        """
        request_id = context.aws_request_id if context else "unknown"

        try:
            event_format = detect_event_format(event) if isinstance(event, Mapping) else None
            invocation_event = parse_event(event)
            response = self.handler.handle(
                invocation_event, request_id=request_id, lambda_context=context
            )
        except Exception as e:
            logger.error(
                f"Error in Lambda handler: {e}",
                extra={
                    "request_id": request_id,
                    "error_type": type(e).__name__,
                },
                exc_info=True,
            )
            raise

        return render_response(
            response,
            event_format=event_format,
            multi_value_headers=bool(event.get("multiValueHeaders")),
        )


# Module-level handler instance for Lambda warm starts
_handler: Optional[AwsLambdaAdapter] = None


def get_handler() -> AwsLambdaAdapter:
    """Get or create the Lambda adapter from configuration.

    The service is created on the first invocation (cold start) and reused
    for later invocations of the same container (warm starts).

    Raises:
        ConfigurationError: If the configuration is missing or invalid
        AdapterStartupError: If the service cannot be initialized
    """
    global _handler

    if _handler is not None:
        return _handler

    try:
        config = load_config()
    except (ConfigurationError, FileNotFoundError) as e:
        logger.error(f"Configuration error: {e}")
        raise

    configure_json_logging(level=config.logging.level, pretty=config.logging.pretty)

    app_factory = load_app_factory(config.app)
    handler = (
        LambdaHttpServer(app_factory)
        .binary_media_types(config.binary_media_types)
        .start(config.server)
    )
    _handler = AwsLambdaAdapter(handler)
    logger.info("Created new Lambda handler", extra={"app": config.app})

    return _handler


def lambda_handler(event: Dict[str, Any], context: Optional[LambdaContext]) -> Dict[str, Any]:
    """AWS Lambda handler function.

    Configure the function's handler as
    ``server.adapters.aws_lambda.lambda_handler``.
    """
    return get_handler()(event, context)
