"""ASGI application support.

Wraps an ASGI 3 application so it can be driven through the service
interface. The application runs as a task on the adapter's event loop; its
response body is exposed lazily as a StreamBody that yields the chunks the
application sends.
"""

import asyncio
import logging
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, MutableMapping, Tuple
from urllib.parse import unquote, urlsplit

from core.body import StreamBody
from core.interfaces import (
    MULTI_VALUE_HEADERS,
    HeaderValue,
    Service,
    ServiceConfig,
    ServiceFactory,
    ServiceRequest,
    ServiceResponse,
)

logger = logging.getLogger(__name__)

Message = MutableMapping[str, Any]
ASGIApp = Callable[
    [Dict[str, Any], Callable[[], Awaitable[Message]], Callable[[Message], Awaitable[None]]],
    Awaitable[None],
]

DEFAULT_PORTS = {"http": 80, "https": 443}

_END = object()


def _encode_header_value(value: str) -> bytes:
    try:
        return value.encode("latin-1")
    except UnicodeEncodeError:
        return value.encode("utf-8")


def _split_authority(authority: str, scheme: str) -> Tuple[str, int]:
    default_port = DEFAULT_PORTS.get(scheme, 80)
    if authority.startswith("["):
        host, _, rest = authority.partition("]")
        port = rest[1:] if rest.startswith(":") else ""
        return host + "]", int(port) if port.isdigit() else default_port
    host, sep, port = authority.rpartition(":")
    if sep and port.isdigit():
        return host, int(port)
    return authority, default_port


def build_scope(request: ServiceRequest) -> Dict[str, Any]:
    """Build an ASGI HTTP connection scope from a service request."""
    parts = urlsplit(request.uri)
    scheme = parts.scheme or "http"
    raw_path = parts.path or "/"
    http_version = request.version.upper().replace("HTTP/", "") or "1.1"

    return {
        "type": "http",
        "asgi": {"version": "3.0", "spec_version": "2.3"},
        "http_version": http_version,
        "method": request.method.upper(),
        "scheme": scheme,
        "path": unquote(raw_path),
        "raw_path": raw_path.encode("latin-1", errors="replace"),
        "query_string": parts.query.encode("latin-1", errors="replace"),
        "root_path": "",
        "headers": [
            (name.lower().encode("latin-1"), _encode_header_value(value))
            for name, value in request.headers.items()
        ],
        "server": _split_authority(parts.netloc, scheme),
        "client": None,
    }


def _decode_headers(raw_headers: List[Tuple[bytes, bytes]]) -> Dict[str, HeaderValue]:
    headers: Dict[str, HeaderValue] = {}
    for raw_name, raw_value in raw_headers:
        name = raw_name.decode("latin-1").lower()
        if name in MULTI_VALUE_HEADERS:
            # Cookie attributes such as Expires contain commas; never join them.
            values = headers.setdefault(name, [])
            values.append(raw_value.decode("latin-1"))
            continue
        try:
            value: HeaderValue = raw_value.decode("ascii")
        except UnicodeDecodeError:
            value = bytes(raw_value)
        if name in headers and isinstance(value, str) and isinstance(headers[name], str):
            headers[name] = f"{headers[name]}, {value}"
        else:
            headers[name] = value
    return headers


class AsgiService(Service):
    """Service that forwards each request to an ASGI application."""

    def __init__(self, app: ASGIApp, config: ServiceConfig) -> None:
        self.app = app
        self.config = config

    async def call(self, request: ServiceRequest) -> ServiceResponse:
        loop = asyncio.get_running_loop()
        scope = build_scope(request)
        started: asyncio.Future = loop.create_future()
        chunks: asyncio.Queue = asyncio.Queue()
        response_complete = asyncio.Event()
        payload = request.payload

        request_complete = False

        async def receive() -> Message:
            nonlocal request_complete
            if request_complete:
                await response_complete.wait()
                return {"type": "http.disconnect"}
            body = await payload.readany()
            request_complete = payload.at_eof
            return {"type": "http.request", "body": body, "more_body": not request_complete}

        async def send(message: Message) -> None:
            if message["type"] == "http.response.start":
                if started.done():
                    raise RuntimeError("ASGI application sent http.response.start twice")
                started.set_result(message)
            elif message["type"] == "http.response.body":
                if not started.done():
                    raise RuntimeError("ASGI application sent a body before http.response.start")
                body = message.get("body", b"")
                if body:
                    chunks.put_nowait(bytes(body))
                if not message.get("more_body", False):
                    response_complete.set()
                    chunks.put_nowait(_END)

        async def run_app() -> None:
            try:
                await self.app(scope, receive, send)
            except Exception as e:
                if not started.done():
                    started.set_exception(e)
                else:
                    logger.debug(f"ASGI application failed mid-response: {e}")
                    chunks.put_nowait(e)
            else:
                if not started.done():
                    started.set_exception(
                        RuntimeError("ASGI application returned without starting a response")
                    )
                elif not response_complete.is_set():
                    chunks.put_nowait(_END)
            finally:
                response_complete.set()

        task = loop.create_task(run_app())
        message = await started

        return ServiceResponse(
            status=message["status"],
            headers=_decode_headers(message.get("headers", [])),
            body=StreamBody(self._drain(chunks, task)),
        )

    @staticmethod
    async def _drain(chunks: asyncio.Queue, task: "asyncio.Task[None]") -> AsyncIterator[bytes]:
        while True:
            item = await chunks.get()
            if item is _END:
                break
            if isinstance(item, BaseException):
                raise item
            yield item
        await task


class AsgiServiceFactory(ServiceFactory):
    """Factory creating an AsgiService for an ASGI application."""

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def new_service(self, config: ServiceConfig) -> Service:
        logger.info(
            "Wrapping ASGI application",
            extra={"app": repr(self.app), "local_addr": config.local_addr},
        )
        return AsgiService(self.app, config)
