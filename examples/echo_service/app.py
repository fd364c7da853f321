"""Example service for lambda-http-bridge.

Point the configuration at this factory to try the bridge locally:

    app: "examples.echo_service.app:create_factory"
    binary_media_types:
      - "application/octet-stream"

Routes:
    GET  /health        -> {"status": "ok"}
    POST /echo          -> the request body, with the request content type
    GET  /stream        -> a chunked text body
    anything else       -> 404 rendered by the bridge's error fallback
"""

import json
import logging
from typing import AsyncIterator
from urllib.parse import urlsplit

from core.errors import ServiceError
from core.interfaces import (
    Service,
    ServiceConfig,
    ServiceFactory,
    ServiceRequest,
    ServiceResponse,
)

logger = logging.getLogger(__name__)


class NotFound(ServiceError):
    status_code = 404


class EchoService(Service):
    """Echoes request bodies back and serves a couple of fixed routes."""

    def __init__(self, config: ServiceConfig) -> None:
        self.config = config
        self.request_count = 0

    async def call(self, request: ServiceRequest) -> ServiceResponse:
        self.request_count += 1
        path = urlsplit(request.uri).path.lstrip("/")

        if request.method == "GET" and path == "health":
            return ServiceResponse(
                status=200,
                headers={"content-type": "application/json"},
                body=json.dumps({"status": "ok", "requests": self.request_count}),
            )

        if request.method == "POST" and path == "echo":
            content_type = request.headers.get("content-type", "application/octet-stream")
            return ServiceResponse(
                status=200,
                headers={"content-type": content_type},
                body=await request.payload.read_all(),
            )

        if request.method == "GET" and path == "stream":
            return ServiceResponse(
                status=200,
                headers={"content-type": "text/plain; charset=utf-8"},
                body=self._count(),
            )

        raise NotFound(f"No route for {request.method} /{path}")

    @staticmethod
    async def _count() -> AsyncIterator[bytes]:
        for i in range(1, 4):
            yield f"chunk {i}\n".encode("utf-8")


class EchoServiceFactory(ServiceFactory):
    async def new_service(self, config: ServiceConfig) -> Service:
        logger.info("Starting echo service", extra={"local_addr": config.local_addr})
        return EchoService(config)


def create_factory() -> EchoServiceFactory:
    return EchoServiceFactory()
