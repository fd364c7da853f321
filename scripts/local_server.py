# local_server.py
"""Serve the configured application locally through the Lambda bridge.

Each HTTP request is turned into an InvocationEvent and handled by the same
LambdaHandler the Lambda entry point uses. Invocations run one at a time on
a single worker thread, as they would inside one Lambda container.
"""

import asyncio
import logging
import sys
import uuid
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

# Add project root to Python path so we can import from core
project_root = Path(__file__).parent.parent.resolve()
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from aiohttp import web

from core.errors import HandlerError
from core.interfaces import InvocationEvent, InvocationResponse
from core.logging_utils import configure_json_logging
from core.validators import load_app_factory, load_config
from server.lambda_server import LambdaHandler, LambdaHttpServer

logger = logging.getLogger(__name__)

HOST = "localhost"
PORT = 8000

HANDLER_KEY = web.AppKey("handler", LambdaHandler)
EXECUTOR_KEY = web.AppKey("executor", ThreadPoolExecutor)


async def to_invocation_event(request: web.Request) -> InvocationEvent:
    """Convert an aiohttp request into an InvocationEvent."""
    body = await request.read()
    headers = {
        name.lower(): ", ".join(request.headers.getall(name))
        for name in request.headers.keys()
    }
    return InvocationEvent(
        method=request.method,
        version=f"HTTP/{request.version.major}.{request.version.minor}",
        scheme=request.scheme,
        authority=request.host,
        path=request.rel_url.raw_path,
        query_params=list(request.query.items()),
        headers=headers,
        body=body or None,
    )


def to_web_response(response: InvocationResponse) -> web.Response:
    body = response.body if response.is_binary else response.body.encode("utf-8")
    headers = [
        (name, item)
        for name, value in response.headers.items()
        for item in (value if isinstance(value, list) else [value])
    ]
    return web.Response(status=response.status_code, headers=headers, body=body)


async def handle_invocation(request: web.Request) -> web.Response:
    """Run one request through the Lambda handler."""
    request_id = str(uuid.uuid4())
    handler = request.app[HANDLER_KEY]
    executor = request.app[EXECUTOR_KEY]
    event = await to_invocation_event(request)

    loop = asyncio.get_running_loop()
    try:
        response = await loop.run_in_executor(executor, handler.handle, event, request_id)
    except HandlerError as e:
        # API Gateway answers 502 when the function invocation fails
        logger.error(
            f"Invocation failed: {e}",
            extra={"request_id": request_id, "error_type": type(e).__name__},
            exc_info=True,
        )
        return web.Response(status=502, text=f"Bad Gateway: {e}")

    return to_web_response(response)


async def _on_startup(app: web.Application) -> None:
    config = load_config()
    server = LambdaHttpServer(load_app_factory(config.app)).binary_media_types(
        config.binary_media_types
    )

    executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="invocation")
    app[EXECUTOR_KEY] = executor
    # The handler's event loop must only ever be driven from the worker thread.
    app[HANDLER_KEY] = await asyncio.get_running_loop().run_in_executor(
        executor, server.start, config.server
    )


async def _on_cleanup(app: web.Application) -> None:
    executor = app[EXECUTOR_KEY]
    await asyncio.get_running_loop().run_in_executor(executor, app[HANDLER_KEY].close)
    executor.shutdown(wait=True)


def create_app() -> web.Application:
    app = web.Application()
    app.on_startup.append(_on_startup)
    app.on_cleanup.append(_on_cleanup)
    app.router.add_route("*", "/{tail:.*}", handle_invocation)
    return app


async def start_server() -> None:
    """Start local HTTP server."""
    app = create_app()
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, HOST, PORT)
    await site.start()

    logger.info(f"Local Lambda bridge running on http://{HOST}:{PORT}")

    try:
        await asyncio.Event().wait()
    finally:
        await runner.cleanup()


if __name__ == "__main__":
    configure_json_logging(level="INFO", pretty=True)
    try:
        asyncio.run(start_server())
    except KeyboardInterrupt:
        logger.info("Shutting down")
