"""Blocking bridge between synchronous Lambda invocations and asyncio.

The adapter owns exactly one event loop for its whole lifetime. Every
coroutine (service creation, service calls, body draining) runs to
completion on that loop before control returns to the caller, so no two
invocations are ever in flight at once.

There is no timeout and no cancellation here: if a coroutine never
completes, the invocation hangs until the Lambda runtime kills it.
"""

import asyncio
import logging
from typing import Awaitable, Optional, TypeVar

from core.errors import AdapterStartupError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class BlockingBridge:
    """Runs awaitables to completion on a single adapter-owned event loop."""

    def __init__(self) -> None:
        try:
            self._loop: Optional[asyncio.AbstractEventLoop] = asyncio.new_event_loop()
        except Exception as e:
            logger.error(f"Failed to create event loop: {e}", exc_info=True)
            raise AdapterStartupError(f"Failed to create event loop: {e}") from e

        logger.debug("Created adapter event loop", extra={"loop": repr(self._loop)})

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            raise RuntimeError("BlockingBridge is closed")
        return self._loop

    @property
    def closed(self) -> bool:
        return self._loop is None

    def run(self, awaitable: Awaitable[T]) -> T:
        """Drive ``awaitable`` to completion and return its result.

        Exceptions raised by the awaitable propagate unchanged.

        Raises:
            RuntimeError: If the bridge is closed or called from inside a
                running event loop
        """
        return self.loop.run_until_complete(awaitable)

    def close(self) -> None:
        """Shut down the loop. Safe to call more than once."""
        if self._loop is None:
            return

        loop, self._loop = self._loop, None
        try:
            loop.run_until_complete(loop.shutdown_asyncgens())
        finally:
            loop.close()
        logger.debug("Closed adapter event loop")
