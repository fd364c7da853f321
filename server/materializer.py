"""Folding response body producers into a single buffer."""

import logging

from core.body import BodyProducer
from server.bridge import BlockingBridge

logger = logging.getLogger(__name__)


async def read_body(body: BodyProducer) -> bytes:
    """Drain ``body`` into one contiguous buffer.

    Chunks are appended in order. If the producer raises, the error
    propagates and whatever was already collected is dropped.
    """
    buffer = bytearray()
    chunk_count = 0
    while True:
        chunk = await body.next_chunk()
        if chunk is None:
            break
        buffer.extend(chunk)
        chunk_count += 1

    logger.debug(
        "Materialized response body",
        extra={"chunk_count": chunk_count, "body_size": len(buffer)},
    )
    return bytes(buffer)


def materialize(bridge: BlockingBridge, body: BodyProducer) -> bytes:
    """Synchronously drain ``body`` on the bridge's event loop."""
    return bridge.run(read_body(body))
