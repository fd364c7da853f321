"""Request payloads and response body producers.

A response body is exposed through ``BodyProducer``, a small capability
that hands out the next chunk of bytes, ``None`` once the body is done, or
raises the error that interrupted it. Producers come in three shapes:
``EmptyBody``, ``BytesBody`` (already materialized) and ``StreamBody``
(lazy, wrapping an async iterable).

The request side is ``Payload``, a pull-based byte source that supports
partial reads.
"""

import asyncio
import collections
from abc import ABC, abstractmethod
from typing import Any, AsyncIterable, AsyncIterator, Deque, Optional, Union


def _to_bytes(chunk: Union[bytes, bytearray, memoryview, str]) -> bytes:
    if isinstance(chunk, str):
        return chunk.encode("utf-8")
    if isinstance(chunk, (bytes, bytearray, memoryview)):
        return bytes(chunk)
    raise TypeError(f"Body chunks must be bytes or str, got {type(chunk).__name__}")


class BodyProducer(ABC):
    """Source of response body chunks."""

    @abstractmethod
    async def next_chunk(self) -> Optional[bytes]:
        """Return the next chunk, or None when the body is exhausted.

        Raises:
            Exception: Whatever error interrupted the body
        """
        pass

    def __aiter__(self) -> AsyncIterator[bytes]:
        return self

    async def __anext__(self) -> bytes:
        chunk = await self.next_chunk()
        if chunk is None:
            raise StopAsyncIteration
        return chunk


class EmptyBody(BodyProducer):
    """A body with no content."""

    async def next_chunk(self) -> Optional[bytes]:
        return None

    def __repr__(self) -> str:
        return "EmptyBody()"


class BytesBody(BodyProducer):
    """A body that is already fully in memory."""

    def __init__(self, data: Union[bytes, str] = b"") -> None:
        self.data = _to_bytes(data)
        self._consumed = False

    async def next_chunk(self) -> Optional[bytes]:
        if self._consumed:
            return None
        self._consumed = True
        if not self.data:
            return None
        return self.data

    def __repr__(self) -> str:
        return f"BytesBody({len(self.data)} bytes)"


class StreamBody(BodyProducer):
    """A lazily produced body backed by an async iterable of chunks."""

    def __init__(self, chunks: AsyncIterable[Union[bytes, str]]) -> None:
        self._iterator = chunks.__aiter__()
        self._done = False

    async def next_chunk(self) -> Optional[bytes]:
        if self._done:
            return None
        try:
            chunk = await self._iterator.__anext__()
        except StopAsyncIteration:
            self._done = True
            return None
        return _to_bytes(chunk)

    def __repr__(self) -> str:
        return f"StreamBody({self._iterator!r})"


def as_body_producer(value: Any) -> BodyProducer:
    """Coerce a body value into a BodyProducer.

    Args:
        value: None, bytes, str, an async iterable of chunks, or a producer

    Returns:
        Matching BodyProducer variant

    Raises:
        TypeError: If the value cannot act as a body
    """
    if isinstance(value, BodyProducer):
        return value
    if value is None:
        return EmptyBody()
    if isinstance(value, (bytes, bytearray, memoryview, str)):
        return BytesBody(_to_bytes(value))
    if hasattr(value, "__aiter__"):
        return StreamBody(value)
    raise TypeError(f"Cannot use {type(value).__name__} as a response body")


class Payload:
    """Pull-based request body.

    Data is queued with ``feed_data`` (appended) or ``unread_data``
    (pushed back to the front). Readers wait until data or EOF arrives.
    """

    def __init__(self) -> None:
        self._chunks: Deque[bytes] = collections.deque()
        self._size = 0
        self._eof = False
        self._waiter: Optional[asyncio.Event] = None

    @classmethod
    def empty(cls) -> "Payload":
        payload = cls()
        payload.feed_eof()
        return payload

    @classmethod
    def from_bytes(cls, data: bytes) -> "Payload":
        """Create a payload seeded with ``data`` and already at EOF."""
        payload = cls()
        payload.unread_data(data)
        payload.feed_eof()
        return payload

    def __len__(self) -> int:
        return self._size

    def __repr__(self) -> str:
        state = "eof" if self._eof else "open"
        return f"<Payload {self._size} bytes buffered, {state}>"

    @property
    def at_eof(self) -> bool:
        """True once EOF was fed and every buffered byte was read."""
        return self._eof and not self._chunks

    def _wake(self) -> None:
        if self._waiter is not None:
            self._waiter.set()

    def unread_data(self, data: bytes) -> None:
        """Push ``data`` back to the front of the buffer."""
        if not data:
            return
        self._chunks.appendleft(bytes(data))
        self._size += len(data)
        self._wake()

    def feed_data(self, data: bytes) -> None:
        if self._eof:
            raise RuntimeError("feed_data() after feed_eof()")
        if not data:
            return
        self._chunks.append(bytes(data))
        self._size += len(data)
        self._wake()

    def feed_eof(self) -> None:
        self._eof = True
        self._wake()

    async def _wait_for_data(self) -> None:
        while not self._chunks and not self._eof:
            if self._waiter is None:
                self._waiter = asyncio.Event()
            self._waiter.clear()
            await self._waiter.wait()

    async def readany(self) -> bytes:
        """Return the next buffered chunk, or b"" at EOF."""
        await self._wait_for_data()
        if not self._chunks:
            return b""
        chunk = self._chunks.popleft()
        self._size -= len(chunk)
        return chunk

    async def read(self, n: int = -1) -> bytes:
        """Read up to ``n`` bytes (everything until EOF when ``n`` < 0)."""
        if n < 0:
            return await self.read_all()
        if n == 0:
            return b""

        await self._wait_for_data()
        if not self._chunks:
            return b""

        chunk = self._chunks.popleft()
        self._size -= len(chunk)
        if len(chunk) > n:
            self.unread_data(chunk[n:])
            chunk = chunk[:n]
        return chunk

    async def read_all(self) -> bytes:
        buffer = bytearray()
        while True:
            chunk = await self.readany()
            if not chunk:
                return bytes(buffer)
            buffer.extend(chunk)

    def __aiter__(self) -> AsyncIterator[bytes]:
        return self._iter_chunks()

    async def _iter_chunks(self) -> AsyncIterator[bytes]:
        while True:
            chunk = await self.readany()
            if not chunk:
                return
            yield chunk
