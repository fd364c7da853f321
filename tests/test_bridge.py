"""Tests for the blocking bridge and body materialization."""

import asyncio
from unittest.mock import patch

import pytest

from core.body import BytesBody, EmptyBody, StreamBody
from core.errors import AdapterStartupError
from server.bridge import BlockingBridge
from server.materializer import materialize, read_body


async def chunks(*items):
    for item in items:
        await asyncio.sleep(0)
        yield item


async def failing_after(*items):
    for item in items:
        yield item
    raise IOError("stream broke")


@pytest.fixture
def bridge():
    bridge = BlockingBridge()
    yield bridge
    bridge.close()


class TestBlockingBridge:
    """Test BlockingBridge."""

    def test_run_returns_result(self, bridge):
        """Test that run drives a coroutine to completion."""

        async def compute():
            await asyncio.sleep(0)
            return 42

        assert bridge.run(compute()) == 42

    def test_run_propagates_exceptions(self, bridge):
        """Test that exceptions from the coroutine propagate unchanged."""

        async def explode():
            raise ValueError("boom")

        with pytest.raises(ValueError, match="boom"):
            bridge.run(explode())

    def test_same_loop_is_reused(self, bridge):
        """Test that every run uses the one adapter-owned loop."""

        async def current_loop():
            return asyncio.get_running_loop()

        first = bridge.run(current_loop())
        second = bridge.run(current_loop())

        assert first is second
        assert first is bridge.loop

    def test_tasks_survive_between_runs(self, bridge):
        """Test that background tasks keep progressing on later runs."""
        results = []

        async def background():
            await asyncio.sleep(0)
            results.append("done")

        async def spawn():
            return asyncio.get_running_loop().create_task(background())

        task = bridge.run(spawn())
        bridge.run(task)

        assert results == ["done"]

    def test_close_is_idempotent(self):
        """Test that closing twice is harmless and run fails afterwards."""
        bridge = BlockingBridge()
        bridge.close()
        bridge.close()

        assert bridge.closed
        with pytest.raises(RuntimeError):
            bridge.run(asyncio.sleep(0))

    def test_loop_creation_failure_is_startup_error(self):
        """Test that failing to create the loop aborts startup."""
        with patch("server.bridge.asyncio.new_event_loop", side_effect=OSError("no fds")):
            with pytest.raises(AdapterStartupError) as exc_info:
                BlockingBridge()

        assert isinstance(exc_info.value.__cause__, OSError)


class TestMaterializer:
    """Test body materialization."""

    def test_folds_chunks_in_order(self, bridge):
        """Test that chunks are concatenated into one buffer."""
        body = StreamBody(chunks(b"he", b"ll", b"o"))

        assert materialize(bridge, body) == b"hello"

    def test_empty_body(self, bridge):
        """Test that an empty body materializes to b''."""
        assert materialize(bridge, EmptyBody()) == b""

    def test_bytes_body(self, bridge):
        """Test that an already materialized body is returned as is."""
        assert materialize(bridge, BytesBody(b"\x00\x01")) == b"\x00\x01"

    def test_mid_stream_error_propagates(self, bridge):
        """Test that the first error aborts materialization."""
        body = StreamBody(failing_after(b"partial"))

        with pytest.raises(IOError, match="stream broke"):
            materialize(bridge, body)

    @pytest.mark.asyncio
    async def test_read_body_coroutine(self):
        """Test read_body directly on a running loop."""
        assert await read_body(StreamBody(chunks(b"a", b"b"))) == b"ab"
