"""Tests for the local development server helpers."""

from aiohttp import web

from core.interfaces import InvocationResponse
from scripts.local_server import create_app, handle_invocation, to_web_response


class TestToWebResponse:
    """Test conversion of invocation responses to aiohttp responses."""

    def test_text_response(self):
        response = to_web_response(
            InvocationResponse(
                status_code=201, headers={"content-type": "text/plain"}, body="héllo"
            )
        )

        assert isinstance(response, web.Response)
        assert response.status == 201
        assert response.body == "héllo".encode("utf-8")
        assert response.headers["content-type"] == "text/plain"

    def test_binary_response(self):
        response = to_web_response(InvocationResponse(status_code=200, body=b"\xff\x00"))

        assert response.body == b"\xff\x00"

    def test_repeated_headers(self):
        response = to_web_response(
            InvocationResponse(
                status_code=200, headers={"set-cookie": ["a=1", "b=2"]}, body=""
            )
        )

        assert response.headers.getall("set-cookie") == ["a=1", "b=2"]


def test_create_app_routes_everything():
    """Test that every path and method reaches the invocation handler."""
    app = create_app()

    routes = list(app.router.routes())

    assert len(routes) == 1
    assert routes[0].method == "*"
    assert routes[0].handler is handle_invocation
