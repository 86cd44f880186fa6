"""
pytest configuration and fixtures.
"""

import socket
import zlib
from typing import Generator, Optional
import pytest

# Add src to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from httpgzip import HTTPServer, ServerConfig
from httpgzip.context import Context
from httpgzip.http import HTTPRequest, Response, ResponseRecorder


def gunzip(data: bytes) -> bytes:
    """Decompress a complete gzip stream."""
    return zlib.decompress(bytes(data), 16 + zlib.MAX_WBITS)


def make_request(
    method: str = "GET",
    path: str = "/",
    accept_encoding: Optional[str] = None,
    **headers: str,
) -> HTTPRequest:
    """Build a request; keyword headers use underscores for hyphens."""
    request = HTTPRequest(method=method, path=path, client_address=("127.0.0.1", 50000))
    if accept_encoding is not None:
        request.headers.set("Accept-Encoding", accept_encoding)
    for name, value in headers.items():
        request.headers.set(name.replace("_", "-"), value)
    return request


def make_context(request: Optional[HTTPRequest] = None):
    """A Context over a fresh ResponseRecorder. Returns (ctx, recorder)."""
    recorder = ResponseRecorder()
    ctx = Context(request or make_request(), Response(recorder))
    return ctx, recorder


@pytest.fixture
def sample_get_request() -> bytes:
    """Sample HTTP GET request."""
    return (
        b"GET /api/users?page=1&limit=10 HTTP/1.1\r\n"
        b"Host: localhost:8080\r\n"
        b"User-Agent: pytest\r\n"
        b"Accept: application/json\r\n"
        b"Accept-Encoding: gzip, deflate\r\n"
        b"Connection: keep-alive\r\n"
        b"\r\n"
    )


@pytest.fixture
def sample_post_request() -> bytes:
    """Sample HTTP POST request with JSON body."""
    body = b'{"name": "John", "email": "john@example.com"}'
    return (
        b"POST /api/users HTTP/1.1\r\n"
        b"Host: localhost:8080\r\n"
        b"Content-Type: application/json\r\n"
        + f"Content-Length: {len(body)}\r\n".encode()
        + b"Connection: close\r\n"
        b"\r\n"
    ) + body


@pytest.fixture
def config() -> ServerConfig:
    """Default test server configuration."""
    return ServerConfig(
        host="127.0.0.1",
        port=0,  # Let OS pick a free port
        timeout=5.0,
        keep_alive_timeout=1.0,
        log_level="WARNING",
    )


@pytest.fixture
def socket_pair() -> Generator[tuple, None, None]:
    """A connected (server side, client side) socket pair."""
    server_side, client_side = socket.socketpair()
    client_side.settimeout(5.0)
    yield server_side, client_side
    for s in (server_side, client_side):
        try:
            s.close()
        except OSError:
            pass


@pytest.fixture
def live_server(config: ServerConfig) -> Generator[HTTPServer, None, None]:
    """
    An HTTPServer listening on a free port in a background thread.

    Register routes and middleware on ``live_server.mux`` before the first
    request; the mux is consulted per request.
    """
    server = HTTPServer(config)
    thread = server.run_in_thread()

    yield server

    server.shutdown()
    thread.join(timeout=5.0)
