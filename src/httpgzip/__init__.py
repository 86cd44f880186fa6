"""
=============================================================================
httpgzip
=============================================================================

Streaming gzip response compression for a small threaded HTTP/1.1 server.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   socket ─► Connection ─► RequestParser ─► ServeMux                  │
    │                                              │                       │
    │                                   LoggingMiddleware                  │
    │                                   GzipMiddleware ── swaps the writer │
    │                                              │                       │
    │                                           handler                    │
    │                                              │ write()               │
    │   socket ◄─ ConnectionWriter ◄─ GzipWriter ◄─ GzipResponseWriter     │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Quick start:

    from httpgzip import HTTPServer, GzipMiddleware

    server = HTTPServer()
    server.use(GzipMiddleware())

    @server.get("/")
    def index(ctx):
        ctx.html(200, "<h1>compressed when the client allows it</h1>")

    server.run()

=============================================================================
"""

__version__ = "1.0.0"

from .codec import (
    BEST_COMPRESSION,
    BEST_SPEED,
    DEFAULT_COMPRESSION,
    HUFFMAN_ONLY,
    NO_COMPRESSION,
    CompressionLevelError,
    GzipWriter,
)
from .config import GzipConfig, ServerConfig, setup_logging
from .context import Context, HTTPError, NotFoundError
from .middleware import GzipMiddleware, GzipResponseWriter, LoggingMiddleware, gzip_middleware
from .router import ServeMux
from .server import HTTPServer

__all__ = [
    "HTTPServer",
    "ServeMux",
    "ServerConfig",
    "GzipConfig",
    "setup_logging",
    "Context",
    "HTTPError",
    "NotFoundError",
    "GzipMiddleware",
    "GzipResponseWriter",
    "gzip_middleware",
    "LoggingMiddleware",
    "GzipWriter",
    "CompressionLevelError",
    "HUFFMAN_ONLY",
    "DEFAULT_COMPRESSION",
    "NO_COMPRESSION",
    "BEST_SPEED",
    "BEST_COMPRESSION",
    "__version__",
]
