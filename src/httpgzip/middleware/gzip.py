"""
=============================================================================
GZIP COMPRESSION MIDDLEWARE
=============================================================================

Compresses response bodies with gzip, on the fly, for clients that ask for
it. The body is never held in memory: every write goes through a streaming
compressor straight into the connection writer.

=============================================================================
CONTENT NEGOTIATION
=============================================================================

    Request:
    ┌───────────────────────────────────────────────────────────────┐
    │ GET /api/data HTTP/1.1                                        │
    │ Accept-Encoding: gzip, deflate, br                            │
    └───────────────────────────────────────────────────────────────┘

    Response:
    ┌───────────────────────────────────────────────────────────────┐
    │ HTTP/1.1 200 OK                                               │
    │ Content-Type: application/json                                │
    │ Content-Encoding: gzip                                        │
    │ Transfer-Encoding: chunked      (length unknown up front)     │
    │ Vary: Accept-Encoding           (caching hint)                │
    │                                                               │
    │ [gzip stream]                                                 │
    └───────────────────────────────────────────────────────────────┘

Vary: Accept-Encoding goes on EVERY response that passes through, whether
compressed or not, so a shared cache never hands a gzip body to a client
that cannot decode it.

=============================================================================
THE WRITER DECORATOR
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   handler                                                            │
    │     │ write(b"<html>...")                                            │
    │     ▼                                                                │
    │   GzipResponseWriter ── sniffs Content-Type from the raw bytes       │
    │     │                   drops Content-Length (no longer true)        │
    │     ▼                                                                │
    │   GzipWriter ────────── deflate + gzip framing                       │
    │     │                                                                │
    │     ▼                                                                │
    │   original writer ───── frames and sends                             │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

flush() on the decorator sync-flushes the compressor THEN the writer below,
so a streaming client can decode every chunk as soon as it arrives.

=============================================================================
EMPTY RESPONSES
=============================================================================

If the handler wrote no body bytes at all (204, a redirect, an error raised
before any output) the response must not claim gzip encoding: an empty body
is not a valid gzip stream. After the handler returns or raises:

    size == 0  →  drop Content-Encoding: gzip
                  put the original writer back
                  point the compressor at a discard sink

The compressor is closed on every path, exactly once.

=============================================================================
"""

import logging
import socket
from dataclasses import dataclass, field
from typing import BinaryIO, Optional, Tuple

from ..codec import DEFAULT_COMPRESSION, Discard, GzipWriter
from ..config import GzipConfig
from ..context import Context
from ..http.headers import Headers
from ..http.sniff import detect_content_type
from ..http.writer import Flusher, Hijacker, HijackNotSupported, ResponseWriter
from .base import HandlerFunc, Middleware, Skipper, default_skipper, prefix_skipper


logger = logging.getLogger(__name__)

GZIP_SCHEME = "gzip"


class GzipResponseWriter(ResponseWriter):
    """
    ResponseWriter that compresses the body on its way to ``wrapped``.

    Attributes:
        compressor: The GzipWriter all body bytes go through.
        wrapped: The writer being decorated; compressed bytes land here.
    """

    def __init__(self, compressor: GzipWriter, wrapped: ResponseWriter):
        self.compressor = compressor
        self.wrapped = wrapped

    def header(self) -> Headers:
        return self.wrapped.header()

    def write_header(self, code: int) -> None:
        if code == 204:
            self.header().delete("Content-Encoding")
        # The uncompressed length no longer describes the body
        self.header().delete("Content-Length")
        self.wrapped.write_header(code)

    def write(self, data: bytes) -> int:
        if not self.header().get("Content-Type"):
            self.header().set("Content-Type", detect_content_type(data))
        return self.compressor.write(data)

    def flush(self) -> None:
        self.compressor.flush()
        if isinstance(self.wrapped, Flusher):
            self.wrapped.flush()

    def hijack(self) -> Tuple[socket.socket, BinaryIO]:
        if not isinstance(self.wrapped, Hijacker):
            raise HijackNotSupported(self.wrapped)
        return self.wrapped.hijack()


@dataclass(frozen=True)
class GzipOptions:
    """
    Attributes:
        skipper: Requests for which it returns True pass through untouched.
        level: -2 (Huffman only), -1 (zlib default), 0 (store) to 9 (best).
    """

    skipper: Skipper = field(default=default_skipper)
    level: int = DEFAULT_COMPRESSION


class GzipMiddleware(Middleware):
    """
    Gzip response compression.

    Usage:
        mux.use(GzipMiddleware())
        mux.use(GzipMiddleware(level=BEST_SPEED))
        mux.use(GzipMiddleware(skipper=lambda ctx: ctx.request.path == "/ws"))

    An out-of-range level is not rejected here. It surfaces as
    CompressionLevelError from the first request that would be compressed,
    before the handler runs. Call GzipConfig.validate() to fail at startup
    instead.
    """

    def __init__(
        self,
        skipper: Optional[Skipper] = None,
        level: int = DEFAULT_COMPRESSION,
    ):
        self.options = GzipOptions(
            skipper=skipper or default_skipper,
            level=level,
        )

    @classmethod
    def from_config(cls, config: GzipConfig) -> "GzipMiddleware":
        skipper = prefix_skipper(config.skip_paths) if config.skip_paths else None
        return cls(skipper=skipper, level=config.level)

    def __call__(self, ctx: Context, next: HandlerFunc) -> None:
        if self.options.skipper(ctx):
            next(ctx)
            return

        res = ctx.response
        res.header().add("Vary", "Accept-Encoding")

        if GZIP_SCHEME not in ctx.request.get_header("Accept-Encoding"):
            next(ctx)
            return

        original = res.writer
        compressor = GzipWriter(original, self.options.level)
        res.header().set("Content-Encoding", GZIP_SCHEME)
        res.writer = GzipResponseWriter(compressor, original)

        try:
            next(ctx)
        finally:
            if res.size == 0:
                if res.header().get("Content-Encoding") == GZIP_SCHEME:
                    res.header().delete("Content-Encoding")
                # Nothing was compressed, so nothing of the gzip stream may
                # reach the client
                res.writer = original
                compressor.reset(Discard())
            compressor.close()


def gzip_middleware(**kwargs) -> GzipMiddleware:
    """Shorthand for ``GzipMiddleware(**kwargs)``."""
    return GzipMiddleware(**kwargs)
