"""
=============================================================================
RESPONSE
=============================================================================

The per-request response object handlers and middleware talk to.

It forwards to a ResponseWriter held in the public ``writer`` attribute.
Middleware may replace that attribute to decorate the sink for everything
downstream of it, and put the original back afterwards:

    original = ctx.response.writer
    ctx.response.writer = GzipResponseWriter(compressor, original)
    try:
        next(ctx)
    finally:
        ...  # may restore ctx.response.writer = original

It also keeps the bookkeeping the writers themselves do not:

    status      last status passed to write_header (200 until then)
    size        body bytes written THROUGH this object, i.e. before any
                compression further down
    committed   whether the status was sent

=============================================================================
"""

import logging
import socket
from typing import BinaryIO, Tuple

from .headers import Headers, format_http_date
from .writer import (
    Flusher,
    FlushNotSupported,
    Hijacker,
    HijackNotSupported,
    ResponseWriter,
)


logger = logging.getLogger(__name__)

__all__ = ["Response", "format_http_date"]


class Response:
    """
    Wraps a ResponseWriter and tracks status, size and commit state.

    Attributes:
        writer: The current sink. Swappable by middleware.
        status: Status code to send (default 200).
        size: Number of body bytes written so far.
        committed: True once the status line was sent.
    """

    def __init__(self, writer: ResponseWriter):
        self.writer = writer
        self.status = 200
        self.size = 0
        self.committed = False

    def header(self) -> Headers:
        return self.writer.header()

    def write_header(self, code: int) -> None:
        """Send the status. A second call is ignored with a warning."""
        if self.committed:
            logger.warning(f"response already committed, ignoring status {code}")
            return
        self.status = code
        self.writer.write_header(code)
        self.committed = True

    def write(self, data: bytes) -> int:
        """Write body bytes, committing with ``status`` first if needed."""
        if not self.committed:
            self.write_header(self.status)
        n = self.writer.write(data)
        self.size += n
        return n

    def flush(self) -> None:
        """
        Flush the current writer.

        Raises:
            FlushNotSupported: If the writer cannot flush.
        """
        if not isinstance(self.writer, Flusher):
            raise FlushNotSupported(self.writer)
        self.writer.flush()

    def hijack(self) -> Tuple[socket.socket, BinaryIO]:
        """
        Take over the connection through the current writer.

        Raises:
            HijackNotSupported: If the writer cannot hijack.
        """
        if not isinstance(self.writer, Hijacker):
            raise HijackNotSupported(self.writer)
        return self.writer.hijack()

    def __repr__(self) -> str:
        return (
            f"Response(status={self.status}, size={self.size}, "
            f"committed={self.committed}, writer={type(self.writer).__name__})"
        )
