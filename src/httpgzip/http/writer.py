"""
=============================================================================
RESPONSE WRITERS
=============================================================================

A response writer is the sink a handler streams its response into. It is
deliberately small:

    header()          the mutable header map (before the status is sent)
    write_header(c)   send the status code
    write(data)       send body bytes, returns how many were consumed

Anything beyond that is an optional CAPABILITY, checked at runtime:

    Flusher           flush()   push buffered bytes to the client now
    Hijacker          hijack()  take over the raw connection

Writers can be stacked. A compressing writer wraps the connection writer,
and a handler sees only the outer one:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   handler ──► Response ──► GzipResponseWriter ──► ConnectionWriter  │
    │                                  │                       │          │
    │                              compresses              frames and     │
    │                                                      sends bytes    │
    │                                                          │          │
    │                                                       socket        │
    └─────────────────────────────────────────────────────────────────────┘

Two implementations live here:

    ConnectionWriter   the real thing, over a Connection
    ResponseRecorder   in-memory, for tests

=============================================================================
"""

import logging
from abc import ABC, abstractmethod
from typing import BinaryIO, List, Optional, Protocol, Tuple, runtime_checkable
import socket

from ..core.connection import Connection, HijackError
from .headers import Headers, format_http_date
from .status_codes import body_allowed, status_phrase


logger = logging.getLogger(__name__)


# =============================================================================
# INTERFACE AND CAPABILITIES
# =============================================================================

class ResponseWriter(ABC):
    """The minimal interface every response sink implements."""

    @abstractmethod
    def header(self) -> Headers:
        """Header map that will be sent with the status line."""

    @abstractmethod
    def write_header(self, code: int) -> None:
        """Send the status line and headers."""

    @abstractmethod
    def write(self, data: bytes) -> int:
        """Write body bytes, sending a 200 status first if none was sent."""


@runtime_checkable
class Flusher(Protocol):
    def flush(self) -> None: ...


@runtime_checkable
class Hijacker(Protocol):
    def hijack(self) -> Tuple[socket.socket, BinaryIO]: ...


class CapabilityNotSupported(Exception):
    """Raised when a writer lacks an optional capability."""

    capability = "capability"

    def __init__(self, writer: object):
        super().__init__(
            f"{type(writer).__name__} does not support {self.capability}"
        )
        self.writer = writer


class FlushNotSupported(CapabilityNotSupported):
    capability = "flush"


class HijackNotSupported(CapabilityNotSupported):
    capability = "hijack"


class BodyNotAllowedError(ValueError):
    """Raised when body bytes are written for a 1xx, 204 or 304 response."""


# =============================================================================
# IN-MEMORY RECORDER
# =============================================================================

class ResponseRecorder(ResponseWriter):
    """
    Records everything a handler does to the response.

    Like a real connection, headers are captured when the first body byte
    or flush goes out, not at write_header(). A writer further up may still
    adjust them in between.

    Attributes:
        code: Status passed to write_header (None until then).
        body: Every byte written.
        headers: Snapshot of header() at the first write or flush, i.e.
            what a client would have received.
        flushed: True once flush() was called.
        flush_marks: len(body) at each flush(), for checking that a
            streaming client could decode each piece as it arrived.
    """

    def __init__(self):
        self._header = Headers()
        self.code: Optional[int] = None
        self.body = bytearray()
        self.headers: Optional[Headers] = None
        self.flushed = False
        self.flush_marks: List[int] = []

    def header(self) -> Headers:
        return self._header

    def write_header(self, code: int) -> None:
        if self.code is None:
            self.code = code

    def write(self, data: bytes) -> int:
        self._commit()
        self.body.extend(data)
        return len(data)

    def flush(self) -> None:
        self._commit()
        self.flushed = True
        self.flush_marks.append(len(self.body))

    def _commit(self) -> None:
        if self.code is None:
            self.code = 200
        if self.headers is None:
            self.headers = self._header.copy()

    @property
    def result_headers(self) -> Headers:
        """Headers as sent, or the live map if nothing was sent."""
        return self.headers if self.headers is not None else self._header


# =============================================================================
# CONNECTION WRITER
# =============================================================================

class ConnectionWriter(ResponseWriter):
    """
    Writes a response onto a Connection.

    =========================================================================
    LAZY HEADER COMMIT
    =========================================================================

    write_header() only records the status. The status line and header
    block are serialized when the first body byte is written, on flush(),
    or on finish(). Anything wrapping this writer can therefore still fix
    up headers (Content-Type sniffed from the first write, for example)
    right up to the moment bytes leave.

    =========================================================================
    BODY FRAMING
    =========================================================================

    Chosen once, at commit time:

        1xx, 204, 304                 no body at all
        Content-Length header set     exactly that many bytes
        HTTP/1.1, no length           Transfer-Encoding: chunked
        HTTP/1.0, no length           body ends when the connection closes

    A response that finishes without any body and without a length gets
    "Content-Length: 0" so the connection can be reused. HEAD responses are
    left alone: their length describes a body that is never sent, and an
    encoder in front may have removed it because it cannot be known.

    =========================================================================
    """

    def __init__(
        self,
        conn: Connection,
        version: str = "HTTP/1.1",
        keep_alive: bool = True,
        buffer_size: int = 8192,
        server_name: Optional[str] = None,
        head: bool = False,
    ):
        self.conn = conn
        self.version = version
        self.keep_alive = keep_alive
        self.buffer_size = buffer_size
        self.server_name = server_name
        self.head = head

        self._header = Headers()
        self._status: Optional[int] = None
        self._committed = False
        self._chunked = False
        self._finished = False
        self._hijacked = False
        self._buffer = bytearray()
        self.bytes_sent = 0

    @property
    def status(self) -> Optional[int]:
        return self._status

    @property
    def committed(self) -> bool:
        """True once the header block has been serialized."""
        return self._committed

    @property
    def hijacked(self) -> bool:
        return self._hijacked

    def header(self) -> Headers:
        return self._header

    def write_header(self, code: int) -> None:
        if self._hijacked:
            raise HijackError("write_header on hijacked connection")
        if self._status is not None:
            logger.warning(f"[{self.conn.id}] superfluous write_header({code})")
            return
        self._status = code

    def write(self, data: bytes) -> int:
        if self._hijacked:
            raise HijackError("write on hijacked connection")
        if self._status is None:
            self.write_header(200)
        if not body_allowed(self._status):
            raise BodyNotAllowedError(
                f"response with status {self._status} cannot have a body"
            )
        if not self._committed:
            self._commit()
        if not data or self.head:
            return len(data)

        if self._chunked:
            self._buffer += f"{len(data):x}\r\n".encode("ascii")
            self._buffer += data
            self._buffer += b"\r\n"
        else:
            self._buffer += data
        if len(self._buffer) >= self.buffer_size:
            self._send_buffer()
        return len(data)

    def flush(self) -> None:
        """Commit headers if needed and send everything buffered."""
        if self._hijacked:
            return
        if self._status is None:
            self.write_header(200)
        if not self._committed:
            self._commit()
        self._send_buffer()

    def finish(self) -> None:
        """
        Complete the response: commit, terminate a chunked body, and send.

        Called once by the server after the handler chain returns.
        """
        if self._hijacked or self._finished:
            return
        self._finished = True
        if self._status is None:
            self.write_header(200)
        if not self._committed:
            if (
                body_allowed(self._status)
                and not self.head
                and "Content-Length" not in self._header
            ):
                self._header.set("Content-Length", "0")
            self._commit()
        if self._chunked:
            self._buffer += b"0\r\n\r\n"
        self._send_buffer()

    def hijack(self) -> Tuple[socket.socket, BinaryIO]:
        """
        Take over the underlying connection.

        Bytes already committed are sent first. The server stops managing
        the connection once this returns.
        """
        if self._hijacked:
            raise HijackError("connection already hijacked")
        if self._committed:
            self._send_buffer()
        sock, rwfile = self.conn.hijack()
        self._hijacked = True
        return sock, rwfile

    def _commit(self) -> None:
        status = self._status
        headers = self._header

        if not body_allowed(status):
            headers.delete("Transfer-Encoding")
            if status != 304:
                headers.delete("Content-Length")
        elif "Content-Length" in headers:
            headers.delete("Transfer-Encoding")
        elif self.version == "HTTP/1.1":
            self._chunked = not self.head
            if self._chunked:
                headers.set("Transfer-Encoding", "chunked")
        else:
            # HTTP/1.0 without a length: the close marks the end
            self.keep_alive = False

        headers.setdefault("Date", format_http_date())
        if self.server_name:
            headers.setdefault("Server", self.server_name)
        if headers.get("Connection").lower() == "close":
            self.keep_alive = False
        headers.set("Connection", "keep-alive" if self.keep_alive else "close")

        lines = [f"{self.version} {int(status)} {status_phrase(status)}"]
        lines.extend(headers.to_lines())
        self._buffer[:0] = ("\r\n".join(lines) + "\r\n\r\n").encode("latin-1")
        self._committed = True

    def _send_buffer(self) -> None:
        if not self._buffer:
            return
        data = bytes(self._buffer)
        self._buffer.clear()
        if not self.conn.send(data):
            self.keep_alive = False
            raise ConnectionAbortedError(f"[{self.conn.id}] client went away")
        self.bytes_sent += len(data)
