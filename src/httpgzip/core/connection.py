"""
=============================================================================
CONNECTION MANAGEMENT
=============================================================================

Wraps one accepted client socket with the operations the server loop and
the response writer need: read one complete request, send bytes, close
cleanly, or hand the raw socket over to a handler (hijack).

=============================================================================
TCP IS A BYTE STREAM
=============================================================================

TCP does not preserve message boundaries. One request may arrive split
across several recv() calls, or two pipelined requests may arrive in one:

    recv() → b"GET /a HTTP/1.1\\r\\nHo"
    recv() → b"st: x\\r\\n\\r\\nGET /b HTTP/1.1\\r\\n..."

So reads go into a buffer, and a request is cut out of it only once the
header terminator (\\r\\n\\r\\n) and Content-Length body bytes are there.
Whatever follows stays buffered for the next read_request().

=============================================================================
CONNECTION LIFECYCLE
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   NEW ──► READING ──► PROCESSING ──► WRITING ──► KEEP_ALIVE ──┐      │
    │              ▲                          │                      │      │
    │              └──────────────────────────┼──────────────────────┘      │
    │                                         │                             │
    │                                         ├──► CLOSING ──► CLOSED       │
    │                                         │                             │
    │                                         └──► HIJACKED                 │
    │                                              (handler owns the socket)│
    └─────────────────────────────────────────────────────────────────────┘

A hijacked connection is never read, written or closed by the server
again. The handler that took it is responsible for it.

=============================================================================
"""

import logging
import socket
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import BinaryIO, Optional, Tuple


logger = logging.getLogger(__name__)


class ConnectionState(Enum):
    """Where a connection is in its lifecycle (for logging and cleanup)."""
    NEW = "new"
    READING = "reading"
    PROCESSING = "processing"
    WRITING = "writing"
    KEEP_ALIVE = "keep_alive"
    CLOSING = "closing"
    CLOSED = "closed"
    HIJACKED = "hijacked"


class HijackError(Exception):
    """Raised when a connection is hijacked twice or after it was closed."""


@dataclass
class Connection:
    """
    A client connection.

    Attributes:
        socket: The client socket.
        address: Client's (ip, port) tuple.
        id: Short identifier used in log lines.
        state: Current ConnectionState.
        requests_handled: Requests read so far on this connection.
    """

    socket: socket.socket
    address: Tuple[str, int]

    id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])
    state: ConnectionState = ConnectionState.NEW
    created_at: float = field(default_factory=time.time)
    last_activity: float = field(default_factory=time.time)
    requests_handled: int = 0

    buffer_size: int = 8192
    timeout: float = 30.0
    keep_alive_timeout: float = 5.0
    max_request_size: int = 10 * 1024 * 1024

    _buffer: bytes = field(default=b"", repr=False)

    def __post_init__(self):
        self.socket.setblocking(True)
        if self.timeout:
            self.socket.settimeout(self.timeout)

    @property
    def client_ip(self) -> str:
        return self.address[0]

    @property
    def age(self) -> float:
        """Seconds since the connection was accepted."""
        return time.time() - self.created_at

    @property
    def hijacked(self) -> bool:
        return self.state == ConnectionState.HIJACKED

    @property
    def pending(self) -> bytes:
        """Bytes already received but not yet consumed by read_request()."""
        return self._buffer

    # =========================================================================
    # READING
    # =========================================================================

    def read_request(self) -> Optional[bytes]:
        """
        Read one complete HTTP request (headers and body) from the socket.

        Subsequent requests on a keep-alive connection use the shorter
        keep_alive_timeout; timing out there just means the client is done.

        Returns:
            The request bytes, or None if the client closed the connection
            or went idle between keep-alive requests.

        Raises:
            TimeoutError: If the first request does not arrive in time.
            ValueError: If the request exceeds max_request_size.
        """
        self.state = ConnectionState.READING
        self.last_activity = time.time()

        if self.requests_handled > 0:
            self.socket.settimeout(self.keep_alive_timeout)

        try:
            while b"\r\n\r\n" not in self._buffer:
                chunk = self._recv()
                if not chunk:
                    return None
                self._buffer += chunk
                if len(self._buffer) > self.max_request_size:
                    raise ValueError(f"Request too large: {len(self._buffer)} bytes")

            header_end = self._buffer.find(b"\r\n\r\n")
            body_start = header_end + 4
            content_length = self._parse_content_length(self._buffer[:header_end])

            while len(self._buffer) - body_start < content_length:
                chunk = self._recv()
                if not chunk:
                    break  # closed mid-body, the parser reports it
                self._buffer += chunk
                if len(self._buffer) > self.max_request_size:
                    raise ValueError(f"Request too large: {len(self._buffer)} bytes")

            request_end = body_start + content_length
            request_data = self._buffer[:request_end]
            self._buffer = self._buffer[request_end:]

            self.requests_handled += 1
            self.state = ConnectionState.PROCESSING
            self.last_activity = time.time()
            return request_data

        except socket.timeout:
            if self.requests_handled > 0:
                logger.debug(f"[{self.id}] Keep-alive timeout")
                return None
            raise TimeoutError("Request read timeout")
        finally:
            if not self.hijacked and self.state != ConnectionState.CLOSED:
                self.socket.settimeout(self.timeout)

    def _recv(self) -> bytes:
        try:
            data = self.socket.recv(self.buffer_size)
            self.last_activity = time.time()
            return data
        except (ConnectionResetError, BrokenPipeError):
            return b""

    def _parse_content_length(self, headers: bytes) -> int:
        # Needed before the request can be parsed, so scan the raw lines
        try:
            header_str = headers.decode("utf-8", errors="replace").lower()
            for line in header_str.split("\r\n"):
                if line.startswith("content-length:"):
                    return int(line.split(":", 1)[1].strip())
        except (ValueError, IndexError):
            pass
        return 0

    # =========================================================================
    # WRITING
    # =========================================================================

    def send(self, data: bytes) -> bool:
        """
        Send all of ``data`` to the client.

        Returns:
            True on success, False if the client has gone away.
        """
        if self.hijacked:
            raise HijackError(f"[{self.id}] send on hijacked connection")

        self.state = ConnectionState.WRITING
        self.last_activity = time.time()
        try:
            self.socket.sendall(data)
            self.last_activity = time.time()
            return True
        except (ConnectionResetError, BrokenPipeError, OSError) as e:
            logger.warning(f"[{self.id}] Send failed: {e}")
            return False

    # =========================================================================
    # HIJACKING
    # =========================================================================

    def hijack(self) -> Tuple[socket.socket, BinaryIO]:
        """
        Hand the raw socket to the caller.

        After this the server neither reads, writes nor closes the socket.
        Bytes the server had already buffered past the current request are
        available from ``pending`` before the returned file is read.

        Returns:
            (socket, rwfile) where rwfile is a buffered binary read/write
            file over the same socket.

        Raises:
            HijackError: If the connection was already hijacked or closed.
        """
        if self.hijacked:
            raise HijackError(f"[{self.id}] connection already hijacked")
        if self.state in (ConnectionState.CLOSING, ConnectionState.CLOSED):
            raise HijackError(f"[{self.id}] connection is closed")

        self.state = ConnectionState.HIJACKED
        self.socket.settimeout(None)
        logger.debug(f"[{self.id}] Connection hijacked")
        return self.socket, self.socket.makefile("rwb")

    # =========================================================================
    # CLOSING
    # =========================================================================

    def close(self):
        """
        Close the connection: send FIN, drain what the client still sends,
        then release the descriptor. Hijacked connections are left alone.
        """
        if self.state in (ConnectionState.CLOSED, ConnectionState.HIJACKED):
            return

        self.state = ConnectionState.CLOSING

        try:
            self.socket.shutdown(socket.SHUT_WR)
        except OSError:
            pass  # peer already gone

        try:
            self.socket.settimeout(0.5)
            while self.socket.recv(1024):
                pass
        except (socket.timeout, OSError):
            pass

        try:
            self.socket.close()
        except OSError:
            pass

        self.state = ConnectionState.CLOSED
        logger.debug(f"[{self.id}] Connection closed after {self.requests_handled} requests")

    def set_keep_alive(self):
        self.state = ConnectionState.KEEP_ALIVE

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
