"""
=============================================================================
TCP SOCKET SERVER
=============================================================================

Owns the listening socket and the accept loop. Every accepted client is
wrapped in a Connection and handed to a callback; what happens next is the
HTTP layer's business.

    start(handler)
        ├── socket()  SO_REUSEADDR, TCP_NODELAY
        ├── bind()    port 0 picks a free port, see ``address``
        ├── listen()
        ├── SIGINT / SIGTERM → shutdown()   (main thread only)
        └── accept loop, 1 s timeout so shutdown() is noticed
                └── handler(Connection(...))

=============================================================================
"""

import logging
import signal
import socket
import threading
from typing import Callable, Optional, Tuple

from ..config import ServerConfig
from .connection import Connection


logger = logging.getLogger(__name__)


class SocketServer:
    """
    Low-level TCP server.

    Usage:
        server = SocketServer(config)
        server.start(handle_connection)   # blocks until shutdown()
    """

    def __init__(self, config: ServerConfig):
        self.config = config
        self._socket: Optional[socket.socket] = None
        self._running = False
        self._original_handlers: dict = {}
        self.ready = threading.Event()

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def address(self) -> Tuple[str, int]:
        """The bound (host, port); the real port once listening."""
        if self._socket is not None:
            return self._socket.getsockname()[:2]
        return (self.config.host, self.config.port)

    def _create_socket(self) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
        # accept() wakes up regularly to notice shutdown()
        sock.settimeout(1.0)
        return sock

    def _setup_signals(self):
        # signal.signal() only works from the main thread
        if threading.current_thread() is not threading.main_thread():
            logger.debug("Not on the main thread, leaving signal handlers alone")
            return

        def shutdown_handler(signum, frame):
            logger.info(f"Received {signal.Signals(signum).name}, initiating shutdown...")
            self.shutdown()

        for sig in (signal.SIGTERM, signal.SIGINT):
            self._original_handlers[sig] = signal.signal(sig, shutdown_handler)

    def _restore_signals(self):
        for sig, handler in self._original_handlers.items():
            signal.signal(sig, handler)
        self._original_handlers.clear()

    def start(self, connection_handler: Callable[[Connection], None]):
        """
        Bind, listen and accept until shutdown() is called.

        Raises:
            OSError: If the address cannot be bound.
        """
        self._socket = self._create_socket()
        try:
            self._socket.bind((self.config.host, self.config.port))
        except OSError as e:
            logger.error(f"Failed to bind to {self.config.host}:{self.config.port}: {e}")
            self._socket.close()
            self._socket = None
            raise

        self._socket.listen(self.config.backlog)
        self._running = True
        self._setup_signals()

        host, port = self.address
        logger.info(f"Server listening on {host}:{port}")
        self.ready.set()

        try:
            self._accept_loop(connection_handler)
        finally:
            self._cleanup()

    def _accept_loop(self, connection_handler: Callable[[Connection], None]):
        while self._running:
            try:
                client_socket, client_address = self._socket.accept()
            except socket.timeout:
                continue
            except OSError as e:
                if self._running:
                    logger.error(f"Accept failed: {e}")
                break

            logger.debug(f"Accepted connection from {client_address[0]}:{client_address[1]}")
            conn = Connection(
                socket=client_socket,
                address=client_address,
                buffer_size=self.config.buffer_size,
                timeout=self.config.timeout,
                keep_alive_timeout=self.config.keep_alive_timeout,
                max_request_size=self.config.max_request_size,
            )
            try:
                connection_handler(conn)
            except Exception as e:
                logger.exception(f"[{conn.id}] Connection handler failed: {e}")
                conn.close()

    def shutdown(self):
        """Stop the accept loop. Safe to call from any thread."""
        self._running = False

    def _cleanup(self):
        self._running = False
        self.ready.clear()
        self._restore_signals()
        if self._socket is not None:
            try:
                self._socket.close()
            except OSError:
                pass
            self._socket = None
        logger.info("Socket server stopped")
