"""
=============================================================================
HTTP SERVER
=============================================================================

Ties the pieces together: a SocketServer accepts connections, one thread
per connection reads requests, and a ServeMux writes each response
straight onto the connection through a ConnectionWriter.

=============================================================================
CONNECTION LOOP
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   while running:                                                     │
    │       raw = conn.read_request()          None → client is done       │
    │       request = parser.parse(raw)        error → 4xx/5xx and close   │
    │                                                                      │
    │       writer = ConnectionWriter(conn, ...)                           │
    │       mux.serve(request, writer)         middleware + handler        │
    │                                                                      │
    │       hijacked?  → stop, the handler owns the socket now             │
    │       writer.finish()                    commit, end chunked body    │
    │       keep-alive? → next request, else close                         │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

import json
import logging
import threading
from typing import Optional, Set, Tuple

from .config import ServerConfig, setup_logging
from .core import Connection, SocketServer
from .http import ConnectionWriter, HTTPParseError, HTTPStatus, RequestParser
from .middleware import MiddlewareFunc
from .router import ServeMux


logger = logging.getLogger(__name__)


class HTTPServer:
    """
    Threaded blocking HTTP/1.1 server.

    Usage:
        server = HTTPServer(ServerConfig(port=8080))
        server.use(LoggingMiddleware(), GzipMiddleware())

        @server.get("/")
        def index(ctx):
            ctx.html(200, "<h1>hello</h1>")

        server.run()   # blocks until SIGINT / SIGTERM / shutdown()
    """

    def __init__(self, config: Optional[ServerConfig] = None, mux: Optional[ServeMux] = None):
        self.config = config or ServerConfig()
        self.config.validate()

        self.mux = mux or ServeMux()
        self._socket_server = SocketServer(self.config)
        self._parser = RequestParser(max_request_size=self.config.max_request_size)

        self._running = False
        self._threads: Set[threading.Thread] = set()
        self._threads_lock = threading.Lock()

    # =========================================================================
    # CONFIGURATION
    # =========================================================================

    def use(self, *middleware: MiddlewareFunc) -> "HTTPServer":
        self.mux.use(*middleware)
        return self

    def get(self, path: str, **kwargs):
        return self.mux.get(path, **kwargs)

    def post(self, path: str, **kwargs):
        return self.mux.post(path, **kwargs)

    def put(self, path: str, **kwargs):
        return self.mux.put(path, **kwargs)

    def delete(self, path: str, **kwargs):
        return self.mux.delete(path, **kwargs)

    @property
    def address(self) -> Tuple[str, int]:
        """(host, port) actually bound, once running."""
        return self._socket_server.address

    @property
    def ready(self) -> threading.Event:
        """Set once the server is listening."""
        return self._socket_server.ready

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def run(self, host: Optional[str] = None, port: Optional[int] = None):
        """Serve until shutdown() or SIGINT / SIGTERM."""
        if host:
            self.config.host = host
        if port is not None:
            self.config.port = port

        if self.config.static_dir:
            self.mux.static(self.config.static_url_prefix, self.config.static_dir)

        self._running = True
        logger.info(f"Starting HTTP server on {self.config.host}:{self.config.port}")
        try:
            self._socket_server.start(self._handle_connection)
        except KeyboardInterrupt:
            logger.info("Received keyboard interrupt")
        finally:
            self._shutdown()

    def run_in_thread(self, timeout: float = 5.0) -> threading.Thread:
        """
        Start run() on a daemon thread and wait until it is listening.

        Raises:
            RuntimeError: If the server is not listening within ``timeout``.
        """
        thread = threading.Thread(target=self.run, name="httpgzip-server", daemon=True)
        thread.start()
        if not self.ready.wait(timeout):
            raise RuntimeError("HTTP server did not start in time")
        return thread

    def shutdown(self):
        """Stop accepting connections. run() returns shortly after."""
        self._running = False
        self._socket_server.shutdown()

    def _shutdown(self):
        logger.info("Shutting down server...")
        self._running = False
        with self._threads_lock:
            threads = list(self._threads)
        for thread in threads:
            thread.join(timeout=self.config.keep_alive_timeout + 1)
        logger.info("Server stopped")

    # =========================================================================
    # REQUEST HANDLING
    # =========================================================================

    def _handle_connection(self, conn: Connection):
        thread = threading.Thread(
            target=self._process_connection,
            args=(conn,),
            name=f"conn-{conn.id}",
            daemon=True,
        )
        with self._threads_lock:
            self._threads.add(thread)
        thread.start()

    def _process_connection(self, conn: Connection):
        try:
            self._serve_connection(conn)
        finally:
            if not conn.hijacked:
                conn.close()
            with self._threads_lock:
                self._threads.discard(threading.current_thread())

    def _serve_connection(self, conn: Connection):
        while self._running:
            try:
                raw_request = conn.read_request()
            except TimeoutError:
                self._send_error(conn, HTTPStatus.REQUEST_TIMEOUT, "Request timeout")
                return
            except ValueError as e:
                self._send_error(conn, HTTPStatus.PAYLOAD_TOO_LARGE, str(e))
                return

            if raw_request is None:
                return

            try:
                request = self._parser.parse(raw_request, conn.address)
            except HTTPParseError as e:
                self._send_error(conn, e.status_code, str(e))
                return

            writer = ConnectionWriter(
                conn,
                version=request.version,
                keep_alive=request.is_keep_alive and self.config.keep_alive,
                buffer_size=self.config.buffer_size,
                server_name=self.config.server_name,
                head=request.method == "HEAD",
            )

            try:
                ctx = self.mux.serve(request, writer)
                if writer.hijacked:
                    logger.debug(f"[{conn.id}] Handed over to handler")
                    return
                writer.finish()
                logger.debug(
                    f"[{conn.id}] {request.method} {request.path} {writer.status}: "
                    f"{ctx.response.size} body bytes, {writer.bytes_sent} on the wire"
                )
            except ConnectionError as e:
                logger.debug(f"[{conn.id}] Client went away: {e}")
                return
            except Exception as e:
                logger.exception(f"[{conn.id}] Connection error: {e}")
                return

            if not writer.keep_alive:
                return
            conn.set_keep_alive()

    def _send_error(self, conn: Connection, status: int, message: str):
        """Answer errors that happen before a request reaches the mux."""
        writer = ConnectionWriter(conn, keep_alive=False, server_name=self.config.server_name)
        body = json.dumps({"error": message}).encode("utf-8")
        writer.header().set("Content-Type", "application/json")
        writer.header().set("Content-Length", str(len(body)))
        try:
            writer.write_header(status)
            writer.write(body)
            writer.finish()
        except ConnectionError as e:
            logger.debug(f"[{conn.id}] Could not send {status}: {e}")


def create_app(config: Optional[ServerConfig] = None) -> HTTPServer:
    """Build a server and configure logging from ``config``."""
    config = config or ServerConfig()
    setup_logging(config.log_level)
    return HTTPServer(config)
