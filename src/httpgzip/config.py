"""
=============================================================================
CONFIGURATION
=============================================================================

Dataclass configuration for the server and the gzip middleware.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    CONFIGURATION HIERARCHY                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   Priority (highest to lowest):                                     │
    │                                                                      │
    │   1. Command-line arguments                                         │
    │      └── python -m httpgzip --level 9                              │
    │                                                                      │
    │   2. Environment variables                                          │
    │      └── HTTP_GZIP_LEVEL=9 python -m httpgzip                      │
    │                                                                      │
    │   3. Default values (in these dataclasses)                          │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Any, List, Mapping, Optional

from .codec import DEFAULT_COMPRESSION, validate_level


LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


@dataclass
class GzipConfig:
    """
    Settings for GzipMiddleware.

    Attributes:
        level: Compression level, -2 (Huffman only), -1 (zlib default)
            or 0 (store) to 9 (best compression).
        skip_paths: Path prefixes that are never compressed.
    """

    level: int = DEFAULT_COMPRESSION
    skip_paths: List[str] = field(default_factory=list)

    @classmethod
    def from_env(cls) -> "GzipConfig":
        """
        HTTP_GZIP_LEVEL   Compression level (default: -1)
        HTTP_GZIP_SKIP    Comma-separated path prefixes to skip
        """
        skip = os.getenv("HTTP_GZIP_SKIP", "")
        return cls(
            level=int(os.getenv("HTTP_GZIP_LEVEL", str(DEFAULT_COMPRESSION))),
            skip_paths=[p.strip() for p in skip.split(",") if p.strip()],
        )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "GzipConfig":
        """
        Build from a mapping, e.g. a parsed config file section:

            GzipConfig.from_dict({"level": 5, "skip_paths": ["/ws"]})
        """
        return cls(
            level=int(data.get("level", DEFAULT_COMPRESSION)),
            skip_paths=list(data.get("skip_paths", [])),
        )

    def validate(self) -> None:
        """
        Raises:
            CompressionLevelError: If ``level`` is out of range.
        """
        validate_level(self.level)


@dataclass
class ServerConfig:
    """
    Configuration for the HTTP server.

    NETWORK SETTINGS
    - host, port, backlog, buffer_size, timeout

    HTTP SETTINGS
    - keep_alive, keep_alive_timeout, max_request_size

    STATIC FILES
    - static_dir, static_url_prefix

    LOGGING
    - log_level, log_format
    """

    host: str = "127.0.0.1"
    """IP address to bind to. "0.0.0.0" listens on all interfaces."""

    port: int = 8080
    """Port to listen on. 0 picks a free port (see HTTPServer.address)."""

    backlog: int = 128
    """Maximum number of queued, not yet accepted connections."""

    buffer_size: int = 8192
    """
    Receive size per recv() call, and how many response bytes are
    buffered before a send.
    """

    timeout: Optional[float] = 30.0
    """Socket timeout for the first request on a connection."""

    keep_alive: bool = True
    """Allow several requests per TCP connection."""

    keep_alive_timeout: float = 5.0
    """Idle time after which a keep-alive connection is closed."""

    max_request_size: int = 10 * 1024 * 1024
    """Largest accepted request (headers plus body) in bytes."""

    static_dir: Optional[str] = None
    """Directory served under static_url_prefix, if set."""

    static_url_prefix: str = "/static"

    log_level: str = "INFO"
    log_format: str = "text"
    """Access log format: 'text' or 'json'."""

    server_name: str = "httpgzip/1.0"
    """Value of the Server response header."""

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """
        HTTP_HOST        Server host (default: 127.0.0.1)
        HTTP_PORT        Server port (default: 8080)
        HTTP_TIMEOUT     Request timeout in seconds (default: 30)
        HTTP_STATIC_DIR  Static files directory (default: None)
        HTTP_LOG_LEVEL   Logging level (default: INFO)
        HTTP_LOG_FORMAT  Access log format (default: text)
        """
        return cls(
            host=os.getenv("HTTP_HOST", "127.0.0.1"),
            port=int(os.getenv("HTTP_PORT", "8080")),
            timeout=float(os.getenv("HTTP_TIMEOUT", "30")),
            static_dir=os.getenv("HTTP_STATIC_DIR"),
            log_level=os.getenv("HTTP_LOG_LEVEL", "INFO"),
            log_format=os.getenv("HTTP_LOG_FORMAT", "text"),
        )

    def validate(self) -> None:
        if not 0 <= self.port < 65536:
            raise ValueError(f"Invalid port: {self.port}. Must be 0-65535.")

        if self.buffer_size < 1024:
            raise ValueError("buffer_size must be >= 1024")

        if self.timeout is not None and self.timeout <= 0:
            raise ValueError("timeout must be > 0")

        if self.log_format not in ("text", "json"):
            raise ValueError(f"log_format must be 'text' or 'json', not {self.log_format!r}")


def setup_logging(level: str = "INFO") -> None:
    """Configure the root logger and the package logger."""
    numeric = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=numeric,
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT,
    )
    logging.getLogger("httpgzip").setLevel(numeric)
