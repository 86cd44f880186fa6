"""
=============================================================================
ACCESS LOG MIDDLEWARE
=============================================================================

One log line per request, on the "httpgzip.access" logger:

    text:  127.0.0.1 - - [19/Oct/2026:10:00:00 +0000] "GET /" 200 5120 1.83ms
    json:  {"request_id": "3f2a9c1e", "method": "GET", "path": "/", ...}

The size logged is ``ctx.response.size``: the body bytes the handler
wrote. When compression sits further in, that is the UNCOMPRESSED size.

Put it first so it times and sees everything:

    mux.use(LoggingMiddleware(), GzipMiddleware())

=============================================================================
"""

import json
import logging
import time
import uuid
from dataclasses import asdict, dataclass
from typing import Iterable, Optional

from ..context import Context
from .base import HandlerFunc, Middleware


logger = logging.getLogger("httpgzip.access")


@dataclass
class RequestLog:
    """A structured access log entry."""

    request_id: str
    method: str
    path: str
    query: str
    client_ip: str
    user_agent: str
    status_code: int
    size: int
    duration_ms: float
    timestamp: str

    def to_dict(self) -> dict:
        entry = asdict(self)
        entry["duration_ms"] = round(self.duration_ms, 2)
        return entry

    def to_text(self) -> str:
        """Apache-style line."""
        return (
            f'{self.client_ip} - - [{self.timestamp}] '
            f'"{self.method} {self.path}" {self.status_code} '
            f'{self.size} {self.duration_ms:.2f}ms'
        )


class LoggingMiddleware(Middleware):
    """
    Request logging middleware.

    Usage:
        mux.use(LoggingMiddleware())                       # text
        mux.use(LoggingMiddleware(log_format="json"))      # for aggregators
        mux.use(LoggingMiddleware(skip_paths=["/health"])) # noisy probes
    """

    def __init__(
        self,
        log_format: str = "text",
        include_request_id: bool = True,
        log_level: int = logging.INFO,
        skip_paths: Optional[Iterable[str]] = None,
    ):
        """
        Args:
            log_format: "text" or "json".
            include_request_id: Add an X-Request-ID response header.
            log_level: Level the access lines are logged at.
            skip_paths: Exact paths that are not logged.
        """
        self.log_format = log_format
        self.include_request_id = include_request_id
        self.log_level = log_level
        self.skip_paths = set(skip_paths or [])

    def __call__(self, ctx: Context, next: HandlerFunc) -> None:
        request = ctx.request
        request_id = str(uuid.uuid4())[:8]

        if self.include_request_id:
            ctx.response.header().set("X-Request-ID", request_id)

        start_time = time.time()
        try:
            next(ctx)
        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            logger.error(
                f"[{request_id}] Request failed: {request.method} {request.path} "
                f"- {type(e).__name__}: {e} ({duration_ms:.2f}ms)"
            )
            raise

        duration_ms = (time.time() - start_time) * 1000

        if request.path in self.skip_paths:
            return

        entry = RequestLog(
            request_id=request_id,
            method=request.method,
            path=request.path,
            query=str(request.query_params) if request.query_params else "",
            client_ip=request.client_address[0],
            user_agent=request.get_header("User-Agent", "-"),
            status_code=ctx.response.status,
            size=ctx.response.size,
            duration_ms=duration_ms,
            timestamp=time.strftime("%d/%b/%Y:%H:%M:%S %z"),
        )

        if self.log_format == "json":
            logger.log(self.log_level, json.dumps(entry.to_dict()))
        else:
            logger.log(self.log_level, entry.to_text())
