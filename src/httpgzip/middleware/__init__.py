"""
=============================================================================
MIDDLEWARE
=============================================================================

Code that runs around every handler:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   Incoming Request                                                   │
    │        │                                                             │
    │        ▼                                                             │
    │   ┌──────────────────┐                                              │
    │   │ LoggingMiddleware │ ──► times the request, logs one line         │
    │   └────────┬─────────┘                                              │
    │            ▼                                                         │
    │   ┌──────────────────┐                                              │
    │   │ GzipMiddleware    │ ──► puts a compressor in the write path      │
    │   └────────┬─────────┘                                              │
    │            ▼                                                         │
    │   ┌──────────────────┐                                              │
    │   │   Your Handler    │ ──► writes the response                      │
    │   └──────────────────┘                                              │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

from .base import (
    HandlerFunc,
    Middleware,
    MiddlewareFunc,
    MiddlewarePipeline,
    Skipper,
    default_skipper,
    prefix_skipper,
)
from .gzip import GzipMiddleware, GzipOptions, GzipResponseWriter, gzip_middleware
from .logger import LoggingMiddleware

__all__ = [
    "HandlerFunc",
    "Middleware",
    "MiddlewareFunc",
    "MiddlewarePipeline",
    "Skipper",
    "default_skipper",
    "prefix_skipper",

    "GzipMiddleware",
    "GzipOptions",
    "GzipResponseWriter",
    "gzip_middleware",
    "LoggingMiddleware",
]
