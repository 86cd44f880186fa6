"""
=============================================================================
HTTP PROTOCOL
=============================================================================

The HTTP/1.1 pieces the server is built from:

    request.py       raw bytes → HTTPRequest
    headers.py       case-insensitive multi-valued header map
    writer.py        ResponseWriter interface, Flusher / Hijacker
                     capabilities, ConnectionWriter, ResponseRecorder
    response.py      Response: status, size, swappable writer
    sniff.py         Content-Type detection from body bytes
    status_codes.py  status codes, reason phrases, body rules
    mime_types.py    Content-Type by file extension

    REQUEST:                          RESPONSE:
    ─────────                         ──────────
    GET /path HTTP/1.1\\r\\n            HTTP/1.1 200 OK\\r\\n
    Header: Value\\r\\n                 Header: Value\\r\\n
    \\r\\n                              \\r\\n
    [body]                            [body]

=============================================================================
"""

from .headers import Headers, canonical_header_name, format_http_date
from .mime_types import get_content_type, get_mime_type
from .request import HTTPParseError, HTTPRequest, RequestParser, parse_request
from .response import Response
from .sniff import detect_content_type
from .status_codes import HTTPStatus, body_allowed, status_phrase
from .writer import (
    BodyNotAllowedError,
    CapabilityNotSupported,
    ConnectionWriter,
    Flusher,
    FlushNotSupported,
    Hijacker,
    HijackError,
    HijackNotSupported,
    ResponseRecorder,
    ResponseWriter,
)

__all__ = [
    "Headers",
    "canonical_header_name",
    "format_http_date",

    "HTTPRequest",
    "RequestParser",
    "HTTPParseError",
    "parse_request",

    "Response",
    "ResponseWriter",
    "ConnectionWriter",
    "ResponseRecorder",
    "Flusher",
    "Hijacker",
    "CapabilityNotSupported",
    "FlushNotSupported",
    "HijackNotSupported",
    "HijackError",
    "BodyNotAllowedError",

    "detect_content_type",
    "HTTPStatus",
    "body_allowed",
    "status_phrase",
    "get_mime_type",
    "get_content_type",
]
