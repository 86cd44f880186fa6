"""
=============================================================================
HTTP REQUEST PARSER
=============================================================================

Parses raw HTTP/1.1 request bytes into structured HTTPRequest objects.
Implements the parts of RFC 7230 (HTTP/1.1 Message Syntax) a blocking
server needs.

=============================================================================
HTTP REQUEST ANATOMY
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                     HTTP REQUEST STRUCTURE                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │    GET /assets/app.js?v=3 HTTP/1.1\r\n        ← request line        │
    │    Host: example.com\r\n                      ┐                      │
    │    Accept-Encoding: gzip, deflate, br\r\n     │ headers              │
    │    Connection: keep-alive\r\n                 ┘                      │
    │    \r\n                                       ← separator           │
    │    [body, Content-Length bytes]               ← optional body       │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

The header the compression middleware cares about is Accept-Encoding.
Headers keep every value of a repeated name; get_header() returns the
first one:

    Accept-Encoding: gzip, br
    Accept-Encoding: identity    →  get_header("accept-encoding") == "gzip, br"

=============================================================================
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple
from urllib.parse import parse_qs, unquote, urlparse
import re

from .headers import Headers


class HTTPParseError(Exception):
    """
    Raised when HTTP request parsing fails.

    Carries the status code that should be returned to the client:

        400 Bad Request                - Malformed request syntax
        405 Method Not Allowed         - Unknown method
        413 Payload Too Large          - Request exceeds size limit
        505 HTTP Version Not Supported - Unknown HTTP version
    """

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


@dataclass
class HTTPRequest:
    """
    A parsed HTTP request.

    Attributes:
        method:         GET, POST, ...
        path:           Request path without the query string
        version:        "HTTP/1.1" or "HTTP/1.0"
        headers:        Case-insensitive multi-valued Headers map
        query_params:   "?a=1&a=2" → {"a": ["1", "2"]}
        body:           Raw body bytes
        client_address: (ip, port) of the peer
    """

    method: str
    path: str
    version: str = "HTTP/1.1"

    headers: Headers = field(default_factory=Headers)
    query_params: Dict[str, List[str]] = field(default_factory=dict)
    body: bytes = b""

    client_address: Tuple[str, int] = ("", 0)

    def __post_init__(self):
        # Tests and callers may pass a plain dict
        if not isinstance(self.headers, Headers):
            self.headers = Headers(self.headers)

    @property
    def content_length(self) -> int:
        try:
            return int(self.headers.get("Content-Length", "0"))
        except ValueError:
            return 0

    @property
    def is_keep_alive(self) -> bool:
        """
        Whether the connection should stay open after this request.

        HTTP/1.1 keeps alive unless "Connection: close" is sent.
        HTTP/1.0 closes unless "Connection: keep-alive" is sent.
        """
        connection = self.get_header("connection").lower()
        if self.version == "HTTP/1.1":
            return connection != "close"
        return connection == "keep-alive"

    def get_header(self, name: str, default: str = "") -> str:
        """
        Get the first value of a header (case-insensitive lookup).

        Use ``headers.values(name)`` for every value of a repeated header.
        """
        return self.headers.get(name, default)

    def get_query(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """First value of a query parameter, or ``default``."""
        values = self.query_params.get(name, [])
        return values[0] if values else default


class RequestParser:
    """
    Parses raw HTTP request bytes into HTTPRequest objects.

    =========================================================================
    REGEX PATTERNS
    =========================================================================

    REQUEST_LINE_PATTERN: ^([A-Z]+) ([^ ]+) (HTTP/\\d\\.\\d)$
        METHOD SP REQUEST-URI SP HTTP-VERSION

    HEADER_PATTERN: ^([^:]+):\\s*(.*)$
        field-name ":" OWS field-value

    =========================================================================
    SECURITY
    =========================================================================

    - max_request_size caps memory per request (413)
    - paths containing ".." are rejected (400)
    - the body is cut to exactly Content-Length

    =========================================================================
    """

    VALID_METHODS = {
        "GET", "POST", "PUT", "DELETE", "PATCH",
        "HEAD", "OPTIONS", "TRACE", "CONNECT",
    }

    REQUEST_LINE_PATTERN = re.compile(r"^([A-Z]+) ([^ ]+) (HTTP/\d\.\d)$")
    HEADER_PATTERN = re.compile(r"^([^:]+):\s*(.*)$")

    def __init__(self, max_request_size: int = 10 * 1024 * 1024):
        self.max_request_size = max_request_size

    def parse(
        self,
        data: bytes,
        client_address: Tuple[str, int] = ("", 0)
    ) -> HTTPRequest:
        """
        Parse raw HTTP request data into an HTTPRequest object.

        Args:
            data: Raw request bytes (headers and body).
            client_address: Peer (ip, port).

        Returns:
            Parsed HTTPRequest.

        Raises:
            HTTPParseError: If the request is malformed.
        """
        if len(data) > self.max_request_size:
            raise HTTPParseError(
                f"Request too large: {len(data)} bytes",
                status_code=413,
            )

        header_end = data.find(b"\r\n\r\n")
        if header_end == -1:
            raise HTTPParseError("Incomplete request: no header terminator")

        header_section = data[:header_end].decode("utf-8", errors="replace")
        body = data[header_end + 4:]

        lines = header_section.split("\r\n")
        method, path, query_params, version = self._parse_request_line(lines[0])
        headers = self._parse_headers(lines[1:])

        try:
            content_length = int(headers.get("Content-Length", "0"))
        except ValueError:
            raise HTTPParseError("Invalid Content-Length header")
        if len(body) < content_length:
            raise HTTPParseError(
                f"Incomplete body: expected {content_length} bytes, got {len(body)}"
            )

        return HTTPRequest(
            method=method,
            path=path,
            version=version,
            headers=headers,
            query_params=query_params,
            body=body[:content_length],
            client_address=client_address,
        )

    def _parse_request_line(
        self,
        line: str
    ) -> Tuple[str, str, Dict[str, List[str]], str]:
        match = self.REQUEST_LINE_PATTERN.match(line)
        if not match:
            raise HTTPParseError(f"Invalid request line: {line}")

        method, uri, version = match.groups()

        if method not in self.VALID_METHODS:
            raise HTTPParseError(f"Invalid method: {method}", status_code=405)

        if version not in ("HTTP/1.0", "HTTP/1.1"):
            raise HTTPParseError(
                f"Unsupported HTTP version: {version}",
                status_code=505,
            )

        parsed = urlparse(uri)
        path = unquote(parsed.path) or "/"
        query_params = parse_qs(parsed.query, keep_blank_values=True)

        # "GET /../../etc/passwd" must never escape a document root
        if ".." in path:
            raise HTTPParseError("Invalid path: contains ..", status_code=400)

        return method, path, query_params, version

    def _parse_headers(self, lines: List[str]) -> Headers:
        """
        Parse header lines into a Headers map.

        Repeated names are kept as separate values. Lines starting with
        whitespace continue the previous header (obsolete line folding).
        """
        headers = Headers()
        current_name: Optional[str] = None

        for line in lines:
            if not line:
                continue

            if line[0] in (" ", "\t"):
                if current_name is not None:
                    values = headers.values(current_name)
                    values[-1] = f"{values[-1]} {line.strip()}"
                    headers.delete(current_name)
                    for value in values:
                        headers.add(current_name, value)
                continue

            match = self.HEADER_PATTERN.match(line)
            if not match:
                continue  # lenient: skip malformed lines

            name, value = match.groups()
            current_name = name.strip()
            headers.add(current_name, value.strip())

        return headers


def parse_request(
    data: bytes,
    client_address: Tuple[str, int] = ("", 0),
    max_size: int = 10 * 1024 * 1024
) -> HTTPRequest:
    """Parse one request with a throwaway RequestParser."""
    return RequestParser(max_request_size=max_size).parse(data, client_address)
