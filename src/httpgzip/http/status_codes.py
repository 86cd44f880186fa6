"""
=============================================================================
HTTP STATUS CODES
=============================================================================

The status codes this package produces or reasons about, with their reason
phrases for the status line.

Two ranges matter to the compression layer:

    1xx, 204, 304   No body is allowed, so nothing may be compressed and
                    no Content-Encoding may be claimed.
    everything else A body may follow.

=============================================================================
"""

from enum import IntEnum


class HTTPStatus(IntEnum):
    """
    HTTP status codes usable as plain integers.

        >>> HTTPStatus.NO_CONTENT == 204
        True
        >>> HTTPStatus.NO_CONTENT.phrase
        'No Content'
    """

    CONTINUE = 100
    SWITCHING_PROTOCOLS = 101

    OK = 200
    CREATED = 201
    ACCEPTED = 202
    NO_CONTENT = 204
    PARTIAL_CONTENT = 206

    MOVED_PERMANENTLY = 301
    FOUND = 302
    NOT_MODIFIED = 304

    BAD_REQUEST = 400
    UNAUTHORIZED = 401
    FORBIDDEN = 403
    NOT_FOUND = 404
    METHOD_NOT_ALLOWED = 405
    REQUEST_TIMEOUT = 408
    PAYLOAD_TOO_LARGE = 413

    INTERNAL_SERVER_ERROR = 500
    NOT_IMPLEMENTED = 501
    SERVICE_UNAVAILABLE = 503
    HTTP_VERSION_NOT_SUPPORTED = 505

    @property
    def phrase(self) -> str:
        """Reason phrase for the status line ("HTTP/1.1 404 Not Found")."""
        return _STATUS_PHRASES.get(self, "Unknown")

    @property
    def is_error(self) -> bool:
        return self >= 400


def status_phrase(code: int) -> str:
    """Reason phrase for any integer code, known or not."""
    try:
        return HTTPStatus(code).phrase
    except ValueError:
        return "Unknown"


def body_allowed(code: int) -> bool:
    """
    Whether a response with this status may carry a body (RFC 7230 3.3.3).

    1xx (informational), 204 (No Content) and 304 (Not Modified) never do.
    """
    if 100 <= code < 200:
        return False
    return code not in (HTTPStatus.NO_CONTENT, HTTPStatus.NOT_MODIFIED)


_STATUS_PHRASES = {
    HTTPStatus.CONTINUE: "Continue",
    HTTPStatus.SWITCHING_PROTOCOLS: "Switching Protocols",
    HTTPStatus.OK: "OK",
    HTTPStatus.CREATED: "Created",
    HTTPStatus.ACCEPTED: "Accepted",
    HTTPStatus.NO_CONTENT: "No Content",
    HTTPStatus.PARTIAL_CONTENT: "Partial Content",
    HTTPStatus.MOVED_PERMANENTLY: "Moved Permanently",
    HTTPStatus.FOUND: "Found",
    HTTPStatus.NOT_MODIFIED: "Not Modified",
    HTTPStatus.BAD_REQUEST: "Bad Request",
    HTTPStatus.UNAUTHORIZED: "Unauthorized",
    HTTPStatus.FORBIDDEN: "Forbidden",
    HTTPStatus.NOT_FOUND: "Not Found",
    HTTPStatus.METHOD_NOT_ALLOWED: "Method Not Allowed",
    HTTPStatus.REQUEST_TIMEOUT: "Request Timeout",
    HTTPStatus.PAYLOAD_TOO_LARGE: "Payload Too Large",
    HTTPStatus.INTERNAL_SERVER_ERROR: "Internal Server Error",
    HTTPStatus.NOT_IMPLEMENTED: "Not Implemented",
    HTTPStatus.SERVICE_UNAVAILABLE: "Service Unavailable",
    HTTPStatus.HTTP_VERSION_NOT_SUPPORTED: "HTTP Version Not Supported",
}
