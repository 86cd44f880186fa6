"""
=============================================================================
REQUEST CONTEXT
=============================================================================

Everything a handler or middleware needs for one request, in one object:

    ctx.request        the parsed HTTPRequest
    ctx.response       the Response (status, size, swappable writer)
    ctx.path_params    values captured by the route pattern

Handlers do not return a response. They write it, which lets a body be
streamed out piece by piece and lets middleware sit in the write path:

    def hello(ctx):
        ctx.string(200, "hello")

    def events(ctx):
        ctx.stream(200, "text/event-stream", (f"data: {i}\\n\\n" for i in range(3)))

Handlers signal failures by raising HTTPError. Whatever is raised travels
back up through the middleware chain to the router's error handler.

=============================================================================
"""

import json as _json
from typing import Any, Dict, Iterable, List, Optional, Union

from .http.request import HTTPRequest
from .http.response import Response
from .http.status_codes import status_phrase


class HTTPError(Exception):
    """
    An error with an HTTP status code attached.

    Attributes:
        code: Status code to answer with.
        message: Client-facing message (defaults to the reason phrase).
    """

    def __init__(self, code: int, message: Optional[str] = None):
        self.code = code
        self.message = message or status_phrase(code)
        super().__init__(f"code={code}, message={self.message}")


class NotFoundError(HTTPError):
    def __init__(self, message: Optional[str] = None):
        super().__init__(404, message)


class MethodNotAllowedError(HTTPError):
    def __init__(self, allowed: List[str]):
        super().__init__(405)
        self.allowed = allowed


class Context:
    """Per-request state passed through middleware to the handler."""

    def __init__(
        self,
        request: HTTPRequest,
        response: Response,
        path_params: Optional[Dict[str, str]] = None,
    ):
        self.request = request
        self.response = response
        self.path_params = path_params or {}

    def param(self, name: str, default: str = "") -> str:
        return self.path_params.get(name, default)

    # =========================================================================
    # RESPONSE HELPERS
    # =========================================================================

    def blob(self, code: int, content_type: str, data: bytes) -> None:
        """Send ``data`` with an explicit Content-Type."""
        self.response.header().set("Content-Type", content_type)
        self.response.write_header(code)
        self.response.write(data)

    def string(self, code: int, text: str) -> None:
        self.blob(code, "text/plain; charset=utf-8", text.encode("utf-8"))

    def html(self, code: int, text: str) -> None:
        self.blob(code, "text/html; charset=utf-8", text.encode("utf-8"))

    def json(self, code: int, data: Any, indent: Optional[int] = None) -> None:
        body = _json.dumps(data, indent=indent, default=str)
        self.blob(code, "application/json", body.encode("utf-8"))

    def no_content(self, code: int = 204) -> None:
        """Send the status and no body."""
        self.response.write_header(code)

    def stream(
        self,
        code: int,
        content_type: Optional[str],
        chunks: Iterable[Union[bytes, str]],
    ) -> None:
        """
        Write ``chunks`` one by one, flushing after each.

        With ``content_type`` None the type is left to whatever sits in the
        write path (content sniffing, for instance).
        """
        if content_type:
            self.response.header().set("Content-Type", content_type)
        self.response.write_header(code)
        for chunk in chunks:
            if isinstance(chunk, str):
                chunk = chunk.encode("utf-8")
            self.response.write(chunk)
            self.response.flush()

    def __repr__(self) -> str:
        return f"Context({self.request.method} {self.request.path}, {self.response!r})"
