"""
=============================================================================
REQUEST MULTIPLEXER
=============================================================================

Routes requests to handlers and runs the middleware chain around them.

=============================================================================
ROUTE PATTERNS
=============================================================================

1. STATIC PATHS: exact match

   Pattern: /users
   Matches: /users

2. PARAMETERS (:param): one path segment

   Pattern: /users/:id
   Matches: /users/123 → {"id": "123"}

3. WILDCARD (*param): the rest of the path, last segment only

   Pattern: /static/*filepath
   Matches: /static/css/site.css → {"filepath": "css/site.css"}

Patterns compile to anchored regexes with named groups:

    /users/:id/posts/:post_id  →  ^/users/(?P<id>[^/]+)/posts/(?P<post_id>[^/]+)$

First registered, first matched.

=============================================================================
DISPATCH
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   serve(request, writer)                                             │
    │     │                                                                │
    │     ├── ctx = Context(request, Response(writer))                     │
    │     ├── match route (or a handler that raises 404 / 405)             │
    │     ├── middleware chain → handler                                   │
    │     │                                                                │
    │     └── exception escaped the chain?                                 │
    │           └── error_handler(exc, ctx)                                │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Middleware runs for unmatched paths too, so a 404 still carries whatever
headers the middleware adds.

The error handler runs AFTER every middleware has unwound. Anything the
middleware put in the write path has been taken out again by then, so an
error body written there goes out as plain bytes.

=============================================================================
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple
import logging
import re

from .context import Context, HTTPError, MethodNotAllowedError, NotFoundError
from .handlers.static import StaticFileHandler
from .http.request import HTTPRequest
from .http.response import Response
from .http.writer import ResponseWriter
from .middleware.base import HandlerFunc, MiddlewareFunc, MiddlewarePipeline


logger = logging.getLogger(__name__)

ErrorHandler = Callable[[Exception, Context], None]

ALL_METHODS = ["GET", "POST", "PUT", "DELETE", "PATCH", "HEAD", "OPTIONS"]


@dataclass
class Route:
    """A URL pattern bound to a handler."""

    path: str
    method: Optional[str]            # None matches any method
    handler: HandlerFunc
    name: Optional[str] = None

    _pattern: Optional[re.Pattern] = field(default=None, repr=False)
    _param_names: List[str] = field(default_factory=list, repr=False)


@dataclass
class RouteMatch:
    route: Route
    params: Dict[str, str]


def compile_pattern(path: str) -> Tuple[re.Pattern, List[str]]:
    """
    Compile a route pattern into an anchored regex.

    Returns:
        (compiled regex, parameter names in order)
    """
    param_names: List[str] = []
    regex_parts = ["^"]

    for segment in path.split("/"):
        if not segment:
            continue

        regex_parts.append("/")

        if segment.startswith(":"):
            param_name = segment[1:]
            param_names.append(param_name)
            regex_parts.append(f"(?P<{param_name}>[^/]+)")
        elif segment.startswith("*"):
            param_name = segment[1:] or "wildcard"
            param_names.append(param_name)
            regex_parts.append(f"(?P<{param_name}>.*)")
            break
        else:
            regex_parts.append(re.escape(segment))

    if len(regex_parts) == 1:
        regex_parts.append("/")
    regex_parts.append("$")
    return re.compile("".join(regex_parts)), param_names


def default_error_handler(exc: Exception, ctx: Context) -> None:
    """
    Write a JSON error body.

    HTTPError keeps its status and message. Anything else is logged and
    answered with 500. Once the response is committed nothing more can be
    said to the client, so the error is only logged.
    """
    if isinstance(exc, HTTPError):
        code, message = exc.code, exc.message
    else:
        logger.exception(
            f"Unhandled error in {ctx.request.method} {ctx.request.path}: {exc}",
            exc_info=exc,
        )
        code, message = 500, "Internal Server Error"

    if ctx.response.committed:
        logger.warning(
            f"{ctx.request.method} {ctx.request.path}: error after response "
            f"was committed: {exc}"
        )
        return

    if isinstance(exc, MethodNotAllowedError):
        ctx.response.header().set("Allow", ", ".join(exc.allowed))

    ctx.json(code, {"error": message})


class ServeMux:
    """
    Router plus middleware chain.

    Usage:
        mux = ServeMux()
        mux.use(LoggingMiddleware(), GzipMiddleware())

        @mux.get("/users/:id")
        def get_user(ctx):
            ctx.json(200, {"id": ctx.param("id")})

        mux.static("/static", "./public")

        mux.serve(request, writer)
    """

    def __init__(self, error_handler: Optional[ErrorHandler] = None):
        self._routes: List[Route] = []
        self._named_routes: Dict[str, Route] = {}
        self._middleware = MiddlewarePipeline()
        self.error_handler: ErrorHandler = error_handler or default_error_handler

    # =========================================================================
    # MIDDLEWARE
    # =========================================================================

    def use(self, *middleware: MiddlewareFunc) -> "ServeMux":
        """Append middleware. The first added runs outermost."""
        self._middleware.use(*middleware)
        return self

    # =========================================================================
    # ROUTE REGISTRATION
    # =========================================================================

    def add_route(
        self,
        path: str,
        handler: HandlerFunc,
        method: Optional[str] = None,
        name: Optional[str] = None,
    ) -> Route:
        pattern, param_names = compile_pattern(path)
        route = Route(
            path=path,
            method=method.upper() if method else None,
            handler=handler,
            name=name,
            _pattern=pattern,
            _param_names=param_names,
        )
        self._routes.append(route)
        if name:
            self._named_routes[name] = route
        return route

    def route(
        self,
        path: str,
        method: Optional[str] = None,
        name: Optional[str] = None,
    ) -> Callable[[HandlerFunc], HandlerFunc]:
        """Decorator form of add_route()."""
        def decorator(handler: HandlerFunc) -> HandlerFunc:
            self.add_route(path, handler, method, name)
            return handler
        return decorator

    def get(self, path: str, name: Optional[str] = None):
        return self.route(path, "GET", name)

    def post(self, path: str, name: Optional[str] = None):
        return self.route(path, "POST", name)

    def put(self, path: str, name: Optional[str] = None):
        return self.route(path, "PUT", name)

    def delete(self, path: str, name: Optional[str] = None):
        return self.route(path, "DELETE", name)

    def static(self, prefix: str, root: str, **options: Any) -> Route:
        """
        Serve files under ``root`` at ``prefix``.

            mux.static("/static", "./public")
            # GET /static/css/site.css → ./public/css/site.css
        """
        handler = StaticFileHandler(root, **options)
        return self.add_route(prefix.rstrip("/") + "/*filepath", handler, "GET")

    # =========================================================================
    # MATCHING
    # =========================================================================

    def match(self, method: str, path: str) -> Optional[RouteMatch]:
        """Find the first route matching ``method`` and ``path``."""
        path = "/" + path.strip("/") if path != "/" else "/"
        method = method.upper()

        for route in self._routes:
            # HEAD is served by GET routes
            if route.method and route.method != method and not (
                method == "HEAD" and route.method == "GET"
            ):
                continue
            if route._pattern:
                m = route._pattern.match(path)
                if m:
                    return RouteMatch(route=route, params=m.groupdict())
        return None

    def get_allowed_methods(self, path: str) -> List[str]:
        """Methods that have a route for ``path`` (for 405 responses)."""
        path = "/" + path.strip("/") if path != "/" else "/"
        methods = set()
        for route in self._routes:
            if route._pattern and route._pattern.match(path):
                if not route.method:
                    return list(ALL_METHODS)
                methods.add(route.method)
        return sorted(methods)

    def url_for(self, name: str, **params: str) -> Optional[str]:
        route = self._named_routes.get(name)
        if not route:
            return None
        url = route.path
        for param_name, value in params.items():
            url = url.replace(f":{param_name}", value)
            url = url.replace(f"*{param_name}", value)
        return url

    def routes(self) -> List[Route]:
        return list(self._routes)

    # =========================================================================
    # DISPATCH
    # =========================================================================

    def _resolve(self, ctx: Context) -> HandlerFunc:
        request = ctx.request
        match = self.match(request.method, request.path)
        if match:
            ctx.path_params = match.params
            return match.route.handler

        allowed = self.get_allowed_methods(request.path)

        def not_routed(ctx: Context) -> None:
            if allowed:
                raise MethodNotAllowedError(allowed)
            raise NotFoundError(f"No route matches {request.path}")

        return not_routed

    def serve(self, request: HTTPRequest, writer: ResponseWriter) -> Context:
        """
        Handle one request, writing the response to ``writer``.

        Returns:
            The request Context (its Response carries status and size).
        """
        ctx = Context(request, Response(writer))
        handler = self._middleware.wrap(self._resolve(ctx))
        try:
            handler(ctx)
        except Exception as exc:
            self.error_handler(exc, ctx)
        return ctx

    def __call__(self, request: HTTPRequest, writer: ResponseWriter) -> Context:
        return self.serve(request, writer)
