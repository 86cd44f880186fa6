"""
=============================================================================
BASE MIDDLEWARE INTERFACE
=============================================================================

Middleware wraps the handler chain. It runs code before the handler, calls
``next(ctx)`` to continue, and runs code after it returns:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   ctx ──► Logging ──► Gzip ──► handler                              │
    │            before     before    writes to ctx.response              │
    │                                                                      │
    │            after  ◄── after  ◄──┘                                    │
    │            log        close the compressor                          │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Nothing is returned along the chain. The handler writes into
``ctx.response`` as it goes, and middleware that wants to see or change
the body decorates ``ctx.response.writer`` before calling next.

Exceptions raised by the handler travel back out through every
middleware's ``after`` code (use try/finally where cleanup is needed) and
reach the router's error handler.

=============================================================================
SKIPPERS
=============================================================================

Configurable middleware takes a skipper, a predicate on the context. When
it returns True for a request, the middleware calls next and does nothing
else:

    GzipMiddleware(skipper=lambda ctx: ctx.request.path.startswith("/ws"))

=============================================================================
"""

from abc import ABC, abstractmethod
from typing import Callable, Iterable, List
import logging

from ..context import Context


logger = logging.getLogger(__name__)


HandlerFunc = Callable[[Context], None]
MiddlewareFunc = Callable[[Context, HandlerFunc], None]
Skipper = Callable[[Context], bool]


def default_skipper(ctx: Context) -> bool:
    """Never skip."""
    return False


def prefix_skipper(prefixes: Iterable[str]) -> Skipper:
    """
    Skipper that matches request paths starting with any of ``prefixes``.

        skip = prefix_skipper(["/ws", "/metrics"])
        skip(ctx)  # True for /ws/chat
    """
    prefixes = tuple(p for p in prefixes if p)

    def skipper(ctx: Context) -> bool:
        return bool(prefixes) and ctx.request.path.startswith(prefixes)

    return skipper


class Middleware(ABC):
    """
    Base class for middleware.

    Subclasses implement ``__call__(ctx, next)``. Calling ``next(ctx)``
    continues the chain; not calling it short-circuits the request.
    """

    @abstractmethod
    def __call__(self, ctx: Context, next: HandlerFunc) -> None:
        pass

    @property
    def name(self) -> str:
        return self.__class__.__name__


class MiddlewarePipeline:
    """
    Chains middleware around a final handler.

    The first middleware added is the outermost:

        pipeline = MiddlewarePipeline()
        pipeline.use(LoggingMiddleware(), GzipMiddleware())
        handler = pipeline.wrap(route_handler)

        handler(ctx)   # Logging → Gzip → route_handler
    """

    def __init__(self):
        self._middleware: List[MiddlewareFunc] = []

    def add(self, middleware: MiddlewareFunc) -> "MiddlewarePipeline":
        self._middleware.append(middleware)
        logger.debug(f"Added middleware: {_middleware_name(middleware)}")
        return self

    def use(self, *middleware: MiddlewareFunc) -> "MiddlewarePipeline":
        for mw in middleware:
            self.add(mw)
        return self

    def wrap(self, handler: HandlerFunc) -> HandlerFunc:
        """Wrap ``handler`` with every middleware, first-added outermost."""
        current = handler
        for middleware in reversed(self._middleware):
            current = self._create_wrapped_handler(middleware, current)
        return current

    def _create_wrapped_handler(
        self,
        middleware: MiddlewareFunc,
        next_handler: HandlerFunc
    ) -> HandlerFunc:
        def wrapped(ctx: Context) -> None:
            middleware(ctx, next_handler)
        return wrapped

    def __len__(self) -> int:
        return len(self._middleware)

    def __iter__(self):
        return iter(self._middleware)


def _middleware_name(middleware: MiddlewareFunc) -> str:
    if isinstance(middleware, Middleware):
        return middleware.name
    return getattr(middleware, "__name__", type(middleware).__name__)
