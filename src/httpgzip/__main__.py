"""
=============================================================================
COMMAND LINE ENTRY POINT
=============================================================================

    python -m httpgzip                          # demo server on :8080
    python -m httpgzip --level 9                # best compression
    python -m httpgzip --static ./public        # also serve files
    python -m httpgzip --skip-prefix /events    # never compress /events

Try it:

    curl -s --compressed -v http://127.0.0.1:8080/
    curl -s -H 'Accept-Encoding: gzip' http://127.0.0.1:8080/stream | gunzip

=============================================================================
"""

import argparse
import os
import sys
import time

from .codec import BEST_COMPRESSION, HUFFMAN_ONLY
from .config import GzipConfig, ServerConfig, setup_logging
from .middleware import GzipMiddleware, LoggingMiddleware
from .server import HTTPServer


INDEX_HTML = """<!DOCTYPE html>
<html>
<head><title>httpgzip</title></head>
<body>
  <h1>httpgzip</h1>
  <p>Responses on this server are gzip-compressed when the client sends
  <code>Accept-Encoding: gzip</code>.</p>
  <ul>
    <li><a href="/">/</a> this page</li>
    <li><a href="/stream">/stream</a> one line per second, flushed as it goes</li>
    <li><a href="/empty">/empty</a> 204 No Content, never encoded</li>
  </ul>
</body>
</html>
"""


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python -m httpgzip",
        description="HTTP server with streaming gzip response compression",
    )
    parser.add_argument(
        "--host", "-H",
        default="127.0.0.1",
        help="Host to bind to (default: 127.0.0.1)"
    )
    parser.add_argument(
        "--port", "-p",
        type=int,
        default=8080,
        help="Port to listen on (default: 8080)"
    )
    parser.add_argument(
        "--level",
        type=int,
        default=None,
        help=f"Compression level {HUFFMAN_ONLY}..{BEST_COMPRESSION} "
             "(default: HTTP_GZIP_LEVEL or -1)"
    )
    parser.add_argument(
        "--skip-prefix",
        action="append",
        default=[],
        metavar="PREFIX",
        help="Do not compress paths starting with PREFIX (repeatable)"
    )
    parser.add_argument(
        "--static", "-s",
        default=None,
        help="Directory to serve under /static"
    )
    parser.add_argument(
        "--log-level", "-l",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="INFO",
        help="Logging level (default: INFO)"
    )
    return parser


def register_demo_routes(server: HTTPServer) -> None:
    @server.get("/")
    def index(ctx):
        ctx.html(200, INDEX_HTML)

    @server.get("/stream")
    def stream(ctx):
        def lines():
            for i in range(5):
                yield f"line {i}\n"
                time.sleep(1)
        ctx.stream(200, "text/plain; charset=utf-8", lines())

    @server.get("/empty")
    def empty(ctx):
        ctx.no_content()


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    gzip_config = GzipConfig.from_env()
    if args.level is not None:
        gzip_config.level = args.level
    gzip_config.skip_paths.extend(args.skip_prefix)

    config = ServerConfig(
        host=args.host,
        port=args.port,
        static_dir=args.static,
        log_level=args.log_level,
    )

    try:
        gzip_config.validate()
        config.validate()
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    if args.static and not os.path.isdir(args.static):
        print(f"Error: not a directory: {args.static}", file=sys.stderr)
        return 2

    setup_logging(config.log_level)

    server = HTTPServer(config)
    server.use(LoggingMiddleware(log_format=config.log_format))
    server.use(GzipMiddleware.from_config(gzip_config))
    register_demo_routes(server)

    try:
        server.run()
    except OSError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
