"""
=============================================================================
STATIC FILE HANDLER
=============================================================================

Serves files from a directory, streaming them in fixed-size pieces so a
large file never sits in memory whole.

    GET /static/img/logo.png
        │
        ├── resolve against root_dir, refuse anything outside it (403)
        ├── directory? serve its index.html
        ├── missing? 404
        ├── If-None-Match equals the ETag? 304, no body
        └── 200 with Content-Type, Content-Length, ETag, Last-Modified,
            Cache-Control, then the bytes in chunk_size pieces

Content-Length is always set here. A compressing writer further down the
write path removes it again, because the compressed length is unknown
until the last byte.

=============================================================================
"""

import logging
from datetime import datetime, timezone
from pathlib import Path

from ..context import Context, HTTPError, NotFoundError
from ..http.headers import format_http_date
from ..http.mime_types import get_content_type


logger = logging.getLogger(__name__)


class StaticFileHandler:
    """
    Handler serving files below ``root_dir``.

    Usage:
        mux.add_route("/static/*filepath", StaticFileHandler("./public"), "GET")

    or simply ``mux.static("/static", "./public")``.
    """

    def __init__(
        self,
        root_dir: str,
        index_file: str = "index.html",
        cache_max_age: int = 3600,
        chunk_size: int = 64 * 1024,
    ):
        """
        Args:
            root_dir: Directory to serve. Must exist.
            index_file: File served for directory requests.
            cache_max_age: Cache-Control max-age in seconds.
            chunk_size: Bytes read and written per step.

        Raises:
            ValueError: If root_dir is not a directory.
        """
        self.root_dir = Path(root_dir).resolve()
        self.index_file = index_file
        self.cache_max_age = cache_max_age
        self.chunk_size = chunk_size

        if not self.root_dir.is_dir():
            raise ValueError(f"Static root directory does not exist: {root_dir}")

    def __call__(self, ctx: Context) -> None:
        file_path = ctx.param("filepath").lstrip("/")
        full_path = (self.root_dir / file_path).resolve()

        # resolve() follows ".." and symlinks, so check the result
        try:
            full_path.relative_to(self.root_dir)
        except ValueError:
            logger.warning(f"Path traversal attempt: {file_path}")
            raise HTTPError(403, "Access denied")

        if full_path.is_dir():
            full_path = full_path / self.index_file

        if not full_path.is_file():
            raise NotFoundError(f"File not found: {file_path}")

        self._serve_file(ctx, full_path)

    def _serve_file(self, ctx: Context, path: Path) -> None:
        try:
            stat = path.stat()
        except PermissionError:
            raise HTTPError(403, "Permission denied")

        etag = f'"{int(stat.st_mtime)}-{stat.st_size}"'
        headers = ctx.response.header()
        headers.set("ETag", etag)

        if ctx.request.get_header("If-None-Match") == etag:
            ctx.no_content(304)
            return

        mtime = datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc)
        headers.set("Content-Type", get_content_type(path))
        headers.set("Content-Length", str(stat.st_size))
        headers.set("Last-Modified", format_http_date(mtime))
        headers.set("Cache-Control", f"public, max-age={self.cache_max_age}")

        try:
            f = path.open("rb")
        except PermissionError:
            raise HTTPError(403, "Permission denied")

        with f:
            ctx.response.write_header(200)
            if ctx.request.method == "HEAD":
                return
            while True:
                chunk = f.read(self.chunk_size)
                if not chunk:
                    break
                ctx.response.write(chunk)
