"""
=============================================================================
MIME TYPES BY EXTENSION
=============================================================================

Used by the static file handler, which knows the file NAME before it has
read a byte. Responses that never set a Content-Type are sniffed from their
body instead (see sniff.py).

    extension lookup    "style.css"  →  text/css; charset=utf-8
    body sniffing       b"<html>..." →  text/html; charset=utf-8

=============================================================================
"""

from pathlib import Path
from typing import Optional, Union


MIME_TYPES = {
    # Text
    ".html": "text/html",
    ".htm": "text/html",
    ".css": "text/css",
    ".js": "text/javascript",
    ".mjs": "text/javascript",
    ".json": "application/json",
    ".xml": "application/xml",
    ".txt": "text/plain",
    ".md": "text/markdown",
    ".csv": "text/csv",

    # Images
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".svg": "image/svg+xml",
    ".ico": "image/x-icon",
    ".webp": "image/webp",

    # Fonts
    ".woff": "font/woff",
    ".woff2": "font/woff2",
    ".ttf": "font/ttf",

    # Media and archives (already compressed, gzip gains little)
    ".mp3": "audio/mpeg",
    ".mp4": "video/mp4",
    ".webm": "video/webm",
    ".pdf": "application/pdf",
    ".zip": "application/zip",
    ".gz": "application/gzip",
    ".wasm": "application/wasm",
}

DEFAULT_MIME_TYPE = "application/octet-stream"

_TEXT_APPLICATION_TYPES = {
    "application/json",
    "application/xml",
    "application/javascript",
    "image/svg+xml",
}


def get_mime_type(path: Union[str, Path], default: Optional[str] = None) -> str:
    """
    MIME type for a file name based on its extension.

        >>> get_mime_type("walle.PNG")
        'image/png'
        >>> get_mime_type("unknown.xyz")
        'application/octet-stream'
    """
    extension = Path(path).suffix.lower()
    return MIME_TYPES.get(extension, default or DEFAULT_MIME_TYPE)


def is_text_type(mime_type: str) -> bool:
    return mime_type.startswith("text/") or mime_type in _TEXT_APPLICATION_TYPES


def get_content_type(path: Union[str, Path], charset: str = "utf-8") -> str:
    """
    Full Content-Type header value for a file, with a charset for text.

        >>> get_content_type("page.html")
        'text/html; charset=utf-8'
        >>> get_content_type("image.png")
        'image/png'
    """
    mime_type = get_mime_type(path)
    if is_text_type(mime_type):
        return f"{mime_type}; charset={charset}"
    return mime_type
