"""
=============================================================================
CONTENT-TYPE SNIFFING
=============================================================================

Guesses a MIME type from the first bytes of a response body, following the
WHATWG MIME Sniffing Standard (https://mimesniff.spec.whatwg.org/).

=============================================================================
WHY SNIFF?
=============================================================================

A handler that just writes bytes and never sets Content-Type still needs a
sensible type on the wire. Once the body is gzip-compressed nobody
downstream can look at the real bytes any more, so the compression layer
must decide the type from the UNCOMPRESSED prefix before compressing it.

=============================================================================
HOW IT WORKS
=============================================================================

Signatures are checked in order; the first match wins:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                      SIGNATURE TABLE (abridged)                     │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   Kind      Pattern                        Result                   │
    │   ──────    ───────────────────────────    ──────────────────────   │
    │   html      "<!DOCTYPE HTML" + ' ' or '>'  text/html                │
    │   masked    "<?xml" (after whitespace)     text/xml                 │
    │   exact     "%PDF-"                        application/pdf          │
    │   exact     "\\x89PNG\\r\\n\\x1a\\n"           image/png                │
    │   masked    "RIFF????WEBPVP"               image/webp               │
    │   mp4       "....ftyp" box with "mp4"      video/mp4                │
    │   text      no binary control bytes        text/plain               │
    │                                                                      │
    │   nothing matched                  →  application/octet-stream      │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Only the first 512 bytes are examined.

=============================================================================
"""

from typing import Callable, List, Optional


SNIFF_LEN = 512

DEFAULT_CONTENT_TYPE = "application/octet-stream"

# WHATWG whitespace bytes: \t \n \x0c \r and space
_WHITESPACE = frozenset(b"\t\n\x0c\r ")

Signature = Callable[[bytes, int], Optional[str]]


def _html(pattern: bytes) -> Signature:
    """
    HTML tag signature.

    Case-insensitive for ASCII letters, and the tag must be followed by a
    space or '>' so "<Bold" does not count as "<B".
    """
    def match(data: bytes, first_non_ws: int) -> Optional[str]:
        data = data[first_non_ws:]
        if len(data) < len(pattern) + 1:
            return None
        for expected, actual in zip(pattern, data):
            if ord("A") <= expected <= ord("Z"):
                actual &= 0xDF  # upper-case the data byte
            if expected != actual:
                return None
        if data[len(pattern)] not in b" >":
            return None
        return "text/html; charset=utf-8"
    return match


def _masked(pattern: bytes, mask: bytes, content_type: str, skip_ws: bool = False) -> Signature:
    """Signature where each data byte is AND-ed with a mask before comparing."""
    def match(data: bytes, first_non_ws: int) -> Optional[str]:
        if skip_ws:
            data = data[first_non_ws:]
        if len(pattern) != len(mask) or len(data) < len(pattern):
            return None
        for pb, mb, db in zip(pattern, mask, data):
            if db & mb != pb:
                return None
        return content_type
    return match


def _exact(prefix: bytes, content_type: str) -> Signature:
    """Plain prefix signature."""
    def match(data: bytes, first_non_ws: int) -> Optional[str]:
        return content_type if data.startswith(prefix) else None
    return match


def _mp4(data: bytes, first_non_ws: int) -> Optional[str]:
    # https://mimesniff.spec.whatwg.org/#signature-for-mp4
    if len(data) < 12:
        return None
    box_size = int.from_bytes(data[:4], "big")
    if len(data) < box_size or box_size % 4 != 0:
        return None
    if data[4:8] != b"ftyp":
        return None
    for start in range(8, box_size, 4):
        if start == 12:
            continue  # minor version number
        if data[start:start + 3] == b"mp4":
            return "video/mp4"
    return None


def _text(data: bytes, first_non_ws: int) -> Optional[str]:
    # Any "binary data byte" rules out plain text
    for b in data[first_non_ws:]:
        if b <= 0x08 or b == 0x0B or 0x0E <= b <= 0x1A or 0x1C <= b <= 0x1F:
            return None
    return "text/plain; charset=utf-8"


_HTML_TAGS = [
    b"<!DOCTYPE HTML", b"<HTML", b"<HEAD", b"<SCRIPT", b"<IFRAME", b"<H1",
    b"<DIV", b"<FONT", b"<TABLE", b"<A", b"<STYLE", b"<TITLE", b"<B",
    b"<BODY", b"<BR", b"<P", b"<!--",
]

SIGNATURES: List[Signature] = [
    *(_html(tag) for tag in _HTML_TAGS),
    _masked(b"<?xml", b"\xff\xff\xff\xff\xff", "text/xml; charset=utf-8", skip_ws=True),
    _exact(b"%PDF-", "application/pdf"),
    _exact(b"%!PS-Adobe-", "application/postscript"),

    # UTF byte order marks
    _masked(b"\xfe\xff\x00\x00", b"\xff\xff\x00\x00", "text/plain; charset=utf-16be"),
    _masked(b"\xff\xfe\x00\x00", b"\xff\xff\x00\x00", "text/plain; charset=utf-16le"),
    _masked(b"\xef\xbb\xbf\x00", b"\xff\xff\xff\x00", "text/plain; charset=utf-8"),

    # Images
    _exact(b"\x00\x00\x01\x00", "image/x-icon"),
    _exact(b"\x00\x00\x02\x00", "image/x-icon"),
    _exact(b"BM", "image/bmp"),
    _exact(b"GIF87a", "image/gif"),
    _exact(b"GIF89a", "image/gif"),
    _masked(
        b"RIFF\x00\x00\x00\x00WEBPVP",
        b"\xff\xff\xff\xff\x00\x00\x00\x00\xff\xff\xff\xff\xff\xff",
        "image/webp",
    ),
    _exact(b"\x89PNG\x0d\x0a\x1a\x0a", "image/png"),
    _exact(b"\xff\xd8\xff", "image/jpeg"),

    # Audio and video
    _masked(
        b"FORM\x00\x00\x00\x00AIFF",
        b"\xff\xff\xff\xff\x00\x00\x00\x00\xff\xff\xff\xff",
        "audio/aiff",
    ),
    _masked(b"ID3", b"\xff\xff\xff", "audio/mpeg"),
    _masked(b"OggS\x00", b"\xff\xff\xff\xff\xff", "application/ogg"),
    _masked(b"MThd\x00\x00\x00\x06", b"\xff" * 8, "audio/midi"),
    _masked(
        b"RIFF\x00\x00\x00\x00AVI ",
        b"\xff\xff\xff\xff\x00\x00\x00\x00\xff\xff\xff\xff",
        "video/avi",
    ),
    _masked(
        b"RIFF\x00\x00\x00\x00WAVE",
        b"\xff\xff\xff\xff\x00\x00\x00\x00\xff\xff\xff\xff",
        "audio/wave",
    ),
    _mp4,
    _exact(b"\x1a\x45\xdf\xa3", "video/webm"),

    # Fonts (EOT: 34 arbitrary bytes followed by "LP")
    _masked(b"\x00" * 34 + b"LP", b"\x00" * 34 + b"\xff\xff", "application/vnd.ms-fontobject"),
    _exact(b"\x00\x01\x00\x00", "font/ttf"),
    _exact(b"OTTO", "font/otf"),
    _exact(b"ttcf", "font/collection"),
    _exact(b"wOFF", "font/woff"),
    _exact(b"wOF2", "font/woff2"),

    # Archives
    _exact(b"\x1f\x8b\x08", "application/x-gzip"),
    _exact(b"PK\x03\x04", "application/zip"),
    _exact(b"Rar!\x1a\x07\x00", "application/x-rar-compressed"),
    _exact(b"Rar!\x1a\x07\x01\x00", "application/x-rar-compressed"),
    _exact(b"\x00\x61\x73\x6d", "application/wasm"),

    _text,
]


def detect_content_type(data: bytes) -> str:
    """
    Determine the Content-Type of ``data``.

    Always returns a valid MIME type; falls back to
    "application/octet-stream" when nothing matches.

    Args:
        data: Body bytes. Only the first 512 are considered.

    Returns:
        A MIME type string, possibly with a charset parameter.

    Example:
        >>> detect_content_type(b"<html><body>hi</body></html>")
        'text/html; charset=utf-8'
        >>> detect_content_type(b"test")
        'text/plain; charset=utf-8'
    """
    data = bytes(data[:SNIFF_LEN])

    first_non_ws = 0
    while first_non_ws < len(data) and data[first_non_ws] in _WHITESPACE:
        first_non_ws += 1

    for signature in SIGNATURES:
        content_type = signature(data, first_non_ws)
        if content_type:
            return content_type

    return DEFAULT_CONTENT_TYPE
