"""
=============================================================================
GZIP STREAM WRITER
=============================================================================

A small streaming adapter around zlib that produces gzip-framed output and
forwards it to any object with a ``write(bytes)`` method.

=============================================================================
GZIP FRAMING
=============================================================================

A gzip stream is a DEFLATE stream with a header and a trailer:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                        GZIP MEMBER LAYOUT                           │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   ┌────────────┬──────────────────────────────┬──────────────────┐  │
    │   │  HEADER    │   DEFLATE BLOCKS              │   TRAILER        │  │
    │   │  1f 8b 08  │   [block][block]...[final]    │   CRC32  ISIZE   │  │
    │   │  (10 bytes)│                               │   (8 bytes)      │  │
    │   └────────────┴──────────────────────────────┴──────────────────┘  │
    │                                                                      │
    │   zlib writes all three parts for us when wbits = 16 + MAX_WBITS.   │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
FLUSH MODES
=============================================================================

    write()   Compressed bytes are emitted when zlib decides to emit them.
              Small writes usually produce nothing yet.

    flush()   Z_SYNC_FLUSH: everything written so far is emitted and the
              output ends on a byte boundary. A reader can decompress every
              byte written so far. The stream stays open.

    close()   Z_FINISH: the final block and the CRC32/ISIZE trailer are
              emitted. The stream is complete.

=============================================================================
"""

import logging
import zlib
from typing import Protocol


logger = logging.getLogger(__name__)


# =============================================================================
# COMPRESSION LEVELS
# =============================================================================

HUFFMAN_ONLY = -2
DEFAULT_COMPRESSION = -1
NO_COMPRESSION = 0
BEST_SPEED = 1
BEST_COMPRESSION = 9

# wbits for gzip framing (header + trailer) with a 32 KB window
GZIP_WBITS = 16 + zlib.MAX_WBITS


class CompressionLevelError(ValueError):
    """Raised when a compression level is outside the supported range."""

    def __init__(self, level: int):
        super().__init__(
            f"gzip: invalid compression level: {level} "
            f"(expected {HUFFMAN_ONLY}..{BEST_COMPRESSION})"
        )
        self.level = level


class Sink(Protocol):
    """Anything compressed bytes can be forwarded to."""

    def write(self, data: bytes) -> int: ...


class Discard:
    """A sink that accepts and drops every byte."""

    def write(self, data: bytes) -> int:
        return len(data)


def validate_level(level: int) -> int:
    """Return ``level`` unchanged, or raise CompressionLevelError."""
    if not HUFFMAN_ONLY <= level <= BEST_COMPRESSION:
        raise CompressionLevelError(level)
    return level


class GzipWriter:
    """
    Streaming gzip compressor bound to a downstream sink.

    =========================================================================
    LIFECYCLE
    =========================================================================

        w = GzipWriter(sink, level=6)
        w.write(b"hello ")       # may emit nothing yet
        w.flush()                # header + sync-flushed block reach sink
        w.write(b"world")
        w.close()                # final block + trailer reach sink

        w.reset(other_sink)      # start a fresh stream on another sink

    =========================================================================
    """

    def __init__(self, sink: Sink, level: int = DEFAULT_COMPRESSION):
        """
        Create a compressor writing to ``sink``.

        Args:
            sink: Destination for compressed bytes.
            level: -2 (Huffman only), -1 (zlib default) or 0-9.

        Raises:
            CompressionLevelError: If the level is out of range.
        """
        self.level = validate_level(level)
        self._sink = sink
        self._compressor = self._new_compressor()
        self._closed = False

    def _new_compressor(self):
        if self.level == HUFFMAN_ONLY:
            return zlib.compressobj(
                DEFAULT_COMPRESSION, zlib.DEFLATED, GZIP_WBITS,
                strategy=zlib.Z_HUFFMAN_ONLY,
            )
        return zlib.compressobj(self.level, zlib.DEFLATED, GZIP_WBITS)

    @property
    def closed(self) -> bool:
        return self._closed

    def write(self, data: bytes) -> int:
        """
        Compress ``data`` and forward whatever zlib emits.

        Returns:
            Number of uncompressed bytes consumed (always ``len(data)``).
        """
        if self._closed:
            raise ValueError("gzip: write to closed writer")
        out = self._compressor.compress(data)
        if out:
            self._sink.write(out)
        return len(data)

    def flush(self) -> None:
        """Sync-flush pending data so a reader can decode it."""
        if self._closed:
            return
        out = self._compressor.flush(zlib.Z_SYNC_FLUSH)
        if out:
            self._sink.write(out)

    def close(self) -> None:
        """Finish the stream and write the trailer. Safe to call twice."""
        if self._closed:
            return
        self._closed = True
        out = self._compressor.flush(zlib.Z_FINISH)
        if out:
            self._sink.write(out)

    def reset(self, sink: Sink) -> None:
        """Abandon the current stream and start a new one on ``sink``."""
        self._sink = sink
        self._compressor = self._new_compressor()
        self._closed = False
