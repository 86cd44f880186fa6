"""
Unit tests for the streaming gzip writer.
"""

import gzip
import zlib

import pytest

from conftest import gunzip
from httpgzip.codec import (
    BEST_COMPRESSION,
    DEFAULT_COMPRESSION,
    HUFFMAN_ONLY,
    NO_COMPRESSION,
    CompressionLevelError,
    Discard,
    GzipWriter,
    validate_level,
)


class Sink:
    """Collects everything written to it."""

    def __init__(self):
        self.data = bytearray()
        self.writes = 0

    def write(self, data: bytes) -> int:
        self.writes += 1
        self.data.extend(data)
        return len(data)


class TestGzipWriter:
    """Tests for GzipWriter."""

    def test_close_produces_complete_stream(self):
        """write + close yields a stream the stdlib gzip module reads."""
        sink = Sink()
        writer = GzipWriter(sink)

        writer.write(b"hello ")
        writer.write(b"world")
        writer.close()

        assert gzip.decompress(bytes(sink.data)) == b"hello world"
        assert writer.closed

    def test_write_returns_input_length(self):
        """The count is the uncompressed length."""
        writer = GzipWriter(Sink())
        assert writer.write(b"x" * 1000) == 1000

    def test_sync_flush_is_decodable(self):
        """After flush() everything written so far can be decoded."""
        sink = Sink()
        writer = GzipWriter(sink)

        writer.write(b"part one")
        writer.flush()

        decoder = zlib.decompressobj(16 + zlib.MAX_WBITS)
        assert decoder.decompress(bytes(sink.data)) == b"part one"
        assert not writer.closed

    def test_close_is_idempotent(self):
        """A second close() writes nothing more."""
        sink = Sink()
        writer = GzipWriter(sink)
        writer.write(b"data")
        writer.close()
        size = len(sink.data)

        writer.close()

        assert len(sink.data) == size

    def test_write_after_close_raises(self):
        """Writing to a finished stream is an error."""
        writer = GzipWriter(Sink())
        writer.close()

        with pytest.raises(ValueError):
            writer.write(b"late")

    def test_flush_after_close_is_noop(self):
        """flush() on a closed writer does nothing."""
        sink = Sink()
        writer = GzipWriter(sink)
        writer.close()
        writes = sink.writes

        writer.flush()

        assert sink.writes == writes

    def test_empty_stream_is_valid(self):
        """close() with nothing written still yields a valid empty stream."""
        sink = Sink()
        GzipWriter(sink).close()
        assert gunzip(sink.data) == b""

    def test_reset_to_discard(self):
        """After reset(Discard()) nothing reaches the old sink."""
        sink = Sink()
        writer = GzipWriter(sink)
        writer.flush()
        before = bytes(sink.data)

        writer.reset(Discard())
        writer.write(b"dropped")
        writer.close()

        assert bytes(sink.data) == before

    def test_reset_starts_new_stream(self):
        """A reset writer can be reused, even after close()."""
        first, second = Sink(), Sink()
        writer = GzipWriter(first)
        writer.write(b"one")
        writer.close()

        writer.reset(second)
        writer.write(b"two")
        writer.close()

        assert gunzip(first.data) == b"one"
        assert gunzip(second.data) == b"two"

    def test_huffman_only(self):
        """Level -2 uses the Huffman-only strategy and stays decodable."""
        sink = Sink()
        writer = GzipWriter(sink, HUFFMAN_ONLY)
        writer.write(b"abcabcabc" * 100)
        writer.close()
        assert gunzip(sink.data) == b"abcabcabc" * 100

    def test_no_compression_is_larger(self):
        """Level 0 stores; level 9 compresses repetitive data."""
        data = b"repeat " * 500
        stored, best = Sink(), Sink()
        for sink, level in ((stored, NO_COMPRESSION), (best, BEST_COMPRESSION)):
            writer = GzipWriter(sink, level)
            writer.write(data)
            writer.close()

        assert len(stored.data) > len(data)
        assert len(best.data) < len(data) // 10


class TestLevels:
    """Tests for level validation."""

    @pytest.mark.parametrize("level", [-2, -1, 0, 5, 9])
    def test_valid(self, level):
        """Supported levels pass through unchanged."""
        assert validate_level(level) == level
        assert GzipWriter(Sink(), level).level == level

    @pytest.mark.parametrize("level", [-3, 10, 100])
    def test_invalid(self, level):
        """Anything else raises CompressionLevelError, a ValueError."""
        with pytest.raises(CompressionLevelError) as exc_info:
            GzipWriter(Sink(), level)

        assert isinstance(exc_info.value, ValueError)
        assert exc_info.value.level == level
        assert str(level) in str(exc_info.value)

    def test_default(self):
        assert GzipWriter(Sink()).level == DEFAULT_COMPRESSION


class TestDiscard:
    def test_accepts_everything(self):
        assert Discard().write(b"abc") == 3
