"""
Unit tests for the gzip compression middleware.
"""

import json
import os
import zlib

import pytest

from conftest import gunzip, make_context, make_request
from httpgzip.codec import BEST_SPEED, CompressionLevelError, GzipWriter
from httpgzip.context import HTTPError
from httpgzip.http import HijackNotSupported, ResponseRecorder
from httpgzip.middleware import GzipMiddleware, GzipResponseWriter, gzip_middleware
from httpgzip.middleware import gzip as gzip_module
from httpgzip.router import ServeMux


PAYLOAD = b"The quick brown fox jumps over the lazy dog. " * 40


def serve(mux: ServeMux, request) -> ResponseRecorder:
    recorder = ResponseRecorder()
    mux.serve(request, recorder)
    return recorder


def text_mux(*middleware) -> ServeMux:
    mux = ServeMux()
    mux.use(*middleware)

    @mux.get("/")
    def index(ctx):
        ctx.blob(200, "text/plain; charset=utf-8", PAYLOAD)

    return mux


class CountingGzipWriter(GzipWriter):
    instances = []

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.close_calls = 0
        CountingGzipWriter.instances.append(self)

    def close(self):
        self.close_calls += 1
        super().close()


class HijackableRecorder(ResponseRecorder):
    def __init__(self):
        super().__init__()
        self.hijacked = False

    def hijack(self):
        self.hijacked = True
        return "sock", "rwfile"


class TestNegotiation:
    """Tests for when compression kicks in."""

    def test_no_gzip_leaves_response_untouched(self):
        """Without gzip in Accept-Encoding only Vary is added."""
        plain = serve(text_mux(), make_request(accept_encoding="deflate"))
        wrapped = serve(text_mux(GzipMiddleware()), make_request(accept_encoding="deflate"))

        assert wrapped.code == plain.code == 200
        assert bytes(wrapped.body) == bytes(plain.body) == PAYLOAD

        headers = wrapped.result_headers.copy()
        assert headers.values("Vary") == ["Accept-Encoding"]
        assert "Content-Encoding" not in headers
        headers.delete("Vary")
        assert headers == plain.result_headers

    def test_missing_accept_encoding(self):
        """No Accept-Encoding header at all means no compression."""
        recorder = serve(text_mux(GzipMiddleware()), make_request())

        assert bytes(recorder.body) == PAYLOAD
        assert "Content-Encoding" not in recorder.result_headers

    def test_gzip_body_decompresses(self):
        """With gzip accepted the body is a gzip stream of the written bytes."""
        recorder = serve(
            text_mux(GzipMiddleware()),
            make_request(accept_encoding="gzip, deflate, br"),
        )

        headers = recorder.result_headers
        assert recorder.code == 200
        assert headers.get("Content-Encoding") == "gzip"
        assert headers.values("Vary") == ["Accept-Encoding"]
        assert bytes(recorder.body[:3]) == b"\x1f\x8b\x08"
        assert gunzip(recorder.body) == PAYLOAD
        assert len(recorder.body) < len(PAYLOAD)

    def test_accept_encoding_match_is_case_sensitive(self):
        """Only the literal substring "gzip" turns compression on."""
        recorder = serve(text_mux(GzipMiddleware()), make_request(accept_encoding="GZIP"))

        assert bytes(recorder.body) == PAYLOAD
        assert "Content-Encoding" not in recorder.result_headers

    def test_substring_match(self):
        """A q-value or x-gzip still contains the substring."""
        recorder = serve(text_mux(GzipMiddleware()), make_request(accept_encoding="gzip;q=0.5"))
        assert recorder.result_headers.get("Content-Encoding") == "gzip"

    def test_existing_vary_is_preserved(self):
        """Vary is appended, never overwritten."""
        recorder = ResponseRecorder()
        recorder.header().add("Vary", "Origin")

        text_mux(GzipMiddleware()).serve(make_request(accept_encoding="gzip"), recorder)

        assert recorder.result_headers.values("Vary") == ["Origin", "Accept-Encoding"]

    def test_skipper_bypasses_everything(self):
        """A skipped request gets neither Vary nor Content-Encoding."""
        mw = GzipMiddleware(skipper=lambda ctx: ctx.request.path == "/")
        recorder = serve(text_mux(mw), make_request(accept_encoding="gzip"))

        assert bytes(recorder.body) == PAYLOAD
        assert "Vary" not in recorder.result_headers
        assert "Content-Encoding" not in recorder.result_headers

    def test_factory(self):
        """gzip_middleware() builds a configured middleware."""
        mw = gzip_middleware(level=BEST_SPEED)
        assert isinstance(mw, GzipMiddleware)
        assert mw.options.level == BEST_SPEED


class TestEmptyResponses:
    """Tests for responses that carry no body."""

    def test_no_content(self):
        """204 never claims gzip and has no body."""
        mux = ServeMux()
        mux.use(GzipMiddleware())

        @mux.get("/empty")
        def empty(ctx):
            ctx.no_content()

        recorder = serve(mux, make_request(path="/empty", accept_encoding="gzip"))

        assert recorder.code == 204
        assert recorder.body == b""
        assert "Content-Encoding" not in recorder.result_headers
        assert recorder.result_headers.values("Vary") == ["Accept-Encoding"]

    def test_redirect_without_body(self):
        """A bodiless 302 drops Content-Encoding after the handler returns."""
        mux = ServeMux()
        mux.use(GzipMiddleware())

        @mux.get("/old")
        def old(ctx):
            ctx.response.header().set("Location", "/new")
            ctx.response.write_header(302)

        recorder = serve(mux, make_request(path="/old", accept_encoding="gzip"))

        assert recorder.code == 302
        assert recorder.body == b""
        assert "Content-Encoding" not in recorder.result_headers

    def test_error_before_any_output(self):
        """An error body written by the error handler is plain."""
        mux = ServeMux()
        mux.use(GzipMiddleware())

        recorder = serve(mux, make_request(path="/missing", accept_encoding="gzip"))

        assert recorder.code == 404
        assert "Content-Encoding" not in recorder.result_headers
        assert recorder.result_headers.values("Vary") == ["Accept-Encoding"]
        assert json.loads(bytes(recorder.body))["error"].startswith("No route")

    def test_handler_exception_propagates(self):
        """The middleware re-raises after cleaning up."""
        ctx, recorder = make_context(make_request(accept_encoding="gzip"))
        original = ctx.response.writer

        def boom(ctx):
            raise HTTPError(503)

        with pytest.raises(HTTPError):
            GzipMiddleware()(ctx, boom)

        assert ctx.response.writer is original
        assert "Content-Encoding" not in ctx.response.header()
        assert recorder.body == b""

    def test_foreign_content_encoding_kept(self):
        """Only our own gzip marker is removed on the empty path."""
        ctx, recorder = make_context(make_request(accept_encoding="gzip"))

        def handler(ctx):
            ctx.response.header().set("Content-Encoding", "br")

        GzipMiddleware()(ctx, handler)

        assert ctx.response.header().get("Content-Encoding") == "br"
        assert recorder.body == b""

    def test_flush_then_error_keeps_stream(self):
        """Bytes already out stay a valid gzip stream when an error follows."""
        mux = ServeMux()
        mux.use(GzipMiddleware())

        @mux.get("/partial")
        def partial(ctx):
            ctx.response.write(b"partial output")
            ctx.response.flush()
            raise HTTPError(500, "late failure")

        recorder = serve(mux, make_request(path="/partial", accept_encoding="gzip"))

        assert recorder.result_headers.get("Content-Encoding") == "gzip"
        assert gunzip(recorder.body) == b"partial output"


class TestStreaming:
    """Tests for flushed, incrementally decodable output."""

    def test_each_flush_is_decodable(self):
        """Every flushed prefix decompresses to what was written so far."""
        pieces = [b"first chunk\n", b"second chunk\n", b"third chunk\n"]
        mux = ServeMux()
        mux.use(GzipMiddleware())

        @mux.get("/stream")
        def stream(ctx):
            ctx.response.header().set("Content-Type", "text/plain")
            ctx.response.write(pieces[0])
            ctx.response.flush()
            ctx.response.write(pieces[1])
            ctx.response.flush()
            ctx.response.write(pieces[2])

        recorder = serve(mux, make_request(path="/stream", accept_encoding="gzip"))

        assert recorder.flushed
        assert len(recorder.flush_marks) == 2

        decoder = zlib.decompressobj(16 + zlib.MAX_WBITS)
        first, second = recorder.flush_marks
        assert decoder.decompress(bytes(recorder.body[:first])) == pieces[0]
        assert decoder.decompress(bytes(recorder.body[first:second])) == pieces[1]
        assert decoder.decompress(bytes(recorder.body[second:])) == pieces[2]
        assert decoder.eof

    def test_context_stream_helper(self):
        """Context.stream flushes after every chunk."""
        mux = ServeMux()
        mux.use(GzipMiddleware())

        @mux.get("/events")
        def events(ctx):
            ctx.stream(200, "text/event-stream", (f"data: {i}\n\n" for i in range(3)))

        recorder = serve(mux, make_request(path="/events", accept_encoding="gzip"))

        assert len(recorder.flush_marks) == 3
        assert recorder.result_headers.get("Content-Type") == "text/event-stream"
        assert gunzip(recorder.body) == b"data: 0\n\ndata: 1\n\ndata: 2\n\n"

    def test_size_counts_uncompressed_bytes(self):
        """Response.size is the handler's byte count, not the wire count."""
        ctx, recorder = make_context(make_request(accept_encoding="gzip"))

        def handler(ctx):
            ctx.response.write(PAYLOAD)

        GzipMiddleware()(ctx, handler)

        assert ctx.response.size == len(PAYLOAD)
        assert len(recorder.body) != len(PAYLOAD)


class TestStaticFiles:
    """Tests for compressing files served from disk."""

    def test_binary_file_round_trip(self, tmp_path):
        """A binary file decompresses to exactly the file contents."""
        data = os.urandom(50_000) + bytes(range(256)) * 200
        (tmp_path / "blob.bin").write_bytes(data)

        mux = ServeMux()
        mux.use(GzipMiddleware())
        mux.static("/static", str(tmp_path), chunk_size=4096)

        recorder = serve(mux, make_request(path="/static/blob.bin", accept_encoding="gzip"))

        headers = recorder.result_headers
        assert recorder.code == 200
        assert headers.get("Content-Encoding") == "gzip"
        assert "Content-Length" not in headers
        assert headers.get("Content-Type") == "application/octet-stream"
        assert gunzip(recorder.body) == data

    def test_uncompressed_file_keeps_length(self, tmp_path):
        """Without gzip the file's Content-Length survives."""
        (tmp_path / "page.html").write_text("<p>hello</p>")

        mux = ServeMux()
        mux.use(GzipMiddleware())
        mux.static("/static", str(tmp_path))

        recorder = serve(mux, make_request(path="/static/page.html"))

        assert recorder.result_headers.get("Content-Length") == "12"
        assert bytes(recorder.body) == b"<p>hello</p>"


class TestCompressionLevel:
    """Tests for the configured level."""

    def test_invalid_level_raises_before_handler(self):
        """An out-of-range level fails before next() and before any header change."""
        ctx, recorder = make_context(make_request(accept_encoding="gzip"))
        called = []

        with pytest.raises(CompressionLevelError) as exc_info:
            GzipMiddleware(level=42)(ctx, lambda ctx: called.append(True))

        assert exc_info.value.level == 42
        assert called == []
        assert "Content-Encoding" not in ctx.response.header()

    def test_invalid_level_through_mux(self):
        """The mux turns the level error into a plain 500."""
        recorder = serve(text_mux(GzipMiddleware(level=10)), make_request(accept_encoding="gzip"))

        assert recorder.code == 500
        assert "Content-Encoding" not in recorder.result_headers

    def test_invalid_level_unused_without_gzip(self):
        """The level is only checked when compression is attempted."""
        recorder = serve(text_mux(GzipMiddleware(level=42)), make_request())
        assert bytes(recorder.body) == PAYLOAD

    @pytest.mark.parametrize("level", [-2, -1, 0, 1, 9])
    def test_valid_levels(self, level):
        """Every supported level produces a decodable stream."""
        recorder = serve(text_mux(GzipMiddleware(level=level)), make_request(accept_encoding="gzip"))
        assert gunzip(recorder.body) == PAYLOAD


class TestCompressorLifecycle:
    """Tests that the compressor is closed exactly once."""

    @pytest.fixture(autouse=True)
    def counting_writer(self, monkeypatch):
        CountingGzipWriter.instances = []
        monkeypatch.setattr(gzip_module, "GzipWriter", CountingGzipWriter)

    def run(self, handler):
        ctx, recorder = make_context(make_request(accept_encoding="gzip"))
        try:
            GzipMiddleware()(ctx, handler)
        except HTTPError:
            pass
        assert len(CountingGzipWriter.instances) == 1
        return CountingGzipWriter.instances[0], recorder

    def test_closed_once_with_body(self):
        """Normal path."""
        compressor, recorder = self.run(lambda ctx: ctx.response.write(b"body"))
        assert compressor.close_calls == 1
        assert gunzip(recorder.body) == b"body"

    def test_closed_once_when_empty(self):
        """Empty path: reset to discard, then close, nothing reaches the client."""
        compressor, recorder = self.run(lambda ctx: None)
        assert compressor.close_calls == 1
        assert recorder.body == b""

    def test_closed_once_on_error(self):
        """Error path."""
        def boom(ctx):
            raise HTTPError(400)

        compressor, recorder = self.run(boom)
        assert compressor.close_calls == 1
        assert recorder.body == b""


class TestGzipResponseWriter:
    """Tests for the writer decorator itself."""

    def make_writer(self, wrapped=None):
        wrapped = wrapped or ResponseRecorder()
        return GzipResponseWriter(GzipWriter(wrapped), wrapped), wrapped

    def test_header_is_shared(self):
        """header() is the wrapped writer's map."""
        writer, wrapped = self.make_writer()
        assert writer.header() is wrapped.header()

    def test_write_header_drops_content_length(self):
        """Content-Length no longer describes the body."""
        writer, wrapped = self.make_writer()
        writer.header().set("Content-Length", "100")
        writer.header().set("Content-Encoding", "gzip")

        writer.write_header(200)

        assert wrapped.code == 200
        assert "Content-Length" not in wrapped.header()
        assert wrapped.header().get("Content-Encoding") == "gzip"

    def test_write_header_204_drops_encoding(self):
        """204 removes Content-Encoding."""
        writer, wrapped = self.make_writer()
        writer.header().set("Content-Encoding", "gzip")

        writer.write_header(204)

        assert wrapped.code == 204
        assert "Content-Encoding" not in wrapped.header()

    def test_sniffs_content_type(self):
        """The first write sets Content-Type from the uncompressed bytes."""
        writer, wrapped = self.make_writer()

        writer.write(b"<html><body>hi</body></html>")

        assert writer.header().get("Content-Type") == "text/html; charset=utf-8"

    def test_explicit_content_type_wins(self):
        """An existing Content-Type is never replaced."""
        writer, wrapped = self.make_writer()
        writer.header().set("Content-Type", "application/json")

        writer.write(b"<html></html>")

        assert writer.header().get("Content-Type") == "application/json"

    def test_write_returns_uncompressed_count(self):
        """write() reports what the compressor consumed."""
        writer, wrapped = self.make_writer()
        assert writer.write(PAYLOAD) == len(PAYLOAD)

    def test_flush_reaches_wrapped_writer(self):
        """flush() sync-flushes the compressor then the wrapped writer."""
        writer, wrapped = self.make_writer()

        writer.write(b"hello")
        writer.flush()

        assert wrapped.flushed
        decoder = zlib.decompressobj(16 + zlib.MAX_WBITS)
        assert decoder.decompress(bytes(wrapped.body)) == b"hello"

    def test_hijack_not_supported(self):
        """A wrapped writer without hijack() raises HijackNotSupported."""
        writer, wrapped = self.make_writer()

        with pytest.raises(HijackNotSupported) as exc_info:
            writer.hijack()

        assert exc_info.value.writer is wrapped

    def test_hijack_delegates(self):
        """A hijackable wrapped writer is reached through the decorator."""
        writer, wrapped = self.make_writer(HijackableRecorder())

        assert writer.hijack() == ("sock", "rwfile")
        assert wrapped.hijacked

    def test_hijack_through_response(self):
        """ctx.response.hijack() works while compression is installed."""
        wrapped = HijackableRecorder()
        ctx, _ = make_context(make_request(accept_encoding="gzip"))
        ctx.response.writer = wrapped
        seen = []

        def handler(ctx):
            assert isinstance(ctx.response.writer, GzipResponseWriter)
            seen.append(ctx.response.hijack())

        GzipMiddleware()(ctx, handler)

        assert seen == [("sock", "rwfile")]
        assert wrapped.hijacked
