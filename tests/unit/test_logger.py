"""
Unit tests for the access log middleware.
"""

import json
import logging

import pytest

from conftest import make_context, make_request
from httpgzip.context import HTTPError
from httpgzip.middleware import LoggingMiddleware


@pytest.fixture
def access_log(caplog):
    caplog.set_level(logging.INFO, logger="httpgzip.access")
    return caplog


def messages(caplog):
    return [r.getMessage() for r in caplog.records if r.name == "httpgzip.access"]


class TestLoggingMiddleware:
    """Tests for LoggingMiddleware."""

    def test_text_line(self, access_log):
        ctx, recorder = make_context(make_request(path="/hello"))

        LoggingMiddleware()(ctx, lambda ctx: ctx.string(201, "hi there"))

        (line,) = messages(access_log)
        assert '"GET /hello" 201 8 ' in line
        assert line.startswith("127.0.0.1 - - [")
        assert recorder.result_headers.get("X-Request-ID")

    def test_json_line(self, access_log):
        ctx, _ = make_context(make_request(path="/data", User_Agent="pytest"))

        LoggingMiddleware(log_format="json")(ctx, lambda ctx: ctx.json(200, [1, 2]))

        entry = json.loads(messages(access_log)[0])
        assert entry["path"] == "/data"
        assert entry["status_code"] == 200
        assert entry["size"] == len(b"[1, 2]")
        assert entry["user_agent"] == "pytest"

    def test_skip_paths(self, access_log):
        ctx, _ = make_context(make_request(path="/health"))

        LoggingMiddleware(skip_paths=["/health"])(ctx, lambda ctx: ctx.no_content())

        assert messages(access_log) == []

    def test_no_request_id(self, access_log):
        ctx, recorder = make_context()

        LoggingMiddleware(include_request_id=False)(ctx, lambda ctx: ctx.no_content())

        assert "X-Request-ID" not in recorder.result_headers

    def test_failure_is_logged_and_raised(self, access_log):
        """Errors are logged at ERROR and passed on unchanged."""
        ctx, _ = make_context(make_request(path="/boom"))

        def boom(ctx):
            raise HTTPError(400, "nope")

        with pytest.raises(HTTPError):
            LoggingMiddleware()(ctx, boom)

        errors = [r for r in access_log.records if r.levelno == logging.ERROR]
        assert len(errors) == 1
        assert "GET /boom" in errors[0].getMessage()
