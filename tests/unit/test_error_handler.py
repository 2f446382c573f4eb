"""
Unit tests for the error handler middleware.
"""

import logging
from http import HTTPStatus

from baseserver.http.response import ok
from baseserver.middleware.errors import ErrorHandlerMiddleware


def failing(request):
    raise RuntimeError("database unreachable")


class TestErrorHandlerMiddleware:
    """Tests for ErrorHandlerMiddleware."""

    def test_passes_through(self, request_factory):
        response = ErrorHandlerMiddleware()(request_factory(), lambda r: ok("fine"))

        assert response.status == HTTPStatus.OK
        assert response.body == b"fine"

    def test_answers_503(self, request_factory):
        response = ErrorHandlerMiddleware()(request_factory(), failing)

        assert response.status == HTTPStatus.SERVICE_UNAVAILABLE
        assert response.json == {
            "error": "server_error",
            "error_description": "Service Unavailable",
        }

    def test_exception_text_not_leaked(self, request_factory):
        response = ErrorHandlerMiddleware()(request_factory(), failing)

        assert b"database" not in response.body

    def test_logs_once(self, request_factory, caplog):
        request = request_factory(
            "POST", "/orders", b'{"id": 3}',
            {"Content-Type": "application/json", "X-Trace": "t-1"},
            client_address=("192.0.2.10", 1234),
        )
        request.parsed_body = {"id": 3}

        with caplog.at_level(logging.ERROR, logger="baseserver"):
            ErrorHandlerMiddleware()(request, failing)

        records = [r for r in caplog.records if r.levelno >= logging.ERROR]
        assert len(records) == 1

        message = records[0].getMessage()
        assert " - ERROR - /orders - 192.0.2.10 - " in message
        assert '{"id": 3}' in message
        assert '"x-trace": "t-1"' in message
        assert records[0].exc_info[0] is RuntimeError

    def test_logs_raw_body_when_unparsed(self, request_factory, caplog):
        request = request_factory("POST", "/raw", b"plain text", {"Content-Type": "text/plain"})

        with caplog.at_level(logging.ERROR, logger="baseserver"):
            ErrorHandlerMiddleware().handle_error(request, ValueError("bad"))

        assert '"plain text"' in caplog.records[-1].getMessage()

    def test_handle_error_directly(self, request_factory):
        response = ErrorHandlerMiddleware().handle_error(request_factory(), KeyError("x"))
        assert response.status == HTTPStatus.SERVICE_UNAVAILABLE
