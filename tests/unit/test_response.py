"""
Unit tests for HTTP response building.
"""

import json
from http import HTTPStatus

from baseserver.http.response import (
    HTTPResponse,
    ResponseBuilder,
    ok,
    not_found,
    internal_error,
    syntax_error,
    server_error,
    error_response,
    format_http_date,
    SYNTAX_ERROR_DESCRIPTION,
)


class TestHTTPResponse:
    """Tests for HTTPResponse class."""

    def test_status_line(self):
        """Test status line generation."""
        response = HTTPResponse(status=HTTPStatus.OK)
        assert response.status_line == "HTTP/1.1 200 OK"

        response = HTTPResponse(status=HTTPStatus.SERVICE_UNAVAILABLE)
        assert response.status_line == "HTTP/1.1 503 Service Unavailable"

    def test_to_bytes_includes_headers(self):
        """Test that to_bytes includes all headers."""
        response = HTTPResponse(
            status=HTTPStatus.OK,
            headers={"X-Custom": "value"},
            body=b"test",
        )

        result = response.to_bytes()

        assert b"HTTP/1.1 200 OK\r\n" in result
        assert b"X-Custom: value\r\n" in result
        assert b"Content-Length: 4\r\n" in result
        assert b"Server: baseserver/1.0\r\n" in result
        assert b"\r\n\r\ntest" in result

    def test_to_bytes_without_body(self):
        response = HTTPResponse(body=b"hello world")
        result = response.to_bytes(include_body=False)

        assert b"Content-Length: 11\r\n" in result
        assert result.endswith(b"\r\n\r\n")

    def test_to_bytes_keeps_explicit_headers(self):
        response = HTTPResponse(body=b"hello", headers={"content-length": "5", "Server": "edge"})
        result = response.to_bytes(server_name="other")

        assert result.count(b"ength: 5") == 1
        assert b"Server: edge\r\n" in result
        assert b"other" not in result

    def test_set_header_chaining(self):
        """Test method chaining for headers."""
        response = (HTTPResponse()
            .set_header("X-One", "1")
            .set_header("X-Two", "2"))

        assert response.headers["X-One"] == "1"
        assert response.headers["X-Two"] == "2"

    def test_header_lookup_is_case_insensitive(self):
        response = HTTPResponse(headers={"X-Powered-By": "php"})

        assert response.get_header("x-powered-by") == "php"
        response.remove_header("X-POWERED-BY")
        assert response.get_header("X-Powered-By") is None

    def test_json_property(self):
        assert HTTPResponse(body=b'{"a": 1}').json == {"a": 1}
        assert HTTPResponse().json is None


class TestResponseBuilder:
    """Tests for ResponseBuilder class."""

    def test_status_accepts_int(self):
        response = ResponseBuilder().status(201).build()
        assert response.status is HTTPStatus.CREATED

    def test_json(self):
        response = ResponseBuilder().json({"name": "test"}).build()

        assert response.headers["Content-Type"] == "application/json; charset=utf-8"
        assert json.loads(response.body) == {"name": "test"}

    def test_text_and_html(self):
        text = ResponseBuilder().text("hi").build()
        html = ResponseBuilder().html("<p>hi</p>").build()

        assert text.headers["Content-Type"] == "text/plain; charset=utf-8"
        assert html.headers["Content-Type"] == "text/html; charset=utf-8"
        assert html.body == b"<p>hi</p>"

    def test_close_connection(self):
        response = ResponseBuilder().close_connection().build()
        assert response.headers["Connection"] == "close"


class TestConvenienceFunctions:
    """Tests for convenience response functions."""

    def test_ok(self):
        """Test ok() function."""
        response = ok("Hello")
        assert response.status == HTTPStatus.OK
        assert response.body == b"Hello"

        response = ok({"msg": "hello"})
        assert response.json == {"msg": "hello"}

        response = ok(b"\x00\x01", content_type="application/octet-stream")
        assert response.body == b"\x00\x01"
        assert response.headers["Content-Type"] == "application/octet-stream"

    def test_not_found(self):
        """Test not_found() function."""
        response = not_found("Resource not found")
        assert response.status == HTTPStatus.NOT_FOUND
        assert response.json == {"error": "Resource not found"}

    def test_internal_error(self):
        """Test internal_error() function."""
        response = internal_error()
        assert response.status == HTTPStatus.INTERNAL_SERVER_ERROR


class TestErrorPayloads:
    """The two fixed error bodies clients can see."""

    def test_syntax_error(self):
        response = syntax_error()

        assert response.status == HTTPStatus.BAD_REQUEST
        assert response.json == {
            "error": "syntax_error",
            "error_description": SYNTAX_ERROR_DESCRIPTION,
        }

    def test_server_error(self):
        response = server_error()

        assert response.status == HTTPStatus.SERVICE_UNAVAILABLE
        assert response.json == {
            "error": "server_error",
            "error_description": "Service Unavailable",
        }

    def test_error_response_shape(self):
        response = error_response(409, "conflict", "Already exists")

        assert response.status is HTTPStatus.CONFLICT
        assert set(response.json) == {"error", "error_description"}


class TestFormatHTTPDate:
    """Tests for HTTP date formatting."""

    def test_format(self):
        """Test HTTP date format."""
        from datetime import datetime, timezone

        dt = datetime(2026, 1, 15, 12, 30, 45, tzinfo=timezone.utc)
        result = format_http_date(dt)

        assert result == "Thu, 15 Jan 2026 12:30:45 GMT"
